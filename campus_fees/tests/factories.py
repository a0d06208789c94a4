"""
Test data builders.
"""

from campus_fees.app.schemas.fee_structure import FeeStructureCreate, FeeHeadItem


def structure_payload(**overrides) -> FeeStructureCreate:
    """Mandatory total 50,000.00 plus an optional 30,000.00 hostel head."""
    data = {
        "name": "B.Tech CSE Semester 1",
        "academic_year": "2024-25",
        "semester": 1,
        "course_code": "BTECH",
        "department_code": "CSE",
        "fee_heads": [
            FeeHeadItem(head_code="TUITION", head_name="Tuition Fee", amount=4000000),
            FeeHeadItem(head_code="LIBRARY", head_name="Library Fee", amount=1000000),
            FeeHeadItem(head_code="HOSTEL", head_name="Hostel Fee", amount=3000000, is_optional=True),
        ],
    }
    data.update(overrides)
    return FeeStructureCreate(**data)


def structure_json(**overrides) -> dict:
    return structure_payload(**overrides).model_dump(mode="json", exclude_none=True)
