"""
Fee Structure database model.

Versioned fee template for an academic scope. Master data.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, Boolean, DateTime, ForeignKey, Enum, JSON, CheckConstraint, Index
from sqlalchemy.sql import func
from campus_fees.app.db.session import Base
from campus_fees.app.models.fee_enums import StructureStatus, enum_values


class FeeStructure(Base):
    """
    Fee Structure model.

    Governance rules:
    - Status progression: draft -> approved -> active -> archived
    - Locked once assigned to any student; a locked structure can only be archived
    - Revisions create a NEW VERSION linked through parent_structure_id
    - Never deleted
    """
    __tablename__ = "fee_structures"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification, e.g. "FS-202425-BTECH-CSE-S1" or "FS-202425-BTECH-CSE-S1-V2"
    code = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")

    # Academic scope
    academic_year = Column(String(20), nullable=False, index=True)  # "2024-25"
    semester = Column(Integer, nullable=True)
    department_id = Column(Integer, nullable=True, index=True)
    department_code = Column(String(50), nullable=True)
    course_id = Column(Integer, nullable=True, index=True)
    course_code = Column(String(50), nullable=True)

    # Ordered line items: [{head_code, head_name, amount, is_optional, description}]
    fee_heads = Column(JSON, nullable=False, default=list)

    # Totals in minor units, recomputed from fee_heads
    total_mandatory = Column(BigInteger, nullable=False, default=0)
    total_optional = Column(BigInteger, nullable=False, default=0)
    approved_total = Column(BigInteger, nullable=False)

    # Versioning & governance
    version = Column(Integer, nullable=False, default=1)
    parent_structure_id = Column(Integer, ForeignKey('fee_structures.id'), nullable=True, index=True)
    status = Column(
        Enum(StructureStatus, values_callable=enum_values, name="fee_structure_status"),
        default=StructureStatus.DRAFT,
        nullable=False,
        index=True
    )
    is_locked = Column(Boolean, default=False, nullable=False)
    locked_at = Column(DateTime(timezone=True), nullable=True)
    locked_reason = Column(String(255), nullable=False, default="")

    # Approval workflow
    approved_by_id = Column(Integer, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approval_remarks = Column(String(500), nullable=False, default="")

    # Effective dates
    effective_from = Column(DateTime(timezone=True), nullable=True)
    effective_to = Column(DateTime(timezone=True), nullable=True)

    # Audit trail
    created_by_id = Column(Integer, nullable=False)
    updated_by_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Load server-generated timestamps on flush
    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        CheckConstraint('approved_total >= 0', name='ck_fee_structures_approved_total'),
        CheckConstraint('version >= 1', name='ck_fee_structures_version'),
        Index('ix_fee_structures_year_status', 'academic_year', 'status'),
    )

    def __repr__(self):
        return f"<FeeStructure(id={self.id}, code='{self.code}', v{self.version}, status='{self.status.value}', locked={self.is_locked})>"
