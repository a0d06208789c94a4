"""
Database seeding script for demo fee data.

Creates one active fee structure, assigns it to a handful of students and
records a first payment, so the dashboard and reports have something to show.

Run after the database is set up:
    python -m campus_fees.seed_fee_data
"""

import asyncio

from campus_fees.app.db.session import AsyncSessionLocal, engine, Base
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.domain.fees.structure_service import FeeStructureService
from campus_fees.app.models.fee_enums import ActorRole, PaymentMode
from campus_fees.app.schemas.common import Actor, StudentRef
from campus_fees.app.schemas.fee_structure import FeeStructureCreate, FeeHeadItem
from campus_fees.app.schemas.ledger import LedgerCreateOptions
from campus_fees.app.schemas.receipt import PaymentCreate
from campus_fees.app.repositories.fee_structure_repository import FeeStructureRepository

SEED_CODE = "FS-202425-BTECH-CSE-S1"

DEMO_STUDENTS = [
    StudentRef(id=1001, name="Aarav Sharma", roll_no="CSE2401", department="CSE", course="BTECH"),
    StudentRef(id=1002, name="Diya Patel", roll_no="CSE2402", department="CSE", course="BTECH"),
    StudentRef(id=1003, name="Kabir Singh", roll_no="CSE2403", department="CSE", course="BTECH"),
]


async def seed_fee_data():
    """
    Seed demo fee data.

    Creates:
    - 1 active fee structure (locked on first assignment)
    - 3 student ledgers
    - 1 payment receipt
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    admin = Actor(id=1, name="Fee Office Admin", role=ActorRole.ADMIN)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting fee data seeding...")

        if await FeeStructureRepository(db).get_by_code(SEED_CODE):
            print("ℹ️  Demo fee structure already exists, skipping seeding")
            return

        structures = FeeStructureService(db)
        structure = await structures.create_structure(
            FeeStructureCreate(
                name="B.Tech CSE Semester 1",
                academic_year="2024-25",
                semester=1,
                course_code="BTECH",
                department_code="CSE",
                fee_heads=[
                    FeeHeadItem(head_code="TUITION", head_name="Tuition Fee", amount=4500000),
                    FeeHeadItem(head_code="EXAMINATION", head_name="Examination Fee", amount=250000),
                    FeeHeadItem(head_code="LIBRARY", head_name="Library Fee", amount=150000),
                    FeeHeadItem(head_code="HOSTEL", head_name="Hostel Fee", amount=6000000, is_optional=True),
                ],
            ),
            admin,
        )
        await structures.approve(structure.id, "Approved by fee committee", admin)
        await structures.activate(structure.id, admin)
        print(f"✅ Created fee structure {structure.code} ({structure.approved_total} minor units)")

        accounting = FeeAccountingService(db)
        result = await accounting.bulk_assign_structure(
            DEMO_STUDENTS,
            structure.id,
            LedgerCreateOptions(optional_heads=["HOSTEL"]),
            admin,
        )
        print(f"✅ Created {len(result['success'])} student ledgers")

        first = result["success"][0]["ledger_id"]
        receipt, ledger = await accounting.process_receipt(
            first,
            PaymentCreate(amount=2000000, payment_mode=PaymentMode.UPI, reference_number="UPI-DEMO-0001"),
            admin,
        )
        print(f"✅ Issued receipt {receipt.receipt_number}, outstanding {ledger.outstanding_balance}")

        print("\n🎉 Fee data seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_fee_data())
