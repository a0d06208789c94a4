"""
Student fee ledger repository.
"""

from typing import Optional, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.exceptions import FeeStateError, ImmutableRecordError
from campus_fees.app.models.fee_enums import FeeStatus, AgingBucket
from campus_fees.app.models.student_fee_ledger import StudentFeeLedger
from campus_fees.app.repositories.base import BaseRepository


class LedgerRepository(BaseRepository[StudentFeeLedger]):
    resource_name = "Fee ledger"

    def __init__(self, db: AsyncSession):
        super().__init__(StudentFeeLedger, db)

    async def get_for_update(self, ledger_id: int) -> Optional[StudentFeeLedger]:
        """Load a ledger holding a row lock until the transaction ends."""
        result = await self.db.execute(
            select(StudentFeeLedger)
            .where(StudentFeeLedger.id == ledger_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_for_period(self, student_id: int, academic_year: str, semester: int) -> Optional[StudentFeeLedger]:
        result = await self.db.execute(
            select(StudentFeeLedger).where(
                StudentFeeLedger.student_id == student_id,
                StudentFeeLedger.academic_year == academic_year,
                StudentFeeLedger.semester == semester,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_student(self, student_id: int) -> List[StudentFeeLedger]:
        result = await self.db.execute(
            select(StudentFeeLedger)
            .where(StudentFeeLedger.student_id == student_id)
            .order_by(StudentFeeLedger.academic_year.desc(), StudentFeeLedger.semester.desc())
        )
        return list(result.scalars().all())

    async def list(
        self,
        student_id: Optional[int] = None,
        academic_year: Optional[str] = None,
        semester: Optional[int] = None,
        department: Optional[str] = None,
        fee_status: Optional[FeeStatus] = None,
        aging_bucket: Optional[AgingBucket] = None,
        is_overdue: Optional[bool] = None,
        is_closed: Optional[bool] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[StudentFeeLedger], int]:
        query = select(StudentFeeLedger)
        if student_id is not None:
            query = query.where(StudentFeeLedger.student_id == student_id)
        if academic_year:
            query = query.where(StudentFeeLedger.academic_year == academic_year)
        if semester is not None:
            query = query.where(StudentFeeLedger.semester == semester)
        if department:
            query = query.where(StudentFeeLedger.department == department)
        if fee_status:
            query = query.where(StudentFeeLedger.fee_status == fee_status)
        if aging_bucket:
            query = query.where(StudentFeeLedger.aging_bucket == aging_bucket)
        if is_overdue is not None:
            query = query.where(StudentFeeLedger.is_overdue == is_overdue)
        if is_closed is not None:
            query = query.where(StudentFeeLedger.is_closed == is_closed)

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar_one()

        query = query.order_by(StudentFeeLedger.created_at.desc(), StudentFeeLedger.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def list_open_unpaid(self) -> List[StudentFeeLedger]:
        """Active, open ledgers that still owe money."""
        result = await self.db.execute(
            select(StudentFeeLedger)
            .where(
                StudentFeeLedger.is_active.is_(True),
                StudentFeeLedger.is_closed.is_(False),
                StudentFeeLedger.fee_status != FeeStatus.PAID,
            )
            .order_by(StudentFeeLedger.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def academic_years(self) -> List[str]:
        result = await self.db.execute(
            select(StudentFeeLedger.academic_year)
            .distinct()
            .order_by(StudentFeeLedger.academic_year.desc())
        )
        return list(result.scalars().all())

    async def save(self, ledger: StudentFeeLedger) -> StudentFeeLedger:
        """
        Flush ledger changes.

        Only StudentFeeLedger.MUTABLE_FIELDS may change, and a closed ledger
        is frozen: it can neither be reopened nor edited.
        """
        changed = self.changed_fields(ledger)
        illegal = sorted(changed - StudentFeeLedger.MUTABLE_FIELDS)
        if illegal:
            raise ImmutableRecordError(
                "Ledger fee snapshot and period cannot be changed",
                details={"ledger_id": ledger.id, "fields": illegal}
            )
        if changed and self.previous_value(ledger, "is_closed"):
            raise ImmutableRecordError(
                "Closed ledgers cannot be modified",
                details={"ledger_id": ledger.id, "fields": sorted(changed)}
            )

        if ledger.outstanding_balance != ledger.net_payable - ledger.total_paid:
            raise FeeStateError(
                "Ledger balance does not reconcile",
                details={"ledger_id": ledger.id}
            )
        await self.db.flush()
        return ledger
