"""
Fee receipt repository.

The only write paths for an existing receipt are mark_reversed and
mark_verified; save() rejects anything else.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.exceptions import ImmutableRecordError
from campus_fees.app.models.fee_enums import ReceiptType, PaymentMode
from campus_fees.app.models.fee_receipt import FeeReceipt
from campus_fees.app.repositories.base import BaseRepository

# Flags that may only ever be switched on
ONE_WAY_FLAGS = ("is_reversed", "is_verified")


def day_bounds(from_date: date, to_date: date) -> Tuple[datetime, datetime]:
    """UTC [start, end) covering whole days from_date..to_date."""
    start = datetime.combine(from_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(to_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end


class ReceiptRepository(BaseRepository[FeeReceipt]):
    resource_name = "Fee receipt"

    def __init__(self, db: AsyncSession):
        super().__init__(FeeReceipt, db)

    async def get_for_update(self, receipt_id: int) -> Optional[FeeReceipt]:
        result = await self.db.execute(
            select(FeeReceipt)
            .where(FeeReceipt.id == receipt_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_number(self, receipt_number: str) -> Optional[FeeReceipt]:
        result = await self.db.execute(
            select(FeeReceipt)
            .where(FeeReceipt.receipt_number == receipt_number)
            .order_by(FeeReceipt.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_ledger(self, ledger_id: int) -> List[FeeReceipt]:
        result = await self.db.execute(
            select(FeeReceipt)
            .where(FeeReceipt.ledger_id == ledger_id)
            .order_by(FeeReceipt.receipt_date, FeeReceipt.id)
        )
        return list(result.scalars().all())

    async def list_for_student(self, student_id: int) -> List[FeeReceipt]:
        result = await self.db.execute(
            select(FeeReceipt)
            .where(FeeReceipt.student_id == student_id)
            .order_by(FeeReceipt.receipt_date.desc(), FeeReceipt.id.desc())
        )
        return list(result.scalars().all())

    async def list_between(self, from_date: date, to_date: date) -> List[FeeReceipt]:
        start, end = day_bounds(from_date, to_date)
        result = await self.db.execute(
            select(FeeReceipt)
            .where(FeeReceipt.receipt_date >= start, FeeReceipt.receipt_date < end)
            .order_by(FeeReceipt.receipt_date, FeeReceipt.id)
        )
        return list(result.scalars().all())

    async def list(
        self,
        student_id: Optional[int] = None,
        ledger_id: Optional[int] = None,
        payment_mode: Optional[PaymentMode] = None,
        receipt_type: Optional[ReceiptType] = None,
        is_reversed: Optional[bool] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[FeeReceipt], int]:
        query = select(FeeReceipt)
        if student_id is not None:
            query = query.where(FeeReceipt.student_id == student_id)
        if ledger_id is not None:
            query = query.where(FeeReceipt.ledger_id == ledger_id)
        if payment_mode:
            query = query.where(FeeReceipt.payment_mode == payment_mode)
        if receipt_type:
            query = query.where(FeeReceipt.receipt_type == receipt_type)
        if is_reversed is not None:
            query = query.where(FeeReceipt.is_reversed == is_reversed)
        if from_date or to_date:
            start, end = day_bounds(from_date or date.min, to_date or (date.max - timedelta(days=1)))
            query = query.where(FeeReceipt.receipt_date >= start, FeeReceipt.receipt_date < end)

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar_one()

        query = query.order_by(FeeReceipt.receipt_date.desc(), FeeReceipt.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def count_reversals_of(self, receipt_id: int) -> int:
        result = await self.db.execute(
            select(func.count(FeeReceipt.id)).where(FeeReceipt.reversal_of_id == receipt_id)
        )
        return result.scalar_one()

    async def mark_reversed(self, receipt: FeeReceipt, reversal: FeeReceipt, reason: str, at: datetime) -> FeeReceipt:
        receipt.is_reversed = True
        receipt.reversed_by_id = reversal.id
        receipt.reversed_receipt_number = reversal.receipt_number
        receipt.reversed_at = at
        receipt.reversal_reason = reason
        return await self.save(receipt)

    async def mark_verified(self, receipt: FeeReceipt, verified_by_id: Optional[int], at: datetime) -> FeeReceipt:
        receipt.is_verified = True
        receipt.verified_by_id = verified_by_id
        receipt.verified_at = at
        return await self.save(receipt)

    async def save(self, receipt: FeeReceipt) -> FeeReceipt:
        """Flush receipt changes, rejecting any edit outside the mutable fields."""
        changed = self.changed_fields(receipt)
        illegal = sorted(changed - FeeReceipt.MUTABLE_FIELDS)
        if illegal:
            raise ImmutableRecordError(
                "Receipts are immutable; issue a reversal instead",
                details={"receipt_number": receipt.receipt_number, "fields": illegal}
            )
        for flag in ONE_WAY_FLAGS:
            if flag in changed and self.previous_value(receipt, flag) and not getattr(receipt, flag):
                raise ImmutableRecordError(
                    f"Receipt flag {flag} cannot be cleared",
                    details={"receipt_number": receipt.receipt_number}
                )

        await self.db.flush()
        return receipt
