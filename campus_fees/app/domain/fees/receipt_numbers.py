"""
Receipt numbering.

Payment numbers come from a per-day counter row that is locked for the
rest of the issuing transaction.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.app.core.exceptions import SequenceConflictError
from campus_fees.app.models.receipt_sequence import ReceiptSequence


def format_receipt_number(prefix: str, on: date, sequence: int) -> str:
    """RCP-YYYYMMDD-NNNN"""
    return f"{prefix}-{on.strftime('%Y%m%d')}-{sequence:04d}"


def format_reversal_number(prefix: str, on: date, reversal_count: int) -> str:
    """REV-YYYYMMDD-R{n}, n being the 1-based reversal count of the original."""
    return f"{prefix}-{on.strftime('%Y%m%d')}-R{reversal_count}"


async def next_sequence_value(db: AsyncSession, prefix: str, on: date) -> int:
    """
    Draw the next value of the (prefix, day) counter.

    The first draw of a day inserts the counter row. If a concurrent
    transaction inserted it first, SequenceConflictError is raised and the
    caller is expected to roll back and retry.
    """
    result = await db.execute(
        select(ReceiptSequence)
        .where(ReceiptSequence.prefix == prefix, ReceiptSequence.sequence_date == on)
        .with_for_update()
    )
    counter = result.scalar_one_or_none()

    if counter is None:
        counter = ReceiptSequence(prefix=prefix, sequence_date=on, last_value=0)
        db.add(counter)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise SequenceConflictError(f"Receipt counter for {prefix}/{on} was opened concurrently") from exc

    counter.last_value += 1
    await db.flush()
    return counter.last_value


async def next_receipt_number(db: AsyncSession, prefix: str, on: date) -> str:
    return format_receipt_number(prefix, on, await next_sequence_value(db, prefix, on))
