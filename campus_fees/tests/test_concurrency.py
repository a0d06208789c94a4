"""
Concurrency Tests.

Validates that races between writers end in a retry or a clean rejection,
never in a duplicate receipt number, ledger or reversal.
"""

from datetime import date

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from campus_fees.app.core.exceptions import FeeStateError, SequenceConflictError, TransactionFailedError
from campus_fees.app.domain.fees import receipt_numbers
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.domain.fees.receipt_numbers import next_sequence_value
from campus_fees.app.domain.fees.status_engine import utc_today
from campus_fees.app.models.fee_enums import PaymentMode, ReceiptType
from campus_fees.app.models.fee_receipt import FeeReceipt
from campus_fees.app.repositories.ledger_repository import LedgerRepository
from campus_fees.app.schemas.receipt import PaymentCreate

ACCOUNTING = "campus_fees.app.domain.fees.accounting_service.next_receipt_number"


def cheque(amount: int) -> PaymentCreate:
    return PaymentCreate(amount=amount, payment_mode=PaymentMode.CHEQUE, reference_number="CHQ-004512")


def receipt_row(ledger_id: int, number: str, receipt_type=ReceiptType.PAYMENT, reversal_of_id=None) -> FeeReceipt:
    return FeeReceipt(
        receipt_number=number,
        student_id=1001,
        ledger_id=ledger_id,
        academic_year="2024-25",
        semester=1,
        amount=100,
        payment_mode=PaymentMode.CASH,
        allocations=[],
        previous_balance=5000000,
        new_balance=4999900,
        total_paid_before=0,
        total_paid_after=100,
        receipt_type=receipt_type,
        reversal_of_id=reversal_of_id,
        created_by_id=1,
        created_by_role="admin",
    )


async def test_daily_sequence_is_per_day(db_session):
    first_day, second_day = date(2024, 7, 1), date(2024, 7, 2)

    assert await next_sequence_value(db_session, "RCP", first_day) == 1
    assert await next_sequence_value(db_session, "RCP", first_day) == 2
    assert await next_sequence_value(db_session, "RCP", second_day) == 1
    assert await next_sequence_value(db_session, "REV", first_day) == 1


async def test_sequence_conflict_is_retried(db_session, admin_actor, make_ledger, mocker):
    ledger = await make_ledger()
    ledger_id = ledger.id
    calls = []

    async def flaky(db, prefix, on):
        calls.append(prefix)
        if len(calls) == 1:
            raise SequenceConflictError("counter opened concurrently")
        return await receipt_numbers.next_receipt_number(db, prefix, on)

    mocker.patch(ACCOUNTING, new=flaky)

    receipt, ledger = await FeeAccountingService(db_session).process_receipt(ledger_id, cheque(2500000), admin_actor)

    assert len(calls) == 2
    assert receipt.receipt_number == f"RCP-{utc_today().strftime('%Y%m%d')}-0001"
    assert ledger.total_paid == 2500000
    assert ledger.receipt_count == 1


async def test_exhausted_retries_leave_nothing_behind(db_session, admin_actor, make_ledger, mocker):
    ledger = await make_ledger()
    ledger_id = ledger.id
    mocker.patch(ACCOUNTING, side_effect=SequenceConflictError("counter opened concurrently"))
    service = FeeAccountingService(db_session)

    with pytest.raises(TransactionFailedError):
        await service.process_receipt(ledger_id, cheque(1000), admin_actor)

    receipts = (await db_session.execute(select(func.count(FeeReceipt.id)))).scalar_one()
    assert receipts == 0
    reloaded = await service.get_ledger(ledger_id)
    assert reloaded.total_paid == 0
    assert reloaded.receipt_count == 0


async def test_duplicate_ledger_caught_by_unique_constraint(db_session, admin_actor, make_structure, student, mocker):
    structure = await make_structure()
    structure_id = structure.id
    service = FeeAccountingService(db_session)
    await service.create_ledger(student, structure_id, None, admin_actor)

    # A second writer that passed the pre-check before the first committed
    mocker.patch.object(LedgerRepository, "find_for_period", return_value=None)

    with pytest.raises(FeeStateError, match="already exists"):
        await service.create_ledger(student, structure_id, None, admin_actor)

    ledgers, total = await service.list_ledgers(student_id=student.id)
    assert total == 1


async def test_second_reversal_row_rejected_by_database(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    ledger_id = ledger.id
    service = FeeAccountingService(db_session)
    receipt, _ = await service.process_receipt(ledger_id, cheque(1000), admin_actor)
    receipt_id = receipt.id
    await service.reverse_receipt(receipt_id, "Cheque bounced", admin_actor)

    db_session.add(receipt_row(ledger_id, "REV-20240701-R9", ReceiptType.REVERSAL, reversal_of_id=receipt_id))
    with pytest.raises(IntegrityError):
        await db_session.flush()
    await db_session.rollback()


async def test_payment_numbers_unique_but_reversal_numbers_may_repeat(db_session, make_ledger):
    ledger = await make_ledger()
    ledger_id = ledger.id

    db_session.add(receipt_row(ledger_id, "REV-20240701-R1", ReceiptType.REVERSAL))
    db_session.add(receipt_row(ledger_id, "REV-20240701-R1", ReceiptType.REVERSAL))
    await db_session.flush()

    db_session.add(receipt_row(ledger_id, "RCP-20240701-0001"))
    await db_session.flush()
    db_session.add(receipt_row(ledger_id, "RCP-20240701-0001"))
    with pytest.raises(IntegrityError):
        await db_session.flush()
    await db_session.rollback()
