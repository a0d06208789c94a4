"""
Receipt processing & reversal tests.

Amounts are minor units: a 50,000.00 ledger has net_payable 5000000.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, func

from campus_fees.app.core.exceptions import FeeStateError, FeeValidationError, ImmutableRecordError
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.domain.fees.status_engine import utc_today
from campus_fees.app.models.fee_audit_log import FeeAuditLog
from campus_fees.app.models.fee_enums import FeeStatus, AgingBucket, PaymentMode, ReceiptType, AuditStatus
from campus_fees.app.models.fee_receipt import FeeReceipt
from campus_fees.app.repositories.receipt_repository import ReceiptRepository
from campus_fees.app.schemas.receipt import PaymentCreate, AllocationItem


def cash(amount: int, **kwargs) -> PaymentCreate:
    return PaymentCreate(amount=amount, payment_mode=PaymentMode.CASH, **kwargs)


def today_stamp() -> str:
    return utc_today().strftime("%Y%m%d")


async def test_new_ledger_is_unpaid_and_current(make_ledger):
    ledger = await make_ledger(due_date=utc_today() + timedelta(days=15))

    assert ledger.net_payable == 5000000
    assert ledger.outstanding_balance == 5000000
    assert ledger.fee_status == FeeStatus.UNPAID
    assert ledger.aging_bucket == AgingBucket.CURRENT


async def test_partial_then_full_payment(db_session, admin_actor, make_ledger):
    ledger = await make_ledger(due_date=utc_today() + timedelta(days=15))
    ledger_id = ledger.id
    service = FeeAccountingService(db_session)

    first, ledger = await service.process_receipt(ledger_id, cash(2000000), admin_actor)
    assert first.receipt_number == f"RCP-{today_stamp()}-0001"
    assert first.receipt_type == ReceiptType.PAYMENT
    assert (first.previous_balance, first.new_balance) == (5000000, 3000000)
    assert (first.total_paid_before, first.total_paid_after) == (0, 2000000)
    assert ledger.total_paid == 2000000
    assert ledger.outstanding_balance == 3000000
    assert ledger.fee_status == FeeStatus.PARTIALLY_PAID
    assert ledger.receipt_count == 1

    second, ledger = await service.process_receipt(ledger_id, cash(3000000), admin_actor)
    assert second.receipt_number == f"RCP-{today_stamp()}-0002"
    assert ledger.total_paid == 5000000
    assert ledger.outstanding_balance == 0
    assert ledger.fee_status == FeeStatus.PAID

    with pytest.raises(FeeStateError, match="already fully paid"):
        await service.process_receipt(ledger_id, cash(1), admin_actor)


async def test_overpayment_and_non_positive_amounts_rejected(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    ledger_id = ledger.id
    service = FeeAccountingService(db_session)

    with pytest.raises(FeeValidationError, match="exceeds"):
        await service.process_receipt(ledger_id, cash(5000001), admin_actor)
    with pytest.raises(FeeValidationError):
        await service.process_receipt(ledger_id, cash(0), admin_actor)
    with pytest.raises(FeeValidationError):
        await service.process_receipt(ledger_id, cash(-100), admin_actor)

    receipts = (await db_session.execute(select(func.count(FeeReceipt.id)))).scalar_one()
    assert receipts == 0

    failures = (await db_session.execute(
        select(FeeAuditLog).where(FeeAuditLog.status == AuditStatus.FAILED)
    )).scalars().all()
    assert len(failures) == 3
    assert all(entry.action == "RECEIPT_CREATED" for entry in failures)


async def test_allocations_must_match_ledger_heads(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    ledger_id = ledger.id
    service = FeeAccountingService(db_session)

    with pytest.raises(FeeValidationError, match="not part of this ledger"):
        await service.process_receipt(
            ledger_id,
            cash(1000, allocations=[AllocationItem(head_code="TRANSPORT", allocated_amount=1000)]),
            admin_actor,
        )
    with pytest.raises(FeeValidationError, match="exceed"):
        await service.process_receipt(
            ledger_id,
            cash(1000, allocations=[AllocationItem(head_code="TUITION", allocated_amount=1001)]),
            admin_actor,
        )

    receipt, _ = await service.process_receipt(
        ledger_id,
        cash(1000, allocations=[AllocationItem(head_code="tuition", allocated_amount=1000)]),
        admin_actor,
    )
    assert receipt.allocations == [{"head_code": "TUITION", "head_name": "Tuition Fee", "allocated_amount": 1000}]


async def test_reversal_restores_balance(db_session, admin_actor, make_ledger):
    ledger = await make_ledger(due_date=utc_today() + timedelta(days=15))
    ledger_id = ledger.id
    service = FeeAccountingService(db_session)

    first, _ = await service.process_receipt(ledger_id, cash(2000000), admin_actor)
    await service.process_receipt(ledger_id, cash(3000000), admin_actor)

    reversal, original, ledger = await service.reverse_receipt(first.id, "Cheque bounced", admin_actor)

    assert reversal.receipt_number == f"REV-{today_stamp()}-R1"
    assert reversal.receipt_type == ReceiptType.REVERSAL
    assert reversal.reversal_of_id == original.id
    assert reversal.amount == 2000000
    assert reversal.effective_amount == -2000000
    assert original.is_reversed is True
    assert original.reversed_by_id == reversal.id
    assert original.reversed_receipt_number == reversal.receipt_number
    assert original.effective_amount == 0
    assert original.display_status == "REVERSED"
    assert ledger.total_paid == 3000000
    assert ledger.outstanding_balance == 2000000
    assert ledger.fee_status == FeeStatus.PARTIALLY_PAID


async def test_payment_then_reversal_round_trip(db_session, admin_actor, make_ledger):
    ledger = await make_ledger(due_date=utc_today() - timedelta(days=5))
    ledger_id = ledger.id
    before = (ledger.total_paid, ledger.outstanding_balance, ledger.fee_status)
    service = FeeAccountingService(db_session)

    receipt, _ = await service.process_receipt(ledger_id, cash(1234567), admin_actor)
    _, _, ledger = await service.reverse_receipt(receipt.id, "Entered twice", admin_actor)

    assert (ledger.total_paid, ledger.outstanding_balance, ledger.fee_status) == before


async def test_receipt_can_be_reversed_only_once(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    service = FeeAccountingService(db_session)
    receipt, _ = await service.process_receipt(ledger.id, cash(1000), admin_actor)
    receipt_id = receipt.id

    reversal, _, _ = await service.reverse_receipt(receipt_id, "Wrong student", admin_actor)
    reversal_id = reversal.id

    with pytest.raises(FeeStateError, match="already been reversed"):
        await service.reverse_receipt(receipt_id, "Again", admin_actor)
    with pytest.raises(FeeStateError, match="cannot be reversed"):
        await service.reverse_receipt(reversal_id, "Reverse the reversal", admin_actor)

    count = (await db_session.execute(
        select(func.count(FeeReceipt.id)).where(FeeReceipt.reversal_of_id == receipt_id)
    )).scalar_one()
    assert count == 1


async def test_reversal_requires_reason(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    service = FeeAccountingService(db_session)
    receipt, _ = await service.process_receipt(ledger.id, cash(1000), admin_actor)
    receipt_id = receipt.id

    with pytest.raises(FeeValidationError):
        await service.reverse_receipt(receipt_id, "   ", admin_actor)

    await db_session.refresh(receipt)
    assert receipt.is_reversed is False


async def test_closed_ledger_rejects_payments_and_reversals(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    ledger_id = ledger.id
    service = FeeAccountingService(db_session)
    receipt, _ = await service.process_receipt(ledger_id, cash(5000000), admin_actor)
    receipt_id = receipt.id
    await service.close_ledger(ledger_id, "Settled", admin_actor)

    with pytest.raises(FeeStateError):
        await service.reverse_receipt(receipt_id, "Too late", admin_actor)
    with pytest.raises(FeeStateError):
        await service.process_receipt(ledger_id, cash(1), admin_actor)


async def test_receipt_financial_fields_are_immutable(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    receipt, _ = await FeeAccountingService(db_session).process_receipt(ledger.id, cash(1000), admin_actor)
    repository = ReceiptRepository(db_session)

    with pytest.raises(ImmutableRecordError):
        await repository.delete(receipt)

    receipt.amount = 1
    with pytest.raises(ImmutableRecordError):
        await repository.save(receipt)
    await db_session.rollback()

    await db_session.refresh(receipt)
    assert receipt.amount == 1000


async def test_verification_flag_is_one_way(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    service = FeeAccountingService(db_session)
    receipt, _ = await service.process_receipt(ledger.id, cash(1000), admin_actor)
    receipt_id = receipt.id

    verified = await service.verify_receipt(receipt_id, admin_actor)
    assert verified.is_verified is True
    assert verified.verified_by_id == admin_actor.id
    assert verified.display_status == "VERIFIED"

    verified.is_verified = False
    with pytest.raises(ImmutableRecordError):
        await ReceiptRepository(db_session).save(verified)
    await db_session.rollback()

    with pytest.raises(FeeStateError, match="already verified"):
        await service.verify_receipt(receipt_id, admin_actor)


async def test_ledger_balance_recomputed_from_journal(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    ledger_id = ledger.id
    service = FeeAccountingService(db_session)
    first, _ = await service.process_receipt(ledger_id, cash(1000000), admin_actor)
    await service.process_receipt(ledger_id, cash(500000), admin_actor)
    await service.reverse_receipt(first.id, "Duplicate entry", admin_actor)

    balance = await service.compute_ledger_balance(ledger_id)

    assert balance["total_paid"] == 500000
    assert balance["outstanding_balance"] == 4500000
    assert balance["payment_count"] == 1
    assert balance["reversal_count"] == 1
    assert balance["fee_status"] == FeeStatus.PARTIALLY_PAID


async def test_receipt_lookup_by_number(db_session, admin_actor, make_ledger):
    ledger = await make_ledger()
    service = FeeAccountingService(db_session)
    receipt, _ = await service.process_receipt(ledger.id, cash(1000), admin_actor)

    found = await service.get_receipt_by_number(receipt.receipt_number.lower())
    assert found.id == receipt.id

    today = await service.list_today_receipts()
    assert [r.id for r in today] == [receipt.id]
    assert await service.list_today_receipts(PaymentMode.UPI) == []
