"""
Fee reporting tests.

Portfolio used throughout (net payable 50,000.00 each):
- 1001 CSE: 45 days past due, 10,000.00 paid by UPI
- 1002 ECE: 5 days past due, nothing paid
- 1003 CSE: due in 10 days, fully paid in cash
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from campus_fees.app.core.exceptions import FeeValidationError
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.domain.fees.reporting_service import FeeReportingService, collection_rate
from campus_fees.app.domain.fees.status_engine import utc_today
from campus_fees.app.models.fee_audit_log import FeeAuditLog
from campus_fees.app.models.fee_enums import AgingBucket, PaymentMode
from campus_fees.app.models.student_fee_ledger import StudentFeeLedger
from campus_fees.app.schemas.common import StudentRef
from campus_fees.app.schemas.ledger import LedgerCreateOptions
from campus_fees.app.schemas.receipt import PaymentCreate


@pytest.fixture
def portfolio(db_session, admin_actor, make_structure):
    async def _build():
        structure = await make_structure()
        service = FeeAccountingService(db_session)
        today = utc_today()

        def assign(student_id, name, department, due_in_days):
            student = StudentRef(id=student_id, name=name, roll_no=f"R{student_id}", department=department)
            return service.create_ledger(
                student, structure.id, LedgerCreateOptions(due_date=today + timedelta(days=due_in_days)), admin_actor
            )

        aarav = await assign(1001, "Aarav Sharma", "CSE", -45)
        diya = await assign(1002, "Diya Patel", "ECE", -5)
        kabir = await assign(1003, "Kabir Singh", "CSE", 10)

        upi, _ = await service.process_receipt(
            aarav.id, PaymentCreate(amount=1000000, payment_mode=PaymentMode.UPI), admin_actor
        )
        await service.process_receipt(
            kabir.id, PaymentCreate(amount=5000000, payment_mode=PaymentMode.CASH), admin_actor
        )
        return {"aarav": aarav.id, "diya": diya.id, "kabir": kabir.id, "upi_receipt": upi.id}
    return _build


def test_collection_rate_rounding():
    assert collection_rate(1, 3) == 33.33
    assert collection_rate(500, 0) == 0.0


async def test_dashboard_totals(db_session, portfolio):
    await portfolio()

    dashboard = await FeeReportingService(db_session).get_dashboard()

    assert dashboard.total_students == 3
    assert dashboard.ledger_count == 3
    assert dashboard.total_net_payable == 15000000
    assert dashboard.total_collected == 6000000
    assert dashboard.total_outstanding == 9000000
    assert dashboard.collection_rate == 40.0
    assert dashboard.status_counts == {"UNPAID": 0, "PARTIALLY_PAID": 0, "PAID": 1, "OVERDUE": 2}
    assert dashboard.overdue_count == 2
    assert dashboard.overdue_amount == 9000000
    assert dashboard.today_collection == 6000000
    assert dashboard.today_receipt_count == 2


async def test_dashboard_for_unknown_year_is_empty(db_session, portfolio):
    await portfolio()

    dashboard = await FeeReportingService(db_session).get_dashboard("2031-32")

    assert dashboard.ledger_count == 0
    assert dashboard.collection_rate == 0.0


async def test_aging_report_lists_every_bucket(db_session, admin_actor, portfolio):
    await portfolio()

    report = await FeeReportingService(db_session).get_aging_report(actor=admin_actor)

    assert [(item.bucket, item.count, item.outstanding) for item in report.buckets] == [
        (AgingBucket.CURRENT, 0, 0),
        (AgingBucket.DAYS_1_30, 1, 5000000),
        (AgingBucket.DAYS_31_60, 1, 4000000),
        (AgingBucket.DAYS_60_PLUS, 0, 0),
    ]
    assert report.total_outstanding == 9000000

    entry = (await db_session.execute(
        select(FeeAuditLog).where(FeeAuditLog.action == "REPORT_GENERATED")
    )).scalar_one()
    assert entry.report_type == "AGING"


async def test_department_summary(db_session, portfolio):
    await portfolio()

    summary = await FeeReportingService(db_session).get_department_summary()

    assert [(row.department, row.student_count, row.total_collected, row.collection_rate) for row in summary] == [
        ("CSE", 2, 6000000, 60.0),
        ("ECE", 1, 0, 0.0),
    ]


async def test_defaulters_largest_debt_first(db_session, portfolio):
    ids = await portfolio()
    reports = FeeReportingService(db_session)

    defaulters = await reports.get_defaulters()
    assert [item.ledger_id for item in defaulters] == [ids["diya"], ids["aarav"]]
    assert defaulters[1].overdue_days == 45

    older = await reports.get_defaulters(aging_bucket=AgingBucket.DAYS_31_60)
    assert [item.ledger_id for item in older] == [ids["aarav"]]

    large = await reports.get_defaulters(min_amount=4500000)
    assert [item.student_id for item in large] == [1002]


async def test_collection_summary_nets_out_reversals(db_session, admin_actor, portfolio):
    ids = await portfolio()
    await FeeAccountingService(db_session).reverse_receipt(ids["upi_receipt"], "Failed UPI settlement", admin_actor)

    summary = await FeeReportingService(db_session).get_collection_summary()

    assert summary.from_date == summary.to_date == utc_today()
    assert summary.by_mode == {"UPI": 1000000, "CASH": 5000000}
    assert summary.grand_total == 6000000
    assert summary.reversal_total == 1000000
    assert summary.net_total == 5000000
    assert len(summary.daily) == 1
    assert summary.daily[0].receipt_count == 2


async def test_collection_summary_rejects_inverted_range(db_session):
    today = utc_today()
    with pytest.raises(FeeValidationError):
        await FeeReportingService(db_session).get_collection_summary(today, today - timedelta(days=1))


async def test_student_ledger_report(db_session, portfolio):
    await portfolio()

    report = await FeeReportingService(db_session).get_student_ledger_report(1001)

    assert report.summary.total_paid == 1000000
    assert report.summary.total_overdue == 4000000
    assert len(report.ledgers) == 1
    assert [receipt.amount for receipt in report.receipts] == [1000000]


async def test_integrity_check_flags_journal_mismatch(db_session, portfolio):
    ids = await portfolio()
    reports = FeeReportingService(db_session)

    clean = await reports.check_ledger_integrity()
    assert clean.checked_count == 3
    assert clean.is_consistent is True

    # Simulate a write that bypassed the receipt journal
    await db_session.execute(
        update(StudentFeeLedger)
        .where(StudentFeeLedger.id == ids["diya"])
        .values(total_paid=1000, outstanding_balance=StudentFeeLedger.net_payable - 1000)
    )
    await db_session.commit()

    report = await reports.check_ledger_integrity()
    assert report.is_consistent is False
    assert [(issue.ledger_id, issue.expected, issue.actual) for issue in report.issues] == [(ids["diya"], 0, 1000)]
