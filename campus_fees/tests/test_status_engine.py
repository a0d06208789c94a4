"""
Ledger status engine tests.

Pure functions, no database.
"""

from datetime import date, timedelta

import pytest

from campus_fees.app.domain.fees.receipt_numbers import format_receipt_number, format_reversal_number
from campus_fees.app.domain.fees.status_engine import (
    compute_fee_status,
    compute_aging_bucket,
    compute_overdue_days,
    refresh_ledger_state,
)
from campus_fees.app.models.fee_enums import FeeStatus, AgingBucket
from campus_fees.app.models.student_fee_ledger import StudentFeeLedger

TODAY = date(2024, 3, 1)


@pytest.mark.parametrize("total_paid, due_date, expected", [
    (0, TODAY, FeeStatus.UNPAID),
    (1000, TODAY, FeeStatus.PARTIALLY_PAID),
    (5000, TODAY, FeeStatus.PAID),
    (0, TODAY - timedelta(days=1), FeeStatus.OVERDUE),
    (1000, TODAY - timedelta(days=1), FeeStatus.OVERDUE),
    (5000, TODAY - timedelta(days=90), FeeStatus.PAID),
])
def test_compute_fee_status(total_paid, due_date, expected):
    assert compute_fee_status(total_paid, 5000, due_date, TODAY) == expected


@pytest.mark.parametrize("days_past_due, expected", [
    (-5, AgingBucket.CURRENT),
    (0, AgingBucket.CURRENT),
    (1, AgingBucket.DAYS_1_30),
    (30, AgingBucket.DAYS_1_30),
    (31, AgingBucket.DAYS_31_60),
    (60, AgingBucket.DAYS_31_60),
    (61, AgingBucket.DAYS_60_PLUS),
])
def test_aging_bucket_boundaries(days_past_due, expected):
    assert compute_aging_bucket(TODAY - timedelta(days=days_past_due), TODAY) == expected


def test_overdue_days_never_negative():
    assert compute_overdue_days(TODAY + timedelta(days=3), TODAY) == 0
    assert compute_overdue_days(TODAY - timedelta(days=3), TODAY) == 3


def make_ledger(total_paid=0, due_date=TODAY, is_closed=False, is_overdue=False):
    return StudentFeeLedger(
        net_payable=5000,
        total_paid=total_paid,
        due_date=due_date,
        is_closed=is_closed,
        is_overdue=is_overdue,
    )


def test_refresh_reports_newly_overdue_once():
    ledger = make_ledger(due_date=TODAY - timedelta(days=45))

    assert refresh_ledger_state(ledger, TODAY) is True
    assert ledger.is_overdue is True
    assert ledger.overdue_days == 45
    assert ledger.overdue_since == TODAY
    assert ledger.aging_bucket == AgingBucket.DAYS_31_60
    assert ledger.fee_status == FeeStatus.OVERDUE

    # A second refresh keeps the ledger overdue but does not report it again
    assert refresh_ledger_state(ledger, TODAY + timedelta(days=1)) is False
    assert ledger.overdue_since == TODAY
    assert ledger.overdue_days == 46


def test_refresh_paid_ledger_is_current_regardless_of_date():
    ledger = make_ledger(total_paid=5000, due_date=TODAY - timedelta(days=100), is_overdue=True)

    assert refresh_ledger_state(ledger, TODAY) is False
    assert ledger.outstanding_balance == 0
    assert ledger.fee_status == FeeStatus.PAID
    assert ledger.is_overdue is False
    assert ledger.overdue_days == 0
    assert ledger.overdue_since is None
    assert ledger.aging_bucket == AgingBucket.CURRENT


def test_refresh_keeps_balance_reconciled():
    ledger = make_ledger(total_paid=1200, due_date=TODAY + timedelta(days=10))

    refresh_ledger_state(ledger, TODAY)

    assert ledger.outstanding_balance == ledger.net_payable - ledger.total_paid == 3800
    assert ledger.fee_status == FeeStatus.PARTIALLY_PAID
    assert ledger.aging_bucket == AgingBucket.CURRENT


def test_receipt_number_formats():
    assert format_receipt_number("RCP", date(2024, 1, 15), 7) == "RCP-20240115-0007"
    assert format_reversal_number("REV", date(2024, 1, 15), 1) == "REV-20240115-R1"
