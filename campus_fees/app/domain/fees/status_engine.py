"""
Ledger Status Engine (Domain Logic).

Pure functions deriving a ledger's computed fields from its totals and
due date. No I/O; every mutation of a ledger ends with refresh_ledger_state.
"""

from datetime import date, datetime, timezone
from typing import Optional

from campus_fees.app.models.fee_enums import FeeStatus, AgingBucket
from campus_fees.app.models.student_fee_ledger import StudentFeeLedger


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def compute_fee_status(total_paid: int, net_payable: int, due_date: date, today: date) -> FeeStatus:
    """
    PAID once fully paid; otherwise OVERDUE past the due date, else UNPAID
    or PARTIALLY_PAID depending on whether anything was paid.
    """
    if total_paid >= net_payable:
        return FeeStatus.PAID
    past_due = today > due_date
    if total_paid == 0:
        return FeeStatus.OVERDUE if past_due else FeeStatus.UNPAID
    return FeeStatus.OVERDUE if past_due else FeeStatus.PARTIALLY_PAID


def compute_overdue_days(due_date: date, today: date) -> int:
    return max((today - due_date).days, 0)


def compute_aging_bucket(due_date: date, today: date) -> AgingBucket:
    if due_date >= today:
        return AgingBucket.CURRENT
    days = (today - due_date).days
    if days <= 30:
        return AgingBucket.DAYS_1_30
    if days <= 60:
        return AgingBucket.DAYS_31_60
    return AgingBucket.DAYS_60_PLUS


def refresh_ledger_state(ledger: StudentFeeLedger, today: Optional[date] = None) -> bool:
    """
    Recompute outstanding balance, status and overdue fields in place.

    Returns True when the ledger became overdue in this refresh.
    """
    today = today or utc_today()
    was_overdue = bool(ledger.is_overdue)

    ledger.total_paid = max(ledger.total_paid, 0)
    ledger.outstanding_balance = ledger.net_payable - ledger.total_paid
    ledger.fee_status = compute_fee_status(ledger.total_paid, ledger.net_payable, ledger.due_date, today)

    if ledger.fee_status == FeeStatus.PAID or ledger.is_closed:
        ledger.is_overdue = False
        ledger.overdue_days = 0
        ledger.overdue_since = None
        ledger.aging_bucket = AgingBucket.CURRENT
        return False

    ledger.is_overdue = today > ledger.due_date
    ledger.overdue_days = compute_overdue_days(ledger.due_date, today)
    ledger.aging_bucket = compute_aging_bucket(ledger.due_date, today)
    if ledger.is_overdue:
        if ledger.overdue_since is None:
            ledger.overdue_since = today
    else:
        ledger.overdue_since = None

    return ledger.is_overdue and not was_overdue
