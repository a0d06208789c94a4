"""
Fee reporting schemas.

All amounts are minor currency units; rates are percentages rounded to 2 places.
"""

from pydantic import BaseModel
from datetime import date
from typing import Optional, List, Dict
from campus_fees.app.models.fee_enums import AgingBucket
from campus_fees.app.schemas.ledger import LedgerResponse, StudentBalanceSummary
from campus_fees.app.schemas.receipt import ReceiptResponse


class DashboardResponse(BaseModel):
    academic_year: Optional[str]
    currency: str
    total_students: int
    ledger_count: int
    total_net_payable: int
    total_collected: int
    total_outstanding: int
    collection_rate: float
    status_counts: Dict[str, int]
    overdue_count: int
    overdue_amount: int
    today_collection: int
    today_receipt_count: int


class AgingBucketSummary(BaseModel):
    bucket: AgingBucket
    count: int
    outstanding: int


class AgingReport(BaseModel):
    academic_year: Optional[str]
    buckets: List[AgingBucketSummary]
    total_outstanding: int


class DepartmentSummary(BaseModel):
    department: str
    student_count: int
    total_net_payable: int
    total_collected: int
    total_outstanding: int
    collection_rate: float


class DefaulterItem(BaseModel):
    ledger_id: int
    student_id: int
    student_name: str
    student_roll_no: str
    department: str
    academic_year: str
    semester: int
    due_date: date
    outstanding_balance: int
    overdue_days: int
    aging_bucket: AgingBucket


class DailyCollection(BaseModel):
    collection_date: date
    by_mode: Dict[str, int]
    total: int
    receipt_count: int


class CollectionSummary(BaseModel):
    from_date: date
    to_date: date
    daily: List[DailyCollection]
    by_mode: Dict[str, int]
    grand_total: int
    reversal_total: int
    net_total: int


class StudentLedgerReport(BaseModel):
    student_id: int
    summary: StudentBalanceSummary
    ledgers: List[LedgerResponse]
    receipts: List[ReceiptResponse]


class IntegrityIssue(BaseModel):
    ledger_id: int
    issue: str
    expected: int
    actual: int


class IntegrityReport(BaseModel):
    checked_count: int
    is_consistent: bool
    issues: List[IntegrityIssue]
