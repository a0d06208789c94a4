"""
Student Fee Ledger schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List
from campus_fees.app.models.fee_enums import FeeStatus, AgingBucket
from campus_fees.app.schemas.common import StudentRef


class InstallmentItem(BaseModel):
    installment_no: int = Field(..., ge=1)
    amount: int
    due_date: date
    description: str = ""


class LedgerCreateOptions(BaseModel):
    """Per-assignment choices layered over the fee structure."""
    semester: Optional[int] = Field(None, ge=1, le=8)
    concession_amount: int = 0
    concession_reason: str = Field("", max_length=255)
    due_date: Optional[date] = None
    installments: List[InstallmentItem] = []
    optional_heads: List[str] = Field([], description="Optional head codes the student opted into")


class LedgerCreate(BaseModel):
    """Schema for assigning a fee structure to one student."""
    student: StudentRef
    fee_structure_id: int
    options: LedgerCreateOptions = Field(default_factory=LedgerCreateOptions)


class BulkAssignRequest(BaseModel):
    """Schema for assigning a fee structure to many students."""
    students: List[StudentRef] = Field(..., min_length=1)
    fee_structure_id: int
    options: LedgerCreateOptions = Field(default_factory=LedgerCreateOptions)


class BulkAssignSuccess(BaseModel):
    student_id: int
    ledger_id: int


class BulkAssignFailure(BaseModel):
    student_id: int
    error: str


class BulkAssignResult(BaseModel):
    success: List[BulkAssignSuccess] = []
    failed: List[BulkAssignFailure] = []


class LedgerFeeHead(BaseModel):
    head_code: str
    head_name: str
    amount: int
    is_applicable: bool


class LedgerResponse(BaseModel):
    """Schema for ledger response. Amounts in minor units."""
    id: int
    student_id: int
    student_name: str
    student_roll_no: str
    department: str
    course: str
    fee_structure_id: int
    fee_structure_version: int
    fee_structure_code: str
    academic_year: str
    semester: int
    fee_heads: List[LedgerFeeHead]
    approved_total: int
    concession_amount: int
    concession_reason: str
    net_payable: int
    has_installments: bool
    installments: List[InstallmentItem]
    due_date: date
    total_paid: int
    outstanding_balance: int
    fee_status: FeeStatus
    last_payment_date: Optional[datetime]
    last_payment_amount: int
    receipt_count: int
    is_overdue: bool
    overdue_since: Optional[date]
    overdue_days: int
    aging_bucket: AgingBucket
    is_active: bool
    is_closed: bool
    closed_at: Optional[datetime]
    closed_reason: str
    created_by_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LedgerListResponse(BaseModel):
    ledgers: List[LedgerResponse]
    total: int
    page: int
    page_size: int


class LedgerCloseRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)


class LedgerBalanceResponse(BaseModel):
    """Balance recomputed from the receipt journal."""
    ledger_id: int
    net_payable: int
    total_paid: int
    outstanding_balance: int
    payment_count: int
    reversal_count: int
    fee_status: FeeStatus
    aging_bucket: AgingBucket
    is_overdue: bool


class StudentBalanceSummary(BaseModel):
    student_id: int
    ledger_count: int
    open_ledger_count: int
    total_net_payable: int
    total_paid: int
    total_outstanding: int
    total_overdue: int


class OverdueRefreshResult(BaseModel):
    processed_count: int
    newly_overdue: int
