"""
Fee Receipt schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List
from campus_fees.app.models.fee_enums import PaymentMode, ReceiptType
from campus_fees.app.schemas.ledger import LedgerResponse


class AllocationItem(BaseModel):
    head_code: str = Field(..., min_length=1)
    head_name: str = ""
    allocated_amount: int = Field(..., ge=0)


class BankDetails(BaseModel):
    bank_name: str = ""
    branch: str = ""
    cheque_date: Optional[date] = None


class PaymentCreate(BaseModel):
    """Payment details, amount in minor units."""
    amount: int
    payment_mode: PaymentMode
    reference_number: str = Field("", max_length=100)
    voucher_number: str = Field("", max_length=100)
    bank_details: Optional[BankDetails] = None
    allocations: List[AllocationItem] = []
    remarks: str = Field("", max_length=500)


class ReceiptCreate(PaymentCreate):
    """Schema for recording a payment against a ledger."""
    ledger_id: int


class ReversalRequest(BaseModel):
    reason: str = Field("", max_length=500)


class ReceiptResponse(BaseModel):
    """Schema for receipt response."""
    id: int
    receipt_number: str
    receipt_date: datetime
    student_id: int
    ledger_id: int
    student_name: str
    student_roll_no: str
    department: str
    academic_year: str
    semester: int
    amount: int
    payment_mode: PaymentMode
    reference_number: str
    voucher_number: str
    bank_details: Optional[BankDetails]
    allocations: List[AllocationItem]
    previous_balance: int
    new_balance: int
    total_paid_before: int
    total_paid_after: int
    receipt_type: ReceiptType
    reversal_of_id: Optional[int]
    reversal_receipt_number: str
    is_reversed: bool
    reversed_by_id: Optional[int]
    reversed_receipt_number: str
    reversed_at: Optional[datetime]
    reversal_reason: str
    remarks: str
    is_verified: bool
    verified_by_id: Optional[int]
    verified_at: Optional[datetime]
    created_by_id: int
    created_by_name: str
    created_by_role: str
    effective_amount: int
    display_status: str
    created_at: datetime

    class Config:
        from_attributes = True


class ReceiptListResponse(BaseModel):
    receipts: List[ReceiptResponse]
    total: int
    page: int
    page_size: int


class PaymentResult(BaseModel):
    receipt: ReceiptResponse
    ledger: LedgerResponse


class ReversalResult(BaseModel):
    reversal: ReceiptResponse
    original: ReceiptResponse
    ledger: LedgerResponse
