"""
Fee Receipt database model.

Append-only journal of payments and reversals against a student ledger.
"""

from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, ForeignKey, Enum, JSON,
    CheckConstraint, Index, text
)
from sqlalchemy.sql import func
from campus_fees.app.db.session import Base
from campus_fees.app.models.fee_enums import ReceiptType, PaymentMode, enum_values


class FeeReceipt(Base):
    """
    Fee Receipt model.

    Receipts are NEVER deleted or edited. A payment is undone by issuing a
    REVERSAL receipt that points back at it through reversal_of_id.

    Only these columns may change after insert:
    - reversal marking: is_reversed, reversed_by_id, reversed_receipt_number,
      reversed_at, reversal_reason
    - verification: is_verified, verified_by_id, verified_at
    """
    __tablename__ = "fee_receipts"

    MUTABLE_FIELDS = frozenset({
        "is_reversed", "reversed_by_id", "reversed_receipt_number", "reversed_at",
        "reversal_reason", "is_verified", "verified_by_id", "verified_at", "updated_at",
    })

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification: RCP-YYYYMMDD-NNNN or REV-YYYYMMDD-R{n}
    receipt_number = Column(String(50), nullable=False, index=True)
    receipt_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    # References
    student_id = Column(Integer, nullable=False, index=True)
    ledger_id = Column(Integer, ForeignKey('student_fee_ledgers.id'), nullable=False, index=True)

    # Student snapshot for historical reports
    student_name = Column(String(200), nullable=False, default="")
    student_roll_no = Column(String(50), nullable=False, default="")
    department = Column(String(100), nullable=False, default="")
    academic_year = Column(String(20), nullable=False)
    semester = Column(Integer, nullable=False)

    # Payment (minor units)
    amount = Column(BigInteger, nullable=False)
    payment_mode = Column(
        Enum(PaymentMode, values_callable=enum_values, name="payment_mode"),
        nullable=False
    )
    reference_number = Column(String(100), nullable=False, default="")
    voucher_number = Column(String(100), nullable=False, default="")
    bank_details = Column(JSON, nullable=True)  # {bank_name, branch, cheque_date}

    # [{head_code, head_name, allocated_amount}]
    allocations = Column(JSON, nullable=False, default=list)

    # Balance snapshot at time of receipt
    previous_balance = Column(BigInteger, nullable=False)
    new_balance = Column(BigInteger, nullable=False)
    total_paid_before = Column(BigInteger, nullable=False)
    total_paid_after = Column(BigInteger, nullable=False)

    receipt_type = Column(
        Enum(ReceiptType, values_callable=enum_values, name="receipt_type"),
        default=ReceiptType.PAYMENT,
        nullable=False,
        index=True
    )

    # REVERSAL rows: which payment they negate (at most one reversal per payment)
    reversal_of_id = Column(Integer, ForeignKey('fee_receipts.id'), unique=True, nullable=True)
    reversal_receipt_number = Column(String(50), nullable=False, default="")

    # PAYMENT rows: set once when reversed
    is_reversed = Column(Boolean, default=False, nullable=False)
    reversed_by_id = Column(Integer, nullable=True)
    reversed_receipt_number = Column(String(50), nullable=False, default="")
    reversed_at = Column(DateTime(timezone=True), nullable=True)
    reversal_reason = Column(String(500), nullable=False, default="")

    remarks = Column(String(500), nullable=False, default="")

    # Verification
    is_verified = Column(Boolean, default=False, nullable=False)
    verified_by_id = Column(Integer, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    # Audit trail
    created_by_id = Column(Integer, nullable=False)
    created_by_name = Column(String(200), nullable=False, default="")
    created_by_role = Column(String(20), nullable=False)
    created_by_ip = Column(String(50), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Load server-generated timestamps on flush
    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_fee_receipts_amount_positive'),
        # Payment numbers are unique; reversal numbers carry a per-original counter
        Index(
            'uq_fee_receipts_payment_number',
            'receipt_number',
            unique=True,
            postgresql_where=text("receipt_type = 'PAYMENT'"),
            sqlite_where=text("receipt_type = 'PAYMENT'"),
        ),
        Index('ix_fee_receipts_ledger_date', 'ledger_id', 'receipt_date'),
    )

    @property
    def effective_amount(self) -> int:
        """Signed contribution of this receipt to the ledger's total paid."""
        if self.receipt_type == ReceiptType.REVERSAL:
            return -self.amount
        if self.is_reversed:
            return 0
        return self.amount

    @property
    def display_status(self) -> str:
        if self.is_reversed:
            return "REVERSED"
        if self.receipt_type == ReceiptType.REVERSAL:
            return "REVERSAL"
        if self.is_verified:
            return "VERIFIED"
        return "ACTIVE"

    def __repr__(self):
        return f"<FeeReceipt(id={self.id}, number='{self.receipt_number}', type='{self.receipt_type.value}', amount={self.amount}, reversed={self.is_reversed})>"
