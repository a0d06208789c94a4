"""
Student Fee Ledger database model.

One record per student per academic period. Legal record, never deleted.
"""

from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, Date, DateTime, ForeignKey, Enum, JSON,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.sql import func
from campus_fees.app.db.session import Base
from campus_fees.app.models.fee_enums import FeeStatus, AgingBucket, enum_values


class StudentFeeLedger(Base):
    """
    Student Fee Ledger model.

    Snapshot of a fee structure at assignment time plus computed payment
    state. Only the accounting service mutates it, through payments and
    reversals. Closure is the only terminal transition.

    The schema itself enforces:
    - one ledger per (student, academic_year, semester)
    - outstanding_balance = net_payable - total_paid

    Only payment state, overdue tracking and closure may change after
    insert; the fee head snapshot and period are fixed.
    """
    __tablename__ = "student_fee_ledgers"

    MUTABLE_FIELDS = frozenset({
        "total_paid", "outstanding_balance", "fee_status", "last_payment_date",
        "last_payment_amount", "receipt_count", "is_overdue", "overdue_since",
        "overdue_days", "aging_bucket", "is_closed", "closed_at", "closed_reason", "updated_at",
    })

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Student (external record) and snapshot for historical reports
    student_id = Column(Integer, nullable=False, index=True)
    student_name = Column(String(200), nullable=False, default="")
    student_roll_no = Column(String(50), nullable=False, default="")
    department = Column(String(100), nullable=False, default="")
    course = Column(String(100), nullable=False, default="")

    # Structure reference (snapshot at time of assignment)
    fee_structure_id = Column(Integer, ForeignKey('fee_structures.id'), nullable=False, index=True)
    fee_structure_version = Column(Integer, nullable=False)
    fee_structure_code = Column(String(100), nullable=False)

    # Academic period
    academic_year = Column(String(20), nullable=False)
    semester = Column(Integer, nullable=False)

    # Immutable snapshot: [{head_code, head_name, amount, is_applicable}]
    fee_heads = Column(JSON, nullable=False, default=list)

    # Financial totals (minor units)
    approved_total = Column(BigInteger, nullable=False)
    concession_amount = Column(BigInteger, nullable=False, default=0)
    concession_reason = Column(String(255), nullable=False, default="")
    net_payable = Column(BigInteger, nullable=False)

    # Installment schedule: [{installment_no, amount, due_date, description}]
    has_installments = Column(Boolean, default=False, nullable=False)
    installments = Column(JSON, nullable=False, default=list)
    due_date = Column(Date, nullable=False, index=True)

    # Payment state (computed by the accounting service)
    total_paid = Column(BigInteger, nullable=False, default=0)
    outstanding_balance = Column(BigInteger, nullable=False)
    fee_status = Column(
        Enum(FeeStatus, values_callable=enum_values, name="fee_status"),
        default=FeeStatus.UNPAID,
        nullable=False,
        index=True
    )
    last_payment_date = Column(DateTime(timezone=True), nullable=True)
    last_payment_amount = Column(BigInteger, nullable=False, default=0)
    receipt_count = Column(Integer, nullable=False, default=0)

    # Overdue tracking
    is_overdue = Column(Boolean, default=False, nullable=False)
    overdue_since = Column(Date, nullable=True)
    overdue_days = Column(Integer, nullable=False, default=0)
    aging_bucket = Column(
        Enum(AgingBucket, values_callable=enum_values, name="aging_bucket"),
        default=AgingBucket.CURRENT,
        nullable=False
    )

    # Governance
    is_active = Column(Boolean, default=True, nullable=False)
    is_closed = Column(Boolean, default=False, nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closed_reason = Column(String(255), nullable=False, default="")

    created_by_id = Column(Integer, nullable=False)
    created_by_name = Column(String(200), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Load server-generated timestamps on flush
    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        UniqueConstraint('student_id', 'academic_year', 'semester', name='uq_ledger_student_period'),
        CheckConstraint('total_paid >= 0', name='ck_ledger_total_paid'),
        CheckConstraint('concession_amount >= 0', name='ck_ledger_concession'),
        CheckConstraint('net_payable >= 0', name='ck_ledger_net_payable'),
        CheckConstraint('outstanding_balance = net_payable - total_paid', name='ck_ledger_balance_reconciles'),
        CheckConstraint('NOT is_closed OR outstanding_balance = 0', name='ck_ledger_closed_settled'),
        Index('ix_ledgers_period', 'academic_year', 'semester'),
        Index('ix_ledgers_aging', 'aging_bucket', 'is_overdue'),
    )

    def __repr__(self):
        return f"<StudentFeeLedger(id={self.id}, student_id={self.student_id}, {self.academic_year}/S{self.semester}, status='{self.fee_status.value}', outstanding={self.outstanding_balance})>"
