"""
Fee accounting enumerations.
"""

import enum


class StructureStatus(str, enum.Enum):
    """Fee structure lifecycle: draft -> approved -> active -> archived."""
    DRAFT = "draft"
    APPROVED = "approved"
    ACTIVE = "active"
    ARCHIVED = "archived"


class FeeStatus(str, enum.Enum):
    """Ledger payment status, derived from totals and due date."""
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class AgingBucket(str, enum.Enum):
    """Collections aging classification of an unpaid balance."""
    CURRENT = "CURRENT"
    DAYS_1_30 = "1-30_DAYS"
    DAYS_31_60 = "31-60_DAYS"
    DAYS_60_PLUS = "60+_DAYS"


class ReceiptType(str, enum.Enum):
    """Receipt journal entry type."""
    PAYMENT = "PAYMENT"  # Money received
    REVERSAL = "REVERSAL"  # Negates an earlier PAYMENT


class PaymentMode(str, enum.Enum):
    """How a payment was tendered."""
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    DD = "DD"
    UPI = "UPI"
    OTHER = "OTHER"


class ActorRole(str, enum.Enum):
    """Roles recorded against audited actions."""
    ADMIN = "admin"
    FACULTY = "faculty"
    STUDENT = "student"
    SYSTEM = "system"


class AuditEntityType(str, enum.Enum):
    FEE_STRUCTURE = "FeeStructure"
    STUDENT_FEE_LEDGER = "StudentFeeLedger"
    FEE_RECEIPT = "FeeReceipt"
    REPORT = "Report"
    SYSTEM = "System"


class AuditStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"


def enum_values(enum_cls) -> list:
    """Persist enum values (e.g. '1-30_DAYS') rather than member names."""
    return [member.value for member in enum_cls]
