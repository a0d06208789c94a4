"""
Fee Audit Log Database Model.

Write-once compliance record of every financial action.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime, Enum, JSON, Index
from sqlalchemy.sql import func
from campus_fees.app.db.session import Base
from campus_fees.app.models.fee_enums import AuditEntityType, AuditStatus, enum_values


class FeeAuditLog(Base):
    """
    Fee audit log model.

    Rows are inserted by FeeAuditService and never updated or deleted.

    Events logged:
    - STRUCTURE_* (create, update, approve, activate, lock, archive, version)
    - LEDGER_* (create, bulk assign, overdue marked, close)
    - RECEIPT_* (create, reverse, verify)
    - REPORT_GENERATED / OVERDUE_BATCH_PROCESSED / ERROR_OCCURRED
    """
    __tablename__ = "fee_audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # What happened
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(
        Enum(AuditEntityType, values_callable=enum_values, name="audit_entity_type"),
        nullable=False
    )
    entity_id = Column(Integer, nullable=True)
    entity_code = Column(String(100), nullable=False, default="")

    # Who did it
    performed_by_id = Column(Integer, nullable=True, index=True)
    performed_by_name = Column(String(200), nullable=False)
    performed_by_role = Column(String(20), nullable=False)

    description = Column(Text, nullable=False)
    reason = Column(String(500), nullable=False, default="")

    # State capture
    changes_before = Column(JSON, nullable=True)
    changes_after = Column(JSON, nullable=True)
    changes_diff = Column(JSON, nullable=True)

    # Financial context
    student_id = Column(Integer, nullable=True, index=True)
    student_name = Column(String(200), nullable=False, default="")
    student_roll_no = Column(String(50), nullable=False, default="")
    amount = Column(BigInteger, nullable=True)
    receipt_number = Column(String(50), nullable=False, default="")
    structure_code = Column(String(100), nullable=False, default="")
    academic_year = Column(String(20), nullable=False, default="")
    semester = Column(Integer, nullable=True)

    # Report / batch context
    report_type = Column(String(50), nullable=False, default="")
    affected_count = Column(Integer, nullable=True)
    affected_ids = Column(JSON, nullable=True)

    # Request context
    ip_address = Column(String(50), nullable=False, default="")
    user_agent = Column(String(500), nullable=False, default="")
    request_id = Column(String(64), nullable=False, default="")

    status = Column(
        Enum(AuditStatus, values_callable=enum_values, name="audit_status"),
        default=AuditStatus.SUCCESS,
        nullable=False
    )
    error_message = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    # Load server-generated timestamps on flush
    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        Index('ix_fee_audit_entity', 'entity_type', 'entity_id', 'created_at'),
        Index('ix_fee_audit_actor', 'performed_by_id', 'created_at'),
        Index('ix_fee_audit_action', 'action', 'created_at'),
    )

    def __repr__(self):
        return f"<FeeAuditLog(id={self.id}, action='{self.action}', entity={self.entity_type.value}:{self.entity_id}, status='{self.status.value}')>"
