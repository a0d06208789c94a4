"""
Receipt Sequence database model.

Daily monotonic counter behind RCP-YYYYMMDD-NNNN receipt numbers.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from campus_fees.app.db.session import Base


class ReceiptSequence(Base):
    """
    One row per (prefix, day). The row is read FOR UPDATE and incremented
    inside the transaction that issues the receipt, so two writers can
    never draw the same number.
    """
    __tablename__ = "receipt_sequences"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    prefix = Column(String(10), nullable=False)
    sequence_date = Column(Date, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Load server-generated timestamps on flush
    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        UniqueConstraint('prefix', 'sequence_date', name='uq_receipt_sequence_day'),
    )

    def __repr__(self):
        return f"<ReceiptSequence(prefix='{self.prefix}', date={self.sequence_date}, last={self.last_value})>"
