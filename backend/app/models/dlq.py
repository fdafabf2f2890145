"""
Dead letter queue for referral commissions.

A commission runs after the activation, renewal or collection that
triggered it has committed. When the commission cannot be written, that
primary operation stands and a row lands here carrying everything needed
to pay it later.
"""

import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base


class DLQStatus(str, enum.Enum):
    FAILED = "FAILED"
    RESOLVED = "RESOLVED"


class DeadLetterQueue(Base):
    __tablename__ = "dead_letter_queue"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    task_name = Column(String(100), nullable=False, index=True)
    # Referrer who should have been credited
    referrer_account_id = Column(Integer, nullable=True, index=True)

    error_message = Column(Text, nullable=False)
    # referrer_id, source_account_id, base_amount, rate, trigger, occurred_at
    payload = Column(JSON, nullable=True)

    status = Column(Enum(DLQStatus), default=DLQStatus.FAILED, nullable=False, index=True)
    attempts = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<DeadLetter(id={self.id}, referrer={self.referrer_account_id}, status='{self.status}')>"
