"""
Audit trail of admin decisions and sign-in attempts.

Ledger entries record what happened to balances; audit rows record who
decided it. A deposit approval therefore leaves both a ledger entry (the
credit) and an audit row (the admin who approved it).
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    action = Column(String(100), nullable=False, index=True)

    # Admin who decided, or the account signing in. None for unknown logins
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # Account whose balance or status the action touched
    target_account_id = Column(Integer, index=True, nullable=True)
    target_public_id = Column(String(5), nullable=True)

    # Transaction id, amounts, plan changes, block reason...
    details = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, target={self.target_account_id})>"
