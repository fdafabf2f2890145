"""
Ledger Entry database model.

Append-only record of every balance-affecting event.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum, String, JSON, Index, event, inspect
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import LedgerEntryType, LedgerEntryStatus


class LedgerEntry(Base):
    """
    Ledger Entry model.

    `amount` is a non-negative magnitude; the sign comes from `entry_type`.
    Deposits and withdrawals start PENDING; every engine-generated entry
    starts APPROVED. Once an entry is no longer PENDING it is immutable,
    and no entry is ever deleted.
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)

    entry_type = Column(Enum(LedgerEntryType), nullable=False)
    status = Column(Enum(LedgerEntryStatus), default=LedgerEntryStatus.APPROVED, nullable=False)

    amount = Column(Float, nullable=False)
    description = Column(String(255), nullable=True)

    # Structured payload, shape keyed by details["kind"] (see schemas.ledger)
    details = Column(JSON, nullable=True)

    # Downstream account that generated a commission
    source_account_id = Column(
        Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True, index=True
    )

    # Settlement trail
    reviewed_by_admin_id = Column(Integer, ForeignKey('accounts.id'), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_note = Column(String(255), nullable=True)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_ledger_account_status_type_created', 'account_id', 'status', 'entry_type', 'created_at'),
    )

    @property
    def signed_amount(self) -> float:
        return self.entry_type.direction * self.amount

    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, type='{self.entry_type.value}', status='{self.status.value}', amount={self.amount})>"


class ImmutableLedgerEntryError(Exception):
    """Raised when code tries to modify a settled ledger entry."""


@event.listens_for(LedgerEntry, "before_update")
def _reject_settled_entry_update(mapper, connection, target):
    status_history = inspect(target).attrs.status.history
    original_status = status_history.deleted[0] if status_history.deleted else target.status
    if original_status != LedgerEntryStatus.PENDING:
        raise ImmutableLedgerEntryError(
            f"Ledger entry {target.id} is {original_status.value} and cannot be modified"
        )


@event.listens_for(LedgerEntry, "before_delete")
def _reject_entry_delete(mapper, connection, target):
    raise ImmutableLedgerEntryError(f"Ledger entry {target.id} cannot be deleted")
