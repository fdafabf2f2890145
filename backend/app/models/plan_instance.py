"""
Plan instance database model.

One row per activation, upgrade or renewal. Rows are never deleted; expired
instances are the account's investment history.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.plan_enums import PlanInstanceStatus, ExpiryReason


class PlanInstance(Base):
    """
    Plan instance model.

    Lifecycle: ACTIVE -> EXPIRED (terminal). Only collection (advances
    last_collected_date / total_collected) and expiry mutate a row.
    """
    __tablename__ = "plan_instances"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # References
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey('plans.id'), nullable=False, index=True)

    # Snapshots taken at creation
    invested_amount = Column(Float, nullable=False)
    daily_profit = Column(Float, nullable=False)

    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)

    # Collection progress
    last_collected_date = Column(DateTime(timezone=True), nullable=True)
    total_collected = Column(Float, default=0.0, nullable=False)

    status = Column(Enum(PlanInstanceStatus), default=PlanInstanceStatus.ACTIVE, nullable=False, index=True)
    expiry_reason = Column(Enum(ExpiryReason), nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<PlanInstance(id={self.id}, account_id={self.account_id}, status='{self.status.value}')>"
