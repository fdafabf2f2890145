"""
Platform settings database model.

Single admin-editable row (config_key = "main_settings") with the rates,
limits and policy switches the core reads per operation.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, JSON, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.plan_enums import UpgradeComparison


MAIN_SETTINGS_KEY = "main_settings"


class PlatformSettings(Base):
    """Platform settings model."""
    __tablename__ = "platform_settings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    config_key = Column(String(50), unique=True, nullable=False, default=MAIN_SETTINGS_KEY)

    # Deposit channels shown to users: [{name, holder_name, number, is_active}]
    deposit_methods = Column(JSON, nullable=False, default=list)

    # Bonuses and commissions (percentages are 0-100)
    welcome_bonus = Column(Float, nullable=False)
    referral_commission_rate = Column(Float, nullable=False)
    daily_commission_rate = Column(Float, nullable=False)

    # Limits and fees
    deposit_min = Column(Float, nullable=False)
    deposit_max = Column(Float, nullable=False)
    withdrawal_min = Column(Float, nullable=False)
    withdrawal_max = Column(Float, nullable=False)
    withdrawal_fee_rate = Column(Float, nullable=False)

    # Policy switches
    daily_commission_requires_active_plan = Column(Boolean, nullable=False, default=True)
    upgrade_comparison = Column(Enum(UpgradeComparison), nullable=False, default=UpgradeComparison.INVESTED_AMOUNT)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<PlatformSettings(key='{self.config_key}')>"
