"""
Platform Settings Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List
from backend.app.models.plan_enums import UpgradeComparison


class DepositMethod(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    holder_name: str = Field(..., min_length=1, max_length=120)
    number: str = Field(..., min_length=1, max_length=50)
    is_active: bool = True


class PlatformSettingsUpdate(BaseModel):
    """Full replacement of the admin-editable settings."""
    deposit_min: float = Field(..., ge=0)
    deposit_max: float = Field(..., ge=0)
    withdrawal_min: float = Field(..., ge=0)
    withdrawal_max: float = Field(..., ge=0)
    withdrawal_fee_rate: float = Field(..., ge=0, le=100)
    welcome_bonus: float = Field(..., ge=0)
    referral_commission_rate: float = Field(..., ge=0, le=100)
    daily_commission_rate: float = Field(..., ge=0, le=100)
    daily_commission_requires_active_plan: bool = True
    upgrade_comparison: UpgradeComparison = UpgradeComparison.INVESTED_AMOUNT
    deposit_methods: List[DepositMethod] = Field(default_factory=list)


class PlatformSettingsResponse(PlatformSettingsUpdate):
    updated_at: datetime

    class Config:
        from_attributes = True


class PublicSettingsResponse(BaseModel):
    """Settings visible to investors (only active deposit methods)."""
    deposit_methods: List[DepositMethod]
    deposit_min: float
    deposit_max: float
    withdrawal_min: float
    withdrawal_max: float
    withdrawal_fee_rate: float
    welcome_bonus: float
    referral_commission_rate: float
    daily_commission_rate: float
