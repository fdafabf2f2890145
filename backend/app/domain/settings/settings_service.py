"""
Platform Settings Service.

Reads the admin-editable settings row into an immutable ConfigSnapshot at
the start of each operation. Engines receive the snapshot as a parameter;
nothing in the core holds settings as module state, so a rate changed by an
admin applies from the next request on.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from backend.app.core.config import settings as app_settings
from backend.app.core.exceptions import InvalidSettingsError
from backend.app.models.platform_settings import PlatformSettings, MAIN_SETTINGS_KEY
from backend.app.models.plan_enums import UpgradeComparison
from backend.app.schemas.settings import PlatformSettingsUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigSnapshot:
    """Read-only view of platform settings for one operation."""
    deposit_min: float
    deposit_max: float
    withdrawal_min: float
    withdrawal_max: float
    withdrawal_fee_rate: float
    welcome_bonus: float
    referral_commission_rate: float
    daily_commission_rate: float
    daily_commission_requires_active_plan: bool = True
    upgrade_comparison: UpgradeComparison = UpgradeComparison.INVESTED_AMOUNT
    deposit_methods: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: PlatformSettings) -> "ConfigSnapshot":
        return cls(
            deposit_min=row.deposit_min,
            deposit_max=row.deposit_max,
            withdrawal_min=row.withdrawal_min,
            withdrawal_max=row.withdrawal_max,
            withdrawal_fee_rate=row.withdrawal_fee_rate,
            welcome_bonus=row.welcome_bonus,
            referral_commission_rate=row.referral_commission_rate,
            daily_commission_rate=row.daily_commission_rate,
            daily_commission_requires_active_plan=row.daily_commission_requires_active_plan,
            upgrade_comparison=row.upgrade_comparison,
            deposit_methods=list(row.deposit_methods or []),
        )

    @property
    def active_deposit_methods(self) -> List[Dict[str, Any]]:
        return [method for method in self.deposit_methods if method.get("is_active", True)]


def _default_row() -> PlatformSettings:
    return PlatformSettings(
        config_key=MAIN_SETTINGS_KEY,
        deposit_methods=[],
        welcome_bonus=app_settings.default_welcome_bonus,
        referral_commission_rate=app_settings.default_referral_commission_rate,
        daily_commission_rate=app_settings.default_daily_commission_rate,
        deposit_min=app_settings.default_deposit_min,
        deposit_max=app_settings.default_deposit_max,
        withdrawal_min=app_settings.default_withdrawal_min,
        withdrawal_max=app_settings.default_withdrawal_max,
        withdrawal_fee_rate=app_settings.default_withdrawal_fee_rate,
        daily_commission_requires_active_plan=app_settings.default_daily_commission_requires_active_plan,
        upgrade_comparison=UpgradeComparison(app_settings.default_upgrade_comparison),
    )


class SettingsService:

    @staticmethod
    async def get_or_create(db: AsyncSession) -> PlatformSettings:
        """
        Load the settings row, creating it from process defaults if missing.

        Must be called before the operation stages any writes: creating the
        row commits.
        """
        result = await db.execute(
            select(PlatformSettings).where(PlatformSettings.config_key == MAIN_SETTINGS_KEY)
        )
        row = result.scalar_one_or_none()
        if row:
            return row

        row = _default_row()
        db.add(row)
        try:
            await db.commit()
        except IntegrityError:
            # Another request created it first
            await db.rollback()
            result = await db.execute(
                select(PlatformSettings).where(PlatformSettings.config_key == MAIN_SETTINGS_KEY)
            )
            return result.scalar_one()

        logger.info("Created default platform settings")
        return row

    @staticmethod
    async def fetch_snapshot(db: AsyncSession) -> ConfigSnapshot:
        row = await SettingsService.get_or_create(db)
        return ConfigSnapshot.from_row(row)

    @staticmethod
    async def update(db: AsyncSession, data: PlatformSettingsUpdate) -> PlatformSettings:
        """
        Replace the admin-editable settings.

        Raises:
            InvalidSettingsError: If a minimum exceeds its maximum.
        """
        if data.deposit_min > data.deposit_max:
            raise InvalidSettingsError("Minimum deposit cannot be greater than maximum deposit")
        if data.withdrawal_min > data.withdrawal_max:
            raise InvalidSettingsError("Minimum withdrawal cannot be greater than maximum withdrawal")

        row = await SettingsService.get_or_create(db)
        row.deposit_min = data.deposit_min
        row.deposit_max = data.deposit_max
        row.withdrawal_min = data.withdrawal_min
        row.withdrawal_max = data.withdrawal_max
        row.withdrawal_fee_rate = data.withdrawal_fee_rate
        row.welcome_bonus = data.welcome_bonus
        row.referral_commission_rate = data.referral_commission_rate
        row.daily_commission_rate = data.daily_commission_rate
        row.daily_commission_requires_active_plan = data.daily_commission_requires_active_plan
        row.upgrade_comparison = data.upgrade_comparison
        row.deposit_methods = [method.model_dump() for method in data.deposit_methods]

        await db.commit()
        await db.refresh(row)
        return row
