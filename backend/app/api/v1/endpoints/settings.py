"""
Public platform settings.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.domain.settings.settings_service import SettingsService
from backend.app.schemas.settings import PublicSettingsResponse

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("/public", response_model=PublicSettingsResponse)
async def get_public_settings(db: AsyncSession = Depends(get_db)):
    """Limits, fees, rates and the active deposit methods. No authentication required."""
    config = await SettingsService.fetch_snapshot(db)
    return PublicSettingsResponse(
        deposit_methods=config.active_deposit_methods,
        deposit_min=config.deposit_min,
        deposit_max=config.deposit_max,
        withdrawal_min=config.withdrawal_min,
        withdrawal_max=config.withdrawal_max,
        withdrawal_fee_rate=config.withdrawal_fee_rate,
        welcome_bonus=config.welcome_bonus,
        referral_commission_rate=config.referral_commission_rate,
        daily_commission_rate=config.daily_commission_rate,
    )
