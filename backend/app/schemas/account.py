"""
Investor account views: dashboard and referral team.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List
from backend.app.schemas.admin import ReferralSummary
from backend.app.schemas.plan import PlanInstanceDetail


class DashboardResponse(BaseModel):
    """Balances, active plan and profit statistics (collection + commission)."""
    public_id: str
    name: str
    wallet_balance: float
    bonus_balance: float
    invite_link: Optional[str]
    active_plan: Optional[PlanInstanceDetail] = None
    next_collection_at: Optional[datetime] = None
    today_profit: float
    yesterday_profit: float
    month_profit: float
    total_referral_profit: float


class ReferralTeamResponse(BaseModel):
    invite_link: Optional[str]
    total_referrals: int
    total_commission: float
    referrals: List[ReferralSummary]
