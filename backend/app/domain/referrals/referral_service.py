"""
Referral Service (Domain Logic).

Read side of the referral tree: who an account invited, and how much
commission each invitee generated for it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from backend.app.domain.ledger.ledger_service import LedgerService
from backend.app.models.account import Account
from backend.app.models.plan import Plan
from backend.app.models.plan_instance import PlanInstance
from backend.app.models.plan_enums import PlanInstanceStatus


@dataclass
class InviteeSummary:
    account_id: int
    public_id: str
    username: str
    joined_at: datetime
    active_plan_name: Optional[str]
    commission_earned: float


class ReferralService:

    @staticmethod
    async def list_invitees(db: AsyncSession, account_id: int) -> List[InviteeSummary]:
        """Accounts invited by `account_id`, newest first, with the commission each produced."""
        result = await db.execute(
            select(Account, Plan.name)
            .outerjoin(
                PlanInstance,
                (PlanInstance.id == Account.active_plan_instance_id)
                & (PlanInstance.status == PlanInstanceStatus.ACTIVE),
            )
            .outerjoin(Plan, Plan.id == PlanInstance.plan_id)
            .where(Account.invited_by_id == account_id)
            .order_by(desc(Account.created_at), desc(Account.id))
        )
        rows = result.all()

        earned = await LedgerService.commission_by_source(db, account_id)

        return [
            InviteeSummary(
                account_id=invitee.id,
                public_id=invitee.public_id,
                username=invitee.username,
                joined_at=invitee.created_at,
                active_plan_name=plan_name,
                commission_earned=earned.get(invitee.id, 0.0),
            )
            for invitee, plan_name in rows
        ]
