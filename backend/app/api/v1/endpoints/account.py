"""
Investor Account API Endpoints.

Dashboard, ledger history, referral team, deposit and withdrawal requests.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backend.app.db.session import get_db
from backend.app.core.dependencies import AuthenticatedPrincipal
from backend.app.core.guards import require_investor
from backend.app.domain.accounts.account_service import AccountService
from backend.app.domain.ledger.ledger_service import LedgerService
from backend.app.domain.plans.plan_engine import PlanEngine, COLLECTION_INTERVAL
from backend.app.domain.referrals.referral_service import ReferralService
from backend.app.domain.settings.settings_service import SettingsService
from backend.app.domain.settlement.settlement_service import SettlementService
from backend.app.domain.unit_of_work import utcnow, as_utc, money
from backend.app.models.ledger_enums import LedgerEntryType
from backend.app.models.plan import Plan
from backend.app.schemas.account import DashboardResponse, ReferralTeamResponse
from backend.app.schemas.admin import ReferralSummary
from backend.app.schemas.ledger import (
    LedgerEntryResponse, LedgerHistoryResponse, DepositRequestCreate,
    WithdrawalRequestCreate, BalanceReconciliation
)
from backend.app.schemas.plan import PlanInstanceResponse, PlanInstanceDetail

router = APIRouter(prefix="/account", tags=["Account"])


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """
    Balances, active plan and profit statistics.

    Expires the active plan first if it has run past its end date.
    """
    now = utcnow()
    instance = await PlanEngine.refresh_expiry(db, principal.account_id, now)
    account = await AccountService.get(db, principal.account_id)

    active_plan = None
    next_collection_at = None
    if instance is not None:
        plan = await db.get(Plan, instance.plan_id)
        active_plan = PlanInstanceDetail(
            **PlanInstanceResponse.model_validate(instance).model_dump(),
            plan_name=plan.name if plan else "",
        )
        if instance.last_collected_date is not None:
            next_collection_at = as_utc(instance.last_collected_date) + COLLECTION_INTERVAL

    stats = await LedgerService.profit_stats(db, account.id, now)

    return DashboardResponse(
        public_id=account.public_id,
        name=account.name,
        wallet_balance=account.wallet_balance,
        bonus_balance=account.bonus_balance,
        invite_link=account.invite_link,
        active_plan=active_plan,
        next_collection_at=next_collection_at,
        **stats,
    )


@router.get("/transactions", response_model=LedgerHistoryResponse)
async def list_transactions(
    entry_type: Optional[LedgerEntryType] = Query(None, description="Filter by entry type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Own ledger history, newest first."""
    entries, total = await LedgerService.history(db, principal.account_id, entry_type, limit, offset)
    return LedgerHistoryResponse(
        entries=[LedgerEntryResponse.model_validate(entry) for entry in entries],
        total=total,
    )


@router.get("/referrals", response_model=ReferralTeamResponse)
async def list_referrals(
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Invite link and invited accounts, with commission earned from each."""
    account = await AccountService.get(db, principal.account_id)
    invitees = await ReferralService.list_invitees(db, account.id)

    return ReferralTeamResponse(
        invite_link=account.invite_link,
        total_referrals=len(invitees),
        total_commission=money(sum(invitee.commission_earned for invitee in invitees)),
        referrals=[ReferralSummary.model_validate(invitee) for invitee in invitees],
    )


@router.get("/balance-check", response_model=BalanceReconciliation)
async def check_balance(
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Stored balances next to the balances re-derived from the ledger."""
    account = await AccountService.get(db, principal.account_id)
    ledger_wallet, ledger_bonus = await LedgerService.derive_balances(db, account.id)

    return BalanceReconciliation(
        wallet_balance=account.wallet_balance,
        bonus_balance=account.bonus_balance,
        ledger_wallet_balance=ledger_wallet,
        ledger_bonus_balance=ledger_bonus,
        consistent=(
            money(account.wallet_balance) == ledger_wallet
            and money(account.bonus_balance) == ledger_bonus
        ),
    )


@router.post("/deposits", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def request_deposit(
    data: DepositRequestCreate,
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Submit a deposit with proof of payment (uploaded image URL or text) for admin review."""
    config = await SettingsService.fetch_snapshot(db)
    entry = await SettlementService.request_deposit(db, principal.account_id, data, config)
    return LedgerEntryResponse.model_validate(entry)


@router.post("/withdrawals", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(
    data: WithdrawalRequestCreate,
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Submit a withdrawal for admin review. Nothing is debited until approval."""
    config = await SettingsService.fetch_snapshot(db)
    entry = await SettlementService.request_withdrawal(db, principal.account_id, data, config)
    return LedgerEntryResponse.model_validate(entry)
