"""
Plan API Endpoints.

Catalog browsing and the plan lifecycle: activate, collect, upgrade, renew.
Every action reads a fresh settings snapshot before calling the engine.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from backend.app.db.session import get_db
from backend.app.core.dependencies import AuthenticatedPrincipal
from backend.app.core.guards import require_investor
from backend.app.domain.plans.plan_catalog import PlanCatalog
from backend.app.domain.plans.plan_engine import PlanEngine, PlanActionResult
from backend.app.domain.settings.settings_service import SettingsService
from backend.app.schemas.plan import (
    PlanResponse, PlanInstanceResponse, PlanInstanceDetail, ActivatePlanRequest,
    CollectionResponse, PlanActionResponse
)

router = APIRouter(prefix="/plans", tags=["Plans"])


def _action_response(message: str, result: PlanActionResult) -> PlanActionResponse:
    return PlanActionResponse(
        message=message,
        plan_instance=PlanInstanceResponse.model_validate(result.instance),
        wallet_balance=result.account.wallet_balance,
        bonus_balance=result.account.bonus_balance,
    )


@router.get("", response_model=List[PlanResponse])
async def list_plans(
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Plan templates currently on offer."""
    plans = await PlanCatalog.list_available(db)
    return [PlanResponse.model_validate(plan) for plan in plans]


@router.get("/instances", response_model=List[PlanInstanceDetail])
async def list_my_instances(
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Own plan history (active and expired), newest first."""
    rows = await PlanEngine.list_instances(db, principal.account_id)
    return [
        PlanInstanceDetail(**PlanInstanceResponse.model_validate(instance).model_dump(), plan_name=name)
        for instance, name in rows
    ]


@router.post("/{plan_id}/activate", response_model=PlanActionResponse, status_code=status.HTTP_201_CREATED)
async def activate_plan(
    plan_id: int,
    data: ActivatePlanRequest,
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Buy a plan. Bonus balance is spent before wallet balance."""
    config = await SettingsService.fetch_snapshot(db)
    result = await PlanEngine.activate(db, principal.account_id, plan_id, data.invested_amount, config)
    return _action_response("Plan activated successfully", result)


@router.post("/collect", response_model=CollectionResponse)
async def collect_profit(
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Collect today's profit from the active plan (once every 24 hours)."""
    config = await SettingsService.fetch_snapshot(db)
    result = await PlanEngine.collect(db, principal.account_id, config)
    return CollectionResponse(
        message="Profit collected successfully",
        profit=result.profit,
        wallet_balance=result.account.wallet_balance,
        total_collected=result.instance.total_collected,
        next_collection_at=result.next_collection_at,
    )


@router.post("/upgrade/{new_plan_id}", response_model=PlanActionResponse)
async def upgrade_plan(
    new_plan_id: int,
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Upgrade the active plan to a higher tier, paying the difference from the wallet."""
    config = await SettingsService.fetch_snapshot(db)
    result = await PlanEngine.upgrade(db, principal.account_id, new_plan_id, config)
    return _action_response("Plan upgraded successfully", result)


@router.post("/instances/{instance_id}/renew", response_model=PlanActionResponse, status_code=status.HTTP_201_CREATED)
async def renew_plan(
    instance_id: int,
    principal: AuthenticatedPrincipal = Depends(require_investor),
    db: AsyncSession = Depends(get_db)
):
    """Buy an expired plan's template again as a new instance."""
    config = await SettingsService.fetch_snapshot(db)
    result = await PlanEngine.renew(db, principal.account_id, instance_id, config)
    return _action_response("Plan renewed successfully", result)
