"""
Admin Plan Catalog API Endpoints.

Create, update and retire plan templates.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from backend.app.db.session import get_db
from backend.app.core.dependencies import AuthenticatedPrincipal
from backend.app.core.guards import require_admin
from backend.app.domain.plans.plan_catalog import PlanCatalog
from backend.app.schemas.plan import PlanCreate, PlanUpdate, PlanResponse
from backend.app.services.audit import log_admin_action, AuditAction

router = APIRouter(prefix="/admin/plans", tags=["Admin - Plans"])


@router.get("", response_model=List[PlanResponse])
async def list_all_plans(
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """All templates, including retired ones."""
    plans = await PlanCatalog.list_all(db)
    return [PlanResponse.model_validate(plan) for plan in plans]


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    data: PlanCreate,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    plan = await PlanCatalog.create(db, data)

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.PLAN_CREATED,
        details={"plan_id": plan.id, "name": plan.name, "min_amount": plan.min_amount}
    )

    return PlanResponse.model_validate(plan)


@router.patch("/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: int,
    data: PlanUpdate,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Edit a template. Existing instances keep their snapshotted terms."""
    plan = await PlanCatalog.update(db, plan_id, data)

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.PLAN_UPDATED,
        details={"plan_id": plan.id, "changes": data.model_dump(mode="json", exclude_unset=True)}
    )

    return PlanResponse.model_validate(plan)


@router.delete("/{plan_id}", response_model=PlanResponse)
async def retire_plan(
    plan_id: int,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Stop offering a template. Refused while any account has it active."""
    plan = await PlanCatalog.retire(db, plan_id)

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.PLAN_RETIRED,
        details={"plan_id": plan.id}
    )

    return PlanResponse.model_validate(plan)
