"""
Plan Catalog (Domain Logic).

Admin-authored plan templates. The engine only reads templates; edits here
never touch existing instances because instances snapshot invested amount
and daily profit at creation.
"""

import logging
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from backend.app.core.exceptions import PlanNotFoundError, InvalidPlanTemplateError, PlanInUseError
from backend.app.domain.unit_of_work import money
from backend.app.models.plan import Plan
from backend.app.models.plan_instance import PlanInstance
from backend.app.models.plan_enums import DailyYieldType, PlanInstanceStatus
from backend.app.schemas.plan import PlanCreate, PlanUpdate

logger = logging.getLogger(__name__)


def compute_daily_profit(plan: Plan, invested_amount: float) -> float:
    """Fixed yield pays the template value; percentage yield pays a share of the invested amount."""
    if plan.daily_yield_type == DailyYieldType.FIXED:
        return money(plan.daily_yield_value)
    return money(invested_amount * plan.daily_yield_value / 100)


NULLABLE_FIELDS = {"image_url"}


class PlanCatalog:

    @staticmethod
    def validate(
        min_amount: float,
        max_amount: float,
        daily_yield_type: DailyYieldType,
        daily_yield_value: float,
        duration_days: int,
    ) -> None:
        if min_amount <= 0:
            raise InvalidPlanTemplateError("Minimum amount must be greater than zero")
        if min_amount > max_amount:
            raise InvalidPlanTemplateError("Minimum amount cannot be greater than maximum amount")
        if daily_yield_value <= 0:
            raise InvalidPlanTemplateError("Daily yield must be greater than zero")
        if daily_yield_type == DailyYieldType.PERCENTAGE and daily_yield_value > 100:
            raise InvalidPlanTemplateError("Percentage yield cannot exceed 100")
        if duration_days <= 0:
            raise InvalidPlanTemplateError("Duration must be at least one day")

    @staticmethod
    async def list_available(db: AsyncSession) -> List[Plan]:
        """Templates currently offered to investors, cheapest first."""
        result = await db.execute(
            select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.min_amount, Plan.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_all(db: AsyncSession) -> List[Plan]:
        result = await db.execute(select(Plan).order_by(Plan.min_amount, Plan.id))
        return list(result.scalars().all())

    @staticmethod
    async def get(db: AsyncSession, plan_id: int, offered_only: bool = False) -> Plan:
        """
        Fetch a template.

        Args:
            offered_only: Treat retired templates as missing (new purchases)
        """
        plan = await db.get(Plan, plan_id)
        if plan is None or (offered_only and not plan.is_active):
            raise PlanNotFoundError(plan_id)
        return plan

    @staticmethod
    async def create(db: AsyncSession, data: PlanCreate) -> Plan:
        PlanCatalog.validate(
            data.min_amount, data.max_amount, data.daily_yield_type,
            data.daily_yield_value, data.duration_days
        )
        plan = Plan(**data.model_dump())
        db.add(plan)
        await db.commit()
        await db.refresh(plan)

        logger.info("Created plan template %s (%s)", plan.id, plan.name)
        return plan

    @staticmethod
    async def update(db: AsyncSession, plan_id: int, data: PlanUpdate) -> Plan:
        """Apply a partial update; the merged template must still be valid."""
        plan = await PlanCatalog.get(db, plan_id)
        changes = data.model_dump(exclude_unset=True)

        # Only image_url may be cleared
        cleared = sorted(key for key, value in changes.items() if value is None and key not in NULLABLE_FIELDS)
        if cleared:
            raise InvalidPlanTemplateError(f"Fields cannot be null: {', '.join(cleared)}")

        merged = {
            "min_amount": changes.get("min_amount", plan.min_amount),
            "max_amount": changes.get("max_amount", plan.max_amount),
            "daily_yield_type": changes.get("daily_yield_type", plan.daily_yield_type),
            "daily_yield_value": changes.get("daily_yield_value", plan.daily_yield_value),
            "duration_days": changes.get("duration_days", plan.duration_days),
        }
        PlanCatalog.validate(**merged)

        for key, value in changes.items():
            setattr(plan, key, value)

        await db.commit()
        await db.refresh(plan)
        return plan

    @staticmethod
    async def retire(db: AsyncSession, plan_id: int) -> Plan:
        """
        Stop offering a template.

        Raises:
            PlanInUseError: While any account holds an active instance of it.
        """
        plan = await PlanCatalog.get(db, plan_id)

        active_count = (await db.execute(
            select(func.count(PlanInstance.id)).where(
                PlanInstance.plan_id == plan_id,
                PlanInstance.status == PlanInstanceStatus.ACTIVE,
            )
        )).scalar() or 0
        if active_count:
            raise PlanInUseError(plan_id, active_count)

        plan.is_active = False
        await db.commit()
        await db.refresh(plan)

        logger.info("Retired plan template %s", plan_id)
        return plan
