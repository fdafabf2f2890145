"""
Plan Instance Engine (Domain Logic).

State machine for an account's investment plan: activation, daily
collection, upgrade, renewal and lazy expiry.

Every operation:
1. Locks the account (and its active instance) with a fresh read
2. Applies lazy expiry if the active instance is past its end date
3. Validates, mutates balances and instance state, appends ledger rows
4. Commits once (version counters reject a concurrent writer)
5. Pays referral commission in a separate, best-effort unit of work

The ConfigSnapshot must be fetched by the caller before calling in, so
settings row creation never commits in the middle of an operation.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from backend.app.core.exceptions import (
    AmountOutOfRangeError,
    AlreadyHasActivePlanError,
    NoActivePlanError,
    PlanExpiredError,
    CollectionNotYetAvailableError,
    NotAnUpgradeError,
    NotExpiredError,
    InstanceNotFoundError,
    ConcurrentModificationError,
)
from backend.app.domain.accounts.account_service import AccountService
from backend.app.domain.ledger.ledger_service import LedgerService
from backend.app.domain.plans.plan_catalog import PlanCatalog, compute_daily_profit
from backend.app.domain.referrals.commission_service import CommissionService
from backend.app.domain.settings.settings_service import ConfigSnapshot
from backend.app.domain.unit_of_work import utcnow, as_utc, money, commit_or_conflict
from backend.app.models.account import Account
from backend.app.models.ledger_enums import LedgerEntryType, CommissionTrigger, InvestmentReason
from backend.app.models.plan import Plan
from backend.app.models.plan_enums import PlanInstanceStatus, ExpiryReason, UpgradeComparison
from backend.app.models.plan_instance import PlanInstance
from backend.app.schemas.ledger import InvestmentDetails, CollectionDetails

logger = logging.getLogger(__name__)

COLLECTION_INTERVAL = timedelta(hours=24)
EXPIRY_ATTEMPTS = 2


@dataclass
class PlanActionResult:
    """Outcome of activate / upgrade / renew."""
    instance: PlanInstance
    account: Account
    charged: float
    commission_paid: Optional[float] = None


@dataclass
class CollectionResult:
    profit: float
    instance: PlanInstance
    account: Account
    next_collection_at: datetime
    commission_paid: Optional[float] = None


def is_past_end(instance: PlanInstance, now: datetime) -> bool:
    return as_utc(now) > as_utc(instance.end_date)


class PlanEngine:

    # Internal helpers

    @staticmethod
    async def _lock_instance(db: AsyncSession, instance_id: int) -> Optional[PlanInstance]:
        result = await db.execute(
            select(PlanInstance)
            .where(PlanInstance.id == instance_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _current_instance(db: AsyncSession, account: Account) -> Optional[PlanInstance]:
        """The account's active instance, locked. Clears a dangling reference."""
        if account.active_plan_instance_id is None:
            return None
        instance = await PlanEngine._lock_instance(db, account.active_plan_instance_id)
        if instance is None or instance.status != PlanInstanceStatus.ACTIVE:
            account.active_plan_instance_id = None
            return None
        return instance

    @staticmethod
    def _expire(instance: PlanInstance, account: Account, now: datetime, reason: ExpiryReason) -> None:
        instance.status = PlanInstanceStatus.EXPIRED
        instance.expiry_reason = reason
        instance.expired_at = now
        if account.active_plan_instance_id == instance.id:
            account.active_plan_instance_id = None

    @staticmethod
    async def _settle_expiry(db: AsyncSession, account: Account, instance: PlanInstance, now: datetime) -> None:
        """Persist a natural expiry on its own, before the caller continues or fails."""
        PlanEngine._expire(instance, account, now, ExpiryReason.ENDED)
        await commit_or_conflict(db, "plan instance")
        logger.info("Plan instance %s of account %s expired", instance.id, account.public_id)

    @staticmethod
    def _new_instance(plan: Plan, account_id: int, invested_amount: float, now: datetime) -> PlanInstance:
        return PlanInstance(
            account_id=account_id,
            plan_id=plan.id,
            invested_amount=money(invested_amount),
            daily_profit=compute_daily_profit(plan, invested_amount),
            start_date=now,
            end_date=now + timedelta(days=plan.duration_days),
            last_collected_date=None,
            total_collected=0.0,
            status=PlanInstanceStatus.ACTIVE,
        )

    @staticmethod
    async def _install(db: AsyncSession, account: Account, instance: PlanInstance) -> None:
        db.add(instance)
        await db.flush()
        account.active_plan_instance_id = instance.id
        account.has_activated_plan = True

    @staticmethod
    async def _reload(db: AsyncSession, *objects) -> None:
        # A failed commission rolls the session back and expires everything
        for obj in objects:
            await db.refresh(obj)

    # Operations

    @staticmethod
    async def activate(
        db: AsyncSession,
        account_id: int,
        plan_id: int,
        invested_amount: float,
        config: ConfigSnapshot,
        now: Optional[datetime] = None,
    ) -> PlanActionResult:
        """
        Buy a plan, spending bonus balance before wallet balance.

        Raises:
            PlanNotFoundError, AmountOutOfRangeError, AlreadyHasActivePlanError,
            InsufficientFundsError
        """
        now = now or utcnow()
        plan = await PlanCatalog.get(db, plan_id, offered_only=True)

        invested = money(invested_amount)
        if invested < plan.min_amount or invested > plan.max_amount:
            raise AmountOutOfRangeError(invested, plan.min_amount, plan.max_amount)

        account = await AccountService.lock(db, account_id)
        current = await PlanEngine._current_instance(db, account)
        if current is not None:
            if not is_past_end(current, now):
                raise AlreadyHasActivePlanError(current.id)
            await PlanEngine._settle_expiry(db, account, current, now)

        bonus_used, wallet_used = AccountService.spend_bonus_first(account, invested)

        instance = PlanEngine._new_instance(plan, account.id, invested, now)
        await PlanEngine._install(db, account, instance)

        LedgerService.record(
            db,
            account_id=account.id,
            entry_type=LedgerEntryType.INVESTMENT,
            amount=invested,
            details=InvestmentDetails(
                reason=InvestmentReason.ACTIVATION,
                plan_id=plan.id,
                plan_name=plan.name,
                plan_instance_id=instance.id,
                bonus_used=bonus_used,
                wallet_used=wallet_used,
            ),
            description=f"Activated plan {plan.name}",
            created_at=now,
        )
        await commit_or_conflict(db)

        logger.info(
            "Account %s activated plan %s for %.2f (bonus %.2f, wallet %.2f)",
            account.public_id, plan.id, invested, bonus_used, wallet_used
        )

        commission = await CommissionService.pay_commission(
            db,
            referrer_id=account.invited_by_id,
            source_account_id=account.id,
            source_public_id=account.public_id,
            base_amount=invested,
            trigger=CommissionTrigger.INVESTMENT,
            config=config,
            now=now,
        )
        await PlanEngine._reload(db, account, instance)
        return PlanActionResult(instance=instance, account=account, charged=invested, commission_paid=commission)

    @staticmethod
    async def collect(
        db: AsyncSession,
        account_id: int,
        config: ConfigSnapshot,
        now: Optional[datetime] = None,
    ) -> CollectionResult:
        """
        Pay the active instance's daily profit into the wallet.

        The first collection is always allowed; later ones need 24 hours
        since the previous collection.

        Raises:
            NoActivePlanError, PlanExpiredError (after persisting the expiry),
            CollectionNotYetAvailableError
        """
        now = as_utc(now or utcnow())
        account = await AccountService.lock(db, account_id)
        instance = await PlanEngine._current_instance(db, account)
        if instance is None:
            raise NoActivePlanError()

        if is_past_end(instance, now):
            end_date = as_utc(instance.end_date)
            instance_id = instance.id
            await PlanEngine._settle_expiry(db, account, instance, now)
            raise PlanExpiredError(instance_id, end_date)

        last_collected = as_utc(instance.last_collected_date)
        if last_collected is not None:
            next_at = last_collected + COLLECTION_INTERVAL
            if now < next_at:
                remaining = math.ceil((next_at - now).total_seconds())
                raise CollectionNotYetAvailableError(remaining, next_at)

        profit = money(instance.daily_profit)
        AccountService.credit_wallet(account, profit)
        instance.last_collected_date = now
        instance.total_collected = money(instance.total_collected + profit)

        LedgerService.record(
            db,
            account_id=account.id,
            entry_type=LedgerEntryType.COLLECTION,
            amount=profit,
            details=CollectionDetails(plan_instance_id=instance.id),
            description="Daily profit collected",
            created_at=now,
        )
        await commit_or_conflict(db)

        logger.info("Account %s collected %.2f from instance %s", account.public_id, profit, instance.id)

        commission = await CommissionService.pay_commission(
            db,
            referrer_id=account.invited_by_id,
            source_account_id=account.id,
            source_public_id=account.public_id,
            base_amount=profit,
            trigger=CommissionTrigger.COLLECTION,
            config=config,
            now=now,
        )
        await PlanEngine._reload(db, account, instance)
        return CollectionResult(
            profit=profit,
            instance=instance,
            account=account,
            next_collection_at=now + COLLECTION_INTERVAL,
            commission_paid=commission,
        )

    @staticmethod
    async def upgrade(
        db: AsyncSession,
        account_id: int,
        new_plan_id: int,
        config: ConfigSnapshot,
        now: Optional[datetime] = None,
    ) -> PlanActionResult:
        """
        Move to a higher-tier template, paying the difference from the wallet.

        The baseline is the current invested amount, or the current template
        floor when the platform is configured for template comparison. The
        new instance is created at the new template's floor; the old one
        expires as UPGRADED. Upgrades pay no referral commission.

        Raises:
            PlanNotFoundError, NoActivePlanError, NotAnUpgradeError,
            InsufficientFundsError
        """
        now = now or utcnow()
        new_plan = await PlanCatalog.get(db, new_plan_id, offered_only=True)

        account = await AccountService.lock(db, account_id)
        current = await PlanEngine._current_instance(db, account)
        if current is None:
            raise NoActivePlanError()
        if is_past_end(current, now):
            await PlanEngine._settle_expiry(db, account, current, now)
            raise NoActivePlanError()

        if config.upgrade_comparison == UpgradeComparison.TEMPLATE_FLOOR:
            current_plan = await PlanCatalog.get(db, current.plan_id)
            baseline = current_plan.min_amount
        else:
            baseline = current.invested_amount

        if new_plan.min_amount <= baseline:
            raise NotAnUpgradeError(baseline, new_plan.min_amount)

        price = money(new_plan.min_amount - baseline)
        AccountService.debit_wallet(account, price)

        previous_id = current.id
        PlanEngine._expire(current, account, now, ExpiryReason.UPGRADED)

        instance = PlanEngine._new_instance(new_plan, account.id, new_plan.min_amount, now)
        await PlanEngine._install(db, account, instance)

        LedgerService.record(
            db,
            account_id=account.id,
            entry_type=LedgerEntryType.INVESTMENT,
            amount=price,
            details=InvestmentDetails(
                reason=InvestmentReason.UPGRADE,
                plan_id=new_plan.id,
                plan_name=new_plan.name,
                plan_instance_id=instance.id,
                bonus_used=0.0,
                wallet_used=price,
                previous_instance_id=previous_id,
            ),
            description=f"Upgraded to plan {new_plan.name}",
            created_at=now,
        )
        await commit_or_conflict(db)

        logger.info(
            "Account %s upgraded instance %s to plan %s for %.2f",
            account.public_id, previous_id, new_plan.id, price
        )
        return PlanActionResult(instance=instance, account=account, charged=price)

    @staticmethod
    async def renew(
        db: AsyncSession,
        account_id: int,
        instance_id: int,
        config: ConfigSnapshot,
        now: Optional[datetime] = None,
    ) -> PlanActionResult:
        """
        Buy the template of an expired instance again, at its floor, from the wallet.

        Always creates a new instance; the expired one stays expired.

        Raises:
            InstanceNotFoundError, NotExpiredError, AlreadyHasActivePlanError,
            PlanNotFoundError (template retired), InsufficientFundsError
        """
        now = now or utcnow()
        account = await AccountService.lock(db, account_id)

        previous = await PlanEngine._lock_instance(db, instance_id)
        if previous is None or previous.account_id != account.id:
            raise InstanceNotFoundError(instance_id)

        if previous.status == PlanInstanceStatus.ACTIVE and is_past_end(previous, now):
            await PlanEngine._settle_expiry(db, account, previous, now)
        if previous.status != PlanInstanceStatus.EXPIRED:
            raise NotExpiredError(instance_id)

        current = await PlanEngine._current_instance(db, account)
        if current is not None:
            if not is_past_end(current, now):
                raise AlreadyHasActivePlanError(current.id)
            await PlanEngine._settle_expiry(db, account, current, now)

        plan = await PlanCatalog.get(db, previous.plan_id, offered_only=True)
        cost = money(plan.min_amount)
        AccountService.debit_wallet(account, cost)

        instance = PlanEngine._new_instance(plan, account.id, cost, now)
        await PlanEngine._install(db, account, instance)

        LedgerService.record(
            db,
            account_id=account.id,
            entry_type=LedgerEntryType.INVESTMENT,
            amount=cost,
            details=InvestmentDetails(
                reason=InvestmentReason.RENEWAL,
                plan_id=plan.id,
                plan_name=plan.name,
                plan_instance_id=instance.id,
                bonus_used=0.0,
                wallet_used=cost,
                previous_instance_id=previous.id,
            ),
            description=f"Renewed plan {plan.name}",
            created_at=now,
        )
        await commit_or_conflict(db)

        logger.info("Account %s renewed instance %s as %s", account.public_id, instance_id, instance.id)

        commission = await CommissionService.pay_commission(
            db,
            referrer_id=account.invited_by_id,
            source_account_id=account.id,
            source_public_id=account.public_id,
            base_amount=cost,
            trigger=CommissionTrigger.INVESTMENT,
            config=config,
            now=now,
        )
        await PlanEngine._reload(db, account, instance)
        return PlanActionResult(instance=instance, account=account, charged=cost, commission_paid=commission)

    @staticmethod
    async def refresh_expiry(
        db: AsyncSession,
        account_id: int,
        now: Optional[datetime] = None,
    ) -> Optional[PlanInstance]:
        """
        Apply lazy expiry for read paths (dashboard, instance history).

        Returns:
            The account's active instance after expiry, or None.
        """
        now = now or utcnow()
        for attempt in range(1, EXPIRY_ATTEMPTS + 1):
            account = await AccountService.lock(db, account_id)
            instance = await PlanEngine._current_instance(db, account)
            if instance is None:
                if db.dirty:
                    await commit_or_conflict(db)
                return None
            if not is_past_end(instance, now):
                return instance
            try:
                await PlanEngine._settle_expiry(db, account, instance, now)
                return None
            except ConcurrentModificationError:
                # Another request touched the account; re-read and decide again
                if attempt == EXPIRY_ATTEMPTS:
                    raise
        return None

    @staticmethod
    async def list_instances(
        db: AsyncSession,
        account_id: int,
        now: Optional[datetime] = None,
    ) -> List[Tuple[PlanInstance, str]]:
        """Newest-first instance history with template names, after lazy expiry."""
        await PlanEngine.refresh_expiry(db, account_id, now)
        result = await db.execute(
            select(PlanInstance, Plan.name)
            .join(Plan, Plan.id == PlanInstance.plan_id)
            .where(PlanInstance.account_id == account_id)
            .order_by(desc(PlanInstance.start_date), desc(PlanInstance.id))
        )
        return [(instance, name) for instance, name in result.all()]
