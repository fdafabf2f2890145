"""
Referral Commission Service (Domain Logic).

Pays a referrer a share of a downstream account's investment or collected
profit. Runs as its own unit of work after the triggering operation has
committed: a failure here rolls back only the commission, is logged, and
is parked in the dead letter queue for replay. It never raises.
"""

import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ConcurrentModificationError
from backend.app.domain.accounts.account_service import AccountService
from backend.app.domain.ledger.ledger_service import LedgerService
from backend.app.domain.settings.settings_service import ConfigSnapshot
from backend.app.domain.unit_of_work import money, as_utc, commit_or_conflict
from backend.app.models.account import Account
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.ledger_enums import LedgerEntryType, CommissionTrigger
from backend.app.models.plan_instance import PlanInstance
from backend.app.models.plan_enums import PlanInstanceStatus
from backend.app.schemas.ledger import CommissionDetails

logger = logging.getLogger(__name__)

COMMISSION_TASK = "referral_commission"
COMMISSION_ATTEMPTS = 2


def commission_rate(config: ConfigSnapshot, trigger: CommissionTrigger) -> float:
    """Investments and daily collections are paid at separately configured rates."""
    if trigger == CommissionTrigger.INVESTMENT:
        return config.referral_commission_rate
    return config.daily_commission_rate


class CommissionService:

    @staticmethod
    async def referrer_has_live_plan(db: AsyncSession, referrer: Account, now: datetime) -> bool:
        """True if the referrer holds an active instance that has not run past its end date."""
        if referrer.active_plan_instance_id is None:
            return False
        instance = await db.get(PlanInstance, referrer.active_plan_instance_id)
        if instance is None or instance.status != PlanInstanceStatus.ACTIVE:
            return False
        return as_utc(now) <= as_utc(instance.end_date)

    @staticmethod
    async def pay_commission(
        db: AsyncSession,
        referrer_id: Optional[int],
        source_account_id: int,
        source_public_id: str,
        base_amount: float,
        trigger: CommissionTrigger,
        config: ConfigSnapshot,
        now: datetime,
    ) -> Optional[float]:
        """
        Credit the referrer's wallet with base_amount * rate / 100.

        The caller must have committed its own work first.

        Returns:
            The commission paid, or None when nothing was paid (no referrer,
            gated out, zero amount, or failure).
        """
        if referrer_id is None:
            return None

        rate = commission_rate(config, trigger)
        last_error: Optional[Exception] = None
        attempts = 0

        for attempt in range(1, COMMISSION_ATTEMPTS + 1):
            attempts = attempt
            try:
                return await CommissionService._apply(
                    db, referrer_id, source_account_id, source_public_id,
                    base_amount, rate, trigger, config, now
                )
            except ConcurrentModificationError as exc:
                last_error = exc
                logger.warning(
                    "Commission for referrer %s conflicted on attempt %s", referrer_id, attempt
                )
            except Exception as exc:
                last_error = exc
                await db.rollback()
                logger.exception(
                    "Commission payment to referrer %s failed (source=%s, trigger=%s)",
                    referrer_id, source_public_id, trigger.value
                )
                break

        await CommissionService._dead_letter(db, referrer_id, attempts, last_error, {
            "referrer_id": referrer_id,
            "source_account_id": source_account_id,
            "source_public_id": source_public_id,
            "base_amount": base_amount,
            "rate": rate,
            "trigger": trigger.value,
            "occurred_at": as_utc(now).isoformat(),
        })
        return None

    @staticmethod
    async def _apply(
        db: AsyncSession,
        referrer_id: int,
        source_account_id: int,
        source_public_id: str,
        base_amount: float,
        rate: float,
        trigger: CommissionTrigger,
        config: ConfigSnapshot,
        now: datetime,
    ) -> Optional[float]:
        referrer = await AccountService.lock(db, referrer_id)

        if (
            trigger == CommissionTrigger.COLLECTION
            and config.daily_commission_requires_active_plan
            and not await CommissionService.referrer_has_live_plan(db, referrer, now)
        ):
            logger.debug("Referrer %s has no active plan; skipping daily commission", referrer_id)
            return None

        commission = money(base_amount * rate / 100)
        if commission <= 0:
            return None

        AccountService.credit_wallet(referrer, commission)
        LedgerService.record(
            db,
            account_id=referrer.id,
            entry_type=LedgerEntryType.COMMISSION,
            amount=commission,
            details=CommissionDetails(
                trigger=trigger,
                source_account_id=source_account_id,
                source_public_id=source_public_id,
                base_amount=money(base_amount),
                rate=rate,
            ),
            description=f"Referral commission from {source_public_id}",
            created_at=now,
            source_account_id=source_account_id,
        )
        await commit_or_conflict(db, "referrer account")

        logger.info(
            "Paid %.2f %s commission to %s from %s",
            commission, trigger.value, referrer.public_id, source_public_id
        )
        return commission

    @staticmethod
    async def _dead_letter(
        db: AsyncSession, referrer_id: int, attempts: int, error: Optional[Exception], payload: dict
    ) -> None:
        try:
            db.add(DeadLetterQueue(
                task_name=COMMISSION_TASK,
                referrer_account_id=referrer_id,
                error_message=f"{type(error).__name__}: {error}",
                payload=payload,
                status=DLQStatus.FAILED,
                attempts=attempts,
            ))
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Could not write commission failure to the dead letter queue: %s", payload)
