"""
Ledger Service (Domain Logic).

Appends ledger entries and answers the read-side questions dashboards ask:
history, per-type sums over a date range, commission grouped by the
downstream account that generated it, and balances re-derived from the
ledger alone.

`record` only stages the entry; the calling operation owns the commit.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc

from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import LedgerEntryType, LedgerEntryStatus
from backend.app.schemas.ledger import dump_details, parse_details
from backend.app.domain.unit_of_work import money, as_utc


PROFIT_TYPES = (LedgerEntryType.COLLECTION, LedgerEntryType.COMMISSION)


class LedgerService:

    @staticmethod
    def record(
        db: AsyncSession,
        account_id: int,
        entry_type: LedgerEntryType,
        amount: float,
        details,
        description: str,
        created_at: datetime,
        status: LedgerEntryStatus = LedgerEntryStatus.APPROVED,
        source_account_id: Optional[int] = None,
    ) -> LedgerEntry:
        """
        Stage a new ledger entry.

        Args:
            amount: Non-negative magnitude; the direction comes from entry_type
            details: One of the schemas.ledger detail variants
        """
        entry = LedgerEntry(
            account_id=account_id,
            entry_type=entry_type,
            status=status,
            amount=money(abs(amount)),
            description=description,
            details=dump_details(details) if details is not None else None,
            source_account_id=source_account_id,
            created_at=created_at,
        )
        db.add(entry)
        return entry

    @staticmethod
    async def get_entry(db: AsyncSession, entry_id: int, for_update: bool = False) -> Optional[LedgerEntry]:
        query = select(LedgerEntry).where(LedgerEntry.id == entry_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def history(
        db: AsyncSession,
        account_id: int,
        entry_type: Optional[LedgerEntryType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[LedgerEntry], int]:
        """Newest-first history for one account, with the total row count."""
        filters = [LedgerEntry.account_id == account_id]
        if entry_type:
            filters.append(LedgerEntry.entry_type == entry_type)

        total = (await db.execute(select(func.count(LedgerEntry.id)).where(*filters))).scalar() or 0

        result = await db.execute(
            select(LedgerEntry)
            .where(*filters)
            .order_by(desc(LedgerEntry.created_at), desc(LedgerEntry.id))
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def sum_amount(
        db: AsyncSession,
        account_id: int,
        entry_types: Iterable[LedgerEntryType],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: LedgerEntryStatus = LedgerEntryStatus.APPROVED,
    ) -> float:
        """Sum of amounts for an account over [start, end)."""
        query = select(func.sum(LedgerEntry.amount)).where(
            LedgerEntry.account_id == account_id,
            LedgerEntry.status == status,
            LedgerEntry.entry_type.in_(list(entry_types)),
        )
        if start is not None:
            query = query.where(LedgerEntry.created_at >= start)
        if end is not None:
            query = query.where(LedgerEntry.created_at < end)

        total = (await db.execute(query)).scalar()
        return money(total or 0.0)

    @staticmethod
    async def commission_by_source(db: AsyncSession, account_id: int) -> Dict[int, float]:
        """Commission earned by `account_id`, grouped by the downstream account that generated it."""
        result = await db.execute(
            select(LedgerEntry.source_account_id, func.sum(LedgerEntry.amount))
            .where(
                LedgerEntry.account_id == account_id,
                LedgerEntry.entry_type == LedgerEntryType.COMMISSION,
                LedgerEntry.status == LedgerEntryStatus.APPROVED,
                LedgerEntry.source_account_id.is_not(None),
            )
            .group_by(LedgerEntry.source_account_id)
        )
        return {source_id: money(total or 0.0) for source_id, total in result.all()}

    @staticmethod
    async def commission_generated_by(db: AsyncSession, source_account_id: int) -> float:
        """Total commission `source_account_id` has generated for whoever referred it."""
        total = (await db.execute(
            select(func.sum(LedgerEntry.amount)).where(
                LedgerEntry.source_account_id == source_account_id,
                LedgerEntry.entry_type == LedgerEntryType.COMMISSION,
                LedgerEntry.status == LedgerEntryStatus.APPROVED,
            )
        )).scalar()
        return money(total or 0.0)

    @staticmethod
    async def profit_stats(db: AsyncSession, account_id: int, now: datetime) -> Dict[str, float]:
        """Collection + commission profit for today, yesterday and this month (UTC days)."""
        now = as_utc(now)
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        yesterday_start = today_start - timedelta(days=1)
        month_start = today_start.replace(day=1)
        if month_start.month == 12:
            next_month_start = month_start.replace(year=month_start.year + 1, month=1)
        else:
            next_month_start = month_start.replace(month=month_start.month + 1)

        return {
            "today_profit": await LedgerService.sum_amount(
                db, account_id, PROFIT_TYPES, today_start, today_start + timedelta(days=1)
            ),
            "yesterday_profit": await LedgerService.sum_amount(
                db, account_id, PROFIT_TYPES, yesterday_start, today_start
            ),
            "month_profit": await LedgerService.sum_amount(
                db, account_id, PROFIT_TYPES, month_start, next_month_start
            ),
            "total_referral_profit": await LedgerService.sum_amount(
                db, account_id, [LedgerEntryType.COMMISSION]
            ),
        }

    @staticmethod
    async def derive_balances(db: AsyncSession, account_id: int) -> Tuple[float, float]:
        """
        Recompute (wallet, bonus) from approved ledger entries alone.

        wallet = deposits - withdrawals(total_deducted) + collections + commissions
                 + lottery wins - investments(wallet part)
        bonus  = welcome bonuses - investments(bonus part)
        """
        result = await db.execute(
            select(LedgerEntry).where(
                LedgerEntry.account_id == account_id,
                LedgerEntry.status == LedgerEntryStatus.APPROVED,
            )
        )

        wallet = 0.0
        bonus = 0.0
        for entry in result.scalars().all():
            details = parse_details(entry.details)
            if entry.entry_type == LedgerEntryType.WELCOME_BONUS:
                bonus += entry.amount
            elif entry.entry_type == LedgerEntryType.WITHDRAWAL:
                wallet -= details.total_deducted if details else entry.amount
            elif entry.entry_type == LedgerEntryType.INVESTMENT:
                if details:
                    wallet -= details.wallet_used
                    bonus -= details.bonus_used
                else:
                    wallet -= entry.amount
            else:
                wallet += entry.amount

        return money(wallet), money(bonus)
