"""
Unit-of-work helpers shared by the domain services.

Every balance-changing operation loads its rows with a row lock (where the
dialect supports one), stages all changes, and commits exactly once.
Accounts and plan instances carry a version counter, so a writer holding a
stale copy fails at commit instead of overwriting a concurrent update.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.exceptions import ConcurrentModificationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def money(value: float) -> float:
    """Round a currency amount to cents."""
    return round(value + 0.0, 2)


async def commit_or_conflict(db: AsyncSession, resource: str = "account") -> None:
    """
    Commit the staged unit of work.

    Raises:
        ConcurrentModificationError: If a versioned row changed underneath us.
    """
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise ConcurrentModificationError(resource)
