"""
Database engine and session factory.

PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for local runs and
tests. Sessions keep loaded attributes after commit: the services commit a
unit of work and then hand the same Account and PlanInstance objects to the
response schemas and to the commission step that follows.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings


def _engine_options() -> dict:
    # SQLite does not accept queue pool sizing
    if settings.database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    **_engine_options(),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


def register_models() -> None:
    """Import every model module so its table is attached to Base.metadata."""
    from backend.app.models import (  # noqa: F401
        account, plan, plan_instance, ledger_entry, platform_settings, audit_log, dlq
    )


async def create_tables(bind=None) -> None:
    """Create any missing tables on `bind` (the application engine by default)."""
    register_models()
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """FastAPI dependency yielding one session per request."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
