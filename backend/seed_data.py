"""
Database seeding script for a fresh installation.

Creates the admin account, the platform settings row and a starter plan
catalog. Run this script after the database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from backend.app.core.config import settings
from backend.app.core.security import get_password_hash
from backend.app.db.session import AsyncSessionLocal, engine, create_tables
from backend.app.domain.plans.plan_catalog import PlanCatalog
from backend.app.domain.settings.settings_service import SettingsService
from backend.app.models.account import Account
from backend.app.models.enums import AccountRole
from backend.app.models.plan import Plan
from backend.app.models.plan_enums import DailyYieldType
from backend.app.schemas.plan import PlanCreate


STARTER_PLANS = [
    PlanCreate(name="Starter", min_amount=300, max_amount=300,
               daily_yield_type=DailyYieldType.FIXED, daily_yield_value=25, duration_days=45),
    PlanCreate(name="Silver", min_amount=1000, max_amount=1000,
               daily_yield_type=DailyYieldType.FIXED, daily_yield_value=90, duration_days=45),
    PlanCreate(name="Gold", min_amount=3000, max_amount=10000,
               daily_yield_type=DailyYieldType.PERCENTAGE, daily_yield_value=9, duration_days=60),
]


async def seed_admin(db) -> None:
    result = await db.execute(
        select(Account).where(Account.username == settings.default_admin_username)
    )
    if result.scalar_one_or_none():
        print("Admin account already exists, skipping")
        return

    admin = Account(
        public_id="00001",
        name="Administrator",
        username=settings.default_admin_username,
        phone=settings.default_admin_phone,
        hashed_pin=get_password_hash(settings.default_admin_password),
        role=AccountRole.ADMIN,
    )
    db.add(admin)
    await db.commit()
    print(f"Created ADMIN account (username: {settings.default_admin_username})")


async def seed_plans(db) -> None:
    existing = (await db.execute(select(Plan.id).limit(1))).scalar_one_or_none()
    if existing is not None:
        print("Plan catalog already populated, skipping")
        return

    for data in STARTER_PLANS:
        plan = await PlanCatalog.create(db, data)
        print(f"Created plan '{plan.name}' ({plan.min_amount:g}-{plan.max_amount:g} {plan.currency})")


async def seed():
    """
    Seed a fresh database.

    Creates:
    - the ADMIN account (credentials from settings / environment)
    - the platform settings row with default rates and limits
    - three starter plan templates
    """
    await create_tables()

    async with AsyncSessionLocal() as db:
        print("Starting seed...")
        await seed_admin(db)

        config = await SettingsService.fetch_snapshot(db)
        print(
            f"Platform settings: welcome bonus {config.welcome_bonus:g}, "
            f"referral {config.referral_commission_rate:g}%, daily {config.daily_commission_rate:g}%"
        )

        await seed_plans(db)
        print("Seeding completed")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
