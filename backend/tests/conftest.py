"""
Shared fixtures: an in-memory SQLite database, an in-process Redis stand-in,
and factories for accounts and plan templates.
"""

import itertools
import pytest
from datetime import datetime, timezone
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, create_tables, Base
from backend.app.core.security import get_password_hash
from backend.app.core.jwt import create_account_token
from backend.app.domain.settings.settings_service import ConfigSnapshot
from backend.app.models.account import Account
from backend.app.models.enums import AccountRole
from backend.app.models.plan import Plan
from backend.app.models.plan_enums import DailyYieldType
import backend.app.core.redis_client as redis_client_module

TEST_PIN = "1234"

# One shared connection so every session sees the same in-memory database
engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class MockRedis:
    """The subset of redis.asyncio.Redis used for session revocation."""

    def __init__(self):
        self.store = {}

    async def ping(self):
        return True

    async def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    async def exists(self, key):
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store.clear()

    async def aclose(self):
        self.store.clear()


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Fresh tables and an empty revocation store for every test."""
    await create_tables(engine)
    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def second_session():
    """An independent session, for racing a second request against the first."""
    async with TestingSessionLocal() as session:
        yield session


# Domain fixtures

@pytest.fixture(scope="session")
def pin_hash():
    # bcrypt is slow; hash once for the whole run
    return get_password_hash(TEST_PIN)


@pytest.fixture
def now():
    return datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def config():
    """Platform settings used by engine tests: 15% on investments, 5% on daily profit."""
    return ConfigSnapshot(
        deposit_min=50.0,
        deposit_max=25000.0,
        withdrawal_min=100.0,
        withdrawal_max=25000.0,
        withdrawal_fee_rate=3.0,
        welcome_bonus=50.0,
        referral_commission_rate=15.0,
        daily_commission_rate=5.0,
        daily_commission_requires_active_plan=True,
    )


@pytest.fixture
def make_account(db_session, pin_hash):
    counter = itertools.count(10000)

    async def _make(
        wallet: float = 0.0,
        bonus: float = 0.0,
        invited_by: Account = None,
        role: AccountRole = AccountRole.USER,
        **overrides
    ) -> Account:
        number = next(counter)
        fields = {
            "public_id": str(number),
            "name": f"Investor {number}",
            "username": f"user{number}",
            "phone": f"84{number}",
            "hashed_pin": pin_hash,
            "role": role,
            "wallet_balance": wallet,
            "bonus_balance": bonus,
            "invited_by_id": invited_by.id if invited_by else None,
        }
        # Any column above may be overridden, e.g. name="Admin"
        fields.update(overrides)
        account = Account(**fields)
        db_session.add(account)
        await db_session.commit()
        await db_session.refresh(account)
        return account

    return _make


@pytest.fixture
def make_plan(db_session):
    async def _make(
        name: str = "Starter",
        min_amount: float = 300.0,
        max_amount: float = 300.0,
        yield_type: DailyYieldType = DailyYieldType.FIXED,
        yield_value: float = 25.0,
        duration_days: int = 45,
        **overrides
    ) -> Plan:
        plan = Plan(
            name=name,
            min_amount=min_amount,
            max_amount=max_amount,
            daily_yield_type=yield_type,
            daily_yield_value=yield_value,
            duration_days=duration_days,
            **overrides
        )
        db_session.add(plan)
        await db_session.commit()
        await db_session.refresh(plan)
        return plan

    return _make


def auth_headers(account: Account) -> dict:
    return {"Authorization": f"Bearer {create_account_token(account)}"}


@pytest.fixture
def headers_for():
    """Bearer headers for an account, without going through /auth/login."""
    return auth_headers


@pytest.fixture
async def admin_account(make_account):
    return await make_account(role=AccountRole.ADMIN, name="Admin")
