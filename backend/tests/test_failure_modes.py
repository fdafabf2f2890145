"""
Failure Injection Tests.

Validates behavior when Redis or the commission unit of work fails.
"""

import pytest
from sqlalchemy import select

from backend.app.core.exceptions import ConcurrentModificationError
from backend.app.domain.plans.plan_engine import PlanEngine
from backend.app.domain.referrals.commission_service import CommissionService
from backend.app.models.dlq import DeadLetterQueue


@pytest.mark.asyncio
async def test_redis_outage_keeps_database_block_check(client, make_account, headers_for, redis_client_session, mocker):
    """Revocation lookups fail open; the is_blocked column still stops a blocked account."""
    active = await make_account()
    blocked = await make_account(is_blocked=True)
    mocker.patch.object(redis_client_session, "exists", side_effect=ConnectionError("redis unavailable"))

    assert (await client.get("/v1/auth/me", headers=headers_for(active))).status_code == 200
    assert (await client.get("/v1/auth/me", headers=headers_for(blocked))).status_code == 403


@pytest.mark.asyncio
async def test_commission_retries_after_conflict(db_session, make_account, make_plan, config, now, mocker):
    referrer = await make_account()
    invitee = await make_account(wallet=300.0, invited_by=referrer)
    plan = await make_plan()
    apply = mocker.patch.object(
        CommissionService, "_apply", side_effect=[ConcurrentModificationError("referrer account"), 45.0]
    )

    result = await PlanEngine.activate(db_session, invitee.id, plan.id, 300.0, config, now=now)

    assert result.commission_paid == 45.0
    assert apply.call_count == 2
    assert (await db_session.execute(select(DeadLetterQueue))).scalars().all() == []


@pytest.mark.asyncio
async def test_commission_gives_up_after_repeated_conflicts(db_session, make_account, make_plan, config, now, mocker):
    referrer = await make_account()
    invitee = await make_account(wallet=300.0, invited_by=referrer)
    plan = await make_plan()
    mocker.patch.object(CommissionService, "_apply", side_effect=ConcurrentModificationError("referrer account"))

    result = await PlanEngine.activate(db_session, invitee.id, plan.id, 300.0, config, now=now)

    assert result.commission_paid is None
    assert result.account.wallet_balance == 0.0
    dead = (await db_session.execute(select(DeadLetterQueue))).scalars().all()
    assert len(dead) == 1
    assert dead[0].error_message.startswith("ConcurrentModificationError")
    assert dead[0].attempts == 2


@pytest.mark.asyncio
async def test_error_responses_are_consistent(client, make_account, headers_for):
    account = await make_account()

    response = await client.post(
        "/v1/plans/999/activate", json={"invested_amount": 300.0}, headers=headers_for(account)
    )

    assert response.status_code == 404
    body = response.json()
    assert set(body) == {"error_code", "message", "details"}
    assert body["error_code"] == "ERR_PLAN_NOT_FOUND"
    assert body["details"] == {"resource": "Plan", "id": 999}


@pytest.mark.asyncio
async def test_health_reports_redis_outage(client, redis_client_session, mocker):
    assert (await client.get("/health")).json()["status"] == "healthy"

    mocker.patch.object(redis_client_session, "ping", side_effect=ConnectionError("redis unavailable"))
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["redis"] == "down"
