"""
End-to-end API flows.

Deposit review, plan lifecycle, dashboard, withdrawals, plan catalog
administration and platform settings, driven through the HTTP surface.
"""

import pytest
from sqlalchemy import select

from backend.app.domain.referrals.commission_service import CommissionService
from backend.app.models.account import Account
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import LedgerEntryType


PLAN_PAYLOAD = {
    "name": "Starter",
    "min_amount": 300.0,
    "max_amount": 300.0,
    "daily_yield_type": "fixed",
    "daily_yield_value": 25.0,
    "duration_days": 45,
}


async def _create_plan(client, admin_headers, **overrides) -> dict:
    payload = {**PLAN_PAYLOAD, **overrides}
    response = await client.post("/v1/admin/plans", json=payload, headers=admin_headers)
    assert response.status_code == 201
    return response.json()


async def _funded_investor(client, make_account, admin_headers, headers_for, amount: float = 1000.0):
    """An account whose deposit has been approved through the review queue."""
    account = await make_account()
    user_headers = headers_for(account)
    deposit = await client.post(
        "/v1/account/deposits", json={"amount": amount, "proof_text": "MM ref 1"}, headers=user_headers
    )
    assert deposit.status_code == 201
    approved = await client.post(
        f"/v1/admin/deposits/{deposit.json()['id']}/approve", headers=admin_headers
    )
    assert approved.status_code == 200
    return account, user_headers


@pytest.mark.asyncio
async def test_deposit_review_queue(client, make_account, admin_account, headers_for):
    account = await make_account()
    admin_headers = headers_for(admin_account)

    response = await client.post(
        "/v1/account/deposits",
        json={"amount": 500.0, "proof_url": "https://cdn.example/receipt.png"},
        headers=headers_for(account),
    )
    assert response.status_code == 201
    entry = response.json()
    assert entry["status"] == "PENDING"
    assert entry["details"]["kind"] == "deposit"
    assert entry["details"]["proof_type"] == "image"

    queue = await client.get("/v1/admin/deposits/pending", headers=admin_headers)
    assert queue.status_code == 200
    assert [(item["id"], item["account_public_id"]) for item in queue.json()] == [(entry["id"], account.public_id)]

    approved = await client.post(
        f"/v1/admin/deposits/{entry['id']}/approve", json={"note": "Matched statement"}, headers=admin_headers
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    assert approved.json()["wallet_balance"] == 500.0

    twice = await client.post(f"/v1/admin/deposits/{entry['id']}/approve", headers=admin_headers)
    assert twice.status_code == 409
    assert twice.json()["error_code"] == "ERR_TRANSACTION_NOT_PENDING"

    assert (await client.get("/v1/admin/deposits/pending", headers=admin_headers)).json() == []


@pytest.mark.asyncio
async def test_deposit_without_proof(client, make_account, headers_for):
    account = await make_account()

    response = await client.post("/v1/account/deposits", json={"amount": 500.0}, headers=headers_for(account))

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_PROOF_REQUIRED"


@pytest.mark.asyncio
async def test_plan_lifecycle_and_dashboard(client, make_account, admin_account, headers_for):
    admin_headers = headers_for(admin_account)
    plan = await _create_plan(client, admin_headers)
    account, user_headers = await _funded_investor(client, make_account, admin_headers, headers_for)

    catalog = await client.get("/v1/plans", headers=user_headers)
    assert [item["id"] for item in catalog.json()] == [plan["id"]]

    activated = await client.post(
        f"/v1/plans/{plan['id']}/activate", json={"invested_amount": 300.0}, headers=user_headers
    )
    assert activated.status_code == 201
    assert activated.json()["wallet_balance"] == 700.0
    assert activated.json()["plan_instance"]["daily_profit"] == 25.0

    collected = await client.post("/v1/plans/collect", headers=user_headers)
    assert collected.status_code == 200
    assert collected.json()["profit"] == 25.0
    assert collected.json()["wallet_balance"] == 725.0

    too_soon = await client.post("/v1/plans/collect", headers=user_headers)
    assert too_soon.status_code == 409
    assert too_soon.json()["error_code"] == "ERR_COLLECTION_NOT_AVAILABLE"
    assert 0 < too_soon.json()["details"]["remaining_seconds"] <= 24 * 3600

    dashboard = await client.get("/v1/account/dashboard", headers=user_headers)
    assert dashboard.status_code == 200
    data = dashboard.json()
    assert data["wallet_balance"] == 725.0
    assert data["active_plan"]["plan_name"] == "Starter"
    assert data["next_collection_at"] is not None
    assert data["today_profit"] == 25.0
    assert data["month_profit"] == 25.0

    instances = await client.get("/v1/plans/instances", headers=user_headers)
    assert [item["status"] for item in instances.json()] == ["active"]

    check = await client.get("/v1/account/balance-check", headers=user_headers)
    assert check.json()["consistent"] is True
    assert check.json()["ledger_wallet_balance"] == 725.0


@pytest.mark.asyncio
async def test_second_activation_conflicts(client, make_account, admin_account, headers_for):
    admin_headers = headers_for(admin_account)
    plan = await _create_plan(client, admin_headers)
    account, user_headers = await _funded_investor(client, make_account, admin_headers, headers_for)
    await client.post(f"/v1/plans/{plan['id']}/activate", json={"invested_amount": 300.0}, headers=user_headers)

    response = await client.post(
        f"/v1/plans/{plan['id']}/activate", json={"invested_amount": 300.0}, headers=user_headers
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_ALREADY_HAS_ACTIVE_PLAN"


@pytest.mark.asyncio
async def test_upgrade_through_api(client, make_account, admin_account, headers_for):
    admin_headers = headers_for(admin_account)
    basic = await _create_plan(client, admin_headers)
    premium = await _create_plan(
        client, admin_headers, name="Premium", min_amount=1000.0, max_amount=1000.0, daily_yield_value=90.0
    )
    account, user_headers = await _funded_investor(client, make_account, admin_headers, headers_for, amount=2000.0)
    await client.post(f"/v1/plans/{basic['id']}/activate", json={"invested_amount": 300.0}, headers=user_headers)

    response = await client.post(f"/v1/plans/upgrade/{premium['id']}", headers=user_headers)

    assert response.status_code == 200
    assert response.json()["wallet_balance"] == 1000.0
    assert response.json()["plan_instance"]["plan_id"] == premium["id"]

    downgrade = await client.post(f"/v1/plans/upgrade/{basic['id']}", headers=user_headers)
    assert downgrade.status_code == 409
    assert downgrade.json()["error_code"] == "ERR_NOT_AN_UPGRADE"


@pytest.mark.asyncio
async def test_withdrawal_flow(client, make_account, admin_account, headers_for, db_session):
    admin_headers = headers_for(admin_account)
    plan = await _create_plan(client, admin_headers)
    account, user_headers = await _funded_investor(client, make_account, admin_headers, headers_for)

    early = await client.post(
        "/v1/account/withdrawals",
        json={"amount": 100.0, "destination": "0991234567", "holder_name": "Test Holder"},
        headers=user_headers,
    )
    assert early.status_code == 403
    assert early.json()["error_code"] == "ERR_WITHDRAWAL_NOT_ALLOWED"

    await client.post(f"/v1/plans/{plan['id']}/activate", json={"invested_amount": 300.0}, headers=user_headers)

    requested = await client.post(
        "/v1/account/withdrawals",
        json={"amount": 100.0, "destination": "0991234567", "holder_name": "Test Holder"},
        headers=user_headers,
    )
    assert requested.status_code == 201
    assert requested.json()["details"]["total_deducted"] == 103.0

    queue = (await client.get("/v1/admin/withdrawals/pending", headers=admin_headers)).json()
    assert queue[0]["account_has_activated_plan"] is True

    approved = await client.post(
        f"/v1/admin/withdrawals/{requested.json()['id']}/approve", headers=admin_headers
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    assert approved.json()["wallet_balance"] == 597.0

    stored = await db_session.get(Account, account.id)
    await db_session.refresh(stored)
    assert stored.wallet_balance == 597.0


@pytest.mark.asyncio
async def test_withdrawal_auto_rejected_over_http(client, make_account, admin_account, headers_for):
    admin_headers = headers_for(admin_account)
    account = await make_account(wallet=500.0, has_deposited=True, has_activated_plan=True)
    user_headers = headers_for(account)
    body = {"amount": 300.0, "destination": "0991234567", "holder_name": "Test Holder"}
    first = (await client.post("/v1/account/withdrawals", json=body, headers=user_headers)).json()
    second = (await client.post("/v1/account/withdrawals", json=body, headers=user_headers)).json()

    await client.post(f"/v1/admin/withdrawals/{first['id']}/approve", headers=admin_headers)
    response = await client.post(f"/v1/admin/withdrawals/{second['id']}/approve", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "REJECTED"
    assert response.json()["wallet_balance"] == 191.0

    logs = (await client.get(
        "/v1/admin/audit-logs", params={"action": "WITHDRAWAL_REJECTED"}, headers=admin_headers
    )).json()
    assert logs["total"] == 1
    assert logs["logs"][0]["target_public_id"] == account.public_id
    assert logs["logs"][0]["actor_id"] == admin_account.id
    assert logs["logs"][0]["details"]["transaction_id"] == second["id"]


@pytest.mark.asyncio
async def test_referral_commission_over_http(client, make_account, admin_account, headers_for, db_session):
    admin_headers = headers_for(admin_account)
    plan = await _create_plan(client, admin_headers)
    referrer = await make_account()
    invitee = await make_account(wallet=300.0, invited_by=referrer)

    await client.post(
        f"/v1/plans/{plan['id']}/activate", json={"invested_amount": 300.0}, headers=headers_for(invitee)
    )

    # Default platform rate for investment commission is 30%
    team = (await client.get("/v1/account/referrals", headers=headers_for(referrer))).json()
    assert team["total_commission"] == 90.0
    assert team["referrals"][0]["active_plan_name"] == "Starter"

    details = (await client.get(f"/v1/admin/accounts/{invitee.id}", headers=admin_headers)).json()
    assert details["referrer_public_id"] == referrer.public_id
    assert details["commission_generated_for_referrer"] == 90.0

    commissions = (await db_session.execute(
        select(LedgerEntry).where(LedgerEntry.entry_type == LedgerEntryType.COMMISSION)
    )).scalars().all()
    assert [(entry.account_id, entry.source_account_id) for entry in commissions] == [(referrer.id, invitee.id)]


@pytest.mark.asyncio
async def test_plan_catalog_administration(client, make_account, admin_account, headers_for):
    admin_headers = headers_for(admin_account)

    invalid = await client.post(
        "/v1/admin/plans", json={**PLAN_PAYLOAD, "min_amount": 500.0, "max_amount": 100.0}, headers=admin_headers
    )
    assert invalid.status_code == 400
    assert invalid.json()["error_code"] == "ERR_INVALID_PLAN"

    plan = await _create_plan(client, admin_headers)
    updated = await client.patch(
        f"/v1/admin/plans/{plan['id']}", json={"daily_yield_value": 30.0}, headers=admin_headers
    )
    assert updated.status_code == 200
    assert updated.json()["daily_yield_value"] == 30.0
    assert updated.json()["min_amount"] == 300.0

    account = await make_account(wallet=300.0)
    await client.post(
        f"/v1/plans/{plan['id']}/activate", json={"invested_amount": 300.0}, headers=headers_for(account)
    )

    in_use = await client.delete(f"/v1/admin/plans/{plan['id']}", headers=admin_headers)
    assert in_use.status_code == 409
    assert in_use.json()["error_code"] == "ERR_PLAN_IN_USE"

    unused = await _create_plan(client, admin_headers, name="Legacy")
    retired = await client.delete(f"/v1/admin/plans/{unused['id']}", headers=admin_headers)
    assert retired.status_code == 200
    assert retired.json()["is_active"] is False

    offered = (await client.get("/v1/plans", headers=headers_for(account))).json()
    assert [item["name"] for item in offered] == ["Starter"]
    everything = (await client.get("/v1/admin/plans", headers=admin_headers)).json()
    assert {item["name"] for item in everything} == {"Starter", "Legacy"}


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["name", "min_amount", "daily_yield_type", "duration_days"])
async def test_plan_patch_refuses_null_for_required_fields(client, admin_account, headers_for, field):
    admin_headers = headers_for(admin_account)
    plan = await _create_plan(client, admin_headers)

    response = await client.patch(f"/v1/admin/plans/{plan['id']}", json={field: None}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_INVALID_PLAN"
    assert field in response.json()["message"]
    unchanged = (await client.get("/v1/admin/plans", headers=admin_headers)).json()
    assert unchanged[0][field] == plan[field]


@pytest.mark.asyncio
async def test_plan_patch_can_clear_image(client, admin_account, headers_for):
    admin_headers = headers_for(admin_account)
    plan = await _create_plan(client, admin_headers, image_url="https://cdn.example/starter.png")

    response = await client.patch(f"/v1/admin/plans/{plan['id']}", json={"image_url": None}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["image_url"] is None


@pytest.mark.asyncio
async def test_settings_update_applies_to_next_request(client, make_account, admin_account, headers_for):
    admin_headers = headers_for(admin_account)
    current = (await client.get("/v1/admin/settings", headers=admin_headers)).json()

    payload = {
        **{key: value for key, value in current.items() if key != "updated_at"},
        "deposit_min": 200.0,
        "welcome_bonus": 0.0,
        "deposit_methods": [
            {"name": "M-Pesa", "holder_name": "Platform Ltd", "number": "841234567"},
            {"name": "e-Mola", "holder_name": "Platform Ltd", "number": "861234567", "is_active": False},
        ],
    }
    updated = await client.put("/v1/admin/settings", json=payload, headers=admin_headers)
    assert updated.status_code == 200
    assert updated.json()["deposit_min"] == 200.0

    public = (await client.get("/v1/settings/public")).json()
    assert public["deposit_min"] == 200.0
    assert [method["name"] for method in public["deposit_methods"]] == ["M-Pesa"]

    account = await make_account()
    below = await client.post(
        "/v1/account/deposits", json={"amount": 150.0, "proof_text": "ref"}, headers=headers_for(account)
    )
    assert below.status_code == 400
    assert below.json()["error_code"] == "ERR_AMOUNT_OUT_OF_RANGE"

    registered = await client.post(
        "/v1/auth/register", json={"name": "No Bonus", "username": "nobonus", "phone": "0997770001", "pin": "1234"}
    )
    me = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {registered.json()['access_token']}"})
    assert me.json()["bonus_balance"] == 0.0


@pytest.mark.asyncio
async def test_invalid_settings_are_refused(client, admin_account, headers_for):
    admin_headers = headers_for(admin_account)
    current = (await client.get("/v1/admin/settings", headers=admin_headers)).json()
    payload = {key: value for key, value in current.items() if key != "updated_at"}
    payload.update({"withdrawal_min": 500.0, "withdrawal_max": 100.0})

    response = await client.put("/v1/admin/settings", json=payload, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_INVALID_SETTINGS"


@pytest.mark.asyncio
async def test_admin_account_views(client, make_account, admin_account, headers_for):
    admin_headers = headers_for(admin_account)
    first = await make_account()
    await make_account()

    listing = (await client.get("/v1/admin/accounts", headers=admin_headers)).json()
    assert listing["total"] == 2
    assert admin_account.id not in [item["id"] for item in listing["accounts"]]

    found = await client.get("/v1/admin/accounts/search", params={"public_id": first.public_id}, headers=admin_headers)
    assert found.status_code == 200
    assert found.json()["id"] == first.id

    missing = await client.get("/v1/admin/accounts/search", params={"public_id": "99999"}, headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "ERR_ACCOUNT_NOT_FOUND"


@pytest.mark.asyncio
async def test_failed_commissions_are_listed(client, make_account, admin_account, headers_for, mocker):
    admin_headers = headers_for(admin_account)
    plan = await _create_plan(client, admin_headers)
    referrer = await make_account()
    invitee = await make_account(wallet=300.0, invited_by=referrer)
    mocker.patch.object(CommissionService, "_apply", side_effect=RuntimeError("lock timeout"))

    activated = await client.post(
        f"/v1/plans/{plan['id']}/activate", json={"invested_amount": 300.0}, headers=headers_for(invitee)
    )
    assert activated.status_code == 201

    dlq = (await client.get("/v1/admin/dlq", headers=admin_headers)).json()
    assert len(dlq) == 1
    assert dlq[0]["payload"]["referrer_id"] == referrer.id
