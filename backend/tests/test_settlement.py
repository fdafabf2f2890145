"""
Settlement Tests.

Deposit and withdrawal requests, and the admin review that settles them.
"""

import pytest

from backend.app.core.exceptions import (
    AmountOutOfRangeError,
    InsufficientFundsError,
    MissingProofError,
    TransactionNotFoundError,
    TransactionNotPendingError,
    WithdrawalNotAllowedError,
)
from backend.app.domain.settings.settings_service import SettingsService
from backend.app.domain.settlement.settlement_service import SettlementService, INSUFFICIENT_AT_APPROVAL_NOTE
from backend.app.models.ledger_enums import LedgerEntryType, LedgerEntryStatus, ProofType
from backend.app.schemas.ledger import DepositRequestCreate, WithdrawalRequestCreate


def _withdrawal(amount: float) -> WithdrawalRequestCreate:
    return WithdrawalRequestCreate(amount=amount, destination="0991234567", holder_name="Test Holder")


@pytest.fixture
def make_investor(make_account):
    """An account that has deposited and activated a plan, so it may withdraw."""
    async def _make(wallet: float):
        return await make_account(wallet=wallet, has_deposited=True, has_activated_plan=True)
    return _make


# Deposits

@pytest.mark.asyncio
async def test_deposit_request_is_pending_and_touches_no_balance(db_session, make_account, config, now):
    account = await make_account()

    entry = await SettlementService.request_deposit(
        db_session, account.id,
        DepositRequestCreate(amount=500.0, proof_url="https://cdn.example/receipt.jpg"),
        config, now=now
    )

    assert entry.status == LedgerEntryStatus.PENDING
    assert entry.entry_type == LedgerEntryType.DEPOSIT
    assert entry.details["proof_type"] == ProofType.IMAGE.value
    await db_session.refresh(account)
    assert account.wallet_balance == 0.0
    assert account.has_deposited is False


@pytest.mark.asyncio
async def test_deposit_text_proof(db_session, make_account, config, now):
    account = await make_account()

    entry = await SettlementService.request_deposit(
        db_session, account.id, DepositRequestCreate(amount=50.0, proof_text="  MM ref 7781  "), config, now=now
    )

    assert entry.details["proof_type"] == ProofType.TEXT.value
    assert entry.details["proof_text"] == "MM ref 7781"


@pytest.mark.asyncio
async def test_deposit_requires_proof(db_session, make_account, config, now):
    account = await make_account()

    with pytest.raises(MissingProofError):
        await SettlementService.request_deposit(
            db_session, account.id, DepositRequestCreate(amount=500.0, proof_text="   "), config, now=now
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [49.99, 25000.01])
async def test_deposit_range(db_session, make_account, config, now, amount):
    account = await make_account()

    with pytest.raises(AmountOutOfRangeError):
        await SettlementService.request_deposit(
            db_session, account.id, DepositRequestCreate(amount=amount, proof_text="ref"), config, now=now
        )


@pytest.mark.asyncio
async def test_deposit_approval_credits_wallet_once(db_session, make_account, admin_account, config, now):
    account = await make_account()
    entry = await SettlementService.request_deposit(
        db_session, account.id, DepositRequestCreate(amount=500.0, proof_text="ref"), config, now=now
    )

    outcome = await SettlementService.approve_deposit(db_session, entry.id, admin_account.id, "Checked", now=now)

    assert outcome.approved
    assert outcome.account.wallet_balance == 500.0
    assert outcome.account.has_deposited is True
    assert outcome.entry.reviewed_by_admin_id == admin_account.id
    assert outcome.entry.review_note == "Checked"

    with pytest.raises(TransactionNotPendingError):
        await SettlementService.approve_deposit(db_session, entry.id, admin_account.id, now=now)
    with pytest.raises(TransactionNotPendingError):
        await SettlementService.reject_deposit(db_session, entry.id, admin_account.id, now=now)

    await db_session.refresh(account)
    assert account.wallet_balance == 500.0


@pytest.mark.asyncio
async def test_deposit_rejection(db_session, make_account, admin_account, config, now):
    account = await make_account()
    entry = await SettlementService.request_deposit(
        db_session, account.id, DepositRequestCreate(amount=500.0, proof_text="ref"), config, now=now
    )

    outcome = await SettlementService.reject_deposit(db_session, entry.id, admin_account.id, "No such payment", now=now)

    assert not outcome.approved
    assert outcome.entry.status == LedgerEntryStatus.REJECTED
    assert outcome.account.wallet_balance == 0.0
    assert outcome.account.has_deposited is False


@pytest.mark.asyncio
async def test_review_checks_entry_type(db_session, make_investor, admin_account, config, now):
    account = await make_investor(wallet=1000.0)
    withdrawal = await SettlementService.request_withdrawal(db_session, account.id, _withdrawal(100.0), config, now=now)

    with pytest.raises(TransactionNotFoundError):
        await SettlementService.approve_deposit(db_session, withdrawal.id, admin_account.id, now=now)
    with pytest.raises(TransactionNotFoundError):
        await SettlementService.approve_withdrawal(db_session, 9999, admin_account.id, now=now)


# Withdrawals

@pytest.mark.asyncio
async def test_withdrawal_needs_deposit_and_plan(db_session, make_account, config, now):
    no_deposit = await make_account(wallet=1000.0, has_activated_plan=True)
    no_plan = await make_account(wallet=1000.0, has_deposited=True)

    with pytest.raises(WithdrawalNotAllowedError):
        await SettlementService.request_withdrawal(db_session, no_deposit.id, _withdrawal(100.0), config, now=now)
    with pytest.raises(WithdrawalNotAllowedError):
        await SettlementService.request_withdrawal(db_session, no_plan.id, _withdrawal(100.0), config, now=now)


@pytest.mark.asyncio
async def test_withdrawal_request_records_fee(db_session, make_investor, config, now):
    account = await make_investor(wallet=1000.0)

    entry = await SettlementService.request_withdrawal(db_session, account.id, _withdrawal(500.0), config, now=now)

    assert entry.status == LedgerEntryStatus.PENDING
    assert entry.amount == 500.0
    assert entry.details["fee"] == 15.0
    assert entry.details["total_deducted"] == 515.0
    await db_session.refresh(account)
    assert account.wallet_balance == 1000.0


@pytest.mark.asyncio
async def test_withdrawal_must_cover_fee(db_session, make_investor, config, now):
    account = await make_investor(wallet=500.0)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await SettlementService.request_withdrawal(db_session, account.id, _withdrawal(500.0), config, now=now)

    assert exc_info.value.details["required"] == 515.0


@pytest.mark.asyncio
async def test_withdrawal_below_minimum(db_session, make_investor, config, now):
    account = await make_investor(wallet=1000.0)

    with pytest.raises(AmountOutOfRangeError):
        await SettlementService.request_withdrawal(db_session, account.id, _withdrawal(99.0), config, now=now)


@pytest.mark.asyncio
async def test_withdrawal_approval_deducts_amount_plus_fee(db_session, make_investor, admin_account, config, now):
    account = await make_investor(wallet=1000.0)
    entry = await SettlementService.request_withdrawal(db_session, account.id, _withdrawal(500.0), config, now=now)

    outcome = await SettlementService.approve_withdrawal(db_session, entry.id, admin_account.id, now=now)

    assert outcome.approved
    assert outcome.account.wallet_balance == 485.0


@pytest.mark.asyncio
async def test_withdrawal_approval_uses_fee_recorded_at_request(db_session, make_investor, admin_account, config, now):
    """Raising the fee after the request does not change what approval debits."""
    account = await make_investor(wallet=1000.0)
    entry = await SettlementService.request_withdrawal(db_session, account.id, _withdrawal(500.0), config, now=now)
    assert entry.details["total_deducted"] == 515.0

    row = await SettingsService.get_or_create(db_session)
    row.withdrawal_fee_rate = 10.0
    await db_session.commit()
    assert (await SettingsService.fetch_snapshot(db_session)).withdrawal_fee_rate == 10.0

    outcome = await SettlementService.approve_withdrawal(db_session, entry.id, admin_account.id, now=now)

    assert outcome.approved
    assert outcome.account.wallet_balance == 485.0


@pytest.mark.asyncio
async def test_withdrawal_auto_rejected_when_wallet_drained(db_session, make_investor, admin_account, config, now):
    account = await make_investor(wallet=1000.0)
    first = await SettlementService.request_withdrawal(db_session, account.id, _withdrawal(600.0), config, now=now)
    second = await SettlementService.request_withdrawal(db_session, account.id, _withdrawal(600.0), config, now=now)

    approved = await SettlementService.approve_withdrawal(db_session, first.id, admin_account.id, now=now)
    assert approved.account.wallet_balance == 382.0

    outcome = await SettlementService.approve_withdrawal(db_session, second.id, admin_account.id, "ok", now=now)

    assert not outcome.approved
    assert outcome.entry.status == LedgerEntryStatus.REJECTED
    assert outcome.entry.review_note == INSUFFICIENT_AT_APPROVAL_NOTE
    assert outcome.account.wallet_balance == 382.0


@pytest.mark.asyncio
async def test_withdrawal_rejection_leaves_wallet(db_session, make_investor, admin_account, config, now):
    account = await make_investor(wallet=1000.0)
    entry = await SettlementService.request_withdrawal(db_session, account.id, _withdrawal(200.0), config, now=now)

    outcome = await SettlementService.reject_withdrawal(db_session, entry.id, admin_account.id, "Wrong number", now=now)

    assert outcome.entry.status == LedgerEntryStatus.REJECTED
    assert outcome.account.wallet_balance == 1000.0


@pytest.mark.asyncio
async def test_pending_queue_is_oldest_first(db_session, make_account, make_investor, admin_account, config, now):
    first = await make_account()
    second = await make_account()
    investor = await make_investor(wallet=1000.0)
    a = await SettlementService.request_deposit(db_session, first.id, DepositRequestCreate(amount=100.0, proof_text="a"), config, now=now)
    b = await SettlementService.request_deposit(db_session, second.id, DepositRequestCreate(amount=200.0, proof_text="b"), config, now=now)
    await SettlementService.request_withdrawal(db_session, investor.id, _withdrawal(100.0), config, now=now)
    await SettlementService.reject_deposit(db_session, a.id, admin_account.id, now=now)

    pending = await SettlementService.list_pending(db_session, LedgerEntryType.DEPOSIT)

    assert [(entry.id, account.public_id) for entry, account in pending] == [(b.id, second.public_id)]
    assert len(await SettlementService.list_pending(db_session, LedgerEntryType.WITHDRAWAL)) == 1
