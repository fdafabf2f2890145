"""
Settlement Service (Domain Logic).

Deposit and withdrawal requests enter the ledger as PENDING entries and
touch no balance. An admin review settles each one exactly once:
- deposit approval credits the wallet and marks the account as depositor
- withdrawal approval debits the total_deducted stored at request time
  (amount + fee), so a later fee change never alters a pending request
- a withdrawal the wallet can no longer cover is flipped to REJECTED
  instead of failing, so it never stays pending forever
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.core.exceptions import (
    AmountOutOfRangeError,
    InsufficientFundsError,
    MissingProofError,
    TransactionNotFoundError,
    TransactionNotPendingError,
    WithdrawalNotAllowedError,
)
from backend.app.domain.accounts.account_service import AccountService
from backend.app.domain.ledger.ledger_service import LedgerService
from backend.app.domain.settings.settings_service import ConfigSnapshot
from backend.app.domain.unit_of_work import utcnow, money, commit_or_conflict
from backend.app.models.account import Account
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import LedgerEntryType, LedgerEntryStatus, ProofType
from backend.app.schemas.ledger import (
    DepositDetails,
    DepositRequestCreate,
    WithdrawalDetails,
    WithdrawalRequestCreate,
    parse_details,
)

logger = logging.getLogger(__name__)

INSUFFICIENT_AT_APPROVAL_NOTE = "Rejected automatically: insufficient balance at approval time"


@dataclass
class SettlementOutcome:
    entry: LedgerEntry
    account: Account

    @property
    def approved(self) -> bool:
        return self.entry.status == LedgerEntryStatus.APPROVED


def _check_range(amount: float, minimum: float, maximum: float) -> None:
    if amount < minimum or amount > maximum:
        raise AmountOutOfRangeError(amount, minimum, maximum)


class SettlementService:

    # Requests (investor side)

    @staticmethod
    async def request_deposit(
        db: AsyncSession,
        account_id: int,
        data: DepositRequestCreate,
        config: ConfigSnapshot,
        now: Optional[datetime] = None,
    ) -> LedgerEntry:
        """
        Record a pending deposit with its proof of payment.

        Raises:
            AmountOutOfRangeError, MissingProofError
        """
        now = now or utcnow()
        amount = money(data.amount)
        _check_range(amount, config.deposit_min, config.deposit_max)

        proof_url = (data.proof_url or "").strip() or None
        proof_text = (data.proof_text or "").strip() or None
        if proof_url:
            details = DepositDetails(proof_type=ProofType.IMAGE, proof_url=proof_url, proof_text=proof_text)
        elif proof_text:
            details = DepositDetails(proof_type=ProofType.TEXT, proof_text=proof_text)
        else:
            raise MissingProofError()

        account = await AccountService.get(db, account_id)
        entry = LedgerService.record(
            db,
            account_id=account.id,
            entry_type=LedgerEntryType.DEPOSIT,
            amount=amount,
            details=details,
            description="Deposit request",
            created_at=now,
            status=LedgerEntryStatus.PENDING,
        )
        await db.commit()
        await db.refresh(entry)

        logger.info("Deposit request %s of %.2f by %s", entry.id, amount, account.public_id)
        return entry

    @staticmethod
    async def request_withdrawal(
        db: AsyncSession,
        account_id: int,
        data: WithdrawalRequestCreate,
        config: ConfigSnapshot,
        now: Optional[datetime] = None,
    ) -> LedgerEntry:
        """
        Record a pending withdrawal. Nothing is debited until approval.

        Raises:
            WithdrawalNotAllowedError, AmountOutOfRangeError, InsufficientFundsError
        """
        now = now or utcnow()
        account = await AccountService.get(db, account_id)

        if not account.has_deposited:
            raise WithdrawalNotAllowedError("You must make a deposit before withdrawing")
        if not account.has_activated_plan:
            raise WithdrawalNotAllowedError("You must activate a plan before withdrawing")

        amount = money(data.amount)
        _check_range(amount, config.withdrawal_min, config.withdrawal_max)

        fee = money(amount * config.withdrawal_fee_rate / 100)
        total_deducted = money(amount + fee)
        if account.wallet_balance < total_deducted:
            raise InsufficientFundsError(required=total_deducted, available=money(account.wallet_balance))

        entry = LedgerService.record(
            db,
            account_id=account.id,
            entry_type=LedgerEntryType.WITHDRAWAL,
            amount=amount,
            details=WithdrawalDetails(
                destination=data.destination,
                holder_name=data.holder_name,
                fee=fee,
                total_deducted=total_deducted,
            ),
            description="Withdrawal request",
            created_at=now,
            status=LedgerEntryStatus.PENDING,
        )
        await db.commit()
        await db.refresh(entry)

        logger.info(
            "Withdrawal request %s of %.2f (fee %.2f) by %s", entry.id, amount, fee, account.public_id
        )
        return entry

    # Review (admin side)

    @staticmethod
    async def _load_pending(db: AsyncSession, entry_id: int, entry_type: LedgerEntryType) -> LedgerEntry:
        entry = await LedgerService.get_entry(db, entry_id, for_update=True)
        if entry is None or entry.entry_type != entry_type:
            raise TransactionNotFoundError(entry_id)
        if entry.status != LedgerEntryStatus.PENDING:
            raise TransactionNotPendingError(entry_id, entry.status.value)
        return entry

    @staticmethod
    def _mark(entry: LedgerEntry, status: LedgerEntryStatus, admin_id: int, note: Optional[str], now: datetime) -> None:
        entry.status = status
        entry.reviewed_by_admin_id = admin_id
        entry.reviewed_at = now
        entry.review_note = note

    @staticmethod
    async def approve_deposit(
        db: AsyncSession,
        entry_id: int,
        admin_id: int,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SettlementOutcome:
        now = now or utcnow()
        entry = await SettlementService._load_pending(db, entry_id, LedgerEntryType.DEPOSIT)
        account = await AccountService.lock(db, entry.account_id)

        AccountService.credit_wallet(account, entry.amount)
        account.has_deposited = True
        SettlementService._mark(entry, LedgerEntryStatus.APPROVED, admin_id, note, now)

        await commit_or_conflict(db)
        logger.info("Deposit %s approved by admin %s", entry_id, admin_id)
        return SettlementOutcome(entry=entry, account=account)

    @staticmethod
    async def reject_deposit(
        db: AsyncSession,
        entry_id: int,
        admin_id: int,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SettlementOutcome:
        now = now or utcnow()
        entry = await SettlementService._load_pending(db, entry_id, LedgerEntryType.DEPOSIT)
        account = await AccountService.get(db, entry.account_id)

        SettlementService._mark(entry, LedgerEntryStatus.REJECTED, admin_id, note, now)
        await db.commit()

        logger.info("Deposit %s rejected by admin %s", entry_id, admin_id)
        return SettlementOutcome(entry=entry, account=account)

    @staticmethod
    async def approve_withdrawal(
        db: AsyncSession,
        entry_id: int,
        admin_id: int,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SettlementOutcome:
        """
        Debit the stored total_deducted and settle the request.

        If the wallet no longer covers it, the entry is rejected instead.
        """
        now = now or utcnow()
        entry = await SettlementService._load_pending(db, entry_id, LedgerEntryType.WITHDRAWAL)
        details = parse_details(entry.details)
        total_deducted = details.total_deducted if details else entry.amount

        account = await AccountService.lock(db, entry.account_id)

        if account.wallet_balance < total_deducted:
            SettlementService._mark(entry, LedgerEntryStatus.REJECTED, admin_id, INSUFFICIENT_AT_APPROVAL_NOTE, now)
            await commit_or_conflict(db)
            logger.warning(
                "Withdrawal %s auto-rejected: wallet %.2f < %.2f",
                entry_id, account.wallet_balance, total_deducted
            )
            return SettlementOutcome(entry=entry, account=account)

        AccountService.debit_wallet(account, total_deducted)
        SettlementService._mark(entry, LedgerEntryStatus.APPROVED, admin_id, note, now)

        await commit_or_conflict(db)
        logger.info("Withdrawal %s approved by admin %s (debited %.2f)", entry_id, admin_id, total_deducted)
        return SettlementOutcome(entry=entry, account=account)

    @staticmethod
    async def reject_withdrawal(
        db: AsyncSession,
        entry_id: int,
        admin_id: int,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SettlementOutcome:
        now = now or utcnow()
        entry = await SettlementService._load_pending(db, entry_id, LedgerEntryType.WITHDRAWAL)
        account = await AccountService.get(db, entry.account_id)

        SettlementService._mark(entry, LedgerEntryStatus.REJECTED, admin_id, note, now)
        await db.commit()

        logger.info("Withdrawal %s rejected by admin %s", entry_id, admin_id)
        return SettlementOutcome(entry=entry, account=account)

    @staticmethod
    async def list_pending(db: AsyncSession, entry_type: LedgerEntryType) -> List[Tuple[LedgerEntry, Account]]:
        """Oldest-first review queue with the owning account."""
        result = await db.execute(
            select(LedgerEntry, Account)
            .join(Account, Account.id == LedgerEntry.account_id)
            .where(
                LedgerEntry.entry_type == entry_type,
                LedgerEntry.status == LedgerEntryStatus.PENDING,
            )
            .order_by(LedgerEntry.created_at, LedgerEntry.id)
        )
        return [(entry, account) for entry, account in result.all()]
