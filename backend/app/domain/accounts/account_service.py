"""
Account Service (Domain Logic).

Registration, locked loads for balance-changing operations, and the balance
rules every engine applies: bonus-first spend on activation, wallet-only
debits elsewhere, and no balance ever below zero.
"""

import logging
import random
from datetime import datetime
from typing import Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AccountNotFoundError,
    AccountExistsError,
    InsufficientFundsError,
    InvalidAmountError,
)
from backend.app.core.security import get_password_hash
from backend.app.domain.ledger.ledger_service import LedgerService
from backend.app.domain.settings.settings_service import ConfigSnapshot
from backend.app.domain.unit_of_work import money, utcnow
from backend.app.models.account import Account
from backend.app.models.enums import AccountRole
from backend.app.models.ledger_enums import LedgerEntryType
from backend.app.schemas.auth import AccountRegister
from backend.app.schemas.ledger import WelcomeBonusDetails

logger = logging.getLogger(__name__)

PUBLIC_ID_MIN = 10000
PUBLIC_ID_MAX = 99999
PUBLIC_ID_ATTEMPTS = 20


def build_invite_link(public_id: str) -> str:
    return f"{settings.base_url}/register.html?ref={public_id}"


class AccountService:

    @staticmethod
    async def generate_public_id(db: AsyncSession) -> str:
        """Pick a random unused 5-digit public ID."""
        for _ in range(PUBLIC_ID_ATTEMPTS):
            candidate = str(random.randint(PUBLIC_ID_MIN, PUBLIC_ID_MAX))
            existing = await db.execute(select(Account.id).where(Account.public_id == candidate))
            if existing.scalar_one_or_none() is None:
                return candidate
        raise RuntimeError("Could not allocate a unique public ID")

    @staticmethod
    async def find_by_public_id(db: AsyncSession, public_id: str) -> Optional[Account]:
        result = await db.execute(select(Account).where(Account.public_id == public_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def find_by_login(db: AsyncSession, login: str) -> Optional[Account]:
        """Look an account up by username or phone."""
        result = await db.execute(
            select(Account).where(or_(Account.username == login, Account.phone == login))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def register(
        db: AsyncSession,
        data: AccountRegister,
        config: ConfigSnapshot,
        now: Optional[datetime] = None,
    ) -> Account:
        """
        Create an investor account.

        The welcome bonus lands in bonus_balance with a matching ledger row.
        An unknown invite code is ignored rather than rejected.

        Raises:
            AccountExistsError: If username or phone is taken.
        """
        now = now or utcnow()

        existing = await db.execute(select(Account).where(Account.username == data.username))
        if existing.scalar_one_or_none():
            raise AccountExistsError("username")
        existing = await db.execute(select(Account).where(Account.phone == data.phone))
        if existing.scalar_one_or_none():
            raise AccountExistsError("phone")

        referrer = None
        if data.invite_code:
            referrer = await AccountService.find_by_public_id(db, data.invite_code.strip())
            if referrer is None:
                logger.info("Ignoring unknown invite code %s", data.invite_code)

        public_id = await AccountService.generate_public_id(db)
        welcome_bonus = money(max(config.welcome_bonus, 0.0))

        account = Account(
            public_id=public_id,
            name=data.name,
            username=data.username,
            phone=data.phone,
            hashed_pin=get_password_hash(data.pin),
            role=AccountRole.USER,
            wallet_balance=0.0,
            bonus_balance=welcome_bonus,
            invite_link=build_invite_link(public_id),
            invited_by_id=referrer.id if referrer else None,
        )
        db.add(account)
        await db.flush()

        if welcome_bonus > 0:
            LedgerService.record(
                db,
                account_id=account.id,
                entry_type=LedgerEntryType.WELCOME_BONUS,
                amount=welcome_bonus,
                details=WelcomeBonusDetails(),
                description="Welcome bonus",
                created_at=now,
            )

        await db.commit()
        await db.refresh(account)

        logger.info("Registered account %s (invited_by=%s)", account.public_id, account.invited_by_id)
        return account

    @staticmethod
    async def get(db: AsyncSession, account_id: int) -> Account:
        account = await db.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    @staticmethod
    async def lock(db: AsyncSession, account_id: int) -> Account:
        """
        Load an account for a balance-changing operation.

        Takes a row lock where supported and always re-reads the row, so the
        version counter checked at commit is the current one.
        """
        result = await db.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    @staticmethod
    def spend_bonus_first(account: Account, amount: float) -> Tuple[float, float]:
        """
        Debit `amount`, consuming bonus balance before wallet balance.

        Returns:
            (bonus_used, wallet_used)

        Raises:
            InsufficientFundsError: If bonus + wallet cannot cover the amount.
                Nothing is mutated in that case.
        """
        amount = money(amount)
        if amount <= 0:
            raise InvalidAmountError()

        available = money(account.bonus_balance + account.wallet_balance)
        if available < amount:
            raise InsufficientFundsError(required=amount, available=available)

        bonus_used = money(min(account.bonus_balance, amount))
        wallet_used = money(amount - bonus_used)

        account.bonus_balance = money(account.bonus_balance - bonus_used)
        account.wallet_balance = money(account.wallet_balance - wallet_used)
        return bonus_used, wallet_used

    @staticmethod
    def debit_wallet(account: Account, amount: float) -> float:
        """
        Debit real currency only.

        Raises:
            InsufficientFundsError: If the wallet cannot cover the amount.
        """
        amount = money(amount)
        if amount <= 0:
            raise InvalidAmountError()
        if account.wallet_balance < amount:
            raise InsufficientFundsError(required=amount, available=money(account.wallet_balance))
        account.wallet_balance = money(account.wallet_balance - amount)
        return amount

    @staticmethod
    def credit_wallet(account: Account, amount: float) -> float:
        amount = money(amount)
        if amount < 0:
            raise InvalidAmountError("Credit amount cannot be negative")
        account.wallet_balance = money(account.wallet_balance + amount)
        return amount
