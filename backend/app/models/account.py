"""
Account database model.

One row per platform user (investors and admins). Holds the mutable balance
state the plan engine and settlement layer operate on.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Enum, Float, ForeignKey, CheckConstraint
)
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import AccountRole


class Account(Base):
    """
    Account model.

    Balance invariants (enforced by the services and by check constraints):
    - wallet_balance >= 0: withdrawable real currency
    - bonus_balance >= 0: promotional credit, spendable on plan activation only

    `version` is an optimistic-lock counter; concurrent writers of the same
    account cannot both commit.
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Public 5-digit identifier (shown to users, used in invite links)
    public_id = Column(String(5), unique=True, index=True, nullable=False)

    name = Column(String(120), nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    phone = Column(String(30), unique=True, index=True, nullable=False)
    hashed_pin = Column(String(255), nullable=False)
    role = Column(Enum(AccountRole), default=AccountRole.USER, nullable=False)
    profile_picture_url = Column(String(500), nullable=True)

    # Balances
    wallet_balance = Column(Float, default=0.0, nullable=False)
    bonus_balance = Column(Float, default=0.0, nullable=False)

    # Referral (weak back-reference: deleting a referrer never touches invitees)
    invite_link = Column(String(500), nullable=True)
    invited_by_id = Column(
        Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True, index=True
    )

    # Zero-or-one active plan
    active_plan_instance_id = Column(
        Integer,
        ForeignKey(
            'plan_instances.id',
            use_alter=True,
            name='fk_accounts_active_plan_instance',
            ondelete='SET NULL',
        ),
        nullable=True,
    )

    # One-way eligibility flags
    has_deposited = Column(Boolean, default=False, nullable=False)
    has_activated_plan = Column(Boolean, default=False, nullable=False)

    is_blocked = Column(Boolean, default=False, nullable=False)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('wallet_balance >= 0', name='ck_accounts_wallet_non_negative'),
        CheckConstraint('bonus_balance >= 0', name='ck_accounts_bonus_non_negative'),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Account(id={self.id}, public_id='{self.public_id}', username='{self.username}', role='{self.role.value}')>"
