"""
Ledger enumerations.
"""

import enum


class LedgerEntryStatus(str, enum.Enum):
    """Ledger entry status enumeration."""
    PENDING = "PENDING"  # Deposit/withdrawal waiting for admin review
    APPROVED = "APPROVED"  # Settled (engine-generated entries start here)
    REJECTED = "REJECTED"  # Refused by admin or by the approval balance check


class LedgerEntryType(str, enum.Enum):
    """Ledger entry type enumeration."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INVESTMENT = "investment"
    COLLECTION = "collection"
    COMMISSION = "commission"
    WELCOME_BONUS = "welcome_bonus"
    LOTTERY_WIN = "lottery_win"

    @property
    def direction(self) -> int:
        """+1 if the entry adds funds to the account, -1 if it removes them."""
        if self in (LedgerEntryType.WITHDRAWAL, LedgerEntryType.INVESTMENT):
            return -1
        return 1


class CommissionTrigger(str, enum.Enum):
    """Downstream event that produced a referral commission."""
    INVESTMENT = "investment"
    COLLECTION = "collection"


class InvestmentReason(str, enum.Enum):
    """Engine operation that produced an investment entry."""
    ACTIVATION = "activation"
    UPGRADE = "upgrade"
    RENEWAL = "renewal"


class ProofType(str, enum.Enum):
    """Kind of deposit proof supplied by the user."""
    IMAGE = "image"
    TEXT = "text"
