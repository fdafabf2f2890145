"""
Ledger Schemas.

Structured ledger detail payloads (one variant per entry type, selected by
`kind`) and the read models for ledger history.
"""

from pydantic import BaseModel, Field, TypeAdapter
from datetime import datetime
from typing import Annotated, Literal, Optional, Union, List
from backend.app.models.ledger_enums import (
    LedgerEntryType, LedgerEntryStatus, CommissionTrigger, InvestmentReason, ProofType
)


class DepositDetails(BaseModel):
    kind: Literal["deposit"] = "deposit"
    proof_type: ProofType
    proof_url: Optional[str] = None
    proof_text: Optional[str] = None


class WithdrawalDetails(BaseModel):
    """Settlement reads total_deducted back at approval time."""
    kind: Literal["withdrawal"] = "withdrawal"
    destination: str
    holder_name: str
    fee: float
    total_deducted: float


class InvestmentDetails(BaseModel):
    kind: Literal["investment"] = "investment"
    reason: InvestmentReason
    plan_id: int
    plan_name: str
    plan_instance_id: int
    bonus_used: float = 0.0
    wallet_used: float
    previous_instance_id: Optional[int] = None


class CollectionDetails(BaseModel):
    kind: Literal["collection"] = "collection"
    plan_instance_id: int


class CommissionDetails(BaseModel):
    kind: Literal["commission"] = "commission"
    trigger: CommissionTrigger
    source_account_id: int
    source_public_id: str
    base_amount: float
    rate: float


class WelcomeBonusDetails(BaseModel):
    kind: Literal["welcome_bonus"] = "welcome_bonus"


class LotteryWinDetails(BaseModel):
    kind: Literal["lottery_win"] = "lottery_win"
    code: Optional[str] = None


LedgerDetails = Annotated[
    Union[
        DepositDetails,
        WithdrawalDetails,
        InvestmentDetails,
        CollectionDetails,
        CommissionDetails,
        WelcomeBonusDetails,
        LotteryWinDetails,
    ],
    Field(discriminator="kind"),
]

ledger_details_adapter = TypeAdapter(LedgerDetails)


def parse_details(raw: Optional[dict]):
    """Validate a stored JSON payload back into its typed variant."""
    if raw is None:
        return None
    return ledger_details_adapter.validate_python(raw)


def dump_details(details) -> dict:
    return details.model_dump(mode="json")


class LedgerEntryResponse(BaseModel):
    """Schema for displaying a ledger entry."""
    id: int
    account_id: int
    entry_type: LedgerEntryType
    status: LedgerEntryStatus
    amount: float
    signed_amount: float
    description: Optional[str]
    details: Optional[LedgerDetails] = None
    source_account_id: Optional[int] = None
    created_at: datetime
    reviewed_at: Optional[datetime] = None
    review_note: Optional[str] = None

    class Config:
        from_attributes = True


class LedgerHistoryResponse(BaseModel):
    entries: List[LedgerEntryResponse]
    total: int


class DepositRequestCreate(BaseModel):
    """Schema for a deposit request. Proof is a URL from the upload service or free text."""
    amount: float = Field(..., gt=0)
    proof_url: Optional[str] = Field(None, max_length=500)
    proof_text: Optional[str] = Field(None, max_length=1000)


class WithdrawalRequestCreate(BaseModel):
    amount: float = Field(..., gt=0)
    destination: str = Field(..., min_length=3, max_length=50, description="Mobile money / account number")
    holder_name: str = Field(..., min_length=2, max_length=120)


class SettlementActionRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=255)


class SettlementActionResponse(BaseModel):
    """Response for settlement actions."""
    transaction_id: int
    status: LedgerEntryStatus
    message: str
    wallet_balance: float
    reviewed_at: datetime


class PendingLedgerEntryResponse(LedgerEntryResponse):
    """Pending deposit/withdrawal with owner context for the review queue."""
    account_public_id: str
    account_name: str
    account_phone: str
    account_wallet_balance: float
    account_has_activated_plan: bool


class BalanceReconciliation(BaseModel):
    wallet_balance: float
    bonus_balance: float
    ledger_wallet_balance: float
    ledger_bonus_balance: float
    consistent: bool
