"""
Admin API Schema Definitions.

Pydantic schemas for admin endpoints.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.enums import AccountRole
from backend.app.schemas.ledger import LedgerEntryResponse
from backend.app.schemas.plan import PlanInstanceResponse


class AccountListItem(BaseModel):
    """Schema for an account in list responses."""
    id: int
    public_id: str
    name: str
    username: str
    phone: str
    role: AccountRole
    wallet_balance: float
    bonus_balance: float
    has_deposited: bool
    has_activated_plan: bool
    is_blocked: bool
    invited_by_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AccountListResponse(BaseModel):
    accounts: List[AccountListItem]
    total: int
    page: int
    page_size: int


class ReferralSummary(BaseModel):
    """One invitee, with the commission it generated for its referrer."""
    account_id: int
    public_id: str
    username: str
    joined_at: datetime
    active_plan_name: Optional[str] = None
    commission_earned: float

    class Config:
        from_attributes = True


class AccountDetailResponse(BaseModel):
    """Full admin view of one account."""
    account: AccountListItem
    active_plan: Optional[PlanInstanceResponse] = None
    transactions: List[LedgerEntryResponse]
    referrals: List[ReferralSummary]
    referrer_public_id: Optional[str] = None
    commission_generated_for_referrer: float


class BlockAccountRequest(BaseModel):
    """Schema for blocking or unblocking an account."""
    reason: Optional[str] = Field(None, description="Reason (kept in the audit log)")


class AdminActionResponse(BaseModel):
    success: bool
    message: str
    account_id: int
    action: str
    audit_log_id: int


class AuditLogResponse(BaseModel):
    """One audit row."""
    id: int
    action: str
    actor_id: Optional[int]
    actor_username: Optional[str]
    target_account_id: Optional[int]
    target_public_id: Optional[str]
    details: Optional[dict]
    ip_address: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int


class DeadLetterResponse(BaseModel):
    """Failed secondary effect waiting for replay."""
    id: int
    task_name: str
    error_message: str
    payload: Optional[dict]
    status: str
    referrer_account_id: Optional[int]
    attempts: int
    created_at: datetime

    class Config:
        from_attributes = True
