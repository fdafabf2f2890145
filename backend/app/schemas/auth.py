"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.enums import AccountRole


class AccountRegister(BaseModel):
    """
    Schema for investor registration.

    Used by POST /auth/register endpoint.
    """
    name: str = Field(..., min_length=1, max_length=120, description="Full name")
    username: str = Field(..., min_length=3, max_length=50, description="Unique username")
    phone: str = Field(..., min_length=6, max_length=30, description="Unique phone number")
    pin: str = Field(..., pattern=r"^\d{4,6}$", description="Numeric PIN (4-6 digits)")
    invite_code: Optional[str] = Field(default=None, description="Public ID of the inviting account")


class AccountLogin(BaseModel):
    """
    Schema for login.

    Accepts username or phone. Admins sign in with their password in `pin`.
    """
    username: str = Field(..., description="Username or phone")
    pin: str = Field(..., min_length=4, max_length=128, description="PIN or admin password")


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful login/register operations.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    account_id: int = Field(..., description="Account ID")
    public_id: str = Field(..., description="5-digit public ID")
    username: str = Field(..., description="Username")
    role: AccountRole = Field(..., description="Account role")


class AccountResponse(BaseModel):
    """
    Schema for account information response.

    Used by GET /auth/me endpoint.
    """
    id: int
    public_id: str
    name: str
    username: str
    phone: str
    role: AccountRole
    wallet_balance: float
    bonus_balance: float
    invite_link: Optional[str] = None
    invited_by_id: Optional[int] = None
    active_plan_instance_id: Optional[int] = None
    has_deposited: bool
    has_activated_plan: bool
    is_blocked: bool
    created_at: datetime

    class Config:
        from_attributes = True
