"""
Plan Schemas.

Plan templates (admin catalog) and plan instances (user activations).
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.plan_enums import DailyYieldType, PlanInstanceStatus, ExpiryReason


class PlanCreate(BaseModel):
    """Schema for creating a plan template."""
    name: str = Field(..., min_length=1, max_length=100)
    min_amount: float = Field(..., gt=0)
    max_amount: float = Field(..., gt=0)
    daily_yield_type: DailyYieldType
    daily_yield_value: float = Field(..., gt=0)
    duration_days: int = Field(..., gt=0)
    currency: str = Field("MT", min_length=1, max_length=10)
    image_url: Optional[str] = Field(None, max_length=500)
    hash_rate: str = Field("N/A", max_length=50)


class PlanUpdate(BaseModel):
    """Partial update; the merged result is re-validated by the catalog."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    min_amount: Optional[float] = Field(None, gt=0)
    max_amount: Optional[float] = Field(None, gt=0)
    daily_yield_type: Optional[DailyYieldType] = None
    daily_yield_value: Optional[float] = Field(None, gt=0)
    duration_days: Optional[int] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=1, max_length=10)
    image_url: Optional[str] = Field(None, max_length=500)
    hash_rate: Optional[str] = Field(None, max_length=50)


class PlanResponse(BaseModel):
    id: int
    name: str
    min_amount: float
    max_amount: float
    daily_yield_type: DailyYieldType
    daily_yield_value: float
    duration_days: int
    currency: str
    image_url: Optional[str]
    hash_rate: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ActivatePlanRequest(BaseModel):
    invested_amount: float = Field(..., gt=0)


class PlanInstanceResponse(BaseModel):
    id: int
    account_id: int
    plan_id: int
    invested_amount: float
    daily_profit: float
    start_date: datetime
    end_date: datetime
    last_collected_date: Optional[datetime]
    total_collected: float
    status: PlanInstanceStatus
    expiry_reason: Optional[ExpiryReason] = None

    class Config:
        from_attributes = True


class PlanInstanceDetail(PlanInstanceResponse):
    """Instance with the template name for history views."""
    plan_name: str


class CollectionResponse(BaseModel):
    message: str
    profit: float
    wallet_balance: float
    total_collected: float
    next_collection_at: datetime


class PlanActionResponse(BaseModel):
    message: str
    plan_instance: PlanInstanceResponse
    wallet_balance: float
    bonus_balance: float
