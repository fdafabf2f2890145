"""
Plan template database model.

Admin-authored investment products. The plan engine reads templates but
never mutates them; instances snapshot everything they need at activation.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Enum, CheckConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.plan_enums import DailyYieldType


class Plan(Base):
    """
    Plan template model.

    Invariants:
    - min_amount <= max_amount
    - daily_yield_value > 0 (and <= 100 for percentage yields)
    """
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    name = Column(String(100), nullable=False)
    min_amount = Column(Float, nullable=False)
    max_amount = Column(Float, nullable=False)
    daily_yield_type = Column(Enum(DailyYieldType), nullable=False)
    daily_yield_value = Column(Float, nullable=False)
    duration_days = Column(Integer, nullable=False)
    currency = Column(String(10), nullable=False, default="MT")

    # Presentation
    image_url = Column(String(500), nullable=True)
    hash_rate = Column(String(50), nullable=False, default="N/A")

    # Retired templates stay for instance history but are not offered
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('min_amount <= max_amount', name='ck_plans_amount_range'),
        CheckConstraint('daily_yield_value > 0', name='ck_plans_yield_positive'),
        CheckConstraint('duration_days > 0', name='ck_plans_duration_positive'),
    )

    def __repr__(self):
        return f"<Plan(id={self.id}, name='{self.name}', min={self.min_amount}, max={self.max_amount})>"
