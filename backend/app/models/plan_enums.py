"""
Plan enumerations.
"""

import enum


class DailyYieldType(str, enum.Enum):
    """How a plan template expresses its daily profit."""
    PERCENTAGE = "percentage"  # dailyYieldValue % of the invested amount
    FIXED = "fixed"  # dailyYieldValue currency units per day


class PlanInstanceStatus(str, enum.Enum):
    """Plan instance lifecycle. EXPIRED is terminal."""
    ACTIVE = "active"
    EXPIRED = "expired"


class ExpiryReason(str, enum.Enum):
    """Why an instance reached EXPIRED."""
    ENDED = "ended"  # end_date passed
    UPGRADED = "upgraded"  # replaced by a higher tier


class UpgradeComparison(str, enum.Enum):
    """What an upgrade compares the new template floor against."""
    INVESTED_AMOUNT = "invested_amount"
    TEMPLATE_FLOOR = "template_floor"
