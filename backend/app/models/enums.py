"""
Account roles enumeration.

Defines the role types for the investment platform.
"""

import enum


class AccountRole(str, enum.Enum):
    """
    Account role enumeration.

    Roles:
        ADMIN: Back-office operator (settlements, plans, settings)
        USER: Investor account (default role)
    """
    ADMIN = "ADMIN"
    USER = "USER"
