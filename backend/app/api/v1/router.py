"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    auth, account, plans, settings,
    admin, admin_plans, admin_settlement
)

router = APIRouter()

# Authentication
router.include_router(auth.router)

# Investor endpoints
router.include_router(account.router)
router.include_router(plans.router)
router.include_router(settings.router)

# Admin endpoints
router.include_router(admin.router)
router.include_router(admin_plans.router)
router.include_router(admin_settlement.router)
