"""
Security guards for role-based access control.
"""

from fastapi import Depends, HTTPException, status
from backend.app.core.dependencies import AuthenticatedPrincipal, get_current_principal


def require_admin(
    principal: AuthenticatedPrincipal = Depends(get_current_principal)
) -> AuthenticatedPrincipal:
    """
    Dependency for admin-only endpoints.

    Usage:
        @router.post("/admin/deposits/{transaction_id}/approve")
        async def approve(
            transaction_id: int,
            admin: AuthenticatedPrincipal = Depends(require_admin)
        ):
            ...

    Returns:
        The principal if admin, raises 403 otherwise
    """
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return principal


def require_investor(
    principal: AuthenticatedPrincipal = Depends(get_current_principal)
) -> AuthenticatedPrincipal:
    """Dependency for investor endpoints (admins do not hold plans)."""
    if principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Investor account required"
        )

    return principal
