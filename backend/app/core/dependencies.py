"""
Authentication dependencies for FastAPI.

Turns a bearer token into the authenticated principal the core works with.
"""

from dataclasses import dataclass
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from backend.app.core.jwt import decode_access_token
from backend.app.core.token_revocation import is_token_revoked, are_account_tokens_revoked
from backend.app.db.session import get_db
from backend.app.models.account import Account
from backend.app.models.enums import AccountRole

# HTTP Bearer security scheme
security = HTTPBearer()


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """Identity of the caller, already checked for blocking."""
    account_id: int
    public_id: str
    username: str
    role: AccountRole

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> AuthenticatedPrincipal:
    """
    FastAPI dependency for JWT authentication.

    Security checks:
    1. Validates JWT token signature and expiry
    2. Checks if token has been explicitly revoked
    3. Checks if all account tokens have been revoked (account blocked)
    4. Verifies the account still exists and is not blocked (real-time check)

    Raises:
        HTTPException: 401 if authentication fails, 403 if the account is blocked
    """
    token = credentials.credentials

    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    account_id = payload.get("account_id")
    if not account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if await is_token_revoked(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if await are_account_tokens_revoked(account_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account access has been revoked",
        )

    result = await db.execute(select(Account).where(Account.id == account_id))
    account = result.scalar_one_or_none()

    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if account.is_blocked:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This account is blocked",
        )

    return AuthenticatedPrincipal(
        account_id=account.id,
        public_id=account.public_id,
        username=account.username,
        role=account.role,
    )
