"""
Authentication API endpoints.

Register (with welcome bonus and optional invite code), login, logout and
current-account info.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.models.account import Account
from backend.app.schemas.auth import AccountRegister, AccountLogin, TokenResponse, AccountResponse
from backend.app.core.security import verify_password
from backend.app.core.jwt import create_account_token
from backend.app.core.dependencies import AuthenticatedPrincipal, get_current_principal, security
from backend.app.core.token_revocation import revoke_token
from backend.app.domain.accounts.account_service import AccountService
from backend.app.domain.settings.settings_service import SettingsService
from backend.app.services.audit import log_auth_event, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _issue_token(account: Account) -> TokenResponse:
    return TokenResponse(
        access_token=create_account_token(account),
        token_type="bearer",
        account_id=account.id,
        public_id=account.public_id,
        username=account.username,
        role=account.role,
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: AccountRegister,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new investor account.

    - Grants the configured welcome bonus as bonus balance
    - Links the referrer when `invite_code` matches a public ID (unknown codes are ignored)
    """
    config = await SettingsService.fetch_snapshot(db)
    account = await AccountService.register(db, data, config)

    await log_auth_event(
        db=db,
        action=AuditAction.ACCOUNT_REGISTERED,
        login=account.username,
        account=account,
        details={"invited_by_id": account.invited_by_id} if account.invited_by_id else None
    )

    return _issue_token(account)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: AccountLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login with username or phone and PIN (admins use their password).

    Logs successful and failed login attempts.
    """
    ip_address = request.client.host if request.client else None
    account = await AccountService.find_by_login(db, credentials.username)

    if not account or not verify_password(credentials.pin, account.hashed_pin):
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            login=credentials.username,
            account=account,
            ip_address=ip_address,
            reason="Account not found" if not account else "Invalid PIN"
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if account.is_blocked:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            login=credentials.username,
            account=account,
            ip_address=ip_address,
            reason="Account is blocked"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This account is blocked"
        )

    token = _issue_token(account)

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        login=credentials.username,
        account=account,
        ip_address=ip_address
    )

    return token


@router.get("/me", response_model=AccountResponse)
async def get_current_account_info(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """Current account, including balances and referral link."""
    account = await AccountService.get(db, principal.account_id)
    return AccountResponse.model_validate(account)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    principal: AuthenticatedPrincipal = Depends(get_current_principal)
):
    """Revoke the presented token. Other sessions of the account stay valid."""
    await revoke_token(credentials.credentials, principal.account_id)
