"""
Admin API Endpoints.

Account management (list, search, details, block/unblock), audit trail and
the dead letter queue of failed commission payments.
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.models.account import Account
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.enums import AccountRole
from backend.app.models.plan_instance import PlanInstance
from backend.app.models.plan_enums import PlanInstanceStatus
from backend.app.schemas.admin import (
    AccountListResponse, AccountListItem, AccountDetailResponse, ReferralSummary,
    BlockAccountRequest, AdminActionResponse, AuditTrailResponse, AuditLogResponse,
    DeadLetterResponse
)
from backend.app.schemas.ledger import LedgerEntryResponse
from backend.app.schemas.plan import PlanInstanceResponse
from backend.app.core.dependencies import AuthenticatedPrincipal
from backend.app.core.exceptions import AccountNotFoundError, InsufficientPermissionsError
from backend.app.core.guards import require_admin
from backend.app.core.token_revocation import revoke_all_account_tokens, clear_account_token_revocation
from backend.app.domain.accounts.account_service import AccountService
from backend.app.domain.ledger.ledger_service import LedgerService
from backend.app.domain.referrals.referral_service import ReferralService
from backend.app.domain.unit_of_work import commit_or_conflict
from backend.app.services.audit import log_admin_action, AuditAction, get_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/accounts", response_model=AccountListResponse)
async def list_accounts(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List investor accounts, newest first."""
    filters = [Account.role == AccountRole.USER]

    total = (await db.execute(select(func.count(Account.id)).where(*filters))).scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Account).where(*filters)
        .order_by(desc(Account.created_at), desc(Account.id))
        .offset(offset).limit(page_size)
    )

    return AccountListResponse(
        accounts=[AccountListItem.model_validate(account) for account in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/accounts/search", response_model=AccountListItem)
async def search_account(
    public_id: str = Query(..., min_length=5, max_length=5, description="5-digit public ID"),
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Find an account by its public ID."""
    account = await AccountService.find_by_public_id(db, public_id)
    if account is None:
        raise AccountNotFoundError(public_id)
    return AccountListItem.model_validate(account)


@router.get("/accounts/{account_id}", response_model=AccountDetailResponse)
async def get_account_details(
    account_id: int,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Account details: recent transactions, invitees with per-invitee commission,
    and how much this account has generated for its own referrer.
    """
    account = await AccountService.get(db, account_id)

    active_plan = None
    if account.active_plan_instance_id is not None:
        instance = await db.get(PlanInstance, account.active_plan_instance_id)
        if instance is not None and instance.status == PlanInstanceStatus.ACTIVE:
            active_plan = PlanInstanceResponse.model_validate(instance)

    entries, _ = await LedgerService.history(db, account.id, limit=100)
    invitees = await ReferralService.list_invitees(db, account.id)

    referrer_public_id = None
    if account.invited_by_id is not None:
        referrer = await db.get(Account, account.invited_by_id)
        referrer_public_id = referrer.public_id if referrer else None

    return AccountDetailResponse(
        account=AccountListItem.model_validate(account),
        active_plan=active_plan,
        transactions=[LedgerEntryResponse.model_validate(entry) for entry in entries],
        referrals=[ReferralSummary.model_validate(invitee) for invitee in invitees],
        referrer_public_id=referrer_public_id,
        commission_generated_for_referrer=await LedgerService.commission_generated_by(db, account.id),
    )


@router.post("/accounts/{account_id}/block", response_model=AdminActionResponse)
async def block_account(
    account_id: int,
    request: BlockAccountRequest,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Block an account and revoke all its active tokens.

    This immediately terminates all sessions of the account.
    """
    target = await AccountService.get(db, account_id)

    if target.role == AccountRole.ADMIN:
        raise InsufficientPermissionsError("Admin accounts cannot be blocked", details={"account_id": account_id})

    if target.is_blocked:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Account is already blocked"
        )

    target.is_blocked = True
    await commit_or_conflict(db)

    await revoke_all_account_tokens(account_id)

    audit_log = await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.ACCOUNT_BLOCKED,
        target=target,
        details={"reason": request.reason} if request.reason else None
    )

    return AdminActionResponse(
        success=True,
        message=f"Account '{target.username}' has been blocked",
        account_id=account_id,
        action=AuditAction.ACCOUNT_BLOCKED,
        audit_log_id=audit_log.id
    )


@router.post("/accounts/{account_id}/unblock", response_model=AdminActionResponse)
async def unblock_account(
    account_id: int,
    request: BlockAccountRequest,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Unblock an account and clear its token revocation flag."""
    target = await AccountService.get(db, account_id)

    if not target.is_blocked:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Account is not blocked"
        )

    target.is_blocked = False
    await commit_or_conflict(db)

    await clear_account_token_revocation(account_id)

    audit_log = await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.ACCOUNT_UNBLOCKED,
        target=target,
        details={"reason": request.reason} if request.reason else None
    )

    return AdminActionResponse(
        success=True,
        message=f"Account '{target.username}' has been unblocked",
        account_id=account_id,
        action=AuditAction.ACCOUNT_UNBLOCKED,
        audit_log_id=audit_log.id
    )


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    account_id: Optional[int] = Query(None, description="Filter by target account ID"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=500, description="Maximum records to return"),
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail, most recent first."""
    logs = await get_audit_trail(db=db, target_account_id=account_id, action=action, limit=limit)

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )


@router.get("/dlq", response_model=List[DeadLetterResponse])
async def list_failed_commissions(
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Secondary effects (referral commissions) that failed and await replay."""
    result = await db.execute(
        select(DeadLetterQueue)
        .where(DeadLetterQueue.status == DLQStatus.FAILED)
        .order_by(desc(DeadLetterQueue.created_at), desc(DeadLetterQueue.id))
    )
    return [DeadLetterResponse.model_validate(item) for item in result.scalars().all()]
