"""
Audit trail writer.

Every settlement decision, account block/unblock, plan template change and
settings update leaves a row naming the admin who made it. Registrations
and login attempts are recorded against the account signing in.

Rows are written after the audited change has committed, in their own
commit.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.core.dependencies import AuthenticatedPrincipal
from backend.app.models.account import Account
from backend.app.models.audit_log import AuditLog


class AuditAction:
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    ACCOUNT_REGISTERED = "ACCOUNT_REGISTERED"

    ACCOUNT_BLOCKED = "ACCOUNT_BLOCKED"
    ACCOUNT_UNBLOCKED = "ACCOUNT_UNBLOCKED"

    DEPOSIT_APPROVED = "DEPOSIT_APPROVED"
    DEPOSIT_REJECTED = "DEPOSIT_REJECTED"
    WITHDRAWAL_APPROVED = "WITHDRAWAL_APPROVED"
    WITHDRAWAL_REJECTED = "WITHDRAWAL_REJECTED"

    PLAN_CREATED = "PLAN_CREATED"
    PLAN_UPDATED = "PLAN_UPDATED"
    PLAN_RETIRED = "PLAN_RETIRED"

    SETTINGS_UPDATED = "SETTINGS_UPDATED"


async def _write(db: AsyncSession, entry: AuditLog) -> AuditLog:
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    return entry


async def log_admin_action(
    db: AsyncSession,
    admin: AuthenticatedPrincipal,
    action: str,
    target: Optional[Account] = None,
    details: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record a decision taken by an admin.

    Args:
        admin: The authenticated admin principal
        action: One of the AuditAction constants
        target: Account the decision affected, if any
        details: Extra context stored as JSON (transaction id, changes...)
    """
    return await _write(db, AuditLog(
        action=action,
        actor_id=admin.account_id,
        actor_username=admin.username,
        target_account_id=target.id if target else None,
        target_public_id=target.public_id if target else None,
        details=details,
    ))


async def log_auth_event(
    db: AsyncSession,
    action: str,
    login: str,
    account: Optional[Account] = None,
    ip_address: Optional[str] = None,
    reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Record a registration or login attempt. `login` is the name that was typed."""
    if reason:
        details = {**(details or {}), "reason": reason}
    return await _write(db, AuditLog(
        action=action,
        actor_id=account.id if account else None,
        actor_username=login,
        target_account_id=account.id if account else None,
        target_public_id=account.public_id if account else None,
        details=details,
        ip_address=ip_address,
    ))


async def get_audit_trail(
    db: AsyncSession,
    target_account_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> List[AuditLog]:
    """Audit rows, most recent first, optionally narrowed to one account or action."""
    query = select(AuditLog).order_by(desc(AuditLog.created_at), desc(AuditLog.id))

    if target_account_id is not None:
        query = query.where(AuditLog.target_account_id == target_account_id)
    if action:
        query = query.where(AuditLog.action == action)

    result = await db.execute(query.limit(limit))
    return list(result.scalars().all())
