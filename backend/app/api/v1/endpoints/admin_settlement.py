"""
Admin Settlement API Endpoints.

Review queues for pending deposits and withdrawals, and the platform
settings editor.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.dependencies import AuthenticatedPrincipal
from backend.app.core.guards import require_admin
from backend.app.domain.settings.settings_service import SettingsService
from backend.app.domain.settlement.settlement_service import SettlementService, SettlementOutcome
from backend.app.models.ledger_enums import LedgerEntryType, LedgerEntryStatus
from backend.app.schemas.ledger import (
    LedgerEntryResponse, PendingLedgerEntryResponse, SettlementActionRequest, SettlementActionResponse
)
from backend.app.schemas.settings import PlatformSettingsUpdate, PlatformSettingsResponse
from backend.app.services.audit import log_admin_action, AuditAction

router = APIRouter(prefix="/admin", tags=["Admin - Settlement"])


def _note(data: Optional[SettlementActionRequest]) -> Optional[str]:
    return data.note if data else None


async def _pending(db: AsyncSession, entry_type: LedgerEntryType) -> List[PendingLedgerEntryResponse]:
    rows = await SettlementService.list_pending(db, entry_type)
    return [
        PendingLedgerEntryResponse(
            **LedgerEntryResponse.model_validate(entry).model_dump(),
            account_public_id=account.public_id,
            account_name=account.name,
            account_phone=account.phone,
            account_wallet_balance=account.wallet_balance,
            account_has_activated_plan=account.has_activated_plan,
        )
        for entry, account in rows
    ]


async def _respond(
    db: AsyncSession,
    admin: AuthenticatedPrincipal,
    outcome: SettlementOutcome,
    approved_action: str,
    rejected_action: str,
    message: str,
) -> SettlementActionResponse:
    entry = outcome.entry
    action = approved_action if outcome.approved else rejected_action

    response = SettlementActionResponse(
        transaction_id=entry.id,
        status=entry.status,
        message=message,
        wallet_balance=outcome.account.wallet_balance,
        reviewed_at=entry.reviewed_at,
    )

    await log_admin_action(
        db=db,
        admin=admin,
        action=action,
        target=outcome.account,
        details={
            "transaction_id": entry.id,
            "amount": entry.amount,
            "status": entry.status.value,
            "note": entry.review_note,
        }
    )
    return response


@router.get("/deposits/pending", response_model=List[PendingLedgerEntryResponse])
async def list_pending_deposits(
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await _pending(db, LedgerEntryType.DEPOSIT)


@router.get("/withdrawals/pending", response_model=List[PendingLedgerEntryResponse])
async def list_pending_withdrawals(
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await _pending(db, LedgerEntryType.WITHDRAWAL)


@router.post("/deposits/{transaction_id}/approve", response_model=SettlementActionResponse)
async def approve_deposit(
    transaction_id: int = Path(..., description="Ledger entry ID"),
    data: Optional[SettlementActionRequest] = None,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Credit the deposit to the account's wallet."""
    outcome = await SettlementService.approve_deposit(db, transaction_id, admin.account_id, _note(data))
    return await _respond(
        db, admin, outcome, AuditAction.DEPOSIT_APPROVED, AuditAction.DEPOSIT_REJECTED,
        "Deposit approved"
    )


@router.post("/deposits/{transaction_id}/reject", response_model=SettlementActionResponse)
async def reject_deposit(
    transaction_id: int = Path(..., description="Ledger entry ID"),
    data: Optional[SettlementActionRequest] = None,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    outcome = await SettlementService.reject_deposit(db, transaction_id, admin.account_id, _note(data))
    return await _respond(
        db, admin, outcome, AuditAction.DEPOSIT_APPROVED, AuditAction.DEPOSIT_REJECTED,
        "Deposit rejected"
    )


@router.post("/withdrawals/{transaction_id}/approve", response_model=SettlementActionResponse)
async def approve_withdrawal(
    transaction_id: int = Path(..., description="Ledger entry ID"),
    data: Optional[SettlementActionRequest] = None,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Debit the amount + fee recorded at request time.

    If the wallet can no longer cover it, the request is rejected instead
    (status REJECTED in the response).
    """
    outcome = await SettlementService.approve_withdrawal(db, transaction_id, admin.account_id, _note(data))
    message = (
        "Withdrawal approved" if outcome.entry.status == LedgerEntryStatus.APPROVED
        else "Withdrawal rejected: insufficient balance"
    )
    return await _respond(
        db, admin, outcome, AuditAction.WITHDRAWAL_APPROVED, AuditAction.WITHDRAWAL_REJECTED, message
    )


@router.post("/withdrawals/{transaction_id}/reject", response_model=SettlementActionResponse)
async def reject_withdrawal(
    transaction_id: int = Path(..., description="Ledger entry ID"),
    data: Optional[SettlementActionRequest] = None,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    outcome = await SettlementService.reject_withdrawal(db, transaction_id, admin.account_id, _note(data))
    return await _respond(
        db, admin, outcome, AuditAction.WITHDRAWAL_APPROVED, AuditAction.WITHDRAWAL_REJECTED,
        "Withdrawal rejected"
    )


@router.get("/settings", response_model=PlatformSettingsResponse)
async def get_settings(
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    row = await SettingsService.get_or_create(db)
    return PlatformSettingsResponse.model_validate(row)


@router.put("/settings", response_model=PlatformSettingsResponse)
async def update_settings(
    data: PlatformSettingsUpdate,
    admin: AuthenticatedPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Replace the platform settings. Takes effect from the next request."""
    row = await SettingsService.update(db, data)
    response = PlatformSettingsResponse.model_validate(row)

    await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.SETTINGS_UPDATED,
        details=data.model_dump(mode="json")
    )
    return response
