"""
Error taxonomy and the handlers that render it.

Domain errors carry a stable error code, an HTTP status and a details dict.
The plan engine, commission and settlement services raise them; the
handlers below render them, and every other failure, with one body shape.
"""

import logging
from datetime import datetime
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when an admin action is not allowed on its target."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None, error_code: str = "ERR_NOT_FOUND_001"):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


# Resource-not-found errors

class AccountNotFoundError(ResourceNotFoundError):
    def __init__(self, account_id: Any = None):
        super().__init__("Account", account_id, error_code="ERR_ACCOUNT_NOT_FOUND")


class PlanNotFoundError(ResourceNotFoundError):
    def __init__(self, plan_id: Any = None):
        super().__init__("Plan", plan_id, error_code="ERR_PLAN_NOT_FOUND")


class InstanceNotFoundError(ResourceNotFoundError):
    def __init__(self, instance_id: Any = None):
        super().__init__("Plan instance", instance_id, error_code="ERR_INSTANCE_NOT_FOUND")


class TransactionNotFoundError(ResourceNotFoundError):
    def __init__(self, transaction_id: Any = None):
        super().__init__("Transaction", transaction_id, error_code="ERR_TRANSACTION_NOT_FOUND")


# Validation errors

class InvalidAmountError(AppException):
    """Raised for non-positive or malformed amounts."""

    def __init__(self, message: str = "Amount must be greater than zero"):
        super().__init__(
            message=message,
            error_code="ERR_INVALID_AMOUNT",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class AmountOutOfRangeError(AppException):
    """Raised when an amount falls outside the allowed [minimum, maximum] range."""

    def __init__(self, amount: float, minimum: float, maximum: float):
        super().__init__(
            message=f"Amount must be between {minimum} and {maximum}",
            error_code="ERR_AMOUNT_OUT_OF_RANGE",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"amount": amount, "min": minimum, "max": maximum}
        )


class MissingProofError(AppException):
    """Raised when a deposit request carries neither a proof URL nor proof text."""

    def __init__(self):
        super().__init__(
            message="Deposit proof (image or text) is required",
            error_code="ERR_PROOF_REQUIRED",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class InvalidPlanTemplateError(AppException):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="ERR_INVALID_PLAN",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class InvalidSettingsError(AppException):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="ERR_INVALID_SETTINGS",
            status_code=status.HTTP_400_BAD_REQUEST
        )


# Funds

class InsufficientFundsError(AppException):
    """Raised when a debit would take a balance below zero."""

    def __init__(self, required: float, available: float):
        super().__init__(
            message="Insufficient balance for this operation",
            error_code="ERR_INSUFFICIENT_FUNDS",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"required": required, "available": available}
        )


class WithdrawalNotAllowedError(AppException):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="ERR_WITHDRAWAL_NOT_ALLOWED",
            status_code=status.HTTP_403_FORBIDDEN
        )


# State-conflict errors (client must re-fetch state before retrying)

class StateConflictError(AppException):
    def __init__(self, message: str, error_code: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class AlreadyHasActivePlanError(StateConflictError):
    def __init__(self, instance_id: int = None):
        super().__init__(
            "Account already has an active plan",
            "ERR_ALREADY_HAS_ACTIVE_PLAN",
            {"active_instance_id": instance_id}
        )


class NoActivePlanError(StateConflictError):
    def __init__(self):
        super().__init__("Account has no active plan", "ERR_NO_ACTIVE_PLAN")


class PlanExpiredError(StateConflictError):
    def __init__(self, instance_id: int, end_date: datetime):
        super().__init__(
            "This plan has expired",
            "ERR_PLAN_EXPIRED",
            {"instance_id": instance_id, "end_date": end_date.isoformat()}
        )


class CollectionNotYetAvailableError(StateConflictError):
    def __init__(self, remaining_seconds: int, next_collection_at: datetime):
        self.remaining_seconds = remaining_seconds
        hours = round(remaining_seconds / 3600, 1)
        super().__init__(
            f"Profit already collected. Try again in approximately {hours} hours",
            "ERR_COLLECTION_NOT_AVAILABLE",
            {"remaining_seconds": remaining_seconds, "next_collection_at": next_collection_at.isoformat()}
        )


class NotAnUpgradeError(StateConflictError):
    def __init__(self, current_value: float, new_value: float):
        super().__init__(
            "The selected plan is not an upgrade of the current plan",
            "ERR_NOT_AN_UPGRADE",
            {"current": current_value, "new": new_value}
        )


class NotExpiredError(StateConflictError):
    def __init__(self, instance_id: int):
        super().__init__(
            "Only expired plans can be renewed",
            "ERR_NOT_EXPIRED",
            {"instance_id": instance_id}
        )


class TransactionNotPendingError(StateConflictError):
    def __init__(self, transaction_id: int, current_status: str):
        super().__init__(
            "Transaction is invalid or already processed",
            "ERR_TRANSACTION_NOT_PENDING",
            {"transaction_id": transaction_id, "status": current_status}
        )


class AccountExistsError(StateConflictError):
    def __init__(self, field_name: str):
        super().__init__(
            f"An account with this {field_name} already exists",
            "ERR_ACCOUNT_EXISTS",
            {"field": field_name}
        )


class PlanInUseError(StateConflictError):
    def __init__(self, plan_id: int, active_instances: int):
        super().__init__(
            f"Plan cannot be retired while {active_instances} account(s) have it active",
            "ERR_PLAN_IN_USE",
            {"plan_id": plan_id, "active_instances": active_instances}
        )


class ConcurrentModificationError(StateConflictError):
    """Raised when an optimistic-lock check fails on commit."""

    def __init__(self, resource: str = "account"):
        super().__init__(
            f"The {resource} was modified by another request. Please retry",
            "ERR_CONCURRENT_MODIFICATION",
            {"resource": resource}
        )


# Handlers. Every error body has the same three keys.

HTTP_ERROR_CODES = {
    400: "ERR_BAD_REQUEST",
    401: "ERR_UNAUTHORIZED",
    403: "ERR_FORBIDDEN",
    404: "ERR_NOT_FOUND",
    409: "ERR_CONFLICT",
}


def error_body(error_code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    return {"error_code": error_code, "message": message, "details": details or {}}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.error_code, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_code, exc.message, exc.details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Auth and guard failures raised as plain HTTPException."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(HTTP_ERROR_CODES.get(exc.status_code, "ERR_UNKNOWN"), exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters: 422 with the field errors."""
    return JSONResponse(
        status_code=422,
        content=error_body("ERR_VALIDATION", "Validation error", {"errors": jsonable_errors(exc)}),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that JSONResponse cannot encode
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled %s on %s %s", type(exc).__name__, request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("ERR_INTERNAL_SERVER", "An internal server error occurred"),
    )
