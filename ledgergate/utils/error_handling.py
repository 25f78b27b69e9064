"""
Centralized Error Handling for LedgerGate

This module provides:
- Custom exception hierarchy for the statement pipeline and period locks
- Standardized error responses
- Error logging
- Database error handling
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("ledgergate.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_PERIOD = "INVALID_PERIOD"
    UNLOCK_REASON_TOO_SHORT = "UNLOCK_REASON_TOO_SHORT"

    # Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Business Logic Errors (422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    PREREQUISITES_NOT_MET = "PREREQUISITES_NOT_MET"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    PERIOD_LOCKED = "PERIOD_LOCKED"

    # External Service Errors (502/503)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    TRANSIENT_PROVIDER_ERROR = "TRANSIENT_PROVIDER_ERROR"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidPeriodException(ValidationException):
    """Malformed period key or descriptor"""

    def __init__(self, period: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid period: {period}. Expected YYYY, YYYY-MM or YYYY-Qn.",
            field="period",
            code=ErrorCode.INVALID_PERIOD,
            details={"provided_period": period},
        )


class UnlockReasonTooShortException(ValidationException):
    """Unlock reason below the minimum length"""

    def __init__(self, min_length: int, actual_length: int):
        super().__init__(
            message=f"Unlock reason must be at least {min_length} characters (got {actual_length}).",
            field="reason",
            code=ErrorCode.UNLOCK_REASON_TOO_SHORT,
            details={"min_length": min_length, "actual_length": actual_length},
        )


# ============================================================================
# Authorization Exceptions
# ============================================================================

class AuthenticationException(AppException):
    """No acting user was supplied"""

    def __init__(
        self,
        message: str = "Authentication required",
        code: ErrorCode = ErrorCode.UNAUTHORIZED,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class AuthorizationException(AppException):
    """Authorization denied exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        required_permission: Optional[str] = None,
        code: ErrorCode = ErrorCode.FORBIDDEN,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if required_permission:
            _details["required_permission"] = required_permission
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=_details,
        )


class PermissionDeniedException(AuthorizationException):
    """Actor's role does not carry the required permission"""

    def __init__(self, required_permission: str, actor_role: Optional[str] = None):
        details = {}
        if actor_role:
            details["current_role"] = actor_role
        super().__init__(
            message=f"Insufficient permissions. Required: {required_permission}",
            required_permission=required_permission,
            code=ErrorCode.PERMISSION_DENIED,
            details=details,
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class InvalidTransitionException(ConflictException):
    """Lock state transition not allowed from the current status"""

    def __init__(
        self,
        period: str,
        action: str,
        current_status: str,
        reasons: Optional[List[str]] = None,
    ):
        reasons = list(reasons or [])
        message = f"Cannot {action} period {period} while it is {current_status}"
        if reasons:
            message = f"{message}: {'; '.join(reasons)}"
        super().__init__(
            message=message,
            resource_type="PeriodLock",
            code=ErrorCode.INVALID_TRANSITION,
            details={
                "period": period,
                "action": action,
                "current_status": current_status,
                "reasons": reasons,
            },
        )
        self.reasons = reasons


# ============================================================================
# Business Logic Exceptions
# ============================================================================

class BusinessRuleException(AppException):
    """Business rule violation exception"""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if rule:
            _details["violated_rule"] = rule
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=_details,
        )


class PrerequisitesNotMetException(BusinessRuleException):
    """
    A report could not be generated because upstream checks failed.

    ``reasons`` always carries every unmet condition so the user can fix
    them in one pass. ``partial`` holds whatever was built before the gate.
    """

    def __init__(self, stage: str, period: str, reasons: List[str], partial: Any = None):
        self.stage = stage
        self.period = period
        self.reasons = list(reasons)
        self.partial = partial
        super().__init__(
            message=f"Cannot generate {stage.replace('_', ' ')} for {period}: {'; '.join(self.reasons)}",
            rule="STATEMENT_PREREQUISITES",
            code=ErrorCode.PREREQUISITES_NOT_MET,
            details={"stage": stage, "period": period, "reasons": self.reasons},
        )


class ReportValidationFailedException(BusinessRuleException):
    """A generated report fails its own invariant and cannot be submitted"""

    def __init__(self, report_type: str, period: str, difference: Decimal, errors: List[str]):
        self.report_type = report_type
        self.difference = difference
        self.errors = list(errors)
        super().__init__(
            message=f"{report_type.replace('_', ' ').capitalize()} for {period} cannot be submitted: {'; '.join(self.errors)}",
            rule="STATEMENT_INVARIANT",
            code=ErrorCode.VALIDATION_FAILED,
            details={
                "report_type": report_type,
                "period": period,
                "difference": str(difference),
                "errors": self.errors,
            },
        )


class PeriodLockedException(BusinessRuleException):
    """Write attempted against a locked or closed period"""

    def __init__(self, period: str, message: str):
        super().__init__(
            message=message,
            rule="PERIOD_OPEN",
            code=ErrorCode.PERIOD_LOCKED,
            details={"period": period},
        )


# ============================================================================
# External Service Exceptions
# ============================================================================

class ExternalServiceException(AppException):
    """External service error exception"""

    def __init__(
        self,
        service_name: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ):
        _details = details or {}
        _details["service"] = service_name
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=_details,
            original_error=original_error,
        )


class TransientProviderException(ExternalServiceException):
    """Balance data temporarily unavailable; the call may be retried"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            service_name="AccountBalanceProvider",
            message=f"Balance data unavailable: {message}",
            code=ErrorCode.TRANSIENT_PROVIDER_ERROR,
            original_error=original_error,
            details={"retryable": True},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
        self.retryable = True


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        503: ErrorCode.EXTERNAL_SERVICE_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.RESOURCE_CONFLICT
            status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "InvalidPeriodException",
    "UnlockReasonTooShortException",

    # Auth
    "AuthenticationException",
    "AuthorizationException",
    "PermissionDeniedException",

    # Resource
    "ConflictException",
    "InvalidTransitionException",

    # Business Logic
    "BusinessRuleException",
    "PrerequisitesNotMetException",
    "ReportValidationFailedException",
    "PeriodLockedException",

    # External Services
    "ExternalServiceException",
    "TransientProviderException",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
]
