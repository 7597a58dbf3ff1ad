"""
Error Handling Module for Supplier EPI

This module provides centralized error handling with:
- Custom exception hierarchy
- Domain errors for evaluation, submission and audit workflows
- Standardized error responses
- Error logging
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("supplier_epi.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    CONFIG_VALIDATION_ERROR = "CONFIG_VALIDATION_ERROR"
    UNKNOWN_QUESTION = "UNKNOWN_QUESTION"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    EVALUATION_NOT_FOUND = "EVALUATION_NOT_FOUND"
    SUBMISSION_NOT_FOUND = "SUBMISSION_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    VERSION_CONFLICT = "VERSION_CONFLICT"

    # Business Logic Errors (409/422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    INCOMPLETE_EVALUATION = "INCOMPLETE_EVALUATION"
    INCOMPLETE_AUDIT = "INCOMPLETE_AUDIT"
    MISSING_FINDING = "MISSING_FINDING"
    EVALUATION_LOCKED = "EVALUATION_LOCKED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    AUDIT_LOCKED = "AUDIT_LOCKED"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    STORE_ERROR = "STORE_ERROR"

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

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


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


class ConfigValidationError(ValidationException):
    """Section weights of a category do not add up to 100"""

    def __init__(self, messages: List[str]):
        self.messages = list(messages)
        super().__init__(
            message=" ".join(self.messages) or "Invalid questionnaire configuration",
            field="sections",
            code=ErrorCode.CONFIG_VALIDATION_ERROR,
            details={"messages": self.messages},
        )


class UnknownQuestionError(ValidationException):
    """Question id is not part of the questionnaire"""

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(
            message=f"Question '{question_id}' is not part of the questionnaire",
            field="question_id",
            code=ErrorCode.UNKNOWN_QUESTION,
            details={"question_id": question_id},
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class EvaluationNotFoundError(NotFoundException):
    """No evaluation aggregate exists for the supplier"""

    def __init__(self, supplier_id: str):
        super().__init__(
            resource_type="Evaluation",
            resource_id=supplier_id,
            code=ErrorCode.EVALUATION_NOT_FOUND,
        )


class SubmissionNotFoundError(NotFoundException):
    """Submission not found"""

    def __init__(self, submission_id: Optional[str] = None, supplier_id: Optional[str] = None):
        if supplier_id and not submission_id:
            super().__init__(
                resource_type="Submission",
                message=f"Supplier '{supplier_id}' has no EPI submission",
                code=ErrorCode.SUBMISSION_NOT_FOUND,
            )
        else:
            super().__init__(
                resource_type="Submission",
                resource_id=submission_id,
                code=ErrorCode.SUBMISSION_NOT_FOUND,
            )


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


class ConcurrentModificationError(ConflictException):
    """Evaluation was written by someone else since it was read"""

    def __init__(self, supplier_id: str, expected_version: int, actual_version: int):
        super().__init__(
            message=(
                f"Evaluation for supplier '{supplier_id}' changed concurrently "
                f"(expected version {expected_version}, found {actual_version})"
            ),
            resource_type="Evaluation",
            code=ErrorCode.VERSION_CONFLICT,
            details={"expected_version": expected_version, "actual_version": actual_version},
        )


class EvaluationLockedError(ConflictException):
    """Supplier tried to edit an evaluation that is locked for review"""

    def __init__(self, supplier_id: str):
        super().__init__(
            message=f"La evaluación del proveedor '{supplier_id}' está bloqueada para edición",
            resource_type="Evaluation",
            code=ErrorCode.EVALUATION_LOCKED,
            details={"supplier_id": supplier_id},
        )


class InvalidTransitionError(ConflictException):
    """Lifecycle transition not allowed from the current state"""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            message=f"Cannot move evaluation from '{current}' to '{target}'",
            resource_type="Submission",
            code=ErrorCode.INVALID_TRANSITION,
            details={"current_status": current, "target_status": target},
        )


class AuditLockedError(ConflictException):
    """Approved EPI is still current and cannot be re-audited yet"""

    def __init__(self, submission_id: str, expires_at: Optional[datetime]):
        super().__init__(
            message=f"EPI vigente: la auditoría de '{submission_id}' está en modo lectura",
            resource_type="Submission",
            code=ErrorCode.AUDIT_LOCKED,
            details={"expires_at": expires_at.isoformat() if expires_at else None},
        )


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


class IncompleteEvaluationError(BusinessRuleException):
    """Submit attempted with unanswered questions"""

    def __init__(self, category: str, answered: int, total: int):
        self.category = category
        self.answered = answered
        self.total = total
        super().__init__(
            message=f"Completa todas las preguntas de {category} ({answered}/{total})",
            rule="ALL_QUESTIONS_ANSWERED",
            code=ErrorCode.INCOMPLETE_EVALUATION,
            details={"category": category, "answered": answered, "total": total},
        )


class IncompleteAuditError(BusinessRuleException):
    """Audit save attempted with pending items"""

    def __init__(self, pending_count: int):
        self.pending_count = pending_count
        super().__init__(
            message=f"Quedan {pending_count} ítems pendientes de auditar",
            rule="NO_PENDING_AUDIT_ITEMS",
            code=ErrorCode.INCOMPLETE_AUDIT,
            details={"pending_count": pending_count},
        )


class MissingFindingError(BusinessRuleException):
    """Invalid audit items without a finding"""

    def __init__(self, question_ids: List[str]):
        self.question_ids = list(question_ids)
        super().__init__(
            message=(
                'Debe ingresar la evidencia del hallazgo para todos los ítems '
                'marcados como "No Cumple".'
            ),
            rule="FINDING_REQUIRED_FOR_INVALID",
            code=ErrorCode.MISSING_FINDING,
            details={"question_ids": self.question_ids},
        )


# ============================================================================
# Store Exceptions
# ============================================================================

class StoreError(AppException):
    """Read or write against a backing store failed"""

    def __init__(self, operation: str, original_error: Optional[Exception] = None):
        super().__init__(
            code=ErrorCode.STORE_ERROR,
            message=f"Store operation failed: {operation}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"operation": operation},
            original_error=original_error,
        )


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
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
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
    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.DATABASE_ERROR,
        message="A database error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
