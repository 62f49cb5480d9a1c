"""Billing error taxonomy and the FastAPI handlers that render it.

Every business error is a BackofficeException carrying an HTTP status, a
stable error code and optional structured details.  All of them are
recoverable by the caller (4xx); nothing in the billing core is fatal.

Response format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
"""

import logging
import traceback
from dataclasses import asdict, dataclass
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldError:
    """One field-level validation failure."""
    field: str
    message: str
    type: str = "value_error"


class BackofficeException(Exception):
    """Base exception for back-office application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Union[dict, list, None] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationError(BackofficeException):
    """Structurally invalid input.  Never partially applied."""

    def __init__(self, errors: list[FieldError], message: str = "Validation error"):
        self.errors = list(errors)
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
            details={"errors": [asdict(e) for e in self.errors]},
        )

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors]


class ReferenceNotFoundError(BackofficeException):
    """One or more referenced company / ship / operation ids do not resolve."""

    def __init__(self, missing: dict[str, list]):
        self.missing = {k: list(v) for k, v in missing.items() if v}
        parts = [
            f"{resource} {', '.join(str(i) for i in ids)}"
            for resource, ids in self.missing.items()
        ]
        super().__init__(
            message=f"Referenced records not found: {'; '.join(parts)}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="REFERENCE_NOT_FOUND",
            details={"missing": self.missing},
        )


class NotFoundError(BackofficeException):
    """Id does not resolve to an active record."""

    def __init__(self, resource: str, identifier):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class StateError(BackofficeException):
    """Operation not permitted in the record's current status."""

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_STATE",
            details={"status": current_status} if current_status else None,
        )


class TransitionError(BackofficeException):
    """Requested status change is not in the allowed-transition table."""

    def __init__(self, current: str, target: str, allowed: list[str] | None = None):
        self.current = current
        self.target = target
        super().__init__(
            message=f"Status transition not allowed: {current} -> {target}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="TRANSITION_NOT_ALLOWED",
            details={"from": current, "to": target, "allowed": allowed or []},
        )


class UniquenessError(BackofficeException):
    """Could not obtain a unique value after bounded retries."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="DUPLICATE_RECORD",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response."""
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def backoffice_exception_handler(
    request: Request,
    exc: BackofficeException,
) -> JSONResponse:
    """Handle custom back-office exceptions."""
    logger.warning(
        "Back-office exception: %s - %s",
        exc.error_code,
        exc.message,
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(
            "HTTP %s: %s",
            exc.status_code,
            exc.detail,
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, PydanticValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors with the same field list shape."""
    logger.warning(
        "Validation error on %s",
        request.url.path,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Handle database integrity errors (unique violations, foreign key, etc.)."""
    logger.error(
        "Database integrity error on %s: %s",
        request.url.path,
        exc,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    error_msg = str(exc.orig) if hasattr(exc, "orig") else str(exc)

    if "unique" in error_msg.lower():
        message = "A record with this value already exists"
        error_code = "DUPLICATE_RECORD"
        status_code = status.HTTP_409_CONFLICT
    elif "foreign key" in error_msg.lower():
        message = "Referenced record does not exist"
        error_code = "FOREIGN_KEY_VIOLATION"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif "not null" in error_msg.lower():
        message = "Required field is missing"
        error_code = "NULL_VALUE_NOT_ALLOWED"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        message = "Database constraint violation"
        error_code = "INTEGRITY_ERROR"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    return create_error_response(
        status_code=status_code,
        message=message,
        error_code=error_code,
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    """Handle database operational errors (connection issues, etc.)."""
    logger.error(
        "Database operational error on %s: %s",
        request.url.path,
        exc,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Please try again.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        "Unhandled exception on %s: %s",
        request.url.path,
        exc,
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    # Don't expose internal details
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(BackofficeException, backoffice_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
