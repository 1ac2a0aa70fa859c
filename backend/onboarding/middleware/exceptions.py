"""Onboarding error taxonomy and the JSON error envelope.

Expected wizard and admin failures are recorded on the service state and
never reach these handlers; what does reach them is rendered as
`{"error": {"code", "message", "details"?}}`.
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class OnboardingException(Exception):
    """Base exception for onboarding application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class ValidationFailedError(OnboardingException):
    """Malformed input caught before any boundary call."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
        )


class EmailConflictError(OnboardingException):
    """The email is already registered with the backend."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(
            message="This email is already registered. Please use a different email.",
            status_code=status.HTTP_409_CONFLICT,
            error_code="EMAIL_ALREADY_REGISTERED",
        )


class InvalidTransitionError(OnboardingException):
    """Operation not valid from the wizard's current step."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_TRANSITION",
        )


class BoundaryError(OnboardingException):
    """The remote onboarding backend failed or misbehaved.

    `detail` carries the upstream's own message when it sent one, so
    callers can surface it verbatim.
    """

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        detail: str | None = None,
    ):
        self.upstream_status = upstream_status
        self.detail = detail
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="BOUNDARY_ERROR",
        )


class SessionContextError(OnboardingException):
    """Exception for missing wizard session context."""

    def __init__(self, message: str = "Wizard session required"):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="SESSION_REQUIRED",
        )


# ── Envelope ────────────────────────────────────────────────

def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: dict | None = None,
) -> JSONResponse:
    """`{"error": {"code", "message", "details"?}}` with the given status."""
    error: dict = {"code": error_code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


def _where(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


# ── Handlers ────────────────────────────────────────────────

async def onboarding_exception_handler(request: Request, exc: OnboardingException) -> JSONResponse:
    logger.warning("%s on %s: %s", exc.error_code, request.url.path, exc.message, extra=_where(request))

    details = None
    if isinstance(exc, BoundaryError) and exc.upstream_status is not None:
        details = {"upstream_status": exc.upstream_status}
    return create_error_response(exc.status_code, exc.message, exc.error_code, details)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail, extra=_where(request))
    return create_error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Request body or query failed pydantic validation."""
    errors = [
        {
            "field": " -> ".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.info("Rejected %s %s: %d invalid field(s)", request.method, request.url.path, len(errors))
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internals stay in the log; the browser gets a generic message
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, extra=_where(request))
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Install the envelope handlers, most specific first."""
    app.add_exception_handler(OnboardingException, onboarding_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
