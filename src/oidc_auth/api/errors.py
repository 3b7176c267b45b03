"""Structured API error handling.

This module provides:
- ErrorCode enum with domain-grouped error codes
- APIError exception class for structured error responses
- to_api_error() mapping the service exception taxonomy onto HTTP
- Global exception handlers for consistent error formatting

Usage:
    from oidc_auth.api.errors import APIError, ErrorCode

    raise APIError(
        status_code=401,
        code=ErrorCode.AUTH_REQUIRED,
        message="Missing bearer token",
    )

Response format:
    {
        "detail": {
            "code": "NOT_FOUND",
            "message": "Failed to find identity with ID abc123",
            "details": {"name": "NotFound"}
        }
    }
"""

from __future__ import annotations

__all__ = [
    "APIError",
    "ErrorCode",
    "api_error_handler",
    "domain_error_handler",
    "http_exception_handler",
    "to_api_error",
    "validation_error_handler",
]

from enum import Enum
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from oidc_auth.exceptions import (
    ACCESS_DENIED_MESSAGE,
    AccessDeniedError,
    BadRequestError,
    CorruptedSecretError,
    ForbiddenError,
    NotFoundError,
    OIDCAuthError,
    PermissionBoundaryError,
    SigningKeyNotFoundError,
    UpstreamIdentityProviderError,
)


class ErrorCode(str, Enum):
    """API error codes for programmatic handling.

    Codes are namespaced by domain:
    - AUTH_*: Authentication/authorization errors
    - UPSTREAM_*: Token issuer (discovery, JWKS) errors
    - VALIDATION_*: Input validation errors
    - INTERNAL_*: Internal server errors
    """

    # Authentication errors (401, 403)
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_ACCESS_DENIED = "AUTH_ACCESS_DENIED"
    AUTH_FORBIDDEN = "AUTH_FORBIDDEN"
    AUTH_PERMISSION_BOUNDARY = "AUTH_PERMISSION_BOUNDARY"

    # Resource errors (404)
    NOT_FOUND = "NOT_FOUND"

    # Request errors (400, 422)
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Upstream errors (502)
    UPSTREAM_ERROR = "UPSTREAM_ERROR"

    # Internal errors (500, 503)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CORRUPTED_SECRET = "CORRUPTED_SECRET"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class APIError(HTTPException):
    """Structured API error with error code.

    Extends HTTPException to provide consistent structured error responses
    with error codes for programmatic handling.

    Attributes:
        status_code: HTTP status code.
        code: Error code from ErrorCode enum.
        error_message: Human-readable error message.
        error_details: Optional contextual details.
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.error_message = message
        self.error_details = details

        detail: dict[str, Any] = {
            "code": code.value,
            "message": message,
        }
        if details:
            detail["details"] = details

        super().__init__(status_code=status_code, detail=detail)


def to_api_error(exc: OIDCAuthError) -> APIError:
    """Map a service exception to its structured HTTP error.

    Every access-denied variant, and an unknown signing key, collapses to the
    same 401 response so the client cannot tell which check failed. Upstream
    failures answer 502 with a fixed message; endpoint URLs and transport
    errors are only written to the audit log.

    Args:
        exc: Exception raised by a service.

    Returns:
        APIError ready to be rendered.
    """
    if isinstance(exc, (AccessDeniedError, SigningKeyNotFoundError)):
        # An unknown kid is indistinguishable from any other rejected token
        return APIError(401, ErrorCode.AUTH_ACCESS_DENIED, ACCESS_DENIED_MESSAGE)
    if isinstance(exc, UpstreamIdentityProviderError):
        return APIError(502, ErrorCode.UPSTREAM_ERROR, exc.public_message)
    if isinstance(exc, NotFoundError):
        return APIError(404, ErrorCode.NOT_FOUND, exc.message, {"name": exc.name})
    if isinstance(exc, BadRequestError):
        return APIError(400, ErrorCode.BAD_REQUEST, exc.message)
    if isinstance(exc, PermissionBoundaryError):
        return APIError(
            403,
            ErrorCode.AUTH_PERMISSION_BOUNDARY,
            exc.message,
            {"missingPermissions": exc.missing_permissions},
        )
    if isinstance(exc, ForbiddenError):
        details = {"action": exc.action, "subject": exc.subject} if exc.action else None
        return APIError(403, ErrorCode.AUTH_FORBIDDEN, exc.message, details)
    if isinstance(exc, CorruptedSecretError):
        # Never echo decryption internals to the client
        return APIError(500, ErrorCode.CORRUPTED_SECRET, "Stored secret could not be decrypted")
    return APIError(500, ErrorCode.INTERNAL_ERROR, exc.message)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions with structured response."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


async def domain_error_handler(request: Request, exc: OIDCAuthError) -> JSONResponse:
    """Render a service exception that escaped a route."""
    api_error = to_api_error(exc)
    return JSONResponse(
        status_code=api_error.status_code,
        content={"detail": api_error.detail},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors with structured response.

    Converts Pydantic validation errors to our structured format while
    preserving the detailed field-level error information.
    """
    errors = exc.errors()
    first_error = errors[0] if errors else {}

    loc = first_error.get("loc", [])
    msg = first_error.get("msg", "Validation error")

    if len(errors) == 1:
        field_parts = [str(part) for part in loc if part != "body"]
        field_name = ".".join(field_parts)
        message = f"{field_name}: {msg}" if field_name else msg
    else:
        message = f"{len(errors)} validation errors"

    detail: dict[str, Any] = {
        "code": ErrorCode.VALIDATION_ERROR.value,
        "message": message,
        "validation_errors": [
            {
                "loc": list(e.get("loc", [])),
                "msg": e.get("msg", ""),
                "type": e.get("type", ""),
            }
            for e in errors
        ],
    }

    return JSONResponse(
        status_code=422,
        content={"detail": detail},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap plain HTTPException details in the structured format."""
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    code = _status_to_error_code(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"code": code.value, "message": message}},
    )


def _status_to_error_code(status_code: int) -> ErrorCode:
    mapping = {
        400: ErrorCode.BAD_REQUEST,
        401: ErrorCode.AUTH_REQUIRED,
        403: ErrorCode.AUTH_FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.UPSTREAM_ERROR,
        503: ErrorCode.SERVICE_UNAVAILABLE,
    }
    return mapping.get(status_code, ErrorCode.INTERNAL_ERROR)
