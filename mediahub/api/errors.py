"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    CONFLICT = "CONFLICT"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_TOKEN_STALE = "AUTH_TOKEN_STALE"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    default_status_code = 500
    default_error_code = ApiErrorCode.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: ApiErrorCode | None = None,
        errors: list[Any] | None = None,
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        self.error_code = error_code or self.default_error_code
        self.message = message
        self.errors = list(errors or [])
        super().__init__(
            status_code=status_code or self.default_status_code,
            detail={
                "error_code": str(self.error_code),
                "message": message,
                "errors": self.errors,
            },
        )


class ApiValidationError(ApiError):
    default_status_code = 400
    default_error_code = ApiErrorCode.VALIDATION_ERROR


class InvalidIdentifier(ApiError):
    default_status_code = 400
    default_error_code = ApiErrorCode.INVALID_IDENTIFIER


class Conflict(ApiError):
    default_status_code = 409
    default_error_code = ApiErrorCode.CONFLICT


class Unauthenticated(ApiError):
    """Wrong credentials; deliberately silent about which part was wrong."""

    default_status_code = 401
    default_error_code = ApiErrorCode.AUTH_INVALID_CREDENTIALS


class MissingCredential(Unauthenticated):
    default_error_code = ApiErrorCode.AUTH_MISSING_TOKEN


class InvalidCredential(Unauthenticated):
    default_error_code = ApiErrorCode.AUTH_TOKEN_INVALID


class InvalidToken(InvalidCredential):
    pass


class ExpiredToken(InvalidCredential):
    default_error_code = ApiErrorCode.AUTH_TOKEN_EXPIRED


class StaleToken(InvalidCredential):
    """Refresh token is well-formed but no longer the one persisted for the user."""

    default_error_code = ApiErrorCode.AUTH_TOKEN_STALE


class Forbidden(ApiError):
    default_status_code = 403
    default_error_code = ApiErrorCode.FORBIDDEN


class NotFound(ApiError):
    default_status_code = 404
    default_error_code = ApiErrorCode.NOT_FOUND


class UpstreamFailure(ApiError):
    default_status_code = 502
    default_error_code = ApiErrorCode.UPSTREAM_FAILURE


def to_error_payload(detail: Any, status_code: int) -> dict[str, Any]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        return {
            "status_code": status_code,
            "error_code": str(detail.get("error_code") or f"HTTP_{status_code}"),
            "message": str(detail.get("message") or detail.get("detail") or "HTTP error"),
            "errors": list(detail.get("errors") or []),
        }
    return {
        "status_code": status_code,
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
        "errors": [],
    }
