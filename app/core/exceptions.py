"""
Application exception hierarchy and the DRF exception handler.

Exception Hierarchy:
    BaseApplicationError (500)
    ├── ValidationError (400)
    ├── NotFoundError (404)
    └── PermissionDeniedError (403)

Services normally return ServiceResult.failure for business rule
violations. These exceptions are for code paths that cannot return a
result, such as serializer hooks and permission helpers, and are turned
into JSON responses by api_exception_handler (wired through
REST_FRAMEWORK["EXCEPTION_HANDLER"]).

Usage:
    raise NotFoundError("Conversation not found", error_code="CONVERSATION_NOT_FOUND")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any

    from rest_framework.response import Response

logger = logging.getLogger(__name__)


class BaseApplicationError(Exception):
    """
    Base for all application errors.

    Attributes:
        message: Human-readable description
        error_code: Machine-readable code for clients
        details: Extra context (field errors, identifiers)
        status_code: HTTP status used when rendered by the API
    """

    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Input failed a service-level rule."""

    default_error_code: str = "VALIDATION_ERROR"
    status_code: int = 400


class NotFoundError(BaseApplicationError):
    """A single resource expected to exist does not."""

    default_error_code: str = "NOT_FOUND"
    status_code: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    The caller is authenticated but not allowed to do this.

    Authentication failures stay with DRF's AuthenticationFailed.
    """

    default_error_code: str = "PERMISSION_DENIED"
    status_code: int = 403


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """
    DRF exception handler that understands BaseApplicationError.

    Application errors become ``{"error", "error_code", "details"}`` with
    the error's status. Everything else goes to DRF's default handler,
    which returns None for unhandled exceptions so they surface as 500s.
    """
    from rest_framework.response import Response
    from rest_framework.views import exception_handler

    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        logger.info(
            f"{exc.__class__.__name__} in {view.__class__.__name__ if view else 'unknown view'}: {exc}"
        )
        return Response(exc.to_dict(), status=exc.status_code)

    return exception_handler(exc, context)
