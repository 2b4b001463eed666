"""
Service layer primitives.

- ServiceResult: success/failure wrapper returned by every service method
- BaseService: classmethod-only base with logging and transaction helpers

Expected failures (a business rule said no) come back as
ServiceResult.failure with a machine-readable error_code. Unexpected
failures raise.

Usage:
    class TodoService(BaseService):
        @classmethod
        def create_todo(cls, user, title: str) -> ServiceResult[Todo]:
            missing = cls.validate_required(title=title)
            if missing is not None:
                return missing
            with cls.atomic():
                todo = Todo.objects.create(user=user, title=title)
            cls.get_logger().info(f"Created todo {todo.id} for user {user.id}")
            return ServiceResult.success(todo)

    # In a view
    result = TodoService.create_todo(request.user, title)
    if not result.success:
        return Response(result.to_response(), status=result.status_code)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")

# Error codes that map to something other than 400.
# Anything ending in _NOT_FOUND is a 404 as well.
ERROR_CODE_STATUS: dict[str, int] = {
    "NOT_FOUND": 404,
    "PERMISSION_DENIED": 403,
    "NOT_PARTICIPANT": 403,
    "NOT_AUTHOR": 403,
    "NOT_OWNER": 403,
    "NOT_ADMIN": 403,
    "NOT_RECIPIENT": 403,
    "USER_SUSPENDED": 403,
    "BLOCKED": 403,
    "MESSAGES_NOT_ALLOWED": 403,
    "ALREADY_CONNECTED": 409,
    "ALREADY_MEMBER": 409,
    "ALREADY_PARTICIPANT": 409,
    "ALREADY_VOTED": 409,
    "ALREADY_APPLIED": 409,
    "REQUEST_PENDING": 409,
    "ALREADY_SUSPENDED": 409,
    "DUPLICATE": 409,
}


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service operation.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success
        error: Human-readable message on failure
        error_code: Machine-readable code on failure
        errors: Optional field-level errors
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @property
    def status_code(self) -> int:
        """HTTP status a view should answer a failed result with."""
        if self.success:
            return 200
        code = self.error_code or ""
        if code in ERROR_CODE_STATUS:
            return ERROR_CODE_STATUS[code]
        if code.endswith("_NOT_FOUND"):
            return 404
        return 400

    def to_response(self) -> dict[str, Any]:
        """Response body for a failed result (or the data for a successful one)."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {"error": self.error}
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response


class BaseService:
    """
    Base class for stateless services.

    Subclasses expose classmethods only. Use ServiceResult for business
    rule failures and let unexpected errors propagate.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named ``<module>.<ServiceName>``."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """Wrap the block in transaction.atomic()."""
        with transaction.atomic():
            yield

    @classmethod
    def validate_required(cls, **kwargs: Any) -> ServiceResult | None:
        """
        Check that each keyword argument is present and non-blank.

        Returns:
            A VALIDATION_ERROR failure listing the missing fields, or None
        """
        errors: dict[str, list[str]] = {}
        for field_name, value in kwargs.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[field_name] = ["This field is required."]

        if errors:
            return ServiceResult.failure(
                "Required fields missing",
                error_code="VALIDATION_ERROR",
                errors=errors,
            )
        return None
