"""
Tests for the application exception hierarchy and api_exception_handler.
"""

from rest_framework import status
from rest_framework.exceptions import NotAuthenticated

from core.exceptions import (
    BaseApplicationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    api_exception_handler,
)


class TestApplicationErrors:
    def test_defaults(self):
        assert NotFoundError("x").error_code == "NOT_FOUND"
        assert NotFoundError("x").status_code == 404
        assert PermissionDeniedError("x").status_code == 403
        assert ValidationError("x").status_code == 400
        assert BaseApplicationError("x").status_code == 500

    def test_to_dict(self):
        error = ValidationError("Bad date", error_code="INVALID_RANGE", details={"field": "end"})

        assert error.to_dict() == {"error": "Bad date", "error_code": "INVALID_RANGE", "details": {"field": "end"}}
        assert str(error) == "[INVALID_RANGE] Bad date"

    def test_to_dict_without_details(self):
        assert "details" not in NotFoundError("Gone").to_dict()


class TestApiExceptionHandler:
    def test_application_error(self):
        response = api_exception_handler(
            NotFoundError("Message not found", error_code="MESSAGE_NOT_FOUND"), {"view": None}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data == {"error": "Message not found", "error_code": "MESSAGE_NOT_FOUND"}

    def test_drf_errors_use_default_handler(self):
        response = api_exception_handler(NotAuthenticated(), {})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_unknown_errors_are_not_handled(self):
        assert api_exception_handler(RuntimeError("boom"), {}) is None
