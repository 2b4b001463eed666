"""
Core Application - Infrastructure & Base Classes

Domain-free building blocks shared by every app.

Models (import from core.models):
    - BaseModel: Abstract model with created_at/updated_at

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin, SoftDeleteMixin, OrderableMixin

Managers (import from core.managers):
    - BaseQuerySet, SoftDeleteQuerySet, SoftDeleteManager

Services:
    - BaseService, ServiceResult

Exceptions:
    - BaseApplicationError and subclasses, api_exception_handler

Validators:
    - validate_file_size, validate_media_file, validate_evidence_file

Note:
    Models, mixins and managers are not imported here because they need
    the app registry. Import them from their modules.
"""

from .exceptions import (
    BaseApplicationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .services import BaseService, ServiceResult
from .validators import (
    validate_evidence_file,
    validate_file_size,
    validate_media_file,
)

__all__ = [
    "BaseService",
    "ServiceResult",
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "validate_file_size",
    "validate_media_file",
    "validate_evidence_file",
]
