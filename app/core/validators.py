"""
Reusable validators for models, serializers and services.

- File uploads (size, media kind, incident evidence)

Usage:
    class PostMedia(models.Model):
        file = models.FileField(validators=[validate_file_size(max_mb=15)])

    media_type = validate_media_file(upload)  # "image" or "video"
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError

if TYPE_CHECKING:
    from django.core.files import File

IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/gif"})
VIDEO_CONTENT_TYPES = frozenset({"video/mp4", "video/quicktime", "video/x-msvideo"})
DOCUMENT_CONTENT_TYPES = frozenset({"application/pdf"})

# Fallback when the client did not send a usable content type.
EXTENSION_CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "pdf": "application/pdf",
}


def validate_file_size(max_mb: int = 10):
    """
    Validator factory for file size limits.

    Args:
        max_mb: Maximum size in megabytes
    """

    def validator(file: File):
        max_bytes = max_mb * 1024 * 1024
        if file.size > max_bytes:
            raise ValidationError(
                f"File size must be less than {max_mb}MB. "
                f"Current size: {file.size / 1024 / 1024:.1f}MB",
                code="FILE_TOO_LARGE",
            )

    return validator


def detect_content_type(file: File) -> str:
    """Content type reported by the upload, falling back to the extension."""
    content_type = (getattr(file, "content_type", None) or "").lower()
    if content_type and content_type != "application/octet-stream":
        return content_type
    ext = os.path.splitext(file.name or "")[1].lower().lstrip(".")
    return EXTENSION_CONTENT_TYPES.get(ext, "")


def validate_media_file(file: File) -> str:
    """
    Validate an image or video attachment.

    Images may be JPEG, PNG or GIF; videos MP4, QuickTime or AVI. Each
    kind has its own size limit from settings.

    Returns:
        "image" or "video"

    Raises:
        ValidationError: code UNSUPPORTED_MEDIA or FILE_TOO_LARGE
    """
    content_type = detect_content_type(file)

    if content_type in IMAGE_CONTENT_TYPES:
        media_type, max_mb = "image", settings.MEDIA_MAX_IMAGE_SIZE_MB
    elif content_type in VIDEO_CONTENT_TYPES:
        media_type, max_mb = "video", settings.MEDIA_MAX_VIDEO_SIZE_MB
    else:
        raise ValidationError(
            f"Unsupported media type '{content_type or 'unknown'}'. "
            "Upload a JPEG, PNG or GIF image, or an MP4, MOV or AVI video.",
            code="UNSUPPORTED_MEDIA",
        )

    validate_file_size(max_mb)(file)
    return media_type


def validate_evidence_file(file: File) -> str:
    """
    Validate a file attached to an incident report: an image or a PDF.

    Returns:
        The detected content type

    Raises:
        ValidationError: code UNSUPPORTED_FILE or FILE_TOO_LARGE
    """
    content_type = detect_content_type(file)
    if content_type not in IMAGE_CONTENT_TYPES | DOCUMENT_CONTENT_TYPES:
        raise ValidationError(
            f"Unsupported file type '{content_type or 'unknown'}'. Upload a JPEG, PNG, GIF or PDF file.",
            code="UNSUPPORTED_FILE",
        )
    validate_file_size(settings.MODERATION_EVIDENCE_MAX_SIZE_MB)(file)
    return content_type
