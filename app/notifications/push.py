"""
Push notification backends.

A backend is a callable ``(device_token, title, body, data) -> message_id``
named by the NOTIFICATION_PUSH_BACKEND setting. It raises DeliveryError
when the provider rejects the message; ``is_permanent`` marks errors a
retry cannot fix (unregistered or malformed tokens).

Usage:
    from notifications.push import get_push_backend

    send = get_push_backend()
    message_id = send(device, "Title", "Body", {"link": "/chat/..."})
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Protocol

from django.conf import settings
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from notifications.models import DeviceToken

logger = logging.getLogger(__name__)


# Error classification for retry logic
PERMANENT_ERRORS = {
    "unregistered",
    "invalid_token",
    "invalid_email",
    "invalid_recipient",
}


class DeliveryError(Exception):
    """Provider rejected a delivery."""

    def __init__(self, message: str, code: str, is_permanent: bool | None = None):
        super().__init__(message)
        self.code = code
        self.is_permanent = code in PERMANENT_ERRORS if is_permanent is None else is_permanent


class PushBackend(Protocol):
    def __call__(self, device: DeviceToken, title: str, body: str, data: dict) -> str: ...


def log_push_backend(device: DeviceToken, title: str, body: str, data: dict) -> str:
    """Default backend: records the push in the log and reports success."""
    message_id = f"log-{uuid.uuid4()}"
    logger.info(f"Push to {device.platform} device of user {device.user_id}: {title!r} ({message_id})")
    return message_id


def get_push_backend() -> PushBackend:
    return import_string(settings.NOTIFICATION_PUSH_BACKEND)
