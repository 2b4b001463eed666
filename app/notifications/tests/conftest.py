"""
Fixtures for notification tests.

Users and API clients come from the root conftest.
"""

import pytest


@pytest.fixture
def seeded_types(db):
    """Default notification types."""
    from notifications.models import NotificationType

    NotificationType.objects.ensure_defaults()
    return NotificationType.objects.all()


@pytest.fixture
def templated_type(db):
    """Type whose templates use {actor_name} and {item}; supports every channel."""
    from notifications.tests.factories import NotificationTypeFactory

    return NotificationTypeFactory(
        key="templated",
        title_template="{actor_name} shared {item}",
        body_template="Open {item} to see it",
        supports_push=True,
        supports_email=True,
        supports_websocket=True,
    )


@pytest.fixture
def push_backend(settings, mocker):
    """Replace the push backend with a mock returning message ids."""
    backend = mocker.Mock(return_value="msg-1")
    mocker.patch("notifications.tasks.get_push_backend", return_value=backend)
    return backend
