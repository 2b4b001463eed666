"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures:
members of each role and JWT-authenticated API clients.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    settings.ACCOUNT_EMAIL_VERIFICATION = "none"

    # Run Celery tasks inline. The app reads CELERY_* settings lazily.
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True

    from config.celery import app as celery_app

    celery_app.conf.update(task_always_eager=True, task_eager_propagates=True)


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full user journey workflows)
    - test_views.py, test_services.py, test_consumers.py, etc. → integration
    - test_models.py, test_read_state.py, test_validators.py, etc. → unit
    - Unmatched files → integration

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_permissions.py",
        "test_handlers.py",
        "test_consumers.py",
        "test_commands.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_validators.py",
        "test_managers.py",
        "test_signals.py",
        "test_read_state.py",
        "test_recurrence.py",
        "test_exceptions.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _media_root(settings, tmp_path):
    """Uploaded files land in a per-test directory."""
    settings.MEDIA_ROOT = str(tmp_path / "media")


@pytest.fixture(autouse=True)
def _clear_cache():
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


# =============================================================================
# Members
# =============================================================================


@pytest.fixture
def user(db):
    """A verified student with an auto-created profile."""
    from authentication.tests.factories import UserFactory

    return UserFactory(email_verified=True)


@pytest.fixture
def other_user(db):
    """A second student, used as the counterpart in two-party tests."""
    from authentication.tests.factories import UserFactory

    return UserFactory(email_verified=True)


@pytest.fixture
def teacher(db):
    from authentication.tests.factories import TeacherFactory

    return TeacherFactory()


@pytest.fixture
def admin_member(db):
    """A member holding the admin role (not a Django superuser)."""
    from authentication.tests.factories import AdminFactory

    return AdminFactory()


# =============================================================================
# API Clients
# =============================================================================


def _jwt_client(user):
    from rest_framework.test import APIClient
    from rest_framework_simplejwt.tokens import RefreshToken

    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


@pytest.fixture
def api_client():
    """Unauthenticated API client for public endpoints."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def authenticated_client(user):
    """API client authenticated with a JWT for the default user fixture."""
    return _jwt_client(user)


@pytest.fixture
def authenticated_client_factory(db):
    """
    Factory to create authenticated clients for any user.

    Usage:
        def test_example(authenticated_client_factory, teacher):
            client = authenticated_client_factory(teacher)
            response = client.get('/api/v1/auth/profile/')
    """
    return _jwt_client
