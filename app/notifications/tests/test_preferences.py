"""
Tests for preference resolution.

Resolution order: global mute, category switch, type switch, then
per-channel overrides limited by what the type supports.
"""

import pytest
from django.core.cache import cache

from notifications.models import (
    NotificationCategory,
    SkipReason,
    UserCategoryPreference,
    UserGlobalPreference,
    UserNotificationPreference,
)
from notifications.preferences import PreferenceResolver
from notifications.services import PreferenceService
from notifications.tests.factories import NotificationTypeFactory


pytestmark = pytest.mark.django_db


class TestResolve:
    def test_defaults_follow_type_support(self, user):
        notification_type = NotificationTypeFactory(supports_push=True, supports_email=False, supports_websocket=True)

        prefs = PreferenceResolver.resolve(user, notification_type)

        assert not prefs.blocked
        assert prefs.push_enabled
        assert not prefs.email_enabled
        assert prefs.websocket_enabled

    def test_global_mute_wins(self, user):
        notification_type = NotificationTypeFactory()
        UserGlobalPreference.objects.create(user=user, all_disabled=True)
        UserNotificationPreference.objects.create(user=user, notification_type=notification_type, push_enabled=True)

        prefs = PreferenceResolver.resolve(user, notification_type)

        assert prefs.blocked_reason == SkipReason.GLOBAL_DISABLED
        assert not prefs.is_channel_enabled("push")

    def test_category_before_type(self, user):
        notification_type = NotificationTypeFactory(category=NotificationCategory.ACADEMIC)
        UserCategoryPreference.objects.create(user=user, category=NotificationCategory.ACADEMIC, disabled=True)
        UserNotificationPreference.objects.create(user=user, notification_type=notification_type, disabled=True)

        prefs = PreferenceResolver.resolve(user, notification_type)

        assert prefs.blocked_reason == SkipReason.CATEGORY_DISABLED

    def test_other_category_is_unaffected(self, user):
        notification_type = NotificationTypeFactory(category=NotificationCategory.SOCIAL)
        UserCategoryPreference.objects.create(user=user, category=NotificationCategory.ACADEMIC, disabled=True)

        assert not PreferenceResolver.resolve(user, notification_type).blocked

    def test_type_switch(self, user):
        notification_type = NotificationTypeFactory()
        UserNotificationPreference.objects.create(user=user, notification_type=notification_type, disabled=True)

        assert PreferenceResolver.resolve(user, notification_type).blocked_reason == SkipReason.TYPE_DISABLED

    def test_override_cannot_enable_unsupported_channel(self, user):
        notification_type = NotificationTypeFactory(supports_email=False)
        UserNotificationPreference.objects.create(user=user, notification_type=notification_type, email_enabled=True)

        assert not PreferenceResolver.resolve(user, notification_type).email_enabled

    def test_override_disables_supported_channel(self, user):
        notification_type = NotificationTypeFactory(supports_push=True)
        UserNotificationPreference.objects.create(user=user, notification_type=notification_type, push_enabled=False)

        prefs = PreferenceResolver.resolve(user, notification_type)

        assert not prefs.push_enabled
        assert prefs.any_enabled


class TestCaching:
    def test_result_is_cached(self, user, django_assert_num_queries):
        notification_type = NotificationTypeFactory()
        PreferenceResolver.resolve(user, notification_type)

        with django_assert_num_queries(0):
            PreferenceResolver.resolve(user, notification_type)

    def test_service_updates_invalidate_cache(self, user):
        notification_type = NotificationTypeFactory(key="cached_type")
        assert not PreferenceResolver.resolve(user, notification_type).blocked

        PreferenceService.set_type_preference(user, "cached_type", disabled=True)

        assert PreferenceResolver.resolve(user, notification_type).blocked

    def test_invalidation_is_per_user(self, user, other_user):
        notification_type = NotificationTypeFactory()
        PreferenceResolver.resolve(other_user, notification_type)

        PreferenceResolver.invalidate_cache(user.id)

        cache_key = PreferenceResolver._get_cache_key(other_user.id, notification_type.id)
        assert cache.get(cache_key) is not None


class TestResolveBulk:
    def test_matches_single_resolution(self, user, other_user, teacher, django_assert_num_queries):
        notification_type = NotificationTypeFactory(category=NotificationCategory.SOCIAL)
        UserGlobalPreference.objects.create(user=other_user, all_disabled=True)
        UserCategoryPreference.objects.create(user=teacher, category=NotificationCategory.SOCIAL, disabled=True)

        with django_assert_num_queries(3):
            resolved = PreferenceResolver.resolve_bulk([user.id, other_user.id, teacher.id], notification_type)

        assert not resolved[user.id].blocked
        assert resolved[other_user.id].blocked_reason == SkipReason.GLOBAL_DISABLED
        assert resolved[teacher.id].blocked_reason == SkipReason.CATEGORY_DISABLED

    def test_empty(self, db):
        assert PreferenceResolver.resolve_bulk([], NotificationTypeFactory()) == {}
