"""Tests for notification models and the default type seeding."""

from datetime import timedelta

import pytest
from django.db import IntegrityError

from notifications.models import DEFAULT_NOTIFICATION_TYPES, Notification, NotificationCategory, NotificationType
from notifications.tests.factories import NotificationFactory, NotificationTypeFactory


pytestmark = pytest.mark.django_db


class TestEnsureDefaults:
    def test_creates_every_default_type(self, db):
        created = NotificationType.objects.ensure_defaults()

        assert created == len(DEFAULT_NOTIFICATION_TYPES) == 18
        assert set(NotificationType.objects.values_list("key", flat=True)) == {
            "direct_message",
            "group_message",
            "connection_request",
            "connection_accepted",
            "new_follower",
            "post_liked",
            "post_comment",
            "post_pinned",
            "group_join_request",
            "group_join_approved",
            "group_join_rejected",
            "class_leader_assigned",
            "report_submitted",
            "incident_reported",
            "event_application",
            "event_response",
            "new_announcement",
            "account_suspended",
        }

    def test_is_idempotent(self, db):
        NotificationType.objects.ensure_defaults()

        assert NotificationType.objects.ensure_defaults() == 0

    def test_keeps_admin_edits(self, db):
        NotificationTypeFactory(key="new_follower", title_template="Custom", category=NotificationCategory.SYSTEM)

        NotificationType.objects.ensure_defaults()

        assert NotificationType.objects.get(key="new_follower").title_template == "Custom"

    def test_account_suspended_is_email_only(self, db):
        NotificationType.objects.ensure_defaults()

        suspended = NotificationType.objects.get(key="account_suspended")
        assert (suspended.supports_push, suspended.supports_email, suspended.supports_websocket) == (
            False,
            True,
            False,
        )

    def test_templates_render_with_their_placeholders(self, db):
        context = {
            "actor_name": "Ana",
            "message_preview": "hi",
            "group_name": "Physics",
            "interest_statement": "I like it",
            "post_preview": "post",
            "comment_preview": "comment",
            "class_name": "10A",
            "responsibilities": "attendance",
            "event_title": "Fair",
            "response": "confirmed",
            "announcement_title": "Exams",
            "announcement_preview": "Next week",
            "reported_name": "Bo",
            "reason": "spam",
            "report_id": "IR-000001",
            "incident_type": "Bullying",
            "student_name": "Cy",
            "severity": "high",
        }
        NotificationType.objects.ensure_defaults()

        for notification_type in NotificationType.objects.all():
            assert notification_type.title_template.format(**context)
            notification_type.body_template.format(**context)


class TestNotification:
    def test_idempotency_key_is_unique(self, db):
        NotificationFactory(idempotency_key="k")

        with pytest.raises(IntegrityError):
            NotificationFactory(idempotency_key="k")

    def test_null_idempotency_keys_do_not_collide(self, db):
        NotificationFactory(idempotency_key=None)
        NotificationFactory(idempotency_key=None)

    def test_newest_first(self, user):
        older = NotificationFactory(recipient=user)
        newer = NotificationFactory(recipient=user)
        Notification.objects.filter(pk=older.pk).update(created_at=newer.created_at - timedelta(minutes=1))

        assert list(user.notifications.all()) == [newer, older]

    def test_str(self, user):
        notification = NotificationFactory(recipient=user, notification_type__key="post_liked")

        assert str(notification) == f"Notification(post_liked) -> User {user.id} [unread]"
