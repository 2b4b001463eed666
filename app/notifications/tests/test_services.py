"""
Tests for notification services.

Test Classes:
    TestCreateNotification: Rendering, type lookup, blocking, idempotency, deliveries
    TestNotifyMany: Bulk fan-out
    TestReadStatus: mark_as_read, mark_all_as_read, unread_count
    TestPreferenceService: Global, category and type preferences
    TestDeviceTokenService: Token upsert and removal
    TestDeliveryMetrics: Success rate and breakdowns
"""

from datetime import date

import pytest
from freezegun import freeze_time

from notifications.models import (
    DeliveryChannel,
    DeliveryStatus,
    DevicePlatform,
    DeviceToken,
    Notification,
    NotificationDelivery,
    NotificationType,
    SkipReason,
    UserCategoryPreference,
    UserGlobalPreference,
)
from notifications.services import DeliveryMetricsService, DeviceTokenService, NotificationService, PreferenceService
from notifications.tests.factories import NotificationDeliveryFactory, NotificationFactory, NotificationTypeFactory
from social.tests.factories import BlockFactory


pytestmark = pytest.mark.django_db


class TestCreateNotification:
    def test_renders_templates_with_actor_name(self, templated_type, user, other_user):
        result = NotificationService.create_notification(
            recipient=user,
            type_key="templated",
            data={"item": "notes.pdf"},
            actor=other_user,
        )

        assert result.success
        notification = result.data
        assert notification.title == f"{other_user.profile.display_name} shared notes.pdf"
        assert notification.body == "Open notes.pdf to see it"
        assert notification.actor == other_user
        assert notification.data == {"item": "notes.pdf"}

    def test_system_notification_uses_someone(self, templated_type, user):
        result = NotificationService.create_notification(recipient=user, type_key="templated", data={"item": "x"})

        assert result.data.title == "Someone shared x"

    def test_explicit_title_and_body_win(self, templated_type, user):
        result = NotificationService.create_notification(
            recipient=user,
            type_key="templated",
            title="Custom",
            body="",
        )

        assert result.data.title == "Custom"
        assert result.data.body == ""

    def test_missing_placeholder_raises(self, templated_type, user):
        with pytest.raises(KeyError):
            NotificationService.create_notification(recipient=user, type_key="templated")

    def test_unknown_type(self, user):
        result = NotificationService.create_notification(recipient=user, type_key="nonexistent", title="x")

        assert not result.success
        assert result.error_code == "TYPE_NOT_FOUND"
        assert result.status_code == 404

    def test_inactive_type(self, user):
        NotificationTypeFactory(key="retired", is_active=False)

        result = NotificationService.create_notification(recipient=user, type_key="retired", title="x")

        assert result.error_code == "TYPE_INACTIVE"

    def test_default_type_is_seeded_on_demand(self, user, other_user):
        assert not NotificationType.objects.exists()

        result = NotificationService.create_notification(recipient=user, type_key="new_follower", actor=other_user)

        assert result.success
        assert result.data.title.endswith("started following you")
        assert NotificationType.objects.filter(key="direct_message").exists()

    @pytest.mark.parametrize("blocker_is_recipient", [True, False])
    def test_suppressed_between_blocked_users(self, templated_type, user, other_user, blocker_is_recipient):
        if blocker_is_recipient:
            BlockFactory(blocker=user, blocked=other_user)
        else:
            BlockFactory(blocker=other_user, blocked=user)

        result = NotificationService.create_notification(
            recipient=user, type_key="templated", data={"item": "x"}, actor=other_user
        )

        assert result.error_code == "BLOCKED"
        assert not Notification.objects.exists()

    def test_idempotency_key_prevents_duplicates(self, templated_type, user):
        first = NotificationService.create_notification(
            recipient=user, type_key="templated", data={"item": "x"}, idempotency_key="once"
        )
        second = NotificationService.create_notification(
            recipient=user, type_key="templated", data={"item": "x"}, idempotency_key="once"
        )

        assert first.success
        assert second.error_code == "DUPLICATE"
        assert Notification.objects.count() == 1

    def test_links_source_object(self, templated_type, user, other_user):
        result = NotificationService.create_notification(
            recipient=user,
            type_key="templated",
            data={"item": "x"},
            source_object=other_user,
            link="/profiles/1",
        )

        notification = result.data
        assert notification.source_object == other_user
        assert notification.link == "/profiles/1"

    def test_creates_pending_delivery_per_supported_channel(self, templated_type, user):
        result = NotificationService.create_notification(recipient=user, type_key="templated", data={"item": "x"})

        deliveries = {d.channel: d for d in result.data.deliveries.all()}
        assert set(deliveries) == {DeliveryChannel.PUSH, DeliveryChannel.EMAIL, DeliveryChannel.WEBSOCKET}
        assert all(d.status == DeliveryStatus.PENDING for d in deliveries.values())

    def test_unsupported_channel_has_no_delivery(self, user):
        NotificationTypeFactory(key="push_only", supports_email=False, supports_websocket=False)

        result = NotificationService.create_notification(recipient=user, type_key="push_only")

        assert list(result.data.deliveries.values_list("channel", flat=True)) == [DeliveryChannel.PUSH]

    def test_globally_muted_user_gets_skipped_deliveries(self, templated_type, user):
        UserGlobalPreference.objects.create(user=user, all_disabled=True)

        result = NotificationService.create_notification(recipient=user, type_key="templated", data={"item": "x"})

        assert result.success
        statuses = set(result.data.deliveries.values_list("status", "skipped_reason"))
        assert statuses == {(DeliveryStatus.SKIPPED, SkipReason.GLOBAL_DISABLED)}

    def test_channel_override_skips_one_channel(self, templated_type, user):
        PreferenceService.set_type_preference(user, "templated", email_enabled=False)

        result = NotificationService.create_notification(recipient=user, type_key="templated", data={"item": "x"})

        email = result.data.deliveries.get(channel=DeliveryChannel.EMAIL)
        push = result.data.deliveries.get(channel=DeliveryChannel.PUSH)
        assert email.status == DeliveryStatus.SKIPPED
        assert email.skipped_reason == SkipReason.CHANNEL_DISABLED
        assert push.status == DeliveryStatus.PENDING

    def test_enqueues_tasks_after_commit(self, templated_type, user, mocker, django_capture_on_commit_callbacks):
        push = mocker.patch("notifications.tasks.send_push_notification.delay")
        email = mocker.patch("notifications.tasks.send_email_notification.delay")
        websocket = mocker.patch("notifications.tasks.broadcast_websocket_notification.delay")

        with django_capture_on_commit_callbacks(execute=True):
            result = NotificationService.create_notification(
                recipient=user, type_key="templated", data={"item": "x"}
            )

        push_delivery = result.data.deliveries.get(channel=DeliveryChannel.PUSH)
        push.assert_called_once_with(str(push_delivery.id))
        email.assert_called_once()
        websocket.assert_called_once()

    def test_skipped_deliveries_are_not_enqueued(
        self, templated_type, user, mocker, django_capture_on_commit_callbacks
    ):
        UserGlobalPreference.objects.create(user=user, all_disabled=True)
        push = mocker.patch("notifications.tasks.send_push_notification.delay")

        with django_capture_on_commit_callbacks(execute=True):
            NotificationService.create_notification(recipient=user, type_key="templated", data={"item": "x"})

        push.assert_not_called()


class TestNotifyMany:
    def test_fans_out_to_every_recipient(self, templated_type, user, other_user, teacher):
        result = NotificationService.notify_many(
            [user, other_user], "templated", data={"item": "x"}, actor=teacher
        )

        assert result.success
        assert len(result.data) == 2
        assert set(Notification.objects.values_list("recipient_id", flat=True)) == {user.id, other_user.id}
        assert NotificationDelivery.objects.count() == 6

    def test_excludes_actor_and_blocked_users(self, templated_type, user, other_user, teacher):
        BlockFactory(blocker=other_user, blocked=teacher)

        result = NotificationService.notify_many(
            [user, other_user, teacher], "templated", data={"item": "x"}, actor=teacher
        )

        assert [n.recipient_id for n in result.data] == [user.id]

    def test_per_recipient_idempotency(self, templated_type, user, other_user):
        NotificationService.notify_many([user], "templated", data={"item": "x"}, idempotency_key="batch")

        result = NotificationService.notify_many(
            [user, other_user], "templated", data={"item": "x"}, idempotency_key="batch"
        )

        assert [n.recipient_id for n in result.data] == [other_user.id]
        assert Notification.objects.get(recipient=other_user).idempotency_key == f"batch:{other_user.id}"

    def test_respects_each_recipients_preferences(self, templated_type, user, other_user):
        PreferenceService.set_category_preference(other_user, templated_type.category, disabled=True)

        NotificationService.notify_many([user, other_user], "templated", data={"item": "x"})

        muted = NotificationDelivery.objects.filter(notification__recipient=other_user)
        assert set(muted.values_list("skipped_reason", flat=True)) == {SkipReason.CATEGORY_DISABLED}
        active = NotificationDelivery.objects.filter(notification__recipient=user)
        assert set(active.values_list("status", flat=True)) == {DeliveryStatus.PENDING}

    def test_no_recipients(self, templated_type):
        result = NotificationService.notify_many([], "templated", data={"item": "x"})

        assert result.success
        assert result.data == []


class TestReadStatus:
    def test_mark_as_read(self, user):
        notification = NotificationFactory(recipient=user)

        result = NotificationService.mark_as_read(notification, user)

        assert result.success
        notification.refresh_from_db()
        assert notification.is_read

    def test_mark_as_read_is_idempotent(self, user):
        notification = NotificationFactory(recipient=user, is_read=True)

        assert NotificationService.mark_as_read(notification, user).success

    def test_cannot_mark_someone_elses(self, user, other_user):
        notification = NotificationFactory(recipient=other_user)

        result = NotificationService.mark_as_read(notification, user)

        assert result.error_code == "NOT_OWNER"
        assert result.status_code == 403

    def test_mark_all_as_read_only_touches_own_unread(self, user, other_user):
        NotificationFactory.create_batch(3, recipient=user)
        NotificationFactory(recipient=user, is_read=True)
        NotificationFactory(recipient=other_user)

        result = NotificationService.mark_all_as_read(user)

        assert result.data == 3
        assert NotificationService.unread_count(user) == 0
        assert NotificationService.unread_count(other_user) == 1

    def test_mark_read_publishes_unread_count(self, user, mocker):
        publish = mocker.patch("notifications.services.publish_to_user")
        NotificationFactory.create_batch(2, recipient=user)
        notification = NotificationFactory(recipient=user)

        NotificationService.mark_as_read(notification, user)

        publish.assert_called_once_with(user.id, "notification.unread_count", {"unread_count": 2})


class TestPreferenceService:
    def test_defaults_are_empty(self, user):
        result = PreferenceService.get_user_preferences(user)

        assert result.data == {"global": {"all_disabled": False}, "categories": [], "types": []}

    def test_set_global(self, user):
        PreferenceService.set_global_preference(user, all_disabled=True)

        assert PreferenceService.get_user_preferences(user).data["global"] == {"all_disabled": True}

    def test_set_category(self, user):
        result = PreferenceService.set_category_preference(user, "social", disabled=True)

        assert result.success
        assert UserCategoryPreference.objects.get(user=user).disabled

    def test_invalid_category(self, user):
        result = PreferenceService.set_category_preference(user, "gaming", disabled=True)

        assert result.error_code == "INVALID_CATEGORY"

    def test_set_type_keeps_unspecified_fields(self, user):
        PreferenceService.set_type_preference(user, "post_liked", push_enabled=False)
        result = PreferenceService.set_type_preference(user, "post_liked", email_enabled=True)

        pref = result.data
        assert pref.push_enabled is False
        assert pref.email_enabled is True
        assert pref.websocket_enabled is None

    def test_set_type_unknown_key(self, user):
        result = PreferenceService.set_type_preference(user, "nonexistent", disabled=True)

        assert result.error_code == "TYPE_NOT_FOUND"

    def test_reset(self, user):
        PreferenceService.set_global_preference(user, all_disabled=True)
        PreferenceService.set_category_preference(user, "social", disabled=True)
        PreferenceService.set_type_preference(user, "post_liked", disabled=True)

        result = PreferenceService.reset_preferences(user)

        assert result.data == 3
        assert PreferenceService.get_user_preferences(user).data["types"] == []


class TestDeviceTokenService:
    def test_register(self, user):
        result = DeviceTokenService.register(user, "abc", DevicePlatform.IOS)

        assert result.success
        assert result.data.platform == DevicePlatform.IOS
        assert result.data.last_seen is not None

    def test_register_existing_token_moves_it_and_refreshes(self, user, other_user):
        first = DeviceTokenService.register(other_user, "shared-device").data

        second = DeviceTokenService.register(user, "shared-device", DevicePlatform.ANDROID).data

        assert DeviceToken.objects.count() == 1
        assert second.user == user
        assert second.last_seen >= first.last_seen

    def test_register_requires_token(self, user):
        assert DeviceTokenService.register(user, "  ").error_code == "VALIDATION_ERROR"

    def test_register_rejects_unknown_platform(self, user):
        assert DeviceTokenService.register(user, "abc", "blackberry").error_code == "INVALID_PLATFORM"

    def test_unregister(self, user):
        DeviceTokenService.register(user, "abc")

        assert DeviceTokenService.unregister(user, "abc").success
        assert not DeviceToken.objects.exists()

    def test_unregister_other_users_token(self, user, other_user):
        DeviceTokenService.register(other_user, "abc")

        result = DeviceTokenService.unregister(user, "abc")

        assert result.error_code == "TOKEN_NOT_FOUND"
        assert DeviceToken.objects.exists()


class TestDeliveryMetrics:
    def test_success_rate_and_breakdowns(self):
        with freeze_time("2026-05-01 12:00"):
            NotificationDeliveryFactory(channel=DeliveryChannel.PUSH, status=DeliveryStatus.SENT)
            NotificationDeliveryFactory(channel=DeliveryChannel.PUSH, status=DeliveryStatus.FAILED)
        with freeze_time("2026-05-02 12:00"):
            NotificationDeliveryFactory(channel=DeliveryChannel.EMAIL, status=DeliveryStatus.DELIVERED)
            NotificationDeliveryFactory(channel=DeliveryChannel.EMAIL, status=DeliveryStatus.SENT)
            NotificationDeliveryFactory(channel=DeliveryChannel.WEBSOCKET, status=DeliveryStatus.SKIPPED)
            NotificationDeliveryFactory(channel=DeliveryChannel.PUSH, status=DeliveryStatus.PENDING)

        with freeze_time("2026-05-03 09:00"):
            metrics = DeliveryMetricsService.summary(days=30).data

        assert metrics["total"] == 6
        # 3 successful out of 4 attempted; skipped and pending are not attempts
        assert metrics["success_rate"] == 75.0
        assert metrics["by_status"][DeliveryStatus.FAILED] == 1
        assert metrics["by_status"][DeliveryStatus.SKIPPED] == 1
        assert metrics["by_channel"][DeliveryChannel.PUSH][DeliveryStatus.SENT] == 1
        assert metrics["by_channel"][DeliveryChannel.EMAIL][DeliveryStatus.FAILED] == 0
        assert [row["date"] for row in metrics["daily"]] == [date(2026, 5, 2), date(2026, 5, 1)]
        assert metrics["daily"][0] == {
            "date": date(2026, 5, 2),
            "total": 4,
            "successful": 2,
            "failed": 0,
            "skipped": 1,
        }

    def test_window_excludes_older_deliveries(self):
        with freeze_time("2026-01-01 12:00"):
            NotificationDeliveryFactory(status=DeliveryStatus.FAILED)

        with freeze_time("2026-05-01 12:00"):
            metrics = DeliveryMetricsService.summary(days=7).data

        assert metrics["total"] == 0
        assert metrics["success_rate"] is None
        assert metrics["daily"] == []

    @pytest.mark.parametrize("days", [0, 366])
    def test_invalid_range(self, days):
        assert DeliveryMetricsService.summary(days=days).error_code == "INVALID_RANGE"
