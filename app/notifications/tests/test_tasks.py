"""
Tests for the delivery tasks.

Tasks are called directly; retries surface as the original exception
because Celery re-raises when a task is not running in a worker.
"""

from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone

from notifications.models import DeliveryChannel, DeliveryStatus, DeviceToken, Notification, SkipReason
from notifications.push import DeliveryError, log_push_backend
from notifications.tasks import (
    broadcast_websocket_notification,
    purge_read_notifications,
    send_email_notification,
    send_push_notification,
)
from notifications.tests.factories import (
    DeviceTokenFactory,
    NotificationDeliveryFactory,
    NotificationFactory,
)


pytestmark = pytest.mark.django_db


@pytest.fixture
def notification(user):
    return NotificationFactory(recipient=user, title="Hello", body="World", link="/chat/1")


def _delivery(notification, channel):
    return NotificationDeliveryFactory(notification=notification, channel=channel)


class TestPush:
    def test_sends_to_every_device(self, notification, user, push_backend):
        DeviceTokenFactory.create_batch(2, user=user)
        delivery = _delivery(notification, DeliveryChannel.PUSH)

        assert send_push_notification(str(delivery.id)) is True

        delivery.refresh_from_db()
        assert delivery.status == DeliveryStatus.SENT
        assert delivery.provider_message_id == "msg-1"
        assert delivery.attempt_count == 1
        assert push_backend.call_count == 2
        _, title, body, data = push_backend.call_args.args
        assert (title, body) == ("Hello", "World")
        assert data["link"] == "/chat/1"

    def test_skipped_without_device(self, notification, push_backend):
        delivery = _delivery(notification, DeliveryChannel.PUSH)

        send_push_notification(str(delivery.id))

        delivery.refresh_from_db()
        assert delivery.status == DeliveryStatus.SKIPPED
        assert delivery.skipped_reason == SkipReason.NO_DEVICE_TOKEN
        push_backend.assert_not_called()

    def test_permanent_error_removes_device(self, notification, user, push_backend):
        dead = DeviceTokenFactory(user=user)
        DeviceTokenFactory(user=user)

        def reject_dead(device, *args):
            if device.pk == dead.pk:
                raise DeliveryError("gone", code="unregistered")
            return "msg-2"

        push_backend.side_effect = reject_dead
        delivery = _delivery(notification, DeliveryChannel.PUSH)

        send_push_notification(str(delivery.id))

        delivery.refresh_from_db()
        assert delivery.status == DeliveryStatus.SENT
        assert DeviceToken.objects.filter(user=user).count() == 1
        assert not DeviceToken.objects.filter(pk=dead.pk).exists()

    def test_every_device_rejected_fails_permanently(self, notification, user, push_backend):
        DeviceTokenFactory(user=user)
        push_backend.side_effect = DeliveryError("bad", code="invalid_token")
        delivery = _delivery(notification, DeliveryChannel.PUSH)

        assert send_push_notification(str(delivery.id)) is False

        delivery.refresh_from_db()
        assert delivery.status == DeliveryStatus.FAILED
        assert delivery.failure_code == "invalid_token"
        assert delivery.is_permanent_failure

    def test_transient_error_is_retried(self, notification, user, push_backend):
        DeviceTokenFactory(user=user)
        push_backend.side_effect = DeliveryError("timeout", code="unavailable")
        delivery = _delivery(notification, DeliveryChannel.PUSH)

        with pytest.raises(DeliveryError):
            send_push_notification(str(delivery.id))

        delivery.refresh_from_db()
        assert delivery.status == DeliveryStatus.PENDING
        assert delivery.attempt_count == 1
        assert DeviceToken.objects.filter(user=user).exists()

    def test_non_pending_delivery_is_a_no_op(self, notification, user, push_backend):
        DeviceTokenFactory(user=user)
        delivery = NotificationDeliveryFactory(
            notification=notification, channel=DeliveryChannel.PUSH, status=DeliveryStatus.SENT
        )

        assert send_push_notification(str(delivery.id)) is True
        push_backend.assert_not_called()

    def test_missing_delivery(self, db):
        assert send_push_notification("00000000-0000-0000-0000-000000000000") is True

    def test_log_backend_returns_message_id(self, user):
        device = DeviceTokenFactory(user=user)

        assert log_push_backend(device, "t", "b", {}).startswith("log-")


class TestEmail:
    def test_sends_mail_with_link(self, notification, user, settings):
        settings.FRONTEND_URL = "https://school.example/"
        delivery = _delivery(notification, DeliveryChannel.EMAIL)

        send_email_notification(str(delivery.id))

        assert len(mail.outbox) == 1
        message = mail.outbox[0]
        assert message.subject == "Hello"
        assert message.to == [user.email]
        assert "https://school.example/chat/1" in message.body
        delivery.refresh_from_db()
        assert delivery.status == DeliveryStatus.SENT

    def test_transient_smtp_error_is_retried(self, notification, mocker):
        mocker.patch("notifications.tasks.send_mail", side_effect=OSError("connection refused"))
        delivery = _delivery(notification, DeliveryChannel.EMAIL)

        with pytest.raises(OSError):
            send_email_notification(str(delivery.id))

        delivery.refresh_from_db()
        assert delivery.status == DeliveryStatus.PENDING
        assert delivery.attempt_count == 1


class TestWebsocket:
    def test_publishes_to_user_group(self, notification, user, mocker):
        publish = mocker.patch("notifications.tasks.publish_to_user")
        NotificationFactory(recipient=user)
        delivery = _delivery(notification, DeliveryChannel.WEBSOCKET)

        broadcast_websocket_notification(str(delivery.id))

        user_id, event_type, payload = publish.call_args.args
        assert user_id == user.id
        assert event_type == "notification.message"
        assert payload["notification"]["id"] == str(notification.id)
        assert payload["unread_count"] == 2
        delivery.refresh_from_db()
        assert delivery.status == DeliveryStatus.DELIVERED
        assert delivery.delivered_at is not None


class TestPurge:
    def test_removes_only_old_read_notifications(self, user, settings):
        settings.NOTIFICATION_RETENTION_DAYS = 30
        old_read = NotificationFactory(recipient=user, is_read=True)
        old_unread = NotificationFactory(recipient=user)
        recent_read = NotificationFactory(recipient=user, is_read=True)
        Notification.objects.filter(pk__in=[old_read.pk, old_unread.pk]).update(
            created_at=timezone.now() - timedelta(days=31)
        )

        result = purge_read_notifications()

        assert result["deleted"] == 1
        remaining = set(Notification.objects.values_list("pk", flat=True))
        assert remaining == {old_unread.pk, recent_read.pk}
