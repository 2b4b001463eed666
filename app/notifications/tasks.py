"""
Celery tasks for notification delivery.

Tasks:
    send_push_notification: Deliver via the configured push backend
    send_email_notification: Deliver via Django's email backend
    broadcast_websocket_notification: Push to the user's notification sockets
    purge_read_notifications: Periodic cleanup of old read notifications

Design:
    - Tasks receive delivery_id (UUID string) instead of notification_id
    - Each task updates the NotificationDelivery status
    - Permanent errors fail the delivery; transient errors retry with backoff
    - Tasks are idempotent: re-running on a non-PENDING delivery is a no-op

Usage:
    # Enqueued by NotificationService after commit, or manually:
    send_push_notification.delay(delivery_id="uuid-string")
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone as django_timezone

from chat.broadcast import publish_to_user
from notifications.models import (
    DeliveryStatus,
    Notification,
    NotificationDelivery,
    SkipReason,
)
from notifications.push import DeliveryError, get_push_backend

logger = logging.getLogger(__name__)

RETRY_OPTIONS = {
    "bind": True,
    "autoretry_for": (Exception,),
    "retry_backoff": True,
    "retry_kwargs": {"max_retries": 3},
}


def _get_delivery(delivery_id: str) -> NotificationDelivery | None:
    """Delivery with its notification, or None unless PENDING."""
    try:
        delivery = NotificationDelivery.objects.select_related(
            "notification",
            "notification__recipient",
            "notification__notification_type",
        ).get(id=delivery_id)
    except NotificationDelivery.DoesNotExist:
        logger.warning(f"Delivery {delivery_id} not found")
        return None

    if delivery.status != DeliveryStatus.PENDING:
        logger.info(f"Delivery {delivery_id} status is {delivery.status}, skipping")
        return None
    return delivery


def _mark_sent(delivery: NotificationDelivery, provider_message_id: str | None = None) -> None:
    delivery.status = DeliveryStatus.SENT
    delivery.sent_at = django_timezone.now()
    delivery.provider_message_id = provider_message_id
    delivery.attempt_count += 1
    delivery.save(update_fields=["status", "sent_at", "provider_message_id", "attempt_count", "updated_at"])


def _mark_delivered(delivery: NotificationDelivery) -> None:
    now = django_timezone.now()
    delivery.status = DeliveryStatus.DELIVERED
    delivery.sent_at = now
    delivery.delivered_at = now
    delivery.attempt_count += 1
    delivery.save(update_fields=["status", "sent_at", "delivered_at", "attempt_count", "updated_at"])


def _mark_failed(delivery: NotificationDelivery, error: DeliveryError) -> None:
    delivery.status = DeliveryStatus.FAILED
    delivery.failed_at = django_timezone.now()
    delivery.failure_reason = str(error)
    delivery.failure_code = error.code
    delivery.is_permanent_failure = error.is_permanent
    delivery.attempt_count += 1
    delivery.save(
        update_fields=[
            "status",
            "failed_at",
            "failure_reason",
            "failure_code",
            "is_permanent_failure",
            "attempt_count",
            "updated_at",
        ]
    )


def _mark_skipped(delivery: NotificationDelivery, reason: str) -> None:
    delivery.status = DeliveryStatus.SKIPPED
    delivery.skipped_reason = reason
    delivery.save(update_fields=["status", "skipped_reason", "updated_at"])


def _handle_transient(task, delivery: NotificationDelivery, error: Exception) -> None:
    """Count the attempt; on the last retry fail the delivery, otherwise re-raise."""
    if task.request.retries >= task.max_retries:
        code = getattr(error, "code", "retries_exhausted")
        _mark_failed(delivery, DeliveryError(str(error), code=code, is_permanent=False))
        logger.error(f"Delivery {delivery.id} failed after {task.request.retries} retries: {error}")
        return
    delivery.attempt_count += 1
    delivery.save(update_fields=["attempt_count", "updated_at"])
    logger.warning(f"Delivery {delivery.id} ({delivery.channel}) failed: {error}, will retry")
    raise error


@shared_task(**RETRY_OPTIONS)
def send_push_notification(self, delivery_id: str) -> bool:
    """
    Send a notification to every registered device of the recipient.

    Tokens the provider reports as unregistered are deleted. The delivery
    is SENT when at least one device accepted the message.

    Returns:
        True if sent or skipped, False on permanent failure
    """
    delivery = _get_delivery(delivery_id)
    if delivery is None:
        return True

    notification = delivery.notification
    recipient = notification.recipient
    devices = list(recipient.device_tokens.all())
    if not devices:
        _mark_skipped(delivery, SkipReason.NO_DEVICE_TOKEN)
        logger.info(f"Push skipped for delivery {delivery_id}: user {recipient.id} has no device token")
        return True

    backend = get_push_backend()
    payload = {"notification_id": str(notification.id), "link": notification.link, **notification.data}
    message_ids = []
    last_error: DeliveryError | None = None

    try:
        for device in devices:
            try:
                message_ids.append(backend(device, notification.title, notification.body, payload))
            except DeliveryError as e:
                if not e.is_permanent:
                    raise
                last_error = e
                logger.info(f"Removing rejected device token of user {recipient.id}: {e.code}")
                device.delete()
    except Exception as e:
        _handle_transient(self, delivery, e)
        return False

    if not message_ids:
        _mark_failed(delivery, last_error)
        logger.warning(f"Push permanently failed for delivery {delivery_id}: {last_error.code}")
        return False

    _mark_sent(delivery, message_ids[0])
    logger.info(f"Push sent for delivery {delivery_id} to {len(message_ids)} device(s)")
    return True


@shared_task(**RETRY_OPTIONS)
def send_email_notification(self, delivery_id: str) -> bool:
    """
    Send a notification by email through Django's configured backend.

    Returns:
        True if sent or skipped
    """
    delivery = _get_delivery(delivery_id)
    if delivery is None:
        return True

    notification = delivery.notification
    recipient = notification.recipient
    if not recipient.email:
        _mark_skipped(delivery, SkipReason.NO_EMAIL)
        logger.info(f"Email skipped for delivery {delivery_id}: recipient has no email")
        return True

    message = notification.body
    if notification.link:
        message = f"{message}\n\n{settings.FRONTEND_URL.rstrip('/')}{notification.link}".strip()

    try:
        send_mail(
            subject=notification.title,
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient.email],
        )
    except Exception as e:
        _handle_transient(self, delivery, e)
        return False

    _mark_sent(delivery)
    logger.info(f"Email sent for delivery {delivery_id} to {recipient.email}")
    return True


@shared_task(**RETRY_OPTIONS)
def broadcast_websocket_notification(self, delivery_id: str) -> bool:
    """
    Publish the notification to group ``notifications_<user_id>``.

    Marked DELIVERED immediately; sockets that are not connected simply
    miss the frame and pick the notification up from the REST inbox.
    """
    from notifications.serializers import NotificationSerializer

    delivery = _get_delivery(delivery_id)
    if delivery is None:
        return True

    notification = delivery.notification
    recipient = notification.recipient
    unread = Notification.objects.filter(recipient=recipient, is_read=False).count()

    try:
        publish_to_user(
            recipient.id,
            "notification.message",
            {"notification": NotificationSerializer(notification).data, "unread_count": unread},
        )
    except Exception as e:
        _handle_transient(self, delivery, e)
        return False

    _mark_delivered(delivery)
    logger.info(f"WebSocket notification broadcast for delivery {delivery_id}")
    return True


@shared_task
def purge_read_notifications() -> dict:
    """
    Delete read notifications older than NOTIFICATION_RETENTION_DAYS.

    Unread notifications are kept whatever their age. Scheduled daily by
    celery-beat (CELERY_BEAT_SCHEDULE).
    """
    cutoff = django_timezone.now() - timedelta(days=settings.NOTIFICATION_RETENTION_DAYS)
    _, per_model = Notification.objects.filter(is_read=True, created_at__lt=cutoff).delete()
    deleted = per_model.get(Notification._meta.label, 0)

    logger.info(f"Purged {deleted} read notifications older than {cutoff:%Y-%m-%d}")
    return {"deleted": deleted, "cutoff": cutoff.isoformat()}
