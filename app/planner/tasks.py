"""
Celery tasks for the planner.

Tasks:
    fan_out_announcement: Notify every active member of a new announcement
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model

from notifications.services import NotificationService
from planner.models import Announcement

logger = logging.getLogger(__name__)

FAN_OUT_BATCH_SIZE = 500


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def fan_out_announcement(self, announcement_id: str) -> int:
    """
    Send new_announcement to every active, unsuspended member but the author.

    Recipients get a per-user idempotency key, so a retried run only
    reaches members the previous attempt missed.

    Returns:
        Number of notifications created
    """
    from chat.services import preview_text

    announcement = Announcement.objects.select_related("author").filter(pk=announcement_id).first()
    if announcement is None:
        logger.warning(f"Announcement {announcement_id} not found or deleted, skipping fan-out")
        return 0

    recipients = (
        get_user_model()
        .objects.filter(is_active=True, profile__is_suspended=False)
        .exclude(pk=announcement.author_id)
        .order_by("pk")
    )
    data = {
        "announcement_id": str(announcement.id),
        "announcement_title": announcement.title,
        "announcement_preview": preview_text(announcement.content, settings.NOTIFICATION_BODY_PREVIEW),
    }

    created = 0
    batch = []
    for user in recipients.iterator(chunk_size=FAN_OUT_BATCH_SIZE):
        batch.append(user)
        if len(batch) == FAN_OUT_BATCH_SIZE:
            created += _notify(announcement, batch, data)
            batch = []
    if batch:
        created += _notify(announcement, batch, data)

    logger.info(f"Announcement {announcement.id} fanned out to {created} members")
    return created


def _notify(announcement: Announcement, users: list, data: dict) -> int:
    result = NotificationService.notify_many(
        users,
        "new_announcement",
        data=data,
        actor=announcement.author,
        source_object=announcement,
        link=announcement.link,
        idempotency_key=f"announcement:{announcement.id}",
    )
    if not result.success:
        logger.info(f"new_announcement not sent: {result.error}")
        return 0
    return len(result.data)
