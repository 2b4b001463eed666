"""
Notification service layer.

Services:
    NotificationService: Notification creation, fan-out and read status
    PreferenceService: User notification preference management
    DeviceTokenService: Push token registration
    DeliveryMetricsService: Delivery success rates for admins

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure()
    - Template rendering raises KeyError on missing placeholders
    - Celery tasks are enqueued after commit, one per PENDING delivery
    - Notifications between blocked users are never created

Usage:
    from notifications.services import NotificationService, PreferenceService

    result = NotificationService.create_notification(
        recipient=author,
        type_key="post_liked",
        data={"post_preview": "Exam tips..."},
        actor=liker,
        source_object=post,
        link=f"/posts/{post.id}",
    )

    NotificationService.notify_many(
        recipients=User.objects.filter(is_active=True),
        type_key="new_announcement",
        data={"announcement_title": "Sports day", "announcement_preview": "..."},
    )

    PreferenceService.set_category_preference(user, "social", disabled=True)
"""

from __future__ import annotations

from datetime import timedelta
from functools import partial
from typing import TYPE_CHECKING

from django.contrib.contenttypes.models import ContentType
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django.db.models.functions import TruncDate
from django.utils import timezone

from chat.broadcast import publish_to_user
from core.services import BaseService, ServiceResult
from notifications.models import (
    DeliveryChannel,
    DeliveryStatus,
    DevicePlatform,
    DeviceToken,
    Notification,
    NotificationCategory,
    NotificationDelivery,
    NotificationType,
    SkipReason,
    UserCategoryPreference,
    UserGlobalPreference,
    UserNotificationPreference,
)
from notifications.preferences import PreferenceResolver, ResolvedPreferences

if TYPE_CHECKING:
    from collections.abc import Iterable

    from django.db.models import Model

    from authentication.models import User


def actor_name(user: User | None) -> str:
    if user is None:
        return "Someone"
    profile = getattr(user, "profile", None)
    return profile.display_name if profile else user.email


class NotificationService(BaseService):
    """
    Methods:
        create_notification: One notification with per-channel deliveries
        notify_many: Fan-out of one notification to many recipients
        mark_as_read: Mark a single notification as read
        mark_all_as_read: Mark all of a user's notifications as read
        unread_count: Unread notifications of a user
    """

    CHANNEL_SUPPORT = (
        (DeliveryChannel.PUSH, "supports_push"),
        (DeliveryChannel.EMAIL, "supports_email"),
        (DeliveryChannel.WEBSOCKET, "supports_websocket"),
    )

    @staticmethod
    def find_type(type_key: str) -> NotificationType | None:
        """Type by key, seeding the defaults on first miss."""
        notification_type = NotificationType.objects.filter(key=type_key).first()
        if notification_type is None and NotificationType.objects.ensure_defaults():
            notification_type = NotificationType.objects.filter(key=type_key).first()
        return notification_type

    @classmethod
    def get_type(cls, type_key: str) -> ServiceResult[NotificationType]:
        """
        Look up an active type.

        Error codes:
            TYPE_NOT_FOUND, TYPE_INACTIVE
        """
        notification_type = cls.find_type(type_key)
        if notification_type is None:
            cls.get_logger().warning(f"Notification type not found: {type_key}")
            return ServiceResult.failure(f"Notification type not found: {type_key}", error_code="TYPE_NOT_FOUND")
        if not notification_type.is_active:
            cls.get_logger().info(f"Notification type inactive: {type_key} - skipping creation")
            return ServiceResult.failure(f"Notification type is inactive: {type_key}", error_code="TYPE_INACTIVE")
        return ServiceResult.success(notification_type)

    @staticmethod
    def _render(notification_type: NotificationType, context: dict, title: str | None, body: str | None):
        # Missing placeholders raise KeyError
        rendered_title = title or notification_type.title_template.format(**context)
        rendered_body = body if body is not None else notification_type.body_template.format(**context)
        return rendered_title[:500], rendered_body

    @classmethod
    def _deliveries_for(
        cls,
        notification: Notification,
        notification_type: NotificationType,
        prefs: ResolvedPreferences,
    ) -> list[NotificationDelivery]:
        deliveries = []
        for channel, flag in cls.CHANNEL_SUPPORT:
            if not getattr(notification_type, flag):
                continue
            if prefs.blocked:
                status, reason = DeliveryStatus.SKIPPED, prefs.blocked_reason or SkipReason.GLOBAL_DISABLED
            elif not prefs.is_channel_enabled(channel):
                status, reason = DeliveryStatus.SKIPPED, SkipReason.CHANNEL_DISABLED
            else:
                status, reason = DeliveryStatus.PENDING, ""
            deliveries.append(
                NotificationDelivery(notification=notification, channel=channel, status=status, skipped_reason=reason)
            )
        return deliveries

    @staticmethod
    def _enqueue(deliveries: Iterable[NotificationDelivery]) -> None:
        from notifications import tasks

        task_for_channel = {
            DeliveryChannel.PUSH: tasks.send_push_notification,
            DeliveryChannel.EMAIL: tasks.send_email_notification,
            DeliveryChannel.WEBSOCKET: tasks.broadcast_websocket_notification,
        }
        for delivery in deliveries:
            if delivery.status == DeliveryStatus.PENDING:
                transaction.on_commit(partial(task_for_channel[delivery.channel].delay, str(delivery.id)))

    @staticmethod
    def _source_fields(source_object: Model | None) -> dict:
        if source_object is None:
            return {"content_type": None, "object_id": None}
        return {
            "content_type": ContentType.objects.get_for_model(source_object),
            "object_id": str(source_object.pk),
        }

    @classmethod
    def create_notification(
        cls,
        recipient: User,
        type_key: str,
        data: dict | None = None,
        title: str | None = None,
        body: str | None = None,
        actor: User | None = None,
        source_object: Model | None = None,
        link: str = "",
        idempotency_key: str | None = None,
    ) -> ServiceResult[Notification]:
        """
        Create a notification for one user.

        Templates of the NotificationType are rendered from ``data`` plus
        ``actor_name``. Explicit title/body override the templates.

        Implementation:
            1. Look up the type (seeding defaults if needed)
            2. Drop notifications between blocked users
            3. Idempotency check (if key provided)
            4. Resolve user preferences
            5. Create notification and delivery records in one transaction
            6. Enqueue Celery tasks for PENDING deliveries after commit

        Returns:
            ServiceResult with created Notification

        Error codes:
            TYPE_NOT_FOUND: Notification type key doesn't exist
            TYPE_INACTIVE: Notification type is deactivated
            BLOCKED: Actor and recipient have blocked each other
            DUPLICATE: Notification with this idempotency_key already exists

        Raises:
            KeyError: If a template placeholder is missing from data
        """
        from social.services import BlockService

        type_result = cls.get_type(type_key)
        if not type_result.success:
            return type_result
        notification_type = type_result.data

        if actor is not None and actor.pk != recipient.pk and BlockService.is_blocked_between(actor, recipient):
            cls.get_logger().info(f"Suppressed {type_key} from user {actor.id} to user {recipient.id}: blocked")
            return ServiceResult.failure("Users have blocked each other", error_code="BLOCKED")

        if idempotency_key and Notification.objects.filter(idempotency_key=idempotency_key).exists():
            cls.get_logger().info(f"Duplicate notification prevented: idempotency_key={idempotency_key}")
            return ServiceResult.failure(
                f"Notification with idempotency_key already exists: {idempotency_key}",
                error_code="DUPLICATE",
            )

        data = data or {}
        prefs = PreferenceResolver.resolve(recipient, notification_type)
        if prefs.blocked:
            cls.get_logger().info(f"User {recipient.id} has blocked notifications: {prefs.blocked_reason}")

        rendered_title, rendered_body = cls._render(
            notification_type, {"actor_name": actor_name(actor), **data}, title, body
        )

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    notification_type=notification_type,
                    recipient=recipient,
                    actor=actor,
                    title=rendered_title,
                    body=rendered_body,
                    link=link,
                    data=data,
                    idempotency_key=idempotency_key,
                    **cls._source_fields(source_object),
                )
                deliveries = cls._deliveries_for(notification, notification_type, prefs)
                NotificationDelivery.objects.bulk_create(deliveries)
        except IntegrityError:
            # Lost a race on idempotency_key
            return ServiceResult.failure(
                f"Notification with idempotency_key already exists: {idempotency_key}",
                error_code="DUPLICATE",
            )

        cls.get_logger().info(
            f"Created notification {notification.id} of type {type_key} "
            f"for user {recipient.id} with {len(deliveries)} delivery records"
        )
        cls._enqueue(deliveries)
        return ServiceResult.success(notification)

    @classmethod
    def notify_many(
        cls,
        recipients: Iterable[User],
        type_key: str,
        data: dict | None = None,
        title: str | None = None,
        body: str | None = None,
        actor: User | None = None,
        source_object: Model | None = None,
        link: str = "",
        idempotency_key: str | None = None,
    ) -> ServiceResult[list[Notification]]:
        """
        Send the same notification to many users.

        Preferences are resolved in bulk. The actor and users blocked either
        way with the actor are left out. With ``idempotency_key`` each
        recipient gets ``"<key>:<user_id>"`` and already-notified recipients
        are skipped.

        Returns:
            ServiceResult with the created notifications
        """
        from social.services import BlockService

        type_result = cls.get_type(type_key)
        if not type_result.success:
            return type_result
        notification_type = type_result.data

        excluded: set[int] = set()
        if actor is not None:
            excluded = BlockService.blocked_user_ids(actor) | {actor.pk}
        targets = {user.pk: user for user in recipients if user.pk not in excluded}

        keys = {}
        if idempotency_key:
            keys = {user_id: f"{idempotency_key}:{user_id}" for user_id in targets}
            taken = set(
                Notification.objects.filter(idempotency_key__in=keys.values()).values_list("idempotency_key", flat=True)
            )
            targets = {user_id: user for user_id, user in targets.items() if keys[user_id] not in taken}

        if not targets:
            return ServiceResult.success([])

        data = data or {}
        rendered_title, rendered_body = cls._render(
            notification_type, {"actor_name": actor_name(actor), **data}, title, body
        )
        prefs_map = PreferenceResolver.resolve_bulk(list(targets), notification_type)
        source_fields = cls._source_fields(source_object)

        notifications = []
        deliveries = []
        for user_id, user in targets.items():
            notification = Notification(
                notification_type=notification_type,
                recipient=user,
                actor=actor,
                title=rendered_title,
                body=rendered_body,
                link=link,
                data=data,
                idempotency_key=keys.get(user_id),
                **source_fields,
            )
            notifications.append(notification)
            deliveries.extend(cls._deliveries_for(notification, notification_type, prefs_map[user_id]))

        with transaction.atomic():
            Notification.objects.bulk_create(notifications)
            NotificationDelivery.objects.bulk_create(deliveries)

        cls.get_logger().info(
            f"Fanned out {type_key} to {len(notifications)} users with {len(deliveries)} delivery records"
        )
        cls._enqueue(deliveries)
        return ServiceResult.success(notifications)

    @classmethod
    def unread_count(cls, user: User) -> int:
        return Notification.objects.filter(recipient=user, is_read=False).count()

    @classmethod
    def _publish_unread_count(cls, user: User) -> None:
        publish_to_user(
            user.id,
            "notification.unread_count",
            {"unread_count": cls.unread_count(user)},
        )

    @classmethod
    def mark_as_read(
        cls,
        notification: Notification,
        user: User,
    ) -> ServiceResult[Notification]:
        """
        Mark a single notification as read. Idempotent.

        Error codes:
            NOT_OWNER: User doesn't own the notification
        """
        if notification.recipient_id != user.id:
            cls.get_logger().warning(
                f"User {user.id} attempted to mark notification {notification.id} "
                f"owned by user {notification.recipient_id}"
            )
            return ServiceResult.failure(
                "Cannot mark notification you don't own",
                error_code="NOT_OWNER",
            )

        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read", "updated_at"])
            cls._publish_unread_count(user)
            cls.get_logger().debug(f"Marked notification {notification.id} as read")

        return ServiceResult.success(notification)

    @classmethod
    def mark_all_as_read(cls, user: User) -> ServiceResult[int]:
        """
        Mark all user's unread notifications as read in one query.

        Returns:
            ServiceResult with count of notifications marked as read
        """
        count = Notification.objects.filter(recipient=user, is_read=False).update(
            is_read=True, updated_at=timezone.now()
        )
        if count:
            cls._publish_unread_count(user)
        cls.get_logger().info(f"Marked {count} notifications as read for user {user.id}")
        return ServiceResult.success(count)


class PreferenceService(BaseService):
    """
    Methods:
        get_user_preferences: Get all preferences for API display
        set_global_preference: Update global mute setting
        set_category_preference: Update category preference
        set_type_preference: Update type-level preferences
        reset_preferences: Reset all preferences to defaults
    """

    @classmethod
    def get_user_preferences(cls, user: User) -> ServiceResult[dict]:
        """
        Returns:
            ServiceResult with preferences dict:
            {
                "global": {"all_disabled": bool},
                "categories": [{"category": str, "disabled": bool}, ...],
                "types": [{"type_key": str, "type_name": str, "disabled": bool,
                           "push_enabled": bool|None, ...}, ...]
            }
        """
        global_pref = UserGlobalPreference.objects.filter(user=user).first()
        categories = [
            {"category": pref.category, "disabled": pref.disabled}
            for pref in UserCategoryPreference.objects.filter(user=user).order_by("category")
        ]
        types = [
            {
                "type_key": pref.notification_type.key,
                "type_name": pref.notification_type.display_name,
                "disabled": pref.disabled,
                "push_enabled": pref.push_enabled,
                "email_enabled": pref.email_enabled,
                "websocket_enabled": pref.websocket_enabled,
            }
            for pref in UserNotificationPreference.objects.filter(user=user).select_related("notification_type")
        ]
        return ServiceResult.success(
            {
                "global": {"all_disabled": bool(global_pref and global_pref.all_disabled)},
                "categories": categories,
                "types": types,
            }
        )

    @classmethod
    def set_global_preference(cls, user: User, all_disabled: bool) -> ServiceResult[UserGlobalPreference]:
        pref, created = UserGlobalPreference.objects.update_or_create(
            user=user,
            defaults={"all_disabled": all_disabled},
        )
        PreferenceResolver.invalidate_cache(user.id)

        action = "created" if created else "updated"
        cls.get_logger().info(f"Global preference {action} for user {user.id}: all_disabled={all_disabled}")
        return ServiceResult.success(pref)

    @classmethod
    def set_category_preference(
        cls,
        user: User,
        category: str,
        disabled: bool,
    ) -> ServiceResult[UserCategoryPreference]:
        """
        Error codes:
            INVALID_CATEGORY: Category is not a valid NotificationCategory
        """
        if category not in NotificationCategory.values:
            return ServiceResult.failure(
                f"Invalid category: {category}. Must be one of {NotificationCategory.values}",
                error_code="INVALID_CATEGORY",
            )

        pref, created = UserCategoryPreference.objects.update_or_create(
            user=user,
            category=category,
            defaults={"disabled": disabled},
        )
        PreferenceResolver.invalidate_cache(user.id)

        action = "created" if created else "updated"
        cls.get_logger().info(
            f"Category preference {action} for user {user.id}: category={category}, disabled={disabled}"
        )
        return ServiceResult.success(pref)

    @classmethod
    def set_type_preference(
        cls,
        user: User,
        type_key: str,
        disabled: bool | None = None,
        push_enabled: bool | None = None,
        email_enabled: bool | None = None,
        websocket_enabled: bool | None = None,
    ) -> ServiceResult[UserNotificationPreference]:
        """
        Update type-level preferences. Arguments left as None keep their
        current value (or the type default for new rows).

        Error codes:
            TYPE_NOT_FOUND: Notification type key doesn't exist
        """
        notification_type = NotificationService.find_type(type_key)
        if notification_type is None:
            return ServiceResult.failure(f"Notification type not found: {type_key}", error_code="TYPE_NOT_FOUND")

        changes = {
            name: value
            for name, value in (
                ("disabled", disabled),
                ("push_enabled", push_enabled),
                ("email_enabled", email_enabled),
                ("websocket_enabled", websocket_enabled),
            )
            if value is not None
        }
        pref, created = UserNotificationPreference.objects.update_or_create(
            user=user,
            notification_type=notification_type,
            defaults=changes,
        )
        PreferenceResolver.invalidate_cache(user.id)

        action = "created" if created else "updated"
        cls.get_logger().info(
            f"Type preference {action} for user {user.id}: type={type_key}, disabled={pref.disabled}"
        )
        return ServiceResult.success(pref)

    @classmethod
    def reset_preferences(cls, user: User) -> ServiceResult[int]:
        """
        Delete every preference row of user.

        Returns:
            ServiceResult with count of deleted preference records
        """
        with transaction.atomic():
            global_count, _ = UserGlobalPreference.objects.filter(user=user).delete()
            category_count, _ = UserCategoryPreference.objects.filter(user=user).delete()
            type_count, _ = UserNotificationPreference.objects.filter(user=user).delete()

        total = global_count + category_count + type_count
        PreferenceResolver.invalidate_cache(user.id)

        cls.get_logger().info(
            f"Reset {total} preferences for user {user.id}: "
            f"global={global_count}, category={category_count}, type={type_count}"
        )
        return ServiceResult.success(total)


class DeviceTokenService(BaseService):
    """Push token registration."""

    @classmethod
    def register(cls, user: User, token: str, platform: str = DevicePlatform.WEB) -> ServiceResult[DeviceToken]:
        """
        Upsert a device token for user and refresh ``last_seen``.

        Error codes:
            VALIDATION_ERROR: Empty token
            INVALID_PLATFORM: Unknown platform
        """
        token = (token or "").strip()
        failure = cls.validate_required(token=token)
        if failure is not None:
            return failure
        if platform not in DevicePlatform.values:
            return ServiceResult.failure(
                f"Invalid platform: {platform}. Must be one of {DevicePlatform.values}",
                error_code="INVALID_PLATFORM",
            )

        device, created = DeviceToken.objects.update_or_create(
            token=token,
            defaults={"user": user, "platform": platform, "last_seen": timezone.now()},
        )
        cls.get_logger().info(f"Device token {'registered' if created else 'refreshed'} for user {user.id} ({platform})")
        return ServiceResult.success(device)

    @classmethod
    def unregister(cls, user: User, token: str) -> ServiceResult[None]:
        """
        Error codes:
            TOKEN_NOT_FOUND
        """
        deleted, _ = DeviceToken.objects.filter(user=user, token=token).delete()
        if not deleted:
            return ServiceResult.failure("Device token not found", error_code="TOKEN_NOT_FOUND")
        cls.get_logger().info(f"Device token removed for user {user.id}")
        return ServiceResult.success(None)


class DeliveryMetricsService(BaseService):
    """Delivery outcomes for the admin dashboard."""

    MAX_DAYS = 365
    SUCCESSFUL = (DeliveryStatus.SENT, DeliveryStatus.DELIVERED)

    @classmethod
    def summary(cls, days: int = 30) -> ServiceResult[dict]:
        """
        Aggregate NotificationDelivery rows created in the last ``days`` days.

        success_rate is successful / (successful + failed) as a percentage.
        Pending and skipped deliveries never count as attempts. It is None
        when nothing was attempted.

        Error codes:
            INVALID_RANGE: days outside 1..MAX_DAYS
        """
        if not 1 <= days <= cls.MAX_DAYS:
            return ServiceResult.failure(
                f"days must be between 1 and {cls.MAX_DAYS}",
                error_code="INVALID_RANGE",
            )

        cutoff = timezone.now() - timedelta(days=days)
        deliveries = NotificationDelivery.objects.filter(created_at__gte=cutoff)

        by_status = dict.fromkeys(DeliveryStatus.values, 0)
        by_channel = {channel: dict.fromkeys(DeliveryStatus.values, 0) for channel in DeliveryChannel.values}
        for row in deliveries.values("channel", "status").annotate(count=Count("id")).order_by():
            by_status[row["status"]] += row["count"]
            by_channel[row["channel"]][row["status"]] = row["count"]

        successful_filter = Q(status__in=cls.SUCCESSFUL)
        daily = [
            {
                "date": row["day"],
                "total": row["total"],
                "successful": row["successful"],
                "failed": row["failed"],
                "skipped": row["skipped"],
            }
            for row in deliveries.annotate(day=TruncDate("created_at"))
            .values("day")
            .annotate(
                total=Count("id"),
                successful=Count("id", filter=successful_filter),
                failed=Count("id", filter=Q(status=DeliveryStatus.FAILED)),
                skipped=Count("id", filter=Q(status=DeliveryStatus.SKIPPED)),
            )
            .order_by("-day")
        ]

        successful = sum(by_status[s] for s in cls.SUCCESSFUL)
        attempted = successful + by_status[DeliveryStatus.FAILED]
        success_rate = round(successful * 100 / attempted, 1) if attempted else None

        return ServiceResult.success(
            {
                "period_days": days,
                "total": sum(by_status.values()),
                "success_rate": success_rate,
                "by_status": by_status,
                "by_channel": by_channel,
                "daily": daily,
            }
        )
