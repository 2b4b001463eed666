"""
Notification system models.

This module defines the core models for the notification system:
- NotificationType: Configuration for notification types with templates
- Notification: Individual notifications sent to users
- UserGlobalPreference: Global notification mute setting per user
- UserCategoryPreference: Category-level notification preferences
- UserNotificationPreference: Type-level notification preferences
- NotificationDelivery: Per-channel delivery tracking
- DeviceToken: Push notification targets per user

Design Decisions:
    - NotificationType uses integer PK (internal lookup table)
    - Notification and NotificationDelivery use UUID PKs
    - Actor uses SET_NULL (preserve notification when actor deleted)
    - NotificationType uses PROTECT (prevent deletion with existing notifications)
    - GenericForeignKey for linking to any source object
    - Preference hierarchy: Global -> Category -> Type -> Channel
    - Delivery records track status per channel for retry and auditing

Usage:
    from notifications.models import NotificationType, Notification

    NotificationType.objects.ensure_defaults()

    notification = Notification.objects.create(
        notification_type=NotificationType.objects.get(key="new_follower"),
        recipient=user,
        title="Minh started following you",
        actor=minh,
        link="/profiles/42",
    )
"""

from __future__ import annotations

from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

# =============================================================================
# Enums
# =============================================================================


class NotificationCategory(models.TextChoices):
    """
    Categories for grouping notification types.

    Used for category-level preference overrides. Users can disable
    entire categories (e.g., every social notification).
    """

    SOCIAL = "social", "Social"
    MESSAGING = "messaging", "Messaging"
    ACADEMIC = "academic", "Academic"
    MODERATION = "moderation", "Moderation"
    SYSTEM = "system", "System"


class DeliveryChannel(models.TextChoices):
    """Delivery channels for notifications."""

    PUSH = "push", "Push Notification"
    EMAIL = "email", "Email"
    WEBSOCKET = "websocket", "WebSocket"


class DeliveryStatus(models.TextChoices):
    """
    Status of a notification delivery attempt.

    State Flow:
        PENDING -> SENT -> DELIVERED
        PENDING -> FAILED (permanent error or retries exhausted)
        SKIPPED (user preference disabled or no delivery target)
    """

    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    DELIVERED = "delivered", "Delivered"
    FAILED = "failed", "Failed"
    SKIPPED = "skipped", "Skipped"


class SkipReason(models.TextChoices):
    """Standardized reasons for skipped deliveries."""

    GLOBAL_DISABLED = "global_disabled", "Global notifications disabled"
    CATEGORY_DISABLED = "category_disabled", "Category disabled"
    TYPE_DISABLED = "type_disabled", "Type disabled"
    CHANNEL_DISABLED = "channel_disabled", "Channel disabled by user"
    NO_DEVICE_TOKEN = "no_device_token", "No device token"
    NO_EMAIL = "no_email", "No email address"


class DevicePlatform(models.TextChoices):
    IOS = "ios", "iOS"
    ANDROID = "android", "Android"
    WEB = "web", "Web"


# =============================================================================
# Default notification types
# =============================================================================

# Templates use str.format() placeholders filled from the notification data.
DEFAULT_NOTIFICATION_TYPES: tuple[dict, ...] = (
    # Messaging
    {
        "key": "direct_message",
        "display_name": "Direct Message",
        "category": NotificationCategory.MESSAGING,
        "title_template": "{actor_name}",
        "body_template": "{message_preview}",
    },
    {
        "key": "group_message",
        "display_name": "Group Message",
        "category": NotificationCategory.MESSAGING,
        "title_template": "{actor_name} in {group_name}",
        "body_template": "{message_preview}",
    },
    {
        "key": "group_join_request",
        "display_name": "Group Join Request",
        "category": NotificationCategory.MESSAGING,
        "title_template": "{actor_name} asked to join {group_name}",
        "body_template": "{interest_statement}",
    },
    {
        "key": "group_join_approved",
        "display_name": "Group Join Approved",
        "category": NotificationCategory.MESSAGING,
        "title_template": "You joined {group_name}",
    },
    {
        "key": "group_join_rejected",
        "display_name": "Group Join Rejected",
        "category": NotificationCategory.MESSAGING,
        "title_template": "Your request to join {group_name} was declined",
    },
    # Social
    {
        "key": "connection_request",
        "display_name": "Connection Request",
        "category": NotificationCategory.SOCIAL,
        "title_template": "{actor_name} wants to connect",
    },
    {
        "key": "connection_accepted",
        "display_name": "Connection Accepted",
        "category": NotificationCategory.SOCIAL,
        "title_template": "{actor_name} accepted your connection request",
    },
    {
        "key": "new_follower",
        "display_name": "New Follower",
        "category": NotificationCategory.SOCIAL,
        "title_template": "{actor_name} started following you",
    },
    {
        "key": "post_liked",
        "display_name": "Post Liked",
        "category": NotificationCategory.SOCIAL,
        "title_template": "{actor_name} liked your post",
        "body_template": "{post_preview}",
    },
    {
        "key": "post_comment",
        "display_name": "Post Comment",
        "category": NotificationCategory.SOCIAL,
        "title_template": "{actor_name} commented on your post",
        "body_template": "{comment_preview}",
    },
    {
        "key": "post_pinned",
        "display_name": "Post Pinned",
        "category": NotificationCategory.SOCIAL,
        "title_template": "{actor_name} pinned your post",
        "body_template": "{post_preview}",
    },
    # Academic
    {
        "key": "class_leader_assigned",
        "display_name": "Class Leader Assigned",
        "category": NotificationCategory.ACADEMIC,
        "title_template": "You are now class leader of {class_name}",
        "body_template": "{responsibilities}",
        "supports_email": True,
    },
    {
        "key": "event_application",
        "display_name": "Event Application",
        "category": NotificationCategory.ACADEMIC,
        "title_template": "{actor_name} applied to {event_title}",
    },
    {
        "key": "event_response",
        "display_name": "Event Response",
        "category": NotificationCategory.ACADEMIC,
        "title_template": "Your application to {event_title} was {response}",
    },
    {
        "key": "new_announcement",
        "display_name": "New Announcement",
        "category": NotificationCategory.ACADEMIC,
        "title_template": "{announcement_title}",
        "body_template": "{announcement_preview}",
        "supports_email": True,
    },
    # Moderation
    {
        "key": "report_submitted",
        "display_name": "User Reported",
        "category": NotificationCategory.MODERATION,
        "title_template": "{actor_name} reported {reported_name}",
        "body_template": "Reason: {reason}",
        "supports_email": True,
    },
    {
        "key": "incident_reported",
        "display_name": "Incident Reported",
        "category": NotificationCategory.MODERATION,
        "title_template": "Incident {report_id} reported",
        "body_template": "{incident_type} involving {student_name} ({severity} severity)",
        "supports_email": True,
    },
    # System
    {
        "key": "account_suspended",
        "display_name": "Account Suspended",
        "category": NotificationCategory.SYSTEM,
        "title_template": "Your account has been suspended",
        "body_template": "{reason}",
        "supports_push": False,
        "supports_email": True,
        "supports_websocket": False,
    },
)


class NotificationTypeManager(models.Manager):
    def ensure_defaults(self) -> int:
        """
        Create any missing default notification types.

        Existing rows are left untouched so admin edits survive.

        Returns:
            Number of types created
        """
        existing = set(self.filter(key__in=[d["key"] for d in DEFAULT_NOTIFICATION_TYPES]).values_list("key", flat=True))
        missing = [self.model(**definition) for definition in DEFAULT_NOTIFICATION_TYPES if definition["key"] not in existing]
        if missing:
            self.bulk_create(missing, ignore_conflicts=True)
        return len(missing)


# =============================================================================
# Configuration Models
# =============================================================================


class NotificationType(models.Model):
    """
    Lookup table for notification type definitions.

    Defines templates and delivery channel support. Seeded on demand by
    ``NotificationType.objects.ensure_defaults()`` or the
    ``seed_notification_types`` management command.

    Fields:
        key: Unique programmatic identifier (e.g., "post_liked")
        display_name: Human-readable name for admin/UI display
        title_template: Python format string for notification title
        body_template: Python format string for notification body
        category: Preference group
        is_active: Whether this notification type is currently enabled
        supports_push: Can be delivered via push notification
        supports_email: Can be delivered via email
        supports_websocket: Can be broadcast in real-time via WebSocket

    Note:
        - Templates use Python str.format() syntax: {placeholder}
        - Missing placeholders raise KeyError during rendering
    """

    key = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Unique programmatic identifier (e.g., 'post_liked')",
    )

    display_name = models.CharField(
        max_length=200,
        help_text="Human-readable name for display",
    )

    title_template = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Python format string template for title (e.g., '{actor_name} liked your post')",
    )

    body_template = models.TextField(
        blank=True,
        default="",
        help_text="Python format string template for body",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether this notification type is currently enabled",
    )

    # Channel support flags
    supports_push = models.BooleanField(
        default=True,
        help_text="Can be delivered via push notification",
    )

    supports_email = models.BooleanField(
        default=False,
        help_text="Can be delivered via email",
    )

    supports_websocket = models.BooleanField(
        default=True,
        help_text="Can be broadcast via WebSocket",
    )

    category = models.CharField(
        max_length=20,
        choices=NotificationCategory.choices,
        default=NotificationCategory.SYSTEM,
        db_index=True,
        help_text="Category for preference grouping",
    )

    objects = NotificationTypeManager()

    class Meta:
        db_table = "notifications_notification_type"
        verbose_name = "notification type"
        verbose_name_plural = "notification types"
        ordering = ["key"]

    def __str__(self) -> str:
        return f"{self.display_name} ({self.key})"


class Notification(UUIDPrimaryKeyMixin, BaseModel):
    """
    Individual notification record for a user.

    Notifications are immutable once created apart from ``is_read``. Title
    and body are fully rendered strings.

    Fields:
        notification_type: FK to NotificationType (defines behavior)
        recipient: User receiving the notification (scopes all queries)
        actor: Optional user who triggered the notification
        title: Fully rendered title string
        body: Fully rendered body string
        link: Client route to open when the notification is tapped
        data: Arbitrary JSON context
        content_type/object_id/source_object: Generic FK to source entity
        is_read: Whether recipient has read this notification
        idempotency_key: Optional unique key preventing duplicates

    Note:
        - recipient CASCADE: Notifications deleted when user deleted
        - actor SET_NULL: Notification preserved when actor deleted
        - notification_type PROTECT: Cannot delete type with existing notifications
    """

    notification_type = models.ForeignKey(
        NotificationType,
        on_delete=models.PROTECT,
        related_name="notifications",
        help_text="Type of this notification",
    )

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        db_index=True,
        help_text="User receiving this notification",
    )

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="triggered_notifications",
        help_text="User who triggered this notification (optional)",
    )

    title = models.CharField(
        max_length=500,
        help_text="Fully rendered notification title",
    )

    body = models.TextField(
        blank=True,
        default="",
        help_text="Fully rendered notification body",
    )

    link = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Client route opened by the notification (e.g., '/chat/<id>')",
    )

    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary context data",
    )

    # Generic foreign key for linking to source entity
    content_type = models.ForeignKey(
        ContentType,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        help_text="Content type of source object",
    )

    object_id = models.CharField(
        max_length=36,
        null=True,
        blank=True,
        help_text="ID of source object (supports UUID and integer PKs)",
    )

    source_object = GenericForeignKey("content_type", "object_id")

    is_read = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether recipient has read this notification",
    )

    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Idempotency key to prevent duplicate notifications",
    )

    class Meta:
        db_table = "notifications_notification"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read", "-created_at"],
                name="notif_recipient_unread_idx",
            ),
            models.Index(
                fields=["recipient", "notification_type"],
                name="notif_recipient_type_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["idempotency_key"],
                name="notif_idempotency_key_unique",
                condition=models.Q(idempotency_key__isnull=False),
            ),
        ]

    def __str__(self) -> str:
        read_status = "read" if self.is_read else "unread"
        return f"Notification({self.notification_type.key}) -> User {self.recipient_id} [{read_status}]"


# =============================================================================
# Preference Models
# =============================================================================


class UserGlobalPreference(BaseModel):
    """
    Global notification preferences for a user.

    If all_disabled is True, all notifications are suppressed regardless of
    other preference settings.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="notification_global_preference",
    )

    all_disabled = models.BooleanField(
        default=False,
        help_text="Master switch to disable all notifications",
    )

    class Meta:
        db_table = "notifications_user_global_preference"
        verbose_name = "user global preference"
        verbose_name_plural = "user global preferences"

    def __str__(self) -> str:
        status = "disabled" if self.all_disabled else "enabled"
        return f"GlobalPreference(user={self.user_id}, {status})"


class UserCategoryPreference(BaseModel):
    """
    Category-level notification preferences.

    Takes precedence over type-level preferences when disabled.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notification_category_preferences",
    )

    category = models.CharField(
        max_length=20,
        choices=NotificationCategory.choices,
        help_text="Notification category",
    )

    disabled = models.BooleanField(
        default=False,
        help_text="Disable all notifications in this category",
    )

    class Meta:
        db_table = "notifications_user_category_preference"
        verbose_name = "user category preference"
        verbose_name_plural = "user category preferences"
        constraints = [
            models.UniqueConstraint(
                fields=["user", "category"],
                name="unique_user_category_pref",
            ),
        ]

    def __str__(self) -> str:
        status = "disabled" if self.disabled else "enabled"
        return f"CategoryPreference(user={self.user_id}, {self.category}={status})"


class UserNotificationPreference(BaseModel):
    """
    Per-notification-type preferences for a user.

    Null values for channel fields mean "inherit from NotificationType default".
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notification_type_preferences",
    )

    notification_type = models.ForeignKey(
        NotificationType,
        on_delete=models.CASCADE,
        related_name="user_preferences",
    )

    disabled = models.BooleanField(
        default=False,
        help_text="Disable all channels for this notification type",
    )

    # Per-channel overrides (null = inherit from NotificationType)
    push_enabled = models.BooleanField(
        null=True,
        blank=True,
        default=None,
        help_text="Override push preference (null = use type default)",
    )

    email_enabled = models.BooleanField(
        null=True,
        blank=True,
        default=None,
        help_text="Override email preference (null = use type default)",
    )

    websocket_enabled = models.BooleanField(
        null=True,
        blank=True,
        default=None,
        help_text="Override websocket preference (null = use type default)",
    )

    class Meta:
        db_table = "notifications_user_notification_preference"
        verbose_name = "user notification preference"
        verbose_name_plural = "user notification preferences"
        constraints = [
            models.UniqueConstraint(
                fields=["user", "notification_type"],
                name="unique_user_notif_type_pref",
            ),
        ]

    def __str__(self) -> str:
        status = "disabled" if self.disabled else "enabled"
        return f"TypePreference(user={self.user_id}, type={self.notification_type_id}, {status})"


# =============================================================================
# Delivery Models
# =============================================================================


class NotificationDelivery(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks delivery status for each channel of a notification.

    One record per (notification, channel). Tasks receive the delivery id
    and only act on PENDING records, which makes them safe to re-run.

    Fields:
        notification: The notification being delivered
        channel: Delivery channel (push, email, websocket)
        status: Current delivery status
        attempt_count: Number of delivery attempts
        provider_message_id: Identifier returned by the provider
        skipped_reason: Why delivery was skipped (if status=SKIPPED)
        failure_reason: Detailed error message if failed
        is_permanent_failure: Whether failure is permanent (no retry)
    """

    notification = models.ForeignKey(
        Notification,
        on_delete=models.CASCADE,
        related_name="deliveries",
    )

    channel = models.CharField(
        max_length=20,
        choices=DeliveryChannel.choices,
        help_text="Delivery channel",
    )

    status = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
        db_index=True,
        help_text="Current delivery status",
    )

    sent_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the notification was handed to the provider",
    )

    delivered_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When delivery was confirmed",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When delivery failed",
    )

    provider_message_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Message ID returned by the push or email provider",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Detailed failure message",
    )

    failure_code = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Error code from provider",
    )

    is_permanent_failure = models.BooleanField(
        default=False,
        help_text="True if retry won't help (e.g., invalid token)",
    )

    attempt_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of delivery attempts",
    )

    skipped_reason = models.CharField(
        max_length=30,
        choices=SkipReason.choices,
        blank=True,
        default="",
        help_text="Reason if status=SKIPPED",
    )

    class Meta:
        db_table = "notifications_notification_delivery"
        verbose_name = "notification delivery"
        verbose_name_plural = "notification deliveries"
        constraints = [
            models.UniqueConstraint(
                fields=["notification", "channel"],
                name="unique_notification_channel",
            ),
        ]
        indexes = [
            models.Index(
                fields=["status", "channel", "-created_at"],
                name="notif_delivery_status_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Delivery({self.notification_id}, {self.channel}, {self.status})"


class DeviceToken(BaseModel):
    """
    Push notification target registered by a client.

    A token belongs to one user at a time; registering it again (even
    from another account) moves it and refreshes ``last_seen``.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="device_tokens",
    )

    token = models.CharField(
        max_length=255,
        unique=True,
        help_text="Provider registration token",
    )

    platform = models.CharField(
        max_length=10,
        choices=DevicePlatform.choices,
        default=DevicePlatform.WEB,
    )

    last_seen = models.DateTimeField(
        help_text="Last time the client registered this token",
    )

    class Meta:
        db_table = "notifications_device_token"
        ordering = ["-last_seen"]

    def __str__(self) -> str:
        return f"DeviceToken(user={self.user_id}, {self.platform})"
