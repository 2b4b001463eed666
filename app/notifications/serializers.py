"""
Serializers for notification API.

Serializers:
    NotificationSerializer: Read-only notification for the inbox and sockets
    UnreadCountSerializer / MarkAllReadResponseSerializer: Small responses
    GlobalPreferenceSerializer, CategoryPreferenceSerializer,
    TypePreferenceSerializer, BulkPreferenceSerializer: Preference updates
    UserPreferencesResponseSerializer: Complete preferences response
    NotificationTypeSerializer: Available types
    DeviceTokenSerializer: Push token registration
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.serializers import UserCardField
from notifications.models import (
    DevicePlatform,
    DeviceToken,
    Notification,
    NotificationCategory,
    NotificationDelivery,
    NotificationType,
)


class NotificationSerializer(serializers.ModelSerializer):
    """
    Read-only notification.

    ``actor`` is the actor's profile card, or None for system notifications
    and deleted actors.
    """

    type_key = serializers.CharField(source="notification_type.key", read_only=True)
    category = serializers.CharField(source="notification_type.category", read_only=True)
    actor = UserCardField(allow_null=True)

    class Meta:
        model = Notification
        fields = [
            "id",
            "type_key",
            "category",
            "title",
            "body",
            "link",
            "data",
            "actor",
            "is_read",
            "created_at",
        ]
        read_only_fields = fields


class UnreadCountSerializer(serializers.Serializer):
    unread_count = serializers.IntegerField()


class MarkAllReadResponseSerializer(serializers.Serializer):
    marked_count = serializers.IntegerField()


# ============================================================================
# Preference Serializers
# ============================================================================


class GlobalPreferenceSerializer(serializers.Serializer):
    all_disabled = serializers.BooleanField(help_text="Set to true to disable all notifications")


class CategoryPreferenceSerializer(serializers.Serializer):
    category = serializers.ChoiceField(
        choices=NotificationCategory.choices,
        help_text="Notification category to update",
    )
    disabled = serializers.BooleanField(help_text="Set to true to disable notifications in this category")


class TypePreferenceSerializer(serializers.Serializer):
    """
    Type-level preference update.

    Channel fields left null keep inheriting from the type default.
    """

    type_key = serializers.CharField(max_length=100, help_text="Notification type key to update")
    disabled = serializers.BooleanField(required=False, allow_null=True, default=None)
    push_enabled = serializers.BooleanField(required=False, allow_null=True, default=None)
    email_enabled = serializers.BooleanField(required=False, allow_null=True, default=None)
    websocket_enabled = serializers.BooleanField(required=False, allow_null=True, default=None)


class BulkPreferenceSerializer(serializers.Serializer):
    preferences = TypePreferenceSerializer(many=True, help_text="List of type preference updates")


class TypePreferenceResponseSerializer(serializers.Serializer):
    type_key = serializers.CharField()
    type_name = serializers.CharField()
    disabled = serializers.BooleanField()
    push_enabled = serializers.BooleanField(allow_null=True)
    email_enabled = serializers.BooleanField(allow_null=True)
    websocket_enabled = serializers.BooleanField(allow_null=True)


class CategoryPreferenceResponseSerializer(serializers.Serializer):
    category = serializers.CharField()
    disabled = serializers.BooleanField()


class GlobalPreferenceResponseSerializer(serializers.Serializer):
    all_disabled = serializers.BooleanField()


class UserPreferencesResponseSerializer(serializers.Serializer):
    """Global mute, category switches and type overrides of the current user."""

    global_preferences = GlobalPreferenceResponseSerializer(source="global")
    categories = CategoryPreferenceResponseSerializer(many=True)
    types = TypePreferenceResponseSerializer(many=True)


class ResetPreferencesResponseSerializer(serializers.Serializer):
    deleted_count = serializers.IntegerField()


# ============================================================================
# Types, deliveries and devices
# ============================================================================


class NotificationTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = NotificationType
        fields = [
            "key",
            "display_name",
            "category",
            "supports_push",
            "supports_email",
            "supports_websocket",
            "is_active",
        ]
        read_only_fields = fields


class NotificationDeliverySerializer(serializers.ModelSerializer):
    class Meta:
        model = NotificationDelivery
        fields = [
            "id",
            "channel",
            "status",
            "sent_at",
            "delivered_at",
            "failed_at",
            "failure_code",
            "skipped_reason",
            "attempt_count",
        ]
        read_only_fields = fields


class NotificationWithDeliverySerializer(NotificationSerializer):
    """Notification detail including per-channel delivery status."""

    deliveries = NotificationDeliverySerializer(many=True, read_only=True)

    class Meta(NotificationSerializer.Meta):
        fields = NotificationSerializer.Meta.fields + ["deliveries"]
        read_only_fields = fields


class DeviceTokenSerializer(serializers.ModelSerializer):
    token = serializers.CharField(max_length=255)
    platform = serializers.ChoiceField(choices=DevicePlatform.choices, default=DevicePlatform.WEB)

    class Meta:
        model = DeviceToken
        fields = ["id", "token", "platform", "last_seen", "created_at"]
        read_only_fields = ["id", "last_seen", "created_at"]


class DeliveryMetricsQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, default=30)


class DailyDeliveryMetricsSerializer(serializers.Serializer):
    date = serializers.DateField()
    total = serializers.IntegerField()
    successful = serializers.IntegerField()
    failed = serializers.IntegerField()
    skipped = serializers.IntegerField()


class DeliveryMetricsSerializer(serializers.Serializer):
    period_days = serializers.IntegerField()
    total = serializers.IntegerField()
    success_rate = serializers.FloatField(allow_null=True)
    by_status = serializers.DictField(child=serializers.IntegerField())
    by_channel = serializers.DictField(child=serializers.DictField(child=serializers.IntegerField()))
    daily = DailyDeliveryMetricsSerializer(many=True)
