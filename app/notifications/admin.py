"""
Django admin configuration for notification models.

Notifications and deliveries are read-only: they are created by
NotificationService and the delivery tasks.
"""

from django.contrib import admin

from notifications.models import (
    DeviceToken,
    Notification,
    NotificationDelivery,
    NotificationType,
    UserCategoryPreference,
    UserGlobalPreference,
    UserNotificationPreference,
)


@admin.register(NotificationType)
class NotificationTypeAdmin(admin.ModelAdmin):
    list_display = [
        "key",
        "display_name",
        "category",
        "is_active",
        "supports_push",
        "supports_email",
        "supports_websocket",
    ]
    list_filter = ["is_active", "category"]
    search_fields = ["key", "display_name"]
    ordering = ["category", "key"]
    fieldsets = (
        (None, {"fields": ("key", "display_name", "category", "is_active")}),
        ("Templates", {"fields": ("title_template", "body_template")}),
        ("Channel Support", {"fields": ("supports_push", "supports_email", "supports_websocket")}),
    )


class NotificationDeliveryInline(admin.TabularInline):
    model = NotificationDelivery
    extra = 0
    can_delete = False
    fields = ["channel", "status", "attempt_count", "sent_at", "failed_at", "failure_code", "skipped_reason"]
    readonly_fields = fields


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ["id", "notification_type", "recipient", "title", "is_read", "created_at"]
    list_filter = ["is_read", "notification_type__category", "notification_type", "created_at"]
    search_fields = ["title", "recipient__email", "idempotency_key"]
    ordering = ["-created_at"]
    readonly_fields = [
        "notification_type",
        "recipient",
        "actor",
        "title",
        "body",
        "link",
        "data",
        "content_type",
        "object_id",
        "idempotency_key",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["recipient", "actor"]
    inlines = [NotificationDeliveryInline]


@admin.register(UserGlobalPreference)
class UserGlobalPreferenceAdmin(admin.ModelAdmin):
    list_display = ["user", "all_disabled", "updated_at"]
    list_filter = ["all_disabled"]
    search_fields = ["user__email"]
    raw_id_fields = ["user"]


@admin.register(UserCategoryPreference)
class UserCategoryPreferenceAdmin(admin.ModelAdmin):
    list_display = ["user", "category", "disabled", "updated_at"]
    list_filter = ["category", "disabled"]
    search_fields = ["user__email"]
    raw_id_fields = ["user"]


@admin.register(UserNotificationPreference)
class UserNotificationPreferenceAdmin(admin.ModelAdmin):
    list_display = [
        "user",
        "notification_type",
        "disabled",
        "push_enabled",
        "email_enabled",
        "websocket_enabled",
    ]
    list_filter = ["notification_type", "disabled"]
    search_fields = ["user__email", "notification_type__key"]
    raw_id_fields = ["user"]


@admin.register(NotificationDelivery)
class NotificationDeliveryAdmin(admin.ModelAdmin):
    list_display = ["id", "notification", "channel", "status", "attempt_count", "sent_at", "failed_at"]
    list_filter = ["channel", "status", "is_permanent_failure"]
    search_fields = ["notification__recipient__email", "provider_message_id"]
    ordering = ["-created_at"]
    raw_id_fields = ["notification"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(DeviceToken)
class DeviceTokenAdmin(admin.ModelAdmin):
    list_display = ["user", "platform", "last_seen", "created_at"]
    list_filter = ["platform"]
    search_fields = ["user__email", "token"]
    raw_id_fields = ["user"]
