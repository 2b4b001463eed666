"""
URL configuration for notifications API.

Routes:
    /                         - List notifications (GET)
    /{id}/                    - Notification detail (GET)
    /unread-count/            - Unread count (GET)
    /{id}/read/               - Mark single as read (POST)
    /read-all/                - Mark all as read (POST)
    /preferences/...          - Preference management
    /types/                   - Notification types (GET)
    /devices/                 - Push token registration (GET, POST, DELETE)
    /metrics/                 - Delivery metrics for admins (GET)
"""

from rest_framework.routers import DefaultRouter

from notifications.views import (
    DeliveryMetricsViewSet,
    DeviceTokenViewSet,
    NotificationTypeViewSet,
    NotificationViewSet,
    PreferenceViewSet,
)

router = DefaultRouter()
router.register(r"preferences", PreferenceViewSet, basename="preference")
router.register(r"types", NotificationTypeViewSet, basename="notification-type")
router.register(r"devices", DeviceTokenViewSet, basename="device-token")
router.register(r"metrics", DeliveryMetricsViewSet, basename="delivery-metrics")
router.register(r"", NotificationViewSet, basename="notification")

app_name = "notifications"
urlpatterns = router.urls
