"""
WebSocket URL routing for notifications.

URL Patterns:
    ws/notifications/ - Notification feed of the authenticated user
"""

from django.urls import path

from notifications import consumers

websocket_urlpatterns = [
    path("ws/notifications/", consumers.NotificationConsumer.as_asgi()),
]
