"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/<conversation_id>/ - Connect to a specific conversation

Authentication:
    JWT access token as ?token=<jwt> or the "jwt, <token>" subprotocol,
    resolved by chat.middleware.JWTAuthMiddleware.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path(
        "ws/chat/<uuid:conversation_id>/",
        consumers.ChatConsumer.as_asgi(),
    ),
]
