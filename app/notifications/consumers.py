"""
WebSocket consumer for a user's notification feed.

Consumers:
    NotificationConsumer: ws/notifications/

Channel Groups:
    Every socket of a user joins "notifications_{user_id}". Notification
    delivery tasks and the chat read state publish there.

Frames from client:
    {"type": "ping"}
    {"type": "mark_read", "notification_id": "<uuid>"}
    {"type": "mark_all_read"}

Frames to client:
    {"type": "notification", "notification": {...}, "unread_count": 3}
    {"type": "unread_count", "source": "notifications", "unread_count": 2}
    {"type": "unread_count", "source": "chat", "conversation_id": "...",
     "unread_count": 1, "total_unread": 4}
    {"type": "pong"}
    {"type": "error", "message": "...", "error_code": "..."}
"""

from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.core.exceptions import ValidationError

from chat.constants import WS_CLOSE, user_group
from chat.middleware import accepted_subprotocol
from notifications.models import Notification
from notifications.services import NotificationService

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncJsonWebsocketConsumer):
    """Pushes notifications and unread badges to every open tab of a user."""

    group_name: str | None = None

    async def connect(self):
        self.user = self.scope.get("user")
        if self.user is None or not self.user.is_authenticated:
            await self.close(code=WS_CLOSE.UNAUTHENTICATED)
            return

        self.group_name = user_group(self.user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept(subprotocol=accepted_subprotocol(self.scope))

        unread = await database_sync_to_async(NotificationService.unread_count)(self.user)
        await self.send_json({"type": "unread_count", "source": "notifications", "unread_count": unread})
        logger.info(f"User {self.user.id} connected to notifications")

    async def disconnect(self, close_code):
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        frame_type = content.get("type") if isinstance(content, dict) else None
        if frame_type == "ping":
            await self.send_json({"type": "pong"})
        elif frame_type == "mark_read":
            await self._handle_mark_read(content.get("notification_id"))
        elif frame_type == "mark_all_read":
            await database_sync_to_async(NotificationService.mark_all_as_read)(self.user)
        else:
            await self.send_json(
                {"type": "error", "message": f"Unknown message type: {frame_type}", "error_code": "UNKNOWN_TYPE"}
            )

    async def _handle_mark_read(self, notification_id):
        result = await self._mark_read(notification_id)
        if result is None:
            await self.send_json(
                {"type": "error", "message": "Notification not found", "error_code": "NOTIFICATION_NOT_FOUND"}
            )

    @database_sync_to_async
    def _mark_read(self, notification_id):
        try:
            notification = Notification.objects.get(id=notification_id, recipient=self.user)
        except (Notification.DoesNotExist, ValidationError, ValueError):
            return None
        return NotificationService.mark_as_read(notification, self.user)

    # ------------------------------------------------------------------
    # Channel layer events
    # ------------------------------------------------------------------

    async def notification_message(self, event):
        await self.send_json(
            {
                "type": "notification",
                "notification": event["notification"],
                "unread_count": event["unread_count"],
            }
        )

    async def notification_unread_count(self, event):
        await self.send_json(
            {"type": "unread_count", "source": "notifications", "unread_count": event["unread_count"]}
        )

    async def unread_count(self, event):
        await self.send_json(
            {
                "type": "unread_count",
                "source": "chat",
                "conversation_id": event["conversation_id"],
                "unread_count": event["unread_count"],
                "total_unread": event["total_unread"],
            }
        )
