"""
WebSocket consumer for conversations.

Consumers:
    ChatConsumer: ws/chat/<conversation_id>/

Authentication:
    chat.middleware.JWTAuthMiddleware attaches the user to scope["user"].

Close codes:
    4001: unauthenticated
    4004: conversation does not exist
    4003: not an active participant

Channel Groups:
    Each conversation has a group "chat_{conversation_id}". Services
    publish to it through chat.broadcast after commit.

Frames from client:
    {"type": "message", "content": "Hi", "client_id": "c-1", "parent_id": null}
    {"type": "typing", "is_typing": true}
    {"type": "read", "up_to": "<message uuid>"}
    {"type": "sync", "since": "2026-01-01T10:00:00Z"}

Frames to client:
    message, message_deleted, reaction, typing, read_receipt, membership,
    conversation_updated, conversation_deleted, error

Each connection owns a ReadStateTracker seeded from the database on
connect. Message events pass through it before being sent, so a message is
delivered at most once per connection and every message frame carries the
connection's current unread count.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.utils.dateparse import parse_datetime

from chat.constants import WS_CLOSE, conversation_group
from chat.middleware import accepted_subprotocol
from chat.models import Conversation, Message
from chat.read_state import EventKind, MessageEvent, ReadStateService, ReadStateTracker
from chat.serializers import MessageSerializer
from chat.services import MessageService

logger = logging.getLogger(__name__)


def _parse_timestamp(value) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return parse_datetime(value)
    except ValueError:
        return None


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    Realtime channel for one conversation.

    Attributes:
        conversation_id: UUID of the connected conversation
        conversation: Conversation instance (after connect)
        room_group_name: Channel layer group name for the conversation
        tracker: Read state of this connection's user
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.conversation_id: UUID | None = None
        self.conversation: Conversation | None = None
        self.room_group_name: str | None = None
        self.tracker: ReadStateTracker | None = None
        self.user = None

    async def connect(self):
        self.conversation_id = self.scope["url_route"]["kwargs"]["conversation_id"]
        self.user = self.scope.get("user")

        if self.user is None or not self.user.is_authenticated:
            logger.warning(f"Rejected unauthenticated connection to conversation {self.conversation_id}")
            await self.close(code=WS_CLOSE.UNAUTHENTICATED)
            return

        self.conversation = await self._get_conversation()
        if self.conversation is None:
            logger.warning(f"User {self.user.id} tried to connect to missing conversation {self.conversation_id}")
            await self.close(code=WS_CLOSE.NOT_FOUND)
            return

        snapshot = await self._read_state_snapshot()
        if snapshot is None:
            logger.warning(f"User {self.user.id} is not a participant in {self.conversation_id}")
            await self.close(code=WS_CLOSE.FORBIDDEN)
            return

        last_read_at, unread = snapshot
        self.tracker = ReadStateTracker(self.user.id)
        self.tracker.seed(self.conversation_id, last_read_at, unread)

        self.room_group_name = conversation_group(self.conversation_id)
        await self.channel_layer.group_add(self.room_group_name, self.channel_name)
        await self.accept(subprotocol=accepted_subprotocol(self.scope))
        logger.info(f"User {self.user.id} connected to conversation {self.conversation_id}")

    async def disconnect(self, close_code):
        if self.room_group_name:
            await self.channel_layer.group_discard(self.room_group_name, self.channel_name)
            logger.info(f"User {self.user.id} disconnected from conversation {self.conversation_id}")

    async def receive_json(self, content, **kwargs):
        handlers = {
            "message": self._handle_message,
            "typing": self._handle_typing,
            "read": self._handle_read,
            "sync": self._handle_sync,
        }
        frame_type = content.get("type") if isinstance(content, dict) else None
        handler = handlers.get(frame_type)
        if handler is None:
            await self._send_error(f"Unknown message type: {frame_type}", "UNKNOWN_TYPE")
            return
        await handler(content)

    async def _send_error(self, message: str, error_code: str | None = None, **extra):
        await self.send_json({"type": "error", "message": message, "error_code": error_code, **extra})

    # ------------------------------------------------------------------
    # Client frames
    # ------------------------------------------------------------------

    async def _handle_message(self, content):
        result = await self._send_message(
            content=content.get("content", ""),
            parent_id=content.get("parent_id"),
            client_id=content.get("client_id"),
        )
        if not result.success:
            await self._send_error(result.error, result.error_code, client_id=content.get("client_id"))

    async def _handle_typing(self, content):
        await self.channel_layer.group_send(
            self.room_group_name,
            {
                "type": "chat.typing",
                "user_id": self.user.id,
                "is_typing": bool(content.get("is_typing", False)),
            },
        )

    async def _handle_read(self, content):
        result = await self._mark_read(content.get("up_to"))
        if not result.success:
            await self._send_error(result.error, result.error_code)
            return
        receipt = result.data
        self.tracker.apply_receipt(self.conversation_id, receipt.last_read_at)

    async def _handle_sync(self, content):
        since = content.get("since")
        since_at = _parse_timestamp(since)
        if since and since_at is None:
            await self._send_error("since must be an ISO 8601 timestamp", "INVALID_TIMESTAMP")
            return

        for message, data in await self._messages_since(since_at):
            if message.is_deleted:
                await self._forward_deletion(
                    MessageEvent.from_message(message, kind=EventKind.DELETED),
                    {"message_id": str(message.id)},
                )
            else:
                await self._forward_message(MessageEvent.from_message(message), data, event_id=None)

    # ------------------------------------------------------------------
    # Channel layer events
    # ------------------------------------------------------------------

    async def _forward_message(self, event: MessageEvent, data: dict, event_id):
        delta = self.tracker.ingest(event)
        if delta is None:
            return
        await self.send_json(
            {"type": "message", "event_id": event_id, "message": data, "unread_count": delta.unread_count}
        )

    async def _forward_deletion(self, event: MessageEvent, frame: dict):
        delta = self.tracker.ingest(event)
        if delta is None:
            return
        await self.send_json({"type": "message_deleted", **frame, "unread_count": delta.unread_count})

    async def chat_message(self, event):
        data = event["message"]
        await self._forward_message(MessageEvent.from_payload(data), data, event_id=event.get("event_id"))

    async def chat_message_deleted(self, event):
        message_event = MessageEvent(
            message_id=event["message_id"],
            conversation_id=event["conversation_id"],
            sender_id=event.get("sender_id"),
            created_at=_parse_timestamp(event.get("created_at")),
            kind=EventKind.DELETED,
        )
        await self._forward_deletion(
            message_event,
            {"event_id": event.get("event_id"), "message_id": event["message_id"]},
        )

    async def chat_reaction(self, event):
        await self.send_json({**event, "type": "reaction"})

    async def chat_typing(self, event):
        if event["user_id"] == self.user.id:
            return
        await self.send_json({"type": "typing", "user_id": event["user_id"], "is_typing": event["is_typing"]})

    async def chat_read_receipt(self, event):
        receipt = event["receipt"]
        if receipt["user_id"] == self.user.id:
            self.tracker.apply_receipt(self.conversation_id, _parse_timestamp(receipt["last_read_at"]))
        await self.send_json(
            {
                "type": "read_receipt",
                "event_id": event.get("event_id"),
                "receipt": receipt,
                "unread_count": self.tracker.unread_count(self.conversation_id),
            }
        )

    async def chat_membership(self, event):
        await self.send_json({**event, "type": "membership"})
        if event.get("action") in ("left", "removed") and event.get("user_id") == self.user.id:
            await self.close(code=WS_CLOSE.FORBIDDEN)

    async def chat_conversation_updated(self, event):
        await self.send_json({**event, "type": "conversation_updated"})

    async def chat_conversation_deleted(self, event):
        await self.send_json({**event, "type": "conversation_deleted"})
        await self.close(code=WS_CLOSE.NOT_FOUND)

    # ------------------------------------------------------------------
    # Database access
    # ------------------------------------------------------------------

    @database_sync_to_async
    def _get_conversation(self) -> Conversation | None:
        return Conversation.objects.filter(id=self.conversation_id).first()

    @database_sync_to_async
    def _read_state_snapshot(self):
        participant = self.conversation.get_active_participant_for_user(self.user)
        if participant is None:
            return None
        unread = dict(
            ReadStateService.unread_messages(self.conversation, self.user).values_list("id", "created_at")
        )
        return participant.last_read_at, {str(mid): created_at for mid, created_at in unread.items()}

    @database_sync_to_async
    def _send_message(self, content, parent_id, client_id):
        return MessageService.send_message(
            conversation=self.conversation,
            sender=self.user,
            content=content if isinstance(content, str) else "",
            parent_id=parent_id,
            client_id=client_id if isinstance(client_id, str) else None,
        )

    @database_sync_to_async
    def _mark_read(self, up_to):
        return ReadStateService.mark_read(self.conversation, self.user, up_to)

    @database_sync_to_async
    def _messages_since(self, since) -> list[tuple[Message, dict]]:
        messages = MessageService.messages_since(self.conversation, since)
        return [(message, MessageSerializer(message).data) for message in messages]
