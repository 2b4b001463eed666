"""
Publish state changes to channel layer groups.

Every event gets an ``event_id`` drawn from a shared counter in the cache,
so ids are unique and increase across processes when the cache is Redis.
Events are sent after the surrounding transaction commits.

Usage:
    from chat.broadcast import publish_to_conversation

    publish_to_conversation(conversation.id, "chat.message", {"message": data})
"""

from __future__ import annotations

import json
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.cache import cache
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from chat.constants import conversation_group, user_group

logger = logging.getLogger(__name__)

EVENT_SEQUENCE_KEY = "chat:event_seq"


def next_event_id() -> int:
    cache.add(EVENT_SEQUENCE_KEY, 0, timeout=None)
    return cache.incr(EVENT_SEQUENCE_KEY)


def publish(group: str, event_type: str, payload: dict) -> int:
    """
    Send ``{"type": event_type, "event_id": ..., **payload}`` to group.

    The payload is normalized to plain JSON types (UUIDs and datetimes
    become strings) because channel layers serialize with msgpack.

    Returns:
        The event_id assigned to this event.
    """
    event_id = next_event_id()
    event = {"type": event_type, "event_id": event_id}
    event.update(json.loads(json.dumps(payload, cls=DjangoJSONEncoder)))

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return event_id

    def _send():
        try:
            async_to_sync(channel_layer.group_send)(group, event)
        except Exception:
            logger.exception(f"Failed to publish {event_type} to {group}")

    transaction.on_commit(_send)
    return event_id


def publish_to_conversation(conversation_id, event_type: str, payload: dict) -> int:
    return publish(conversation_group(conversation_id), event_type, payload)


def publish_to_user(user_id, event_type: str, payload: dict) -> int:
    return publish(user_group(user_id), event_type, payload)
