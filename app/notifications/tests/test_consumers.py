"""Tests for the notification WebSocket consumer."""

import pytest
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from rest_framework_simplejwt.tokens import AccessToken

from chat.constants import WS_CLOSE, user_group
from chat.middleware import JWTAuthMiddleware
from notifications.models import Notification
from notifications.routing import websocket_urlpatterns
from notifications.tests.factories import NotificationFactory

pytestmark = pytest.mark.django_db(transaction=True)

application = JWTAuthMiddleware(URLRouter(websocket_urlpatterns))


def _communicator(user=None):
    path = "/ws/notifications/"
    if user is not None:
        path += f"?token={AccessToken.for_user(user)}"
    return WebsocketCommunicator(application, path)


async def _connected(user):
    communicator = _communicator(user)
    connected, _ = await communicator.connect()
    assert connected
    return communicator


class TestConnect:
    async def test_rejects_anonymous(self):
        connected, code = await _communicator().connect()

        assert not connected
        assert code == WS_CLOSE.UNAUTHENTICATED

    async def test_sends_unread_count_on_connect(self, user):
        await database_sync_to_async(NotificationFactory.create_batch)(2, recipient=user)
        communicator = await _connected(user)

        frame = await communicator.receive_json_from()

        assert frame == {"type": "unread_count", "source": "notifications", "unread_count": 2}
        await communicator.disconnect()

    async def test_token_in_subprotocol_selects_jwt(self, user):
        communicator = WebsocketCommunicator(
            application, "/ws/notifications/", subprotocols=["jwt", str(AccessToken.for_user(user))]
        )

        connected, subprotocol = await communicator.connect()

        assert connected
        assert subprotocol == "jwt"
        await communicator.disconnect()


class TestEvents:
    async def test_forwards_new_notification(self, user):
        communicator = await _connected(user)
        await communicator.receive_json_from()

        await get_channel_layer().group_send(
            user_group(user.id),
            {"type": "notification.message", "event_id": 1, "notification": {"id": "n-1"}, "unread_count": 1},
        )

        assert await communicator.receive_json_from() == {
            "type": "notification",
            "notification": {"id": "n-1"},
            "unread_count": 1,
        }
        await communicator.disconnect()

    async def test_forwards_chat_unread_count(self, user):
        communicator = await _connected(user)
        await communicator.receive_json_from()

        await get_channel_layer().group_send(
            user_group(user.id),
            {"type": "unread.count", "event_id": 2, "conversation_id": "c-1", "unread_count": 0, "total_unread": 4},
        )

        assert await communicator.receive_json_from() == {
            "type": "unread_count",
            "source": "chat",
            "conversation_id": "c-1",
            "unread_count": 0,
            "total_unread": 4,
        }
        await communicator.disconnect()

    async def test_other_users_events_are_not_received(self, user, other_user):
        communicator = await _connected(user)
        await communicator.receive_json_from()

        await get_channel_layer().group_send(
            user_group(other_user.id),
            {"type": "notification.unread_count", "event_id": 3, "unread_count": 9},
        )

        assert await communicator.receive_nothing()
        await communicator.disconnect()


class TestClientFrames:
    async def test_ping(self, user):
        communicator = await _connected(user)
        await communicator.receive_json_from()

        await communicator.send_json_to({"type": "ping"})

        assert await communicator.receive_json_from() == {"type": "pong"}
        await communicator.disconnect()

    async def test_mark_read_pushes_new_count(self, user):
        notification = await database_sync_to_async(NotificationFactory)(recipient=user)
        communicator = await _connected(user)
        await communicator.receive_json_from()

        await communicator.send_json_to({"type": "mark_read", "notification_id": str(notification.id)})

        frame = await communicator.receive_json_from()
        assert frame == {"type": "unread_count", "source": "notifications", "unread_count": 0}
        assert await database_sync_to_async(Notification.objects.filter(is_read=True).count)() == 1
        await communicator.disconnect()

    async def test_mark_read_unknown_notification(self, user):
        communicator = await _connected(user)
        await communicator.receive_json_from()

        await communicator.send_json_to({"type": "mark_read", "notification_id": "not-a-uuid"})

        frame = await communicator.receive_json_from()
        assert frame["error_code"] == "NOTIFICATION_NOT_FOUND"
        await communicator.disconnect()

    async def test_unknown_frame(self, user):
        communicator = await _connected(user)
        await communicator.receive_json_from()

        await communicator.send_json_to({"type": "dance"})

        assert (await communicator.receive_json_from())["error_code"] == "UNKNOWN_TYPE"
        await communicator.disconnect()
