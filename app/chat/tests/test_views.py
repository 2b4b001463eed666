"""
Tests for chat API endpoints.
"""

import pytest
from rest_framework import status

from authentication.tests.factories import UserFactory
from chat.models import GroupVisibility, Participant, ParticipantRole
from chat.services import ConversationService, JoinRequestService, MessageService, ParticipantService
from social.tests.factories import BlockFactory

pytestmark = pytest.mark.django_db

CONVERSATIONS_URL = "/api/v1/chat/conversations/"
DIRECT_URL = "/api/v1/chat/conversations/direct/"
UNREAD_URL = "/api/v1/chat/conversations/unread/"
DISCOVER_URL = "/api/v1/chat/conversations/discover/"


def conversation_url(conversation, suffix=""):
    return f"{CONVERSATIONS_URL}{conversation.id}/{suffix}"


def message_url(message, suffix=""):
    return f"/api/v1/chat/messages/{message.id}/{suffix}"


@pytest.fixture
def direct(user, other_user):
    return ConversationService.create_direct(user, other_user).data


@pytest.fixture
def group(user):
    return ConversationService.create_group(creator=user, title="Study hall").data


@pytest.fixture
def other_client(authenticated_client_factory, other_user):
    return authenticated_client_factory(other_user)


class TestInbox:
    def test_requires_auth(self, api_client):
        assert api_client.get(CONVERSATIONS_URL).status_code == status.HTTP_401_UNAUTHORIZED

    def test_lists_with_unread_counts(self, authenticated_client, direct, group, other_user):
        for text in ["one", "two"]:
            MessageService.send_message(conversation=direct, sender=other_user, content=text)

        response = authenticated_client.get(CONVERSATIONS_URL)

        assert response.status_code == status.HTTP_200_OK
        rows = {row["id"]: row for row in response.data["results"]}
        assert rows[str(direct.id)]["unread_count"] == 2
        assert rows[str(direct.id)]["unread_badge"] == "2"
        assert rows[str(direct.id)]["last_message"]["content"] == "two"
        assert rows[str(group.id)]["display_name"] == "Study hall"

    def test_hides_conversations_of_others(self, authenticated_client):
        ConversationService.create_group(creator=UserFactory(), title="Elsewhere")

        assert authenticated_client.get(CONVERSATIONS_URL).data["count"] == 0

    def test_unread_totals(self, authenticated_client, direct, other_user):
        MessageService.send_message(conversation=direct, sender=other_user, content="hey")

        response = authenticated_client.get(UNREAD_URL)

        assert response.data["total"] == 1
        assert response.data["badge"] == "1"
        assert response.data["conversations"] == {str(direct.id): 1}


class TestCreateConversations:
    def test_create_group(self, authenticated_client, other_user, user):
        response = authenticated_client.post(
            CONVERSATIONS_URL,
            {"title": "Lab partners", "member_ids": [other_user.id], "visibility": "private"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["my_role"] == ParticipantRole.OWNER
        assert response.data["visibility"] == GroupVisibility.PRIVATE
        assert len(response.data["participants"]) == 2

    def test_create_group_without_title(self, authenticated_client):
        response = authenticated_client.post(CONVERSATIONS_URL, {"title": ""}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_direct_get_or_create(self, authenticated_client, other_user):
        first = authenticated_client.post(DIRECT_URL, {"user_id": other_user.id}, format="json")
        second = authenticated_client.post(DIRECT_URL, {"user_id": other_user.id}, format="json")

        assert first.status_code == status.HTTP_201_CREATED
        assert first.data["id"] == second.data["id"]
        assert first.data["conversation_type"] == "direct"

    def test_direct_blocked(self, authenticated_client, other_user, user):
        BlockFactory(blocker=other_user, blocked=user)

        response = authenticated_client.post(DIRECT_URL, {"user_id": other_user.id}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error_code"] == "BLOCKED"

    def test_direct_unknown_user(self, authenticated_client):
        assert authenticated_client.post(DIRECT_URL, {"user_id": 999999}, format="json").status_code == 404


class TestConversationDetail:
    def test_retrieve(self, authenticated_client, group):
        response = authenticated_client.get(conversation_url(group))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["title"] == "Study hall"
        assert response.data["rules"] == []

    def test_non_participant_gets_404(self, other_client, group):
        assert other_client.get(conversation_url(group)).status_code == status.HTTP_404_NOT_FOUND

    def test_update_details(self, authenticated_client, group):
        response = authenticated_client.patch(
            conversation_url(group), {"description": "Quiet study"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["description"] == "Quiet study"

    def test_member_cannot_update(self, other_client, group, other_user, user):
        ParticipantService.add_participant(group, other_user, added_by=user)

        response = other_client.patch(conversation_url(group), {"title": "Mine"}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_delete_group(self, authenticated_client, group):
        assert authenticated_client.delete(conversation_url(group)).status_code == status.HTTP_204_NO_CONTENT
        assert authenticated_client.get(conversation_url(group)).status_code == status.HTTP_404_NOT_FOUND

    def test_leave(self, authenticated_client, direct):
        response = authenticated_client.post(conversation_url(direct, "leave/"))

        assert response.status_code == status.HTTP_200_OK
        assert authenticated_client.get(conversation_url(direct)).status_code == status.HTTP_404_NOT_FOUND

    def test_transfer_ownership(self, authenticated_client, group, other_user, user):
        ParticipantService.add_participant(group, other_user, added_by=user)

        response = authenticated_client.post(
            conversation_url(group, "transfer-ownership/"), {"user_id": other_user.id}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert group.get_active_participant_for_user(other_user).is_owner


class TestMessages:
    def test_send_and_list(self, authenticated_client, direct):
        response = authenticated_client.post(
            conversation_url(direct, "messages/"), {"content": "Hello", "client_id": "c-1"}, format="json"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["content"] == "Hello"
        assert response.data["status"] == "sent"

        listing = authenticated_client.get(conversation_url(direct, "messages/"))
        assert [m["content"] for m in listing.data["results"]] == ["Hello"]
        assert "next" in listing.data

    def test_client_id_replay_returns_original(self, authenticated_client, direct):
        payload = {"content": "Hello", "client_id": "c-1"}
        first = authenticated_client.post(conversation_url(direct, "messages/"), payload, format="json")
        again = authenticated_client.post(conversation_url(direct, "messages/"), payload, format="json")

        assert again.status_code == status.HTTP_200_OK
        assert again.data["id"] == first.data["id"]

    def test_send_with_attachment(self, authenticated_client, direct):
        from django.core.files.uploadedfile import SimpleUploadedFile

        image = SimpleUploadedFile("a.png", b"\x89PNG\r\n\x1a\n" + b"0" * 32, content_type="image/png")

        response = authenticated_client.post(
            conversation_url(direct, "messages/"), {"attachments": [image]}, format="multipart"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["attachments"][0]["media_type"] == "image"

    def test_empty_message(self, authenticated_client, direct):
        response = authenticated_client.post(conversation_url(direct, "messages/"), {"content": ""}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "EMPTY_CONTENT"

    def test_outsider_cannot_post(self, authenticated_client_factory, direct):
        client = authenticated_client_factory(UserFactory())

        response = client.post(conversation_url(direct, "messages/"), {"content": "hi"}, format="json")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_delete_message(self, authenticated_client, direct, user):
        message = MessageService.send_message(conversation=direct, sender=user, content="oops").data

        assert authenticated_client.delete(message_url(message)).status_code == status.HTTP_204_NO_CONTENT

        listing = authenticated_client.get(conversation_url(direct, "messages/"))
        assert listing.data["results"][0]["content"] == "[Message deleted]"

    def test_cannot_delete_others_message(self, other_client, direct, user):
        message = MessageService.send_message(conversation=direct, sender=user, content="mine").data

        assert other_client.delete(message_url(message)).status_code == status.HTTP_403_FORBIDDEN

    def test_outsider_cannot_see_message(self, authenticated_client_factory, direct, user):
        message = MessageService.send_message(conversation=direct, sender=user, content="private").data
        client = authenticated_client_factory(UserFactory())

        response = client.get(message_url(message, "read-by/"))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "MESSAGE_NOT_FOUND"

    def test_reaction_toggle(self, other_client, direct, user):
        message = MessageService.send_message(conversation=direct, sender=user, content="nice").data

        response = other_client.post(message_url(message, "reactions/"), {"emoji": "🎉"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["added"]

    def test_invalid_reaction(self, other_client, direct, user):
        message = MessageService.send_message(conversation=direct, sender=user, content="nice").data

        response = other_client.post(message_url(message, "reactions/"), {"emoji": "lol"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestReadState:
    def test_mark_read(self, authenticated_client, direct, other_user):
        message = MessageService.send_message(conversation=direct, sender=other_user, content="hey").data

        response = authenticated_client.post(
            conversation_url(direct, "read/"), {"message_id": str(message.id)}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["advanced"] is True
        assert response.data["unread_count"] == 0

        repeat = authenticated_client.post(conversation_url(direct, "read/"), {"message_id": str(message.id)}, format="json")
        assert repeat.data["advanced"] is False

    def test_mark_read_unknown_message(self, authenticated_client, group, direct):
        stranger = MessageService.send_message(conversation=group, sender=group.created_by, content="x").data

        response = authenticated_client.post(
            conversation_url(direct, "read/"), {"message_id": str(stranger.id)}, format="json"
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_read_by(self, authenticated_client, other_client, direct, user, other_user):
        message = MessageService.send_message(conversation=direct, sender=user, content="seen?").data
        other_client.post(conversation_url(direct, "read/"), {}, format="json")

        response = authenticated_client.get(message_url(message, "read-by/"))

        assert response.data["status"] == "read"
        assert [p["user"]["id"] for p in response.data["read_by"]] == [other_user.id]


class TestGroups:
    def test_discover_and_join_public(self, other_client, group, other_user):
        listing = other_client.get(DISCOVER_URL, {"search": "study"})
        assert [g["id"] for g in listing.data["results"]] == [str(group.id)]
        assert listing.data["results"][0]["is_member"] is False

        response = other_client.post(conversation_url(group, "join/"), {}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["joined"] is True
        assert Participant.objects.filter(conversation=group, user=other_user, left_at__isnull=True).exists()

    def test_private_join_request_and_approval(self, authenticated_client, other_client, user, other_user):
        group = ConversationService.create_group(creator=user, title="Seniors", visibility=GroupVisibility.PRIVATE).data

        response = other_client.post(
            conversation_url(group, "join/"),
            {"academic_year": "Year 4", "interest_statement": "Revision"},
            format="json",
        )
        assert response.status_code == status.HTTP_201_CREATED
        request_id = response.data["request"]["id"]

        pending = authenticated_client.get(conversation_url(group, "join-requests/"))
        assert [r["id"] for r in pending.data] == [request_id]

        approve = authenticated_client.post(f"/api/v1/chat/join-requests/{request_id}/approve/")
        assert approve.status_code == status.HTTP_200_OK
        assert approve.data["status"] == "approved"

    def test_duplicate_join_request(self, other_client, user):
        group = ConversationService.create_group(creator=user, title="Seniors", visibility=GroupVisibility.PRIVATE).data
        other_client.post(conversation_url(group, "join/"), {}, format="json")

        response = other_client.post(conversation_url(group, "join/"), {}, format="json")

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_requester_cannot_approve_self(self, other_client, user, other_user):
        group = ConversationService.create_group(creator=user, title="Seniors", visibility=GroupVisibility.PRIVATE).data
        join_request = JoinRequestService.request_to_join(group, other_user).data["request"]

        response = other_client.post(f"/api/v1/chat/join-requests/{join_request.id}/reject/")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_rules(self, authenticated_client, group):
        created = authenticated_client.post(conversation_url(group, "rules/"), {"text": "Be kind"}, format="json")
        assert created.status_code == status.HTTP_201_CREATED

        listing = authenticated_client.get(conversation_url(group, "rules/"))
        assert [r["text"] for r in listing.data] == ["Be kind"]

        deleted = authenticated_client.delete(f"/api/v1/chat/rules/{created.data['id']}/")
        assert deleted.status_code == status.HTTP_204_NO_CONTENT


class TestParticipants:
    def test_add_list_change_remove(self, authenticated_client, group, other_user):
        url = conversation_url(group, "participants/")

        added = authenticated_client.post(url, {"user_id": other_user.id}, format="json")
        assert added.status_code == status.HTTP_201_CREATED

        assert len(authenticated_client.get(url).data) == 2

        promoted = authenticated_client.patch(f"{url}{other_user.id}/", {"role": "admin"}, format="json")
        assert promoted.data["role"] == ParticipantRole.ADMIN

        removed = authenticated_client.delete(f"{url}{other_user.id}/")
        assert removed.status_code == status.HTTP_204_NO_CONTENT

    def test_add_twice_conflicts(self, authenticated_client, group, other_user, user):
        ParticipantService.add_participant(group, other_user, added_by=user)

        response = authenticated_client.post(
            conversation_url(group, "participants/"), {"user_id": other_user.id}, format="json"
        )

        assert response.status_code == status.HTTP_409_CONFLICT


class TestSharedFiles:
    URL = "/api/v1/chat/attachments/"

    def _send_image(self, client, conversation, name):
        from django.core.files.uploadedfile import SimpleUploadedFile

        image = SimpleUploadedFile(name, b"\x89PNG\r\n\x1a\n" + b"0" * 32, content_type="image/png")
        response = client.post(conversation_url(conversation, "messages/"), {"attachments": [image]}, format="multipart")
        assert response.status_code == status.HTTP_201_CREATED
        return response.data

    def test_files_with_one_user(self, authenticated_client, other_client, direct, group, other_user):
        sent = self._send_image(other_client, direct, "notes.png")
        self._send_image(authenticated_client, group, "group.png")

        response = authenticated_client.get(self.URL, {"user": other_user.pk})

        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 1
        row = response.data["results"][0]
        assert row["message_id"] == sent["id"]
        assert row["conversation_id"] == str(direct.id)
        assert row["sender"]["id"] == other_user.pk
        assert row["media_type"] == "image"
        assert row["name"].endswith(".png")

    def test_all_files(self, authenticated_client, other_client, direct, group):
        self._send_image(other_client, direct, "a.png")
        self._send_image(authenticated_client, group, "b.png")

        response = authenticated_client.get(self.URL)

        assert response.data["count"] == 2

    def test_unknown_user(self, authenticated_client):
        response = authenticated_client.get(self.URL, {"user": 987654})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_requires_authentication(self, api_client):
        assert api_client.get(self.URL).status_code == status.HTTP_401_UNAUTHORIZED
