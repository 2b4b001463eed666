"""
Tests for feed API views.
"""

import json

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework import status

from posts.models import Post
from posts.services import PostService
from posts.tests.factories import CommentFactory, PollFactory, PostFactory

pytestmark = pytest.mark.django_db

POSTS_URL = "/api/v1/posts/"


def detail_url(post):
    return f"{POSTS_URL}{post.pk}/"


class TestFeedEndpoints:
    def test_requires_authentication(self, api_client):
        response = api_client.get(POSTS_URL)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_list_feed(self, authenticated_client, user):
        PostFactory(author=user)
        PostFactory()

        response = authenticated_client.get(POSTS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 2
        first = response.data["results"][0]
        assert first["is_liked"] is False
        assert first["link"] == f"/posts/{first['id']}"

    def test_filter_by_author(self, authenticated_client, user):
        mine = PostFactory(author=user)
        PostFactory()

        response = authenticated_client.get(POSTS_URL, {"author": user.pk})

        assert [row["id"] for row in response.data["results"]] == [str(mine.pk)]

    def test_search(self, authenticated_client):
        PostFactory(content="Field trip on Friday")
        PostFactory(content="Homework reminder")

        response = authenticated_client.get(POSTS_URL, {"search": "trip"})

        assert response.data["count"] == 1


class TestCreatePost:
    def test_json_post_with_poll(self, authenticated_client):
        payload = {"content": "Where to?", "poll": {"question": "Trip?", "options": ["Museum", "Zoo"]}}

        response = authenticated_client.post(POSTS_URL, payload, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["poll"]["question"] == "Trip?"
        assert [o["text"] for o in response.data["poll"]["options"]] == ["Museum", "Zoo"]

    def test_multipart_with_media_and_poll_string(self, authenticated_client):
        image = SimpleUploadedFile("pic.png", b"\x89PNG\r\n\x1a\n" + b"0" * 64, content_type="image/png")
        payload = {
            "content": "Look",
            "media": [image],
            "poll": json.dumps({"question": "Like it?", "options": ["Yes", "No"]}),
        }

        response = authenticated_client.post(POSTS_URL, payload, format="multipart")

        assert response.status_code == status.HTTP_201_CREATED
        assert len(response.data["media"]) == 1
        assert response.data["media"][0]["media_type"] == "image"
        assert response.data["poll"] is not None

    def test_empty_post(self, authenticated_client):
        response = authenticated_client.post(POSTS_URL, {"content": ""}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "EMPTY_POST"


class TestPostDetail:
    def test_author_edits(self, authenticated_client, user):
        post = PostFactory(author=user)

        response = authenticated_client.patch(detail_url(post), {"content": "updated"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["content"] == "updated"

    def test_non_author_cannot_edit(self, authenticated_client):
        post = PostFactory()

        response = authenticated_client.patch(detail_url(post), {"content": "nope"}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_delete_own_post(self, authenticated_client, user):
        post = PostFactory(author=user)

        response = authenticated_client.delete(detail_url(post))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert authenticated_client.get(detail_url(post)).status_code == status.HTTP_404_NOT_FOUND

    def test_like_and_save(self, authenticated_client, user):
        post = PostFactory()

        like = authenticated_client.post(f"{detail_url(post)}like/")
        save = authenticated_client.post(f"{detail_url(post)}save/")

        assert like.data == {"liked": True, "like_count": 1}
        assert save.data == {"saved": True}
        saved = authenticated_client.get(f"{POSTS_URL}saved/")
        assert [row["id"] for row in saved.data["results"]] == [str(post.pk)]
        assert saved.data["results"][0]["is_saved"] is True


class TestPinEndpoints:
    def test_teacher_pins(self, authenticated_client_factory, teacher):
        post = PostFactory()
        client = authenticated_client_factory(teacher)

        response = client.post(f"{detail_url(post)}pin/")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["is_pinned"] is True

    def test_student_cannot_pin(self, authenticated_client):
        post = PostFactory()

        response = authenticated_client.post(f"{detail_url(post)}pin/")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_pinned_post_leads_feed(self, authenticated_client, teacher):
        older = PostFactory()
        PostFactory()
        PostService.pin_post(older, teacher)

        response = authenticated_client.get(POSTS_URL)

        assert response.data["results"][0]["id"] == str(older.pk)


class TestCommentEndpoints:
    def test_add_and_list(self, authenticated_client):
        post = PostFactory()

        created = authenticated_client.post(f"{detail_url(post)}comments/", {"content": "Great"}, format="json")
        listing = authenticated_client.get(f"{detail_url(post)}comments/")

        assert created.status_code == status.HTTP_201_CREATED
        assert [row["content"] for row in listing.data["results"]] == ["Great"]

    def test_delete_own_comment(self, authenticated_client, user):
        comment = CommentFactory(author=user)

        response = authenticated_client.delete(f"{POSTS_URL}comments/{comment.pk}/")

        assert response.status_code == status.HTTP_204_NO_CONTENT

    def test_cannot_delete_others_comment(self, authenticated_client):
        comment = CommentFactory()

        response = authenticated_client.delete(f"{POSTS_URL}comments/{comment.pk}/")

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestPollEndpoints:
    def test_vote_returns_results(self, authenticated_client, user):
        poll = PollFactory()
        option = poll.options.first()

        response = authenticated_client.post(f"{detail_url(poll.post)}vote/", {"option_id": option.pk}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["user_vote"] == option.pk
        assert response.data["total_votes"] == 1

    def test_second_vote_conflicts(self, authenticated_client):
        poll = PollFactory()
        option = poll.options.first()
        authenticated_client.post(f"{detail_url(poll.post)}vote/", {"option_id": option.pk}, format="json")

        response = authenticated_client.post(f"{detail_url(poll.post)}vote/", {"option_id": option.pk}, format="json")

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_results_for_post_without_poll(self, authenticated_client):
        post = PostFactory()

        response = authenticated_client.get(f"{detail_url(post)}results/")

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestShare:
    def test_share_creates_direct_message(self, authenticated_client, other_user):
        post = PostFactory()

        response = authenticated_client.post(
            f"{detail_url(post)}share/", {"user_id": other_user.pk, "message": "look"}, format="json"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["link"] == post.link
        assert Post.objects.filter(pk=post.pk).exists()
