"""
ViewSets for the community feed.

URL Structure:
    /api/v1/posts/                          GET feed, POST create
    /api/v1/posts/saved/                    GET saved posts
    /api/v1/posts/{id}/                     GET, PATCH, DELETE
    /api/v1/posts/{id}/like/                POST toggle like
    /api/v1/posts/{id}/save/                POST toggle save
    /api/v1/posts/{id}/pin/                 POST pin (teacher/admin)
    /api/v1/posts/{id}/unpin/               POST unpin (teacher/admin)
    /api/v1/posts/{id}/share/               POST share as direct message
    /api/v1/posts/{id}/comments/            GET, POST
    /api/v1/posts/{id}/vote/                POST
    /api/v1/posts/{id}/results/             GET poll results
    /api/v1/posts/comments/{comment_id}/    DELETE
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from posts.filters import PostFilter
from posts.models import Comment, Poll
from posts.serializers import (
    CommentCreateSerializer,
    CommentSerializer,
    PostCreateSerializer,
    PostSerializer,
    PostUpdateSerializer,
    ShareSerializer,
    VoteSerializer,
)
from posts.services import PollService, PostService

User = get_user_model()


def _failure(result):
    return Response(result.to_response(), status=result.status_code)


@extend_schema_view(
    list=extend_schema(operation_id="list_feed", summary="Feed", tags=["Posts"]),
    retrieve=extend_schema(operation_id="get_post", summary="Get post", tags=["Posts"]),
    destroy=extend_schema(operation_id="delete_post", summary="Delete post", tags=["Posts"]),
)
class PostViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    list:
        Feed for the current user: pinned posts first, then newest.

    create:
        Publish a post with optional media (multipart) and poll.

    partial_update:
        Edit text (author only).

    destroy:
        Soft delete (author, teacher or admin).
    """

    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser, JSONParser]
    serializer_class = PostSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = PostFilter

    def get_queryset(self):
        return PostService.feed(self.request.user)

    @extend_schema(
        operation_id="create_post",
        summary="Create post",
        tags=["Posts"],
        request=PostCreateSerializer,
        responses={201: PostSerializer},
    )
    def create(self, request):
        serializer = PostCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = PostService.create_post(
            author=request.user,
            content=data["content"],
            media_files=data["media"],
            poll=data["poll"],
            formatted_content=data["formatted_content"],
        )
        if not result.success:
            return _failure(result)
        post = self.get_queryset().get(pk=result.data.pk)
        return Response(self.get_serializer(post).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="update_post",
        summary="Edit post",
        tags=["Posts"],
        request=PostUpdateSerializer,
        responses={200: PostSerializer},
    )
    def partial_update(self, request, pk=None):
        post = self.get_object()
        serializer = PostUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PostService.update_post(post, request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(self.get_serializer(self.get_object()).data)

    def destroy(self, request, pk=None):
        result = PostService.delete_post(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(operation_id="list_saved_posts", summary="Saved posts", tags=["Posts"])
    @action(detail=False, methods=["get"])
    def saved(self, request):
        queryset = PostService.saved_posts(request.user)
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(queryset, many=True).data)

    @extend_schema(operation_id="toggle_post_like", summary="Like or unlike", tags=["Posts"], request=None)
    @action(detail=True, methods=["post"])
    def like(self, request, pk=None):
        result = PostService.toggle_like(self.get_object(), request.user)
        return Response(result.data)

    @extend_schema(operation_id="toggle_post_save", summary="Save or unsave", tags=["Posts"], request=None)
    @action(detail=True, methods=["post"])
    def save(self, request, pk=None):
        result = PostService.toggle_save(self.get_object(), request.user)
        return Response(result.data)

    @extend_schema(operation_id="pin_post", summary="Pin post", tags=["Posts"], request=None)
    @action(detail=True, methods=["post"])
    def pin(self, request, pk=None):
        result = PostService.pin_post(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(self.get_serializer(self.get_object()).data)

    @extend_schema(operation_id="unpin_post", summary="Unpin post", tags=["Posts"], request=None)
    @action(detail=True, methods=["post"])
    def unpin(self, request, pk=None):
        result = PostService.unpin_post(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(self.get_serializer(self.get_object()).data)

    @extend_schema(operation_id="share_post", summary="Share as direct message", tags=["Posts"], request=ShareSerializer)
    @action(detail=True, methods=["post"])
    def share(self, request, pk=None):
        post = self.get_object()
        serializer = ShareSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        recipient = get_object_or_404(User, pk=serializer.validated_data["user_id"], is_active=True)

        result = PostService.share_post(post, request.user, recipient, serializer.validated_data["message"])
        if not result.success:
            return _failure(result)
        message = result.data
        return Response(
            {"conversation_id": message.conversation_id, "message_id": message.id, "link": post.link},
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="post_comments",
        summary="List or add comments",
        tags=["Posts - Comments"],
        request=CommentCreateSerializer,
        responses={200: CommentSerializer(many=True), 201: CommentSerializer},
    )
    @action(detail=True, methods=["get", "post"])
    def comments(self, request, pk=None):
        post = self.get_object()
        if request.method == "GET":
            from social.services import BlockService

            comments = post.comments.select_related("author__profile")
            hidden = BlockService.blocked_user_ids(request.user)
            if hidden:
                comments = comments.exclude(author_id__in=hidden)
            page = self.paginate_queryset(comments)
            data = CommentSerializer(page if page is not None else comments, many=True, context={"request": request}).data
            return self.get_paginated_response(data) if page is not None else Response(data)

        serializer = CommentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = PostService.add_comment(post, request.user, serializer.validated_data["content"])
        if not result.success:
            return _failure(result)
        return Response(CommentSerializer(result.data, context={"request": request}).data, status=status.HTTP_201_CREATED)

    @extend_schema(operation_id="vote_poll", summary="Vote", tags=["Posts - Polls"], request=VoteSerializer)
    @action(detail=True, methods=["post"])
    def vote(self, request, pk=None):
        poll = self._get_poll()
        serializer = VoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PollService.vote(poll, request.user, serializer.validated_data["option_id"])
        if not result.success:
            return _failure(result)
        return Response(PollService.results(poll, request.user), status=status.HTTP_201_CREATED)

    @extend_schema(operation_id="poll_results", summary="Poll results", tags=["Posts - Polls"])
    @action(detail=True, methods=["get"])
    def results(self, request, pk=None):
        return Response(PollService.results(self._get_poll(), request.user))

    def _get_poll(self):
        return get_object_or_404(Poll, post=self.get_object())


class CommentDetailView(APIView):
    """
    URL: /api/v1/posts/comments/<comment_id>/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="delete_comment", summary="Delete comment", tags=["Posts - Comments"], responses={204: None}
    )
    def delete(self, request, comment_id):
        comment = get_object_or_404(Comment.objects.select_related("post"), pk=comment_id)
        result = PostService.delete_comment(comment, request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)
