"""
Views for the social graph.

URL Structure:
    /api/v1/social/connections/                 GET (accepted), POST (send request)
    /api/v1/social/connections/requests/        GET incoming pending requests
    /api/v1/social/connections/sent/            GET outgoing pending requests
    /api/v1/social/connections/{id}/            DELETE (remove or withdraw)
    /api/v1/social/connections/{id}/respond/    POST {"accept": bool}
    /api/v1/social/follows/{user_id}/           POST follow, DELETE unfollow
    /api/v1/social/followers/                   GET
    /api/v1/social/following/                   GET
    /api/v1/social/blocks/                      GET, POST
    /api/v1/social/blocks/{user_id}/            DELETE
    /api/v1/social/hobbies/                     GET ?category=&search=
    /api/v1/social/hobby-categories/            GET
    /api/v1/social/my-hobbies/                  GET, PUT
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from social.models import Connection, HobbyCategory
from social.serializers import (
    BlockCreateSerializer,
    BlockSerializer,
    ConnectionRequestSerializer,
    ConnectionRespondSerializer,
    ConnectionSerializer,
    FollowSerializer,
    HobbyCategorySerializer,
    HobbySerializer,
    UserHobbiesUpdateSerializer,
    UserHobbySerializer,
)
from social.services import BlockService, ConnectionService, FollowService, HobbyService

User = get_user_model()


def _failure(result):
    return Response(result.to_response(), status=result.status_code)


# =============================================================================
# Connections
# =============================================================================


@extend_schema_view(
    list=extend_schema(operation_id="list_connections", summary="List connections", tags=["Social - Connections"]),
    destroy=extend_schema(
        operation_id="remove_connection", summary="Remove connection", tags=["Social - Connections"]
    ),
)
class ConnectionViewSet(mixins.ListModelMixin, mixins.DestroyModelMixin, viewsets.GenericViewSet):
    """
    list:
        Accepted connections of the current user.

    create:
        Send a connection request.

    destroy:
        Remove a connection or withdraw a request. Either side may do it.

    respond:
        Accept or reject a pending request (recipient only).
    """

    permission_classes = [IsAuthenticated]
    serializer_class = ConnectionSerializer

    def get_queryset(self):
        user = self.request.user
        if self.action == "list":
            return ConnectionService.list_connections(user)
        return Connection.objects.filter(Q(requester=user) | Q(recipient=user))

    @extend_schema(
        operation_id="send_connection_request",
        summary="Send connection request",
        tags=["Social - Connections"],
        request=ConnectionRequestSerializer,
        responses={201: ConnectionSerializer},
    )
    def create(self, request):
        serializer = ConnectionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        recipient = get_object_or_404(User, pk=serializer.validated_data["user_id"], is_active=True)

        result = ConnectionService.send_request(request.user, recipient)
        if not result.success:
            return _failure(result)
        return Response(
            ConnectionSerializer(result.data, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )

    def destroy(self, request, pk=None):
        result = ConnectionService.remove(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="respond_connection_request",
        summary="Accept or reject a connection request",
        tags=["Social - Connections"],
        request=ConnectionRespondSerializer,
        responses={200: ConnectionSerializer},
    )
    @action(detail=True, methods=["post"])
    def respond(self, request, pk=None):
        serializer = ConnectionRespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ConnectionService.respond(self.get_object(), request.user, serializer.validated_data["accept"])
        if not result.success:
            return _failure(result)
        return Response(ConnectionSerializer(result.data, context={"request": request}).data)

    @extend_schema(
        operation_id="list_connection_requests",
        summary="Incoming connection requests",
        tags=["Social - Connections"],
        responses={200: ConnectionSerializer(many=True)},
    )
    @action(detail=False, methods=["get"])
    def requests(self, request):
        return self._paginated(ConnectionService.pending_requests(request.user))

    @extend_schema(
        operation_id="list_sent_connection_requests",
        summary="Sent connection requests",
        tags=["Social - Connections"],
        responses={200: ConnectionSerializer(many=True)},
    )
    @action(detail=False, methods=["get"])
    def sent(self, request):
        return self._paginated(ConnectionService.sent_requests(request.user))

    def _paginated(self, queryset):
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(queryset, many=True).data)


# =============================================================================
# Follows
# =============================================================================


class FollowView(APIView):
    """
    Follow or unfollow a member.

    URL: /api/v1/social/follows/<user_id>/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="follow_user", summary="Follow", tags=["Social - Follows"], responses={201: FollowSerializer}
    )
    def post(self, request, user_id):
        target = get_object_or_404(User, pk=user_id, is_active=True)
        result = FollowService.follow(request.user, target)
        if not result.success:
            return _failure(result)
        return Response(FollowSerializer(result.data, context={"request": request}).data, status=status.HTTP_201_CREATED)

    @extend_schema(operation_id="unfollow_user", summary="Unfollow", tags=["Social - Follows"], responses={204: None})
    def delete(self, request, user_id):
        target = get_object_or_404(User, pk=user_id)
        result = FollowService.unfollow(request.user, target)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(operation_id="list_followers", summary="My followers", tags=["Social - Follows"])
class FollowersView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = FollowSerializer

    def get_queryset(self):
        return FollowService.followers(self.request.user)


@extend_schema(operation_id="list_following", summary="Members I follow", tags=["Social - Follows"])
class FollowingView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = FollowSerializer

    def get_queryset(self):
        return FollowService.following(self.request.user)


# =============================================================================
# Blocks
# =============================================================================


class BlockListView(APIView):
    """
    URL: /api/v1/social/blocks/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_blocks",
        summary="Blocked members",
        tags=["Social - Blocks"],
        responses={200: BlockSerializer(many=True)},
    )
    def get(self, request):
        blocks = BlockService.list_blocked(request.user)
        return Response(BlockSerializer(blocks, many=True, context={"request": request}).data)

    @extend_schema(
        operation_id="block_user",
        summary="Block a member",
        tags=["Social - Blocks"],
        request=BlockCreateSerializer,
        responses={201: BlockSerializer},
    )
    def post(self, request):
        serializer = BlockCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        target = get_object_or_404(User, pk=serializer.validated_data["user_id"])

        result = BlockService.block(request.user, target, serializer.validated_data["reason"])
        if not result.success:
            return _failure(result)
        return Response(BlockSerializer(result.data, context={"request": request}).data, status=status.HTTP_201_CREATED)


class BlockDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(operation_id="unblock_user", summary="Unblock", tags=["Social - Blocks"], responses={204: None})
    def delete(self, request, user_id):
        target = get_object_or_404(User, pk=user_id)
        result = BlockService.unblock(request.user, target)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Hobbies
# =============================================================================


@extend_schema(
    operation_id="list_hobbies",
    summary="Browse hobbies",
    tags=["Social - Hobbies"],
    parameters=[
        OpenApiParameter("category", int, description="Hobby category id"),
        OpenApiParameter("search", str),
    ],
)
class HobbyListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = HobbySerializer

    def get_queryset(self):
        return HobbyService.browse(
            category=self.request.query_params.get("category") or None,
            search=self.request.query_params.get("search", ""),
        )


@extend_schema(operation_id="list_hobby_categories", summary="Hobby categories", tags=["Social - Hobbies"])
class HobbyCategoryListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = HobbyCategorySerializer
    queryset = HobbyCategory.objects.all()
    pagination_class = None


class MyHobbiesView(APIView):
    """
    Current user's hobbies.

    URL: /api/v1/social/my-hobbies/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_my_hobbies",
        summary="My hobbies",
        tags=["Social - Hobbies"],
        responses={200: UserHobbySerializer(many=True)},
    )
    def get(self, request):
        hobbies = request.user.user_hobbies.select_related("hobby__category")
        return Response(UserHobbySerializer(hobbies, many=True).data)

    @extend_schema(
        operation_id="set_my_hobbies",
        summary="Replace my hobbies",
        tags=["Social - Hobbies"],
        request=UserHobbiesUpdateSerializer,
        responses={200: UserHobbySerializer(many=True)},
    )
    def put(self, request):
        serializer = UserHobbiesUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = HobbyService.set_user_hobbies(request.user, serializer.validated_data["hobbies"])
        if not result.success:
            return _failure(result)
        return Response(UserHobbySerializer(result.data, many=True).data)
