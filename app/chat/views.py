"""
Views for chat API.

URL Structure:
    /api/v1/chat/conversations/                                   GET inbox, POST create group
    /api/v1/chat/conversations/direct/                            POST get-or-create direct
    /api/v1/chat/conversations/unread/                            GET unread counts
    /api/v1/chat/conversations/discover/                          GET browse groups
    /api/v1/chat/conversations/{id}/                              GET, PATCH, DELETE
    /api/v1/chat/conversations/{id}/read/                         POST
    /api/v1/chat/conversations/{id}/leave/                        POST
    /api/v1/chat/conversations/{id}/transfer-ownership/           POST
    /api/v1/chat/conversations/{id}/join/                         POST
    /api/v1/chat/conversations/{id}/join-requests/                GET
    /api/v1/chat/conversations/{id}/rules/                        GET, POST
    /api/v1/chat/conversations/{id}/participants/                 GET, POST
    /api/v1/chat/conversations/{id}/participants/{user_id}/       PATCH, DELETE
    /api/v1/chat/conversations/{id}/messages/                     GET, POST
    /api/v1/chat/messages/{id}/                                   DELETE
    /api/v1/chat/messages/{id}/reactions/                         POST toggle
    /api/v1/chat/messages/{id}/read-by/                           GET
    /api/v1/chat/join-requests/{id}/approve/                      POST
    /api/v1/chat/join-requests/{id}/reject/                       POST
    /api/v1/chat/rules/{id}/                                      DELETE
    /api/v1/chat/attachments/?user={id}                            GET shared files

Design Decisions:
    - Business rules live in chat.services; views translate ServiceResult
      error codes to HTTP statuses
    - Conversations the user does not participate in answer 404, except
      for group discovery and joining
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from chat.models import Conversation, ConversationType, GroupJoinRequest, GroupRule, Message
from chat.pagination import MessageCursorPagination
from chat.permissions import IsConversationAdminOrOwner, IsConversationParticipant
from chat.read_state import ReadStateService, format_unread_badge
from chat.serializers import (
    ConversationDetailSerializer,
    ConversationListSerializer,
    DirectConversationCreateSerializer,
    DiscoverGroupSerializer,
    GroupCreateSerializer,
    GroupRuleSerializer,
    GroupUpdateSerializer,
    JoinRequestCreateSerializer,
    JoinRequestSerializer,
    MarkReadSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    ParticipantCreateSerializer,
    ParticipantSerializer,
    ParticipantUpdateSerializer,
    ReactionSerializer,
    SharedAttachmentSerializer,
    SharedFilesQuerySerializer,
    TransferOwnershipSerializer,
)
from chat.services import (
    ConversationService,
    GroupRuleService,
    JoinRequestService,
    MessageService,
    ParticipantService,
    ReactionService,
)
from core.exceptions import NotFoundError

User = get_user_model()


def _failure(result):
    return Response(result.to_response(), status=result.status_code)


def _participating_conversation(request, conversation_id) -> Conversation:
    return get_object_or_404(ConversationService.user_conversations(request.user), pk=conversation_id)


@extend_schema_view(
    list=extend_schema(operation_id="list_conversations", summary="Inbox", tags=["Chat - Conversations"]),
    retrieve=extend_schema(operation_id="get_conversation", summary="Get conversation", tags=["Chat - Conversations"]),
)
class ConversationViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    list:
        Conversations of the current user, most recent activity first,
        with unread counts and last message preview.

    create:
        Create a group. The creator becomes owner.

    partial_update:
        Change group details (admins and owner).

    destroy:
        Soft delete a group (owner).
    """

    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser, JSONParser]
    serializer_class = ConversationDetailSerializer

    def get_queryset(self):
        if self.action == "join":
            return Conversation.objects.filter(conversation_type=ConversationType.GROUP)
        return ConversationService.user_conversations(self.request.user)

    def get_permissions(self):
        if self.action == "join":
            return [IsAuthenticated()]
        if self.action in ("join_requests",):
            return [IsAuthenticated(), IsConversationAdminOrOwner()]
        return [IsAuthenticated(), IsConversationParticipant()]

    def list(self, request):
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        context = {**self.get_serializer_context(), "unread_counts": ReadStateService.unread_counts(request.user)}
        serializer = ConversationListSerializer(page, many=True, context=context)
        return self.get_paginated_response(serializer.data)

    @extend_schema(operation_id="create_group", summary="Create group", tags=["Chat - Groups"])
    def create(self, request):
        serializer = GroupCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        member_ids = data.pop("member_ids", [])
        members = list(User.objects.filter(id__in=member_ids, is_active=True))
        result = ConversationService.create_group(
            creator=request.user,
            title=data.pop("title"),
            initial_members=members,
            **data,
        )
        if not result.success:
            return _failure(result)

        output = ConversationDetailSerializer(result.data, context=self.get_serializer_context())
        return Response(output.data, status=status.HTTP_201_CREATED)

    @extend_schema(operation_id="update_group", summary="Update group details", tags=["Chat - Groups"])
    def partial_update(self, request, pk=None):
        conversation = self.get_object()
        serializer = GroupUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        result = ConversationService.update_details(conversation, request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(ConversationDetailSerializer(result.data, context=self.get_serializer_context()).data)

    @extend_schema(operation_id="delete_group", summary="Delete group", tags=["Chat - Groups"])
    def destroy(self, request, pk=None):
        result = ConversationService.delete_conversation(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="open_direct_conversation",
        summary="Get or create a direct conversation",
        request=DirectConversationCreateSerializer,
        tags=["Chat - Conversations"],
    )
    @action(detail=False, methods=["post"])
    def direct(self, request):
        serializer = DirectConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        other = get_object_or_404(User, pk=serializer.validated_data["user_id"], is_active=True)

        result = ConversationService.create_direct(request.user, other)
        if not result.success:
            return _failure(result)
        output = ConversationDetailSerializer(result.data, context=self.get_serializer_context())
        return Response(output.data, status=status.HTTP_201_CREATED)

    @extend_schema(operation_id="unread_counts", summary="Unread counts", tags=["Chat - Read state"])
    @action(detail=False, methods=["get"])
    def unread(self, request):
        counts = ReadStateService.unread_counts(request.user)
        total = sum(counts.values())
        return Response(
            {
                "conversations": {str(cid): count for cid, count in counts.items()},
                "total": total,
                "badge": format_unread_badge(total),
            }
        )

    @extend_schema(operation_id="discover_groups", summary="Discover groups", tags=["Chat - Groups"])
    @action(detail=False, methods=["get"])
    def discover(self, request):
        groups = ConversationService.discover_groups(request.user, request.query_params.get("search", ""))
        page = self.paginate_queryset(groups)
        return self.get_paginated_response(DiscoverGroupSerializer(page, many=True).data)

    @extend_schema(
        operation_id="mark_conversation_read",
        summary="Mark conversation read",
        request=MarkReadSerializer,
        tags=["Chat - Read state"],
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        conversation = self.get_object()
        serializer = MarkReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ReadStateService.mark_read(conversation, request.user, serializer.validated_data.get("message_id"))
        if not result.success:
            return _failure(result)
        return Response(
            {
                **result.data.as_dict(),
                "unread_count": ReadStateService.unread_count(conversation, request.user),
            }
        )

    @extend_schema(operation_id="leave_conversation", summary="Leave conversation", tags=["Chat - Conversations"])
    @action(detail=True, methods=["post"])
    def leave(self, request, pk=None):
        result = ParticipantService.leave(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response({"status": "left"})

    @extend_schema(
        operation_id="transfer_group_ownership",
        summary="Transfer ownership",
        request=TransferOwnershipSerializer,
        tags=["Chat - Groups"],
    )
    @action(detail=True, methods=["post"], url_path="transfer-ownership")
    def transfer_ownership(self, request, pk=None):
        conversation = self.get_object()
        serializer = TransferOwnershipSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_owner = get_object_or_404(User, pk=serializer.validated_data["user_id"])

        result = ParticipantService.transfer_ownership(conversation, new_owner=new_owner, current_owner=request.user)
        if not result.success:
            return _failure(result)
        return Response({"status": "transferred"})

    @extend_schema(
        operation_id="join_group",
        summary="Join or request to join",
        request=JoinRequestCreateSerializer,
        tags=["Chat - Groups"],
    )
    @action(detail=True, methods=["post"])
    def join(self, request, pk=None):
        conversation = self.get_object()
        serializer = JoinRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = JoinRequestService.request_to_join(conversation, request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        if result.data["joined"]:
            return Response({"joined": True, "request": None})
        request_data = JoinRequestSerializer(result.data["request"], context=self.get_serializer_context()).data
        return Response({"joined": False, "request": request_data}, status=status.HTTP_201_CREATED)

    @extend_schema(operation_id="list_join_requests", summary="Pending join requests", tags=["Chat - Groups"])
    @action(detail=True, methods=["get"], url_path="join-requests")
    def join_requests(self, request, pk=None):
        result = JoinRequestService.pending_requests(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(JoinRequestSerializer(result.data, many=True, context=self.get_serializer_context()).data)

    @extend_schema(operation_id="group_rules", summary="List or add rules", tags=["Chat - Groups"])
    @action(detail=True, methods=["get", "post"])
    def rules(self, request, pk=None):
        conversation = self.get_object()
        if request.method == "GET":
            return Response(GroupRuleSerializer(GroupRuleService.list_rules(conversation), many=True).data)

        serializer = GroupRuleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = GroupRuleService.add_rule(conversation, request.user, serializer.validated_data["text"])
        if not result.success:
            return _failure(result)
        return Response(GroupRuleSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ParticipantListView(APIView):
    """GET active participants, POST add a participant."""

    permission_classes = [IsAuthenticated]

    @extend_schema(operation_id="list_participants", tags=["Chat - Participants"], responses=ParticipantSerializer(many=True))
    def get(self, request, conversation_id):
        conversation = _participating_conversation(request, conversation_id)
        participants = conversation.get_active_participants().select_related("user__profile").order_by("joined_at")
        return Response(ParticipantSerializer(participants, many=True, context={"request": request}).data)

    @extend_schema(operation_id="add_participant", tags=["Chat - Participants"], request=ParticipantCreateSerializer)
    def post(self, request, conversation_id):
        conversation = _participating_conversation(request, conversation_id)
        serializer = ParticipantCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = get_object_or_404(User, pk=serializer.validated_data["user_id"], is_active=True)

        result = ParticipantService.add_participant(
            conversation, user, added_by=request.user, role=serializer.validated_data["role"]
        )
        if not result.success:
            return _failure(result)
        return Response(
            ParticipantSerializer(result.data, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )


class ParticipantDetailView(APIView):
    """PATCH change role, DELETE remove a participant."""

    permission_classes = [IsAuthenticated]

    @extend_schema(operation_id="change_participant_role", tags=["Chat - Participants"], request=ParticipantUpdateSerializer)
    def patch(self, request, conversation_id, user_id):
        conversation = _participating_conversation(request, conversation_id)
        serializer = ParticipantUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = get_object_or_404(User, pk=user_id)

        result = ParticipantService.change_role(
            conversation, user, new_role=serializer.validated_data["role"], changed_by=request.user
        )
        if not result.success:
            return _failure(result)
        return Response(ParticipantSerializer(result.data, context={"request": request}).data)

    @extend_schema(operation_id="remove_participant", tags=["Chat - Participants"])
    def delete(self, request, conversation_id, user_id):
        conversation = _participating_conversation(request, conversation_id)
        user = get_object_or_404(User, pk=user_id)

        result = ParticipantService.remove_participant(conversation, user, removed_by=request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ConversationMessagesView(APIView):
    """
    GET history (cursor paginated, oldest first), POST send.

    POST accepts multipart for attachments. ``client_id`` makes retries
    return the original message with 200 instead of 201.
    """

    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    @extend_schema(operation_id="list_messages", tags=["Chat - Messages"], responses=MessageSerializer(many=True))
    def get(self, request, conversation_id):
        conversation = _participating_conversation(request, conversation_id)
        paginator = MessageCursorPagination()
        page = paginator.paginate_queryset(MessageService.list_messages(conversation), request, view=self)
        serializer = MessageSerializer(page, many=True, context={"request": request})
        return paginator.get_paginated_response(serializer.data)

    @extend_schema(operation_id="send_message", tags=["Chat - Messages"], request=MessageCreateSerializer)
    def post(self, request, conversation_id):
        conversation = _participating_conversation(request, conversation_id)
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        client_id = data.get("client_id")
        replay = bool(client_id) and Message.objects.filter(
            conversation=conversation, sender=request.user, client_id=client_id
        ).exists()

        result = MessageService.send_message(
            conversation=conversation,
            sender=request.user,
            content=data["content"],
            parent_id=data.get("parent_id"),
            attachments=data["attachments"],
            link=data["link"],
            client_id=client_id,
        )
        if not result.success:
            return _failure(result)
        return Response(
            MessageSerializer(result.data, context={"request": request}).data,
            status=status.HTTP_200_OK if replay else status.HTTP_201_CREATED,
        )


def _visible_message(request, message_id) -> Message:
    message = get_object_or_404(Message.objects.select_related("conversation"), pk=message_id)
    if message.conversation.get_active_participant_for_user(request.user) is None:
        raise NotFoundError("Message not found", error_code="MESSAGE_NOT_FOUND")
    return message


class MessageDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(operation_id="delete_message", tags=["Chat - Messages"])
    def delete(self, request, message_id):
        message = _visible_message(request, message_id)
        result = MessageService.delete_message(message, request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MessageReactionView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(operation_id="toggle_reaction", tags=["Chat - Messages"], request=ReactionSerializer)
    def post(self, request, message_id):
        message = _visible_message(request, message_id)
        serializer = ReactionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ReactionService.toggle_reaction(message, request.user, serializer.validated_data["emoji"])
        if not result.success:
            return _failure(result)
        return Response(result.data)


class MessageReadByView(APIView):
    """Participants whose read watermark covers the message."""

    permission_classes = [IsAuthenticated]

    @extend_schema(operation_id="message_read_by", tags=["Chat - Read state"])
    def get(self, request, message_id):
        message = _visible_message(request, message_id)
        participants = ReadStateService.read_by(message)
        return Response(
            {
                "message_id": str(message.id),
                "status": ReadStateService.message_status(message, request.user),
                "read_by": ParticipantSerializer(participants, many=True, context={"request": request}).data,
            }
        )


class JoinRequestReviewView(APIView):
    permission_classes = [IsAuthenticated]
    approve = True

    @extend_schema(tags=["Chat - Groups"], responses=JoinRequestSerializer)
    def post(self, request, request_id):
        join_request = get_object_or_404(
            GroupJoinRequest.objects.select_related("conversation", "user__profile"),
            pk=request_id,
            conversation__is_deleted=False,
        )
        review = JoinRequestService.approve if self.approve else JoinRequestService.reject
        result = review(join_request, request.user)
        if not result.success:
            return _failure(result)
        return Response(JoinRequestSerializer(result.data, context={"request": request}).data)


class GroupRuleDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(operation_id="delete_group_rule", tags=["Chat - Groups"])
    def delete(self, request, rule_id):
        rule = get_object_or_404(GroupRule.objects.select_related("conversation"), pk=rule_id)
        result = GroupRuleService.remove_rule(rule, request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema_view(
    get=extend_schema(
        operation_id="list_shared_files",
        summary="Shared files",
        parameters=[SharedFilesQuerySerializer],
        tags=["Chat - Shared files"],
    )
)
class SharedFilesView(generics.ListAPIView):
    """
    Attachments from the caller's conversations, newest first.

    ``?user=<id>`` narrows to the direct conversation with that user.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = SharedAttachmentSerializer

    def get_queryset(self):
        query = SharedFilesQuerySerializer(data=self.request.query_params)
        query.is_valid(raise_exception=True)

        other_user = None
        if "user" in query.validated_data:
            other_user = get_object_or_404(User, pk=query.validated_data["user"])
        return MessageService.shared_attachments(self.request.user, other_user)
