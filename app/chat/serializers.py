"""
Serializers for chat API.

Serializer Hierarchy:
    MessageSerializer: Message with attachments, reactions and read status
    MessagePreviewSerializer: Last message shown in conversation lists
    MessageCreateSerializer: Send a message (multipart or JSON)

    ConversationListSerializer: List view with unread count and preview
    ConversationDetailSerializer: Adds participants, rules and own role
    DirectConversationCreateSerializer / GroupCreateSerializer
    GroupUpdateSerializer: Group details

    ParticipantSerializer, ParticipantCreateSerializer, ParticipantUpdateSerializer
    JoinRequestSerializer, JoinRequestCreateSerializer
    GroupRuleSerializer, DiscoverGroupSerializer
    MarkReadSerializer, ReactionSerializer

Design Decisions:
    - Read and write serializers are separate
    - Soft-deleted message content is replaced with a placeholder
    - System messages render a readable event description
    - Conversation lists take precomputed unread counts from context
      ("unread_counts") to avoid a query per row
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.serializers import ProfileCardSerializer, UserCardField
from chat.constants import GROUP_CONFIG, MESSAGE_CONFIG
from chat.models import (
    Conversation,
    ConversationType,
    GroupJoinRequest,
    GroupRule,
    GroupVisibility,
    Message,
    MessageAttachment,
    Participant,
    ParticipantRole,
    SystemMessageEvent,
)
from chat.read_state import ReadStateService, format_unread_badge

SYSTEM_EVENT_FORMATTERS = {
    SystemMessageEvent.GROUP_CREATED: lambda d: f'Group "{d.get("title", "")}" was created',
    SystemMessageEvent.PARTICIPANT_ADDED: lambda d: "A participant joined the group",
    SystemMessageEvent.PARTICIPANT_REMOVED: lambda d: (
        "A participant left the group" if d.get("reason") == "left" else "A participant was removed from the group"
    ),
    SystemMessageEvent.ROLE_CHANGED: lambda d: f"A participant's role was changed to {d.get('new_role', 'unknown')}",
    SystemMessageEvent.OWNERSHIP_TRANSFERRED: lambda d: "Group ownership was transferred",
    SystemMessageEvent.DETAILS_CHANGED: lambda d: (
        f'Group title was changed to "{d["fields"]["title"]["new"]}"'
        if "title" in d.get("fields", {})
        else "Group details were updated"
    ),
}


def format_system_message(message: Message) -> str:
    data = message.get_system_event_data()
    if not data:
        return "System message"
    formatter = SYSTEM_EVENT_FORMATTERS.get(data.get("event"))
    try:
        return formatter(data.get("data") or {}) if formatter else "System message"
    except (KeyError, TypeError):
        return "System message"


def display_content(message: Message) -> str:
    if message.is_deleted:
        return message.get_display_content()
    if message.is_system_message:
        return format_system_message(message)
    return message.content


def _request_user(context):
    request = context.get("request")
    if request is None or not request.user.is_authenticated:
        return None
    return request.user


# =============================================================================
# Message Serializers
# =============================================================================


class MessageAttachmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = MessageAttachment
        fields = ["id", "file", "media_type", "position"]
        read_only_fields = fields


class SharedAttachmentSerializer(serializers.ModelSerializer):
    """An attachment with the message it was sent in."""

    name = serializers.SerializerMethodField()
    message_id = serializers.UUIDField(read_only=True)
    conversation_id = serializers.UUIDField(source="message.conversation_id", read_only=True)
    sender = UserCardField(source="message.sender", allow_null=True)
    content = serializers.CharField(source="message.content", read_only=True)
    sent_at = serializers.DateTimeField(source="message.created_at", read_only=True)

    class Meta:
        model = MessageAttachment
        fields = ["id", "file", "name", "media_type", "message_id", "conversation_id", "sender", "content", "sent_at"]
        read_only_fields = fields

    def get_name(self, obj):
        return obj.file.name.rsplit("/", 1)[-1]


class SharedFilesQuerySerializer(serializers.Serializer):
    user = serializers.IntegerField(required=False, help_text="Only files exchanged with this user")


class MessageSerializer(serializers.ModelSerializer):
    """
    Full message for history, websocket frames and send responses.

    ``status`` ("sent"/"read") is only present when a request is in context.
    """

    conversation_id = serializers.UUIDField(read_only=True)
    sender = UserCardField(allow_null=True)
    sender_id = serializers.IntegerField(read_only=True, allow_null=True)
    content = serializers.SerializerMethodField()
    system_event = serializers.SerializerMethodField()
    attachments = serializers.SerializerMethodField()
    reactions = serializers.SerializerMethodField()
    parent_id = serializers.UUIDField(source="parent_message_id", read_only=True, allow_null=True)
    status = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            "id",
            "conversation_id",
            "sender",
            "sender_id",
            "message_type",
            "content",
            "system_event",
            "link",
            "attachments",
            "reactions",
            "parent_id",
            "reply_count",
            "client_id",
            "is_deleted",
            "status",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_content(self, obj: Message) -> str:
        return display_content(obj)

    def get_system_event(self, obj: Message) -> dict | None:
        return obj.get_system_event_data()

    def get_attachments(self, obj: Message) -> list:
        if obj.is_deleted:
            return []
        return MessageAttachmentSerializer(obj.attachments.all(), many=True, context=self.context).data

    def get_reactions(self, obj: Message) -> list[dict]:
        grouped: dict[str, list[int]] = {}
        for reaction in obj.reactions.all():
            grouped.setdefault(reaction.emoji, []).append(reaction.user_id)
        return [{"emoji": emoji, "count": len(users), "user_ids": users} for emoji, users in grouped.items()]

    def get_status(self, obj: Message) -> str | None:
        user = _request_user(self.context)
        if user is None or obj.is_system_message:
            return None
        return ReadStateService.message_status(obj, user)


class MessagePreviewSerializer(serializers.ModelSerializer):
    sender_name = serializers.SerializerMethodField()
    content = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = ["id", "sender_name", "content", "message_type", "created_at"]
        read_only_fields = fields

    def get_sender_name(self, obj: Message) -> str | None:
        if obj.sender is None:
            return None
        profile = getattr(obj.sender, "profile", None)
        return profile.display_name if profile else obj.sender.get_full_name()

    def get_content(self, obj: Message) -> str:
        return display_content(obj)


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        required=False,
        allow_blank=True,
        default="",
        trim_whitespace=False,
    )
    parent_id = serializers.UUIDField(required=False, allow_null=True)
    link = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")
    client_id = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    attachments = serializers.ListField(child=serializers.FileField(), required=False, default=list)


class ReactionSerializer(serializers.Serializer):
    emoji = serializers.CharField(max_length=16)


class MarkReadSerializer(serializers.Serializer):
    message_id = serializers.UUIDField(required=False, allow_null=True)


# =============================================================================
# Participant Serializers
# =============================================================================


class ParticipantSerializer(serializers.ModelSerializer):
    user = UserCardField()
    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = Participant
        fields = ["id", "user", "role", "joined_at", "last_read_at", "is_active"]
        read_only_fields = fields


class ParticipantCreateSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    role = serializers.ChoiceField(
        choices=[ParticipantRole.ADMIN, ParticipantRole.MEMBER],
        default=ParticipantRole.MEMBER,
    )


class ParticipantUpdateSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=[ParticipantRole.ADMIN, ParticipantRole.MEMBER])


class TransferOwnershipSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()


# =============================================================================
# Group Serializers
# =============================================================================


class GroupRuleSerializer(serializers.ModelSerializer):
    class Meta:
        model = GroupRule
        fields = ["id", "text", "position"]
        read_only_fields = ["id", "position"]


class JoinRequestSerializer(serializers.ModelSerializer):
    user = UserCardField()
    conversation_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = GroupJoinRequest
        fields = [
            "id",
            "conversation_id",
            "user",
            "academic_year",
            "major",
            "interest_statement",
            "status",
            "reviewed_at",
            "created_at",
        ]
        read_only_fields = fields


class JoinRequestCreateSerializer(serializers.Serializer):
    academic_year = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    major = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    interest_statement = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")


class GroupDetailsSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=2000, required=False, allow_blank=True)
    purpose = serializers.CharField(max_length=200, required=False, allow_blank=True)
    subject_category = serializers.CharField(max_length=100, required=False, allow_blank=True)
    logo = serializers.ImageField(required=False, allow_null=True)
    banner = serializers.ImageField(required=False, allow_null=True)
    visibility = serializers.ChoiceField(choices=GroupVisibility.choices, required=False)
    max_capacity = serializers.IntegerField(min_value=2, required=False, allow_null=True)


class GroupCreateSerializer(GroupDetailsSerializer):
    title = serializers.CharField(max_length=GROUP_CONFIG.MAX_TITLE_LENGTH)
    member_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)


class GroupUpdateSerializer(GroupDetailsSerializer):
    title = serializers.CharField(max_length=GROUP_CONFIG.MAX_TITLE_LENGTH, required=False)


class DirectConversationCreateSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()


# =============================================================================
# Conversation Serializers
# =============================================================================


class ConversationListSerializer(serializers.ModelSerializer):
    """
    Conversation row for the inbox.

    - unread_count / unread_badge: from context["unread_counts"] when given
    - display_name: title for groups, the other user's name for direct
    """

    display_name = serializers.SerializerMethodField()
    other_participants = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()
    unread_badge = serializers.SerializerMethodField()
    last_message = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            "id",
            "conversation_type",
            "title",
            "display_name",
            "logo",
            "visibility",
            "participant_count",
            "other_participants",
            "unread_count",
            "unread_badge",
            "last_message",
            "last_message_at",
            "created_at",
        ]
        read_only_fields = fields

    def _others(self, obj: Conversation) -> list[Participant]:
        user = _request_user(self.context)
        return [p for p in obj.participants.all() if p.left_at is None and (user is None or p.user_id != user.pk)]

    def get_display_name(self, obj: Conversation) -> str:
        if obj.conversation_type == ConversationType.GROUP:
            return obj.title
        others = self._others(obj)
        if not others:
            return "Direct message"
        profile = getattr(others[0].user, "profile", None)
        return profile.display_name if profile else others[0].user.get_full_name()

    def get_other_participants(self, obj: Conversation) -> list:
        return [
            ProfileCardSerializer(p.user.profile, context=self.context).data
            for p in self._others(obj)[:5]
            if hasattr(p.user, "profile")
        ]

    def get_unread_count(self, obj: Conversation) -> int:
        counts = self.context.get("unread_counts")
        if counts is not None:
            return counts.get(obj.id, 0)
        user = _request_user(self.context)
        return ReadStateService.unread_count(obj, user) if user else 0

    def get_unread_badge(self, obj: Conversation) -> str:
        return format_unread_badge(self.get_unread_count(obj))

    def get_last_message(self, obj: Conversation) -> dict | None:
        last = obj.messages.select_related("sender__profile").order_by("-created_at", "-id").first()
        return MessagePreviewSerializer(last).data if last else None


class ConversationDetailSerializer(ConversationListSerializer):
    participants = serializers.SerializerMethodField()
    rules = GroupRuleSerializer(many=True, read_only=True)
    my_role = serializers.SerializerMethodField()
    last_read_at = serializers.SerializerMethodField()

    class Meta(ConversationListSerializer.Meta):
        fields = ConversationListSerializer.Meta.fields + [
            "description",
            "purpose",
            "subject_category",
            "banner",
            "max_capacity",
            "participants",
            "rules",
            "my_role",
            "last_read_at",
        ]
        read_only_fields = fields

    def _me(self, obj: Conversation) -> Participant | None:
        user = _request_user(self.context)
        return obj.get_active_participant_for_user(user) if user else None

    def get_participants(self, obj: Conversation) -> list:
        participants = obj.get_active_participants().select_related("user__profile").order_by("joined_at")
        return ParticipantSerializer(participants, many=True, context=self.context).data

    def get_my_role(self, obj: Conversation) -> str | None:
        me = self._me(obj)
        return me.role if me else None

    def get_last_read_at(self, obj: Conversation):
        me = self._me(obj)
        return me.last_read_at if me else None


class DiscoverGroupSerializer(serializers.ModelSerializer):
    """Group card on the discover page. Annotated by ConversationService.discover_groups."""

    is_member = serializers.BooleanField(read_only=True)
    has_pending_request = serializers.BooleanField(read_only=True)
    is_full = serializers.BooleanField(read_only=True)

    class Meta:
        model = Conversation
        fields = [
            "id",
            "title",
            "description",
            "purpose",
            "subject_category",
            "logo",
            "banner",
            "visibility",
            "participant_count",
            "max_capacity",
            "is_full",
            "is_member",
            "has_pending_request",
        ]
        read_only_fields = fields
