"""
Chat models.

Direct (1:1) conversations and group chats share one Conversation table.
Groups additionally carry descriptive fields, rules and join requests.

Models:
    Conversation: Container for messages between participants
    DirectConversationPair: Enforces one direct conversation per user pair
    Participant: Membership with role and read watermark
    Message: Text or system message, optionally threaded
    MessageAttachment: Ordered media attached to a message
    MessageReaction: One emoji reaction by one user
    GroupJoinRequest: Request to enter a private group
    GroupRule: Ordered rule text shown in a group

Design Decisions:
    - Participant records are never reused; rejoining creates a new row
    - Messages support single-level threading (replies to replies reference root)
    - Soft delete keeps conversations and messages for moderation
    - The read state of a conversation is the participant's last_read_at
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from core.managers import SoftDeleteManager
from core.model_mixins import OrderableMixin, SoftDeleteMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from authentication.models import User


class ConversationType(models.TextChoices):
    DIRECT = "direct", "Direct Message"
    GROUP = "group", "Group"


class GroupVisibility(models.TextChoices):
    """
    PUBLIC: anyone may join immediately
    PRIVATE: joining requires an approved GroupJoinRequest
    """

    PUBLIC = "public", "Public"
    PRIVATE = "private", "Private"


class ParticipantRole(models.TextChoices):
    """
    Role within a group conversation.

    Hierarchy: OWNER > ADMIN > MEMBER. Direct participants have no role.
    """

    OWNER = "owner", "Owner"
    ADMIN = "admin", "Admin"
    MEMBER = "member", "Member"


class MessageType(models.TextChoices):
    TEXT = "text", "Text"
    SYSTEM = "system", "System"


class JoinRequestStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class SystemMessageEvent:
    """
    System message event types.

    Content format: {"event": "<event_type>", "data": {...}}

    Events:
        GROUP_CREATED: {"title"}
        PARTICIPANT_ADDED: {"user_id", "added_by_id"}
        PARTICIPANT_REMOVED: {"user_id", "removed_by_id", "reason": "left"|"removed"}
        ROLE_CHANGED: {"user_id", "old_role", "new_role", "changed_by_id"}
        OWNERSHIP_TRANSFERRED: {"from_user_id", "to_user_id", "reason": "manual"|"departure"}
        DETAILS_CHANGED: {"changed_by_id", "fields": {name: {"old", "new"}}}
    """

    GROUP_CREATED = "group_created"
    PARTICIPANT_ADDED = "participant_added"
    PARTICIPANT_REMOVED = "participant_removed"
    ROLE_CHANGED = "role_changed"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"
    DETAILS_CHANGED = "details_changed"


class Conversation(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    A conversation between two or more users.

    DIRECT: exactly two participants, no title, no roles. Unique per user
        pair through DirectConversationPair.
    GROUP: creator becomes owner. Soft deleted when the owner deletes it
        or when no participants remain.

    participant_count and last_message_at are maintained by the services.
    """

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    conversation_type = models.CharField(
        max_length=10,
        choices=ConversationType.choices,
        default=ConversationType.GROUP,
        db_index=True,
    )

    # Group details (blank for direct conversations)
    title = models.CharField(max_length=100, blank=True, default="")
    description = models.TextField(blank=True, default="", max_length=2000)
    purpose = models.CharField(max_length=200, blank=True, default="")
    subject_category = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Academic subject or interest area used for discovery",
    )
    logo = models.ImageField(upload_to="groups/logos/", blank=True, null=True)
    banner = models.ImageField(upload_to="groups/banners/", blank=True, null=True)
    visibility = models.CharField(
        max_length=10,
        choices=GroupVisibility.choices,
        default=GroupVisibility.PUBLIC,
    )
    max_capacity = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Maximum active participants (null means unlimited)",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_conversations",
    )
    participant_count = models.PositiveIntegerField(default=0)
    last_message_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-last_message_at", "-created_at"]
        indexes = [
            models.Index(fields=["conversation_type", "is_deleted"], name="chat_conv_type_deleted_idx"),
        ]

    def __str__(self) -> str:
        if self.is_direct:
            return f"Direct({self.pk})"
        return f"Group: {self.title}"

    @property
    def is_direct(self) -> bool:
        return self.conversation_type == ConversationType.DIRECT

    @property
    def is_group(self) -> bool:
        return self.conversation_type == ConversationType.GROUP

    @property
    def is_full(self) -> bool:
        return self.max_capacity is not None and self.participant_count >= self.max_capacity

    def get_active_participants(self):
        return self.participants.filter(left_at__isnull=True)

    def get_active_participant_for_user(self, user: User) -> Participant | None:
        return self.participants.filter(user=user, left_at__isnull=True).first()


class DirectConversationPair(models.Model):
    """
    One row per direct conversation, users stored in canonical order
    (lower id first) so the pair is unique regardless of who started it.
    """

    conversation = models.OneToOneField(
        Conversation,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="direct_pair",
    )
    user_lower = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="+")
    user_higher = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="+")

    class Meta:
        db_table = "chat_direct_conversation_pair"
        constraints = [
            models.UniqueConstraint(fields=["user_lower", "user_higher"], name="unique_direct_conversation_pair"),
            models.CheckConstraint(
                condition=Q(user_lower_id__lt=F("user_higher_id")),
                name="user_lower_less_than_higher",
            ),
        ]

    def __str__(self) -> str:
        return f"DirectPair({self.user_lower_id}, {self.user_higher_id})"


class Participant(BaseModel):
    """
    A user's membership in a conversation.

    Leaving sets left_at; rejoining creates a new row, so history is kept.

    Read state:
        last_read_at is the watermark. Every message created after it
        (not sent by this user, text only, not deleted) is unread. It only
        moves forward; see chat.read_state.
    """

    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="participants")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversation_participations",
    )
    role = models.CharField(
        max_length=10,
        choices=ParticipantRole.choices,
        null=True,
        blank=True,
        help_text="Role in group conversation (null for direct conversations)",
    )
    joined_at = models.DateTimeField(auto_now_add=True)
    left_at = models.DateTimeField(null=True, blank=True, db_index=True)
    left_voluntarily = models.BooleanField(null=True, blank=True)
    removed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="removed_participants",
    )
    last_read_at = models.DateTimeField(null=True, blank=True)
    last_read_message = models.ForeignKey(
        "Message",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "chat_participant"
        ordering = ["joined_at"]
        indexes = [
            models.Index(fields=["conversation", "left_at"], name="chat_part_conv_active_idx"),
            models.Index(fields=["user", "left_at", "-joined_at"], name="chat_part_user_active_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"],
                condition=Q(left_at__isnull=True),
                name="unique_active_participation",
            ),
        ]

    def __str__(self) -> str:
        role = f" ({self.role})" if self.role else ""
        return f"Participant: {self.user_id} in {self.conversation_id}{role}"

    @property
    def is_active(self) -> bool:
        return self.left_at is None

    @property
    def is_owner(self) -> bool:
        return self.role == ParticipantRole.OWNER

    @property
    def is_admin(self) -> bool:
        return self.role == ParticipantRole.ADMIN

    @property
    def is_member(self) -> bool:
        return self.role == ParticipantRole.MEMBER

    @property
    def is_admin_or_owner(self) -> bool:
        return self.role in (ParticipantRole.OWNER, ParticipantRole.ADMIN)


class Message(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    A message within a conversation.

    Soft deleted messages stay visible in history with placeholder
    content and never count as unread.

    client_id is an optional key generated by the sending client. Sending
    the same client_id twice in a conversation returns the first message.
    """

    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="messages")
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_messages",
        help_text="Null for system messages",
    )
    message_type = models.CharField(
        max_length=10,
        choices=MessageType.choices,
        default=MessageType.TEXT,
    )
    content = models.TextField(blank=True, default="")
    link = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="In-app link for rich previews, e.g. a shared post",
    )
    parent_message = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
    )
    reply_count = models.PositiveIntegerField(default=0)
    client_id = models.CharField(max_length=64, null=True, blank=True)

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["conversation", "created_at"], name="chat_msg_conv_created_idx"),
            models.Index(fields=["sender", "-created_at"], name="chat_msg_sender_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "sender", "client_id"],
                condition=Q(client_id__isnull=False),
                name="unique_message_client_id",
            ),
        ]

    def __str__(self) -> str:
        sender = f"User {self.sender_id}" if self.sender_id else "System"
        preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return f"{sender}: {preview}"

    @property
    def is_system_message(self) -> bool:
        return self.message_type == MessageType.SYSTEM

    @property
    def is_text_message(self) -> bool:
        return self.message_type == MessageType.TEXT

    def get_system_event_data(self) -> dict | None:
        if not self.is_system_message:
            return None
        try:
            return json.loads(self.content)
        except (json.JSONDecodeError, TypeError):
            return None

    def get_display_content(self) -> str:
        if self.is_deleted:
            return "[Message deleted]"
        return self.content


class MessageAttachment(OrderableMixin, BaseModel):
    message = models.ForeignKey(Message, on_delete=models.CASCADE, related_name="attachments")
    file = models.FileField(upload_to="chat/%Y/%m/")
    media_type = models.CharField(max_length=10)

    class Meta:
        db_table = "chat_message_attachment"
        ordering = ["position"]


class MessageReaction(BaseModel):
    message = models.ForeignKey(Message, on_delete=models.CASCADE, related_name="reactions")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="message_reactions")
    emoji = models.CharField(max_length=16)

    class Meta:
        db_table = "chat_message_reaction"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["message", "user", "emoji"], name="unique_message_reaction"),
        ]


class GroupJoinRequest(BaseModel):
    """
    A request to join a private group, reviewed by its admins.

    A user may have at most one pending request per group; after a
    rejection they may ask again.
    """

    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="join_requests")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="group_join_requests")
    academic_year = models.CharField(max_length=50, blank=True, default="")
    major = models.CharField(max_length=100, blank=True, default="")
    interest_statement = models.TextField(blank=True, default="", max_length=1000)
    status = models.CharField(
        max_length=10,
        choices=JoinRequestStatus.choices,
        default=JoinRequestStatus.PENDING,
        db_index=True,
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "chat_group_join_request"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"],
                condition=Q(status="pending"),
                name="unique_pending_join_request",
            ),
        ]

    def __str__(self) -> str:
        return f"JoinRequest({self.user_id} -> {self.conversation_id}, {self.status})"


class GroupRule(OrderableMixin, BaseModel):
    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="rules")
    text = models.CharField(max_length=500)

    class Meta:
        db_table = "chat_group_rule"
        ordering = ["position"]

    def __str__(self) -> str:
        return self.text
