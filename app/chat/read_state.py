"""
Read-state synchronization for conversations.

A user's read state in a conversation is one watermark,
``Participant.last_read_at``. A message is unread for a user when all hold:

    - the user did not send it
    - it is a text message
    - it is not deleted
    - the watermark is null, or the message was created after it

Watermarks only move forward. Marking read at or below the current
watermark changes nothing and reports ``advanced=False``.

Two halves apply these rules:

    ReadStateService: server side. Advances watermarks with a conditional
        UPDATE and computes unread counts in SQL.
    ReadStateTracker: client side reducer with no I/O. Folds a stream of
        realtime message events and read receipts into unread counts,
        tolerating duplicates and out-of-order delivery. ChatConsumer runs
        one per socket to de-duplicate what it forwards.

Usage:
    receipt = ReadStateService.mark_read(conversation, user, up_to=message).data
    counts = ReadStateService.unread_counts(user)    # {conversation_id: n}

    tracker = ReadStateTracker(user_id=user.id)
    tracker.seed(conversation_id, last_read_at, {message_id: created_at})
    delta = tracker.ingest(MessageEvent(...))
    format_unread_badge(tracker.unread_count(conversation_id))  # "3", "99+"
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Count, F, Q
from django.utils import timezone

from chat.models import Message, MessageType, Participant
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User
    from chat.models import Conversation


def format_unread_badge(count: int) -> str:
    """Badge text for an unread count: "" for zero, "<cap>+" above CHAT_UNREAD_BADGE_CAP."""
    if count <= 0:
        return ""
    cap = settings.CHAT_UNREAD_BADGE_CAP
    if count > cap:
        return f"{cap}+"
    return str(count)


# =============================================================================
# Value types
# =============================================================================


class EventKind:
    CREATED = "created"
    DELETED = "deleted"


@dataclass(frozen=True)
class MessageEvent:
    """
    A message appearing in or disappearing from a conversation.

    ``created_at`` is the message's creation time for both kinds; a
    deletion may carry None when the client never saw the message.
    """

    message_id: str
    conversation_id: str
    sender_id: int | None
    created_at: datetime | None
    kind: str = EventKind.CREATED
    message_type: str = MessageType.TEXT

    @classmethod
    def from_message(cls, message: Message, kind: str = EventKind.CREATED) -> MessageEvent:
        return cls(
            message_id=str(message.id),
            conversation_id=str(message.conversation_id),
            sender_id=message.sender_id,
            created_at=message.created_at,
            kind=kind,
            message_type=message.message_type,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], kind: str = EventKind.CREATED) -> MessageEvent:
        """Build from a serialized message as published on the channel layer."""
        created_at = payload.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        sender = payload.get("sender")
        sender_id = payload.get("sender_id")
        if sender_id is None and isinstance(sender, Mapping):
            sender_id = sender.get("id")
        return cls(
            message_id=str(payload["id"]),
            conversation_id=str(payload["conversation_id"]),
            sender_id=sender_id,
            created_at=created_at,
            kind=kind,
            message_type=payload.get("message_type", MessageType.TEXT),
        )


@dataclass(frozen=True)
class Delta:
    """
    Result of a tracker operation that changed what the client shows.

    Attributes:
        conversation_id: Conversation affected
        unread_count: Unread count after the change
        message_id: Message the event was about (None for receipts)
        kind: Event kind, or "read" for receipts
        counted: True when the event added a message to the unread set
        read_message_ids: Messages that moved from unread to read
    """

    conversation_id: str
    unread_count: int
    message_id: str | None = None
    kind: str = EventKind.CREATED
    counted: bool = False
    read_message_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReadReceipt:
    conversation_id: Any
    user_id: int
    last_read_at: datetime | None
    advanced: bool

    def as_dict(self) -> dict:
        return {
            "conversation_id": str(self.conversation_id),
            "user_id": self.user_id,
            "last_read_at": self.last_read_at.isoformat() if self.last_read_at else None,
            "advanced": self.advanced,
        }


# =============================================================================
# Client half
# =============================================================================

_CREATED = "c"
_DELETED = "d"


@dataclass
class _ConversationState:
    last_read_at: datetime | None = None
    # message_id -> created_at for messages currently unread
    unread: dict[str, datetime] = field(default_factory=dict)
    # message_id -> (created_at, _CREATED | _DELETED) in arrival order
    seen: dict[str, tuple[datetime | None, str]] = field(default_factory=dict)


class ReadStateTracker:
    """
    Fold realtime events into per-conversation unread state.

    Guarantees:
        - at-most-once: a repeated event yields None from ingest()
        - an event at or below the watermark is remembered but never unread
        - a deletion before its creation suppresses the late creation
        - watermarks never move backwards
        - each conversation remembers at most ``max_seen`` seen message
          ids, pruning ids below the watermark first and deletion
          tombstones last. The unread set is not bounded by ``max_seen``;
          it shrinks only through receipts and deletions
    """

    def __init__(self, user_id: int, max_seen: int | None = None):
        if max_seen is None:
            max_seen = settings.READ_STATE_MAX_SEEN
        if max_seen < 1:
            raise ValueError("max_seen must be positive")
        self.user_id = user_id
        self.max_seen = max_seen
        self._conversations: dict[str, _ConversationState] = {}

    def _state(self, conversation_id) -> _ConversationState:
        key = str(conversation_id)
        if key not in self._conversations:
            self._conversations[key] = _ConversationState()
        return self._conversations[key]

    def _is_unread(self, state: _ConversationState, event: MessageEvent) -> bool:
        if event.sender_id == self.user_id or event.message_type != MessageType.TEXT:
            return False
        if event.created_at is None:
            return False
        return state.last_read_at is None or event.created_at > state.last_read_at

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def seed(
        self,
        conversation_id,
        last_read_at: datetime | None,
        unread_messages: Mapping[str, datetime] | Iterable[MessageEvent] = (),
    ) -> None:
        """
        Replace a conversation's state with a server snapshot.

        Args:
            conversation_id: Conversation to seed
            last_read_at: Server watermark
            unread_messages: {message_id: created_at} or MessageEvents for
                the messages the server reports unread
        """
        if isinstance(unread_messages, Mapping):
            items = [(str(mid), created_at) for mid, created_at in unread_messages.items()]
        else:
            items = [(event.message_id, event.created_at) for event in unread_messages]

        state = _ConversationState(last_read_at=last_read_at)
        for message_id, created_at in sorted(items, key=lambda item: item[1]):
            if last_read_at is None or created_at > last_read_at:
                state.unread[message_id] = created_at
            state.seen[message_id] = (created_at, _CREATED)
        self._conversations[str(conversation_id)] = state
        self._prune(state)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def ingest(self, event: MessageEvent) -> Delta | None:
        """
        Apply a message event.

        Returns:
            Delta to forward to the client, or None when the event is a
            duplicate or refers to a message already deleted.
        """
        state = self._state(event.conversation_id)
        known = state.seen.get(event.message_id)

        if event.kind == EventKind.DELETED:
            return self._ingest_deletion(state, event, known)

        if known is not None or event.message_id in state.unread:
            return None

        state.seen[event.message_id] = (event.created_at, _CREATED)
        counted = self._is_unread(state, event)
        if counted:
            state.unread[event.message_id] = event.created_at
        self._prune(state)
        return Delta(
            conversation_id=event.conversation_id,
            unread_count=len(state.unread),
            message_id=event.message_id,
            kind=EventKind.CREATED,
            counted=counted,
        )

    def _ingest_deletion(self, state, event: MessageEvent, known) -> Delta | None:
        if known is not None and known[1] == _DELETED:
            return None

        created_at = known[0] if known is not None else event.created_at
        state.seen[event.message_id] = (created_at, _DELETED)
        state.unread.pop(event.message_id, None)
        self._prune(state)
        return Delta(
            conversation_id=event.conversation_id,
            unread_count=len(state.unread),
            message_id=event.message_id,
            kind=EventKind.DELETED,
        )

    # ------------------------------------------------------------------
    # Watermark
    # ------------------------------------------------------------------

    def apply_receipt(self, conversation_id, last_read_at: datetime | None) -> list[str]:
        """
        Advance the watermark to a server receipt.

        Returns:
            Ids that moved from unread to read, oldest first. Empty when
            the receipt is not ahead of the local watermark.
        """
        state = self._state(conversation_id)
        if last_read_at is None:
            return []
        if state.last_read_at is not None and last_read_at <= state.last_read_at:
            return []

        state.last_read_at = last_read_at
        became_read = sorted(
            (mid for mid, created_at in state.unread.items() if created_at <= last_read_at),
            key=lambda mid: state.unread[mid],
        )
        for message_id in became_read:
            del state.unread[message_id]
        self._prune(state)
        return became_read

    def mark_read(self, conversation_id, up_to: datetime | str | None = None) -> list[str]:
        """
        Optimistically mark read before the server confirms.

        Args:
            up_to: A timestamp, a known message id, or None for the newest
                message this tracker has seen in the conversation

        Returns:
            Same as apply_receipt().
        """
        state = self._state(conversation_id)
        if up_to is None:
            stamps = [created_at for created_at, _ in state.seen.values() if created_at is not None]
            stamps.extend(state.unread.values())
            if not stamps:
                return []
            up_to = max(stamps)
        elif not isinstance(up_to, datetime):
            known = state.seen.get(str(up_to))
            if known is None or known[0] is None:
                return []
            up_to = known[0]
        return self.apply_receipt(conversation_id, up_to)

    def last_read_at(self, conversation_id) -> datetime | None:
        state = self._conversations.get(str(conversation_id))
        return state.last_read_at if state else None

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def unread_count(self, conversation_id) -> int:
        state = self._conversations.get(str(conversation_id))
        return len(state.unread) if state else 0

    def unread_ids(self, conversation_id) -> list[str]:
        state = self._conversations.get(str(conversation_id))
        if not state:
            return []
        return sorted(state.unread, key=lambda mid: state.unread[mid])

    def unread_counts(self) -> dict[str, int]:
        return {cid: len(state.unread) for cid, state in self._conversations.items()}

    def total_unread(self) -> int:
        return sum(len(state.unread) for state in self._conversations.values())

    def badge(self, conversation_id) -> str:
        return format_unread_badge(self.unread_count(conversation_id))

    def seen_count(self, conversation_id) -> int:
        state = self._conversations.get(str(conversation_id))
        return len(state.seen) if state else 0

    # ------------------------------------------------------------------
    # Memory bound
    # ------------------------------------------------------------------

    def _prune(self, state: _ConversationState) -> None:
        excess = len(state.seen) - self.max_seen
        if excess <= 0:
            return

        watermark = state.last_read_at
        below = [
            mid
            for mid, (created_at, _) in state.seen.items()
            if watermark is not None and created_at is not None and created_at <= watermark
        ]
        below.sort(key=lambda mid: state.seen[mid][0])
        for message_id in below[:excess]:
            del state.seen[message_id]

        excess = len(state.seen) - self.max_seen
        if excess <= 0:
            return
        # Still over: drop in arrival order, ids that state.unread still
        # deduplicates first and deletion tombstones last.
        ranked = sorted(
            state.seen,
            key=lambda mid: (state.seen[mid][1] == _DELETED, mid not in state.unread),
        )
        for message_id in ranked[:excess]:
            del state.seen[message_id]


# =============================================================================
# Server half
# =============================================================================


def unread_message_filter(user: User, last_read_at: datetime | None, prefix: str = "") -> Q:
    """Q over Message fields (optionally behind ``prefix``) selecting unread rows."""
    q = Q(**{f"{prefix}message_type": MessageType.TEXT, f"{prefix}is_deleted": False})
    q &= ~Q(**{f"{prefix}sender": user}) | Q(**{f"{prefix}sender__isnull": True})
    if last_read_at is not None:
        q &= Q(**{f"{prefix}created_at__gt": last_read_at})
    return q


class ReadStateService(BaseService):
    """Watermarks and unread counts stored on Participant."""

    @classmethod
    def unread_messages(cls, conversation: Conversation, user: User) -> QuerySet[Message]:
        participant = conversation.get_active_participant_for_user(user)
        if participant is None:
            return Message.objects.none()
        return (
            Message.objects.filter(conversation=conversation)
            .filter(unread_message_filter(user, participant.last_read_at))
            .order_by("created_at", "id")
        )

    @classmethod
    def mark_read(
        cls,
        conversation: Conversation,
        user: User,
        up_to: Message | Any | None = None,
    ) -> ServiceResult[ReadReceipt]:
        """
        Advance user's watermark in conversation.

        Args:
            up_to: Message or message id in this conversation; None means
                the newest message

        Returns:
            ServiceResult with ReadReceipt. ``advanced`` is False when the
            watermark was already at or past the target.

        Error codes:
            NOT_PARTICIPANT
            MESSAGE_NOT_FOUND: up_to is not a message of this conversation
        """
        participant = conversation.get_active_participant_for_user(user)
        if participant is None:
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code="NOT_PARTICIPANT",
            )

        if up_to is None:
            message = conversation.messages.order_by("-created_at", "-id").first()
            if message is None:
                return ServiceResult.success(
                    ReadReceipt(
                        conversation_id=conversation.id,
                        user_id=user.id,
                        last_read_at=participant.last_read_at,
                        advanced=False,
                    )
                )
            target = message.created_at
        else:
            message = up_to if isinstance(up_to, Message) else None
            if message is None or message.conversation_id != conversation.id:
                try:
                    message = Message.objects.filter(
                        conversation=conversation, pk=getattr(up_to, "pk", up_to)
                    ).first()
                except (ValueError, DjangoValidationError):
                    message = None
            if message is None:
                return ServiceResult.failure(
                    "Message not found in this conversation",
                    error_code="MESSAGE_NOT_FOUND",
                )
            target = message.created_at

        # Single conditional UPDATE keeps the watermark monotonic under
        # concurrent and reordered requests.
        advanced = bool(
            Participant.objects.filter(pk=participant.pk)
            .filter(Q(last_read_at__isnull=True) | Q(last_read_at__lt=target))
            .update(last_read_at=target, last_read_message=message, updated_at=timezone.now())
        )
        participant.refresh_from_db(fields=["last_read_at", "last_read_message"])

        receipt = ReadReceipt(
            conversation_id=conversation.id,
            user_id=user.id,
            last_read_at=participant.last_read_at,
            advanced=advanced,
        )

        if advanced:
            from chat.broadcast import publish_to_conversation, publish_to_user

            publish_to_conversation(conversation.id, "chat.read_receipt", {"receipt": receipt.as_dict()})
            publish_to_user(
                user.id,
                "unread.count",
                {
                    "conversation_id": str(conversation.id),
                    "unread_count": cls.unread_count(conversation, user),
                    "total_unread": cls.total_unread(user),
                },
            )
            cls.get_logger().debug(f"User {user.id} read conversation {conversation.id} up to {target.isoformat()}")

        return ServiceResult.success(receipt)

    @classmethod
    def unread_count(cls, conversation: Conversation, user: User) -> int:
        """0 when user is not an active participant."""
        return cls.unread_messages(conversation, user).count()

    @classmethod
    def unread_counts(cls, user: User) -> dict[Any, int]:
        """
        Unread counts for every active conversation of user, in one query.

        Returns:
            {conversation_id: count}, including zeros
        """
        unread = Q(conversation__messages__message_type=MessageType.TEXT, conversation__messages__is_deleted=False)
        unread &= ~Q(conversation__messages__sender=user) | Q(conversation__messages__sender__isnull=True)
        unread &= Q(last_read_at__isnull=True) | Q(conversation__messages__created_at__gt=F("last_read_at"))

        rows = (
            Participant.objects.filter(user=user, left_at__isnull=True, conversation__is_deleted=False)
            .values("conversation_id")
            .annotate(unread=Count("conversation__messages", filter=unread))
            .values_list("conversation_id", "unread")
        )
        return dict(rows)

    @classmethod
    def total_unread(cls, user: User) -> int:
        return sum(cls.unread_counts(user).values())

    @classmethod
    def read_by(cls, message: Message) -> QuerySet[Participant]:
        """Active participants other than the sender whose watermark covers message."""
        return (
            Participant.objects.filter(
                conversation_id=message.conversation_id,
                left_at__isnull=True,
                last_read_at__gte=message.created_at,
            )
            .exclude(user_id=message.sender_id)
            .select_related("user__profile")
        )

    @classmethod
    def message_status(cls, message: Message, viewer: User) -> str:
        """
        "read" or "sent".

        For the sender: whether anyone else has read it. For anyone else:
        whether the viewer's own watermark covers it.
        """
        if message.sender_id == viewer.pk:
            return "read" if cls.read_by(message).exists() else "sent"
        covered = Participant.objects.filter(
            conversation_id=message.conversation_id,
            user=viewer,
            left_at__isnull=True,
            last_read_at__gte=message.created_at,
        ).exists()
        return "read" if covered else "sent"
