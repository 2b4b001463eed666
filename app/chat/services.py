"""
Chat service layer.

Services:
    ConversationService: direct and group lifecycle, group details, discovery
    ParticipantService: add, remove, leave, roles, ownership
    JoinRequestService: joining public groups and reviewing private ones
    GroupRuleService: group rules
    MessageService: send, delete, list, system messages
    ReactionService: emoji reactions

Read state (watermarks, unread counts) lives in chat.read_state.

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure()
    - System messages record membership and group changes
    - Every state change is published to the conversation channel group
      after commit (see chat.broadcast)

Usage:
    result = ConversationService.create_direct(user1, user2)
    result = ConversationService.create_group(creator=user, title="Physics 101", initial_members=[a, b])
    result = MessageService.send_message(conversation=conversation, sender=user, content="Hi", client_id="c-1")
"""

from __future__ import annotations

import json
import logging
import unicodedata
from typing import TYPE_CHECKING, Any, Iterable

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from django.db.models import Exists, F, Max, OuterRef, Q
from django.utils import timezone

from chat.broadcast import publish_to_conversation
from chat.constants import GROUP_CONFIG, MESSAGE_CONFIG, REACTION_CONFIG
from chat.models import (
    Conversation,
    ConversationType,
    DirectConversationPair,
    GroupJoinRequest,
    GroupRule,
    GroupVisibility,
    JoinRequestStatus,
    Message,
    MessageAttachment,
    MessageReaction,
    MessageType,
    Participant,
    ParticipantRole,
    SystemMessageEvent,
)
from chat.signals import join_request_reviewed, join_requested, message_sent
from core.services import BaseService, ServiceResult
from core.validators import validate_media_file

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User

logger = logging.getLogger(__name__)

GROUP_DETAIL_FIELDS = (
    "title",
    "description",
    "purpose",
    "subject_category",
    "logo",
    "banner",
    "visibility",
    "max_capacity",
)


def preview_text(content: str, length: int = MESSAGE_CONFIG.PREVIEW_LENGTH) -> str:
    """Truncate to ``length`` characters, appending "..." when cut."""
    content = (content or "").strip()
    if len(content) <= length:
        return content
    return content[:length] + "..."


def _not_participant() -> ServiceResult:
    return ServiceResult.failure(
        "You are not a participant in this conversation",
        error_code="NOT_PARTICIPANT",
    )


def _publish_membership(conversation: Conversation, action: str, user_id, **extra) -> None:
    publish_to_conversation(
        conversation.id,
        "chat.membership",
        {
            "conversation_id": str(conversation.id),
            "action": action,
            "user_id": user_id,
            "participant_count": conversation.participant_count,
            **extra,
        },
    )


class ConversationService(BaseService):
    """
    Conversation lifecycle.

    Methods:
        create_direct: Get or create the direct conversation of two users
        create_group: Create a group owned by its creator
        update_details: Change group title, description and other details
        delete_conversation: Soft delete a group (owner only)
        user_conversations: Active conversations of a user
        discover_groups: Groups a user can browse and join
    """

    @classmethod
    def create_direct(cls, user1: User, user2: User) -> ServiceResult[Conversation]:
        """
        Get or create the direct conversation between two users.

        An existing conversation one side has left is reopened for them.

        Error codes:
            SAME_USER
            USER_SUSPENDED: either user is suspended
            BLOCKED: either user blocked the other
            MESSAGES_NOT_ALLOWED: user2's privacy settings exclude user1
        """
        from authentication.services import PrivacyService
        from social.services import BlockService

        if user1.pk == user2.pk:
            return ServiceResult.failure(
                "Cannot create a direct conversation with yourself",
                error_code="SAME_USER",
            )
        if user1.is_suspended or user2.is_suspended or not user2.is_active:
            return ServiceResult.failure(
                "Suspended accounts cannot exchange messages",
                error_code="USER_SUSPENDED",
            )
        if BlockService.is_blocked_between(user1, user2):
            return ServiceResult.failure("You cannot message this user", error_code="BLOCKED")

        user_lower, user_higher = (user1, user2) if user1.pk < user2.pk else (user2, user1)
        pair = (
            DirectConversationPair.objects.select_related("conversation")
            .filter(user_lower=user_lower, user_higher=user_higher)
            .first()
        )
        if pair is not None:
            cls._reopen_direct(pair.conversation, (user_lower, user_higher))
            return ServiceResult.success(pair.conversation)

        if not PrivacyService.can_message(user1, user2):
            return ServiceResult.failure(
                "This user does not accept messages from you",
                error_code="MESSAGES_NOT_ALLOWED",
            )

        with cls.atomic():
            conversation = Conversation.objects.create(
                conversation_type=ConversationType.DIRECT,
                participant_count=2,
            )
            DirectConversationPair.objects.create(
                conversation=conversation,
                user_lower=user_lower,
                user_higher=user_higher,
            )
            Participant.objects.bulk_create(
                [
                    Participant(conversation=conversation, user=user_lower),
                    Participant(conversation=conversation, user=user_higher),
                ]
            )

        cls.get_logger().info(
            f"Created direct conversation {conversation.id} between users {user_lower.id} and {user_higher.id}"
        )
        return ServiceResult.success(conversation)

    @classmethod
    def _reopen_direct(cls, conversation: Conversation, users) -> None:
        active = set(conversation.get_active_participants().values_list("user_id", flat=True))
        missing = [user for user in users if user.pk not in active]
        if not missing and not conversation.is_deleted:
            return

        with cls.atomic():
            for user in missing:
                Participant.objects.create(conversation=conversation, user=user)
            conversation.participant_count = 2
            conversation.is_deleted = False
            conversation.deleted_at = None
            conversation.save(update_fields=["participant_count", "is_deleted", "deleted_at", "updated_at"])

    @classmethod
    def create_group(
        cls,
        creator: User,
        title: str,
        initial_members: Iterable[User] | None = None,
        **details: Any,
    ) -> ServiceResult[Conversation]:
        """
        Create a group conversation. The creator becomes owner.

        Args:
            creator: Owner of the new group
            title: Required group title
            initial_members: Users added as members
            **details: description, purpose, subject_category, logo,
                banner, visibility, max_capacity

        Error codes:
            USER_SUSPENDED
            TITLE_REQUIRED
            INVALID_VISIBILITY
            GROUP_FULL: initial members exceed max_capacity
        """
        from social.services import BlockService

        if creator.is_suspended:
            return ServiceResult.failure("Suspended accounts cannot create groups", error_code="USER_SUSPENDED")

        title = (title or "").strip()
        if not title:
            return ServiceResult.failure("Group title is required", error_code="TITLE_REQUIRED")

        details = {key: value for key, value in details.items() if key in GROUP_DETAIL_FIELDS and key != "title"}
        visibility = details.setdefault("visibility", GroupVisibility.PUBLIC)
        if visibility not in GroupVisibility.values:
            return ServiceResult.failure(f"Invalid visibility: {visibility}", error_code="INVALID_VISIBILITY")

        hidden = BlockService.blocked_user_ids(creator)
        members = []
        for member in initial_members or []:
            if member.pk == creator.pk or member.pk in hidden or member in members:
                continue
            members.append(member)

        max_capacity = details.get("max_capacity")
        if max_capacity is not None and 1 + len(members) > max_capacity:
            return ServiceResult.failure(
                f"This group holds at most {max_capacity} participants",
                error_code="GROUP_FULL",
            )

        with cls.atomic():
            conversation = Conversation.objects.create(
                conversation_type=ConversationType.GROUP,
                title=title,
                created_by=creator,
                participant_count=1 + len(members),
                **details,
            )
            Participant.objects.create(conversation=conversation, user=creator, role=ParticipantRole.OWNER)
            for member in members:
                Participant.objects.create(conversation=conversation, user=member, role=ParticipantRole.MEMBER)

            MessageService._create_system_message(conversation, SystemMessageEvent.GROUP_CREATED, {"title": title})
            for member in members:
                MessageService._create_system_message(
                    conversation,
                    SystemMessageEvent.PARTICIPANT_ADDED,
                    {"user_id": member.id, "added_by_id": creator.id},
                )

        cls.get_logger().info(
            f"Created group {conversation.id} '{title}' with {1 + len(members)} participants"
        )
        return ServiceResult.success(conversation)

    @classmethod
    def update_details(cls, conversation: Conversation, user: User, **changes: Any) -> ServiceResult[Conversation]:
        """
        Change group details (admins and owner).

        Unknown keys are ignored. Records a details_changed system message
        listing old and new values.

        Error codes:
            NOT_GROUP, NOT_PARTICIPANT, PERMISSION_DENIED
            TITLE_REQUIRED, INVALID_VISIBILITY
            INVALID_CAPACITY: below the current participant count
        """
        if conversation.is_direct:
            return ServiceResult.failure("Direct conversations have no details", error_code="NOT_GROUP")

        participant = conversation.get_active_participant_for_user(user)
        if participant is None:
            return _not_participant()
        if not participant.is_admin_or_owner:
            return ServiceResult.failure(
                "Only admins and owners can change group details",
                error_code="PERMISSION_DENIED",
            )

        changes = {key: value for key, value in changes.items() if key in GROUP_DETAIL_FIELDS}
        if "title" in changes:
            changes["title"] = (changes["title"] or "").strip()
            if not changes["title"]:
                return ServiceResult.failure("Group title cannot be empty", error_code="TITLE_REQUIRED")
        if "visibility" in changes and changes["visibility"] not in GroupVisibility.values:
            return ServiceResult.failure(
                f"Invalid visibility: {changes['visibility']}", error_code="INVALID_VISIBILITY"
            )
        capacity = changes.get("max_capacity")
        if capacity is not None and capacity < conversation.participant_count:
            return ServiceResult.failure(
                f"The group already has {conversation.participant_count} participants",
                error_code="INVALID_CAPACITY",
            )

        changed = {}
        for name, new in changes.items():
            old = getattr(conversation, name)
            if name in ("logo", "banner"):
                old_repr, new_repr = (old.name if old else None), (getattr(new, "name", None) or None)
            else:
                old_repr, new_repr = old, new
            if old_repr == new_repr and name not in ("logo", "banner"):
                continue
            setattr(conversation, name, new)
            changed[name] = {"old": old_repr, "new": new_repr}

        if not changed:
            return ServiceResult.success(conversation)

        with cls.atomic():
            conversation.save(update_fields=[*changed, "updated_at"])
            MessageService._create_system_message(
                conversation,
                SystemMessageEvent.DETAILS_CHANGED,
                {"changed_by_id": user.id, "fields": changed},
            )

        publish_to_conversation(
            conversation.id,
            "chat.conversation_updated",
            {"conversation_id": str(conversation.id), "fields": sorted(changed)},
        )
        cls.get_logger().info(f"User {user.id} changed {sorted(changed)} of group {conversation.id}")
        return ServiceResult.success(conversation)

    @classmethod
    def delete_conversation(cls, conversation: Conversation, user: User) -> ServiceResult[None]:
        """
        Soft delete a group (owner only).

        Error codes:
            NOT_GROUP: direct conversations are left, not deleted
            NOT_PARTICIPANT
            NOT_OWNER
        """
        if conversation.is_direct:
            return ServiceResult.failure(
                "Direct conversations cannot be deleted. Leave them instead.",
                error_code="NOT_GROUP",
            )
        participant = conversation.get_active_participant_for_user(user)
        if participant is None:
            return _not_participant()
        if not participant.is_owner:
            return ServiceResult.failure("Only the owner can delete this group", error_code="NOT_OWNER")

        conversation.soft_delete()
        publish_to_conversation(conversation.id, "chat.conversation_deleted", {"conversation_id": str(conversation.id)})
        cls.get_logger().info(f"User {user.id} deleted group {conversation.id}")
        return ServiceResult.success(None)

    @classmethod
    def user_conversations(cls, user: User) -> QuerySet[Conversation]:
        return (
            Conversation.objects.filter(participants__user=user, participants__left_at__isnull=True)
            .select_related("created_by")
            .prefetch_related("participants__user__profile")
            .distinct()
            .order_by(F("last_message_at").desc(nulls_last=True), "-created_at")
        )

    @classmethod
    def discover_groups(cls, user: User, search: str = "") -> QuerySet[Conversation]:
        """
        Public and private groups, annotated with ``is_member`` and
        ``has_pending_request`` for user.
        """
        groups = Conversation.objects.filter(conversation_type=ConversationType.GROUP).annotate(
            is_member=Exists(Participant.objects.filter(conversation=OuterRef("pk"), user=user, left_at__isnull=True)),
            has_pending_request=Exists(
                GroupJoinRequest.objects.filter(
                    conversation=OuterRef("pk"), user=user, status=JoinRequestStatus.PENDING
                )
            ),
        )
        search = (search or "").strip()
        if search:
            groups = groups.filter(
                Q(title__icontains=search)
                | Q(description__icontains=search)
                | Q(subject_category__icontains=search)
                | Q(purpose__icontains=search)
            )
        return groups.order_by("-participant_count", "title")


class ParticipantService(BaseService):
    """
    Membership management.

    Role rules:
        Owner: add/remove admins and members, change roles, transfer ownership
        Admin: add/remove members
        Member: leave only
    """

    @classmethod
    def _join(cls, conversation: Conversation, user: User, role: str, added_by: User | None) -> Participant:
        """Create an active membership. Call inside a transaction."""
        participant = Participant.objects.create(conversation=conversation, user=user, role=role)
        Conversation.all_objects.filter(pk=conversation.pk).update(participant_count=F("participant_count") + 1)
        conversation.refresh_from_db(fields=["participant_count"])
        MessageService._create_system_message(
            conversation,
            SystemMessageEvent.PARTICIPANT_ADDED,
            {"user_id": user.id, "added_by_id": added_by.id if added_by else None},
        )
        _publish_membership(conversation, "added", user.id, role=role)
        return participant

    @classmethod
    def add_participant(
        cls,
        conversation: Conversation,
        user_to_add: User,
        added_by: User,
        role: str = ParticipantRole.MEMBER,
    ) -> ServiceResult[Participant]:
        """
        Error codes:
            NOT_GROUP, CANNOT_ADD_OWNER, NOT_PARTICIPANT, PERMISSION_DENIED
            ALREADY_PARTICIPANT, GROUP_FULL, BLOCKED, USER_SUSPENDED
        """
        from social.services import BlockService

        if conversation.is_direct:
            return ServiceResult.failure("Cannot add participants to direct conversations", error_code="NOT_GROUP")
        if role == ParticipantRole.OWNER:
            return ServiceResult.failure(
                "Cannot add someone as owner. Transfer ownership instead.",
                error_code="CANNOT_ADD_OWNER",
            )

        adder = conversation.get_active_participant_for_user(added_by)
        if adder is None:
            return _not_participant()
        if adder.is_member:
            return ServiceResult.failure("Members cannot add participants", error_code="PERMISSION_DENIED")
        if role == ParticipantRole.ADMIN and not adder.is_owner:
            return ServiceResult.failure("Only the owner can add admins", error_code="PERMISSION_DENIED")

        if conversation.get_active_participant_for_user(user_to_add):
            return ServiceResult.failure("User is already a participant", error_code="ALREADY_PARTICIPANT")
        if user_to_add.is_suspended:
            return ServiceResult.failure("Suspended users cannot be added", error_code="USER_SUSPENDED")
        if BlockService.is_blocked_between(added_by, user_to_add):
            return ServiceResult.failure("You cannot add this user", error_code="BLOCKED")
        if conversation.is_full:
            return ServiceResult.failure("This group is full", error_code="GROUP_FULL")

        with cls.atomic():
            participant = cls._join(conversation, user_to_add, role, added_by)

        cls.get_logger().info(
            f"User {added_by.id} added user {user_to_add.id} to {conversation.id} as {role}"
        )
        return ServiceResult.success(participant)

    @classmethod
    def _depart(
        cls,
        conversation: Conversation,
        participant: Participant,
        removed_by: User | None,
    ) -> None:
        """End a membership. Call inside a transaction."""
        participant.left_at = timezone.now()
        participant.left_voluntarily = removed_by is None
        participant.removed_by = removed_by
        participant.save(update_fields=["left_at", "left_voluntarily", "removed_by", "updated_at"])

        Conversation.all_objects.filter(pk=conversation.pk, participant_count__gt=0).update(
            participant_count=F("participant_count") - 1
        )
        conversation.refresh_from_db(fields=["participant_count"])

        MessageService._create_system_message(
            conversation,
            SystemMessageEvent.PARTICIPANT_REMOVED,
            {
                "user_id": participant.user_id,
                "removed_by_id": removed_by.id if removed_by else None,
                "reason": "left" if removed_by is None else "removed",
            },
        )
        _publish_membership(conversation, "left" if removed_by is None else "removed", participant.user_id)

    @classmethod
    def remove_participant(
        cls,
        conversation: Conversation,
        user_to_remove: User,
        removed_by: User,
    ) -> ServiceResult[None]:
        """
        Error codes:
            NOT_GROUP, CANNOT_REMOVE_SELF, NOT_PARTICIPANT,
            PARTICIPANT_NOT_FOUND, CANNOT_REMOVE_OWNER, PERMISSION_DENIED
        """
        if conversation.is_direct:
            return ServiceResult.failure(
                "Cannot remove participants from direct conversations",
                error_code="NOT_GROUP",
            )
        if user_to_remove.pk == removed_by.pk:
            return ServiceResult.failure("Leave the group instead", error_code="CANNOT_REMOVE_SELF")

        remover = conversation.get_active_participant_for_user(removed_by)
        if remover is None:
            return _not_participant()
        target = conversation.get_active_participant_for_user(user_to_remove)
        if target is None:
            return ServiceResult.failure(
                "User is not an active participant",
                error_code="PARTICIPANT_NOT_FOUND",
            )
        if target.is_owner:
            return ServiceResult.failure(
                "Cannot remove the owner. Transfer ownership first.",
                error_code="CANNOT_REMOVE_OWNER",
            )
        if remover.is_member or (remover.is_admin and target.is_admin):
            return ServiceResult.failure("You cannot remove this participant", error_code="PERMISSION_DENIED")

        with cls.atomic():
            cls._depart(conversation, target, removed_by)

        cls.get_logger().info(
            f"User {removed_by.id} removed user {user_to_remove.id} from {conversation.id}"
        )
        return ServiceResult.success(None)

    @classmethod
    def leave(cls, conversation: Conversation, user: User) -> ServiceResult[None]:
        """
        Leave a conversation.

        A departing group owner hands ownership to the oldest admin, else
        the oldest member. A conversation nobody is left in is soft deleted.
        """
        participant = conversation.get_active_participant_for_user(user)
        if participant is None:
            return _not_participant()

        with cls.atomic():
            if conversation.is_group and participant.is_owner:
                cls._transfer_ownership_on_departure(conversation, user)
            cls._depart(conversation, participant, removed_by=None)

            if not conversation.get_active_participants().exists():
                conversation.soft_delete()
                cls.get_logger().info(f"Soft deleted conversation {conversation.id} (no participants left)")

        cls.get_logger().info(f"User {user.id} left conversation {conversation.id}")
        return ServiceResult.success(None)

    @classmethod
    def change_role(
        cls,
        conversation: Conversation,
        user_to_change: User,
        new_role: str,
        changed_by: User,
    ) -> ServiceResult[Participant]:
        """
        Promote to admin or demote to member (owner only).

        Error codes:
            NOT_GROUP, INVALID_ROLE, NOT_PARTICIPANT, PARTICIPANT_NOT_FOUND,
            NOT_OWNER, CANNOT_CHANGE_OWNER_ROLE
        """
        if conversation.is_direct:
            return ServiceResult.failure("Direct conversations do not have roles", error_code="NOT_GROUP")
        if new_role not in (ParticipantRole.ADMIN, ParticipantRole.MEMBER):
            return ServiceResult.failure(
                "Role must be admin or member. Transfer ownership to change the owner.",
                error_code="INVALID_ROLE",
            )

        changer = conversation.get_active_participant_for_user(changed_by)
        if changer is None:
            return _not_participant()
        target = conversation.get_active_participant_for_user(user_to_change)
        if target is None:
            return ServiceResult.failure(
                "User is not an active participant",
                error_code="PARTICIPANT_NOT_FOUND",
            )
        if not changer.is_owner:
            return ServiceResult.failure("Only the owner can change roles", error_code="NOT_OWNER")
        if target.is_owner:
            return ServiceResult.failure(
                "Cannot change the owner's role. Transfer ownership instead.",
                error_code="CANNOT_CHANGE_OWNER_ROLE",
            )

        old_role = target.role
        if old_role == new_role:
            return ServiceResult.success(target)

        with cls.atomic():
            target.role = new_role
            target.save(update_fields=["role", "updated_at"])
            MessageService._create_system_message(
                conversation,
                SystemMessageEvent.ROLE_CHANGED,
                {
                    "user_id": user_to_change.id,
                    "old_role": old_role,
                    "new_role": new_role,
                    "changed_by_id": changed_by.id,
                },
            )

        _publish_membership(conversation, "role_changed", user_to_change.id, role=new_role)
        cls.get_logger().info(
            f"User {changed_by.id} changed role of {user_to_change.id} in {conversation.id}: {old_role} -> {new_role}"
        )
        return ServiceResult.success(target)

    @classmethod
    def transfer_ownership(
        cls,
        conversation: Conversation,
        new_owner: User,
        current_owner: User,
    ) -> ServiceResult[None]:
        """
        Hand ownership to another participant. The old owner becomes admin.

        Error codes:
            NOT_GROUP, SAME_USER, NOT_PARTICIPANT, NOT_OWNER, PARTICIPANT_NOT_FOUND
        """
        if conversation.is_direct:
            return ServiceResult.failure("Direct conversations do not have owners", error_code="NOT_GROUP")
        if new_owner.pk == current_owner.pk:
            return ServiceResult.failure("You already own this group", error_code="SAME_USER")

        current = conversation.get_active_participant_for_user(current_owner)
        if current is None:
            return _not_participant()
        if not current.is_owner:
            return ServiceResult.failure("Only the owner can transfer ownership", error_code="NOT_OWNER")
        successor = conversation.get_active_participant_for_user(new_owner)
        if successor is None:
            return ServiceResult.failure(
                "The new owner must be an active participant",
                error_code="PARTICIPANT_NOT_FOUND",
            )

        with cls.atomic():
            current.role = ParticipantRole.ADMIN
            current.save(update_fields=["role", "updated_at"])
            successor.role = ParticipantRole.OWNER
            successor.save(update_fields=["role", "updated_at"])
            MessageService._create_system_message(
                conversation,
                SystemMessageEvent.OWNERSHIP_TRANSFERRED,
                {"from_user_id": current_owner.id, "to_user_id": new_owner.id, "reason": "manual"},
            )

        _publish_membership(conversation, "ownership_transferred", new_owner.id, previous_owner_id=current_owner.id)
        cls.get_logger().info(
            f"Ownership of {conversation.id} moved from {current_owner.id} to {new_owner.id}"
        )
        return ServiceResult.success(None)

    @classmethod
    def _transfer_ownership_on_departure(cls, conversation: Conversation, departing_owner: User) -> User | None:
        """
        Pick the oldest admin, else the oldest member, as the new owner.

        Returns None when nobody else is left. Call inside a transaction.
        """
        candidates = (
            conversation.get_active_participants()
            .exclude(user=departing_owner)
            .select_related("user")
            .order_by("joined_at", "id")
        )
        successor = (
            candidates.filter(role=ParticipantRole.ADMIN).first()
            or candidates.filter(role=ParticipantRole.MEMBER).first()
        )
        if successor is None:
            return None

        successor.role = ParticipantRole.OWNER
        successor.save(update_fields=["role", "updated_at"])
        MessageService._create_system_message(
            conversation,
            SystemMessageEvent.OWNERSHIP_TRANSFERRED,
            {"from_user_id": departing_owner.id, "to_user_id": successor.user_id, "reason": "departure"},
        )
        cls.get_logger().info(
            f"Ownership of {conversation.id} passed to {successor.user_id} after owner left"
        )
        return successor.user


class JoinRequestService(BaseService):
    """
    Joining groups.

    Public groups are joined immediately. Private groups queue a
    GroupJoinRequest that an admin or the owner approves or rejects.
    """

    @classmethod
    def request_to_join(
        cls,
        conversation: Conversation,
        user: User,
        academic_year: str = "",
        major: str = "",
        interest_statement: str = "",
    ) -> ServiceResult[dict]:
        """
        Join a public group or ask to join a private one.

        Returns:
            ServiceResult with {"joined": bool, "participant", "request"}

        Error codes:
            NOT_GROUP, USER_SUSPENDED, ALREADY_MEMBER, GROUP_FULL, REQUEST_PENDING
        """
        if conversation.is_direct:
            return ServiceResult.failure("Direct conversations cannot be joined", error_code="NOT_GROUP")
        if user.is_suspended:
            return ServiceResult.failure("Suspended accounts cannot join groups", error_code="USER_SUSPENDED")
        if conversation.get_active_participant_for_user(user):
            return ServiceResult.failure("You are already a member of this group", error_code="ALREADY_MEMBER")
        if conversation.is_full:
            return ServiceResult.failure("This group is full", error_code="GROUP_FULL")

        if conversation.visibility == GroupVisibility.PUBLIC:
            with cls.atomic():
                participant = ParticipantService._join(conversation, user, ParticipantRole.MEMBER, added_by=None)
            cls.get_logger().info(f"User {user.id} joined public group {conversation.id}")
            return ServiceResult.success({"joined": True, "participant": participant, "request": None})

        try:
            with cls.atomic():
                join_request = GroupJoinRequest.objects.create(
                    conversation=conversation,
                    user=user,
                    academic_year=academic_year.strip(),
                    major=major.strip(),
                    interest_statement=interest_statement.strip(),
                )
        except IntegrityError:
            return ServiceResult.failure(
                "You already have a pending request for this group",
                error_code="REQUEST_PENDING",
            )

        admins = [
            p.user
            for p in conversation.get_active_participants()
            .filter(role__in=[ParticipantRole.OWNER, ParticipantRole.ADMIN])
            .select_related("user")
        ]
        join_requested.send(sender=GroupJoinRequest, join_request=join_request, admins=admins)
        cls.get_logger().info(f"User {user.id} requested to join group {conversation.id}")
        return ServiceResult.success({"joined": False, "participant": None, "request": join_request})

    @classmethod
    def _check_reviewer(cls, join_request: GroupJoinRequest, reviewer: User) -> ServiceResult | None:
        participant = join_request.conversation.get_active_participant_for_user(reviewer)
        if participant is None or not participant.is_admin_or_owner:
            return ServiceResult.failure("Only group admins can review requests", error_code="NOT_ADMIN")
        if join_request.status != JoinRequestStatus.PENDING:
            return ServiceResult.failure("This request was already reviewed", error_code="NOT_PENDING")
        return None

    @classmethod
    def approve(cls, join_request: GroupJoinRequest, reviewer: User) -> ServiceResult[GroupJoinRequest]:
        """
        Error codes:
            NOT_ADMIN, NOT_PENDING, GROUP_FULL
        """
        failure = cls._check_reviewer(join_request, reviewer)
        if failure is not None:
            return failure

        conversation = join_request.conversation
        already_member = conversation.get_active_participant_for_user(join_request.user) is not None
        if not already_member and conversation.is_full:
            return ServiceResult.failure("This group is full", error_code="GROUP_FULL")

        with cls.atomic():
            join_request.status = JoinRequestStatus.APPROVED
            join_request.reviewed_by = reviewer
            join_request.reviewed_at = timezone.now()
            join_request.save(update_fields=["status", "reviewed_by", "reviewed_at", "updated_at"])
            if not already_member:
                ParticipantService._join(conversation, join_request.user, ParticipantRole.MEMBER, added_by=reviewer)

        join_request_reviewed.send(sender=GroupJoinRequest, join_request=join_request, approved=True)
        cls.get_logger().info(f"User {reviewer.id} approved join request {join_request.id}")
        return ServiceResult.success(join_request)

    @classmethod
    def reject(cls, join_request: GroupJoinRequest, reviewer: User) -> ServiceResult[GroupJoinRequest]:
        failure = cls._check_reviewer(join_request, reviewer)
        if failure is not None:
            return failure

        join_request.status = JoinRequestStatus.REJECTED
        join_request.reviewed_by = reviewer
        join_request.reviewed_at = timezone.now()
        join_request.save(update_fields=["status", "reviewed_by", "reviewed_at", "updated_at"])

        join_request_reviewed.send(sender=GroupJoinRequest, join_request=join_request, approved=False)
        cls.get_logger().info(f"User {reviewer.id} rejected join request {join_request.id}")
        return ServiceResult.success(join_request)

    @classmethod
    def pending_requests(cls, conversation: Conversation, user: User) -> ServiceResult[QuerySet[GroupJoinRequest]]:
        participant = conversation.get_active_participant_for_user(user)
        if participant is None or not participant.is_admin_or_owner:
            return ServiceResult.failure("Only group admins can review requests", error_code="NOT_ADMIN")
        return ServiceResult.success(
            conversation.join_requests.filter(status=JoinRequestStatus.PENDING).select_related("user__profile")
        )


class GroupRuleService(BaseService):
    @classmethod
    def list_rules(cls, conversation: Conversation) -> QuerySet[GroupRule]:
        return conversation.rules.all()

    @classmethod
    def add_rule(cls, conversation: Conversation, user: User, text: str) -> ServiceResult[GroupRule]:
        """
        Append a rule (admins and owner).

        Error codes:
            NOT_GROUP, PERMISSION_DENIED, VALIDATION_ERROR, TOO_MANY_RULES
        """
        if conversation.is_direct:
            return ServiceResult.failure("Direct conversations have no rules", error_code="NOT_GROUP")
        participant = conversation.get_active_participant_for_user(user)
        if participant is None or not participant.is_admin_or_owner:
            return ServiceResult.failure("Only admins can manage rules", error_code="PERMISSION_DENIED")

        text = (text or "").strip()
        missing = cls.validate_required(text=text)
        if missing is not None:
            return missing
        if conversation.rules.count() >= GROUP_CONFIG.MAX_RULES:
            return ServiceResult.failure(
                f"A group can have at most {GROUP_CONFIG.MAX_RULES} rules",
                error_code="TOO_MANY_RULES",
            )

        last = conversation.rules.aggregate(last=Max("position"))["last"]
        rule = GroupRule.objects.create(
            conversation=conversation,
            text=text,
            position=0 if last is None else last + 1,
        )
        return ServiceResult.success(rule)

    @classmethod
    def remove_rule(cls, rule: GroupRule, user: User) -> ServiceResult[None]:
        participant = rule.conversation.get_active_participant_for_user(user)
        if participant is None or not participant.is_admin_or_owner:
            return ServiceResult.failure("Only admins can manage rules", error_code="PERMISSION_DENIED")
        rule.delete()
        return ServiceResult.success(None)


class MessageService(BaseService):
    """
    Message operations.

    Methods:
        send_message: Send a text message with optional attachments
        delete_message: Soft delete (sender, or group admin/owner)
        list_messages: History of a conversation, oldest first
        messages_since: Messages created after a timestamp (websocket sync)
        shared_attachments: Files exchanged with everyone or one person
    """

    @classmethod
    def send_message(
        cls,
        conversation: Conversation,
        sender: User,
        content: str = "",
        parent_id=None,
        attachments: Iterable = (),
        link: str = "",
        client_id: str | None = None,
    ) -> ServiceResult[Message]:
        """
        Send a message.

        Replies to replies are attached to the root message. Sending with
        a client_id already used by this sender in this conversation
        returns the original message.

        Error codes:
            CONVERSATION_DELETED, USER_SUSPENDED, NOT_PARTICIPANT
            EMPTY_CONTENT, CONTENT_TOO_LONG, TOO_MANY_FILES
            UNSUPPORTED_MEDIA / FILE_TOO_LARGE
            BLOCKED: direct conversation with a blocked pair
            INVALID_PARENT
        """
        from social.services import BlockService

        if conversation.is_deleted:
            return ServiceResult.failure(
                "Cannot send messages to a deleted conversation",
                error_code="CONVERSATION_DELETED",
            )
        if sender.is_suspended:
            return ServiceResult.failure("Suspended accounts cannot send messages", error_code="USER_SUSPENDED")
        if conversation.get_active_participant_for_user(sender) is None:
            return _not_participant()

        client_id = (client_id or "").strip() or None
        if client_id:
            existing = Message.objects.filter(conversation=conversation, sender=sender, client_id=client_id).first()
            if existing is not None:
                return ServiceResult.success(existing)

        content = (content or "").strip()
        attachments = list(attachments)
        if not content and not attachments:
            return ServiceResult.failure("Message content cannot be empty", error_code="EMPTY_CONTENT")
        if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            return ServiceResult.failure(
                f"Messages are limited to {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
            )
        if len(attachments) > MESSAGE_CONFIG.MAX_ATTACHMENTS_PER_MESSAGE:
            return ServiceResult.failure(
                f"At most {MESSAGE_CONFIG.MAX_ATTACHMENTS_PER_MESSAGE} attachments per message",
                error_code="TOO_MANY_FILES",
            )
        media_types = []
        for upload in attachments:
            try:
                media_types.append(validate_media_file(upload))
            except DjangoValidationError as e:
                return ServiceResult.failure(e.messages[0], error_code=getattr(e, "code", None) or "VALIDATION_ERROR")

        recipients = [
            p.user for p in conversation.get_active_participants().exclude(user=sender).select_related("user")
        ]
        if conversation.is_direct and any(BlockService.is_blocked_between(sender, other) for other in recipients):
            return ServiceResult.failure("You cannot message this user", error_code="BLOCKED")

        parent = None
        if parent_id:
            try:
                parent = Message.objects.filter(pk=parent_id, conversation=conversation).first()
            except (ValueError, DjangoValidationError):
                parent = None
            if parent is None:
                return ServiceResult.failure("Parent message not found in this conversation", error_code="INVALID_PARENT")
            if parent.parent_message_id:
                parent = parent.parent_message

        try:
            with cls.atomic():
                message = Message.objects.create(
                    conversation=conversation,
                    sender=sender,
                    message_type=MessageType.TEXT,
                    content=content,
                    link=(link or "").strip(),
                    parent_message=parent,
                    client_id=client_id,
                )
                for position, (upload, media_type) in enumerate(zip(attachments, media_types)):
                    MessageAttachment.objects.create(
                        message=message, file=upload, media_type=media_type, position=position
                    )
                Conversation.all_objects.filter(pk=conversation.pk).update(last_message_at=message.created_at)
                conversation.last_message_at = message.created_at
                if parent is not None:
                    Message.objects.filter(pk=parent.pk).update(reply_count=F("reply_count") + 1)
        except IntegrityError:
            # Concurrent send with the same client_id
            existing = Message.objects.filter(conversation=conversation, sender=sender, client_id=client_id).first()
            if existing is None:
                raise
            return ServiceResult.success(existing)

        cls._publish_message(message)
        message_sent.send(sender=Message, message=message, recipients=recipients)
        cls.get_logger().debug(f"User {sender.id} sent message {message.id} to {conversation.id}")
        return ServiceResult.success(message)

    @classmethod
    def _publish_message(cls, message: Message) -> None:
        from chat.serializers import MessageSerializer

        publish_to_conversation(message.conversation_id, "chat.message", {"message": MessageSerializer(message).data})

    @classmethod
    def delete_message(cls, message: Message, user: User) -> ServiceResult[None]:
        """
        Error codes:
            SYSTEM_MESSAGE, ALREADY_DELETED, NOT_PARTICIPANT, PERMISSION_DENIED
        """
        conversation = message.conversation
        if message.is_system_message:
            return ServiceResult.failure("Cannot delete system messages", error_code="SYSTEM_MESSAGE")
        if message.is_deleted:
            return ServiceResult.failure("Message is already deleted", error_code="ALREADY_DELETED")

        participant = conversation.get_active_participant_for_user(user)
        if participant is None:
            return _not_participant()
        is_moderating = conversation.is_group and participant.is_admin_or_owner
        if message.sender_id != user.pk and not is_moderating:
            return ServiceResult.failure("You can only delete your own messages", error_code="PERMISSION_DENIED")

        message.soft_delete()
        publish_to_conversation(
            conversation.id,
            "chat.message_deleted",
            {
                "message_id": str(message.id),
                "conversation_id": str(conversation.id),
                "sender_id": message.sender_id,
                "created_at": message.created_at.isoformat(),
            },
        )
        cls.get_logger().info(f"User {user.id} deleted message {message.id} in {conversation.id}")
        return ServiceResult.success(None)

    @classmethod
    def list_messages(cls, conversation: Conversation) -> QuerySet[Message]:
        return (
            Message.objects.filter(conversation=conversation)
            .select_related("sender__profile", "parent_message")
            .prefetch_related("attachments", "reactions")
            .order_by("created_at", "id")
        )

    @classmethod
    def messages_since(cls, conversation: Conversation, since, limit: int = MESSAGE_CONFIG.SYNC_MAX_MESSAGES):
        """Messages created after ``since`` (all when None), oldest first."""
        messages = cls.list_messages(conversation)
        if since is not None:
            messages = messages.filter(created_at__gt=since)
        return list(messages[:limit])

    @classmethod
    def shared_attachments(cls, user: User, other_user: User | None = None) -> QuerySet[MessageAttachment]:
        """
        Attachments in conversations user is active in, newest first.

        With other_user, only the direct conversation between the two.
        Attachments of deleted messages are left out.
        """
        attachments = MessageAttachment.objects.filter(
            message__conversation__participants__user=user,
            message__conversation__participants__left_at__isnull=True,
            message__is_deleted=False,
        )
        if other_user is not None:
            lower, higher = sorted((user.pk, other_user.pk))
            attachments = attachments.filter(
                message__conversation__direct_pair__user_lower_id=lower,
                message__conversation__direct_pair__user_higher_id=higher,
            )
        return attachments.select_related("message__sender__profile").order_by(
            "-message__created_at", "position"
        )

    @classmethod
    def _create_system_message(cls, conversation: Conversation, event: str, data: dict) -> Message:
        """Record a system event. Call inside the caller's transaction."""
        message = Message.objects.create(
            conversation=conversation,
            sender=None,
            message_type=MessageType.SYSTEM,
            content=json.dumps({"event": event, "data": data}),
        )
        Conversation.all_objects.filter(pk=conversation.pk).update(last_message_at=message.created_at)
        conversation.last_message_at = message.created_at
        cls._publish_message(message)
        return message


class ReactionService(BaseService):
    """Emoji reactions on messages."""

    @classmethod
    def validate_emoji(cls, emoji: str) -> bool:
        """A short string of pictographic symbols, no letters or spaces."""
        emoji = (emoji or "").strip()
        if not emoji or len(emoji) > REACTION_CONFIG.MAX_EMOJI_LENGTH:
            return False
        if any(ch.isspace() or ("a" <= ch.lower() <= "z") for ch in emoji):
            return False
        return any(unicodedata.category(ch) == "So" for ch in emoji)

    @classmethod
    def summary(cls, message: Message) -> list[dict]:
        """[{"emoji", "count", "user_ids"}] in first-use order."""
        grouped: dict[str, list[int]] = {}
        for emoji, user_id in message.reactions.order_by("created_at").values_list("emoji", "user_id"):
            grouped.setdefault(emoji, []).append(user_id)
        return [{"emoji": emoji, "count": len(users), "user_ids": users} for emoji, users in grouped.items()]

    @classmethod
    def toggle_reaction(cls, message: Message, user: User, emoji: str) -> ServiceResult[dict]:
        """
        Add the reaction, or remove it if present.

        Returns:
            ServiceResult with {"added": bool, "emoji", "reactions": summary}

        Error codes:
            INVALID_EMOJI, MESSAGE_DELETED, NOT_PARTICIPANT
            MAX_REACTIONS_EXCEEDED: per-user limit on this message
            TOO_MANY_REACTIONS: distinct emoji limit on this message
        """
        emoji = (emoji or "").strip()
        if not cls.validate_emoji(emoji):
            return ServiceResult.failure("Invalid emoji", error_code="INVALID_EMOJI")
        if message.is_deleted:
            return ServiceResult.failure("Cannot react to deleted messages", error_code="MESSAGE_DELETED")
        if message.conversation.get_active_participant_for_user(user) is None:
            return _not_participant()

        deleted, _ = MessageReaction.objects.filter(message=message, user=user, emoji=emoji).delete()
        added = not deleted
        if added:
            if message.reactions.filter(user=user).count() >= REACTION_CONFIG.MAX_USER_REACTIONS_PER_MESSAGE:
                return ServiceResult.failure(
                    f"At most {REACTION_CONFIG.MAX_USER_REACTIONS_PER_MESSAGE} reactions per message",
                    error_code="MAX_REACTIONS_EXCEEDED",
                )
            distinct = set(message.reactions.values_list("emoji", flat=True))
            if emoji not in distinct and len(distinct) >= REACTION_CONFIG.MAX_REACTIONS_PER_MESSAGE:
                return ServiceResult.failure(
                    "This message has too many different reactions",
                    error_code="TOO_MANY_REACTIONS",
                )
            try:
                with cls.atomic():
                    MessageReaction.objects.create(message=message, user=user, emoji=emoji)
            except IntegrityError:
                pass

        reactions = cls.summary(message)
        publish_to_conversation(
            message.conversation_id,
            "chat.reaction",
            {
                "message_id": str(message.id),
                "user_id": user.id,
                "emoji": emoji,
                "added": added,
                "reactions": reactions,
            },
        )
        return ServiceResult.success({"added": added, "emoji": emoji, "reactions": reactions})
