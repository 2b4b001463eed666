"""
Social graph services.

Services:
    ConnectionService: request, respond, remove, list connections
    FollowService: follow, unfollow, followers/following
    BlockService: block, unblock, symmetric block checks
    HobbyService: browse hobbies and replace a member's hobby list

Related files:
    - models.py: Connection, Follow, Block, Hobby, UserHobby
    - signals.py: connection_requested, connection_accepted, user_followed
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from django.db import IntegrityError
from django.db.models import Q
from django.utils import timezone

from core.services import BaseService, ServiceResult
from social.models import Block, Connection, ConnectionStatus, Follow, Hobby, UserHobby
from social.signals import connection_accepted, connection_requested, user_followed

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User

logger = logging.getLogger(__name__)


def _pair_q(a: User, b: User, first: str, second: str) -> Q:
    return Q(**{first: a, second: b}) | Q(**{first: b, second: a})


class BlockService(BaseService):
    """Blocking. Every other app asks this service before showing content."""

    @classmethod
    def is_blocked_between(cls, a: User, b: User) -> bool:
        """True when either member has blocked the other."""
        if not (a and b) or not a.is_authenticated or not b.is_authenticated or a.pk == b.pk:
            return False
        return Block.objects.filter(_pair_q(a, b, "blocker", "blocked")).exists()

    @classmethod
    def has_blocked(cls, blocker: User, blocked: User) -> bool:
        return Block.objects.filter(blocker=blocker, blocked=blocked).exists()

    @classmethod
    def blocked_user_ids(cls, user: User) -> set[int]:
        """Ids of members hidden from user: blocked by them or blocking them."""
        if not user or not user.is_authenticated:
            return set()
        rows = Block.objects.filter(Q(blocker=user) | Q(blocked=user)).values_list("blocker_id", "blocked_id")
        return {other for pair in rows for other in pair if other != user.pk}

    @classmethod
    def block(cls, blocker: User, blocked: User, reason: str = "") -> ServiceResult[Block]:
        """
        Block a member.

        Removes any connection and follows in both directions.

        Error codes:
            SAME_USER: cannot block yourself
            ALREADY_BLOCKED
        """
        if blocker.pk == blocked.pk:
            return ServiceResult.failure("You cannot block yourself", error_code="SAME_USER")
        if cls.has_blocked(blocker, blocked):
            return ServiceResult.failure("User is already blocked", error_code="ALREADY_BLOCKED")

        with cls.atomic():
            block = Block.objects.create(blocker=blocker, blocked=blocked, reason=reason)
            Connection.objects.filter(_pair_q(blocker, blocked, "requester", "recipient")).delete()
            Follow.objects.filter(_pair_q(blocker, blocked, "follower", "following")).delete()

        cls.get_logger().info(f"User {blocker.id} blocked user {blocked.id}")
        return ServiceResult.success(block)

    @classmethod
    def unblock(cls, blocker: User, blocked: User) -> ServiceResult[None]:
        deleted, _ = Block.objects.filter(blocker=blocker, blocked=blocked).delete()
        if not deleted:
            return ServiceResult.failure("User is not blocked", error_code="NOT_BLOCKED")
        cls.get_logger().info(f"User {blocker.id} unblocked user {blocked.id}")
        return ServiceResult.success(None)

    @classmethod
    def list_blocked(cls, user: User) -> QuerySet[Block]:
        return Block.objects.filter(blocker=user).select_related("blocked__profile")


class ConnectionService(BaseService):
    """Mutual connections."""

    @classmethod
    def get_between(cls, a: User, b: User) -> Connection | None:
        return Connection.objects.filter(_pair_q(a, b, "requester", "recipient")).first()

    @classmethod
    def are_connected(cls, a: User, b: User) -> bool:
        if a.pk == b.pk:
            return False
        return Connection.objects.filter(
            _pair_q(a, b, "requester", "recipient"),
            status=ConnectionStatus.ACCEPTED,
        ).exists()

    @classmethod
    def send_request(cls, requester: User, recipient: User) -> ServiceResult[Connection]:
        """
        Ask recipient to connect.

        A rejected request (in either direction) is reset to pending with
        requester as the new sender. When recipient already asked
        requester, that request is accepted instead.

        Error codes:
            SAME_USER
            BLOCKED: a block exists in either direction
            USER_SUSPENDED
            ALREADY_CONNECTED
            REQUEST_PENDING: requester already asked
        """
        if requester.pk == recipient.pk:
            return ServiceResult.failure("You cannot connect with yourself", error_code="SAME_USER")
        if BlockService.is_blocked_between(requester, recipient):
            return ServiceResult.failure("Cannot connect with this user", error_code="BLOCKED")
        if requester.is_suspended or recipient.is_suspended or not recipient.is_active:
            return ServiceResult.failure("This account is unavailable", error_code="USER_SUSPENDED")

        existing = cls.get_between(requester, recipient)
        if existing is not None:
            if existing.status == ConnectionStatus.ACCEPTED:
                return ServiceResult.failure("You are already connected", error_code="ALREADY_CONNECTED")
            if existing.status == ConnectionStatus.PENDING:
                if existing.requester_id == requester.pk:
                    return ServiceResult.failure("Connection request already sent", error_code="REQUEST_PENDING")
                return cls.respond(existing, requester, accept=True)

            existing.requester = requester
            existing.recipient = recipient
            existing.status = ConnectionStatus.PENDING
            existing.responded_at = None
            existing.save(update_fields=["requester", "recipient", "status", "responded_at", "updated_at"])
            connection = existing
        else:
            try:
                with cls.atomic():
                    connection = Connection.objects.create(requester=requester, recipient=recipient)
            except IntegrityError:
                return ServiceResult.failure("Connection request already sent", error_code="REQUEST_PENDING")

        connection_requested.send(sender=Connection, connection=connection)
        cls.get_logger().info(f"Connection requested: {requester.id} -> {recipient.id}")
        return ServiceResult.success(connection)

    @classmethod
    def respond(cls, connection: Connection, user: User, accept: bool) -> ServiceResult[Connection]:
        """
        Accept or reject a pending request.

        Error codes:
            NOT_RECIPIENT: only the recipient answers
            NOT_PENDING
        """
        if connection.recipient_id != user.pk:
            return ServiceResult.failure("Only the recipient can respond", error_code="NOT_RECIPIENT")
        if connection.status != ConnectionStatus.PENDING:
            return ServiceResult.failure("This request was already answered", error_code="NOT_PENDING")

        connection.status = ConnectionStatus.ACCEPTED if accept else ConnectionStatus.REJECTED
        connection.responded_at = timezone.now()
        connection.save(update_fields=["status", "responded_at", "updated_at"])

        if accept:
            connection_accepted.send(sender=Connection, connection=connection)
        cls.get_logger().info(f"Connection {connection.id} {connection.status} by user {user.id}")
        return ServiceResult.success(connection)

    @classmethod
    def remove(cls, connection: Connection, user: User) -> ServiceResult[None]:
        """Either party removes the connection (or withdraws a request)."""
        if not connection.involves(user):
            return ServiceResult.failure("Connection not found", error_code="NOT_FOUND")
        connection.delete()
        cls.get_logger().info(f"Connection {connection.pk} removed by user {user.id}")
        return ServiceResult.success(None)

    @classmethod
    def list_connections(cls, user: User) -> QuerySet[Connection]:
        return (
            Connection.objects.filter(Q(requester=user) | Q(recipient=user), status=ConnectionStatus.ACCEPTED)
            .select_related("requester__profile", "recipient__profile")
            .order_by("-responded_at")
        )

    @classmethod
    def pending_requests(cls, user: User) -> QuerySet[Connection]:
        """Requests waiting for user's answer."""
        return (
            Connection.objects.filter(recipient=user, status=ConnectionStatus.PENDING)
            .select_related("requester__profile", "recipient__profile")
            .order_by("-created_at")
        )

    @classmethod
    def sent_requests(cls, user: User) -> QuerySet[Connection]:
        return (
            Connection.objects.filter(requester=user, status=ConnectionStatus.PENDING)
            .select_related("requester__profile", "recipient__profile")
            .order_by("-created_at")
        )

    @classmethod
    def connection_ids(cls, user: User) -> set[int]:
        rows = Connection.objects.filter(
            Q(requester=user) | Q(recipient=user),
            status=ConnectionStatus.ACCEPTED,
        ).values_list("requester_id", "recipient_id")
        return {other for pair in rows for other in pair if other != user.pk}


class FollowService(BaseService):
    """One-way follows."""

    @classmethod
    def is_following(cls, follower: User, following: User) -> bool:
        return Follow.objects.filter(follower=follower, following=following).exists()

    @classmethod
    def follow(cls, follower: User, following: User) -> ServiceResult[Follow]:
        """
        Error codes:
            SAME_USER
            BLOCKED
            ALREADY_FOLLOWING
        """
        if follower.pk == following.pk:
            return ServiceResult.failure("You cannot follow yourself", error_code="SAME_USER")
        if BlockService.is_blocked_between(follower, following):
            return ServiceResult.failure("Cannot follow this user", error_code="BLOCKED")

        follow, created = Follow.objects.get_or_create(follower=follower, following=following)
        if not created:
            return ServiceResult.failure("You already follow this user", error_code="ALREADY_FOLLOWING")

        user_followed.send(sender=Follow, follower=follower, following=following)
        cls.get_logger().info(f"User {follower.id} followed user {following.id}")
        return ServiceResult.success(follow)

    @classmethod
    def unfollow(cls, follower: User, following: User) -> ServiceResult[None]:
        deleted, _ = Follow.objects.filter(follower=follower, following=following).delete()
        if not deleted:
            return ServiceResult.failure("You do not follow this user", error_code="NOT_FOLLOWING")
        return ServiceResult.success(None)

    @classmethod
    def followers(cls, user: User) -> QuerySet[Follow]:
        return Follow.objects.filter(following=user).select_related("follower__profile")

    @classmethod
    def following(cls, user: User) -> QuerySet[Follow]:
        return Follow.objects.filter(follower=user).select_related("following__profile")


class HobbyService(BaseService):
    """Hobby catalog and profile hobbies."""

    MAX_HOBBIES = 20

    @classmethod
    def browse(cls, category=None, search: str = "") -> QuerySet[Hobby]:
        hobbies = Hobby.objects.select_related("category")
        if category:
            hobbies = hobbies.filter(category=category)
        search = (search or "").strip()
        if search:
            hobbies = hobbies.filter(Q(name__icontains=search) | Q(description__icontains=search))
        return hobbies

    @classmethod
    def set_user_hobbies(cls, user: User, entries: Iterable[dict]) -> ServiceResult[list[UserHobby]]:
        """
        Replace user's hobbies.

        Args:
            entries: dicts with ``hobby`` (Hobby or id), optional
                ``is_favorite`` and ``priority`` (1-5)

        Error codes:
            VALIDATION_ERROR: duplicate hobby, bad priority or too many entries
            NOT_FOUND: unknown hobby id
        """
        entries = list(entries)
        if len(entries) > cls.MAX_HOBBIES:
            return ServiceResult.failure(
                f"At most {cls.MAX_HOBBIES} hobbies are allowed", error_code="VALIDATION_ERROR"
            )

        hobby_ids = [getattr(entry["hobby"], "pk", entry["hobby"]) for entry in entries]
        if len(set(hobby_ids)) != len(hobby_ids):
            return ServiceResult.failure("Each hobby can only be listed once", error_code="VALIDATION_ERROR")

        hobbies = Hobby.objects.in_bulk(hobby_ids)
        if len(hobbies) != len(hobby_ids):
            return ServiceResult.failure("Unknown hobby", error_code="NOT_FOUND")

        rows = []
        for hobby_id, entry in zip(hobby_ids, entries):
            priority = entry.get("priority", 3)
            if not 1 <= int(priority) <= 5:
                return ServiceResult.failure("Priority must be between 1 and 5", error_code="VALIDATION_ERROR")
            rows.append(
                UserHobby(
                    user=user,
                    hobby=hobbies[hobby_id],
                    is_favorite=bool(entry.get("is_favorite", False)),
                    priority=int(priority),
                )
            )

        with cls.atomic():
            UserHobby.objects.filter(user=user).delete()
            UserHobby.objects.bulk_create(rows)

        cls.get_logger().info(f"User {user.id} set {len(rows)} hobbies")
        return ServiceResult.success(list(UserHobby.objects.filter(user=user).select_related("hobby__category")))
