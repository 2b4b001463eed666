"""
Social graph models.

- Connection: mutual, request-based relationship between two members
- Follow: one-way subscription to another member's activity
- Block: hides two members from each other everywhere
- HobbyCategory / Hobby / UserHobby: interests shown on profiles

Related files:
    - services.py: ConnectionService, FollowService, BlockService, HobbyService
    - signals.py: connection_requested, connection_accepted, user_followed
"""

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models.functions import Greatest, Least

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ConnectionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    REJECTED = "rejected", "Rejected"


class Connection(UUIDPrimaryKeyMixin, BaseModel):
    """
    Connection between two members.

    Requested by one side and accepted or rejected by the other. There is
    at most one row per unordered pair; a rejected request is reused when
    either side asks again.

    State Flow:
        PENDING -> ACCEPTED
        PENDING -> REJECTED -> PENDING (re-sent)
    """

    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="connections_sent",
        help_text="Member who sent the request",
    )
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="connections_received",
        help_text="Member who answers the request",
    )
    status = models.CharField(
        max_length=20,
        choices=ConnectionStatus.choices,
        default=ConnectionStatus.PENDING,
        db_index=True,
    )
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "connection"
        verbose_name_plural = "connections"
        constraints = [
            models.UniqueConstraint(
                Least("requester", "recipient"),
                Greatest("requester", "recipient"),
                name="unique_connection_pair",
            ),
            models.CheckConstraint(
                condition=~models.Q(requester=models.F("recipient")),
                name="connection_not_self",
            ),
        ]

    def __str__(self):
        return f"{self.requester_id} -> {self.recipient_id} ({self.status})"

    def other(self, user):
        """The member on the other side from user."""
        return self.recipient if self.requester_id == user.pk else self.requester

    def involves(self, user) -> bool:
        return user.pk in (self.requester_id, self.recipient_id)


class Follow(BaseModel):
    follower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="following_set",
    )
    following = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="follower_set",
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["follower", "following"], name="unique_follow"),
            models.CheckConstraint(
                condition=~models.Q(follower=models.F("following")),
                name="follow_not_self",
            ),
        ]

    def __str__(self):
        return f"{self.follower_id} follows {self.following_id}"


class Block(BaseModel):
    """
    One member blocking another.

    The effect is symmetric: neither side sees the other's posts,
    profile or messages. Only the blocker can lift it.
    """

    blocker = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="blocks_made",
    )
    blocked = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="blocks_received",
    )
    reason = models.CharField(max_length=255, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["blocker", "blocked"], name="unique_block"),
            models.CheckConstraint(
                condition=~models.Q(blocker=models.F("blocked")),
                name="block_not_self",
            ),
        ]

    def __str__(self):
        return f"{self.blocker_id} blocked {self.blocked_id}"


class TimeCommitment(models.TextChoices):
    LOW = "low", "A few hours a month"
    MEDIUM = "medium", "A few hours a week"
    HIGH = "high", "Most days"


class CostLevel(models.TextChoices):
    FREE = "free", "Free"
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"


class HobbyCategory(BaseModel):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    icon = models.CharField(max_length=50, blank=True, help_text="Icon name used by clients")

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "hobby categories"

    def __str__(self):
        return self.name


class Hobby(BaseModel):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    category = models.ForeignKey(
        HobbyCategory,
        on_delete=models.PROTECT,
        related_name="hobbies",
    )
    time_commitment = models.CharField(
        max_length=10,
        choices=TimeCommitment.choices,
        default=TimeCommitment.MEDIUM,
    )
    cost_level = models.CharField(
        max_length=10,
        choices=CostLevel.choices,
        default=CostLevel.LOW,
    )

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "hobbies"

    def __str__(self):
        return self.name


class UserHobby(BaseModel):
    """A hobby on a member's profile, ordered by priority (1 = highest)."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="user_hobbies",
    )
    hobby = models.ForeignKey(Hobby, on_delete=models.CASCADE, related_name="user_hobbies")
    is_favorite = models.BooleanField(default=False)
    priority = models.PositiveSmallIntegerField(
        default=3,
        validators=[MinValueValidator(1), MaxValueValidator(5)],
    )

    class Meta:
        ordering = ["priority", "hobby__name"]
        verbose_name_plural = "user hobbies"
        constraints = [
            models.UniqueConstraint(fields=["user", "hobby"], name="unique_user_hobby"),
            models.CheckConstraint(
                condition=models.Q(priority__gte=1, priority__lte=5),
                name="user_hobby_priority_range",
            ),
        ]

    def __str__(self):
        return f"{self.user_id}: {self.hobby}"
