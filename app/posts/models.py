"""
Feed models.

- Post: text and media published to the whole community
- PostMedia: ordered images and videos of a post
- Comment: flat comments under a post
- PostLike / SavedPost: per-user reactions and bookmarks
- Poll / PollOption / PollVote: an optional single-choice poll per post

Related files:
    - services.py: PostService, PollService
    - signals.py: post_liked, post_commented, post_pinned
"""

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.managers import SoftDeleteManager
from core.model_mixins import OrderableMixin, SoftDeleteMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel


class MediaType(models.TextChoices):
    IMAGE = "image", "Image"
    VIDEO = "video", "Video"


class Post(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    A feed post.

    like_count and comment_count are denormalized and kept in step by
    PostService with F() updates.
    """

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="posts",
    )
    content = models.TextField(blank=True, max_length=5000)
    formatted_content = models.JSONField(
        default=dict,
        blank=True,
        help_text="Rich text representation produced by the client editor",
    )

    is_pinned = models.BooleanField(default=False, db_index=True)
    pinned_at = models.DateTimeField(null=True, blank=True)
    pinned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    like_count = models.PositiveIntegerField(default=0)
    comment_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["-is_pinned", "-pinned_at", "-created_at"], name="post_feed_idx"),
        ]

    def __str__(self):
        return f"Post {self.id} by {self.author_id}"

    @property
    def link(self) -> str:
        return f"/posts/{self.id}"


class PostMedia(OrderableMixin, BaseModel):
    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="media")
    file = models.FileField(upload_to="posts/%Y/%m/")
    media_type = models.CharField(max_length=10, choices=MediaType.choices)

    class Meta:
        ordering = ["position"]
        verbose_name_plural = "post media"


class Comment(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    objects = SoftDeleteManager()
    all_objects = models.Manager()

    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="comments")
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="post_comments",
    )
    content = models.TextField(max_length=2000)

    class Meta:
        ordering = ["created_at"]

    def __str__(self):
        return f"Comment {self.id} on {self.post_id}"


class PostLike(BaseModel):
    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="likes")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="post_likes")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["post", "user"], name="unique_post_like"),
        ]


class SavedPost(BaseModel):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="saved_posts")
    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="saves")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "post"], name="unique_saved_post"),
        ]


class Poll(UUIDPrimaryKeyMixin, BaseModel):
    post = models.OneToOneField(Post, on_delete=models.CASCADE, related_name="poll")
    question = models.CharField(max_length=300)
    end_date = models.DateTimeField(null=True, blank=True, help_text="Voting closes at this time")

    def __str__(self):
        return self.question

    @property
    def is_ended(self) -> bool:
        return self.end_date is not None and self.end_date <= timezone.now()


class PollOption(OrderableMixin, BaseModel):
    poll = models.ForeignKey(Poll, on_delete=models.CASCADE, related_name="options")
    text = models.CharField(max_length=200)

    class Meta:
        ordering = ["position"]

    def __str__(self):
        return self.text


class PollVote(BaseModel):
    poll = models.ForeignKey(Poll, on_delete=models.CASCADE, related_name="votes")
    option = models.ForeignKey(PollOption, on_delete=models.CASCADE, related_name="votes")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="poll_votes")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["poll", "user"], name="one_vote_per_poll"),
        ]
