"""
Feed services.

Services:
    PostService: create, edit, delete, pin, feed, likes, comments, saves, shares
    PollService: voting and results

Related files:
    - models.py: Post, PostMedia, Comment, PostLike, SavedPost, Poll*
    - signals.py: post_liked, post_commented, post_pinned
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from django.db.models import Count, Exists, F, OuterRef
from django.utils import timezone

from authentication.services import RoleService
from core.services import BaseService, ServiceResult
from core.validators import validate_media_file
from posts.models import Comment, Poll, PollOption, PollVote, Post, PostLike, PostMedia, SavedPost
from posts.signals import post_commented, post_liked, post_pinned

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User

logger = logging.getLogger(__name__)

MIN_POLL_OPTIONS = 2
MAX_POLL_OPTIONS = 10


def _media_error(exc: DjangoValidationError) -> ServiceResult:
    code = getattr(exc, "code", None) or "VALIDATION_ERROR"
    return ServiceResult.failure(exc.messages[0], error_code=code)


class PostService(BaseService):
    """Posts and everything members do with them."""

    # ------------------------------------------------------------------
    # Authoring
    # ------------------------------------------------------------------

    @classmethod
    def create_post(
        cls,
        author: User,
        content: str = "",
        media_files: Iterable = (),
        poll: dict[str, Any] | None = None,
        formatted_content: dict | None = None,
    ) -> ServiceResult[Post]:
        """
        Publish a post.

        Args:
            author: Posting member
            content: Plain text body
            media_files: Uploaded images or videos, in display order
            poll: Optional {"question", "options", "end_date"}
            formatted_content: Rich text document from the editor

        Error codes:
            USER_SUSPENDED
            EMPTY_POST: no text and no media
            TOO_MANY_FILES
            UNSUPPORTED_MEDIA / FILE_TOO_LARGE
            INVALID_POLL
        """
        if author.is_suspended:
            return ServiceResult.failure("Suspended accounts cannot post", error_code="USER_SUSPENDED")

        content = (content or "").strip()
        media_files = list(media_files)
        if not content and not media_files:
            return ServiceResult.failure("A post needs text or media", error_code="EMPTY_POST")

        max_files = settings.MEDIA_MAX_FILES_PER_ITEM
        if len(media_files) > max_files:
            return ServiceResult.failure(f"At most {max_files} files per post", error_code="TOO_MANY_FILES")

        media_types = []
        for media_file in media_files:
            try:
                media_types.append(validate_media_file(media_file))
            except DjangoValidationError as e:
                return _media_error(e)

        poll_data = None
        if poll:
            poll_result = PollService.validate_poll(poll)
            if not poll_result.success:
                return poll_result
            poll_data = poll_result.data

        with cls.atomic():
            post = Post.objects.create(
                author=author,
                content=content,
                formatted_content=formatted_content or {},
            )
            for position, (media_file, media_type) in enumerate(zip(media_files, media_types)):
                PostMedia.objects.create(post=post, file=media_file, media_type=media_type, position=position)
            if poll_data:
                PollService.create_poll(post, **poll_data)

        cls.get_logger().info(
            f"Post {post.id} created by user {author.id}",
            extra={"media": len(media_files), "has_poll": bool(poll_data)},
        )
        return ServiceResult.success(post)

    @classmethod
    def update_post(
        cls,
        post: Post,
        user: User,
        content: str | None = None,
        formatted_content: dict | None = None,
    ) -> ServiceResult[Post]:
        if post.author_id != user.pk:
            return ServiceResult.failure("Only the author can edit this post", error_code="NOT_AUTHOR")

        update_fields = ["updated_at"]
        if content is not None:
            content = content.strip()
            if not content and not post.media.exists():
                return ServiceResult.failure("A post needs text or media", error_code="EMPTY_POST")
            post.content = content
            update_fields.append("content")
        if formatted_content is not None:
            post.formatted_content = formatted_content
            update_fields.append("formatted_content")

        post.save(update_fields=update_fields)
        return ServiceResult.success(post)

    @classmethod
    def delete_post(cls, post: Post, user: User) -> ServiceResult[None]:
        """Soft delete. Allowed for the author, teachers and admins."""
        if post.author_id != user.pk and not RoleService.can_teach(user):
            return ServiceResult.failure("You cannot delete this post", error_code="PERMISSION_DENIED")
        post.soft_delete()
        cls.get_logger().info(f"Post {post.id} deleted by user {user.id}")
        return ServiceResult.success(None)

    # ------------------------------------------------------------------
    # Pinning
    # ------------------------------------------------------------------

    @classmethod
    def pin_post(cls, post: Post, user: User) -> ServiceResult[Post]:
        if not RoleService.can_teach(user):
            return ServiceResult.failure(
                "Only teachers and administrators can pin posts", error_code="PERMISSION_DENIED"
            )
        if post.is_pinned:
            return ServiceResult.failure("Post is already pinned", error_code="ALREADY_PINNED")

        post.is_pinned = True
        post.pinned_at = timezone.now()
        post.pinned_by = user
        post.save(update_fields=["is_pinned", "pinned_at", "pinned_by", "updated_at"])

        if post.author_id != user.pk:
            post_pinned.send(sender=Post, post=post, pinned_by=user)
        cls.get_logger().info(f"Post {post.id} pinned by user {user.id}")
        return ServiceResult.success(post)

    @classmethod
    def unpin_post(cls, post: Post, user: User) -> ServiceResult[Post]:
        if not RoleService.can_teach(user):
            return ServiceResult.failure(
                "Only teachers and administrators can unpin posts", error_code="PERMISSION_DENIED"
            )
        if not post.is_pinned:
            return ServiceResult.failure("Post is not pinned", error_code="NOT_PINNED")

        post.is_pinned = False
        post.pinned_at = None
        post.pinned_by = None
        post.save(update_fields=["is_pinned", "pinned_at", "pinned_by", "updated_at"])
        return ServiceResult.success(post)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @classmethod
    def visible_posts(cls, viewer: User) -> QuerySet[Post]:
        """
        Posts viewer may see, annotated with is_liked and is_saved.

        Hides authors blocked in either direction and suspended authors.
        """
        from social.services import BlockService

        posts = (
            Post.objects.filter(author__is_active=True, author__profile__is_suspended=False)
            .select_related("author__profile", "author__class_leader_info", "poll")
            .prefetch_related("media")
            .annotate(
                is_liked=Exists(PostLike.objects.filter(post=OuterRef("pk"), user=viewer)),
                is_saved=Exists(SavedPost.objects.filter(post=OuterRef("pk"), user=viewer)),
            )
        )
        hidden = BlockService.blocked_user_ids(viewer)
        if hidden:
            posts = posts.exclude(author_id__in=hidden)
        return posts

    @classmethod
    def feed(cls, viewer: User, author: User | None = None) -> QuerySet[Post]:
        """Pinned posts first, most recently pinned first, then newest."""
        posts = cls.visible_posts(viewer)
        if author is not None:
            posts = posts.filter(author=author)
        return posts.order_by("-is_pinned", F("pinned_at").desc(nulls_last=True), "-created_at")

    @classmethod
    def saved_posts(cls, user: User) -> QuerySet[Post]:
        return cls.visible_posts(user).filter(saves__user=user).order_by("-saves__created_at")

    # ------------------------------------------------------------------
    # Likes, saves, comments
    # ------------------------------------------------------------------

    @classmethod
    def toggle_like(cls, post: Post, user: User) -> ServiceResult[dict]:
        """
        Like or unlike.

        Returns:
            {"liked": bool, "like_count": int}
        """
        with cls.atomic():
            deleted, _ = PostLike.objects.filter(post=post, user=user).delete()
            if deleted:
                Post.all_objects.filter(pk=post.pk, like_count__gt=0).update(like_count=F("like_count") - 1)
                liked = False
            else:
                try:
                    with cls.atomic():
                        PostLike.objects.create(post=post, user=user)
                except IntegrityError:
                    liked = True
                else:
                    Post.all_objects.filter(pk=post.pk).update(like_count=F("like_count") + 1)
                    liked = True
                    if post.author_id != user.pk:
                        post_liked.send(sender=Post, post=post, user=user)

        post.refresh_from_db(fields=["like_count"])
        return ServiceResult.success({"liked": liked, "like_count": post.like_count})

    @classmethod
    def toggle_save(cls, post: Post, user: User) -> ServiceResult[dict]:
        deleted, _ = SavedPost.objects.filter(post=post, user=user).delete()
        if not deleted:
            SavedPost.objects.get_or_create(post=post, user=user)
        return ServiceResult.success({"saved": not deleted})

    @classmethod
    def add_comment(cls, post: Post, user: User, content: str) -> ServiceResult[Comment]:
        """
        Error codes:
            USER_SUSPENDED
            VALIDATION_ERROR: empty content
            BLOCKED: post author and commenter blocked each other
        """
        from social.services import BlockService

        if user.is_suspended:
            return ServiceResult.failure("Suspended accounts cannot comment", error_code="USER_SUSPENDED")
        content = (content or "").strip()
        missing = cls.validate_required(content=content)
        if missing is not None:
            return missing
        if BlockService.is_blocked_between(user, post.author):
            return ServiceResult.failure("You cannot comment on this post", error_code="BLOCKED")

        with cls.atomic():
            comment = Comment.objects.create(post=post, author=user, content=content)
            Post.all_objects.filter(pk=post.pk).update(comment_count=F("comment_count") + 1)

        if post.author_id != user.pk:
            post_commented.send(sender=Post, post=post, comment=comment)
        return ServiceResult.success(comment)

    @classmethod
    def delete_comment(cls, comment: Comment, user: User) -> ServiceResult[None]:
        """Allowed for the comment author, the post author and moderators."""
        if user.pk not in (comment.author_id, comment.post.author_id) and not RoleService.can_moderate(user):
            return ServiceResult.failure("You cannot delete this comment", error_code="PERMISSION_DENIED")

        with cls.atomic():
            comment.soft_delete()
            Post.all_objects.filter(pk=comment.post_id, comment_count__gt=0).update(
                comment_count=F("comment_count") - 1
            )
        return ServiceResult.success(None)

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    @classmethod
    def share_post(cls, post: Post, sender: User, recipient: User, message: str = "") -> ServiceResult:
        """
        Send the post to recipient as a direct message.

        The message carries the post link so clients can render a preview.
        Direct-message rules (blocks, privacy, suspension) apply.
        """
        from chat.services import ConversationService, MessageService

        conversation_result = ConversationService.create_direct(sender, recipient)
        if not conversation_result.success:
            return conversation_result

        return MessageService.send_message(
            conversation=conversation_result.data,
            sender=sender,
            content=message.strip() or "Shared a post",
            link=post.link,
        )


class PollService(BaseService):
    """Polls attached to posts."""

    @classmethod
    def validate_poll(cls, poll: dict[str, Any]) -> ServiceResult[dict]:
        """
        Normalize poll input.

        Error codes:
            INVALID_POLL: missing question, wrong option count, duplicate
                options or an end date in the past
        """
        question = (poll.get("question") or "").strip()
        options = [str(option).strip() for option in poll.get("options") or []]
        options = [option for option in options if option]
        end_date: datetime | None = poll.get("end_date")

        if not question:
            return ServiceResult.failure("Poll question is required", error_code="INVALID_POLL")
        if not MIN_POLL_OPTIONS <= len(options) <= MAX_POLL_OPTIONS:
            return ServiceResult.failure(
                f"A poll needs {MIN_POLL_OPTIONS} to {MAX_POLL_OPTIONS} options", error_code="INVALID_POLL"
            )
        if len({option.lower() for option in options}) != len(options):
            return ServiceResult.failure("Poll options must be distinct", error_code="INVALID_POLL")
        if end_date is not None and end_date <= timezone.now():
            return ServiceResult.failure("Poll end date must be in the future", error_code="INVALID_POLL")

        return ServiceResult.success({"question": question, "options": options, "end_date": end_date})

    @classmethod
    def create_poll(cls, post: Post, question: str, options: list[str], end_date=None) -> Poll:
        poll = Poll.objects.create(post=post, question=question, end_date=end_date)
        PollOption.objects.bulk_create(
            PollOption(poll=poll, text=text, position=position) for position, text in enumerate(options)
        )
        return poll

    @classmethod
    def vote(cls, poll: Poll, user: User, option: PollOption | int) -> ServiceResult[PollVote]:
        """
        Cast user's single vote.

        Error codes:
            POLL_ENDED
            INVALID_OPTION: option does not belong to this poll
            ALREADY_VOTED
        """
        if poll.is_ended:
            return ServiceResult.failure("This poll has ended", error_code="POLL_ENDED")

        option_id = getattr(option, "pk", option)
        option = poll.options.filter(pk=option_id).first()
        if option is None:
            return ServiceResult.failure("Option does not belong to this poll", error_code="INVALID_OPTION")

        try:
            with cls.atomic():
                vote = PollVote.objects.create(poll=poll, option=option, user=user)
        except IntegrityError:
            return ServiceResult.failure("You have already voted", error_code="ALREADY_VOTED")

        cls.get_logger().info(f"User {user.id} voted on poll {poll.id}")
        return ServiceResult.success(vote)

    @classmethod
    def results(cls, poll: Poll, viewer: User | None = None) -> dict[str, Any]:
        """
        Per-option counts and percentages rounded to one decimal.

        Returns:
            {"poll_id", "question", "end_date", "is_ended", "total_votes",
             "user_vote", "options": [{"id", "text", "votes", "percentage"}]}
        """
        options = list(poll.options.annotate(vote_count=Count("votes")).order_by("position"))
        total = sum(option.vote_count for option in options)

        user_vote = None
        if viewer is not None and viewer.is_authenticated:
            user_vote = poll.votes.filter(user=viewer).values_list("option_id", flat=True).first()

        return {
            "poll_id": poll.id,
            "question": poll.question,
            "end_date": poll.end_date,
            "is_ended": poll.is_ended,
            "total_votes": total,
            "user_vote": user_vote,
            "options": [
                {
                    "id": option.id,
                    "text": option.text,
                    "votes": option.vote_count,
                    "percentage": round(option.vote_count * 100 / total, 1) if total else 0,
                }
                for option in options
            ],
        }
