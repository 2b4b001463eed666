"""
Abstract mixins combined with BaseModel.

Available Mixins:
    UUIDPrimaryKeyMixin: UUID primary key
    SoftDeleteMixin: Recoverable deletion (is_deleted, deleted_at)
    OrderableMixin: Explicit position within a parent collection

Usage:
    class Post(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()
        all_objects = models.Manager()

Note:
    SoftDeleteMixin expects SoftDeleteManager as the default manager
    (see core.managers).
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a random UUID as primary key.

    Identifiers are exposed in URLs and WebSocket routes, so they must
    not leak record counts or creation order.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class SoftDeleteMixin(models.Model):
    """
    Mark records as deleted instead of removing them.

    Fields:
        is_deleted: Whether the record is hidden from default queries
        deleted_at: When the record was hidden

    Usage:
        post.soft_delete()
        Post.objects.filter(pk=post.pk).exists()      # False
        Post.all_objects.filter(pk=post.pk).exists()  # True
        post.restore()
    """

    is_deleted = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this record has been soft deleted",
    )
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp when this record was soft deleted",
    )

    class Meta:
        abstract = True

    def soft_delete(self) -> None:
        """Hide this record and stamp deleted_at."""
        if self.is_deleted:
            return
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.save(update_fields=["is_deleted", "deleted_at", "updated_at"])

    def restore(self) -> None:
        """Bring a soft-deleted record back."""
        if not self.is_deleted:
            return
        self.is_deleted = False
        self.deleted_at = None
        self.save(update_fields=["is_deleted", "deleted_at", "updated_at"])

    def hard_delete(self) -> None:
        """
        Remove the row from the database.

        Warning:
            Cascades like a regular delete and cannot be undone.
        """
        super().delete()


class OrderableMixin(models.Model):
    """
    Keep an explicit position for items attached to a parent.

    Used for post media, poll options, message attachments and group
    rules, where display order is chosen by the author.
    """

    position = models.PositiveSmallIntegerField(
        default=0,
        help_text="Display position, lower numbers first",
    )

    class Meta:
        abstract = True
        ordering = ["position"]
