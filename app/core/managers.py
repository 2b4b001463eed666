"""
QuerySet and Manager classes shared across apps.

- SoftDeleteQuerySet/SoftDeleteManager: hide soft-deleted rows by default

Usage:
    class Message(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()
        all_objects = models.Manager()

    Message.objects.filter(conversation=c).delete()   # soft
    Message.all_objects.filter(conversation=c).delete()  # real
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    """
    QuerySet whose delete() hides rows instead of removing them.

    The default filtering lives in SoftDeleteManager, so all_objects can
    reuse this QuerySet and still see deleted rows.
    """

    def delete(self) -> tuple[int, dict[str, int]]:
        """
        Soft delete every live row in the queryset.

        Returns:
            Tuple of (count, {model_label: count}) like QuerySet.delete()
        """
        count = self.filter(is_deleted=False).update(
            is_deleted=True,
            deleted_at=timezone.now(),
        )
        return count, {self.model._meta.label: count}

    def hard_delete(self) -> tuple[int, dict[str, int]]:
        """Permanently delete every row in the queryset."""
        return super().delete()

    def restore(self) -> int:
        """Undo soft deletion; returns the number of rows restored."""
        return self.filter(is_deleted=True).update(is_deleted=False, deleted_at=None)


class SoftDeleteManager(models.Manager):
    """
    Default manager for SoftDeleteMixin models.

    get_queryset() excludes deleted rows; deleted() and with_deleted()
    reach past the filter without a second manager.
    """

    def get_queryset(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db).filter(is_deleted=False)

    def deleted(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db).filter(is_deleted=True)

    def with_deleted(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db)
