"""
Tests for SoftDeleteMixin and SoftDeleteManager.

Announcement is used as the concrete soft-deletable model.
"""

import pytest
from django.utils import timezone

from planner.models import Announcement
from planner.tests.factories import AnnouncementFactory


@pytest.mark.django_db
class TestSoftDeleteMixin:
    def test_soft_delete_hides_row(self):
        announcement = AnnouncementFactory()
        before = timezone.now()

        announcement.soft_delete()

        announcement.refresh_from_db()
        assert announcement.is_deleted is True
        assert announcement.deleted_at >= before
        assert not Announcement.objects.filter(pk=announcement.pk).exists()
        assert Announcement.all_objects.filter(pk=announcement.pk).exists()

    def test_soft_delete_is_idempotent(self):
        announcement = AnnouncementFactory()
        announcement.soft_delete()
        first_deleted_at = announcement.deleted_at

        announcement.soft_delete()

        assert announcement.deleted_at == first_deleted_at

    def test_restore(self):
        announcement = AnnouncementFactory()
        announcement.soft_delete()

        announcement.restore()

        announcement.refresh_from_db()
        assert announcement.is_deleted is False
        assert announcement.deleted_at is None
        assert Announcement.objects.filter(pk=announcement.pk).exists()

    def test_hard_delete_removes_row(self):
        announcement = AnnouncementFactory()

        announcement.hard_delete()

        assert not Announcement.all_objects.filter(pk=announcement.pk).exists()


@pytest.mark.django_db
class TestSoftDeleteManager:
    def test_queryset_delete_is_soft(self):
        AnnouncementFactory.create_batch(3)

        count, per_model = Announcement.objects.all().delete()

        assert count == 3
        assert per_model == {"planner.Announcement": 3}
        assert Announcement.objects.count() == 0
        assert Announcement.objects.deleted().count() == 3

    def test_deleted_rows_are_not_counted_twice(self):
        first, _ = AnnouncementFactory.create_batch(2)
        first.soft_delete()

        count, _ = Announcement.objects.with_deleted().delete()

        assert count == 1

    def test_restore_queryset(self):
        announcements = AnnouncementFactory.create_batch(2)
        for announcement in announcements:
            announcement.soft_delete()

        restored = Announcement.objects.deleted().restore()

        assert restored == 2
        assert Announcement.objects.count() == 2

    def test_queryset_hard_delete(self):
        AnnouncementFactory.create_batch(2)

        Announcement.objects.with_deleted().hard_delete()

        assert Announcement.all_objects.count() == 0
