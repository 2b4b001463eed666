"""
Planner models: personal to-dos, the school calendar and announcements.

Models:
    Todo: Private task of one member
    Event: Calendar event run by a teacher or admin, optionally recurring
    EventAttendee: A student's application to an event
    Announcement: School-wide announcement (soft delete)
    AnnouncementMedia: Image or video attached to an announcement
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.managers import SoftDeleteManager
from core.model_mixins import OrderableMixin, SoftDeleteMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel


class Priority(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"


class TodoStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    IN_PROGRESS = "in_progress", "In progress"
    COMPLETED = "completed", "Completed"


class RecurrencePattern(models.TextChoices):
    DAILY = "daily", "Daily"
    WEEKLY = "weekly", "Weekly"
    MONTHLY = "monthly", "Monthly"


class AttendeeStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    DECLINED = "declined", "Declined"


class Todo(UUIDPrimaryKeyMixin, BaseModel):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="todos",
    )
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    due_date = models.DateTimeField(null=True, blank=True, db_index=True)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.MEDIUM)
    status = models.CharField(max_length=20, choices=TodoStatus.choices, default=TodoStatus.PENDING, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["due_date", "-created_at"]
        indexes = [models.Index(fields=["user", "status"])]

    def __str__(self) -> str:
        return f"Todo({self.title!r}, {self.status})"


class Event(UUIDPrimaryKeyMixin, BaseModel):
    """
    A calendar event.

    A recurring event repeats its start/end times every period of
    ``recurrence_pattern`` until ``recurrence_end`` (inclusive, by date)
    or forever when it is null.
    """

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    location = models.CharField(max_length=200, blank=True)
    organizer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="organized_events",
    )
    max_attendees = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Confirmed attendees allowed, unlimited when empty",
    )

    is_recurring = models.BooleanField(default=False)
    recurrence_pattern = models.CharField(max_length=10, choices=RecurrencePattern.choices, blank=True)
    recurrence_end = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ["start_time"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F("start_time")),
                name="event_ends_after_start",
            ),
            models.CheckConstraint(
                condition=models.Q(is_recurring=False) | ~models.Q(recurrence_pattern=""),
                name="recurring_event_has_pattern",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.start_time:%Y-%m-%d %H:%M})"

    @property
    def duration(self):
        return self.end_time - self.start_time

    @property
    def link(self) -> str:
        return f"/calendar/{self.id}"


class EventAttendee(BaseModel):
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="attendees")
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="event_applications",
    )
    status = models.CharField(
        max_length=10,
        choices=AttendeeStatus.choices,
        default=AttendeeStatus.PENDING,
        db_index=True,
    )
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["event", "student"], name="unique_event_attendee"),
        ]

    def __str__(self) -> str:
        return f"{self.student_id} -> {self.event_id} ({self.status})"


class Announcement(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    objects = SoftDeleteManager()
    all_objects = models.Manager()

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="announcements",
    )
    title = models.CharField(max_length=200)
    content = models.TextField(max_length=10000)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.title

    @property
    def link(self) -> str:
        return f"/announcements/{self.id}"


class AnnouncementMedia(OrderableMixin, BaseModel):
    announcement = models.ForeignKey(Announcement, on_delete=models.CASCADE, related_name="media")
    file = models.FileField(upload_to="announcements/%Y/%m/")
    media_type = models.CharField(max_length=10)

    class Meta:
        ordering = ["position"]
        verbose_name_plural = "announcement media"
