"""
Planner services.

Services:
    TodoService: a member's private to-do list
    EventService: calendar events, applications and the calendar view
    AnnouncementService: school-wide announcements

Related files:
    - models.py: Todo, Event, EventAttendee, Announcement
    - recurrence.py: expansion of recurring events
    - signals.py: event_applied, event_application_reviewed
    - tasks.py: announcement fan-out
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import partial
from typing import TYPE_CHECKING, Any, Iterable

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Case, F, IntegerField, Q, Value, When
from django.utils import timezone

from authentication.services import RoleService
from core.services import BaseService, ServiceResult
from core.validators import validate_media_file
from planner.models import (
    Announcement,
    AnnouncementMedia,
    AttendeeStatus,
    Event,
    EventAttendee,
    Priority,
    RecurrencePattern,
    Todo,
    TodoStatus,
)
from planner.recurrence import occurrences
from planner.signals import event_application_reviewed, event_applied

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User

logger = logging.getLogger(__name__)

# Longest window the calendar endpoint expands in one call
MAX_CALENDAR_WINDOW = timedelta(days=366)

PRIORITY_RANK = Case(
    When(priority=Priority.HIGH, then=Value(0)),
    When(priority=Priority.MEDIUM, then=Value(1)),
    default=Value(2),
    output_field=IntegerField(),
)


# =============================================================================
# To-dos
# =============================================================================


class TodoService(BaseService):
    """Owner-only to-do list."""

    EDITABLE_FIELDS = ("title", "description", "due_date", "priority", "status")

    @classmethod
    def list_todos(cls, user: User, status: str | None = None, priority: str | None = None) -> QuerySet[Todo]:
        """Due date first (undated last), then high priority first."""
        todos = Todo.objects.filter(user=user)
        if status:
            todos = todos.filter(status=status)
        if priority:
            todos = todos.filter(priority=priority)
        return todos.annotate(priority_rank=PRIORITY_RANK).order_by(
            F("due_date").asc(nulls_last=True),
            "priority_rank",
            "-created_at",
        )

    @classmethod
    def _check_choices(cls, priority: str | None, status: str | None) -> ServiceResult | None:
        if priority is not None and priority not in Priority.values:
            return ServiceResult.failure(f"Unknown priority: {priority}", error_code="INVALID_PRIORITY")
        if status is not None and status not in TodoStatus.values:
            return ServiceResult.failure(f"Unknown status: {status}", error_code="INVALID_STATUS")
        return None

    @classmethod
    def create_todo(
        cls,
        user: User,
        title: str,
        description: str = "",
        due_date: datetime | None = None,
        priority: str = Priority.MEDIUM,
        status: str = TodoStatus.PENDING,
    ) -> ServiceResult[Todo]:
        missing = cls.validate_required(title=title)
        if missing is not None:
            return missing
        invalid = cls._check_choices(priority, status)
        if invalid is not None:
            return invalid

        todo = Todo.objects.create(
            user=user,
            title=title.strip(),
            description=description,
            due_date=due_date,
            priority=priority,
            status=status,
            completed_at=timezone.now() if status == TodoStatus.COMPLETED else None,
        )
        return ServiceResult.success(todo)

    @classmethod
    def update_todo(cls, todo: Todo, user: User, **changes: Any) -> ServiceResult[Todo]:
        """
        Apply changes to a to-do.

        Moving to completed stamps completed_at; leaving completed clears it.

        Error codes:
            NOT_OWNER, VALIDATION_ERROR, INVALID_PRIORITY, INVALID_STATUS
        """
        if todo.user_id != user.pk:
            return ServiceResult.failure("This is not your to-do", error_code="NOT_OWNER")
        changes = {key: value for key, value in changes.items() if key in cls.EDITABLE_FIELDS}
        if "title" in changes:
            missing = cls.validate_required(title=changes["title"])
            if missing is not None:
                return missing
            changes["title"] = changes["title"].strip()
        invalid = cls._check_choices(changes.get("priority"), changes.get("status"))
        if invalid is not None:
            return invalid

        new_status = changes.get("status", todo.status)
        if new_status == TodoStatus.COMPLETED and todo.status != TodoStatus.COMPLETED:
            changes["completed_at"] = timezone.now()
        elif new_status != TodoStatus.COMPLETED:
            changes["completed_at"] = None

        for field_name, value in changes.items():
            setattr(todo, field_name, value)
        todo.save(update_fields=[*changes, "updated_at"])
        return ServiceResult.success(todo)

    @classmethod
    def delete_todo(cls, todo: Todo, user: User) -> ServiceResult[None]:
        if todo.user_id != user.pk:
            return ServiceResult.failure("This is not your to-do", error_code="NOT_OWNER")
        todo.delete()
        return ServiceResult.success(None)


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class Occurrence:
    """One appearance of an event in the calendar."""

    event: Event
    occurrence_start: datetime
    occurrence_end: datetime
    attendance_status: str | None

    @property
    def event_id(self):
        return self.event.id


class EventService(BaseService):
    """
    The school calendar.

    Teachers and admins run events; students apply and the organizer
    confirms or declines each application.
    """

    EDITABLE_FIELDS = (
        "title",
        "description",
        "start_time",
        "end_time",
        "location",
        "max_attendees",
        "is_recurring",
        "recurrence_pattern",
        "recurrence_end",
    )

    @staticmethod
    def can_manage(event: Event, user: User) -> bool:
        return event.organizer_id == user.pk or RoleService.can_moderate(user)

    @classmethod
    def _validate_schedule(cls, values: dict) -> ServiceResult | None:
        if values["end_time"] <= values["start_time"]:
            return ServiceResult.failure("An event must end after it starts", error_code="INVALID_TIME_RANGE")
        max_attendees = values.get("max_attendees")
        if max_attendees is not None and max_attendees < 1:
            return ServiceResult.failure("max_attendees must be at least 1", error_code="INVALID_CAPACITY")
        if values.get("is_recurring"):
            if values.get("recurrence_pattern") not in RecurrencePattern.values:
                return ServiceResult.failure(
                    "Recurring events need a daily, weekly or monthly pattern",
                    error_code="INVALID_RECURRENCE",
                )
            recurrence_end = values.get("recurrence_end")
            if recurrence_end is not None and recurrence_end < timezone.localdate(values["start_time"]):
                return ServiceResult.failure(
                    "Recurrence cannot end before the first occurrence",
                    error_code="INVALID_RECURRENCE",
                )
        return None

    @staticmethod
    def _normalize(values: dict) -> dict:
        if not values.get("is_recurring"):
            values["recurrence_pattern"] = ""
            values["recurrence_end"] = None
        return values

    @classmethod
    def create_event(
        cls,
        organizer: User,
        title: str,
        start_time: datetime,
        end_time: datetime,
        description: str = "",
        location: str = "",
        max_attendees: int | None = None,
        is_recurring: bool = False,
        recurrence_pattern: str = "",
        recurrence_end: date | None = None,
    ) -> ServiceResult[Event]:
        """
        Create an event (teachers and admins).

        Error codes:
            PERMISSION_DENIED, VALIDATION_ERROR
            INVALID_TIME_RANGE, INVALID_CAPACITY, INVALID_RECURRENCE
        """
        if not RoleService.can_teach(organizer):
            return ServiceResult.failure(
                "Only teachers and administrators can create events", error_code="PERMISSION_DENIED"
            )
        missing = cls.validate_required(title=title, start_time=start_time, end_time=end_time)
        if missing is not None:
            return missing

        values = cls._normalize(
            {
                "title": title.strip(),
                "description": description,
                "start_time": start_time,
                "end_time": end_time,
                "location": location,
                "max_attendees": max_attendees,
                "is_recurring": is_recurring,
                "recurrence_pattern": recurrence_pattern,
                "recurrence_end": recurrence_end,
            }
        )
        invalid = cls._validate_schedule(values)
        if invalid is not None:
            return invalid

        event = Event.objects.create(organizer=organizer, **values)
        cls.get_logger().info(f"Event {event.id} created by user {organizer.id}", extra={"recurring": is_recurring})
        return ServiceResult.success(event)

    @classmethod
    def update_event(cls, event: Event, user: User, **changes: Any) -> ServiceResult[Event]:
        """
        Edit an event (organizer or admin).

        Error codes:
            PERMISSION_DENIED, INVALID_TIME_RANGE, INVALID_CAPACITY,
            INVALID_RECURRENCE, CAPACITY_BELOW_CONFIRMED
        """
        if not cls.can_manage(event, user):
            return ServiceResult.failure("Only the organizer can edit this event", error_code="PERMISSION_DENIED")

        values = {field_name: getattr(event, field_name) for field_name in cls.EDITABLE_FIELDS}
        values.update({key: value for key, value in changes.items() if key in cls.EDITABLE_FIELDS})
        if not (values["title"] or "").strip():
            return cls.validate_required(title=values["title"])
        values["title"] = values["title"].strip()
        values = cls._normalize(values)
        invalid = cls._validate_schedule(values)
        if invalid is not None:
            return invalid

        max_attendees = values["max_attendees"]
        if max_attendees is not None and max_attendees < cls.confirmed_count(event):
            return ServiceResult.failure(
                "More attendees are already confirmed than the new capacity",
                error_code="CAPACITY_BELOW_CONFIRMED",
            )

        for field_name, value in values.items():
            setattr(event, field_name, value)
        event.save()
        cls.get_logger().info(f"Event {event.id} updated by user {user.id}")
        return ServiceResult.success(event)

    @classmethod
    def delete_event(cls, event: Event, user: User) -> ServiceResult[None]:
        if not cls.can_manage(event, user):
            return ServiceResult.failure("Only the organizer can delete this event", error_code="PERMISSION_DENIED")
        event_id = event.id
        event.delete()
        cls.get_logger().info(f"Event {event_id} deleted by user {user.id}")
        return ServiceResult.success(None)

    @staticmethod
    def confirmed_count(event: Event) -> int:
        return event.attendees.filter(status=AttendeeStatus.CONFIRMED).count()

    @staticmethod
    def is_past(event: Event) -> bool:
        """No occurrence of the event can still start."""
        now = timezone.now()
        if not event.is_recurring:
            return event.start_time <= now
        return event.recurrence_end is not None and event.recurrence_end < timezone.localdate(now)

    @classmethod
    def apply(cls, event: Event, student: User) -> ServiceResult[EventAttendee]:
        """
        Apply to attend an event. The application starts pending.

        Error codes:
            USER_SUSPENDED, OWN_EVENT, EVENT_PAST, ALREADY_APPLIED
        """
        if student.is_suspended:
            return ServiceResult.failure("Suspended accounts cannot apply to events", error_code="USER_SUSPENDED")
        if event.organizer_id == student.pk:
            return ServiceResult.failure("You organize this event", error_code="OWN_EVENT")
        if cls.is_past(event):
            return ServiceResult.failure("This event has already taken place", error_code="EVENT_PAST")
        if EventAttendee.objects.filter(event=event, student=student).exists():
            return ServiceResult.failure("You already applied to this event", error_code="ALREADY_APPLIED")

        try:
            with transaction.atomic():
                attendee = EventAttendee.objects.create(event=event, student=student)
        except IntegrityError:
            return ServiceResult.failure("You already applied to this event", error_code="ALREADY_APPLIED")

        event_applied.send(sender=EventAttendee, attendee=attendee)
        cls.get_logger().info(f"User {student.id} applied to event {event.id}")
        return ServiceResult.success(attendee)

    @classmethod
    def withdraw(cls, event: Event, student: User) -> ServiceResult[None]:
        """Cancel one's own application, whatever its status."""
        deleted, _ = EventAttendee.objects.filter(event=event, student=student).delete()
        if not deleted:
            return ServiceResult.failure("You have not applied to this event", error_code="APPLICATION_NOT_FOUND")
        return ServiceResult.success(None)

    @classmethod
    def respond(cls, attendee: EventAttendee, organizer: User, accept: bool) -> ServiceResult[EventAttendee]:
        """
        Confirm or decline a pending application.

        The event row is locked while confirming so two confirmations
        cannot both take the last place.

        Error codes:
            PERMISSION_DENIED, ALREADY_RESPONDED, EVENT_FULL
        """
        event = attendee.event
        if not cls.can_manage(event, organizer):
            return ServiceResult.failure(
                "Only the organizer can respond to applications", error_code="PERMISSION_DENIED"
            )
        if attendee.status != AttendeeStatus.PENDING:
            return ServiceResult.failure(
                f"Application is already {attendee.status}", error_code="ALREADY_RESPONDED"
            )

        with cls.atomic():
            event = Event.objects.select_for_update().get(pk=event.pk)
            if accept and event.max_attendees is not None and cls.confirmed_count(event) >= event.max_attendees:
                return ServiceResult.failure("This event is full", error_code="EVENT_FULL")
            attendee.status = AttendeeStatus.CONFIRMED if accept else AttendeeStatus.DECLINED
            attendee.responded_at = timezone.now()
            attendee.save(update_fields=["status", "responded_at", "updated_at"])

        event_application_reviewed.send(sender=EventAttendee, attendee=attendee, accepted=accept)
        cls.get_logger().info(f"Application {attendee.id} to event {event.id} {attendee.status} by {organizer.id}")
        return ServiceResult.success(attendee)

    @classmethod
    def applications(cls, event: Event, user: User) -> ServiceResult[QuerySet[EventAttendee]]:
        if not cls.can_manage(event, user):
            return ServiceResult.failure(
                "Only the organizer can see applications", error_code="PERMISSION_DENIED"
            )
        return ServiceResult.success(event.attendees.select_related("student__profile"))

    @classmethod
    def calendar(cls, user: User, start: datetime, end: datetime) -> ServiceResult[list[Occurrence]]:
        """
        Occurrences overlapping [start, end), earliest first.

        Recurring events are expanded per period; each occurrence carries
        the caller's application status for its event.

        Error codes:
            INVALID_RANGE, RANGE_TOO_LARGE
        """
        if end <= start:
            return ServiceResult.failure("end must be after start", error_code="INVALID_RANGE")
        if end - start > MAX_CALENDAR_WINDOW:
            return ServiceResult.failure(
                f"The calendar window is limited to {MAX_CALENDAR_WINDOW.days} days",
                error_code="RANGE_TOO_LARGE",
            )

        single = Q(is_recurring=False, start_time__lt=end, end_time__gt=start)
        recurring = Q(is_recurring=True, start_time__lt=end) & (
            Q(recurrence_end__isnull=True) | Q(recurrence_end__gte=timezone.localdate(start) - timedelta(days=1))
        )
        events = list(Event.objects.filter(single | recurring).select_related("organizer__profile"))
        statuses = dict(
            EventAttendee.objects.filter(student=user, event__in=events).values_list("event_id", "status")
        )

        result = [
            Occurrence(event, occurrence_start, occurrence_end, statuses.get(event.id))
            for event in events
            for occurrence_start, occurrence_end in occurrences(event, start, end)
        ]
        result.sort(key=lambda occurrence: (occurrence.occurrence_start, str(occurrence.event.id)))
        return ServiceResult.success(result)


# =============================================================================
# Announcements
# =============================================================================


class AnnouncementService(BaseService):
    """Announcements from teachers and admins to the whole school."""

    @staticmethod
    def can_edit(announcement: Announcement, user: User) -> bool:
        return announcement.author_id == user.pk or RoleService.can_moderate(user)

    @classmethod
    def publish(
        cls,
        author: User,
        title: str,
        content: str,
        media_files: Iterable = (),
    ) -> ServiceResult[Announcement]:
        """
        Publish an announcement and notify every active member.

        The fan-out runs in a Celery task after commit.

        Error codes:
            PERMISSION_DENIED, VALIDATION_ERROR, TOO_MANY_FILES,
            UNSUPPORTED_MEDIA / FILE_TOO_LARGE
        """
        from planner.tasks import fan_out_announcement

        if not RoleService.can_teach(author):
            return ServiceResult.failure(
                "Only teachers and administrators can publish announcements", error_code="PERMISSION_DENIED"
            )
        missing = cls.validate_required(title=title, content=content)
        if missing is not None:
            return missing

        media_files = list(media_files)
        max_files = settings.MEDIA_MAX_FILES_PER_ITEM
        if len(media_files) > max_files:
            return ServiceResult.failure(f"At most {max_files} files per announcement", error_code="TOO_MANY_FILES")
        media_types = []
        for media_file in media_files:
            try:
                media_types.append(validate_media_file(media_file))
            except DjangoValidationError as e:
                return ServiceResult.failure(e.messages[0], error_code=e.code or "VALIDATION_ERROR")

        with cls.atomic():
            announcement = Announcement.objects.create(author=author, title=title.strip(), content=content.strip())
            for position, (media_file, media_type) in enumerate(zip(media_files, media_types)):
                AnnouncementMedia.objects.create(
                    announcement=announcement,
                    file=media_file,
                    media_type=media_type,
                    position=position,
                )
            transaction.on_commit(partial(fan_out_announcement.delay, str(announcement.id)))

        cls.get_logger().info(f"Announcement {announcement.id} published by user {author.id}")
        return ServiceResult.success(announcement)

    @classmethod
    def update(
        cls,
        announcement: Announcement,
        user: User,
        title: str | None = None,
        content: str | None = None,
    ) -> ServiceResult[Announcement]:
        if not cls.can_edit(announcement, user):
            return ServiceResult.failure(
                "Only the author or an administrator can edit this announcement", error_code="PERMISSION_DENIED"
            )
        update_fields = ["updated_at"]
        for field_name, value in (("title", title), ("content", content)):
            if value is None:
                continue
            missing = cls.validate_required(**{field_name: value})
            if missing is not None:
                return missing
            setattr(announcement, field_name, value.strip())
            update_fields.append(field_name)
        announcement.save(update_fields=update_fields)
        return ServiceResult.success(announcement)

    @classmethod
    def delete(cls, announcement: Announcement, user: User) -> ServiceResult[None]:
        if not cls.can_edit(announcement, user):
            return ServiceResult.failure(
                "Only the author or an administrator can delete this announcement", error_code="PERMISSION_DENIED"
            )
        announcement.soft_delete()
        cls.get_logger().info(f"Announcement {announcement.id} deleted by user {user.id}")
        return ServiceResult.success(None)
