"""
Serializers for the planner.
"""

from rest_framework import serializers

from authentication.serializers import UserCardField
from planner.models import (
    Announcement,
    AnnouncementMedia,
    Event,
    EventAttendee,
    Priority,
    RecurrencePattern,
    Todo,
    TodoStatus,
)
from planner.services import EventService

# =============================================================================
# To-dos
# =============================================================================


class TodoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Todo
        fields = ["id", "title", "description", "due_date", "priority", "status", "completed_at", "created_at"]
        read_only_fields = ["id", "completed_at", "created_at"]


class TodoWriteSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True)
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    priority = serializers.ChoiceField(choices=Priority.choices, required=False)
    status = serializers.ChoiceField(choices=TodoStatus.choices, required=False)


# =============================================================================
# Events
# =============================================================================


class EventSerializer(serializers.ModelSerializer):
    organizer = UserCardField()
    confirmed_count = serializers.SerializerMethodField()
    my_status = serializers.SerializerMethodField()

    class Meta:
        model = Event
        fields = [
            "id",
            "title",
            "description",
            "start_time",
            "end_time",
            "location",
            "organizer",
            "max_attendees",
            "confirmed_count",
            "is_recurring",
            "recurrence_pattern",
            "recurrence_end",
            "my_status",
            "created_at",
        ]
        read_only_fields = fields

    def get_confirmed_count(self, obj: Event) -> int:
        return EventService.confirmed_count(obj)

    def get_my_status(self, obj: Event) -> str | None:
        request = self.context.get("request")
        if request is None:
            return None
        return obj.attendees.filter(student=request.user).values_list("status", flat=True).first()


class EventWriteSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    location = serializers.CharField(max_length=200, required=False, allow_blank=True)
    max_attendees = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    is_recurring = serializers.BooleanField(required=False)
    recurrence_pattern = serializers.ChoiceField(choices=RecurrencePattern.choices, required=False, allow_blank=True)
    recurrence_end = serializers.DateField(required=False, allow_null=True)


class EventAttendeeSerializer(serializers.ModelSerializer):
    student = UserCardField()
    event_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = EventAttendee
        fields = ["id", "event_id", "student", "status", "responded_at", "created_at"]
        read_only_fields = fields


class AttendeeRespondSerializer(serializers.Serializer):
    accept = serializers.BooleanField()


class CalendarQuerySerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()


class OccurrenceSerializer(serializers.Serializer):
    event_id = serializers.UUIDField()
    title = serializers.CharField(source="event.title")
    location = serializers.CharField(source="event.location")
    is_recurring = serializers.BooleanField(source="event.is_recurring")
    organizer_id = serializers.IntegerField(source="event.organizer_id")
    occurrence_start = serializers.DateTimeField()
    occurrence_end = serializers.DateTimeField()
    attendance_status = serializers.CharField(allow_null=True)


# =============================================================================
# Announcements
# =============================================================================


class AnnouncementMediaSerializer(serializers.ModelSerializer):
    class Meta:
        model = AnnouncementMedia
        fields = ["id", "file", "media_type", "position"]
        read_only_fields = fields


class AnnouncementSerializer(serializers.ModelSerializer):
    author = UserCardField()
    media = AnnouncementMediaSerializer(many=True, read_only=True)

    class Meta:
        model = Announcement
        fields = ["id", "title", "content", "author", "media", "created_at", "updated_at"]
        read_only_fields = fields


class AnnouncementCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    content = serializers.CharField(max_length=10000)
    media = serializers.ListField(child=serializers.FileField(), required=False, default=list)


class AnnouncementUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200, required=False)
    content = serializers.CharField(max_length=10000, required=False)
