"""
API tests for planner endpoints.

Test Classes:
    TestTodoEndpoints: Private to-do CRUD
    TestEventEndpoints: Events, applications and responses
    TestCalendarEndpoint: Expanded occurrences
    TestAnnouncementEndpoints: Publishing and editing announcements
"""

from datetime import UTC, datetime, timedelta

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from rest_framework import status

from planner.models import Announcement, AttendeeStatus, Event, EventAttendee, Todo, TodoStatus
from planner.tests.factories import AnnouncementFactory, EventAttendeeFactory, EventFactory, TodoFactory

pytestmark = pytest.mark.django_db

TODOS_URL = "/api/v1/planner/todos/"
EVENTS_URL = "/api/v1/planner/events/"
CALENDAR_URL = "/api/v1/planner/events/calendar/"
ANNOUNCEMENTS_URL = "/api/v1/planner/announcements/"


def _respond_url(attendee):
    return f"/api/v1/planner/attendees/{attendee.id}/respond/"


class TestTodoEndpoints:
    def test_create_and_list_own(self, authenticated_client, user, other_user):
        TodoFactory(user=other_user)

        response = authenticated_client.post(TODOS_URL, {"title": "Revise algebra", "priority": "high"}, format="json")
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["priority"] == "high"

        listing = authenticated_client.get(TODOS_URL)
        assert listing.data["count"] == 1
        assert listing.data["results"][0]["title"] == "Revise algebra"

    def test_status_filter(self, authenticated_client, user):
        TodoFactory(user=user, status=TodoStatus.COMPLETED)
        TodoFactory(user=user)

        response = authenticated_client.get(TODOS_URL, {"status": "completed"})

        assert response.data["count"] == 1

    def test_complete_via_patch(self, authenticated_client, user):
        todo = TodoFactory(user=user)

        response = authenticated_client.patch(f"{TODOS_URL}{todo.id}/", {"status": "completed"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["completed_at"] is not None

    def test_invalid_priority_is_rejected(self, authenticated_client, user):
        todo = TodoFactory(user=user)

        response = authenticated_client.patch(f"{TODOS_URL}{todo.id}/", {"priority": "urgent"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_other_members_todos_are_hidden(self, authenticated_client, other_user):
        todo = TodoFactory(user=other_user)

        assert authenticated_client.get(f"{TODOS_URL}{todo.id}/").status_code == status.HTTP_404_NOT_FOUND
        assert authenticated_client.delete(f"{TODOS_URL}{todo.id}/").status_code == status.HTTP_404_NOT_FOUND
        assert Todo.objects.filter(pk=todo.pk).exists()

    def test_delete(self, authenticated_client, user):
        todo = TodoFactory(user=user)

        response = authenticated_client.delete(f"{TODOS_URL}{todo.id}/")

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not Todo.objects.filter(pk=todo.pk).exists()

    def test_requires_authentication(self, api_client):
        assert api_client.get(TODOS_URL).status_code == status.HTTP_401_UNAUTHORIZED


class TestEventEndpoints:
    def _payload(self, **overrides):
        start = timezone.now() + timedelta(days=3)
        payload = {
            "title": "Robotics club",
            "start_time": start.isoformat(),
            "end_time": (start + timedelta(hours=2)).isoformat(),
            "location": "Lab 2",
            "max_attendees": 10,
        }
        payload.update(overrides)
        return payload

    def test_teacher_creates_event(self, authenticated_client_factory, teacher):
        client = authenticated_client_factory(teacher)

        response = client.post(EVENTS_URL, self._payload(), format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["organizer"]["id"] == teacher.id
        assert response.data["confirmed_count"] == 0
        assert response.data["my_status"] is None

    def test_student_cannot_create(self, authenticated_client):
        response = authenticated_client.post(EVENTS_URL, self._payload(), format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "PERMISSION_DENIED"

    def test_invalid_time_range(self, authenticated_client_factory, teacher):
        start = timezone.now() + timedelta(days=3)
        payload = self._payload(end_time=(start - timedelta(hours=1)).isoformat(), start_time=start.isoformat())

        response = authenticated_client_factory(teacher).post(EVENTS_URL, payload, format="json")

        assert response.data["error_code"] == "INVALID_TIME_RANGE"

    def test_list_filters_by_organizer(self, authenticated_client, teacher):
        EventFactory(organizer=teacher)
        EventFactory()

        response = authenticated_client.get(EVENTS_URL, {"organizer": teacher.id})

        assert response.data["count"] == 1

    def test_apply_and_withdraw(self, authenticated_client, user):
        event = EventFactory()

        applied = authenticated_client.post(f"{EVENTS_URL}{event.id}/apply/")
        assert applied.status_code == status.HTTP_201_CREATED
        assert applied.data["status"] == "pending"

        detail = authenticated_client.get(f"{EVENTS_URL}{event.id}/")
        assert detail.data["my_status"] == "pending"

        withdrawn = authenticated_client.delete(f"{EVENTS_URL}{event.id}/apply/")
        assert withdrawn.status_code == status.HTTP_204_NO_CONTENT
        assert not EventAttendee.objects.filter(event=event, student=user).exists()

    def test_duplicate_application_conflicts(self, authenticated_client, user):
        event = EventFactory()
        EventAttendeeFactory(event=event, student=user)

        response = authenticated_client.post(f"{EVENTS_URL}{event.id}/apply/")

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_withdraw_without_application(self, authenticated_client):
        event = EventFactory()

        response = authenticated_client.delete(f"{EVENTS_URL}{event.id}/apply/")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_organizer_sees_and_confirms_applications(self, authenticated_client_factory, teacher, user):
        event = EventFactory(organizer=teacher)
        attendee = EventAttendeeFactory(event=event, student=user)
        client = authenticated_client_factory(teacher)

        listing = client.get(f"{EVENTS_URL}{event.id}/attendees/")
        assert [row["id"] for row in listing.data] == [attendee.id]

        response = client.post(_respond_url(attendee), {"accept": True}, format="json")
        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == AttendeeStatus.CONFIRMED

    def test_students_cannot_see_applications(self, authenticated_client):
        event = EventFactory()

        response = authenticated_client.get(f"{EVENTS_URL}{event.id}/attendees/")

        assert response.data["error_code"] == "PERMISSION_DENIED"

    def test_full_event_rejects_confirmation(self, authenticated_client_factory, teacher):
        event = EventFactory(organizer=teacher, max_attendees=1)
        EventAttendeeFactory(event=event, status=AttendeeStatus.CONFIRMED)
        attendee = EventAttendeeFactory(event=event)

        response = authenticated_client_factory(teacher).post(_respond_url(attendee), {"accept": True}, format="json")

        assert response.data["error_code"] == "EVENT_FULL"

    def test_organizer_updates_and_deletes(self, authenticated_client_factory, teacher):
        event = EventFactory(organizer=teacher)
        client = authenticated_client_factory(teacher)

        updated = client.patch(f"{EVENTS_URL}{event.id}/", {"location": "Gym"}, format="json")
        assert updated.status_code == status.HTTP_200_OK
        assert updated.data["location"] == "Gym"

        deleted = client.delete(f"{EVENTS_URL}{event.id}/")
        assert deleted.status_code == status.HTTP_204_NO_CONTENT
        assert not Event.objects.filter(pk=event.pk).exists()


class TestCalendarEndpoint:
    def test_weekly_occurrences_with_status(self, authenticated_client, user, teacher):
        event = EventFactory(
            organizer=teacher,
            start_time=datetime(2030, 3, 4, 15, tzinfo=UTC),
            end_time=datetime(2030, 3, 4, 16, tzinfo=UTC),
            is_recurring=True,
            recurrence_pattern="weekly",
        )
        EventAttendeeFactory(event=event, student=user)

        response = authenticated_client.get(
            CALENDAR_URL, {"start": "2030-03-01T00:00:00Z", "end": "2030-03-15T00:00:00Z"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data) == 2
        assert {row["attendance_status"] for row in response.data} == {"pending"}
        assert response.data[1]["occurrence_start"].startswith("2030-03-11T15:00:00")

    def test_start_and_end_required(self, authenticated_client):
        response = authenticated_client.get(CALENDAR_URL, {"start": "2030-03-01T00:00:00Z"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_inverted_range(self, authenticated_client):
        response = authenticated_client.get(
            CALENDAR_URL, {"start": "2030-03-15T00:00:00Z", "end": "2030-03-01T00:00:00Z"}
        )

        assert response.data["error_code"] == "INVALID_RANGE"


class TestAnnouncementEndpoints:
    def test_teacher_publishes_with_image(self, authenticated_client_factory, teacher):
        image = SimpleUploadedFile("poster.png", b"\x89PNG\r\n\x1a\n" + b"0" * 64, content_type="image/png")

        response = authenticated_client_factory(teacher).post(
            ANNOUNCEMENTS_URL,
            {"title": "Sports day", "content": "Bring water.", "media": [image]},
            format="multipart",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["title"] == "Sports day"
        assert len(response.data["media"]) == 1
        assert response.data["media"][0]["media_type"] == "image"

    def test_student_cannot_publish(self, authenticated_client):
        response = authenticated_client.post(
            ANNOUNCEMENTS_URL, {"title": "Hi", "content": "Hello"}, format="json"
        )

        assert response.data["error_code"] == "PERMISSION_DENIED"

    def test_list_and_search(self, authenticated_client):
        AnnouncementFactory(title="Library closed", content="Renovation")
        AnnouncementFactory(title="Lunch menu", content="Pasta on Friday")

        assert authenticated_client.get(ANNOUNCEMENTS_URL).data["count"] == 2
        assert authenticated_client.get(ANNOUNCEMENTS_URL, {"search": "pasta"}).data["count"] == 1

    def test_author_edits(self, authenticated_client_factory, teacher):
        announcement = AnnouncementFactory(author=teacher)

        response = authenticated_client_factory(teacher).patch(
            f"{ANNOUNCEMENTS_URL}{announcement.id}/", {"title": "Corrected"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["title"] == "Corrected"

    def test_deleted_announcement_disappears(self, authenticated_client_factory, admin_member):
        announcement = AnnouncementFactory()
        client = authenticated_client_factory(admin_member)

        assert client.delete(f"{ANNOUNCEMENTS_URL}{announcement.id}/").status_code == status.HTTP_204_NO_CONTENT
        assert client.get(f"{ANNOUNCEMENTS_URL}{announcement.id}/").status_code == status.HTTP_404_NOT_FOUND
        assert Announcement.all_objects.filter(pk=announcement.pk).exists()
