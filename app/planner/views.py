"""
Views for the planner.

URL Structure:
    /api/v1/planner/todos/                         GET ?status=&priority=, POST
    /api/v1/planner/todos/{id}/                    GET, PATCH, DELETE (owner)
    /api/v1/planner/events/                        GET ?organizer=&start_after=&start_before=, POST (teacher/admin)
    /api/v1/planner/events/calendar/               GET ?start=&end=
    /api/v1/planner/events/{id}/                   GET, PATCH, DELETE (organizer/admin)
    /api/v1/planner/events/{id}/apply/             POST apply, DELETE withdraw
    /api/v1/planner/events/{id}/attendees/         GET (organizer/admin)
    /api/v1/planner/attendees/{id}/respond/        POST {"accept": bool} (organizer/admin)
    /api/v1/planner/announcements/                 GET, POST (teacher/admin, multipart)
    /api/v1/planner/announcements/{id}/            GET, PATCH, DELETE (author/admin)
"""

from __future__ import annotations

from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from planner.filters import AnnouncementFilter, EventFilter
from planner.models import Announcement, Event, EventAttendee, Priority, Todo, TodoStatus
from planner.serializers import (
    AnnouncementCreateSerializer,
    AnnouncementSerializer,
    AnnouncementUpdateSerializer,
    AttendeeRespondSerializer,
    CalendarQuerySerializer,
    EventAttendeeSerializer,
    EventSerializer,
    EventWriteSerializer,
    OccurrenceSerializer,
    TodoSerializer,
    TodoWriteSerializer,
)
from planner.services import AnnouncementService, EventService, TodoService


def _failure(result):
    return Response(result.to_response(), status=result.status_code)


# =============================================================================
# To-dos
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_todos",
        summary="My to-dos",
        tags=["Planner - Todos"],
        parameters=[
            OpenApiParameter("status", enum=TodoStatus.values),
            OpenApiParameter("priority", enum=Priority.values),
        ],
    ),
    retrieve=extend_schema(operation_id="get_todo", summary="Get to-do", tags=["Planner - Todos"]),
)
class TodoViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    list:
        Own to-dos by due date (undated last), then priority.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = TodoSerializer

    def get_queryset(self):
        params = self.request.query_params
        return TodoService.list_todos(
            self.request.user,
            status=params.get("status") or None,
            priority=params.get("priority") or None,
        )

    @extend_schema(
        operation_id="create_todo",
        summary="Create to-do",
        tags=["Planner - Todos"],
        request=TodoWriteSerializer,
        responses={201: TodoSerializer},
    )
    def create(self, request):
        serializer = TodoWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = TodoService.create_todo(request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(TodoSerializer(result.data).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="update_todo",
        summary="Update to-do",
        tags=["Planner - Todos"],
        request=TodoWriteSerializer,
        responses={200: TodoSerializer},
    )
    def partial_update(self, request, pk=None):
        serializer = TodoWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        result = TodoService.update_todo(self.get_object(), request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(TodoSerializer(result.data).data)

    @extend_schema(operation_id="delete_todo", summary="Delete to-do", tags=["Planner - Todos"])
    def destroy(self, request, pk=None):
        result = TodoService.delete_todo(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Events
# =============================================================================


@extend_schema_view(
    list=extend_schema(operation_id="list_events", summary="List events", tags=["Planner - Events"]),
    retrieve=extend_schema(operation_id="get_event", summary="Get event", tags=["Planner - Events"]),
)
class EventViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    list:
        Events as stored (recurring events once). Use calendar for
        expanded occurrences.

    calendar:
        Occurrences in a time window with the caller's application status.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = EventSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = EventFilter

    def get_queryset(self):
        return Event.objects.select_related("organizer__profile")

    @extend_schema(
        operation_id="create_event",
        summary="Create event",
        tags=["Planner - Events"],
        request=EventWriteSerializer,
        responses={201: EventSerializer},
    )
    def create(self, request):
        serializer = EventWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = EventService.create_event(request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(self.get_serializer(result.data).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="update_event",
        summary="Update event",
        tags=["Planner - Events"],
        request=EventWriteSerializer,
        responses={200: EventSerializer},
    )
    def partial_update(self, request, pk=None):
        serializer = EventWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        result = EventService.update_event(self.get_object(), request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(self.get_serializer(result.data).data)

    @extend_schema(operation_id="delete_event", summary="Delete event", tags=["Planner - Events"])
    def destroy(self, request, pk=None):
        result = EventService.delete_event(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="apply_to_event",
        summary="Apply to (POST) or withdraw from (DELETE) an event",
        tags=["Planner - Events"],
        request=None,
        responses={201: EventAttendeeSerializer},
    )
    @action(detail=True, methods=["post", "delete"])
    def apply(self, request, pk=None):
        event = self.get_object()
        if request.method == "DELETE":
            result = EventService.withdraw(event, request.user)
            if not result.success:
                return _failure(result)
            return Response(status=status.HTTP_204_NO_CONTENT)

        result = EventService.apply(event, request.user)
        if not result.success:
            return _failure(result)
        return Response(
            EventAttendeeSerializer(result.data, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="list_event_attendees",
        summary="Applications to an event",
        tags=["Planner - Events"],
        responses={200: EventAttendeeSerializer(many=True)},
    )
    @action(detail=True, methods=["get"])
    def attendees(self, request, pk=None):
        result = EventService.applications(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(EventAttendeeSerializer(result.data, many=True, context={"request": request}).data)

    @extend_schema(
        operation_id="calendar",
        summary="Calendar occurrences in a window",
        tags=["Planner - Events"],
        parameters=[
            OpenApiParameter("start", type=str, required=True, description="ISO 8601 datetime"),
            OpenApiParameter("end", type=str, required=True, description="ISO 8601 datetime"),
        ],
        responses={200: OccurrenceSerializer(many=True)},
    )
    @action(detail=False, methods=["get"], filter_backends=[])
    def calendar(self, request):
        query = CalendarQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = EventService.calendar(request.user, query.validated_data["start"], query.validated_data["end"])
        if not result.success:
            return _failure(result)
        return Response(OccurrenceSerializer(result.data, many=True).data)


class AttendeeRespondView(APIView):
    """
    URL: /api/v1/planner/attendees/<id>/respond/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="respond_event_application",
        summary="Confirm or decline an application",
        tags=["Planner - Events"],
        request=AttendeeRespondSerializer,
        responses={200: EventAttendeeSerializer},
    )
    def post(self, request, pk):
        serializer = AttendeeRespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        attendee = get_object_or_404(EventAttendee.objects.select_related("event", "student__profile"), pk=pk)

        result = EventService.respond(attendee, request.user, serializer.validated_data["accept"])
        if not result.success:
            return _failure(result)
        return Response(EventAttendeeSerializer(result.data, context={"request": request}).data)


# =============================================================================
# Announcements
# =============================================================================


@extend_schema_view(
    list=extend_schema(operation_id="list_announcements", summary="Announcements", tags=["Planner - Announcements"]),
    retrieve=extend_schema(
        operation_id="get_announcement", summary="Get announcement", tags=["Planner - Announcements"]
    ),
)
class AnnouncementViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser, JSONParser]
    serializer_class = AnnouncementSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = AnnouncementFilter

    def get_queryset(self):
        return Announcement.objects.select_related("author__profile").prefetch_related("media")

    @extend_schema(
        operation_id="publish_announcement",
        summary="Publish announcement",
        tags=["Planner - Announcements"],
        request=AnnouncementCreateSerializer,
        responses={201: AnnouncementSerializer},
    )
    def create(self, request):
        serializer = AnnouncementCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = AnnouncementService.publish(request.user, data["title"], data["content"], data["media"])
        if not result.success:
            return _failure(result)
        announcement = self.get_queryset().get(pk=result.data.pk)
        return Response(self.get_serializer(announcement).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="update_announcement",
        summary="Edit announcement",
        tags=["Planner - Announcements"],
        request=AnnouncementUpdateSerializer,
        responses={200: AnnouncementSerializer},
    )
    def partial_update(self, request, pk=None):
        serializer = AnnouncementUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = AnnouncementService.update(self.get_object(), request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(self.get_serializer(result.data).data)

    @extend_schema(operation_id="delete_announcement", summary="Delete announcement", tags=["Planner - Announcements"])
    def destroy(self, request, pk=None):
        result = AnnouncementService.delete(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)
