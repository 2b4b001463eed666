"""
URL configuration for the planner app.

See planner/views.py for the full URL structure.
"""

from django.urls import path
from rest_framework.routers import DefaultRouter

from planner.views import AnnouncementViewSet, AttendeeRespondView, EventViewSet, TodoViewSet

app_name = "planner"

router = DefaultRouter()
router.register("todos", TodoViewSet, basename="todo")
router.register("events", EventViewSet, basename="event")
router.register("announcements", AnnouncementViewSet, basename="announcement")

urlpatterns = [
    path("attendees/<int:pk>/respond/", AttendeeRespondView.as_view(), name="attendee-respond"),
] + router.urls
