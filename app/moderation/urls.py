"""
URL configuration for the moderation app.

See moderation/views.py for the full URL structure.
"""

from django.urls import path
from rest_framework.routers import DefaultRouter

from moderation.views import (
    IncidentReportViewSet,
    SuspendView,
    SuspensionLogListView,
    UnsuspendView,
    UserReportViewSet,
)

app_name = "moderation"

router = DefaultRouter()
router.register("reports", UserReportViewSet, basename="report")
router.register("incidents", IncidentReportViewSet, basename="incident")

urlpatterns = [
    path("users/<int:user_id>/suspend/", SuspendView.as_view(), name="suspend"),
    path("users/<int:user_id>/unsuspend/", UnsuspendView.as_view(), name="unsuspend"),
    path("suspensions/", SuspensionLogListView.as_view(), name="suspension-list"),
] + router.urls
