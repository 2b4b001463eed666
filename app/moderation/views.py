"""
Views for moderation.

Filing a report is open to every authenticated member; everything else
is admin-only.

URL Structure:
    /api/v1/moderation/reports/                  GET (admin) ?status=&reason=&reported=, POST
    /api/v1/moderation/reports/{id}/             GET (admin)
    /api/v1/moderation/reports/{id}/review/      POST {"status", "notes"} (admin)
    /api/v1/moderation/incidents/                GET (admin) ?status=&severity=&incident_type=, POST (multipart)
    /api/v1/moderation/incidents/{id}/           GET (admin)
    /api/v1/moderation/incidents/{id}/status/    POST {"status", "notes"} (admin)
    /api/v1/moderation/users/{user_id}/suspend/  POST {"reason"} (admin)
    /api/v1/moderation/users/{user_id}/unsuspend/ POST (admin)
    /api/v1/moderation/suspensions/              GET (admin) ?active=&user=
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.permissions import IsAdminRole
from moderation.filters import IncidentReportFilter, SuspensionLogFilter, UserReportFilter
from moderation.models import IncidentReport, SuspensionLog, UserReport
from moderation.serializers import (
    IncidentReportCreateSerializer,
    IncidentReportSerializer,
    IncidentStatusSerializer,
    ReportReviewSerializer,
    SuspendSerializer,
    SuspensionLogSerializer,
    UserReportCreateSerializer,
    UserReportSerializer,
)
from moderation.services import IncidentService, ReportService, SuspensionService

User = get_user_model()


def _failure(result):
    return Response(result.to_response(), status=result.status_code)


class _AdminReadViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """Create is open to members, every other action needs the admin role."""

    filter_backends = [DjangoFilterBackend]

    def get_permissions(self):
        if self.action == "create":
            return [IsAuthenticated()]
        return [IsAuthenticated(), IsAdminRole()]


# =============================================================================
# User reports
# =============================================================================


@extend_schema_view(
    list=extend_schema(operation_id="list_user_reports", summary="List user reports", tags=["Moderation"]),
    retrieve=extend_schema(operation_id="get_user_report", summary="Get user report", tags=["Moderation"]),
)
class UserReportViewSet(_AdminReadViewSet):
    serializer_class = UserReportSerializer
    filterset_class = UserReportFilter

    def get_queryset(self):
        return UserReport.objects.select_related(
            "reporter__profile", "reported__profile", "reviewed_by__profile"
        )

    @extend_schema(
        operation_id="report_user",
        summary="Report a member",
        tags=["Moderation"],
        request=UserReportCreateSerializer,
        responses={201: UserReportSerializer},
    )
    def create(self, request):
        serializer = UserReportCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        reported = get_object_or_404(User, pk=data["user_id"])

        result = ReportService.report_user(request.user, reported, data["reason"], data["description"])
        if not result.success:
            return _failure(result)
        return Response(
            UserReportSerializer(result.data, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="review_user_report",
        summary="Review a report",
        tags=["Moderation"],
        request=ReportReviewSerializer,
        responses={200: UserReportSerializer},
    )
    @action(detail=True, methods=["post"])
    def review(self, request, pk=None):
        serializer = ReportReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ReportService.review(self.get_object(), request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(self.get_serializer(result.data).data)


# =============================================================================
# Incident reports
# =============================================================================


@extend_schema_view(
    list=extend_schema(operation_id="list_incidents", summary="List incident reports", tags=["Moderation"]),
    retrieve=extend_schema(operation_id="get_incident", summary="Get incident report", tags=["Moderation"]),
)
class IncidentReportViewSet(_AdminReadViewSet):
    serializer_class = IncidentReportSerializer
    filterset_class = IncidentReportFilter
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get_queryset(self):
        return IncidentReport.objects.select_related("student__profile", "handled_by__profile").prefetch_related(
            "evidence"
        )

    @extend_schema(
        operation_id="submit_incident",
        summary="Submit an incident report",
        tags=["Moderation"],
        request=IncidentReportCreateSerializer,
        responses={201: IncidentReportSerializer},
    )
    def create(self, request):
        serializer = IncidentReportCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        student_id = data.pop("student_id", None)
        student = get_object_or_404(User, pk=student_id) if student_id else None
        evidence = data.pop("evidence")

        result = IncidentService.submit(request.user, student=student, evidence_files=evidence, **data)
        if not result.success:
            return _failure(result)
        incident = self.get_queryset().get(pk=result.data.pk)
        return Response(self.get_serializer(incident).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="update_incident_status",
        summary="Move an incident along its investigation",
        tags=["Moderation"],
        request=IncidentStatusSerializer,
        responses={200: IncidentReportSerializer},
    )
    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        serializer = IncidentStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = IncidentService.update_status(self.get_object(), request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(self.get_serializer(result.data).data)


# =============================================================================
# Suspensions
# =============================================================================


class SuspendView(APIView):
    """
    URL: /api/v1/moderation/users/<user_id>/suspend/
    """

    permission_classes = [IsAuthenticated, IsAdminRole]

    @extend_schema(
        operation_id="suspend_user",
        summary="Suspend a member",
        tags=["Moderation"],
        request=SuspendSerializer,
        responses={201: SuspensionLogSerializer},
    )
    def post(self, request, user_id):
        serializer = SuspendSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        target = get_object_or_404(User, pk=user_id)

        result = SuspensionService.suspend(target, request.user, serializer.validated_data["reason"])
        if not result.success:
            return _failure(result)
        return Response(
            SuspensionLogSerializer(result.data, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )


class UnsuspendView(APIView):
    permission_classes = [IsAuthenticated, IsAdminRole]

    @extend_schema(operation_id="unsuspend_user", summary="Lift a suspension", tags=["Moderation"])
    def post(self, request, user_id):
        target = get_object_or_404(User, pk=user_id)
        result = SuspensionService.unsuspend(target, request.user)
        if not result.success:
            return _failure(result)
        log = result.data
        return Response(
            {
                "user_id": target.id,
                "is_suspended": False,
                "suspension": SuspensionLogSerializer(log, context={"request": request}).data if log else None,
            }
        )


@extend_schema(operation_id="list_suspensions", summary="Suspension history", tags=["Moderation"])
class SuspensionLogListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsAdminRole]
    serializer_class = SuspensionLogSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = SuspensionLogFilter

    def get_queryset(self):
        return SuspensionLog.objects.select_related("user__profile", "admin__profile")
