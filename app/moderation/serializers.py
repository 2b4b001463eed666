"""
Serializers for moderation endpoints.
"""

from rest_framework import serializers

from authentication.serializers import UserCardField
from moderation.models import (
    IncidentEvidence,
    IncidentReport,
    IncidentStatus,
    IncidentType,
    ReportReason,
    ReportStatus,
    Severity,
    SuspensionLog,
    UserReport,
)

# =============================================================================
# User reports
# =============================================================================


class UserReportSerializer(serializers.ModelSerializer):
    reporter = UserCardField()
    reported = UserCardField()
    reviewed_by = UserCardField(allow_null=True)

    class Meta:
        model = UserReport
        fields = [
            "id",
            "reporter",
            "reported",
            "reason",
            "description",
            "status",
            "reviewed_by",
            "reviewed_at",
            "resolution_notes",
            "created_at",
        ]
        read_only_fields = fields


class UserReportCreateSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    reason = serializers.ChoiceField(choices=ReportReason.choices)
    description = serializers.CharField(max_length=2000, required=False, allow_blank=True, default="")


class ReportReviewSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[ReportStatus.REVIEWED, ReportStatus.RESOLVED, ReportStatus.DISMISSED],
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


# =============================================================================
# Incident reports
# =============================================================================


class IncidentEvidenceSerializer(serializers.ModelSerializer):
    class Meta:
        model = IncidentEvidence
        fields = ["id", "file", "content_type", "position"]
        read_only_fields = fields


class IncidentReportSerializer(serializers.ModelSerializer):
    evidence = IncidentEvidenceSerializer(many=True, read_only=True)
    student = UserCardField(allow_null=True)
    handled_by = UserCardField(allow_null=True)

    class Meta:
        model = IncidentReport
        fields = [
            "id",
            "report_id",
            "reporter_name",
            "reporter_role",
            "reporter_class",
            "reporter_contact",
            "student",
            "student_name",
            "student_class",
            "incident_date",
            "incident_time",
            "location",
            "incident_type",
            "description",
            "witnesses",
            "previous_incidents",
            "immediate_actions",
            "severity",
            "status",
            "admin_notes",
            "handled_by",
            "resolved_at",
            "evidence",
            "created_at",
        ]
        read_only_fields = fields


class IncidentReportCreateSerializer(serializers.Serializer):
    """Multipart form for a new incident report."""

    student_name = serializers.CharField(max_length=150)
    student_class = serializers.CharField(max_length=100)
    student_id = serializers.IntegerField(required=False, allow_null=True)
    reporter_class = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    reporter_contact = serializers.EmailField(required=False, allow_blank=True, default="")
    incident_date = serializers.DateField()
    incident_time = serializers.TimeField()
    location = serializers.CharField(max_length=200)
    incident_type = serializers.ChoiceField(choices=IncidentType.choices)
    description = serializers.CharField()
    witnesses = serializers.CharField(required=False, allow_blank=True, default="")
    previous_incidents = serializers.BooleanField(required=False, default=False)
    immediate_actions = serializers.CharField(required=False, allow_blank=True, default="")
    severity = serializers.ChoiceField(choices=Severity.choices, required=False, default=Severity.MEDIUM)
    evidence = serializers.ListField(child=serializers.FileField(), required=False, default=list)


class IncidentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[IncidentStatus.INVESTIGATING, IncidentStatus.RESOLVED])
    notes = serializers.CharField(required=False, allow_blank=True, default="")


# =============================================================================
# Suspensions
# =============================================================================


class SuspensionLogSerializer(serializers.ModelSerializer):
    user = UserCardField()
    admin = UserCardField(allow_null=True)
    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = SuspensionLog
        fields = ["id", "user", "admin", "reason", "suspended_at", "unsuspended_at", "is_active"]
        read_only_fields = fields


class SuspendSerializer(serializers.Serializer):
    reason = serializers.CharField()
