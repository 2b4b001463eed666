"""
Moderation models: member reports, incident reports and suspensions.

Models:
    UserReport: A member reporting another member's behavior
    IncidentReport: Formal school incident report with evidence
    IncidentEvidence: Image or PDF attached to an incident report
    SuspensionLog: One suspension period of a member

State machines (django-fsm):
    UserReport:
        pending -> reviewed -> resolved | dismissed
        pending -> resolved | dismissed
    IncidentReport:
        pending -> investigating -> resolved
        pending -> resolved

Usage:
    report = UserReport.objects.create(reporter=a, reported=b, reason=ReportReason.SPAM)
    report.resolve(admin, notes="Warned the member")
    report.save()
"""

from __future__ import annotations

import secrets

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import OrderableMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel


class ReportReason(models.TextChoices):
    HARASSMENT = "harassment", "Harassment"
    SPAM = "spam", "Spam"
    INAPPROPRIATE_CONTENT = "inappropriate_content", "Inappropriate content"
    IMPERSONATION = "impersonation", "Impersonation"
    OTHER = "other", "Other"


class ReportStatus(models.TextChoices):
    """
    Terminal states: RESOLVED, DISMISSED
    """

    PENDING = "pending", "Pending"
    REVIEWED = "reviewed", "Reviewed"
    RESOLVED = "resolved", "Resolved"
    DISMISSED = "dismissed", "Dismissed"


class IncidentType(models.TextChoices):
    BULLYING = "bullying", "Bullying"
    ACADEMIC_DISHONESTY = "academic_dishonesty", "Academic dishonesty"
    BEHAVIORAL_ISSUE = "behavioral_issue", "Behavioral issue"
    PROPERTY_DAMAGE = "property_damage", "Property damage"
    OTHER = "other", "Other"


class Severity(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"


class IncidentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    INVESTIGATING = "investigating", "Investigating"
    RESOLVED = "resolved", "Resolved"


REPORT_ID_PREFIX = "IR-"


def generate_report_id() -> str:
    """Unused ``IR-`` plus 6 digits identifier."""
    while True:
        report_id = f"{REPORT_ID_PREFIX}{secrets.randbelow(10**6):06d}"
        if not IncidentReport.objects.filter(report_id=report_id).exists():
            return report_id


class UserReport(UUIDPrimaryKeyMixin, BaseModel):
    """
    A member reporting another member.

    Fields:
        reporter: Member filing the report
        reported: Member being reported
        reason: ReportReason
        status: FSM state
        reviewed_by/reviewed_at/resolution_notes: Set by the reviewing admin
    """

    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="reports_filed",
    )
    reported = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="reports_received",
    )
    reason = models.CharField(max_length=30, choices=ReportReason.choices)
    description = models.TextField(blank=True, max_length=2000)

    status = FSMField(
        default=ReportStatus.PENDING,
        choices=ReportStatus.choices,
        db_index=True,
        help_text="Current state of the report (managed by FSM)",
    )

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    resolution_notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status", "created_at"])]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(reporter=models.F("reported")),
                name="user_report_not_self",
            ),
        ]

    def __str__(self) -> str:
        return f"UserReport({self.reporter_id} -> {self.reported_id}, {self.reason}, {self.status})"

    def _stamp_review(self, admin, notes: str) -> None:
        self.reviewed_by = admin
        self.reviewed_at = timezone.now()
        if notes:
            self.resolution_notes = notes

    @transition(field=status, source=ReportStatus.PENDING, target=ReportStatus.REVIEWED)
    def mark_reviewed(self, admin, notes: str = ""):
        self._stamp_review(admin, notes)

    @transition(
        field=status,
        source=[ReportStatus.PENDING, ReportStatus.REVIEWED],
        target=ReportStatus.RESOLVED,
    )
    def resolve(self, admin, notes: str = ""):
        self._stamp_review(admin, notes)

    @transition(
        field=status,
        source=[ReportStatus.PENDING, ReportStatus.REVIEWED],
        target=ReportStatus.DISMISSED,
    )
    def dismiss(self, admin, notes: str = ""):
        self._stamp_review(admin, notes)


class IncidentReport(UUIDPrimaryKeyMixin, BaseModel):
    """
    Formal incident report.

    The reporter's name, role, class and contact are copied at submission
    so the report reads the same after profile changes. ``student`` links
    the member involved when known; ``student_name`` is always filled.
    """

    report_id = models.CharField(max_length=12, unique=True, editable=False)

    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="incident_reports_filed",
    )
    reporter_name = models.CharField(max_length=150)
    reporter_role = models.CharField(max_length=20)
    reporter_class = models.CharField(max_length=100)
    reporter_contact = models.EmailField()

    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="incident_reports",
    )
    student_name = models.CharField(max_length=150)
    student_class = models.CharField(max_length=100)

    incident_date = models.DateField()
    incident_time = models.TimeField()
    location = models.CharField(max_length=200)
    incident_type = models.CharField(max_length=30, choices=IncidentType.choices)
    description = models.TextField()
    witnesses = models.TextField(blank=True)
    previous_incidents = models.BooleanField(default=False)
    immediate_actions = models.TextField(blank=True)
    severity = models.CharField(max_length=10, choices=Severity.choices, default=Severity.MEDIUM, db_index=True)

    status = FSMField(
        default=IncidentStatus.PENDING,
        choices=IncidentStatus.choices,
        db_index=True,
        help_text="Current state of the investigation (managed by FSM)",
    )
    admin_notes = models.TextField(blank=True)
    handled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status", "severity"])]

    def __str__(self) -> str:
        return f"{self.report_id} ({self.incident_type}, {self.severity})"

    def save(self, *args, **kwargs):
        if not self.report_id:
            self.report_id = generate_report_id()
        super().save(*args, **kwargs)

    def _record(self, admin, notes: str) -> None:
        self.handled_by = admin
        if notes:
            self.admin_notes = notes

    @transition(field=status, source=IncidentStatus.PENDING, target=IncidentStatus.INVESTIGATING)
    def start_investigation(self, admin, notes: str = ""):
        self._record(admin, notes)

    @transition(
        field=status,
        source=[IncidentStatus.PENDING, IncidentStatus.INVESTIGATING],
        target=IncidentStatus.RESOLVED,
    )
    def resolve(self, admin, notes: str = ""):
        self._record(admin, notes)
        self.resolved_at = timezone.now()


class IncidentEvidence(OrderableMixin, BaseModel):
    incident = models.ForeignKey(IncidentReport, on_delete=models.CASCADE, related_name="evidence")
    file = models.FileField(upload_to="incidents/%Y/%m/")
    content_type = models.CharField(max_length=100)

    class Meta:
        ordering = ["position"]
        verbose_name_plural = "incident evidence"


class SuspensionLog(BaseModel):
    """
    One suspension period. ``unsuspended_at`` is null while it lasts;
    a member has at most one open log.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="suspension_logs",
    )
    admin = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="suspensions_issued",
    )
    reason = models.TextField()
    suspended_at = models.DateTimeField(default=timezone.now)
    unsuspended_at = models.DateTimeField(null=True, blank=True)
    unsuspended_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-suspended_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(unsuspended_at__isnull=True),
                name="one_open_suspension_per_user",
            ),
        ]

    def __str__(self) -> str:
        state = "active" if self.is_active else "closed"
        return f"Suspension of user {self.user_id} ({state})"

    @property
    def is_active(self) -> bool:
        return self.unsuspended_at is None
