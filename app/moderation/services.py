"""
Moderation services.

Services:
    ReportService: member reports and their review
    IncidentService: formal incident reports and investigation status
    SuspensionService: suspend and reinstate members

Status changes go through the django-fsm transitions on the models;
a transition that is not allowed from the current state comes back as
INVALID_TRANSITION.

Related files:
    - models.py: UserReport, IncidentReport, IncidentEvidence, SuspensionLog
    - signals.py: user_reported, incident_submitted, user_suspended
"""

from __future__ import annotations

import logging
from datetime import date, time
from typing import TYPE_CHECKING, Iterable

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from authentication.services import AuthService, RoleService
from core.services import BaseService, ServiceResult
from core.validators import validate_evidence_file
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
from moderation.signals import incident_submitted, user_reported, user_suspended

if TYPE_CHECKING:
    from authentication.models import User

logger = logging.getLogger(__name__)


def _not_admin(action: str) -> ServiceResult:
    return ServiceResult.failure(f"Only administrators can {action}", error_code="PERMISSION_DENIED")


def _apply_transition(obj, transitions: dict, status: str, admin: User, notes: str) -> ServiceResult:
    """Run the transition leading to status and save."""
    method_name = transitions.get(status)
    if method_name is None:
        return ServiceResult.failure(f"Unknown status: {status}", error_code="INVALID_STATUS")
    previous = obj.status
    try:
        getattr(obj, method_name)(admin, notes=notes)
    except TransitionNotAllowed:
        return ServiceResult.failure(
            f"Cannot move from {previous} to {status}",
            error_code="INVALID_TRANSITION",
        )
    obj.save()
    return ServiceResult.success(obj)


class ReportService(BaseService):
    """Reports members file against each other."""

    TRANSITIONS = {
        ReportStatus.REVIEWED: "mark_reviewed",
        ReportStatus.RESOLVED: "resolve",
        ReportStatus.DISMISSED: "dismiss",
    }

    @classmethod
    def report_user(
        cls,
        reporter: User,
        reported: User,
        reason: str,
        description: str = "",
    ) -> ServiceResult[UserReport]:
        """
        File a report against another member and alert every admin.

        Error codes:
            SELF_REPORT
            INVALID_REASON
        """
        if reporter.pk == reported.pk:
            return ServiceResult.failure("You cannot report yourself", error_code="SELF_REPORT")
        if reason not in ReportReason.values:
            return ServiceResult.failure(f"Unknown reason: {reason}", error_code="INVALID_REASON")

        report = UserReport.objects.create(
            reporter=reporter,
            reported=reported,
            reason=reason,
            description=(description or "").strip(),
        )
        user_reported.send(sender=UserReport, report=report, admins=list(RoleService.admin_users()))
        cls.get_logger().info(f"User {reported.id} reported by {reporter.id} for {reason}")
        return ServiceResult.success(report)

    @classmethod
    def review(cls, report: UserReport, admin: User, status: str, notes: str = "") -> ServiceResult[UserReport]:
        """
        Move a report along its review workflow.

        pending may become reviewed, resolved or dismissed; reviewed may
        become resolved or dismissed. Resolved and dismissed are final.

        Error codes:
            PERMISSION_DENIED, INVALID_STATUS, INVALID_TRANSITION
        """
        if not RoleService.can_moderate(admin):
            return _not_admin("review reports")

        result = _apply_transition(report, cls.TRANSITIONS, status, admin, notes)
        if result.success:
            cls.get_logger().info(f"Report {report.id} -> {report.status} by admin {admin.id}")
        return result


class IncidentService(BaseService):
    """Formal incident reports."""

    TRANSITIONS = {
        IncidentStatus.INVESTIGATING: "start_investigation",
        IncidentStatus.RESOLVED: "resolve",
    }

    @classmethod
    def submit(
        cls,
        reporter: User,
        *,
        student_name: str,
        student_class: str,
        incident_date: date,
        incident_time: time,
        location: str,
        incident_type: str,
        description: str,
        severity: str = Severity.MEDIUM,
        reporter_class: str = "",
        reporter_contact: str = "",
        witnesses: str = "",
        previous_incidents: bool = False,
        immediate_actions: str = "",
        student: User | None = None,
        evidence_files: Iterable = (),
    ) -> ServiceResult[IncidentReport]:
        """
        File an incident report.

        The reporter's name, role and contact are copied onto the report.
        The contact defaults to the reporter's email.

        Error codes:
            VALIDATION_ERROR: a required field is blank
            INVALID_INCIDENT_TYPE, INVALID_SEVERITY
            TOO_MANY_FILES
            UNSUPPORTED_FILE / FILE_TOO_LARGE
        """
        missing = cls.validate_required(
            student_name=student_name,
            student_class=student_class,
            incident_date=incident_date,
            incident_time=incident_time,
            location=location,
            description=description,
        )
        if missing is not None:
            return missing
        if incident_type not in IncidentType.values:
            return ServiceResult.failure(f"Unknown incident type: {incident_type}", error_code="INVALID_INCIDENT_TYPE")
        if severity not in Severity.values:
            return ServiceResult.failure(f"Unknown severity: {severity}", error_code="INVALID_SEVERITY")

        evidence_files = list(evidence_files)
        max_files = settings.MODERATION_EVIDENCE_MAX_FILES
        if len(evidence_files) > max_files:
            return ServiceResult.failure(f"At most {max_files} evidence files", error_code="TOO_MANY_FILES")
        content_types = []
        for evidence_file in evidence_files:
            try:
                content_types.append(validate_evidence_file(evidence_file))
            except DjangoValidationError as e:
                return ServiceResult.failure(e.messages[0], error_code=e.code or "VALIDATION_ERROR")

        profile = AuthService.get_or_create_profile(reporter)
        with cls.atomic():
            incident = IncidentReport.objects.create(
                reporter=reporter,
                reporter_name=profile.display_name,
                reporter_role=RoleService.role_of(reporter),
                reporter_class=reporter_class.strip(),
                reporter_contact=reporter_contact or reporter.email,
                student=student,
                student_name=student_name.strip(),
                student_class=student_class.strip(),
                incident_date=incident_date,
                incident_time=incident_time,
                location=location.strip(),
                incident_type=incident_type,
                description=description.strip(),
                witnesses=witnesses,
                previous_incidents=previous_incidents,
                immediate_actions=immediate_actions,
                severity=severity,
            )
            for position, (evidence_file, content_type) in enumerate(zip(evidence_files, content_types)):
                IncidentEvidence.objects.create(
                    incident=incident,
                    file=evidence_file,
                    content_type=content_type,
                    position=position,
                )

        incident_submitted.send(sender=IncidentReport, incident=incident, admins=list(RoleService.admin_users()))
        cls.get_logger().info(
            f"Incident {incident.report_id} submitted by user {reporter.id}",
            extra={"severity": severity, "evidence": len(evidence_files)},
        )
        return ServiceResult.success(incident)

    @classmethod
    def update_status(
        cls,
        incident: IncidentReport,
        admin: User,
        status: str,
        notes: str = "",
    ) -> ServiceResult[IncidentReport]:
        """
        pending -> investigating | resolved, investigating -> resolved.

        Error codes:
            PERMISSION_DENIED, INVALID_STATUS, INVALID_TRANSITION
        """
        if not RoleService.can_moderate(admin):
            return _not_admin("update incidents")

        result = _apply_transition(incident, cls.TRANSITIONS, status, admin, notes)
        if result.success:
            cls.get_logger().info(f"Incident {incident.report_id} -> {incident.status} by admin {admin.id}")
        return result


class SuspensionService(BaseService):
    """Suspending members and lifting suspensions."""

    @classmethod
    def suspend(cls, user: User, admin: User, reason: str) -> ServiceResult[SuspensionLog]:
        """
        Suspend a member.

        Outstanding refresh tokens are blacklisted; access tokens are
        refused by ActiveUserJWTAuthentication from now on.

        Error codes:
            PERMISSION_DENIED
            CANNOT_SUSPEND_SELF, CANNOT_SUSPEND_ADMIN
            ALREADY_SUSPENDED
            VALIDATION_ERROR: reason missing
        """
        if not RoleService.can_moderate(admin):
            return _not_admin("suspend members")
        if user.pk == admin.pk:
            return ServiceResult.failure("You cannot suspend yourself", error_code="CANNOT_SUSPEND_SELF")
        if RoleService.can_moderate(user):
            return ServiceResult.failure("Administrators cannot be suspended", error_code="CANNOT_SUSPEND_ADMIN")
        missing = cls.validate_required(reason=reason)
        if missing is not None:
            return missing

        profile = AuthService.get_or_create_profile(user)
        if profile.is_suspended:
            return ServiceResult.failure("User is already suspended", error_code="ALREADY_SUSPENDED")

        with cls.atomic():
            profile.is_suspended = True
            profile.save(update_fields=["is_suspended", "updated_at"])
            log = SuspensionLog.objects.create(user=user, admin=admin, reason=reason.strip())
            revoked = AuthService.blacklist_user_tokens(user)

        user_suspended.send(sender=SuspensionLog, user=user, admin=admin, log=log)
        cls.get_logger().warning(
            f"User {user.id} suspended by admin {admin.id}",
            extra={"reason": log.reason, "revoked_tokens": revoked},
        )
        return ServiceResult.success(log)

    @classmethod
    def unsuspend(cls, user: User, admin: User) -> ServiceResult[SuspensionLog | None]:
        """
        Lift a suspension and close the open log.

        Error codes:
            PERMISSION_DENIED, NOT_SUSPENDED
        """
        if not RoleService.can_moderate(admin):
            return _not_admin("lift suspensions")

        profile = AuthService.get_or_create_profile(user)
        if not profile.is_suspended:
            return ServiceResult.failure("User is not suspended", error_code="NOT_SUSPENDED")

        with cls.atomic():
            profile.is_suspended = False
            profile.save(update_fields=["is_suspended", "updated_at"])
            log = SuspensionLog.objects.filter(user=user, unsuspended_at__isnull=True).first()
            if log is not None:
                log.unsuspended_at = timezone.now()
                log.unsuspended_by = admin
                log.save(update_fields=["unsuspended_at", "unsuspended_by", "updated_at"])

        cls.get_logger().info(f"Suspension of user {user.id} lifted by admin {admin.id}")
        return ServiceResult.success(log)
