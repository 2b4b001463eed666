"""
Django admin configuration for moderation.

Status fields are FSM-managed and read-only here; use the API actions to
move reports along.
"""

from django.contrib import admin

from moderation.models import IncidentEvidence, IncidentReport, SuspensionLog, UserReport


@admin.register(UserReport)
class UserReportAdmin(admin.ModelAdmin):
    list_display = ("reporter", "reported", "reason", "status", "created_at", "reviewed_at")
    list_filter = ("status", "reason")
    search_fields = ("reporter__email", "reported__email", "description")
    raw_id_fields = ("reporter", "reported", "reviewed_by")
    readonly_fields = ("status", "reviewed_at")


class IncidentEvidenceInline(admin.TabularInline):
    model = IncidentEvidence
    extra = 0
    fields = ("file", "content_type", "position")
    readonly_fields = ("content_type",)


@admin.register(IncidentReport)
class IncidentReportAdmin(admin.ModelAdmin):
    list_display = ("report_id", "incident_type", "student_name", "severity", "status", "incident_date")
    list_filter = ("status", "severity", "incident_type")
    search_fields = ("report_id", "student_name", "reporter_name", "location")
    raw_id_fields = ("reporter", "student", "handled_by")
    readonly_fields = ("report_id", "status", "resolved_at")
    inlines = [IncidentEvidenceInline]


@admin.register(SuspensionLog)
class SuspensionLogAdmin(admin.ModelAdmin):
    list_display = ("user", "admin", "suspended_at", "unsuspended_at")
    list_filter = ("unsuspended_at",)
    search_fields = ("user__email", "reason")
    raw_id_fields = ("user", "admin", "unsuspended_by")
