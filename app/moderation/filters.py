import django_filters as filters

from moderation.models import IncidentReport, SuspensionLog, UserReport


class UserReportFilter(filters.FilterSet):
    reported = filters.NumberFilter(field_name="reported_id")

    class Meta:
        model = UserReport
        fields = ["status", "reason", "reported"]


class IncidentReportFilter(filters.FilterSet):
    start_date = filters.DateFilter(field_name="incident_date", lookup_expr="gte")
    end_date = filters.DateFilter(field_name="incident_date", lookup_expr="lte")
    search = filters.CharFilter(field_name="student_name", lookup_expr="icontains")

    class Meta:
        model = IncidentReport
        fields = ["status", "severity", "incident_type", "start_date", "end_date", "search"]


class SuspensionLogFilter(filters.FilterSet):
    active = filters.BooleanFilter(field_name="unsuspended_at", lookup_expr="isnull")
    user = filters.NumberFilter(field_name="user_id")

    class Meta:
        model = SuspensionLog
        fields = ["active", "user"]
