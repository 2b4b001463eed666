"""
API tests for moderation endpoints.

Test Classes:
    TestReports: Filing and reviewing member reports
    TestIncidents: Incident submission and investigation
    TestSuspensions: Suspend, unsuspend and history
"""

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from rest_framework import status

from moderation.models import IncidentReport, IncidentStatus, ReportStatus, UserReport
from moderation.tests.factories import IncidentReportFactory, SuspensionLogFactory, UserReportFactory

pytestmark = pytest.mark.django_db

REPORTS_URL = "/api/v1/moderation/reports/"
INCIDENTS_URL = "/api/v1/moderation/incidents/"
SUSPENSIONS_URL = "/api/v1/moderation/suspensions/"


def _suspend_url(user):
    return f"/api/v1/moderation/users/{user.id}/suspend/"


def _unsuspend_url(user):
    return f"/api/v1/moderation/users/{user.id}/unsuspend/"


class TestReports:
    def test_member_files_report(self, authenticated_client, other_user):
        response = authenticated_client.post(
            REPORTS_URL,
            {"user_id": other_user.id, "reason": "impersonation", "description": "Uses my photo"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["status"] == "pending"
        assert response.data["reported"]["display_name"] == other_user.profile.display_name

    def test_self_report_is_rejected(self, authenticated_client, user):
        response = authenticated_client.post(REPORTS_URL, {"user_id": user.id, "reason": "spam"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "SELF_REPORT"

    def test_unknown_reported_user(self, authenticated_client):
        response = authenticated_client.post(REPORTS_URL, {"user_id": 999999, "reason": "spam"}, format="json")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_members_cannot_list(self, authenticated_client):
        assert authenticated_client.get(REPORTS_URL).status_code == status.HTTP_403_FORBIDDEN

    def test_admin_lists_with_status_filter(self, authenticated_client_factory, admin_member):
        UserReportFactory.create_batch(2)
        UserReportFactory(status=ReportStatus.RESOLVED)
        client = authenticated_client_factory(admin_member)

        everything = client.get(REPORTS_URL)
        resolved = client.get(REPORTS_URL, {"status": "resolved"})

        assert everything.data["count"] == 3
        assert resolved.data["count"] == 1

    def test_admin_reviews(self, authenticated_client_factory, admin_member):
        report = UserReportFactory()
        client = authenticated_client_factory(admin_member)

        response = client.post(
            f"{REPORTS_URL}{report.id}/review/", {"status": "dismissed", "notes": "No evidence"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == "dismissed"
        assert response.data["reviewed_by"]["display_name"] == admin_member.profile.display_name

    def test_review_of_closed_report(self, authenticated_client_factory, admin_member):
        report = UserReportFactory(status=ReportStatus.RESOLVED)
        client = authenticated_client_factory(admin_member)

        response = client.post(f"{REPORTS_URL}{report.id}/review/", {"status": "dismissed"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "INVALID_TRANSITION"

    def test_teacher_cannot_review(self, authenticated_client_factory, teacher):
        report = UserReportFactory()

        response = authenticated_client_factory(teacher).post(
            f"{REPORTS_URL}{report.id}/review/", {"status": "resolved"}, format="json"
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert UserReport.objects.get(pk=report.pk).status == ReportStatus.PENDING


class TestIncidents:
    PAYLOAD = {
        "student_name": "Sam Carter",
        "student_class": "9B",
        "incident_date": "2026-03-02",
        "incident_time": "12:15",
        "location": "Playground",
        "incident_type": "property_damage",
        "description": "Broke a window with a ball.",
        "severity": "low",
    }

    def test_submit_with_evidence(self, authenticated_client_factory, teacher):
        evidence = SimpleUploadedFile("window.png", b"\x89PNG\r\n\x1a\n" + b"0" * 64, content_type="image/png")

        response = authenticated_client_factory(teacher).post(
            INCIDENTS_URL, {**self.PAYLOAD, "evidence": [evidence]}, format="multipart"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["report_id"].startswith("IR-")
        assert response.data["reporter_role"] == "teacher"
        assert [e["content_type"] for e in response.data["evidence"]] == ["image/png"]

    def test_submit_as_json(self, authenticated_client):
        response = authenticated_client.post(INCIDENTS_URL, self.PAYLOAD, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert IncidentReport.objects.count() == 1

    def test_invalid_type_rejected_by_serializer(self, authenticated_client):
        response = authenticated_client.post(
            INCIDENTS_URL, {**self.PAYLOAD, "incident_type": "arson"}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_members_cannot_read_incidents(self, authenticated_client):
        incident = IncidentReportFactory()

        assert authenticated_client.get(INCIDENTS_URL).status_code == status.HTTP_403_FORBIDDEN
        assert authenticated_client.get(f"{INCIDENTS_URL}{incident.id}/").status_code == status.HTTP_403_FORBIDDEN

    def test_admin_filters_by_severity(self, authenticated_client_factory, admin_member):
        IncidentReportFactory(severity="high")
        IncidentReportFactory(severity="low")

        response = authenticated_client_factory(admin_member).get(INCIDENTS_URL, {"severity": "high"})

        assert response.data["count"] == 1
        assert response.data["results"][0]["severity"] == "high"

    def test_admin_updates_status(self, authenticated_client_factory, admin_member):
        incident = IncidentReportFactory()

        response = authenticated_client_factory(admin_member).post(
            f"{INCIDENTS_URL}{incident.id}/status/", {"status": "investigating"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == IncidentStatus.INVESTIGATING


class TestSuspensions:
    def test_suspend_and_unsuspend(self, authenticated_client_factory, admin_member, user):
        client = authenticated_client_factory(admin_member)

        suspended = client.post(_suspend_url(user), {"reason": "Spam"}, format="json")
        assert suspended.status_code == status.HTTP_201_CREATED
        assert suspended.data["is_active"] is True

        reinstated = client.post(_unsuspend_url(user))
        assert reinstated.status_code == status.HTTP_200_OK
        assert reinstated.data["is_suspended"] is False
        assert reinstated.data["suspension"]["is_active"] is False

    def test_suspended_member_is_locked_out(self, authenticated_client_factory, admin_member, user):
        member_client = authenticated_client_factory(user)
        assert member_client.get("/api/v1/notifications/").status_code == status.HTTP_200_OK

        authenticated_client_factory(admin_member).post(_suspend_url(user), {"reason": "Spam"}, format="json")

        assert member_client.get("/api/v1/notifications/").status_code == status.HTTP_401_UNAUTHORIZED

    def test_double_suspension_conflicts(self, authenticated_client_factory, admin_member, user):
        client = authenticated_client_factory(admin_member)
        client.post(_suspend_url(user), {"reason": "Spam"}, format="json")

        response = client.post(_suspend_url(user), {"reason": "Spam"}, format="json")

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_teacher_cannot_suspend(self, authenticated_client_factory, teacher, user):
        response = authenticated_client_factory(teacher).post(_suspend_url(user), {"reason": "x"}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_history_filters_active(self, authenticated_client_factory, admin_member, user, other_user):
        SuspensionLogFactory(user=user)
        SuspensionLogFactory(user=other_user, unsuspended_at=timezone.now())
        client = authenticated_client_factory(admin_member)

        response = client.get(SUSPENSIONS_URL, {"active": "true"})

        assert response.data["count"] == 1
        assert response.data["results"][0]["user"]["display_name"] == user.profile.display_name
