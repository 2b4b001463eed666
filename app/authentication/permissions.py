"""
Role-based permission classes.

Role Hierarchy:
    ADMIN > TEACHER > STUDENT

    ADMIN can moderate: reports, incidents, suspensions, roles.
    TEACHER (and ADMIN) can teach: pin posts, create events,
    publish announcements, assign class leaders.

Usage:
    class PinView(APIView):
        permission_classes = [IsAuthenticated, IsTeacherOrAdmin]
"""

from rest_framework import permissions

from authentication.services import RoleService


class IsAdminRole(permissions.BasePermission):
    """Allows access only to members with the admin role."""

    message = "Administrator access required."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and RoleService.can_moderate(request.user))


class IsTeacherOrAdmin(permissions.BasePermission):
    """Allows access to teachers and administrators."""

    message = "Teacher or administrator access required."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and RoleService.can_teach(request.user))
