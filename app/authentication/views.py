"""
Authentication views.

Endpoints not covered by dj-rest-auth:
    - ProfileView: own profile (GET/PUT/PATCH)
    - PrivacySettingsView: own privacy settings (GET/PATCH)
    - UserDirectoryView: member search
    - UserDetailView: another member's profile, filtered by privacy
    - UserRoleView: change a member's role (admin)
    - ClassLeaderView: assign or revoke class leadership (teacher/admin)
    - DeactivateAccountView: deactivate own account

Login, logout, registration, password and token endpoints come from
dj-rest-auth (see config/urls.py).
"""

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import generics, status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.models import Profile, User, UserRole
from authentication.permissions import IsAdminRole, IsTeacherOrAdmin
from authentication.serializers import (
    ClassLeaderInfoSerializer,
    ClassLeaderSerializer,
    PrivacySettingsSerializer,
    ProfileCardSerializer,
    ProfileSerializer,
    ProfileUpdateSerializer,
    PublicProfileSerializer,
    RoleUpdateSerializer,
)
from authentication.services import AuthService, DirectoryService, PrivacyService, RoleService


def _failure(result):
    return Response(result.to_response(), status=result.status_code)


# =============================================================================
# Own Profile & Account
# =============================================================================


class ProfileView(APIView):
    """
    Current user's profile.

    URL: /api/v1/auth/profile/
    """

    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    @extend_schema(
        operation_id="auth_profile_retrieve",
        summary="Get my profile",
        tags=["Auth - Profile"],
        responses={200: ProfileSerializer},
    )
    def get(self, request):
        profile = AuthService.get_or_create_profile(request.user)
        return Response(ProfileSerializer(profile, context={"request": request}).data)

    @extend_schema(
        operation_id="auth_profile_update",
        summary="Replace my profile",
        tags=["Auth - Profile"],
        request=ProfileUpdateSerializer,
        responses={200: ProfileSerializer},
    )
    def put(self, request):
        return self._update_profile(request, partial=False)

    @extend_schema(
        operation_id="auth_profile_partial_update",
        summary="Update my profile",
        tags=["Auth - Profile"],
        request=ProfileUpdateSerializer,
        responses={200: ProfileSerializer},
    )
    def patch(self, request):
        return self._update_profile(request, partial=True)

    def _update_profile(self, request, partial=False):
        profile = AuthService.get_or_create_profile(request.user)
        serializer = ProfileUpdateSerializer(
            profile,
            data=request.data,
            partial=partial,
            context={"request": request, "user": request.user},
        )
        serializer.is_valid(raise_exception=True)
        updated_profile = serializer.save()
        return Response(ProfileSerializer(updated_profile, context={"request": request}).data)


class PrivacySettingsView(APIView):
    """
    Current user's privacy settings.

    URL: /api/v1/auth/privacy/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="auth_privacy_retrieve",
        summary="Get my privacy settings",
        tags=["Auth - Profile"],
        responses={200: PrivacySettingsSerializer},
    )
    def get(self, request):
        return Response(PrivacySettingsSerializer(PrivacyService.get_settings(request.user)).data)

    @extend_schema(
        operation_id="auth_privacy_partial_update",
        summary="Update my privacy settings",
        tags=["Auth - Profile"],
        request=PrivacySettingsSerializer,
        responses={200: PrivacySettingsSerializer},
    )
    def patch(self, request):
        serializer = PrivacySettingsSerializer(
            PrivacyService.get_settings(request.user),
            data=request.data,
            partial=True,
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class DeactivateAccountView(APIView):
    """
    Deactivate the current account.

    URL: /api/v1/auth/deactivate/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="auth_deactivate_create",
        summary="Deactivate account",
        description="Disable login and revoke refresh tokens. Content stays in place.",
        tags=["Auth - Profile"],
    )
    def post(self, request):
        AuthService.deactivate_user(request.user, request.data.get("reason", ""))
        return Response({"detail": "Account deactivated successfully"})


# =============================================================================
# Directory
# =============================================================================


@extend_schema(
    operation_id="auth_users_list",
    summary="Search members",
    tags=["Auth - Directory"],
    parameters=[
        OpenApiParameter("search", str, description="Name, username or academic program"),
        OpenApiParameter("role", str, enum=UserRole.values),
    ],
)
class UserDirectoryView(generics.ListAPIView):
    """
    Member search.

    URL: /api/v1/auth/users/?search=<text>&role=<role>
    """

    permission_classes = [IsAuthenticated]
    serializer_class = ProfileCardSerializer

    def get_queryset(self):
        return DirectoryService.search(
            self.request.user,
            query=self.request.query_params.get("search", ""),
            role=self.request.query_params.get("role") or None,
        )


class UserDetailView(APIView):
    """
    Another member's profile.

    URL: /api/v1/auth/users/<user_id>/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="auth_users_retrieve",
        summary="Get a member's profile",
        tags=["Auth - Directory"],
        responses={200: PublicProfileSerializer},
    )
    def get(self, request, user_id):
        from social.services import BlockService

        profile = get_object_or_404(
            Profile.objects.select_related("user"),
            user_id=user_id,
            user__is_active=True,
        )
        if BlockService.is_blocked_between(request.user, profile.user) and not RoleService.can_moderate(
            request.user
        ):
            return Response({"error": "Profile not found", "error_code": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        return Response(PublicProfileSerializer(profile, context={"request": request}).data)


# =============================================================================
# Roles
# =============================================================================


class UserRoleView(APIView):
    """
    Change a member's role.

    URL: /api/v1/auth/users/<user_id>/role/
    """

    permission_classes = [IsAuthenticated, IsAdminRole]

    @extend_schema(
        operation_id="auth_users_role_create",
        summary="Change a member's role",
        tags=["Auth - Directory"],
        request=RoleUpdateSerializer,
        responses={200: ProfileSerializer},
    )
    def post(self, request, user_id):
        serializer = RoleUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = get_object_or_404(User, pk=user_id)

        result = RoleService.set_role(user, serializer.validated_data["role"], changed_by=request.user)
        if not result.success:
            return _failure(result)
        return Response(ProfileSerializer(result.data, context={"request": request}).data)


class ClassLeaderView(APIView):
    """
    Class leadership of a student.

    URL: /api/v1/auth/users/<user_id>/class-leader/
        POST: assign or update the badge
        DELETE: revoke
    """

    permission_classes = [IsAuthenticated, IsTeacherOrAdmin]

    @extend_schema(
        operation_id="auth_users_class_leader_create",
        summary="Assign a class leader",
        tags=["Auth - Directory"],
        request=ClassLeaderSerializer,
        responses={200: ClassLeaderInfoSerializer},
    )
    def post(self, request, user_id):
        serializer = ClassLeaderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = get_object_or_404(User, pk=user_id)

        result = RoleService.assign_class_leader(user, request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(ClassLeaderInfoSerializer(result.data).data)

    @extend_schema(
        operation_id="auth_users_class_leader_destroy",
        summary="Revoke a class leader",
        tags=["Auth - Directory"],
        responses={204: None},
    )
    def delete(self, request, user_id):
        user = get_object_or_404(User, pk=user_id)
        result = RoleService.revoke_class_leader(user, request.user)
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)
