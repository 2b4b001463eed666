"""
URL configuration for the authentication app.

URL structure:
    /api/v1/auth/profile/                          - Own profile (GET/PUT/PATCH)
    /api/v1/auth/privacy/                          - Own privacy settings (GET/PATCH)
    /api/v1/auth/deactivate/                       - Deactivate own account
    /api/v1/auth/users/                            - Member search
    /api/v1/auth/users/<user_id>/                  - Member profile
    /api/v1/auth/users/<user_id>/role/             - Change role (admin)
    /api/v1/auth/users/<user_id>/class-leader/     - Assign/revoke class leader

dj-rest-auth endpoints (login, logout, user, password, registration)
are included from config/urls.py under the same prefix.
"""

from django.urls import path

from authentication.views import (
    ClassLeaderView,
    DeactivateAccountView,
    PrivacySettingsView,
    ProfileView,
    UserDetailView,
    UserDirectoryView,
    UserRoleView,
)

app_name = "authentication"

urlpatterns = [
    path("profile/", ProfileView.as_view(), name="profile"),
    path("privacy/", PrivacySettingsView.as_view(), name="privacy"),
    path("deactivate/", DeactivateAccountView.as_view(), name="deactivate"),
    path("users/", UserDirectoryView.as_view(), name="user-list"),
    path("users/<int:user_id>/", UserDetailView.as_view(), name="user-detail"),
    path("users/<int:user_id>/role/", UserRoleView.as_view(), name="user-role"),
    path("users/<int:user_id>/class-leader/", ClassLeaderView.as_view(), name="user-class-leader"),
]
