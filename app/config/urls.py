"""
Root URL configuration.

URL Structure:
    /                          - ReDoc API documentation
    /schema/                   - OpenAPI schema
    /admin/                    - Django admin
    /health/                   - Health check
    /api/v1/auth/              - dj-rest-auth (login, logout, registration, password, user)
                                 plus profile, privacy, directory and role management
    /api/v1/social/            - Connections, follows, blocks, hobbies
    /api/v1/posts/             - Feed, posts, comments, likes, saves, pins, polls
    /api/v1/chat/              - Conversations, messages, groups, read state
    /api/v1/notifications/     - Notifications, preferences, device tokens
    /api/v1/moderation/        - Reports, incidents, suspensions
    /api/v1/planner/           - To-dos, calendar events, announcements

WebSocket routes are declared in config.asgi.
"""

from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/", include("dj_rest_auth.urls")),
    path("auth/registration/", include("dj_rest_auth.registration.urls")),
    path("auth/", include("authentication.urls")),
    path("social/", include("social.urls")),
    path("posts/", include("posts.urls")),
    path("chat/", include("chat.urls")),
    path("notifications/", include("notifications.urls")),
    path("moderation/", include("moderation.urls")),
    path("planner/", include("planner.urls")),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Campus Connect Admin"
admin.site.site_title = "Campus Connect"
admin.site.index_title = "Administration"
