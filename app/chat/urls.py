"""
URL configuration for chat API.

Mounted at /api/v1/chat/ (see chat.views for the full route table).
WebSocket routes live in chat.routing.
"""

from django.urls import path
from rest_framework.routers import DefaultRouter

from chat.views import (
    ConversationMessagesView,
    ConversationViewSet,
    GroupRuleDetailView,
    JoinRequestReviewView,
    MessageDetailView,
    MessageReactionView,
    MessageReadByView,
    ParticipantDetailView,
    ParticipantListView,
    SharedFilesView,
)

app_name = "chat"

router = DefaultRouter()
router.register("conversations", ConversationViewSet, basename="conversation")

urlpatterns = [
    path(
        "conversations/<uuid:conversation_id>/participants/",
        ParticipantListView.as_view(),
        name="participant-list",
    ),
    path(
        "conversations/<uuid:conversation_id>/participants/<int:user_id>/",
        ParticipantDetailView.as_view(),
        name="participant-detail",
    ),
    path(
        "conversations/<uuid:conversation_id>/messages/",
        ConversationMessagesView.as_view(),
        name="message-list",
    ),
    path("messages/<uuid:message_id>/", MessageDetailView.as_view(), name="message-detail"),
    path("messages/<uuid:message_id>/reactions/", MessageReactionView.as_view(), name="message-reactions"),
    path("messages/<uuid:message_id>/read-by/", MessageReadByView.as_view(), name="message-read-by"),
    path(
        "join-requests/<int:request_id>/approve/",
        JoinRequestReviewView.as_view(approve=True),
        name="join-request-approve",
    ),
    path(
        "join-requests/<int:request_id>/reject/",
        JoinRequestReviewView.as_view(approve=False),
        name="join-request-reject",
    ),
    path("rules/<int:rule_id>/", GroupRuleDetailView.as_view(), name="rule-detail"),
    path("attachments/", SharedFilesView.as_view(), name="shared-files"),
] + router.urls
