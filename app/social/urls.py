"""
URL configuration for the social app.

See social/views.py for the full URL structure.
"""

from django.urls import path
from rest_framework.routers import DefaultRouter

from social.views import (
    BlockDetailView,
    BlockListView,
    ConnectionViewSet,
    FollowersView,
    FollowingView,
    FollowView,
    HobbyCategoryListView,
    HobbyListView,
    MyHobbiesView,
)

app_name = "social"

router = DefaultRouter()
router.register("connections", ConnectionViewSet, basename="connection")

urlpatterns = [
    path("follows/<int:user_id>/", FollowView.as_view(), name="follow"),
    path("followers/", FollowersView.as_view(), name="followers"),
    path("following/", FollowingView.as_view(), name="following"),
    path("blocks/", BlockListView.as_view(), name="block-list"),
    path("blocks/<int:user_id>/", BlockDetailView.as_view(), name="block-detail"),
    path("hobbies/", HobbyListView.as_view(), name="hobby-list"),
    path("hobby-categories/", HobbyCategoryListView.as_view(), name="hobby-category-list"),
    path("my-hobbies/", MyHobbiesView.as_view(), name="my-hobbies"),
] + router.urls
