from django.urls import path
from rest_framework.routers import DefaultRouter

from posts.views import CommentDetailView, PostViewSet

app_name = "posts"

router = DefaultRouter()
router.register("", PostViewSet, basename="post")

urlpatterns = [
    path("comments/<uuid:comment_id>/", CommentDetailView.as_view(), name="comment-detail"),
] + router.urls
