"""
Serializers for posts, comments and polls.
"""

import json

from rest_framework import serializers

from authentication.serializers import UserCardField
from posts.models import Comment, Post, PostMedia
from posts.services import MAX_POLL_OPTIONS, MIN_POLL_OPTIONS, PollService


class PostMediaSerializer(serializers.ModelSerializer):
    class Meta:
        model = PostMedia
        fields = ["id", "file", "media_type", "position"]
        read_only_fields = fields


class PostSerializer(serializers.ModelSerializer):
    author = UserCardField()
    media = PostMediaSerializer(many=True, read_only=True)
    poll = serializers.SerializerMethodField()
    is_liked = serializers.SerializerMethodField()
    is_saved = serializers.SerializerMethodField()
    link = serializers.CharField(read_only=True)

    class Meta:
        model = Post
        fields = [
            "id",
            "author",
            "content",
            "formatted_content",
            "media",
            "poll",
            "is_pinned",
            "pinned_at",
            "like_count",
            "comment_count",
            "is_liked",
            "is_saved",
            "link",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_poll(self, obj):
        poll = getattr(obj, "poll", None)
        if poll is None:
            return None
        request = self.context.get("request")
        return PollService.results(poll, request.user if request else None)

    def get_is_liked(self, obj):
        if hasattr(obj, "is_liked"):
            return bool(obj.is_liked)
        request = self.context.get("request")
        return bool(request) and obj.likes.filter(user=request.user).exists()

    def get_is_saved(self, obj):
        if hasattr(obj, "is_saved"):
            return bool(obj.is_saved)
        request = self.context.get("request")
        return bool(request) and obj.saves.filter(user=request.user).exists()


class PollInputSerializer(serializers.Serializer):
    question = serializers.CharField(max_length=300)
    options = serializers.ListField(
        child=serializers.CharField(max_length=200),
        min_length=MIN_POLL_OPTIONS,
        max_length=MAX_POLL_OPTIONS,
    )
    end_date = serializers.DateTimeField(required=False, allow_null=True)


class PostCreateSerializer(serializers.Serializer):
    """
    New post input.

    ``poll`` may be a JSON object, or a JSON string when the request is
    multipart because it carries media files.
    """

    content = serializers.CharField(required=False, allow_blank=True, max_length=5000, default="")
    formatted_content = serializers.JSONField(required=False, default=dict)
    media = serializers.ListField(child=serializers.FileField(), required=False, default=list)
    poll = serializers.JSONField(required=False, allow_null=True, default=None)

    def validate_poll(self, value):
        if value in (None, ""):
            return None
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                raise serializers.ValidationError("Poll must be a JSON object.")
        poll = PollInputSerializer(data=value)
        poll.is_valid(raise_exception=True)
        return poll.validated_data


class PostUpdateSerializer(serializers.Serializer):
    content = serializers.CharField(required=False, allow_blank=True, max_length=5000)
    formatted_content = serializers.JSONField(required=False)


class CommentSerializer(serializers.ModelSerializer):
    author = UserCardField()

    class Meta:
        model = Comment
        fields = ["id", "post", "author", "content", "created_at"]
        read_only_fields = fields


class CommentCreateSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=2000)


class VoteSerializer(serializers.Serializer):
    option_id = serializers.IntegerField()


class ShareSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    message = serializers.CharField(required=False, allow_blank=True, default="", max_length=1000)
