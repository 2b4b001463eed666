"""
Serializers for the social graph.
"""

from rest_framework import serializers

from authentication.serializers import ProfileCardSerializer, UserCardField
from social.models import Block, Connection, Follow, Hobby, HobbyCategory, UserHobby


class ConnectionSerializer(serializers.ModelSerializer):
    requester = UserCardField()
    recipient = UserCardField()
    other_user = serializers.SerializerMethodField()

    class Meta:
        model = Connection
        fields = ["id", "requester", "recipient", "other_user", "status", "responded_at", "created_at"]
        read_only_fields = fields

    def get_other_user(self, obj):
        request = self.context.get("request")
        if not request or not obj.involves(request.user):
            return None
        profile = getattr(obj.other(request.user), "profile", None)
        if profile is None:
            return None
        return ProfileCardSerializer(profile, context=self.context).data


class ConnectionRequestSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()


class ConnectionRespondSerializer(serializers.Serializer):
    accept = serializers.BooleanField()


class FollowSerializer(serializers.ModelSerializer):
    follower = UserCardField()
    following = UserCardField()

    class Meta:
        model = Follow
        fields = ["id", "follower", "following", "created_at"]
        read_only_fields = fields


class BlockSerializer(serializers.ModelSerializer):
    blocked = UserCardField()

    class Meta:
        model = Block
        fields = ["id", "blocked", "reason", "created_at"]
        read_only_fields = fields


class BlockCreateSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class HobbyCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = HobbyCategory
        fields = ["id", "name", "description", "icon"]


class HobbySerializer(serializers.ModelSerializer):
    category = HobbyCategorySerializer(read_only=True)

    class Meta:
        model = Hobby
        fields = ["id", "name", "description", "category", "time_commitment", "cost_level"]


class UserHobbySerializer(serializers.ModelSerializer):
    hobby = HobbySerializer(read_only=True)

    class Meta:
        model = UserHobby
        fields = ["hobby", "is_favorite", "priority"]


class UserHobbyEntrySerializer(serializers.Serializer):
    hobby = serializers.IntegerField()
    is_favorite = serializers.BooleanField(required=False, default=False)
    priority = serializers.IntegerField(required=False, default=3, min_value=1, max_value=5)


class UserHobbiesUpdateSerializer(serializers.Serializer):
    hobbies = UserHobbyEntrySerializer(many=True)
