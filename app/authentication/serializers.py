"""
Serializers for authentication models.

- UserSerializer: dj-rest-auth user details
- ProfileSerializer / ProfileUpdateSerializer: own profile
- PublicProfileSerializer: another member's profile, filtered by privacy
- ProfileCardSerializer: compact identity used across apps
- PrivacySettingsSerializer, RoleUpdateSerializer, ClassLeaderSerializer
- RegisterSerializer: dj-rest-auth registration
"""

import re

from django.core.validators import FileExtensionValidator
from rest_framework import serializers

from authentication.models import (
    RESERVED_USERNAMES,
    BadgeColor,
    ClassLeaderInfo,
    PrivacySettings,
    Profile,
    User,
    UserRole,
)
from authentication.services import PROFILE_SECTIONS, PrivacyService


def _avatar_url(profile, request):
    if not profile.avatar:
        return None
    return request.build_absolute_uri(profile.avatar.url) if request else profile.avatar.url


class UserSerializer(serializers.ModelSerializer):
    """Current user for /api/v1/auth/user/."""

    full_name = serializers.SerializerMethodField()
    username = serializers.CharField(source="profile.username", read_only=True)
    role = serializers.CharField(source="profile.role", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "full_name",
            "username",
            "role",
            "email_verified",
            "date_joined",
        ]
        read_only_fields = fields

    def get_full_name(self, obj):
        return obj.get_full_name()


class ClassLeaderInfoSerializer(serializers.ModelSerializer):
    class Meta:
        model = ClassLeaderInfo
        fields = ["class_name", "badge_color", "responsibilities"]
        read_only_fields = fields


class ProfileCardSerializer(serializers.ModelSerializer):
    """
    Identity shown next to posts, comments, messages and members.

    Always public regardless of privacy settings.
    """

    id = serializers.IntegerField(source="user_id", read_only=True)
    display_name = serializers.CharField(read_only=True)
    avatar_url = serializers.SerializerMethodField()
    class_leader = ClassLeaderInfoSerializer(source="user.class_leader_info", read_only=True, default=None)

    class Meta:
        model = Profile
        fields = [
            "id",
            "display_name",
            "username",
            "avatar_url",
            "role",
            "is_class_leader",
            "class_leader",
        ]
        read_only_fields = fields

    def get_avatar_url(self, obj):
        return _avatar_url(obj, self.context.get("request"))


class UserCardField(serializers.Field):
    """Renders a User as its ProfileCardSerializer card."""

    def __init__(self, **kwargs):
        kwargs.setdefault("read_only", True)
        super().__init__(**kwargs)

    def to_representation(self, value):
        profile = getattr(value, "profile", None)
        if profile is None:
            return None
        return ProfileCardSerializer(profile, context=self.context).data


class ProfileSerializer(serializers.ModelSerializer):
    """Own profile with every field."""

    user_id = serializers.IntegerField(source="user.id", read_only=True)
    user_email = serializers.EmailField(source="user.email", read_only=True)
    display_name = serializers.CharField(read_only=True)
    full_name = serializers.CharField(read_only=True)
    avatar_url = serializers.SerializerMethodField()
    is_complete = serializers.SerializerMethodField()
    class_leader = ClassLeaderInfoSerializer(source="user.class_leader_info", read_only=True, default=None)

    class Meta:
        model = Profile
        fields = [
            "user_id",
            "user_email",
            "name",
            "username",
            "first_name",
            "last_name",
            "display_name",
            "full_name",
            "avatar",
            "avatar_url",
            "bio",
            "role",
            "is_class_leader",
            "class_leader",
            "is_suspended",
            "institution",
            "academic_program",
            "field_of_study",
            "year_of_study",
            "education_level",
            "graduation_year",
            "location_city",
            "location_country",
            "social_links",
            "contact_preferences",
            "is_complete",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_avatar_url(self, obj):
        return _avatar_url(obj, self.context.get("request"))

    def get_is_complete(self, obj):
        return bool(obj.username)


class PublicProfileSerializer(ProfileSerializer):
    """
    Another member's profile.

    Sections the viewer may not see are dropped from the output and
    contact details never include the email address.
    """

    hobbies = serializers.SerializerMethodField()

    class Meta(ProfileSerializer.Meta):
        fields = [
            name
            for name in ProfileSerializer.Meta.fields
            if name not in ("user_email", "is_suspended", "is_complete", "updated_at")
        ] + ["hobbies"]
        read_only_fields = fields

    def get_hobbies(self, obj):
        from social.serializers import UserHobbySerializer

        hobbies = obj.user.user_hobbies.select_related("hobby", "hobby__category")
        return UserHobbySerializer(hobbies, many=True).data

    def to_representation(self, instance):
        data = super().to_representation(instance)
        viewer = self.context["request"].user
        visible = PrivacyService.visible_sections(instance.user, viewer)
        for section, field_names in PROFILE_SECTIONS.items():
            if section not in visible:
                for field_name in field_names:
                    data.pop(field_name, None)
        data["visible_sections"] = sorted(visible)
        return data


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Editable profile fields.

    Role, suspension and class leadership are managed by staff through
    their own endpoints and are not accepted here.
    """

    username = serializers.CharField(
        min_length=3,
        max_length=30,
        required=False,
        allow_blank=False,
        help_text="Unique username (3-30 chars, alphanumeric + _ + -)",
    )
    avatar = serializers.ImageField(
        required=False,
        allow_null=True,
        validators=[FileExtensionValidator(allowed_extensions=["jpg", "jpeg", "png", "gif"])],
    )

    class Meta:
        model = Profile
        fields = [
            "name",
            "username",
            "first_name",
            "last_name",
            "avatar",
            "bio",
            "institution",
            "academic_program",
            "field_of_study",
            "year_of_study",
            "education_level",
            "graduation_year",
            "location_city",
            "location_country",
            "social_links",
            "contact_preferences",
        ]

    def validate_username(self, value):
        username = value.lower().strip()

        if not re.match(r"^[a-zA-Z0-9_-]{3,30}$", username):
            raise serializers.ValidationError(
                "Username must be 3-30 characters and contain only "
                "letters, numbers, underscores, and hyphens."
            )
        if username in RESERVED_USERNAMES:
            raise serializers.ValidationError(f"The username '{username}' is reserved and cannot be used.")

        existing = Profile.objects.filter(username__iexact=username)
        user = self.context.get("user")
        if user:
            existing = existing.exclude(user=user)
        if existing.exists():
            raise serializers.ValidationError("This username is already taken.")
        return username

    def validate_avatar(self, value):
        if value and value.size > 5 * 1024 * 1024:
            raise serializers.ValidationError("Avatar must be smaller than 5MB.")
        return value

    def validate_social_links(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Social links must be a JSON object.")
        for network, url in value.items():
            if not isinstance(url, str) or not url.startswith(("http://", "https://")):
                raise serializers.ValidationError(f"Link for '{network}' must be an http(s) URL.")
        return value

    def validate_contact_preferences(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Contact preferences must be a JSON object.")
        return value


class PrivacySettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = PrivacySettings
        fields = [
            "profile_visibility",
            "contact_visibility",
            "academic_visibility",
            "activities_visibility",
            "allow_messages",
            "updated_at",
        ]
        read_only_fields = ["updated_at"]


class RoleUpdateSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=UserRole.choices)


class ClassLeaderSerializer(serializers.Serializer):
    class_name = serializers.CharField(max_length=100)
    badge_color = serializers.ChoiceField(choices=BadgeColor.choices, default=BadgeColor.BLUE)
    responsibilities = serializers.CharField(required=False, allow_blank=True, default="")


class RegisterSerializer(serializers.Serializer):
    """
    Email/password registration used by dj-rest-auth.

    New accounts are students; staff roles are granted by an admin.
    """

    email = serializers.EmailField(required=True)
    name = serializers.CharField(required=False, allow_blank=True, max_length=150)
    password1 = serializers.CharField(
        write_only=True,
        min_length=8,
        style={"input_type": "password"},
        help_text="Password must be at least 8 characters.",
    )
    password2 = serializers.CharField(
        write_only=True,
        style={"input_type": "password"},
        help_text="Confirm your password.",
    )

    def validate_email(self, value):
        email = value.lower().strip()
        if User.objects.filter(email__iexact=email).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return email

    def validate(self, attrs):
        if attrs["password1"] != attrs["password2"]:
            raise serializers.ValidationError({"password2": "Passwords do not match."})
        return attrs

    def get_cleaned_data(self):
        return {
            "email": self.validated_data.get("email", ""),
            "password1": self.validated_data.get("password1", ""),
        }

    def save(self, request):
        """Signature required by dj-rest-auth, which passes the request."""
        user = User.objects.create_user(
            email=self.validated_data["email"],
            password=self.validated_data["password1"],
        )
        name = self.validated_data.get("name", "").strip()
        if name:
            user.profile.name = name
            user.profile.save(update_fields=["name", "updated_at"])
        return user
