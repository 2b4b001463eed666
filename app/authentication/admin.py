"""
Django admin configuration for authentication models.

Registers User, Profile, PrivacySettings and ClassLeaderInfo.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import ClassLeaderInfo, PrivacySettings, Profile, User


class ProfileInline(admin.StackedInline):
    model = Profile
    can_delete = False
    fk_name = "user"
    fields = ("name", "username", "role", "is_class_leader", "is_suspended")


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Email-based user admin.

    Identity and role live on the profile, shown inline.
    """

    inlines = [ProfileInline]
    list_display = (
        "email",
        "role_display",
        "email_verified",
        "is_active",
        "date_joined",
    )
    list_filter = (
        "is_active",
        "is_staff",
        "email_verified",
        "profile__role",
        "profile__is_suspended",
    )
    search_fields = ("email", "profile__username", "profile__name")
    ordering = ("-date_joined",)

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Status", {"fields": ("email_verified", "is_active", "is_staff", "is_superuser")}),
        ("Permissions", {"fields": ("groups", "user_permissions")}),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )
    add_fieldsets = (
        (None, {"classes": ("wide",), "fields": ("email", "password1", "password2")}),
    )
    readonly_fields = ("date_joined", "last_login")

    @admin.display(description="Role")
    def role_display(self, obj):
        return obj.role


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "username", "name", "role", "is_class_leader", "is_suspended", "institution")
    list_filter = ("role", "is_class_leader", "is_suspended", "education_level")
    search_fields = ("user__email", "username", "name", "first_name", "last_name")
    ordering = ("-created_at",)
    raw_id_fields = ("user",)
    readonly_fields = ("created_at", "updated_at")

    fieldsets = (
        ("User", {"fields": ("user",)}),
        ("Identity", {"fields": ("name", "username", "first_name", "last_name", "avatar", "bio")}),
        ("Role", {"fields": ("role", "is_class_leader", "is_suspended")}),
        (
            "Academic",
            {
                "fields": (
                    "institution",
                    "academic_program",
                    "field_of_study",
                    "year_of_study",
                    "education_level",
                    "graduation_year",
                )
            },
        ),
        ("Contact", {"fields": ("location_city", "location_country", "social_links", "contact_preferences")}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )


@admin.register(PrivacySettings)
class PrivacySettingsAdmin(admin.ModelAdmin):
    list_display = ("user", "profile_visibility", "contact_visibility", "academic_visibility", "allow_messages")
    list_filter = ("profile_visibility", "allow_messages")
    search_fields = ("user__email",)
    raw_id_fields = ("user",)


@admin.register(ClassLeaderInfo)
class ClassLeaderInfoAdmin(admin.ModelAdmin):
    list_display = ("user", "class_name", "badge_color", "assigned_by", "created_at")
    list_filter = ("badge_color",)
    search_fields = ("user__email", "class_name")
    raw_id_fields = ("user", "assigned_by")
