"""
Authentication models.

- User: email-based login, nothing else
- Profile: identity, role and academic details (OneToOne with User)
- PrivacySettings: who can see which profile sections and who may message
- ClassLeaderInfo: badge and duties for students acting as class leaders

Related files:
    - managers.py: UserManager
    - services.py: AuthService, RoleService, PrivacyService, DirectoryService
    - signals.py: Profile and PrivacySettings auto-creation
"""

import re

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models.functions import Lower

from authentication.managers import UserManager
from core.models import BaseModel

RESERVED_USERNAMES = frozenset([
    "admin", "administrator", "root", "system", "api", "www",
    "support", "help", "contact", "about", "terms", "privacy",
    "security", "account", "login", "logout", "register", "signup",
    "auth", "user", "users", "profile", "profiles", "settings",
    "null", "undefined", "anonymous", "guest", "staff", "mod",
    "moderator", "teacher", "teachers", "student", "students",
    "school", "campus", "official", "announcements", "notification",
])


def validate_username_not_reserved(value):
    if value.lower() in RESERVED_USERNAMES:
        raise ValidationError(
            f"The username '{value}' is reserved and cannot be used."
        )


def validate_username_format(value):
    """3-30 characters of letters, digits, underscores and hyphens."""
    if not re.match(r"^[a-zA-Z0-9_-]{3,30}$", value):
        raise ValidationError(
            "Username must be 3-30 characters and contain only "
            "letters, numbers, underscores, and hyphens."
        )


class UserRole(models.TextChoices):
    """Primary role of a member of the school community."""

    STUDENT = "student", "Student"
    TEACHER = "teacher", "Teacher"
    ADMIN = "admin", "Administrator"


class Visibility(models.TextChoices):
    """Audience for a profile section."""

    PUBLIC = "public", "Everyone"
    CONNECTIONS = "connections", "Connections only"
    PRIVATE = "private", "Only me"


class MessagePermission(models.TextChoices):
    """Who may open a direct conversation with the user."""

    EVERYONE = "everyone", "Everyone"
    CONNECTIONS = "connections", "Connections only"
    NOBODY = "nobody", "Nobody"


class BadgeColor(models.TextChoices):
    BLUE = "blue", "Blue"
    GREEN = "green", "Green"
    PURPLE = "purple", "Purple"
    RED = "red", "Red"
    YELLOW = "yellow", "Yellow"


class User(AbstractBaseUser, PermissionsMixin):
    """
    User identified by email.

    Everything shown to other members lives on Profile; this model only
    carries what login and the admin site need.

    Usage:
        user = User.objects.create_user(email="ada@school.edu", password="...")
        user.profile.role  # "student"
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="Email address used to log in",
    )
    email_verified = models.BooleanField(
        default=False,
        help_text="Whether the email address has been confirmed",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this account can log in. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the account was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        try:
            return self.profile.display_name
        except Profile.DoesNotExist:
            return self.email

    def get_short_name(self):
        try:
            return self.profile.first_name or self.email.split("@")[0]
        except Profile.DoesNotExist:
            return self.email.split("@")[0]

    @property
    def role(self) -> str:
        """Profile role, or student when the profile is missing."""
        try:
            return self.profile.role
        except Profile.DoesNotExist:
            return UserRole.STUDENT

    @property
    def is_suspended(self) -> bool:
        try:
            return self.profile.is_suspended
        except Profile.DoesNotExist:
            return False


class Profile(BaseModel):
    """
    Member profile.

    Fields are grouped by the privacy section that controls them:
    identity (always visible), contact, academic and activities.

    Note:
        Created automatically with the user (see signals.py).
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
        primary_key=True,
        help_text="User this profile belongs to",
    )

    # Identity
    name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Display name",
    )
    first_name = models.CharField(max_length=150, blank=True, help_text="First name")
    last_name = models.CharField(max_length=150, blank=True, help_text="Last name")
    username = models.CharField(
        max_length=30,
        blank=True,
        db_index=True,
        validators=[validate_username_format, validate_username_not_reserved],
        help_text="Unique handle (3-30 chars, alphanumeric + _ + -)",
    )
    avatar = models.ImageField(
        upload_to="avatars/",
        blank=True,
        null=True,
        help_text="Profile picture",
    )
    bio = models.TextField(blank=True, max_length=1000, help_text="Short biography")

    # Role & status
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.STUDENT,
        db_index=True,
        help_text="Primary role in the school",
    )
    is_class_leader = models.BooleanField(
        default=False,
        help_text="Whether this student is a class leader",
    )
    is_suspended = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Suspended members cannot log in, post or message",
    )

    # Academic
    institution = models.CharField(max_length=200, blank=True, help_text="School or university")
    academic_program = models.CharField(
        max_length=200,
        blank=True,
        help_text="Program or track (filiere) the member is enrolled in",
    )
    field_of_study = models.CharField(max_length=200, blank=True, help_text="Field of study")
    year_of_study = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Current year within the program",
    )
    education_level = models.CharField(
        max_length=100,
        blank=True,
        help_text="e.g. high school, bachelor, master",
    )
    graduation_year = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Expected or actual graduation year",
    )

    # Contact
    location_city = models.CharField(max_length=100, blank=True, help_text="City")
    location_country = models.CharField(max_length=100, blank=True, help_text="Country")
    social_links = models.JSONField(
        default=dict,
        blank=True,
        help_text='Links by network, e.g. {"linkedin": "https://..."}',
    )
    contact_preferences = models.JSONField(
        default=dict,
        blank=True,
        help_text='Preferred contact channels, e.g. {"email": true, "phone": false}',
    )

    class Meta:
        db_table = "authentication_profile"
        verbose_name = "profile"
        verbose_name_plural = "profiles"
        constraints = [
            models.UniqueConstraint(
                Lower("username"),
                name="unique_username_case_insensitive",
                condition=models.Q(username__gt=""),
            ),
        ]

    def __str__(self):
        return self.username or str(self.user)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def display_name(self) -> str:
        """Name shown next to posts and messages."""
        return self.name or self.full_name or self.username or self.user.email.split("@")[0]

    @property
    def is_teacher(self) -> bool:
        return self.role in (UserRole.TEACHER, UserRole.ADMIN)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def save(self, *args, **kwargs):
        if self.username:
            self.username = self.username.lower()
        super().save(*args, **kwargs)


class PrivacySettings(BaseModel):
    """
    Per-user privacy choices.

    Identity (name, avatar, role) is always public. The remaining
    sections follow these settings; the owner and admins always see
    everything.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="privacy_settings",
        primary_key=True,
        help_text="User these settings belong to",
    )
    profile_visibility = models.CharField(
        max_length=20,
        choices=Visibility.choices,
        default=Visibility.PUBLIC,
        help_text="Who can open the full profile (bio and sections below)",
    )
    contact_visibility = models.CharField(
        max_length=20,
        choices=Visibility.choices,
        default=Visibility.CONNECTIONS,
        help_text="Who can see location, social links and contact preferences",
    )
    academic_visibility = models.CharField(
        max_length=20,
        choices=Visibility.choices,
        default=Visibility.PUBLIC,
        help_text="Who can see institution, program and graduation details",
    )
    activities_visibility = models.CharField(
        max_length=20,
        choices=Visibility.choices,
        default=Visibility.PUBLIC,
        help_text="Who can see hobbies and activity",
    )
    allow_messages = models.CharField(
        max_length=20,
        choices=MessagePermission.choices,
        default=MessagePermission.EVERYONE,
        help_text="Who can start a direct conversation",
    )

    class Meta:
        db_table = "authentication_privacy_settings"
        verbose_name = "privacy settings"
        verbose_name_plural = "privacy settings"

    def __str__(self):
        return f"Privacy settings for {self.user}"


class ClassLeaderInfo(BaseModel):
    """
    Details shown on a class leader's badge.

    Exists only while Profile.is_class_leader is set; revoking
    leadership deletes the row.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="class_leader_info",
        help_text="Student holding the class leader role",
    )
    class_name = models.CharField(max_length=100, help_text="Class the student leads")
    badge_color = models.CharField(
        max_length=10,
        choices=BadgeColor.choices,
        default=BadgeColor.BLUE,
        help_text="Badge color shown next to the name",
    )
    responsibilities = models.TextField(blank=True, help_text="Duties of this class leader")
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Teacher or admin who assigned the role",
    )

    class Meta:
        db_table = "authentication_class_leader_info"
        verbose_name = "class leader"
        verbose_name_plural = "class leaders"

    def __str__(self):
        return f"{self.user} leads {self.class_name}"
