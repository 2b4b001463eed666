"""
User manager for email-based accounts.
"""

from django.contrib.auth.models import BaseUserManager


class UserManager(BaseUserManager):
    """
    Creates users keyed by email and offers member-level filters.

    Usage:
        User.objects.create_user(email="ada@school.edu", password="...")
        User.objects.active_members()  # active and not suspended
    """

    def create_user(self, email, password=None, **extra_fields):
        """
        Create a user; profile fields are ignored here (see signals).

        Raises:
            ValueError: If email is empty
        """
        if not email:
            raise ValueError("The Email field must be set")

        email = self.normalize_email(email)
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        for profile_field in ("first_name", "last_name", "name"):
            extra_fields.pop(profile_field, None)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """Create a staff superuser whose profile gets the admin role."""
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("email_verified", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        user = self.create_user(email, password, **extra_fields)
        user.profile.role = "admin"
        user.profile.save(update_fields=["role", "updated_at"])
        return user

    def active_members(self):
        """Users who can currently use the platform."""
        return self.filter(is_active=True, profile__is_suspended=False)

    def with_role(self, *roles):
        return self.filter(profile__role__in=roles)
