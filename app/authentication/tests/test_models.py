"""
Tests for authentication models.

Covers:
- User: role/suspension properties, display names
- Profile: username normalization and uniqueness, display_name fallbacks
- UserManager: create_user, create_superuser, member filters
"""

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError

from authentication.models import (
    Profile,
    User,
    UserRole,
    validate_username_format,
    validate_username_not_reserved,
)
from authentication.tests.factories import UserFactory


pytestmark = pytest.mark.django_db


class TestUserManager:
    """UserManager.create_user / create_superuser."""

    def test_create_user_normalizes_email_domain(self, db):
        user = User.objects.create_user(email="Ada@School.EDU", password="pass12345")

        assert user.email == "Ada@school.edu"
        assert user.check_password("pass12345")

    def test_create_user_without_email_raises(self, db):
        with pytest.raises(ValueError):
            User.objects.create_user(email="", password="pass12345")

    def test_create_user_without_password_is_unusable(self, db):
        user = User.objects.create_user(email="nopass@example.com")

        assert user.has_usable_password() is False

    def test_create_user_ignores_profile_fields(self, db):
        user = User.objects.create_user(email="named@example.com", name="Ada Lovelace")

        assert user.profile.name == ""

    def test_create_superuser_gets_admin_role(self, db):
        admin = User.objects.create_superuser(email="root@example.com", password="pass12345")

        assert admin.is_staff and admin.is_superuser
        assert admin.profile.role == UserRole.ADMIN

    def test_active_members_excludes_inactive_and_suspended(self, db):
        active = UserFactory()
        UserFactory(is_active=False)
        suspended = UserFactory()
        suspended.profile.is_suspended = True
        suspended.profile.save()

        assert list(User.objects.active_members()) == [active]

    def test_with_role_filters_by_profile_role(self, user, teacher, admin_member):
        assert set(User.objects.with_role(UserRole.TEACHER, UserRole.ADMIN)) == {teacher, admin_member}


class TestUserProperties:
    def test_role_defaults_to_student(self, user):
        assert user.role == UserRole.STUDENT

    def test_role_without_profile_is_student(self, user):
        Profile.objects.filter(user=user).delete()
        user = User.objects.get(pk=user.pk)

        assert user.role == UserRole.STUDENT
        assert user.is_suspended is False

    def test_is_suspended_reflects_profile(self, user):
        user.profile.is_suspended = True
        user.profile.save()

        assert User.objects.get(pk=user.pk).is_suspended is True

    def test_get_full_name_uses_display_name(self, user):
        user.profile.name = "Grace Hopper"
        user.profile.save()

        assert user.get_full_name() == "Grace Hopper"


class TestProfile:
    def test_username_is_lowercased_on_save(self, user):
        user.profile.username = "MixedCase"
        user.profile.save()
        user.profile.refresh_from_db()

        assert user.profile.username == "mixedcase"

    def test_username_unique_case_insensitively(self, user, other_user):
        user.profile.username = "taken"
        user.profile.save()

        other_user.profile.username = "TAKEN"
        with pytest.raises(IntegrityError):
            other_user.profile.save()

    def test_blank_usernames_do_not_collide(self, user, other_user):
        Profile.objects.filter(user__in=[user, other_user]).update(username="")

        assert Profile.objects.filter(username="").count() == 2

    def test_display_name_fallbacks(self, user):
        profile = user.profile
        profile.name = ""
        profile.first_name = "Ada"
        profile.last_name = "Lovelace"
        assert profile.display_name == "Ada Lovelace"

        profile.first_name = profile.last_name = ""
        profile.username = "ada"
        assert profile.display_name == "ada"

        profile.username = ""
        assert profile.display_name == user.email.split("@")[0]

    def test_teacher_and_admin_flags(self, teacher, admin_member, user):
        assert teacher.profile.is_teacher is True
        assert teacher.profile.is_admin is False
        assert admin_member.profile.is_teacher is True
        assert admin_member.profile.is_admin is True
        assert user.profile.is_teacher is False


class TestUsernameValidators:
    @pytest.mark.parametrize("value", ["abc", "user_1", "a-b-c", "a" * 30])
    def test_valid_format(self, value):
        validate_username_format(value)

    @pytest.mark.parametrize("value", ["ab", "a" * 31, "user name", "user@x", "user.name"])
    def test_invalid_format(self, value):
        with pytest.raises(ValidationError):
            validate_username_format(value)

    @pytest.mark.parametrize("value", ["admin", "Teacher", "moderator"])
    def test_reserved(self, value):
        with pytest.raises(ValidationError):
            validate_username_not_reserved(value)
