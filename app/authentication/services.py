"""
Authentication services.

Services:
    AuthService: profile bootstrap, deactivation, token revocation
    RoleService: role checks, role changes, class leader assignment
    PrivacyService: privacy settings and per-section visibility
    DirectoryService: member search

Related files:
    - models.py: User, Profile, PrivacySettings, ClassLeaderInfo
    - signals.py: class_leader_assigned, user_role_changed
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db.models import Q

from authentication.models import (
    BadgeColor,
    ClassLeaderInfo,
    MessagePermission,
    PrivacySettings,
    Profile,
    UserRole,
    Visibility,
)
from authentication.signals import class_leader_assigned, user_role_changed
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User

logger = logging.getLogger(__name__)

# Profile fields grouped by the privacy setting that controls them
PROFILE_SECTIONS: dict[str, tuple[str, ...]] = {
    "profile": ("bio",),
    "academic": (
        "institution",
        "academic_program",
        "field_of_study",
        "year_of_study",
        "education_level",
        "graduation_year",
    ),
    "contact": (
        "location_city",
        "location_country",
        "social_links",
        "contact_preferences",
    ),
    "activities": ("hobbies",),
}


class AuthService(BaseService):
    """Account-level operations that sit outside dj-rest-auth."""

    @classmethod
    def get_or_create_profile(cls, user: User) -> Profile:
        profile, created = Profile.objects.get_or_create(user=user)
        if created:
            cls.get_logger().info(f"Backfilled missing profile for user {user.id}")
        PrivacySettings.objects.get_or_create(user=user)
        return profile

    @classmethod
    def blacklist_user_tokens(cls, user: User) -> int:
        """
        Blacklist every outstanding refresh token of the user.

        Access tokens keep working until they expire, which is why
        ActiveUserJWTAuthentication also checks suspension.

        Returns:
            Number of tokens newly blacklisted
        """
        from rest_framework_simplejwt.token_blacklist.models import (
            BlacklistedToken,
            OutstandingToken,
        )

        count = 0
        for token in OutstandingToken.objects.filter(user=user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
        return count

    @classmethod
    def deactivate_user(cls, user: User, reason: str = "") -> ServiceResult[User]:
        """
        Deactivate an account instead of deleting it.

        Content stays in place for conversation history; the user can no
        longer log in and all refresh tokens are revoked.
        """
        with cls.atomic():
            user.is_active = False
            user.save(update_fields=["is_active", "updated_at"])
            revoked = cls.blacklist_user_tokens(user)

        cls.get_logger().warning(
            f"User deactivated: {user.email}",
            extra={"user_id": user.id, "reason": reason, "revoked_tokens": revoked},
        )
        return ServiceResult.success(user)


class RoleService(BaseService):
    """
    Role checks and role management.

    Django superusers count as admins so a fresh installation can be
    bootstrapped from createsuperuser.
    """

    @classmethod
    def role_of(cls, user: User) -> str:
        if getattr(user, "is_superuser", False):
            return UserRole.ADMIN
        return user.role

    @classmethod
    def can_moderate(cls, user: User) -> bool:
        """Admins review reports, suspend members and manage roles."""
        return bool(user and user.is_authenticated) and cls.role_of(user) == UserRole.ADMIN

    @classmethod
    def can_teach(cls, user: User) -> bool:
        """Teachers and admins pin posts, run events and publish announcements."""
        return bool(user and user.is_authenticated) and cls.role_of(user) in (
            UserRole.TEACHER,
            UserRole.ADMIN,
        )

    @classmethod
    def admin_users(cls) -> QuerySet[User]:
        """Active members who can moderate, for moderation notifications."""
        from authentication.models import User

        return User.objects.filter(
            Q(profile__role=UserRole.ADMIN) | Q(is_superuser=True),
            is_active=True,
            profile__is_suspended=False,
        ).distinct()

    @classmethod
    def set_role(cls, user: User, role: str, changed_by: User) -> ServiceResult[Profile]:
        """
        Change a member's primary role (admins only).

        Leaving the student role also ends class leadership.

        Error codes:
            PERMISSION_DENIED: changed_by is not an admin
            INVALID_ROLE: role is not a UserRole
            CANNOT_CHANGE_OWN_ROLE: admins cannot demote themselves
        """
        if not cls.can_moderate(changed_by):
            return ServiceResult.failure("Only administrators can change roles", error_code="PERMISSION_DENIED")
        if role not in UserRole.values:
            return ServiceResult.failure(f"Unknown role: {role}", error_code="INVALID_ROLE")
        if user.pk == changed_by.pk:
            return ServiceResult.failure("You cannot change your own role", error_code="CANNOT_CHANGE_OWN_ROLE")

        profile = AuthService.get_or_create_profile(user)
        old_role = profile.role
        if old_role == role:
            return ServiceResult.success(profile)

        with cls.atomic():
            profile.role = role
            update_fields = ["role", "updated_at"]
            if role != UserRole.STUDENT and profile.is_class_leader:
                profile.is_class_leader = False
                update_fields.append("is_class_leader")
                ClassLeaderInfo.objects.filter(user=user).delete()
            profile.save(update_fields=update_fields)

        user_role_changed.send(
            sender=Profile,
            user=user,
            changed_by=changed_by,
            old_role=old_role,
            new_role=role,
        )
        cls.get_logger().info(f"Role of user {user.id} changed {old_role} -> {role} by {changed_by.id}")
        return ServiceResult.success(profile)

    @classmethod
    def assign_class_leader(
        cls,
        user: User,
        assigned_by: User,
        class_name: str,
        badge_color: str = BadgeColor.BLUE,
        responsibilities: str = "",
    ) -> ServiceResult[ClassLeaderInfo]:
        """
        Make a student class leader, or update their badge.

        Error codes:
            PERMISSION_DENIED: assigned_by is neither teacher nor admin
            NOT_A_STUDENT: only students can lead a class
            INVALID_BADGE_COLOR
            VALIDATION_ERROR: class_name missing
        """
        if not cls.can_teach(assigned_by):
            return ServiceResult.failure(
                "Only teachers and administrators can assign class leaders",
                error_code="PERMISSION_DENIED",
            )
        missing = cls.validate_required(class_name=class_name)
        if missing is not None:
            return missing
        if badge_color not in BadgeColor.values:
            return ServiceResult.failure(f"Unknown badge color: {badge_color}", error_code="INVALID_BADGE_COLOR")

        profile = AuthService.get_or_create_profile(user)
        if profile.role != UserRole.STUDENT:
            return ServiceResult.failure("Only students can be class leaders", error_code="NOT_A_STUDENT")

        with cls.atomic():
            info, created = ClassLeaderInfo.objects.update_or_create(
                user=user,
                defaults={
                    "class_name": class_name.strip(),
                    "badge_color": badge_color,
                    "responsibilities": responsibilities,
                    "assigned_by": assigned_by,
                },
            )
            if not profile.is_class_leader:
                profile.is_class_leader = True
                profile.save(update_fields=["is_class_leader", "updated_at"])

        if created:
            class_leader_assigned.send(sender=ClassLeaderInfo, user=user, assigned_by=assigned_by, info=info)
        cls.get_logger().info(
            f"User {user.id} {'assigned' if created else 'updated'} as class leader of "
            f"{info.class_name} by {assigned_by.id}"
        )
        return ServiceResult.success(info)

    @classmethod
    def revoke_class_leader(cls, user: User, revoked_by: User) -> ServiceResult[Profile]:
        if not cls.can_teach(revoked_by):
            return ServiceResult.failure(
                "Only teachers and administrators can revoke class leaders",
                error_code="PERMISSION_DENIED",
            )
        profile = AuthService.get_or_create_profile(user)
        if not profile.is_class_leader:
            return ServiceResult.failure("User is not a class leader", error_code="NOT_CLASS_LEADER")

        with cls.atomic():
            ClassLeaderInfo.objects.filter(user=user).delete()
            profile.is_class_leader = False
            profile.save(update_fields=["is_class_leader", "updated_at"])

        cls.get_logger().info(f"Class leadership of user {user.id} revoked by {revoked_by.id}")
        return ServiceResult.success(profile)


class PrivacyService(BaseService):
    """Privacy settings and the visibility rules built on them."""

    @classmethod
    def get_settings(cls, user: User) -> PrivacySettings:
        settings_obj, _ = PrivacySettings.objects.get_or_create(user=user)
        return settings_obj

    @classmethod
    def can_view_section(cls, section: str, owner: User, viewer: User) -> bool:
        """
        Whether viewer may see a section of owner's profile.

        Sections: profile, academic, contact, activities. A private
        profile hides every section from everyone but the owner and
        admins, whatever the per-section setting says.
        """
        if viewer.is_authenticated and (viewer.pk == owner.pk or RoleService.can_moderate(viewer)):
            return True

        privacy = cls.get_settings(owner)
        profile_level = privacy.profile_visibility
        section_level = profile_level if section == "profile" else getattr(privacy, f"{section}_visibility")

        for level in (profile_level, section_level):
            if level == Visibility.PRIVATE:
                return False
            if level == Visibility.CONNECTIONS and not cls._connected(owner, viewer):
                return False
        return True

    @classmethod
    def visible_sections(cls, owner: User, viewer: User) -> set[str]:
        return {section for section in PROFILE_SECTIONS if cls.can_view_section(section, owner, viewer)}

    @classmethod
    def can_message(cls, sender: User, recipient: User) -> bool:
        """Whether sender may open a direct conversation with recipient."""
        if RoleService.can_moderate(sender):
            return True
        allow = cls.get_settings(recipient).allow_messages
        if allow == MessagePermission.EVERYONE:
            return True
        if allow == MessagePermission.CONNECTIONS:
            return cls._connected(sender, recipient)
        return False

    @staticmethod
    def _connected(a: User, b: User) -> bool:
        if not b.is_authenticated:
            return False
        from social.services import ConnectionService

        return ConnectionService.are_connected(a, b)


class DirectoryService(BaseService):
    """Member directory."""

    SEARCH_FIELDS = (
        "name",
        "first_name",
        "last_name",
        "username",
        "academic_program",
        "field_of_study",
        "institution",
    )

    @classmethod
    def search(cls, viewer: User, query: str = "", role: str | None = None) -> QuerySet[Profile]:
        """
        Active, unsuspended members matching query.

        Members who blocked the viewer, or whom the viewer blocked, are
        left out.
        """
        from social.services import BlockService

        profiles = Profile.objects.select_related("user").filter(
            user__is_active=True,
            is_suspended=False,
        )
        query = (query or "").strip()
        if query:
            condition = Q()
            for field_name in cls.SEARCH_FIELDS:
                condition |= Q(**{f"{field_name}__icontains": query})
            profiles = profiles.filter(condition)
        if role:
            profiles = profiles.filter(role=role)

        hidden = BlockService.blocked_user_ids(viewer)
        if hidden:
            profiles = profiles.exclude(user_id__in=hidden)
        return profiles.order_by("name", "username", "user_id")
