"""
Notification preference resolution.

Preferences resolve hierarchically: Global -> Category -> Type -> Channel.
The result is a ResolvedPreferences telling which channels are open for one
user and notification type.

Design Decisions:
    - Single lookups are cached for 5 minutes
    - Cache keys carry a per-user version; bumping it invalidates every
      cached type for that user at once
    - Bulk resolution uses 3 queries regardless of user count

Usage:
    from notifications.preferences import PreferenceResolver

    prefs = PreferenceResolver.resolve(user, notification_type)
    if prefs.is_channel_enabled("push"):
        ...

    prefs_map = PreferenceResolver.resolve_bulk(user_ids, notification_type)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.core.cache import cache

from notifications.models import (
    SkipReason,
    UserCategoryPreference,
    UserGlobalPreference,
    UserNotificationPreference,
)

if TYPE_CHECKING:
    from authentication.models import User
    from notifications.models import NotificationType

logger = logging.getLogger(__name__)


PREFERENCE_CACHE_TTL = 300  # 5 minutes
PREFERENCE_CACHE_PREFIX = "notif_pref"


@dataclass(frozen=True)
class ResolvedPreferences:
    """
    Resolved notification preferences for a user/type combination.

    Attributes:
        push_enabled: Whether push notifications are enabled
        email_enabled: Whether email notifications are enabled
        websocket_enabled: Whether websocket notifications are enabled
        blocked: True if a global, category or type switch is off
        blocked_reason: SkipReason value when blocked
    """

    push_enabled: bool
    email_enabled: bool
    websocket_enabled: bool
    blocked: bool = False
    blocked_reason: str | None = None

    @classmethod
    def blocked_by(cls, reason: str) -> ResolvedPreferences:
        return cls(
            push_enabled=False,
            email_enabled=False,
            websocket_enabled=False,
            blocked=True,
            blocked_reason=reason,
        )

    @property
    def any_enabled(self) -> bool:
        return not self.blocked and (self.push_enabled or self.email_enabled or self.websocket_enabled)

    def is_channel_enabled(self, channel: str) -> bool:
        if self.blocked:
            return False
        return getattr(self, f"{channel}_enabled", False)


def _channel(user_override: bool | None, type_supports: bool) -> bool:
    """A channel the type does not support stays off whatever the user says."""
    if not type_supports:
        return False
    return True if user_override is None else user_override


class PreferenceResolver:
    """Resolves preferences with TTL caching."""

    @staticmethod
    def _version_key(user_id) -> str:
        return f"{PREFERENCE_CACHE_PREFIX}:v:{user_id}"

    @classmethod
    def _get_cache_key(cls, user_id, notification_type_id: int) -> str:
        version = cache.get(cls._version_key(user_id), 0)
        return f"{PREFERENCE_CACHE_PREFIX}:{user_id}:{version}:{notification_type_id}"

    @classmethod
    def resolve(
        cls,
        user: User,
        notification_type: NotificationType,
        use_cache: bool = True,
    ) -> ResolvedPreferences:
        if not use_cache:
            return cls._resolve_from_db(user.id, notification_type)

        cache_key = cls._get_cache_key(user.id, notification_type.id)
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        resolved = cls._resolve_from_db(user.id, notification_type)
        cache.set(cache_key, resolved, timeout=PREFERENCE_CACHE_TTL)
        return resolved

    @classmethod
    def _resolve_from_db(cls, user_id, notification_type: NotificationType) -> ResolvedPreferences:
        return cls._resolve_for_user(
            notification_type=notification_type,
            global_pref=UserGlobalPreference.objects.filter(user_id=user_id).first(),
            category_pref=UserCategoryPreference.objects.filter(
                user_id=user_id, category=notification_type.category
            ).first(),
            type_pref=UserNotificationPreference.objects.filter(
                user_id=user_id, notification_type=notification_type
            ).first(),
        )

    @classmethod
    def invalidate_cache(cls, user_id) -> None:
        """Drop every cached resolution for user_id."""
        key = cls._version_key(user_id)
        if not cache.add(key, 1, timeout=None):
            cache.incr(key)
        logger.debug(f"Preference cache invalidated for user {user_id}")

    @classmethod
    def resolve_bulk(
        cls,
        user_ids: list[int],
        notification_type: NotificationType,
    ) -> dict[int, ResolvedPreferences]:
        """
        Resolve preferences for many users in 3 queries.

        Returns:
            Dict mapping user_id to ResolvedPreferences
        """
        if not user_ids:
            return {}

        global_prefs = {
            pref.user_id: pref for pref in UserGlobalPreference.objects.filter(user_id__in=user_ids)
        }
        category_prefs = {
            pref.user_id: pref
            for pref in UserCategoryPreference.objects.filter(
                user_id__in=user_ids,
                category=notification_type.category,
            )
        }
        type_prefs = {
            pref.user_id: pref
            for pref in UserNotificationPreference.objects.filter(
                user_id__in=user_ids,
                notification_type=notification_type,
            )
        }

        return {
            user_id: cls._resolve_for_user(
                notification_type=notification_type,
                global_pref=global_prefs.get(user_id),
                category_pref=category_prefs.get(user_id),
                type_pref=type_prefs.get(user_id),
            )
            for user_id in user_ids
        }

    @staticmethod
    def _resolve_for_user(
        notification_type: NotificationType,
        global_pref: UserGlobalPreference | None,
        category_pref: UserCategoryPreference | None,
        type_pref: UserNotificationPreference | None,
    ) -> ResolvedPreferences:
        if global_pref and global_pref.all_disabled:
            return ResolvedPreferences.blocked_by(SkipReason.GLOBAL_DISABLED)
        if category_pref and category_pref.disabled:
            return ResolvedPreferences.blocked_by(SkipReason.CATEGORY_DISABLED)
        if type_pref and type_pref.disabled:
            return ResolvedPreferences.blocked_by(SkipReason.TYPE_DISABLED)

        return ResolvedPreferences(
            push_enabled=_channel(type_pref.push_enabled if type_pref else None, notification_type.supports_push),
            email_enabled=_channel(type_pref.email_enabled if type_pref else None, notification_type.supports_email),
            websocket_enabled=_channel(
                type_pref.websocket_enabled if type_pref else None,
                notification_type.supports_websocket,
            ),
        )
