"""
Signals for authentication.

Receivers:
    create_user_profile: every new user gets a Profile and PrivacySettings

Signals sent by this app (consumed in notifications.handlers):
    class_leader_assigned(user, assigned_by, info)
    user_role_changed(user, changed_by, old_role, new_role)
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

class_leader_assigned = Signal()
user_role_changed = Signal()


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_user_profile(sender, instance, created, **kwargs):
    """Create Profile and PrivacySettings rows for a new user."""
    if not created:
        return

    from authentication.models import PrivacySettings, Profile

    Profile.objects.get_or_create(user=instance)
    PrivacySettings.objects.get_or_create(user=instance)
    logger.debug(f"Profile and privacy settings created for user: {instance.email}")


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def log_email_verification(sender, instance, created, update_fields, **kwargs):
    if not created and update_fields and "email_verified" in update_fields and instance.email_verified:
        logger.info(f"Email verified for user: {instance.email}")
