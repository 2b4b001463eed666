"""
Permission classes for chat API.

- IsConversationParticipant: User is an active participant
- IsConversationAdminOrOwner: User has ADMIN or OWNER role

Permission Hierarchy:
    OWNER > ADMIN > MEMBER

    OWNER can:
        - All ADMIN permissions
        - Delete the group, change roles, transfer ownership
        - Add/remove admins

    ADMIN can:
        - Update group details and rules
        - Add/remove members, review join requests

    MEMBER can:
        - Read, send and react
        - Delete own messages, leave

Role checks that depend on the target (removing an admin, promoting) live
in chat.services and come back as ServiceResult error codes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from chat.models import Conversation, Message, Participant

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


def _conversation_of(obj) -> Conversation:
    if isinstance(obj, (Participant, Message)):
        return obj.conversation
    return obj


class IsConversationParticipant(permissions.BasePermission):
    """Allows access only to active participants of the conversation."""

    message = "You are not a participant in this conversation."

    def has_object_permission(self, request: Request, view: APIView, obj) -> bool:
        if not request.user.is_authenticated:
            return False
        return _conversation_of(obj).get_active_participant_for_user(request.user) is not None


class IsConversationAdminOrOwner(permissions.BasePermission):
    message = "Only group admins and the owner can do this."

    def has_object_permission(self, request: Request, view: APIView, obj) -> bool:
        if not request.user.is_authenticated:
            return False
        participant = _conversation_of(obj).get_active_participant_for_user(request.user)
        return participant is not None and participant.is_admin_or_owner
