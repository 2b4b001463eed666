"""
Signal receivers that turn domain events into notifications.

Connected in NotificationsConfig.ready(). Each receiver builds the
template data and delegates to NotificationService. Suppressed
notifications (blocked users, inactive types) are only logged.
"""

import logging

from django.conf import settings
from django.dispatch import receiver

from authentication.signals import class_leader_assigned
from chat.signals import join_request_reviewed, join_requested, message_sent
from moderation.signals import incident_submitted, user_reported, user_suspended
from notifications.services import NotificationService
from planner.signals import event_application_reviewed, event_applied
from posts.signals import post_commented, post_liked, post_pinned
from social.signals import connection_accepted, connection_requested, user_followed

logger = logging.getLogger(__name__)


def _preview(text: str) -> str:
    from chat.services import preview_text

    return preview_text(text, settings.NOTIFICATION_BODY_PREVIEW)


def _log_failure(result, type_key: str) -> None:
    if not result.success and result.error_code != "DUPLICATE":
        logger.info(f"{type_key} notification not created: {result.error}")


# =============================================================================
# Chat
# =============================================================================


@receiver(message_sent)
def notify_message_recipients(sender, message, recipients, **kwargs):
    conversation = message.conversation
    data = {
        "conversation_id": str(conversation.id),
        "message_id": str(message.id),
        "message_preview": _preview(message.get_display_content()),
    }
    if conversation.is_direct:
        type_key = "direct_message"
    else:
        type_key = "group_message"
        data["group_name"] = conversation.title

    result = NotificationService.notify_many(
        recipients,
        type_key,
        data=data,
        actor=message.sender,
        source_object=message,
        link=f"/chat/{conversation.id}",
        idempotency_key=f"message:{message.id}",
    )
    _log_failure(result, type_key)


@receiver(join_requested)
def notify_group_admins(sender, join_request, admins, **kwargs):
    conversation = join_request.conversation
    result = NotificationService.notify_many(
        admins,
        "group_join_request",
        data={
            "conversation_id": str(conversation.id),
            "request_id": str(join_request.id),
            "group_name": conversation.title,
            "interest_statement": _preview(join_request.interest_statement),
        },
        actor=join_request.user,
        source_object=join_request,
        link=f"/chat/{conversation.id}/requests",
        idempotency_key=f"join_request:{join_request.id}",
    )
    _log_failure(result, "group_join_request")


@receiver(join_request_reviewed)
def notify_join_requester(sender, join_request, approved, **kwargs):
    conversation = join_request.conversation
    type_key = "group_join_approved" if approved else "group_join_rejected"
    result = NotificationService.create_notification(
        recipient=join_request.user,
        type_key=type_key,
        data={"conversation_id": str(conversation.id), "group_name": conversation.title},
        actor=join_request.reviewed_by,
        source_object=join_request,
        link=f"/chat/{conversation.id}" if approved else "",
        idempotency_key=f"{type_key}:{join_request.id}",
    )
    _log_failure(result, type_key)


# =============================================================================
# Social
# =============================================================================


@receiver(connection_requested)
def notify_connection_request(sender, connection, **kwargs):
    result = NotificationService.create_notification(
        recipient=connection.recipient,
        type_key="connection_request",
        data={"connection_id": str(connection.id)},
        actor=connection.requester,
        source_object=connection,
        link="/connections/requests",
        idempotency_key=f"connection_request:{connection.id}",
    )
    _log_failure(result, "connection_request")


@receiver(connection_accepted)
def notify_connection_accepted(sender, connection, **kwargs):
    result = NotificationService.create_notification(
        recipient=connection.requester,
        type_key="connection_accepted",
        data={"connection_id": str(connection.id)},
        actor=connection.recipient,
        source_object=connection,
        link=f"/profiles/{connection.recipient_id}",
        idempotency_key=f"connection_accepted:{connection.id}",
    )
    _log_failure(result, "connection_accepted")


@receiver(user_followed)
def notify_new_follower(sender, follower, following, **kwargs):
    result = NotificationService.create_notification(
        recipient=following,
        type_key="new_follower",
        actor=follower,
        link=f"/profiles/{follower.id}",
    )
    _log_failure(result, "new_follower")


# =============================================================================
# Posts
# =============================================================================


@receiver(post_liked)
def notify_post_liked(sender, post, user, **kwargs):
    if post.author_id == user.id:
        return
    result = NotificationService.create_notification(
        recipient=post.author,
        type_key="post_liked",
        data={"post_id": str(post.id), "post_preview": _preview(post.content)},
        actor=user,
        source_object=post,
        link=post.link,
        idempotency_key=f"post_liked:{post.id}:{user.id}",
    )
    _log_failure(result, "post_liked")


@receiver(post_commented)
def notify_post_commented(sender, post, comment, **kwargs):
    if post.author_id == comment.author_id:
        return
    result = NotificationService.create_notification(
        recipient=post.author,
        type_key="post_comment",
        data={
            "post_id": str(post.id),
            "comment_id": str(comment.id),
            "comment_preview": _preview(comment.content),
        },
        actor=comment.author,
        source_object=comment,
        link=post.link,
        idempotency_key=f"post_comment:{comment.id}",
    )
    _log_failure(result, "post_comment")


@receiver(post_pinned)
def notify_post_pinned(sender, post, pinned_by, **kwargs):
    if post.author_id == pinned_by.id:
        return
    result = NotificationService.create_notification(
        recipient=post.author,
        type_key="post_pinned",
        data={"post_id": str(post.id), "post_preview": _preview(post.content)},
        actor=pinned_by,
        source_object=post,
        link=post.link,
    )
    _log_failure(result, "post_pinned")


# =============================================================================
# Authentication
# =============================================================================


@receiver(class_leader_assigned)
def notify_class_leader(sender, user, assigned_by, info, **kwargs):
    result = NotificationService.create_notification(
        recipient=user,
        type_key="class_leader_assigned",
        data={"class_name": info.class_name, "responsibilities": _preview(info.responsibilities)},
        actor=assigned_by,
        source_object=info,
        link=f"/profiles/{user.id}",
    )
    _log_failure(result, "class_leader_assigned")


# =============================================================================
# Moderation
# =============================================================================


@receiver(user_reported)
def notify_admins_of_report(sender, report, admins, **kwargs):
    result = NotificationService.notify_many(
        admins,
        "report_submitted",
        data={
            "report_id": str(report.id),
            "reported_name": report.reported.profile.display_name,
            "reason": report.get_reason_display(),
        },
        actor=report.reporter,
        source_object=report,
        link=f"/moderation/reports/{report.id}",
        idempotency_key=f"report:{report.id}",
    )
    _log_failure(result, "report_submitted")


@receiver(incident_submitted)
def notify_admins_of_incident(sender, incident, admins, **kwargs):
    result = NotificationService.notify_many(
        admins,
        "incident_reported",
        data={
            "report_id": incident.report_id,
            "incident_type": incident.get_incident_type_display(),
            "student_name": incident.student_name,
            "severity": incident.severity,
        },
        actor=incident.reporter,
        source_object=incident,
        link=f"/moderation/incidents/{incident.id}",
        idempotency_key=f"incident:{incident.id}",
    )
    _log_failure(result, "incident_reported")


@receiver(user_suspended)
def notify_suspended_user(sender, user, admin, log, **kwargs):
    # Sent without an actor so the suspending admin is not named
    result = NotificationService.create_notification(
        recipient=user,
        type_key="account_suspended",
        data={"reason": log.reason},
        source_object=log,
    )
    _log_failure(result, "account_suspended")


# =============================================================================
# Planner
# =============================================================================


@receiver(event_applied)
def notify_event_organizer(sender, attendee, **kwargs):
    event = attendee.event
    result = NotificationService.create_notification(
        recipient=event.organizer,
        type_key="event_application",
        data={"event_id": str(event.id), "event_title": event.title},
        actor=attendee.student,
        source_object=attendee,
        link=event.link,
    )
    _log_failure(result, "event_application")


@receiver(event_application_reviewed)
def notify_event_applicant(sender, attendee, accepted, **kwargs):
    event = attendee.event
    result = NotificationService.create_notification(
        recipient=attendee.student,
        type_key="event_response",
        data={
            "event_id": str(event.id),
            "event_title": event.title,
            "response": "confirmed" if accepted else "declined",
        },
        actor=event.organizer,
        source_object=attendee,
        link=event.link,
        idempotency_key=f"event_response:{attendee.id}",
    )
    _log_failure(result, "event_response")
