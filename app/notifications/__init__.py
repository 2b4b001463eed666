"""
Notifications app: in-app inbox, preferences and multi-channel delivery.

Other apps never call this app directly; they send signals that
notifications.handlers turns into notifications.

Usage:
    from notifications.services import NotificationService

    result = NotificationService.create_notification(
        recipient=user,
        type_key="new_follower",
        actor=follower,
        link=f"/profiles/{follower.id}",
    )
    if result.success:
        notification = result.data
"""
