"""
Signals sent by the chat app.

Consumed by notifications.handlers:
    message_sent(message, recipients)
    join_requested(join_request, admins)
    join_request_reviewed(join_request, approved)
"""

from django.dispatch import Signal

message_sent = Signal()
join_requested = Signal()
join_request_reviewed = Signal()
