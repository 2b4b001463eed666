"""
Signals sent by the social app.

Consumed by notifications.handlers:
    connection_requested(connection)
    connection_accepted(connection)
    user_followed(follower, following)
"""

from django.dispatch import Signal

connection_requested = Signal()
connection_accepted = Signal()
user_followed = Signal()
