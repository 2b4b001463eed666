"""
Signals sent by the moderation app.

Consumed by notifications.handlers:
    user_reported(report, admins)
    incident_submitted(incident, admins)
    user_suspended(user, admin, log)
"""

from django.dispatch import Signal

user_reported = Signal()
incident_submitted = Signal()
user_suspended = Signal()
