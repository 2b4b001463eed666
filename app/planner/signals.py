"""
Signals sent by the planner app.

Consumed by notifications.handlers:
    event_applied(attendee)
    event_application_reviewed(attendee, accepted)
"""

from django.dispatch import Signal

event_applied = Signal()
event_application_reviewed = Signal()
