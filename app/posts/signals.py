"""
Signals sent by the posts app.

Consumed by notifications.handlers:
    post_liked(post, user)
    post_commented(post, comment)
    post_pinned(post, pinned_by)
"""

from django.dispatch import Signal

post_liked = Signal()
post_commented = Signal()
post_pinned = Signal()
