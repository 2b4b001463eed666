"""
Pagination classes for chat API.

- MessageCursorPagination: message history, oldest first

Cursor pagination keeps pages stable while new messages arrive.
Conversation lists and group discovery use the default page number
pagination from settings.
"""

from rest_framework.pagination import CursorPagination

from chat.constants import MESSAGE_CONFIG


class MessageCursorPagination(CursorPagination):
    """
    Cursor pagination for message lists.

    Uses (created_at, id) for a stable cursor position.

    Query parameters:
        cursor: Encoded cursor for position
        page_size: Number of messages (optional override)
    """

    page_size = MESSAGE_CONFIG.PAGE_SIZE
    max_page_size = MESSAGE_CONFIG.MAX_PAGE_SIZE
    page_size_query_param = "page_size"
    ordering = ("created_at", "id")
    cursor_query_param = "cursor"
