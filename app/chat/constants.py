"""
Constants for chat features.

- Message limits and notification previews
- Reaction limits
- WebSocket close codes and channel group names

Import example:
    from chat.constants import MESSAGE_CONFIG, REACTION_CONFIG
"""

from typing import Final


class MESSAGE_CONFIG:
    MAX_CONTENT_LENGTH: Final[int] = 10000
    MAX_ATTACHMENTS_PER_MESSAGE: Final[int] = 10

    # Notification body preview
    PREVIEW_LENGTH: Final[int] = 50

    PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100

    # Upper bound on messages replayed by a websocket "sync" frame
    SYNC_MAX_MESSAGES: Final[int] = 200


class REACTION_CONFIG:
    MAX_REACTIONS_PER_MESSAGE: Final[int] = 20  # distinct emojis
    MAX_USER_REACTIONS_PER_MESSAGE: Final[int] = 5
    MAX_EMOJI_LENGTH: Final[int] = 8  # compound emojis span several code points

    # Suggestions for clients, not a restriction
    QUICK_REACTIONS: Final[tuple] = ("👍", "❤️", "😂", "😮", "😢", "🎉")


class GROUP_CONFIG:
    MAX_TITLE_LENGTH: Final[int] = 100
    MAX_RULES: Final[int] = 30


class WS_CLOSE:
    UNAUTHENTICATED: Final[int] = 4001
    FORBIDDEN: Final[int] = 4003
    NOT_FOUND: Final[int] = 4004


def conversation_group(conversation_id) -> str:
    """Channel layer group of a conversation's open sockets."""
    return f"chat_{conversation_id}"


def user_group(user_id) -> str:
    """Channel layer group of a user's notification sockets."""
    return f"notifications_{user_id}"
