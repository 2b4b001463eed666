"""
WebSocket authentication middleware.

Resolves scope["user"] from a SimpleJWT access token.

Token Passing Methods:
    1. Query string: ws://host/ws/chat/<id>/?token=<jwt_token>
    2. Subprotocol: Sec-WebSocket-Protocol: jwt, <jwt_token>

Invalid or expired tokens, inactive users and suspended users all become
AnonymousUser; consumers close those connections with code 4001.

Usage in config/asgi.py:
    application = ProtocolTypeRouter({
        "websocket": JWTAuthMiddleware(URLRouter(websocket_urlpatterns)),
    })
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)

JWT_SUBPROTOCOL = "jwt"


def get_token_from_query(scope) -> str | None:
    params = parse_qs(scope.get("query_string", b"").decode())
    tokens = params.get("token", [])
    return tokens[0] if tokens else None


def get_token_from_subprotocol(scope) -> str | None:
    """Expects: Sec-WebSocket-Protocol: jwt, <token>"""
    subprotocols = scope.get("subprotocols", [])
    if len(subprotocols) >= 2 and subprotocols[0] == JWT_SUBPROTOCOL:
        return subprotocols[1]
    return None


def accepted_subprotocol(scope) -> str | None:
    """Subprotocol to select on accept when the client offered jwt."""
    if JWT_SUBPROTOCOL in scope.get("subprotocols", []):
        return JWT_SUBPROTOCOL
    return None


@database_sync_to_async
def get_user_from_token(token: str):
    User = get_user_model()

    try:
        access_token = AccessToken(token)
        user = User.objects.select_related("profile").get(id=access_token["user_id"])
    except TokenError as e:
        logger.warning(f"Invalid JWT token on WebSocket connect: {e}")
        return AnonymousUser()
    except (User.DoesNotExist, KeyError):
        logger.warning("User not found for WebSocket token")
        return AnonymousUser()

    if not user.is_active or user.is_suspended:
        logger.warning(f"Inactive or suspended user {user.id} attempted WebSocket connection")
        return AnonymousUser()
    return user


class JWTAuthMiddleware(BaseMiddleware):
    """JWT authentication middleware for WebSocket connections."""

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = get_token_from_query(scope) or get_token_from_subprotocol(scope)
        scope["user"] = await get_user_from_token(token) if token else AnonymousUser()
        return await super().__call__(scope, receive, send)
