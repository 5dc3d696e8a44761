import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)

User = get_user_model()


def token_from_scope(scope):
    """`?token=` first, then `Authorization: Bearer <token>`."""
    qs = parse_qs(scope.get("query_string", b"").decode())
    if "token" in qs:
        return qs["token"][0]

    headers = dict(scope.get("headers", []))
    auth = headers.get(b"authorization")
    if not auth:
        return None
    try:
        prefix, token = auth.decode().split()
    except ValueError:
        return None
    return token if prefix.lower() == "bearer" else None


@database_sync_to_async
def get_user_for_token(raw_token):
    try:
        validated = AccessToken(raw_token)
    except TokenError as e:
        logger.info("websocket token rejected: %s", e)
        return AnonymousUser()
    try:
        return User.objects.get(id=validated["user_id"], is_active=True)
    except (User.DoesNotExist, KeyError):
        return AnonymousUser()


class JWTAuthMiddleware(BaseMiddleware):
    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = token_from_scope(scope)
        if token:
            scope["user"] = await get_user_for_token(token)
        return await super().__call__(scope, receive, send)
