from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.http import parse_cookie
from rest_framework_simplejwt.settings import api_settings

from clinical.services.sessions import decode_session_token


@database_sync_to_async
def _user_for_token(raw):
    token = decode_session_token(raw)
    if token is None:
        return AnonymousUser()
    user = get_user_model().objects.filter(
        **{api_settings.USER_ID_FIELD: token.get(api_settings.USER_ID_CLAIM)}, is_active=True
    ).first()
    return user or AnonymousUser()


class SessionTokenAuthMiddleware(BaseMiddleware):
    """Resolve ``scope['user']`` from the session cookie sent with the websocket handshake."""

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        raw = None
        for name, value in scope.get("headers", []):
            if name == b"cookie":
                raw = parse_cookie(value.decode("latin1")).get(settings.SESSION_TOKEN_COOKIE)
                break
        scope["user"] = await _user_for_token(raw)
        return await super().__call__(scope, receive, send)
