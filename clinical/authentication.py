"""
Authentication backend for the session token.

Clients may present the token as ``Authorization: Bearer <token>`` or
through the ``session`` cookie set at login.  A bad header is an error
(401); a stale or unknown cookie simply leaves the request anonymous so
public endpoints such as login keep working.
"""
from __future__ import annotations

from django.conf import settings
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken


class SessionTokenAuthentication(JWTAuthentication):

    def authenticate(self, request):
        if self.get_header(request) is not None:
            return super().authenticate(request)
        raw = request.COOKIES.get(settings.SESSION_TOKEN_COOKIE)
        if not raw:
            return None
        try:
            validated = self.get_validated_token(raw)
            return self.get_user(validated), validated
        except (InvalidToken, AuthenticationFailed):
            return None
