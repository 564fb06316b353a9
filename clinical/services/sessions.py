"""
Session tokens.

A session is a signed sliding JWT (``rest_framework_simplejwt``) whose
user claim is the account email.  It travels in an httponly cookie and
every request that presents a valid one gets it back with a fresh
expiry, bounded by the absolute refresh lifetime.
"""
from __future__ import annotations

from typing import Optional

from django.conf import settings
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import SlidingToken
from rest_framework_simplejwt.utils import datetime_from_epoch

_REQUEST_ATTR = '_session_token'


def issue_session_token(user) -> SlidingToken:
    return SlidingToken.for_user(user)


def decode_session_token(raw: Optional[str]) -> Optional[SlidingToken]:
    """Return the verified token or ``None`` when it is missing, expired, tampered or revoked."""
    if not raw:
        return None
    try:
        return SlidingToken(raw)
    except TokenError:
        return None


def request_session_token(request) -> Optional[SlidingToken]:
    """Decode the request's session cookie once and remember the result on the request."""
    if not hasattr(request, _REQUEST_ATTR):
        setattr(request, _REQUEST_ATTR, decode_session_token(request.COOKIES.get(settings.SESSION_TOKEN_COOKIE)))
    return getattr(request, _REQUEST_ATTR)


def slide(token: SlidingToken) -> SlidingToken:
    """Push the expiry out by one lifetime; raises ``TokenError`` past the absolute limit."""
    token.check_exp(api_settings.SLIDING_TOKEN_REFRESH_EXP_CLAIM)
    token.set_exp()
    return token


def revoke(token: SlidingToken) -> None:
    try:
        token.blacklist()
    except TokenError:
        pass


def set_session_cookie(response, token: SlidingToken) -> None:
    response.set_cookie(
        settings.SESSION_TOKEN_COOKIE,
        str(token),
        expires=datetime_from_epoch(token['exp']),
        httponly=True,
        secure=settings.SESSION_TOKEN_COOKIE_SECURE,
        samesite='Lax',
        path='/',
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(settings.SESSION_TOKEN_COOKIE, path='/', samesite='Lax')
