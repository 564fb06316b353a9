from django.conf import settings
from django.shortcuts import redirect
from rest_framework_simplejwt.exceptions import TokenError

from clinical.services.sessions import (
    clear_session_cookie,
    request_session_token,
    set_session_cookie,
    slide,
)


def _matches(path: str, routes) -> bool:
    return any(path == route or (route != "/" and path.startswith(route + "/")) for route in routes)


class SessionRedirectMiddleware:
    """Send anonymous visitors to the login page and signed-in users away from it.

    ``/`` and the public contact page are always reachable; ``/login`` and
    ``/forgot-password`` are only for visitors without a session.  API,
    static, admin and docs paths are left alone.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path or '/'
        if path.startswith(settings.UNGUARDED_PREFIXES):
            return self.get_response(request)
        has_session = request_session_token(request) is not None
        is_auth_route = _matches(path, settings.AUTH_ONLY_PATHS)
        is_public = is_auth_route or _matches(path, settings.PUBLIC_PATHS)
        if not has_session and not is_public:
            return redirect(settings.LOGIN_PATH)
        if has_session and is_auth_route:
            return redirect(settings.AUTHENTICATED_LANDING_PATH)
        return self.get_response(request)


class SlidingSessionMiddleware:
    """Re-issue a valid session cookie with a fresh expiry on every request."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)
        if settings.SESSION_TOKEN_COOKIE in response.cookies:
            # login/logout already decided what the cookie should be
            return response
        token = request_session_token(request)
        if token is None:
            return response
        try:
            slide(token)
        except TokenError:
            clear_session_cookie(response)
            return response
        set_session_cookie(response, token)
        return response
