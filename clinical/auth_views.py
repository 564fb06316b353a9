"""
Authentication views.

Login exchanges an email and password for a session token, delivered
as an httponly cookie (and echoed in the body for API clients that use
the ``Authorization`` header).  Invited staff activate their account
through ``accept-invite`` instead of a password they were given.
"""
from __future__ import annotations

from django.contrib.auth import authenticate
from django.contrib.auth.models import update_last_login
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework import status
from rest_framework_simplejwt.tokens import SlidingToken

from clinical.serializers.auth import (
    AcceptInviteSerializer,
    ChangePasswordSerializer,
    LoginSerializer,
    ProfileUpdateSerializer,
)
from clinical.services.audit import client_ip, create_audit_log
from clinical.services.profile import change_password, update_profile, user_profile
from clinical.services.sessions import (
    clear_session_cookie,
    issue_session_token,
    request_session_token,
    revoke,
    set_session_cookie,
)
from clinical.services.staff import redeem_invitation


def _session_response(user, http_status=status.HTTP_200_OK) -> Response:
    token = issue_session_token(user)
    resp = Response({'ok': True, 'token': str(token), 'user': user_profile(user)}, status=http_status)
    set_session_cookie(resp, token)
    return resp


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    email = s.validated_data['email']
    password = s.validated_data['password']
    ip = client_ip(request)

    user = authenticate(request, email=email, password=password)
    if user is None:
        create_audit_log(None, 'LOGIN_FAILED', 'User', f'Failed login for {email}', ip=ip)
        return Response(
            {'ok': False, 'error': {'code': 'invalid_credentials', 'message': 'Invalid credentials'}},
            status=status.HTTP_401_UNAUTHORIZED,
        )
    update_last_login(None, user)
    create_audit_log(user, 'LOGIN', 'User', f'User logged in: {user.email}', ip=ip)
    return _session_response(user)


login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def logout_view(request):
    token = request.auth if isinstance(request.auth, SlidingToken) else request_session_token(request)
    if token is not None:
        revoke(token)
    if request.user and request.user.is_authenticated:
        create_audit_log(request.user, 'LOGOUT', 'User', f'User logged out: {request.user.email}', ip=client_ip(request))
    resp = Response({'ok': True})
    clear_session_cookie(resp)
    return resp


@api_view(['GET'])
@permission_classes([AllowAny])
def me_view(request):
    """Current user's profile, or ``{"user": null}`` without a session."""
    if not request.user or not request.user.is_authenticated:
        return Response({'user': None})
    return Response({'user': user_profile(request.user)})


@api_view(['POST'])
@permission_classes([AllowAny])
def accept_invite_view(request):
    s = AcceptInviteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = redeem_invitation(s.validated_data['token'], s.validated_data['password'], ip=client_ip(request))
    return _session_response(user)


accept_invite_view.cls.throttle_scope = 'login'


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def profile_update_view(request):
    s = ProfileUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = update_profile(
        request.user,
        name=s.validated_data.get('name'),
        department_id=s.validated_data.get('departmentId'),
        ip=client_ip(request),
    )
    return Response({'ok': True, 'user': user_profile(user)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    s = ChangePasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    change_password(
        request.user,
        s.validated_data['currentPassword'],
        s.validated_data['newPassword'],
        ip=client_ip(request),
    )
    return Response({'ok': True})
