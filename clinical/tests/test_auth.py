"""
Login, sliding session cookie, redirect policy and invitation tests.
"""
from datetime import timedelta

import pytest
from django.conf import settings
from django.test import Client
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import SlidingToken

from clinical.models import AuditLog, StaffInvitation
from clinical.services.sessions import issue_session_token

from .factories import PASSWORD

pytestmark = pytest.mark.django_db

COOKIE = settings.SESSION_TOKEN_COOKIE


def _login(client, email, password=PASSWORD):
    return client.post(reverse('login'), {'email': email, 'password': password}, format='json')


def test_login_sets_httponly_session_cookie(world):
    client = APIClient()
    resp = _login(client, 'Emily.Wilson@central.test')
    assert resp.status_code == 200
    assert resp.data['ok'] is True
    assert resp.data['user']['email'] == 'emily.wilson@central.test'
    assert resp.data['user']['role'] == 'DOCTOR'
    morsel = resp.cookies[COOKIE]
    assert morsel.value
    assert morsel['httponly']
    assert morsel['samesite'] == 'Lax'
    assert AuditLog.objects.filter(action='LOGIN', user=world.doctor1).exists()

    world.doctor1.refresh_from_db()
    assert world.doctor1.last_login is not None


def test_wrong_password_is_rejected_and_audited(world):
    resp = _login(APIClient(), 'emily.wilson@central.test', 'not-the-password')
    assert resp.status_code == 401
    assert resp.data == {'ok': False, 'error': {'code': 'invalid_credentials', 'message': 'Invalid credentials'}}
    assert COOKIE not in resp.cookies
    failed = AuditLog.objects.get(action='LOGIN_FAILED')
    assert failed.user is None
    assert 'emily.wilson@central.test' in failed.details


def test_me_with_and_without_session(world):
    client = APIClient()
    assert client.get(reverse('me')).data == {'user': None}

    _login(client, 'emily.wilson@central.test')
    resp = client.get(reverse('me'))
    assert resp.status_code == 200
    assert resp.data['user']['name'] == world.doctor1.name
    assert resp.data['user']['hospital'] == 'Central Medical Center'


def test_session_slides_on_each_request(world):
    token = issue_session_token(world.doctor1)
    token.set_exp(lifetime=timedelta(minutes=1))
    client = APIClient()
    client.cookies[COOKIE] = str(token)

    resp = client.get(reverse('me'))
    assert resp.data['user']['email'] == world.doctor1.email
    renewed = SlidingToken(resp.cookies[COOKIE].value)
    assert renewed['exp'] > token['exp']
    assert renewed['refresh_exp'] == token['refresh_exp']


def test_session_past_absolute_limit_is_cleared(world):
    token = issue_session_token(world.doctor1)
    token.set_exp(claim='refresh_exp', from_time=timezone.now() - timedelta(days=30), lifetime=timedelta(days=1))
    client = APIClient()
    client.cookies[COOKIE] = str(token)

    resp = client.get(reverse('me'))
    assert resp.cookies[COOKIE].value == ''
    assert resp.cookies[COOKIE]['max-age'] == 0


def test_tampered_cookie_is_anonymous(world):
    token = str(issue_session_token(world.doctor1))
    client = APIClient()
    client.cookies[COOKIE] = token[:-4] + ('AAAA' if not token.endswith('AAAA') else 'BBBB')
    assert client.get(reverse('me')).data == {'user': None}
    assert client.get(reverse('patients')).status_code == 401
    # a broken cookie must not lock the user out of login
    assert _login(client, 'emily.wilson@central.test').status_code == 200


def test_bad_bearer_header_is_rejected(world):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')
    resp = client.get(reverse('me'))
    assert resp.status_code == 401
    assert resp.data['ok'] is False


def test_redirect_policy(world):
    anon = Client()
    resp = anon.get('/patients')
    assert resp.status_code == 302
    assert resp['Location'] == '/login'
    assert anon.get('/').status_code != 302
    assert anon.get('/contact-hospitals').status_code != 302
    assert anon.get('/login').status_code != 302
    assert anon.get('/api/patients').status_code == 401

    signed_in = Client()
    signed_in.cookies[COOKIE] = str(issue_session_token(world.nurse1))
    resp = signed_in.get('/login')
    assert resp.status_code == 302
    assert resp['Location'] == '/referrals'
    assert signed_in.get('/patients').status_code != 302


def test_logout_revokes_token(world):
    client = APIClient()
    token = _login(client, 'emily.wilson@central.test').data['token']

    resp = client.post(reverse('logout'))
    assert resp.status_code == 200
    assert resp.cookies[COOKIE].value == ''
    assert AuditLog.objects.filter(action='LOGOUT', user=world.doctor1).exists()

    bearer = APIClient()
    bearer.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    assert bearer.get(reverse('patients')).status_code == 401


def test_invitation_flow(world, client_for):
    resp = client_for(world.admin1).post(
        reverse('staff'),
        {'name': 'Tom Reed', 'email': 'tom.reed@central.test', 'role': 'nurse'},
        format='json',
    )
    assert resp.status_code == 201
    assert resp.data['role'] == 'NURSE'
    assert resp.data['pendingInvitation'] is True
    token = resp.data['invitation']['token']
    assert 'password' not in resp.data

    invited = StaffInvitation.objects.get(token=token).user
    assert not invited.has_usable_password()
    assert _login(APIClient(), 'tom.reed@central.test', PASSWORD).status_code == 401

    client = APIClient()
    accepted = client.post(reverse('accept-invite'), {'token': token, 'password': 'Night-Shift-Rota-9'}, format='json')
    assert accepted.status_code == 200
    assert accepted.cookies[COOKIE].value
    invited.refresh_from_db()
    assert invited.check_password('Night-Shift-Rota-9')
    assert invited.must_set_password is False

    again = APIClient().post(reverse('accept-invite'), {'token': token, 'password': 'Another-Pass-77'}, format='json')
    assert again.status_code == 400
    invited.refresh_from_db()
    assert invited.check_password('Night-Shift-Rota-9')


def test_expired_invitation_is_rejected(world, client_for):
    resp = client_for(world.admin1).post(
        reverse('staff'),
        {'name': 'Ada Park', 'email': 'ada.park@central.test', 'role': 'DOCTOR'},
        format='json',
    )
    token = resp.data['invitation']['token']
    StaffInvitation.objects.filter(token=token).update(expires_at=timezone.now() - timedelta(minutes=1))
    expired = APIClient().post(reverse('accept-invite'), {'token': token, 'password': 'Night-Shift-Rota-9'}, format='json')
    assert expired.status_code == 400
    assert expired.data['error']['message']['token'][0] == 'invitation is invalid or expired'


def test_change_password(world, client_for):
    client = client_for(world.doctor1)
    url = reverse('change-password')

    wrong = client.post(url, {'currentPassword': 'nope', 'newPassword': 'Night-Shift-Rota-9'}, format='json')
    assert wrong.status_code == 400
    assert wrong.data['error']['message']['currentPassword'][0] == 'Current password is incorrect'

    short = client.post(url, {'currentPassword': PASSWORD, 'newPassword': 'a1!'}, format='json')
    assert short.status_code == 400
    assert short.data['error']['message']['newPassword'][0] == 'New password must be at least 8 characters'

    ok = client.post(url, {'currentPassword': PASSWORD, 'newPassword': 'Night-Shift-Rota-9'}, format='json')
    assert ok.status_code == 200
    world.doctor1.refresh_from_db()
    assert world.doctor1.check_password('Night-Shift-Rota-9')
