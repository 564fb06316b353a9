from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.urls import reverse
from django.utils import timezone

from clinical.models import AuditLog, EmergencyAccessLog
from clinical.services.emergency import expire_stale_sessions

pytestmark = pytest.mark.django_db


def _open(client, patient, reason='Unconscious patient arrived via ambulance'):
    return client.post(reverse('emergency-access-open'), {'patientId': patient.id, 'reason': reason}, format='json')


def test_open_session_is_logged_and_audited(world, client_for):
    resp = _open(client_for(world.doctor2), world.patient1)
    assert resp.status_code == 201
    assert resp.data['status'] == 'OPEN'
    assert resp.data['endTime'] is None
    assert resp.data['duration'] == 'Active'
    assert resp.data['patient'] == f'P-{world.patient1.id:05d} (Sarah Johnson)'

    log = EmergencyAccessLog.objects.get(pk=resp.data['id'])
    assert log.user == world.doctor2 and log.end_time is None
    audit = AuditLog.objects.get(action='EMERGENCY_ACCESS')
    assert audit.user == world.doctor2
    assert 'Unconscious patient' in audit.details


def test_admin_cannot_open_session(world, client_for):
    assert _open(client_for(world.admin2), world.patient1).status_code == 403
    assert not EmergencyAccessLog.objects.exists()


def test_reason_is_required(world, client_for):
    assert _open(client_for(world.nurse2), world.patient1, reason='').status_code == 400
    assert _open(client_for(world.nurse2), world.patient1, reason='   ').status_code == 400
    assert not EmergencyAccessLog.objects.exists()


def test_close_is_one_way(world, client_for):
    client = client_for(world.doctor2)
    log_id = _open(client, world.patient1).data['id']
    url = reverse('emergency-access-close', args=[log_id])

    resp = client.post(url)
    assert resp.status_code == 200
    assert resp.data['status'] == 'CLOSED'
    log = EmergencyAccessLog.objects.get(pk=log_id)
    assert log.end_time is not None and log.end_time >= log.start_time
    assert resp.data['duration'].endswith(' min')
    assert AuditLog.objects.filter(action='CLOSE_EMERGENCY_ACCESS', user=world.doctor2).count() == 1

    again = client.post(url)
    assert again.status_code == 409
    assert again.data['error']['code'] == 'invalid_transition'
    assert AuditLog.objects.filter(action='CLOSE_EMERGENCY_ACCESS').count() == 1


def test_only_owner_or_owner_hospital_admin_may_close(world, client_for):
    log_id = _open(client_for(world.doctor2), world.patient1).data['id']
    url = reverse('emergency-access-close', args=[log_id])

    assert client_for(world.nurse2).post(url).status_code == 403
    assert client_for(world.doctor1).post(url).status_code == 403
    assert client_for(world.admin1).post(url).status_code == 403
    assert EmergencyAccessLog.objects.get(pk=log_id).status == 'OPEN'

    assert client_for(world.admin2).post(url).status_code == 200
    assert EmergencyAccessLog.objects.get(pk=log_id).status == 'CLOSED'


def test_open_session_grants_read_until_closed(world, client_for):
    client = client_for(world.doctor2)
    detail = reverse('patient-detail', args=[world.patient1.id])
    assert client.get(detail).status_code == 403

    log_id = _open(client, world.patient1).data['id']
    resp = client.get(detail)
    assert resp.status_code == 200
    assert resp.data['name'] == 'Sarah Johnson'
    # the session belongs to doctor2 alone
    assert client_for(world.nurse2).get(detail).status_code == 403

    client.post(reverse('emergency-access-close', args=[log_id]))
    assert client.get(detail).status_code == 403


def test_active_count_and_log_listing_are_scoped(world, client_for):
    _open(client_for(world.doctor2), world.patient1)
    _open(client_for(world.nurse2), world.patient1, reason='Allergy check before transfer')

    assert client_for(world.admin2).get(reverse('emergency-access-active')).data == {'count': 2}
    assert client_for(world.admin1).get(reverse('emergency-access-active')).data == {'count': 0}

    listing = client_for(world.admin2).get(reverse('emergency-access'))
    assert listing.status_code == 200
    assert len(listing.data) == 2
    assert {row['duration'] for row in listing.data} == {'Active'}
    assert client_for(world.admin1).get(reverse('emergency-access')).data == []
    assert client_for(world.doctor2).get(reverse('emergency-access')).status_code == 403

    everything = client_for(world.sysadmin).get(reverse('emergency-access'))
    assert len(everything.data) == 2
    narrowed = client_for(world.sysadmin).get(reverse('emergency-access'), {'hospitalId': world.h1.id})
    assert narrowed.data == []


def test_stale_sessions_expire(world, client_for):
    stale_id = _open(client_for(world.doctor2), world.patient1).data['id']
    fresh_id = _open(client_for(world.nurse2), world.patient1, reason='Medication reconciliation').data['id']
    EmergencyAccessLog.objects.filter(pk=stale_id).update(start_time=timezone.now() - timedelta(hours=10))

    assert expire_stale_sessions(4) == 1
    assert EmergencyAccessLog.objects.get(pk=stale_id).status == 'CLOSED'
    assert EmergencyAccessLog.objects.get(pk=fresh_id).status == 'OPEN'
    auto = AuditLog.objects.get(action='AUTO_CLOSE_EMERGENCY_ACCESS')
    assert auto.user is None
    assert world.doctor2.email in auto.details

    # nothing left to close
    assert expire_stale_sessions(4) == 0


def test_expire_command(world, client_for):
    log_id = _open(client_for(world.doctor2), world.patient1).data['id']
    EmergencyAccessLog.objects.filter(pk=log_id).update(start_time=timezone.now() - timedelta(hours=3))
    out = StringIO()
    call_command('expire_emergency_access', '--hours', '2', stdout=out)
    assert 'closed 1 emergency access session(s)' in out.getvalue()
    assert EmergencyAccessLog.objects.get(pk=log_id).status == 'CLOSED'


def test_expire_command_accepts_zero_hours(world, client_for, settings):
    settings.EMERGENCY_ACCESS_MAX_HOURS = 4
    log_id = _open(client_for(world.doctor2), world.patient1).data['id']
    EmergencyAccessLog.objects.filter(pk=log_id).update(start_time=timezone.now() - timedelta(minutes=1))
    out = StringIO()
    call_command('expire_emergency_access', '--hours', '0', stdout=out)
    assert 'closed 1 emergency access session(s) older than 0h' in out.getvalue()
    assert EmergencyAccessLog.objects.get(pk=log_id).status == 'CLOSED'
