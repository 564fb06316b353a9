import logging

import pytest
from django.contrib import admin
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db.models import ProtectedError
from django.urls import reverse

from clinical.models import AppendOnlyError, AuditLog, MedicalDocument, Patient, Referral, ReferralEvent, User
from clinical.services import audit as audit_service
from clinical.services.documents import format_file_size
from clinical.services.referrals import create_referral


@pytest.mark.django_db
def test_audit_rows_are_append_only(world):
    row = audit_service.create_audit_log(world.doctor1, 'VIEW', 'Patient', 'Viewed chart')
    row.details = 'rewritten'
    with pytest.raises(AppendOnlyError):
        row.save()
    with pytest.raises(AppendOnlyError):
        row.delete()
    assert AuditLog.objects.get(pk=row.pk).details == 'Viewed chart'


@pytest.mark.django_db
def test_referral_events_are_append_only(world):
    referral = create_referral(world.doctor1, patient_id=world.patient1.id, to_hospital_id=world.h2.id, reason='Consult')
    event = referral.timeline.get()
    with pytest.raises(AppendOnlyError):
        event.delete()
    event.details = 'edited'
    with pytest.raises(AppendOnlyError):
        event.save()
    assert ReferralEvent.objects.filter(referral=referral).count() == 1


@pytest.mark.django_db
def test_history_blocks_cascading_deletes(world):
    referral = create_referral(world.doctor1, patient_id=world.patient1.id, to_hospital_id=world.h2.id, reason='Consult')
    audit_service.create_audit_log(world.nurse1, 'VIEW', 'Patient', 'Viewed chart')
    with pytest.raises(ProtectedError):
        referral.delete()
    with pytest.raises(ProtectedError):
        world.patient1.delete()
    with pytest.raises(ProtectedError):
        world.nurse1.delete()
    assert ReferralEvent.objects.filter(referral=referral).count() == 1
    assert AuditLog.objects.filter(user=world.nurse1).count() == 1


@pytest.mark.parametrize('model', [Referral, Patient, User, ReferralEvent, AuditLog])
def test_admin_cannot_delete_history_rows(model, rf):
    request = rf.get('/admin/')
    assert admin.site._registry[model].has_delete_permission(request) is False


@pytest.mark.django_db
def test_audit_write_failure_does_not_break_caller(world, monkeypatch, caplog):
    def boom(**kwargs):
        raise RuntimeError('disk full')

    monkeypatch.setattr(AuditLog.objects, 'create', boom)
    # the clinical logger does not propagate to the root handler caplog hooks into
    monkeypatch.setattr(logging.getLogger('clinical'), 'propagate', True)
    assert audit_service.create_audit_log(world.doctor1, 'VIEW', 'Patient') is None
    assert 'audit log write failed' in caplog.text


def test_client_ip_prefers_forwarded_header(rf):
    request = rf.get('/', HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1', REMOTE_ADDR='10.0.0.1')
    assert audit_service.client_ip(request) == '203.0.113.7'
    assert audit_service.client_ip(rf.get('/', REMOTE_ADDR='10.0.0.2')) == '10.0.0.2'
    assert audit_service.client_ip(None) is None


@pytest.mark.parametrize('size, expected', [
    (0, '0 Bytes'),
    (512, '512 Bytes'),
    (1024, '1 KB'),
    (1536, '1.5 KB'),
    (5 * 1024 * 1024, '5 MB'),
    (int(2.25 * 1024 ** 3), '2.25 GB'),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


@pytest.fixture
def media(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path
    return tmp_path


def _upload(client, patient, name='discharge.pdf', content_type='application/pdf', **extra):
    data = {
        'file': SimpleUploadedFile(name, b'%PDF-1.4 test', content_type=content_type),
        'patientId': patient.id,
        'type': 'Discharge Summary',
    }
    data.update(extra)
    return client.post(reverse('document-upload'), data, format='multipart')


@pytest.mark.django_db
def test_upload_and_list_documents(world, client_for, media):
    resp = _upload(client_for(world.nurse1), world.patient1, title='Discharge letter')
    assert resp.status_code == 201
    assert resp.data['title'] == 'Discharge letter'
    assert resp.data['contentType'] == 'application/pdf'
    assert resp.data['size'] == '13 Bytes'
    doc = MedicalDocument.objects.get(pk=resp.data['id'])
    assert (media / doc.file.name).exists()
    assert AuditLog.objects.filter(action='UPLOAD', user=world.nurse1).exists()

    listing = client_for(world.doctor1).get(reverse('patient-documents', args=[world.patient1.id]))
    assert [d['id'] for d in listing.data] == [doc.id]
    assert client_for(world.doctor2).get(reverse('patient-documents', args=[world.patient1.id])).status_code == 403
    assert client_for(world.doctor2).get(reverse('documents')).data == []


@pytest.mark.django_db
def test_upload_rejects_bad_type_and_other_hospital(world, client_for, media):
    assert _upload(client_for(world.doctor1), world.patient1, 'notes.txt', 'text/plain').status_code == 400
    assert _upload(client_for(world.doctor2), world.patient1).status_code == 403
    assert _upload(client_for(world.admin1), world.patient1).status_code == 403
    assert not MedicalDocument.objects.exists()


@pytest.mark.django_db
def test_upload_size_limit(world, client_for, media, settings):
    settings.UPLOAD_MAX_MB = 0
    assert _upload(client_for(world.doctor1), world.patient1).status_code == 400


@pytest.mark.django_db
def test_only_doctors_delete_documents(world, client_for, media):
    doc_id = _upload(client_for(world.nurse1), world.patient1).data['id']
    url = reverse('document-detail', args=[doc_id])
    assert client_for(world.nurse1).delete(url).status_code == 403
    assert client_for(world.doctor2).delete(url).status_code == 403
    assert client_for(world.doctor1).delete(url).status_code == 204
    assert not MedicalDocument.objects.filter(pk=doc_id).exists()
    assert AuditLog.objects.filter(action='DELETE', resource='MedicalDocument').count() == 1
