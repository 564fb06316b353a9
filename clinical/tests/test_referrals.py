"""
Integration tests for the referral lifecycle.

Covers who may create and resolve referrals, the SENT -> ACCEPTED |
REJECTED state machine with its timeline events, and the ordering of
the incoming and outgoing lists.
"""
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from clinical.exceptions import InvalidTransition
from clinical.models import AuditLog, Hospital, Priority, Referral, ReferralEvent, Role
from clinical.services import referrals as referral_service

from .factories import make_hospital, make_patient, make_user


class ReferralAPITests(APITestCase):
    def setUp(self) -> None:
        self.h1 = make_hospital('Central Medical Center')
        self.h2 = make_hospital('Heart Specialist Clinic')
        self.h3 = make_hospital('Lakeside Clinic', status=Hospital.STATUS_PENDING)
        self.h4 = make_hospital("St. Mary's Hospital")
        self.doctor1 = make_user('emily.wilson@central.test', Role.DOCTOR, self.h1)
        self.nurse1 = make_user('jane.miller@central.test', Role.NURSE, self.h1)
        self.doctor2 = make_user('james.carter@heart.test', Role.DOCTOR, self.h2)
        self.nurse2 = make_user('ann.lee@heart.test', Role.NURSE, self.h2)
        self.doctor4 = make_user('paul.rowe@stmarys.test', Role.DOCTOR, self.h4)
        self.patient = make_patient(self.h1, 'Sarah Johnson')
        self.url = reverse('referrals')

    def _create(self, user=None, **overrides):
        self.client.force_authenticate(user or self.doctor1)
        payload = {
            'patientId': self.patient.id,
            'toHospitalId': self.h2.id,
            'priority': 'NORMAL',
            'reason': 'Cardiology consult for arrhythmia',
        }
        payload.update(overrides)
        return self.client.post(self.url, payload, format='json')

    def _resolve(self, referral_id, user, **payload):
        self.client.force_authenticate(user)
        return self.client.post(reverse('referral-resolve', args=[referral_id]), payload, format='json')

    def test_nurse_cannot_create_referral(self):
        resp = self._create(self.nurse1)
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Referral.objects.count(), 0)
        self.assertEqual(ReferralEvent.objects.count(), 0)

    def test_doctor_creates_sent_referral_with_single_created_event(self):
        resp = self._create()
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data['status'], 'SENT')
        referral = Referral.objects.get(pk=resp.data['id'])
        events = list(referral.timeline.all())
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].type, ReferralEvent.TYPE_CREATED)
        self.assertEqual(events[0].actor, self.doctor1)
        self.assertEqual(len(resp.data['timeline']), 1)
        self.assertTrue(AuditLog.objects.filter(action='CREATE', resource='Referral', user=self.doctor1).exists())

    def test_cannot_refer_patient_of_another_hospital(self):
        other = make_patient(self.h2, 'Michael Brown')
        resp = self._create(patientId=other.id, toHospitalId=self.h4.id)
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Referral.objects.count(), 0)

    def test_destination_must_be_another_connected_hospital(self):
        self.assertEqual(self._create(toHospitalId=self.h1.id).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self._create(toHospitalId=self.h3.id).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Referral.objects.count(), 0)

    def test_emergency_referral_needs_confirmation(self):
        resp = self._create(priority='EMERGENCY')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        resp = self._create(priority='EMERGENCY', emergencyConfirmed=True, emergencyReason='ST elevation')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertTrue(resp.data['emergencyConfirmed'])

    def test_receiving_doctor_accepts_exactly_once(self):
        rid = self._create().data['id']
        resp = self._resolve(rid, self.doctor2, status='ACCEPTED')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data['status'], 'ACCEPTED')
        self.assertEqual(resp.data['receivingDoctor'], self.doctor2.name)

        again = self._resolve(rid, self.doctor2, status='REJECTED', reason='No beds')
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(again.data['error']['code'], 'invalid_transition')

        referral = Referral.objects.get(pk=rid)
        self.assertEqual(referral.status, Referral.STATUS_ACCEPTED)
        self.assertEqual([e.type for e in referral.timeline.all()], ['CREATED', 'ACCEPTED'])

    def test_status_value_is_case_insensitive(self):
        rid = self._create().data['id']
        resp = self._resolve(rid, self.doctor2, status='accepted')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data['status'], 'ACCEPTED')

    def test_rejection_requires_reason(self):
        rid = self._create().data['id']
        resp = self._resolve(rid, self.doctor2, status='REJECTED')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Referral.objects.get(pk=rid).status, Referral.STATUS_SENT)
        self.assertEqual(ReferralEvent.objects.filter(referral_id=rid).count(), 1)

    def test_rejection_records_reason(self):
        rid = self._create().data['id']
        resp = self._resolve(rid, self.doctor2, status='REJECTED', reason='No ICU capacity')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        referral = Referral.objects.get(pk=rid)
        self.assertEqual(referral.rejection_reason, 'No ICU capacity')
        last = referral.timeline.last()
        self.assertEqual(last.type, ReferralEvent.TYPE_REJECTED)
        self.assertEqual(last.details, 'Reason: No ICU capacity')

    def test_only_destination_doctor_can_resolve(self):
        rid = self._create().data['id']
        self.assertEqual(self._resolve(rid, self.doctor1, status='ACCEPTED').status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self._resolve(rid, self.nurse2, status='ACCEPTED').status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self._resolve(rid, self.doctor4, status='ACCEPTED').status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Referral.objects.get(pk=rid).status, Referral.STATUS_SENT)

    def test_third_hospital_cannot_read_referral(self):
        rid = self._create().data['id']
        self.client.force_authenticate(self.doctor4)
        self.assertEqual(self.client.get(reverse('referral-detail', args=[rid])).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.get(self.url, {'type': 'incoming'}).data, [])
        self.client.force_authenticate(self.nurse2)
        self.assertEqual(self.client.get(reverse('referral-detail', args=[rid])).status_code, status.HTTP_200_OK)

    def test_incoming_orders_by_priority_then_newest(self):
        now = timezone.now()
        plan = [
            ('NORMAL', 50),
            ('EMERGENCY', 40),
            ('URGENT', 30),
            ('NORMAL', 20),
            ('EMERGENCY', 10),
        ]
        ids = {}
        for priority, minutes_ago in plan:
            extra = {'emergencyConfirmed': True} if priority == 'EMERGENCY' else {}
            rid = self._create(priority=priority, **extra).data['id']
            Referral.objects.filter(pk=rid).update(created_at=now - timedelta(minutes=minutes_ago))
            ids[(priority, minutes_ago)] = rid

        self.client.force_authenticate(self.doctor2)
        resp = self.client.get(self.url, {'type': 'incoming'})
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        expected = [
            ids[('EMERGENCY', 10)],
            ids[('EMERGENCY', 40)],
            ids[('URGENT', 30)],
            ids[('NORMAL', 20)],
            ids[('NORMAL', 50)],
        ]
        self.assertEqual([r['id'] for r in resp.data], expected)

        self.client.force_authenticate(self.doctor1)
        out = self.client.get(self.url, {'type': 'outgoing'})
        self.assertEqual(
            [r['id'] for r in out.data],
            [ids[k] for k in sorted(ids, key=lambda k: k[1])],
        )

    def test_unknown_direction_rejected(self):
        self.client.force_authenticate(self.doctor1)
        self.assertEqual(self.client.get(self.url, {'type': 'sideways'}).status_code, status.HTTP_400_BAD_REQUEST)


@pytest.mark.django_db
def test_resolve_loses_race_against_concurrent_resolution(world, monkeypatch):
    referral = referral_service.create_referral(
        world.doctor1, patient_id=world.patient1.pk, to_hospital_id=world.h2.pk,
        reason='Second opinion', priority=Priority.URGENT,
    )
    real = referral_service.can_transition

    def racing(current, new):
        # another doctor commits an acceptance between our read and our update
        Referral.objects.filter(pk=referral.pk).update(status=Referral.STATUS_ACCEPTED)
        return real(current, new)

    monkeypatch.setattr(referral_service, 'can_transition', racing)
    with pytest.raises(InvalidTransition):
        referral_service.resolve_referral(world.doctor2, referral.pk, 'REJECTED', 'No beds')
    assert referral.timeline.count() == 1
    assert Referral.objects.get(pk=referral.pk).rejection_reason == ''


def test_transition_table_has_terminal_states():
    assert referral_service.can_transition('SENT', 'ACCEPTED')
    assert referral_service.can_transition('SENT', 'REJECTED')
    assert not referral_service.can_transition('ACCEPTED', 'REJECTED')
    assert not referral_service.can_transition('REJECTED', 'ACCEPTED')
    assert not referral_service.can_transition('SENT', 'SENT')
