"""
Referral lifecycle.

A referral is created ``SENT`` by a doctor of the patient's hospital and
resolved exactly once, to ``ACCEPTED`` or ``REJECTED``, by a doctor of
the destination hospital.  Resolution is a conditional update on the
``SENT`` status so two concurrent resolutions cannot both succeed; the
loser gets :class:`~clinical.exceptions.InvalidTransition`.  Each
transition appends one :class:`ReferralEvent` in the same transaction.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction
from django.db.models import Case, IntegerField, Prefetch, Value, When
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinical.exceptions import InvalidTransition
from clinical.models import (
    Hospital,
    MedicalRecord,
    Patient,
    Priority,
    PRIORITY_RANK,
    Referral,
    ReferralEvent,
    Role,
)
from clinical.services.access import STAFF_ROLES, require_hospital, require_roles
from clinical.services.audit import create_audit_log
from clinical.services.realtime import hospital_group, push, user_group

logger = logging.getLogger(__name__)

REFERRAL_TRANSITIONS = {
    Referral.STATUS_SENT: {Referral.STATUS_ACCEPTED, Referral.STATUS_REJECTED},
    Referral.STATUS_ACCEPTED: set(),
    Referral.STATUS_REJECTED: set(),
}

DIRECTION_INCOMING = 'incoming'
DIRECTION_OUTGOING = 'outgoing'


def can_transition(current: str, new: str) -> bool:
    return new in REFERRAL_TRANSITIONS.get(current, set())


def priority_rank():
    return Case(
        *[When(priority=p, then=Value(rank)) for p, rank in PRIORITY_RANK.items()],
        default=Value(0),
        output_field=IntegerField(),
    )


def _base_queryset():
    return Referral.objects.select_related(
        'patient', 'from_hospital', 'to_hospital', 'referring_doctor', 'receiving_doctor'
    )


def list_referrals(user, direction: str = DIRECTION_INCOMING):
    """Incoming referrals sort by priority then newest first; outgoing by newest first."""
    require_roles(user, STAFF_ROLES)
    hospital_id = require_hospital(user)
    qs = _base_queryset()
    if direction == DIRECTION_INCOMING:
        return qs.filter(to_hospital_id=hospital_id).annotate(
            priority_rank=priority_rank()
        ).order_by('-priority_rank', '-created_at', '-id')
    if direction == DIRECTION_OUTGOING:
        return qs.filter(from_hospital_id=hospital_id).order_by('-created_at', '-id')
    raise ValidationError({'type': f'unknown referral direction: {direction!r}'})


def get_referral(user, referral_id) -> Referral:
    require_roles(user, STAFF_ROLES)
    hospital_id = require_hospital(user)
    referral = _base_queryset().prefetch_related(
        Prefetch('timeline', queryset=ReferralEvent.objects.order_by('timestamp', 'id')),
        Prefetch('patient__medical_records', queryset=MedicalRecord.objects.order_by('-date')),
    ).filter(pk=referral_id).first()
    if referral is None:
        raise NotFound('Referral not found')
    if hospital_id not in (referral.from_hospital_id, referral.to_hospital_id):
        raise PermissionDenied('forbidden for this referral')
    return referral


def create_referral(
    user,
    *,
    patient_id,
    to_hospital_id,
    reason: str,
    priority: str = Priority.NORMAL,
    notes: str = '',
    department: str = '',
    emergency_confirmed: bool = False,
    emergency_reason: str = '',
    immediate_risks: str = '',
    share_lab_results: bool = True,
    share_imaging: bool = False,
    share_notes: bool = True,
    ip: Optional[str] = None,
) -> Referral:
    require_roles(user, {Role.DOCTOR}, 'Only doctors can create referrals')
    hospital_id = require_hospital(user)

    patient = Patient.objects.filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    if patient.hospital_id != hospital_id:
        raise PermissionDenied('forbidden for this patient')
    to_hospital = Hospital.objects.filter(pk=to_hospital_id).first()
    if to_hospital is None:
        raise NotFound('Destination hospital not found')
    if to_hospital.id == hospital_id:
        raise ValidationError({'toHospitalId': 'cannot refer a patient to the same hospital'})
    if to_hospital.status != Hospital.STATUS_CONNECTED:
        raise ValidationError({'toHospitalId': 'destination hospital is not connected'})
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError({'reason': 'a reason is required'})
    if priority not in Priority.values:
        raise ValidationError({'priority': f'unknown priority: {priority!r}'})

    with transaction.atomic():
        referral = Referral.objects.create(
            patient=patient,
            from_hospital_id=hospital_id,
            to_hospital=to_hospital,
            referring_doctor=user,
            status=Referral.STATUS_SENT,
            priority=priority,
            reason=reason,
            notes=notes or '',
            department=department or '',
            emergency_confirmed=emergency_confirmed,
            emergency_reason=emergency_reason or '',
            immediate_risks=immediate_risks or '',
            share_lab_results=share_lab_results,
            share_imaging=share_imaging,
            share_notes=share_notes,
        )
        ReferralEvent.objects.create(
            referral=referral,
            type=ReferralEvent.TYPE_CREATED,
            actor=user,
            actor_name=user.name,
            details='Referral created and sent',
        )
        create_audit_log(
            user, 'CREATE', 'Referral',
            f'Referred patient {patient.name} to {to_hospital.name} ({priority})', ip=ip,
        )
        payload = {'referralId': referral.id, 'priority': priority, 'fromHospitalId': hospital_id}
        transaction.on_commit(lambda: push(hospital_group(to_hospital.id), 'referral.created', payload))
    logger.info('referral %s created %s -> %s (%s)', referral.id, hospital_id, to_hospital.id, priority)
    return referral


def resolve_referral(user, referral_id, new_status: str, reason: Optional[str] = None, *, ip: Optional[str] = None) -> Referral:
    """Accept or reject a ``SENT`` referral on behalf of the destination hospital."""
    require_roles(user, {Role.DOCTOR}, 'Only doctors can accept or reject referrals')
    hospital_id = require_hospital(user)
    new_status = (new_status or '').strip().upper()
    if new_status not in (Referral.STATUS_ACCEPTED, Referral.STATUS_REJECTED):
        raise ValidationError({'status': 'status must be ACCEPTED or REJECTED'})
    reason = (reason or '').strip()
    if new_status == Referral.STATUS_REJECTED and not reason:
        raise ValidationError({'reason': 'a rejection reason is required'})

    referral = Referral.objects.select_related('patient').filter(pk=referral_id).first()
    if referral is None:
        raise NotFound('Referral not found')
    if referral.to_hospital_id != hospital_id:
        raise PermissionDenied('only the receiving hospital can resolve this referral')
    if not can_transition(referral.status, new_status):
        raise InvalidTransition(f'referral is already {referral.status}')

    with transaction.atomic():
        updated = Referral.objects.filter(
            pk=referral.pk, status=Referral.STATUS_SENT, to_hospital_id=hospital_id
        ).update(
            status=new_status,
            receiving_doctor=user,
            rejection_reason=reason if new_status == Referral.STATUS_REJECTED else '',
            updated_at=timezone.now(),
        )
        if updated != 1:
            current = Referral.objects.filter(pk=referral.pk).values_list('status', flat=True).first()
            raise InvalidTransition(f'referral is already {current}')
        ReferralEvent.objects.create(
            referral=referral,
            type=new_status,
            actor=user,
            actor_name=user.name,
            details=f'Reason: {reason}' if reason else '',
        )
        create_audit_log(
            user, new_status, 'Referral',
            f'Referral for {referral.patient.name} {new_status.lower()}' + (f': {reason}' if reason else ''),
            ip=ip,
        )
        payload = {'referralId': referral.pk, 'status': new_status}
        origin, doctor = referral.from_hospital_id, referral.referring_doctor_id
        transaction.on_commit(lambda: push(hospital_group(origin), 'referral.resolved', payload))
        transaction.on_commit(lambda: push(user_group(doctor), 'referral.resolved', payload))
    logger.info('referral %s %s by user %s', referral.pk, new_status, user.pk)
    referral.refresh_from_db()
    return referral


def referral_summary(referral: Referral) -> dict:
    return {
        'id': referral.id,
        'patientId': referral.patient_id,
        'patientName': referral.patient.name,
        'fromHospitalId': referral.from_hospital_id,
        'fromHospital': referral.from_hospital.name,
        'toHospitalId': referral.to_hospital_id,
        'toHospital': referral.to_hospital.name,
        'referringDoctor': referral.referring_doctor.name,
        'receivingDoctor': referral.receiving_doctor.name if referral.receiving_doctor_id else None,
        'department': referral.department,
        'status': referral.status,
        'priority': referral.priority,
        'reason': referral.reason,
        'createdAt': referral.created_at.isoformat(),
        'updatedAt': referral.updated_at.isoformat() if referral.updated_at else None,
    }
