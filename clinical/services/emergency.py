"""
Emergency ("break-glass") access.

A clinician opens a session with a stated reason to read a patient
record outside their own hospital.  While the session is ``OPEN`` the
record is readable; closing it is a one-way conditional update, and
stale sessions are closed by :func:`expire_stale_sessions`.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinical.exceptions import InvalidTransition
from clinical.models import EmergencyAccessLog, Patient
from clinical.services.access import (
    ADMIN_ROLES,
    CLINICAL_ROLES,
    ensure_hospital_scope,
    is_authenticated,
    require_roles,
    role_of,
    scoped_hospital_id,
)
from clinical.services.audit import create_audit_log

logger = logging.getLogger(__name__)

EMERGENCY_TRANSITIONS = {
    EmergencyAccessLog.STATUS_OPEN: {EmergencyAccessLog.STATUS_CLOSED},
    EmergencyAccessLog.STATUS_CLOSED: set(),
}


def patient_label(patient: Patient) -> str:
    return f"P-{patient.pk:05d} ({patient.name})"


def has_open_session(user, patient_id) -> bool:
    if not is_authenticated(user):
        return False
    return EmergencyAccessLog.objects.filter(
        user=user, patient_id=patient_id, status=EmergencyAccessLog.STATUS_OPEN
    ).exists()


def list_emergency_access_logs(user, hospital_id=None):
    require_roles(user, ADMIN_ROLES)
    qs = EmergencyAccessLog.objects.select_related('user', 'patient', 'user__department')
    scope = scoped_hospital_id(user, hospital_id)
    if scope:
        qs = qs.filter(user__hospital_id=scope)
    return qs.order_by('-start_time', '-id')


def open_emergency_access(user, patient_id, reason: str, *, ip: Optional[str] = None) -> EmergencyAccessLog:
    require_roles(user, CLINICAL_ROLES, 'Only clinical staff can request emergency access')
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError({'reason': 'a reason is required for emergency access'})
    patient = Patient.objects.filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    with transaction.atomic():
        log = EmergencyAccessLog.objects.create(user=user, patient=patient, reason=reason)
        create_audit_log(
            user, 'EMERGENCY_ACCESS', 'Patient',
            f'Started emergency access to {patient_label(patient)}. Reason: {reason}', ip=ip,
        )
    logger.warning('emergency access opened: user=%s patient=%s log=%s', user.pk, patient.pk, log.pk)
    return log


def close_emergency_access(user, log_id, *, ip: Optional[str] = None) -> EmergencyAccessLog:
    """Close an open session; allowed for its owner and for administrators of the owner's hospital."""
    require_roles(user, CLINICAL_ROLES | ADMIN_ROLES)
    log = EmergencyAccessLog.objects.select_related('user', 'patient').filter(pk=log_id).first()
    if log is None:
        raise NotFound('Emergency access session not found')
    if log.user_id != user.pk:
        if role_of(user) not in ADMIN_ROLES:
            raise PermissionDenied('forbidden for this session')
        ensure_hospital_scope(user, log.user.hospital_id, 'forbidden for this session')
    if EmergencyAccessLog.STATUS_CLOSED not in EMERGENCY_TRANSITIONS.get(log.status, set()):
        raise InvalidTransition('emergency access session is already closed')

    end_time = max(timezone.now(), log.start_time)
    with transaction.atomic():
        updated = EmergencyAccessLog.objects.filter(
            pk=log.pk, status=EmergencyAccessLog.STATUS_OPEN
        ).update(status=EmergencyAccessLog.STATUS_CLOSED, end_time=end_time)
        if updated != 1:
            raise InvalidTransition('emergency access session is already closed')
        create_audit_log(
            user, 'CLOSE_EMERGENCY_ACCESS', 'Patient',
            f'Closed emergency access to {patient_label(log.patient)}', ip=ip,
        )
    log.refresh_from_db()
    logger.info('emergency access %s closed by user %s', log.pk, user.pk)
    return log


def active_session_count(user) -> int:
    """Open sessions held by staff of the caller's hospital; 0 when there is nothing to count."""
    if not is_authenticated(user) or not getattr(user, 'hospital_id', None):
        return 0
    return EmergencyAccessLog.objects.filter(
        user__hospital_id=user.hospital_id, status=EmergencyAccessLog.STATUS_OPEN
    ).count()


def expire_stale_sessions(max_hours: int, now=None) -> int:
    now = now or timezone.now()
    cutoff = now - timedelta(hours=max_hours)
    closed = 0
    stale = EmergencyAccessLog.objects.select_related('user', 'patient').filter(
        status=EmergencyAccessLog.STATUS_OPEN, start_time__lt=cutoff
    )
    for log in stale:
        with transaction.atomic():
            updated = EmergencyAccessLog.objects.filter(
                pk=log.pk, status=EmergencyAccessLog.STATUS_OPEN
            ).update(status=EmergencyAccessLog.STATUS_CLOSED, end_time=now)
            if not updated:
                continue
            create_audit_log(
                None, 'AUTO_CLOSE_EMERGENCY_ACCESS', 'Patient',
                f'Expired emergency access of {log.user.email} to {patient_label(log.patient)} after {max_hours}h',
            )
        closed += 1
    return closed
