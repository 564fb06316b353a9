from __future__ import annotations

import re
from typing import Optional

from django.db import transaction
from django.db.models import Prefetch
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinical.models import MedicalRecord, Patient, Referral, Role
from clinical.services.access import (
    CLINICAL_ROLES,
    STAFF_ROLES,
    ensure_same_hospital,
    require_hospital,
    require_roles,
)
from clinical.services.audit import create_audit_log
from clinical.services.emergency import has_open_session

# Chart sharing categories, matching the referral share flags
LAB = 'lab'
IMAGING = 'imaging'
NOTES = 'notes'

_LAB_RE = re.compile(r'\blab', re.IGNORECASE)
_IMAGING_RE = re.compile(r'\b(imaging|x-?ray|mri|ct|scan|radiology|ultrasound)\b', re.IGNORECASE)

# Fields a caller may set on create/update
PATIENT_FIELDS = (
    'name', 'age', 'gender', 'status', 'email', 'phone', 'blood_type',
    'allergies', 'chronic_conditions', 'emergency_contact_name',
    'emergency_contact_phone', 'emergency_contact_relationship',
)


def _clean_fields(fields: dict) -> dict:
    unknown = set(fields) - set(PATIENT_FIELDS)
    if unknown:
        raise ValidationError({'detail': f'unknown patient fields: {", ".join(sorted(unknown))}'})
    return fields


def can_view_patient(user, patient: Patient) -> bool:
    """Own hospital, a referral addressed to the caller's hospital, or an open emergency session."""
    hospital_id = getattr(user, 'hospital_id', None)
    if hospital_id:
        if patient.hospital_id == hospital_id:
            return True
        if Referral.objects.filter(patient=patient, to_hospital_id=hospital_id).exists():
            return True
    return has_open_session(user, patient.pk)


def clinical_category(label: str, content_type: str = '') -> str:
    """Sharing category of a record type or document type: lab, imaging or notes."""
    label = label or ''
    if (content_type or '').startswith('image/') or _IMAGING_RE.search(label):
        return IMAGING
    if _LAB_RE.search(label):
        return LAB
    return NOTES


def referral_share(referral: Referral) -> dict:
    return {LAB: referral.share_lab_results, IMAGING: referral.share_imaging, NOTES: referral.share_notes}


def sharing_scope(user, patient: Patient) -> Optional[dict]:
    """What part of a patient's chart the caller may read.

    ``None`` is the whole chart: the patient belongs to the caller's
    hospital or the caller holds an open emergency session.  Access that
    comes only through referrals is limited to the categories at least one
    of those referrals shares.
    """
    hospital_id = getattr(user, 'hospital_id', None)
    if (hospital_id and patient.hospital_id == hospital_id) or has_open_session(user, patient.pk):
        return None
    scope = {LAB: False, IMAGING: False, NOTES: False}
    if hospital_id:
        for referral in Referral.objects.filter(patient=patient, to_hospital_id=hospital_id):
            for key, shared in referral_share(referral).items():
                scope[key] = scope[key] or shared
    return scope


def shared_records(records, scope: Optional[dict]):
    """Yield ``(record, notes)`` for the records visible under ``scope``.

    Lab and imaging records are dropped when their category is not shared;
    other records stay listed with their notes withheld.
    """
    for rec in records:
        if scope is None:
            yield rec, rec.notes
            continue
        category = clinical_category(rec.record_type)
        if category != NOTES and not scope[category]:
            continue
        yield rec, (rec.notes if scope[category] else None)


def is_shared_document(doc, scope: Optional[dict]) -> bool:
    return scope is None or scope[clinical_category(doc.doc_type, doc.content_type)]


def list_patients(user):
    require_roles(user, STAFF_ROLES)
    hospital_id = require_hospital(user)
    return Patient.objects.filter(hospital_id=hospital_id).select_related('hospital').order_by('name', 'id')


def get_patient(user, patient_id) -> Patient:
    require_roles(user, STAFF_ROLES)
    patient = Patient.objects.select_related('hospital').prefetch_related(
        Prefetch('medical_records', queryset=MedicalRecord.objects.select_related('author').order_by('-date')),
        Prefetch('referrals', queryset=Referral.objects.select_related('from_hospital', 'to_hospital').order_by('-created_at')),
    ).filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    if not can_view_patient(user, patient):
        raise PermissionDenied('forbidden for this patient')
    return patient


def create_patient(user, *, ip: Optional[str] = None, **fields) -> Patient:
    require_roles(user, {Role.DOCTOR}, 'Only doctors can create patients')
    hospital_id = require_hospital(user)
    fields = _clean_fields(fields)
    if not (fields.get('name') or '').strip():
        raise ValidationError({'name': 'name is required'})
    with transaction.atomic():
        patient = Patient.objects.create(hospital_id=hospital_id, last_visit=timezone.now(), **fields)
        create_audit_log(user, 'CREATE', 'Patient', f'Created patient record: {patient.name}', ip=ip)
    return patient


def update_patient(user, patient_id, *, ip: Optional[str] = None, **fields) -> Patient:
    require_roles(user, CLINICAL_ROLES)
    fields = _clean_fields(fields)
    with transaction.atomic():
        patient = Patient.objects.select_for_update().filter(pk=patient_id).first()
        if patient is None:
            raise NotFound('Patient not found')
        ensure_same_hospital(user, patient.hospital_id, 'forbidden for this patient')
        for key, value in fields.items():
            setattr(patient, key, value)
        patient.save()
        create_audit_log(
            user, 'UPDATE', 'Patient',
            f'Updated patient {patient.name}: {", ".join(sorted(fields)) or "no changes"}', ip=ip,
        )
    return patient


def add_medical_record(user, patient_id, *, title: str, record_type: str = '', notes: str = '', date=None, ip: Optional[str] = None) -> MedicalRecord:
    require_roles(user, {Role.DOCTOR}, 'Only doctors can add medical records')
    patient = Patient.objects.filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    ensure_same_hospital(user, patient.hospital_id, 'forbidden for this patient')
    with transaction.atomic():
        record = MedicalRecord.objects.create(
            patient=patient,
            author=user,
            title=title,
            record_type=record_type or '',
            notes=notes or '',
            date=date or timezone.now(),
        )
        Patient.objects.filter(pk=patient.pk).update(last_visit=record.date)
        create_audit_log(user, 'CREATE', 'MedicalRecord', f'Added {record.title} for {patient.name}', ip=ip)
    return record
