from __future__ import annotations

import logging
from typing import Optional

from django.conf import settings
from django.db import transaction
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinical.models import MedicalDocument, Patient, Role
from clinical.services.access import (
    CLINICAL_ROLES,
    ensure_same_hospital,
    require_hospital,
    require_roles,
)
from clinical.services.audit import create_audit_log
from clinical.services.patients import can_view_patient, is_shared_document, sharing_scope

logger = logging.getLogger(__name__)


def format_file_size(size: int) -> str:
    if not size:
        return '0 Bytes'
    units = ['Bytes', 'KB', 'MB', 'GB']
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    text = f"{value:.2f}".rstrip('0').rstrip('.')
    return f"{text} {units[i]}"


def validate_upload(f) -> str:
    """Return the upload's content type or raise when it is too big or not allowed."""
    if f is None:
        raise ValidationError({'file': 'No file uploaded'})
    size_mb = (f.size or 0) / (1024 * 1024)
    if size_mb > settings.UPLOAD_MAX_MB:
        raise ValidationError({'file': f'File is larger than {settings.UPLOAD_MAX_MB} MB'})
    ctype = getattr(f, 'content_type', '') or ''
    if not any(ctype.startswith(prefix) for prefix in settings.ALLOWED_UPLOAD_TYPES):
        raise ValidationError({'file': f'Unsupported file type: {ctype or "unknown"}'})
    return ctype


def list_patient_documents(user, patient_id):
    require_roles(user, CLINICAL_ROLES)
    patient = Patient.objects.filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    if not can_view_patient(user, patient):
        raise PermissionDenied('forbidden for this patient')
    scope = sharing_scope(user, patient)
    docs = patient.documents.select_related('uploaded_by').order_by('-created_at', '-id')
    return [d for d in docs if is_shared_document(d, scope)]


def list_hospital_documents(user):
    require_roles(user, CLINICAL_ROLES)
    hospital_id = require_hospital(user)
    return (
        MedicalDocument.objects.filter(patient__hospital_id=hospital_id)
        .select_related('patient', 'uploaded_by')
        .order_by('-created_at', '-id')
    )


def upload_document(user, patient_id, *, file, title: str, doc_type: str, ip: Optional[str] = None) -> MedicalDocument:
    require_roles(user, CLINICAL_ROLES)
    patient = Patient.objects.filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    ensure_same_hospital(user, patient.hospital_id, 'forbidden for this patient')
    ctype = validate_upload(file)
    with transaction.atomic():
        doc = MedicalDocument.objects.create(
            patient=patient,
            title=(title or '').strip() or getattr(file, 'name', 'document'),
            doc_type=doc_type,
            file=file,
            content_type=ctype,
            file_size=file.size or 0,
            uploaded_by=user,
        )
        create_audit_log(user, 'UPLOAD', 'MedicalDocument', f'Uploaded {doc.title} for {patient.name}', ip=ip)
    return doc


def delete_document(user, document_id, *, ip: Optional[str] = None) -> None:
    require_roles(user, {Role.DOCTOR}, 'Only doctors can delete documents')
    doc = MedicalDocument.objects.select_related('patient').filter(pk=document_id).first()
    if doc is None:
        raise NotFound('Document not found')
    ensure_same_hospital(user, doc.patient.hospital_id, 'forbidden for this document')
    title, patient_name = doc.title, doc.patient.name
    with transaction.atomic():
        doc.delete()
        create_audit_log(user, 'DELETE', 'MedicalDocument', f'Deleted {title} for {patient_name}', ip=ip)
    try:
        doc.file.delete(save=False)
    except OSError:
        logger.warning('could not remove stored file for document %s', document_id, exc_info=True)
