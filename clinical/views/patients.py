"""
Patient views.

Listing is limited to the caller's own hospital.  A single record may
also be read by the destination hospital of one of the patient's
referrals, or by a clinician holding an open emergency access session.
Referral-only readers get the chart parts those referrals share.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinical.models import Patient
from clinical.permissions import IsDoctor
from clinical.serializers.patient import MedicalRecordSerializer, PatientSerializer
from clinical.services.audit import client_ip
from clinical.services.patients import (
    add_medical_record,
    create_patient,
    get_patient,
    list_patients,
    shared_records,
    sharing_scope,
    update_patient,
)


def _serialize(p: Patient) -> dict:
    return {
        'id': p.id,
        'name': p.name,
        'age': p.age,
        'gender': p.gender,
        'status': p.status,
        'email': p.email,
        'phone': p.phone,
        'bloodType': p.blood_type,
        'allergies': p.allergies,
        'chronicConditions': p.chronic_conditions,
        'hospitalId': p.hospital_id,
        'hospital': p.hospital.name,
        'lastVisit': p.last_visit.isoformat() if p.last_visit else None,
        'emergencyContact': {
            'name': p.emergency_contact_name,
            'phone': p.emergency_contact_phone,
            'relationship': p.emergency_contact_relationship,
        },
    }


def _serialize_detail(p: Patient, scope=None) -> dict:
    data = _serialize(p)
    data['medicalRecords'] = [
        {
            'id': rec.id,
            'date': rec.date.isoformat(),
            'type': rec.record_type,
            'title': rec.title,
            'notes': notes,
            'author': rec.author.name if rec.author_id else None,
        }
        for rec, notes in shared_records(p.medical_records.all(), scope)
    ]
    data['referrals'] = [
        {
            'id': r.id,
            'status': r.status,
            'priority': r.priority,
            'fromHospital': r.from_hospital.name,
            'toHospital': r.to_hospital.name,
            'createdAt': r.created_at.isoformat(),
        }
        for r in p.referrals.all()
    ]
    return data


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patients(request):
    if request.method == 'GET':
        return Response([_serialize(p) for p in list_patients(request.user)])
    s = PatientSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = create_patient(request.user, ip=client_ip(request), **s.validated_data)
    return Response(_serialize(patient), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def patient_detail(request, pk: int):
    if request.method == 'GET':
        patient = get_patient(request.user, pk)
        return Response(_serialize_detail(patient, sharing_scope(request.user, patient)))
    s = PatientSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    update_patient(request.user, pk, ip=client_ip(request), **s.validated_data)
    return Response(_serialize_detail(get_patient(request.user, pk)))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def patient_records(request, pk: int):
    s = MedicalRecordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    record = add_medical_record(request.user, pk, ip=client_ip(request), **s.validated_data)
    return Response({
        'id': record.id,
        'date': record.date.isoformat(),
        'type': record.record_type,
        'title': record.title,
        'notes': record.notes,
    }, status=status.HTTP_201_CREATED)
