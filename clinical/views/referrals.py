"""
Referral views.

``GET /api/referrals?type=incoming|outgoing`` lists the caller's
hospital referrals, ``POST /api/referrals`` creates one, and
``POST /api/referrals/<id>/resolve`` accepts or rejects it.  All rules
(roles, hospital ownership, the status machine) live in
:mod:`clinical.services.referrals`; the views only validate input and
shape output.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinical.models import Referral
from clinical.serializers.referral import (
    ReferralCreateSerializer,
    ReferralListQuerySerializer,
    ReferralResolveSerializer,
)
from clinical.services.audit import client_ip
from clinical.services.patients import referral_share, shared_records
from clinical.services.referrals import (
    create_referral,
    get_referral,
    list_referrals,
    referral_summary,
    resolve_referral,
)


def _serialize_detail(referral: Referral, user) -> dict:
    data = referral_summary(referral)
    patient = referral.patient
    # the receiving side reads only what this referral shares
    scope = None if getattr(user, 'hospital_id', None) == patient.hospital_id else referral_share(referral)
    data.update({
        'notes': referral.notes,
        'emergencyConfirmed': referral.emergency_confirmed,
        'emergencyReason': referral.emergency_reason,
        'immediateRisks': referral.immediate_risks,
        'shareLabResults': referral.share_lab_results,
        'shareImaging': referral.share_imaging,
        'shareNotes': referral.share_notes,
        'rejectionReason': referral.rejection_reason or None,
        'patient': {
            'id': patient.id,
            'name': patient.name,
            'age': patient.age,
            'gender': patient.gender,
            'bloodType': patient.blood_type,
            'allergies': patient.allergies,
            'chronicConditions': patient.chronic_conditions,
            'medicalRecords': [
                {
                    'id': rec.id,
                    'date': rec.date.isoformat(),
                    'type': rec.record_type,
                    'title': rec.title,
                    'notes': notes,
                }
                for rec, notes in shared_records(patient.medical_records.all(), scope)
            ],
        },
        'timeline': [
            {
                'id': ev.id,
                'type': ev.type,
                'actor': ev.actor_name,
                'details': ev.details,
                'timestamp': ev.timestamp.isoformat(),
            }
            for ev in referral.timeline.all()
        ],
    })
    return data


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def referrals(request):
    if request.method == 'GET':
        q = ReferralListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = list_referrals(request.user, q.validated_data['type'])
        return Response([referral_summary(r) for r in qs])
    s = ReferralCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    referral = create_referral(request.user, ip=client_ip(request), **s.validated_data)
    referral = get_referral(request.user, referral.pk)
    return Response(_serialize_detail(referral, request.user), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def referral_detail(request, pk: int):
    return Response(_serialize_detail(get_referral(request.user, pk), request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def referral_resolve(request, pk: int):
    s = ReferralResolveSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    resolve_referral(
        request.user, pk, s.validated_data['status'], s.validated_data.get('reason'), ip=client_ip(request)
    )
    return Response(_serialize_detail(get_referral(request.user, pk), request.user))
