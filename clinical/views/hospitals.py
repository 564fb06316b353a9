"""
Hospital directory and system administration views.

``contact-hospitals`` is public and cached; everything under
``/api/admin/`` is for system administrators only.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinical.models import Hospital
from clinical.permissions import IsSystemAdmin
from clinical.serializers.staff import HospitalCreateSerializer, HospitalStatusSerializer
from clinical.services.audit import client_ip
from clinical.services.hospitals import (
    contact_hospitals,
    create_hospital_with_admin,
    get_hospital,
    list_all_hospitals,
    list_connected_hospitals,
    own_departments,
    system_stats,
    update_hospital_status,
)


def _serialize(h: Hospital) -> dict:
    data = {
        'id': h.id,
        'name': h.name,
        'type': h.type,
        'location': h.location,
        'status': h.status,
        'specialties': h.specialties or [],
        'contactEmail': h.contact_email,
        'contactPhone': h.contact_phone,
    }
    for attr, key in (('staff_count', 'staffCount'), ('patient_count', 'patientCount'), ('department_count', 'departmentCount')):
        if hasattr(h, attr):
            data[key] = getattr(h, attr)
    return data


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def hospitals(request):
    return Response([_serialize(h) for h in list_connected_hospitals(request.user)])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def hospital_detail(request, pk: int):
    return Response(_serialize(get_hospital(request.user, pk)))


@api_view(['GET'])
@permission_classes([AllowAny])
def public_hospitals(request):
    return Response(contact_hospitals())


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_departments(request):
    return Response([{'id': d.id, 'name': d.name} for d in own_departments(request.user)])


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsSystemAdmin])
def admin_hospitals(request):
    if request.method == 'GET':
        return Response([_serialize(h) for h in list_all_hospitals(request.user)])
    s = HospitalCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    hospital, admin, invitation = create_hospital_with_admin(
        request.user,
        hospital=s.validated_data['hospital'],
        admin=s.validated_data['admin'],
        ip=client_ip(request),
    )
    return Response({
        'hospital': _serialize(hospital),
        'admin': {'id': admin.id, 'name': admin.name, 'email': admin.email, 'role': admin.role},
        'invitation': {'token': invitation.token, 'expiresAt': invitation.expires_at.isoformat()},
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsSystemAdmin])
def admin_hospital_status(request, pk: int):
    s = HospitalStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    hospital = update_hospital_status(request.user, pk, s.validated_data['status'], ip=client_ip(request))
    return Response(_serialize(hospital))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSystemAdmin])
def admin_stats(request):
    return Response(system_stats(request.user))
