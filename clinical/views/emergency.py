from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinical.models import EmergencyAccessLog
from clinical.permissions import IsAdminRole, IsClinicalStaff
from clinical.serializers.patient import EmergencyAccessSerializer
from clinical.serializers.staff import HospitalScopeQuerySerializer
from clinical.services.audit import client_ip
from clinical.services.emergency import (
    active_session_count,
    close_emergency_access,
    list_emergency_access_logs,
    open_emergency_access,
    patient_label,
)


def _serialize(log: EmergencyAccessLog) -> dict:
    minutes = log.duration_minutes
    return {
        'id': log.id,
        'userId': log.user_id,
        'userName': log.user.name,
        'userRole': log.user.role,
        'department': log.user.department.name if log.user.department_id else None,
        'patientId': log.patient_id,
        'patient': patient_label(log.patient),
        'reason': log.reason,
        'status': log.status,
        'startTime': log.start_time.isoformat(),
        'endTime': log.end_time.isoformat() if log.end_time else None,
        'duration': f'{minutes} min' if minutes is not None else 'Active',
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def emergency_access_logs(request):
    q = HospitalScopeQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = list_emergency_access_logs(request.user, q.validated_data.get('hospitalId'))
    return Response([_serialize(log) for log in qs])


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def emergency_access_open(request):
    s = EmergencyAccessSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    log = open_emergency_access(
        request.user, s.validated_data['patient_id'], s.validated_data['reason'], ip=client_ip(request)
    )
    return Response(_serialize(log), status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def emergency_access_close(request, pk: int):
    log = close_emergency_access(request.user, pk, ip=client_ip(request))
    return Response(_serialize(log))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def emergency_access_active_count(request):
    return Response({'count': active_session_count(request.user)})
