"""
Staff and department administration views.

Hospital administrators manage their own hospital; system
administrators may pass ``hospitalId`` to act on any hospital.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinical.models import Department
from clinical.permissions import IsAdminRole, IsClinicalStaff
from clinical.serializers.staff import (
    DepartmentCreateSerializer,
    DepartmentUpdateSerializer,
    HospitalScopeQuerySerializer,
    InviteStaffSerializer,
    RoleUpdateSerializer,
)
from clinical.services.audit import client_ip
from clinical.services.departments import (
    create_department,
    delete_department,
    list_departments,
    toggle_department_status,
    update_department,
)
from clinical.services.staff import invite_staff, list_nurses, list_staff, update_staff_role


def _serialize_user(u) -> dict:
    return {
        'id': u.id,
        'name': u.name,
        'email': u.email,
        'role': u.role,
        'hospitalId': u.hospital_id,
        'departmentId': u.department_id,
        'department': u.department.name if u.department_id else None,
        'isActive': u.is_active,
        'pendingInvitation': u.must_set_password,
    }


def _serialize_department(d: Department) -> dict:
    return {
        'id': d.id,
        'name': d.name,
        'status': d.status,
        'hospitalId': d.hospital_id,
        'head': d.head.name if d.head_id else 'Vacant',
        'staffCount': getattr(d, 'staff_count', None),
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def staff(request):
    if request.method == 'GET':
        q = HospitalScopeQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        return Response([_serialize_user(u) for u in list_staff(request.user, q.validated_data.get('hospitalId'))])
    s = InviteStaffSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user, invitation = invite_staff(request.user, ip=client_ip(request), **s.validated_data)
    data = _serialize_user(user)
    data['invitation'] = {'token': invitation.token, 'expiresAt': invitation.expires_at.isoformat()}
    return Response(data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def staff_role(request, pk: int):
    s = RoleUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = update_staff_role(request.user, pk, s.validated_data['role'], ip=client_ip(request))
    return Response(_serialize_user(user))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def nurses(request):
    return Response([{'id': u.id, 'name': u.name} for u in list_nurses(request.user)])


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def departments(request):
    if request.method == 'GET':
        q = HospitalScopeQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = list_departments(request.user, q.validated_data.get('hospitalId'))
        return Response([_serialize_department(d) for d in qs])
    s = DepartmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    dept = create_department(
        request.user, s.validated_data['name'], s.validated_data.get('hospital_id'), ip=client_ip(request)
    )
    return Response(_serialize_department(dept), status=status.HTTP_201_CREATED)


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def department_detail(request, pk: int):
    if request.method == 'DELETE':
        delete_department(request.user, pk, ip=client_ip(request))
        return Response(status=status.HTTP_204_NO_CONTENT)
    s = DepartmentUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    dept = update_department(request.user, pk, ip=client_ip(request), **s.validated_data)
    return Response(_serialize_department(dept))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def department_toggle(request, pk: int):
    dept = toggle_department_status(request.user, pk, ip=client_ip(request))
    return Response(_serialize_department(dept))
