from __future__ import annotations

from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Count
from rest_framework.exceptions import NotFound, ValidationError

from clinical.models import Department, Role
from clinical.services.access import (
    ADMIN_ROLES,
    ensure_hospital_scope,
    require_roles,
    scoped_hospital_id,
)
from clinical.services.audit import create_audit_log


def _get(user, department_id) -> Department:
    department = Department.objects.filter(pk=department_id).first()
    if department is None:
        raise NotFound('Department not found')
    ensure_hospital_scope(user, department.hospital_id, 'forbidden for this department')
    return department


def list_departments(user, hospital_id=None):
    require_roles(user, ADMIN_ROLES)
    qs = Department.objects.select_related('head').annotate(staff_count=Count('users'))
    scope = scoped_hospital_id(user, hospital_id)
    if scope:
        qs = qs.filter(hospital_id=scope)
    return qs.order_by('name', 'id')


def create_department(user, name: str, hospital_id=None, *, ip: Optional[str] = None) -> Department:
    require_roles(user, ADMIN_ROLES)
    target = scoped_hospital_id(user, hospital_id)
    if not target:
        raise ValidationError({'hospitalId': 'hospitalId is required'})
    name = (name or '').strip()
    if not name:
        raise ValidationError({'name': 'name is required'})
    if Department.objects.filter(hospital_id=target, name__iexact=name).exists():
        raise ValidationError({'name': 'a department with this name already exists'})
    try:
        with transaction.atomic():
            department = Department.objects.create(hospital_id=target, name=name)
    except IntegrityError:
        raise ValidationError({'name': 'a department with this name already exists'})
    create_audit_log(user, 'CREATE', 'Department', f'Created department: {name}', ip=ip)
    return department


def update_department(user, department_id, *, name: Optional[str] = None, status: Optional[str] = None, ip: Optional[str] = None) -> Department:
    require_roles(user, ADMIN_ROLES)
    department = _get(user, department_id)
    changes = []
    if name is not None and name.strip() and name.strip() != department.name:
        name = name.strip()
        if Department.objects.filter(hospital_id=department.hospital_id, name__iexact=name).exclude(pk=department.pk).exists():
            raise ValidationError({'name': 'a department with this name already exists'})
        department.name = name
        changes.append('name')
    if status is not None and status != department.status:
        if status not in dict(Department.STATUS_CHOICES):
            raise ValidationError({'status': f'unknown status: {status!r}'})
        if status == Department.STATUS_INACTIVE and department.users.exists():
            raise ValidationError({'status': 'Cannot disable department with active staff. Reassign staff first.'})
        department.status = status
        changes.append('status')
    if changes:
        department.save(update_fields=changes)
        create_audit_log(user, 'UPDATE', 'Department', f'Updated department {department.name}: {", ".join(changes)}', ip=ip)
    return department


def toggle_department_status(user, department_id, *, ip: Optional[str] = None) -> Department:
    require_roles(user, ADMIN_ROLES)
    department = _get(user, department_id)
    new_status = Department.STATUS_INACTIVE if department.status == Department.STATUS_ACTIVE else Department.STATUS_ACTIVE
    return update_department(user, department.pk, status=new_status, ip=ip)


def delete_department(user, department_id, *, ip: Optional[str] = None) -> None:
    require_roles(user, {Role.HOSPITAL_ADMIN}, 'Only hospital administrators can delete departments')
    department = _get(user, department_id)
    name = department.name
    department.delete()
    create_audit_log(user, 'DELETE', 'Department', f'Deleted department: {name}', ip=ip)
