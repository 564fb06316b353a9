from __future__ import annotations

from typing import Optional

from rest_framework.exceptions import ValidationError

from clinical.models import Department
from clinical.services.access import ALL_ROLES, require_roles
from clinical.services.audit import create_audit_log
from clinical.services.staff import check_password_strength

MIN_PASSWORD_LENGTH = 8


def user_profile(user) -> dict:
    return {
        'id': user.pk,
        'email': user.email,
        'name': user.name,
        'role': user.role,
        'hospitalId': user.hospital_id,
        'hospital': user.hospital.name if user.hospital_id else 'N/A',
        'departmentId': user.department_id,
        'department': user.department.name if user.department_id else None,
        'mustSetPassword': user.must_set_password,
    }


def update_profile(user, *, name: Optional[str] = None, department_id=None, ip: Optional[str] = None):
    require_roles(user, ALL_ROLES)
    fields = []
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError({'name': 'name cannot be empty'})
        user.name = name
        fields.append('name')
    if department_id is not None:
        department = Department.objects.filter(pk=department_id, hospital_id=user.hospital_id).first()
        if department is None:
            raise ValidationError({'departmentId': 'unknown department for this hospital'})
        user.department = department
        fields.append('department')
    if fields:
        user.save(update_fields=fields)
        create_audit_log(user, 'UPDATE', 'Profile', f'Updated profile: {", ".join(fields)}', ip=ip)
    return user


def change_password(user, current_password: str, new_password: str, *, ip: Optional[str] = None):
    require_roles(user, ALL_ROLES)
    if not user.check_password(current_password or ''):
        raise ValidationError({'currentPassword': 'Current password is incorrect'})
    if len(new_password or '') < MIN_PASSWORD_LENGTH:
        raise ValidationError({'newPassword': f'New password must be at least {MIN_PASSWORD_LENGTH} characters'})
    check_password_strength(new_password, user=user)
    user.set_password(new_password)
    user.save(update_fields=['password'])
    create_audit_log(user, 'UPDATE', 'Password', 'Changed password', ip=ip)
    return user
