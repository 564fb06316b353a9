"""
Staff accounts and invitations.

New staff never get a shared default password.  Inviting someone
creates the account with an unusable password plus a one-time
:class:`StaffInvitation`; the person redeems the token to choose their
own password.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinical.models import Department, Role, StaffInvitation
from clinical.services.access import (
    ADMIN_ROLES,
    CLINICAL_ROLES,
    ensure_hospital_scope,
    is_system_admin,
    normalize_role,
    require_hospital,
    require_roles,
    scoped_hospital_id,
)
from clinical.services.audit import create_audit_log

logger = logging.getLogger(__name__)

User = get_user_model()


def check_password_strength(password: str, user=None) -> None:
    try:
        validate_password(password, user=user)
    except DjangoValidationError as e:
        raise ValidationError({'password': e.messages})


def create_invitation(user, created_by=None) -> StaffInvitation:
    return StaffInvitation.objects.create(
        user=user,
        created_by=created_by,
        expires_at=timezone.now() + timedelta(hours=settings.INVITATION_TTL_HOURS),
    )


def create_invited_user(*, email: str, name: str, role: str, hospital_id, department=None, created_by=None):
    """Create an account that can only be activated through its invitation."""
    email = (email or '').strip().lower()
    if User.objects.filter(email__iexact=email).exists():
        raise ValidationError({'email': 'A user with this email already exists'})
    user = User.objects.create_user(
        email=email,
        password=None,
        name=name.strip(),
        role=role,
        hospital_id=hospital_id,
        department=department,
        must_set_password=True,
    )
    return user, create_invitation(user, created_by=created_by)


def list_staff(user, hospital_id=None):
    require_roles(user, ADMIN_ROLES)
    qs = User.objects.select_related('hospital', 'department').exclude(role=Role.SYSTEM_ADMIN)
    scope = scoped_hospital_id(user, hospital_id)
    if scope:
        qs = qs.filter(hospital_id=scope)
    return qs.order_by('name', 'id')


def list_nurses(user):
    """Nurses of the caller's hospital, for task assignment."""
    require_roles(user, CLINICAL_ROLES)
    hospital_id = require_hospital(user)
    return User.objects.filter(hospital_id=hospital_id, role=Role.NURSE, is_active=True).order_by('name')


def invite_staff(user, *, name: str, email: str, role: str, department_id=None, hospital_id=None, ip: Optional[str] = None):
    require_roles(user, ADMIN_ROLES)
    target_hospital = scoped_hospital_id(user, hospital_id)
    if not target_hospital:
        raise ValidationError({'hospitalId': 'hospitalId is required'})
    role = normalize_role(role)
    if role == Role.SYSTEM_ADMIN:
        raise PermissionDenied('system administrators cannot be invited as hospital staff')
    department = None
    if department_id:
        department = Department.objects.filter(pk=department_id, hospital_id=target_hospital).first()
        if department is None:
            raise ValidationError({'departmentId': 'unknown department for this hospital'})
    with transaction.atomic():
        new_user, invitation = create_invited_user(
            email=email, name=name, role=role, hospital_id=target_hospital,
            department=department, created_by=user,
        )
        create_audit_log(user, 'INVITE', 'User', f'Invited staff member: {new_user.name} ({new_user.email}) as {role}', ip=ip)
    logger.info('staff %s invited to hospital %s by %s', new_user.email, target_hospital, user.pk)
    return new_user, invitation


def update_staff_role(user, staff_id, role: str, *, ip: Optional[str] = None):
    require_roles(user, ADMIN_ROLES)
    role = normalize_role(role)
    target = User.objects.filter(pk=staff_id).first()
    if target is None:
        raise NotFound('Staff member not found')
    ensure_hospital_scope(user, target.hospital_id, 'forbidden for this staff member')
    if role == Role.SYSTEM_ADMIN and not is_system_admin(user):
        raise PermissionDenied('only system administrators can grant that role')
    previous = target.role
    target.role = role
    target.save(update_fields=['role'])
    create_audit_log(user, 'UPDATE', 'User', f'Changed role of {target.email} from {previous} to {role}', ip=ip)
    return target


def redeem_invitation(token: str, password: str, *, ip: Optional[str] = None):
    """Set the first password of an invited account; each token works once."""
    with transaction.atomic():
        invitation = StaffInvitation.objects.select_for_update().select_related('user').filter(token=token or '').first()
        if invitation is None or not invitation.is_usable():
            raise ValidationError({'token': 'invitation is invalid or expired'})
        user = invitation.user
        check_password_strength(password, user=user)
        user.set_password(password)
        user.must_set_password = False
        user.save(update_fields=['password', 'must_set_password'])
        invitation.used_at = timezone.now()
        invitation.save(update_fields=['used_at'])
        create_audit_log(user, 'ACTIVATE', 'User', f'Accepted invitation: {user.email}', ip=ip)
    return user
