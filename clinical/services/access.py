"""
Authorization guard shared by every service function.

Each operation names the roles allowed to call it and, for records
owned by a hospital, checks that the caller belongs to that hospital.
Checks raise DRF exceptions before any read or write happens, so a
rejected call never leaves partial effects behind.
"""
from __future__ import annotations

from typing import Iterable, Optional

from rest_framework.exceptions import NotAuthenticated, PermissionDenied, ValidationError

from clinical.models import Role

ADMIN_ROLES = frozenset({Role.HOSPITAL_ADMIN, Role.SYSTEM_ADMIN})
CLINICAL_ROLES = frozenset({Role.DOCTOR, Role.NURSE})
STAFF_ROLES = frozenset({Role.DOCTOR, Role.NURSE, Role.HOSPITAL_ADMIN})
ALL_ROLES = frozenset(Role.values)


def normalize_role(value: Optional[str]) -> str:
    """Map any accepted spelling of a role (``doctor``, ``Doctor``) to its canonical value."""
    role = (value or '').strip().upper().replace('-', '_').replace(' ', '_')
    if role not in ALL_ROLES:
        raise ValidationError({'role': f'unknown role: {value!r}'})
    return role


def role_of(user) -> Optional[str]:
    role = getattr(user, 'role', None)
    if not role:
        return None
    try:
        return normalize_role(role)
    except ValidationError:
        return None


def is_authenticated(user) -> bool:
    return bool(user is not None and getattr(user, 'is_authenticated', False))


def require_roles(user, allowed: Iterable[str], message: str = 'Unauthorized'):
    """Fail closed unless ``user`` is signed in and holds one of ``allowed``."""
    if not is_authenticated(user):
        raise NotAuthenticated('Unauthorized')
    if role_of(user) not in set(allowed):
        raise PermissionDenied(message)
    return user


def require_hospital(user):
    """Return the caller's hospital id; accounts without one cannot touch hospital data."""
    hospital_id = getattr(user, 'hospital_id', None)
    if not hospital_id:
        raise PermissionDenied('No hospital associated with this account')
    return hospital_id


def ensure_same_hospital(user, hospital_id, message: str = 'forbidden for this hospital') -> None:
    if not hospital_id or require_hospital(user) != hospital_id:
        raise PermissionDenied(message)


def is_system_admin(user) -> bool:
    return role_of(user) == Role.SYSTEM_ADMIN


def scoped_hospital_id(user, requested=None):
    """Hospital a listing should be limited to.

    Hospital staff are always pinned to their own hospital.  A system
    administrator may name one through ``requested``; ``None`` means no
    hospital filter.
    """
    if is_system_admin(user):
        return requested or None
    return require_hospital(user)


def ensure_hospital_scope(user, hospital_id, message: str = 'forbidden for this hospital') -> None:
    """Hospital staff may only touch their own hospital; system administrators any."""
    if is_system_admin(user):
        return
    ensure_same_hospital(user, hospital_id, message)
