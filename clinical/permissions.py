"""
Role based permission classes for the API views.

Each class is a thin wrapper over an allow-list from
:mod:`clinical.services.access`; the services repeat the same check so a
service called outside a view still fails closed.
"""
from rest_framework.permissions import BasePermission

from clinical.models import Role
from clinical.services.access import (
    ADMIN_ROLES,
    CLINICAL_ROLES,
    STAFF_ROLES,
    is_authenticated,
    role_of,
)


class RolePermission(BasePermission):
    """Allow access only to signed-in users whose role is in ``allowed_roles``."""
    allowed_roles: frozenset = frozenset()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(is_authenticated(user) and role_of(user) in self.allowed_roles)


class IsDoctor(RolePermission):
    allowed_roles = frozenset({Role.DOCTOR})


class IsClinicalStaff(RolePermission):
    """Doctors and nurses."""
    allowed_roles = CLINICAL_ROLES


class IsHospitalStaff(RolePermission):
    """Anyone working inside a hospital (doctor, nurse, hospital admin)."""
    allowed_roles = STAFF_ROLES


class IsAdminRole(RolePermission):
    allowed_roles = ADMIN_ROLES


class IsSystemAdmin(RolePermission):
    allowed_roles = frozenset({Role.SYSTEM_ADMIN})


class IsAuditViewer(RolePermission):
    allowed_roles = frozenset({Role.HOSPITAL_ADMIN, Role.SYSTEM_ADMIN, Role.DOCTOR})
