"""
Hospital directory and system administration.

The public contact directory is cached for five minutes and dropped
whenever a hospital is created or changes status.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import transaction
from django.db.models import Count
from rest_framework.exceptions import NotFound, ValidationError

from clinical.models import Department, Hospital, Patient, Referral, Role
from clinical.services.access import ALL_ROLES, require_roles
from clinical.services.audit import create_audit_log
from clinical.services.staff import create_invited_user

logger = logging.getLogger(__name__)

User = get_user_model()

CONTACT_CACHE_KEY = 'hospitals:contact'
CONTACT_CACHE_TTL = 300


def list_connected_hospitals(user):
    require_roles(user, ALL_ROLES)
    return Hospital.objects.filter(status=Hospital.STATUS_CONNECTED).order_by('name', 'id')


def get_hospital(user, hospital_id) -> Hospital:
    require_roles(user, ALL_ROLES)
    hospital = Hospital.objects.filter(pk=hospital_id).first()
    if hospital is None:
        raise NotFound('Hospital not found')
    return hospital


def contact_hospitals() -> list[dict]:
    """Public directory of connected hospitals; needs no session."""
    cached = cache.get(CONTACT_CACHE_KEY)
    if cached is not None:
        return cached
    payload = [
        {
            'id': h.id,
            'name': h.name,
            'type': h.type,
            'location': h.location,
            'specialties': h.specialties or [],
            'contactEmail': h.contact_email,
            'contactPhone': h.contact_phone,
        }
        for h in Hospital.objects.filter(status=Hospital.STATUS_CONNECTED).order_by('name', 'id')
    ]
    cache.set(CONTACT_CACHE_KEY, payload, CONTACT_CACHE_TTL)
    return payload


def own_departments(user):
    """Active departments of the caller's hospital; empty for accounts without one."""
    require_roles(user, ALL_ROLES)
    if not getattr(user, 'hospital_id', None):
        return Department.objects.none()
    return Department.objects.filter(hospital_id=user.hospital_id, status=Department.STATUS_ACTIVE).order_by('name')


def list_all_hospitals(user):
    require_roles(user, {Role.SYSTEM_ADMIN})
    return Hospital.objects.annotate(
        staff_count=Count('users', distinct=True),
        patient_count=Count('patients', distinct=True),
        department_count=Count('departments', distinct=True),
    ).order_by('-created_at', '-id')


def create_hospital_with_admin(user, *, hospital: dict, admin: dict, ip: Optional[str] = None):
    """Register a hospital, its departments and its first administrator in one transaction.

    The administrator is invited rather than given a password; the
    returned invitation carries the one-time activation token.
    """
    require_roles(user, {Role.SYSTEM_ADMIN})
    name = (hospital.get('name') or '').strip()
    if not name:
        raise ValidationError({'hospital': {'name': 'name is required'}})
    departments = list(dict.fromkeys(d.strip() for d in hospital.get('departments') or [] if d and d.strip()))
    with transaction.atomic():
        new_hospital = Hospital.objects.create(
            name=name,
            type=hospital.get('type') or 'GENERAL',
            location=hospital.get('location') or '',
            status=Hospital.STATUS_CONNECTED,
            specialties=departments,
            contact_email=hospital.get('contact_email') or '',
            contact_phone=hospital.get('contact_phone') or '',
        )
        Department.objects.bulk_create(
            [Department(hospital=new_hospital, name=d) for d in departments]
        )
        admin_user, invitation = create_invited_user(
            email=admin.get('email') or '',
            name=admin.get('name') or '',
            role=Role.HOSPITAL_ADMIN,
            hospital_id=new_hospital.id,
            created_by=user,
        )
        create_audit_log(user, 'CREATE', 'Hospital', f'Created hospital {name} with admin {admin_user.email}', ip=ip)
    cache.delete(CONTACT_CACHE_KEY)
    logger.info('hospital %s created by %s', new_hospital.id, user.pk)
    return new_hospital, admin_user, invitation


def update_hospital_status(user, hospital_id, status: str, *, ip: Optional[str] = None) -> Hospital:
    require_roles(user, {Role.SYSTEM_ADMIN})
    if status not in dict(Hospital.STATUS_CHOICES):
        raise ValidationError({'status': f'unknown status: {status!r}'})
    hospital = Hospital.objects.filter(pk=hospital_id).first()
    if hospital is None:
        raise NotFound('Hospital not found')
    previous = hospital.status
    hospital.status = status
    hospital.save(update_fields=['status'])
    create_audit_log(user, 'UPDATE', 'Hospital', f'Hospital {hospital.name} status {previous} -> {status}', ip=ip)
    cache.delete(CONTACT_CACHE_KEY)
    return hospital


def system_stats(user) -> dict:
    require_roles(user, {Role.SYSTEM_ADMIN})
    return {
        'totalHospitals': Hospital.objects.count(),
        'connectedHospitals': Hospital.objects.filter(status=Hospital.STATUS_CONNECTED).count(),
        'totalUsers': User.objects.count(),
        'totalPatients': Patient.objects.count(),
        'totalReferrals': Referral.objects.count(),
        'pendingReferrals': Referral.objects.filter(status=Referral.STATUS_SENT).count(),
    }
