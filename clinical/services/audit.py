import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import transaction

from clinical.models import AuditLog, Role
from clinical.services.access import require_roles, scoped_hospital_id

logger = logging.getLogger(__name__)

User = get_user_model()


def client_ip(request) -> Optional[str]:
    if request is None:
        return None
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def create_audit_log(user: Optional[User], action: str, resource: str, details: str = '', *, ip: Optional[str] = None) -> Optional[AuditLog]:
    """Append an audit row; a failed write is logged and never breaks the caller."""
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                user=user if getattr(user, 'pk', None) else None,
                action=action,
                resource=resource,
                details=details or '',
                ip=ip,
            )
    except Exception:
        logger.exception('audit log write failed (action=%s, resource=%s)', action, resource)
        return None


def list_audit_logs(user, *, hospital_id=None, action: Optional[str] = None, resource: Optional[str] = None):
    """Audit rows visible to the caller, newest first.

    Hospital staff see entries written by users of their own hospital;
    a system administrator sees everything unless ``hospital_id`` narrows it.
    """
    require_roles(user, {Role.HOSPITAL_ADMIN, Role.SYSTEM_ADMIN, Role.DOCTOR})
    qs = AuditLog.objects.select_related('user')
    scope = scoped_hospital_id(user, hospital_id)
    if scope:
        qs = qs.filter(user__hospital_id=scope)
    if action:
        qs = qs.filter(action__iexact=action)
    if resource:
        qs = qs.filter(resource__iexact=resource)
    return qs.order_by('-timestamp', '-id')
