from __future__ import annotations

from collections import OrderedDict

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone

from clinical.models import AuditLog, Patient, Priority, Referral
from clinical.services.access import STAFF_ROLES, require_hospital, require_roles
from clinical.services.referrals import referral_summary

User = get_user_model()

CHART_MONTHS = 6


def _month_keys(now, count: int) -> list[tuple[int, int]]:
    year, month = now.year, now.month
    keys = []
    for _ in range(count):
        keys.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def dashboard_data(user, now=None) -> dict:
    require_roles(user, STAFF_ROLES)
    hospital_id = require_hospital(user)
    now = timezone.localtime(now or timezone.now())
    mine = Referral.objects.filter(Q(from_hospital_id=hospital_id) | Q(to_hospital_id=hospital_id))
    incoming = Referral.objects.filter(to_hospital_id=hospital_id)

    recent = mine.select_related(
        'patient', 'from_hospital', 'to_hospital', 'referring_doctor', 'receiving_doctor'
    ).order_by('-created_at', '-id')[:5]
    activity = AuditLog.objects.filter(user__hospital_id=hospital_id).select_related('user').order_by('-timestamp', '-id')[:5]

    buckets = OrderedDict(((y, m), {'referrals': 0, 'patients': 0}) for y, m in _month_keys(now, CHART_MONTHS))
    first_year, first_month = next(iter(buckets))
    since = now.replace(year=first_year, month=first_month, day=1, hour=0, minute=0, second=0, microsecond=0)
    for created in mine.filter(created_at__gte=since).values_list('created_at', flat=True):
        local = timezone.localtime(created)
        if (local.year, local.month) in buckets:
            buckets[(local.year, local.month)]['referrals'] += 1
    for created in Patient.objects.filter(hospital_id=hospital_id, created_at__gte=since).values_list('created_at', flat=True):
        local = timezone.localtime(created)
        if (local.year, local.month) in buckets:
            buckets[(local.year, local.month)]['patients'] += 1

    return {
        'metrics': {
            'totalPatients': Patient.objects.filter(hospital_id=hospital_id).count(),
            'totalReferrals': mine.count(),
            'activeReferrals': incoming.filter(status=Referral.STATUS_ACCEPTED).count(),
            'pendingReferrals': incoming.filter(status=Referral.STATUS_SENT).count(),
            'emergencyReferrals': incoming.filter(status=Referral.STATUS_SENT, priority=Priority.EMERGENCY).count(),
            'staffCount': User.objects.filter(hospital_id=hospital_id, is_active=True).count(),
        },
        'recentReferrals': [referral_summary(r) for r in recent],
        'recentActivity': [
            {
                'id': log.id,
                'action': log.action,
                'resource': log.resource,
                'details': log.details,
                'user': log.user.name if log.user_id else 'System',
                'timestamp': log.timestamp.isoformat(),
            }
            for log in activity
        ],
        'chart': [
            {'month': f'{y:04d}-{m:02d}', **counts} for (y, m), counts in buckets.items()
        ],
    }
