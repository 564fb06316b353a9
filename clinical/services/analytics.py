from __future__ import annotations

from collections import Counter
from datetime import timedelta

from django.db.models import Count, Q
from django.utils import timezone

from clinical.models import Hospital, Priority, Referral, ReferralEvent
from clinical.services.access import ADMIN_ROLES, is_system_admin, require_hospital, require_roles

FLOW_DAYS = 7
PERFORMANCE_HOSPITALS = 5
BOTTLENECK_LIMIT = 4


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def analytics(user, now=None) -> dict:
    """Referral statistics for a hospital administrator (own hospital) or system administrator (all)."""
    require_roles(user, ADMIN_ROLES)
    now = now or timezone.now()
    qs = Referral.objects.all()
    if not is_system_admin(user):
        hospital_id = require_hospital(user)
        qs = qs.filter(Q(from_hospital_id=hospital_id) | Q(to_hospital_id=hospital_id))

    total = qs.count()
    accepted = qs.filter(status=Referral.STATUS_ACCEPTED).count()

    # measured to the accept or reject event; updated_at moves on unrelated edits
    resolved = ReferralEvent.objects.filter(
        referral__in=qs, type__in=[ReferralEvent.TYPE_ACCEPTED, ReferralEvent.TYPE_REJECTED]
    ).values_list('referral__created_at', 'timestamp')
    waits = [_hours(resolved_at - created) for created, resolved_at in resolved]
    avg_response = round(sum(waits) / len(waits), 1) if waits else None

    performance = []
    hospitals = Hospital.objects.annotate(
        received=Count('referrals_received', distinct=True),
        accepted=Count('referrals_received', filter=Q(referrals_received__status=Referral.STATUS_ACCEPTED), distinct=True),
    ).order_by('name', 'id')[:PERFORMANCE_HOSPITALS]
    for h in hospitals:
        performance.append({
            'name': h.name,
            'received': h.received,
            'accepted': h.accepted,
            'rate': round(h.accepted * 100 / h.received) if h.received else 0,
        })

    today = timezone.localtime(now).date()
    days = [today - timedelta(days=i) for i in reversed(range(FLOW_DAYS))]
    flow = {d: {'total': 0, 'emergency': 0} for d in days}
    start = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=FLOW_DAYS - 1)
    for created, priority in qs.filter(created_at__gte=start).values_list('created_at', 'priority'):
        day = timezone.localtime(created).date()
        if day in flow:
            flow[day]['total'] += 1
            if priority == Priority.EMERGENCY:
                flow[day]['emergency'] += 1

    reasons = Counter(
        (r or 'Other') for r in qs.filter(status=Referral.STATUS_REJECTED).values_list('rejection_reason', flat=True)
    )

    pending = qs.filter(status=Referral.STATUS_SENT).select_related('to_hospital', 'referring_doctor__department')
    by_dept: dict[str, dict] = {}
    for r in pending:
        dept = r.referring_doctor.department.name if r.referring_doctor.department_id else 'General'
        stats = by_dept.setdefault(dept, {'hospital': r.to_hospital.name, 'wait': 0.0, 'count': 0})
        stats['wait'] += _hours(now - r.created_at)
        stats['count'] += 1
    bottlenecks = sorted(
        (
            {'dept': dept, 'hospital': s['hospital'], 'waitHours': round(s['wait'] / s['count'], 1), 'pending': s['count']}
            for dept, s in by_dept.items()
        ),
        key=lambda b: b['waitHours'],
        reverse=True,
    )[:BOTTLENECK_LIMIT]

    return {
        'metrics': {
            'totalReferrals': total,
            'emergencyCases': qs.filter(priority=Priority.EMERGENCY).count(),
            'acceptanceRate': round(accepted * 100 / total) if total else 0,
            'avgResponseHours': avg_response,
        },
        'flowData': [{'date': d.isoformat(), **counts} for d, counts in flow.items()],
        'performanceData': performance,
        'rejectionReasons': [{'name': name, 'value': value} for name, value in reasons.most_common()],
        'bottlenecks': bottlenecks,
    }
