from __future__ import annotations

from datetime import timedelta

from django.utils import timezone

from clinical.models import Priority, Referral, ReferralEvent
from clinical.services.access import ALL_ROLES, require_roles
from clinical.services.messages import unread_count

EMERGENCY_WINDOW = timedelta(hours=24)
RESOLUTION_WINDOW = timedelta(hours=48)
PER_KIND_LIMIT = 5
TOTAL_LIMIT = 10


def get_notifications(user, now=None) -> dict:
    """Recent emergency referrals for the caller's hospital and outcomes of the caller's own referrals."""
    require_roles(user, ALL_ROLES)
    now = now or timezone.now()
    items = []
    hospital_id = getattr(user, 'hospital_id', None)
    if hospital_id:
        emergencies = (
            Referral.objects.filter(
                to_hospital_id=hospital_id,
                priority=Priority.EMERGENCY,
                status=Referral.STATUS_SENT,
                created_at__gte=now - EMERGENCY_WINDOW,
            )
            .select_related('patient', 'from_hospital')
            .order_by('-created_at')[:PER_KIND_LIMIT]
        )
        for r in emergencies:
            items.append({
                'id': f'emergency-{r.id}',
                'type': 'EMERGENCY_REFERRAL',
                'title': 'Emergency referral',
                'message': f'{r.patient.name} referred from {r.from_hospital.name}',
                'referralId': r.id,
                'timestamp': r.created_at,
            })
    outcomes = (
        ReferralEvent.objects.filter(
            referral__referring_doctor=user,
            type__in=[ReferralEvent.TYPE_ACCEPTED, ReferralEvent.TYPE_REJECTED],
            timestamp__gte=now - RESOLUTION_WINDOW,
        )
        .select_related('referral', 'referral__patient', 'referral__to_hospital')
        .order_by('-timestamp')[:PER_KIND_LIMIT]
    )
    for ev in outcomes:
        items.append({
            'id': f'event-{ev.id}',
            'type': f'REFERRAL_{ev.type}',
            'title': f'Referral {ev.type.lower()}',
            'message': f'{ev.referral.patient.name} at {ev.referral.to_hospital.name}',
            'referralId': ev.referral_id,
            'timestamp': ev.timestamp,
        })
    items.sort(key=lambda item: item['timestamp'], reverse=True)
    items = items[:TOTAL_LIMIT]
    for item in items:
        item['timestamp'] = item['timestamp'].isoformat()
    return {'notifications': items, 'unreadMessages': unread_count(user)}
