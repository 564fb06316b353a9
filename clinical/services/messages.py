from __future__ import annotations

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
import bleach
from rest_framework.exceptions import ValidationError

from clinical.models import Message
from clinical.services.access import CLINICAL_ROLES, require_roles
from clinical.services.realtime import push, user_group

User = get_user_model()

MAX_MESSAGE_LENGTH = 5000


def available_staff(user):
    """Doctors and nurses of every hospital the caller can message."""
    require_roles(user, CLINICAL_ROLES)
    return (
        User.objects.filter(role__in=CLINICAL_ROLES, is_active=True)
        .exclude(pk=user.pk)
        .select_related('hospital', 'department')
        .order_by('hospital__name', 'name')
    )


@transaction.atomic
def send_message(user, receiver_id, content: str) -> Message:
    require_roles(user, CLINICAL_ROLES)
    receiver = User.objects.filter(pk=receiver_id, is_active=True).first()
    if receiver is None or receiver.role not in CLINICAL_ROLES or receiver.pk == user.pk:
        raise ValidationError({'receiverId': 'Invalid recipient'})
    content = bleach.clean((content or '').strip(), tags=set(), strip=True)
    if not content:
        raise ValidationError({'content': 'Message cannot be empty'})
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError({'content': f'Message is longer than {MAX_MESSAGE_LENGTH} characters'})
    msg = Message.objects.create(sender=user, receiver=receiver, content=content)
    payload = {'messageId': msg.id, 'senderId': user.pk, 'senderName': user.name}
    transaction.on_commit(lambda: push(user_group(receiver.pk), 'message.new', payload))
    return msg


def conversations(user) -> list[dict]:
    """One entry per conversation partner, newest conversation first."""
    require_roles(user, CLINICAL_ROLES)
    qs = (
        Message.objects.filter(Q(sender=user) | Q(receiver=user))
        .select_related('sender', 'receiver', 'sender__hospital', 'receiver__hospital')
        .order_by('-created_at', '-id')
    )
    result: dict[int, dict] = {}
    for msg in qs:
        partner = msg.receiver if msg.sender_id == user.pk else msg.sender
        conv = result.get(partner.pk)
        if conv is None:
            conv = result[partner.pk] = {
                'partnerId': partner.pk,
                'partnerName': partner.name,
                'partnerRole': partner.role,
                'partnerHospital': partner.hospital.name if partner.hospital_id else None,
                'lastMessage': msg.content,
                'lastMessageAt': msg.created_at.isoformat(),
                'unreadCount': 0,
                'messages': [],
            }
        if msg.receiver_id == user.pk and not msg.read:
            conv['unreadCount'] += 1
        conv['messages'].append({
            'id': msg.id,
            'content': msg.content,
            'mine': msg.sender_id == user.pk,
            'read': msg.read,
            'createdAt': msg.created_at.isoformat(),
        })
    for conv in result.values():
        conv['messages'].reverse()
    return list(result.values())


def mark_read(user, sender_id) -> int:
    require_roles(user, CLINICAL_ROLES)
    return Message.objects.filter(sender_id=sender_id, receiver=user, read=False).update(read=True)


def unread_count(user) -> int:
    return Message.objects.filter(receiver=user, read=False).count()
