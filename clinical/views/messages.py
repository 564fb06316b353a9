from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinical.permissions import IsClinicalStaff
from clinical.serializers.messaging import MarkReadSerializer, MessageSendSerializer
from clinical.services.messages import available_staff, conversations, mark_read, send_message


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def message_staff(request):
    return Response([
        {
            'id': u.id,
            'name': u.name,
            'role': u.role,
            'hospital': u.hospital.name if u.hospital_id else None,
            'department': u.department.name if u.department_id else None,
        }
        for u in available_staff(request.user)
    ])


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def message_conversations(request):
    return Response(conversations(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def message_send(request):
    s = MessageSendSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    msg = send_message(request.user, s.validated_data['receiver_id'], s.validated_data['content'])
    return Response({
        'id': msg.id,
        'receiverId': msg.receiver_id,
        'content': msg.content,
        'createdAt': msg.created_at.isoformat(),
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def message_mark_read(request):
    s = MarkReadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return Response({'ok': True, 'updated': mark_read(request.user, s.validated_data['sender_id'])})
