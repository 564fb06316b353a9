from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinical.permissions import IsAuditViewer
from clinical.serializers.messaging import AuditLogQuerySerializer
from clinical.services.audit import list_audit_logs


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAuditViewer])
def audit_logs(request):
    q = AuditLogQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = list_audit_logs(
        request.user,
        hospital_id=vd.get('hospitalId'),
        action=vd.get('action') or None,
        resource=vd.get('resource') or None,
    )
    page = vd.get('page') or 1
    page_size = vd.get('pageSize') or 50
    total = qs.count()
    start = (page - 1) * page_size
    data = [
        {
            'id': log.id,
            'action': log.action,
            'resource': log.resource,
            'details': log.details,
            'user': log.user.name if log.user_id else 'System',
            'userEmail': log.user.email if log.user_id else None,
            'ip': log.ip,
            'timestamp': log.timestamp.isoformat(),
        }
        for log in qs[start:start + page_size]
    ]
    return Response({'ok': True, 'data': data, 'pagination': {'total': total, 'page': page, 'pageSize': page_size}})
