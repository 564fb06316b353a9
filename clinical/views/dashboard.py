"""
Overview endpoints: the hospital dashboard, the notification bell and
the administrators' analytics page.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinical.permissions import IsAdminRole, IsHospitalStaff
from clinical.services.analytics import analytics
from clinical.services.dashboard import dashboard_data
from clinical.services.notifications import get_notifications


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsHospitalStaff])
def dashboard(request):
    return Response(dashboard_data(request.user))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notifications(request):
    return Response(get_notifications(request.user))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def analytics_view(request):
    return Response(analytics(request.user))
