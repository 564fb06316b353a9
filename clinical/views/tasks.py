"""
Task views.

Tasks belong to a hospital.  Doctors and nurses create tasks and move
them through PENDING, IN_PROGRESS and COMPLETED; hospital administrators
can read the list.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinical.models import Task
from clinical.permissions import IsClinicalStaff
from clinical.serializers.messaging import TaskCreateSerializer, TaskStatusSerializer
from clinical.services.audit import client_ip
from clinical.services.tasks import create_task, list_tasks, update_task_status


def _serialize(task: Task) -> dict:
    return {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'priority': task.priority,
        'status': task.status,
        'patientId': task.patient_id,
        'patientName': task.patient.name if task.patient_id else None,
        'assignedToId': task.assigned_to_id,
        'assignedToName': task.assigned_to.name if task.assigned_to_id else None,
        'createdByName': task.created_by.name if task.created_by_id else None,
        'dueDate': task.due_date.isoformat() if task.due_date else None,
        'completedAt': task.completed_at.isoformat() if task.completed_at else None,
        'createdAt': task.created_at.isoformat(),
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def tasks(request):
    if request.method == 'GET':
        return Response([_serialize(t) for t in list_tasks(request.user)])
    s = TaskCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    task = create_task(request.user, ip=client_ip(request), **s.validated_data)
    return Response(_serialize(task), status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def task_status(request, pk: int):
    s = TaskStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    task = update_task_status(request.user, pk, s.validated_data['status'], ip=client_ip(request))
    return Response(_serialize(task))
