from __future__ import annotations

from typing import Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinical.models import Patient, Priority, Task
from clinical.services.access import (
    CLINICAL_ROLES,
    STAFF_ROLES,
    ensure_same_hospital,
    require_hospital,
    require_roles,
)
from clinical.services.audit import create_audit_log
from clinical.services.realtime import push, user_group
from clinical.services.referrals import priority_rank

User = get_user_model()


def list_tasks(user):
    require_roles(user, STAFF_ROLES)
    hospital_id = require_hospital(user)
    return (
        Task.objects.filter(hospital_id=hospital_id)
        .select_related('patient', 'assigned_to', 'created_by')
        .annotate(priority_rank=priority_rank())
        .order_by('-priority_rank', '-created_at', '-id')
    )


def create_task(
    user,
    *,
    title: str,
    description: str = '',
    priority: str = Priority.NORMAL,
    patient_id=None,
    assigned_to_id=None,
    due_date=None,
    ip: Optional[str] = None,
) -> Task:
    require_roles(user, CLINICAL_ROLES)
    hospital_id = require_hospital(user)
    title = (title or '').strip()
    if not title:
        raise ValidationError({'title': 'title is required'})
    if priority not in Priority.values:
        raise ValidationError({'priority': f'unknown priority: {priority!r}'})
    patient = None
    if patient_id:
        patient = Patient.objects.filter(pk=patient_id, hospital_id=hospital_id).first()
        if patient is None:
            raise ValidationError({'patientId': 'unknown patient for this hospital'})
    assignee = None
    if assigned_to_id:
        assignee = User.objects.filter(pk=assigned_to_id, hospital_id=hospital_id).first()
        if assignee is None:
            raise ValidationError({'assignedToId': 'unknown staff member for this hospital'})
    with transaction.atomic():
        task = Task.objects.create(
            hospital_id=hospital_id,
            patient=patient,
            assigned_to=assignee,
            created_by=user,
            title=title,
            description=description or '',
            priority=priority,
            due_date=due_date,
        )
        create_audit_log(user, 'CREATE', 'Task', f'Created task: {title}', ip=ip)
        if assignee is not None:
            payload = {'taskId': task.id, 'title': title, 'priority': priority}
            transaction.on_commit(lambda: push(user_group(assignee.pk), 'task.assigned', payload))
    return task


def update_task_status(user, task_id, status: str, *, ip: Optional[str] = None) -> Task:
    require_roles(user, CLINICAL_ROLES)
    if status not in dict(Task.STATUS_CHOICES):
        raise ValidationError({'status': f'unknown status: {status!r}'})
    task = Task.objects.filter(pk=task_id).first()
    if task is None:
        raise NotFound('Task not found')
    ensure_same_hospital(user, task.hospital_id, 'forbidden for this task')
    task.status = status
    task.completed_at = timezone.now() if status == Task.STATUS_COMPLETED else None
    task.save(update_fields=['status', 'completed_at'])
    if status == Task.STATUS_COMPLETED:
        create_audit_log(user, 'UPDATE', 'Task', f'Completed task: {task.title}', ip=ip)
    return task
