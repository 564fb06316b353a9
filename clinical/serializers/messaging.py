from rest_framework import serializers

from clinical.models import Priority, Task


class MessageSendSerializer(serializers.Serializer):
    receiverId = serializers.IntegerField(source='receiver_id')
    content = serializers.CharField(max_length=5000)


class MarkReadSerializer(serializers.Serializer):
    senderId = serializers.IntegerField(source='sender_id')


class TaskCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    priority = serializers.ChoiceField(choices=Priority.values, default=Priority.NORMAL)
    patientId = serializers.IntegerField(source='patient_id', required=False, allow_null=True)
    assignedToId = serializers.IntegerField(source='assigned_to_id', required=False, allow_null=True)
    dueDate = serializers.DateTimeField(source='due_date', required=False, allow_null=True)


class TaskStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Task.STATUS_CHOICES])


class AuditLogQuerySerializer(serializers.Serializer):
    hospitalId = serializers.IntegerField(required=False, allow_null=True)
    action = serializers.CharField(required=False, allow_blank=True)
    resource = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200)
