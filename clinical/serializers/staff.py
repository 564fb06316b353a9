from rest_framework import serializers

from clinical.models import Department, Hospital


class InviteStaffSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    role = serializers.CharField(max_length=32)
    departmentId = serializers.IntegerField(source='department_id', required=False, allow_null=True)
    hospitalId = serializers.IntegerField(source='hospital_id', required=False, allow_null=True)


class RoleUpdateSerializer(serializers.Serializer):
    role = serializers.CharField(max_length=32)


class HospitalScopeQuerySerializer(serializers.Serializer):
    hospitalId = serializers.IntegerField(required=False, allow_null=True)


class DepartmentCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    hospitalId = serializers.IntegerField(source='hospital_id', required=False, allow_null=True)


class DepartmentUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, max_length=255)
    status = serializers.ChoiceField(choices=[c for c, _ in Department.STATUS_CHOICES], required=False)


class HospitalInfoSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    type = serializers.ChoiceField(choices=[c for c, _ in Hospital.TYPE_CHOICES], default='GENERAL')
    location = serializers.CharField(required=False, allow_blank=True, max_length=255)
    departments = serializers.ListField(child=serializers.CharField(max_length=255, allow_blank=True), required=False)
    contactEmail = serializers.EmailField(source='contact_email', required=False, allow_blank=True)
    contactPhone = serializers.CharField(source='contact_phone', required=False, allow_blank=True, max_length=32)


class HospitalAdminSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()


class HospitalCreateSerializer(serializers.Serializer):
    hospital = HospitalInfoSerializer()
    admin = HospitalAdminSerializer()


class HospitalStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Hospital.STATUS_CHOICES])
