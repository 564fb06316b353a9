import bleach
from rest_framework import serializers

from clinical.models import Patient


def _clean(v):
    return bleach.clean((v or '').strip(), tags=set(), strip=True)


class PatientSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    age = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=150)
    gender = serializers.ChoiceField(choices=[c for c, _ in Patient.GENDER_CHOICES], required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=[c for c, _ in Patient.STATUS_CHOICES], required=False)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    bloodType = serializers.CharField(source='blood_type', required=False, allow_blank=True, max_length=4)
    allergies = serializers.ListField(child=serializers.CharField(max_length=128), required=False)
    chronicConditions = serializers.ListField(source='chronic_conditions', child=serializers.CharField(max_length=128), required=False)
    emergencyContactName = serializers.CharField(source='emergency_contact_name', required=False, allow_blank=True, max_length=255)
    emergencyContactPhone = serializers.CharField(source='emergency_contact_phone', required=False, allow_blank=True, max_length=32)
    emergencyContactRelationship = serializers.CharField(
        source='emergency_contact_relationship', required=False, allow_blank=True, max_length=64
    )

    def validate_name(self, v):
        v = _clean(v)
        if len(v) < 2:
            raise serializers.ValidationError('name must be at least 2 characters')
        return v

    def validate_phone(self, v):
        return _clean(v)


class MedicalRecordSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    recordType = serializers.CharField(source='record_type', required=False, allow_blank=True, max_length=64)
    notes = serializers.CharField(required=False, allow_blank=True)
    date = serializers.DateTimeField(required=False, allow_null=True)

    def validate_notes(self, v):
        return _clean(v)


class EmergencyAccessSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id')
    reason = serializers.CharField(max_length=2000)


class DocumentUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    patientId = serializers.IntegerField(source='patient_id')
    title = serializers.CharField(required=False, allow_blank=True, max_length=255)
    type = serializers.CharField(source='doc_type', max_length=64)
