from rest_framework import serializers

from clinical.models import Priority, Referral


class ReferralCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id')
    toHospitalId = serializers.IntegerField(source='to_hospital_id')
    priority = serializers.ChoiceField(choices=Priority.values, default=Priority.NORMAL)
    reason = serializers.CharField(max_length=5000)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    department = serializers.CharField(required=False, allow_blank=True, max_length=255, default='')
    emergencyConfirmed = serializers.BooleanField(source='emergency_confirmed', default=False)
    emergencyReason = serializers.CharField(source='emergency_reason', required=False, allow_blank=True, default='')
    immediateRisks = serializers.CharField(source='immediate_risks', required=False, allow_blank=True, default='')
    shareLabResults = serializers.BooleanField(source='share_lab_results', default=True)
    shareImaging = serializers.BooleanField(source='share_imaging', default=False)
    shareNotes = serializers.BooleanField(source='share_notes', default=True)

    def validate(self, attrs):
        if attrs.get('priority') == Priority.EMERGENCY and not attrs.get('emergency_confirmed'):
            raise serializers.ValidationError({'emergencyConfirmed': 'emergency referrals must be confirmed'})
        return attrs


class ReferralResolveSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[Referral.STATUS_ACCEPTED, Referral.STATUS_REJECTED])
    reason = serializers.CharField(required=False, allow_blank=True, max_length=2000)

    def to_internal_value(self, data):
        if hasattr(data, 'get') and isinstance(data.get('status'), str):
            data = {**data, 'status': data['status'].strip().upper()}
        return super().to_internal_value(data)


class ReferralListQuerySerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=['incoming', 'outgoing'], default='incoming')
