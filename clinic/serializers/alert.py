from rest_framework import serializers

from clinic.models import EmergencyAlert
from clinic.serializers.common import CleanCharField, DateRangeQuerySerializer, PhoneField

LEVELS = [c for c, _ in EmergencyAlert.LEVEL_CHOICES]


class AlertSerializer(serializers.Serializer):
    title = CleanCharField(max_length=200)
    message = CleanCharField(max_length=1000)
    level = serializers.ChoiceField(choices=LEVELS, required=False)
    alertType = serializers.ChoiceField(
        source='alert_type', choices=[c for c, _ in EmergencyAlert.TYPE_CHOICES], required=False
    )
    targetAudience = serializers.ChoiceField(
        source='target_audience', choices=[c for c, _ in EmergencyAlert.AUDIENCE_CHOICES], required=False
    )
    requiresReadConfirmation = serializers.BooleanField(source='requires_read_confirmation', required=False)
    notes = CleanCharField(required=False, allow_blank=True)


class AlertCreateSerializer(AlertSerializer):
    patientIds = serializers.ListField(
        source='patient_ids', child=serializers.IntegerField(min_value=1), required=False
    )
    phoneNumbers = serializers.ListField(source='phone_numbers', child=PhoneField(), required=False)


class RecipientsSerializer(serializers.Serializer):
    patientIds = serializers.ListField(child=serializers.IntegerField(min_value=1), required=False)
    phoneNumbers = serializers.ListField(child=PhoneField(), required=False)

    def validate(self, attrs):
        if not attrs.get('patientIds') and not attrs.get('phoneNumbers'):
            raise serializers.ValidationError('Provide patientIds or phoneNumbers')
        return attrs


class ActivateSerializer(serializers.Serializer):
    authorizedBy = CleanCharField(max_length=100, required=False, allow_blank=True)


class ReasonSerializer(serializers.Serializer):
    reason = CleanCharField(max_length=500, required=False, allow_blank=True)


class EscalateSerializer(ReasonSerializer):
    level = serializers.ChoiceField(choices=LEVELS)


class ConfirmReadSerializer(serializers.Serializer):
    phoneNumber = PhoneField()


class AlertQuerySerializer(DateRangeQuerySerializer):
    status = serializers.ChoiceField(choices=[c for c, _ in EmergencyAlert.STATUS_CHOICES], required=False)
    level = serializers.ChoiceField(choices=LEVELS, required=False)
