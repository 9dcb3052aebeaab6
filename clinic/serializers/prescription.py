from rest_framework import serializers

from clinic.models import Medication
from clinic.serializers.common import CleanCharField


class MedicationSerializer(serializers.Serializer):
    name = CleanCharField(max_length=200)
    genericName = CleanCharField(source='generic_name', max_length=200, required=False, allow_blank=True)
    manufacturer = CleanCharField(max_length=200, required=False, allow_blank=True)
    ndcNumber = CleanCharField(source='ndc_number', max_length=20)
    strength = CleanCharField(max_length=50, required=False, allow_blank=True)
    dosageForm = CleanCharField(source='dosage_form', max_length=50, required=False, allow_blank=True)
    unitPrice = serializers.DecimalField(source='unit_price', max_digits=10, decimal_places=2, min_value=0, required=False)
    requiresPrescription = serializers.BooleanField(source='requires_prescription', required=False)
    isControlledSubstance = serializers.BooleanField(source='is_controlled_substance', required=False)
    isActive = serializers.BooleanField(source='is_active', required=False)

    def validate_ndcNumber(self, v):
        qs = Medication.objects.filter(ndc_number=v)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('A medication with this NDC number already exists')
        return v


class PrescriptionSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
    doctorId = serializers.IntegerField(source='doctor_id', min_value=1)
    medicationId = serializers.IntegerField(source='medication_id', min_value=1, required=False, allow_null=True)
    medicationName = CleanCharField(source='medication_name', max_length=200, required=False, allow_blank=True)
    dosage = CleanCharField(max_length=100)
    frequency = CleanCharField(max_length=100)
    durationDays = serializers.IntegerField(source='duration_days', min_value=0, max_value=3650, required=False)
    instructions = CleanCharField(required=False, allow_blank=True)
    sideEffects = CleanCharField(source='side_effects', required=False, allow_blank=True)
    quantity = serializers.IntegerField(min_value=0, required=False)
    refillsAllowed = serializers.IntegerField(source='refills_allowed', min_value=0, max_value=12, required=False)
    prescribedDate = serializers.DateField(source='prescribed_date', required=False)
    startDate = serializers.DateField(source='start_date', required=False, allow_null=True)
    endDate = serializers.DateField(source='end_date', required=False, allow_null=True)
    isActive = serializers.BooleanField(source='is_active', required=False)

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'endDate': 'End date must not be before start date'})
        medication_id = attrs.get('medication_id')
        if medication_id:
            medication = Medication.objects.filter(pk=medication_id).first()
            if medication is None:
                raise serializers.ValidationError({'medicationId': 'Medication not found'})
            if not attrs.get('medication_name'):
                attrs['medication_name'] = medication.name
        elif self.instance is None and not attrs.get('medication_name'):
            raise serializers.ValidationError({'medicationName': 'Medication name or medication id is required'})
        return attrs


class PrescriptionQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    active = serializers.ChoiceField(choices=['true', 'false'], required=False)
