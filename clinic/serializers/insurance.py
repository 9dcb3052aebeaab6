from rest_framework import serializers

from clinic.models import Insurance
from clinic.serializers.common import CleanCharField


class InsuranceSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
    providerName = CleanCharField(source='provider_name', max_length=200)
    policyNumber = CleanCharField(source='policy_number', max_length=100)
    groupNumber = CleanCharField(source='group_number', max_length=100, required=False, allow_blank=True)
    primaryInsuredName = CleanCharField(source='primary_insured_name', max_length=200, required=False, allow_blank=True)
    relationshipToPrimary = serializers.ChoiceField(
        source='relationship_to_primary', choices=[c for c, _ in Insurance.RELATIONSHIP_CHOICES], required=False
    )
    effectiveDate = serializers.DateField(source='effective_date')
    expirationDate = serializers.DateField(source='expiration_date', required=False, allow_null=True)
    copayAmount = serializers.DecimalField(source='copay_amount', max_digits=10, decimal_places=2, min_value=0, required=False)
    deductibleAmount = serializers.DecimalField(
        source='deductible_amount', max_digits=10, decimal_places=2, min_value=0, required=False
    )
    coveragePercentage = serializers.DecimalField(
        source='coverage_percentage', max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False
    )
    notes = CleanCharField(required=False, allow_blank=True)
    isActive = serializers.BooleanField(source='is_active', required=False)

    def validate_policyNumber(self, v):
        qs = Insurance.objects.filter(policy_number=v)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('A policy with this number already exists')
        return v

    def validate(self, attrs):
        effective = attrs.get('effective_date', getattr(self.instance, 'effective_date', None))
        expiration = attrs.get('expiration_date', getattr(self.instance, 'expiration_date', None))
        if effective and expiration and expiration < effective:
            raise serializers.ValidationError({'expirationDate': 'Expiration date must not be before the effective date'})
        return attrs


class CardUploadSerializer(serializers.Serializer):
    side = serializers.ChoiceField(choices=['front', 'back'])
    file = serializers.FileField()
