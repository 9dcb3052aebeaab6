from django.utils import timezone
from rest_framework import serializers

from clinic.models import Doctor, Patient
from clinic.serializers.common import CleanCharField, PhoneField


class PatientSerializer(serializers.Serializer):
    firstName = CleanCharField(source='first_name', max_length=100)
    lastName = CleanCharField(source='last_name', max_length=100)
    email = serializers.EmailField(max_length=255)
    phoneNumber = PhoneField(source='phone_number', required=False, allow_blank=True)
    dateOfBirth = serializers.DateField(source='date_of_birth')
    gender = serializers.ChoiceField(choices=[c for c, _ in Patient.GENDER_CHOICES], required=False, allow_blank=True)
    address = CleanCharField(max_length=500, required=False, allow_blank=True)
    emergencyContactName = CleanCharField(source='emergency_contact_name', max_length=100, required=False, allow_blank=True)
    emergencyContactPhone = PhoneField(source='emergency_contact_phone', required=False, allow_blank=True)
    bloodType = CleanCharField(source='blood_type', max_length=5, required=False, allow_blank=True)
    allergies = CleanCharField(required=False, allow_blank=True)
    medicalHistory = CleanCharField(source='medical_history', required=False, allow_blank=True)

    def validate_dateOfBirth(self, v):
        if v > timezone.localdate():
            raise serializers.ValidationError('Date of birth cannot be in the future')
        return v

    def validate_email(self, v):
        v = v.strip().lower()
        qs = Patient.objects.filter(email__iexact=v)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('A patient with this email already exists')
        return v


class PatientQuerySerializer(serializers.Serializer):
    q = CleanCharField(max_length=100, required=False)


class DoctorSerializer(serializers.Serializer):
    firstName = CleanCharField(source='first_name', max_length=100)
    lastName = CleanCharField(source='last_name', max_length=100)
    email = serializers.EmailField(max_length=255)
    phoneNumber = PhoneField(source='phone_number', required=False, allow_blank=True)
    specialization = CleanCharField(max_length=100)
    licenseNumber = CleanCharField(source='license_number', max_length=50)
    department = CleanCharField(max_length=100, required=False, allow_blank=True)
    qualifications = CleanCharField(max_length=500, required=False, allow_blank=True)
    yearsOfExperience = serializers.IntegerField(source='years_of_experience', min_value=0, max_value=80, required=False)
    consultationFee = serializers.DecimalField(
        source='consultation_fee', max_digits=10, decimal_places=2, min_value=0, required=False
    )
    isAvailable = serializers.BooleanField(source='is_available', required=False)
    biography = CleanCharField(required=False, allow_blank=True)

    def _unique(self, field, value, message):
        qs = Doctor.objects.filter(**{f'{field}__iexact': value})
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError(message)
        return value

    def validate_email(self, v):
        return self._unique('email', v.strip().lower(), 'A doctor with this email already exists')

    def validate_licenseNumber(self, v):
        return self._unique('license_number', v, 'A doctor with this license number already exists')


class DoctorQuerySerializer(serializers.Serializer):
    specialization = CleanCharField(max_length=100, required=False)
    available = serializers.ChoiceField(choices=['true', 'false'], required=False)
    q = CleanCharField(max_length=100, required=False)
