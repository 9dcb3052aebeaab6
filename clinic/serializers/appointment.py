from rest_framework import serializers

from clinic.models import Appointment
from clinic.serializers.common import CleanCharField, DateRangeQuerySerializer

STATUSES = [c for c, _ in Appointment.STATUS_CHOICES]


class AppointmentCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
    doctorId = serializers.IntegerField(source='doctor_id', min_value=1)
    appointmentDateTime = serializers.DateTimeField(source='appointment_datetime')
    durationMinutes = serializers.IntegerField(source='duration_minutes', min_value=5, max_value=480, required=False)
    reasonForVisit = CleanCharField(source='reason_for_visit', max_length=500, required=False, allow_blank=True)
    notes = CleanCharField(required=False, allow_blank=True)
    fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)


class AppointmentUpdateSerializer(AppointmentCreateSerializer):
    status = serializers.ChoiceField(choices=STATUSES, required=False)
    isPaid = serializers.BooleanField(source='is_paid', required=False)
    # Version the client last read; omitted means "whatever is stored now"
    version = serializers.IntegerField(min_value=1, required=False)


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=STATUSES)
    version = serializers.IntegerField(min_value=1, required=False)


class AppointmentQuerySerializer(DateRangeQuerySerializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=STATUSES, required=False)


class ConflictQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)
    appointmentDateTime = serializers.DateTimeField()
    durationMinutes = serializers.IntegerField(min_value=5, max_value=480, default=30)
    excludeId = serializers.IntegerField(min_value=1, required=False)


class ScheduleQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
