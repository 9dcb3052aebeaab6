from rest_framework import serializers

from clinic.models import LabTest, MedicalDocument
from clinic.serializers.common import CleanCharField


class LabTestSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
    doctorId = serializers.IntegerField(source='doctor_id', min_value=1, required=False, allow_null=True)
    laboratoryName = CleanCharField(source='laboratory_name', max_length=200, required=False, allow_blank=True)
    testCode = CleanCharField(source='test_code', max_length=50)
    testName = CleanCharField(source='test_name', max_length=200)
    description = CleanCharField(max_length=500, required=False, allow_blank=True)
    cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    orderedDate = serializers.DateTimeField(source='ordered_date', required=False)
    priority = serializers.ChoiceField(choices=[c for c, _ in LabTest.PRIORITY_CHOICES], required=False)
    notes = CleanCharField(required=False, allow_blank=True)


class LabResultSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in LabTest.STATUS_CHOICES])
    results = CleanCharField(required=False, allow_blank=True)
    isAbnormal = serializers.BooleanField(source='is_abnormal', required=False)
    notes = CleanCharField(required=False, allow_blank=True)
    file = serializers.FileField(required=False)


class LabTestQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in LabTest.STATUS_CHOICES], required=False)
    overdue = serializers.ChoiceField(choices=['true', 'false'], required=False)


class DocumentSerializer(serializers.Serializer):
    """Metadata of a chart document; the file itself arrives as ``file`` on upload."""
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
    doctorId = serializers.IntegerField(source='doctor_id', min_value=1, required=False, allow_null=True)
    appointmentId = serializers.IntegerField(source='appointment_id', min_value=1, required=False, allow_null=True)
    labTestId = serializers.IntegerField(source='lab_test_id', min_value=1, required=False, allow_null=True)
    documentType = serializers.ChoiceField(
        source='document_type', choices=[c for c, _ in MedicalDocument.DOCUMENT_TYPE_CHOICES], required=False
    )
    title = CleanCharField(max_length=200)
    description = CleanCharField(max_length=1000, required=False, allow_blank=True)
    documentDate = serializers.DateField(source='document_date', required=False)
    isConfidential = serializers.BooleanField(source='is_confidential', required=False)
    tags = CleanCharField(max_length=1000, required=False, allow_blank=True)
    notes = CleanCharField(required=False, allow_blank=True)


class DocumentUploadSerializer(DocumentSerializer):
    file = serializers.FileField()


class DocumentQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    documentType = serializers.ChoiceField(
        choices=[c for c, _ in MedicalDocument.DOCUMENT_TYPE_CHOICES], required=False
    )
    archived = serializers.ChoiceField(choices=['true', 'false'], required=False)
