"""
Lab tests and chart documents.

Both belong to a patient and are removed with the patient record.  Files
(result sheets, scans, consent forms) are kept through
:mod:`clinic.services.storage` and deleted once their row is gone.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.display import lab_test_is_overdue
from clinic.exceptions import InvalidState
from clinic.models import Appointment, Doctor, LabTest, MedicalDocument, Patient
from clinic.serializers.records import (
    DocumentQuerySerializer, DocumentSerializer, DocumentUploadSerializer, LabResultSerializer,
    LabTestQuerySerializer, LabTestSerializer,
)
from clinic.services import storage
from clinic.services.formatting import format_document, format_lab_test

from ..permissions import AdminForDelete, IsStaffRole

logger = logging.getLogger(__name__)

# Normal order of a lab test; cancelling is allowed from any open status.
LAB_PROGRESSION = [LabTest.STATUS_ORDERED, LabTest.STATUS_COLLECTED, LabTest.STATUS_IN_PROGRESS, LabTest.STATUS_COMPLETED]


def _check_parties(data: dict, patient_id=None) -> None:
    patient_id = data.get('patient_id', patient_id)
    if 'patient_id' in data and not Patient.objects.filter(pk=patient_id).exists():
        raise NotFound('Patient not found')
    if data.get('doctor_id') and not Doctor.objects.filter(pk=data['doctor_id']).exists():
        raise NotFound('Doctor not found')
    if data.get('appointment_id') and not Appointment.objects.filter(pk=data['appointment_id'], patient_id=patient_id).exists():
        raise ValidationError({'appointmentId': 'Appointment does not belong to this patient'})
    if data.get('lab_test_id') and not LabTest.objects.filter(pk=data['lab_test_id'], patient_id=patient_id).exists():
        raise ValidationError({'labTestId': 'Lab test does not belong to this patient'})


# ----------------------------------------------------------------------
# Lab tests
# ----------------------------------------------------------------------
def advance_lab_test(test: LabTest, new_status: str, now: Optional[dt.datetime] = None) -> LabTest:
    """Move ``test`` forward, stamping collection and completion times on the way."""
    now = now or timezone.now()
    if test.status in (LabTest.STATUS_COMPLETED, LabTest.STATUS_CANCELLED):
        raise InvalidState(f'Lab test is already {test.get_status_display()}')
    if new_status != LabTest.STATUS_CANCELLED:
        if LAB_PROGRESSION.index(new_status) < LAB_PROGRESSION.index(test.status):
            raise InvalidState(f'Cannot move a lab test back to {new_status}')
        if new_status != LabTest.STATUS_ORDERED and test.collected_date is None:
            test.collected_date = now
        if new_status == LabTest.STATUS_COMPLETED:
            test.completed_date = now
    test.status = new_status
    return test


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AdminForDelete])
def lab_tests(request):
    if request.method == 'GET':
        q = LabTestQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = LabTest.objects.select_related('doctor')
        if q.validated_data.get('patientId'):
            qs = qs.filter(patient_id=q.validated_data['patientId'])
        if q.validated_data.get('doctorId'):
            qs = qs.filter(doctor_id=q.validated_data['doctorId'])
        if q.validated_data.get('status'):
            qs = qs.filter(status=q.validated_data['status'])
        tests = list(qs.order_by('-ordered_date', '-id'))
        if q.validated_data.get('overdue'):
            wanted = q.validated_data['overdue'] == 'true'
            tests = [t for t in tests if lab_test_is_overdue(t) == wanted]
        return Response({'ok': True, 'data': [format_lab_test(t) for t in tests]})

    s = LabTestSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    _check_parties(s.validated_data)
    test = LabTest.objects.create(**s.validated_data)
    logger.info('Ordered lab test %s (%s) for patient %s', test.id, test.test_code, test.patient_id)
    return Response({'ok': True, 'data': format_lab_test(test)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, AdminForDelete])
def lab_test_detail(request, pk: int):
    test = get_object_or_404(LabTest.objects.select_related('doctor'), pk=pk)
    if request.method == 'GET':
        data = format_lab_test(test)
        data['documents'] = [format_document(d) for d in test.documents.order_by('-uploaded_at')]
        return Response({'ok': True, 'data': data})
    if request.method == 'PUT':
        s = LabTestSerializer(test, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        _check_parties(s.validated_data, test.patient_id)
        for name, value in s.validated_data.items():
            setattr(test, name, value)
        test.save()
        return Response({'ok': True, 'data': format_lab_test(test)})

    path = test.results_file
    test.delete()
    storage.delete(path)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
@parser_classes([JSONParser, MultiPartParser, FormParser])
def lab_test_results(request, pk: int):
    test = get_object_or_404(LabTest.objects.select_related('doctor'), pk=pk)
    s = LabResultSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    upload = data.pop('file', None)

    advance_lab_test(test, data.pop('status'))
    for name, value in data.items():
        setattr(test, name, value)
    previous = test.results_file
    if upload is not None:
        test.results_file = storage.upload(upload, f'lab-tests/{test.id}')
    test.save()
    if upload is not None:
        storage.delete(previous)
    logger.info('Lab test %s is now %s', test.id, test.status)
    return Response({'ok': True, 'data': format_lab_test(test)})


# ----------------------------------------------------------------------
# Documents
# ----------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AdminForDelete])
@parser_classes([MultiPartParser, FormParser])
def documents(request):
    if request.method == 'GET':
        q = DocumentQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = MedicalDocument.objects.filter(is_archived=q.validated_data.get('archived') == 'true')
        if q.validated_data.get('patientId'):
            qs = qs.filter(patient_id=q.validated_data['patientId'])
        if q.validated_data.get('documentType'):
            qs = qs.filter(document_type=q.validated_data['documentType'])
        return Response({'ok': True, 'data': [format_document(d) for d in qs.order_by('-document_date', '-id')]})

    s = DocumentUploadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    upload = data.pop('file')
    _check_parties(data)

    path = storage.upload(upload, f"documents/{data['patient_id']}")
    try:
        document = MedicalDocument.objects.create(
            file_name=upload.name,
            file_path=path,
            content_type=getattr(upload, 'content_type', '') or '',
            file_size=upload.size,
            uploaded_by=request.user.get_username(),
            **data,
        )
    except Exception:
        storage.delete(path)
        raise
    logger.info('Stored document %s for patient %s', document.id, document.patient_id)
    return Response({'ok': True, 'data': format_document(document)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, AdminForDelete])
def document_detail(request, pk: int):
    document = get_object_or_404(MedicalDocument, pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_document(document)})
    if request.method == 'PUT':
        s = DocumentSerializer(document, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        if 'patient_id' in s.validated_data and s.validated_data['patient_id'] != document.patient_id:
            raise ValidationError({'patientId': 'A document cannot be moved to another patient'})
        _check_parties(s.validated_data, document.patient_id)
        for name, value in s.validated_data.items():
            setattr(document, name, value)
        document.save()
        return Response({'ok': True, 'data': format_document(document)})

    path = document.file_path
    document.delete()
    storage.delete(path)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def document_archive(request, pk: int):
    """POST archives the document, DELETE puts it back on the chart."""
    document = get_object_or_404(MedicalDocument, pk=pk)
    document.is_archived = request.method == 'POST'
    document.archived_at = timezone.now() if document.is_archived else None
    document.save(update_fields=['is_archived', 'archived_at', 'updated_at'])
    return Response({'ok': True, 'data': format_document(document)})
