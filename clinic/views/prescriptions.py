from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.models import Doctor, Medication, Patient, Prescription
from clinic.serializers.prescription import MedicationSerializer, PrescriptionQuerySerializer, PrescriptionSerializer
from clinic.services.email import email_sender
from clinic.services.formatting import format_medication, format_prescription

from ..permissions import AdminForDelete, IsStaffRole

logger = logging.getLogger(__name__)


def _load(pk: int) -> Prescription:
    return get_object_or_404(Prescription.objects.select_related('patient', 'doctor'), pk=pk)


def _check_parties(data: dict) -> None:
    if 'patient_id' in data and not Patient.objects.filter(pk=data['patient_id']).exists():
        raise NotFound('Patient not found')
    if 'doctor_id' in data and not Doctor.objects.filter(pk=data['doctor_id']).exists():
        raise NotFound('Doctor not found')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AdminForDelete])
def prescriptions(request):
    if request.method == 'GET':
        q = PrescriptionQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = Prescription.objects.select_related('patient', 'doctor')
        if q.validated_data.get('patientId'):
            qs = qs.filter(patient_id=q.validated_data['patientId'])
        if q.validated_data.get('doctorId'):
            qs = qs.filter(doctor_id=q.validated_data['doctorId'])
        if q.validated_data.get('active'):
            qs = qs.filter(is_active=q.validated_data['active'] == 'true')
        return Response({'ok': True, 'data': [format_prescription(p) for p in qs.order_by('-prescribed_date', '-id')]})

    s = PrescriptionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    _check_parties(s.validated_data)
    data = dict(s.validated_data)
    data.setdefault('prescribed_date', timezone.localdate())
    prescription = Prescription.objects.create(**data)
    logger.info('Prescription %s issued for patient %s', prescription.id, prescription.patient_id)
    return Response({'ok': True, 'data': format_prescription(_load(prescription.id))}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, AdminForDelete])
def prescription_detail(request, pk: int):
    prescription = _load(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_prescription(prescription)})
    if request.method == 'PUT':
        s = PrescriptionSerializer(prescription, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        _check_parties(s.validated_data)
        for name, value in s.validated_data.items():
            setattr(prescription, name, value)
        prescription.save()
        return Response({'ok': True, 'data': format_prescription(_load(pk))})

    prescription.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def prescription_notify(request, pk: int):
    """Email the patient that the prescription is ready for pickup."""
    sent = email_sender().send_prescription_ready(_load(pk))
    return Response({'ok': sent})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AdminForDelete])
def medications(request):
    if request.method == 'GET':
        qs = Medication.objects.all()
        if request.query_params.get('active') == 'true':
            qs = qs.filter(is_active=True)
        return Response({'ok': True, 'data': [format_medication(m) for m in qs.order_by('name')]})

    s = MedicationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    medication = Medication.objects.create(**s.validated_data)
    return Response({'ok': True, 'data': format_medication(medication)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, AdminForDelete])
def medication_detail(request, pk: int):
    medication = get_object_or_404(Medication, pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_medication(medication)})
    if request.method == 'PUT':
        s = MedicationSerializer(medication, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        for name, value in s.validated_data.items():
            setattr(medication, name, value)
        medication.save()
        return Response({'ok': True, 'data': format_medication(medication)})

    medication.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)
