"""
Patient and doctor records.

Staff may create, read and update; deleting is limited to administrators
and is refused while appointments or prescriptions still reference the
record.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.models import Doctor, Patient
from clinic.serializers.appointment import ScheduleQuerySerializer
from clinic.serializers.patient import DoctorQuerySerializer, DoctorSerializer, PatientQuerySerializer, PatientSerializer
from clinic.services import scheduling, storage
from clinic.services.audit import log_action
from clinic.services.email import email_sender
from clinic.services.formatting import format_appointment, format_doctor, format_patient
from clinic.services.sms import sms_sender

from ..permissions import AdminForDelete

logger = logging.getLogger(__name__)


def _welcome(patient_id: int) -> None:
    patient = Patient.objects.filter(pk=patient_id).first()
    if patient is None:
        return
    email_sender().send_welcome(patient)
    if patient.phone_number:
        sms_sender().send_welcome(patient)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AdminForDelete])
def patients(request):
    if request.method == 'GET':
        q = PatientQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = Patient.objects.all()
        term = q.validated_data.get('q')
        if term:
            qs = qs.filter(
                Q(first_name__icontains=term) | Q(last_name__icontains=term)
                | Q(email__icontains=term) | Q(phone_number__icontains=term)
            )
        return Response({'ok': True, 'data': [format_patient(p) for p in qs.order_by('last_name', 'first_name')]})

    s = PatientSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        patient = Patient.objects.create(**s.validated_data)
        transaction.on_commit(lambda: _welcome(patient.id))
    logger.info('Registered patient %s', patient.id)
    return Response({'ok': True, 'data': format_patient(patient)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, AdminForDelete])
def patient_detail(request, pk: int):
    patient = get_object_or_404(Patient, pk=pk)
    if request.method == 'GET':
        data = format_patient(patient)
        data['appointments'] = [
            format_appointment(a) for a in scheduling.list_appointments(patient_id=patient.id)
        ]
        return Response({'ok': True, 'data': data})
    if request.method == 'PUT':
        s = PatientSerializer(patient, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        for name, value in s.validated_data.items():
            setattr(patient, name, value)
        patient.save()
        return Response({'ok': True, 'data': format_patient(patient)})

    # Files of cascaded rows; removed only once the delete went through
    paths = list(patient.documents.values_list('file_path', flat=True))
    paths += list(patient.lab_tests.values_list('results_file', flat=True))
    for front, back in patient.insurances.values_list('front_card_image', 'back_card_image'):
        paths += [front, back]
    # ProtectedError is rendered as 409 by the exception handler
    patient.delete()
    for path in paths:
        storage.delete(path)
    log_action(user=request.user, action='patient_deleted', object_type='patient', object_id=pk)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AdminForDelete])
def doctors(request):
    if request.method == 'GET':
        q = DoctorQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = Doctor.objects.all()
        if q.validated_data.get('specialization'):
            qs = qs.filter(specialization__iexact=q.validated_data['specialization'])
        if q.validated_data.get('available'):
            qs = qs.filter(is_available=q.validated_data['available'] == 'true')
        term = q.validated_data.get('q')
        if term:
            qs = qs.filter(Q(first_name__icontains=term) | Q(last_name__icontains=term) | Q(department__icontains=term))
        return Response({'ok': True, 'data': [format_doctor(d) for d in qs.order_by('last_name', 'first_name')]})

    s = DoctorSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    doctor = Doctor.objects.create(**s.validated_data)
    logger.info('Added doctor %s (%s)', doctor.id, doctor.specialization)
    return Response({'ok': True, 'data': format_doctor(doctor)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, AdminForDelete])
def doctor_detail(request, pk: int):
    doctor = get_object_or_404(Doctor, pk=pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_doctor(doctor)})
    if request.method == 'PUT':
        s = DoctorSerializer(doctor, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        for name, value in s.validated_data.items():
            setattr(doctor, name, value)
        doctor.save()
        return Response({'ok': True, 'data': format_doctor(doctor)})

    doctor.delete()
    log_action(user=request.user, action='doctor_deleted', object_type='doctor', object_id=pk)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, AdminForDelete])
def doctor_schedule(request, pk: int):
    doctor = get_object_or_404(Doctor, pk=pk)
    q = ScheduleQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    day = q.validated_data.get('date') or timezone.localdate()
    return Response({
        'ok': True,
        'date': day.isoformat(),
        'data': [format_appointment(a) for a in scheduling.doctor_schedule(doctor.id, day)],
    })
