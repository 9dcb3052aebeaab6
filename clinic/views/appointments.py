"""
Appointment scheduling endpoints.

Booking and edits go through :mod:`clinic.services.scheduling`, which
rejects double-booked doctors (409) and stale edits (409).
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.models import Appointment
from clinic.serializers.appointment import (
    AppointmentCreateSerializer,
    AppointmentQuerySerializer,
    AppointmentStatusSerializer,
    AppointmentUpdateSerializer,
    ConflictQuerySerializer,
)
from clinic.services import scheduling
from clinic.services.audit import log_action
from clinic.services.formatting import format_appointment

from ..permissions import AdminForDelete, IsStaffRole


def _load(pk: int) -> Appointment:
    return get_object_or_404(Appointment.objects.select_related('patient', 'doctor'), pk=pk)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, AdminForDelete])
def appointments(request):
    if request.method == 'GET':
        q = AppointmentQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        v = q.validated_data
        qs = scheduling.list_appointments(
            patient_id=v.get('patientId'),
            doctor_id=v.get('doctorId'),
            start_date=v.get('startDate'),
            end_date=v.get('endDate'),
            status=v.get('status'),
        )
        return Response({'ok': True, 'data': [format_appointment(a) for a in qs]})

    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = scheduling.book_appointment(**s.validated_data)
    return Response({'ok': True, 'data': format_appointment(_load(appointment.id))}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, AdminForDelete])
def appointment_detail(request, pk: int):
    appointment = _load(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_appointment(appointment)})
    if request.method == 'PUT':
        s = AppointmentUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        changes = dict(s.validated_data)
        version = changes.pop('version', None)
        appointment = scheduling.update_appointment(appointment, expected_version=version, **changes)
        return Response({'ok': True, 'data': format_appointment(appointment)})

    scheduling.delete_appointment(appointment)
    log_action(user=request.user, action='appointment_deleted', object_type='appointment', object_id=pk)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_status(request, pk: int):
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = scheduling.set_status(
        _load(pk), s.validated_data['status'], expected_version=s.validated_data.get('version')
    )
    return Response({'ok': True, 'data': format_appointment(appointment)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_confirm(request, pk: int):
    appointment = scheduling.confirm_appointment(_load(pk))
    return Response({'ok': True, 'data': format_appointment(appointment)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_cancel(request, pk: int):
    appointment = scheduling.cancel_appointment(_load(pk))
    return Response({'ok': True, 'data': format_appointment(appointment)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_check(request):
    """Report whether a doctor is free for the given window without booking it."""
    q = ConflictQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    conflicts = scheduling.find_conflicts(
        v['doctorId'], v['appointmentDateTime'], v['durationMinutes'], exclude_id=v.get('excludeId')
    )
    return Response({'ok': True, 'data': {'available': not conflicts, 'conflicts': [a.id for a in conflicts]}})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointments_today(request):
    return Response({'ok': True, 'data': [format_appointment(a) for a in scheduling.todays_appointments()]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointments_upcoming(request):
    return Response({'ok': True, 'data': [format_appointment(a) for a in scheduling.upcoming_appointments()]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_statistics(request):
    return Response({'ok': True, 'data': scheduling.statistics()})
