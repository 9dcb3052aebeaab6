"""
Appointment booking with doctor double-booking protection.

A candidate ``[start, start + duration)`` is rejected when any other
non-cancelled appointment of the same doctor overlaps it (half-open
intervals, so back-to-back slots are fine).  Edits use the ``version``
column: an update based on a stale copy is rejected with 409.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, F, Max, ProtectedError
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.display import appointment_end
from clinic.exceptions import DependentsExist, InvalidState, SchedulingConflict, StaleObjectError
from clinic.models import Appointment, Doctor, Patient
from clinic.services import realtime, reminders

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    'patient_id', 'doctor_id', 'appointment_datetime', 'duration_minutes', 'status',
    'reason_for_visit', 'notes', 'fee', 'is_paid',
}
SCHEDULE_FIELDS = {'doctor_id', 'appointment_datetime', 'duration_minutes'}


def overlaps(a_start: dt.datetime, a_end: dt.datetime, b_start: dt.datetime, b_end: dt.datetime) -> bool:
    return a_start < b_end and a_end > b_start


def find_conflicts(doctor_id: int, start: dt.datetime, duration_minutes: int, *, exclude_id: Optional[int] = None) -> list[Appointment]:
    end = start + dt.timedelta(minutes=duration_minutes)
    qs = Appointment.objects.filter(doctor_id=doctor_id).exclude(status=Appointment.STATUS_CANCELLED)
    if exclude_id:
        qs = qs.exclude(pk=exclude_id)
    longest = qs.aggregate(m=Max('duration_minutes'))['m']
    if not longest:
        return []
    # An overlapping appointment must start before ``end`` and less than ``longest`` minutes before ``start``
    candidates = qs.filter(
        appointment_datetime__lt=end,
        appointment_datetime__gt=start - dt.timedelta(minutes=longest),
    )
    return [a for a in candidates if overlaps(a.appointment_datetime, appointment_end(a), start, end)]


def _lock_doctor(doctor_id: int) -> None:
    # Serializes bookings per doctor between the overlap check and the write.
    list(Doctor.objects.select_for_update().filter(pk=doctor_id).values_list('pk', flat=True))


def _event(appointment: Appointment) -> dict:
    return {
        'id': appointment.id,
        'doctorId': appointment.doctor_id,
        'patientId': appointment.patient_id,
        'appointmentDateTime': appointment.appointment_datetime.isoformat(),
        'status': appointment.status,
    }


def book_appointment(
    *, patient_id: int, doctor_id: int, appointment_datetime: dt.datetime, duration_minutes: int = 30,
    reason_for_visit: str = '', notes: str = '', fee=None,
) -> Appointment:
    patient = Patient.objects.filter(pk=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    doctor = Doctor.objects.filter(pk=doctor_id).first()
    if doctor is None:
        raise NotFound('Doctor not found')
    if not doctor.is_available:
        raise InvalidState('Doctor is not available for appointments')

    try:
        with transaction.atomic():
            _lock_doctor(doctor.id)
            if find_conflicts(doctor.id, appointment_datetime, duration_minutes):
                raise SchedulingConflict()
            appointment = Appointment.objects.create(
                patient=patient,
                doctor=doctor,
                appointment_datetime=appointment_datetime,
                duration_minutes=duration_minutes,
                reason_for_visit=reason_for_visit,
                notes=notes,
                fee=doctor.consultation_fee if fee is None else fee,
            )
    except IntegrityError:
        raise SchedulingConflict()

    logger.info('Booked appointment %s: doctor %s at %s', appointment.id, doctor.id, appointment_datetime)
    transaction.on_commit(lambda: reminders.appointment_booked(appointment.id))
    realtime.broadcast('appointment.updated', _event(appointment))
    return appointment


def update_appointment(appointment: Appointment, *, expected_version: Optional[int] = None, **changes) -> Appointment:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError({k: 'Field cannot be changed' for k in sorted(unknown)})
    if 'status' in changes and changes['status'] not in dict(Appointment.STATUS_CHOICES):
        raise ValidationError({'status': 'Invalid status'})
    if 'patient_id' in changes and not Patient.objects.filter(pk=changes['patient_id']).exists():
        raise NotFound('Patient not found')
    if 'doctor_id' in changes and changes['doctor_id'] != appointment.doctor_id:
        doctor = Doctor.objects.filter(pk=changes['doctor_id']).first()
        if doctor is None:
            raise NotFound('Doctor not found')
        if not doctor.is_available:
            raise InvalidState('Doctor is not available for appointments')

    doctor_id = changes.get('doctor_id', appointment.doctor_id)
    start = changes.get('appointment_datetime', appointment.appointment_datetime)
    duration = changes.get('duration_minutes', appointment.duration_minutes)
    new_status = changes.get('status', appointment.status)
    reopened = appointment.status == Appointment.STATUS_CANCELLED and new_status != Appointment.STATUS_CANCELLED
    moved = any(
        name in changes and changes[name] != getattr(appointment, name) for name in SCHEDULE_FIELDS
    )
    version = appointment.version if expected_version is None else expected_version

    try:
        with transaction.atomic():
            if (moved or reopened) and new_status != Appointment.STATUS_CANCELLED:
                _lock_doctor(doctor_id)
                if find_conflicts(doctor_id, start, duration, exclude_id=appointment.pk):
                    raise SchedulingConflict()
            updated = Appointment.objects.filter(pk=appointment.pk, version=version).update(
                version=F('version') + 1, updated_at=timezone.now(), **changes
            )
            if not updated:
                raise StaleObjectError()
    except IntegrityError:
        raise SchedulingConflict()

    appointment = Appointment.objects.select_related('patient', 'doctor').get(pk=appointment.pk)
    logger.info('Updated appointment %s (v%s): %s', appointment.id, appointment.version, sorted(changes))
    if (moved or reopened) and appointment.status != Appointment.STATUS_CANCELLED:
        appointment_id = appointment.id
        transaction.on_commit(lambda: reminders.schedule_reminders_for(appointment_id))
    realtime.broadcast('appointment.updated', _event(appointment))
    return appointment


def set_status(appointment: Appointment, status: str, *, expected_version: Optional[int] = None) -> Appointment:
    return update_appointment(appointment, expected_version=expected_version, status=status)


def confirm_appointment(appointment: Appointment) -> Appointment:
    if appointment.status not in (Appointment.STATUS_SCHEDULED, Appointment.STATUS_CONFIRMED):
        raise InvalidState(f'Cannot confirm an appointment that is {appointment.get_status_display()}')
    return set_status(appointment, Appointment.STATUS_CONFIRMED)


def cancel_appointment(appointment: Appointment) -> Appointment:
    if appointment.status in (Appointment.STATUS_COMPLETED, Appointment.STATUS_CANCELLED):
        raise InvalidState(f'Cannot cancel an appointment that is {appointment.get_status_display()}')
    return set_status(appointment, Appointment.STATUS_CANCELLED)


def delete_appointment(appointment: Appointment) -> None:
    try:
        appointment.delete()
    except ProtectedError:
        raise DependentsExist()
    logger.info('Deleted appointment %s', appointment.pk)


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------
def list_appointments(
    *, patient_id: Optional[int] = None, doctor_id: Optional[int] = None, start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None, status: Optional[str] = None,
):
    qs = Appointment.objects.select_related('patient', 'doctor')
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if start_date:
        qs = qs.filter(appointment_datetime__date__gte=start_date)
    if end_date:
        qs = qs.filter(appointment_datetime__date__lte=end_date)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by('appointment_datetime')


def todays_appointments(today: Optional[dt.date] = None):
    today = today or timezone.localdate()
    return list_appointments(start_date=today, end_date=today)


def upcoming_appointments(days: int = 7, now: Optional[dt.datetime] = None):
    now = now or timezone.now()
    return (
        Appointment.objects.select_related('patient', 'doctor')
        .filter(appointment_datetime__gte=now, appointment_datetime__lt=now + dt.timedelta(days=days))
        .exclude(status=Appointment.STATUS_CANCELLED)
        .order_by('appointment_datetime')
    )


def doctor_schedule(doctor_id: int, day: dt.date):
    return list_appointments(doctor_id=doctor_id, start_date=day, end_date=day).exclude(
        status=Appointment.STATUS_CANCELLED
    )


def statistics(today: Optional[dt.date] = None) -> dict:
    today = today or timezone.localdate()
    by_status = {s: 0 for s, _ in Appointment.STATUS_CHOICES}
    for row in Appointment.objects.values('status').annotate(n=Count('id')):
        by_status[row['status']] = row['n']
    return {
        'total': sum(by_status.values()),
        'today': Appointment.objects.filter(appointment_datetime__date=today).count(),
        'upcoming': upcoming_appointments().count(),
        'byStatus': by_status,
    }
