"""
Appointment notifications.

On booking a confirmation goes out immediately (email and SMS, best
effort) and two Celery jobs are queued: a full reminder 24 hours before
and a short SMS one hour before.  A job re-reads the appointment when it
fires and does nothing if the appointment was cancelled, deleted or moved.

The daily 09:00 sweep sends the 24-hour reminder again for every
appointment tomorrow, so most patients get that reminder twice.  The two
paths are independent and neither checks whether the other already ran.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from clinic.models import Appointment
from clinic.services.email import EmailSender, email_sender
from clinic.services.sms import SmsSender, sms_sender

logger = logging.getLogger(__name__)

REMINDER_24H = '24h'
REMINDER_1H = '1h'
REMINDER_OFFSETS = {
    REMINDER_24H: dt.timedelta(hours=24),
    REMINDER_1H: dt.timedelta(hours=1),
}


def schedule_at(task, when: dt.datetime, *args) -> bool:
    """Queue ``task(*args)`` to run at ``when``; past timestamps are skipped."""
    if when <= timezone.now():
        logger.info('Not scheduling %s%s: %s is in the past', task.name, args, when.isoformat())
        return False
    try:
        task.apply_async(args=list(args), eta=when)
    except Exception:
        logger.exception('Failed to schedule %s%s at %s', task.name, args, when.isoformat())
        return False
    logger.info('Scheduled %s%s at %s', task.name, args, when.isoformat())
    return True


def _load(appointment_id: int) -> Optional[Appointment]:
    return Appointment.objects.select_related('patient', 'doctor').filter(pk=appointment_id).first()


def schedule_reminders(appointment: Appointment) -> list[str]:
    from clinic.tasks import send_appointment_reminder

    scheduled = []
    for kind, offset in REMINDER_OFFSETS.items():
        when = appointment.appointment_datetime - offset
        if schedule_at(send_appointment_reminder, when, appointment.id, kind, appointment.appointment_datetime.isoformat()):
            scheduled.append(kind)
    return scheduled


def schedule_reminders_for(appointment_id: int) -> list[str]:
    appointment = _load(appointment_id)
    if appointment is None:
        return []
    return schedule_reminders(appointment)


def send_confirmation(appointment: Appointment, *, email: Optional[EmailSender] = None, sms: Optional[SmsSender] = None) -> None:
    email = email or email_sender()
    sms = sms or sms_sender()
    if not email.send_appointment_confirmation(appointment):
        logger.warning('Confirmation email for appointment %s was not sent', appointment.id)
    if not sms.send_appointment_confirmation(appointment):
        logger.warning('Confirmation SMS for appointment %s was not sent', appointment.id)


def appointment_booked(appointment_id: int) -> None:
    appointment = _load(appointment_id)
    if appointment is None:
        return
    try:
        send_confirmation(appointment)
    except Exception:
        logger.exception('Confirmation for appointment %s failed', appointment_id)
    schedule_reminders(appointment)


def deliver_reminder(
    appointment_id: int, kind: str, scheduled_for: Optional[str] = None, *,
    email: Optional[EmailSender] = None, sms: Optional[SmsSender] = None,
) -> bool:
    """Run a queued reminder; returns ``False`` when it was skipped."""
    appointment = _load(appointment_id)
    if appointment is None or appointment.status == Appointment.STATUS_CANCELLED:
        logger.info('Appointment %s not found or cancelled, skipping %s reminder', appointment_id, kind)
        return False
    if scheduled_for:
        expected = parse_datetime(scheduled_for)
        if expected is not None and expected != appointment.appointment_datetime:
            logger.info('Appointment %s was rescheduled, skipping stale %s reminder', appointment_id, kind)
            return False
    if kind == REMINDER_1H:
        (sms or sms_sender()).send_final_reminder(appointment)
    else:
        (email or email_sender()).send_appointment_reminder(appointment)
        (sms or sms_sender()).send_appointment_reminder(appointment)
    logger.info('%s reminder sent for appointment %s', kind, appointment_id)
    return True


def send_daily_reminders(
    today: Optional[dt.date] = None, *, email: Optional[EmailSender] = None, sms: Optional[SmsSender] = None,
) -> int:
    today = today or timezone.localdate()
    tomorrow = today + dt.timedelta(days=1)
    email = email or email_sender()
    sms = sms or sms_sender()
    appointments = (
        Appointment.objects.select_related('patient', 'doctor')
        .filter(appointment_datetime__date=tomorrow)
        .exclude(status=Appointment.STATUS_CANCELLED)
    )
    sent = 0
    for appointment in appointments:
        try:
            email.send_appointment_reminder(appointment)
            sms.send_appointment_reminder(appointment)
        except Exception:
            logger.exception('Daily reminder for appointment %s failed', appointment.id)
            continue
        sent += 1
    logger.info('Daily sweep sent %s reminders for %s (per-booking 24h reminders run separately)', sent, tomorrow)
    return sent
