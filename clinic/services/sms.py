"""
SMS delivery through Twilio.

``SmsSender`` receives its credentials at construction; ``sms_sender()``
builds one from settings.  Every send is best effort: failures are logged
and reported as ``False``, never raised.
"""
import logging

from django.conf import settings
from django.utils import timezone
from twilio.rest import Client

from clinic.display import doctor_name, full_name
from clinic.services.phone import format_for_sms, is_valid_phone

logger = logging.getLogger(__name__)


def _when(value):
    local = timezone.localtime(value)
    return local.strftime('%b %d, %Y'), local.strftime('%I:%M %p').lstrip('0')


class SmsSender:
    def __init__(self, account_sid: str, auth_token: str, from_number: str, clinic_name: str = ''):
        self.from_number = from_number
        self.clinic_name = clinic_name
        if account_sid and auth_token and from_number:
            self.client = Client(account_sid, auth_token)
        else:
            self.client = None

    def send(self, phone_number: str, message: str) -> bool:
        if not self.client:
            logger.warning("SMS not configured; message to %s dropped", phone_number)
            return False
        if not is_valid_phone(phone_number):
            logger.warning("Invalid phone number %r, SMS not sent", phone_number)
            return False
        try:
            result = self.client.messages.create(
                body=message, from_=self.from_number, to=format_for_sms(phone_number)
            )
        except Exception:
            logger.exception("Failed to send SMS to %s", phone_number)
            return False
        logger.info("SMS sent successfully. SID: %s", result.sid)
        return True

    def send_appointment_reminder(self, appointment) -> bool:
        day, time = _when(appointment.appointment_datetime)
        patient = appointment.patient
        message = (
            f"Dear {full_name(patient.first_name, patient.last_name)}, this is a reminder that you have an "
            f"appointment with {doctor_name(appointment.doctor)} on {day} at {time}. "
            f"Please arrive 15 minutes early."
        )
        return self.send(patient.phone_number, message)

    def send_appointment_confirmation(self, appointment) -> bool:
        day, time = _when(appointment.appointment_datetime)
        patient = appointment.patient
        message = (
            f"Dear {full_name(patient.first_name, patient.last_name)}, your appointment with "
            f"{doctor_name(appointment.doctor)} has been confirmed for {day} at {time}. Thank you!"
        )
        return self.send(patient.phone_number, message)

    def send_final_reminder(self, appointment) -> bool:
        _, time = _when(appointment.appointment_datetime)
        patient = appointment.patient
        message = (
            f"FINAL REMINDER\n\nHi {full_name(patient.first_name, patient.last_name)}! Your appointment with "
            f"{doctor_name(appointment.doctor)} is in 1 hour at {time}.\n\n"
            f"Please arrive 15 minutes early.\n\n{self.clinic_name}"
        )
        return self.send(patient.phone_number, message)

    def send_welcome(self, patient) -> bool:
        message = (
            f"Welcome to {self.clinic_name}, {full_name(patient.first_name, patient.last_name)}! "
            f"Your registration has been completed successfully (Patient ID: {patient.id})."
        )
        return self.send(patient.phone_number, message)


def sms_sender() -> SmsSender:
    return SmsSender(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_FROM_NUMBER,
        clinic_name=settings.CLINIC_NAME,
    )
