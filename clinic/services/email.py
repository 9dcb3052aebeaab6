"""
Email delivery through Django's mail framework.

Without ``EMAIL_HOST`` the console backend is configured, so messages are
only written to the log stream.  Templated variants render
``clinic/templates/emails/*.html``.
"""
import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.html import strip_tags

from clinic.display import doctor_name, full_name, invoice_balance, money

logger = logging.getLogger(__name__)


class EmailSender:
    def __init__(self, from_email: str, clinic_name: str = ''):
        self.from_email = from_email
        self.clinic_name = clinic_name

    def send(self, to: str, subject: str, body: str, is_html: bool = False) -> bool:
        if not to:
            logger.warning("Email '%s' has no recipient, skipped", subject)
            return False
        try:
            text = strip_tags(body) if is_html else body
            message = EmailMultiAlternatives(subject=subject, body=text, from_email=self.from_email, to=[to])
            if is_html:
                message.attach_alternative(body, "text/html")
            message.send()
        except Exception:
            logger.exception("Failed to send email to %s: %s", to, subject)
            return False
        logger.info("Email sent to %s: %s", to, subject)
        return True

    def _send_template(self, to: str, subject: str, template: str, context: dict) -> bool:
        context = {'clinic_name': self.clinic_name, **context}
        return self.send(to, subject, render_to_string(template, context), is_html=True)

    def _appointment_context(self, appointment) -> dict:
        local = timezone.localtime(appointment.appointment_datetime)
        patient = appointment.patient
        return {
            'patient_name': full_name(patient.first_name, patient.last_name),
            'doctor_name': doctor_name(appointment.doctor),
            'specialization': appointment.doctor.specialization,
            'date': local.strftime('%A, %B %d, %Y'),
            'time': local.strftime('%I:%M %p').lstrip('0'),
            'reason': appointment.reason_for_visit,
            'appointment_id': appointment.id,
        }

    def send_appointment_reminder(self, appointment) -> bool:
        return self._send_template(
            appointment.patient.email,
            f"Appointment Reminder - {self.clinic_name}",
            'emails/appointment_reminder.html',
            self._appointment_context(appointment),
        )

    def send_appointment_confirmation(self, appointment) -> bool:
        return self._send_template(
            appointment.patient.email,
            f"Appointment Confirmed - {self.clinic_name}",
            'emails/appointment_confirmation.html',
            self._appointment_context(appointment),
        )

    def send_invoice(self, invoice) -> bool:
        patient = invoice.patient
        return self._send_template(
            patient.email,
            f"Invoice {invoice.invoice_number} - {self.clinic_name}",
            'emails/invoice.html',
            {
                'patient_name': full_name(patient.first_name, patient.last_name),
                'invoice_number': invoice.invoice_number,
                'invoice_date': invoice.invoice_date,
                'due_date': invoice.due_date,
                'items': list(invoice.items.all()),
                'subtotal': money(invoice.subtotal),
                'tax_amount': money(invoice.tax_amount),
                'discount_amount': money(invoice.discount_amount),
                'insurance_covered': money(invoice.insurance_covered),
                'total_amount': money(invoice.total_amount),
                'amount_paid': money(invoice.amount_paid),
                'balance': money(invoice_balance(invoice)),
            },
        )

    def send_prescription_ready(self, prescription) -> bool:
        patient = prescription.patient
        return self._send_template(
            patient.email,
            "Prescription Ready for Pickup",
            'emails/prescription_ready.html',
            {
                'patient_name': full_name(patient.first_name, patient.last_name),
                'medication_name': prescription.medication_name,
                'dosage': prescription.dosage,
                'doctor_name': doctor_name(prescription.doctor),
            },
        )

    def send_welcome(self, patient) -> bool:
        return self._send_template(
            patient.email,
            f"Welcome to {self.clinic_name} - Registration Successful",
            'emails/welcome.html',
            {'patient_name': full_name(patient.first_name, patient.last_name), 'patient_id': patient.id},
        )


def email_sender() -> EmailSender:
    return EmailSender(from_email=settings.DEFAULT_FROM_EMAIL, clinic_name=settings.CLINIC_NAME)
