from celery import shared_task

from clinic.services import reminders
from clinic.services.billing import billing_engine


@shared_task
def send_appointment_reminder(appointment_id, kind, scheduled_for=None):  # Queued per booking
    return reminders.deliver_reminder(appointment_id, kind, scheduled_for)


@shared_task
def send_daily_reminders():  # Beat, 09:00 daily
    sent = reminders.send_daily_reminders()
    return f"Sent {sent} reminders"


@shared_task
def refresh_overdue_invoices():  # Beat, nightly
    changed = billing_engine().refresh_overdue()
    return f"Marked {changed} invoices overdue"
