"""
Celery application for background jobs.

Appointment reminders are scheduled per booking with ``apply_async(eta=...)``;
the recurring jobs below are driven by ``celery beat``.
"""
import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "healthcare.settings")

app = Celery("healthcare")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

app.conf.beat_schedule = {
    "send-daily-appointment-reminders": {
        "task": "clinic.tasks.send_daily_reminders",
        "schedule": crontab(hour=9, minute=0),
    },
    "refresh-overdue-invoices": {
        "task": "clinic.tasks.refresh_overdue_invoices",
        "schedule": crontab(hour=0, minute=30),
    },
}
