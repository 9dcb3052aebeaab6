"""
Derived display values.

Plain functions over model instances (or their raw fields) used by the
views when shaping JSON and by the services when they need a computed
value.  None of these touch the database.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Optional

from django.utils import timezone


def full_name(first_name: str, last_name: str) -> str:
    return f"{first_name} {last_name}".strip()


def doctor_name(doctor) -> str:
    return f"Dr. {full_name(doctor.first_name, doctor.last_name)}"


def age_on(date_of_birth: dt.date, today: Optional[dt.date] = None) -> int:
    """Whole years between ``date_of_birth`` and ``today``."""
    today = today or timezone.localdate()
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return max(years, 0)


def status_label(instance, field: str = 'status') -> str:
    """Human label of a choices field, e.g. ``partially_paid`` -> ``Partially Paid``."""
    return getattr(instance, f'get_{field}_display')()


def appointment_end(appointment) -> dt.datetime:
    return appointment.appointment_datetime + dt.timedelta(minutes=appointment.duration_minutes)


def invoice_balance(invoice) -> Decimal:
    return invoice.total_amount - invoice.amount_paid


def invoice_is_overdue(invoice, today: Optional[dt.date] = None) -> bool:
    today = today or timezone.localdate()
    return invoice.due_date < today and invoice.status not in ('paid', 'cancelled')


def insurance_is_expired(insurance, today: Optional[dt.date] = None) -> bool:
    today = today or timezone.localdate()
    return bool(insurance.expiration_date and insurance.expiration_date < today)


def insurance_status(insurance, today: Optional[dt.date] = None) -> str:
    if not insurance.is_active:
        return 'Inactive'
    if insurance_is_expired(insurance, today):
        return 'Expired'
    return 'Active'


def prescription_is_expired(prescription, today: Optional[dt.date] = None) -> bool:
    today = today or timezone.localdate()
    return bool(prescription.end_date and prescription.end_date < today)


def duration_description(days: int) -> str:
    return f"{days} day" if days == 1 else f"{days} days"


def transaction_is_successful(transaction) -> bool:
    return transaction.status in ('captured', 'authorized')


def money(value: Optional[Decimal]) -> Optional[str]:
    """Decimals are emitted as fixed two-place strings to avoid float rounding."""
    if value is None:
        return None
    return f"{value:.2f}"


def iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def lab_test_is_overdue(test, now: Optional[dt.datetime] = None) -> bool:
    """Still open a week after it was ordered."""
    now = now or timezone.now()
    if test.status in ('completed', 'cancelled'):
        return False
    return test.ordered_date < now - dt.timedelta(days=7)


def file_size(size: int) -> str:
    units = ['B', 'KB', 'MB', 'GB']
    value = float(size or 0)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{value:.0f} {units[unit]}" if unit == 0 else f"{value:.2f} {units[unit]}"


def is_image(file_name: str) -> bool:
    return file_name.lower().endswith(('.jpg', '.jpeg', '.png', '.gif', '.bmp'))


def is_pdf(file_name: str) -> bool:
    return file_name.lower().endswith('.pdf')
