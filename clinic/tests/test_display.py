import datetime as dt
from decimal import Decimal

import pytest
from django.utils import timezone

from clinic import display
from clinic.models import Insurance, Invoice, LabTest


def test_names():
    assert display.full_name('Amit', 'Sharma') == 'Amit Sharma'

    class Doc:
        first_name, last_name = 'Anjali', 'Verma'

    assert display.doctor_name(Doc()) == 'Dr. Anjali Verma'


@pytest.mark.parametrize('today,expected', [
    (dt.date(2024, 3, 13), 38),
    (dt.date(2024, 3, 14), 39),
    (dt.date(1985, 3, 14), 0),
])
def test_age_on(today, expected):
    assert display.age_on(dt.date(1985, 3, 14), today) == expected


def test_invoice_display_values():
    invoice = Invoice(
        total_amount=Decimal('105.00'), amount_paid=Decimal('40.00'), due_date=dt.date(2024, 1, 31),
        status=Invoice.STATUS_PARTIALLY_PAID,
    )
    assert display.invoice_balance(invoice) == Decimal('65.00')
    assert display.invoice_is_overdue(invoice, dt.date(2024, 2, 1))
    assert not display.invoice_is_overdue(invoice, dt.date(2024, 1, 31))
    assert display.status_label(invoice) == 'Partially Paid'


def test_insurance_status():
    policy = Insurance(is_active=True, effective_date=dt.date(2023, 1, 1), expiration_date=dt.date(2023, 12, 31))
    assert display.insurance_status(policy, dt.date(2023, 6, 1)) == 'Active'
    assert display.insurance_status(policy, dt.date(2024, 1, 1)) == 'Expired'
    policy.is_active = False
    assert display.insurance_status(policy, dt.date(2023, 6, 1)) == 'Inactive'


def test_money_and_durations():
    assert display.money(Decimal('5')) == '5.00'
    assert display.money(None) is None
    assert display.duration_description(1) == '1 day'
    assert display.duration_description(10) == '10 days'


@pytest.mark.parametrize('size,expected', [
    (0, '0 B'),
    (512, '512 B'),
    (2048, '2.00 KB'),
    (5 * 1024 * 1024, '5.00 MB'),
    (3 * 1024 ** 3, '3.00 GB'),
])
def test_file_size(size, expected):
    assert display.file_size(size) == expected


def test_file_kinds():
    assert display.is_image('Scan.JPG')
    assert not display.is_image('scan.pdf')
    assert display.is_pdf('discharge.PDF')


def test_lab_test_overdue():
    now = timezone.now()
    test = LabTest(status=LabTest.STATUS_COLLECTED, ordered_date=now - dt.timedelta(days=8))
    assert display.lab_test_is_overdue(test, now)
    assert not display.lab_test_is_overdue(test, now - dt.timedelta(days=2))
    test.status = LabTest.STATUS_COMPLETED
    assert not display.lab_test_is_overdue(test, now)
