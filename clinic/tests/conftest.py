import datetime as dt
from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from clinic.models import Doctor, Patient, PaymentMethod, User
from clinic.services.billing import BillingEngine
from clinic.services.gateway import GatewayError, GatewayResult


class FakeGateway:
    """Records calls; ``fail`` makes the next call raise, ``status`` sets the charge outcome."""
    name = 'fake'

    def __init__(self, status='captured', fee=Decimal('3.35'), fail=False):
        self.status = status
        self.fee = fee
        self.fail = fail
        self.charges = []
        self.refunds = []

    def charge(self, amount, token, *, description='', metadata=None):
        if self.fail:
            raise GatewayError('card declined')
        self.charges.append((amount, token))
        return GatewayResult(
            transaction_id=f'ch_{len(self.charges)}', status=self.status, fee=self.fee,
            failure_reason='' if self.status == 'captured' else 'declined',
            response={'status': self.status},
        )

    def refund(self, charge_id, amount):
        if self.fail:
            raise GatewayError('refund rejected')
        self.refunds.append((charge_id, amount))
        return GatewayResult(transaction_id=f're_{len(self.refunds)}', status='refunded', response={'charge': charge_id})


class FakeSms:
    def __init__(self, fail_numbers=(), raise_numbers=()):
        self.fail_numbers = set(fail_numbers)
        self.raise_numbers = set(raise_numbers)
        self.sent = []

    def send(self, phone_number, message):
        if phone_number in self.raise_numbers:
            raise RuntimeError('carrier unavailable')
        self.sent.append((phone_number, message))
        return phone_number not in self.fail_numbers

    def send_appointment_reminder(self, appointment):
        return self.send(appointment.patient.phone_number, 'reminder')

    def send_appointment_confirmation(self, appointment):
        return self.send(appointment.patient.phone_number, 'confirmation')

    def send_final_reminder(self, appointment):
        return self.send(appointment.patient.phone_number, 'final')


class FakeEmail:
    def __init__(self):
        self.sent = []

    def send_appointment_reminder(self, appointment):
        self.sent.append(('reminder', appointment.id))
        return True

    def send_appointment_confirmation(self, appointment):
        self.sent.append(('confirmation', appointment.id))
        return True


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def engine(gateway):
    return BillingEngine(gateway=gateway, currency='usd')


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def email():
    return FakeEmail()


@pytest.fixture
def patient(db):
    return Patient.objects.create(
        first_name='Amit', last_name='Sharma', email='amit@example.com',
        phone_number='9812345670', date_of_birth=dt.date(1985, 3, 14),
    )


@pytest.fixture
def other_patient(db):
    return Patient.objects.create(
        first_name='Priya', last_name='Patel', email='priya@example.com',
        phone_number='9812345671', date_of_birth=dt.date(1992, 7, 22),
    )


@pytest.fixture
def doctor(db):
    return Doctor.objects.create(
        first_name='Anjali', last_name='Verma', email='anjali@hospital.local', phone_number='9876543210',
        specialization='Cardiology', license_number='MD12345', consultation_fee=Decimal('150.00'),
    )


@pytest.fixture
def cash(db):
    return PaymentMethod.objects.create(name='Cash', type='cash')


@pytest.fixture
def card(db):
    return PaymentMethod.objects.create(
        name='Credit Card', type='credit_card', requires_gateway=True, gateway_provider='stripe',
        processing_fee=Decimal('0.0290'), fixed_fee=Decimal('0.30'),
    )


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(username='admin1', password='adminpass123', role='admin')


@pytest.fixture
def doctor_user(db):
    return User.objects.create_user(username='doc1', password='docpass123', role='doctor')


@pytest.fixture
def api(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


@pytest.fixture
def use_engine(monkeypatch, engine):
    """Make the views build their billing engine around the fake gateway."""
    for module in ('clinic.views.invoices', 'clinic.views.payments', 'clinic.views.reports'):
        monkeypatch.setattr(f'{module}.billing_engine', lambda: engine)
    return engine
