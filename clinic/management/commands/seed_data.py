"""
Management command to populate the database with demo data.

Creates staff accounts, the standard payment methods, a few doctors and
patients.  Existing rows are left alone, so the command can be re-run.
"""
import datetime as dt
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from clinic.models import Doctor, Patient, PaymentMethod, User

USERS = [
    ('admin', 'admin', 'admin@hospital.local', True),
    ('frontdesk', 'staff', 'frontdesk@hospital.local', False),
]

PAYMENT_METHODS = [
    {'name': 'Cash', 'type': 'cash', 'description': 'Cash payment at the front desk', 'display_order': 1},
    {
        'name': 'Credit Card', 'type': 'credit_card', 'description': 'Card payment processed by Stripe',
        'requires_gateway': True, 'gateway_provider': 'stripe',
        'processing_fee': Decimal('0.0290'), 'fixed_fee': Decimal('0.30'), 'display_order': 2,
    },
    {'name': 'Bank Transfer', 'type': 'bank_transfer', 'description': 'Direct bank transfer', 'display_order': 3},
    {'name': 'Insurance Claim', 'type': 'insurance_claim', 'description': 'Billed to the insurer', 'display_order': 4},
]

DOCTORS = [
    ('Anjali', 'Verma', 'Cardiology', 'MD12345', 'anjali.verma@hospital.local', '9876543210', 15, '1500.00'),
    ('Vikram', 'Singh', 'Pediatrics', 'MD12346', 'vikram.singh@hospital.local', '9876543211', 10, '1000.00'),
    ('Meera', 'Gupta', 'Orthopedics', 'MD12347', 'meera.gupta@hospital.local', '9876543212', 12, '1200.00'),
    ('Arjun', 'Reddy', 'Internal Medicine', 'MD12348', 'arjun.reddy@hospital.local', '9876543213', 8, '800.00'),
]

PATIENTS = [
    ('Amit', 'Sharma', 'amit.sharma@example.com', '9812345670', dt.date(1985, 3, 14), 'male', 'B+'),
    ('Priya', 'Patel', 'priya.patel@example.com', '9812345671', dt.date(1992, 7, 22), 'female', 'O+'),
    ('Rajesh', 'Kumar', 'rajesh.kumar@example.com', '9812345672', dt.date(1978, 11, 5), 'male', 'A-'),
]


class Command(BaseCommand):
    help = 'Populate the database with demo users, payment methods, doctors and patients'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='ChangeMe123!', help='Password for the demo staff accounts')

    @transaction.atomic
    def handle(self, *args, **options):
        created = {
            'users': self.create_users(options['password']),
            'payment methods': self.create_payment_methods(),
            'doctors': self.create_doctors(),
            'patients': self.create_patients(),
        }
        for label, count in created.items():
            self.stdout.write(f'{label}: {count} created')
        self.stdout.write(self.style.SUCCESS('Demo data ready'))

    def create_users(self, password):
        count = 0
        for username, role, email, superuser in USERS:
            if User.objects.filter(username=username).exists():
                continue
            if superuser:
                User.objects.create_superuser(username=username, email=email, password=password, role=role)
            else:
                User.objects.create_user(username=username, email=email, password=password, role=role, is_staff=True)
            count += 1
        return count

    def create_payment_methods(self):
        count = 0
        for spec in PAYMENT_METHODS:
            spec = dict(spec)
            _, made = PaymentMethod.objects.get_or_create(name=spec.pop('name'), defaults=spec)
            count += made
        return count

    def create_doctors(self):
        count = 0
        for first, last, specialization, license_number, email, phone, years, fee in DOCTORS:
            _, made = Doctor.objects.get_or_create(
                license_number=license_number,
                defaults={
                    'first_name': first,
                    'last_name': last,
                    'specialization': specialization,
                    'department': specialization,
                    'email': email,
                    'phone_number': phone,
                    'years_of_experience': years,
                    'consultation_fee': Decimal(fee),
                },
            )
            count += made
        return count

    def create_patients(self):
        count = 0
        for first, last, email, phone, dob, gender, blood in PATIENTS:
            _, made = Patient.objects.get_or_create(
                email=email,
                defaults={
                    'first_name': first,
                    'last_name': last,
                    'phone_number': phone,
                    'date_of_birth': dob,
                    'gender': gender,
                    'blood_type': blood,
                },
            )
            count += made
        return count
