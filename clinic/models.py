"""
Database models for the hospital administration backend.

The models cover patient and doctor records, appointment scheduling,
prescriptions, insurance policies, lab tests and chart documents, invoicing
with payments and gateway transactions, and emergency alerts with their
recipients.  Relationships
are plain foreign keys; derived display values (full names, balances,
status labels) live in :mod:`clinic.display` as pure functions.
"""
from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone


class User(AbstractUser):
    """Staff account with a role used by the permission classes."""
    ROLE_CHOICES = [
        ('admin', 'Administrator'),
        ('staff', 'Staff'),
        ('doctor', 'Doctor'),
    ]
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='staff')

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Patient(models.Model):
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
    ]
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(max_length=255, unique=True)
    phone_number = models.CharField(max_length=20, blank=True)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    address = models.CharField(max_length=500, blank=True)
    emergency_contact_name = models.CharField(max_length=100, blank=True)
    emergency_contact_phone = models.CharField(max_length=20, blank=True)
    blood_type = models.CharField(max_length=5, blank=True)
    allergies = models.TextField(blank=True)
    medical_history = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['last_name', 'first_name'], name='patient_name_idx')]

    def __str__(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Doctor(models.Model):
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(max_length=255, unique=True)
    phone_number = models.CharField(max_length=20, blank=True)
    specialization = models.CharField(max_length=100)
    license_number = models.CharField(max_length=50, unique=True)
    department = models.CharField(max_length=100, blank=True)
    qualifications = models.CharField(max_length=500, blank=True)
    years_of_experience = models.PositiveIntegerField(default=0)
    consultation_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    # Filtered on every booking and on the available-doctor list
    is_available = models.BooleanField(default=True, db_index=True)
    biography = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Dr. {self.first_name} {self.last_name}"


class Appointment(models.Model):
    """A doctor's time window ``[appointment_datetime, +duration)`` booked for a patient.

    ``version`` is bumped on every edit made through the scheduler so that
    a concurrent edit based on a stale copy is detected and rejected.
    """
    STATUS_SCHEDULED = 'scheduled'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_NO_SHOW = 'no_show'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_NO_SHOW, 'No Show'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='appointments')
    doctor = models.ForeignKey(Doctor, on_delete=models.PROTECT, related_name='appointments')
    appointment_datetime = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField(default=30)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SCHEDULED, db_index=True)
    reason_for_visit = models.CharField(max_length=500, blank=True)
    notes = models.TextField(blank=True)
    fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    is_paid = models.BooleanField(default=False)
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['doctor', 'appointment_datetime'],
                condition=~models.Q(status='cancelled'),
                name='uniq_doctor_slot',
            ),
        ]
        indexes = [models.Index(fields=['appointment_datetime'], name='appointment_start_idx')]

    def __str__(self) -> str:
        return f"{self.patient_id} with {self.doctor_id} at {self.appointment_datetime:%Y-%m-%d %H:%M}"


class Medication(models.Model):
    name = models.CharField(max_length=200)
    generic_name = models.CharField(max_length=200, blank=True)
    manufacturer = models.CharField(max_length=200, blank=True)
    ndc_number = models.CharField(max_length=20, unique=True)
    strength = models.CharField(max_length=50, blank=True)
    dosage_form = models.CharField(max_length=50, blank=True)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    requires_prescription = models.BooleanField(default=True)
    is_controlled_substance = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.ndc_number})"


class Prescription(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='prescriptions')
    doctor = models.ForeignKey(Doctor, on_delete=models.PROTECT, related_name='prescriptions')
    medication = models.ForeignKey(
        Medication, null=True, blank=True, on_delete=models.PROTECT, related_name='prescriptions'
    )
    medication_name = models.CharField(max_length=200)
    dosage = models.CharField(max_length=100)
    frequency = models.CharField(max_length=100)
    duration_days = models.PositiveIntegerField(default=0)
    instructions = models.TextField(blank=True)
    side_effects = models.TextField(blank=True)
    quantity = models.PositiveIntegerField(default=0)
    refills_allowed = models.PositiveIntegerField(default=0)
    prescribed_date = models.DateField()
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.medication_name} {self.dosage} for {self.patient_id}"


class Insurance(models.Model):
    RELATIONSHIP_CHOICES = [
        ('self', 'Self'),
        ('spouse', 'Spouse'),
        ('child', 'Child'),
        ('other', 'Other'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='insurances')
    provider_name = models.CharField(max_length=200)
    policy_number = models.CharField(max_length=100, unique=True)
    group_number = models.CharField(max_length=100, blank=True)
    primary_insured_name = models.CharField(max_length=200, blank=True)
    relationship_to_primary = models.CharField(max_length=20, choices=RELATIONSHIP_CHOICES, default='self')
    effective_date = models.DateField()
    expiration_date = models.DateField(null=True, blank=True)
    copay_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    deductible_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    coverage_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))],
    )
    notes = models.TextField(blank=True)
    front_card_image = models.CharField(max_length=500, blank=True)
    back_card_image = models.CharField(max_length=500, blank=True)
    documents_uploaded_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.provider_name} {self.policy_number}"


class LabTest(models.Model):
    STATUS_ORDERED = 'ordered'
    STATUS_COLLECTED = 'collected'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_ORDERED, 'Ordered'),
        (STATUS_COLLECTED, 'Collected'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    PRIORITY_CHOICES = [
        ('urgent', 'Urgent'),
        ('high', 'High'),
        ('normal', 'Normal'),
        ('low', 'Low'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='lab_tests')
    doctor = models.ForeignKey(Doctor, null=True, blank=True, on_delete=models.PROTECT, related_name='lab_tests')
    laboratory_name = models.CharField(max_length=200, blank=True)
    test_code = models.CharField(max_length=50)
    test_name = models.CharField(max_length=200)
    description = models.CharField(max_length=500, blank=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    ordered_date = models.DateTimeField(default=timezone.now)
    collected_date = models.DateTimeField(null=True, blank=True)
    completed_date = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ORDERED, db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='normal')
    results = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    is_abnormal = models.BooleanField(default=False)
    results_file = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.test_code} {self.test_name} for {self.patient_id}"


class MedicalDocument(models.Model):
    """A file kept on a patient's chart (scans, reports, consent forms)."""
    DOCUMENT_TYPE_CHOICES = [
        ('medical_history', 'Medical History'),
        ('lab_results', 'Lab Results'),
        ('xray', 'X-Ray'),
        ('mri', 'MRI'),
        ('ct_scan', 'CT Scan'),
        ('ultrasound', 'Ultrasound'),
        ('prescription', 'Prescription'),
        ('invoice', 'Invoice'),
        ('insurance_card', 'Insurance Card'),
        ('consent', 'Consent Form'),
        ('discharge', 'Discharge Summary'),
        ('referral', 'Referral'),
        ('other', 'Other'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='documents')
    doctor = models.ForeignKey(Doctor, null=True, blank=True, on_delete=models.PROTECT, related_name='documents')
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='documents'
    )
    lab_test = models.ForeignKey(LabTest, null=True, blank=True, on_delete=models.SET_NULL, related_name='documents')
    document_type = models.CharField(max_length=20, choices=DOCUMENT_TYPE_CHOICES, default='other')
    title = models.CharField(max_length=200)
    description = models.CharField(max_length=1000, blank=True)
    file_name = models.CharField(max_length=255)
    file_path = models.CharField(max_length=500)
    content_type = models.CharField(max_length=100, blank=True)
    file_size = models.BigIntegerField(default=0)
    document_date = models.DateField(default=timezone.localdate)
    is_confidential = models.BooleanField(default=True)
    uploaded_by = models.CharField(max_length=150, blank=True)
    tags = models.CharField(max_length=1000, blank=True)
    notes = models.TextField(blank=True)
    is_archived = models.BooleanField(default=False, db_index=True)
    archived_at = models.DateTimeField(null=True, blank=True)
    uploaded_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.title} ({self.file_name})"


class Invoice(models.Model):
    """A patient's bill.

    ``total_amount`` and ``status`` are maintained by
    :class:`clinic.services.billing.BillingEngine`; they are never edited
    directly by the views.
    """
    STATUS_DRAFT = 'draft'
    STATUS_SENT = 'sent'
    STATUS_PAID = 'paid'
    STATUS_OVERDUE = 'overdue'
    STATUS_CANCELLED = 'cancelled'
    STATUS_PARTIALLY_PAID = 'partially_paid'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_SENT, 'Sent'),
        (STATUS_PAID, 'Paid'),
        (STATUS_OVERDUE, 'Overdue'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_PARTIALLY_PAID, 'Partially Paid'),
    ]
    invoice_number = models.CharField(max_length=20, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='invoices')
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='invoices'
    )
    insurance = models.ForeignKey(
        Insurance, null=True, blank=True, on_delete=models.SET_NULL, related_name='invoices'
    )
    invoice_date = models.DateField()
    due_date = models.DateField()
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    insurance_covered = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    notes = models.TextField(blank=True)
    paid_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['due_date'], name='invoice_due_date_idx')]

    def __str__(self) -> str:
        return self.invoice_number


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    description = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    item_code = models.CharField(max_length=50, blank=True)
    category = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.description} x{self.quantity}"


class PaymentMethod(models.Model):
    TYPE_CHOICES = [
        ('cash', 'Cash'),
        ('credit_card', 'Credit Card'),
        ('debit_card', 'Debit Card'),
        ('bank_transfer', 'Bank Transfer'),
        ('check', 'Check'),
        ('digital_wallet', 'Digital Wallet'),
        ('insurance_claim', 'Insurance Claim'),
        ('other', 'Other'),
    ]
    name = models.CharField(max_length=100, unique=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='cash')
    description = models.CharField(max_length=500, blank=True)
    is_active = models.BooleanField(default=True)
    requires_gateway = models.BooleanField(default=False)
    gateway_provider = models.CharField(max_length=100, blank=True)
    # Percentage expressed as a rate, e.g. 0.0290 for 2.9 %
    processing_fee = models.DecimalField(max_digits=5, decimal_places=4, default=Decimal('0.0000'))
    fixed_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    display_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['display_order', 'name']

    def __str__(self) -> str:
        return self.name


class Payment(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_PROCESSING = 'processing'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_REFUNDED = 'refunded'
    STATUS_PARTIALLY_REFUNDED = 'partially_refunded'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_REFUNDED, 'Refunded'),
        (STATUS_PARTIALLY_REFUNDED, 'Partially Refunded'),
    ]
    TYPE_FULL = 'full'
    TYPE_PARTIAL = 'partial'
    TYPE_REFUND = 'refund'
    TYPE_ADJUSTMENT = 'adjustment'
    TYPE_CHOICES = [
        (TYPE_FULL, 'Full'),
        (TYPE_PARTIAL, 'Partial'),
        (TYPE_REFUND, 'Refund'),
        (TYPE_ADJUSTMENT, 'Adjustment'),
    ]
    payment_number = models.CharField(max_length=20, unique=True)
    # Invoices with payments cannot be deleted
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments')
    payment_method = models.ForeignKey(PaymentMethod, on_delete=models.PROTECT, related_name='payments')
    refund_of = models.ForeignKey(
        'self', null=True, blank=True, on_delete=models.PROTECT, related_name='refunds'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_FULL)
    payment_date = models.DateTimeField()
    transaction_id = models.CharField(max_length=100, blank=True)
    gateway_transaction_id = models.CharField(max_length=100, blank=True)
    gateway = models.CharField(max_length=50, blank=True)
    gateway_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    net_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    failure_reason = models.CharField(max_length=500, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.payment_number} ({self.status})"


class PaymentTransaction(models.Model):
    """One call to the payment gateway made on behalf of a payment."""
    TYPE_CHOICES = [
        ('charge', 'Charge'),
        ('refund', 'Refund'),
        ('partial_refund', 'Partial Refund'),
        ('chargeback', 'Chargeback'),
        ('dispute', 'Dispute'),
        ('fee', 'Fee'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('authorized', 'Authorized'),
        ('captured', 'Captured'),
        ('failed', 'Failed'),
        ('cancelled', 'Cancelled'),
        ('refunded', 'Refunded'),
        ('disputed', 'Disputed'),
    ]
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name='transactions')
    gateway_transaction_id = models.CharField(max_length=100, blank=True, db_index=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='USD')
    gateway_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    net_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    gateway = models.CharField(max_length=50, blank=True)
    gateway_response = models.JSONField(default=dict, blank=True)
    failure_reason = models.CharField(max_length=500, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.type} {self.amount} {self.currency} ({self.status})"


class EmergencyAlert(models.Model):
    LEVEL_LOW = 'low'
    LEVEL_MEDIUM = 'medium'
    LEVEL_HIGH = 'high'
    LEVEL_CRITICAL = 'critical'
    LEVEL_CHOICES = [
        (LEVEL_LOW, 'Low'),
        (LEVEL_MEDIUM, 'Medium'),
        (LEVEL_HIGH, 'High'),
        (LEVEL_CRITICAL, 'Critical'),
    ]
    TYPE_CHOICES = [
        ('medical', 'Medical'),
        ('fire', 'Fire'),
        ('security', 'Security'),
        ('weather', 'Weather'),
        ('evacuation', 'Evacuation'),
        ('system', 'System'),
    ]
    AUDIENCE_ALL_PATIENTS = 'all_patients'
    AUDIENCE_ACTIVE_PATIENTS = 'active_patients'
    AUDIENCE_SPECIFIC_PATIENTS = 'specific_patients'
    AUDIENCE_DOCTORS = 'doctors'
    AUDIENCE_CHOICES = [
        (AUDIENCE_ALL_PATIENTS, 'All Patients'),
        (AUDIENCE_ACTIVE_PATIENTS, 'Active Patients'),
        (AUDIENCE_SPECIFIC_PATIENTS, 'Specific Patients'),
        (AUDIENCE_DOCTORS, 'Doctors'),
    ]
    STATUS_DRAFT = 'draft'
    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    title = models.CharField(max_length=200)
    message = models.TextField()
    level = models.CharField(max_length=10, choices=LEVEL_CHOICES, default=LEVEL_MEDIUM)
    alert_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='medical')
    target_audience = models.CharField(max_length=20, choices=AUDIENCE_CHOICES, default=AUDIENCE_ALL_PATIENTS)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    requires_read_confirmation = models.BooleanField(default=False)
    activated_at = models.DateTimeField(null=True, blank=True)
    deactivated_at = models.DateTimeField(null=True, blank=True)
    authorized_by = models.CharField(max_length=100, blank=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='emergency_alerts'
    )
    total_recipients = models.PositiveIntegerField(default=0)
    successful_count = models.PositiveIntegerField(default=0)
    failed_count = models.PositiveIntegerField(default=0)
    read_confirmation_count = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"[{self.level}] {self.title}"


class EmergencyAlertRecipient(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_SENT = 'sent'
    STATUS_READ_CONFIRMED = 'read_confirmed'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SENT, 'Sent'),
        (STATUS_READ_CONFIRMED, 'Read Confirmed'),
        (STATUS_FAILED, 'Failed'),
    ]
    TYPE_CHOICES = [
        ('patient', 'Patient'),
        ('doctor', 'Doctor'),
        ('phone', 'Phone Number'),
    ]
    alert = models.ForeignKey(EmergencyAlert, on_delete=models.CASCADE, related_name='recipients')
    recipient_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='patient')
    patient = models.ForeignKey(
        Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='alert_receipts'
    )
    doctor = models.ForeignKey(
        Doctor, null=True, blank=True, on_delete=models.SET_NULL, related_name='alert_receipts'
    )
    name = models.CharField(max_length=200, blank=True)
    email = models.CharField(max_length=255, blank=True)
    phone_number = models.CharField(max_length=20)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    read_confirmed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name or self.phone_number} ({self.status})"


class AuditEvent(models.Model):
    """Append-only log of sensitive actions (alerts, refunds, deletions)."""
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='audit_events')
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True)
    object_id = models.BigIntegerField(null=True, blank=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        indexes = [models.Index(fields=['object_type', 'object_id'], name='audit_object_idx')]

    def __str__(self) -> str:
        return f"{self.action} {self.object_type}:{self.object_id}"
