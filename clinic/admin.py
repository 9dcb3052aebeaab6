"""
Django admin registrations for the clinic models.

Invoice totals and statuses are maintained by the billing engine, so
they are read-only here; edit items through the API instead.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    Appointment,
    AuditEvent,
    Doctor,
    EmergencyAlert,
    EmergencyAlertRecipient,
    Insurance,
    Invoice,
    InvoiceItem,
    LabTest,
    MedicalDocument,
    Medication,
    Patient,
    Payment,
    PaymentMethod,
    PaymentTransaction,
    Prescription,
    User,
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'role', 'email', 'is_staff', 'is_superuser')
    list_filter = ('role', 'is_staff', 'is_superuser')
    fieldsets = BaseUserAdmin.fieldsets + (('Role', {'fields': ('role',)}),)


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'last_name', 'first_name', 'email', 'phone_number', 'date_of_birth')
    search_fields = ('first_name', 'last_name', 'email', 'phone_number')


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('id', 'last_name', 'first_name', 'specialization', 'license_number', 'is_available')
    list_filter = ('specialization', 'is_available')
    search_fields = ('first_name', 'last_name', 'license_number')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'appointment_datetime', 'duration_minutes', 'status', 'is_paid')
    list_filter = ('status', 'doctor')
    date_hierarchy = 'appointment_datetime'
    readonly_fields = ('version',)


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    list_display = ('name', 'ndc_number', 'strength', 'unit_price', 'is_active')
    search_fields = ('name', 'generic_name', 'ndc_number')


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'medication_name', 'prescribed_date', 'is_active')
    list_filter = ('is_active',)


@admin.register(Insurance)
class InsuranceAdmin(admin.ModelAdmin):
    list_display = ('policy_number', 'provider_name', 'patient', 'expiration_date', 'is_active')
    search_fields = ('policy_number', 'provider_name')


@admin.register(LabTest)
class LabTestAdmin(admin.ModelAdmin):
    list_display = ('test_code', 'test_name', 'patient', 'doctor', 'ordered_date', 'status', 'priority', 'is_abnormal')
    list_filter = ('status', 'priority')
    search_fields = ('test_code', 'test_name')


@admin.register(MedicalDocument)
class MedicalDocumentAdmin(admin.ModelAdmin):
    list_display = ('title', 'patient', 'document_type', 'file_name', 'document_date', 'is_archived')
    list_filter = ('document_type', 'is_archived', 'is_confidential')
    search_fields = ('title', 'file_name', 'tags')
    readonly_fields = ('file_path', 'file_size', 'content_type', 'uploaded_by')


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    readonly_fields = ('total_price',)


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'patient', 'invoice_date', 'due_date', 'total_amount', 'amount_paid', 'status')
    list_filter = ('status',)
    search_fields = ('invoice_number', 'patient__last_name')
    readonly_fields = ('subtotal', 'total_amount', 'amount_paid', 'status', 'paid_date')
    inlines = [InvoiceItemInline]


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    list_display = ('name', 'type', 'requires_gateway', 'processing_fee', 'fixed_fee', 'is_active', 'display_order')


class PaymentTransactionInline(admin.TabularInline):
    model = PaymentTransaction
    extra = 0
    can_delete = False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('payment_number', 'invoice', 'payment_method', 'amount', 'type', 'status', 'payment_date')
    list_filter = ('status', 'type', 'payment_method')
    search_fields = ('payment_number', 'gateway_transaction_id')
    inlines = [PaymentTransactionInline]


class RecipientInline(admin.TabularInline):
    model = EmergencyAlertRecipient
    extra = 0


@admin.register(EmergencyAlert)
class EmergencyAlertAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'level', 'status', 'total_recipients', 'successful_count', 'failed_count')
    list_filter = ('level', 'status', 'alert_type')
    inlines = [RecipientInline]


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'object_type', 'object_id', 'user')
    list_filter = ('action', 'object_type')
