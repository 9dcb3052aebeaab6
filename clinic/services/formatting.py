"""
JSON shapes returned by the API.

Every response field is camelCase; money is a two-place string and
timestamps are ISO 8601.
"""
from __future__ import annotations

from clinic import display
from clinic.models import (
    Appointment, Doctor, EmergencyAlert, EmergencyAlertRecipient, Insurance, Invoice, InvoiceItem, LabTest,
    MedicalDocument, Medication, Patient, Payment, PaymentMethod, PaymentTransaction, Prescription,
)
from clinic.services import storage
from clinic.services.phone import format_for_display


def format_patient(p: Patient) -> dict:
    return {
        'id': p.id,
        'firstName': p.first_name,
        'lastName': p.last_name,
        'fullName': display.full_name(p.first_name, p.last_name),
        'email': p.email,
        'phoneNumber': p.phone_number,
        'phoneDisplay': format_for_display(p.phone_number),
        'dateOfBirth': display.iso(p.date_of_birth),
        'age': display.age_on(p.date_of_birth),
        'gender': p.gender,
        'address': p.address,
        'emergencyContactName': p.emergency_contact_name,
        'emergencyContactPhone': p.emergency_contact_phone,
        'bloodType': p.blood_type,
        'allergies': p.allergies,
        'medicalHistory': p.medical_history,
        'createdAt': display.iso(p.created_at),
        'updatedAt': display.iso(p.updated_at),
    }


def format_doctor(d: Doctor) -> dict:
    return {
        'id': d.id,
        'firstName': d.first_name,
        'lastName': d.last_name,
        'fullName': display.doctor_name(d),
        'email': d.email,
        'phoneNumber': d.phone_number,
        'specialization': d.specialization,
        'licenseNumber': d.license_number,
        'department': d.department,
        'qualifications': d.qualifications,
        'yearsOfExperience': d.years_of_experience,
        'consultationFee': display.money(d.consultation_fee),
        'isAvailable': d.is_available,
        'biography': d.biography,
        'createdAt': display.iso(d.created_at),
        'updatedAt': display.iso(d.updated_at),
    }


def format_appointment(a: Appointment) -> dict:
    return {
        'id': a.id,
        'patientId': a.patient_id,
        'patientName': display.full_name(a.patient.first_name, a.patient.last_name),
        'doctorId': a.doctor_id,
        'doctorName': display.doctor_name(a.doctor),
        'appointmentDateTime': display.iso(a.appointment_datetime),
        'endDateTime': display.iso(display.appointment_end(a)),
        'durationMinutes': a.duration_minutes,
        'status': a.status,
        'statusDisplay': display.status_label(a),
        'reasonForVisit': a.reason_for_visit,
        'notes': a.notes,
        'fee': display.money(a.fee),
        'isPaid': a.is_paid,
        'version': a.version,
        'createdAt': display.iso(a.created_at),
        'updatedAt': display.iso(a.updated_at),
    }


def format_medication(m: Medication) -> dict:
    return {
        'id': m.id,
        'name': m.name,
        'genericName': m.generic_name,
        'manufacturer': m.manufacturer,
        'ndcNumber': m.ndc_number,
        'strength': m.strength,
        'dosageForm': m.dosage_form,
        'unitPrice': display.money(m.unit_price),
        'requiresPrescription': m.requires_prescription,
        'isControlledSubstance': m.is_controlled_substance,
        'isActive': m.is_active,
    }


def format_prescription(p: Prescription) -> dict:
    return {
        'id': p.id,
        'patientId': p.patient_id,
        'patientName': display.full_name(p.patient.first_name, p.patient.last_name),
        'doctorId': p.doctor_id,
        'doctorName': display.doctor_name(p.doctor),
        'medicationId': p.medication_id,
        'medicationName': p.medication_name,
        'dosage': p.dosage,
        'frequency': p.frequency,
        'durationDays': p.duration_days,
        'durationDescription': display.duration_description(p.duration_days),
        'instructions': p.instructions,
        'sideEffects': p.side_effects,
        'quantity': p.quantity,
        'refillsAllowed': p.refills_allowed,
        'prescribedDate': display.iso(p.prescribed_date),
        'startDate': display.iso(p.start_date),
        'endDate': display.iso(p.end_date),
        'isExpired': display.prescription_is_expired(p),
        'isActive': p.is_active,
    }


def format_insurance(i: Insurance) -> dict:
    return {
        'id': i.id,
        'patientId': i.patient_id,
        'providerName': i.provider_name,
        'policyNumber': i.policy_number,
        'groupNumber': i.group_number,
        'primaryInsuredName': i.primary_insured_name,
        'relationshipToPrimary': i.relationship_to_primary,
        'effectiveDate': display.iso(i.effective_date),
        'expirationDate': display.iso(i.expiration_date),
        'copayAmount': display.money(i.copay_amount),
        'deductibleAmount': display.money(i.deductible_amount),
        'coveragePercentage': display.money(i.coverage_percentage),
        'notes': i.notes,
        'frontCardImage': storage.url(i.front_card_image) if i.front_card_image else None,
        'backCardImage': storage.url(i.back_card_image) if i.back_card_image else None,
        'documentsUploadedAt': display.iso(i.documents_uploaded_at),
        'isActive': i.is_active,
        'isExpired': display.insurance_is_expired(i),
        'status': display.insurance_status(i),
    }


def format_lab_test(t: LabTest) -> dict:
    return {
        'id': t.id,
        'patientId': t.patient_id,
        'doctorId': t.doctor_id,
        'doctorName': display.doctor_name(t.doctor) if t.doctor_id else None,
        'laboratoryName': t.laboratory_name,
        'testCode': t.test_code,
        'testName': t.test_name,
        'description': t.description,
        'cost': display.money(t.cost),
        'orderedDate': display.iso(t.ordered_date),
        'collectedDate': display.iso(t.collected_date),
        'completedDate': display.iso(t.completed_date),
        'status': t.status,
        'statusLabel': display.status_label(t),
        'priority': t.priority,
        'results': t.results,
        'isAbnormal': t.is_abnormal,
        'resultsFile': storage.url(t.results_file) if t.results_file else None,
        'notes': t.notes,
        'isOverdue': display.lab_test_is_overdue(t),
    }


def format_document(d: MedicalDocument) -> dict:
    return {
        'id': d.id,
        'patientId': d.patient_id,
        'doctorId': d.doctor_id,
        'appointmentId': d.appointment_id,
        'labTestId': d.lab_test_id,
        'documentType': d.document_type,
        'documentTypeLabel': display.status_label(d, 'document_type'),
        'title': d.title,
        'description': d.description,
        'fileName': d.file_name,
        'fileUrl': storage.url(d.file_path),
        'contentType': d.content_type,
        'fileSize': d.file_size,
        'fileSizeFormatted': display.file_size(d.file_size),
        'isImage': display.is_image(d.file_name),
        'isPdf': display.is_pdf(d.file_name),
        'documentDate': display.iso(d.document_date),
        'isConfidential': d.is_confidential,
        'uploadedBy': d.uploaded_by,
        'uploadedAt': display.iso(d.uploaded_at),
        'tags': [t.strip() for t in d.tags.split(',') if t.strip()],
        'notes': d.notes,
        'isArchived': d.is_archived,
        'archivedAt': display.iso(d.archived_at),
    }


def format_item(item: InvoiceItem) -> dict:
    return {
        'id': item.id,
        'invoiceId': item.invoice_id,
        'description': item.description,
        'quantity': item.quantity,
        'unitPrice': display.money(item.unit_price),
        'totalPrice': display.money(item.total_price),
        'itemCode': item.item_code,
        'category': item.category,
    }


def format_invoice(inv: Invoice, *, with_items: bool = False) -> dict:
    data = {
        'id': inv.id,
        'invoiceNumber': inv.invoice_number,
        'patientId': inv.patient_id,
        'patientName': display.full_name(inv.patient.first_name, inv.patient.last_name),
        'appointmentId': inv.appointment_id,
        'insuranceId': inv.insurance_id,
        'invoiceDate': display.iso(inv.invoice_date),
        'dueDate': display.iso(inv.due_date),
        'subtotal': display.money(inv.subtotal),
        'taxAmount': display.money(inv.tax_amount),
        'discountAmount': display.money(inv.discount_amount),
        'insuranceCovered': display.money(inv.insurance_covered),
        'totalAmount': display.money(inv.total_amount),
        'amountPaid': display.money(inv.amount_paid),
        'balance': display.money(display.invoice_balance(inv)),
        'status': inv.status,
        'statusDisplay': display.status_label(inv),
        'isOverdue': display.invoice_is_overdue(inv),
        'paidDate': display.iso(inv.paid_date),
        'notes': inv.notes,
        'createdAt': display.iso(inv.created_at),
    }
    if with_items:
        data['items'] = [format_item(i) for i in inv.items.order_by('id')]
        data['payments'] = [format_payment(p) for p in inv.payments.select_related('payment_method').order_by('id')]
    return data


def format_payment_method(m: PaymentMethod) -> dict:
    return {
        'id': m.id,
        'name': m.name,
        'type': m.type,
        'description': m.description,
        'isActive': m.is_active,
        'requiresGateway': m.requires_gateway,
        'gatewayProvider': m.gateway_provider,
        'processingFee': str(m.processing_fee),
        'fixedFee': display.money(m.fixed_fee),
        'displayOrder': m.display_order,
    }


def format_transaction(t: PaymentTransaction) -> dict:
    return {
        'id': t.id,
        'gatewayTransactionId': t.gateway_transaction_id,
        'type': t.type,
        'status': t.status,
        'amount': display.money(t.amount),
        'currency': t.currency,
        'gatewayFee': display.money(t.gateway_fee),
        'netAmount': display.money(t.net_amount),
        'isSuccessful': display.transaction_is_successful(t),
        'failureReason': t.failure_reason,
        'processedAt': display.iso(t.processed_at),
    }


def format_payment(p: Payment, *, with_transactions: bool = False) -> dict:
    data = {
        'id': p.id,
        'paymentNumber': p.payment_number,
        'invoiceId': p.invoice_id,
        'paymentMethodId': p.payment_method_id,
        'paymentMethod': p.payment_method.name,
        'refundOf': p.refund_of_id,
        'amount': display.money(p.amount),
        'status': p.status,
        'statusDisplay': display.status_label(p),
        'type': p.type,
        'paymentDate': display.iso(p.payment_date),
        'transactionId': p.transaction_id,
        'gatewayTransactionId': p.gateway_transaction_id,
        'gatewayFee': display.money(p.gateway_fee),
        'netAmount': display.money(p.net_amount),
        'failureReason': p.failure_reason,
        'notes': p.notes,
        'processedAt': display.iso(p.processed_at),
    }
    if with_transactions:
        data['transactions'] = [format_transaction(t) for t in p.transactions.order_by('id')]
    return data


def format_recipient(r: EmergencyAlertRecipient) -> dict:
    return {
        'id': r.id,
        'recipientType': r.recipient_type,
        'patientId': r.patient_id,
        'doctorId': r.doctor_id,
        'name': r.name,
        'phoneNumber': r.phone_number,
        'status': r.status,
        'sentAt': display.iso(r.sent_at),
        'readConfirmedAt': display.iso(r.read_confirmed_at),
        'errorMessage': r.error_message,
    }


def format_alert(a: EmergencyAlert, *, with_recipients: bool = False) -> dict:
    data = {
        'id': a.id,
        'title': a.title,
        'message': a.message,
        'level': a.level,
        'alertType': a.alert_type,
        'targetAudience': a.target_audience,
        'status': a.status,
        'requiresReadConfirmation': a.requires_read_confirmation,
        'activatedAt': display.iso(a.activated_at),
        'deactivatedAt': display.iso(a.deactivated_at),
        'authorizedBy': a.authorized_by,
        'totalRecipients': a.total_recipients,
        'successfulCount': a.successful_count,
        'failedCount': a.failed_count,
        'readConfirmationCount': a.read_confirmation_count,
        'notes': a.notes,
        'createdAt': display.iso(a.created_at),
    }
    if with_recipients:
        data['recipients'] = [format_recipient(r) for r in a.recipients.order_by('id')]
    return data
