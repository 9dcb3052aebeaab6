"""
URL mappings for the hospital administration API.

Collections live at ``/api/<resource>`` (GET list, POST create) and
records at ``/api/<resource>/<id>`` (GET, PUT, DELETE).  Trailing slashes
are omitted.
"""
from django.urls import path

from .views import (
    alerts, appointments, health, insurance, invoices, patients, payments, prescriptions, records, reports,
)
from .views.auth import login_view, logout_view


urlpatterns = [
    path('healthz', health.healthz, name='healthz'),
    # Authentication
    path('api/auth/token', login_view, name='login_view'),
    path('api/auth/logout', logout_view, name='logout_view'),
    # Dashboard
    path('api/reports/dashboard', reports.dashboard, name='dashboard'),
    # Patients / doctors
    path('api/patients', patients.patients),
    path('api/patients/<int:pk>', patients.patient_detail),
    path('api/doctors', patients.doctors),
    path('api/doctors/<int:pk>', patients.doctor_detail),
    path('api/doctors/<int:pk>/schedule', patients.doctor_schedule),
    # Appointments
    path('api/appointments', appointments.appointments),
    path('api/appointments/check', appointments.appointment_check),
    path('api/appointments/today', appointments.appointments_today),
    path('api/appointments/upcoming', appointments.appointments_upcoming),
    path('api/appointments/statistics', appointments.appointment_statistics),
    path('api/appointments/<int:pk>', appointments.appointment_detail),
    path('api/appointments/<int:pk>/status', appointments.appointment_status),
    path('api/appointments/<int:pk>/confirm', appointments.appointment_confirm),
    path('api/appointments/<int:pk>/cancel', appointments.appointment_cancel),
    # Prescriptions / medications
    path('api/prescriptions', prescriptions.prescriptions),
    path('api/prescriptions/<int:pk>', prescriptions.prescription_detail),
    path('api/prescriptions/<int:pk>/notify', prescriptions.prescription_notify),
    path('api/medications', prescriptions.medications),
    path('api/medications/<int:pk>', prescriptions.medication_detail),
    # Insurance
    path('api/insurance', insurance.insurances),
    path('api/insurance/<int:pk>', insurance.insurance_detail),
    path('api/insurance/<int:pk>/card', insurance.insurance_card),
    # Lab tests / chart documents
    path('api/lab-tests', records.lab_tests),
    path('api/lab-tests/<int:pk>', records.lab_test_detail),
    path('api/lab-tests/<int:pk>/results', records.lab_test_results),
    path('api/documents', records.documents),
    path('api/documents/<int:pk>', records.document_detail),
    path('api/documents/<int:pk>/archive', records.document_archive),
    # Invoices
    path('api/invoices', invoices.invoices),
    path('api/invoices/overdue', invoices.invoices_overdue),
    path('api/invoices/refresh-overdue', invoices.invoices_refresh_overdue),
    path('api/invoices/<int:pk>', invoices.invoice_detail),
    path('api/invoices/<int:pk>/items', invoices.invoice_items),
    path('api/invoices/<int:pk>/items/<int:item_id>', invoices.invoice_item_detail),
    path('api/invoices/<int:pk>/cancel', invoices.invoice_cancel),
    path('api/invoices/<int:pk>/apply-insurance', invoices.invoice_apply_insurance),
    path('api/invoices/<int:pk>/send', invoices.invoice_send),
    # Payments
    path('api/payment-methods', payments.payment_methods),
    path('api/payment-methods/<int:pk>', payments.payment_method_detail),
    path('api/payments', payments.payments),
    path('api/payments/<int:pk>', payments.payment_detail),
    path('api/payments/<int:pk>/process', payments.payment_process),
    path('api/payments/<int:pk>/refund', payments.payment_refund),
    path('api/billing/summary', payments.billing_summary),
    # Emergency alerts
    path('api/alerts', alerts.alerts),
    path('api/alerts/analytics', alerts.alert_analytics),
    path('api/alerts/<int:pk>', alerts.alert_detail),
    path('api/alerts/<int:pk>/activate', alerts.alert_activate),
    path('api/alerts/<int:pk>/deactivate', alerts.alert_deactivate),
    path('api/alerts/<int:pk>/cancel', alerts.alert_cancel),
    path('api/alerts/<int:pk>/escalate', alerts.alert_escalate),
    path('api/alerts/<int:pk>/recipients', alerts.alert_recipients),
    path('api/alerts/<int:pk>/recipients/<int:recipient_id>', alerts.alert_recipient_detail),
    path('api/alerts/<int:pk>/confirm', alerts.alert_confirm),
    path('api/alerts/<int:pk>/unconfirmed', alerts.alert_unconfirmed),
]
