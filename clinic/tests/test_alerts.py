"""
Emergency alert lifecycle, fan-out accounting and read confirmations.
"""
import datetime as dt

import pytest
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.exceptions import InvalidState
from clinic.models import Appointment, AuditEvent, EmergencyAlert, EmergencyAlertRecipient, Patient
from clinic.services import alerts
from clinic.services.phone import format_for_sms

pytestmark = pytest.mark.django_db

NUMBERS = ['+919800000001', '+919800000002', '+919800000003']


@pytest.fixture(autouse=True)
def _no_broadcast(monkeypatch):
    monkeypatch.setattr('clinic.services.alerts.realtime.broadcast', lambda *a, **k: False)


def draft(**kwargs):
    fields = {
        'title': 'Water supply interruption',
        'message': 'Ward B water supply is off until 14:00.',
        'level': EmergencyAlert.LEVEL_MEDIUM,
        'target_audience': EmergencyAlert.AUDIENCE_SPECIFIC_PATIENTS,
    }
    fields.update(kwargs)
    return alerts.create_alert(**fields)


def test_message_format():
    alert = EmergencyAlert(title='Fire drill', message='Leave by the east stairs.', level=EmergencyAlert.LEVEL_CRITICAL)
    assert alerts.format_alert_message(alert) == (
        '🚨 EMERGENCY ALERT - CRITICAL\n\nFire drill\n\nLeave by the east stairs.'
    )


def test_one_failing_recipient_does_not_stop_the_rest(sms):
    sms.raise_numbers.add(NUMBERS[1])
    alert = alerts.activate_alert(draft(phone_numbers=NUMBERS), authorized_by='Dr. Verma', sms=sms)

    assert [n for n, _ in sms.sent] == [NUMBERS[0], NUMBERS[2]]
    rows = {r.phone_number: r for r in alert.recipients.all()}
    assert rows[NUMBERS[0]].status == EmergencyAlertRecipient.STATUS_SENT
    assert rows[NUMBERS[0]].sent_at is not None
    assert rows[NUMBERS[1]].status == EmergencyAlertRecipient.STATUS_FAILED
    assert rows[NUMBERS[1]].error_message == 'carrier unavailable'
    assert rows[NUMBERS[2]].status == EmergencyAlertRecipient.STATUS_SENT

    assert (alert.total_recipients, alert.successful_count, alert.failed_count) == (3, 2, 1)
    assert alert.successful_count + alert.failed_count == alert.total_recipients
    assert alert.status == EmergencyAlert.STATUS_COMPLETED
    assert alert.authorized_by == 'Dr. Verma'


def test_rejected_send_is_recorded_as_failure(sms):
    sms.fail_numbers.add(NUMBERS[0])
    alert = alerts.activate_alert(draft(phone_numbers=NUMBERS[:1]), sms=sms)
    recipient = alert.recipients.get()
    assert recipient.status == EmergencyAlertRecipient.STATUS_FAILED
    assert recipient.error_message == 'SMS delivery failed'
    assert alert.failed_count == 1


def test_phone_numbers_are_normalised_and_deduplicated():
    alert = draft(phone_numbers=['9800000001', '+91-9800000001', '(415) 555-0100'])
    assert sorted(alert.recipients.values_list('phone_number', flat=True)) == ['+14155550100', '+919800000001']
    with pytest.raises(ValidationError):
        alerts.add_phone_numbers(alert, ['12'])


def test_manual_number_of_a_patient_is_texted_once(patient, other_patient, sms):
    alert = draft(target_audience=EmergencyAlert.AUDIENCE_ALL_PATIENTS, phone_numbers=[patient.phone_number])
    alert = alerts.activate_alert(alert, sms=sms)
    assert sorted(format_for_sms(n) for n, _ in sms.sent) == ['+919812345670', '+919812345671']
    assert alert.total_recipients == 2
    assert alert.recipients.filter(patient=patient).count() == 0


def test_patient_sharing_a_drafted_number_is_skipped(patient, sms):
    alert = draft(phone_numbers=['+91 9812345670'])
    assert alerts.add_patients(alert, [patient.id]) == 0
    assert alert.recipients.count() == 1


def test_audience_is_snapshotted_at_activation(patient, other_patient, sms):
    alert = draft(target_audience=EmergencyAlert.AUDIENCE_ALL_PATIENTS, requires_read_confirmation=True)
    alert = alerts.activate_alert(alert, sms=sms)
    assert alert.total_recipients == 2

    Patient.objects.create(
        first_name='Rajesh', last_name='Kumar', email='rajesh@example.com',
        phone_number='9812345672', date_of_birth=dt.date(1978, 11, 5),
    )
    alerts.distribute(alert, sms=sms)
    alert.refresh_from_db()
    assert alert.recipients.count() == 2
    assert len(sms.sent) == 2


def test_active_patients_audience(patient, other_patient, doctor, sms):
    Appointment.objects.create(patient=patient, doctor=doctor, appointment_datetime=timezone.now() - dt.timedelta(days=3))
    Appointment.objects.create(
        patient=other_patient, doctor=doctor, appointment_datetime=timezone.now() - dt.timedelta(days=45),
    )
    alert = alerts.activate_alert(draft(target_audience=EmergencyAlert.AUDIENCE_ACTIVE_PATIENTS), sms=sms)
    assert list(alert.recipients.values_list('patient_id', flat=True)) == [patient.id]


def test_doctor_audience(doctor, sms):
    alert = alerts.activate_alert(draft(target_audience=EmergencyAlert.AUDIENCE_DOCTORS), sms=sms)
    recipient = alert.recipients.get()
    assert recipient.doctor_id == doctor.id
    assert recipient.name == 'Dr. Anjali Verma'


def test_activation_without_recipients_is_rejected(sms):
    alert = draft()
    with pytest.raises(InvalidState):
        alerts.activate_alert(alert, sms=sms)
    alert.refresh_from_db()
    assert alert.status == EmergencyAlert.STATUS_DRAFT


def test_activation_is_once_only(sms):
    alert = alerts.activate_alert(draft(phone_numbers=NUMBERS, requires_read_confirmation=True), sms=sms)
    assert alert.status == EmergencyAlert.STATUS_ACTIVE
    with pytest.raises(InvalidState):
        alerts.activate_alert(alert, sms=sms)


def test_active_alert_cannot_be_edited_or_deleted(sms):
    alert = alerts.activate_alert(draft(phone_numbers=NUMBERS, requires_read_confirmation=True), sms=sms)
    with pytest.raises(InvalidState):
        alerts.update_alert(alert, title='Changed')
    with pytest.raises(InvalidState):
        alerts.delete_alert(alert)
    with pytest.raises(InvalidState):
        alerts.add_phone_numbers(alert, ['+919800000009'])

    alerts.deactivate_alert(alert, reason='resolved')
    assert alert.status == EmergencyAlert.STATUS_COMPLETED
    assert alert.deactivated_at is not None
    alerts.delete_alert(alert)
    assert not EmergencyAlert.objects.exists()


def test_cancel_only_from_draft(sms):
    alert = alerts.cancel_alert(draft(phone_numbers=NUMBERS))
    assert alert.status == EmergencyAlert.STATUS_CANCELLED
    with pytest.raises(InvalidState):
        alerts.cancel_alert(alert)
    with pytest.raises(InvalidState):
        alerts.activate_alert(alert, sms=sms)


def test_remove_recipient():
    alert = draft(phone_numbers=NUMBERS)
    first = alert.recipients.order_by('id').first()
    alerts.remove_recipient(alert, first.id)
    assert alert.recipients.count() == 2
    with pytest.raises(NotFound):
        alerts.remove_recipient(alert, first.id)


def test_read_confirmation_and_rate(sms):
    sms.fail_numbers.add(NUMBERS[2])
    alert = alerts.activate_alert(draft(phone_numbers=NUMBERS, requires_read_confirmation=True), sms=sms)

    recipient = alerts.confirm_read(alert, '9800000001')
    assert recipient.status == EmergencyAlertRecipient.STATUS_READ_CONFIRMED
    alert.refresh_from_db()
    assert alert.read_confirmation_count == 1
    assert alerts.confirmation_rate(alert) == 50.0
    assert [r.phone_number for r in alerts.unconfirmed_recipients(alert)] == [NUMBERS[1]]

    # confirming twice is harmless
    alerts.confirm_read(alert, NUMBERS[0])
    alert.refresh_from_db()
    assert alert.read_confirmation_count == 1

    with pytest.raises(NotFound):
        alerts.confirm_read(alert, NUMBERS[2])


def test_escalation_only_goes_up(admin_user):
    alert = draft(phone_numbers=NUMBERS)
    alerts.escalate_alert(alert, EmergencyAlert.LEVEL_HIGH, reason='spreading', user=admin_user)
    assert alert.level == EmergencyAlert.LEVEL_HIGH
    with pytest.raises(ValidationError):
        alerts.escalate_alert(alert, EmergencyAlert.LEVEL_MEDIUM)
    with pytest.raises(ValidationError):
        alerts.escalate_alert(alert, EmergencyAlert.LEVEL_HIGH)

    event = alerts.escalation_history(alert).get()
    assert event.detail == {'fromLevel': 'medium', 'toLevel': 'high', 'reason': 'spreading'}
    assert event.user == admin_user


def test_closed_alerts_cannot_be_escalated(sms):
    active = alerts.activate_alert(draft(phone_numbers=NUMBERS, requires_read_confirmation=True), sms=sms)
    alerts.escalate_alert(active, EmergencyAlert.LEVEL_HIGH)
    alerts.deactivate_alert(active)
    with pytest.raises(InvalidState):
        alerts.escalate_alert(active, EmergencyAlert.LEVEL_CRITICAL)

    cancelled = alerts.cancel_alert(draft(phone_numbers=NUMBERS))
    with pytest.raises(InvalidState):
        alerts.escalate_alert(cancelled, EmergencyAlert.LEVEL_CRITICAL)
    cancelled.refresh_from_db()
    assert cancelled.level == EmergencyAlert.LEVEL_MEDIUM


def test_lifecycle_is_audited(admin_user, sms):
    alert = draft(phone_numbers=NUMBERS, user=admin_user)
    alerts.activate_alert(alert, user=admin_user, sms=sms)
    actions = list(
        AuditEvent.objects.filter(object_type='emergency_alert', object_id=alert.id)
        .order_by('id').values_list('action', flat=True)
    )
    assert actions == ['alert_created', 'alert_activated']


def test_analytics(sms):
    sms.fail_numbers.add(NUMBERS[1])
    alerts.activate_alert(draft(phone_numbers=NUMBERS, level=EmergencyAlert.LEVEL_HIGH), sms=sms)
    draft(phone_numbers=NUMBERS[:1])
    today = timezone.localdate()
    report = alerts.analytics(today, today)
    assert report['totalAlerts'] == 2
    assert report['byLevel']['high'] == 1
    assert report['byStatus']['draft'] == 1
    assert report['byStatus']['completed'] == 1
    assert report['totalRecipients'] == 4
    assert report['delivered'] == 2
    assert report['failed'] == 1
    assert report['deliveryRate'] == 50.0
    assert report['confirmationRate'] == 0.0
