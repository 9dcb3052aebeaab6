import datetime as dt

import pytest
from django.db.models import ProtectedError
from django.utils import timezone

from clinic.exceptions import DependentsExist, InvalidState, SchedulingConflict, StaleObjectError
from clinic.models import Appointment, Doctor, Invoice
from clinic.services import scheduling

pytestmark = pytest.mark.django_db


def at(hour, minute=0, day=dt.date(2024, 1, 1)):
    return timezone.make_aware(dt.datetime.combine(day, dt.time(hour, minute)))


@pytest.fixture(autouse=True)
def _no_side_effects(monkeypatch):
    monkeypatch.setattr('clinic.services.scheduling.realtime.broadcast', lambda *a, **k: False)


def book(patient, doctor, start, duration=30, **kwargs):
    return scheduling.book_appointment(
        patient_id=patient.id, doctor_id=doctor.id, appointment_datetime=start, duration_minutes=duration, **kwargs
    )


@pytest.mark.parametrize('a,b,expected', [
    ((10, 0, 10, 30), (10, 15, 10, 45), True),
    ((10, 0, 10, 30), (10, 30, 11, 0), False),
    ((10, 0, 11, 0), (10, 15, 10, 30), True),
    ((10, 30, 11, 0), (10, 0, 10, 30), False),
])
def test_overlaps(a, b, expected):
    assert scheduling.overlaps(at(a[0], a[1]), at(a[2], a[3]), at(b[0], b[1]), at(b[2], b[3])) is expected


def test_booking_uses_doctor_fee(patient, doctor):
    appointment = book(patient, doctor, at(10))
    assert appointment.status == Appointment.STATUS_SCHEDULED
    assert appointment.fee == doctor.consultation_fee
    assert appointment.version == 1


def test_double_booking_is_rejected(patient, other_patient, doctor):
    book(patient, doctor, at(10))
    with pytest.raises(SchedulingConflict):
        book(other_patient, doctor, at(10, 15))
    assert Appointment.objects.count() == 1


def test_back_to_back_is_allowed(patient, other_patient, doctor):
    book(patient, doctor, at(10))
    second = book(other_patient, doctor, at(10, 30))
    assert second.appointment_datetime == at(10, 30)


def test_slot_starting_earlier_that_runs_into_booking(patient, other_patient, doctor):
    book(patient, doctor, at(10))
    with pytest.raises(SchedulingConflict):
        book(other_patient, doctor, at(9, 45), duration=30)
    book(other_patient, doctor, at(9, 30), duration=30)


def test_other_doctor_is_independent(patient, doctor):
    colleague = Doctor.objects.create(
        first_name='Vikram', last_name='Singh', email='vikram@hospital.local', phone_number='9876543211',
        specialization='Pediatrics', license_number='MD12346',
    )
    book(patient, doctor, at(10))
    book(patient, colleague, at(10))
    assert Appointment.objects.count() == 2


def test_cancelled_appointment_does_not_block(patient, other_patient, doctor):
    first = book(patient, doctor, at(10))
    scheduling.cancel_appointment(first)
    assert scheduling.find_conflicts(doctor.id, at(10), 30) == []
    second = book(other_patient, doctor, at(10))
    assert scheduling.find_conflicts(doctor.id, at(10), 30) == [second]


def test_unavailable_doctor(patient, doctor):
    doctor.is_available = False
    doctor.save()
    with pytest.raises(InvalidState):
        book(patient, doctor, at(10))


def test_edit_excludes_its_own_row(patient, doctor):
    appointment = book(patient, doctor, at(10))
    updated = scheduling.update_appointment(appointment, appointment_datetime=at(10, 15))
    assert updated.appointment_datetime == at(10, 15)
    assert updated.version == 2


def test_edit_into_another_booking_conflicts(patient, other_patient, doctor):
    book(patient, doctor, at(10))
    second = book(other_patient, doctor, at(11))
    with pytest.raises(SchedulingConflict):
        scheduling.update_appointment(second, appointment_datetime=at(10, 20))
    second.refresh_from_db()
    assert second.appointment_datetime == at(11)


def test_stale_version_is_rejected(patient, doctor):
    appointment = book(patient, doctor, at(10))
    scheduling.update_appointment(appointment, expected_version=1, notes='first edit')
    with pytest.raises(StaleObjectError):
        scheduling.update_appointment(appointment, expected_version=1, notes='second edit')
    appointment.refresh_from_db()
    assert appointment.notes == 'first edit'


def test_reopening_a_cancelled_slot_checks_conflicts(patient, other_patient, doctor):
    first = book(patient, doctor, at(10))
    first = scheduling.cancel_appointment(first)
    book(other_patient, doctor, at(10))
    with pytest.raises(SchedulingConflict):
        scheduling.set_status(first, Appointment.STATUS_SCHEDULED)


def test_confirm_and_cancel_transitions(patient, doctor):
    appointment = scheduling.confirm_appointment(book(patient, doctor, at(10)))
    assert appointment.status == Appointment.STATUS_CONFIRMED
    appointment = scheduling.set_status(appointment, Appointment.STATUS_COMPLETED)
    with pytest.raises(InvalidState):
        scheduling.cancel_appointment(appointment)
    with pytest.raises(InvalidState):
        scheduling.confirm_appointment(appointment)


def test_patient_with_appointments_cannot_be_deleted(patient, doctor):
    appointment = book(patient, doctor, at(10))
    with pytest.raises(ProtectedError):
        patient.delete()
    scheduling.delete_appointment(appointment)
    assert not Appointment.objects.exists()


def test_schedule_and_statistics(patient, other_patient, doctor):
    book(patient, doctor, at(11))
    book(other_patient, doctor, at(9))
    cancelled = scheduling.cancel_appointment(book(patient, doctor, at(14)))
    schedule = list(scheduling.doctor_schedule(doctor.id, dt.date(2024, 1, 1)))
    assert [a.appointment_datetime for a in schedule] == [at(9), at(11)]
    assert cancelled not in schedule

    stats = scheduling.statistics(today=dt.date(2024, 1, 1))
    assert stats['total'] == 3
    assert stats['today'] == 3
    assert stats['byStatus'][Appointment.STATUS_CANCELLED] == 1


def test_booking_queues_confirmation_after_commit(patient, doctor, monkeypatch, django_capture_on_commit_callbacks):
    booked = []
    monkeypatch.setattr('clinic.services.scheduling.reminders.appointment_booked', booked.append)
    with django_capture_on_commit_callbacks(execute=True):
        appointment = book(patient, doctor, at(10))
    assert booked == [appointment.id]


def test_invoice_keeps_link_when_appointment_deleted(patient, doctor, engine):
    appointment = book(patient, doctor, at(10))
    invoice = engine.create_invoice(patient.id, appointment.id)
    scheduling.delete_appointment(appointment)
    invoice.refresh_from_db()
    assert invoice.appointment_id is None
    assert Invoice.objects.count() == 1


def test_delete_blocked_by_dependents(patient, doctor, monkeypatch):
    appointment = book(patient, doctor, at(10))

    def refuse():
        raise ProtectedError('protected', set())

    monkeypatch.setattr(appointment, 'delete', refuse)
    with pytest.raises(DependentsExist):
        scheduling.delete_appointment(appointment)
