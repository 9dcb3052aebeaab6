"""
Billing engine behaviour: invoice arithmetic, the status machine,
payments through cash and gateway methods, and refunds.
"""
import datetime as dt
from decimal import Decimal

import pytest
from django.db.models import QuerySet
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from clinic.display import invoice_balance
from clinic.exceptions import DependentsExist, InvalidState, RefundLimitExceeded
from clinic.models import Insurance, Invoice, Payment, PaymentTransaction
from clinic.services.billing import BillingEngine, next_invoice_status

pytestmark = pytest.mark.django_db

D = Decimal
TODAY = timezone.localdate()


def make_invoice(engine, patient, *, qty=2, unit='50.00', tax='5.00', **kwargs):
    invoice = engine.create_invoice(patient.id, tax_amount=D(tax), **kwargs)
    engine.add_item(invoice, description='Consultation', quantity=qty, unit_price=D(unit))
    invoice.refresh_from_db()
    return invoice


def paid_invoice(engine, patient, cash):
    invoice = make_invoice(engine, patient)
    payment = engine.create_payment(invoice, cash, D('105.00'))
    assert engine.process_payment(payment)
    invoice.refresh_from_db()
    payment.refresh_from_db()
    return invoice, payment


def assert_arithmetic(invoice):
    assert invoice.total_amount == (
        invoice.subtotal + invoice.tax_amount - invoice.discount_amount - invoice.insurance_covered
    )


def test_invoice_with_item_and_tax_is_sent(engine, patient):
    invoice = make_invoice(engine, patient)
    assert invoice.subtotal == D('100.00')
    assert invoice.total_amount == D('105.00')
    assert invoice.status == Invoice.STATUS_SENT
    assert invoice.invoice_number == 'INV000001'
    assert invoice.due_date == invoice.invoice_date + dt.timedelta(days=30)
    assert_arithmetic(invoice)


def test_full_cash_payment_marks_invoice_paid(engine, patient, cash):
    invoice, payment = paid_invoice(engine, patient, cash)
    assert payment.status == Payment.STATUS_COMPLETED
    assert payment.payment_number == 'PAY000001'
    assert payment.type == Payment.TYPE_FULL
    assert invoice.status == Invoice.STATUS_PAID
    assert invoice.paid_date is not None
    assert invoice_balance(invoice) == D('0.00')


def test_new_invoice_is_draft_and_numbers_increase(engine, patient):
    first = engine.create_invoice(patient.id)
    second = engine.create_invoice(patient.id)
    assert first.status == Invoice.STATUS_DRAFT
    assert (first.invoice_number, second.invoice_number) == ('INV000001', 'INV000002')


def test_item_changes_keep_totals_consistent(engine, patient):
    invoice = make_invoice(engine, patient)
    item = engine.add_item(invoice, description='X-ray', quantity=1, unit_price=D('40.00'))
    engine.update_item(item, quantity=3)
    invoice.refresh_from_db()
    assert invoice.subtotal == D('220.00')
    assert invoice.total_amount == D('225.00')
    engine.delete_item(item)
    invoice.refresh_from_db()
    assert invoice.subtotal == D('100.00')
    assert_arithmetic(invoice)


def test_item_validation(engine, patient):
    invoice = engine.create_invoice(patient.id)
    with pytest.raises(ValidationError):
        engine.add_item(invoice, description='Bad', quantity=0, unit_price=D('10.00'))
    with pytest.raises(ValidationError):
        engine.add_item(invoice, description='Bad', quantity=1, unit_price=D('0'))


def test_partial_payment_then_balance(engine, patient, cash):
    invoice = make_invoice(engine, patient)
    payment = engine.create_payment(invoice, cash, D('40.00'))
    assert payment.type == Payment.TYPE_PARTIAL
    engine.process_payment(payment)
    invoice.refresh_from_db()
    assert invoice.status == Invoice.STATUS_PARTIALLY_PAID
    assert invoice_balance(invoice) == D('65.00')


def test_overpayment_stays_paid(engine, patient, cash):
    invoice, _ = paid_invoice(engine, patient, cash)
    extra = engine.create_payment(invoice, cash, D('200.00'))
    engine.process_payment(extra)
    invoice.refresh_from_db()
    assert invoice.status == Invoice.STATUS_PAID


def test_payment_not_reprocessed(engine, patient, cash):
    _, payment = paid_invoice(engine, patient, cash)
    with pytest.raises(InvalidState):
        engine.process_payment(payment)


@pytest.mark.parametrize('paid,due_offset,expected', [
    ('0.00', 5, Invoice.STATUS_SENT),
    ('0.00', -1, Invoice.STATUS_OVERDUE),
    ('10.00', -1, Invoice.STATUS_PARTIALLY_PAID),
    ('105.00', -1, Invoice.STATUS_PAID),
])
def test_next_invoice_status(paid, due_offset, expected):
    status = next_invoice_status(
        status=Invoice.STATUS_DRAFT, total=D('105.00'), amount_paid=D(paid),
        due_date=TODAY + dt.timedelta(days=due_offset), today=TODAY,
    )
    assert status == expected


def test_cancelled_is_terminal():
    status = next_invoice_status(
        status=Invoice.STATUS_CANCELLED, total=D('10'), amount_paid=D('10'), due_date=TODAY, today=TODAY,
    )
    assert status == Invoice.STATUS_CANCELLED


def test_refund_moves_paid_invoice_to_partially_paid(engine, patient, cash, admin_user):
    invoice, payment = paid_invoice(engine, patient, cash)
    assert engine.refund_payment(payment, D('5.00'), 'overcharged', user=admin_user)
    invoice.refresh_from_db()
    payment.refresh_from_db()
    assert invoice.status == Invoice.STATUS_PARTIALLY_PAID
    assert invoice.amount_paid == D('100.00')
    assert invoice.paid_date is None
    assert payment.status == Payment.STATUS_PARTIALLY_REFUNDED
    refund = payment.refunds.get()
    assert refund.amount == D('-5.00')
    assert refund.type == Payment.TYPE_REFUND


def test_refund_cannot_exceed_payment(engine, patient, cash):
    _, payment = paid_invoice(engine, patient, cash)
    with pytest.raises(RefundLimitExceeded):
        engine.refund_payment(payment, D('105.01'))
    assert not payment.refunds.exists()


def test_refunds_accumulate_up_to_the_payment(engine, patient, cash):
    invoice, payment = paid_invoice(engine, patient, cash)
    engine.refund_payment(payment, D('100.00'))
    with pytest.raises(RefundLimitExceeded):
        engine.refund_payment(payment, D('5.01'))
    engine.refund_payment(payment, D('5.00'))
    payment.refresh_from_db()
    invoice.refresh_from_db()
    assert payment.status == Payment.STATUS_REFUNDED
    assert invoice.amount_paid == D('0.00')
    assert invoice.status == Invoice.STATUS_SENT
    with pytest.raises(InvalidState):
        engine.refund_payment(payment, D('1.00'))


def test_refund_limit_is_checked_with_rows_locked(engine, patient, cash, monkeypatch):
    _, payment = paid_invoice(engine, patient, cash)
    events = []
    select_for_update = QuerySet.select_for_update
    refunded_amount = BillingEngine.refunded_amount

    def locking(qs, *args, **kwargs):
        events.append(('lock', qs.model.__name__))
        return select_for_update(qs, *args, **kwargs)

    def checking(p):
        events.append(('check', p.pk))
        return refunded_amount(p)

    monkeypatch.setattr(QuerySet, 'select_for_update', locking)
    monkeypatch.setattr(BillingEngine, 'refunded_amount', staticmethod(checking))
    engine.refund_payment(payment, D('5.00'))
    assert events[:3] == [('lock', 'Invoice'), ('lock', 'Payment'), ('check', payment.pk)]


def test_stale_copy_cannot_refund_again(engine, gateway, patient, card):
    invoice = make_invoice(engine, patient)
    payment = engine.create_payment(invoice, card, D('105.00'))
    engine.process_payment(payment, token='tok_visa')
    payment.refresh_from_db()
    stale = Payment.objects.get(pk=payment.pk)
    assert engine.refund_payment(payment, D('105.00'))
    with pytest.raises(InvalidState):
        engine.refund_payment(stale, D('105.00'))
    assert gateway.refunds == [('ch_1', D('105.00'))]
    assert payment.refunds.count() == 1


def test_refund_amount_must_be_positive(engine, patient, cash):
    _, payment = paid_invoice(engine, patient, cash)
    with pytest.raises(ValidationError):
        engine.refund_payment(payment, D('0'))


def test_gateway_payment_requires_token(engine, patient, card):
    invoice = make_invoice(engine, patient)
    payment = engine.create_payment(invoice, card, D('105.00'))
    with pytest.raises(ValidationError):
        engine.process_payment(payment)


def test_gateway_payment_success_records_fee(engine, gateway, patient, card):
    invoice = make_invoice(engine, patient)
    payment = engine.create_payment(invoice, card, D('105.00'))
    assert engine.process_payment(payment, token='tok_visa')
    payment.refresh_from_db()
    invoice.refresh_from_db()
    assert gateway.charges == [(D('105.00'), 'tok_visa')]
    assert payment.status == Payment.STATUS_COMPLETED
    assert payment.gateway_transaction_id == 'ch_1'
    assert payment.gateway_fee == D('3.35')
    assert payment.net_amount == D('101.65')
    assert invoice.status == Invoice.STATUS_PAID
    tx = PaymentTransaction.objects.get(payment=payment)
    assert (tx.type, tx.status, tx.currency) == ('charge', 'captured', 'USD')


def test_gateway_error_leaves_invoice_unchanged(engine, gateway, patient, card):
    gateway.fail = True
    invoice = make_invoice(engine, patient)
    payment = engine.create_payment(invoice, card, D('105.00'))
    assert engine.process_payment(payment, token='tok_visa') is False
    payment.refresh_from_db()
    invoice.refresh_from_db()
    assert payment.status == Payment.STATUS_FAILED
    assert 'declined' in payment.failure_reason
    assert invoice.amount_paid == D('0.00')
    assert invoice.status == Invoice.STATUS_SENT


def test_declined_charge_is_recorded_but_not_applied(engine, gateway, patient, card):
    gateway.status = 'failed'
    invoice = make_invoice(engine, patient)
    payment = engine.create_payment(invoice, card, D('105.00'))
    assert engine.process_payment(payment, token='tok_chargeDeclined') is False
    payment.refresh_from_db()
    invoice.refresh_from_db()
    assert payment.status == Payment.STATUS_FAILED
    assert payment.transactions.get().status == 'failed'
    assert invoice.amount_paid == D('0.00')


def test_gateway_refund(engine, gateway, patient, card):
    invoice = make_invoice(engine, patient)
    payment = engine.create_payment(invoice, card, D('105.00'))
    engine.process_payment(payment, token='tok_visa')
    payment.refresh_from_db()
    assert engine.refund_payment(payment, D('50.00'), 'partial')
    assert gateway.refunds == [('ch_1', D('50.00'))]
    tx = payment.transactions.get(type='partial_refund')
    assert tx.status == 'refunded'


def test_gateway_refund_failure_changes_nothing(engine, gateway, patient, card):
    invoice = make_invoice(engine, patient)
    payment = engine.create_payment(invoice, card, D('105.00'))
    engine.process_payment(payment, token='tok_visa')
    payment.refresh_from_db()
    gateway.fail = True
    assert engine.refund_payment(payment, D('50.00')) is False
    payment.refresh_from_db()
    invoice.refresh_from_db()
    assert payment.status == Payment.STATUS_COMPLETED
    assert not payment.refunds.exists()
    assert invoice.amount_paid == D('105.00')


def test_overdue_and_refresh(engine, patient):
    invoice = make_invoice(engine, patient)
    Invoice.objects.filter(pk=invoice.pk).update(due_date=TODAY - dt.timedelta(days=1))
    assert engine.refresh_overdue(TODAY) == 1
    invoice.refresh_from_db()
    assert invoice.status == Invoice.STATUS_OVERDUE
    assert list(engine.overdue_invoices(TODAY)) == [invoice]
    assert engine.refresh_overdue(TODAY) == 0


def test_cancel_invoice(engine, patient, cash):
    invoice = make_invoice(engine, patient)
    engine.cancel_invoice(invoice)
    assert invoice.status == Invoice.STATUS_CANCELLED
    with pytest.raises(InvalidState):
        engine.add_item(invoice, description='Late', quantity=1, unit_price=D('1.00'))

    paid, _ = paid_invoice(engine, patient, cash)
    with pytest.raises(InvalidState):
        engine.cancel_invoice(paid)


def test_delete_invoice_with_payments_is_blocked(engine, patient, cash):
    invoice, _ = paid_invoice(engine, patient, cash)
    with pytest.raises(DependentsExist):
        engine.delete_invoice(invoice)
    assert Invoice.objects.filter(pk=invoice.pk).exists()

    empty = make_invoice(engine, patient)
    engine.delete_invoice(empty)
    assert not Invoice.objects.filter(pk=empty.pk).exists()


def test_insurance_coverage(engine, patient):
    insurance = Insurance.objects.create(
        patient=patient, provider_name='Star Health', policy_number='POL-1',
        effective_date=TODAY - dt.timedelta(days=100), coverage_percentage=D('80.00'),
    )
    invoice = make_invoice(engine, patient, insurance_id=insurance.id)
    engine.apply_insurance_coverage(invoice)
    invoice.refresh_from_db()
    assert invoice.insurance_covered == D('80.00')
    assert invoice.total_amount == D('25.00')
    assert_arithmetic(invoice)

    Insurance.objects.filter(pk=insurance.pk).update(expiration_date=TODAY - dt.timedelta(days=1))
    invoice = Invoice.objects.get(pk=invoice.pk)
    engine.apply_insurance_coverage(invoice)
    invoice.refresh_from_db()
    assert invoice.insurance_covered == D('0.00')


def test_fully_covered_invoice_is_paid_not_overdue(engine, patient):
    insurance = Insurance.objects.create(
        patient=patient, provider_name='Star Health', policy_number='POL-2',
        effective_date=TODAY - dt.timedelta(days=100), coverage_percentage=D('100.00'),
    )
    invoice = make_invoice(
        engine, patient, qty=1, unit='80.00', tax='0.00',
        insurance_id=insurance.id, due_date=TODAY - dt.timedelta(days=3),
    )
    assert invoice.status == Invoice.STATUS_OVERDUE
    engine.apply_insurance_coverage(invoice)
    invoice.refresh_from_db()
    assert invoice.total_amount == D('0.00')
    assert invoice.amount_paid == D('0.00')
    assert invoice.status == Invoice.STATUS_PAID
    assert invoice.paid_date is not None
    assert not engine.overdue_invoices().filter(pk=invoice.pk).exists()
    assert engine.refresh_overdue() == 0


@pytest.mark.parametrize('status,expected', [
    (Invoice.STATUS_DRAFT, Invoice.STATUS_DRAFT),
    (Invoice.STATUS_SENT, Invoice.STATUS_PAID),
    (Invoice.STATUS_OVERDUE, Invoice.STATUS_PAID),
])
def test_nothing_owed(status, expected):
    assert next_invoice_status(
        status=status, total=D('0.00'), amount_paid=D('0.00'),
        due_date=TODAY - dt.timedelta(days=1), today=TODAY,
    ) == expected


def test_revenue_is_net_of_refunds(engine, patient, cash):
    _, payment = paid_invoice(engine, patient, cash)
    engine.refund_payment(payment, D('5.00'))
    assert engine.total_revenue(TODAY, TODAY) == D('100.00')
    assert engine.revenue_by_payment_method(TODAY, TODAY) == {'Cash': D('100.00')}


def test_outstanding_balance(engine, patient, cash):
    make_invoice(engine, patient)
    partial = make_invoice(engine, patient)
    payment = engine.create_payment(partial, cash, D('5.00'))
    engine.process_payment(payment)
    assert engine.outstanding_balance() == D('205.00')
