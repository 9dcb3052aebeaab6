"""
Billing engine: invoice arithmetic, the invoice status machine, payment
application, refunds and revenue queries.

Invoice amounts always satisfy::

    total_amount = subtotal + tax_amount - discount_amount - insurance_covered
    balance      = total_amount - amount_paid

and ``status`` is re-derived by :func:`next_invoice_status` after every
item or payment mutation.  Card payments go through the injected gateway;
a gateway failure is logged and reported as ``False`` with the invoice
left as it was.
"""
from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import DecimalField, ExpressionWrapper, F, ProtectedError, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.display import insurance_is_expired
from clinic.exceptions import DependentsExist, InvalidState, RefundLimitExceeded
from clinic.models import (
    Appointment, Insurance, Invoice, InvoiceItem, Patient, Payment, PaymentMethod, PaymentTransaction,
)
from clinic.services.audit import log_action
from clinic.services.gateway import GatewayError, stripe_gateway

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
CENT = Decimal('0.01')
DEFAULT_DUE_DAYS = 30
INVOICE_PREFIX = 'INV'
PAYMENT_PREFIX = 'PAY'
CLOSED_INVOICE_STATUSES = (Invoice.STATUS_PAID, Invoice.STATUS_CANCELLED)
REVENUE_PAYMENT_STATUSES = (
    Payment.STATUS_COMPLETED, Payment.STATUS_REFUNDED, Payment.STATUS_PARTIALLY_REFUNDED,
)


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT)


def next_number(model, field: str, prefix: str) -> str:
    """``prefix`` + 6-digit counter continuing from the most recent row."""
    last = model.objects.order_by('-id').values_list(field, flat=True).first()
    seq = 1
    if last and last.startswith(prefix) and last[len(prefix):].isdigit():
        seq = int(last[len(prefix):]) + 1
    return f"{prefix}{seq:06d}"


def invoice_total(subtotal: Decimal, tax: Decimal, discount: Decimal, insurance_covered: Decimal) -> Decimal:
    return _money(subtotal + tax - discount - insurance_covered)


def next_invoice_status(*, status: str, total: Decimal, amount_paid: Decimal, due_date: dt.date, today: dt.date) -> str:
    """Status an invoice should have given its amounts.

    Cancelled is terminal, and a Draft with nothing billed stays a Draft.
    Otherwise an invoice whose payments cover the total is Paid (including
    one with nothing owed); with something paid it is PartiallyPaid, and
    with nothing paid it is Overdue past its due date and Sent before it.
    """
    if status == Invoice.STATUS_CANCELLED:
        return status
    if status == Invoice.STATUS_DRAFT and total <= ZERO and amount_paid <= ZERO:
        return status
    if amount_paid >= total:
        return Invoice.STATUS_PAID
    if amount_paid > ZERO:
        return Invoice.STATUS_PARTIALLY_PAID
    if due_date < today:
        return Invoice.STATUS_OVERDUE
    return Invoice.STATUS_SENT


def apply_invoice_status(invoice: Invoice, today: Optional[dt.date] = None) -> str:
    today = today or timezone.localdate()
    new_status = next_invoice_status(
        status=invoice.status,
        total=invoice.total_amount,
        amount_paid=invoice.amount_paid,
        due_date=invoice.due_date,
        today=today,
    )
    if new_status == Invoice.STATUS_PAID and invoice.paid_date is None:
        invoice.paid_date = timezone.now()
    elif new_status != Invoice.STATUS_PAID:
        invoice.paid_date = None
    if new_status != invoice.status:
        logger.info('Invoice %s: %s -> %s', invoice.invoice_number, invoice.status, new_status)
    invoice.status = new_status
    return new_status


def payment_fee(method: PaymentMethod, amount: Decimal) -> Decimal:
    return _money(amount * method.processing_fee + method.fixed_fee)


class BillingEngine:
    def __init__(self, gateway=None, *, currency: str = 'usd'):
        self.gateway = gateway
        self.currency = currency.upper()

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------
    def create_invoice(
        self, patient_id: int, appointment_id: Optional[int] = None, insurance_id: Optional[int] = None, *,
        tax_amount: Decimal = ZERO, discount_amount: Decimal = ZERO, due_date: Optional[dt.date] = None,
        invoice_date: Optional[dt.date] = None, notes: str = '',
    ) -> Invoice:
        patient = Patient.objects.filter(pk=patient_id).first()
        if patient is None:
            raise NotFound('Patient not found')
        appointment = None
        if appointment_id:
            appointment = Appointment.objects.filter(pk=appointment_id).first()
            if appointment is None:
                raise NotFound('Appointment not found')
            if appointment.patient_id != patient.id:
                raise ValidationError({'appointmentId': 'Appointment belongs to another patient'})
        insurance = None
        if insurance_id:
            insurance = Insurance.objects.filter(pk=insurance_id).first()
            if insurance is None:
                raise NotFound('Insurance not found')
            if insurance.patient_id != patient.id:
                raise ValidationError({'insuranceId': 'Insurance belongs to another patient'})

        invoice_date = invoice_date or timezone.localdate()
        tax_amount, discount_amount = _money(tax_amount), _money(discount_amount)
        invoice = Invoice.objects.create(
            invoice_number=next_number(Invoice, 'invoice_number', INVOICE_PREFIX),
            patient=patient,
            appointment=appointment,
            insurance=insurance,
            invoice_date=invoice_date,
            due_date=due_date or invoice_date + dt.timedelta(days=DEFAULT_DUE_DAYS),
            tax_amount=tax_amount,
            discount_amount=discount_amount,
            total_amount=invoice_total(ZERO, tax_amount, discount_amount, ZERO),
            status=Invoice.STATUS_DRAFT,
            notes=notes,
        )
        logger.info('Created invoice %s for patient %s', invoice.invoice_number, patient.id)
        return invoice

    def recalculate(self, invoice: Invoice, today: Optional[dt.date] = None) -> Invoice:
        """Recompute subtotal/total from the items, re-derive status and save."""
        subtotal = invoice.items.aggregate(s=Sum('total_price'))['s'] or ZERO
        invoice.subtotal = _money(subtotal)
        invoice.total_amount = invoice_total(
            invoice.subtotal, invoice.tax_amount, invoice.discount_amount, invoice.insurance_covered
        )
        apply_invoice_status(invoice, today)
        invoice.save()
        return invoice

    def update_invoice(self, invoice: Invoice, *, today: Optional[dt.date] = None, **changes) -> Invoice:
        allowed = {'tax_amount', 'discount_amount', 'insurance_covered', 'due_date', 'notes'}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError({k: 'Field cannot be changed' for k in sorted(unknown)})
        self._ensure_open(invoice)
        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
            for name, value in changes.items():
                if name in ('tax_amount', 'discount_amount', 'insurance_covered'):
                    value = _money(value)
                setattr(invoice, name, value)
            return self.recalculate(invoice, today)

    def cancel_invoice(self, invoice: Invoice) -> Invoice:
        if invoice.status == Invoice.STATUS_CANCELLED:
            return invoice
        if invoice.amount_paid > ZERO:
            raise InvalidState('Invoice has payments applied; refund them before cancelling')
        invoice.status = Invoice.STATUS_CANCELLED
        invoice.paid_date = None
        invoice.save(update_fields=['status', 'paid_date', 'updated_at'])
        logger.info('Cancelled invoice %s', invoice.invoice_number)
        return invoice

    def delete_invoice(self, invoice: Invoice) -> None:
        try:
            invoice.delete()
        except ProtectedError:
            logger.info('Refused to delete invoice %s: payments exist', invoice.invoice_number)
            raise DependentsExist()

    def apply_insurance_coverage(self, invoice: Invoice, today: Optional[dt.date] = None) -> Invoice:
        """Cover ``coverage_percentage`` of the subtotal when the linked policy is usable."""
        self._ensure_open(invoice)
        insurance = invoice.insurance
        covered = ZERO
        if insurance and insurance.is_active and not insurance_is_expired(insurance, today):
            covered = _money(invoice.subtotal * insurance.coverage_percentage / Decimal('100'))
        return self.update_invoice(invoice, insurance_covered=covered, today=today)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------
    def add_item(
        self, invoice: Invoice, *, description: str, quantity: int, unit_price: Decimal,
        item_code: str = '', category: str = '', today: Optional[dt.date] = None,
    ) -> InvoiceItem:
        self._ensure_open(invoice)
        self._validate_item(quantity, unit_price)
        with transaction.atomic():
            locked = Invoice.objects.select_for_update().get(pk=invoice.pk)
            item = InvoiceItem.objects.create(
                invoice=locked,
                description=description,
                quantity=quantity,
                unit_price=_money(unit_price),
                total_price=_money(quantity * Decimal(unit_price)),
                item_code=item_code,
                category=category,
            )
            self.recalculate(locked, today)
        return item

    def update_item(self, item: InvoiceItem, *, today: Optional[dt.date] = None, **changes) -> InvoiceItem:
        self._ensure_open(item.invoice)
        allowed = {'description', 'quantity', 'unit_price', 'item_code', 'category'}
        for name, value in changes.items():
            if name not in allowed:
                raise ValidationError({name: 'Field cannot be changed'})
            setattr(item, name, value)
        self._validate_item(item.quantity, item.unit_price)
        with transaction.atomic():
            locked = Invoice.objects.select_for_update().get(pk=item.invoice_id)
            item.unit_price = _money(item.unit_price)
            item.total_price = _money(item.quantity * item.unit_price)
            item.save()
            self.recalculate(locked, today)
        return item

    def delete_item(self, item: InvoiceItem, today: Optional[dt.date] = None) -> Invoice:
        self._ensure_open(item.invoice)
        with transaction.atomic():
            locked = Invoice.objects.select_for_update().get(pk=item.invoice_id)
            item.delete()
            return self.recalculate(locked, today)

    @staticmethod
    def _validate_item(quantity, unit_price) -> None:
        errors = {}
        if quantity is None or int(quantity) < 1:
            errors['quantity'] = 'Quantity must be at least 1'
        if unit_price is None or Decimal(unit_price) <= ZERO:
            errors['unitPrice'] = 'Unit price must be greater than 0'
        if errors:
            raise ValidationError(errors)

    @staticmethod
    def _ensure_open(invoice: Invoice) -> None:
        if invoice.status == Invoice.STATUS_CANCELLED:
            raise InvalidState('Invoice is cancelled')

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    def create_payment(
        self, invoice: Invoice, method: PaymentMethod, amount: Decimal, payment_type: Optional[str] = None, *,
        notes: str = '', transaction_id: str = '',
    ) -> Payment:
        self._ensure_open(invoice)
        amount = _money(amount)
        if amount <= ZERO:
            raise ValidationError({'amount': 'Payment amount must be greater than 0'})
        if not method.is_active:
            raise InvalidState('Payment method is not active')
        if payment_type is None:
            balance = invoice.total_amount - invoice.amount_paid
            payment_type = Payment.TYPE_FULL if amount >= balance else Payment.TYPE_PARTIAL
        if payment_type == Payment.TYPE_REFUND:
            raise ValidationError({'type': 'Refunds are created through the refund operation'})
        payment = Payment.objects.create(
            payment_number=next_number(Payment, 'payment_number', PAYMENT_PREFIX),
            invoice=invoice,
            payment_method=method,
            amount=amount,
            status=Payment.STATUS_PENDING,
            type=payment_type,
            payment_date=timezone.now(),
            gateway=method.gateway_provider if method.requires_gateway else '',
            net_amount=amount,
            transaction_id=transaction_id,
            notes=notes,
        )
        logger.info('Created payment %s of %s for invoice %s', payment.payment_number, amount, invoice.invoice_number)
        return payment

    def process_payment(self, payment: Payment, *, token: Optional[str] = None, today: Optional[dt.date] = None) -> bool:
        """Settle a pending payment; returns ``False`` when the gateway declines or fails."""
        if payment.status != Payment.STATUS_PENDING:
            raise InvalidState('Only pending payments can be processed')
        method = payment.payment_method
        if not method.requires_gateway:
            with transaction.atomic():
                self._complete(payment, fee=payment_fee(method, payment.amount), today=today)
            return True

        if not token:
            raise ValidationError({'token': 'A payment token is required for this payment method'})
        invoice = payment.invoice
        try:
            result = self.gateway.charge(
                payment.amount,
                token,
                description=f"Invoice {invoice.invoice_number}",
                metadata={'payment_id': str(payment.id), 'invoice_id': str(invoice.id)},
            )
        except GatewayError as e:
            logger.error('Payment %s failed at the gateway: %s', payment.payment_number, e)
            payment.status = Payment.STATUS_FAILED
            payment.failure_reason = str(e)[:500]
            payment.save(update_fields=['status', 'failure_reason', 'updated_at'])
            return False

        with transaction.atomic():
            PaymentTransaction.objects.create(
                payment=payment,
                gateway_transaction_id=result.transaction_id,
                type='charge',
                status=result.status,
                amount=payment.amount,
                currency=self.currency,
                gateway_fee=result.fee,
                net_amount=payment.amount - result.fee,
                gateway=getattr(self.gateway, 'name', ''),
                gateway_response=result.response,
                failure_reason=result.failure_reason[:500],
                processed_at=timezone.now(),
            )
            if result.succeeded:
                self._complete(payment, fee=result.fee, gateway_transaction_id=result.transaction_id, today=today)
                return True
            payment.status = Payment.STATUS_PROCESSING if result.status == 'pending' else Payment.STATUS_FAILED
            payment.gateway_transaction_id = result.transaction_id
            payment.failure_reason = result.failure_reason[:500]
            payment.save(update_fields=['status', 'gateway_transaction_id', 'failure_reason', 'updated_at'])
        logger.warning('Payment %s not captured (gateway status %s)', payment.payment_number, result.status)
        return False

    def _complete(self, payment: Payment, *, fee: Decimal, gateway_transaction_id: str = '', today=None) -> None:
        invoice = Invoice.objects.select_for_update().get(pk=payment.invoice_id)
        payment.status = Payment.STATUS_COMPLETED
        payment.processed_at = timezone.now()
        payment.gateway_fee = fee
        payment.net_amount = payment.amount - fee
        if gateway_transaction_id:
            payment.gateway_transaction_id = gateway_transaction_id
        payment.save()
        invoice.amount_paid = _money(invoice.amount_paid + payment.amount)
        apply_invoice_status(invoice, today)
        invoice.save()
        if invoice.status == Invoice.STATUS_PAID and invoice.appointment_id:
            Appointment.objects.filter(pk=invoice.appointment_id).update(is_paid=True)
        logger.info('Payment %s completed; invoice %s now %s', payment.payment_number, invoice.invoice_number, invoice.status)

    @staticmethod
    def refunded_amount(payment: Payment) -> Decimal:
        total = payment.refunds.filter(status=Payment.STATUS_COMPLETED).aggregate(s=Sum('amount'))['s'] or ZERO
        return -total

    def refund_payment(
        self, payment: Payment, amount: Decimal, reason: str = '', *, user=None, today: Optional[dt.date] = None,
    ) -> bool:
        """Refund part or all of a completed payment.

        The amount must be positive and no larger than what is left
        unrefunded on the payment.  The invoice and payment rows stay locked
        from that check until the refund row is written, so concurrent
        refunds of one payment are applied one after another.  Gateway
        payments are refunded at the gateway first; if that fails nothing is
        changed and ``False`` is returned.
        """
        amount = _money(amount)
        if amount <= ZERO:
            raise ValidationError({'amount': 'Refund amount must be greater than 0'})

        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=payment.invoice_id)
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.type == Payment.TYPE_REFUND or payment.status not in (
                Payment.STATUS_COMPLETED, Payment.STATUS_PARTIALLY_REFUNDED,
            ):
                raise InvalidState('Only completed payments can be refunded')
            already = self.refunded_amount(payment)
            if amount > payment.amount - already:
                raise RefundLimitExceeded()
            fully_refunded = already + amount >= payment.amount

            result = None
            if payment.gateway_transaction_id:
                try:
                    result = self.gateway.refund(payment.gateway_transaction_id, amount)
                except GatewayError as e:
                    logger.error('Refund of payment %s failed at the gateway: %s', payment.payment_number, e)
                    return False
                if not result.succeeded:
                    logger.warning('Refund of payment %s declined: %s', payment.payment_number, result.failure_reason)
                    return False

            refund = Payment.objects.create(
                payment_number=next_number(Payment, 'payment_number', PAYMENT_PREFIX),
                invoice=invoice,
                payment_method=payment.payment_method,
                refund_of=payment,
                amount=-amount,
                status=Payment.STATUS_COMPLETED,
                type=Payment.TYPE_REFUND,
                payment_date=timezone.now(),
                processed_at=timezone.now(),
                gateway=payment.gateway,
                gateway_transaction_id=result.transaction_id if result else '',
                net_amount=-amount,
                notes=reason,
            )
            if result is not None:
                PaymentTransaction.objects.create(
                    payment=payment,
                    gateway_transaction_id=result.transaction_id,
                    type='refund' if fully_refunded else 'partial_refund',
                    status=result.status,
                    amount=amount,
                    currency=self.currency,
                    net_amount=amount,
                    gateway=getattr(self.gateway, 'name', ''),
                    gateway_response=result.response,
                    processed_at=timezone.now(),
                )
            payment.status = Payment.STATUS_REFUNDED if fully_refunded else Payment.STATUS_PARTIALLY_REFUNDED
            payment.save(update_fields=['status', 'updated_at'])
            invoice.amount_paid = _money(invoice.amount_paid - amount)
            apply_invoice_status(invoice, today)
            invoice.save()
            if invoice.status != Invoice.STATUS_PAID and invoice.appointment_id:
                Appointment.objects.filter(pk=invoice.appointment_id).update(is_paid=False)
        log_action(
            user=user, action='payment_refund', object_type='payment', object_id=payment.id,
            detail={'refundId': refund.id, 'amount': str(amount), 'reason': reason},
        )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @staticmethod
    def active_payment_methods():
        return PaymentMethod.objects.filter(is_active=True).order_by('display_order', 'name')

    @staticmethod
    def total_revenue(start: dt.date, end: dt.date) -> Decimal:
        """Money received between ``start`` and ``end`` (inclusive), net of refunds."""
        qs = Payment.objects.filter(
            status__in=REVENUE_PAYMENT_STATUSES,
            payment_date__date__gte=start,
            payment_date__date__lte=end,
        )
        return _money(qs.aggregate(s=Sum('amount'))['s'] or ZERO)

    @staticmethod
    def revenue_by_payment_method(start: dt.date, end: dt.date) -> dict[str, Decimal]:
        rows = (
            Payment.objects.filter(
                status__in=REVENUE_PAYMENT_STATUSES,
                payment_date__date__gte=start,
                payment_date__date__lte=end,
            )
            .values('payment_method__name')
            .annotate(total=Sum('amount'))
            .order_by('payment_method__name')
        )
        return {r['payment_method__name']: _money(r['total'] or ZERO) for r in rows}

    @staticmethod
    def outstanding_balance() -> Decimal:
        balance = ExpressionWrapper(
            F('total_amount') - F('amount_paid'), output_field=DecimalField(max_digits=12, decimal_places=2)
        )
        total = (
            Invoice.objects.exclude(status__in=CLOSED_INVOICE_STATUSES)
            .aggregate(s=Sum(balance))['s']
        )
        return _money(total or ZERO)

    @staticmethod
    def overdue_invoices(today: Optional[dt.date] = None):
        today = today or timezone.localdate()
        return (
            Invoice.objects.filter(due_date__lt=today)
            .exclude(status__in=CLOSED_INVOICE_STATUSES)
            .select_related('patient')
            .order_by('due_date')
        )

    def refresh_overdue(self, today: Optional[dt.date] = None) -> int:
        """Move unpaid invoices past their due date to Overdue; returns how many changed."""
        today = today or timezone.localdate()
        changed = 0
        candidates = (
            Invoice.objects.filter(due_date__lt=today, amount_paid=ZERO)
            .exclude(status__in=CLOSED_INVOICE_STATUSES + (Invoice.STATUS_OVERDUE, Invoice.STATUS_DRAFT))
        )
        for invoice in candidates:
            if apply_invoice_status(invoice, today) == Invoice.STATUS_OVERDUE:
                invoice.save(update_fields=['status', 'paid_date', 'updated_at'])
                changed += 1
        return changed


def billing_engine() -> BillingEngine:
    return BillingEngine(gateway=stripe_gateway(), currency=settings.PAYMENT_CURRENCY)
