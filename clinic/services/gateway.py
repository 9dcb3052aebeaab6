"""
Card payments through Stripe.

The billing engine only depends on ``charge`` and ``refund``; both raise
:class:`GatewayError` for any Stripe failure so the engine can log it and
leave the invoice untouched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe
from django.conf import settings

logger = logging.getLogger(__name__)

CENTS = Decimal('100')


class GatewayError(Exception):
    pass


@dataclass
class GatewayResult:
    transaction_id: str
    status: str  # 'captured', 'pending', 'refunded' or 'failed'
    fee: Decimal = Decimal('0.00')
    failure_reason: str = ''
    response: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status in ('captured', 'authorized', 'refunded')


def to_cents(amount: Decimal) -> int:
    return int((amount * CENTS).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def from_cents(cents: Optional[int]) -> Decimal:
    return (Decimal(cents or 0) / CENTS).quantize(Decimal('0.01'))


class StripeGateway:
    name = 'stripe'

    def __init__(self, api_key: str, currency: str = 'usd'):
        self.api_key = api_key
        self.currency = currency.lower()

    def charge(self, amount: Decimal, token: str, *, description: str = '', metadata: Optional[dict] = None) -> GatewayResult:
        if not self.api_key:
            raise GatewayError('Stripe is not configured')
        try:
            charge = stripe.Charge.create(
                amount=to_cents(amount),
                currency=self.currency,
                source=token,
                description=description,
                metadata=metadata or {},
                expand=['balance_transaction'],
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error('Stripe charge of %s failed: %s', amount, e)
            raise GatewayError(str(e)) from e
        balance = getattr(charge, 'balance_transaction', None)
        fee = from_cents(getattr(balance, 'fee', 0)) if balance and not isinstance(balance, str) else Decimal('0.00')
        if charge.status == 'succeeded':
            status = 'captured'
        elif charge.status == 'pending':
            status = 'pending'
        else:
            status = 'failed'
        return GatewayResult(
            transaction_id=charge.id,
            status=status,
            fee=fee,
            failure_reason=getattr(charge, 'failure_message', None) or '',
            response={'id': charge.id, 'status': charge.status, 'amount': charge.amount, 'currency': charge.currency},
        )

    def refund(self, charge_id: str, amount: Decimal) -> GatewayResult:
        if not self.api_key:
            raise GatewayError('Stripe is not configured')
        try:
            refund = stripe.Refund.create(charge=charge_id, amount=to_cents(amount), api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error('Stripe refund of %s on %s failed: %s', amount, charge_id, e)
            raise GatewayError(str(e)) from e
        status = 'refunded' if refund.status in ('succeeded', 'pending') else 'failed'
        return GatewayResult(
            transaction_id=refund.id,
            status=status,
            failure_reason=getattr(refund, 'failure_reason', None) or '',
            response={'id': refund.id, 'status': refund.status, 'amount': refund.amount, 'charge': charge_id},
        )


def stripe_gateway() -> StripeGateway:
    return StripeGateway(api_key=settings.STRIPE_SECRET_KEY, currency=settings.PAYMENT_CURRENCY)
