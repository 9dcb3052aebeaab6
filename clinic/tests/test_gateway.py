from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

import pytest
import stripe

from clinic.services.gateway import GatewayError, StripeGateway, from_cents, to_cents


def charge_obj(status='succeeded', fee=335, failure_message=None):
    return SimpleNamespace(
        id='ch_123', status=status, amount=10500, currency='usd', failure_message=failure_message,
        balance_transaction=SimpleNamespace(fee=fee),
    )


def test_cent_conversion():
    assert to_cents(Decimal('105.00')) == 10500
    assert to_cents(Decimal('0.005')) == 1
    assert from_cents(335) == Decimal('3.35')
    assert from_cents(None) == Decimal('0.00')


def test_charge_success():
    gateway = StripeGateway('sk_test_x', currency='USD')
    with mock.patch('stripe.Charge.create', return_value=charge_obj()) as create:
        result = gateway.charge(Decimal('105.00'), 'tok_visa', description='Invoice INV000001')
    kwargs = create.call_args.kwargs
    assert kwargs['amount'] == 10500
    assert kwargs['currency'] == 'usd'
    assert kwargs['source'] == 'tok_visa'
    assert result.succeeded
    assert result.status == 'captured'
    assert result.fee == Decimal('3.35')
    assert result.transaction_id == 'ch_123'


@pytest.mark.parametrize('stripe_status,status,succeeded', [
    ('pending', 'pending', False),
    ('failed', 'failed', False),
])
def test_charge_not_captured(stripe_status, status, succeeded):
    gateway = StripeGateway('sk_test_x')
    obj = charge_obj(status=stripe_status, failure_message='insufficient funds' if stripe_status == 'failed' else None)
    with mock.patch('stripe.Charge.create', return_value=obj):
        result = gateway.charge(Decimal('105.00'), 'tok_x')
    assert result.status == status
    assert result.succeeded is succeeded


def test_charge_error_is_wrapped():
    gateway = StripeGateway('sk_test_x')
    error = stripe.CardError('Your card was declined.', 'source', 'card_declined')
    with mock.patch('stripe.Charge.create', side_effect=error):
        with pytest.raises(GatewayError, match='declined'):
            gateway.charge(Decimal('10.00'), 'tok_chargeDeclined')


def test_unconfigured_gateway_refuses():
    with pytest.raises(GatewayError):
        StripeGateway('').charge(Decimal('10.00'), 'tok_visa')
    with pytest.raises(GatewayError):
        StripeGateway('').refund('ch_1', Decimal('10.00'))


def test_refund():
    gateway = StripeGateway('sk_test_x')
    refund = SimpleNamespace(id='re_1', status='succeeded', amount=5000, failure_reason=None)
    with mock.patch('stripe.Refund.create', return_value=refund) as create:
        result = gateway.refund('ch_123', Decimal('50.00'))
    assert create.call_args.kwargs['charge'] == 'ch_123'
    assert create.call_args.kwargs['amount'] == 5000
    assert result.succeeded
    assert result.transaction_id == 're_1'


def test_refund_error_is_wrapped():
    gateway = StripeGateway('sk_test_x')
    with mock.patch('stripe.Refund.create', side_effect=stripe.InvalidRequestError('already refunded', 'charge')):
        with pytest.raises(GatewayError):
            gateway.refund('ch_123', Decimal('50.00'))
