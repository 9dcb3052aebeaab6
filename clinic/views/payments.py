"""
Payment methods, payments, refunds and the billing summary.
"""
from __future__ import annotations

import datetime as dt

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.display import money
from clinic.models import Invoice, Payment, PaymentMethod
from clinic.serializers.billing import (
    PaymentCreateSerializer,
    PaymentMethodSerializer,
    PaymentProcessSerializer,
    PaymentQuerySerializer,
    RefundSerializer,
)
from clinic.serializers.common import DateRangeQuerySerializer
from clinic.services.billing import billing_engine
from clinic.services.formatting import format_payment, format_payment_method

from ..permissions import IsAdminRole, IsBillingRole


def _load(pk: int) -> Payment:
    return get_object_or_404(Payment.objects.select_related('payment_method', 'invoice'), pk=pk)


def _result(payment: Payment, ok: bool, code: int = status.HTTP_200_OK) -> Response:
    payment = _load(payment.pk)
    body = {'ok': ok, 'data': format_payment(payment, with_transactions=True)}
    if not ok:
        body['error'] = {'code': 'payment_failed', 'message': payment.failure_reason or 'Payment was not completed'}
    return Response(body, status=code if ok else status.HTTP_402_PAYMENT_REQUIRED)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def payment_methods(request):
    if request.method == 'GET':
        if request.query_params.get('all') == 'true':
            qs = PaymentMethod.objects.all()
        else:
            qs = billing_engine().active_payment_methods()
        return Response({'ok': True, 'data': [format_payment_method(m) for m in qs]})

    if not IsAdminRole().has_permission(request, None):
        return Response({'ok': False, 'error': {'code': 'permission_denied', 'message': 'Administrators only'}}, status=403)
    s = PaymentMethodSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    method = PaymentMethod.objects.create(**s.validated_data)
    return Response({'ok': True, 'data': format_payment_method(method)}, status=status.HTTP_201_CREATED)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def payment_method_detail(request, pk: int):
    method = get_object_or_404(PaymentMethod, pk=pk)
    if request.method == 'PUT':
        s = PaymentMethodSerializer(method, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        for name, value in s.validated_data.items():
            setattr(method, name, value)
        method.save()
        return Response({'ok': True, 'data': format_payment_method(method)})

    method.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def payments(request):
    if request.method == 'GET':
        q = PaymentQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = Payment.objects.select_related('payment_method')
        if q.validated_data.get('invoiceId'):
            qs = qs.filter(invoice_id=q.validated_data['invoiceId'])
        if q.validated_data.get('status'):
            qs = qs.filter(status=q.validated_data['status'])
        return Response({'ok': True, 'data': [format_payment(p) for p in qs.order_by('-payment_date', '-id')[:200]]})

    s = PaymentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    invoice = get_object_or_404(Invoice, pk=v['invoiceId'])
    method = get_object_or_404(PaymentMethod, pk=v['paymentMethodId'])
    engine = billing_engine()
    payment = engine.create_payment(
        invoice, method, v['amount'], v.get('type'),
        notes=v.get('notes', ''), transaction_id=v.get('transactionId', ''),
    )
    # Cash-like methods and card payments with a token settle immediately
    if not method.requires_gateway or v.get('token'):
        ok = engine.process_payment(payment, token=v.get('token'))
        return _result(payment, ok, status.HTTP_201_CREATED)
    return Response({'ok': True, 'data': format_payment(_load(payment.pk))}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBillingRole])
def payment_detail(request, pk: int):
    return Response({'ok': True, 'data': format_payment(_load(pk), with_transactions=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def payment_process(request, pk: int):
    payment = _load(pk)
    s = PaymentProcessSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    ok = billing_engine().process_payment(payment, token=s.validated_data.get('token'))
    return _result(payment, ok)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def payment_refund(request, pk: int):
    payment = _load(pk)
    s = RefundSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    ok = billing_engine().refund_payment(
        payment, s.validated_data['amount'], s.validated_data.get('reason', ''), user=request.user
    )
    if not ok:
        return Response(
            {'ok': False, 'error': {'code': 'refund_failed', 'message': 'The payment gateway did not accept the refund'}},
            status=status.HTTP_502_BAD_GATEWAY,
        )
    return Response({'ok': True, 'data': format_payment(_load(pk), with_transactions=True)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBillingRole])
def billing_summary(request):
    q = DateRangeQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    end = q.validated_data.get('endDate') or timezone.localdate()
    start = q.validated_data.get('startDate') or end.replace(day=1)
    if start > end:
        start = end - dt.timedelta(days=30)
    engine = billing_engine()
    return Response({
        'ok': True,
        'data': {
            'startDate': start.isoformat(),
            'endDate': end.isoformat(),
            'totalRevenue': money(engine.total_revenue(start, end)),
            'revenueByPaymentMethod': {k: money(v) for k, v in engine.revenue_by_payment_method(start, end).items()},
            'outstandingBalance': money(engine.outstanding_balance()),
            'overdueCount': engine.overdue_invoices().count(),
        },
    })
