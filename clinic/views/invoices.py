"""
Invoice endpoints.

Arithmetic and status live in :class:`clinic.services.billing.BillingEngine`;
the views only validate input and shape output.  The list is the only
paginated collection in the API (``page``/``pageSize``).
"""
from __future__ import annotations

from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.models import Invoice, InvoiceItem
from clinic.serializers.billing import (
    InvoiceCreateSerializer,
    InvoiceItemSerializer,
    InvoiceQuerySerializer,
    InvoiceUpdateSerializer,
)
from clinic.services.audit import log_action
from clinic.services.billing import billing_engine
from clinic.services.email import email_sender
from clinic.services.formatting import format_invoice, format_item

from ..permissions import IsAdminRole, IsBillingRole

DEFAULT_PAGE_SIZE = 20


def _load(pk: int) -> Invoice:
    return get_object_or_404(Invoice.objects.select_related('patient'), pk=pk)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoices(request):
    if request.method == 'GET':
        q = InvoiceQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = Invoice.objects.select_related('patient')
        if q.validated_data.get('patientId'):
            qs = qs.filter(patient_id=q.validated_data['patientId'])
        if q.validated_data.get('status'):
            qs = qs.filter(status=q.validated_data['status'])
        page = q.validated_data.get('page') or 1
        page_size = q.validated_data.get('pageSize') or DEFAULT_PAGE_SIZE
        total = qs.count()
        start = (page - 1) * page_size
        rows = qs.order_by('-invoice_date', '-id')[start:start + page_size]
        return Response({
            'ok': True,
            'data': [format_invoice(i) for i in rows],
            'pagination': {'total': total, 'page': page, 'pageSize': page_size},
        })

    s = InvoiceCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    items = data.pop('items', [])
    engine = billing_engine()
    with transaction.atomic():
        invoice = engine.create_invoice(**data)
        for item in items:
            engine.add_item(invoice, **item)
        if not items:
            engine.recalculate(invoice)
    return Response({'ok': True, 'data': format_invoice(_load(invoice.id), with_items=True)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoice_detail(request, pk: int):
    invoice = _load(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': format_invoice(invoice, with_items=True)})
    if request.method == 'PUT':
        s = InvoiceUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        billing_engine().update_invoice(invoice, **s.validated_data)
        return Response({'ok': True, 'data': format_invoice(_load(pk), with_items=True)})

    number = invoice.invoice_number
    billing_engine().delete_invoice(invoice)
    log_action(user=request.user, action='invoice_deleted', object_type='invoice', object_id=pk, detail={'number': number})
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoice_items(request, pk: int):
    invoice = _load(pk)
    s = InvoiceItemSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    item = billing_engine().add_item(invoice, **s.validated_data)
    return Response({'ok': True, 'data': format_item(item), 'invoice': format_invoice(_load(pk))}, status=status.HTTP_201_CREATED)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoice_item_detail(request, pk: int, item_id: int):
    item = get_object_or_404(InvoiceItem.objects.select_related('invoice'), pk=item_id, invoice_id=pk)
    engine = billing_engine()
    if request.method == 'PUT':
        s = InvoiceItemSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        item = engine.update_item(item, **s.validated_data)
        return Response({'ok': True, 'data': format_item(item), 'invoice': format_invoice(_load(pk))})

    engine.delete_item(item)
    return Response({'ok': True, 'invoice': format_invoice(_load(pk))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoice_cancel(request, pk: int):
    invoice = billing_engine().cancel_invoice(_load(pk))
    log_action(user=request.user, action='invoice_cancelled', object_type='invoice', object_id=pk)
    return Response({'ok': True, 'data': format_invoice(invoice)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoice_apply_insurance(request, pk: int):
    invoice = billing_engine().apply_insurance_coverage(_load(pk))
    return Response({'ok': True, 'data': format_invoice(_load(invoice.id))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoice_send(request, pk: int):
    """Email the invoice to the patient."""
    sent = email_sender().send_invoice(_load(pk))
    return Response({'ok': sent})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBillingRole])
def invoices_overdue(request):
    return Response({'ok': True, 'data': [format_invoice(i) for i in billing_engine().overdue_invoices()]})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def invoices_refresh_overdue(request):
    return Response({'ok': True, 'updated': billing_engine().refresh_overdue()})
