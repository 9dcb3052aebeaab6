from decimal import Decimal

from rest_framework import serializers

from clinic.models import Invoice, Payment, PaymentMethod
from clinic.serializers.common import CleanCharField, PageQuerySerializer

MONEY = {'max_digits': 12, 'decimal_places': 2}


class InvoiceCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1)
    appointmentId = serializers.IntegerField(source='appointment_id', min_value=1, required=False, allow_null=True)
    insuranceId = serializers.IntegerField(source='insurance_id', min_value=1, required=False, allow_null=True)
    invoiceDate = serializers.DateField(source='invoice_date', required=False)
    dueDate = serializers.DateField(source='due_date', required=False)
    taxAmount = serializers.DecimalField(source='tax_amount', min_value=0, required=False, **MONEY)
    discountAmount = serializers.DecimalField(source='discount_amount', min_value=0, required=False, **MONEY)
    notes = CleanCharField(required=False, allow_blank=True)
    items = serializers.ListField(child=serializers.DictField(), required=False)

    def validate(self, attrs):
        invoice_date, due_date = attrs.get('invoice_date'), attrs.get('due_date')
        if invoice_date and due_date and due_date < invoice_date:
            raise serializers.ValidationError({'dueDate': 'Due date must not be before the invoice date'})
        items = []
        for i, raw in enumerate(attrs.get('items') or []):
            item = InvoiceItemSerializer(data=raw)
            if not item.is_valid():
                raise serializers.ValidationError({'items': {i: item.errors}})
            items.append(item.validated_data)
        attrs['items'] = items
        return attrs


class InvoiceUpdateSerializer(serializers.Serializer):
    taxAmount = serializers.DecimalField(source='tax_amount', min_value=0, required=False, **MONEY)
    discountAmount = serializers.DecimalField(source='discount_amount', min_value=0, required=False, **MONEY)
    insuranceCovered = serializers.DecimalField(source='insurance_covered', min_value=0, required=False, **MONEY)
    dueDate = serializers.DateField(source='due_date', required=False)
    notes = CleanCharField(required=False, allow_blank=True)


class InvoiceQuerySerializer(PageQuerySerializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in Invoice.STATUS_CHOICES], required=False)


class InvoiceItemSerializer(serializers.Serializer):
    description = CleanCharField(max_length=200)
    quantity = serializers.IntegerField(min_value=1, max_value=10000)
    unitPrice = serializers.DecimalField(source='unit_price', max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    itemCode = CleanCharField(source='item_code', max_length=50, required=False, allow_blank=True)
    category = CleanCharField(max_length=100, required=False, allow_blank=True)


class PaymentMethodSerializer(serializers.Serializer):
    name = CleanCharField(max_length=100)
    type = serializers.ChoiceField(choices=[c for c, _ in PaymentMethod.TYPE_CHOICES])
    description = CleanCharField(max_length=500, required=False, allow_blank=True)
    isActive = serializers.BooleanField(source='is_active', required=False)
    requiresGateway = serializers.BooleanField(source='requires_gateway', required=False)
    gatewayProvider = CleanCharField(source='gateway_provider', max_length=100, required=False, allow_blank=True)
    processingFee = serializers.DecimalField(
        source='processing_fee', max_digits=5, decimal_places=4, min_value=0, max_value=1, required=False
    )
    fixedFee = serializers.DecimalField(source='fixed_fee', max_digits=10, decimal_places=2, min_value=0, required=False)
    displayOrder = serializers.IntegerField(source='display_order', min_value=0, required=False)

    def validate_name(self, v):
        qs = PaymentMethod.objects.filter(name__iexact=v)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('A payment method with this name already exists')
        return v


class PaymentCreateSerializer(serializers.Serializer):
    invoiceId = serializers.IntegerField(min_value=1)
    paymentMethodId = serializers.IntegerField(min_value=1)
    amount = serializers.DecimalField(min_value=Decimal('0.01'), **MONEY)
    type = serializers.ChoiceField(
        choices=[Payment.TYPE_FULL, Payment.TYPE_PARTIAL, Payment.TYPE_ADJUSTMENT], required=False
    )
    transactionId = CleanCharField(max_length=100, required=False, allow_blank=True)
    notes = CleanCharField(required=False, allow_blank=True)
    # Card token; when given the payment is processed straight away
    token = serializers.CharField(max_length=200, required=False, allow_blank=True)


class PaymentProcessSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=200, required=False, allow_blank=True)


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(min_value=Decimal('0.01'), **MONEY)
    reason = CleanCharField(max_length=500, required=False, allow_blank=True)


class PaymentQuerySerializer(PageQuerySerializer):
    invoiceId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in Payment.STATUS_CHOICES], required=False)
