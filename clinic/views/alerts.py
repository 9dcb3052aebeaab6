"""
Emergency alert endpoints.

Drafting and reading is open to staff; activating, escalating,
cancelling and deleting are limited to administrators.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.models import EmergencyAlert
from clinic.serializers.alert import (
    ActivateSerializer,
    AlertCreateSerializer,
    AlertQuerySerializer,
    AlertSerializer,
    ConfirmReadSerializer,
    EscalateSerializer,
    ReasonSerializer,
    RecipientsSerializer,
)
from clinic.serializers.common import DateRangeQuerySerializer
from clinic.services import alerts as alert_service
from clinic.services.formatting import format_alert, format_recipient

from ..permissions import AdminForDelete, IsAdminRole, IsStaffRole


def _load(pk: int) -> EmergencyAlert:
    return get_object_or_404(EmergencyAlert, pk=pk)


def _detail(alert: EmergencyAlert) -> dict:
    data = format_alert(alert, with_recipients=True)
    data['confirmationRate'] = alert_service.confirmation_rate(alert)
    return data


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def alerts(request):
    if request.method == 'GET':
        q = AlertQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = alert_service.alert_history(q.validated_data.get('startDate'), q.validated_data.get('endDate'))
        if q.validated_data.get('status'):
            qs = qs.filter(status=q.validated_data['status'])
        if q.validated_data.get('level'):
            qs = qs.filter(level=q.validated_data['level'])
        return Response({'ok': True, 'data': [format_alert(a) for a in qs]})

    s = AlertCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    alert = alert_service.create_alert(user=request.user, **s.validated_data)
    return Response({'ok': True, 'data': _detail(alert)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, AdminForDelete])
def alert_detail(request, pk: int):
    alert = _load(pk)
    if request.method == 'GET':
        return Response({'ok': True, 'data': _detail(alert)})
    if request.method == 'PUT':
        s = AlertSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        alert = alert_service.update_alert(alert, user=request.user, **s.validated_data)
        return Response({'ok': True, 'data': _detail(alert)})

    alert_service.delete_alert(alert, user=request.user)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def alert_activate(request, pk: int):
    s = ActivateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    alert = alert_service.activate_alert(
        _load(pk), user=request.user, authorized_by=s.validated_data.get('authorizedBy', '')
    )
    return Response({'ok': True, 'data': _detail(alert)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def alert_deactivate(request, pk: int):
    s = ReasonSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    alert = alert_service.deactivate_alert(_load(pk), user=request.user, reason=s.validated_data.get('reason', ''))
    return Response({'ok': True, 'data': format_alert(alert)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def alert_cancel(request, pk: int):
    s = ReasonSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    alert = alert_service.cancel_alert(_load(pk), user=request.user, reason=s.validated_data.get('reason', ''))
    return Response({'ok': True, 'data': format_alert(alert)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def alert_escalate(request, pk: int):
    s = EscalateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    alert = alert_service.escalate_alert(
        _load(pk), s.validated_data['level'], reason=s.validated_data.get('reason', ''), user=request.user
    )
    history = [
        {'at': e.created_at.isoformat(), 'user': e.user_id, **e.detail}
        for e in alert_service.escalation_history(alert)
    ]
    return Response({'ok': True, 'data': format_alert(alert), 'escalations': history})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def alert_recipients(request, pk: int):
    alert = _load(pk)
    s = RecipientsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    added = 0
    if s.validated_data.get('patientIds'):
        added += alert_service.add_patients(alert, s.validated_data['patientIds'])
    if s.validated_data.get('phoneNumbers'):
        added += alert_service.add_phone_numbers(alert, s.validated_data['phoneNumbers'])
    return Response({'ok': True, 'added': added, 'data': _detail(alert)})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def alert_recipient_detail(request, pk: int, recipient_id: int):
    alert_service.remove_recipient(_load(pk), recipient_id)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def alert_confirm(request, pk: int):
    """Record that the recipient with this phone number read the alert."""
    s = ConfirmReadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    recipient = alert_service.confirm_read(_load(pk), s.validated_data['phoneNumber'])
    return Response({'ok': True, 'data': format_recipient(recipient)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def alert_unconfirmed(request, pk: int):
    alert = _load(pk)
    return Response({
        'ok': True,
        'confirmationRate': alert_service.confirmation_rate(alert),
        'data': [format_recipient(r) for r in alert_service.unconfirmed_recipients(alert)],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def alert_analytics(request):
    q = DateRangeQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({
        'ok': True,
        'data': alert_service.analytics(q.validated_data.get('startDate'), q.validated_data.get('endDate')),
    })
