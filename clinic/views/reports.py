"""
Dashboard report.

Aggregates counts across patients, scheduling, billing and alerts.  The
payload is cached for ``REPORT_CACHE_SECONDS``; pass ``refresh=true`` to
rebuild it.
"""
from __future__ import annotations

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.display import money
from clinic.models import Doctor, EmergencyAlert, Patient, Prescription
from clinic.services import scheduling
from clinic.services.billing import billing_engine
from clinic.services.formatting import format_alert, format_appointment

from ..permissions import IsStaffRole


def build_dashboard(today=None) -> dict:
    today = today or timezone.localdate()
    engine = billing_engine()
    month_start = today.replace(day=1)
    return {
        'date': today.isoformat(),
        'patients': Patient.objects.count(),
        'doctors': Doctor.objects.count(),
        'availableDoctors': Doctor.objects.filter(is_available=True).count(),
        'activePrescriptions': Prescription.objects.filter(is_active=True).count(),
        'appointments': scheduling.statistics(today),
        'todaysAppointments': [format_appointment(a) for a in scheduling.todays_appointments(today)],
        'revenueToday': money(engine.total_revenue(today, today)),
        'revenueThisMonth': money(engine.total_revenue(month_start, today)),
        'outstandingBalance': money(engine.outstanding_balance()),
        'overdueInvoices': engine.overdue_invoices(today).count(),
        'activeAlerts': [
            format_alert(a) for a in EmergencyAlert.objects.filter(status=EmergencyAlert.STATUS_ACTIVE).order_by('-activated_at')
        ],
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def dashboard(request):
    ck = f'dashboard:{timezone.localdate().isoformat()}'
    if request.query_params.get('refresh') != 'true':
        cached = cache.get(ck)
        if cached:
            return Response({'ok': True, 'cached': True, 'data': cached})
    payload = build_dashboard()
    cache.set(ck, payload, settings.REPORT_CACHE_SECONDS)
    return Response({'ok': True, 'cached': False, 'data': payload})
