"""
Emergency alert lifecycle and SMS fan-out.

An alert is drafted, then activated.  Activation snapshots the target
audience into recipient rows (patients added later are not included),
sends the message to every pending recipient one after another and
records each outcome on its own row; a failed send never stops the
remaining ones.  Alerts that do not require read confirmation complete
straight after distribution; the others stay active until deactivated.

Escalation is a manual level bump recorded in the audit log.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, Optional

from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.display import doctor_name, full_name
from clinic.exceptions import InvalidState
from clinic.models import Doctor, EmergencyAlert, EmergencyAlertRecipient, Patient
from clinic.services import realtime
from clinic.services.audit import history, log_action
from clinic.services.phone import format_for_sms, is_valid_phone
from clinic.services.sms import SmsSender, sms_sender

logger = logging.getLogger(__name__)

Recipient = EmergencyAlertRecipient

LEVEL_ICONS = {
    EmergencyAlert.LEVEL_CRITICAL: '🚨',
    EmergencyAlert.LEVEL_HIGH: '⚠️',
    EmergencyAlert.LEVEL_MEDIUM: '📢',
    EmergencyAlert.LEVEL_LOW: 'ℹ️',
}
LEVEL_ORDER = [
    EmergencyAlert.LEVEL_LOW, EmergencyAlert.LEVEL_MEDIUM, EmergencyAlert.LEVEL_HIGH, EmergencyAlert.LEVEL_CRITICAL,
]
ACTIVE_PATIENT_WINDOW = dt.timedelta(days=30)
EDITABLE_FIELDS = {'title', 'message', 'level', 'alert_type', 'target_audience', 'requires_read_confirmation', 'notes'}


def format_alert_message(alert: EmergencyAlert) -> str:
    icon = LEVEL_ICONS.get(alert.level, 'ℹ️')
    return f"{icon} EMERGENCY ALERT - {alert.level.upper()}\n\n{alert.title}\n\n{alert.message}"


def _audit(alert: EmergencyAlert, action: str, user=None, **detail) -> None:
    log_action(user=user, action=action, object_type='emergency_alert', object_id=alert.id, detail=detail)


def _require_draft(alert: EmergencyAlert, what: str) -> None:
    if alert.status != EmergencyAlert.STATUS_DRAFT:
        raise InvalidState(f'Recipients can only be {what} while the alert is a draft')


# ----------------------------------------------------------------------
# Alert CRUD
# ----------------------------------------------------------------------
def create_alert(
    *, title: str, message: str, level: str = EmergencyAlert.LEVEL_MEDIUM, alert_type: str = 'medical',
    target_audience: str = EmergencyAlert.AUDIENCE_ALL_PATIENTS, requires_read_confirmation: bool = False,
    notes: str = '', patient_ids: Iterable[int] = (), phone_numbers: Iterable[str] = (), user=None,
) -> EmergencyAlert:
    with transaction.atomic():
        alert = EmergencyAlert.objects.create(
            title=title,
            message=message,
            level=level,
            alert_type=alert_type,
            target_audience=target_audience,
            requires_read_confirmation=requires_read_confirmation,
            notes=notes,
            created_by=user if getattr(user, 'pk', None) else None,
        )
        if patient_ids:
            add_patients(alert, patient_ids)
        if phone_numbers:
            add_phone_numbers(alert, phone_numbers)
        _audit(alert, 'alert_created', user, level=level, audience=target_audience)
    logger.info('Created emergency alert %s (%s, %s)', alert.id, level, target_audience)
    return alert


def update_alert(alert: EmergencyAlert, *, user=None, **changes) -> EmergencyAlert:
    if alert.status == EmergencyAlert.STATUS_ACTIVE:
        raise InvalidState('Cannot modify an active emergency alert')
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError({k: 'Field cannot be changed' for k in sorted(unknown)})
    for name, value in changes.items():
        setattr(alert, name, value)
    alert.save()
    _audit(alert, 'alert_updated', user, fields=sorted(changes))
    return alert


def delete_alert(alert: EmergencyAlert, *, user=None) -> None:
    if alert.status == EmergencyAlert.STATUS_ACTIVE:
        raise InvalidState('Cannot delete an active emergency alert; deactivate it first')
    _audit(alert, 'alert_deleted', user, title=alert.title)
    alert.delete()


# ----------------------------------------------------------------------
# Recipients
# ----------------------------------------------------------------------
def _numbers_on(alert: EmergencyAlert) -> set[str]:
    return {format_for_sms(n) for n in alert.recipients.values_list('phone_number', flat=True) if n and n.strip()}


def _unique_by_number(rows: list[EmergencyAlertRecipient], taken: set[str]) -> list[EmergencyAlertRecipient]:
    """Drop rows whose normalised number is already taken; ``taken`` is updated in place."""
    kept = []
    for row in rows:
        if not row.phone_number or not row.phone_number.strip():
            continue
        number = format_for_sms(row.phone_number)
        if number in taken:
            continue
        taken.add(number)
        kept.append(row)
    return kept


def add_patients(alert: EmergencyAlert, patient_ids: Iterable[int]) -> int:
    _require_draft(alert, 'added')
    existing = set(alert.recipients.exclude(patient=None).values_list('patient_id', flat=True))
    rows = _unique_by_number([
        Recipient(
            alert=alert,
            recipient_type='patient',
            patient=p,
            name=full_name(p.first_name, p.last_name),
            email=p.email,
            phone_number=p.phone_number,
        )
        for p in Patient.objects.filter(pk__in=list(patient_ids)).exclude(phone_number='').order_by('id')
        if p.id not in existing
    ], _numbers_on(alert))
    Recipient.objects.bulk_create(rows)
    return len(rows)


def add_phone_numbers(alert: EmergencyAlert, phone_numbers: Iterable[str]) -> int:
    _require_draft(alert, 'added')
    numbers = [n.strip() for n in phone_numbers if n and n.strip()]
    invalid = [n for n in numbers if not is_valid_phone(n)]
    if invalid:
        raise ValidationError({'phoneNumbers': [f'Invalid phone number: {n}' for n in invalid]})
    rows = _unique_by_number([
        Recipient(alert=alert, recipient_type='phone', phone_number=format_for_sms(n), name=format_for_sms(n))
        for n in numbers
    ], _numbers_on(alert))
    Recipient.objects.bulk_create(rows)
    return len(rows)


def remove_recipient(alert: EmergencyAlert, recipient_id: int) -> None:
    _require_draft(alert, 'removed')
    deleted, _ = alert.recipients.filter(pk=recipient_id).delete()
    if not deleted:
        raise NotFound('Recipient not found')


def _audience_rows(alert: EmergencyAlert, now: dt.datetime) -> list[EmergencyAlertRecipient]:
    """Recipient rows for the target audience, skipping numbers the alert already reaches."""
    audience = alert.target_audience
    if audience == EmergencyAlert.AUDIENCE_DOCTORS:
        taken = set(alert.recipients.exclude(doctor=None).values_list('doctor_id', flat=True))
        rows = [
            Recipient(
                alert=alert, recipient_type='doctor', doctor=d, name=doctor_name(d),
                email=d.email, phone_number=d.phone_number,
            )
            for d in Doctor.objects.exclude(phone_number='').order_by('id')
            if d.id not in taken
        ]
        return _unique_by_number(rows, _numbers_on(alert))
    if audience == EmergencyAlert.AUDIENCE_ALL_PATIENTS:
        patients = Patient.objects.exclude(phone_number='')
    elif audience == EmergencyAlert.AUDIENCE_ACTIVE_PATIENTS:
        patients = Patient.objects.exclude(phone_number='').filter(
            appointments__appointment_datetime__gte=now - ACTIVE_PATIENT_WINDOW
        ).distinct()
    else:
        # Specific patients were added explicitly while drafting
        return []
    taken = set(alert.recipients.exclude(patient=None).values_list('patient_id', flat=True))
    rows = [
        Recipient(
            alert=alert, recipient_type='patient', patient=p, name=full_name(p.first_name, p.last_name),
            email=p.email, phone_number=p.phone_number,
        )
        for p in patients.order_by('id')
        if p.id not in taken
    ]
    return _unique_by_number(rows, _numbers_on(alert))


def snapshot_recipients(alert: EmergencyAlert, now: Optional[dt.datetime] = None) -> int:
    """Materialise the target audience as recipient rows; returns how many were added."""
    rows = _audience_rows(alert, now or timezone.now())
    Recipient.objects.bulk_create(rows)
    return len(rows)


# ----------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------
def activate_alert(alert: EmergencyAlert, *, user=None, authorized_by: str = '', sms: Optional[SmsSender] = None) -> EmergencyAlert:
    with transaction.atomic():
        alert = EmergencyAlert.objects.select_for_update().get(pk=alert.pk)
        if alert.status == EmergencyAlert.STATUS_ACTIVE:
            raise InvalidState('Emergency alert is already active')
        if alert.status != EmergencyAlert.STATUS_DRAFT:
            raise InvalidState(f'Cannot activate a {alert.get_status_display().lower()} alert')
        snapshot_recipients(alert)
        total = alert.recipients.count()
        if not total:
            raise InvalidState('Emergency alert has no recipients')
        alert.status = EmergencyAlert.STATUS_ACTIVE
        alert.activated_at = timezone.now()
        alert.authorized_by = authorized_by or getattr(user, 'username', '') or alert.authorized_by
        alert.total_recipients = total
        alert.save()
        _audit(alert, 'alert_activated', user, recipients=total, authorizedBy=alert.authorized_by)
    logger.warning('Emergency alert %s activated (%s) for %s recipients', alert.id, alert.level, total)
    realtime.broadcast('emergency.alert', {
        'id': alert.id, 'title': alert.title, 'level': alert.level, 'type': alert.alert_type,
        'activatedAt': alert.activated_at.isoformat(),
    })
    return distribute(alert, sms=sms)


def distribute(alert: EmergencyAlert, *, sms: Optional[SmsSender] = None) -> EmergencyAlert:
    sms = sms or sms_sender()
    body = format_alert_message(alert)
    for recipient in alert.recipients.filter(status=Recipient.STATUS_PENDING).order_by('id'):
        try:
            delivered = sms.send(recipient.phone_number, body)
            error = '' if delivered else 'SMS delivery failed'
        except Exception as e:
            logger.exception('Alert %s: sending to recipient %s raised', alert.id, recipient.id)
            delivered, error = False, str(e)
        recipient.status = Recipient.STATUS_SENT if delivered else Recipient.STATUS_FAILED
        recipient.sent_at = timezone.now() if delivered else None
        recipient.error_message = error[:500]
        recipient.save(update_fields=['status', 'sent_at', 'error_message', 'updated_at'])

    counts = alert.recipients.aggregate(
        total=Count('id'),
        ok=Count('id', filter=Q(status__in=[Recipient.STATUS_SENT, Recipient.STATUS_READ_CONFIRMED])),
        failed=Count('id', filter=Q(status=Recipient.STATUS_FAILED)),
    )
    alert.total_recipients = counts['total']
    alert.successful_count = counts['ok']
    alert.failed_count = counts['failed']
    if not alert.requires_read_confirmation:
        alert.status = EmergencyAlert.STATUS_COMPLETED
        alert.deactivated_at = timezone.now()
    alert.save()
    logger.info(
        'Alert %s distributed: %s sent, %s failed of %s',
        alert.id, alert.successful_count, alert.failed_count, alert.total_recipients,
    )
    return alert


def deactivate_alert(alert: EmergencyAlert, *, user=None, reason: str = '') -> EmergencyAlert:
    if alert.status != EmergencyAlert.STATUS_ACTIVE:
        raise InvalidState('Emergency alert is not active')
    alert.status = EmergencyAlert.STATUS_COMPLETED
    alert.deactivated_at = timezone.now()
    alert.save(update_fields=['status', 'deactivated_at', 'updated_at'])
    _audit(alert, 'alert_deactivated', user, reason=reason)
    return alert


def cancel_alert(alert: EmergencyAlert, *, user=None, reason: str = '') -> EmergencyAlert:
    if alert.status != EmergencyAlert.STATUS_DRAFT:
        raise InvalidState('Only draft alerts can be cancelled')
    alert.status = EmergencyAlert.STATUS_CANCELLED
    alert.save(update_fields=['status', 'updated_at'])
    _audit(alert, 'alert_cancelled', user, reason=reason)
    return alert


def escalate_alert(alert: EmergencyAlert, new_level: str, *, reason: str = '', user=None) -> EmergencyAlert:
    if alert.status not in (EmergencyAlert.STATUS_DRAFT, EmergencyAlert.STATUS_ACTIVE):
        raise InvalidState(f'Cannot escalate a {alert.get_status_display().lower()} alert')
    if new_level not in LEVEL_ORDER:
        raise ValidationError({'level': 'Invalid level'})
    if LEVEL_ORDER.index(new_level) <= LEVEL_ORDER.index(alert.level):
        raise ValidationError({'level': f'Alert is already {alert.get_level_display()}; escalation must raise the level'})
    old_level = alert.level
    alert.level = new_level
    alert.save(update_fields=['level', 'updated_at'])
    _audit(alert, 'alert_escalated', user, fromLevel=old_level, toLevel=new_level, reason=reason or 'Not specified')
    logger.warning('Emergency alert %s escalated from %s to %s', alert.id, old_level, new_level)
    return alert


def escalation_history(alert: EmergencyAlert):
    return history('emergency_alert', alert.id).filter(action='alert_escalated')


# ----------------------------------------------------------------------
# Confirmation & reporting
# ----------------------------------------------------------------------
def confirm_read(alert: EmergencyAlert, phone_number: str, when: Optional[dt.datetime] = None) -> EmergencyAlertRecipient:
    if not is_valid_phone(phone_number):
        raise ValidationError({'phoneNumber': 'Invalid phone number'})
    target = format_for_sms(phone_number)
    with transaction.atomic():
        recipients = alert.recipients.select_for_update().filter(
            status__in=[Recipient.STATUS_SENT, Recipient.STATUS_READ_CONFIRMED]
        )
        match = next((r for r in recipients if format_for_sms(r.phone_number) == target), None)
        if match is None:
            raise NotFound('No delivered recipient with that phone number')
        if match.status == Recipient.STATUS_SENT:
            match.status = Recipient.STATUS_READ_CONFIRMED
            match.read_confirmed_at = when or timezone.now()
            match.save(update_fields=['status', 'read_confirmed_at', 'updated_at'])
            alert.read_confirmation_count = alert.recipients.filter(status=Recipient.STATUS_READ_CONFIRMED).count()
            alert.save(update_fields=['read_confirmation_count', 'updated_at'])
    return match


def unconfirmed_recipients(alert: EmergencyAlert):
    return alert.recipients.filter(status=Recipient.STATUS_SENT).order_by('id')


def confirmation_rate(alert: EmergencyAlert) -> float:
    delivered = alert.recipients.filter(
        status__in=[Recipient.STATUS_SENT, Recipient.STATUS_READ_CONFIRMED]
    ).count()
    if not delivered:
        return 0.0
    confirmed = alert.recipients.filter(status=Recipient.STATUS_READ_CONFIRMED).count()
    return round(confirmed / delivered * 100, 1)


def alert_history(start: Optional[dt.date] = None, end: Optional[dt.date] = None):
    qs = EmergencyAlert.objects.all()
    if start:
        qs = qs.filter(created_at__date__gte=start)
    if end:
        qs = qs.filter(created_at__date__lte=end)
    return qs.order_by('-created_at')


def analytics(start: Optional[dt.date] = None, end: Optional[dt.date] = None) -> dict:
    qs = alert_history(start, end)
    by_level = {level: 0 for level in LEVEL_ORDER}
    for row in qs.values('level').annotate(n=Count('id')):
        by_level[row['level']] = row['n']
    by_status = {s: 0 for s, _ in EmergencyAlert.STATUS_CHOICES}
    for row in qs.values('status').annotate(n=Count('id')):
        by_status[row['status']] = row['n']
    totals = qs.aggregate(
        recipient_total=Count('recipients'),
        delivered_total=Count('recipients', filter=Q(recipients__status__in=[Recipient.STATUS_SENT, Recipient.STATUS_READ_CONFIRMED])),
        failed_total=Count('recipients', filter=Q(recipients__status=Recipient.STATUS_FAILED)),
        confirmed_total=Count('recipients', filter=Q(recipients__status=Recipient.STATUS_READ_CONFIRMED)),
    )
    delivered, recipient_total = totals['delivered_total'], totals['recipient_total']
    return {
        'totalAlerts': sum(by_level.values()),
        'byLevel': by_level,
        'byStatus': by_status,
        'totalRecipients': recipient_total,
        'delivered': delivered,
        'failed': totals['failed_total'],
        'readConfirmed': totals['confirmed_total'],
        'deliveryRate': round(delivered / recipient_total * 100, 1) if recipient_total else 0.0,
        'confirmationRate': round(totals['confirmed_total'] / delivered * 100, 1) if delivered else 0.0,
    }
