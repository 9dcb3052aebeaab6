import logging
from typing import Optional, Any, Dict

from django.contrib.auth import get_user_model

from clinic.models import AuditEvent

logger = logging.getLogger(__name__)
User = get_user_model()


def log_action(*, user: Optional[User], action: str, object_type: Optional[str]=None, object_id: Optional[int]=None, detail: Optional[Dict[str, Any]]=None) -> AuditEvent:
    event = AuditEvent.objects.create(
        user=user if isinstance(user, User) and user.pk else None,
        action=action,
        object_type=object_type or '', object_id=object_id,
        detail=detail or {},
    )
    logger.info('audit %s %s:%s by %s', action, object_type, object_id, getattr(user, 'username', None))
    return event


def history(object_type: str, object_id: int):
    return AuditEvent.objects.filter(object_type=object_type, object_id=object_id).select_related('user').order_by('created_at', 'id')
