"""
Best-effort WebSocket broadcasts over the Channels layer.

Consumers in :mod:`clinic.realtime.consumers` join the ``updates`` group.
A failing channel layer never fails the request that triggered the event.
"""
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

UPDATES_GROUP = "updates"


def broadcast(event_type: str, payload: dict) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    event = {"type": "broadcast.event", "event": event_type, "payload": payload}
    try:
        async_to_sync(channel_layer.group_send)(UPDATES_GROUP, event)
    except Exception:
        logger.exception("Failed to broadcast %s", event_type)
        return False
    return True
