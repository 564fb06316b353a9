import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def hospital_group(hospital_id) -> str:
    return f"hospital.{hospital_id}"


def user_group(user_id) -> str:
    return f"user.{user_id}"


def push(group: str, event: str, payload: dict) -> None:
    """Fan a notification out to every socket in ``group``."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(group, {'type': 'notify', 'event': event, **payload})
    except Exception:
        logger.exception('realtime push failed (group=%s, event=%s)', group, event)
