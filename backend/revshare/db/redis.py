"""Redis client for realtime notification fan-out"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

import redis

from revshare.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def notification_channel(user_id: str) -> str:
    return f"user:{user_id}:notifications"


def publish_user_event(user_id: str, event_type: str, data: Dict[str, Any]) -> int:
    """Publish an event on the user's notification channel.

    Returns the number of subscribers that received it. Raises on connection
    errors; callers running this as a side effect wrap it.
    """
    message = json.dumps({
        "type": event_type,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }, default=str)
    channel = notification_channel(user_id)
    received = get_redis_client().publish(channel, message)
    logger.debug(f"Published {event_type} to {channel}: {received} subscriber(s)")
    return received
