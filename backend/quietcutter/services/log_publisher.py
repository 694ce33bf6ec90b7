"""Live job events for the dashboard, sent over Redis pub/sub."""

import json
import logging
from datetime import datetime, timezone
from typing import Literal, Optional

from quietcutter.core.config import settings

logger = logging.getLogger(__name__)

LOG_CHANNEL = 'system_logs'

EventLevel = Literal['INFO', 'WARNING', 'ERROR', 'SUCCESS', 'DEBUG']
EventSource = Literal['worker', 'backend', 'system']

_redis_client = None


def get_redis_client():
    """shared client, created on first use so the app starts without redis"""
    global _redis_client
    if _redis_client is None:
        import redis
        _redis_client = redis.from_url(
            settings.REDIS_URL, socket_connect_timeout=1, socket_timeout=1
        )
    return _redis_client


def build_event(source: EventSource, level: EventLevel, message: str,
                metadata: Optional[dict] = None) -> str:
    return json.dumps({
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": source,
        "level": level,
        "message": message,
        "metadata": metadata or {},
    })


def publish_log(
    source: EventSource,
    level: EventLevel,
    message: str,
    metadata: Optional[dict] = None,
) -> bool:
    """
    push one event to LOG_CHANNEL
    returns False when REDIS_URL is unset or the publish failed, processing
    carries on either way
    """
    if not settings.REDIS_URL:
        return False

    try:
        get_redis_client().publish(LOG_CHANNEL, build_event(source, level, message, metadata))
    except Exception as e:
        logger.warning(f"could not publish {level} event from {source}: {e}")
        return False
    return True
