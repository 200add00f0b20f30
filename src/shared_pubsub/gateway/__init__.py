from typing import Optional

from shared_pubsub.gateway.base import BaseBrokerGateway, Dispatch
from shared_pubsub.gateway.redis_streams import RedisStreamGateway
from shared_pubsub.settings import Settings


def create_gateway(settings: Optional[Settings] = None) -> BaseBrokerGateway:
    """Build the broker gateway described by the settings."""
    settings = settings or Settings.from_env()
    return RedisStreamGateway(
        redis_url=settings.redis_url,
        default_maxlen=settings.stream_maxlen,
        reclaim_interval=settings.reclaim_interval,
        block_ms=settings.block_ms,
    )


__all__ = ["BaseBrokerGateway", "Dispatch", "RedisStreamGateway", "create_gateway"]
