import logging
from typing import Optional

from shared_pubsub.topics.base import TopicPublisher, build_payload, subscription_name

logger = logging.getLogger(__name__)

MEDIA_TOPIC = "media-events"


class MediaEvents:
    PROCESSED = "media.processed"
    FAILED = "media.failed"
    DELETED = "media.deleted"


class MediaTopicPublisher(TopicPublisher):
    """
    Media processing notifications.

    Media events are informational: a failed publish is logged and
    reported as None instead of failing the media pipeline.
    """

    topic = MEDIA_TOPIC

    async def _emit_quietly(self, event_type: str, payload: dict) -> Optional[str]:
        try:
            message_id = await self.emit(event_type, payload)
        except Exception as e:
            logger.error(f"[MediaTopicPublisher] {event_type} publish failed: {e}")
            return None
        logger.info(
            f"[MediaTopicPublisher] published {event_type} ({payload.get('mediaId')})"
        )
        return message_id

    async def publish_media_processed(
        self,
        media_id: str,
        user_id: str,
        type: str,
        url: str,
        thumbnail_url: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        duration: Optional[float] = None,
        blurhash: Optional[str] = None,
    ) -> Optional[str]:
        return await self._emit_quietly(
            MediaEvents.PROCESSED,
            build_payload(
                media_id=media_id,
                user_id=user_id,
                type=type,
                url=url,
                thumbnail_url=thumbnail_url,
                width=width,
                height=height,
                duration=duration,
                blurhash=blurhash,
            ),
        )

    async def publish_media_failed(
        self, media_id: str, user_id: str, error: str
    ) -> Optional[str]:
        return await self._emit_quietly(
            MediaEvents.FAILED,
            build_payload(media_id=media_id, user_id=user_id, error=error),
        )

    async def publish_media_deleted(self, media_id: str, user_id: str) -> Optional[str]:
        return await self._emit_quietly(
            MediaEvents.DELETED, build_payload(media_id=media_id, user_id=user_id)
        )


def media_subscription_name(service_name: str) -> str:
    return subscription_name(service_name, MEDIA_TOPIC)
