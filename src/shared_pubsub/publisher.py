import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from shared_pubsub import codec
from shared_pubsub.gateway.base import BaseBrokerGateway
from shared_pubsub.registry import TopicRegistry
from shared_pubsub.schemas import (
    SCHEMA_VERSION,
    EventEnvelope,
    EventMetadata,
    PublishOptions,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

# identity fields whose engine default also replaces an empty caller value
IDENTITY_FIELDS = ("eventId", "eventType", "timestamp", "version", "source")


class Publisher:
    """
    Publishes event envelopes to topics.

    Usage:
        message_id = await publisher.publish(
            "user-events",
            {"eventType": "user.created", "payload": {"userId": user.id}},
        )
    """

    def __init__(
        self,
        gateway: BaseBrokerGateway,
        topics: TopicRegistry,
        service_name: str = "unknown",
    ):
        self.gateway = gateway
        self.topics = topics
        self.service_name = service_name

    def build_envelope(self, event: Optional[Mapping[str, Any]] = None) -> EventEnvelope:
        """
        Materialize a full envelope from a partial event.

        Engine defaults are laid down first; every non-None caller field,
        given in camelCase or snake_case, overlays them. An empty string
        for an identity field keeps its default. Values of the wrong type
        raise pydantic's ValidationError.
        """
        fields: Dict[str, Any] = {
            "eventId": new_id(),
            "eventType": "unknown",
            "timestamp": utcnow(),
            "version": SCHEMA_VERSION,
            "source": self.service_name or "unknown",
        }
        for key, value in (event or {}).items():
            field = EventEnvelope.model_fields.get(key)
            name = field.alias if field and field.alias else key
            if value is None or (name in IDENTITY_FIELDS and value == ""):
                continue
            fields[name] = value
        return EventEnvelope.model_validate(fields)

    async def publish(
        self,
        topic_name: str,
        event: Optional[Mapping[str, Any]] = None,
        options: Optional[PublishOptions] = None,
    ) -> str:
        options = options or PublishOptions()
        try:
            topic = await self.topics.resolve(topic_name)
            envelope = self.build_envelope(event)
            metadata = EventMetadata.fresh()
            data, attributes = codec.encode(
                envelope, metadata, attributes=options.attributes
            )
            message_id = await self.gateway.publish(
                topic, data, attributes, ordering_key=options.ordering_key
            )
        except Exception as e:
            logger.error(f"[Publisher] publish failed: {topic_name} - {e}")
            raise

        logger.debug(
            f"[Publisher] published {topic_name} - {envelope.event_type} ({message_id})"
        )
        return message_id

    async def publish_batch(
        self,
        topic_name: str,
        events: Iterable[Mapping[str, Any]],
        options: Optional[PublishOptions] = None,
    ) -> List[str]:
        """Publish events one after another; the first failure aborts the rest."""
        message_ids = []
        for event in events:
            message_ids.append(await self.publish(topic_name, event, options))
        return message_ids

    async def close(self) -> None:
        """Flush every cached topic, then forget them."""
        logger.info("[Publisher] closing...")
        try:
            for name, topic in self.topics.items():
                try:
                    await self.gateway.flush(topic)
                    logger.debug(f"[Publisher] topic flushed: {name}")
                except Exception as e:
                    logger.error(f"[Publisher] topic flush failed: {name} - {e}")
        finally:
            self.topics.clear()
