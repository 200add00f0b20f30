from typing import Any, Dict, Mapping, Optional

from pydantic.alias_generators import to_camel

from shared_pubsub.publisher import Publisher
from shared_pubsub.schemas import PublishOptions


def build_payload(**fields: Any) -> Dict[str, Any]:
    """camelCase the keyword arguments, dropping optional ones left as None."""
    return {to_camel(k): v for k, v in fields.items() if v is not None}


def subscription_name(service_name: str, topic: str) -> str:
    """Convention: one subscription per consuming service, `{service}-{topic}`."""
    return f"{service_name}-{topic}"


class TopicPublisher:
    """Fixes the topic; each method fixes the event type."""

    topic: str = ""

    def __init__(self, publisher: Publisher):
        self.publisher = publisher

    async def emit(
        self,
        event_type: str,
        payload: Mapping[str, Any],
        options: Optional[PublishOptions] = None,
    ) -> str:
        return await self.publisher.publish(
            self.topic, {"eventType": event_type, "payload": dict(payload)}, options
        )
