"""
Per-domain publishers.

Each helper only fixes the topic and the event type of a call to
Publisher.publish; they add no behavior of their own.
"""

from typing import Any, Mapping

from shared_pubsub.publisher import Publisher
from shared_pubsub.topics.base import TopicPublisher, build_payload, subscription_name
from shared_pubsub.topics.interaction import (
    INTERACTION_TOPIC,
    InteractionEvents,
    InteractionTopicPublisher,
    interaction_subscription_name,
)
from shared_pubsub.topics.media import (
    MEDIA_TOPIC,
    MediaEvents,
    MediaTopicPublisher,
    media_subscription_name,
)
from shared_pubsub.topics.message import (
    DATING_TOPIC,
    MESSAGE_TOPIC,
    DatingEvents,
    DatingTopicPublisher,
    MessageEvents,
    MessageTopicPublisher,
    dating_subscription_name,
    message_subscription_name,
)
from shared_pubsub.topics.post import (
    POST_TOPIC,
    PostEvents,
    PostTopicPublisher,
    post_subscription_name,
)
from shared_pubsub.topics.user import (
    USER_TOPIC,
    UserEvents,
    UserTopicPublisher,
    user_subscription_name,
)


class TypedPublisher:
    """One entry point per topic, taking a partial event with eventType and payload."""

    def __init__(self, publisher: Publisher):
        self.publisher = publisher

    async def publish_user_event(self, event: Mapping[str, Any]) -> str:
        return await self.publisher.publish(USER_TOPIC, event)

    async def publish_post_event(self, event: Mapping[str, Any]) -> str:
        return await self.publisher.publish(POST_TOPIC, event)

    async def publish_interaction_event(self, event: Mapping[str, Any]) -> str:
        return await self.publisher.publish(INTERACTION_TOPIC, event)

    async def publish_message_event(self, event: Mapping[str, Any]) -> str:
        return await self.publisher.publish(MESSAGE_TOPIC, event)

    async def publish_media_event(self, event: Mapping[str, Any]) -> str:
        return await self.publisher.publish(MEDIA_TOPIC, event)


__all__ = [
    "DATING_TOPIC",
    "INTERACTION_TOPIC",
    "MEDIA_TOPIC",
    "MESSAGE_TOPIC",
    "POST_TOPIC",
    "USER_TOPIC",
    "DatingEvents",
    "DatingTopicPublisher",
    "InteractionEvents",
    "InteractionTopicPublisher",
    "MediaEvents",
    "MediaTopicPublisher",
    "MessageEvents",
    "MessageTopicPublisher",
    "PostEvents",
    "PostTopicPublisher",
    "TopicPublisher",
    "TypedPublisher",
    "UserEvents",
    "UserTopicPublisher",
    "build_payload",
    "dating_subscription_name",
    "interaction_subscription_name",
    "media_subscription_name",
    "message_subscription_name",
    "post_subscription_name",
    "subscription_name",
    "user_subscription_name",
]
