"""
Topic and subscription registries.

Both resolve a name to a live broker handle, provisioning the resource on
first use when the injected policy allows it, and cache the handle for
the lifetime of the owning SDK. Concurrent resolves of the same name may
both reach the broker; creation there is idempotent.
"""

import logging
from typing import Dict, List, Optional, Tuple

from shared_pubsub.errors import SubscriptionNotFound, TopicNotFound
from shared_pubsub.gateway.base import BaseBrokerGateway
from shared_pubsub.schemas import (
    DeadLetterPolicy,
    ProvisioningPolicy,
    RetryBackoff,
    SubscribeOptions,
    SubscriptionConfig,
    SubscriptionHandle,
    TopicHandle,
    dead_letter_topic,
)

logger = logging.getLogger(__name__)

DEFAULT_ACK_DEADLINE_SECONDS = 30
DEFAULT_RETENTION_SECONDS = 7 * 24 * 60 * 60
DEFAULT_MIN_BACKOFF_SECONDS = 10
DEFAULT_MAX_BACKOFF_SECONDS = 600
DEFAULT_MAX_DELIVERY_ATTEMPTS = 5


class TopicRegistry:
    def __init__(self, gateway: BaseBrokerGateway, policy: ProvisioningPolicy):
        self.gateway = gateway
        self.policy = policy
        self._topics: Dict[str, TopicHandle] = {}

    async def resolve(self, topic_name: str) -> TopicHandle:
        cached = self._topics.get(topic_name)
        if cached is not None:
            return cached

        if not await self.gateway.topic_exists(topic_name):
            if self.policy is ProvisioningPolicy.REQUIRE_EXISTING:
                raise TopicNotFound(topic_name)
            logger.warning(f"[TopicRegistry] creating topic: {topic_name}")
            await self.gateway.create_topic(topic_name)

        handle = await self.gateway.get_topic_handle(topic_name)
        return self._topics.setdefault(topic_name, handle)

    def get(self, topic_name: str) -> Optional[TopicHandle]:
        return self._topics.get(topic_name)

    def items(self) -> List[Tuple[str, TopicHandle]]:
        return list(self._topics.items())

    def names(self) -> List[str]:
        return list(self._topics)

    def clear(self) -> None:
        self._topics.clear()

    def __len__(self) -> int:
        return len(self._topics)


class SubscriptionRegistry:
    def __init__(
        self,
        gateway: BaseBrokerGateway,
        topics: TopicRegistry,
        policy: ProvisioningPolicy,
    ):
        self.gateway = gateway
        self.topics = topics
        self.policy = policy
        self._subscriptions: Dict[str, SubscriptionHandle] = {}

    @staticmethod
    def build_config(
        topic_name: str, options: Optional[SubscribeOptions] = None
    ) -> SubscriptionConfig:
        ack_deadline = (options.ack_deadline if options else None) or (
            DEFAULT_ACK_DEADLINE_SECONDS
        )
        return SubscriptionConfig(
            ack_deadline_seconds=ack_deadline,
            retention_seconds=DEFAULT_RETENTION_SECONDS,
            retry_backoff=RetryBackoff(
                min_seconds=DEFAULT_MIN_BACKOFF_SECONDS,
                max_seconds=DEFAULT_MAX_BACKOFF_SECONDS,
            ),
            dead_letter=DeadLetterPolicy(
                topic=dead_letter_topic(topic_name),
                max_attempts=DEFAULT_MAX_DELIVERY_ATTEMPTS,
            ),
        )

    async def resolve(
        self,
        topic_name: str,
        subscription_name: str,
        options: Optional[SubscribeOptions] = None,
    ) -> SubscriptionHandle:
        cached = self._subscriptions.get(subscription_name)
        if cached is not None:
            return cached

        if not await self.gateway.subscription_exists(subscription_name):
            if self.policy is ProvisioningPolicy.REQUIRE_EXISTING:
                raise SubscriptionNotFound(subscription_name)
            logger.warning(
                f"[SubscriptionRegistry] creating subscription: "
                f"{topic_name} -> {subscription_name}"
            )
            config = self.build_config(topic_name, options)
            await self.topics.resolve(topic_name)
            await self.topics.resolve(config.dead_letter.topic)
            await self.gateway.create_subscription(
                subscription_name, topic_name, config
            )

        handle = await self.gateway.get_subscription_handle(subscription_name)
        return self._subscriptions.setdefault(subscription_name, handle)

    def get(self, subscription_name: str) -> Optional[SubscriptionHandle]:
        return self._subscriptions.get(subscription_name)

    def evict(self, subscription_name: str) -> Optional[SubscriptionHandle]:
        return self._subscriptions.pop(subscription_name, None)

    def items(self) -> List[Tuple[str, SubscriptionHandle]]:
        return list(self._subscriptions.items())

    def clear(self) -> None:
        self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)
