from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

from shared_pubsub.gateway import BaseBrokerGateway, create_gateway
from shared_pubsub.publisher import Publisher
from shared_pubsub.registry import SubscriptionRegistry, TopicRegistry
from shared_pubsub.schemas import (
    EventHandler,
    HandlerRegistration,
    ProvisioningPolicy,
    PublishOptions,
    SubscribeOptions,
)
from shared_pubsub.settings import Settings
from shared_pubsub.subscriber import Subscriber

logger = logging.getLogger(__name__)


class PubSubSDK:
    """
    App-facing entry point with dependency injection.

    Owns the topic and subscription registries for the life of the
    service: construct it at startup, call `shutdown()` on exit.

    Dependencies are injected via constructor:
    - gateway: broker driver (defaults to the one described by settings)
    - settings: service name, environment, tuning
    - policy: provisioning policy (defaults to the environment's)
    """

    def __init__(
        self,
        gateway: Optional[BaseBrokerGateway] = None,
        settings: Optional[Settings] = None,
        policy: Optional[ProvisioningPolicy] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.gateway = gateway or create_gateway(self.settings)
        self.policy = policy or self.settings.provisioning_policy

        self.topics = TopicRegistry(self.gateway, self.policy)
        self.subscriptions = SubscriptionRegistry(
            self.gateway, self.topics, self.policy
        )
        self.publisher = Publisher(
            self.gateway, self.topics, service_name=self.settings.service_name
        )
        self.subscriber = Subscriber(
            self.gateway,
            self.subscriptions,
            max_concurrency=self.settings.max_messages,
        )
        self._is_running = False

    async def start(self) -> None:
        """Connect to the broker. Topics and subscriptions resolve lazily."""
        if self._is_running:
            return
        logger.info(
            f"Starting pub/sub SDK for service '{self.settings.service_name}' "
            f"(policy={self.policy.value})"
        )
        await self.gateway.connect()
        self._is_running = True

    async def publish(
        self,
        topic_name: str,
        event: Optional[Mapping[str, Any]] = None,
        options: Optional[PublishOptions] = None,
    ) -> str:
        return await self.publisher.publish(topic_name, event, options)

    async def publish_batch(
        self,
        topic_name: str,
        events: Iterable[Mapping[str, Any]],
        options: Optional[PublishOptions] = None,
    ) -> List[str]:
        return await self.publisher.publish_batch(topic_name, events, options)

    async def subscribe(
        self,
        topic_name: str,
        subscription_name: str,
        handler: EventHandler,
        options: Optional[SubscribeOptions] = None,
    ) -> None:
        await self.subscriber.subscribe(
            topic_name, subscription_name, handler, options=options
        )

    async def subscribe_to_events(
        self,
        topic_name: str,
        subscription_name: str,
        event_types: Iterable[str],
        handler: EventHandler,
        options: Optional[SubscribeOptions] = None,
    ) -> None:
        await self.subscriber.subscribe_to_events(
            topic_name, subscription_name, event_types, handler, options=options
        )

    async def unsubscribe(self, subscription_name: str) -> bool:
        return await self.subscriber.unsubscribe(subscription_name)

    def get_active_subscriptions(self) -> List[str]:
        return self.subscriber.get_active_subscriptions()

    def get_registered_handlers(self) -> List[HandlerRegistration]:
        return self.subscriber.get_registered_handlers()

    def health(self) -> Dict[str, Any]:
        return {
            "service": self.settings.service_name,
            "environment": self.settings.environment,
            "policy": self.policy.value,
            "is_running": self._is_running,
            "gateway_type": self.gateway.__class__.__name__,
            "cached_topics": self.topics.names(),
            "active_subscriptions": self.get_active_subscriptions(),
            "deliveries": self.subscriber.stats(),
        }

    async def shutdown(self) -> None:
        """
        Drain everything this SDK holds, best effort.

        - close every active subscription (waits for running handlers)
        - flush every cached topic
        - close the gateway
        A failure on one resource is logged and never stops the others.
        """
        logger.info("Shutting down pub/sub SDK...")

        try:
            await self.subscriber.close()
        except Exception as e:
            logger.error(f"Error closing subscriber: {e}")

        try:
            await self.publisher.close()
        except Exception as e:
            logger.error(f"Error closing publisher: {e}")

        try:
            await self.gateway.close()
            logger.info("Gateway closed")
        except Exception as e:
            logger.error(f"Error closing gateway: {e}")

        self._is_running = False
        logger.info("Pub/sub SDK shutdown complete")
