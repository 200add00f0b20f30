from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional

from shared_pubsub.schemas import (
    DeliveryOutcome,
    ReceivedMessage,
    SubscriptionConfig,
    SubscriptionHandle,
    TopicHandle,
)

Dispatch = Callable[[ReceivedMessage], Awaitable[DeliveryOutcome]]


class BaseBrokerGateway(ABC):
    """
    Client-side contract of the message broker.

    Drivers adapt a concrete broker (Redis Streams, Pub/Sub, Kafka, ...).
    The broker owns durability, redelivery backoff and dead-lettering;
    the engine only reports one outcome per delivered message.
    """

    @abstractmethod
    async def connect(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError

    # topics
    @abstractmethod
    async def topic_exists(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def create_topic(self, name: str) -> None:
        """Create a topic. Creating an existing topic is not an error."""
        raise NotImplementedError

    @abstractmethod
    async def get_topic_handle(self, name: str) -> TopicHandle:
        raise NotImplementedError

    @abstractmethod
    async def publish(
        self,
        topic: TopicHandle,
        data: bytes,
        attributes: Dict[str, str],
        ordering_key: Optional[str] = None,
    ) -> str:
        """Publish one message and return the broker-issued message id."""
        raise NotImplementedError

    @abstractmethod
    async def flush(self, topic: TopicHandle) -> None:
        """Block until every in-flight publish on the topic is settled."""
        raise NotImplementedError

    # subscriptions
    @abstractmethod
    async def subscription_exists(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def create_subscription(
        self, name: str, topic_name: str, config: SubscriptionConfig
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_subscription_handle(self, name: str) -> SubscriptionHandle:
        raise NotImplementedError

    # delivery channel
    @abstractmethod
    async def open_subscription(
        self, subscription: SubscriptionHandle, dispatch: Dispatch
    ) -> None:
        """
        Start delivering messages of the subscription to `dispatch`.

        Each delivered message is passed to `dispatch` exactly once per
        delivery attempt; the returned outcome is applied as ack or nack.
        """
        raise NotImplementedError

    @abstractmethod
    async def close_subscription(self, subscription: SubscriptionHandle) -> None:
        """Stop new deliveries, then wait for dispatched messages to settle."""
        raise NotImplementedError
