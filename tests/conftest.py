"""Shared fixtures: an in-memory broker that applies the subscription policy."""

import asyncio
import itertools
from typing import Dict, List, Tuple

import pytest
import pytest_asyncio

from shared_pubsub.errors import SubscriptionNotFound
from shared_pubsub.gateway.base import BaseBrokerGateway, Dispatch
from shared_pubsub.schemas import (
    DeliveryOutcome,
    ProvisioningPolicy,
    ReceivedMessage,
    SubscriptionConfig,
    SubscriptionHandle,
    TopicHandle,
)
from shared_pubsub.sdk import PubSubSDK
from shared_pubsub.settings import Settings


class FakeBrokerGateway(BaseBrokerGateway):
    """
    Broker double.

    Redelivers nacked messages immediately (no backoff) until the
    subscription's max delivery attempts, then appends them to the
    dead-letter topic, the way a managed broker would.
    """

    def __init__(self):
        self.connected = False
        self.topics: set = set()
        self.subscriptions: Dict[str, Tuple[str, SubscriptionConfig]] = {}
        self.messages: Dict[str, List[ReceivedMessage]] = {}
        self.outcomes: List[Tuple[str, str, int, DeliveryOutcome]] = []
        self.create_topic_calls: List[str] = []
        self.create_subscription_calls: List[str] = []
        self.flushed: List[str] = []
        self.closed: List[str] = []
        self._open: Dict[str, Dispatch] = {}
        self._tasks: Dict[str, set] = {}
        self._ids = itertools.count(1)

    async def connect(self):
        self.connected = True

    async def close(self):
        for name in list(self._open):
            await self.close_subscription(self.handle_for(name))
        self.connected = False

    async def topic_exists(self, name):
        return name in self.topics

    async def create_topic(self, name):
        self.create_topic_calls.append(name)
        self.topics.add(name)

    async def get_topic_handle(self, name):
        return TopicHandle(name=name, resource=f"fake:{name}")

    async def publish(self, topic, data, attributes, ordering_key=None):
        message = ReceivedMessage(
            id=f"msg-{next(self._ids)}",
            data=data,
            attributes=dict(attributes),
            ordering_key=ordering_key,
        )
        self.messages.setdefault(topic.name, []).append(message)
        for name, (sub_topic, _) in self.subscriptions.items():
            if sub_topic == topic.name and name in self._open:
                self._schedule(name, message, attempt=1)
        return message.id

    async def flush(self, topic):
        self.flushed.append(topic.name)

    async def subscription_exists(self, name):
        return name in self.subscriptions

    async def create_subscription(self, name, topic_name, config):
        self.create_subscription_calls.append(name)
        self.subscriptions[name] = (topic_name, config)

    async def get_subscription_handle(self, name):
        if name not in self.subscriptions:
            raise SubscriptionNotFound(name)
        return self.handle_for(name)

    def handle_for(self, name) -> SubscriptionHandle:
        topic, config = self.subscriptions[name]
        return SubscriptionHandle(name=name, topic=topic, config=config)

    async def open_subscription(self, subscription, dispatch):
        self._open[subscription.name] = dispatch

    async def close_subscription(self, subscription):
        self.closed.append(subscription.name)
        self._open.pop(subscription.name, None)
        tasks = self._tasks.pop(subscription.name, set())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # test helpers
    def inject(self, subscription: str, data: bytes, attributes=None) -> str:
        """Deliver raw bytes to an open subscription, bypassing publish."""
        message = ReceivedMessage(
            id=f"raw-{next(self._ids)}", data=data, attributes=attributes or {}
        )
        self._schedule(subscription, message, attempt=1)
        return message.id

    def _schedule(self, name: str, message: ReceivedMessage, attempt: int):
        task = asyncio.ensure_future(self._deliver(name, message, attempt))
        tasks = self._tasks.setdefault(name, set())
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    async def _deliver(self, name: str, message: ReceivedMessage, attempt: int):
        dispatch = self._open.get(name)
        if dispatch is None:
            return
        outcome = await dispatch(message.model_copy(update={"delivery_attempt": attempt}))
        self.outcomes.append((name, message.id, attempt, outcome))
        if outcome is DeliveryOutcome.ACK:
            return
        _, config = self.subscriptions[name]
        dead_letter = config.dead_letter
        if dead_letter and attempt >= dead_letter.max_attempts:
            self.messages.setdefault(dead_letter.topic, []).append(message)
            return
        self._schedule(name, message, attempt + 1)

    async def drain(self):
        """Wait until no delivery is in flight on any subscription."""
        while True:
            pending = [t for tasks in self._tasks.values() for t in tasks]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def outcomes_for(self, subscription: str) -> List[DeliveryOutcome]:
        return [o for name, _, _, o in self.outcomes if name == subscription]


@pytest.fixture
def gateway():
    return FakeBrokerGateway()


@pytest.fixture
def settings():
    return Settings(service_name="test-service", environment="development")


@pytest_asyncio.fixture
async def sdk(gateway, settings):
    """An SDK wired to the fake broker, auto-provisioning."""
    instance = PubSubSDK(
        gateway=gateway, settings=settings, policy=ProvisioningPolicy.AUTO_PROVISION
    )
    await instance.start()
    yield instance
    await instance.shutdown()


@pytest.fixture
def production_sdk(gateway):
    """An SDK whose policy comes from a production environment setting."""
    return PubSubSDK(
        gateway=gateway,
        settings=Settings(service_name="test-service", environment="production"),
    )
