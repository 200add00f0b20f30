import logging
from typing import Any, Dict, Iterable, List, Optional

from shared_pubsub.delivery import DeliveryLoop, invoke_handler
from shared_pubsub.gateway.base import BaseBrokerGateway
from shared_pubsub.registry import SubscriptionRegistry
from shared_pubsub.schemas import (
    EventEnvelope,
    EventHandler,
    EventMetadata,
    HandlerRegistration,
    SubscribeOptions,
)

logger = logging.getLogger(__name__)


class Subscriber:
    """
    Binds handlers to subscriptions and owns their delivery loops.

    Usage:
        await subscriber.subscribe(
            "user-events",
            "notification-service-user-events",
            handle_user_event,
        )

    Registrations live only in this process; services re-subscribe at
    startup.
    """

    def __init__(
        self,
        gateway: BaseBrokerGateway,
        subscriptions: SubscriptionRegistry,
        max_concurrency: int = 10,
    ):
        self.gateway = gateway
        self.subscriptions = subscriptions
        self.max_concurrency = max_concurrency
        self._loops: Dict[str, DeliveryLoop] = {}
        self._handlers: List[HandlerRegistration] = []

    async def subscribe(
        self,
        topic_name: str,
        subscription_name: str,
        handler: EventHandler,
        options: Optional[SubscribeOptions] = None,
        event_types: Optional[Iterable[str]] = None,
    ) -> None:
        if subscription_name in self._loops:
            raise ValueError(f"Subscription already active: {subscription_name}")
        try:
            subscription = await self.subscriptions.resolve(
                topic_name, subscription_name, options
            )
            concurrency = (options.max_messages if options else None) or (
                self.max_concurrency
            )
            loop = DeliveryLoop(subscription, handler, max_concurrency=concurrency)
            await self.gateway.open_subscription(subscription, loop)
        except Exception as e:
            logger.error(
                f"[Subscriber] subscribe failed: {topic_name} -> {subscription_name} - {e}"
            )
            raise

        self._loops[subscription_name] = loop
        self._handlers.append(
            HandlerRegistration(
                topic=topic_name,
                subscription=subscription_name,
                handler=handler,
                event_types=list(event_types) if event_types is not None else None,
            )
        )
        logger.info(f"[Subscriber] subscribed: {topic_name} -> {subscription_name}")

    async def subscribe_to_events(
        self,
        topic_name: str,
        subscription_name: str,
        event_types: Iterable[str],
        handler: EventHandler,
        options: Optional[SubscribeOptions] = None,
    ) -> None:
        """Like subscribe, but events outside `event_types` are acked unseen."""
        allowed = frozenset(event_types)

        async def filtered_handler(event: EventEnvelope, metadata: EventMetadata):
            if event.event_type not in allowed:
                return
            await invoke_handler(handler, event, metadata)

        filtered_handler.__name__ = getattr(handler, "__name__", "filtered_handler")

        await self.subscribe(
            topic_name,
            subscription_name,
            filtered_handler,
            options=options,
            event_types=sorted(allowed),
        )

    async def unsubscribe(self, subscription_name: str) -> bool:
        """Stop delivering to a subscription. Returns False if it was not active."""
        loop = self._loops.pop(subscription_name, None)
        if loop is None:
            return False
        try:
            await self.gateway.close_subscription(loop.subscription)
        finally:
            self.subscriptions.evict(subscription_name)
            self._handlers = [
                h for h in self._handlers if h.subscription != subscription_name
            ]
        logger.info(f"[Subscriber] subscription stopped: {subscription_name}")
        return True

    async def close(self) -> None:
        """Close every active subscription; one failure does not stop the rest."""
        logger.info("[Subscriber] closing...")
        try:
            for name, loop in list(self._loops.items()):
                try:
                    await self.gateway.close_subscription(loop.subscription)
                    logger.debug(f"[Subscriber] subscription closed: {name}")
                except Exception as e:
                    logger.error(f"[Subscriber] subscription close failed: {name} - {e}")
        finally:
            self._loops.clear()
            self._handlers.clear()
            self.subscriptions.clear()

    def get_active_subscriptions(self) -> List[str]:
        return list(self._loops)

    def get_registered_handlers(self) -> List[HandlerRegistration]:
        return list(self._handlers)

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {
                "topic": loop.subscription.topic,
                "max_concurrency": loop.max_concurrency,
                **loop.counters,
            }
            for name, loop in self._loops.items()
        }
