import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from shared_pubsub import codec
from shared_pubsub.errors import HandlerFailure, MalformedMessage, PubSubError
from shared_pubsub.schemas import (
    DeliveryOutcome,
    EventHandler,
    ReceivedMessage,
    SubscriptionHandle,
)

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of one dispatch: exactly one of ack / nack, plus the reason."""

    message_id: str
    outcome: DeliveryOutcome
    error: Optional[PubSubError] = None
    duration_ms: float = 0.0


class DeliveryLoop:
    """
    Dispatches delivered messages of one subscription to its handler.

    Every message runs as its own task on the gateway side; this class
    bounds how many handlers run at once and turns the handler's fate
    into an ack / nack decision. Handler errors never escape.
    """

    def __init__(
        self,
        subscription: SubscriptionHandle,
        handler: EventHandler,
        max_concurrency: int = 10,
    ):
        self.subscription = subscription
        self.handler = handler
        self.max_concurrency = max_concurrency
        self._slots = asyncio.Semaphore(max_concurrency)
        self.counters: Dict[str, int] = {
            "received": 0,
            "acked": 0,
            "nacked": 0,
            "malformed": 0,
        }

    async def __call__(self, message: ReceivedMessage) -> DeliveryOutcome:
        result = await self.dispatch(message)
        return result.outcome

    async def dispatch(self, message: ReceivedMessage) -> DeliveryResult:
        async with self._slots:
            return await self._process(message)

    async def _process(self, message: ReceivedMessage) -> DeliveryResult:
        name = self.subscription.name
        start_time = time.time()
        self.counters["received"] += 1

        try:
            wire = codec.parse(message.data)
        except MalformedMessage as e:
            # unparsable payloads can never succeed, drop them for good
            logger.warning(f"[DeliveryLoop] invalid message format: {name} - {message.id}")
            self.counters["malformed"] += 1
            self.counters["acked"] += 1
            return DeliveryResult(message.id, DeliveryOutcome.ACK, error=e)
        wire.message_id = message.id

        try:
            await self._invoke(wire.data, wire.metadata)
        except Exception as e:
            failure = HandlerFailure(name, message.id, e)
            logger.exception(f"[DeliveryLoop] {failure}")
            self.counters["nacked"] += 1
            return DeliveryResult(
                message.id,
                DeliveryOutcome.NACK,
                error=failure,
                duration_ms=(time.time() - start_time) * 1000,
            )

        duration_ms = (time.time() - start_time) * 1000
        self.counters["acked"] += 1
        logger.debug(
            f"[DeliveryLoop] processed: {name} - {wire.data.event_type} "
            f"({duration_ms:.0f}ms, attempt {message.delivery_attempt})"
        )
        return DeliveryResult(message.id, DeliveryOutcome.ACK, duration_ms=duration_ms)

    async def _invoke(self, event: Any, metadata: Any) -> None:
        await invoke_handler(self.handler, event, metadata)


async def invoke_handler(handler: EventHandler, event: Any, metadata: Any) -> None:
    """Await async handlers; run sync ones in the default executor."""
    if asyncio.iscoroutinefunction(handler):
        await handler(event, metadata)
        return
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, handler, event, metadata)
    if asyncio.iscoroutine(result):
        await result
