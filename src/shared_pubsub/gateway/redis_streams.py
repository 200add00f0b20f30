import asyncio
import base64
import binascii
import json
import logging
import time
from typing import Any, Awaitable, Dict, List, Optional, Set
from uuid import uuid4

from redis import asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from shared_pubsub.errors import SubscriptionNotFound, TransportFailure
from shared_pubsub.gateway.base import BaseBrokerGateway, Dispatch
from shared_pubsub.schemas import (
    DeliveryOutcome,
    ReceivedMessage,
    SubscriptionConfig,
    SubscriptionHandle,
    TopicHandle,
    dead_letter_topic,
)

logger = logging.getLogger(__name__)

TOPICS_KEY = "pubsub:topics"
SUBSCRIPTION_PREFIX = "pubsub:subscription:"
RETRY_PREFIX = "pubsub:retry:"
RECLAIM_PAGE_SIZE = 100


class RedisStreamGateway(BaseBrokerGateway):
    """
    Broker gateway on top of Redis Streams.

      - one stream per topic (stream:{topic}), registered in a set
      - one consumer group per subscription, config kept in a hash
      - nack schedules a redelivery with exponential backoff
      - reclaim loop redelivers nacked / expired messages and moves them
        to the dead-letter topic once max delivery attempts is reached
      - a nacked message holds back later messages of its ordering key
        until it is acked or dead-lettered
      - retention enforced by MINID trimming
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        default_maxlen: int = 10_000,
        reclaim_interval: float = 5.0,
        block_ms: int = 5000,
        prefetch: int = 100,
        redis: Optional[aioredis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.default_maxlen = default_maxlen
        self.reclaim_interval = reclaim_interval
        self.block_ms = block_ms
        self.prefetch = prefetch

        self._redis: Optional[aioredis.Redis] = redis
        self._connect_lock = asyncio.Lock()

        self._consumers: Dict[str, Dict[str, Any]] = {}
        self._inflight_publishes: Dict[str, Set[asyncio.Future]] = {}

    # ----------------
    # Connection
    # ----------------
    async def connect(self) -> None:
        async with self._connect_lock:
            if self._redis:
                return
            self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
            logger.info(f"[RedisStreamGateway] connected -> {self.redis_url}")

    async def close(self) -> None:
        for name in list(self._consumers):
            try:
                await self.close_subscription(self._consumers[name]["handle"])
            except Exception as e:
                logger.error(f"[RedisStreamGateway] error closing {name}: {e}")
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        logger.info("[RedisStreamGateway] closed")

    async def _call(self, operation: str, awaitable: Awaitable) -> Any:
        try:
            return await awaitable
        except RedisError as e:
            raise TransportFailure(operation, e) from e

    async def _client(self) -> aioredis.Redis:
        if not self._redis:
            await self.connect()
        return self._redis

    @staticmethod
    def _stream(topic: str) -> str:
        return f"stream:{topic}"

    # ----------------
    # Topics
    # ----------------
    async def topic_exists(self, name: str) -> bool:
        redis = await self._client()
        return bool(await self._call("topic_exists", redis.sismember(TOPICS_KEY, name)))

    async def create_topic(self, name: str) -> None:
        redis = await self._client()
        added = await self._call("create_topic", redis.sadd(TOPICS_KEY, name))
        if added:
            logger.info(f"[RedisStreamGateway] created topic {name}")

    async def get_topic_handle(self, name: str) -> TopicHandle:
        return TopicHandle(name=name, resource=self._stream(name))

    async def publish(
        self,
        topic: TopicHandle,
        data: bytes,
        attributes: Dict[str, str],
        ordering_key: Optional[str] = None,
    ) -> str:
        redis = await self._client()
        fields = {
            "data": base64.b64encode(data).decode("ascii"),
            "attributes": json.dumps(attributes, sort_keys=True),
        }
        if ordering_key:
            fields["ordering_key"] = ordering_key

        task = asyncio.ensure_future(
            redis.xadd(
                topic.resource, fields, maxlen=self.default_maxlen, approximate=True
            )
        )
        pending = self._inflight_publishes.setdefault(topic.name, set())
        pending.add(task)
        task.add_done_callback(pending.discard)

        msg_id = await self._call("publish", task)
        logger.debug(f"[RedisStreamGateway] published {topic.resource} id={msg_id}")
        return msg_id

    async def flush(self, topic: TopicHandle) -> None:
        pending = list(self._inflight_publishes.get(topic.name, ()))
        if not pending:
            return
        results = await asyncio.gather(*pending, return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise TransportFailure("flush", errors[0])

    # ----------------
    # Subscriptions
    # ----------------
    async def subscription_exists(self, name: str) -> bool:
        redis = await self._client()
        return bool(
            await self._call(
                "subscription_exists", redis.exists(SUBSCRIPTION_PREFIX + name)
            )
        )

    async def create_subscription(
        self, name: str, topic_name: str, config: SubscriptionConfig
    ) -> None:
        redis = await self._client()
        stream = self._stream(topic_name)
        try:
            await redis.xgroup_create(stream, name, id="$", mkstream=True)
            logger.info(f"[RedisStreamGateway] created group {name} for {stream}")
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise TransportFailure("create_subscription", e) from e
            logger.debug(f"[RedisStreamGateway] group {name} exists")
        except RedisError as e:
            raise TransportFailure("create_subscription", e) from e

        await self._call(
            "create_subscription",
            redis.hset(
                SUBSCRIPTION_PREFIX + name,
                mapping={
                    "topic": topic_name,
                    "config": config.model_dump_json(),
                    "created_at": time.time(),
                },
            ),
        )

    async def get_subscription_handle(self, name: str) -> SubscriptionHandle:
        redis = await self._client()
        data = await self._call(
            "get_subscription", redis.hgetall(SUBSCRIPTION_PREFIX + name)
        )
        if not data:
            raise SubscriptionNotFound(name)
        return SubscriptionHandle(
            name=name,
            topic=data["topic"],
            config=SubscriptionConfig.model_validate_json(data.get("config") or "{}"),
        )

    # ----------------
    # Delivery channel
    # ----------------
    async def open_subscription(
        self, subscription: SubscriptionHandle, dispatch: Dispatch
    ) -> None:
        if subscription.name in self._consumers:
            raise ValueError(f"Subscription already open: {subscription.name}")
        await self._client()

        state: Dict[str, Any] = {
            "handle": subscription,
            "stream": self._stream(subscription.topic),
            "consumer": f"consumer:{subscription.name}:{uuid4().hex[:8]}",
            "retry_key": RETRY_PREFIX + subscription.name,
            "dispatch": dispatch,
            "running": True,
            "inflight": {},
            "ordering_locks": {},
            # ordering key -> id of the nacked message holding it back
            "blocked_keys": {},
            # ordering key -> messages read while the key was blocked
            "parked": {},
            "parked_ids": set(),
        }
        self._consumers[subscription.name] = state
        state["task"] = asyncio.create_task(self._consume_loop(state))
        state["reclaim_task"] = asyncio.create_task(self._reclaim_loop(state))
        logger.info(
            f"[RedisStreamGateway] opened subscription={subscription.name} "
            f"topic={subscription.topic} consumer={state['consumer']}"
        )

    async def close_subscription(self, subscription: SubscriptionHandle) -> None:
        state = self._consumers.pop(subscription.name, None)
        if not state:
            return
        state["running"] = False
        # stop reading first, then let dispatched messages settle
        for key in ("task", "reclaim_task"):
            state[key].cancel()
        await asyncio.gather(state["task"], state["reclaim_task"], return_exceptions=True)

        inflight = list(state["inflight"].values())
        if inflight:
            logger.info(
                f"[RedisStreamGateway] waiting for {len(inflight)} in-flight "
                f"messages on {subscription.name}"
            )
            await asyncio.gather(*inflight, return_exceptions=True)
        logger.info(f"[RedisStreamGateway] closed subscription={subscription.name}")

    def _spawn(self, state: Dict[str, Any], msg_id: str, fields: Dict, attempt: int):
        task = asyncio.create_task(self._deliver(state, msg_id, fields, attempt))
        state["inflight"][msg_id] = task
        task.add_done_callback(lambda _: state["inflight"].pop(msg_id, None))

    async def _consume_loop(self, state: Dict[str, Any]):
        handle: SubscriptionHandle = state["handle"]
        logger.info(f"[RedisStreamGateway] consume loop start {handle.name}")
        try:
            while state["running"]:
                try:
                    capacity = self.prefetch - len(state["inflight"])
                    if capacity <= 0:
                        await asyncio.wait(
                            set(state["inflight"].values()),
                            return_when=asyncio.FIRST_COMPLETED,
                        )
                        continue
                    entries = await self._redis.xreadgroup(
                        groupname=handle.name,
                        consumername=state["consumer"],
                        streams={state["stream"]: ">"},
                        count=capacity,
                        block=self.block_ms,
                    )
                    for _, msgs in entries or []:
                        for msg_id, fields in msgs:
                            if fields is None:
                                await self._redis.xack(
                                    state["stream"], handle.name, msg_id
                                )
                                continue
                            self._spawn(state, msg_id, fields, attempt=1)
                except asyncio.CancelledError:
                    raise
                except Exception as err:
                    logger.exception(
                        f"[RedisStreamGateway] error in consume loop {handle.name}: {err}"
                    )
                    await asyncio.sleep(1)
        finally:
            logger.info(f"[RedisStreamGateway] consume loop stopped {handle.name}")

    async def _deliver(
        self, state: Dict[str, Any], msg_id: str, fields: Dict, attempt: int
    ):
        message = self._to_received(msg_id, fields, attempt)
        key = message.ordering_key
        lock = self._acquire_ordering(state, key)
        try:
            if lock is None:
                outcome = await self._dispatch(state, message)
            else:
                async with lock:
                    blocker = state["blocked_keys"].get(key)
                    if blocker is not None and blocker != msg_id:
                        self._park(state, key, msg_id, fields, attempt)
                        return
                    outcome = await self._dispatch(state, message)
                    if outcome is DeliveryOutcome.NACK:
                        state["blocked_keys"][key] = msg_id
        finally:
            self._release_ordering(state, key)
        await self._settle(state, msg_id, outcome, attempt)
        if key and outcome is DeliveryOutcome.ACK:
            self._unblock(state, key, msg_id)

    @staticmethod
    def _park(
        state: Dict[str, Any], key: str, msg_id: str, fields: Dict, attempt: int
    ):
        """Hold a message back until the nacked message ahead of it settles."""
        state["parked"].setdefault(key, []).append((msg_id, fields, attempt))
        state["parked_ids"].add(msg_id)
        logger.debug(
            f"[RedisStreamGateway] parked {msg_id} behind "
            f"{state['blocked_keys'][key]} (key {key})"
        )

    def _unblock(self, state: Dict[str, Any], key: str, msg_id: str):
        """Release messages parked behind `msg_id`, in the order they were read."""
        if state["blocked_keys"].get(key) != msg_id:
            return
        del state["blocked_keys"][key]
        for parked_id, fields, attempt in state["parked"].pop(key, []):
            state["parked_ids"].discard(parked_id)
            self._spawn(state, parked_id, fields, attempt)

    @staticmethod
    async def _dispatch(
        state: Dict[str, Any], message: ReceivedMessage
    ) -> DeliveryOutcome:
        try:
            return await state["dispatch"](message)
        except Exception as e:
            logger.exception(
                f"[RedisStreamGateway] dispatch raised for {message.id}: {e}"
            )
            return DeliveryOutcome.NACK

    @staticmethod
    def _acquire_ordering(state: Dict[str, Any], key: Optional[str]):
        if not key:
            return None
        entry = state["ordering_locks"].setdefault(key, [asyncio.Lock(), 0])
        entry[1] += 1
        return entry[0]

    @staticmethod
    def _release_ordering(state: Dict[str, Any], key: Optional[str]):
        if not key:
            return
        entry = state["ordering_locks"].get(key)
        if entry is None:
            return
        entry[1] -= 1
        if entry[1] <= 0:
            state["ordering_locks"].pop(key, None)

    async def _settle(
        self,
        state: Dict[str, Any],
        msg_id: str,
        outcome: DeliveryOutcome,
        attempt: int,
    ):
        handle: SubscriptionHandle = state["handle"]
        try:
            if outcome is DeliveryOutcome.ACK:
                await self._redis.xack(state["stream"], handle.name, msg_id)
                await self._redis.hdel(state["retry_key"], msg_id)
            else:
                delay = handle.config.retry_backoff.delay_for(attempt)
                await self._redis.hset(
                    state["retry_key"], msg_id, str(time.time() + delay)
                )
                logger.debug(
                    f"[RedisStreamGateway] nack {msg_id} on {handle.name}, "
                    f"redelivery in {delay}s (attempt {attempt})"
                )
        except Exception as e:
            # unsettled messages fall back to ack-deadline redelivery
            logger.exception(
                f"[RedisStreamGateway] failed to {outcome.value} {msg_id}: {e}"
            )

    @staticmethod
    def _to_received(msg_id: str, fields: Dict, attempt: int) -> ReceivedMessage:
        raw = fields.get("data") or ""
        try:
            data = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError):
            data = raw.encode("utf-8")
        try:
            attributes = json.loads(fields.get("attributes") or "{}")
        except ValueError:
            attributes = {}
        if not isinstance(attributes, dict):
            attributes = {}
        return ReceivedMessage(
            id=msg_id,
            data=data,
            attributes={str(k): str(v) for k, v in attributes.items()},
            delivery_attempt=attempt,
            ordering_key=fields.get("ordering_key") or None,
        )

    # ----------------
    # Reclaim loop
    # ----------------
    async def _reclaim_loop(self, state: Dict[str, Any]):
        """
        Redeliver nacked messages once their backoff elapsed and messages
        left pending past the ack deadline; dead-letter exhausted ones.
        """
        handle: SubscriptionHandle = state["handle"]
        logger.info(f"[RedisStreamGateway] reclaim loop start {handle.name}")
        while state["running"]:
            try:
                await self._reclaim_once(state)
                await self._apply_retention(state)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"[RedisStreamGateway] reclaim loop error: {e}")
            await asyncio.sleep(self.reclaim_interval)
        logger.info(f"[RedisStreamGateway] reclaim loop stopped {handle.name}")

    async def _reclaim_once(self, state: Dict[str, Any]):
        """Walk the whole pending list of the group, one page at a time."""
        handle: SubscriptionHandle = state["handle"]
        start = "-"
        while True:
            pending = await self._redis.xpending_range(
                state["stream"],
                handle.name,
                min=start,
                max="+",
                count=RECLAIM_PAGE_SIZE,
            )
            now = time.time()
            for entry in pending:
                await self._reclaim_entry(state, entry, now)
            if len(pending) < RECLAIM_PAGE_SIZE:
                return
            # exclusive range start
            start = f"({pending[-1]['message_id']}"

    async def _reclaim_entry(self, state: Dict[str, Any], entry: Dict, now: float):
        handle: SubscriptionHandle = state["handle"]
        config = handle.config
        msg_id = entry["message_id"]
        idle = int(entry["time_since_delivered"])
        delivered = int(entry["times_delivered"])
        if msg_id in state["inflight"] or msg_id in state["parked_ids"]:
            return

        retry_at = await self._redis.hget(state["retry_key"], msg_id)
        if retry_at is not None:
            if now < float(retry_at):
                return
        elif idle < config.ack_deadline_seconds * 1000:
            return

        if config.dead_letter and delivered >= config.dead_letter.max_attempts:
            await self._dead_letter(state, msg_id, delivered)
            return

        claimed = await self._redis.xclaim(
            state["stream"],
            handle.name,
            state["consumer"],
            min_idle_time=idle,
            message_ids=[msg_id],
        )
        for claimed_id, fields in claimed:
            await self._redis.hdel(state["retry_key"], claimed_id)
            if fields is None:
                await self._redis.xack(state["stream"], handle.name, claimed_id)
                continue
            logger.warning(
                f"[RedisStreamGateway] redelivering {claimed_id} on "
                f"{handle.name} (attempt {delivered + 1})"
            )
            self._spawn(state, claimed_id, fields, attempt=delivered + 1)

    async def _dead_letter(self, state: Dict[str, Any], msg_id: str, delivered: int):
        handle: SubscriptionHandle = state["handle"]
        dead_letter = handle.config.dead_letter
        entries = await self._redis.xrange(state["stream"], min=msg_id, max=msg_id)
        if entries:
            _, fields = entries[0]
            await self._redis.sadd(TOPICS_KEY, dead_letter.topic)
            await self._redis.xadd(
                self._stream(dead_letter.topic),
                {
                    **(fields or {}),
                    "dead_lettered_from": handle.name,
                    "original_id": msg_id,
                    "delivery_attempts": str(delivered),
                },
                maxlen=self.default_maxlen,
                approximate=True,
            )
        await self._redis.xack(state["stream"], handle.name, msg_id)
        await self._redis.hdel(state["retry_key"], msg_id)
        logger.warning(
            f"[RedisStreamGateway] dead-lettered {msg_id} from {handle.name} "
            f"to {dead_letter.topic} after {delivered} attempts"
        )
        for key, blocker in list(state["blocked_keys"].items()):
            if blocker == msg_id:
                self._unblock(state, key, msg_id)

    async def _apply_retention(self, state: Dict[str, Any]):
        retention = state["handle"].config.retention_seconds
        min_id = f"{int((time.time() - retention) * 1000)}-0"
        await self._redis.xtrim(state["stream"], minid=min_id, approximate=True)

    # ----------------
    # Introspection
    # ----------------
    async def list_topics(self) -> List[Dict[str, Any]]:
        redis = await self._client()
        rows = []
        for topic in sorted(await self._call("list_topics", redis.smembers(TOPICS_KEY))):
            stream = self._stream(topic)
            try:
                groups = await redis.xinfo_groups(stream)
            except ResponseError:
                groups = []
            rows.append(
                {
                    "topic": topic,
                    "length": await self._call("list_topics", redis.xlen(stream)),
                    "subscriptions": len(groups),
                }
            )
        return rows

    async def list_subscriptions(self) -> List[Dict[str, Any]]:
        redis = await self._client()
        rows = []
        async for key in redis.scan_iter(match=f"{SUBSCRIPTION_PREFIX}*"):
            name = key[len(SUBSCRIPTION_PREFIX):]
            handle = await self.get_subscription_handle(name)
            try:
                summary = await redis.xpending(self._stream(handle.topic), name)
                pending = summary.get("pending", 0)
            except ResponseError:
                pending = 0
            dead_letter = handle.config.dead_letter
            rows.append(
                {
                    "subscription": name,
                    "topic": handle.topic,
                    "ack_deadline": handle.config.ack_deadline_seconds,
                    "pending": pending,
                    "dead_letter": dead_letter.topic if dead_letter else None,
                    "max_attempts": dead_letter.max_attempts if dead_letter else None,
                    "active": name in self._consumers,
                }
            )
        return sorted(rows, key=lambda r: r["subscription"])

    async def read_topic(self, topic: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Most recent raw messages of a topic, newest first."""
        redis = await self._client()
        entries = await self._call(
            "read_topic", redis.xrevrange(self._stream(topic), count=limit)
        )
        messages = []
        for msg_id, fields in entries:
            received = self._to_received(msg_id, fields, attempt=1)
            try:
                body = json.loads(received.data)
            except ValueError:
                body = received.data.decode("utf-8", errors="replace")
            extra = {
                k: v
                for k, v in fields.items()
                if k not in ("data", "attributes", "ordering_key")
            }
            messages.append(
                {
                    "id": msg_id,
                    "attributes": received.attributes,
                    "ordering_key": received.ordering_key,
                    "body": body,
                    **extra,
                }
            )
        return messages

    async def read_dlq(self, topic: str, limit: int = 5) -> List[Dict[str, Any]]:
        return await self.read_topic(dead_letter_topic(topic), limit=limit)
