from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = "1.0"
DEAD_LETTER_SUFFIX = "-dlq"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dead_letter_topic(topic: str) -> str:
    return f"{topic}{DEAD_LETTER_SUFFIX}"


def new_id() -> str:
    return str(uuid.uuid4())


class WireModel(BaseModel):
    """Base for models that travel on the wire with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventEnvelope(WireModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    event_id: str = Field(default_factory=new_id, min_length=1)
    event_type: str = Field(default="unknown", min_length=1)
    timestamp: datetime = Field(default_factory=utcnow)
    version: str = Field(default=SCHEMA_VERSION, min_length=1)
    source: str = Field(default="unknown", min_length=1)
    payload: Any = None


class EventMetadata(WireModel):
    correlation_id: Optional[str] = None
    trace_id: Optional[str] = None
    causation_id: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def fresh(cls) -> "EventMetadata":
        """Mint a new correlation/trace pair, independent of any payload."""
        return cls(correlation_id=new_id(), trace_id=new_id())


class WireMessage(WireModel):
    data: EventEnvelope
    metadata: EventMetadata = Field(default_factory=EventMetadata)
    published_at: datetime = Field(default_factory=utcnow)
    # assigned by the broker on receipt, never serialized
    message_id: Optional[str] = Field(default=None, exclude=True)


class PublishOptions(BaseModel):
    ordering_key: Optional[str] = None
    attributes: Dict[str, str] = Field(default_factory=dict)


class SubscribeOptions(BaseModel):
    ack_deadline: Optional[int] = Field(default=None, gt=0)
    max_messages: Optional[int] = Field(default=None, gt=0)


class RetryBackoff(BaseModel):
    min_seconds: float = Field(default=10, ge=0)
    max_seconds: float = Field(default=600, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "RetryBackoff":
        if self.max_seconds < self.min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")
        return self

    def delay_for(self, attempt: int) -> float:
        """Exponential delay before redelivering after the given attempt."""
        attempt = max(attempt, 1)
        return min(self.max_seconds, self.min_seconds * 2 ** (attempt - 1))


class DeadLetterPolicy(BaseModel):
    topic: str = Field(min_length=1)
    max_attempts: int = Field(default=5, ge=1)


class SubscriptionConfig(BaseModel):
    ack_deadline_seconds: int = Field(default=30, gt=0)
    retention_seconds: int = Field(default=604_800, gt=0)
    retry_backoff: RetryBackoff = Field(default_factory=RetryBackoff)
    dead_letter: Optional[DeadLetterPolicy] = None


class TopicHandle(BaseModel):
    name: str
    resource: str


class SubscriptionHandle(BaseModel):
    name: str
    topic: str
    config: SubscriptionConfig = Field(default_factory=SubscriptionConfig)


class ReceivedMessage(BaseModel):
    """A message as handed over by the gateway's delivery channel."""

    id: str
    data: bytes
    attributes: Dict[str, str] = Field(default_factory=dict)
    delivery_attempt: int = 1
    ordering_key: Optional[str] = None


class DeliveryOutcome(str, Enum):
    ACK = "ack"
    NACK = "nack"


class ProvisioningPolicy(str, Enum):
    REQUIRE_EXISTING = "require_existing"
    AUTO_PROVISION = "auto_provision"


EventHandler = Callable[[EventEnvelope, EventMetadata], Union[Awaitable[Any], Any]]


class HandlerRegistration(BaseModel):
    topic: str
    subscription: str
    handler: Callable[..., Any]
    event_types: Optional[List[str]] = None

    @property
    def handler_name(self) -> str:
        return getattr(self.handler, "__name__", repr(self.handler))
