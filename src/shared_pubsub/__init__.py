from shared_pubsub.delivery import DeliveryLoop, DeliveryResult
from shared_pubsub.errors import (
    HandlerFailure,
    MalformedMessage,
    ProvisioningError,
    PubSubError,
    SubscriptionNotFound,
    TopicNotFound,
    TransportFailure,
)
from shared_pubsub.gateway import BaseBrokerGateway, RedisStreamGateway, create_gateway
from shared_pubsub.publisher import Publisher
from shared_pubsub.registry import SubscriptionRegistry, TopicRegistry
from shared_pubsub.schemas import (
    DeliveryOutcome,
    EventEnvelope,
    EventMetadata,
    HandlerRegistration,
    ProvisioningPolicy,
    PublishOptions,
    ReceivedMessage,
    SubscribeOptions,
    SubscriptionConfig,
    WireMessage,
)
from shared_pubsub.sdk import PubSubSDK
from shared_pubsub.settings import Settings
from shared_pubsub.subscriber import Subscriber

__version__ = "0.1.0"

__all__ = [
    "BaseBrokerGateway",
    "DeliveryLoop",
    "DeliveryOutcome",
    "DeliveryResult",
    "EventEnvelope",
    "EventMetadata",
    "HandlerFailure",
    "HandlerRegistration",
    "MalformedMessage",
    "ProvisioningError",
    "ProvisioningPolicy",
    "PubSubError",
    "PubSubSDK",
    "PublishOptions",
    "Publisher",
    "ReceivedMessage",
    "RedisStreamGateway",
    "Settings",
    "SubscribeOptions",
    "Subscriber",
    "SubscriptionConfig",
    "SubscriptionNotFound",
    "SubscriptionRegistry",
    "TopicNotFound",
    "TopicRegistry",
    "TransportFailure",
    "WireMessage",
    "create_gateway",
]
