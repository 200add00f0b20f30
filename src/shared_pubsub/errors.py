"""
Error taxonomy for the pub/sub engine.

Provisioning and transport errors propagate to the caller of publish and
subscribe. Malformed messages and handler failures never leave the
delivery loop: they are turned into ack / nack decisions.
"""

from typing import Optional


class PubSubError(Exception):
    """Base class for every error raised by shared_pubsub."""


class ProvisioningError(PubSubError):
    """A required topic or subscription does not exist."""

    resource = "resource"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{self.resource} not found: {name}")


class TopicNotFound(ProvisioningError):
    resource = "Topic"


class SubscriptionNotFound(ProvisioningError):
    resource = "Subscription"


class TransportFailure(PubSubError):
    """The broker could not be reached or rejected a call."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"Broker call failed during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class MalformedMessage(PubSubError):
    """A delivered payload cannot be decoded into a wire message."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Malformed message: {reason}")


class HandlerFailure(PubSubError):
    """A consumer callback raised while processing a message."""

    def __init__(self, subscription: str, message_id: str, cause: BaseException):
        self.subscription = subscription
        self.message_id = message_id
        self.cause = cause
        super().__init__(
            f"Handler failed on {subscription} for message {message_id}: {cause}"
        )
