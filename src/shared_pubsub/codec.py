"""
Envelope codec.

Turns an envelope plus its metadata into the bytes and string attributes
handed to the broker, and back. The body is compact JSON with sorted keys
so the same input always yields the same bytes.
"""

import json
import logging
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from shared_pubsub.errors import MalformedMessage
from shared_pubsub.schemas import EventEnvelope, EventMetadata, WireMessage, utcnow

logger = logging.getLogger(__name__)

STANDARD_ATTRIBUTES = ("eventType", "eventId", "source", "version")


def build_attributes(
    envelope: EventEnvelope, extra: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    attributes = {
        "eventType": envelope.event_type,
        "eventId": envelope.event_id,
        "source": envelope.source,
        "version": envelope.version,
    }
    attributes.update({str(k): str(v) for k, v in (extra or {}).items()})
    return attributes


def encode(
    envelope: EventEnvelope,
    metadata: EventMetadata,
    published_at: Optional[datetime] = None,
    attributes: Optional[Mapping[str, str]] = None,
) -> Tuple[bytes, Dict[str, str]]:
    message = WireMessage(
        data=envelope,
        metadata=metadata,
        published_at=published_at or utcnow(),
    )
    body = message.model_dump(mode="json", by_alias=True)
    body["metadata"] = metadata.model_dump(
        mode="json", by_alias=True, exclude_none=True
    )
    raw = json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return raw, build_attributes(envelope, attributes)


def parse(data: bytes) -> WireMessage:
    """Strict decode. Raises MalformedMessage on anything unusable."""
    try:
        body = json.loads(data)
    except (TypeError, ValueError, RecursionError) as e:
        raise MalformedMessage(f"body is not JSON ({type(e).__name__})") from e

    if not isinstance(body, dict):
        raise MalformedMessage("body is not a JSON object")
    envelope = body.get("data")
    if not isinstance(envelope, dict):
        raise MalformedMessage("missing 'data' object")
    event_type = envelope.get("eventType")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedMessage("missing 'data.eventType'")
    if body.get("metadata") is None:
        body.pop("metadata", None)

    try:
        return WireMessage.model_validate(body)
    except ValidationError as e:
        raise MalformedMessage(f"schema violation ({e.error_count()} errors)") from e
    except RecursionError as e:
        raise MalformedMessage("body nested too deeply") from e


def decode(data: bytes, message_id: Optional[str] = None) -> Optional[WireMessage]:
    """Lenient decode: returns None instead of raising for malformed input."""
    try:
        message = parse(data)
    except MalformedMessage as e:
        logger.debug(f"[Codec] rejected message {message_id}: {e.reason}")
        return None
    message.message_id = message_id
    return message
