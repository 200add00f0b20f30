from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel, Field
import uvicorn

from shared_pubsub.errors import ProvisioningError, TransportFailure
from shared_pubsub.schemas import PublishOptions
from shared_pubsub.sdk import PubSubSDK


class PublishRequest(BaseModel):
    event_type: str = Field(min_length=1)
    payload: Any = None
    ordering_key: Optional[str] = None
    attributes: Dict[str, str] = Field(default_factory=dict)


def create_app(sdk: PubSubSDK) -> FastAPI:
    app = FastAPI(
        title="shared-pubsub Control API",
        description="HTTP API to publish events and inspect subscriptions of a running service.",
        version="0.1.0",
    )

    @app.post(
        "/topics/{topic}/events",
        summary="Publish an event to a topic",
        response_description="Returns the broker message ID.",
    )
    async def publish_event(topic: str, request: PublishRequest):
        """
        Publish one event envelope.

        Example request body:
        ```json
        {
            "event_type": "post.liked",
            "payload": {"postId": "p1", "userId": "u1"},
            "ordering_key": "p1"
        }
        ```
        """
        try:
            message_id = await sdk.publish(
                topic,
                {"eventType": request.event_type, "payload": request.payload},
                PublishOptions(
                    ordering_key=request.ordering_key, attributes=request.attributes
                ),
            )
        except ProvisioningError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except TransportFailure as e:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
        return {"message_id": message_id, "status": "published"}

    @app.get("/subscriptions")
    async def list_subscriptions():
        """Active subscriptions of this process with delivery counters."""
        return sdk.subscriber.stats()

    @app.get("/handlers")
    async def list_handlers():
        """Registered handlers, in registration order."""
        return [
            {
                "topic": h.topic,
                "subscription": h.subscription,
                "handler": h.handler_name,
                "event_types": h.event_types,
            }
            for h in sdk.get_registered_handlers()
        ]

    @app.delete("/subscriptions/{name}")
    async def unsubscribe(name: str):
        """
        Stop consuming a subscription.

        The subscription stays on the broker and messages keep queueing;
        subscribing again resumes delivery.
        """
        stopped = await sdk.unsubscribe(name)
        if not stopped:
            raise HTTPException(status_code=404, detail="Subscription not active")
        return {"status": "unsubscribed", "subscription": name}

    @app.get("/health")
    async def health():
        return sdk.health()

    return app


async def start_api_server(sdk: PubSubSDK, host: str = "127.0.0.1", port: int = 8000):
    """Serve the control API until cancelled."""
    app = create_app(sdk)
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    await server.serve()
