import asyncio
import logging

from decouple import config

from shared_pubsub import PubSubSDK
from shared_pubsub.api.server import start_api_server
from shared_pubsub.settings import configure_logging
from shared_pubsub.topics import (
    INTERACTION_TOPIC,
    USER_TOPIC,
    InteractionEvents,
    UserEvents,
    interaction_subscription_name,
    user_subscription_name,
)

logger = logging.getLogger(__name__)


async def on_interaction(event, metadata):
    logger.info(
        f"notify {event.payload.get('authorId')}: {event.event_type} "
        f"(correlation={metadata.correlation_id})"
    )


def on_follow(event, metadata):
    # sync handlers run in a worker thread
    logger.info(f"notify {event.payload.get('followingId')}: new follower")


async def main():
    configure_logging()
    sdk = PubSubSDK()
    service = sdk.settings.service_name

    try:
        await sdk.start()
        await sdk.subscribe_to_events(
            INTERACTION_TOPIC,
            interaction_subscription_name(service),
            [InteractionEvents.LIKED, InteractionEvents.COMMENTED],
            on_interaction,
        )
        await sdk.subscribe_to_events(
            USER_TOPIC,
            user_subscription_name(service),
            [UserEvents.FOLLOWED],
            on_follow,
        )

        if config("PUBSUB_API_ENABLED", default=False, cast=bool):
            api_port = config("PUBSUB_API_PORT", default=8765, cast=int)
            asyncio.create_task(start_api_server(sdk, port=api_port))
            logger.info(f"Control API running on http://127.0.0.1:{api_port}")

        logger.info("Processing events. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(1)

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received shutdown signal...")
    finally:
        await sdk.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
