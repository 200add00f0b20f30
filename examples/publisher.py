import asyncio

from shared_pubsub import PubSubSDK
from shared_pubsub.settings import configure_logging
from shared_pubsub.topics import InteractionTopicPublisher, UserTopicPublisher


async def publish_events(sdk: PubSubSDK):
    interactions = InteractionTopicPublisher(sdk.publisher)
    users = UserTopicPublisher(sdk.publisher)

    await interactions.publish_post_liked(
        post_id="post-1", user_id="user-2", author_id="user-1", likes_count=1
    )
    await interactions.publish_post_commented(
        post_id="post-1",
        comment_id="comment-1",
        author_id="user-3",
        post_author_id="user-1",
        mentions=["user-2"],
    )
    await users.publish_user_followed(follower_id="user-2", following_id="user-1")


async def main():
    configure_logging()
    sdk = PubSubSDK()
    await sdk.start()
    try:
        await publish_events(sdk)
    finally:
        await sdk.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
