from typing import Any, Dict, List, Optional

from shared_pubsub.topics.base import TopicPublisher, build_payload, subscription_name

POST_TOPIC = "post-events"


class PostEvents:
    CREATED = "post.created"
    UPDATED = "post.updated"
    DELETED = "post.deleted"
    HIDDEN = "post.hidden"
    PINNED = "post.pinned"
    UNPINNED = "post.unpinned"


class PostTopicPublisher(TopicPublisher):
    topic = POST_TOPIC

    async def publish_post_created(
        self,
        post_id: str,
        author_id: str,
        type: str,
        visibility: str,
        hashtags: Optional[List[str]] = None,
        mentions: Optional[List[str]] = None,
        is_repost: Optional[bool] = None,
        original_post_id: Optional[str] = None,
        is_quote: Optional[bool] = None,
    ) -> str:
        return await self.emit(
            PostEvents.CREATED,
            build_payload(
                post_id=post_id,
                author_id=author_id,
                type=type,
                visibility=visibility,
                hashtags=hashtags or [],
                mentions=mentions or [],
                is_repost=is_repost,
                original_post_id=original_post_id,
                is_quote=is_quote,
            ),
        )

    async def publish_post_updated(
        self, post_id: str, author_id: str, changes: Dict[str, Any]
    ) -> str:
        return await self.emit(
            PostEvents.UPDATED,
            build_payload(post_id=post_id, author_id=author_id, changes=changes),
        )

    async def publish_post_deleted(self, post_id: str, author_id: str) -> str:
        return await self.emit(
            PostEvents.DELETED, build_payload(post_id=post_id, author_id=author_id)
        )

    async def publish_post_hidden(
        self, post_id: str, author_id: str, reason: str, hidden_by: str
    ) -> str:
        return await self.emit(
            PostEvents.HIDDEN,
            build_payload(
                post_id=post_id, author_id=author_id, reason=reason, hidden_by=hidden_by
            ),
        )

    async def publish_post_pinned(self, post_id: str, author_id: str) -> str:
        return await self.emit(
            PostEvents.PINNED, build_payload(post_id=post_id, author_id=author_id)
        )

    async def publish_post_unpinned(self, post_id: str, author_id: str) -> str:
        return await self.emit(
            PostEvents.UNPINNED, build_payload(post_id=post_id, author_id=author_id)
        )


def post_subscription_name(service_name: str) -> str:
    return subscription_name(service_name, POST_TOPIC)
