from typing import List, Optional

from shared_pubsub.topics.base import TopicPublisher, build_payload, subscription_name

INTERACTION_TOPIC = "interaction-events"


class InteractionEvents:
    LIKED = "post.liked"
    UNLIKED = "post.unliked"
    DISLIKED = "post.disliked"
    UNDISLIKED = "post.undisliked"
    COMMENTED = "post.commented"
    COMMENT_DELETED = "comment.deleted"
    COMMENT_LIKED = "comment.liked"
    REPOSTED = "post.reposted"
    UNREPOSTED = "post.unreposted"
    BOOKMARKED = "post.bookmarked"
    UNBOOKMARKED = "post.unbookmarked"
    POLL_VOTED = "poll.voted"


class InteractionTopicPublisher(TopicPublisher):
    topic = INTERACTION_TOPIC

    async def publish_post_liked(
        self, post_id: str, user_id: str, author_id: str, likes_count: int
    ) -> str:
        return await self.emit(
            InteractionEvents.LIKED,
            build_payload(
                post_id=post_id,
                user_id=user_id,
                author_id=author_id,
                likes_count=likes_count,
            ),
        )

    async def publish_post_unliked(
        self, post_id: str, user_id: str, likes_count: int
    ) -> str:
        return await self.emit(
            InteractionEvents.UNLIKED,
            build_payload(post_id=post_id, user_id=user_id, likes_count=likes_count),
        )

    async def publish_post_disliked(
        self, post_id: str, user_id: str, author_id: str, dislikes_count: int
    ) -> str:
        return await self.emit(
            InteractionEvents.DISLIKED,
            build_payload(
                post_id=post_id,
                user_id=user_id,
                author_id=author_id,
                dislikes_count=dislikes_count,
            ),
        )

    async def publish_post_undisliked(
        self, post_id: str, user_id: str, dislikes_count: int
    ) -> str:
        return await self.emit(
            InteractionEvents.UNDISLIKED,
            build_payload(
                post_id=post_id, user_id=user_id, dislikes_count=dislikes_count
            ),
        )

    async def publish_post_commented(
        self,
        post_id: str,
        comment_id: str,
        author_id: str,
        post_author_id: str,
        parent_id: Optional[str] = None,
        mentions: Optional[List[str]] = None,
    ) -> str:
        return await self.emit(
            InteractionEvents.COMMENTED,
            build_payload(
                post_id=post_id,
                comment_id=comment_id,
                author_id=author_id,
                post_author_id=post_author_id,
                parent_id=parent_id,
                mentions=mentions or [],
            ),
        )

    async def publish_comment_deleted(
        self, post_id: str, comment_id: str, author_id: str
    ) -> str:
        return await self.emit(
            InteractionEvents.COMMENT_DELETED,
            build_payload(post_id=post_id, comment_id=comment_id, author_id=author_id),
        )

    async def publish_comment_liked(
        self,
        comment_id: str,
        post_id: str,
        user_id: str,
        comment_author_id: str,
        likes_count: int,
    ) -> str:
        return await self.emit(
            InteractionEvents.COMMENT_LIKED,
            build_payload(
                comment_id=comment_id,
                post_id=post_id,
                user_id=user_id,
                comment_author_id=comment_author_id,
                likes_count=likes_count,
            ),
        )

    async def publish_post_reposted(
        self,
        post_id: str,
        repost_id: str,
        user_id: str,
        original_author_id: str,
        is_quote: bool = False,
    ) -> str:
        return await self.emit(
            InteractionEvents.REPOSTED,
            build_payload(
                post_id=post_id,
                repost_id=repost_id,
                user_id=user_id,
                original_author_id=original_author_id,
                is_quote=is_quote,
            ),
        )

    async def publish_post_unreposted(self, post_id: str, user_id: str) -> str:
        return await self.emit(
            InteractionEvents.UNREPOSTED,
            build_payload(post_id=post_id, user_id=user_id),
        )

    async def publish_post_bookmarked(
        self, post_id: str, user_id: str, folder_id: Optional[str] = None
    ) -> str:
        return await self.emit(
            InteractionEvents.BOOKMARKED,
            build_payload(post_id=post_id, user_id=user_id, folder_id=folder_id),
        )

    async def publish_post_unbookmarked(self, post_id: str, user_id: str) -> str:
        return await self.emit(
            InteractionEvents.UNBOOKMARKED,
            build_payload(post_id=post_id, user_id=user_id),
        )

    async def publish_poll_voted(self, post_id: str, user_id: str, option_id: str) -> str:
        return await self.emit(
            InteractionEvents.POLL_VOTED,
            build_payload(post_id=post_id, user_id=user_id, option_id=option_id),
        )


def interaction_subscription_name(service_name: str) -> str:
    return subscription_name(service_name, INTERACTION_TOPIC)
