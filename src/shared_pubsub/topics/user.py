from typing import Any, Dict

from shared_pubsub.topics.base import TopicPublisher, build_payload, subscription_name

USER_TOPIC = "user-events"


class UserEvents:
    CREATED = "user.created"
    UPDATED = "user.updated"
    FOLLOWED = "user.followed"
    UNFOLLOWED = "user.unfollowed"
    BLOCKED = "user.blocked"
    UNBLOCKED = "user.unblocked"
    VERIFIED = "user.verified"
    DELETED = "user.deleted"


class UserTopicPublisher(TopicPublisher):
    topic = USER_TOPIC

    async def publish_user_created(
        self, user_id: str, username: str, email: str, display_name: str
    ) -> str:
        return await self.emit(
            UserEvents.CREATED,
            build_payload(
                user_id=user_id,
                username=username,
                email=email,
                display_name=display_name,
            ),
        )

    async def publish_user_updated(self, user_id: str, changes: Dict[str, Any]) -> str:
        return await self.emit(
            UserEvents.UPDATED, build_payload(user_id=user_id, changes=changes)
        )

    async def publish_user_followed(
        self, follower_id: str, following_id: str, status: str = "active"
    ) -> str:
        return await self.emit(
            UserEvents.FOLLOWED,
            build_payload(
                follower_id=follower_id, following_id=following_id, status=status
            ),
        )

    async def publish_user_unfollowed(self, follower_id: str, following_id: str) -> str:
        return await self.emit(
            UserEvents.UNFOLLOWED,
            build_payload(follower_id=follower_id, following_id=following_id),
        )

    async def publish_user_blocked(self, blocker_id: str, blocked_id: str) -> str:
        return await self.emit(
            UserEvents.BLOCKED,
            build_payload(blocker_id=blocker_id, blocked_id=blocked_id),
        )

    async def publish_user_unblocked(self, blocker_id: str, blocked_id: str) -> str:
        return await self.emit(
            UserEvents.UNBLOCKED,
            build_payload(blocker_id=blocker_id, blocked_id=blocked_id),
        )

    async def publish_user_verified(self, user_id: str, verification_type: str) -> str:
        """verification_type is one of email, phone, identity."""
        return await self.emit(
            UserEvents.VERIFIED,
            build_payload(user_id=user_id, verification_type=verification_type),
        )

    async def publish_user_deleted(self, user_id: str) -> str:
        return await self.emit(UserEvents.DELETED, build_payload(user_id=user_id))


def user_subscription_name(service_name: str) -> str:
    return subscription_name(service_name, USER_TOPIC)
