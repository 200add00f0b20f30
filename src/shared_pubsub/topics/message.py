from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from shared_pubsub.topics.base import TopicPublisher, build_payload, subscription_name

MESSAGE_TOPIC = "message-events"
DATING_TOPIC = "dating-events"


class MessageEvents:
    SENT = "message.sent"
    DELIVERED = "message.delivered"
    READ = "message.read"
    DELETED = "message.deleted"
    CONVERSATION_CREATED = "conversation.created"
    CONVERSATION_UPDATED = "conversation.updated"
    CONVERSATION_DELETED = "conversation.deleted"
    MATCH_CREATED = "match.created"
    MATCH_DELETED = "match.deleted"


class DatingEvents:
    PROFILE_CREATED = "dating.profile.created"
    PROFILE_UPDATED = "dating.profile.updated"
    SWIPE_LIKE = "dating.swipe.like"
    SWIPE_SUPERLIKE = "dating.swipe.superlike"
    SWIPE_PASS = "dating.swipe.pass"
    MATCH_CREATED = "dating.match.created"
    MATCH_UNMATCHED = "dating.match.unmatched"
    BOOST_ACTIVATED = "dating.boost.activated"


class MessageTopicPublisher(TopicPublisher):
    topic = MESSAGE_TOPIC

    async def publish_message_sent(
        self,
        message_id: str,
        conversation_id: str,
        sender_id: str,
        recipient_ids: List[str],
        type: str = "text",
        is_offline_recipient: bool = False,
    ) -> str:
        return await self.emit(
            MessageEvents.SENT,
            build_payload(
                message_id=message_id,
                conversation_id=conversation_id,
                sender_id=sender_id,
                recipient_ids=recipient_ids,
                type=type,
                is_offline_recipient=is_offline_recipient,
            ),
        )

    async def publish_message_delivered(
        self,
        message_id: str,
        conversation_id: str,
        delivered_to: str,
        delivered_at: datetime,
    ) -> str:
        return await self.emit(
            MessageEvents.DELIVERED,
            build_payload(
                message_id=message_id,
                conversation_id=conversation_id,
                delivered_to=delivered_to,
                delivered_at=delivered_at,
            ),
        )

    async def publish_message_read(
        self, conversation_id: str, message_id: str, read_by: str, read_at: datetime
    ) -> str:
        return await self.emit(
            MessageEvents.READ,
            build_payload(
                conversation_id=conversation_id,
                message_id=message_id,
                read_by=read_by,
                read_at=read_at,
            ),
        )

    async def publish_message_deleted(
        self,
        message_id: str,
        conversation_id: str,
        deleted_by: str,
        delete_for_everyone: bool = False,
    ) -> str:
        return await self.emit(
            MessageEvents.DELETED,
            build_payload(
                message_id=message_id,
                conversation_id=conversation_id,
                deleted_by=deleted_by,
                delete_for_everyone=delete_for_everyone,
            ),
        )

    async def publish_conversation_created(
        self,
        conversation_id: str,
        type: str,
        participant_ids: List[str],
        created_by: str,
    ) -> str:
        return await self.emit(
            MessageEvents.CONVERSATION_CREATED,
            build_payload(
                conversation_id=conversation_id,
                type=type,
                participant_ids=participant_ids,
                created_by=created_by,
            ),
        )

    async def publish_conversation_updated(
        self, conversation_id: str, changes: Dict[str, Any], updated_by: str
    ) -> str:
        return await self.emit(
            MessageEvents.CONVERSATION_UPDATED,
            build_payload(
                conversation_id=conversation_id, changes=changes, updated_by=updated_by
            ),
        )

    async def publish_conversation_deleted(
        self, conversation_id: str, deleted_by: str
    ) -> str:
        return await self.emit(
            MessageEvents.CONVERSATION_DELETED,
            build_payload(conversation_id=conversation_id, deleted_by=deleted_by),
        )

    async def publish_match_created(
        self, match_id: str, conversation_id: str, user_ids: Sequence[str]
    ) -> str:
        return await self.emit(
            MessageEvents.MATCH_CREATED,
            build_payload(
                match_id=match_id,
                conversation_id=conversation_id,
                user_ids=list(user_ids),
            ),
        )

    async def publish_match_deleted(
        self, match_id: str, conversation_id: str, deleted_by: str
    ) -> str:
        return await self.emit(
            MessageEvents.MATCH_DELETED,
            build_payload(
                match_id=match_id, conversation_id=conversation_id, deleted_by=deleted_by
            ),
        )


class DatingTopicPublisher(TopicPublisher):
    topic = DATING_TOPIC

    async def publish_super_like(self, swiper_id: str, target_id: str) -> str:
        return await self.emit(
            DatingEvents.SWIPE_SUPERLIKE,
            build_payload(swiper_id=swiper_id, target_id=target_id),
        )

    async def publish_match_created(
        self,
        match_id: str,
        user_ids: Sequence[str],
        conversation_id: Optional[str] = None,
    ) -> str:
        return await self.emit(
            DatingEvents.MATCH_CREATED,
            build_payload(
                match_id=match_id,
                user_ids=list(user_ids),
                conversation_id=conversation_id,
            ),
        )

    async def publish_boost_activated(self, user_id: str, expires_at: datetime) -> str:
        return await self.emit(
            DatingEvents.BOOST_ACTIVATED,
            build_payload(user_id=user_id, expires_at=expires_at),
        )


def message_subscription_name(service_name: str) -> str:
    return subscription_name(service_name, MESSAGE_TOPIC)


def dating_subscription_name(service_name: str) -> str:
    return subscription_name(service_name, DATING_TOPIC)
