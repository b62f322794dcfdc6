import logging
from datetime import timedelta
from typing import Iterable, Optional, Tuple
from uuid import UUID

from core.date_helper import utcnow
from core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from core.paginate import PaginatePage
from models.enums import (
    GENERAL_CHAT_TITLE,
    PROPERTY_INQUIRY_TITLE,
    ConversationStatus,
    ConversationType,
)
from models.models import Conversation
from repos.conversation_repo import ConversationRepo
from repos.message_repo import MessageRepo
from repos.property_repo import PropertyRepo
from repos.user_repo import UserRepo

logger = logging.getLogger(__name__)


class ConversationService:
    def __init__(self, db):
        self.db = db
        self.repo: ConversationRepo = ConversationRepo(db)
        self.message_repo: MessageRepo = MessageRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.property_repo: PropertyRepo = PropertyRepo(db)
        self.paginator = PaginatePage()

    async def find_or_create(
        self,
        participant_ids: Iterable[UUID],
        property_id: Optional[UUID] = None,
        conversation_type: ConversationType = ConversationType.GENERAL,
    ) -> Tuple[Conversation, bool]:
        """Return the live conversation for this member set and property, creating it once."""
        members = sorted(set(participant_ids), key=str)
        if len(members) < 2:
            raise InvalidInputError("A conversation needs at least two participants")

        convo, created = await self.repo.get_or_create(
            participant_ids=members,
            property_id=property_id,
            conversation_type=conversation_type,
            title=PROPERTY_INQUIRY_TITLE if property_id else GENERAL_CHAT_TITLE,
        )
        if created:
            logger.info(f"Conversation {convo.id} created for {convo.participant_key}")
        return convo, created

    async def start_conversation(
        self,
        user,
        participant_id: UUID,
        property_id: Optional[UUID] = None,
        conversation_type: ConversationType = ConversationType.GENERAL,
    ) -> Conversation:
        user_id = user.id
        if participant_id == user_id:
            raise InvalidInputError("Cannot create conversation with yourself")

        participant = await self.user_repo.get_by_id(participant_id)
        if not participant:
            raise NotFoundError("Participant not found")

        meta = None
        if property_id:
            prop = await self.property_repo.get_by_id(property_id)
            if not prop:
                raise NotFoundError("Property not found")
            meta = {
                "property_title": prop.title,
                "property_address": prop.address,
                "inquiry_type": conversation_type.value,
            }

        convo, _ = await self.find_or_create(
            [user_id, participant_id], property_id, conversation_type
        )

        changed = False
        if meta is not None and dict(convo.meta or {}) != meta:
            convo.meta = meta
            changed = True

        # Starting again restores a conversation this user had removed.
        mine = convo.participant(user_id)
        if mine is not None and mine.deleted_at is not None:
            mine.deleted_at = None
            changed = True

        if changed:
            await self.db.commit()
            await self.db.refresh(convo)
        return convo

    async def is_participant(self, conversation_id: UUID, user_id: UUID) -> bool:
        return await self.repo.is_participant(conversation_id, user_id)

    async def get_for_participant(self, conversation_id: UUID, user_id: UUID) -> Conversation:
        convo = await self.repo.get_by_id(conversation_id)
        if not convo:
            raise NotFoundError("Conversation not found")
        if convo.participant(user_id) is None:
            raise ForbiddenError("You are not a participant in this conversation")
        return convo

    async def _decorate(self, conversations, user_id: UUID) -> list:
        unread = await self.message_repo.unread_counts_by_conversation(
            [c.id for c in conversations], user_id
        )
        others = {
            u.id: u
            for u in await self.user_repo.get_many(
                pid for c in conversations for pid in c.participant_ids if pid != user_id
            )
        }

        items = []
        for convo in conversations:
            other_id = next((pid for pid in convo.participant_ids if pid != user_id), None)
            items.append(
                {
                    "conversation": convo,
                    "unread_count": unread.get(convo.id, 0),
                    "other_participant": others.get(other_id),
                }
            )
        return items

    async def list_for_user(
        self,
        user,
        status: Optional[ConversationStatus] = None,
        conversation_type: Optional[ConversationType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        page, limit = self.paginator.clamp(page, limit, default=20)
        conversations, total = await self.repo.list_for_user(
            user.id,
            status=status,
            conversation_type=conversation_type,
            page=page,
            per_page=limit,
        )
        return {
            "items": await self._decorate(conversations, user.id),
            "pagination": self.paginator.meta(page, limit, total),
        }

    async def search(
        self,
        user,
        query: Optional[str],
        conversation_type: Optional[ConversationType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        if not query or not query.strip():
            raise InvalidInputError("Search query is required")

        page, limit = self.paginator.clamp(page, limit, default=20)
        conversations, total = await self.repo.list_for_user(
            user.id,
            conversation_type=conversation_type,
            query=query,
            page=page,
            per_page=limit,
        )
        pagination = self.paginator.meta(page, limit, total)
        pagination["query"] = query.strip()
        return {
            "items": await self._decorate(conversations, user.id),
            "pagination": pagination,
        }

    async def archive(self, conversation_id: UUID, user) -> Conversation:
        convo = await self.get_for_participant(conversation_id, user.id)
        if convo.status != ConversationStatus.ARCHIVED:
            convo.status = ConversationStatus.ARCHIVED
            await self.db.commit()
        return convo

    async def delete_for_user(self, conversation_id: UUID, user) -> None:
        convo = await self.get_for_participant(conversation_id, user.id)
        mine = convo.participant(user.id)
        if mine.deleted_at is None:
            mine.deleted_at = utcnow()

        if all(p.deleted_at is not None for p in convo.participants):
            convo.is_deleted = True
            logger.info(f"Conversation {convo.id} deleted by every participant")

        await self.db.commit()

    async def chat_stats(self, user) -> dict:
        visible = await self.repo.visible_ids_for_user(user.id)
        unread = await self.message_repo.unread_counts_by_conversation(visible, user.id)
        return {
            "total_conversations": len(visible),
            "unread_conversations": sum(1 for count in unread.values() if count > 0),
            "total_messages": await self.message_repo.count_sent_by(user.id),
            "property_inquiries": await self.repo.count_for_user(
                user.id, ConversationType.PROPERTY_INQUIRY
            ),
            "recent_messages": await self.message_repo.count_sent_by(
                user.id, since=utcnow() - timedelta(days=7)
            ),
        }
