from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import exists, func, or_, select
from sqlalchemy.exc import IntegrityError

from models.enums import ConversationStatus, ConversationType
from models.models import Conversation, ConversationParticipant, Property


def participant_key(participant_ids: Sequence[UUID]) -> str:
    """Canonical member-set key: sorted, deduplicated ids joined by commas."""
    return ",".join(sorted({str(pid) for pid in participant_ids}))


def scope_key(key: str, property_id: Optional[UUID]) -> str:
    return f"{key}|{property_id or '-'}"


class ConversationRepo:
    def __init__(self, db):
        self.db = db

    async def get_by_id(
        self, conversation_id: UUID, include_deleted: bool = False
    ) -> Conversation | None:
        stmt = select(Conversation).where(Conversation.id == conversation_id)
        if not include_deleted:
            stmt = stmt.where(Conversation.is_deleted.is_(False))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_live_by_scope(self, key: str) -> Conversation | None:
        result = await self.db.execute(
            select(Conversation).where(
                Conversation.scope_key == key,
                Conversation.is_deleted.is_(False),
            )
        )
        return result.scalars().first()

    async def get_or_create(
        self,
        *,
        participant_ids: Sequence[UUID],
        property_id: Optional[UUID],
        conversation_type: ConversationType,
        title: str,
        meta: Optional[dict] = None,
    ) -> Tuple[Conversation, bool]:
        key = participant_key(participant_ids)
        scoped = scope_key(key, property_id)

        convo = await self.get_live_by_scope(scoped)
        if convo:
            return convo, False

        convo = Conversation(
            participant_key=key,
            scope_key=scoped,
            property_id=property_id,
            type=conversation_type,
            title=title,
            status=ConversationStatus.ACTIVE,
            unread_counts={},
            meta=meta or {},
        )
        convo.participants = [
            ConversationParticipant(user_id=pid)
            for pid in sorted(set(participant_ids), key=str)
        ]
        self.db.add(convo)

        try:
            await self.db.commit()
            await self.db.refresh(convo)
            return convo, True
        except IntegrityError:
            # Another writer created the same live conversation first.
            await self.db.rollback()
            convo = await self.get_live_by_scope(scoped)
            if convo is None:
                raise
            return convo, False

    async def is_participant(self, conversation_id: UUID, user_id: UUID) -> bool:
        stmt = select(
            exists().where(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.user_id == user_id,
                Conversation.id == ConversationParticipant.conversation_id,
                Conversation.is_deleted.is_(False),
            )
        )
        return bool(await self.db.scalar(stmt))

    def _visible_to(self, user_id: UUID):
        return (
            select(Conversation)
            .join(
                ConversationParticipant,
                ConversationParticipant.conversation_id == Conversation.id,
            )
            .where(
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.deleted_at.is_(None),
                Conversation.is_deleted.is_(False),
            )
        )

    async def list_for_user(
        self,
        user_id: UUID,
        *,
        status: Optional[ConversationStatus] = None,
        conversation_type: Optional[ConversationType] = None,
        query: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Conversation], int]:
        stmt = self._visible_to(user_id)
        if status is not None:
            stmt = stmt.where(Conversation.status == status)
        if conversation_type is not None:
            stmt = stmt.where(Conversation.type == conversation_type)
        if query:
            pattern = f"%{query.strip()}%"
            stmt = stmt.outerjoin(Property, Property.id == Conversation.property_id).where(
                or_(
                    Conversation.title.ilike(pattern),
                    Property.title.ilike(pattern),
                    Property.address.ilike(pattern),
                )
            )

        total = await self.db.scalar(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )
        result = await self.db.execute(
            stmt.order_by(
                Conversation.last_message_at.desc().nulls_last(),
                Conversation.updated_at.desc(),
            )
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().unique().all()), int(total or 0)

    async def count_for_user(
        self, user_id: UUID, conversation_type: Optional[ConversationType] = None
    ) -> int:
        stmt = self._visible_to(user_id)
        if conversation_type is not None:
            stmt = stmt.where(Conversation.type == conversation_type)
        total = await self.db.scalar(select(func.count()).select_from(stmt.subquery()))
        return int(total or 0)

    async def visible_ids_for_user(self, user_id: UUID) -> List[UUID]:
        result = await self.db.execute(
            self._visible_to(user_id).with_only_columns(Conversation.id)
        )
        return list(result.scalars().all())
