from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

import models.event_listener  # noqa: F401
from core.date_helper import utcnow
from models.enums import MessageStatus, MessageType
from models.models import Conversation, Message, MessageReadReceipt


class MessageRepo:
    def __init__(self, db):
        self.db = db

    async def next_seq(self, conversation_id: UUID) -> int:
        # Row-locks the conversation until commit, so sends to one
        # conversation persist in the order their numbers were taken.
        conversations = Conversation.__table__
        result = await self.db.execute(
            update(conversations)
            .where(conversations.c.id == conversation_id)
            .values(message_seq=conversations.c.message_seq + 1)
            .returning(conversations.c.message_seq)
        )
        return int(result.scalar_one())

    async def create(
        self,
        *,
        conversation_id: UUID,
        sender_id: UUID,
        recipient_id: Optional[UUID],
        content: str,
        message_type: MessageType,
        reply_to_id: Optional[UUID] = None,
    ) -> Message:
        seq = await self.next_seq(conversation_id)
        msg = Message(
            conversation_id=conversation_id,
            seq=seq,
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            type=message_type,
            status=MessageStatus.SENT,
            reply_to_id=reply_to_id,
            created_at=utcnow(),
        )
        self.db.add(msg)
        await self.db.flush()
        return msg

    async def get_by_id(self, message_id: UUID) -> Message | None:
        result = await self.db.execute(select(Message).where(Message.id == message_id))
        return result.scalar_one_or_none()

    async def list_active(
        self, conversation_id: UUID, page: int = 1, per_page: int = 50
    ) -> Tuple[List[Message], int]:
        base = select(Message).where(
            Message.conversation_id == conversation_id,
            Message.is_deleted.is_(False),
        )
        total = await self.db.scalar(
            select(func.count()).select_from(base.subquery())
        )
        result = await self.db.execute(
            base.order_by(Message.seq.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        # Newest page first from the store, oldest first to the caller.
        items = list(result.scalars().all())
        items.reverse()
        return items, int(total or 0)

    def _unread_clause(self, user_id: UUID):
        read_by_user = (
            select(MessageReadReceipt.id)
            .where(
                MessageReadReceipt.message_id == Message.id,
                MessageReadReceipt.user_id == user_id,
            )
            .exists()
        )
        return and_(
            Message.is_deleted.is_(False),
            Message.sender_id != user_id,
            ~read_by_user,
        )

    async def unread_ids(
        self,
        conversation_id: UUID,
        reader_id: UUID,
        message_id: Optional[UUID] = None,
    ) -> List[UUID]:
        stmt = select(Message.id).where(
            Message.conversation_id == conversation_id,
            self._unread_clause(reader_id),
        )
        if message_id is not None:
            stmt = stmt.where(Message.id == message_id)
        result = await self.db.execute(stmt.order_by(Message.seq))
        return list(result.scalars().all())

    async def add_receipts(
        self, message_ids: Sequence[UUID], reader_id: UUID, read_at: datetime
    ) -> List[UUID]:
        if not message_ids:
            return []

        dialect = self.db.bind.dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert(MessageReadReceipt)
            .values(
                [
                    {"message_id": mid, "user_id": reader_id, "read_at": read_at}
                    for mid in message_ids
                ]
            )
            .on_conflict_do_nothing(index_elements=["message_id", "user_id"])
            .returning(MessageReadReceipt.message_id)
        )
        result = await self.db.execute(stmt)
        inserted = list(result.scalars().all())

        if inserted:
            await self.db.execute(
                update(Message)
                .where(Message.id.in_(inserted))
                .values(status=MessageStatus.READ)
            )
        return inserted

    async def unread_count(self, conversation_id: UUID, user_id: UUID) -> int:
        total = await self.db.scalar(
            select(func.count(Message.id)).where(
                Message.conversation_id == conversation_id,
                self._unread_clause(user_id),
            )
        )
        return int(total or 0)

    async def unread_counts_by_conversation(
        self, conversation_ids: Sequence[UUID], user_id: UUID
    ) -> Dict[UUID, int]:
        if not conversation_ids:
            return {}
        result = await self.db.execute(
            select(Message.conversation_id, func.count(Message.id))
            .where(
                Message.conversation_id.in_(list(conversation_ids)),
                self._unread_clause(user_id),
            )
            .group_by(Message.conversation_id)
        )
        return {cid: int(count) for cid, count in result.all()}

    async def count_sent_by(self, user_id: UUID, since: Optional[datetime] = None) -> int:
        stmt = select(func.count(Message.id)).where(
            Message.sender_id == user_id,
            Message.is_deleted.is_(False),
        )
        if since is not None:
            stmt = stmt.where(Message.created_at >= since)
        return int(await self.db.scalar(stmt) or 0)

