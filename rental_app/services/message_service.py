import logging
from datetime import timedelta
from typing import List, Optional, Sequence
from uuid import UUID

from core.date_helper import older_than, utcnow
from core.exceptions import (
    ExpiredError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from core.paginate import PaginatePage
from core.settings import settings
from models.enums import DELETED_MESSAGE_PLACEHOLDER, MessageType
from models.models import Conversation, Message
from notifications.push import PushNotifier, push_notifier
from realtime.connection_manager import Connection, ConnectionRegistry, registry
from repos.conversation_repo import ConversationRepo
from repos.message_repo import MessageRepo
from repos.user_repo import UserRepo
from schemas.schema import MessageOut

logger = logging.getLogger(__name__)


def message_payload(message: Message) -> dict:
    return MessageOut.model_validate(message).model_dump(mode="json")


def preview(content: str, width: int = 100) -> str:
    return content if len(content) <= width else content[: width - 3] + "..."


class MessageService:
    def __init__(
        self,
        db,
        connections: Optional[ConnectionRegistry] = None,
        notifier: Optional[PushNotifier] = None,
    ):
        self.db = db
        self.connections = connections or registry
        self.notifier = notifier or push_notifier
        self.repo: MessageRepo = MessageRepo(db)
        self.conversation_repo: ConversationRepo = ConversationRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.paginator = PaginatePage()
        self.edit_window = timedelta(hours=settings.MESSAGE_EDIT_WINDOW_HOURS)
        self.max_length = settings.MESSAGE_MAX_LENGTH

    async def _conversation_for(self, conversation_id: UUID, user_id: UUID) -> Conversation:
        convo = await self.conversation_repo.get_by_id(conversation_id)
        if not convo:
            raise NotFoundError("Conversation not found")
        if convo.participant(user_id) is None:
            raise ForbiddenError("You are not a participant in this conversation")
        return convo

    def _clean_content(self, content: Optional[str]) -> str:
        text = (content or "").strip()
        if not text:
            raise InvalidInputError("Message content cannot be empty")
        if len(text) > self.max_length:
            raise InvalidInputError(
                f"Message content cannot exceed {self.max_length} characters"
            )
        return text

    async def _own_message(self, message_id: UUID, user_id: UUID, action: str) -> Message:
        message = await self.repo.get_by_id(message_id)
        if not message:
            raise NotFoundError("Message not found")
        if message.sender_id != user_id:
            raise ForbiddenError(f"You can only {action} your own messages")
        if older_than(message.created_at, self.edit_window):
            raise ExpiredError(
                f"Messages older than {settings.MESSAGE_EDIT_WINDOW_HOURS} hours "
                f"cannot be changed"
            )
        return message

    async def send(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        reply_to: Optional[UUID] = None,
    ) -> Message:
        convo = await self._conversation_for(conversation_id, sender_id)
        text = self._clean_content(content)

        if reply_to is not None:
            target = await self.repo.get_by_id(reply_to)
            if not target or target.conversation_id != convo.id:
                raise InvalidInputError("Reply target is not in this conversation")

        recipients = [pid for pid in convo.participant_ids if pid != sender_id]
        message = await self.repo.create(
            conversation_id=convo.id,
            sender_id=sender_id,
            recipient_id=recipients[0] if len(recipients) == 1 else None,
            content=text,
            message_type=message_type,
            reply_to_id=reply_to,
        )

        for recipient_id in recipients:
            key = str(recipient_id)
            convo.unread_counts[key] = int(convo.unread_counts.get(key, 0)) + 1

        await self.db.commit()
        await self.db.refresh(convo)
        logger.info(f"Message {message.id} stored in conversation {convo.id}")

        try:
            await self._fan_out(convo, message, recipients)
        except Exception as e:
            # Stored messages stay stored; live delivery is best effort.
            logger.error(f"Fan-out for message {message.id} failed: {e}")
        return message

    async def _fan_out(self, convo: Conversation, message: Message, recipients: List[UUID]):
        await self.connections.broadcast(
            convo.id, "new_message", message_payload(message), user_ids=recipients
        )

        offline = []
        for recipient_id in recipients:
            if self.connections.is_online(recipient_id):
                await self.connections.emit_to_user(
                    recipient_id,
                    "unread_count_updated",
                    {
                        "conversation_id": str(convo.id),
                        "unread_count": await self.repo.unread_count(convo.id, recipient_id),
                    },
                )
            else:
                offline.append(recipient_id)

        if not offline:
            return
        sender = await self.user_repo.get_by_id(message.sender_id)
        title = f"New message from {sender.full_name}" if sender else "New message"
        for recipient_id in offline:
            await self.notifier.notify(
                recipient_id,
                title,
                preview(message.content),
                {"conversation_id": str(convo.id), "message_id": str(message.id)},
            )

    async def _record_reads(
        self,
        convo: Conversation,
        reader_id: UUID,
        message_ids: Sequence[UUID],
        exclude: Optional[Connection] = None,
    ) -> List[UUID]:
        read_at = utcnow()
        inserted = await self.repo.add_receipts(message_ids, reader_id, read_at)
        if not inserted:
            return []

        convo.unread_counts[str(reader_id)] = await self.repo.unread_count(
            convo.id, reader_id
        )
        await self.db.commit()

        await self.connections.broadcast(
            convo.id,
            "messages_read",
            {
                "conversation_id": str(convo.id),
                "reader_id": str(reader_id),
                "message_ids": [str(mid) for mid in inserted],
                "read_at": read_at.isoformat(),
            },
            exclude=exclude,
        )
        await self.connections.emit_to_user(
            reader_id,
            "unread_count_updated",
            {
                "conversation_id": str(convo.id),
                "unread_count": convo.unread_counts[str(reader_id)],
            },
        )
        return inserted

    async def mark_read(
        self,
        conversation_id: UUID,
        reader_id: UUID,
        message_id: Optional[UUID] = None,
        exclude: Optional[Connection] = None,
    ) -> int:
        """Record receipts for unread messages and return how many were new.

        ``exclude`` keeps the reading socket out of the room announcement.
        """
        convo = await self._conversation_for(conversation_id, reader_id)
        unread = await self.repo.unread_ids(convo.id, reader_id, message_id)
        inserted = await self._record_reads(convo, reader_id, unread, exclude)
        return len(inserted)

    async def edit(self, message_id: UUID, user_id: UUID, content: str) -> Message:
        message = await self._own_message(message_id, user_id, "edit")
        if message.is_deleted:
            raise InvalidStateError("Deleted messages cannot be edited")

        message.content = self._clean_content(content)
        message.is_edited = True
        message.edited_at = utcnow()
        await self.db.commit()

        await self.connections.broadcast(
            message.conversation_id, "message_updated", message_payload(message)
        )
        return message

    async def delete(self, message_id: UUID, user_id: UUID) -> Message:
        message = await self._own_message(message_id, user_id, "delete")
        if message.is_deleted:
            return message

        message.is_deleted = True
        message.deleted_at = utcnow()
        message.deleted_by = user_id
        message.content = DELETED_MESSAGE_PLACEHOLDER
        await self.db.commit()

        await self.connections.broadcast(
            message.conversation_id,
            "message_deleted",
            {"conversation_id": str(message.conversation_id), "message_id": str(message.id)},
        )
        return message

    async def get_unread_count(self, conversation_id: UUID, user_id: UUID) -> int:
        return await self.repo.unread_count(conversation_id, user_id)

    async def unread_summary(self, user_id: UUID) -> dict:
        visible = await self.conversation_repo.visible_ids_for_user(user_id)
        counts = await self.repo.unread_counts_by_conversation(visible, user_id)
        return {
            "total_unread": sum(counts.values()),
            "conversations": {str(cid): count for cid, count in counts.items() if count},
        }

    async def list_messages(
        self, conversation_id: UUID, user, page: int = 1, limit: int = 50
    ) -> dict:
        convo = await self._conversation_for(conversation_id, user.id)
        page, limit = self.paginator.clamp(page, limit, default=50)
        items, total = await self.repo.list_active(convo.id, page, limit)

        await self._record_reads(
            convo, user.id, [m.id for m in items if m.sender_id != user.id]
        )
        return {"items": items, "pagination": self.paginator.meta(page, limit, total)}
