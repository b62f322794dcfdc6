from sqlalchemy import case, event, update

from core.date_helper import utcnow

from .enums import ConversationStatus
from .models import Conversation, Message


@event.listens_for(Message, "after_insert")
def touch_conversation(mapper, connection, target: Message):
    conversations = Conversation.__table__

    connection.execute(
        update(conversations)
        .where(conversations.c.id == target.conversation_id)
        .values(
            last_message_id=target.id,
            last_message_at=target.created_at,
            updated_at=utcnow(),
            status=case(
                (
                    conversations.c.status == ConversationStatus.ARCHIVED.value,
                    ConversationStatus.ACTIVE.value,
                ),
                else_=conversations.c.status,
            ),
        )
    )


@event.listens_for(Message, "before_insert")
@event.listens_for(Message, "before_update")
def strip_content(mapper, connection, target: Message):
    if target.content:
        target.content = target.content.strip()
