from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.responses import success_body
from core.safe_handler import safe_handler
from models.enums import ConversationStatus, ConversationType
from models.models import User
from schemas.schema import (
    ChatStatsOut,
    ConversationCreate,
    ConversationOut,
    MarkReadIn,
    MessageCreate,
    MessageOut,
    MessageUpdate,
    PaginatedConversations,
    PaginatedMessages,
)
from services.conversation_service import ConversationService
from services.message_service import MessageService

router = APIRouter(tags=["Chat"])


def _conversation_page(result: dict) -> PaginatedConversations:
    return PaginatedConversations.model_validate(result, from_attributes=True)


@cbv(router)
class ChatRoutes:
    @router.get("/conversations")
    @safe_handler
    async def list_conversations(
        self,
        status: Optional[ConversationStatus] = Query(None),
        type: Optional[ConversationType] = Query(None),
        page: int = Query(1),
        limit: int = Query(20),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        result = await ConversationService(db).list_for_user(
            current_user, status, type, page, limit
        )
        return success_body("Conversations retrieved", _conversation_page(result))

    @router.post("/conversations", status_code=201)
    @safe_handler
    async def start_conversation(
        self,
        data: ConversationCreate,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        convo = await ConversationService(db).start_conversation(
            current_user, data.participant_id, data.property_id, data.type
        )
        return success_body("Conversation ready", ConversationOut.model_validate(convo))

    @router.get("/conversations/search")
    @safe_handler
    async def search_conversations(
        self,
        query: Optional[str] = Query(None),
        type: Optional[ConversationType] = Query(None),
        page: int = Query(1),
        limit: int = Query(20),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        result = await ConversationService(db).search(
            current_user, query, type, page, limit
        )
        return success_body("Search results", _conversation_page(result))

    @router.get("/stats")
    @safe_handler
    async def chat_stats(
        self,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        stats = await ConversationService(db).chat_stats(current_user)
        return success_body("Chat statistics retrieved", ChatStatsOut(**stats))

    @router.get("/conversations/{conversation_id}/messages")
    @safe_handler
    async def list_messages(
        self,
        conversation_id: UUID,
        page: int = Query(1),
        limit: int = Query(50),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        result = await MessageService(db).list_messages(
            conversation_id, current_user, page, limit
        )
        return success_body(
            "Messages retrieved",
            PaginatedMessages(
                items=[MessageOut.model_validate(m) for m in result["items"]],
                pagination=result["pagination"],
            ),
        )

    @router.post("/conversations/{conversation_id}/messages", status_code=201)
    @safe_handler
    async def send_message(
        self,
        conversation_id: UUID,
        data: MessageCreate,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        message = await MessageService(db).send(
            conversation_id, current_user.id, data.content, data.type, data.reply_to
        )
        return success_body("Message sent", MessageOut.model_validate(message))

    @router.put("/conversations/{conversation_id}/read")
    @safe_handler
    async def mark_read(
        self,
        conversation_id: UUID,
        data: Optional[MarkReadIn] = Body(None),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        updated = await MessageService(db).mark_read(
            conversation_id, current_user.id, data.message_id if data else None
        )
        return success_body("Messages marked as read", {"updated": updated})

    @router.put("/conversations/{conversation_id}/archive")
    @safe_handler
    async def archive_conversation(
        self,
        conversation_id: UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        convo = await ConversationService(db).archive(conversation_id, current_user)
        return success_body(
            "Conversation archived", ConversationOut.model_validate(convo)
        )

    @router.delete("/conversations/{conversation_id}")
    @safe_handler
    async def delete_conversation(
        self,
        conversation_id: UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        await ConversationService(db).delete_for_user(conversation_id, current_user)
        return success_body("Conversation deleted")

    @router.put("/messages/{message_id}")
    @safe_handler
    async def edit_message(
        self,
        message_id: UUID,
        data: MessageUpdate,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        message = await MessageService(db).edit(message_id, current_user.id, data.content)
        return success_body("Message updated", MessageOut.model_validate(message))

    @router.delete("/messages/{message_id}")
    @safe_handler
    async def delete_message(
        self,
        message_id: UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
    ):
        message = await MessageService(db).delete(message_id, current_user.id)
        return success_body("Message deleted", MessageOut.model_validate(message))
