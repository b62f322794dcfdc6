import logging
from typing import Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from core.exceptions import AppError, ForbiddenError
from core.friendly_msg import get_friendly_message
from core.get_db import AsyncSessionLocal
from notifications.push import PushNotifier
from schemas.schema import ConversationEventIn, MarkAsReadEventIn, SendMessageEventIn
from services.message_service import MessageService

from .connection_manager import Connection, ConnectionRegistry, registry

logger = logging.getLogger(__name__)


class ChatSocketService:
    """Handles one authenticated chat socket.

    Every inbound event gets its own short database session. Failures are
    reported back to the client as ``error`` events and never close the socket.
    """

    def __init__(
        self,
        user,
        connection: Connection,
        connections: Optional[ConnectionRegistry] = None,
        session_factory=None,
        notifier: Optional[PushNotifier] = None,
    ):
        self.user = user
        self.connection = connection
        self.connections = connections or registry
        self.session_factory = session_factory or AsyncSessionLocal
        self.notifier = notifier
        self.handlers: Dict[str, Callable[[dict], Awaitable[None]]] = {
            "join_conversation": self.join_conversation,
            "leave_conversation": self.leave_conversation,
            "send_message": self.send_message,
            "typing_start": self.typing_start,
            "typing_stop": self.typing_stop,
            "mark_as_read": self.mark_as_read,
        }

    def _messages(self, db) -> MessageService:
        return MessageService(db, self.connections, self.notifier)

    async def error(self, message: str):
        await self.connection.send("error", {"message": message})

    async def on_connect(self):
        await self.connections.register(self.user.id, self.connection)
        async with self.session_factory() as db:
            summary = await self._messages(db).unread_summary(self.user.id)
        await self.connection.send("unread_conversations_count", summary)

    async def on_disconnect(self):
        rooms = await self.connections.unregister(self.connection)
        for conversation_id in rooms:
            await self.connections.broadcast(
                conversation_id,
                "user_left_conversation",
                {"conversation_id": conversation_id, "user_id": self.user.id},
            )

    async def on_message(self, envelope):
        if not isinstance(envelope, dict):
            await self.error("Malformed event")
            return

        event = envelope.get("event")
        handler = self.handlers.get(event)
        if handler is None:
            await self.error(f"Unknown event: {event}")
            return

        try:
            await handler(envelope.get("data") or {})
        except ValidationError:
            await self.error(f"Invalid payload for {event}")
        except AppError as e:
            await self.error(e.message)
        except Exception as e:
            logger.error(
                f"Chat event {event} from {self.user.id} failed: {e}", exc_info=True
            )
            await self.error(get_friendly_message(e))

    async def join_conversation(self, data: dict):
        payload = ConversationEventIn.model_validate(data)
        conversation_id = payload.conversation_id

        await self.connections.join_room(self.connection, conversation_id)
        await self.connection.send(
            "joined_conversation", {"conversation_id": str(conversation_id)}
        )
        await self.connections.broadcast(
            conversation_id,
            "user_joined_conversation",
            {"conversation_id": conversation_id, "user_id": self.user.id},
            exclude=self.connection,
        )

        async with self.session_factory() as db:
            await self._messages(db).mark_read(
                conversation_id, self.user.id, exclude=self.connection
            )

    async def leave_conversation(self, data: dict):
        payload = ConversationEventIn.model_validate(data)
        conversation_id = payload.conversation_id

        left = await self.connections.leave_room(self.connection, conversation_id)
        await self.connection.send(
            "left_conversation", {"conversation_id": str(conversation_id)}
        )
        if left:
            await self.connections.broadcast(
                conversation_id,
                "user_left_conversation",
                {"conversation_id": conversation_id, "user_id": self.user.id},
                exclude=self.connection,
            )

    async def send_message(self, data: dict):
        payload = SendMessageEventIn.model_validate(data)
        async with self.session_factory() as db:
            await self._messages(db).send(
                payload.conversation_id,
                self.user.id,
                payload.content,
                payload.type,
                payload.reply_to,
            )

    async def _typing(self, data: dict, event: str):
        payload = ConversationEventIn.model_validate(data)
        if payload.conversation_id not in self.connections.rooms_of(self.connection):
            raise ForbiddenError("Join the conversation first")

        await self.connections.broadcast(
            payload.conversation_id,
            event,
            {"conversation_id": payload.conversation_id, "user_id": self.user.id},
            exclude=self.connection,
        )

    async def typing_start(self, data: dict):
        await self._typing(data, "user_typing_start")

    async def typing_stop(self, data: dict):
        await self._typing(data, "user_typing_stop")

    async def mark_as_read(self, data: dict):
        payload = MarkAsReadEventIn.model_validate(data)
        async with self.session_factory() as db:
            await self._messages(db).mark_read(
                payload.conversation_id,
                self.user.id,
                payload.message_id,
                exclude=self.connection,
            )
