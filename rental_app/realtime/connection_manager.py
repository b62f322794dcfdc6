import logging
import uuid
from typing import Awaitable, Callable, Dict, Iterable, Optional, Set
from uuid import UUID

from fastapi import WebSocket

from core.date_helper import utcnow
from core.exceptions import ForbiddenError
from core.get_db import AsyncSessionLocal
from repos.conversation_repo import ConversationRepo

from .event_bus import EVERYONE, EventBus, event_bus, room_target, user_target

logger = logging.getLogger(__name__)

ParticipantChecker = Callable[[UUID, UUID], Awaitable[bool]]


class Connection:
    def __init__(self, websocket: WebSocket, user_id: UUID):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id = user_id

    async def send(self, event: str, payload: dict):
        await self.websocket.send_json({"event": event, "data": payload})


async def check_participant(conversation_id: UUID, user_id: UUID) -> bool:
    async with AsyncSessionLocal() as db:
        return await ConversationRepo(db).is_participant(conversation_id, user_id)


class ConnectionRegistry:
    """Presence and room membership for live websocket connections.

    In-process only: rebuilt from nothing on restart and never the source of
    truth for persisted state.
    """

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        participant_checker: Optional[ParticipantChecker] = None,
    ):
        self.connections: Dict[str, Connection] = {}
        self.user_connections: Dict[UUID, Set[str]] = {}
        self.connection_rooms: Dict[str, Set[UUID]] = {}
        self.room_connections: Dict[UUID, Set[str]] = {}
        self.participant_checker = participant_checker or check_participant
        self.bus = bus or event_bus
        self.bus.subscribe(self._deliver)

    async def register(self, user_id: UUID, connection: Connection) -> bool:
        first = not self.user_connections.get(user_id)
        self.connections[connection.id] = connection
        self.user_connections.setdefault(user_id, set()).add(connection.id)
        self.connection_rooms.setdefault(connection.id, set())

        if first:
            await self.emit_to_all(
                "user_status_change",
                {"user_id": user_id, "is_online": True, "last_seen": None},
            )
        logger.info(f"User {user_id} connected ({connection.id})")
        return first

    async def unregister(self, connection: Connection) -> Set[UUID]:
        rooms = self.connection_rooms.pop(connection.id, set())
        for conversation_id in rooms:
            members = self.room_connections.get(conversation_id)
            if members is not None:
                members.discard(connection.id)
                if not members:
                    self.room_connections.pop(conversation_id, None)

        self.connections.pop(connection.id, None)
        user_id = connection.user_id
        owned = self.user_connections.get(user_id)
        if owned is not None:
            owned.discard(connection.id)
            if not owned:
                self.user_connections.pop(user_id, None)
                await self.emit_to_all(
                    "user_status_change",
                    {"user_id": user_id, "is_online": False, "last_seen": utcnow()},
                )

        logger.info(f"User {user_id} disconnected ({connection.id})")
        return rooms

    async def join_room(self, connection: Connection, conversation_id: UUID):
        if not await self.participant_checker(conversation_id, connection.user_id):
            raise ForbiddenError("Invalid conversation or access denied")

        self.connection_rooms.setdefault(connection.id, set()).add(conversation_id)
        self.room_connections.setdefault(conversation_id, set()).add(connection.id)

    async def leave_room(self, connection: Connection, conversation_id: UUID) -> bool:
        rooms = self.connection_rooms.get(connection.id, set())
        if conversation_id not in rooms:
            return False
        rooms.discard(conversation_id)
        members = self.room_connections.get(conversation_id, set())
        members.discard(connection.id)
        if not members:
            self.room_connections.pop(conversation_id, None)
        return True

    def rooms_of(self, connection: Connection) -> Set[UUID]:
        return set(self.connection_rooms.get(connection.id, set()))

    async def broadcast(
        self,
        conversation_id: UUID,
        event: str,
        payload: dict,
        exclude: Optional[Connection] = None,
        user_ids: Iterable[UUID] = (),
    ):
        """Deliver to the room, plus any listed users' connections outside it."""
        targets = [room_target(conversation_id)]
        targets.extend(user_target(uid) for uid in user_ids)
        await self.bus.publish(targets, event, payload, exclude.id if exclude else None)

    async def emit_to_user(self, user_id: UUID, event: str, payload: dict):
        await self.bus.publish([user_target(user_id)], event, payload)

    async def emit_to_all(self, event: str, payload: dict):
        await self.bus.publish([EVERYONE], event, payload)

    def is_online(self, user_id: UUID) -> bool:
        return bool(self.user_connections.get(user_id))

    def online_users_count(self) -> int:
        return len(self.user_connections)

    def user_connection_count(self, user_id: UUID) -> int:
        return len(self.user_connections.get(user_id, set()))

    def _resolve(self, target: str) -> Set[str]:
        if target == EVERYONE:
            return set(self.connections)

        kind, _, raw_id = target.partition(":")
        try:
            key = UUID(raw_id)
        except ValueError:
            return set()
        if kind == "conversation":
            return set(self.room_connections.get(key, set()))
        if kind == "user":
            return set(self.user_connections.get(key, set()))
        return set()

    async def _deliver(self, targets, event: str, payload: dict, exclude: Optional[str]):
        connection_ids: Set[str] = set()
        for target in targets:
            connection_ids |= self._resolve(target)
        connection_ids.discard(exclude)

        for connection_id in connection_ids:
            connection = self.connections.get(connection_id)
            if connection is None:
                continue
            try:
                await connection.send(event, payload)
            except Exception as e:
                logger.warning(
                    f"Dropping {event} for connection {connection_id}: {e}"
                )


registry = ConnectionRegistry()
