"""Tests for presence tracking and room fan-out."""
import uuid

import pytest

from conftest import RecordingConnection
from core.exceptions import ForbiddenError
from realtime.connection_manager import ConnectionRegistry
from realtime.event_bus import LocalEventBus, room_target, user_target
from services.conversation_service import ConversationService


@pytest.fixture
async def convo(db, renter, landlord):
    return await ConversationService(db).start_conversation(renter, landlord.id)


class TestPresence:
    async def test_first_and_last_connection_flip_status(self, connections, renter, landlord):
        watcher = RecordingConnection(landlord.id)
        await connections.register(landlord.id, watcher)

        phone = RecordingConnection(renter.id)
        laptop = RecordingConnection(renter.id)
        assert await connections.register(renter.id, phone)
        assert not await connections.register(renter.id, laptop)
        assert connections.user_connection_count(renter.id) == 2
        assert connections.online_users_count() == 2

        await connections.unregister(phone)
        assert connections.is_online(renter.id)
        await connections.unregister(laptop)
        assert not connections.is_online(renter.id)

        changes = [c for c in watcher.named("user_status_change") if c["user_id"] == str(renter.id)]
        assert [c["is_online"] for c in changes] == [True, False]
        assert changes[1]["last_seen"] is not None

    async def test_unregister_unknown_connection_is_harmless(self, connections, renter):
        assert await connections.unregister(RecordingConnection(renter.id)) == set()


class TestRooms:
    async def test_only_participants_may_join(self, connections, convo, other_renter):
        outsider = RecordingConnection(other_renter.id)
        await connections.register(other_renter.id, outsider)
        with pytest.raises(ForbiddenError):
            await connections.join_room(outsider, convo.id)
        assert connections.rooms_of(outsider) == set()

    async def test_broadcast_reaches_room_and_honours_exclude(
        self, connections, convo, renter, landlord
    ):
        renter_socket = RecordingConnection(renter.id)
        landlord_socket = RecordingConnection(landlord.id)
        for user, socket in ((renter, renter_socket), (landlord, landlord_socket)):
            await connections.register(user.id, socket)
            await connections.join_room(socket, convo.id)

        await connections.broadcast(convo.id, "user_typing_start", {"x": 1}, exclude=renter_socket)

        assert landlord_socket.named("user_typing_start") == [{"x": 1}]
        assert renter_socket.named("user_typing_start") == []

    async def test_leave_and_disconnect_clear_membership(self, connections, convo, renter):
        socket = RecordingConnection(renter.id)
        await connections.register(renter.id, socket)
        await connections.join_room(socket, convo.id)

        assert await connections.leave_room(socket, convo.id)
        assert not await connections.leave_room(socket, convo.id)

        await connections.join_room(socket, convo.id)
        assert await connections.unregister(socket) == {convo.id}
        assert convo.id not in connections.room_connections

    async def test_failing_socket_does_not_block_others(
        self, connections, convo, renter, landlord
    ):
        class BrokenConnection(RecordingConnection):
            async def send(self, event, payload):
                raise RuntimeError("socket closed")

        broken = BrokenConnection(renter.id)
        healthy = RecordingConnection(landlord.id)
        for user, socket in ((renter, broken), (landlord, healthy)):
            await connections.register(user.id, socket)
            await connections.join_room(socket, convo.id)

        await connections.broadcast(convo.id, "new_message", {"id": "m1"})
        assert healthy.named("new_message") == [{"id": "m1"}]


class TestEventBus:
    async def test_targets_resolve_across_registries(self, renter):
        bus = LocalEventBus()
        first = ConnectionRegistry(bus=bus, participant_checker=None)
        second = ConnectionRegistry(bus=bus, participant_checker=None)
        a = RecordingConnection(renter.id)
        b = RecordingConnection(renter.id)
        await first.register(renter.id, a)
        await second.register(renter.id, b)

        await first.emit_to_user(renter.id, "ping", {})

        assert a.named("ping") == [{}]
        assert b.named("ping") == [{}]

    def test_target_names(self):
        user_id = uuid.uuid4()
        assert room_target("c1") == "conversation:c1"
        assert user_target(user_id) == f"user:{user_id}"
