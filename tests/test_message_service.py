"""Tests for message delivery, read receipts and the edit window."""
import asyncio
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import RecordingConnection
from core.date_helper import utcnow
from core.exceptions import (
    ExpiredError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from models.enums import ConversationStatus, MessageStatus
from models.models import MessageReadReceipt
from services.conversation_service import ConversationService
from services.message_service import MessageService, preview


@pytest.fixture
def service(db, connections, notifier):
    return MessageService(db, connections, notifier)


@pytest.fixture
async def convo(db, renter, landlord):
    return await ConversationService(db).start_conversation(renter, landlord.id)


async def _age(db, message, delta):
    message.created_at = utcnow() - delta
    await db.commit()


class TestSend:
    async def test_stores_and_updates_conversation(self, db, service, convo, renter, landlord):
        message = await service.send(convo.id, renter.id, "  Is the studio free in May?  ")

        assert message.content == "Is the studio free in May?"
        assert message.recipient_id == landlord.id
        assert message.status == MessageStatus.SENT
        assert convo.last_message_id == message.id
        assert convo.last_message_at == message.created_at
        assert convo.unread_counts[str(landlord.id)] == 1
        assert await service.get_unread_count(convo.id, landlord.id) == 1
        assert await service.get_unread_count(convo.id, renter.id) == 0

    async def test_sending_reactivates_archived_conversation(
        self, db, service, convo, renter, landlord
    ):
        await ConversationService(db).archive(convo.id, landlord)
        await service.send(convo.id, renter.id, "Hello?")
        assert convo.status == ConversationStatus.ACTIVE

    async def test_live_recipient_gets_message_and_count(
        self, service, connections, convo, renter, landlord
    ):
        landlord_socket = RecordingConnection(landlord.id)
        await connections.register(landlord.id, landlord_socket)

        message = await service.send(convo.id, renter.id, "Hello")

        delivered = landlord_socket.named("new_message")
        assert [m["id"] for m in delivered] == [str(message.id)]
        assert landlord_socket.named("unread_count_updated") == [
            {"conversation_id": str(convo.id), "unread_count": 1}
        ]

    async def test_room_member_receives_one_copy(
        self, service, connections, convo, renter, landlord
    ):
        landlord_socket = RecordingConnection(landlord.id)
        await connections.register(landlord.id, landlord_socket)
        await connections.join_room(landlord_socket, convo.id)

        await service.send(convo.id, renter.id, "Hello")
        assert len(landlord_socket.named("new_message")) == 1

    async def test_offline_recipient_gets_push(self, service, notifier, convo, renter, landlord):
        long_text = "x" * 150
        message = await service.send(convo.id, renter.id, long_text)

        assert notifier.sent == [
            {
                "user_id": landlord.id,
                "title": "New message from Rita Tester",
                "body": preview(long_text),
                "data": {"conversation_id": str(convo.id), "message_id": str(message.id)},
            }
        ]
        assert len(preview(long_text)) == 100

    async def test_delivery_failure_does_not_lose_message(
        self, service, notifier, convo, renter, landlord
    ):
        async def broken(*args, **kwargs):
            raise RuntimeError("push service down")

        notifier.notify = broken
        message = await service.send(convo.id, renter.id, "Still stored")
        assert await service.get_unread_count(convo.id, landlord.id) == 1
        assert message.id is not None

    async def test_outsider_cannot_send(self, service, convo, other_renter):
        with pytest.raises(ForbiddenError):
            await service.send(convo.id, other_renter.id, "Let me in")

    async def test_unknown_conversation(self, service, renter):
        with pytest.raises(NotFoundError):
            await service.send(uuid.uuid4(), renter.id, "Anyone?")

    async def test_content_limits(self, service, convo, renter):
        with pytest.raises(InvalidInputError):
            await service.send(convo.id, renter.id, "   ")
        with pytest.raises(InvalidInputError):
            await service.send(convo.id, renter.id, "a" * 5001)
        message = await service.send(convo.id, renter.id, "a" * 5000)
        assert len(message.content) == 5000

    async def test_reply_must_stay_in_conversation(
        self, db, service, convo, renter, landlord, other_renter
    ):
        first_message = await service.send(convo.id, landlord.id, "Viewing on Friday")
        reply = await service.send(convo.id, renter.id, "Works for me", reply_to=first_message.id)
        assert reply.reply_to_id == first_message.id

        elsewhere = await ConversationService(db).start_conversation(renter, other_renter.id)
        with pytest.raises(InvalidInputError):
            await service.send(elsewhere.id, renter.id, "Wrong thread", reply_to=first_message.id)


class TestReadReceipts:
    async def test_mark_read_is_idempotent(self, db, service, convo, renter, landlord):
        await service.send(convo.id, renter.id, "One")
        await service.send(convo.id, renter.id, "Two")

        assert await service.mark_read(convo.id, landlord.id) == 2
        assert await service.mark_read(convo.id, landlord.id) == 0
        assert await service.get_unread_count(convo.id, landlord.id) == 0
        assert convo.unread_counts[str(landlord.id)] == 0
        assert await db.scalar(select(func.count(MessageReadReceipt.id))) == 2

    async def test_mark_single_message(self, service, convo, renter, landlord):
        first = await service.send(convo.id, renter.id, "One")
        await service.send(convo.id, renter.id, "Two")

        assert await service.mark_read(convo.id, landlord.id, first.id) == 1
        assert await service.get_unread_count(convo.id, landlord.id) == 1

    async def test_own_messages_are_never_unread(self, service, convo, renter):
        await service.send(convo.id, renter.id, "Note to self")
        assert await service.mark_read(convo.id, renter.id) == 0

    async def test_reads_are_announced_to_the_room(
        self, service, connections, convo, renter, landlord
    ):
        message = await service.send(convo.id, renter.id, "Seen?")
        renter_socket = RecordingConnection(renter.id)
        await connections.register(renter.id, renter_socket)
        await connections.join_room(renter_socket, convo.id)

        await service.mark_read(convo.id, landlord.id)

        [event] = renter_socket.named("messages_read")
        assert event["reader_id"] == str(landlord.id)
        assert event["message_ids"] == [str(message.id)]

    async def test_unread_summary_spans_conversations(
        self, db, service, convo, renter, landlord, other_renter
    ):
        second = await ConversationService(db).start_conversation(other_renter, landlord.id)
        await service.send(convo.id, renter.id, "A")
        await service.send(second.id, other_renter.id, "B")
        await service.send(second.id, other_renter.id, "C")

        summary = await service.unread_summary(landlord.id)
        assert summary == {
            "total_unread": 3,
            "conversations": {str(convo.id): 1, str(second.id): 2},
        }


class TestEditAndDelete:
    async def test_edit_inside_window(self, db, service, convo, renter):
        message = await service.send(convo.id, renter.id, "Helo")
        await _age(db, message, timedelta(hours=23, minutes=59))

        edited = await service.edit(message.id, renter.id, "Hello")
        assert edited.content == "Hello"
        assert edited.is_edited
        assert edited.edited_at is not None

    async def test_edit_after_window_expires(self, db, service, convo, renter):
        message = await service.send(convo.id, renter.id, "Helo")
        await _age(db, message, timedelta(hours=24, seconds=1))

        with pytest.raises(ExpiredError):
            await service.edit(message.id, renter.id, "Hello")
        with pytest.raises(ExpiredError):
            await service.delete(message.id, renter.id)

    async def test_only_the_sender_may_change_a_message(self, service, convo, renter, landlord):
        message = await service.send(convo.id, renter.id, "Mine")
        with pytest.raises(ForbiddenError):
            await service.edit(message.id, landlord.id, "Yours now")
        with pytest.raises(ForbiddenError):
            await service.delete(message.id, landlord.id)
        with pytest.raises(NotFoundError):
            await service.edit(uuid.uuid4(), renter.id, "Ghost")

    async def test_delete_leaves_placeholder(
        self, service, connections, convo, renter, landlord
    ):
        message = await service.send(convo.id, renter.id, "Oops")
        landlord_socket = RecordingConnection(landlord.id)
        await connections.register(landlord.id, landlord_socket)
        await connections.join_room(landlord_socket, convo.id)

        deleted = await service.delete(message.id, renter.id)

        assert deleted.is_deleted
        assert deleted.content == "This message was deleted"
        assert deleted.deleted_by == renter.id
        assert landlord_socket.named("message_deleted") == [
            {"conversation_id": str(convo.id), "message_id": str(message.id)}
        ]
        # Deleting twice is harmless, editing afterwards is not.
        assert (await service.delete(message.id, renter.id)).is_deleted
        with pytest.raises(InvalidStateError):
            await service.edit(message.id, renter.id, "Back again")

    async def test_deleted_messages_stop_counting_as_unread(
        self, service, convo, renter, landlord
    ):
        message = await service.send(convo.id, renter.id, "Oops")
        await service.delete(message.id, renter.id)
        assert await service.get_unread_count(convo.id, landlord.id) == 0


class TestListMessages:
    async def test_oldest_first_and_marks_page_read(self, service, convo, renter, landlord):
        sent = [await service.send(convo.id, renter.id, f"Message {i}") for i in range(3)]
        deleted = await service.send(convo.id, renter.id, "Gone")
        await service.delete(deleted.id, renter.id)

        page = await service.list_messages(convo.id, landlord)

        assert [m.id for m in page["items"]] == [m.id for m in sent]
        assert page["pagination"]["total"] == 3
        assert await service.get_unread_count(convo.id, landlord.id) == 0

    async def test_pages_walk_back_through_history(self, service, convo, renter, landlord):
        sent = [await service.send(convo.id, renter.id, f"Message {i}") for i in range(5)]

        latest = await service.list_messages(convo.id, landlord, page=1, limit=2)
        older = await service.list_messages(convo.id, landlord, page=2, limit=2)

        assert [m.id for m in latest["items"]] == [sent[3].id, sent[4].id]
        assert [m.id for m in older["items"]] == [sent[1].id, sent[2].id]
        assert latest["pagination"]["has_next"]

    async def test_order_follows_sequence_not_clock(self, db, service, convo, renter, landlord):
        sent = [await service.send(convo.id, renter.id, f"Message {i}") for i in range(3)]
        assert [m.seq for m in sent] == [1, 2, 3]

        stamp = utcnow()
        sent[0].created_at = stamp
        sent[1].created_at = stamp
        sent[2].created_at = stamp - timedelta(seconds=5)
        await db.commit()

        page = await service.list_messages(convo.id, landlord)
        assert [m.id for m in page["items"]] == [m.id for m in sent]

    async def test_concurrent_sends_get_distinct_sequence_numbers(
        self, session_factory, connections, notifier, convo, renter, landlord
    ):
        async def send(sender_id, text):
            async with session_factory() as session:
                message = await MessageService(session, connections, notifier).send(
                    convo.id, sender_id, text
                )
                return message.seq

        seqs = await asyncio.gather(
            send(renter.id, "One"), send(landlord.id, "Two"), send(renter.id, "Three")
        )
        assert sorted(seqs) == [1, 2, 3]

    async def test_outsider_cannot_read(self, service, convo, other_renter):
        with pytest.raises(ForbiddenError):
            await service.list_messages(convo.id, other_renter)
