"""
Integration tests for appending and listing messages.
"""

import asyncio

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from supplychat.repositories.conversation_repository import ConversationRepository
from supplychat.repositories.message_repository import MessageRepository
from supplychat.services.message_store import MessageStore, message_id_for
from supplychat.utils.errors import BodyTooLong, EmptyMessage, NotAParticipant, NotFound, TransientIO


ALICE = "0xa11ce00000000000000000000000000000000001"
BOB = "0xb0b0000000000000000000000000000000000002"
MALLORY = "0x3a11047000000000000000000000000000000009"


class UnreachableCollection:
    """Collection stand-in whose every call fails like a lost server."""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise ServerSelectionTimeoutError("No servers available")

        return fail


@pytest.fixture
async def conversation(service):
    return await service.directory.get_or_create(ALICE, BOB, {"id": "TEA001", "batchId": "TEA001"})


@pytest.mark.integration
class TestAppend:

    async def test_ordered_log_with_same_millisecond(self, service, conversation):
        first = await service.store.append(conversation.id, ALICE, "Interested in TEA001")
        second = await service.store.append(conversation.id, BOB, "Sure, 20 kg left")

        assert first.created_at == second.created_at
        assert first.id == message_id_for(conversation.id, 1)
        assert second.id == message_id_for(conversation.id, 2)

        messages = await service.store.list(conversation.id)
        assert [(m.sender, m.body) for m in messages] == [
            (ALICE, "Interested in TEA001"),
            (BOB, "Sure, 20 kg left"),
        ]

    async def test_concurrent_appends_get_distinct_ids(self, service, conversation):
        results = await asyncio.gather(*[
            service.store.append(conversation.id, ALICE if i % 2 else BOB, f"offer {i}") for i in range(10)
        ])

        assert len({m.id for m in results}) == 10
        listed = await service.store.list(conversation.id)
        assert [m.id for m in listed] == sorted(m.id for m in results)

    async def test_ids_and_timestamps_come_from_the_store(self, service, conversation, clock):
        clock.advance(ms=1234)
        message = await service.store.append(conversation.id, ALICE, "hello")

        assert message.created_at == clock()
        assert not message.read
        assert not message.delivered

    async def test_body_is_trimmed(self, service, conversation):
        message = await service.store.append(conversation.id, ALICE, "  price?  \n")
        assert message.body == "price?"

    async def test_exactly_max_length_accepted(self, service, conversation):
        message = await service.store.append(conversation.id, ALICE, "x" * 1000)
        assert len(message.body) == 1000

    async def test_over_max_length_rejected_not_truncated(self, service, conversation, db):
        with pytest.raises(BodyTooLong) as exc_info:
            await service.store.append(conversation.id, ALICE, "x" * 1001)

        assert exc_info.value.details == {"length": 1001, "max_length": 1000}
        assert await db["messages"].count_documents({}) == 0

    @pytest.mark.parametrize("body", ["", "   ", "\n\t"])
    async def test_empty_rejected(self, service, conversation, db, body):
        with pytest.raises(EmptyMessage):
            await service.store.append(conversation.id, ALICE, body)
        assert await db["messages"].count_documents({}) == 0

    async def test_outsider_cannot_append(self, service, conversation, db):
        with pytest.raises(NotAParticipant):
            await service.store.append(conversation.id, MALLORY, "let me in")

        assert await db["messages"].count_documents({}) == 0
        assert await service.store.list(conversation.id) == []

    async def test_sender_case_ignored(self, service, conversation):
        message = await service.store.append(conversation.id, BOB.upper().replace("0X", "0x"), "ok")
        assert message.sender == BOB

    async def test_unknown_conversation(self, service):
        with pytest.raises(NotFound):
            await service.store.append("0xdead_0xbeef", ALICE, "hello")

    async def test_updates_preview_and_activity(self, service, conversation, clock, db):
        clock.advance(seconds=60)
        await service.store.append(conversation.id, BOB, "y" * 300)

        doc = await db["conversations"].find_one({"_id": conversation.id})
        assert doc["last_message_preview"] == "y" * 200
        refreshed = await service.directory.get(conversation.id)
        assert refreshed.last_activity > conversation.last_activity

    async def test_storage_failure_surfaces_as_transient(self, db, clock, conversation):
        store = MessageStore(
            MessageRepository({"messages": UnreachableCollection()}),
            ConversationRepository(db),
            clock=clock,
        )

        with pytest.raises(TransientIO) as exc_info:
            await store.append(conversation.id, ALICE, "hello")
        assert exc_info.value.operation == "save message"


@pytest.mark.integration
class TestList:

    async def test_empty_conversation(self, service, conversation):
        assert await service.store.list(conversation.id) == []

    async def test_unknown_conversation(self, service):
        with pytest.raises(NotFound):
            await service.store.list("0xdead_0xbeef")

    async def test_viewer_marks_incoming_delivered(self, service, conversation):
        await service.store.append(conversation.id, ALICE, "from alice")
        await service.store.append(conversation.id, BOB, "from bob")

        seen_by_bob = await service.store.list(conversation.id, viewer=BOB)
        delivered = {m.sender: m.delivered for m in seen_by_bob}
        assert delivered == {ALICE: True, BOB: False}

    async def test_outsider_viewer_changes_nothing(self, service, conversation):
        await service.store.append(conversation.id, ALICE, "from alice")

        messages = await service.store.list(conversation.id, viewer=MALLORY)
        assert not messages[0].delivered

    async def test_listing_is_repeatable(self, service, conversation):
        await service.store.append(conversation.id, ALICE, "one")
        await service.store.append(conversation.id, BOB, "two")

        assert await service.store.list(conversation.id) == await service.store.list(conversation.id)
