"""
Tests for the live update bus (in-process and Redis-backed).
"""

import asyncio
from datetime import datetime, timezone

import pytest
from fakeredis import aioredis

from supplychat.core.config import Settings
from supplychat.schemas.message import Message
from supplychat.utils.realtime_bus import LiveUpdateBus, RedisLiveUpdateBus, create_bus


CONVERSATION = "0xa11ce_0xb0b"
OTHER_CONVERSATION = "0xa11ce_0xca401"


def make_message(seq, conversation_id=CONVERSATION, body=None):
    return Message(
        id=f"{conversation_id}:{seq:012d}",
        conversation_id=conversation_id,
        sender="0xa11ce",
        body=body or f"message {seq}",
        created_at=datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc),
    )


def listen_tasks():
    return [
        task for task in asyncio.all_tasks()
        if not task.done() and task.get_coro().__qualname__ == "RedisLiveUpdateBus._listen"
    ]


@pytest.mark.unit
class TestLiveUpdateBus:

    async def test_every_subscriber_gets_each_message_in_order(self, bus, eventually):
        first, second = [], []

        async def on_first(message):
            first.append(message.id)

        async def on_second(message):
            second.append(message.id)

        await bus.subscribe(CONVERSATION, on_first)
        await bus.subscribe(CONVERSATION, on_second)
        messages = [make_message(seq) for seq in range(1, 6)]
        for message in messages:
            await bus.publish(message)

        expected = [m.id for m in messages]
        await eventually(lambda: first == expected and second == expected)

    async def test_only_matching_conversation_is_notified(self, bus, eventually):
        received = []

        async def on_message(message):
            received.append(message.conversation_id)

        await bus.subscribe(CONVERSATION, on_message)
        await bus.publish(make_message(1, conversation_id=OTHER_CONVERSATION))
        await bus.publish(make_message(1))

        await eventually(lambda: received == [CONVERSATION])

    async def test_no_notification_after_unsubscribe(self, bus):
        received = []

        async def on_message(message):
            received.append(message)

        handle = await bus.subscribe(CONVERSATION, on_message)
        await bus.unsubscribe(handle)
        await bus.publish(make_message(1))
        await asyncio.sleep(0.05)

        assert received == []
        assert bus.subscriber_count(CONVERSATION) == 0

    async def test_unsubscribe_twice_is_harmless(self, bus):
        async def on_message(message):
            pass

        handle = await bus.subscribe(CONVERSATION, on_message)
        await bus.unsubscribe(handle)
        await bus.unsubscribe(handle)
        assert not handle.active

    async def test_unsubscribe_from_inside_callback(self, bus, eventually):
        received = []
        handles = []

        async def on_message(message):
            received.append(message.id)
            await bus.unsubscribe(handles[0])

        handles.append(await bus.subscribe(CONVERSATION, on_message))
        await bus.publish(make_message(1))
        await eventually(lambda: not handles[0].active)
        await bus.publish(make_message(2))
        await asyncio.sleep(0.05)

        assert received == [make_message(1).id]

    async def test_failing_subscriber_does_not_stop_delivery(self, bus, eventually):
        received = []

        async def flaky(message):
            if message.id.endswith("1"):
                raise RuntimeError("render failed")
            received.append(message.id)

        await bus.subscribe(CONVERSATION, flaky)
        await bus.publish(make_message(1))
        await bus.publish(make_message(2))

        await eventually(lambda: received == [make_message(2).id])


@pytest.mark.unit
class TestRedisLiveUpdateBus:

    @pytest.fixture
    async def redis_bus(self):
        bus = RedisLiveUpdateBus(aioredis.FakeRedis())
        yield bus
        await bus.close()

    async def test_publish_reaches_local_subscriber_through_redis(self, redis_bus, eventually):
        received = []

        async def on_message(message):
            received.append(message)

        await redis_bus.subscribe(CONVERSATION, on_message)
        sent = make_message(1, body="Batch TEA001 still available?")
        await redis_bus.publish(sent)

        await eventually(lambda: len(received) == 1, timeout=3.0)
        assert received[0] == sent

    async def test_listener_stops_with_last_subscriber(self, redis_bus):
        async def on_message(message):
            pass

        first = await redis_bus.subscribe(CONVERSATION, on_message)
        second = await redis_bus.subscribe(CONVERSATION, on_message)
        await redis_bus.unsubscribe(first)
        assert CONVERSATION in redis_bus._listeners

        await redis_bus.unsubscribe(second)
        assert CONVERSATION not in redis_bus._listeners

    async def test_concurrent_subscribes_share_one_listener(self, redis_bus, eventually):
        received = []

        async def on_message(message):
            received.append(message.id)

        handles = await asyncio.gather(
            redis_bus.subscribe(CONVERSATION, on_message),
            redis_bus.subscribe(CONVERSATION, on_message),
        )
        assert len(listen_tasks()) == 1

        await redis_bus.publish(make_message(1))
        await eventually(lambda: len(received) == 2, timeout=3.0)
        await asyncio.sleep(0.1)
        assert received == [make_message(1).id] * 2

        for handle in handles:
            await redis_bus.unsubscribe(handle)
        assert listen_tasks() == []

    async def test_unsubscribe_from_inside_callback_stops_listener(self, redis_bus, eventually):
        handles = []

        async def on_message(message):
            await redis_bus.unsubscribe(handles[0])

        handles.append(await redis_bus.subscribe(CONVERSATION, on_message))
        await redis_bus.publish(make_message(1))

        await eventually(lambda: not handles[0].active, timeout=3.0)
        await eventually(lambda: listen_tasks() == [])
        assert CONVERSATION not in redis_bus._listeners


@pytest.mark.unit
def test_create_bus_without_redis_url_is_in_process():
    settings = Settings(_env_file=None, REDIS_URL=None)
    assert create_bus(settings).transport == "local"


@pytest.mark.unit
def test_create_bus_with_redis_url():
    settings = Settings(_env_file=None, REDIS_URL="redis://localhost:6379/0")
    assert create_bus(settings).transport == "redis"
