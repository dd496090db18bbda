"""
Shared fixtures.

MongoDB is replaced by mongomock-motor and time by a controllable clock, so
every test starts from an empty store at a known instant.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from mongomock_motor import AsyncMongoMockClient

from supplychat.core.config import Settings
from supplychat.services.chat_service import ChatService
from supplychat.utils.realtime_bus import LiveUpdateBus


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int = 0, seconds: float = 0) -> datetime:
        self.now = self.now + timedelta(milliseconds=ms, seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        MONGO_DB_NAME="supplychat_test",
        REDIS_URL=None,
        LOG_LEVEL="WARNING",
        OPERATION_TIMEOUT_SECONDS=2.0,
    )


@pytest.fixture
def db():
    return AsyncMongoMockClient()["supplychat_test"]


@pytest.fixture
async def bus():
    bus = LiveUpdateBus()
    yield bus
    await bus.close()


@pytest.fixture
def service(db, bus, test_settings, clock):
    return ChatService.from_database(db, bus, test_settings, clock=clock)


@pytest.fixture
def eventually():
    """Poll an async-updated condition instead of sleeping a fixed time."""

    async def wait(predicate, timeout: float = 1.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)

    return wait
