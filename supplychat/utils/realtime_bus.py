import asyncio
import contextlib
import uuid
from typing import Awaitable, Callable, Dict, Optional

import redis.asyncio as redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from supplychat.core.config import Settings
from supplychat.schemas.message import Message
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)

OnMessage = Callable[[Message], Awaitable[None]]


class Subscription:
    """
    Handle for one subscriber of one conversation.

    Notifications are queued and handed to ``on_message`` by a single task,
    one at a time and in publish order.
    """

    def __init__(self, conversation_id: str, on_message: OnMessage) -> None:
        self.id = uuid.uuid4().hex
        self.conversation_id = conversation_id
        self.active = True
        self._on_message = on_message
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.create_task(self.run())

    def deliver(self, message: Message) -> None:
        if self.active:
            self._queue.put_nowait(message)

    async def run(self) -> None:
        while self.active:
            message = await self._queue.get()
            try:
                await self._on_message(message)
            except Exception:
                logger.exception(f"Subscriber {self.id} failed handling message {message.id}")

    async def cancel(self) -> None:
        self.active = False
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task


class LiveUpdateBus:
    """In-process fan-out of newly appended messages, per conversation."""

    transport = "local"

    def __init__(self) -> None:
        self._subscriptions: Dict[str, Dict[str, Subscription]] = {}

    async def publish(self, message: Message) -> None:
        self._fanout(message)

    def _fanout(self, message: Message) -> None:
        for sub in list(self._subscriptions.get(message.conversation_id, {}).values()):
            sub.deliver(message)

    async def subscribe(self, conversation_id: str, on_message: OnMessage) -> Subscription:
        sub = Subscription(conversation_id, on_message)
        self._subscriptions.setdefault(conversation_id, {})[sub.id] = sub
        sub.start()
        logger.debug(f"Subscription {sub.id} opened on {conversation_id}")
        return sub

    async def unsubscribe(self, handle: Subscription) -> None:
        self._detach(handle)
        await handle.cancel()

    def _detach(self, handle: Subscription) -> None:
        subs = self._subscriptions.get(handle.conversation_id)
        if subs is not None:
            subs.pop(handle.id, None)
            if not subs:
                del self._subscriptions[handle.conversation_id]

    def subscriber_count(self, conversation_id: str) -> int:
        return len(self._subscriptions.get(conversation_id, {}))

    async def close(self) -> None:
        for subs in list(self._subscriptions.values()):
            for sub in list(subs.values()):
                await self.unsubscribe(sub)


class RedisLiveUpdateBus(LiveUpdateBus):
    """
    Same interface, but publishes through Redis so every worker process sees
    every append. One pub/sub listener per conversation with local subscribers
    relays incoming messages to them.
    """

    transport = "redis"

    def __init__(self, client: redis.Redis, channel_prefix: str = "conversation:") -> None:
        super().__init__()
        self._redis = client
        self._channel_prefix = channel_prefix
        self._listeners: Dict[str, asyncio.Task] = {}
        self._pubsubs: Dict[str, PubSub] = {}
        # guards listener start/stop against concurrent (un)subscribes
        self._listener_lock = asyncio.Lock()

    @classmethod
    def from_url(cls, url: str) -> "RedisLiveUpdateBus":
        return cls(redis.from_url(url))

    def _channel(self, conversation_id: str) -> str:
        return f"{self._channel_prefix}{conversation_id}"

    async def publish(self, message: Message) -> None:
        await self._redis.publish(self._channel(message.conversation_id), message.model_dump_json())

    async def subscribe(self, conversation_id: str, on_message: OnMessage) -> Subscription:
        async with self._listener_lock:
            if conversation_id not in self._listeners:
                pubsub = self._redis.pubsub()
                try:
                    await pubsub.subscribe(self._channel(conversation_id))
                except RedisError:
                    await pubsub.aclose()
                    raise
                self._pubsubs[conversation_id] = pubsub
                self._listeners[conversation_id] = asyncio.create_task(self._listen(pubsub))
            return await super().subscribe(conversation_id, on_message)

    async def _listen(self, pubsub: PubSub) -> None:
        while True:
            try:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except RedisError as exc:
                logger.warning(f"Redis pub/sub read failed: {exc}")
                await asyncio.sleep(0.5)
                continue
            if msg and msg.get("type") == "message":
                data = msg.get("data")
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                self._fanout(Message.model_validate_json(data))

    async def unsubscribe(self, handle: Subscription) -> None:
        # stop the listener before cancelling, since the handle may be
        # unsubscribing from inside its own callback
        async with self._listener_lock:
            self._detach(handle)
            await self._stop_listener(handle.conversation_id)
        await handle.cancel()

    async def _stop_listener(self, conversation_id: str) -> None:
        if self.subscriber_count(conversation_id) or conversation_id not in self._listeners:
            return
        listener = self._listeners.pop(conversation_id)
        pubsub = self._pubsubs.pop(conversation_id)
        listener.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await listener
        try:
            await pubsub.unsubscribe(self._channel(conversation_id))
            await pubsub.aclose()
        except RedisError as exc:
            logger.warning(f"Redis unsubscribe from {conversation_id} failed: {exc}")

    async def close(self) -> None:
        await super().close()
        await self._redis.aclose()


def create_bus(settings: Settings) -> LiveUpdateBus:
    if settings.REDIS_URL:
        logger.info("Live update bus using Redis pub/sub")
        return RedisLiveUpdateBus.from_url(settings.REDIS_URL)
    logger.info("Live update bus running in-process")
    return LiveUpdateBus()
