import asyncio
import weakref
from datetime import datetime
from typing import Awaitable, List, Optional, TypeVar

from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.exceptions import RedisError

from supplychat.core.config import Settings
from supplychat.repositories.conversation_repository import ConversationRepository
from supplychat.repositories.message_repository import MessageRepository
from supplychat.schemas.conversation import Conversation, ConversationSummary, ProductContext
from supplychat.schemas.message import Message
from supplychat.services.conversation_directory import ConversationDirectory, to_conversation
from supplychat.services.identity import IdentityResolver, display_label
from supplychat.services.message_store import MessageStore
from supplychat.services.presence import PresenceTracker
from supplychat.services.read_tracker import ReadTracker
from supplychat.utils.accounts import normalize_account
from supplychat.utils.clock import Clock, utcnow
from supplychat.utils.errors import TransientIO
from supplychat.utils.logger import get_logger
from supplychat.utils.realtime_bus import LiveUpdateBus, OnMessage, Subscription


logger = get_logger(__name__)

T = TypeVar("T")


class ChatService:
    """
    Entry point for every conversation operation.

    Appends are serialized per conversation (one lock each) so that storing a
    message and notifying subscribers happen in the same order for everyone.
    Storage calls are bounded by ``operation_timeout`` (for appends, only up
    to the insert); running out of time surfaces as TransientIO and is not
    retried here.
    """

    def __init__(
        self,
        directory: ConversationDirectory,
        store: MessageStore,
        read_tracker: ReadTracker,
        presence: PresenceTracker,
        bus: LiveUpdateBus,
        identity_resolver: Optional[IdentityResolver] = None,
        operation_timeout: float = 5.0,
    ) -> None:
        self.directory = directory
        self.store = store
        self.read_tracker = read_tracker
        self.presence = presence
        self.bus = bus
        self._identity_resolver = identity_resolver
        self._operation_timeout = operation_timeout
        # entries vanish once no send holds or waits on the lock
        self._append_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @classmethod
    def from_database(
        cls,
        db: AsyncIOMotorDatabase,
        bus: LiveUpdateBus,
        settings: Settings,
        clock: Clock = utcnow,
        identity_resolver: Optional[IdentityResolver] = None,
    ) -> "ChatService":
        conversation_repo = ConversationRepository(db)
        message_repo = MessageRepository(db)
        return cls(
            directory=ConversationDirectory(conversation_repo, clock=clock),
            store=MessageStore(
                message_repo,
                conversation_repo,
                clock=clock,
                max_body_length=settings.MESSAGE_MAX_LENGTH,
                preview_length=settings.PREVIEW_LENGTH,
            ),
            read_tracker=ReadTracker(message_repo, conversation_repo),
            presence=PresenceTracker(ttl_ms=settings.TYPING_TTL_MS, clock=clock),
            bus=bus,
            identity_resolver=identity_resolver,
            operation_timeout=settings.OPERATION_TIMEOUT_SECONDS,
        )

    async def _bounded(self, operation: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self._operation_timeout)
        except asyncio.TimeoutError as exc:
            logger.error(f"{operation} timed out after {self._operation_timeout}s")
            raise TransientIO(operation, exc) from exc

    # Conversations

    async def get_or_create_conversation(
        self,
        account_a: str,
        account_b: str,
        product_context: Optional[ProductContext] = None,
    ) -> Conversation:
        return await self._bounded(
            "get or create conversation",
            self.directory.get_or_create(account_a, account_b, product_context),
        )

    async def get_conversation(self, conversation_id: str) -> Conversation:
        return await self._bounded("load conversation", self.directory.get(conversation_id))

    async def list_conversations(self, account: str, limit: int = 0) -> List[ConversationSummary]:
        account = normalize_account(account)
        docs = await self._bounded("list conversations", self.directory.list_for_account(account, limit=limit))
        summaries = []
        for doc in docs:
            conversation = to_conversation(doc)
            other = conversation.other_participant(account)
            label = await display_label(self._identity_resolver, other)
            unread = await self._bounded(
                "count unread messages", self.read_tracker.unread_count(conversation.id, account)
            )
            summaries.append(
                ConversationSummary(
                    conversation=conversation,
                    other_party=other,
                    display_name=label.name,
                    role=label.role,
                    last_message_preview=doc.get("last_message_preview"),
                    unread_count=unread,
                )
            )
        return summaries

    # Messages

    async def send_message(self, conversation_id: str, sender: str, body: str) -> Message:
        """
        Store and publish one message.

        Only the checks and sequence allocation run under the timeout. The
        insert itself is never cut short, so a TransientIO from here means
        nothing was stored.
        """
        lock = self._append_locks.get(conversation_id)
        if lock is None:
            lock = self._append_locks[conversation_id] = asyncio.Lock()
        async with lock:
            draft = await self._bounded("append message", self.store.prepare(conversation_id, sender, body))
            message = await self.store.commit(draft)
            try:
                await self.bus.publish(message)
            except RedisError as exc:
                # stored anyway; subscribers recover with a full resync
                logger.warning(f"Publishing {message.id} failed: {exc}")
        return message

    async def list_messages(self, conversation_id: str, viewer: Optional[str] = None) -> List[Message]:
        return await self._bounded("list messages", self.store.list(conversation_id, viewer=viewer))

    # Read state

    async def mark_as_read(self, conversation_id: str, reader: str) -> int:
        return await self._bounded("mark as read", self.read_tracker.mark_as_read(conversation_id, reader))

    async def unread_count(self, conversation_id: str, viewer: str) -> int:
        return await self._bounded("count unread messages", self.read_tracker.unread_count(conversation_id, viewer))

    async def total_unread(self, viewer: str) -> int:
        return await self._bounded("count unread messages", self.read_tracker.total_unread(viewer))

    # Presence

    def signal_typing(self, conversation_id: str, account: str) -> datetime:
        return self.presence.signal_typing(conversation_id, account)

    def is_typing(self, conversation_id: str, account: str, as_of: Optional[datetime] = None) -> bool:
        return self.presence.is_typing(conversation_id, account, as_of=as_of)

    # Live updates

    async def subscribe(self, conversation_id: str, on_message: OnMessage) -> Subscription:
        return await self.bus.subscribe(conversation_id, on_message)

    async def unsubscribe(self, handle: Subscription) -> None:
        await self.bus.unsubscribe(handle)
