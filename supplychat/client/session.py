from datetime import datetime
from typing import List, Optional

from supplychat.client.reconciler import LocalMessage, OptimisticReconciler
from supplychat.schemas.conversation import Conversation
from supplychat.schemas.message import Message
from supplychat.services.chat_service import ChatService
from supplychat.utils.accounts import normalize_account
from supplychat.utils.clock import Clock, utcnow
from supplychat.utils.errors import TransientIO
from supplychat.utils.logger import get_logger
from supplychat.utils.realtime_bus import Subscription


logger = get_logger(__name__)

QUICK_REPLIES = (
    ("Request Transfer", "I would like to request this batch for transfer."),
    ("Ask Price", "What is the price for this batch?"),
    ("Quality Info", "Can you provide quality details?"),
)


class ConversationSession:
    """
    One account's live view of one conversation.

    Live updates may repeat or go missing while disconnected; every connect
    therefore does a full resync from the store, and all incoming messages
    go through the reconciler, which ignores duplicates.
    """

    def __init__(
        self,
        service: ChatService,
        conversation: Conversation,
        account: str,
        clock: Clock = utcnow,
    ) -> None:
        self._service = service
        self.conversation = conversation
        self.account = normalize_account(account)
        self.reconciler = OptimisticReconciler(self.account, self._append, clock=clock)
        self._subscription: Optional[Subscription] = None
        self._read_pending = False

    async def _append(self, text: str) -> Message:
        return await self._service.send_message(self.conversation.id, self.account, text)

    @property
    def conversation_id(self) -> str:
        return self.conversation.id

    @property
    def other_party(self) -> str:
        return self.conversation.other_participant(self.account)

    @property
    def connected(self) -> bool:
        return self._subscription is not None

    async def connect(self) -> int:
        # subscribe before listing so nothing slips between the two
        if self._subscription is None:
            self._subscription = await self._service.subscribe(self.conversation_id, self._on_live_message)
        return await self.resync()

    async def disconnect(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await self._service.unsubscribe(subscription)

    async def reconnect(self) -> int:
        await self.disconnect()
        return await self.connect()

    async def resync(self) -> int:
        messages = await self._service.list_messages(self.conversation_id, viewer=self.account)
        return self.reconciler.merge_all(messages)

    async def _on_live_message(self, message: Message) -> None:
        self.reconciler.merge(message)

    async def open(self) -> None:
        if not self.connected:
            await self.connect()
        await self.mark_read()

    async def mark_read(self) -> bool:
        """Mark incoming messages read; a transient failure is retried on the next send."""
        try:
            await self._service.mark_as_read(self.conversation_id, self.account)
        except TransientIO as exc:
            logger.warning(f"Mark as read deferred for {self.conversation_id}: {exc.message}")
            self._read_pending = True
            return False
        self._read_pending = False
        self.reconciler.mark_incoming_read()
        return True

    @property
    def read_pending(self) -> bool:
        return self._read_pending

    async def send(self, text: str) -> LocalMessage:
        if self._read_pending:
            await self.mark_read()
        return await self.reconciler.submit(text)

    def keystroke(self) -> None:
        self._service.signal_typing(self.conversation_id, self.account)

    def other_party_typing(self, as_of: Optional[datetime] = None) -> bool:
        return self._service.is_typing(self.conversation_id, self.other_party, as_of=as_of)

    def messages(self) -> List[LocalMessage]:
        return self.reconciler.messages()

    def unread_count(self) -> int:
        return self.reconciler.unread_incoming()

    def quick_replies(self) -> List[tuple]:
        if not self.conversation.product_context:
            return []
        return list(QUICK_REPLIES)
