from typing import Dict, List, Optional

from supplychat.client.batch_requests import BatchRequest, BatchRequestChannel
from supplychat.client.session import ConversationSession
from supplychat.schemas.conversation import ConversationSummary, ProductContext
from supplychat.services.chat_service import ChatService
from supplychat.utils.accounts import normalize_account
from supplychat.utils.clock import Clock, utcnow
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)


class ChatInbox:
    """
    Every conversation session one account has open.

    Owned by whoever builds it and closed explicitly; nothing here is shared
    between inboxes.
    """

    def __init__(
        self,
        service: ChatService,
        account: str,
        requests: Optional[BatchRequestChannel] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._service = service
        self.account = normalize_account(account)
        self._clock = clock
        self._sessions: Dict[str, ConversationSession] = {}
        self.active: Optional[str] = None
        self._stop_listening = requests.subscribe(self.handle_batch_request) if requests else None

    def session(self, conversation_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(conversation_id)

    @property
    def sessions(self) -> List[ConversationSession]:
        return list(self._sessions.values())

    async def load(self) -> List[ConversationSummary]:
        return await self._service.list_conversations(self.account)

    async def start_conversation(
        self,
        target: str,
        product_context: Optional[ProductContext] = None,
    ) -> ConversationSession:
        conversation = await self._service.get_or_create_conversation(self.account, target, product_context)
        session = self._sessions.get(conversation.id)
        if session is None:
            session = ConversationSession(self._service, conversation, self.account, clock=self._clock)
            self._sessions[conversation.id] = session
        else:
            session.conversation = conversation
        await session.connect()
        self.active = conversation.id
        return session

    async def open(self, conversation_id: str) -> ConversationSession:
        session = self._sessions.get(conversation_id)
        if session is None:
            conversation = await self._service.get_conversation(conversation_id)
            session = ConversationSession(self._service, conversation, self.account, clock=self._clock)
            self._sessions[conversation_id] = session
        await session.open()
        self.active = conversation_id
        return session

    async def handle_batch_request(self, request: BatchRequest) -> None:
        if normalize_account(request.requester) != self.account:
            return
        if normalize_account(request.owner) == self.account:
            logger.debug("Ignoring batch request for a batch this account owns")
            return
        await self.start_conversation(request.owner, request.product_context)

    async def total_unread(self) -> int:
        return await self._service.total_unread(self.account)

    async def close(self) -> None:
        if self._stop_listening is not None:
            self._stop_listening()
            self._stop_listening = None
        for session in list(self._sessions.values()):
            await session.disconnect()
        self._sessions.clear()
        self.active = None
