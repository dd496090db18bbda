from typing import List, Optional

from supplychat.models.conversation import ConversationDocument
from supplychat.repositories.conversation_repository import ConversationRepository
from supplychat.schemas.conversation import Conversation, ProductContext
from supplychat.utils.accounts import canonical_pair, conversation_id_for, normalize_account
from supplychat.utils.clock import Clock, ensure_utc, utcnow
from supplychat.utils.errors import NotFound
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)


def to_conversation(doc: ConversationDocument) -> Conversation:
    return Conversation(
        id=doc["_id"],
        participant_low=doc["participant_low"],
        participant_high=doc["participant_high"],
        product_context=doc.get("product_context"),
        last_activity=ensure_utc(doc["last_activity"]),
    )


class ConversationDirectory:
    """Resolves a pair of accounts to its one canonical conversation."""

    def __init__(self, conversation_repo: ConversationRepository, clock: Clock = utcnow) -> None:
        self._conversation_repo = conversation_repo
        self._clock = clock

    async def get_or_create(
        self,
        account_a: str,
        account_b: str,
        product_context: Optional[ProductContext] = None,
    ) -> Conversation:
        """
        Idempotent create-or-fetch for the unordered pair.

        A non-null ``product_context`` replaces whatever is stored (last write
        wins); ``last_activity`` moves to now on every call.
        """
        low, high = canonical_pair(account_a, account_b)
        conversation_id = conversation_id_for(low, high)
        doc = await self._conversation_repo.upsert(conversation_id, low, high, product_context, self._clock())
        logger.debug(f"Conversation {conversation_id} resolved")
        return to_conversation(doc)

    async def get(self, conversation_id: str) -> Conversation:
        doc = await self._conversation_repo.get(conversation_id)
        if doc is None:
            raise NotFound("conversation", conversation_id)
        return to_conversation(doc)

    async def list_for_account(self, account: str, limit: int = 0) -> List[ConversationDocument]:
        return await self._conversation_repo.list_for_account(normalize_account(account), limit=limit)
