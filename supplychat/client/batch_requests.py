from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from supplychat.schemas.conversation import ProductContext
from supplychat.utils.accounts import normalize_account
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)


def product_context_for_batch(
    batch_id: str,
    owner: str,
    variety: Optional[str] = None,
    origin: Optional[str] = None,
) -> ProductContext:
    context: ProductContext = {"id": batch_id, "batchId": batch_id, "owner": normalize_account(owner)}
    if variety is not None:
        context["variety"] = variety
    if origin is not None:
        context["origin"] = origin
    return context


@dataclass(frozen=True)
class BatchRequest:
    """``requester`` wants to negotiate with ``owner`` about one batch."""

    requester: str
    owner: str
    product_context: ProductContext = field(default_factory=dict)

    @classmethod
    def for_batch(
        cls,
        requester: str,
        owner: str,
        batch_id: str,
        variety: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> "BatchRequest":
        return cls(
            requester=normalize_account(requester),
            owner=normalize_account(owner),
            product_context=product_context_for_batch(batch_id, owner, variety=variety, origin=origin),
        )


BatchRequestHandler = Callable[[BatchRequest], Awaitable[None]]


class BatchRequestChannel:
    """
    Typed publish/subscribe link between the screens that list batches and
    the chat inbox. Publishing awaits every handler in subscription order.
    """

    def __init__(self) -> None:
        self._handlers: List[BatchRequestHandler] = []

    def subscribe(self, handler: BatchRequestHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def publish(self, request: BatchRequest) -> int:
        handlers = list(self._handlers)
        logger.debug(f"Batch request from {request.requester} to {request.owner} -> {len(handlers)} handler(s)")
        for handler in handlers:
            await handler(request)
        return len(handlers)
