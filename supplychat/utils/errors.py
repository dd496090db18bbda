from contextlib import contextmanager
from typing import Any, Iterator, Optional

from pymongo.errors import PyMongoError


class ChatError(Exception):
    """Base class for conversation and messaging errors."""

    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class InvalidParticipant(ChatError):
    """Raised for an empty account or a conversation with oneself."""

    def __init__(self, reason: str, accounts: Optional[list] = None):
        super().__init__(
            message=f"Invalid participant: {reason}",
            code="INVALID_PARTICIPANT",
            details={"accounts": accounts} if accounts else None,
        )


class NotAParticipant(ChatError):
    """Raised when the sender is not one of the two conversation participants."""

    def __init__(self, conversation_id: str, account: str):
        super().__init__(
            message=f"{account} is not a participant of conversation {conversation_id}",
            code="NOT_A_PARTICIPANT",
            details={"conversation_id": conversation_id, "account": account},
        )


class BodyTooLong(ChatError):

    def __init__(self, length: int, max_length: int):
        super().__init__(
            message=f"Message body is {length} characters, maximum is {max_length}",
            code="BODY_TOO_LONG",
            details={"length": length, "max_length": max_length},
        )


class EmptyMessage(ChatError):

    def __init__(self):
        super().__init__(message="Message content cannot be empty", code="EMPTY_MESSAGE")


class NotFound(ChatError):

    def __init__(self, kind: str, identifier: str):
        super().__init__(
            message=f"{kind.capitalize()} not found: {identifier}",
            code="NOT_FOUND",
            details={"kind": kind, "id": identifier},
        )


class TransientIO(ChatError):
    """Storage or network failure; the caller may retry."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        reason = f": {cause}" if cause else ""
        super().__init__(
            message=f"Transient failure during {operation}{reason}",
            code="TRANSIENT_IO",
            details={"operation": operation},
        )
        self.operation = operation


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver failures inside the block as TransientIO."""
    try:
        yield
    except PyMongoError as exc:
        raise TransientIO(operation, exc) from exc
