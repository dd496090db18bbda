from typing import Tuple

from supplychat.utils.errors import InvalidParticipant


CONVERSATION_ID_SEPARATOR = "_"

# applied in order; "%" first so escapes cannot be confused with account text
_ID_ESCAPES = (("%", "%25"), (CONVERSATION_ID_SEPARATOR, "%5F"))


def normalize_account(account: str) -> str:
    """Accounts are case-insensitive; compare and store them lowercased."""
    if account is None:
        raise InvalidParticipant("account is empty")
    normalized = str(account).strip().lower()
    if not normalized:
        raise InvalidParticipant("account is empty")
    return normalized


def canonical_pair(account_a: str, account_b: str) -> Tuple[str, str]:
    a = normalize_account(account_a)
    b = normalize_account(account_b)
    if a == b:
        raise InvalidParticipant("cannot open a conversation with yourself", [a])
    return (a, b) if a < b else (b, a)


def _escape_for_id(account: str) -> str:
    for raw, escaped in _ID_ESCAPES:
        account = account.replace(raw, escaped)
    return account


def conversation_id_for(account_a: str, account_b: str) -> str:
    """
    ``low_high`` for the canonical pair. Separator characters inside an
    account are percent-escaped, so distinct pairs never share an id.
    """
    low, high = canonical_pair(account_a, account_b)
    return f"{_escape_for_id(low)}{CONVERSATION_ID_SEPARATOR}{_escape_for_id(high)}"


def format_address(account: str) -> str:
    # 0x1234...abcd
    if len(account) <= 10:
        return account
    return f"{account[:6]}...{account[-4:]}"
