from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from supplychat.utils.accounts import normalize_account
from supplychat.utils.clock import Clock, utcnow


TYPING_TTL_MS = 3000


class PresenceTracker:
    """
    Typing signals keyed by ``(conversation_id, account)``.

    Each keystroke overwrites the key's expiry with ``now + ttl``. Nothing is
    persisted and nothing sweeps the map: expired entries are ignored (and
    dropped) when read.
    """

    def __init__(self, ttl_ms: int = TYPING_TTL_MS, clock: Clock = utcnow) -> None:
        self._ttl = timedelta(milliseconds=ttl_ms)
        self._clock = clock
        self._expires_at: Dict[Tuple[str, str], datetime] = {}

    def signal_typing(self, conversation_id: str, account: str) -> datetime:
        expires_at = self._clock() + self._ttl
        self._expires_at[(conversation_id, normalize_account(account))] = expires_at
        return expires_at

    def is_typing(self, conversation_id: str, account: str, as_of: Optional[datetime] = None) -> bool:
        key = (conversation_id, normalize_account(account))
        expires_at = self._expires_at.get(key)
        if expires_at is None:
            return False
        as_of = as_of if as_of is not None else self._clock()
        if expires_at > as_of:
            return True
        # only forget signals that are stale relative to the real clock
        if expires_at <= self._clock():
            self._expires_at.pop(key, None)
        return False

    def typing_participants(self, conversation_id: str, exclude: Optional[str] = None) -> List[str]:
        skip = normalize_account(exclude) if exclude else None
        return sorted(
            account
            for (cid, account) in list(self._expires_at)
            if cid == conversation_id and account != skip and self.is_typing(cid, account)
        )
