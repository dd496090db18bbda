from typing import Dict, Mapping, Optional, Protocol

from supplychat.schemas.conversation import DisplayName
from supplychat.utils.accounts import format_address, normalize_account
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)


class IdentityResolver(Protocol):
    """Maps an account to a name/role for labelling. Never used to authorize."""

    async def resolve_display_name(self, account: str) -> Optional[DisplayName]:
        ...


class StaticIdentityResolver:
    """Resolver backed by a fixed account -> name mapping."""

    def __init__(self, names: Optional[Mapping[str, DisplayName]] = None) -> None:
        self._names: Dict[str, DisplayName] = {
            normalize_account(account): name for account, name in (names or {}).items()
        }

    def register(self, account: str, name: str, role: Optional[str] = None) -> None:
        self._names[normalize_account(account)] = DisplayName(name=name, role=role)

    async def resolve_display_name(self, account: str) -> Optional[DisplayName]:
        return self._names.get(normalize_account(account))


async def display_label(resolver: Optional[IdentityResolver], account: str) -> DisplayName:
    """Resolved name when available, otherwise the shortened address."""
    if resolver is not None:
        try:
            resolved = await resolver.resolve_display_name(account)
        except Exception as exc:
            logger.warning(f"Identity lookup for {account} failed: {exc}")
            resolved = None
        if resolved is not None:
            return resolved
    return DisplayName(name=format_address(account))
