"""Protocol and data classes for the remote block list API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

# Cursor values of the paginated listing endpoint.
START_CURSOR = "-1"
END_CURSOR = "0"

# Upper bound imposed by the bulk user lookup endpoint.
MAX_LOOKUP_IDS = 100


@dataclass
class BlockIdsPage:
    """One page of blocked uids."""

    ids: list[str] = field(default_factory=list)
    next_cursor: str = END_CURSOR

    @property
    def is_last(self) -> bool:
        return self.next_cursor == END_CURSOR


@runtime_checkable
class BlockListClient(Protocol):
    """Remote calls the sync engine depends on."""

    async def blocked_ids(self, credentials: dict[str, str], cursor: str) -> BlockIdsPage:
        """Fetch one page of uids blocked by the credential's owner.

        Raises RateLimitedError on HTTP 429 and TransientRequestError otherwise.
        """
        ...

    async def lookup_users(
        self, uids: list[str], credentials: dict[str, str]
    ) -> list[dict[str, Any]]:
        """Return user objects for the uids that still resolve.

        Raises LookupNotFoundError when none of them resolve.
        """
        ...
