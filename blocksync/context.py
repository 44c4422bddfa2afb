"""Dependencies shared by every component of the sync engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from blocksync.config import Settings
    from blocksync.twitter.base import BlockListClient


@dataclass
class SyncContext:
    """Settings, database access and remote client for one worker process."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    client: BlockListClient

    @property
    def lookup_credentials(self) -> dict[str, str]:
        """System-level credential for bulk user lookups."""
        return {"access_token": self.settings.lookup_access_token}

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(seconds=self.settings.action_dedup_window_seconds)

    @property
    def stale_after(self) -> timedelta:
        return timedelta(hours=self.settings.sync_stale_after_hours)
