"""Fetch orchestrator: pages an account's block list into a new snapshot."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from blocksync.exceptions import RateLimitedError, RemoteRequestError
from blocksync.services.credentials_service import account_credentials
from blocksync.services.diff_service import diff_latest_snapshots
from blocksync.services.inflight_registry import InFlightRegistry
from blocksync.services.retention_service import prune_old_snapshots
from blocksync.services.snapshot_service import append_entries, create_snapshot, seal_snapshot
from blocksync.twitter.base import START_CURSOR

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from blocksync.context import SyncContext
    from blocksync.models.account import Account
    from blocksync.models.snapshot import BlockSnapshot

logger = logging.getLogger(__name__)

SyncHandle = asyncio.Task["BlockSnapshot | None"]


class BlockFetcher:
    """Runs at most one block list sync per account at a time.

    ``start_sync`` returns an ``asyncio.Task`` resolving to the sealed
    snapshot, or None when the sync was rate limited before its first page
    or aborted by an error. Diffing and pruning run as detached follow-up
    tasks once a snapshot is sealed and the account's slot is released.
    """

    def __init__(
        self,
        context: SyncContext,
        registry: InFlightRegistry[BlockSnapshot | None] | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._context = context
        self._registry = registry if registry is not None else InFlightRegistry()
        self._sleep = sleep
        self._followups: set[asyncio.Task[None]] = set()

    @property
    def registry(self) -> InFlightRegistry[BlockSnapshot | None]:
        return self._registry

    def start_sync(self, account: Account) -> SyncHandle:
        """Start syncing an account, or return the sync already in flight."""
        task, started = self._registry.start(account.uid, lambda: self._run(account))
        if not started:
            logger.warning("%r already has a pending block update request", account)
        return task

    async def wait_for_followups(self) -> None:
        """Wait until every scheduled diff and prune task has finished."""
        while self._followups:
            await asyncio.gather(*list(self._followups), return_exceptions=True)

    async def _run(self, account: Account) -> BlockSnapshot | None:
        try:
            snapshot = await self._fetch_and_store(account)
        finally:
            self._registry.release(account.uid, asyncio.current_task())  # type: ignore[arg-type]
        if snapshot is not None:
            self._schedule_followups(snapshot)
        return snapshot

    async def _fetch_and_store(self, account: Account) -> BlockSnapshot | None:
        settings = self._context.settings
        try:
            credentials = account_credentials(account, settings.secret_key)
        except ValueError:
            logger.error("Cannot read credentials for %r, skipping block update", account)
            return None

        snapshot: BlockSnapshot | None = None
        cursor = START_CURSOR
        while True:
            logger.info("Fetching blocks for %r at cursor %s", account, cursor)
            try:
                page = await self._context.client.blocked_ids(credentials, cursor)
            except RateLimitedError:
                # Nothing stored yet, so there is nothing to resume.
                if snapshot is None:
                    logger.info("Rate limited /blocks/ids for %r", account)
                    return None
                logger.info(
                    "Rate limited /blocks/ids for %r. Trying again in %s seconds.",
                    account,
                    settings.rate_limit_backoff_seconds,
                )
                await self._sleep(settings.rate_limit_backoff_seconds)
                continue
            except RemoteRequestError as exc:
                logger.error("Error /blocks/ids for %r: %s", account, exc)
                return None

            try:
                async with self._context.session_factory() as session:
                    # Created only after the first successful page.
                    if snapshot is None:
                        snapshot = await create_snapshot(session, account.uid)
                    snapshot = await append_entries(session, snapshot, page.next_cursor, page.ids)
                    if page.is_last:
                        snapshot = await seal_snapshot(session, snapshot)
                    await session.commit()
            except (SQLAlchemyError, LookupError):
                logger.exception("Failed to store blocks for %r", account)
                return None

            if page.is_last:
                logger.info(
                    "Finished fetching blocks for %r: %d in snapshot %d",
                    account,
                    snapshot.size,
                    snapshot.id,
                )
                return snapshot
            logger.debug("Cursoring %s", page.next_cursor)
            cursor = page.next_cursor

    def _schedule_followups(self, snapshot: BlockSnapshot) -> None:
        for coro in (self._diff(snapshot), self._prune(snapshot)):
            task = asyncio.create_task(coro)
            self._followups.add(task)
            task.add_done_callback(self._followups.discard)

    async def _diff(self, snapshot: BlockSnapshot) -> None:
        try:
            await diff_latest_snapshots(self._context, snapshot.source_uid, up_to_id=snapshot.id)
        except Exception:
            logger.exception("Block diff failed for %s", snapshot.source_uid)

    async def _prune(self, snapshot: BlockSnapshot) -> None:
        await prune_old_snapshots(
            self._context.session_factory,
            snapshot.source_uid,
            keep=self._context.settings.snapshot_retention_count,
        )
