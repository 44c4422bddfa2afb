"""Tests for stale account selection and the polling loop."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock, patch

from blocksync.models.account import Account
from blocksync.services.datetime_service import utc_timestamp
from blocksync.services.fetch_service import BlockFetcher
from blocksync.services.scheduler_service import (
    find_stale_account,
    run_polling_loop,
    sync_next_stale_account,
)
from blocksync.services.snapshot_service import create_snapshot

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from blocksync.context import SyncContext

DAY = timedelta(days=1)


class TestFindStaleAccount:
    async def test_never_updated_account_comes_first(
        self, db_session: AsyncSession, make_account  # type: ignore[no-untyped-def]
    ) -> None:
        await make_account("1", updated_at=utc_timestamp(ago=timedelta(days=3)))
        await make_account("2")

        account = await find_stale_account(db_session, DAY)

        assert account is not None
        assert account.uid == "2"

    async def test_least_recently_updated_first(
        self, db_session: AsyncSession, make_account  # type: ignore[no-untyped-def]
    ) -> None:
        await make_account("1", updated_at=utc_timestamp(ago=timedelta(days=2)))
        await make_account("2", updated_at=utc_timestamp(ago=timedelta(days=5)))

        account = await find_stale_account(db_session, DAY)

        assert account is not None
        assert account.uid == "2"

    async def test_recent_and_deactivated_accounts_are_skipped(
        self, db_session: AsyncSession, make_account  # type: ignore[no-untyped-def]
    ) -> None:
        await make_account("1", updated_at=utc_timestamp(ago=timedelta(hours=1)))
        await make_account("2", deactivated_at=utc_timestamp())

        assert await find_stale_account(db_session, DAY) is None


class TestSyncNextStaleAccount:
    async def test_starts_sync_for_account_without_snapshots(
        self, sync_context: SyncContext, make_account  # type: ignore[no-untyped-def]
    ) -> None:
        await make_account("1")
        fetcher = BlockFetcher(sync_context, sleep=AsyncMock())

        handle = await sync_next_stale_account(sync_context, fetcher)

        assert handle is not None
        snapshot = await handle
        assert snapshot is not None
        assert snapshot.source_uid == "1"
        await fetcher.wait_for_followups()

    async def test_stamps_account_so_next_call_moves_on(
        self, sync_context: SyncContext, make_account  # type: ignore[no-untyped-def]
    ) -> None:
        await make_account("1")
        fetcher = MagicMock(spec=BlockFetcher)

        await sync_next_stale_account(sync_context, fetcher)
        second = await sync_next_stale_account(sync_context, fetcher)

        assert second is None
        fetcher.start_sync.assert_called_once()
        async with sync_context.session_factory() as session:
            stored = await session.get(Account, "1")
            assert stored is not None
            assert stored.updated_at is not None

    async def test_skips_account_with_fresh_snapshot(
        self, sync_context: SyncContext, make_account  # type: ignore[no-untyped-def]
    ) -> None:
        await make_account("1")
        async with sync_context.session_factory() as session:
            # Incomplete snapshots count: a fetch may still be paging.
            await create_snapshot(session, "1")
            await session.commit()
        fetcher = MagicMock(spec=BlockFetcher)

        assert await sync_next_stale_account(sync_context, fetcher) is None
        fetcher.start_sync.assert_not_called()

    async def test_syncs_account_with_old_snapshot(
        self, sync_context: SyncContext, make_account  # type: ignore[no-untyped-def]
    ) -> None:
        await make_account("1")
        async with sync_context.session_factory() as session:
            snapshot = await create_snapshot(session, "1")
            snapshot.created_at = utc_timestamp(ago=timedelta(days=2))
            await session.commit()
        fetcher = MagicMock(spec=BlockFetcher)

        await sync_next_stale_account(sync_context, fetcher)

        fetcher.start_sync.assert_called_once()
        assert fetcher.start_sync.call_args.args[0].uid == "1"

    async def test_no_stale_accounts(self, sync_context: SyncContext) -> None:
        fetcher = MagicMock(spec=BlockFetcher)
        assert await sync_next_stale_account(sync_context, fetcher) is None
        fetcher.start_sync.assert_not_called()


class TestPollingLoop:
    async def test_loop_survives_failing_iterations_and_stops(
        self, sync_context: SyncContext
    ) -> None:
        sync_context.settings.poll_interval_seconds = 0.01
        stop_event = asyncio.Event()
        calls = 0

        async def flaky(context: SyncContext, fetcher: BlockFetcher) -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            if calls >= 3:
                stop_event.set()

        with patch("blocksync.services.scheduler_service.sync_next_stale_account", flaky):
            await asyncio.wait_for(
                run_polling_loop(sync_context, MagicMock(spec=BlockFetcher), stop_event),
                timeout=5,
            )

        assert calls == 3

    async def test_loop_exits_immediately_when_already_stopped(
        self, sync_context: SyncContext
    ) -> None:
        stop_event = asyncio.Event()
        stop_event.set()
        with patch(
            "blocksync.services.scheduler_service.sync_next_stale_account", new=AsyncMock()
        ) as mock_sync:
            await run_polling_loop(sync_context, MagicMock(spec=BlockFetcher), stop_event)
        mock_sync.assert_not_awaited()
