"""Polling scheduler: picks stale accounts and hands them to the fetcher."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sqlalchemy import or_, select

from blocksync.models.account import Account
from blocksync.services.datetime_service import describe_age, utc_timestamp
from blocksync.services.snapshot_service import latest_snapshot

if TYPE_CHECKING:
    from datetime import timedelta

    from sqlalchemy.ext.asyncio import AsyncSession

    from blocksync.context import SyncContext
    from blocksync.services.fetch_service import BlockFetcher, SyncHandle

logger = logging.getLogger(__name__)


async def find_stale_account(session: AsyncSession, stale_after: timedelta) -> Account | None:
    """Least recently updated active account not updated within ``stale_after``."""
    cutoff = utc_timestamp(ago=stale_after)
    stmt = (
        select(Account)
        .where(
            Account.deactivated_at.is_(None),
            or_(Account.updated_at.is_(None), Account.updated_at < cutoff),
        )
        .order_by(Account.updated_at.asc().nulls_first(), Account.uid)
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def sync_next_stale_account(
    context: SyncContext, fetcher: BlockFetcher
) -> SyncHandle | None:
    """Start a block sync for the next stale account, if one needs it.

    The account's ``updated_at`` is stamped even when no sync is started so
    the next call moves on to another account. Snapshots count towards
    freshness even while incomplete, which keeps the loop from starting a
    second fetch for an account whose first one is still paging.
    """
    async with context.session_factory() as session:
        account = await find_stale_account(session, context.stale_after)
        if account is None:
            logger.debug("No accounts need blocks updated at this time")
            return None
        account.updated_at = utc_timestamp()
        latest = await latest_snapshot(session, account.uid)
        await session.commit()

    if latest is None:
        logger.warning("%r has no updated blocks ever", account)
    else:
        logger.debug("%r has updated blocks from %s", account, describe_age(latest.created_at))
        if latest.created_at > utc_timestamp(ago=context.stale_after):
            return None
    return fetcher.start_sync(account)


async def run_polling_loop(
    context: SyncContext,
    fetcher: BlockFetcher,
    stop_event: asyncio.Event,
) -> None:
    """Call ``sync_next_stale_account`` every poll interval until stopped."""
    interval = context.settings.poll_interval_seconds
    logger.info("Polling for stale accounts every %s seconds", interval)
    while not stop_event.is_set():
        try:
            await sync_next_stale_account(context, fetcher)
        except Exception:
            logger.exception("Failed to schedule block update")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except TimeoutError:
            pass
    logger.info("Polling loop stopped")
