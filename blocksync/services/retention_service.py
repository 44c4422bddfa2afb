"""Retention pruner for old block snapshots."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from blocksync.models.snapshot import BlockSnapshot
from blocksync.services.snapshot_service import delete_snapshot, latest_complete_snapshots

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


async def _prunable_snapshot_ids(session: AsyncSession, source_uid: str, keep: int) -> list[int]:
    retained = await latest_complete_snapshots(session, source_uid, keep)
    if len(retained) < keep:
        return []
    oldest_retained = retained[-1].id
    stmt = (
        select(BlockSnapshot.id)
        .where(BlockSnapshot.source_uid == source_uid, BlockSnapshot.id < oldest_retained)
        .order_by(BlockSnapshot.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def prune_old_snapshots(
    session_factory: async_sessionmaker[AsyncSession],
    source_uid: str,
    keep: int = 4,
) -> int:
    """Keep only the ``keep`` newest complete snapshots of an account.

    Anything older, including abandoned incomplete snapshots, is deleted with
    its entries, one transaction per snapshot. A ``keep`` below one prunes
    nothing. Errors are logged and never raised. Returns the number of
    snapshots deleted.
    """
    deleted = 0
    if keep < 1:
        logger.warning("Refusing to trim block snapshots for %s with keep=%d", source_uid, keep)
        return deleted
    try:
        async with session_factory() as session:
            snapshot_ids = await _prunable_snapshot_ids(session, source_uid, keep)
            for snapshot_id in snapshot_ids:
                await delete_snapshot(session, snapshot_id)
                await session.commit()
                deleted += 1
    except SQLAlchemyError:
        logger.exception("Failed to trim block snapshots for %s", source_uid)
        return deleted

    logger.info("Trimmed %d old block snapshots for %s", deleted, source_uid)
    return deleted
