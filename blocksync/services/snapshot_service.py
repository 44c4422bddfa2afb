"""Snapshot store: paginated block lists persisted per account.

Write helpers only flush; the caller commits, so that creating a snapshot,
appending a page and advancing its cursor land in one transaction.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from blocksync.models.account import KnownUser
from blocksync.models.snapshot import BlockEntry, BlockSnapshot
from blocksync.services.datetime_service import utc_timestamp

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Rows per multi-VALUES insert, kept well under SQLite's bound parameter limit.
_INSERT_CHUNK = 500


async def create_snapshot(session: AsyncSession, source_uid: str) -> BlockSnapshot:
    """Add an empty, incomplete snapshot for an account."""
    now = utc_timestamp()
    snapshot = BlockSnapshot(
        source_uid=source_uid,
        size=0,
        complete=False,
        current_cursor=None,
        created_at=now,
        updated_at=now,
    )
    session.add(snapshot)
    await session.flush()
    return snapshot


async def _attached(session: AsyncSession, snapshot: BlockSnapshot) -> BlockSnapshot:
    """Return the instance of ``snapshot`` tracked by ``session``."""
    if snapshot in session:
        return snapshot
    current = await session.get(BlockSnapshot, snapshot.id)
    if current is None:
        msg = f"Snapshot {snapshot.id} no longer exists"
        raise LookupError(msg)
    return current


async def register_known_users(session: AsyncSession, uids: Sequence[str]) -> None:
    """Insert uids into the identifier directory, leaving existing rows untouched."""
    unique = list(dict.fromkeys(uids))
    now = utc_timestamp()
    for start in range(0, len(unique), _INSERT_CHUNK):
        chunk = unique[start : start + _INSERT_CHUNK]
        stmt = (
            sqlite_insert(KnownUser)
            .values([{"uid": uid, "created_at": now} for uid in chunk])
            .on_conflict_do_nothing(index_elements=["uid"])
        )
        await session.execute(stmt)


async def append_entries(
    session: AsyncSession,
    snapshot: BlockSnapshot,
    next_cursor: str,
    uids: Sequence[str],
) -> BlockSnapshot:
    """Append one page of blocked uids and advance the stored cursor."""
    snapshot = await _attached(session, snapshot)
    if snapshot.complete:
        msg = f"Snapshot {snapshot.id} is sealed"
        raise ValueError(msg)

    if uids:
        await register_known_users(session, uids)
        await session.execute(
            insert(BlockEntry),
            [{"snapshot_id": snapshot.id, "sink_uid": uid} for uid in uids],
        )

    snapshot.current_cursor = next_cursor
    snapshot.size += len(uids)
    snapshot.updated_at = utc_timestamp()
    await session.flush()
    return snapshot


async def seal_snapshot(session: AsyncSession, snapshot: BlockSnapshot) -> BlockSnapshot:
    """Mark a snapshot complete. Sealed snapshots are never written again."""
    snapshot = await _attached(session, snapshot)
    snapshot.complete = True
    snapshot.updated_at = utc_timestamp()
    await session.flush()
    return snapshot


async def latest_complete_snapshots(
    session: AsyncSession,
    source_uid: str,
    limit: int,
    max_id: int | None = None,
) -> list[BlockSnapshot]:
    """Newest complete snapshots of an account, ordered by id descending."""
    stmt = select(BlockSnapshot).where(
        BlockSnapshot.source_uid == source_uid,
        BlockSnapshot.complete.is_(True),
    )
    if max_id is not None:
        stmt = stmt.where(BlockSnapshot.id <= max_id)
    stmt = stmt.order_by(BlockSnapshot.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def latest_snapshot(session: AsyncSession, source_uid: str) -> BlockSnapshot | None:
    """Most recent snapshot of an account, complete or not."""
    stmt = (
        select(BlockSnapshot)
        .where(BlockSnapshot.source_uid == source_uid)
        .order_by(BlockSnapshot.id.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_snapshots(session: AsyncSession, source_uid: str) -> list[BlockSnapshot]:
    """All snapshots of an account, newest first."""
    stmt = (
        select(BlockSnapshot)
        .where(BlockSnapshot.source_uid == source_uid)
        .order_by(BlockSnapshot.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_snapshot_uids(session: AsyncSession, snapshot_id: int) -> list[str]:
    """Blocked uids stored in a snapshot, in insertion order."""
    stmt = (
        select(BlockEntry.sink_uid)
        .where(BlockEntry.snapshot_id == snapshot_id)
        .order_by(BlockEntry.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def delete_snapshot(session: AsyncSession, snapshot_id: int) -> None:
    """Delete a snapshot together with its entries."""
    await session.execute(delete(BlockEntry).where(BlockEntry.snapshot_id == snapshot_id))
    await session.execute(delete(BlockSnapshot).where(BlockSnapshot.id == snapshot_id))
