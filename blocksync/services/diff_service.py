"""Diff engine: turns two sealed snapshots into block and unblock events."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from blocksync.models.action import ActionType
from blocksync.services.action_service import record_action
from blocksync.services.deactivation_service import record_unblocks_unless_deactivated
from blocksync.services.snapshot_service import get_snapshot_uids, latest_complete_snapshots

if TYPE_CHECKING:
    from collections.abc import Iterable

    from blocksync.context import SyncContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockDiff:
    """Uids that appeared in and disappeared from a block list."""

    added: frozenset[str] = field(default_factory=frozenset)
    removed: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed


def compute_block_diff(previous: Iterable[str], current: Iterable[str]) -> BlockDiff:
    """Set difference of two snapshots' uids; duplicates never matter."""
    previous_set = frozenset(previous)
    current_set = frozenset(current)
    return BlockDiff(added=current_set - previous_set, removed=previous_set - current_set)


async def diff_latest_snapshots(
    context: SyncContext,
    source_uid: str,
    up_to_id: int | None = None,
) -> BlockDiff | None:
    """Compare the two newest complete snapshots of an account and record the changes.

    ``up_to_id`` pins the comparison to a given sealed snapshot and its
    predecessor. Additions are recorded as external blocks right away;
    removals go through the deactivation filter first. Returns the diff, or
    None when there was nothing to compare or the store failed.
    """
    try:
        async with context.session_factory() as session:
            snapshots = await latest_complete_snapshots(session, source_uid, 2, max_id=up_to_id)
            if len(snapshots) < 2:
                logger.warning("Insufficient block snapshots to diff for %s", source_uid)
                return None
            current, previous = snapshots
            current_uids = await get_snapshot_uids(session, current.id)
            previous_uids = await get_snapshot_uids(session, previous.id)

        start = time.perf_counter()
        diff = compute_block_diff(previous_uids, current_uids)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "Block diff for %s (snapshots %d vs %d): added %s removed %s, "
            "current size %d, took %.2f ms",
            source_uid,
            current.id,
            previous.id,
            sorted(diff.added),
            sorted(diff.removed),
            len(current_uids),
            elapsed_ms,
        )

        for sink_uid in sorted(diff.added):
            async with context.session_factory() as session:
                await record_action(
                    session, source_uid, sink_uid, ActionType.BLOCK, context.dedup_window
                )
    except SQLAlchemyError:
        logger.exception("Failed to diff block snapshots for %s", source_uid)
        return None

    if diff.removed:
        await record_unblocks_unless_deactivated(context, source_uid, sorted(diff.removed))
    return diff
