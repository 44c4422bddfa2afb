"""Deactivation filter for uids that disappeared from a block list.

A uid can vanish from ``/blocks/ids`` because it was unblocked or because the
account deactivated. Only the former is an unblock; recording the latter
would trigger unblock/reblock waves whenever someone deactivates and
reactivates. Additions are not filtered, so a reactivated account may show an
external block with no matching external unblock.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from blocksync.exceptions import LookupNotFoundError, RemoteRequestError
from blocksync.models.action import ActionType
from blocksync.services.action_service import record_action

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from blocksync.context import SyncContext

logger = logging.getLogger(__name__)


def _batches(uids: Sequence[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(uids), size):
        yield list(uids[start : start + size])


async def record_unblocks_unless_deactivated(
    context: SyncContext,
    source_uid: str,
    sink_uids: Sequence[str],
) -> list[str]:
    """Record unblocks for removed uids that still resolve. Returns the recorded uids."""
    recorded: list[str] = []
    for batch in _batches(sink_uids, context.settings.lookup_batch_size):
        try:
            users = await context.client.lookup_users(batch, context.lookup_credentials)
        except LookupNotFoundError:
            logger.info(
                "All %d unblocked users of %s deactivated, ignoring unblocks",
                len(batch),
                source_uid,
            )
            continue
        except RemoteRequestError as exc:
            logger.error(
                "Error /users/lookup for %s: %s; ignoring %d unblocks",
                source_uid,
                exc,
                len(batch),
            )
            continue

        active = {str(user.get("id_str")) for user in users if isinstance(user, dict)}
        for sink_uid in batch:
            if sink_uid not in active:
                logger.debug("Presuming %s deactivated, not an unblock by %s", sink_uid, source_uid)
                continue
            try:
                async with context.session_factory() as session:
                    await record_action(
                        session, source_uid, sink_uid, ActionType.UNBLOCK, context.dedup_window
                    )
            except SQLAlchemyError:
                logger.exception("Failed to record unblocks for %s", source_uid)
                return recorded
            recorded.append(sink_uid)
    return recorded
