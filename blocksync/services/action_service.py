"""Action recorder: persists block/unblock transitions and the annotated block projection."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from blocksync.exceptions import InvalidActionTypeError
from blocksync.models.action import Action, ActionCause, ActionStatus, ActionType, AnnotatedBlock
from blocksync.services.datetime_service import utc_timestamp

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW = timedelta(seconds=60)


def _coerce_action_type(action_type: str) -> ActionType:
    try:
        return ActionType(action_type)
    except ValueError:
        msg = f"Non-block/unblock passed to record_action: {action_type!r}"
        logger.error(msg)
        raise InvalidActionTypeError(msg) from None


async def find_recent_action(
    session: AsyncSession,
    source_uid: str,
    sink_uid: str,
    action_type: ActionType,
    window: timedelta,
) -> Action | None:
    """Find a completed, non-external action for the same transition within ``window``.

    External actions are ignored: an account may block, unblock and block
    again, and each observed transition deserves its own row.
    """
    stmt = (
        select(Action)
        .where(
            Action.source_uid == source_uid,
            Action.sink_uid == sink_uid,
            Action.type == action_type,
            Action.cause != ActionCause.EXTERNAL,
            Action.status == ActionStatus.DONE,
            Action.updated_at > utc_timestamp(ago=window),
        )
        .order_by(Action.updated_at.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _upsert_annotated_block(session: AsyncSession, action: Action) -> None:
    now = utc_timestamp()
    shared = action.cause == ActionCause.EXTERNAL
    stmt = sqlite_insert(AnnotatedBlock).values(
        source_uid=action.source_uid,
        sink_uid=action.sink_uid,
        action_id=action.id,
        shared=shared,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["source_uid", "sink_uid"],
        set_={"action_id": action.id, "shared": shared, "updated_at": now},
    )
    await session.execute(stmt)


async def _delete_annotated_block(session: AsyncSession, action: Action) -> None:
    await session.execute(
        delete(AnnotatedBlock).where(
            AnnotatedBlock.source_uid == action.source_uid,
            AnnotatedBlock.sink_uid == action.sink_uid,
        )
    )


async def record_action(
    session: AsyncSession,
    source_uid: str,
    sink_uid: str,
    action_type: str,
    dedup_window: timedelta = DEFAULT_DEDUP_WINDOW,
) -> Action:
    """Record an externally observed block or unblock and update annotated blocks.

    If the same transition was just performed through another path (a done,
    non-external action updated within ``dedup_window``), that action is
    reused instead of creating a duplicate. Commits the session.

    Raises InvalidActionTypeError, before touching the database, for any type
    other than block/unblock.
    """
    kind = _coerce_action_type(action_type)

    action = await find_recent_action(session, source_uid, sink_uid, kind, dedup_window)
    if action is None:
        now = utc_timestamp()
        action = Action(
            source_uid=source_uid,
            sink_uid=sink_uid,
            type=kind,
            cause=ActionCause.EXTERNAL,
            cause_uid=None,
            status=ActionStatus.DONE,
            created_at=now,
            updated_at=now,
        )
        session.add(action)
        await session.flush()
        logger.info("Recorded external %s %s -> %s", kind, source_uid, sink_uid)
    else:
        logger.debug(
            "Reusing %s action %d for %s -> %s", action.cause, action.id, source_uid, sink_uid
        )

    if kind is ActionType.BLOCK:
        await _upsert_annotated_block(session, action)
    else:
        await _delete_annotated_block(session, action)

    await session.commit()
    return action


async def get_actions(
    session: AsyncSession,
    source_uid: str,
    sink_uid: str | None = None,
) -> list[Action]:
    """Actions taken by an account, oldest first."""
    stmt = select(Action).where(Action.source_uid == source_uid)
    if sink_uid is not None:
        stmt = stmt.where(Action.sink_uid == sink_uid)
    result = await session.execute(stmt.order_by(Action.id))
    return list(result.scalars().all())


async def get_annotated_blocks(session: AsyncSession, source_uid: str) -> list[AnnotatedBlock]:
    """Current annotated blocks of an account, ordered by sink uid."""
    stmt = (
        select(AnnotatedBlock)
        .where(AnnotatedBlock.source_uid == source_uid)
        .order_by(AnnotatedBlock.sink_uid)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
