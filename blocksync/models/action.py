"""Action log and annotated block projection models."""

from __future__ import annotations

from enum import StrEnum

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from blocksync.models.base import Base


class ActionType(StrEnum):
    """Kind of transition recorded in the action log."""

    BLOCK = "block"
    UNBLOCK = "unblock"


class ActionCause(StrEnum):
    """Why an action happened."""

    EXTERNAL = "external"
    SUBSCRIPTION = "subscription"
    BULK_MANUAL_BLOCK = "bulk-manual-block"
    NEW_ACCOUNT = "new-account"
    LOW_FOLLOWERS = "low-followers"


class ActionStatus(StrEnum):
    """Lifecycle state of an action."""

    PENDING = "pending"
    DONE = "done"
    CANCELLED_FOLLOWING = "cancelled-following"
    CANCELLED_SUSPENDED = "cancelled-suspended"
    CANCELLED_DUPLICATE = "cancelled-duplicate"
    CANCELLED_UNBLOCKED = "cancelled-unblocked"
    CANCELLED_SELF = "cancelled-self"
    FAILED = "failed"


class Action(Base):
    """A block or unblock transition between two uids."""

    __tablename__ = "actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_uid: Mapped[str] = mapped_column(String, nullable=False)
    sink_uid: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    cause: Mapped[str] = mapped_column(String, nullable=False)
    cause_uid: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default=ActionStatus.PENDING)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("ix_actions_source_sink_type", "source_uid", "sink_uid", "type"),)


class AnnotatedBlock(Base):
    """Current block between a source and a sink, as last observed."""

    __tablename__ = "annotated_blocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_uid: Mapped[str] = mapped_column(String, nullable=False)
    sink_uid: Mapped[str] = mapped_column(String, nullable=False)
    action_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("actions.id", ondelete="SET NULL"), nullable=True
    )
    shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (UniqueConstraint("source_uid", "sink_uid"),)
