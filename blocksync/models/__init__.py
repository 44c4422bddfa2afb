"""SQLAlchemy ORM models for blocksync."""

from blocksync.models.account import Account, KnownUser
from blocksync.models.action import (
    Action,
    ActionCause,
    ActionStatus,
    ActionType,
    AnnotatedBlock,
)
from blocksync.models.base import Base
from blocksync.models.snapshot import BlockEntry, BlockSnapshot

__all__ = [
    "Account",
    "Action",
    "ActionCause",
    "ActionStatus",
    "ActionType",
    "AnnotatedBlock",
    "Base",
    "BlockEntry",
    "BlockSnapshot",
    "KnownUser",
]
