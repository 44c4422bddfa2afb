"""Block list snapshot models."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blocksync.models.base import Base

if TYPE_CHECKING:
    from blocksync.models.account import Account


class BlockSnapshot(Base):
    """Point-in-time capture of one account's block list.

    Filled page by page while ``complete`` is false; never modified after it
    is sealed. Ids increase monotonically and define recency.
    """

    __tablename__ = "block_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_uid: Mapped[str] = mapped_column(
        String, ForeignKey("accounts.uid", ondelete="CASCADE"), nullable=False, index=True
    )
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_cursor: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    account: Mapped[Account] = relationship(back_populates="snapshots")

    def __repr__(self) -> str:
        return (
            f"BlockSnapshot(id={self.id!r}, source_uid={self.source_uid!r}, "
            f"size={self.size!r}, complete={self.complete!r})"
        )


class BlockEntry(Base):
    """One blocked uid within a snapshot."""

    __tablename__ = "block_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("block_snapshots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Always a string: numeric uids overflow float-based JSON consumers.
    sink_uid: Mapped[str] = mapped_column(String, nullable=False)
