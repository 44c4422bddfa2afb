"""Tracked account and identifier directory models."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blocksync.models.base import Base

if TYPE_CHECKING:
    from blocksync.models.snapshot import BlockSnapshot


class Account(Base):
    """Account whose block list is tracked."""

    __tablename__ = "accounts"

    uid: Mapped[str] = mapped_column(String, primary_key=True)
    screen_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    # Fernet-encrypted JSON, see services.credentials_service.
    credentials: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    # Last time the scheduler picked this account for a sync.
    updated_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    deactivated_at: Mapped[str | None] = mapped_column(Text, nullable=True)

    snapshots: Mapped[list[BlockSnapshot]] = relationship(
        back_populates="account", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"Account(uid={self.uid!r}, screen_name={self.screen_name!r})"


class KnownUser(Base):
    """Directory of every remote identifier ever observed.

    Rows are inserted with ON CONFLICT DO NOTHING, so enriched columns filled
    in elsewhere are never overwritten by a bare uid.
    """

    __tablename__ = "known_users"

    uid: Mapped[str] = mapped_column(String, primary_key=True)
    screen_name: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    deactivated_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
