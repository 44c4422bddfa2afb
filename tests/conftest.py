"""Shared test fixtures for blocksync."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from blocksync.config import Settings
from blocksync.context import SyncContext
from blocksync.exceptions import LookupNotFoundError
from blocksync.models.account import Account
from blocksync.models.base import Base
from blocksync.services.credentials_service import encrypt_credentials
from blocksync.services.datetime_service import utc_timestamp
from blocksync.twitter.base import END_CURSOR, START_CURSOR, BlockIdsPage

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"
TEST_ACCOUNT_UID = "1000000000000000001"
TEST_ACCOUNT_TOKEN = "user-access-token"
TEST_LOOKUP_TOKEN = "app-lookup-token"


class FakeBlockListClient:
    """In-memory stand-in for the Twitter client.

    Serves one block list as a chain of pages and answers bulk lookups from
    a set of active uids. Failures can be queued per cursor or per lookup.
    """

    def __init__(self) -> None:
        self.pages: dict[str, BlockIdsPage] = {START_CURSOR: BlockIdsPage([], END_CURSOR)}
        self.page_failures: dict[str, list[Exception]] = {}
        self.lookup_failures: list[Exception] = []
        self.active_uids: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.lookup_calls: list[list[str]] = []
        # When set, blocked_ids waits for this event before answering.
        self.gate: asyncio.Event | None = None

    def set_block_list(self, uids: Sequence[str], page_size: int = 2) -> None:
        """Split ``uids`` into pages linked by cursors."""
        chunks = [list(uids[i : i + page_size]) for i in range(0, len(uids), page_size)] or [[]]
        self.pages = {}
        cursor = START_CURSOR
        for index, chunk in enumerate(chunks):
            next_cursor = END_CURSOR if index == len(chunks) - 1 else f"cursor-{index + 1}"
            self.pages[cursor] = BlockIdsPage(ids=chunk, next_cursor=next_cursor)
            cursor = next_cursor

    def fail_page(self, cursor: str, *errors: Exception) -> None:
        self.page_failures.setdefault(cursor, []).extend(errors)

    async def blocked_ids(self, credentials: dict[str, str], cursor: str) -> BlockIdsPage:
        self.calls.append((credentials["access_token"], cursor))
        if self.gate is not None:
            await self.gate.wait()
        pending = self.page_failures.get(cursor)
        if pending:
            raise pending.pop(0)
        return self.pages[cursor]

    async def lookup_users(
        self, uids: list[str], credentials: dict[str, str]
    ) -> list[dict[str, Any]]:
        assert credentials["access_token"] == TEST_LOOKUP_TOKEN
        self.lookup_calls.append(list(uids))
        if self.lookup_failures:
            raise self.lookup_failures.pop(0)
        found = [uid for uid in uids if uid in self.active_uids]
        if not found:
            raise LookupNotFoundError("No user matches for specified terms.", status_code=404)
        return [{"id_str": uid, "screen_name": f"user{uid}"} for uid in found]


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database."""
    db_path = tmp_path / "test.db"
    return Settings(
        _env_file=None,
        secret_key=TEST_SECRET_KEY,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        lookup_access_token=TEST_LOOKUP_TOKEN,
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the full schema."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_client() -> FakeBlockListClient:
    return FakeBlockListClient()


@pytest.fixture
def sync_context(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    fake_client: FakeBlockListClient,
) -> SyncContext:
    return SyncContext(
        settings=test_settings,
        session_factory=session_factory,
        client=fake_client,
    )


async def create_account(
    session_factory: async_sessionmaker[AsyncSession],
    uid: str = TEST_ACCOUNT_UID,
    *,
    token: str = TEST_ACCOUNT_TOKEN,
    updated_at: str | None = None,
    deactivated_at: str | None = None,
) -> Account:
    """Insert a tracked account with encrypted credentials."""
    account = Account(
        uid=uid,
        screen_name=f"account{uid[-3:]}",
        credentials=encrypt_credentials({"access_token": token}, TEST_SECRET_KEY),
        created_at=utc_timestamp(),
        updated_at=updated_at,
        deactivated_at=deactivated_at,
    )
    async with session_factory() as session:
        session.add(account)
        await session.commit()
    return account


@pytest.fixture
async def account(session_factory: async_sessionmaker[AsyncSession]) -> Account:
    """The default tracked account."""
    return await create_account(session_factory)


@pytest.fixture
def make_account(session_factory: async_sessionmaker[AsyncSession]):  # type: ignore[no-untyped-def]
    """Factory for additional tracked accounts."""

    async def _make(uid: str, **kwargs: Any) -> Account:
        return await create_account(session_factory, uid, **kwargs)

    return _make
