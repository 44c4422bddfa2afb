"""Worker entry point: runs the block sync polling loop."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import TYPE_CHECKING

from blocksync.config import Settings
from blocksync.context import SyncContext
from blocksync.database import create_engine, create_schema, ensure_database_dir
from blocksync.models.account import Account
from blocksync.services.action_service import get_actions, get_annotated_blocks
from blocksync.services.credentials_service import encrypt_credentials
from blocksync.services.datetime_service import describe_age, utc_timestamp
from blocksync.services.fetch_service import BlockFetcher
from blocksync.services.scheduler_service import run_polling_loop, sync_next_stale_account
from blocksync.services.snapshot_service import list_snapshots
from blocksync.twitter.client import TwitterClient

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    """Configure process logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


async def add_account(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    uid: str,
    screen_name: str,
    credentials: dict[str, str],
) -> Account:
    """Create or update a tracked account with encrypted credentials."""
    encrypted = encrypt_credentials(credentials, settings.secret_key)
    async with session_factory() as session:
        account = await session.get(Account, uid)
        if account is None:
            account = Account(uid=uid, created_at=utc_timestamp())
            session.add(account)
        account.screen_name = screen_name
        account.credentials = encrypted
        account.deactivated_at = None
        await session.commit()
    return account


async def account_status(
    session_factory: async_sessionmaker[AsyncSession],
    uid: str,
    recent_actions: int = 10,
) -> list[str]:
    """Summarize stored snapshots, current blocks and recent actions of an account."""
    async with session_factory() as session:
        account = await session.get(Account, uid)
        if account is None:
            return [f"No tracked account {uid}"]
        snapshots = await list_snapshots(session, uid)
        annotated = await get_annotated_blocks(session, uid)
        actions = await get_actions(session, uid)

    lines = [f"{account!r}: {len(annotated)} current blocks"]
    for snapshot in snapshots:
        state = "complete" if snapshot.complete else f"at cursor {snapshot.current_cursor}"
        lines.append(
            f"  snapshot {snapshot.id}: {snapshot.size} blocks, {state}, "
            f"{describe_age(snapshot.created_at)}"
        )
    for action in actions[-recent_actions:]:
        lines.append(f"  {action.type} {action.sink_uid} ({action.cause}, {action.status})")
    return lines


async def run_worker(settings: Settings, *, once: bool = False) -> None:
    """Open the database and run the scheduler until interrupted."""
    ensure_database_dir(settings.database_url)
    try:
        engine, session_factory = create_engine(settings)
        await create_schema(engine)
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        raise

    context = SyncContext(
        settings=settings,
        session_factory=session_factory,
        client=TwitterClient.from_settings(settings),
    )
    fetcher = BlockFetcher(context)
    try:
        if once:
            handle = await sync_next_stale_account(context, fetcher)
            if handle is not None:
                await handle
        else:
            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop_event.set)
            await run_polling_loop(context, fetcher, stop_event)
            for key in fetcher.registry.keys():
                logger.info("Leaving block update for %s unfinished", key)
        await fetcher.wait_for_followups()
    finally:
        await engine.dispose()


async def _add_account_command(settings: Settings, args: argparse.Namespace) -> None:
    ensure_database_dir(settings.database_url)
    engine, session_factory = create_engine(settings)
    try:
        await create_schema(engine)
        credentials = {"access_token": args.access_token}
        if args.access_token_secret:
            credentials["access_token_secret"] = args.access_token_secret
        account = await add_account(
            session_factory, settings, args.uid, args.screen_name, credentials
        )
        logger.info("Tracking blocks for %r", account)
    finally:
        await engine.dispose()


async def _status_command(settings: Settings, args: argparse.Namespace) -> None:
    ensure_database_dir(settings.database_url)
    engine, session_factory = create_engine(settings)
    try:
        await create_schema(engine)
        for line in await account_status(session_factory, args.uid):
            print(line)
    finally:
        await engine.dispose()


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="blocksync",
        description="Track block lists of registered accounts",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")
    run_parser = subparsers.add_parser("run", help="Run the polling worker (default)")
    run_parser.add_argument(
        "--once", action="store_true", help="Sync at most one stale account and exit"
    )
    add_parser = subparsers.add_parser("add-account", help="Register an account to track")
    add_parser.add_argument("uid", help="Remote user id of the account")
    add_parser.add_argument("--screen-name", default="", help="Screen name, for logs")
    add_parser.add_argument("--access-token", required=True, help="OAuth bearer token")
    add_parser.add_argument("--access-token-secret", default="", help="OAuth token secret")
    status_parser = subparsers.add_parser("status", help="Show stored blocks of an account")
    status_parser.add_argument("uid", help="Remote user id of the account")

    args = parser.parse_args(argv)
    settings = Settings()
    if args.debug:
        settings.debug = True
    configure_logging(settings.debug)

    if args.command == "add-account":
        asyncio.run(_add_account_command(settings, args))
        return
    if args.command == "status":
        asyncio.run(_status_command(settings, args))
        return

    try:
        settings.validate_runtime_security()
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    asyncio.run(run_worker(settings, once=getattr(args, "once", False)))


if __name__ == "__main__":
    main()
