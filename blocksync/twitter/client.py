"""Twitter REST client for block listing and bulk user lookup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from blocksync.exceptions import (
    LookupNotFoundError,
    RateLimitedError,
    TransientRequestError,
)
from blocksync.twitter.base import MAX_LOOKUP_IDS, BlockIdsPage

if TYPE_CHECKING:
    from blocksync.config import Settings

logger = logging.getLogger(__name__)

BLOCKS_IDS_PATH = "/1.1/blocks/ids.json"
USERS_LOOKUP_PATH = "/1.1/users/lookup.json"


class TwitterClient:
    """Client for the v1.1 endpoints used by the block sync engine.

    Requests authenticate with an OAuth 2.0 bearer token taken from the
    ``access_token`` key of the credentials passed to each call.
    """

    def __init__(self, base_url: str = "https://api.twitter.com", timeout: float = 15.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> TwitterClient:
        return cls(
            base_url=settings.twitter_api_base_url,
            timeout=settings.twitter_request_timeout,
        )

    async def _get(
        self, path: str, params: dict[str, str], credentials: dict[str, str]
    ) -> httpx.Response:
        """Issue an authenticated GET, mapping 429 and transport errors."""
        token = credentials.get("access_token", "")
        async with httpx.AsyncClient() as client:
            try:
                resp = await client.get(
                    f"{self._base_url}{path}",
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=self._timeout,
                )
            except httpx.HTTPError as exc:
                msg = f"HTTP error calling {path}: {exc}"
                raise TransientRequestError(msg) from exc
        if resp.status_code == 429:
            msg = f"Rate limited on {path}"
            raise RateLimitedError(msg, status_code=429)
        return resp

    async def blocked_ids(self, credentials: dict[str, str], cursor: str) -> BlockIdsPage:
        """Fetch one page of ``/blocks/ids``."""
        resp = await self._get(
            BLOCKS_IDS_PATH,
            # Without stringify_ids large uids come back as JSON numbers.
            {"stringify_ids": "true", "cursor": cursor},
            credentials,
        )
        if resp.status_code != 200:
            msg = f"/blocks/ids failed: {resp.status_code} {resp.text}"
            raise TransientRequestError(msg, status_code=resp.status_code)
        try:
            data = resp.json()
            ids = [str(uid) for uid in data["ids"]]
            next_cursor = str(data["next_cursor_str"])
        except (ValueError, KeyError, TypeError) as exc:
            msg = f"Malformed /blocks/ids response: {exc}"
            raise TransientRequestError(msg, status_code=resp.status_code) from exc
        return BlockIdsPage(ids=ids, next_cursor=next_cursor)

    async def lookup_users(
        self, uids: list[str], credentials: dict[str, str]
    ) -> list[dict[str, Any]]:
        """Look up to 100 uids with ``/users/lookup``."""
        if not uids:
            return []
        if len(uids) > MAX_LOOKUP_IDS:
            msg = f"Cannot look up more than {MAX_LOOKUP_IDS} users per request"
            raise ValueError(msg)
        resp = await self._get(
            USERS_LOOKUP_PATH,
            {"user_id": ",".join(uids), "skip_status": "1"},
            credentials,
        )
        if resp.status_code == 404:
            msg = f"None of {len(uids)} users found"
            raise LookupNotFoundError(msg, status_code=404)
        if resp.status_code != 200:
            msg = f"/users/lookup failed: {resp.status_code} {resp.text}"
            raise TransientRequestError(msg, status_code=resp.status_code)
        try:
            users = resp.json()
        except ValueError as exc:
            msg = f"Malformed /users/lookup response: {exc}"
            raise TransientRequestError(msg, status_code=resp.status_code) from exc
        if not isinstance(users, list):
            msg = "Malformed /users/lookup response: expected a list"
            raise TransientRequestError(msg, status_code=resp.status_code)
        logger.debug("Looked up %d users, %d resolved", len(uids), len(users))
        return users
