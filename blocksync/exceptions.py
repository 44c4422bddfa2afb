"""Exception types raised by the block sync engine.

Convention:
- Remote API failures are mapped to ``RemoteRequestError`` subclasses by the
  Twitter client. ``RateLimitedError`` is the only one the orchestrator
  retries; everything else aborts the current account's sync.
- ``InvalidActionTypeError`` signals a programming error in a caller of the
  action recorder. It is a ``ValueError`` so generic validation handlers
  treat it the same way.
- Store-level failures surface as ``sqlalchemy.exc.SQLAlchemyError`` and are
  not wrapped.
"""

from __future__ import annotations


class RemoteRequestError(Exception):
    """Base class for failed calls to the remote API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(RemoteRequestError):
    """Raised when the remote API answers with HTTP 429."""


class TransientRequestError(RemoteRequestError):
    """Raised for any non rate-limit failure of a remote request."""


class LookupNotFoundError(RemoteRequestError):
    """Raised when a bulk user lookup resolves none of the requested ids."""


class InvalidActionTypeError(ValueError):
    """Raised when the action recorder is given a type other than block/unblock."""
