"""Encryption of account credentials stored at rest."""

from __future__ import annotations

import base64
import hashlib
import json
from typing import TYPE_CHECKING

from cryptography.fernet import Fernet, InvalidToken

if TYPE_CHECKING:
    from blocksync.models.account import Account


def _fernet(secret_key: str) -> Fernet:
    """Build a Fernet instance keyed by SHA-256 of the application secret."""
    digest = hashlib.sha256(secret_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_credentials(credentials: dict[str, str], secret_key: str) -> str:
    """Serialize and encrypt a credential mapping for the ``accounts`` table."""
    payload = json.dumps(credentials, sort_keys=True)
    return _fernet(secret_key).encrypt(payload.encode()).decode()


def decrypt_credentials(ciphertext: str, secret_key: str) -> dict[str, str]:
    """Decrypt a stored credential blob. Raises ValueError on failure."""
    try:
        payload = _fernet(secret_key).decrypt(ciphertext.encode()).decode()
    except InvalidToken as exc:
        raise ValueError("Failed to decrypt credential data") from exc
    credentials = json.loads(payload)
    if not isinstance(credentials, dict) or not credentials.get("access_token"):
        raise ValueError("Credential data has no access_token")
    return {str(k): str(v) for k, v in credentials.items()}


def account_credentials(account: Account, secret_key: str) -> dict[str, str]:
    """Return the decrypted credentials of a tracked account."""
    return decrypt_credentials(account.credentials, secret_key)
