"""Credential codec: one-way hashing and lookup prefixes for API secrets.

A secret looks like ``spw_live_<32 hex chars>``. Only its SHA-256 digest
and its first few characters are ever persisted.
"""

import hashlib
import secrets
from dataclasses import dataclass

from src.config.settings import get_settings


@dataclass(frozen=True)
class IssuedKey:
    secret: str  # shown once to the requester, never stored
    key_hash: str
    key_prefix: str


def hash_secret(secret: str) -> str:
    """SHA-256 hex digest of the secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def secret_prefix(secret: str) -> str:
    """Leading characters of the secret, used as an index hint for lookup."""
    return secret[: get_settings().api_key_prefix_length]


def has_valid_format(secret: str) -> bool:
    """True if the secret carries this system's literal tag plus key material."""
    tag = get_settings().api_key_tag
    return secret.startswith(tag) and len(secret) > len(tag)


def generate_api_key() -> IssuedKey:
    """Mint a new secret along with the values an issuer persists."""
    secret = f"{get_settings().api_key_tag}{secrets.token_hex(16)}"
    return IssuedKey(
        secret=secret,
        key_hash=hash_secret(secret),
        key_prefix=secret_prefix(secret),
    )
