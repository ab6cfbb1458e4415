"""API key authentication for programmatic clients.

Reads the credential from ``Authorization: Bearer <key>`` or ``X-API-Key``,
checks its format, looks it up by hash and prefix, then applies the
active/expiry/scope policy. Outcomes are values, never exceptions: any
store failure during lookup is reported as an invalid credential.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from src.keys.codec import has_valid_format, hash_secret, secret_prefix
from src.keys.models import ApiKey
from src.logging.audit import get_audit_logger
from src.store.store import KeyStore


class DenialReason(Enum):
    """Denial classification with its (status, code, message) mapping."""

    MISSING_CREDENTIAL = (
        401, "UNAUTHORIZED",
        "Missing API key. Provide via Authorization: Bearer <key> or X-API-Key header.",
    )
    INVALID_FORMAT = (401, "UNAUTHORIZED", "Invalid API key format")
    INVALID_CREDENTIAL = (401, "UNAUTHORIZED", "Invalid API key")
    KEY_DISABLED = (403, "FORBIDDEN", "API key is disabled")
    KEY_EXPIRED = (403, "FORBIDDEN", "API key has expired")
    INSUFFICIENT_SCOPE = (403, "FORBIDDEN", "API key lacks '{scope}' permission")
    RATE_LIMIT_EXCEEDED = (429, "RATE_LIMIT_EXCEEDED", "Rate limit exceeded. Please try again later.")

    def __init__(self, status_code: int, code: str, message: str):
        self.status_code = status_code
        self.code = code
        self.message = message


@dataclass
class Authenticated:
    key: ApiKey


@dataclass
class Denied:
    reason: DenialReason
    scope: str | None = None  # the missing scope, for INSUFFICIENT_SCOPE

    @property
    def message(self) -> str:
        return self.reason.message.format(scope=self.scope)


AuthOutcome = Authenticated | Denied

# Strong references to in-flight last_used_at writes
_background_tasks: set[asyncio.Task] = set()


def extract_api_key(headers: Mapping[str, str]) -> str | None:
    """Pull the presented secret from the request headers."""
    lowered = {name.lower(): value for name, value in headers.items()}

    auth_header = lowered.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):] or None

    return lowered.get("x-api-key") or None


async def authenticate(
    headers: Mapping[str, str],
    store: KeyStore,
    required_scope: str | None = None,
    now: datetime | None = None,
) -> AuthOutcome:
    """Validate the presented API key against the key store."""
    logger = get_audit_logger()
    now = now or datetime.now(timezone.utc)

    secret = extract_api_key(headers)
    if secret is None:
        return Denied(DenialReason.MISSING_CREDENTIAL)

    # Cheap rejection before any store round-trip
    if not has_valid_format(secret):
        return Denied(DenialReason.INVALID_FORMAT)

    prefix = secret_prefix(secret)
    try:
        key = await store.find_by_hash(hash_secret(secret), prefix)
    except Exception:
        logger.warning(
            "API key lookup failed",
            exc_info=True,
            extra={"audit_data": {"key_prefix": prefix}},
        )
        return Denied(DenialReason.INVALID_CREDENTIAL)

    if key is None:
        return Denied(DenialReason.INVALID_CREDENTIAL)

    if not key.is_active:
        return Denied(DenialReason.KEY_DISABLED)

    if key.expires_at is not None and key.expires_at < now:
        return Denied(DenialReason.KEY_EXPIRED)

    if required_scope and required_scope not in key.scopes:
        return Denied(DenialReason.INSUFFICIENT_SCOPE, scope=required_scope)

    _schedule_touch(store, key.id, now)
    return Authenticated(key)


def _schedule_touch(store: KeyStore, key_id: str, at: datetime) -> None:
    """Fire-and-forget last_used_at refresh. Failures are only logged."""
    task = asyncio.create_task(store.touch_last_used(key_id, at))
    _background_tasks.add(task)
    task.add_done_callback(lambda t: _on_touch_done(t, key_id))


def _on_touch_done(task: asyncio.Task, key_id: str) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        get_audit_logger().warning(
            "last_used_at update failed",
            exc_info=error,
            extra={"audit_data": {"key_id": key_id}},
        )


async def drain_background_tasks() -> None:
    """Wait for pending last_used_at writes. Called on shutdown."""
    if _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
