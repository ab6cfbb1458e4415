"""Key issuance: mint a secret and persist its hashed record."""

import uuid
from datetime import datetime, timezone

from src.config.settings import get_settings
from src.keys.codec import IssuedKey, generate_api_key
from src.keys.models import ApiKey
from src.logging.audit import get_audit_logger
from src.store.store import KeyStore

DEFAULT_SCOPES = ["read", "write"]


async def issue_key(
    store: KeyStore,
    name: str,
    scopes: list[str] | None = None,
    rate_limit_per_minute: int | None = None,
    rate_limit_per_day: int | None = None,
    expires_at: datetime | None = None,
) -> tuple[IssuedKey, ApiKey]:
    """Create a key record in the store.

    Returns the one-time secret alongside the stored record. The secret is
    not recoverable afterwards.
    """
    settings = get_settings()
    issued = generate_api_key()
    key = ApiKey(
        id=str(uuid.uuid4()),
        key_hash=issued.key_hash,
        key_prefix=issued.key_prefix,
        name=name,
        scopes=list(scopes or DEFAULT_SCOPES),
        rate_limit_per_minute=rate_limit_per_minute or settings.default_rate_limit_per_minute,
        rate_limit_per_day=rate_limit_per_day or settings.default_rate_limit_per_day,
        expires_at=expires_at,
        created_at=datetime.now(timezone.utc),
    )
    await store.insert_key(key)

    get_audit_logger().info(
        "API key issued",
        extra={"audit_data": {"key_id": key.id, "key_prefix": key.key_prefix, "scopes": key.scopes}},
    )
    return issued, key
