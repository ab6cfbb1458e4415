"""Fixed-window counter rows: bump-or-create, plus the retention sweep.

``bump`` never relies on a store-specific upsert. It reads the row, creates
it if absent, and when the create loses a race to a concurrent request
(UniqueViolation) it re-reads the winner's row and increments that instead.
"""

from datetime import datetime, timedelta, timezone

from src.config.settings import get_settings
from src.keys.models import WindowType
from src.logging.audit import get_audit_logger
from src.store.store import UniqueViolation, WindowStore


async def bump(
    store: WindowStore, key_id: str, window_start: datetime, window_type: WindowType
) -> int:
    """Count one request against a window and return the resulting count."""
    existing = await store.get_window(key_id, window_start, window_type)
    if existing is not None:
        return await store.increment_window(existing)

    try:
        created = await store.insert_window(key_id, window_start, window_type)
    except UniqueViolation:
        # Another request created the row between our read and insert
        refetched = await store.get_window(key_id, window_start, window_type)
        if refetched is None:
            raise
        return await store.increment_window(refetched)

    return created.request_count


async def sweep(
    store: WindowStore,
    retention: timedelta | None = None,
    now: datetime | None = None,
) -> int:
    """Delete window rows older than the retention horizon.

    Meant for a periodic job, never the request path.
    """
    if retention is None:
        retention = timedelta(hours=get_settings().window_retention_hours)
    now = now or datetime.now(timezone.utc)

    deleted = await store.delete_windows_before(now - retention)
    get_audit_logger().info(
        "Rate limit windows swept",
        extra={"audit_data": {"deleted": deleted, "retention_hours": retention.total_seconds() / 3600}},
    )
    return deleted
