"""Rate limiting with fixed per-minute and per-day window counters.

Counters live in the window store, keyed by (api key, window start, window
type). Every checked request bumps both windows, even when it ends up
denied. A request is denied once either count is strictly greater than the
key's limit.

Returns standard rate limit metadata for response headers:
- X-RateLimit-Limit      per-minute limit
- X-RateLimit-Remaining  requests left in the current minute
- X-RateLimit-Reset      Unix time the current minute window ends

If the store fails, the check fails open with the full per-minute quota.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from src.config.settings import get_settings
from src.keys.models import ApiKey, WindowType
from src.logging.audit import get_audit_logger
from src.security.windows import bump
from src.store.store import WindowStore

MINUTE = timedelta(minutes=1)


@dataclass
class RateLimitInfo:
    limit: int
    remaining: int
    reset: int  # Unix timestamp

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


@dataclass
class RateLimitResult:
    allowed: bool
    info: RateLimitInfo


def localize(now: datetime | None = None) -> datetime:
    """Current (or given) time in the zone day windows are cut in."""
    tz_name = get_settings().rate_limit_timezone
    tz = ZoneInfo(tz_name) if tz_name else None
    if now is None:
        return datetime.now(tz).astimezone(tz)
    return now.astimezone(tz)


def window_starts(now: datetime) -> tuple[datetime, datetime]:
    """(minute window start, day window start) containing ``now``."""
    minute_start = now.replace(second=0, microsecond=0)
    if get_settings().rate_limit_timezone:
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    else:
        # Server-local times carry a fixed offset; midnight may have had another one (DST)
        day_start = datetime.combine(now.date(), time.min).astimezone()
    return minute_start, day_start


async def check_rate_limit(
    key: ApiKey, store: WindowStore, now: datetime | None = None
) -> RateLimitResult:
    """Count this request against the key's windows and decide if it may proceed."""
    now = localize(now)
    minute_start, day_start = window_starts(now)

    try:
        minute_count, day_count = await asyncio.gather(
            bump(store, key.id, minute_start, WindowType.MINUTE),
            bump(store, key.id, day_start, WindowType.DAY),
        )
    except Exception:
        get_audit_logger().error(
            "Rate limit check failed, allowing request",
            exc_info=True,
            extra={"audit_data": {"key_id": key.id}},
        )
        return RateLimitResult(
            allowed=True,
            info=RateLimitInfo(
                limit=key.rate_limit_per_minute,
                remaining=key.rate_limit_per_minute,
                reset=int(now.timestamp()) + 60,
            ),
        )

    minute_exceeded = minute_count > key.rate_limit_per_minute
    day_exceeded = day_count > key.rate_limit_per_day

    info = RateLimitInfo(
        limit=key.rate_limit_per_minute,
        remaining=max(0, key.rate_limit_per_minute - minute_count),
        # Always the minute horizon, even when the day window is what denied
        reset=int((minute_start + MINUTE).timestamp()),
    )
    return RateLimitResult(allowed=not (minute_exceeded or day_exceeded), info=info)
