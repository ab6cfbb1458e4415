"""Request gate: authenticate, then rate limit. First rejection wins.

Requests with no valid key never reach the rate limiter, so they cannot
consume any key's quota.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from src.keys.models import ApiKey
from src.logging.audit import get_audit_logger
from src.security.auth import Authenticated, DenialReason, Denied, authenticate
from src.security.ratelimit import RateLimitInfo, check_rate_limit
from src.store.store import GatewayStore


@dataclass
class Proceed:
    key: ApiKey
    rate_info: RateLimitInfo


@dataclass
class Reject:
    denial: Denied
    rate_info: RateLimitInfo | None = None  # set for RATE_LIMIT_EXCEEDED

    @property
    def reason(self) -> DenialReason:
        return self.denial.reason


GateOutcome = Proceed | Reject


async def run_gate(
    headers: Mapping[str, str],
    store: GatewayStore,
    required_scope: str | None = None,
    now: datetime | None = None,
) -> GateOutcome:
    """Decide whether a request may reach its route handler."""
    logger = get_audit_logger()
    now = now or datetime.now(timezone.utc)

    auth = await authenticate(headers, store, required_scope=required_scope, now=now)
    if not isinstance(auth, Authenticated):
        logger.warning(
            "Authentication denied",
            extra={"audit_data": {
                "reason": auth.reason.name,
                "required_scope": required_scope,
            }},
        )
        return Reject(auth)

    key = auth.key
    rate = await check_rate_limit(key, store, now=now)
    if not rate.allowed:
        logger.warning(
            "Rate limit exceeded",
            extra={"audit_data": {
                "key_id": key.id,
                "rate_limit": rate.info.limit,
                "reset": rate.info.reset,
            }},
        )
        return Reject(Denied(DenialReason.RATE_LIMIT_EXCEEDED), rate_info=rate.info)

    return Proceed(key=key, rate_info=rate.info)
