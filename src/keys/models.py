"""API key and rate limit window models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from src.config.settings import get_settings


class WindowType(str, Enum):
    MINUTE = "minute"
    DAY = "day"


@dataclass
class ApiKey:
    id: str
    key_hash: str
    key_prefix: str
    name: str = ""
    scopes: list[str] = field(default_factory=lambda: ["read"])
    rate_limit_per_minute: int = 60
    rate_limit_per_day: int = 1000
    is_active: bool = True
    last_used_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: dict) -> "ApiKey":
        """Build an ApiKey from a stored row (JSON file entry or DynamoDB item)."""
        settings = get_settings()
        return cls(
            id=str(record["id"]),
            key_hash=record["key_hash"],
            key_prefix=record["key_prefix"],
            name=record.get("name", ""),
            scopes=list(record.get("scopes", ["read"])),
            rate_limit_per_minute=int(record.get("rate_limit_per_minute", settings.default_rate_limit_per_minute)),
            rate_limit_per_day=int(record.get("rate_limit_per_day", settings.default_rate_limit_per_day)),
            is_active=bool(record.get("is_active", True)),
            last_used_at=parse_timestamp(record.get("last_used_at")),
            expires_at=parse_timestamp(record.get("expires_at")),
            created_at=parse_timestamp(record.get("created_at")),
        )

    def to_record(self) -> dict:
        """Inverse of from_record; absent timestamps are left out."""
        record = {
            "id": self.id,
            "key_hash": self.key_hash,
            "key_prefix": self.key_prefix,
            "name": self.name,
            "scopes": list(self.scopes),
            "rate_limit_per_minute": self.rate_limit_per_minute,
            "rate_limit_per_day": self.rate_limit_per_day,
            "is_active": self.is_active,
        }
        for name in ("last_used_at", "expires_at", "created_at"):
            value = getattr(self, name)
            if value is not None:
                record[name] = utc_isoformat(value)
        return record

    def public_view(self) -> dict:
        """Non-secret fields safe to return to the key's owner."""
        return {
            "id": self.id,
            "name": self.name,
            "key_prefix": self.key_prefix,
            "scopes": self.scopes,
            "rate_limit_per_minute": self.rate_limit_per_minute,
            "rate_limit_per_day": self.rate_limit_per_day,
            "last_used_at": _isoformat(self.last_used_at),
            "expires_at": _isoformat(self.expires_at),
        }


@dataclass
class WindowRecord:
    api_key_id: str
    window_start: datetime
    window_type: WindowType
    request_count: int = 1


def window_id(key_id: str, window_start: datetime, window_type: WindowType) -> str:
    """Unique row identity for a (key, window_start, window_type) triple."""
    return f"{key_id}#{window_type.value}#{utc_isoformat(window_start)}"


def utc_isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
