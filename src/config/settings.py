"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Credential format
    api_key_tag: str = "spw_live_"  # literal tag every issued secret starts with
    api_key_prefix_length: int = 12  # chars of the secret stored as key_prefix

    # Rate limiting
    default_rate_limit_per_minute: int = 60
    default_rate_limit_per_day: int = 1000
    rate_limit_timezone: str = ""  # IANA name for day windows, empty = server local
    window_retention_hours: int = 48  # sweep horizon for stale window rows

    # Store
    store_backend: str = "json"  # "json" | "memory" | "dynamodb"
    api_keys_path: str = "api_keys.json"  # path to JSON key records
    dynamodb_keys_table: str = "spendwise-api-keys"
    dynamodb_windows_table: str = "spendwise-api-rate-limits"
    aws_region: str = "us-east-1"

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
