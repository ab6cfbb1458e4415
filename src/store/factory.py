"""Factory for store backends."""

from src.config.settings import get_settings
from src.store.store import GatewayStore, InMemoryStore, JSONKeyStore

_store: GatewayStore | None = None


def get_store() -> GatewayStore:
    """Get the store singleton for the configured backend."""
    global _store
    if _store is not None:
        return _store

    settings = get_settings()
    backend = settings.store_backend

    if backend == "json":
        _store = JSONKeyStore(settings.api_keys_path)
    elif backend == "memory":
        _store = InMemoryStore()
    elif backend == "dynamodb":
        # Lazy import to avoid boto3 dependency when not needed
        from src.store.dynamodb_store import DynamoDBStore
        _store = DynamoDBStore(
            keys_table=settings.dynamodb_keys_table,
            windows_table=settings.dynamodb_windows_table,
            region=settings.aws_region,
        )
    else:
        raise ValueError(f"Unknown store backend: {backend}")

    return _store
