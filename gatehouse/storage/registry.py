"""Maps the configured store name to a constructor, resolved once at startup."""

from __future__ import annotations

from types import MappingProxyType
from typing import Callable, Mapping

from gatehouse.config import Settings
from gatehouse.logging import get_logger
from gatehouse.storage.common import SecurityStore
from gatehouse.storage.empty import EmptyStore
from gatehouse.storage.memory import MemoryStore

logger = get_logger(__name__)

StoreFactory = Callable[[Settings], SecurityStore]


def _memory_store(settings: Settings) -> SecurityStore:
    return MemoryStore(fs_root=settings.shared_fs_root)


def _postgres_store(settings: Settings) -> SecurityStore:
    # Imported lazily so the memory backend works without a Postgres driver
    from gatehouse.storage.postgres import PostgresStore

    return PostgresStore(settings.database_url)


def _empty_store(settings: Settings) -> SecurityStore:
    return EmptyStore()


STORE_BACKENDS: Mapping[str, StoreFactory] = MappingProxyType(
    {
        "memory": _memory_store,
        "postgres": _postgres_store,
        "empty": _empty_store,
    }
)


def create_store(
    settings: Settings, backends: Mapping[str, StoreFactory] = STORE_BACKENDS
) -> SecurityStore:
    """Build the configured store, falling back to an empty store on failure."""
    factory = backends.get(settings.store_backend)
    if factory is None:
        logger.error(
            "store_backend_unknown",
            store_backend=settings.store_backend,
            available=sorted(backends),
        )
        return EmptyStore()
    try:
        store = factory(settings)
    except Exception as exc:
        logger.error(
            "store_init_failed",
            store_backend=settings.store_backend,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return EmptyStore()
    logger.info(
        "store_initialized",
        store_backend=settings.store_backend,
        store_type=type(store).__name__,
    )
    return store
