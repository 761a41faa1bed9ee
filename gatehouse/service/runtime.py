from __future__ import annotations

import threading
from typing import Optional
from urllib.parse import urlparse, urlunparse

from gatehouse.config import Settings, get_settings, reset_settings_cache
from gatehouse.logging import get_logger
from gatehouse.service.cache import TTLCache
from gatehouse.service.directory import create_directory
from gatehouse.service.identity import IdentityResolver
from gatehouse.service.passwords import PasswordPolicy
from gatehouse.service.roles import RoleExpander
from gatehouse.service.security import SecurityService
from gatehouse.service.validator import CredentialValidator
from gatehouse.storage.models import Role, User
from gatehouse.storage.registry import create_store

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password component of a URL for logging."""
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        logger.info(
            "runtime_init_started",
            store_backend=self.settings.store_backend,
            database_url=_mask_url_password(self.settings.database_url),
            directory_enabled=self.settings.directory_enabled,
        )
        if self.settings.admin_password is None:
            logger.warning("admin_password_unset", message="super-user login is disabled")

        self.store = create_store(self.settings)
        self.directory = create_directory(self.settings)

        self.authorization_cache: TTLCache[str, str] = TTLCache(
            self.settings.authorization_cache_ttl_seconds
        )
        self.user_cache: TTLCache[str, User] = TTLCache(
            self.settings.user_cache_ttl_seconds
        )
        self.role_cache: TTLCache[str, Role] = TTLCache(
            self.settings.role_cache_ttl_seconds
        )
        logger.info(
            "runtime_caches_configured",
            authorization_cache_ttl=self.settings.authorization_cache_ttl_seconds,
            user_cache_ttl=self.settings.user_cache_ttl_seconds,
            role_cache_ttl=self.settings.role_cache_ttl_seconds,
        )

        self.validator = CredentialValidator(
            self.store, self.settings.admin_password, self.directory
        )
        self.expander = RoleExpander(self.store, self.role_cache)
        self.resolver = IdentityResolver(
            self.validator,
            self.expander,
            self.authorization_cache,
            self.user_cache,
            self.role_cache,
        )
        self.security = SecurityService(
            self.store,
            self.resolver,
            PasswordPolicy(self.settings.password_pattern),
        )

    def close(self) -> None:
        self.store.close()
        self.resolver.clear_caches()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner."""
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> None:
    """Drop the runtime singleton and cached settings for isolated test runs."""
    global runtime
    with _runtime_lock:
        if runtime is not None:
            runtime.close()
        runtime = None
        reset_settings_cache()
