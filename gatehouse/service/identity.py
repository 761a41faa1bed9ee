"""Per-request identity resolution with cached results.

Security note: once a header has been resolved, the same header maps to the
cached user until either cache entry expires or is evicted. Credentials
are not re-checked inside that window, so a changed password or a disabled
directory account keeps working for up to the configured TTL unless the
caller evicts the user explicitly. Evicting a user also drops every cached
header that resolved to it.

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from gatehouse.logging import get_logger
from gatehouse.service.cache import TTLCache
from gatehouse.service.credentials import (
    BasicCredential,
    BearerCredential,
    extract_credential,
)
from gatehouse.service.errors import NotAuthorizedError
from gatehouse.service.principals import (
    ADMIN_ROLE,
    ADMIN_USER,
    AUTHENTICATED_ROLE,
    EVERYONE_ROLE,
    anonymous_user,
    is_anonymous,
)
from gatehouse.service.roles import RoleExpander
from gatehouse.service.validator import CredentialValidator
from gatehouse.storage.errors import StoreUnavailableError
from gatehouse.storage.models import Role, User

logger = get_logger(__name__)


@dataclass
class RequestContext:
    """Resolution state owned by a single request."""

    authorization: Optional[str] = None
    user: Optional[User] = None


class BearerTokenResolver(Protocol):
    """Maps a bearer token to a base user, or ``None`` for anonymous."""

    def resolve_token(self, token: str) -> Optional[User]: ...


class IdentityResolver:
    def __init__(
        self,
        validator: CredentialValidator,
        expander: RoleExpander,
        authorization_cache: TTLCache[str, str],
        user_cache: TTLCache[str, User],
        role_cache: TTLCache[str, Role],
        *,
        bearer_resolver: Optional[BearerTokenResolver] = None,
    ) -> None:
        self.validator = validator
        self.expander = expander
        self.authorization_cache = authorization_cache
        self.user_cache = user_cache
        self.role_cache = role_cache
        self.bearer_resolver = bearer_resolver

    def resolve(self, ctx: RequestContext) -> User:
        """Return the caller's identity with its closed role set.

        Raises ``NotAuthorizedError`` when presented credentials are wrong.
        """
        if ctx.user is not None:
            return ctx.user
        authorization = ctx.authorization
        if not authorization:
            ctx.user = anonymous_user()
            return ctx.user

        cached = self._cached_user(authorization)
        if cached is not None:
            ctx.user = cached
            return cached

        user = self._base_user(authorization)
        if user is None or is_anonymous(user):
            ctx.user = anonymous_user()
            return ctx.user

        try:
            user.role_ids = self.expander.expand(user.role_ids)
        except StoreUnavailableError as exc:
            logger.warning("role_expansion_unavailable", user_id=user.id)
            raise NotAuthorizedError() from exc
        user.role_ids.update({user.id, EVERYONE_ROLE, AUTHENTICATED_ROLE})
        if user.id == ADMIN_USER:
            user.role_ids.add(ADMIN_ROLE)

        self.authorization_cache.put(authorization, user.id)
        self.user_cache.put(user.id, user.copy())
        ctx.user = user
        logger.info("identity_resolved", user_id=user.id, role_ids=sorted(user.role_ids))
        return user

    def _cached_user(self, authorization: str) -> Optional[User]:
        user_id = self.authorization_cache.get(authorization)
        if user_id is None:
            return None
        user = self.user_cache.get(user_id)
        return user.copy() if user is not None else None

    def _base_user(self, authorization: str) -> Optional[User]:
        credential = extract_credential(authorization)
        if isinstance(credential, BasicCredential):
            return self.validator.validate(credential.user_id, credential.password)
        if isinstance(credential, BearerCredential):
            if self.bearer_resolver is None:
                logger.warning("bearer_token_unsupported")
                return None
            return self.bearer_resolver.resolve_token(credential.token)
        return None

    def evict_user(self, user_id: str) -> None:
        """Forget the user and every header that resolved to it."""
        self.user_cache.remove(user_id)
        self.authorization_cache.remove_where(lambda cached_id: cached_id == user_id)

    def evict_role(self, role_id: str) -> None:
        self.role_cache.remove(role_id)

    def clear_caches(self) -> None:
        self.authorization_cache.clear()
        self.user_cache.clear()
        self.role_cache.clear()
