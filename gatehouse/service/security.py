from __future__ import annotations

from typing import List, Optional

from gatehouse.logging import get_logger
from gatehouse.service.errors import InvalidRequestError, NotFoundError
from gatehouse.service.identity import IdentityResolver, RequestContext
from gatehouse.service.passwords import PasswordPolicy, hash_password, verify_password
from gatehouse.service.principals import ADMIN_USER, ANONYMOUS_USER
from gatehouse.storage.common import SecurityStore
from gatehouse.storage.filters import (
    ROLE_FIELDS,
    USER_FIELDS,
    FieldMap,
    parse_filter,
    parse_order_by,
)
from gatehouse.storage.models import Role, User

logger = get_logger(__name__)


class SecurityService:
    """User and role management on top of the identity resolver.

    Writes go to the store first and then evict the affected id from the
    resolver's caches; they do not refresh users whose expanded roles were
    derived from an edited role.
    """

    def __init__(
        self,
        store: SecurityStore,
        resolver: IdentityResolver,
        password_policy: PasswordPolicy,
        *,
        user_fields: FieldMap = USER_FIELDS,
        role_fields: FieldMap = ROLE_FIELDS,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.password_policy = password_policy
        self.user_fields = user_fields
        self.role_fields = role_fields

    def current_user(self, ctx: RequestContext) -> User:
        return self.resolver.resolve(ctx)

    # Users

    def list_users(
        self, filter_text: Optional[str] = None, order_by: Optional[str] = None
    ) -> List[User]:
        logger.info("list_users", filter=filter_text)
        conditions = parse_filter(filter_text, self.user_fields)
        ordering = parse_order_by(order_by, self.user_fields)
        return self.store.list_users(conditions, ordering)

    def get_user(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("user not found", detail={"user_id": user_id})
        return user

    def _apply_password(self, user: User, password: Optional[str]) -> None:
        if password and password.strip():
            self.password_policy.check(password)
            user.password_hash = hash_password(password)

    def create_user(self, user: User, password: Optional[str] = None) -> User:
        logger.info("create_user", user_id=user.id)
        self._apply_password(user, password)
        created = self.store.create_user(user)
        # A directory account may already be cached under this id
        self.resolver.evict_user(user.id)
        return created

    def update_user(self, user: User, password: Optional[str] = None) -> User:
        logger.info("update_user", user_id=user.id)
        existing = self.get_user(user.id)
        if not password or not password.strip():
            user.password_hash = existing.password_hash
        self._apply_password(user, password)
        updated = self.store.update_user(user)
        if updated is None:
            raise NotFoundError("user not found", detail={"user_id": user.id})
        self.resolver.evict_user(user.id)
        return updated

    def delete_user(self, user_id: str) -> bool:
        logger.info("delete_user", user_id=user_id)
        deleted = self.store.delete_user(user_id)
        self.resolver.evict_user(user_id)
        return deleted

    def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        logger.info("change_password", user_id=user_id)
        if (
            user_id in (ADMIN_USER, ANONYMOUS_USER)
            or not new_password
            or not new_password.strip()
        ):
            raise InvalidRequestError("CAN_NOT_CHANGE_PASSWORD")
        user = self.store.get_user(user_id)
        if user is None or not verify_password(old_password, user.password_hash):
            raise InvalidRequestError("CAN_NOT_CHANGE_PASSWORD")
        self.password_policy.check(new_password)
        user.password_hash = hash_password(new_password)
        self.store.update_user(user)
        self.resolver.evict_user(user_id)

    # Roles

    def list_roles(
        self, filter_text: Optional[str] = None, order_by: Optional[str] = None
    ) -> List[Role]:
        logger.info("list_roles", filter=filter_text)
        conditions = parse_filter(filter_text, self.role_fields)
        ordering = parse_order_by(order_by, self.role_fields)
        return self.store.list_roles(conditions, ordering)

    def get_role(self, role_id: str) -> Role:
        role = self.store.get_role(role_id)
        if role is None:
            raise NotFoundError("role not found", detail={"role_id": role_id})
        return role

    def create_role(self, role: Role) -> Role:
        logger.info("create_role", role_id=role.id)
        created = self.store.create_role(role)
        # A previously synthesised empty role may be cached under this id
        self.resolver.evict_role(role.id)
        return created

    def update_role(self, role: Role) -> Role:
        logger.info("update_role", role_id=role.id)
        updated = self.store.update_role(role)
        if updated is None:
            raise NotFoundError("role not found", detail={"role_id": role.id})
        self.resolver.evict_role(role.id)
        return updated

    def delete_role(self, role_id: str) -> bool:
        logger.info("delete_role", role_id=role_id)
        deleted = self.store.delete_role(role_id)
        self.resolver.evict_role(role_id)
        return deleted
