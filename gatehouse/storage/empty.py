from __future__ import annotations

from typing import List, Optional, Sequence

from gatehouse.storage.errors import ConstraintViolation
from gatehouse.storage.filters import Condition, OrderBy
from gatehouse.storage.models import Role, User


class EmptyStore:
    """Store with no records that rejects writes.

    Used when the configured backend cannot be created; the super-user and
    directory accounts still resolve against it.
    """

    def get_user(self, user_id: str) -> Optional[User]:
        return None

    def list_users(
        self,
        conditions: Sequence[Condition] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[User]:
        return []

    def create_user(self, user: User) -> User:
        raise ConstraintViolation("store is read-only", {"id": user.id})

    def update_user(self, user: User) -> Optional[User]:
        return None

    def delete_user(self, user_id: str) -> bool:
        return False

    def get_role(self, role_id: str) -> Optional[Role]:
        return None

    def list_roles(
        self,
        conditions: Sequence[Condition] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[Role]:
        return []

    def create_role(self, role: Role) -> Role:
        raise ConstraintViolation("store is read-only", {"id": role.id})

    def update_role(self, role: Role) -> Optional[Role]:
        return None

    def delete_role(self, role_id: str) -> bool:
        return False

    def close(self) -> None:
        return None
