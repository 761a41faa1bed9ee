"""Store protocol and helpers shared between the storage backends."""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, Sequence, TypeVar

from gatehouse.storage.filters import Condition, OrderBy
from gatehouse.storage.models import Role, User

T = TypeVar("T")


class SecurityStore(Protocol):
    """CRUD boundary over User and Role records.

    Every call is treated as its own transaction. Records returned are
    copies owned by the caller.
    """

    def get_user(self, user_id: str) -> Optional[User]: ...

    def list_users(
        self,
        conditions: Sequence[Condition] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[User]: ...

    def create_user(self, user: User) -> User: ...

    def update_user(self, user: User) -> Optional[User]: ...

    def delete_user(self, user_id: str) -> bool: ...

    def get_role(self, role_id: str) -> Optional[Role]: ...

    def list_roles(
        self,
        conditions: Sequence[Condition] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[Role]: ...

    def create_role(self, role: Role) -> Role: ...

    def update_role(self, role: Role) -> Optional[Role]: ...

    def delete_role(self, role_id: str) -> bool: ...

    def close(self) -> None: ...


def apply_query(
    records: Iterable[T],
    conditions: Sequence[Condition] = (),
    order_by: Sequence[OrderBy] = (),
) -> List[T]:
    """Filter and sort records in memory.

    Sorting is stable and applied from the last key to the first; ``None``
    values sort before everything else.
    """
    results = [r for r in records if all(c.matches(r) for c in conditions)]
    for order in reversed(order_by):
        results.sort(
            key=lambda r, attr=order.attribute: (
                getattr(r, attr, None) is not None,
                getattr(r, attr, None) or "",
            ),
            reverse=order.descending,
        )
    return results
