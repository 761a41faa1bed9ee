from __future__ import annotations

from typing import Iterable, List, Set

from gatehouse.service.cache import TTLCache
from gatehouse.storage.common import SecurityStore
from gatehouse.storage.models import Role


class RoleExpander:
    """Computes the transitive closure of role ids over role inclusion.

    The inclusion graph may contain cycles and self-references; every role
    id is pushed on the worklist at most once, so expansion always ends.
    """

    def __init__(self, store: SecurityStore, role_cache: TTLCache[str, Role]) -> None:
        self.store = store
        self.role_cache = role_cache

    def lookup_role(self, role_id: str) -> Role:
        role = self.role_cache.get(role_id)
        if role is None:
            role = self.store.get_role(role_id)
            if role is None:
                # Cache the empty role too so unknown ids are not looked up again
                role = Role(id=role_id)
            self.role_cache.put(role_id, role)
        return role

    def expand(self, role_ids: Iterable[str]) -> Set[str]:
        closed: Set[str] = set(role_ids)
        stack: List[str] = list(closed)
        while stack:
            role = self.lookup_role(stack.pop())
            for included in role.role_ids:
                if included not in closed:
                    closed.add(included)
                    stack.append(included)
        return closed
