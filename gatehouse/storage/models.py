from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Set


@dataclass
class User:
    id: str
    display_name: str
    email: Optional[str] = None
    # None means the account has no local password and is validated by the directory
    password_hash: Optional[str] = None
    role_ids: Set[str] = field(default_factory=set)

    def copy(self) -> "User":
        return replace(self, role_ids=set(self.role_ids))


@dataclass
class Role:
    id: str
    description: Optional[str] = None
    role_ids: Set[str] = field(default_factory=set)

    def copy(self) -> "Role":
        return replace(self, role_ids=set(self.role_ids))
