from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from gatehouse.logging import get_logger
from gatehouse.storage.common import apply_query
from gatehouse.storage.errors import ConstraintViolation
from gatehouse.storage.filters import Condition, OrderBy
from gatehouse.storage.models import Role, User


class MemoryStore:
    """In-memory user and role store, optionally persisted to a JSON file."""

    def __init__(self, fs_root: str | None = None) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        self.roles: Dict[str, Role] = {}
        # RLock so nested helpers can re-acquire within the same thread
        self._data_lock = threading.RLock()
        self.fs_root = Path(fs_root) if fs_root else None
        if self.fs_root is not None:
            self.fs_root.mkdir(parents=True, exist_ok=True)
            self._load_state()

    def _state_path(self) -> Path:
        state_dir = self.fs_root / "state"
        state_dir.mkdir(parents=True, exist_ok=True)
        return state_dir / "security_store.json"

    def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            user = self.users.get(user_id)
            return user.copy() if user else None

    def list_users(
        self,
        conditions: Sequence[Condition] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[User]:
        with self._data_lock:
            snapshot = [u.copy() for u in self.users.values()]
        return apply_query(snapshot, conditions, order_by or [OrderBy("id")])

    def _commit(self, users: Dict[str, User], roles: Dict[str, Role]) -> None:
        """Persist the staged maps, then install them; a failed write changes nothing."""
        self._persist_state(users, roles)
        self.users = users
        self.roles = roles

    def create_user(self, user: User) -> User:
        with self._data_lock:
            if user.id in self.users:
                raise ConstraintViolation("user already exists", {"id": user.id})
            self._commit({**self.users, user.id: user.copy()}, self.roles)
            return user.copy()

    def update_user(self, user: User) -> Optional[User]:
        with self._data_lock:
            if user.id not in self.users:
                return None
            self._commit({**self.users, user.id: user.copy()}, self.roles)
            return user.copy()

    def delete_user(self, user_id: str) -> bool:
        with self._data_lock:
            if user_id not in self.users:
                return False
            users = {k: v for k, v in self.users.items() if k != user_id}
            self._commit(users, self.roles)
            return True

    def get_role(self, role_id: str) -> Optional[Role]:
        with self._data_lock:
            role = self.roles.get(role_id)
            return role.copy() if role else None

    def list_roles(
        self,
        conditions: Sequence[Condition] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[Role]:
        with self._data_lock:
            snapshot = [r.copy() for r in self.roles.values()]
        return apply_query(snapshot, conditions, order_by or [OrderBy("id")])

    def create_role(self, role: Role) -> Role:
        with self._data_lock:
            if role.id in self.roles:
                raise ConstraintViolation("role already exists", {"id": role.id})
            self._commit(self.users, {**self.roles, role.id: role.copy()})
            return role.copy()

    def update_role(self, role: Role) -> Optional[Role]:
        with self._data_lock:
            if role.id not in self.roles:
                return None
            self._commit(self.users, {**self.roles, role.id: role.copy()})
            return role.copy()

    def delete_role(self, role_id: str) -> bool:
        with self._data_lock:
            if role_id not in self.roles:
                return False
            roles = {k: v for k, v in self.roles.items() if k != role_id}
            self._commit(self.users, roles)
            return True

    def close(self) -> None:
        return None

    @staticmethod
    def _serialize_user(user: User) -> dict:
        return {
            "id": user.id,
            "display_name": user.display_name,
            "email": user.email,
            "password_hash": user.password_hash,
            "role_ids": sorted(user.role_ids),
        }

    @staticmethod
    def _deserialize_user(data: dict) -> User:
        return User(
            id=data["id"],
            display_name=data.get("display_name") or data["id"],
            email=data.get("email"),
            password_hash=data.get("password_hash"),
            role_ids=set(data.get("role_ids", [])),
        )

    @staticmethod
    def _serialize_role(role: Role) -> dict:
        return {
            "id": role.id,
            "description": role.description,
            "role_ids": sorted(role.role_ids),
        }

    @staticmethod
    def _deserialize_role(data: dict) -> Role:
        return Role(
            id=data["id"],
            description=data.get("description"),
            role_ids=set(data.get("role_ids", [])),
        )

    def _persist_state(self, users: Dict[str, User], roles: Dict[str, Role]) -> None:
        if self.fs_root is None:
            return
        state = {
            "users": [self._serialize_user(u) for u in users.values()],
            "roles": [self._serialize_role(r) for r in roles.values()],
        }
        path = self._state_path()
        # Write to a temp file then rename so readers never see a partial file
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as handle:
                json.dump(state, handle)
            os.replace(tmp_path, path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _load_state(self) -> bool:
        path = self._state_path()
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            return False
        self.users = {u["id"]: self._deserialize_user(u) for u in data.get("users", [])}
        self.roles = {r["id"]: self._deserialize_role(r) for r in data.get("roles", [])}
        self.logger.info(
            "memory_store_loaded",
            users=len(self.users),
            roles=len(self.roles),
            path=str(path),
        )
        return True
