from __future__ import annotations

import contextlib
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from gatehouse.logging import get_logger
from gatehouse.storage.errors import ConstraintViolation, StoreUnavailableError
from gatehouse.storage.filters import Condition, OrderBy
from gatehouse.storage.models import Role, User

_USER_COLUMNS = {
    "id": "id",
    "display_name": "display_name",
    "email": "email",
    "password_hash": "password_hash",
}
_ROLE_COLUMNS = {"id": "id", "description": "description"}

_COMPARISONS = {"eq": "=", "ne": "<>", "gt": ">", "ge": ">=", "lt": "<", "le": "<="}


def _where_clause(
    conditions: Sequence[Condition], columns: dict[str, str]
) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    for cond in conditions:
        column = columns[cond.attribute]
        if cond.op == "contains":
            clauses.append(f"strpos({column}, %s) > 0")
            params.append(str(cond.value))
        elif cond.value is None and cond.op in ("eq", "ne"):
            clauses.append(f"{column} IS {'NOT ' if cond.op == 'ne' else ''}NULL")
        elif not isinstance(cond.value, str):
            # Every column is TEXT; a non-text literal matches like Condition.matches
            clauses.append("TRUE" if cond.op == "ne" else "FALSE")
        else:
            clauses.append(f"{column} {_COMPARISONS[cond.op]} %s")
            params.append(cond.value)
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


def _order_clause(order_by: Sequence[OrderBy], columns: dict[str, str]) -> str:
    if not order_by:
        return " ORDER BY id"
    parts = [
        f"{columns[o.attribute]} {'DESC' if o.descending else 'ASC'}" for o in order_by
    ]
    return " ORDER BY " + ", ".join(parts)


class PostgresStore:
    """Postgres-backed user and role store."""

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=1,
            max_size=10,
            kwargs={"row_factory": dict_row},
            open=True,
        )
        self._ensure_schema()

    @contextlib.contextmanager
    def _connect(self) -> Iterator[psycopg.Connection]:
        try:
            with self.pool.connection() as conn:
                yield conn
        except (psycopg.OperationalError, PoolTimeout) as exc:
            self.logger.error("postgres_unavailable", error=str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS security_user (
                    id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL,
                    email TEXT,
                    password_hash TEXT,
                    role_ids TEXT[] NOT NULL DEFAULT '{}'
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS security_role (
                    id TEXT PRIMARY KEY,
                    description TEXT,
                    role_ids TEXT[] NOT NULL DEFAULT '{}'
                )
                """
            )

    @staticmethod
    def _row_to_user(row: dict) -> User:
        return User(
            id=row["id"],
            display_name=row["display_name"],
            email=row.get("email"),
            password_hash=row.get("password_hash"),
            role_ids=set(row.get("role_ids") or []),
        )

    @staticmethod
    def _row_to_role(row: dict) -> Role:
        return Role(
            id=row["id"],
            description=row.get("description"),
            role_ids=set(row.get("role_ids") or []),
        )

    def get_user(self, user_id: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM security_user WHERE id = %s", (user_id,)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def list_users(
        self,
        conditions: Sequence[Condition] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[User]:
        where, params = _where_clause(conditions, _USER_COLUMNS)
        query = "SELECT * FROM security_user" + where + _order_clause(order_by, _USER_COLUMNS)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_user(row) for row in rows]

    def create_user(self, user: User) -> User:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO security_user (id, display_name, email, password_hash, role_ids)"
                    " VALUES (%s, %s, %s, %s, %s)",
                    (
                        user.id,
                        user.display_name,
                        user.email,
                        user.password_hash,
                        sorted(user.role_ids),
                    ),
                )
        except errors.UniqueViolation:
            raise ConstraintViolation("user already exists", {"id": user.id})
        return user.copy()

    def update_user(self, user: User) -> Optional[User]:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE security_user SET display_name = %s, email = %s,"
                " password_hash = %s, role_ids = %s WHERE id = %s",
                (
                    user.display_name,
                    user.email,
                    user.password_hash,
                    sorted(user.role_ids),
                    user.id,
                ),
            )
            updated = cur.rowcount > 0
        return user.copy() if updated else None

    def delete_user(self, user_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM security_user WHERE id = %s", (user_id,))
            return cur.rowcount > 0

    def get_role(self, role_id: str) -> Optional[Role]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM security_role WHERE id = %s", (role_id,)
            ).fetchone()
        return self._row_to_role(row) if row else None

    def list_roles(
        self,
        conditions: Sequence[Condition] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> List[Role]:
        where, params = _where_clause(conditions, _ROLE_COLUMNS)
        query = "SELECT * FROM security_role" + where + _order_clause(order_by, _ROLE_COLUMNS)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_role(row) for row in rows]

    def create_role(self, role: Role) -> Role:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO security_role (id, description, role_ids) VALUES (%s, %s, %s)",
                    (role.id, role.description, sorted(role.role_ids)),
                )
        except errors.UniqueViolation:
            raise ConstraintViolation("role already exists", {"id": role.id})
        return role.copy()

    def update_role(self, role: Role) -> Optional[Role]:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE security_role SET description = %s, role_ids = %s WHERE id = %s",
                (role.description, sorted(role.role_ids), role.id),
            )
            updated = cur.rowcount > 0
        return role.copy() if updated else None

    def delete_role(self, role_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM security_role WHERE id = %s", (role_id,))
            return cur.rowcount > 0

    def close(self) -> None:
        self.pool.close()
