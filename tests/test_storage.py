"""Tests for the memory, empty and Postgres store backends."""

import json

import pytest

from gatehouse.storage.empty import EmptyStore
from gatehouse.storage.errors import ConstraintViolation
from gatehouse.storage.filters import Condition, OrderBy
from gatehouse.storage.memory import MemoryStore
from gatehouse.storage.models import Role, User
from gatehouse.storage.postgres import _order_clause, _where_clause


class TestMemoryStore:
    def test_user_crud(self):
        store = MemoryStore()
        store.create_user(User(id="alice", display_name="Alice", role_ids={"r"}))
        assert store.get_user("alice").role_ids == {"r"}

        updated = store.update_user(User(id="alice", display_name="Alice B."))
        assert updated.display_name == "Alice B."
        assert store.update_user(User(id="ghost", display_name="Ghost")) is None

        assert store.delete_user("alice") is True
        assert store.get_user("alice") is None
        assert store.delete_user("alice") is False

    def test_duplicate_ids_rejected(self):
        store = MemoryStore()
        store.create_user(User(id="alice", display_name="Alice"))
        store.create_role(Role(id="readers"))
        with pytest.raises(ConstraintViolation):
            store.create_user(User(id="alice", display_name="Other"))
        with pytest.raises(ConstraintViolation):
            store.create_role(Role(id="readers"))

    def test_returned_records_are_copies(self):
        store = MemoryStore()
        store.create_role(Role(id="editors", role_ids={"readers"}))
        role = store.get_role("editors")
        role.role_ids.add("admins")
        assert store.get_role("editors").role_ids == {"readers"}

    def test_list_defaults_to_id_order(self):
        store = MemoryStore()
        for role_id in ("c", "a", "b"):
            store.create_role(Role(id=role_id))
        assert [r.id for r in store.list_roles()] == ["a", "b", "c"]

    def test_list_with_conditions(self):
        store = MemoryStore()
        store.create_user(User(id="a", display_name="A", email="a@x.org"))
        store.create_user(User(id="b", display_name="B"))
        users = store.list_users([Condition("email", "ne", None)])
        assert [u.id for u in users] == ["a"]

    def test_state_persists_across_instances(self, tmp_path):
        store = MemoryStore(fs_root=str(tmp_path))
        store.create_user(
            User(id="alice", display_name="Alice", password_hash="h", role_ids={"r"})
        )
        store.create_role(Role(id="r", description="desc", role_ids={"s"}))

        reloaded = MemoryStore(fs_root=str(tmp_path))

        assert reloaded.get_user("alice") == User(
            id="alice", display_name="Alice", password_hash="h", role_ids={"r"}
        )
        assert reloaded.get_role("r") == Role(id="r", description="desc", role_ids={"s"})

    def test_state_file_layout(self, tmp_path):
        store = MemoryStore(fs_root=str(tmp_path))
        store.create_role(Role(id="r", role_ids={"b", "a"}))
        data = json.loads((tmp_path / "state" / "security_store.json").read_text())
        assert data["roles"] == [{"id": "r", "description": None, "role_ids": ["a", "b"]}]
        assert data["users"] == []

    def test_failed_persist_leaves_state_unchanged(self, tmp_path, monkeypatch):
        store = MemoryStore(fs_root=str(tmp_path))
        store.create_user(User(id="alice", display_name="Alice"))
        store.create_role(Role(id="readers"))

        def disk_full(users, roles):
            raise OSError("No space left on device")

        monkeypatch.setattr(store, "_persist_state", disk_full)

        with pytest.raises(OSError):
            store.create_user(User(id="bob", display_name="Bob"))
        with pytest.raises(OSError):
            store.update_user(User(id="alice", display_name="Changed"))
        with pytest.raises(OSError):
            store.delete_role("readers")

        assert store.get_user("bob") is None
        assert store.get_user("alice").display_name == "Alice"
        assert store.get_role("readers") is not None

        monkeypatch.undo()
        reloaded = MemoryStore(fs_root=str(tmp_path))
        assert [u.id for u in reloaded.list_users()] == ["alice"]
        assert reloaded.get_user("alice").display_name == "Alice"

    def test_no_fs_root_writes_nothing(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        MemoryStore().create_role(Role(id="r"))
        assert list(tmp_path.iterdir()) == []


class TestEmptyStore:
    def test_reads_are_empty(self):
        store = EmptyStore()
        assert store.get_user("alice") is None
        assert store.get_role("r") is None
        assert store.list_users() == []
        assert store.list_roles() == []

    def test_writes_are_refused(self):
        store = EmptyStore()
        with pytest.raises(ConstraintViolation):
            store.create_user(User(id="alice", display_name="Alice"))
        with pytest.raises(ConstraintViolation):
            store.create_role(Role(id="r"))
        assert store.update_user(User(id="alice", display_name="Alice")) is None
        assert store.update_role(Role(id="r")) is None
        assert store.delete_user("alice") is False
        assert store.delete_role("r") is False


class TestPostgresQueryBuilding:
    columns = {"id": "id", "email": "email", "display_name": "display_name"}

    def test_no_conditions(self):
        assert _where_clause([], self.columns) == ("", [])

    def test_comparisons_are_parameterised(self):
        where, params = _where_clause(
            [Condition("id", "ge", "b"), Condition("email", "contains", "@x")],
            self.columns,
        )
        assert where == " WHERE id >= %s AND strpos(email, %s) > 0"
        assert params == ["b", "@x"]

    def test_null_comparisons(self):
        where, params = _where_clause(
            [Condition("email", "eq", None), Condition("display_name", "ne", None)],
            self.columns,
        )
        assert where == " WHERE email IS NULL AND display_name IS NOT NULL"
        assert params == []

    def test_non_text_literals_never_reach_text_columns(self):
        where, params = _where_clause(
            [
                Condition("id", "gt", 5),
                Condition("email", "eq", True),
                Condition("display_name", "ne", 2.5),
            ],
            self.columns,
        )
        assert where == " WHERE FALSE AND FALSE AND TRUE"
        assert params == []

    def test_non_text_literals_match_memory_store(self):
        store = MemoryStore()
        store.create_user(User(id="alice", display_name="Alice"))
        assert store.list_users([Condition("id", "gt", 5)]) == []
        assert [u.id for u in store.list_users([Condition("id", "ne", 5)])] == ["alice"]

    def test_order_clause(self):
        assert _order_clause([], self.columns) == " ORDER BY id"
        assert (
            _order_clause([OrderBy("email", True), OrderBy("id")], self.columns)
            == " ORDER BY email DESC, id ASC"
        )
