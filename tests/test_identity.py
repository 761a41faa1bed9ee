"""Tests for per-request identity resolution and its caches."""

import threading

import pytest

from gatehouse.service.cache import TTLCache
from gatehouse.service.errors import NotAuthorizedError
from gatehouse.service.identity import IdentityResolver, RequestContext
from gatehouse.service.passwords import hash_password
from gatehouse.service.principals import (
    ADMIN_ROLE,
    ADMIN_USER,
    ANONYMOUS_USER,
    AUTHENTICATED_ROLE,
    EVERYONE_ROLE,
)
from gatehouse.service.roles import RoleExpander
from gatehouse.service.validator import CredentialValidator
from gatehouse.storage.models import Role, User
from helpers import CountingStore, basic_header

ADMIN_SECRET = "Top-Secret-1"


class CountingValidator(CredentialValidator):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    def validate(self, user_id, password):
        self.calls += 1
        return super().validate(user_id, password)


class StaticBearerResolver:
    def __init__(self, users):
        self.users = users

    def resolve_token(self, token):
        user = self.users.get(token)
        return user.copy() if user else None


@pytest.fixture
def store():
    s = CountingStore()
    s.inner.create_role(Role(id="editors", role_ids={"readers"}))
    s.inner.create_role(Role(id="readers"))
    s.inner.create_user(
        User(
            id="alice",
            display_name="Alice",
            password_hash=hash_password("Secret123"),
            role_ids={"editors"},
        )
    )
    return s


def build_resolver(store, clock, *, ttl=300, bearer_resolver=None):
    role_cache = TTLCache(ttl, clock=clock)
    validator = CountingValidator(store, ADMIN_SECRET)
    resolver = IdentityResolver(
        validator,
        RoleExpander(store, role_cache),
        TTLCache(ttl, clock=clock),
        TTLCache(ttl, clock=clock),
        role_cache,
        bearer_resolver=bearer_resolver,
    )
    return resolver, validator


class TestAnonymousResolution:
    def test_missing_header_is_anonymous(self, store, clock):
        resolver, validator = build_resolver(store, clock)
        user = resolver.resolve(RequestContext())
        assert user.id == ANONYMOUS_USER
        assert user.role_ids == {EVERYONE_ROLE}
        assert validator.calls == 0

    def test_malformed_header_is_anonymous(self, store, clock):
        resolver, _ = build_resolver(store, clock)
        user = resolver.resolve(RequestContext(authorization="Garbage"))
        assert user.id == ANONYMOUS_USER

    def test_anonymous_credentials_are_anonymous(self, store, clock):
        resolver, _ = build_resolver(store, clock)
        ctx = RequestContext(authorization=basic_header(ANONYMOUS_USER, "x"))
        assert resolver.resolve(ctx).role_ids == {EVERYONE_ROLE}

    def test_anonymous_is_not_cached(self, store, clock):
        resolver, validator = build_resolver(store, clock)
        header = basic_header(ANONYMOUS_USER, "x")
        resolver.resolve(RequestContext(authorization=header))
        resolver.resolve(RequestContext(authorization=header))
        assert validator.calls == 2
        assert len(resolver.authorization_cache) == 0

    def test_bearer_without_resolver_is_anonymous(self, store, clock):
        resolver, _ = build_resolver(store, clock)
        user = resolver.resolve(RequestContext(authorization="Bearer some-token"))
        assert user.id == ANONYMOUS_USER


class TestAuthenticatedResolution:
    def test_roles_are_expanded_with_implicit_roles(self, store, clock):
        resolver, _ = build_resolver(store, clock)
        ctx = RequestContext(authorization=basic_header("alice", "Secret123"))
        user = resolver.resolve(ctx)
        assert user.role_ids == {
            "alice",
            "editors",
            "readers",
            EVERYONE_ROLE,
            AUTHENTICATED_ROLE,
        }
        assert ADMIN_ROLE not in user.role_ids

    def test_admin_gets_administrators_role(self, store, clock):
        resolver, _ = build_resolver(store, clock)
        ctx = RequestContext(authorization=basic_header(ADMIN_USER, ADMIN_SECRET))
        user = resolver.resolve(ctx)
        assert {ADMIN_USER, ADMIN_ROLE, EVERYONE_ROLE, AUTHENTICATED_ROLE} <= user.role_ids

    def test_wrong_password_raises(self, store, clock):
        resolver, _ = build_resolver(store, clock)
        with pytest.raises(NotAuthorizedError):
            resolver.resolve(RequestContext(authorization=basic_header("alice", "nope")))
        assert len(resolver.authorization_cache) == 0

    def test_bearer_resolver_supplies_base_user(self, store, clock):
        bearer = StaticBearerResolver({"tok-1": User(id="bob", display_name="Bob", role_ids={"readers"})})
        resolver, _ = build_resolver(store, clock, bearer_resolver=bearer)
        user = resolver.resolve(RequestContext(authorization="Bearer tok-1"))
        assert user.id == "bob"
        assert {"bob", "readers", AUTHENTICATED_ROLE} <= user.role_ids

    def test_store_outage_during_expansion_rejects(self, store, clock):
        resolver, _ = build_resolver(store, clock)
        resolver.validator = CredentialValidator(store.inner, ADMIN_SECRET)
        store.unavailable = True
        with pytest.raises(NotAuthorizedError):
            resolver.resolve(RequestContext(authorization=basic_header("alice", "Secret123")))


class TestResolutionCaching:
    def test_context_resolves_once(self, store, clock):
        resolver, validator = build_resolver(store, clock)
        ctx = RequestContext(authorization=basic_header("alice", "Secret123"))
        first = resolver.resolve(ctx)
        assert resolver.resolve(ctx) is first
        assert validator.calls == 1

    def test_cache_hit_skips_validation(self, store, clock):
        resolver, validator = build_resolver(store, clock)
        header = basic_header("alice", "Secret123")
        first = resolver.resolve(RequestContext(authorization=header))
        second = resolver.resolve(RequestContext(authorization=header))
        assert validator.calls == 1
        assert second.role_ids == first.role_ids

    def test_cached_user_is_a_copy(self, store, clock):
        resolver, _ = build_resolver(store, clock)
        header = basic_header("alice", "Secret123")
        first = resolver.resolve(RequestContext(authorization=header))
        first.role_ids.add("tampered")
        second = resolver.resolve(RequestContext(authorization=header))
        assert "tampered" not in second.role_ids

    def test_expiry_forces_revalidation(self, store, clock):
        resolver, validator = build_resolver(store, clock, ttl=60)
        header = basic_header("alice", "Secret123")
        resolver.resolve(RequestContext(authorization=header))
        clock.advance(61)
        resolver.resolve(RequestContext(authorization=header))
        assert validator.calls == 2

    def test_cached_header_survives_password_change_until_evicted(self, store, clock):
        resolver, validator = build_resolver(store, clock)
        header = basic_header("alice", "Secret123")
        resolver.resolve(RequestContext(authorization=header))

        user = store.inner.get_user("alice")
        user.password_hash = hash_password("Changed456")
        store.inner.update_user(user)

        assert resolver.resolve(RequestContext(authorization=header)).id == "alice"
        resolver.evict_user("alice")
        with pytest.raises(NotAuthorizedError):
            resolver.resolve(RequestContext(authorization=header))
        assert validator.calls == 2

    def test_old_header_stays_rejected_after_new_login(self, store, clock):
        resolver, _ = build_resolver(store, clock)
        old_header = basic_header("alice", "Secret123")
        new_header = basic_header("alice", "Changed456")
        resolver.resolve(RequestContext(authorization=old_header))

        user = store.inner.get_user("alice")
        user.password_hash = hash_password("Changed456")
        store.inner.update_user(user)
        resolver.evict_user("alice")

        assert resolver.resolve(RequestContext(authorization=new_header)).id == "alice"
        with pytest.raises(NotAuthorizedError):
            resolver.resolve(RequestContext(authorization=old_header))

    def test_evict_user_keeps_other_users_headers(self, store, clock):
        resolver, validator = build_resolver(store, clock)
        alice = basic_header("alice", "Secret123")
        admin = basic_header(ADMIN_USER, ADMIN_SECRET)
        resolver.resolve(RequestContext(authorization=alice))
        resolver.resolve(RequestContext(authorization=admin))

        resolver.evict_user("alice")

        assert resolver.authorization_cache.get(alice) is None
        assert resolver.authorization_cache.get(admin) == ADMIN_USER
        resolver.resolve(RequestContext(authorization=admin))
        assert validator.calls == 2

    def test_zero_ttl_validates_every_request(self, store, clock):
        resolver, validator = build_resolver(store, clock, ttl=0)
        header = basic_header("alice", "Secret123")
        for _ in range(3):
            resolver.resolve(RequestContext(authorization=header))
        assert validator.calls == 3

    def test_clear_caches(self, store, clock):
        resolver, validator = build_resolver(store, clock)
        header = basic_header("alice", "Secret123")
        resolver.resolve(RequestContext(authorization=header))
        resolver.clear_caches()
        resolver.resolve(RequestContext(authorization=header))
        assert validator.calls == 2


class TestConcurrentResolution:
    def test_parallel_requests_agree(self, store):
        role_cache = TTLCache(300)
        resolver = IdentityResolver(
            CredentialValidator(store, ADMIN_SECRET),
            RoleExpander(store, role_cache),
            TTLCache(300),
            TTLCache(300),
            role_cache,
        )
        header = basic_header("alice", "Secret123")
        results = []
        errors = []

        def worker():
            try:
                for _ in range(50):
                    results.append(resolver.resolve(RequestContext(authorization=header)).role_ids)
            except Exception as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == 400
        assert all(r == results[0] for r in results)
