import base64


def basic_header(user_id: str, password: str) -> str:
    token = base64.b64encode(f"{user_id}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class CountingStore:
    """MemoryStore wrapper counting lookups, able to simulate an outage."""

    def __init__(self, store=None):
        from gatehouse.storage.memory import MemoryStore

        self.inner = store or MemoryStore()
        self.user_lookups = 0
        self.role_lookups = 0
        self.unavailable = False

    def _check(self):
        if self.unavailable:
            from gatehouse.storage.errors import StoreUnavailableError

            raise StoreUnavailableError("store offline")

    def get_user(self, user_id):
        self._check()
        self.user_lookups += 1
        return self.inner.get_user(user_id)

    def get_role(self, role_id):
        self._check()
        self.role_lookups += 1
        return self.inner.get_role(role_id)

    def __getattr__(self, name):
        return getattr(self.inner, name)


class FakeDirectory:
    """Directory connector with fixed accounts and a call counter."""

    def __init__(self, accounts=None, unavailable=False):
        self.accounts = dict(accounts or {})
        self.unavailable = unavailable
        self.calls = 0

    def validate_credentials(self, user_id, password):
        from gatehouse.service.directory import DirectoryUnavailableError

        self.calls += 1
        if self.unavailable:
            raise DirectoryUnavailableError("directory offline")
        return bool(password) and self.accounts.get(user_id) == password
