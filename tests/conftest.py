import os
import sys
from pathlib import Path

# Environment must be in place before gatehouse.app builds its settings
os.environ.setdefault("SECURITY_STORE", "memory")
os.environ.setdefault("ADMIN_PASSWORD", "Admin-Secret-For-Tests-1")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.pop("SHARED_FS_ROOT", None)
os.environ.pop("DIRECTORY_ENABLED", None)

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gatehouse.service.runtime import reset_runtime_for_tests  # noqa: E402



@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
