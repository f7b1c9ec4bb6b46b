import pytest

from app.config import Settings
from app.core.copier_service import build_service
from app.storage.document_store import MemoryStore
from app.utils.time import DAY_MS

T0 = 1_760_000_000_000


class FakeClock:
    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def advance_days(self, days: int) -> None:
        self.now += days * DAY_MS


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def settings():
    return Settings(
        API_KEY="",
        ADMIN_KEY="admin-secret",
        MASTER_KEY="master-secret",
        STORE_BACKEND="FILE",
        EVENT_RETENTION=50000,
        _env_file=None,
    )


@pytest.fixture
def service(settings, store, clock):
    return build_service(settings, store=store, clock=clock)
