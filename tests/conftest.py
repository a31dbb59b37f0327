import pytest

from turnstile.core.backends.memory import InMemoryCounterStore


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    # Aligned to a 60s boundary so window arithmetic in tests stays readable.
    return FakeClock(start=1_700_000_040_000)


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)
