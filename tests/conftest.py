import sys
from pathlib import Path
from typing import Callable, Iterator

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

from locknote.container.format import EncryptionParameters  # noqa: E402
from locknote.crypto.kdf import KeyDerivationParameters  # noqa: E402
from locknote.session import SessionCache  # noqa: E402

FAST_ITERATIONS = 1000


@pytest.fixture(autouse=True)
def _fast_default_iterations(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep default-parameter encodes cheap; tests of the real default clear it.
    monkeypatch.setenv("LOCKNOTE_PBKDF2_ITERATIONS", str(FAST_ITERATIONS))


@pytest.fixture
def fast_params() -> EncryptionParameters:
    return EncryptionParameters(
        key_derivation=KeyDerivationParameters(hash="SHA-256", iterations=FAST_ITERATIONS),
    )


class ManualClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualHandle:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Fires callbacks only when the test advances the clock."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.handles: list[ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.clock.now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[ManualHandle]:
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        self.clock.advance(seconds)
        for handle in list(self.handles):
            if not handle.cancelled and handle.due <= self.clock.now:
                self.handles.remove(handle)
                handle.callback()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scheduler(clock: ManualClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def cache(scheduler: ManualScheduler, clock: ManualClock) -> Iterator[SessionCache]:
    with SessionCache(scheduler=scheduler, clock=clock) as session_cache:
        yield session_cache
