"""In-memory session cache of passwords and derived keys, keyed by file path.

What is kept depends on the active :class:`~locknote.config.SessionMode`:

``session-password``
    Password (and optional key) until the session timeout, or until shutdown
    when the timeout is 0. Every ``put`` restarts the timer for that path.
``timed-password``
    Password (and optional key) for a short window after entry.
``keys-only``
    Derived key only; the password is never stored. No expiry.
``no-storage``
    Nothing.

In the two password modes any unexpired password in the cache answers a lookup
for any path: one remembered password unlocks every file. Keys are never
shared across paths.

Entries expire both actively (a scheduled callback drops them) and passively
(lookups re-check the expiry timestamp, so a late timer never leaks a stale
password).
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from locknote.config import SessionMode, SessionSettings
from locknote.crypto.kdf import KeyHandle

logger = logging.getLogger(__name__)

__all__ = [
    "AsyncioScheduler",
    "Scheduler",
    "SessionCache",
    "SessionEntry",
    "SessionMode",
    "ThreadingScheduler",
    "TimerHandle",
]


@dataclass
class SessionEntry:
    password: str | None
    hint: str
    key: KeyHandle | None
    expiry: float | None  # absolute clock() timestamp, None = no expiry

    def expired(self, now: float) -> bool:
        return self.expiry is not None and now > self.expiry

    def wipe(self) -> None:
        self.password = None
        if self.key is not None:
            self.key.destroy()
            self.key = None


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs ``callback`` once after ``delay`` seconds unless cancelled."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Schedules callbacks on daemon ``threading.Timer`` threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class AsyncioScheduler:
    """Schedules callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class _ScheduledExpiry:
    """Identity token tying a timer to whichever path currently owns it."""

    __slots__ = ("handle",)

    def __init__(self) -> None:
        self.handle: TimerHandle | None = None


class SessionCache:
    """Process-lifetime cache of secrets with mode-dependent retention.

    Construct one explicitly and call :meth:`shutdown` (or use it as a context
    manager) to wipe everything when the host goes away.
    """

    def __init__(
        self,
        settings: SessionSettings | None = None,
        *,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = settings or SessionSettings()
        self._mode = settings.mode
        self._session_timeout = 0.0
        self._timed_window = 0.0
        self.set_session_timeout(settings.session_timeout_minutes)
        self.set_timed_window(settings.timed_password_window_seconds)
        self._scheduler: Scheduler = scheduler or ThreadingScheduler()
        self._clock = clock
        self._entries: dict[str, SessionEntry] = {}
        self._timers: dict[str, _ScheduledExpiry] = {}
        # Timer callbacks may arrive on another thread.
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle and configuration
    # ------------------------------------------------------------------

    def __enter__(self) -> SessionCache:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        """Wipe all entries and cancel all timers."""
        self.clear()

    @property
    def mode(self) -> SessionMode:
        return self._mode

    def set_mode(self, mode: SessionMode | str) -> None:
        """Switch retention mode. Always starts from an empty cache."""
        new_mode = SessionMode(mode)
        self.clear()
        self._mode = new_mode
        logger.debug("Session mode set to %s", new_mode.value)

    def set_session_timeout(self, minutes: float) -> None:
        """Timeout for ``session-password`` mode; 0 keeps passwords until shutdown."""
        if minutes < 0:
            raise ValueError("Session timeout cannot be negative")
        self._session_timeout = float(minutes) * 60.0

    def set_timed_window(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError("Timed password window must be positive")
        self._timed_window = float(seconds)

    def apply_settings(self, settings: SessionSettings) -> None:
        self.set_session_timeout(settings.session_timeout_minutes)
        self.set_timed_window(settings.timed_password_window_seconds)
        if settings.mode != self._mode:
            self.set_mode(settings.mode)

    # ------------------------------------------------------------------
    # Storing
    # ------------------------------------------------------------------

    def put(self, path: str, password: str, hint: str = "", key: KeyHandle | None = None) -> None:
        """Remember ``password`` (or only ``key``) for ``path`` per the active mode.

        In keys-only mode a call without ``key`` stores nothing and leaves any
        existing entry for ``path`` in place.
        """
        with self._lock:
            self._cancel_timer(path)

            if self._mode is SessionMode.NO_STORAGE:
                return

            if self._mode is SessionMode.KEYS_ONLY:
                if key is None:
                    logger.debug("No key for %s in keys-only mode; nothing cached", path)
                    return
                self._replace_entry(path, SessionEntry(password=None, hint=hint, key=key, expiry=None))
                logger.debug("Cached key for %s", path)
                return

            if self._mode is SessionMode.TIMED_PASSWORD:
                delay: float | None = self._timed_window
            else:
                delay = self._session_timeout or None

            expiry = self._clock() + delay if delay is not None else None
            self._replace_entry(path, SessionEntry(password=password, hint=hint, key=key, expiry=expiry))
            if delay is not None:
                self._schedule_expiry(path, delay)
            logger.debug("Cached password for %s (expires in %s s)", path, delay)

    def _replace_entry(self, path: str, entry: SessionEntry) -> None:
        previous = self._entries.get(path)
        if previous is not None and previous is not entry:
            if previous.key is not None and previous.key is not entry.key:
                previous.key.destroy()
            previous.password = None
        self._entries[path] = entry

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_password(self, path: str) -> str | None:
        """Return a usable password for ``path``.

        Exact match first; otherwise any other unexpired password in the cache.
        Always ``None`` in ``keys-only`` and ``no-storage`` modes.
        """
        if not self._mode.stores_passwords:
            return None
        with self._lock:
            now = self._clock()
            entry = self._entries.get(path)
            if entry is not None and entry.password is not None and not entry.expired(now):
                return entry.password
            for other in self._entries.values():
                if other.password is not None and not other.expired(now):
                    return other.password
        return None

    def get_key(self, path: str) -> KeyHandle | None:
        """Return the unexpired key cached for exactly ``path``."""
        with self._lock:
            entry = self._entries.get(path)
            if entry is None or entry.expired(self._clock()):
                return None
            return entry.key

    def get_hint(self, path: str) -> str:
        with self._lock:
            entry = self._entries.get(path)
            return entry.hint if entry is not None else ""

    def has_entries(self) -> bool:
        """True when at least one unexpired password or key is cached."""
        with self._lock:
            now = self._clock()
            return any(not entry.expired(now) for entry in self._entries.values())

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Removal and renames
    # ------------------------------------------------------------------

    def clear_file(self, path: str) -> None:
        """Forget ``path`` and cancel its expiry timer."""
        with self._lock:
            self._cancel_timer(path)
            entry = self._entries.pop(path, None)
            if entry is not None:
                entry.wipe()
                logger.debug("Cleared session entry for %s", path)

    def clear(self) -> None:
        """Forget every entry and cancel every timer."""
        with self._lock:
            for path in list(self._timers):
                self._cancel_timer(path)
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            entry.wipe()
        if entries:
            logger.debug("Cleared %d session entries", len(entries))

    def handle_rename(self, old_path: str, new_path: str) -> None:
        """Move the entry and its pending timer to ``new_path`` unchanged."""
        if old_path == new_path:
            return
        with self._lock:
            entry = self._entries.pop(old_path, None)
            if entry is None:
                return
            self.clear_file(new_path)
            self._entries[new_path] = entry
            token = self._timers.pop(old_path, None)
            if token is not None:
                self._timers[new_path] = token
            logger.debug("Moved session entry %s -> %s", old_path, new_path)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _schedule_expiry(self, path: str, delay: float) -> None:
        token = _ScheduledExpiry()
        self._timers[path] = token
        token.handle = self._scheduler.call_later(delay, lambda: self._on_expiry(token))

    def _on_expiry(self, token: _ScheduledExpiry) -> None:
        with self._lock:
            # The token may have moved with a rename; find its current owner.
            for path, owned in self._timers.items():
                if owned is token:
                    break
            else:
                return
            del self._timers[path]
            entry = self._entries.pop(path, None)
        if entry is not None:
            entry.wipe()
            logger.debug("Session entry for %s expired", path)

    def _cancel_timer(self, path: str) -> None:
        token = self._timers.pop(path, None)
        if token is not None and token.handle is not None:
            token.handle.cancel()
