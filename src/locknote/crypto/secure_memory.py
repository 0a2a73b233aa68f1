"""Best-effort protection for key material held in memory.

Key handles keep their bytes in a :class:`SecureBuffer`: the buffer is locked
into RAM where ``mlock`` is available and overwritten with zeros when the
handle is destroyed. Python gives no hard guarantees here (the interpreter may
have copied the bytes elsewhere), so this only narrows the window in which a
dropped key is still readable.
"""
from __future__ import annotations

import ctypes
import ctypes.util
import logging
import platform

logger = logging.getLogger(__name__)

_libc: ctypes.CDLL | None = None

if platform.system() != "Windows":
    try:
        _libc_name = ctypes.util.find_library("c")
        if _libc_name:
            _libc = ctypes.CDLL(_libc_name, use_errno=True)
    except OSError:
        _libc = None


def mlock_available() -> bool:
    """Return True if mlock can be attempted on this platform."""
    return _libc is not None


class SecureBuffer:
    """Fixed-size bytearray that is mlocked when possible and zeroed on wipe."""

    __slots__ = ("_buffer", "_locked", "_wiped")

    def __init__(self, data: bytes | bytearray) -> None:
        self._buffer = bytearray(data)
        self._locked = self._lock()
        self._wiped = False

    def _lock(self) -> bool:
        if _libc is None or not self._buffer:
            return False
        try:
            addr = (ctypes.c_char * len(self._buffer)).from_buffer(self._buffer)
            if _libc.mlock(ctypes.addressof(addr), len(self._buffer)) == 0:
                return True
            logger.debug("mlock failed (errno=%d), key material not locked", ctypes.get_errno())
        except (AttributeError, OSError, TypeError, ValueError):
            logger.debug("mlock unavailable, key material not locked")
        return False

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def wiped(self) -> bool:
        return self._wiped

    def view(self) -> bytes:
        """Return a copy of the buffer contents."""
        return bytes(self._buffer)

    def wipe(self) -> None:
        """Zero the buffer and release the memory lock."""
        secure_zeroize(self._buffer)
        self._wiped = True
        if self._locked and _libc is not None:
            try:
                addr = (ctypes.c_char * len(self._buffer)).from_buffer(self._buffer)
                _libc.munlock(ctypes.addressof(addr), len(self._buffer))
            except (AttributeError, OSError, TypeError, ValueError):
                logger.debug("munlock failed")
            self._locked = False


def secure_zeroize(data: bytearray | None) -> None:
    """Overwrite a bytearray with zeros in place."""
    if data is None:
        return
    length = len(data)
    for i in range(length):
        data[i] = 0
    # Read back so the writes have an observable dependency.
    if length > 0:
        _ = data[0]
