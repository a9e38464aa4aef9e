"""
Secure Memory Buffers
=====================

Mutable buffers for secrets (passwords, derived keys) that are
explicitly zeroed instead of being left to the garbage collector.

Limitations:
- Python's memory model copies data internally
- Immutable ``str``/``bytes`` inputs cannot be wiped
- Best-effort security, not guaranteed
"""

from __future__ import annotations

import ctypes
import platform
from typing import Final

from filetrust.core.memory.zeroization import secure_zero


IS_WINDOWS: Final[bool] = platform.system() == "Windows"
IS_LINUX: Final[bool] = platform.system() == "Linux"
IS_MACOS: Final[bool] = platform.system() == "Darwin"

MAX_BUFFER_SIZE: Final[int] = 1024 * 1024  # 1 MB


def _libc_call(name: str, address: int, size: int) -> bool:
    libc = ctypes.CDLL("libc.so.6" if IS_LINUX else "libc.dylib", use_errno=True)
    return getattr(libc, name)(ctypes.c_void_p(address), ctypes.c_size_t(size)) == 0


def _mlock(address: int, size: int) -> bool:
    """Lock memory pages to prevent swapping. Returns True on success."""
    try:
        if IS_WINDOWS:
            kernel32 = ctypes.windll.kernel32
            return bool(kernel32.VirtualLock(ctypes.c_void_p(address), ctypes.c_size_t(size)))
        if IS_LINUX or IS_MACOS:
            return _libc_call("mlock", address, size)
    except (OSError, AttributeError):
        pass
    return False


def _munlock(address: int, size: int) -> bool:
    """Unlock memory pages."""
    try:
        if IS_WINDOWS:
            kernel32 = ctypes.windll.kernel32
            return bool(kernel32.VirtualUnlock(ctypes.c_void_p(address), ctypes.c_size_t(size)))
        if IS_LINUX or IS_MACOS:
            return _libc_call("munlock", address, size)
    except (OSError, AttributeError):
        pass
    return False


def _address_of(buffer: bytearray) -> int:
    return ctypes.addressof((ctypes.c_char * len(buffer)).from_buffer(buffer))


class SecureBuffer:
    """
    Fixed-content byte buffer with explicit zeroization.

    Usage:
        with SecureBuffer(key_bytes) as buf:
            use_key(buf.view())
        # buffer is now zeroed

    Security Notes:
        - Always use the context manager or call wipe() explicitly
        - view() exposes the live buffer without copying
        - The caller still owns (and should wipe) the source object
    """

    __slots__ = ("_buffer", "_wiped", "_locked", "__weakref__")

    def __init__(self, data: bytes | bytearray | memoryview = b"", lock_memory: bool = True) -> None:
        if len(data) > MAX_BUFFER_SIZE:
            raise ValueError(f"Buffer too large (max {MAX_BUFFER_SIZE})")

        self._buffer = bytearray(data)
        self._wiped = False
        self._locked = False

        if lock_memory and self._buffer:
            self._locked = _mlock(_address_of(self._buffer), len(self._buffer))

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    @property
    def is_locked(self) -> bool:
        return self._locked

    def view(self) -> bytearray:
        """Return the live buffer. Do not keep references past wipe()."""
        if self._wiped:
            raise ValueError("Buffer has been wiped")
        return self._buffer

    def copy(self) -> bytearray:
        """Return a new mutable copy; the caller must wipe it."""
        return bytearray(self.view())

    def wipe(self) -> None:
        """Zero the buffer and release any memory lock."""
        if self._wiped:
            return

        secure_zero(self._buffer)

        if self._locked:
            _munlock(_address_of(self._buffer), len(self._buffer))
            self._locked = False

        self._wiped = True

    def __enter__(self) -> "SecureBuffer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.wipe()

    def __del__(self) -> None:
        try:
            self.wipe()
        except Exception:
            pass  # interpreter shutdown

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        if self._wiped:
            return "SecureBuffer(WIPED)"
        return f"SecureBuffer(size={len(self._buffer)}, locked={self._locked})"


class SecureString:
    """
    Secure string container with explicit zeroization.

    Stores text as UTF-8 in a SecureBuffer. This is the preferred way
    for a host to hand a password to CryptoBox.

    Usage:
        with SecureString(getpass()) as pwd:
            box.protect(path, pwd)
        # password bytes are now wiped
    """

    __slots__ = ("_buffer",)

    def __init__(self, value: str | bytes | bytearray = "", lock_memory: bool = True) -> None:
        if isinstance(value, str):
            data = bytearray(value.encode("utf-8"))
        else:
            data = bytearray(value)

        try:
            self._buffer = SecureBuffer(data, lock_memory=lock_memory)
        finally:
            secure_zero(data)

    def get_bytes(self) -> bytearray:
        """Return a mutable UTF-8 copy; the caller must wipe it."""
        return self._buffer.copy()

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def is_wiped(self) -> bool:
        return self._buffer.is_wiped

    def wipe(self) -> None:
        self._buffer.wipe()

    def __enter__(self) -> "SecureString":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.wipe()

    def __repr__(self) -> str:
        """Safe representation - never show value."""
        if self._buffer.is_wiped:
            return "SecureString(WIPED)"
        return f"SecureString(len={len(self._buffer)})"

    def __str__(self) -> str:
        return "********"
