"""
Memory Zeroization Utilities
============================

Explicit zeroization of sensitive buffers and scoped acquisition of
plaintext passwords.

Key Concepts:
- Zeroization: Overwriting memory with zeros
- Scope guard: Guaranteed cleanup on every exit path
"""

from __future__ import annotations

import ctypes
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, Union

from filetrust.utils.validators import ValidationError

if TYPE_CHECKING:
    from filetrust.core.memory.secure_memory import SecureString

PasswordInput = Union[str, bytes, bytearray, "SecureString"]


def secure_zero(data: bytearray | memoryview) -> None:
    """
    Securely zero a mutable byte buffer.

    Uses ctypes.memset on the underlying storage where possible,
    with fallback to Python-level zeroing.

    Security Notes:
        - This is best-effort; Python may have copies
        - Buffer must be mutable (bytearray, not bytes)
    """
    if len(data) == 0:
        return

    if isinstance(data, bytearray):
        try:
            addr = ctypes.addressof((ctypes.c_char * len(data)).from_buffer(data))
            ctypes.memset(addr, 0, len(data))
            return
        except (TypeError, ValueError, BufferError):
            pass

    for i in range(len(data)):
        data[i] = 0


@contextmanager
def ZeroizeContext(*buffers: bytearray) -> Iterator[None]:
    """
    Context manager that zeroizes buffers on exit.

    Always zeroizes, whether exit is normal or exceptional.

    Usage:
        key = bytearray(32)
        with ZeroizeContext(key):
            fill_key(key)
            encrypt(data, key)
        # key is now zeroed
    """
    try:
        yield
    finally:
        for buf in buffers:
            secure_zero(buf)


@contextmanager
def plaintext_password(password: PasswordInput) -> Iterator[bytearray]:
    """
    Scoped acquisition of a password as mutable UTF-8 bytes.

    The yielded bytearray is a private copy that is zeroed on every
    exit path. Immutable ``str``/``bytes`` inputs cannot be wiped by
    this function; hosts that care should pass a SecureString.

    Raises:
        ValidationError: If the password is empty
        TypeError: If the password type is not supported
    """
    from filetrust.core.memory.secure_memory import SecureString

    if isinstance(password, SecureString):
        buffer = password.get_bytes()
    elif isinstance(password, str):
        buffer = bytearray(password.encode("utf-8"))
    elif isinstance(password, (bytes, bytearray)):
        buffer = bytearray(password)
    else:
        raise TypeError(f"Unsupported password type: {type(password).__name__}")

    try:
        if not buffer:
            raise ValidationError("Password cannot be empty")
        yield buffer
    finally:
        secure_zero(buffer)
