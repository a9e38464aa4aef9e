"""
FileTrust Memory Security Module
================================

Scoped handling of passwords and derived keys.

WARNING:
- Python's memory model doesn't guarantee secure erasure
- These are best-effort mitigations
"""

from filetrust.core.memory.secure_memory import SecureBuffer, SecureString
from filetrust.core.memory.zeroization import ZeroizeContext, plaintext_password, secure_zero

__all__ = [
    "SecureBuffer",
    "SecureString",
    "ZeroizeContext",
    "plaintext_password",
    "secure_zero",
]
