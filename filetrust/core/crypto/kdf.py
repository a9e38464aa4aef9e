"""
Key Derivation Functions
========================

Password-based key derivation for file encryption.

Implements:
    - PBKDF2-HMAC-SHA256 with a configurable iteration floor
    - Salt generation from the OS CSPRNG
"""

from __future__ import annotations

import secrets
from typing import Final

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from filetrust.security.constants import (
    KEY_LENGTH_BYTES,
    MIN_KDF_ITERATIONS,
    SALT_LENGTH_BYTES,
)
from filetrust.utils.validators import ValidationError

PBKDF2_ITERATIONS: Final[int] = MIN_KDF_ITERATIONS


def generate_salt(length: int = SALT_LENGTH_BYTES) -> bytes:
    """Generate a random salt from the OS CSPRNG."""
    return secrets.token_bytes(length)


def derive_key_pbkdf2(
    password: bytes | bytearray | memoryview,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
    length: int = KEY_LENGTH_BYTES,
) -> bytearray:
    """
    Derive a key from password bytes using PBKDF2-HMAC-SHA256.

    Args:
        password: UTF-8 password bytes (a mutable buffer is preferred)
        salt: Random salt stored alongside the ciphertext
        iterations: PBKDF2 iteration count (>= 100,000)
        length: Output key length

    Returns:
        Derived key as a mutable bytearray so the caller can zero it

    Raises:
        ValidationError: If iterations or salt are below the minimum
    """
    if iterations < MIN_KDF_ITERATIONS:
        raise ValidationError(f"Key derivation iterations must be at least {MIN_KDF_ITERATIONS:,}")
    if len(salt) < 16:
        raise ValidationError("Salt must be at least 16 bytes")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return bytearray(kdf.derive(password))
