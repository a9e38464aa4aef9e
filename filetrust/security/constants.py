"""
Security Constants
==================

Defines security-related constants used throughout the application.
These values are part of persisted formats and should not be modified
without careful security review.
"""

from typing import Final

# Encrypted container layout: salt || iv || ciphertext
ENCRYPTION_ALGORITHM: Final[str] = "AES-256-CBC"
KEY_LENGTH_BYTES: Final[int] = 32  # 256 bits
SALT_LENGTH_BYTES: Final[int] = 32
IV_LENGTH_BYTES: Final[int] = 16  # one AES block
CIPHER_BLOCK_BYTES: Final[int] = 16
CONTAINER_HEADER_BYTES: Final[int] = SALT_LENGTH_BYTES + IV_LENGTH_BYTES

# Key Derivation
KEY_DERIVATION_FUNCTION: Final[str] = "PBKDF2-HMAC-SHA256"
MIN_KDF_ITERATIONS: Final[int] = 100_000

# Secure erase
DEFAULT_ERASE_PASSES: Final[int] = 3
MAX_ERASE_PASSES: Final[int] = 35

# I/O
BLOCK_SIZE_BYTES: Final[int] = 64 * 1024

# Signatures
SIGNATURE_FORMAT: Final[str] = "filetrust-signature/1"
