"""
FileTrust Cryptographic Primitives
==================================

Thin wrappers over ``cryptography`` for password-based protection:
    1. PBKDF2-HMAC-SHA256 key derivation
    2. AES-256-CBC with PKCS7 padding, one-shot and streaming

WARNING: CBC provides confidentiality only. Tampering with a
         container is detected only as a decryption failure.
"""

from filetrust.core.crypto.aes_cbc import AesCbcCipher, CbcPaddingError, CbcStream
from filetrust.core.crypto.kdf import derive_key_pbkdf2, generate_salt

__all__ = [
    "AesCbcCipher",
    "CbcPaddingError",
    "CbcStream",
    "derive_key_pbkdf2",
    "generate_salt",
]
