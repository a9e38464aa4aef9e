"""
AES-256-CBC Encryption
======================

AES-256 in CBC mode with PKCS7 padding, usable one-shot or as a stream.

Security Properties:
    - 256-bit key
    - 128-bit random IV per encryption
    - PKCS7 padding to the 128-bit block size

WARNING:
    - CBC is not authenticated; callers must detect a wrong key or
      corrupted ciphertext themselves (padding alone is a weak check)
    - Never reuse an IV under the same key
"""

from __future__ import annotations

import secrets
from typing import Final

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from filetrust.security.constants import CIPHER_BLOCK_BYTES, IV_LENGTH_BYTES, KEY_LENGTH_BYTES

AES_KEY_SIZE: Final[int] = KEY_LENGTH_BYTES
AES_IV_SIZE: Final[int] = IV_LENGTH_BYTES
AES_BLOCK_BITS: Final[int] = CIPHER_BLOCK_BYTES * 8


class CbcPaddingError(Exception):
    """Raised when ciphertext length or padding is invalid after decryption."""
    pass


class CbcStream:
    """
    Incremental CBC transform.

    ``update`` may return fewer bytes than it was fed (padding holds
    back the final block); ``finalize`` returns the remainder.
    """

    __slots__ = ("_cipher_ctx", "_pad_ctx", "_decrypting", "_finalized")

    def __init__(self, key: bytes | bytearray, iv: bytes, decrypting: bool) -> None:
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")
        if len(iv) != AES_IV_SIZE:
            raise ValueError(f"IV must be exactly {AES_IV_SIZE} bytes")

        cipher = Cipher(algorithms.AES(key), modes.CBC(iv))
        if decrypting:
            self._cipher_ctx = cipher.decryptor()
            self._pad_ctx = padding.PKCS7(AES_BLOCK_BITS).unpadder()
        else:
            self._cipher_ctx = cipher.encryptor()
            self._pad_ctx = padding.PKCS7(AES_BLOCK_BITS).padder()
        self._decrypting = decrypting
        self._finalized = False

    def update(self, data: bytes) -> bytes:
        if self._finalized:
            raise ValueError("Stream already finalized")
        if self._decrypting:
            return self._pad_ctx.update(self._cipher_ctx.update(data))
        return self._cipher_ctx.update(self._pad_ctx.update(data))

    def finalize(self) -> bytes:
        """
        Flush the stream.

        Raises:
            CbcPaddingError: When decrypting data that is not a whole
                number of blocks or whose padding is invalid
        """
        if self._finalized:
            raise ValueError("Stream already finalized")
        self._finalized = True

        if not self._decrypting:
            tail = self._cipher_ctx.update(self._pad_ctx.finalize())
            return tail + self._cipher_ctx.finalize()

        try:
            tail = self._pad_ctx.update(self._cipher_ctx.finalize())
            return tail + self._pad_ctx.finalize()
        except ValueError as e:
            raise CbcPaddingError("Invalid ciphertext length or padding") from e


class AesCbcCipher:
    """
    AES-256-CBC with PKCS7 padding.

    Usage:
        cipher = AesCbcCipher()
        iv = cipher.generate_iv()
        ciphertext = cipher.encrypt(plaintext, key, iv)
        plaintext = cipher.decrypt(ciphertext, key, iv)

        # Streaming
        stream = cipher.encryptor(key, iv)
        for chunk in chunks:
            out.write(stream.update(chunk))
        out.write(stream.finalize())
    """

    __slots__ = ()

    @staticmethod
    def generate_iv() -> bytes:
        """Generate a random 16-byte IV from the OS CSPRNG."""
        return secrets.token_bytes(AES_IV_SIZE)

    @staticmethod
    def encryptor(key: bytes | bytearray, iv: bytes) -> CbcStream:
        return CbcStream(key, iv, decrypting=False)

    @staticmethod
    def decryptor(key: bytes | bytearray, iv: bytes) -> CbcStream:
        return CbcStream(key, iv, decrypting=True)

    def encrypt(self, plaintext: bytes, key: bytes | bytearray, iv: bytes) -> bytes:
        stream = self.encryptor(key, iv)
        return stream.update(plaintext) + stream.finalize()

    def decrypt(self, ciphertext: bytes, key: bytes | bytearray, iv: bytes) -> bytes:
        """
        Decrypt and unpad.

        Raises:
            CbcPaddingError: If the ciphertext is malformed or the key is wrong
                (detected only when the padding happens to be invalid)
        """
        stream = self.decryptor(key, iv)
        return stream.update(ciphertext) + stream.finalize()
