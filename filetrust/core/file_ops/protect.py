"""
Password-Based File Protection
==============================

Encrypts and decrypts single files with a key derived from a password.

Container Format (no header, no trailer):
    [0..32)   salt        random, per file
    [32..48)  iv          random, per file
    [48..EOF) ciphertext  AES-256-CBC, PKCS7 padded

Key derivation: PBKDF2-HMAC-SHA256, >= 100,000 iterations, 32-byte key.

The ciphertext is exactly the file content; nothing is prepended. A
wrong password is detected only through invalid PKCS7 padding, which a
wrong key produces most of the time but not always (CBC is
unauthenticated). Any failure is reported as the same
DecryptionFailedError.

Security Properties:
- Password copied into a scoped buffer and zeroed on every exit path
- Derived key zeroed on every exit path
- Output written to a temporary sibling and renamed only on success
- Password never logged or persisted
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Callable, Final, Optional

from filetrust.core.crypto.aes_cbc import AesCbcCipher, CbcPaddingError
from filetrust.core.crypto.kdf import derive_key_pbkdf2, generate_salt
from filetrust.core.errors import (
    DecryptionFailedError,
    FileIOError,
    FileTooSmallError,
)
from filetrust.core.memory.zeroization import PasswordInput, ZeroizeContext, plaintext_password
from filetrust.security.constants import (
    BLOCK_SIZE_BYTES,
    CIPHER_BLOCK_BYTES,
    CONTAINER_HEADER_BYTES,
    IV_LENGTH_BYTES,
    MIN_KDF_ITERATIONS,
    SALT_LENGTH_BYTES,
)
from filetrust.utils.paths import atomic_write
from filetrust.utils.validators import ValidationError, require_file

if TYPE_CHECKING:
    from filetrust.security.audit import TamperAwareAuditLog


DEFAULT_SUFFIX: Final[str] = ".enc"
DECRYPTED_SUFFIX: Final[str] = ".dec"


@dataclass(frozen=True, slots=True)
class EncryptedContainer:
    """
    In-memory view of the ``salt || iv || ciphertext`` layout.

    Invariant: ciphertext length is a non-zero multiple of the block size.
    """
    salt: bytes
    iv: bytes
    ciphertext: bytes

    def __post_init__(self) -> None:
        if len(self.salt) != SALT_LENGTH_BYTES:
            raise ValueError(f"Salt must be {SALT_LENGTH_BYTES} bytes")
        if len(self.iv) != IV_LENGTH_BYTES:
            raise ValueError(f"IV must be {IV_LENGTH_BYTES} bytes")
        if not self.ciphertext or len(self.ciphertext) % CIPHER_BLOCK_BYTES:
            raise ValueError("Ciphertext must be a non-empty multiple of the block size")

    def to_bytes(self) -> bytes:
        return self.salt + self.iv + self.ciphertext

    @classmethod
    def read_header(cls, data: bytes, path: Optional[Path] = None) -> tuple[bytes, bytes]:
        """
        Split salt and IV off the front of a container.

        Raises:
            FileTooSmallError: If fewer than 48 bytes are available
        """
        if len(data) < CONTAINER_HEADER_BYTES:
            raise FileTooSmallError(
                f"Container must be at least {CONTAINER_HEADER_BYTES} bytes, got {len(data)}", path
            )
        return data[:SALT_LENGTH_BYTES], data[SALT_LENGTH_BYTES:CONTAINER_HEADER_BYTES]

    @classmethod
    def from_bytes(cls, data: bytes, path: Optional[Path] = None) -> "EncryptedContainer":
        """
        Parse a whole container.

        Raises:
            FileTooSmallError: If the data cannot hold salt and IV
            DecryptionFailedError: If the ciphertext length is invalid
        """
        salt, iv = cls.read_header(data, path)
        try:
            return cls(salt=salt, iv=iv, ciphertext=data[CONTAINER_HEADER_BYTES:])
        except ValueError as e:
            raise DecryptionFailedError("Decryption failed", path) from e

    def __repr__(self) -> str:
        return f"EncryptedContainer(ciphertext_len={len(self.ciphertext)})"


class CryptoBox:
    """
    Password-based encryption of single files.

    Usage:
        box = CryptoBox()
        with SecureString(getpass()) as password:
            encrypted = box.protect(Path("report.pdf"), password)
        # report.pdf.enc

        with SecureString(getpass()) as password:
            restored = box.unprotect(encrypted, password)

    Concurrent calls on the same path must be serialized by the caller.
    """

    def __init__(
        self,
        iterations: int = MIN_KDF_ITERATIONS,
        chunk_size: int = BLOCK_SIZE_BYTES,
        output_suffix: str = DEFAULT_SUFFIX,
        audit_log: Optional["TamperAwareAuditLog"] = None,
    ) -> None:
        if iterations < MIN_KDF_ITERATIONS:
            raise ValidationError(f"Key derivation iterations must be at least {MIN_KDF_ITERATIONS:,}")
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")

        self._iterations = iterations
        self._chunk_size = chunk_size
        self._suffix = output_suffix
        self._cipher = AesCbcCipher()
        self._audit = audit_log
        self._log = logging.getLogger("filetrust.cryptobox")

    @property
    def iterations(self) -> int:
        return self._iterations

    def protect(
        self,
        path: Path | str,
        password: PasswordInput,
        output_path: Optional[Path | str] = None,
    ) -> Path:
        """
        Encrypt a file into a container.

        Args:
            path: Plaintext file
            password: Non-empty password (SecureString preferred)
            output_path: Destination (default: ``<path>.enc``)

        Returns:
            Path of the written container

        Raises:
            NotFoundError, IsDirectoryError: If path is not a file
            ValidationError: If the password is empty
            FileIOError: If reading or writing fails
        """
        source = require_file(path)
        target = Path(output_path) if output_path is not None else source.with_name(source.name + self._suffix)

        salt = generate_salt(SALT_LENGTH_BYTES)
        iv = self._cipher.generate_iv()
        key = self._derive(password, salt)

        with ZeroizeContext(key):
            try:
                with open(source, "rb") as src, atomic_write(target) as dst:
                    dst.write(salt)
                    dst.write(iv)
                    stream = self._cipher.encryptor(key, iv)
                    self._pump(src, stream.update, dst.write)
                    dst.write(stream.finalize())
            except OSError as e:
                raise FileIOError(f"Encryption I/O failed: {e.strerror or e}", source) from e

        self._log.info("Protected %s -> %s", source, target)
        self._audit_event("FILE_PROTECTED", f"Encrypted {source.name}", source, target)
        return target

    def unprotect(
        self,
        path: Path | str,
        password: PasswordInput,
        output_path: Optional[Path | str] = None,
    ) -> Path:
        """
        Decrypt a container back to plaintext.

        Args:
            path: Container produced by protect()
            password: The password used to protect it
            output_path: Destination (default: strip ``.enc``, else append ``.dec``)

        Returns:
            Path of the written plaintext

        Raises:
            NotFoundError, IsDirectoryError: If path is not a file
            FileTooSmallError: If the container is under 48 bytes
            DecryptionFailedError: Wrong password or corrupted ciphertext
            FileIOError: If reading or writing fails
        """
        source = require_file(path)
        target = Path(output_path) if output_path is not None else self._default_plain_path(source)

        try:
            with open(source, "rb") as src:
                salt, iv = EncryptedContainer.read_header(src.read(CONTAINER_HEADER_BYTES), source)
                key = self._derive(password, salt)
                with ZeroizeContext(key), atomic_write(target) as dst:
                    self._decrypt_stream(src, dst, key, iv, source)
        except OSError as e:
            raise FileIOError(f"Decryption I/O failed: {e.strerror or e}", source) from e

        self._log.info("Unprotected %s -> %s", source, target)
        self._audit_event("FILE_UNPROTECTED", f"Decrypted {source.name}", source, target)
        return target

    def _decrypt_stream(self, src: BinaryIO, dst: BinaryIO, key: bytearray, iv: bytes, source: Path) -> None:
        stream = self._cipher.decryptor(key, iv)
        try:
            self._pump(src, stream.update, dst.write)
            dst.write(stream.finalize())
        except CbcPaddingError as e:
            raise DecryptionFailedError("Decryption failed", source) from e

    def _pump(self, src: BinaryIO, transform: Callable[[bytes], bytes], write: Callable[[bytes], object]) -> None:
        """Feed ``src`` through ``transform`` chunk by chunk into ``write``."""
        while chunk := src.read(self._chunk_size):
            out = transform(chunk)
            if out:
                write(out)

    def _derive(self, password: PasswordInput, salt: bytes) -> bytearray:
        with plaintext_password(password) as secret:
            return derive_key_pbkdf2(secret, salt, iterations=self._iterations)

    def _default_plain_path(self, source: Path) -> Path:
        if source.name.endswith(self._suffix) and len(source.name) > len(self._suffix):
            return source.with_name(source.name[: -len(self._suffix)])
        return source.with_name(source.name + DECRYPTED_SUFFIX)

    def _audit_event(self, event_name: str, description: str, source: Path, target: Path) -> None:
        if self._audit is None:
            return
        from filetrust.security.audit import AuditEventType, AuditSeverity

        self._audit.log(
            AuditEventType[event_name],
            AuditSeverity.INFO,
            description,
            details={"source": str(source), "output": str(target)},
        )
