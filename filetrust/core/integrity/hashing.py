"""
Content Digests
===============

Streaming file digests with a selectable algorithm.

MD5 and SHA1 are retained only to read and verify legacy baselines;
new baselines should use SHA256 or SHA512.
"""

from __future__ import annotations

import hashlib
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Final

from filetrust.core.errors import FileIOError, IsDirectoryError, NotFoundError
from filetrust.security.constants import BLOCK_SIZE_BYTES
from filetrust.utils.validators import ValidationError


class DigestAlgorithm(Enum):
    """Supported content digest algorithms."""
    MD5 = "MD5"
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def hashlib_name(self) -> str:
        return self.value.lower()

    @property
    def is_legacy(self) -> bool:
        """True for algorithms kept only for compatibility."""
        return self in _LEGACY_ALGORITHMS

    @property
    def hex_length(self) -> int:
        return hashlib.new(self.hashlib_name).digest_size * 2

    @classmethod
    def parse(cls, value: "DigestAlgorithm | str") -> "DigestAlgorithm":
        """
        Parse an algorithm name.

        Accepts enum members and case-insensitive names with or without
        a dash ("sha256", "SHA-256").

        Raises:
            ValidationError: If the name is not a supported algorithm
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValidationError(f"Unsupported digest algorithm: {value!r}")

        normalized = value.strip().upper().replace("-", "").replace("_", "")
        try:
            return cls(normalized)
        except ValueError:
            raise ValidationError(f"Unsupported digest algorithm: {value}") from None


_LEGACY_ALGORITHMS: Final[frozenset[DigestAlgorithm]] = frozenset({
    DigestAlgorithm.MD5,
    DigestAlgorithm.SHA1,
})


class HashEngine:
    """
    Stateless digest calculator.

    All methods are pure with respect to engine state and safe to call
    from several worker threads at once.

    Usage:
        engine = HashEngine()
        engine.digest(b"abc", DigestAlgorithm.SHA256)
        engine.digest_file(Path("report.pdf"), DigestAlgorithm.SHA512)
    """

    __slots__ = ("_chunk_size",)

    def __init__(self, chunk_size: int = BLOCK_SIZE_BYTES) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @staticmethod
    def _context(algorithm: DigestAlgorithm | str):
        algorithm = DigestAlgorithm.parse(algorithm)
        # MD5/SHA1 are used for integrity comparison, not security
        return hashlib.new(algorithm.hashlib_name, usedforsecurity=not algorithm.is_legacy)

    def digest(self, data: bytes | bytearray | memoryview, algorithm: DigestAlgorithm | str) -> str:
        """Return the lowercase hex digest of an in-memory byte sequence."""
        ctx = self._context(algorithm)
        ctx.update(data)
        return ctx.hexdigest()

    def digest_stream(self, stream: BinaryIO, algorithm: DigestAlgorithm | str) -> str:
        """Digest a binary stream by reading it in fixed-size chunks."""
        ctx = self._context(algorithm)
        while chunk := stream.read(self._chunk_size):
            ctx.update(chunk)
        return ctx.hexdigest()

    def digest_file(self, path: Path | str, algorithm: DigestAlgorithm | str) -> str:
        """
        Digest a file without loading it into memory.

        Raises:
            NotFoundError: If the file does not exist
            IsDirectoryError: If the path is a directory
            FileIOError: If the file cannot be read
        """
        path = Path(path)
        try:
            with open(path, "rb") as handle:
                return self.digest_stream(handle, algorithm)
        except FileNotFoundError as e:
            raise NotFoundError("File not found", path) from e
        except IsADirectoryError as e:
            raise IsDirectoryError("Cannot digest a directory", path) from e
        except OSError as e:
            if path.is_dir():
                raise IsDirectoryError("Cannot digest a directory", path) from e
            raise FileIOError(f"Cannot read file: {e.strerror or e}", path) from e
