"""
Error Taxonomy
==============

Typed errors raised by the trust-and-integrity operations.

Every error carries the offending path (when one applies) and an
``ErrorKind`` so that hosts can map failures to user-visible messages
without parsing exception text.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional


class ErrorKind(Enum):
    """Failure categories shared by all components."""
    NOT_FOUND = "NotFound"
    IS_DIRECTORY = "IsDirectory"
    IO_ERROR = "IOError"
    CORRUPT_RECORD = "CorruptRecord"
    NO_BASELINE = "NoBaseline"
    DECRYPTION_FAILED = "DecryptionFailed"
    FILE_TOO_SMALL = "FileTooSmall"
    NO_SIGNATURE = "NoSignature"
    SIGNATURE_INVALID = "SignatureInvalid"
    VERIFICATION_FAILED = "VerificationFailed"


class FileTrustError(Exception):
    """
    Base class for all filetrust errors.

    Attributes:
        kind: Taxonomy category of the failure
        path: Path the failing operation was working on (may be None)
    """

    kind: ErrorKind = ErrorKind.IO_ERROR

    def __init__(self, message: str, path: Optional[Path | str] = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        message = super().__str__()
        if self.path is not None:
            return f"{message} [{self.kind.value}: {self.path}]"
        return f"{message} [{self.kind.value}]"

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "error": self.kind.value,
            "message": self.args[0] if self.args else "",
            "path": str(self.path) if self.path is not None else None,
        }


class NotFoundError(FileTrustError):
    """Raised when the target path does not exist."""
    kind = ErrorKind.NOT_FOUND


class IsDirectoryError(FileTrustError):
    """Raised when an operation that requires a single file gets a directory."""
    kind = ErrorKind.IS_DIRECTORY


class FileIOError(FileTrustError):
    """Raised when reading or writing a file fails."""
    kind = ErrorKind.IO_ERROR


class CorruptRecordError(FileTrustError):
    """Raised when a persisted baseline record cannot be deserialized."""
    kind = ErrorKind.CORRUPT_RECORD


class NoBaselineError(FileTrustError):
    """Raised when verification is requested for a root without a baseline."""
    kind = ErrorKind.NO_BASELINE


class DecryptionFailedError(FileTrustError):
    """
    Raised when decryption fails.

    Deliberately generic: a wrong password and a corrupted ciphertext
    produce the same error.
    """
    kind = ErrorKind.DECRYPTION_FAILED


class FileTooSmallError(FileTrustError):
    """Raised when an encrypted container is too short to hold salt and IV."""
    kind = ErrorKind.FILE_TOO_SMALL


class NoSignatureError(FileTrustError):
    """Raised when a file carries neither an embedded nor a detached signature."""
    kind = ErrorKind.NO_SIGNATURE


class SignatureInvalidError(FileTrustError):
    """Raised on request when a signature does not verify."""
    kind = ErrorKind.SIGNATURE_INVALID


class VerificationFailedError(FileTrustError):
    """Raised on request when an erased file still resolves."""
    kind = ErrorKind.VERIFICATION_FAILED
