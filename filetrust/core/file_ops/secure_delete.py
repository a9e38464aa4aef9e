"""
Secure Deletion Module
======================

Multi-pass overwrite of a file's existing bytes followed by unlink.

Security Properties:
- Overwrites exactly the existing length (never grows or truncates)
- Cycling zeros / ones / random pattern per pass
- Unconditional final zero pass
- fsync after every pass
- Optional verification that the path no longer resolves

Limitations:
    On SSDs (wear levelling), copy-on-write and journaling filesystems
    the old blocks may survive an in-place overwrite.
"""

from __future__ import annotations

import logging
import os
import platform
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, Final, Optional

from filetrust.core.errors import FileIOError, VerificationFailedError
from filetrust.security.constants import (
    BLOCK_SIZE_BYTES,
    DEFAULT_ERASE_PASSES,
    MAX_ERASE_PASSES,
)
from filetrust.utils.validators import require_file, validate_pass_count

if TYPE_CHECKING:
    from filetrust.security.audit import TamperAwareAuditLog


IS_WINDOWS: Final[bool] = platform.system() == "Windows"

_STANDARD_NAMES: Final[dict[int, str]] = {
    1: "Single Pass",
    3: "DoD 5220.22-M",
    7: "DoD 5220.22-M ECE",
    35: "Gutmann",
}


def standard_name(passes: int) -> str:
    """Name of the overwrite convention matching a pass count."""
    return _STANDARD_NAMES.get(passes, f"Custom ({passes} passes)")


class OverwritePattern(Enum):
    """
    Fill pattern for one overwrite pass.

    Pass n (1-based) uses ``n mod 3``: 1 -> ZEROS, 2 -> ONES, 0 -> RANDOM.
    """
    ZEROS = "zeros"
    ONES = "ones"
    RANDOM = "random"

    @classmethod
    def for_pass(cls, pass_number: int) -> "OverwritePattern":
        if pass_number < 1:
            raise ValueError("Pass numbers start at 1")
        return _CYCLE[pass_number % 3]

    def block(self, size: int) -> bytes:
        """
        Build one fill block.

        RANDOM draws a fresh block from the OS CSPRNG on every call;
        the eraser calls this once per pass.
        """
        if self is OverwritePattern.ZEROS:
            return b"\x00" * size
        if self is OverwritePattern.ONES:
            return b"\xff" * size
        return secrets.token_bytes(size)


_CYCLE: Final[dict[int, OverwritePattern]] = {
    1: OverwritePattern.ZEROS,
    2: OverwritePattern.ONES,
    0: OverwritePattern.RANDOM,
}


@dataclass(frozen=True, slots=True)
class DeletionCertificate:
    """
    Record of a completed secure erase.

    ``passes`` is the number of passes the caller requested. The
    unconditional final zero pass is reported separately through
    ``final_zero_pass`` and included in ``total_passes``.

    ``verified_deleted`` is None when verification was not requested,
    False when the path still resolved after unlink.
    """
    path: Path
    file_name: str
    original_size: int
    passes: int
    standard_name: str
    deletion_date: datetime
    verified_deleted: Optional[bool] = None
    final_zero_pass: bool = True

    @property
    def total_passes(self) -> int:
        return self.passes + (1 if self.final_zero_pass else 0)

    def raise_for_verification(self) -> None:
        """
        Escalate a failed post-deletion check.

        Raises:
            VerificationFailedError: If verification ran and failed
        """
        if self.verified_deleted is False:
            raise VerificationFailedError("File still exists after deletion", self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "fileName": self.file_name,
            "originalSize": self.original_size,
            "passes": self.passes,
            "finalZeroPass": self.final_zero_pass,
            "totalPasses": self.total_passes,
            "standardName": self.standard_name,
            "deletionDate": self.deletion_date.isoformat(),
            "verifiedDeleted": self.verified_deleted,
        }


class SecureEraser:
    """
    Overwrite-then-unlink eraser for single files.

    Directories are rejected; there is no recursive erase.

    Usage:
        eraser = SecureEraser()
        certificate = eraser.erase(Path("secrets.txt"), passes=7, verify=True)
        certificate.raise_for_verification()
    """

    def __init__(
        self,
        block_size: int = BLOCK_SIZE_BYTES,
        max_passes: int = MAX_ERASE_PASSES,
        audit_log: Optional["TamperAwareAuditLog"] = None,
    ) -> None:
        if block_size < 1:
            raise ValueError("block_size must be positive")
        self._block_size = block_size
        self._max_passes = min(max_passes, MAX_ERASE_PASSES)
        self._audit = audit_log
        self._log = logging.getLogger("filetrust.erase")

    def erase(
        self,
        path: Path | str,
        passes: int = DEFAULT_ERASE_PASSES,
        verify: bool = True,
    ) -> DeletionCertificate:
        """
        Securely erase a file.

        Args:
            path: File to erase
            passes: Requested overwrite passes, 1 to 35
            verify: Check that the path no longer resolves afterwards

        Returns:
            DeletionCertificate (only once unlink has completed)

        Raises:
            NotFoundError: If the path does not exist
            IsDirectoryError: If the path is a directory
            ValidationError: If passes is out of range
            FileIOError: If overwriting or unlinking fails
        """
        passes = validate_pass_count(passes, self._max_passes)
        # A symlink is followed; the link itself is left dangling
        path = require_file(path).resolve()

        try:
            original_size = path.stat().st_size
        except OSError as e:
            raise FileIOError(f"Cannot stat file: {e.strerror}", path) from e

        self._log.info("Erasing %s (%d bytes, %d passes + final zero pass)", path, original_size, passes)

        try:
            with open(path, "r+b") as handle:
                self._lock_exclusive(handle, path)
                for pass_number in range(1, passes + 1):
                    pattern = OverwritePattern.for_pass(pass_number)
                    self._overwrite(handle, original_size, pattern)
                    self._log.debug("Pass %d/%d (%s) complete for %s", pass_number, passes, pattern.value, path.name)
                self._overwrite(handle, original_size, OverwritePattern.ZEROS)
        except OSError as e:
            raise FileIOError(f"Overwrite failed: {e.strerror or e}", path) from e

        try:
            path.unlink()
        except OSError as e:
            raise FileIOError(f"Unlink failed after overwrite: {e.strerror or e}", path) from e

        verified: Optional[bool] = None
        if verify:
            verified = not os.path.lexists(path)
            if not verified:
                self._log.warning("Verification failed: %s still exists after unlink", path)

        certificate = DeletionCertificate(
            path=path,
            file_name=path.name,
            original_size=original_size,
            passes=passes,
            standard_name=standard_name(passes),
            deletion_date=datetime.now(timezone.utc),
            verified_deleted=verified,
        )

        self._log.info("Erased %s using %s", path, certificate.standard_name)
        if self._audit is not None:
            from filetrust.security.audit import AuditEventType, AuditSeverity

            self._audit.log(
                AuditEventType.FILE_ERASED,
                AuditSeverity.WARNING if verified is False else AuditSeverity.INFO,
                f"Securely erased {path.name}",
                details=certificate.to_dict(),
            )
        return certificate

    def _overwrite(self, handle: BinaryIO, size: int, pattern: OverwritePattern) -> None:
        """Write one full pass over ``size`` bytes, then flush to disk."""
        block = pattern.block(self._block_size)
        handle.seek(0)

        remaining = size
        while remaining > 0:
            chunk = min(self._block_size, remaining)
            handle.write(block[:chunk] if chunk < len(block) else block)
            remaining -= chunk

        handle.flush()
        os.fsync(handle.fileno())

    @staticmethod
    def _lock_exclusive(handle: BinaryIO, path: Path) -> None:
        """Take an advisory exclusive lock (POSIX only)."""
        if IS_WINDOWS:
            return
        import fcntl

        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise FileIOError("File is locked by another process", path) from e
