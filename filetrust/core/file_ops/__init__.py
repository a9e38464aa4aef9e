"""
FileTrust File Operations Module
================================

Security Features:
- Password-based encryption with per-file salt and IV
- Atomic output (temporary sibling, renamed on success)
- Multi-pass overwrite before unlink
- Deletion certificates

Components:
- protect.py: CryptoBox encrypt / decrypt
- secure_delete.py: SecureEraser
"""

from filetrust.core.file_ops.protect import CryptoBox, EncryptedContainer
from filetrust.core.file_ops.secure_delete import (
    DeletionCertificate,
    OverwritePattern,
    SecureEraser,
    standard_name,
)

__all__ = [
    "CryptoBox",
    "EncryptedContainer",
    "DeletionCertificate",
    "OverwritePattern",
    "SecureEraser",
    "standard_name",
]
