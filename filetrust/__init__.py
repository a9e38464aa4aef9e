"""
FileTrust - File Integrity, Erasure, Protection and Signing
===========================================================

Four file-trust services over the local filesystem:
    - Integrity baselines and change detection
    - Multi-pass secure erasure
    - Password-based file protection (AES-256-CBC, PBKDF2-SHA256)
    - File authenticity signatures

Security Notice:
- No passwords, keys or salts are logged
- Fail-closed design pattern
- All paths are OS-aware
"""

from filetrust.core.config import FileTrustConfig
from filetrust.core.logging import get_secure_logger

__version__ = "0.1.0"

__all__ = ["FileTrustConfig", "get_secure_logger", "__version__"]
