"""
Core module - Contains configuration, logging, errors and the file-trust services.
"""

from filetrust.core.config import FileTrustConfig
from filetrust.core.errors import ErrorKind, FileTrustError
from filetrust.core.logging import get_secure_logger, SecureLogFilter

__all__ = ["FileTrustConfig", "ErrorKind", "FileTrustError", "get_secure_logger", "SecureLogFilter"]
