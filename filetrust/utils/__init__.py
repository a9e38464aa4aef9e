"""
Utils module - Path and validation helpers used throughout FileTrust.
"""

from filetrust.utils.paths import atomic_write, normalize_path, root_token, sanitize_filename
from filetrust.utils.validators import ValidationError, require_file

__all__ = [
    "atomic_write",
    "normalize_path",
    "root_token",
    "sanitize_filename",
    "ValidationError",
    "require_file",
]
