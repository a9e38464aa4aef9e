"""
Validation Utilities
====================

Input validation functions with security focus.
"""

from __future__ import annotations

from pathlib import Path

from filetrust.core.errors import IsDirectoryError, NotFoundError


class ValidationError(ValueError):
    """Raised when validation fails."""
    pass


def require_file(path: str | Path) -> Path:
    """
    Resolve a path that must name an existing regular file.

    Args:
        path: The path to validate

    Returns:
        Absolute, normalized Path

    Raises:
        NotFoundError: If nothing exists at the path
        IsDirectoryError: If the path is a directory
        ValidationError: If the path is neither a file nor a directory
    """
    resolved = Path(path).expanduser().absolute()

    if not resolved.exists():
        raise NotFoundError("Path does not exist", resolved)

    if resolved.is_dir():
        raise IsDirectoryError("Operation requires a single file", resolved)

    if not resolved.is_file():
        raise ValidationError(f"Not a regular file: {resolved}")

    return resolved


def validate_pass_count(passes: int, maximum: int = 35) -> int:
    """
    Validate an overwrite pass count.

    Raises:
        ValidationError: If passes is not an integer in [1, maximum]
    """
    if isinstance(passes, bool) or not isinstance(passes, int):
        raise ValidationError("passes must be an integer")

    if passes < 1 or passes > maximum:
        raise ValidationError(f"passes must be between 1 and {maximum}")

    return passes


def validate_string_safe(
    value: str,
    min_length: int = 0,
    max_length: int = 1000,
    allow_empty: bool = False,
    field_name: str = "value",
) -> str:
    """
    Validate a string value for safety.

    Args:
        value: The string to validate
        min_length: Minimum allowed length
        max_length: Maximum allowed length
        allow_empty: If False, empty strings are rejected
        field_name: Name of the field for error messages

    Returns:
        Validated string

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")

    if not allow_empty and not value:
        raise ValidationError(f"{field_name} cannot be empty")

    if len(value) < min_length:
        raise ValidationError(
            f"{field_name} must be at least {min_length} characters"
        )

    if len(value) > max_length:
        raise ValidationError(
            f"{field_name} must be at most {max_length} characters"
        )

    # Null bytes break path handling and log output
    if "\x00" in value:
        raise ValidationError(f"{field_name} contains invalid characters")

    return value
