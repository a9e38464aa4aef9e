"""
Configuration Module
====================

Provides immutable, environment-aware configuration with security-first defaults.

Features:
- Immutable configuration after initialization
- Environment variable override support
- No secrets in default values
- Type-safe configuration access
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional

from filetrust.security.constants import (
    BLOCK_SIZE_BYTES,
    DEFAULT_ERASE_PASSES,
    IV_LENGTH_BYTES,
    KEY_LENGTH_BYTES,
    MAX_ERASE_PASSES,
    MIN_KDF_ITERATIONS,
    SALT_LENGTH_BYTES,
)


_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "token", "api_key",
    "private", "credential", "passphrase",
})

_VALID_ALGORITHMS: Final[frozenset[str]] = frozenset({"MD5", "SHA1", "SHA256", "SHA512"})
_FINGERPRINT_RE: Final[re.Pattern[str]] = re.compile(r"[0-9a-f]{64}")


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _get_default_data_dir() -> Path:
    """Get OS-appropriate default data directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "FileTrust"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "FileTrust" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "FileTrust"
    else:
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "FileTrust" / "logs"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Immutable path configuration with OS-aware defaults."""

    data_dir: Path = field(default_factory=_get_default_data_dir)
    log_dir: Path = field(default_factory=_get_default_log_dir)
    baseline_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.baseline_dir is None:
            object.__setattr__(self, "baseline_dir", self.data_dir / "baselines")

        for field_name in ("data_dir", "log_dir", "baseline_dir"):
            path = getattr(self, field_name)
            if not Path(path).is_absolute():
                raise ValueError(f"{field_name} must be an absolute path: {path}")


@dataclass(frozen=True, slots=True)
class IntegrityConfig:
    """Baseline creation and verification settings."""

    default_algorithm: str = "SHA256"
    max_workers: Optional[int] = None  # None -> os.cpu_count()
    chunk_size: int = BLOCK_SIZE_BYTES

    def __post_init__(self) -> None:
        normalized = self.default_algorithm.upper().replace("-", "")
        if normalized not in _VALID_ALGORITHMS:
            raise ValueError(f"Unsupported digest algorithm: {self.default_algorithm}")
        object.__setattr__(self, "default_algorithm", normalized)
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be positive")


@dataclass(frozen=True, slots=True)
class EraseConfig:
    """Secure erase settings."""

    default_passes: int = DEFAULT_ERASE_PASSES
    max_passes: int = MAX_ERASE_PASSES
    block_size: int = BLOCK_SIZE_BYTES
    verify: bool = True

    def __post_init__(self) -> None:
        if self.max_passes < 1 or self.max_passes > MAX_ERASE_PASSES:
            raise ValueError(f"max_passes must be between 1 and {MAX_ERASE_PASSES}")
        if self.default_passes < 1 or self.default_passes > self.max_passes:
            raise ValueError(f"default_passes must be between 1 and {self.max_passes}")
        if self.block_size < 1:
            raise ValueError("block_size must be positive")


@dataclass(frozen=True, slots=True)
class CryptoConfig:
    """Password-based file encryption settings."""

    kdf_iterations: int = MIN_KDF_ITERATIONS
    salt_length: int = SALT_LENGTH_BYTES
    iv_length: int = IV_LENGTH_BYTES
    key_length: int = KEY_LENGTH_BYTES
    output_suffix: str = ".enc"

    def __post_init__(self) -> None:
        if self.kdf_iterations < MIN_KDF_ITERATIONS:
            raise ValueError(f"Key derivation iterations must be at least {MIN_KDF_ITERATIONS:,}")
        # Fixed by the container layout
        if self.salt_length != SALT_LENGTH_BYTES:
            raise ValueError(f"Salt length must be {SALT_LENGTH_BYTES} bytes")
        if self.iv_length != IV_LENGTH_BYTES:
            raise ValueError(f"IV length must be {IV_LENGTH_BYTES} bytes")
        if self.key_length != KEY_LENGTH_BYTES:
            raise ValueError(f"Key length must be {KEY_LENGTH_BYTES} bytes")
        if not self.output_suffix.startswith("."):
            raise ValueError("output_suffix must start with '.'")


@dataclass(frozen=True, slots=True)
class SigningConfig:
    """Signature artifact settings."""

    signature_suffix: str = ".sig"
    embedded_suffixes: tuple[str, ...] = (".ps1", ".psm1", ".psd1", ".py", ".sh")
    # SHA-256 fingerprints; empty means signer keys are not pinned
    trusted_keys: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.signature_suffix.startswith("."):
            raise ValueError("signature_suffix must start with '.'")
        object.__setattr__(
            self,
            "embedded_suffixes",
            tuple(suffix.lower() for suffix in self.embedded_suffixes),
        )
        fingerprints = tuple(key.strip().replace(":", "").lower() for key in self.trusted_keys)
        for fingerprint in fingerprints:
            if not _FINGERPRINT_RE.fullmatch(fingerprint):
                raise ValueError(f"Not a SHA-256 key fingerprint: {fingerprint!r}")
        object.__setattr__(self, "trusted_keys", fingerprints)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


class FileTrustConfig:
    """
    Centralized, immutable configuration loader with environment override support.

    Usage:
        config = FileTrustConfig.load()
        store_dir = config.paths.baseline_dir
        iterations = config.crypto.kdf_iterations
    """

    __slots__ = (
        "_paths", "_integrity", "_erase", "_crypto", "_signing",
        "_logging", "_frozen", "_config_hash",
    )

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        integrity: Optional[IntegrityConfig] = None,
        erase: Optional[EraseConfig] = None,
        crypto: Optional[CryptoConfig] = None,
        signing: Optional[SigningConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Initialize configuration. Use FileTrustConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_integrity", integrity or IntegrityConfig())
        object.__setattr__(self, "_erase", erase or EraseConfig())
        object.__setattr__(self, "_crypto", crypto or CryptoConfig())
        object.__setattr__(self, "_signing", signing or SigningConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = "|".join(
            repr(section) for section in (
                self._paths, self._integrity, self._erase,
                self._crypto, self._signing, self._logging,
            )
        )
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def integrity(self) -> IntegrityConfig:
        return self._integrity

    @property
    def erase(self) -> EraseConfig:
        return self._erase

    @property
    def crypto(self) -> CryptoConfig:
        return self._crypto

    @property
    def signing(self) -> SigningConfig:
        return self._signing

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def config_hash(self) -> str:
        """Get configuration integrity hash."""
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "FILETRUST") -> FileTrustConfig:
        """
        Load configuration with environment variable overrides.

        Environment variables use the prefix followed by the section and
        key separated by a double underscore.

        Examples:
            FILETRUST_LOGGING__LEVEL=DEBUG
            FILETRUST_PATHS__BASELINE_DIR=/var/lib/filetrust/baselines
            FILETRUST_CRYPTO__KDF_ITERATIONS=200000
            FILETRUST_ERASE__DEFAULT_PASSES=7

        Args:
            env_prefix: Prefix for environment variables

        Returns:
            Configured FileTrustConfig instance
        """
        env = cls._parse_env_overrides(env_prefix)

        paths_kwargs: dict[str, Any] = {}
        for key in ("data_dir", "log_dir", "baseline_dir"):
            if f"paths.{key}" in env:
                paths_kwargs[key] = Path(env[f"paths.{key}"])

        integrity_kwargs: dict[str, Any] = {}
        if "integrity.default_algorithm" in env:
            integrity_kwargs["default_algorithm"] = env["integrity.default_algorithm"]
        if "integrity.max_workers" in env:
            integrity_kwargs["max_workers"] = int(env["integrity.max_workers"])
        if "integrity.chunk_size" in env:
            integrity_kwargs["chunk_size"] = int(env["integrity.chunk_size"])

        erase_kwargs: dict[str, Any] = {}
        if "erase.default_passes" in env:
            erase_kwargs["default_passes"] = int(env["erase.default_passes"])
        if "erase.block_size" in env:
            erase_kwargs["block_size"] = int(env["erase.block_size"])
        if "erase.verify" in env:
            erase_kwargs["verify"] = _parse_bool(env["erase.verify"])

        crypto_kwargs: dict[str, Any] = {}
        if "crypto.kdf_iterations" in env:
            crypto_kwargs["kdf_iterations"] = int(env["crypto.kdf_iterations"])
        if "crypto.output_suffix" in env:
            crypto_kwargs["output_suffix"] = env["crypto.output_suffix"]

        signing_kwargs: dict[str, Any] = {}
        if "signing.signature_suffix" in env:
            signing_kwargs["signature_suffix"] = env["signing.signature_suffix"]
        if "signing.embedded_suffixes" in env:
            signing_kwargs["embedded_suffixes"] = tuple(
                part.strip() for part in env["signing.embedded_suffixes"].split(",") if part.strip()
            )
        if "signing.trusted_keys" in env:
            signing_kwargs["trusted_keys"] = tuple(
                part.strip() for part in env["signing.trusted_keys"].split(",") if part.strip()
            )

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env:
            logging_kwargs["level"] = env["logging.level"]
        if "logging.enable_console" in env:
            logging_kwargs["enable_console"] = _parse_bool(env["logging.enable_console"])
        if "logging.enable_file" in env:
            logging_kwargs["enable_file"] = _parse_bool(env["logging.enable_file"])
        if "logging.enable_json" in env:
            logging_kwargs["enable_json"] = _parse_bool(env["logging.enable_json"])

        return cls(
            paths=PathConfig(**paths_kwargs) if paths_kwargs else None,
            integrity=IntegrityConfig(**integrity_kwargs) if integrity_kwargs else None,
            erase=EraseConfig(**erase_kwargs) if erase_kwargs else None,
            crypto=CryptoConfig(**crypto_kwargs) if crypto_kwargs else None,
            signing=SigningConfig(**signing_kwargs) if signing_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # FILETRUST_SECTION__KEY -> section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # Secrets are never taken from the environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    def ensure_directories(self) -> None:
        """Create all required directories with owner-only permissions."""
        import stat

        directories = [
            self._paths.data_dir,
            self._paths.log_dir,
            self._paths.baseline_dir,
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)  # 700 - owner only

    def __repr__(self) -> str:
        return f"FileTrustConfig(hash={self._config_hash})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if getattr(self, "_frozen", False):
            raise AttributeError("FileTrustConfig is immutable after initialization")
        super().__setattr__(name, value)
