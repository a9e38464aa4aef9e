"""
Tests for the configuration layer.
"""

import os
from pathlib import Path

import pytest

from filetrust.core.config import (
    CryptoConfig,
    EraseConfig,
    FileTrustConfig,
    IntegrityConfig,
    LoggingConfig,
    PathConfig,
    SigningConfig,
)
from filetrust.security.constants import MIN_KDF_ITERATIONS


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in list(os.environ):
        if name.startswith("FILETRUST_"):
            monkeypatch.delenv(name)
    return monkeypatch


@pytest.mark.unit
class TestSections:
    """Validation in the section dataclasses."""

    def test_defaults(self):
        config = FileTrustConfig()
        assert config.integrity.default_algorithm == "SHA256"
        assert config.erase.default_passes == 3
        assert config.erase.max_passes == 35
        assert config.crypto.kdf_iterations == MIN_KDF_ITERATIONS
        assert config.crypto.output_suffix == ".enc"
        assert config.signing.signature_suffix == ".sig"
        assert ".ps1" in config.signing.embedded_suffixes
        assert config.paths.baseline_dir == config.paths.data_dir / "baselines"

    def test_relative_paths_rejected(self):
        with pytest.raises(ValueError):
            PathConfig(data_dir=Path("relative"))

    def test_algorithm_normalized(self):
        assert IntegrityConfig(default_algorithm="sha-512").default_algorithm == "SHA512"
        with pytest.raises(ValueError):
            IntegrityConfig(default_algorithm="CRC32")

    def test_worker_and_chunk_bounds(self):
        with pytest.raises(ValueError):
            IntegrityConfig(max_workers=0)
        with pytest.raises(ValueError):
            IntegrityConfig(chunk_size=0)

    @pytest.mark.parametrize("kwargs", [
        {"default_passes": 0},
        {"default_passes": 36},
        {"max_passes": 36},
        {"max_passes": 5, "default_passes": 7},
        {"block_size": 0},
    ])
    def test_erase_bounds(self, kwargs):
        with pytest.raises(ValueError):
            EraseConfig(**kwargs)

    def test_iteration_floor(self):
        with pytest.raises(ValueError):
            CryptoConfig(kdf_iterations=MIN_KDF_ITERATIONS - 1)
        assert CryptoConfig(kdf_iterations=250_000).kdf_iterations == 250_000

    @pytest.mark.parametrize("field", ["salt_length", "iv_length", "key_length"])
    def test_container_lengths_fixed(self, field):
        with pytest.raises(ValueError):
            CryptoConfig(**{field: 8})

    def test_embedded_suffixes_lowercased(self):
        assert SigningConfig(embedded_suffixes=(".PS1", ".Sh")).embedded_suffixes == (".ps1", ".sh")

    def test_trusted_keys_normalized(self):
        config = SigningConfig(trusted_keys=(":".join(["AB"] * 32),))
        assert config.trusted_keys == ("ab" * 32,)

    @pytest.mark.parametrize("value", ["abc", "g" * 64])
    def test_trusted_keys_must_be_fingerprints(self, value):
        with pytest.raises(ValueError):
            SigningConfig(trusted_keys=(value,))

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            LoggingConfig(level="LOUD")


@pytest.mark.unit
class TestFileTrustConfig:
    """Tests for FileTrustConfig loading and immutability."""

    def test_immutable(self):
        config = FileTrustConfig()
        with pytest.raises(AttributeError):
            config.crypto = CryptoConfig()  # type: ignore[misc]

    def test_sections_immutable(self):
        with pytest.raises(AttributeError):
            FileTrustConfig().erase.default_passes = 7  # type: ignore[misc]

    def test_env_overrides(self, clean_env, temp_dir: Path):
        clean_env.setenv("FILETRUST_LOGGING__LEVEL", "DEBUG")
        clean_env.setenv("FILETRUST_PATHS__BASELINE_DIR", str(temp_dir / "baselines"))
        clean_env.setenv("FILETRUST_CRYPTO__KDF_ITERATIONS", "200000")
        clean_env.setenv("FILETRUST_ERASE__DEFAULT_PASSES", "7")
        clean_env.setenv("FILETRUST_ERASE__VERIFY", "no")
        clean_env.setenv("FILETRUST_INTEGRITY__DEFAULT_ALGORITHM", "sha512")
        clean_env.setenv("FILETRUST_INTEGRITY__MAX_WORKERS", "4")
        clean_env.setenv("FILETRUST_SIGNING__EMBEDDED_SUFFIXES", ".PY, .sh")
        clean_env.setenv("FILETRUST_SIGNING__TRUSTED_KEYS", "01" * 32 + ", " + "02" * 32)

        config = FileTrustConfig.load()
        assert config.logging.level == "DEBUG"
        assert config.paths.baseline_dir == temp_dir / "baselines"
        assert config.crypto.kdf_iterations == 200_000
        assert config.erase.default_passes == 7
        assert config.erase.verify is False
        assert config.integrity.default_algorithm == "SHA512"
        assert config.integrity.max_workers == 4
        assert config.signing.embedded_suffixes == (".py", ".sh")
        assert config.signing.trusted_keys == ("01" * 32, "02" * 32)

    def test_env_below_floor_rejected(self, clean_env):
        clean_env.setenv("FILETRUST_CRYPTO__KDF_ITERATIONS", "1000")
        with pytest.raises(ValueError):
            FileTrustConfig.load()

    def test_sensitive_keys_ignored(self, clean_env):
        clean_env.setenv("FILETRUST_CRYPTO__PASSWORD", "hunter2")
        assert "crypto.password" not in FileTrustConfig._parse_env_overrides("FILETRUST")
        FileTrustConfig.load()

    def test_custom_prefix(self, clean_env):
        clean_env.setenv("MYAPP_ERASE__DEFAULT_PASSES", "1")
        assert FileTrustConfig.load(env_prefix="MYAPP").erase.default_passes == 1

    def test_config_hash_tracks_content(self):
        assert FileTrustConfig().config_hash == FileTrustConfig().config_hash
        assert FileTrustConfig().config_hash != FileTrustConfig(erase=EraseConfig(default_passes=7)).config_hash

    def test_ensure_directories(self, temp_dir: Path):
        paths = PathConfig(data_dir=temp_dir / "data", log_dir=temp_dir / "logs")
        FileTrustConfig(paths=paths).ensure_directories()
        assert (temp_dir / "data" / "baselines").is_dir()
        assert (temp_dir / "logs").is_dir()

    def test_repr_is_short(self):
        config = FileTrustConfig()
        assert repr(config) == f"FileTrustConfig(hash={config.config_hash})"
