"""
Pytest configuration and shared fixtures for FileTrust tests.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from filetrust.core.file_ops.protect import CryptoBox
from filetrust.core.file_ops.secure_delete import SecureEraser
from filetrust.core.integrity.baseline import BaselineStore
from filetrust.core.integrity.monitor import IntegrityMonitor
from filetrust.core.logging import ROOT_LOGGER_NAME
from filetrust.core.signing.credential import Credential
from filetrust.core.signing.signature import SignatureService
from filetrust.security.audit import TamperAwareAuditLog
from filetrust.security.constants import MIN_KDF_ITERATIONS


# ===========================================================================
# Temporary Directory Fixtures
# ===========================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    tmpdir = tempfile.mkdtemp(prefix="filetrust_test_")
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def sample_tree(temp_dir: Path) -> Path:
    """
    A small directory tree::

        tree/a.txt
        tree/b.txt
        tree/sub/c.txt
    """
    root = temp_dir / "tree"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"alpha\n")
    (root / "b.txt").write_bytes(b"bravo\n")
    (root / "sub" / "c.txt").write_bytes(b"charlie\n")
    return root


@pytest.fixture
def isolated_env(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every configured directory into the temp dir."""
    for name in list(os.environ):
        if name.startswith("FILETRUST_"):
            monkeypatch.delenv(name)
    home = temp_dir / "home"
    monkeypatch.setenv("FILETRUST_PATHS__DATA_DIR", str(home / "data"))
    monkeypatch.setenv("FILETRUST_PATHS__LOG_DIR", str(home / "logs"))
    monkeypatch.setenv("FILETRUST_LOGGING__ENABLE_CONSOLE", "false")
    return home


@pytest.fixture(autouse=True)
def reset_filetrust_logger() -> Generator[None, None, None]:
    """Undo handlers installed by get_secure_logger so caplog keeps working."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# ===========================================================================
# Component Fixtures
# ===========================================================================

@pytest.fixture
def store(temp_dir: Path) -> BaselineStore:
    return BaselineStore(temp_dir / "baselines")


@pytest.fixture
def monitor(store: BaselineStore) -> IntegrityMonitor:
    return IntegrityMonitor(store, max_workers=4)


@pytest.fixture
def audit_log(temp_dir: Path) -> TamperAwareAuditLog:
    return TamperAwareAuditLog(temp_dir / "audit" / "audit.log")


@pytest.fixture
def crypto_box() -> CryptoBox:
    """CryptoBox at the iteration floor; lower values are rejected."""
    return CryptoBox(iterations=MIN_KDF_ITERATIONS)


@pytest.fixture
def eraser() -> SecureEraser:
    return SecureEraser(block_size=4096)


@pytest.fixture
def credential() -> Credential:
    return Credential.generate("tester@example.org")


@pytest.fixture
def signature_service() -> SignatureService:
    return SignatureService()


# ===========================================================================
# Reference Container Codec
# ===========================================================================

def _container_key(password: bytes, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)
    return kdf.derive(password)


@pytest.fixture
def build_container() -> Callable[..., bytes]:
    """Build ``salt || iv || AES-256-CBC(plaintext)`` with bare cryptography calls."""
    def build(plaintext: bytes, password: bytes, iterations: int = MIN_KDF_ITERATIONS) -> bytes:
        salt, iv = os.urandom(32), os.urandom(16)
        padder = padding.PKCS7(128).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(_container_key(password, salt, iterations)), modes.CBC(iv)).encryptor()
        return salt + iv + encryptor.update(padded) + encryptor.finalize()
    return build


@pytest.fixture
def open_container() -> Callable[..., Optional[bytes]]:
    """Decrypt a container with bare cryptography calls; None when the padding is invalid."""
    def open_(data: bytes, password: bytes, iterations: int = MIN_KDF_ITERATIONS) -> Optional[bytes]:
        decryptor = Cipher(
            algorithms.AES(_container_key(password, data[:32], iterations)), modes.CBC(data[32:48])
        ).decryptor()
        unpadder = padding.PKCS7(128).unpadder()
        try:
            return unpadder.update(decryptor.update(data[48:]) + decryptor.finalize()) + unpadder.finalize()
        except ValueError:
            return None
    return open_
