"""
Tests for path helpers, validators and scoped secrets.
"""

import os
from pathlib import Path

import pytest

from filetrust.core.errors import FileTrustError, IsDirectoryError, NotFoundError
from filetrust.core.memory.secure_memory import SecureBuffer, SecureString
from filetrust.core.memory.zeroization import ZeroizeContext, plaintext_password, secure_zero
from filetrust.utils.paths import (
    atomic_write,
    is_path_within_directory,
    normalize_path,
    root_token,
    sanitize_filename,
)
from filetrust.utils.validators import (
    ValidationError,
    require_file,
    validate_pass_count,
    validate_string_safe,
)


@pytest.mark.unit
class TestPaths:
    """Tests for path utilities."""

    def test_normalize_collapses_dots(self, temp_dir: Path):
        assert normalize_path(temp_dir / "a" / ".." / "b" / ".") == temp_dir / "b"

    def test_normalize_relative_is_absolute(self):
        assert normalize_path("x").is_absolute()

    def test_root_token_is_deterministic(self, temp_dir: Path):
        root = temp_dir / "docs"
        assert root_token(root) == root_token(str(root) + "/")
        assert root_token(root).startswith("docs-")
        assert len(root_token(root).split("-")[-1]) == 16

    def test_root_token_distinguishes_same_leaf(self, temp_dir: Path):
        assert root_token(temp_dir / "a" / "docs") != root_token(temp_dir / "b" / "docs")

    def test_root_token_of_filesystem_root(self):
        assert root_token(Path(os.sep)).startswith("root-")

    def test_root_token_sanitizes_leaf(self, temp_dir: Path):
        token = root_token(temp_dir / 'we<ird>:name')
        assert "<" not in token and ":" not in token

    def test_sanitize_filename(self):
        assert sanitize_filename('a/b\\c?.txt') == "a_b_c_.txt"
        with pytest.raises(ValueError):
            sanitize_filename("")

    def test_within_directory(self, temp_dir: Path):
        assert is_path_within_directory(temp_dir / "a" / "b", temp_dir)
        assert is_path_within_directory(temp_dir, temp_dir)
        assert not is_path_within_directory(temp_dir.parent, temp_dir)
        assert not is_path_within_directory(Path(str(temp_dir) + "-sibling"), temp_dir)

    def test_atomic_write_success(self, temp_dir: Path):
        target = temp_dir / "nested" / "out.bin"
        with atomic_write(target) as handle:
            handle.write(b"data")
        assert target.read_bytes() == b"data"
        assert [p.name for p in target.parent.iterdir()] == ["out.bin"]

    def test_atomic_write_failure_keeps_original(self, temp_dir: Path):
        target = temp_dir / "out.bin"
        target.write_bytes(b"original")
        with pytest.raises(RuntimeError):
            with atomic_write(target) as handle:
                handle.write(b"partial")
                raise RuntimeError("boom")
        assert target.read_bytes() == b"original"
        assert [p.name for p in temp_dir.iterdir()] == ["out.bin"]


@pytest.mark.unit
class TestValidators:
    """Tests for validators."""

    def test_require_file(self, temp_dir: Path):
        target = temp_dir / "f"
        target.write_bytes(b"")
        assert require_file(target) == target

    def test_require_file_missing(self, temp_dir: Path):
        with pytest.raises(NotFoundError) as exc_info:
            require_file(temp_dir / "missing")
        assert isinstance(exc_info.value, FileTrustError)
        assert exc_info.value.to_dict()["error"] == "NotFound"

    def test_require_file_directory(self, temp_dir: Path):
        with pytest.raises(IsDirectoryError):
            require_file(temp_dir)

    @pytest.mark.parametrize("passes", [1, 3, 35])
    def test_pass_count_valid(self, passes):
        assert validate_pass_count(passes) == passes

    @pytest.mark.parametrize("passes", [0, 36, True, 2.5, "3"])
    def test_pass_count_invalid(self, passes):
        with pytest.raises(ValidationError):
            validate_pass_count(passes)

    def test_string_safe(self):
        assert validate_string_safe("ok") == "ok"
        with pytest.raises(ValidationError):
            validate_string_safe("")
        with pytest.raises(ValidationError):
            validate_string_safe("a\x00b")
        with pytest.raises(ValidationError):
            validate_string_safe("x" * 11, max_length=10)


@pytest.mark.unit
class TestScopedSecrets:
    """Tests for zeroization helpers."""

    def test_secure_zero(self):
        buffer = bytearray(b"secret")
        secure_zero(buffer)
        assert buffer == bytearray(6)

    def test_zeroize_context_on_error(self):
        key = bytearray(b"k" * 32)
        with pytest.raises(RuntimeError):
            with ZeroizeContext(key):
                raise RuntimeError("fail")
        assert key == bytearray(32)

    def test_plaintext_password_is_wiped(self):
        with plaintext_password("hunter2") as secret:
            captured = secret
            assert bytes(secret) == b"hunter2"
        assert captured == bytearray(7)

    def test_plaintext_password_rejects_empty(self):
        with pytest.raises(ValidationError):
            with plaintext_password(""):
                pass

    def test_secure_string(self):
        value = SecureString("pa55")
        assert len(value) == 4
        assert str(value) == "********"
        assert "pa55" not in repr(value)
        copy = value.get_bytes()
        assert copy == bytearray(b"pa55")
        value.wipe()
        assert value.is_wiped
        assert repr(value) == "SecureString(WIPED)"

    def test_secure_buffer_wipe(self):
        with SecureBuffer(b"abc") as buffer:
            assert isinstance(buffer.is_locked, bool)
            assert buffer.copy() == bytearray(b"abc")
        with pytest.raises(ValueError):
            buffer.view()
