"""
File Signatures
===============

Produces and verifies authenticity signatures over whole files.

Two carriers are supported:
    - Embedded: script files (``.ps1``, ``.py``, ``.sh`` ...) get a
      trailing comment block; the signed payload is everything before it.
    - Detached: every other file gets a sibling ``<file>.sig``.

Both carry the same signed-message blob, a JSON object:
    {
      "format": "filetrust-signature/1",
      "signer": "<identity>",
      "algorithm": "Ed25519" | "RSA-PSS-SHA256" | "ECDSA-SHA256",
      "public_key": "<base64 DER SubjectPublicKeyInfo>",
      "digest": "<sha256 hex of the payload>",
      "signed_at": "<ISO8601>",
      "signature": "<base64>"
    }

The signature covers the canonical JSON of every field except
``signature``, so identity and timestamp are bound as well as content.
A blob (and an embedded block) must be byte-for-byte the rendering
``sign`` produces; anything else is MALFORMED.

The public key travels inside the blob, so a VALID result on its own
only proves the file was signed by *somebody*: anyone can re-sign a
file with their own key and any ``signer`` text. The signer identity is
authenticated only when the service is given ``trusted_keys`` (SHA-256
fingerprints of acceptable public keys); a correct signature from any
other key is then reported as UNTRUSTED. Certificate chains and
revocation are not checked.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import re
import textwrap
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Iterable, Optional

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from filetrust.core.errors import FileIOError, NoSignatureError, SignatureInvalidError
from filetrust.core.signing.credential import (
    Credential,
    key_fingerprint,
    normalize_fingerprint,
    verify_with_key,
)
from filetrust.security.constants import SIGNATURE_FORMAT
from filetrust.utils.paths import atomic_write
from filetrust.utils.validators import ValidationError, require_file

if TYPE_CHECKING:
    from filetrust.security.audit import TamperAwareAuditLog


BLOCK_BEGIN: Final[bytes] = b"# SIG # Begin signature block"
BLOCK_END: Final[bytes] = b"# SIG # End signature block"
BLOCK_LINE_WIDTH: Final[int] = 64

DEFAULT_SIGNATURE_SUFFIX: Final[str] = ".sig"
DEFAULT_EMBEDDED_SUFFIXES: Final[tuple[str, ...]] = (".ps1", ".psm1", ".psd1", ".py", ".sh")

_BEGIN_RE: Final[re.Pattern[bytes]] = re.compile(rb"(?m)^" + re.escape(BLOCK_BEGIN))
_END_RE: Final[re.Pattern[bytes]] = re.compile(rb"(?m)^" + re.escape(BLOCK_END))
_BLOCK_RE: Final[re.Pattern[bytes]] = re.compile(
    re.escape(BLOCK_BEGIN) + rb"\n(?P<body>(?:#[^\n]*\n)*?)" + re.escape(BLOCK_END) + rb"\n?"
)


class SignatureStatus(Enum):
    """Outcome of a signature check."""
    VALID = "Valid"
    INVALID = "Invalid"
    MALFORMED = "Malformed"
    UNTRUSTED = "Untrusted"


@dataclass(frozen=True, slots=True)
class SignatureRecord:
    """
    Result of signing a file.

    ``signature_path`` is None for embedded signatures.
    """
    subject_path: Path
    signature_path: Optional[Path]
    signer_identity: str
    embedded: bool
    signature: bytes
    signed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "subjectPath": str(self.subject_path),
            "signaturePath": str(self.signature_path) if self.signature_path else None,
            "signerIdentity": self.signer_identity,
            "embedded": self.embedded,
            "signedAt": self.signed_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class SignatureVerification:
    """
    Result of verifying a file's signature.

    ``key_fingerprint`` is the SHA-256 of the public key carried in the
    blob (None when the blob is unreadable). ``key_trusted`` is None when
    no trusted keys were configured, in which case ``signer_identity``
    is unauthenticated text.
    """
    path: Path
    is_valid: bool
    signer_identity: Optional[str]
    status: SignatureStatus
    embedded: bool
    key_fingerprint: Optional[str] = None
    key_trusted: Optional[bool] = None

    def raise_for_status(self) -> None:
        """
        Raises:
            SignatureInvalidError: If the signature did not verify
        """
        if not self.is_valid:
            raise SignatureInvalidError(f"Signature is {self.status.value.lower()}", self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "isValid": self.is_valid,
            "signerIdentity": self.signer_identity,
            "status": self.status.value,
            "embedded": self.embedded,
            "keyFingerprint": self.key_fingerprint,
            "keyTrusted": self.key_trusted,
        }


class _MalformedBlob(Exception):
    """Internal: a signature blob could not be parsed."""


def _canonical(fields: dict[str, str]) -> bytes:
    return json.dumps(fields, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _render(blob: dict[str, str]) -> bytes:
    return json.dumps(blob, indent=2, sort_keys=True).encode("utf-8")


def _b64decode_strict(text: str | bytes) -> bytes:
    """
    Decode base64 that must be in canonical form.

    Non-zero padding bits would let two encodings carry the same bytes.
    """
    try:
        encoded = text.encode("ascii") if isinstance(text, str) else text
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise _MalformedBlob(f"bad base64: {e}") from e
    if base64.b64encode(decoded) != encoded:
        raise _MalformedBlob("non-canonical base64")
    return decoded


def _build_blob(payload: bytes, credential: Credential, signed_at: datetime) -> tuple[bytes, bytes]:
    """Return ``(blob, raw_signature)`` for a payload."""
    fields = {
        "format": SIGNATURE_FORMAT,
        "signer": credential.identity,
        "algorithm": credential.algorithm,
        "public_key": base64.b64encode(credential.public_key_der()).decode("ascii"),
        "digest": hashlib.sha256(payload).hexdigest(),
        "signed_at": signed_at.isoformat(),
    }
    signature = credential.sign(_canonical(fields))
    return _render(dict(fields, signature=base64.b64encode(signature).decode("ascii"))), signature


def _parse_blob(raw: bytes) -> dict[str, str]:
    try:
        blob = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise _MalformedBlob(f"not JSON: {e}") from e

    if not isinstance(blob, dict):
        raise _MalformedBlob("not an object")

    required = ("format", "signer", "algorithm", "public_key", "digest", "signed_at", "signature")
    missing = [name for name in required if not isinstance(blob.get(name), str)]
    if missing:
        raise _MalformedBlob(f"missing fields: {', '.join(missing)}")
    if blob["format"] != SIGNATURE_FORMAT:
        raise _MalformedBlob(f"unsupported format {blob['format']!r}")
    if _render(blob) != raw:
        raise _MalformedBlob("not in canonical form")
    return blob


def _fingerprint_set(values: Optional[Iterable[str]]) -> Optional[frozenset[str]]:
    """None means nothing is pinned; an empty iterable trusts no key."""
    if values is None:
        return None
    return frozenset(normalize_fingerprint(value) for value in values)


class SignatureService:
    """
    Sign files and verify their signatures.

    Usage:
        service = SignatureService()
        record = service.sign(Path("release.tar.gz"), credential)   # writes release.tar.gz.sig
        result = service.verify(Path("release.tar.gz"))
        if not result.is_valid:
            ...

    Pin the acceptable signers to make the identity meaningful:
        service = SignatureService(trusted_keys=[credential.fingerprint])

    Verification never modifies the subject or the signature artifact.
    """

    def __init__(
        self,
        signature_suffix: str = DEFAULT_SIGNATURE_SUFFIX,
        embedded_suffixes: Iterable[str] = DEFAULT_EMBEDDED_SUFFIXES,
        audit_log: Optional["TamperAwareAuditLog"] = None,
        trusted_keys: Optional[Iterable[str]] = None,
    ) -> None:
        self._suffix = signature_suffix
        self._embedded_suffixes = frozenset(s.lower() for s in embedded_suffixes)
        self._trusted = _fingerprint_set(trusted_keys)
        self._audit = audit_log
        self._log = logging.getLogger("filetrust.signing")

    def signature_path(self, path: Path | str) -> Path:
        """Sibling path of the detached signature for a file."""
        path = Path(path)
        return path.with_name(path.name + self._suffix)

    def supports_embedded(self, path: Path | str) -> bool:
        return Path(path).suffix.lower() in self._embedded_suffixes

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign(self, path: Path | str, credential: Credential) -> SignatureRecord:
        """
        Sign a file with a credential.

        Script formats are signed in place; everything else gets a
        detached ``.sig`` sibling. Re-signing replaces the previous
        signature when its block is intact.

        Raises:
            NotFoundError, IsDirectoryError: If path is not a file
            FileIOError: If the file or artifact cannot be read/written
        """
        subject = require_file(path)
        data = self._read(subject)
        signed_at = datetime.now(timezone.utc)

        if self.supports_embedded(subject):
            payload, previous = self._split_embedded(data)
            if not previous:
                # a damaged block stays in the signed content
                payload = data
            if payload and not payload.endswith(b"\n"):
                payload += b"\n"
            blob, signature = _build_blob(payload, credential, signed_at)
            self._write(subject, payload + self._format_block(blob), keep_mode_of=subject)
            record = SignatureRecord(subject, None, credential.identity, True, signature, signed_at)
        else:
            blob, signature = _build_blob(data, credential, signed_at)
            artifact = self.signature_path(subject)
            self._write(artifact, blob)
            record = SignatureRecord(subject, artifact, credential.identity, False, signature, signed_at)

        self._log.info(
            "Signed %s as %s (%s)", subject, credential.identity,
            "embedded" if record.embedded else "detached",
        )
        self._audit_event("FILE_SIGNED", f"Signed {subject.name}", record.to_dict())
        return record

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, path: Path | str, trusted_keys: Optional[Iterable[str]] = None) -> SignatureVerification:
        """
        Verify a file's embedded or detached signature.

        Any mismatch (tampered content, wrong key, malformed artifact)
        is reported in the result, never raised. A script that carries
        any part of a signature block is judged on that block alone; it
        never falls back to a detached artifact.

        Args:
            path: File to check
            trusted_keys: Fingerprints to pin for this call, overriding
                the service's own set

        Raises:
            NotFoundError, IsDirectoryError: If path is not a file
            NoSignatureError: If the file carries no signature at all
            FileIOError: If the file or artifact cannot be read
            ValidationError: If a trusted key is not a fingerprint
        """
        trusted = self._trusted if trusted_keys is None else _fingerprint_set(trusted_keys)
        subject = require_file(path)
        data = self._read(subject)

        if self.supports_embedded(subject):
            payload, raw_blob = self._split_embedded(data)
            if raw_blob is not None:
                return self._finish(subject, payload, raw_blob, True, trusted)

        artifact = self.signature_path(subject)
        if not artifact.is_file():
            raise NoSignatureError("No signature found", subject)

        return self._finish(subject, data, self._read(artifact), False, trusted)

    def _finish(
        self,
        subject: Path,
        payload: bytes,
        raw_blob: bytes,
        embedded: bool,
        trusted: Optional[frozenset[str]],
    ) -> SignatureVerification:
        status, signer, fingerprint = self._check(payload, raw_blob, trusted)
        result = SignatureVerification(
            path=subject,
            is_valid=status is SignatureStatus.VALID,
            signer_identity=signer,
            status=status,
            embedded=embedded,
            key_fingerprint=fingerprint,
            key_trusted=None if trusted is None or fingerprint is None else fingerprint in trusted,
        )

        if result.is_valid:
            self._log.info("Valid signature on %s by %s (key %s)", subject, signer, fingerprint)
            self._audit_event("SIGNATURE_VERIFIED", f"Signature valid for {subject.name}", result.to_dict())
        else:
            self._log.warning("%s signature on %s", status.value, subject)
            self._audit_event("SIGNATURE_INVALID", f"Signature {status.value.lower()} for {subject.name}",
                              result.to_dict(), critical=True)
        return result

    def _check(
        self,
        payload: bytes,
        raw_blob: bytes,
        trusted: Optional[frozenset[str]],
    ) -> tuple[SignatureStatus, Optional[str], Optional[str]]:
        """Return ``(status, signer, key_fingerprint)``."""
        try:
            blob = _parse_blob(raw_blob)
            signature = _b64decode_strict(blob["signature"])
            key_der = _b64decode_strict(blob["public_key"])
            public_key = serialization.load_der_public_key(key_der)
        except (_MalformedBlob, ValueError, UnsupportedAlgorithm) as e:
            self._log.debug("Malformed signature blob: %s", e)
            return SignatureStatus.MALFORMED, None, None

        signer = blob["signer"]
        fingerprint = key_fingerprint(key_der)
        expected = hashlib.sha256(payload).hexdigest().encode("ascii")
        if not hmac.compare_digest(expected, blob["digest"].encode("utf-8", "surrogatepass")):
            return SignatureStatus.INVALID, signer, fingerprint

        fields = {name: value for name, value in blob.items() if name != "signature"}
        try:
            verify_with_key(public_key, blob["algorithm"], signature, _canonical(fields))
        except InvalidSignature:
            return SignatureStatus.INVALID, signer, fingerprint
        except ValidationError as e:
            self._log.debug("Signature algorithm mismatch: %s", e)
            return SignatureStatus.MALFORMED, signer, fingerprint

        if trusted is not None and fingerprint not in trusted:
            self._log.warning("Signature by untrusted key %s claiming %r", fingerprint, signer)
            return SignatureStatus.UNTRUSTED, signer, fingerprint

        return SignatureStatus.VALID, signer, fingerprint

    # ------------------------------------------------------------------
    # Embedded block handling
    # ------------------------------------------------------------------

    @staticmethod
    def _format_block(blob: bytes) -> bytes:
        encoded = base64.b64encode(blob).decode("ascii")
        lines = [BLOCK_BEGIN]
        lines.extend(f"# {chunk}".encode("ascii") for chunk in textwrap.wrap(encoded, BLOCK_LINE_WIDTH))
        lines.append(BLOCK_END)
        return b"\n".join(lines) + b"\n"

    @classmethod
    def _split_embedded(cls, data: bytes) -> tuple[bytes, Optional[bytes]]:
        """
        Split file content into ``(payload, raw_blob)``.

        ``raw_blob`` is None only when neither marker line appears. Once
        either does, the file counts as signed: the block must run from
        the last begin marker to end of file exactly as ``sign`` wrote it
        (CRLF line endings tolerated). Anything else yields an empty
        blob, which verifies as MALFORMED.
        """
        begins = list(_BEGIN_RE.finditer(data))
        if not begins:
            if _END_RE.search(data) is None:
                return data, None
            return data, b""

        start = begins[-1].start()
        payload, tail = data[:start], data[start:].replace(b"\r\n", b"\n")
        match = _BLOCK_RE.fullmatch(tail)
        if match is None:
            return payload, b""

        encoded = b"".join(line[1:].strip() for line in match.group("body").splitlines())
        try:
            blob = _b64decode_strict(encoded)
        except _MalformedBlob:
            return payload, b""
        if cls._format_block(blob) != tail:
            return payload, b""
        return payload, blob

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    @staticmethod
    def _read(path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise FileIOError(f"Cannot read file: {e.strerror or e}", path) from e

    @staticmethod
    def _write(target: Path, data: bytes, keep_mode_of: Optional[Path] = None) -> None:
        mode = 0o644
        try:
            if keep_mode_of is not None:
                mode = keep_mode_of.stat().st_mode & 0o777
            with atomic_write(target, mode=mode) as handle:
                handle.write(data)
        except OSError as e:
            raise FileIOError(f"Cannot write signature: {e.strerror or e}", target) from e

    def _audit_event(self, event_name: str, description: str, details: dict, critical: bool = False) -> None:
        if self._audit is None:
            return
        from filetrust.security.audit import AuditEventType, AuditSeverity

        self._audit.log(
            AuditEventType[event_name],
            AuditSeverity.CRITICAL if critical else AuditSeverity.INFO,
            description,
            details=details,
        )
