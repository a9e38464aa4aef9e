"""
Signing Credentials
===================

A credential binds a signer identity to private key material. Where the
key comes from (file, HSM export, certificate store) is the host's
concern; this module only wraps what it is handed.

Supported key types:
    - Ed25519
    - RSA (PSS padding, SHA-256)
    - EC (ECDSA, SHA-256)
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Final, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from cryptography.x509.oid import NameOID

from filetrust.utils.validators import ValidationError, validate_string_safe


SigningKey = Union[ed25519.Ed25519PrivateKey, rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]
VerifyingKey = Union[ed25519.Ed25519PublicKey, rsa.RSAPublicKey, ec.EllipticCurvePublicKey]

ALGORITHM_ED25519: Final[str] = "Ed25519"
ALGORITHM_RSA_PSS: Final[str] = "RSA-PSS-SHA256"
ALGORITHM_ECDSA: Final[str] = "ECDSA-SHA256"

_FINGERPRINT_RE: Final[re.Pattern[str]] = re.compile(r"[0-9a-f]{64}")


def _pss() -> padding.PSS:
    return padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.MAX_LENGTH)


def algorithm_for_key(key: SigningKey | VerifyingKey) -> str:
    """
    Name the signature algorithm used with a key.

    Raises:
        ValidationError: If the key type is not supported
    """
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey)):
        return ALGORITHM_ED25519
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return ALGORITHM_RSA_PSS
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        return ALGORITHM_ECDSA
    raise ValidationError(f"Unsupported key type: {type(key).__name__}")


def verify_with_key(public_key: VerifyingKey, algorithm: str, signature: bytes, data: bytes) -> None:
    """
    Verify a signature.

    Raises:
        cryptography.exceptions.InvalidSignature: If it does not verify
        ValidationError: If the algorithm does not match the key
    """
    if algorithm != algorithm_for_key(public_key):
        raise ValidationError(f"Algorithm {algorithm} does not match the embedded key")

    if isinstance(public_key, ed25519.Ed25519PublicKey):
        public_key.verify(signature, data)
    elif isinstance(public_key, rsa.RSAPublicKey):
        public_key.verify(signature, data, _pss(), hashes.SHA256())
    else:
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))


def key_fingerprint(public_key_der: bytes) -> str:
    """SHA-256 hex of a DER SubjectPublicKeyInfo."""
    return hashlib.sha256(public_key_der).hexdigest()


def normalize_fingerprint(value: str) -> str:
    """
    Canonicalize a fingerprint written as hex, with or without colons.

    Raises:
        ValidationError: If the value is not a SHA-256 fingerprint
    """
    fingerprint = value.strip().replace(":", "").lower()
    if not _FINGERPRINT_RE.fullmatch(fingerprint):
        raise ValidationError(f"Not a SHA-256 key fingerprint: {value!r}")
    return fingerprint


def fingerprint_from_pem(pem: bytes) -> str:
    """
    Fingerprint the key in a PEM public key or certificate.

    Raises:
        ValidationError: If the PEM holds neither
    """
    try:
        if b"CERTIFICATE" in pem:
            public_key = x509.load_pem_x509_certificate(pem).public_key()
        else:
            public_key = serialization.load_pem_public_key(pem)
    except ValueError as e:
        raise ValidationError(f"Cannot load public key: {e}") from e

    return key_fingerprint(public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ))


@dataclass(frozen=True)
class Credential:
    """
    Signer identity plus private key.

    Usage:
        credential = Credential.generate("alice@example.org")
        credential = Credential.from_pem(Path("key.pem").read_bytes(), identity="build-bot")
    """
    identity: str
    private_key: SigningKey

    def __post_init__(self) -> None:
        validate_string_safe(self.identity, max_length=512, field_name="identity")
        algorithm_for_key(self.private_key)

    @property
    def algorithm(self) -> str:
        return algorithm_for_key(self.private_key)

    @property
    def public_key(self) -> VerifyingKey:
        return self.private_key.public_key()

    def sign(self, data: bytes) -> bytes:
        """Sign bytes with the credential's key."""
        key = self.private_key
        if isinstance(key, ed25519.Ed25519PrivateKey):
            return key.sign(data)
        if isinstance(key, rsa.RSAPrivateKey):
            return key.sign(data, _pss(), hashes.SHA256())
        return key.sign(data, ec.ECDSA(hashes.SHA256()))

    def public_key_der(self) -> bytes:
        return self.public_key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    @property
    def fingerprint(self) -> str:
        return key_fingerprint(self.public_key_der())

    def public_key_pem(self) -> bytes:
        return self.public_key.public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def private_key_pem(self, password: Optional[bytes] = None) -> bytes:
        """Serialize the private key as PKCS8 PEM, encrypted when a password is given."""
        encryption: serialization.KeySerializationEncryption
        if password:
            encryption = serialization.BestAvailableEncryption(password)
        else:
            encryption = serialization.NoEncryption()
        return self.private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            encryption,
        )

    @classmethod
    def generate(cls, identity: str) -> "Credential":
        """Create a credential with a fresh Ed25519 key."""
        return cls(identity=identity, private_key=ed25519.Ed25519PrivateKey.generate())

    @classmethod
    def from_pem(
        cls,
        key_pem: bytes,
        identity: Optional[str] = None,
        password: Optional[bytes] = None,
        certificate_pem: Optional[bytes] = None,
    ) -> "Credential":
        """
        Load a credential from a PEM private key.

        The identity is taken from ``identity`` or, failing that, from
        the certificate subject (common name, else the full RFC 4514 name).

        Raises:
            ValidationError: If the key cannot be loaded, is unsupported,
                does not match the certificate, or no identity is available
        """
        try:
            private_key = serialization.load_pem_private_key(key_pem, password=password)
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Cannot load private key: {e}") from e

        if certificate_pem is not None:
            try:
                certificate = x509.load_pem_x509_certificate(certificate_pem)
            except ValueError as e:
                raise ValidationError(f"Cannot load certificate: {e}") from e

            cert_key = certificate.public_key().public_bytes(
                serialization.Encoding.DER,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            own_key = private_key.public_key().public_bytes(
                serialization.Encoding.DER,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            if cert_key != own_key:
                raise ValidationError("Certificate does not match the private key")

            if identity is None:
                common_names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
                identity = str(common_names[0].value) if common_names else certificate.subject.rfc4514_string()

        if not identity:
            raise ValidationError("A signer identity is required")

        return cls(identity=identity, private_key=private_key)  # type: ignore[arg-type]

    def __repr__(self) -> str:
        """Safe representation without key material."""
        return f"Credential(identity={self.identity!r}, algorithm={self.algorithm})"
