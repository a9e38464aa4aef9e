"""
FileTrust Signing Module
========================

Components:
- credential.py: Signer identity plus private key (Ed25519, RSA-PSS, ECDSA)
- signature.py: Detached and embedded file signatures
"""

from filetrust.core.signing.credential import Credential
from filetrust.core.signing.signature import (
    SignatureRecord,
    SignatureService,
    SignatureStatus,
    SignatureVerification,
)

__all__ = [
    "Credential",
    "SignatureRecord",
    "SignatureService",
    "SignatureStatus",
    "SignatureVerification",
]
