"""
FileTrust CLI

Command-line host for the integrity, erase, protection and signing
services. Every command prints a JSON document on stdout.

Exit status:
    0  success
    1  reported failure (integrity violation, invalid signature,
       unverified erase)
    2  error (missing file, wrong password, malformed record ...)
"""

from __future__ import annotations

import argparse
import getpass
import hmac
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from filetrust import __version__
from filetrust.core.config import FileTrustConfig
from filetrust.core.errors import FileIOError, FileTrustError
from filetrust.core.file_ops.protect import CryptoBox
from filetrust.core.file_ops.secure_delete import SecureEraser
from filetrust.core.integrity.baseline import BaselineStore
from filetrust.core.integrity.hashing import DigestAlgorithm, HashEngine
from filetrust.core.integrity.monitor import IntegrityMonitor
from filetrust.core.logging import ROOT_LOGGER_NAME, get_secure_logger
from filetrust.core.memory.secure_memory import SecureString
from filetrust.core.memory.zeroization import ZeroizeContext
from filetrust.core.signing.credential import Credential, fingerprint_from_pem
from filetrust.core.signing.signature import SignatureService
from filetrust.security.audit import TamperAwareAuditLog
from filetrust.utils.paths import atomic_write
from filetrust.utils.validators import ValidationError


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ERROR = 2

AUDIT_LOG_NAME = "audit.log"


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="filetrust",
        description="FileTrust - file integrity, secure erase, protection and signatures",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: from configuration)",
    )
    parser.add_argument(
        "--audit-log",
        type=Path,
        default=None,
        help="Audit log file (default: <log_dir>/audit.log)",
    )
    parser.add_argument(
        "--no-audit",
        action="store_true",
        help="Do not record operations in the audit log",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Integrity
    baseline_parser = subparsers.add_parser("baseline", help="Record a baseline for a file or directory")
    baseline_parser.add_argument("path", type=Path)
    baseline_parser.add_argument(
        "--algorithm",
        default=None,
        help="MD5, SHA1, SHA256 or SHA512 (default: from configuration)",
    )
    baseline_parser.add_argument("--no-recurse", action="store_true", help="Only direct children of a directory")
    baseline_parser.add_argument("--progress", action="store_true", help="Report progress on stderr")
    baseline_parser.set_defaults(func=cmd_baseline)

    verify_parser = subparsers.add_parser("verify", help="Compare a path against its baseline")
    verify_parser.add_argument("path", type=Path)
    verify_parser.add_argument("--progress", action="store_true", help="Report progress on stderr")
    verify_parser.set_defaults(func=cmd_verify)

    # Erase
    erase_parser = subparsers.add_parser("erase", help="Securely overwrite and delete a file")
    erase_parser.add_argument("path", type=Path)
    erase_parser.add_argument("--passes", type=int, default=None, help="Overwrite passes, 1 to 35")
    erase_parser.add_argument("--no-verify", action="store_true", help="Skip the post-deletion check")
    erase_parser.set_defaults(func=cmd_erase)

    # Protection
    protect_parser = subparsers.add_parser("protect", help="Encrypt a file with a password")
    protect_parser.add_argument("path", type=Path)
    protect_parser.add_argument("-o", "--output", type=Path, default=None)
    protect_parser.set_defaults(func=cmd_protect)

    unprotect_parser = subparsers.add_parser("unprotect", help="Decrypt a protected file")
    unprotect_parser.add_argument("path", type=Path)
    unprotect_parser.add_argument("-o", "--output", type=Path, default=None)
    unprotect_parser.set_defaults(func=cmd_unprotect)

    # Signing
    sign_parser = subparsers.add_parser("sign", help="Sign a file")
    sign_parser.add_argument("path", type=Path)
    sign_parser.add_argument("--key", type=Path, required=True, help="PEM private key")
    sign_parser.add_argument("--identity", default=None, help="Signer identity (default: certificate subject)")
    sign_parser.add_argument("--cert", type=Path, default=None, help="PEM certificate matching the key")
    sign_parser.add_argument("--key-password", action="store_true", help="Prompt for the key's password")
    sign_parser.set_defaults(func=cmd_sign)

    check_parser = subparsers.add_parser("check-signature", help="Verify a file's signature")
    check_parser.add_argument("path", type=Path)
    check_parser.add_argument(
        "--trusted-key", action="append", default=None, metavar="FINGERPRINT_OR_PEM",
        help="Accept only this signer key (SHA-256 fingerprint or PEM public key/certificate); repeatable",
    )
    check_parser.set_defaults(func=cmd_check_signature)

    keygen_parser = subparsers.add_parser("keygen", help="Generate an Ed25519 signing key")
    keygen_parser.add_argument("--identity", required=True)
    keygen_parser.add_argument("--out", type=Path, required=True, help="Destination for the PEM private key")
    keygen_parser.add_argument("--encrypt", action="store_true", help="Protect the key with a password")
    keygen_parser.set_defaults(func=cmd_keygen)

    return parser


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _emit(document: dict[str, Any]) -> None:
    print(json.dumps(document, indent=2, default=str))


def _progress_printer(label: str):
    def report(processed: int, total: int, item: Optional[Path]) -> None:
        print(f"\r{label}: {processed}/{total}", end="" if processed < total else "\n", file=sys.stderr)
    return report


def _prompt_password(confirm: bool = False) -> SecureString:
    """
    Read a password interactively.

    Raises:
        ValidationError: If the confirmation does not match
    """
    password = SecureString(getpass.getpass("Password: "))
    if not confirm:
        return password

    with SecureString(getpass.getpass("Confirm password: ")) as repeated:
        first, second = password.get_bytes(), repeated.get_bytes()
        with ZeroizeContext(first, second):
            matches = hmac.compare_digest(first, second)

    if not matches:
        password.wipe()
        raise ValidationError("Passwords do not match")
    return password


def _read_bytes(path: Path) -> bytes:
    try:
        return path.expanduser().read_bytes()
    except OSError as e:
        raise FileIOError(f"Cannot read file: {e.strerror or e}", path) from e


def _audit_log(args: argparse.Namespace, config: FileTrustConfig) -> Optional[TamperAwareAuditLog]:
    if args.no_audit:
        return None
    return TamperAwareAuditLog(args.audit_log or config.paths.log_dir / AUDIT_LOG_NAME)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def cmd_baseline(args: argparse.Namespace, config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> int:
    """Record a baseline."""
    algorithm = DigestAlgorithm.parse(args.algorithm or config.integrity.default_algorithm)
    monitor = _monitor(config, audit)
    summary = monitor.enable(
        args.path,
        algorithm=algorithm,
        recurse=not args.no_recurse,
        progress=_progress_printer("Hashing") if args.progress else None,
    )
    _emit(summary.to_dict())
    return EXIT_OK


def cmd_verify(args: argparse.Namespace, config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> int:
    """Verify against the stored baseline."""
    monitor = _monitor(config, audit)
    report = monitor.verify(
        args.path,
        progress=_progress_printer("Verifying") if args.progress else None,
    )
    _emit(report.to_dict())
    return EXIT_OK if report.is_clean else EXIT_FAILURE


def cmd_erase(args: argparse.Namespace, config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> int:
    """Securely erase a file."""
    eraser = SecureEraser(
        block_size=config.erase.block_size,
        max_passes=config.erase.max_passes,
        audit_log=audit,
    )
    certificate = eraser.erase(
        args.path,
        passes=args.passes if args.passes is not None else config.erase.default_passes,
        verify=config.erase.verify and not args.no_verify,
    )
    _emit(certificate.to_dict())
    return EXIT_FAILURE if certificate.verified_deleted is False else EXIT_OK


def cmd_protect(args: argparse.Namespace, config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> int:
    """Encrypt a file."""
    box = _crypto_box(config, audit)
    with _prompt_password(confirm=True) as password:
        output = box.protect(args.path, password, output_path=args.output)
    _emit({"source": str(args.path), "output": str(output)})
    return EXIT_OK


def cmd_unprotect(args: argparse.Namespace, config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> int:
    """Decrypt a file."""
    box = _crypto_box(config, audit)
    with _prompt_password() as password:
        output = box.unprotect(args.path, password, output_path=args.output)
    _emit({"source": str(args.path), "output": str(output)})
    return EXIT_OK


def cmd_sign(args: argparse.Namespace, config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> int:
    """Sign a file with a PEM key."""
    key_password = bytearray()
    if args.key_password:
        with _prompt_password() as password:
            key_password = password.get_bytes()

    with ZeroizeContext(key_password):
        credential = Credential.from_pem(
            _read_bytes(args.key),
            identity=args.identity,
            password=bytes(key_password) or None,
            certificate_pem=_read_bytes(args.cert) if args.cert else None,
        )

    record = _signature_service(config, audit).sign(args.path, credential)
    _emit(record.to_dict())
    return EXIT_OK


def cmd_check_signature(args: argparse.Namespace, config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> int:
    """Verify a file's signature."""
    trusted = list(config.signing.trusted_keys)
    for value in args.trusted_key or ():
        candidate = Path(value).expanduser()
        trusted.append(fingerprint_from_pem(_read_bytes(candidate)) if candidate.is_file() else value)

    result = _signature_service(config, audit).verify(args.path, trusted_keys=trusted or None)
    _emit(result.to_dict())
    return EXIT_OK if result.is_valid else EXIT_FAILURE


def cmd_keygen(args: argparse.Namespace, config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> int:
    """Generate a signing key."""
    credential = Credential.generate(args.identity)

    if args.encrypt:
        with _prompt_password(confirm=True) as password:
            secret = password.get_bytes()
            with ZeroizeContext(secret):
                if not secret:
                    raise ValidationError("Password cannot be empty")
                pem = credential.private_key_pem(bytes(secret))
    else:
        pem = credential.private_key_pem()

    target = args.out.expanduser()
    try:
        with atomic_write(target, mode=0o600) as handle:
            handle.write(pem)
    except OSError as e:
        raise FileIOError(f"Cannot write key: {e.strerror or e}", target) from e

    _emit({
        "identity": credential.identity,
        "algorithm": credential.algorithm,
        "keyPath": str(target),
        "fingerprint": credential.fingerprint,
        "publicKey": credential.public_key_pem().decode("ascii"),
    })
    return EXIT_OK


def _monitor(config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> IntegrityMonitor:
    return IntegrityMonitor(
        BaselineStore(config.paths.baseline_dir),
        hash_engine=HashEngine(chunk_size=config.integrity.chunk_size),
        max_workers=config.integrity.max_workers,
        audit_log=audit,
    )


def _crypto_box(config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> CryptoBox:
    return CryptoBox(
        iterations=config.crypto.kdf_iterations,
        output_suffix=config.crypto.output_suffix,
        audit_log=audit,
    )


def _signature_service(config: FileTrustConfig, audit: Optional[TamperAwareAuditLog]) -> SignatureService:
    return SignatureService(
        signature_suffix=config.signing.signature_suffix,
        embedded_suffixes=config.signing.embedded_suffixes,
        audit_log=audit,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = FileTrustConfig.load()
    except ValueError as e:
        print(json.dumps({"error": "Configuration", "message": str(e)}, indent=2), file=sys.stderr)
        return EXIT_ERROR

    level = "DEBUG" if args.verbose else (args.log_level or config.logging.level)
    get_secure_logger(
        ROOT_LOGGER_NAME,
        log_dir=config.paths.log_dir,
        level=level,
        enable_console=config.logging.enable_console,
        enable_file=config.logging.enable_file,
        enable_json=config.logging.enable_json,
        max_file_size=config.logging.max_file_size_bytes,
        backup_count=config.logging.backup_count,
    )
    logger = logging.getLogger("filetrust.cli")

    try:
        return args.func(args, config, _audit_log(args, config))
    except FileTrustError as e:
        logger.error("%s failed: %s", args.command, e)
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return EXIT_ERROR
    except ValidationError as e:
        logger.error("%s rejected: %s", args.command, e)
        print(json.dumps({"error": "Validation", "message": str(e)}, indent=2), file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
