"""
Tamper-Aware Audit Trail
========================

Append-only record of completed file-trust operations with a SHA-256
hash chain. Each line is one JSON event whose ``previous_hash`` is the
``event_hash`` of the line before it (``"genesis"`` for the first).
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Final, Optional

from filetrust.core.errors import CorruptRecordError, FileIOError


GENESIS_HASH: Final[str] = "genesis"


class AuditSeverity(Enum):
    """Audit event severity levels."""
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AuditEventType(Enum):
    """Types of auditable events."""
    # Integrity
    BASELINE_CREATED = "BASELINE_CREATED"
    INTEGRITY_VERIFIED = "INTEGRITY_VERIFIED"
    INTEGRITY_VIOLATION = "INTEGRITY_VIOLATION"

    # File operations
    FILE_ERASED = "FILE_ERASED"
    FILE_PROTECTED = "FILE_PROTECTED"
    FILE_UNPROTECTED = "FILE_UNPROTECTED"

    # Signatures
    FILE_SIGNED = "FILE_SIGNED"
    SIGNATURE_VERIFIED = "SIGNATURE_VERIFIED"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"


@dataclass
class AuditEvent:
    """An auditable operation."""
    event_type: AuditEventType
    severity: AuditSeverity
    timestamp: datetime
    description: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    event_id: str = field(default="")
    previous_hash: str = field(default="")
    event_hash: str = field(default="")

    def __post_init__(self) -> None:
        if not self.event_id:
            self.event_id = hashlib.sha256(
                f"{self.timestamp.isoformat()}{self.event_type.value}{os.urandom(8).hex()}".encode()
            ).hexdigest()[:16]

    def _hashed_fields(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "description": self.description,
            "details": self.details,
            "previous_hash": self.previous_hash,
        }

    def compute_hash(self, previous_hash: str) -> str:
        """Chain this event to its predecessor and compute its hash."""
        self.previous_hash = previous_hash
        self.event_hash = hashlib.sha256(
            json.dumps(self._hashed_fields(), sort_keys=True).encode()
        ).hexdigest()
        return self.event_hash

    def to_dict(self) -> dict[str, Any]:
        return dict(self._hashed_fields(), event_hash=self.event_hash)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEvent":
        """
        Rebuild an event from its stored form.

        Raises:
            KeyError, ValueError: If a field is missing or invalid
        """
        return cls(
            event_type=AuditEventType(data["event_type"]),
            severity=AuditSeverity(data["severity"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            description=data.get("description", ""),
            details=data.get("details") or {},
            event_id=data["event_id"],
            previous_hash=data.get("previous_hash", ""),
            event_hash=data.get("event_hash", ""),
        )


class TamperAwareAuditLog:
    """
    Append-only audit log with tamper detection.

    Features:
    - Chained hashes for integrity
    - Append-only (no deletion)
    - JSON Lines format
    - No passwords or key material (callers pass paths and outcomes only)
    """

    def __init__(self, log_path: Path | str):
        self._log_path = Path(log_path)
        self._lock = threading.Lock()
        self._last_hash = GENESIS_HASH
        self._event_count = 0
        self._log = logging.getLogger("filetrust.audit")

        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._load_chain()

    @property
    def path(self) -> Path:
        return self._log_path

    @property
    def event_count(self) -> int:
        return self._event_count

    def _load_chain(self) -> None:
        """Pick up the tail of an existing chain."""
        if not self._log_path.exists():
            return

        try:
            with open(self._log_path, "r", encoding="utf-8") as f:
                for number, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        event = json.loads(line)
                        self._last_hash = event["event_hash"]
                    except (json.JSONDecodeError, KeyError, TypeError) as e:
                        raise CorruptRecordError(f"Unreadable audit entry on line {number}", self._log_path) from e
                    self._event_count += 1
        except OSError as e:
            raise FileIOError(f"Cannot read audit log: {e.strerror or e}", self._log_path) from e

    def log(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity,
        description: str,
        details: Optional[dict[str, Any]] = None,
    ) -> str:
        """
        Append an audit event.

        Returns:
            Event ID

        Raises:
            FileIOError: If the event cannot be written
        """
        event = AuditEvent(
            event_type=event_type,
            severity=severity,
            timestamp=datetime.now(timezone.utc),
            description=description,
            details=details or {},
        )

        with self._lock:
            event.compute_hash(self._last_hash)
            try:
                with open(self._log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(event.to_dict(), sort_keys=True) + "\n")
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise FileIOError(f"Cannot append audit event: {e.strerror or e}", self._log_path) from e

            self._last_hash = event.event_hash
            self._event_count += 1

        self._log.debug("Audit %s %s (%s)", event.event_id, event_type.value, severity.value)
        return event.event_id

    def verify_integrity(self) -> tuple[bool, int]:
        """
        Verify the chain: links and recomputed hashes.

        Returns:
            Tuple of (is_valid, number of events verified before any break)
        """
        if not self._log_path.exists():
            return True, 0

        previous_hash = GENESIS_HASH
        count = 0

        with self._lock, open(self._log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    stored = json.loads(line)
                    event = AuditEvent.from_dict(stored)
                except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                    self._log.warning("Audit log %s: unparseable entry after %d events", self._log_path, count)
                    return False, count

                if event.previous_hash != previous_hash:
                    self._log.warning("Audit log %s: chain broken after %d events", self._log_path, count)
                    return False, count

                expected = event.event_hash
                if event.compute_hash(previous_hash) != expected:
                    self._log.warning("Audit log %s: event %s was altered", self._log_path, event.event_id)
                    return False, count

                previous_hash = expected
                count += 1

        return True, count

    def get_events(
        self,
        since: Optional[datetime] = None,
        event_type: Optional[AuditEventType] = None,
        severity: Optional[AuditSeverity] = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Get filtered events (read-only)."""
        events: list[dict[str, Any]] = []

        if not self._log_path.exists():
            return events

        with open(self._log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue

                event = json.loads(line)

                if since and datetime.fromisoformat(event["timestamp"]) < since:
                    continue
                if event_type and event["event_type"] != event_type.value:
                    continue
                if severity and event["severity"] != severity.value:
                    continue

                events.append(event)
                if len(events) >= limit:
                    break

        return events
