"""
Integrity Monitor
=================

Creates baselines over files or directory trees and verifies the current
state of the filesystem against them.

State per root:
    UNINITIALIZED --enable--> BASELINE_ACTIVE --verify--> VERIFYING --> BASELINE_ACTIVE

Hashing is spread over a bounded thread pool; per-file failures during
baseline creation exclude the file and are reported as warnings rather
than aborting the batch. Verification never writes to the store.
"""

from __future__ import annotations

import hmac
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from filetrust.core.errors import FileIOError, FileTrustError, NoBaselineError, NotFoundError
from filetrust.core.integrity.baseline import Baseline, BaselineStore, FileDigestRecord
from filetrust.core.integrity.hashing import DigestAlgorithm, HashEngine
from filetrust.utils.paths import is_path_within_directory, normalize_path

if TYPE_CHECKING:
    from filetrust.security.audit import TamperAwareAuditLog


ProgressSink = Callable[[int, int, Optional[Path]], None]


class MonitorState(Enum):
    """Lifecycle of a monitored root."""
    UNINITIALIZED = "Uninitialized"
    BASELINE_ACTIVE = "BaselineActive"
    VERIFYING = "Verifying"


class ModificationStatus(Enum):
    """How a baselined file differs from its baseline."""
    MODIFIED = "Modified"
    DELETED = "Deleted"


@dataclass(frozen=True, slots=True)
class FileWarning:
    """A file (or directory) that could not be processed."""
    path: Path
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"path": str(self.path), "reason": self.reason}


@dataclass(frozen=True, slots=True)
class ModificationRecord:
    """
    One detected change.

    ``current_hash`` is None for deleted files.
    """
    path: Path
    status: ModificationStatus
    baseline_hash: str
    current_hash: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": str(self.path),
            "status": self.status.value,
            "baselineHash": self.baseline_hash,
        }
        if self.current_hash is not None:
            data["currentHash"] = self.current_hash
        return data


@dataclass(frozen=True, slots=True)
class BaselineSummary:
    """Result of ``IntegrityMonitor.enable``."""
    root_path: Path
    file_count: int
    candidate_count: int
    algorithm: DigestAlgorithm
    baseline_date: datetime
    warnings: tuple[FileWarning, ...] = ()

    @property
    def is_partial(self) -> bool:
        """True when some candidate files were excluded."""
        return self.file_count < self.candidate_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "rootPath": str(self.root_path),
            "fileCount": self.file_count,
            "candidateCount": self.candidate_count,
            "algorithm": self.algorithm.value,
            "baselineDate": self.baseline_date.isoformat(),
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True, slots=True)
class IntegrityReport:
    """
    Result of a verification pass.

    ``modifications`` is sorted by path. Files that could not be read
    are listed in ``errors`` and counted as neither verified nor modified.
    """
    path: Path
    total_files: int
    verified_files: int
    modifications: tuple[ModificationRecord, ...]
    verification_date: datetime
    errors: tuple[FileWarning, ...] = field(default=())

    @property
    def is_clean(self) -> bool:
        return not self.modifications and not self.errors

    @property
    def modified(self) -> list[ModificationRecord]:
        return [m for m in self.modifications if m.status is ModificationStatus.MODIFIED]

    @property
    def deleted(self) -> list[ModificationRecord]:
        return [m for m in self.modifications if m.status is ModificationStatus.DELETED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "totalFiles": self.total_files,
            "verifiedFiles": self.verified_files,
            "modifications": [m.to_dict() for m in self.modifications],
            "verificationDate": self.verification_date.isoformat(),
            "errors": [e.to_dict() for e in self.errors],
        }


class ProgressTracker:
    """
    Thread-safe monotonic progress counter.

    The sink is invoked under the tracker's lock, so observers see
    ``processed`` strictly increasing even when workers finish out of
    order. A sink that raises is logged and then ignored.
    """

    __slots__ = ("_total", "_processed", "_sink", "_lock", "_log")

    def __init__(self, total: int, sink: Optional[ProgressSink] = None) -> None:
        self._total = total
        self._processed = 0
        self._sink = sink
        self._lock = threading.Lock()
        self._log = logging.getLogger("filetrust.integrity")

    @property
    def total(self) -> int:
        return self._total

    @property
    def processed(self) -> int:
        with self._lock:
            return self._processed

    def advance(self, item: Optional[Path] = None) -> int:
        with self._lock:
            self._processed += 1
            if self._sink is not None:
                try:
                    self._sink(self._processed, self._total, item)
                except Exception:
                    self._log.exception("Progress sink failed; further progress updates dropped")
                    self._sink = None
            return self._processed


class IntegrityMonitor:
    """
    Baseline creation and verification over files and directory trees.

    Baselines are held in memory per monitor instance and mirrored to
    the injected BaselineStore, so independent monitors can coexist.

    Usage:
        monitor = IntegrityMonitor(BaselineStore(config.paths.baseline_dir))
        summary = monitor.enable(Path("~/contracts"), DigestAlgorithm.SHA256)
        report = monitor.verify(Path("~/contracts"))
        for change in report.modifications:
            print(change.path, change.status.value)
    """

    def __init__(
        self,
        store: BaselineStore,
        hash_engine: Optional[HashEngine] = None,
        max_workers: Optional[int] = None,
        audit_log: Optional["TamperAwareAuditLog"] = None,
    ) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self._store = store
        self._engine = hash_engine or HashEngine()
        self._max_workers = max_workers or os.cpu_count() or 1
        self._audit = audit_log
        self._baselines: dict[Path, Baseline] = {}
        self._states: dict[Path, MonitorState] = {}
        self._lock = threading.Lock()
        self._log = logging.getLogger("filetrust.integrity")

    @property
    def store(self) -> BaselineStore:
        return self._store

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def state(self, path: Path | str) -> MonitorState:
        """Return the in-process state of a root."""
        root = normalize_path(path)
        with self._lock:
            return self._states.get(root, MonitorState.UNINITIALIZED)

    def baseline(self, path: Path | str) -> Baseline:
        """
        Return the baseline for a root, loading it from the store if needed.

        Raises:
            NoBaselineError: If neither memory nor the store has one
            CorruptRecordError: If the stored record is malformed
        """
        root = normalize_path(path)
        with self._lock:
            cached = self._baselines.get(root)
        if cached is not None:
            return cached

        try:
            loaded = self._store.load(root)
        except NotFoundError:
            raise NoBaselineError("No baseline exists for this path", root) from None

        with self._lock:
            # A concurrent enable() wins over a stale load
            current = self._baselines.setdefault(root, loaded)
            self._states.setdefault(root, MonitorState.BASELINE_ACTIVE)
        return current

    def forget(self, path: Path | str) -> None:
        """Drop the in-memory copy of a baseline. The stored record is kept."""
        root = normalize_path(path)
        with self._lock:
            self._baselines.pop(root, None)
            self._states.pop(root, None)

    # ------------------------------------------------------------------
    # Baseline creation
    # ------------------------------------------------------------------

    def enable(
        self,
        path: Path | str,
        algorithm: DigestAlgorithm | str = DigestAlgorithm.SHA256,
        recurse: bool = True,
        progress: Optional[ProgressSink] = None,
    ) -> BaselineSummary:
        """
        Create (or replace) the baseline for a file or directory.

        Args:
            path: File or directory to baseline
            algorithm: Digest algorithm for every record
            recurse: Descend into subdirectories
            progress: Optional ``(processed, total, current_item)`` callback

        Returns:
            BaselineSummary with processed vs. candidate counts

        Raises:
            NotFoundError: If the path does not exist
            FileIOError: If the baseline cannot be persisted
        """
        root = normalize_path(path)
        algorithm = DigestAlgorithm.parse(algorithm)

        if not root.exists():
            raise NotFoundError("Cannot baseline a missing path", root)

        if algorithm.is_legacy:
            self._log.warning(
                "%s is retained for legacy compatibility; prefer SHA256 for new baselines",
                algorithm.value,
            )

        warnings: list[FileWarning] = []
        candidates = self._enumerate(root, recurse, warnings)
        baseline_date = datetime.now(timezone.utc)

        self._log.info("Creating %s baseline for %s (%d files)", algorithm.value, root, len(candidates))

        records: list[FileDigestRecord] = []
        tracker = ProgressTracker(len(candidates), progress)

        for file_path, outcome in self._run_parallel(
            candidates,
            lambda p: self._make_record(p, algorithm, baseline_date),
            tracker,
        ):
            if isinstance(outcome, FileTrustError):
                self._log.warning("Excluding %s from baseline: %s", file_path, outcome)
                warnings.append(FileWarning(file_path, str(outcome)))
            else:
                records.append(outcome)

        baseline = Baseline(root, algorithm, baseline_date, records)
        self._store.save(root, baseline)

        with self._lock:
            self._baselines[root] = baseline
            self._states[root] = MonitorState.BASELINE_ACTIVE

        summary = BaselineSummary(
            root_path=root,
            file_count=len(baseline),
            candidate_count=len(candidates),
            algorithm=algorithm,
            baseline_date=baseline_date,
            warnings=tuple(sorted(warnings, key=lambda w: str(w.path))),
        )

        if summary.is_partial:
            self._log.warning(
                "Partial baseline for %s: %d of %d files processed",
                root, summary.file_count, summary.candidate_count,
            )
        else:
            self._log.info("Baseline for %s created with %d files", root, summary.file_count)

        self._audit_event("BASELINE_CREATED", f"Baseline created for {root}", summary.to_dict())
        return summary

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(
        self,
        path: Path | str,
        progress: Optional[ProgressSink] = None,
    ) -> IntegrityReport:
        """
        Compare the filesystem against the baseline for a root.

        Read-only with respect to the stored baseline; call enable()
        again to re-baseline.

        Raises:
            NoBaselineError: If the root has never been baselined
            CorruptRecordError: If the stored record is malformed
        """
        root = normalize_path(path)
        baseline = self.baseline(root)

        with self._lock:
            self._states[root] = MonitorState.VERIFYING

        try:
            records = list(baseline)
            tracker = ProgressTracker(len(records), progress)
            modifications: list[ModificationRecord] = []
            errors: list[FileWarning] = []

            for file_path, outcome in self._run_parallel(
                [r.path for r in records],
                lambda p: self._check_record(baseline.records[p]),
                tracker,
            ):
                if isinstance(outcome, FileTrustError):
                    self._log.warning("Cannot verify %s: %s", file_path, outcome)
                    errors.append(FileWarning(file_path, str(outcome)))
                elif outcome is not None:
                    modifications.append(outcome)
        finally:
            with self._lock:
                if self._states.get(root) is MonitorState.VERIFYING:
                    self._states[root] = MonitorState.BASELINE_ACTIVE

        modifications.sort(key=lambda m: str(m.path))
        errors.sort(key=lambda e: str(e.path))

        report = IntegrityReport(
            path=root,
            total_files=len(records),
            verified_files=len(records) - len(modifications) - len(errors),
            modifications=tuple(modifications),
            verification_date=datetime.now(timezone.utc),
            errors=tuple(errors),
        )

        if report.modifications:
            self._log.warning(
                "Integrity violation under %s: %d modified, %d deleted",
                root, len(report.modified), len(report.deleted),
            )
            self._audit_event(
                "INTEGRITY_VIOLATION",
                f"Integrity violation under {root}",
                report.to_dict(),
                critical=True,
            )
        else:
            self._log.info("Verified %d of %d files under %s", report.verified_files, report.total_files, root)
            self._audit_event("INTEGRITY_VERIFIED", f"Integrity verified for {root}", {
                "path": str(root),
                "totalFiles": report.total_files,
                "verifiedFiles": report.verified_files,
            })

        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _enumerate(self, root: Path, recurse: bool, warnings: list[FileWarning]) -> list[Path]:
        if not root.is_dir():
            return [root]

        store_dir = normalize_path(self._store.directory)
        # Never baseline our own record files
        exclude = store_dir if store_dir != root and is_path_within_directory(store_dir, root) else None

        def on_error(error: OSError) -> None:
            warnings.append(FileWarning(Path(error.filename or root), f"Cannot list directory: {error.strerror}"))

        files: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            current = Path(dirpath)
            if exclude is not None and is_path_within_directory(current, exclude):
                dirnames.clear()
                continue
            files.extend(
                current / name for name in filenames
                if (current / name).is_file()
            )
            if not recurse:
                break
            dirnames.sort()

        return sorted(files)

    def _make_record(self, path: Path, algorithm: DigestAlgorithm, baseline_date: datetime) -> FileDigestRecord:
        try:
            stat = path.stat()
        except FileNotFoundError as e:
            raise NotFoundError("File disappeared before hashing", path) from e
        except OSError as e:
            raise FileIOError(f"Cannot stat file: {e.strerror}", path) from e

        digest = self._engine.digest_file(path, algorithm)
        return FileDigestRecord(
            path=path,
            hash=digest,
            algorithm=algorithm,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            baseline_date=baseline_date,
        )

    def _check_record(self, record: FileDigestRecord) -> Optional[ModificationRecord]:
        if not record.path.is_file():
            return ModificationRecord(record.path, ModificationStatus.DELETED, record.hash)

        try:
            current = self._engine.digest_file(record.path, record.algorithm)
        except NotFoundError:
            # Removed between the existence check and the read
            return ModificationRecord(record.path, ModificationStatus.DELETED, record.hash)

        if hmac.compare_digest(current.lower(), record.hash.lower()):
            return None
        return ModificationRecord(record.path, ModificationStatus.MODIFIED, record.hash, current)

    def _run_parallel(
        self,
        paths: list[Path],
        task: Callable[[Path], Any],
        tracker: ProgressTracker,
    ) -> Iterable[tuple[Path, Any]]:
        """
        Run ``task`` over ``paths`` on a bounded pool.

        Yields ``(path, result)`` in completion order; a FileTrustError
        raised by the task is yielded as the result instead of propagating.
        """
        if not paths:
            return

        workers = min(self._max_workers, len(paths))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="filetrust-hash") as pool:
            futures = {pool.submit(task, p): p for p in paths}
            for future in as_completed(futures):
                file_path = futures[future]
                try:
                    result = future.result()
                except FileTrustError as e:
                    result = e
                tracker.advance(file_path)
                yield file_path, result

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
