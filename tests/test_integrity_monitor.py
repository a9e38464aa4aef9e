"""
Tests for baseline creation and verification.
"""

import logging
import os
import sys
import threading
from pathlib import Path

import pytest

from filetrust.core.errors import NoBaselineError, NotFoundError
from filetrust.core.integrity.baseline import BaselineStore
from filetrust.core.integrity.hashing import DigestAlgorithm, HashEngine
from filetrust.core.integrity.monitor import (
    IntegrityMonitor,
    ModificationStatus,
    MonitorState,
    ProgressTracker,
)
from filetrust.security.audit import AuditEventType, TamperAwareAuditLog


# ===========================================================================
# Progress
# ===========================================================================

@pytest.mark.unit
class TestProgressTracker:
    """Tests for ProgressTracker."""

    def test_counts_are_monotonic_under_threads(self):
        seen = []
        tracker = ProgressTracker(200, lambda done, total, item: seen.append((done, total)))

        threads = [threading.Thread(target=lambda: [tracker.advance() for _ in range(50)]) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert [done for done, _ in seen] == list(range(1, 201))
        assert {total for _, total in seen} == {200}
        assert tracker.processed == 200

    def test_failing_sink_is_dropped(self, caplog):
        calls = []

        def sink(done, total, item):
            calls.append(done)
            raise RuntimeError("observer broke")

        tracker = ProgressTracker(3, sink)
        with caplog.at_level(logging.ERROR, logger="filetrust.integrity"):
            for _ in range(3):
                tracker.advance()

        assert calls == [1]
        assert tracker.processed == 3


# ===========================================================================
# Baseline creation
# ===========================================================================

@pytest.mark.unit
class TestEnable:
    """Tests for IntegrityMonitor.enable."""

    def test_directory_baseline(self, monitor: IntegrityMonitor, sample_tree: Path):
        summary = monitor.enable(sample_tree)

        assert summary.file_count == 3
        assert summary.candidate_count == 3
        assert not summary.is_partial
        assert summary.algorithm is DigestAlgorithm.SHA256
        assert summary.root_path == sample_tree

        baseline = monitor.baseline(sample_tree)
        expected = HashEngine().digest(b"alpha\n", DigestAlgorithm.SHA256)
        assert baseline.records[sample_tree / "a.txt"].hash == expected
        assert baseline.records[sample_tree / "a.txt"].size == 6

    def test_non_recursive(self, monitor: IntegrityMonitor, sample_tree: Path):
        summary = monitor.enable(sample_tree, recurse=False)
        assert summary.file_count == 2
        assert not monitor.baseline(sample_tree).contains(sample_tree / "sub" / "c.txt")

    def test_single_file(self, monitor: IntegrityMonitor, sample_tree: Path):
        target = sample_tree / "a.txt"
        summary = monitor.enable(target, DigestAlgorithm.SHA512)
        assert summary.file_count == 1
        assert monitor.baseline(target).records[target].algorithm is DigestAlgorithm.SHA512

    def test_empty_directory(self, monitor: IntegrityMonitor, temp_dir: Path):
        empty = temp_dir / "empty"
        empty.mkdir()
        summary = monitor.enable(empty)
        assert summary.file_count == 0
        assert monitor.verify(empty).is_clean

    def test_missing_path(self, monitor: IntegrityMonitor, temp_dir: Path):
        with pytest.raises(NotFoundError):
            monitor.enable(temp_dir / "nope")

    def test_legacy_algorithm_warns(self, monitor: IntegrityMonitor, sample_tree: Path, caplog):
        with caplog.at_level(logging.WARNING, logger="filetrust.integrity"):
            monitor.enable(sample_tree, "MD5")
        assert any("legacy" in r.getMessage() for r in caplog.records)

    def test_persists_to_store(self, monitor: IntegrityMonitor, store: BaselineStore, sample_tree: Path):
        monitor.enable(sample_tree)
        assert store.exists(sample_tree)
        assert len(store.load(sample_tree)) == 3

    def test_state_transitions(self, monitor: IntegrityMonitor, sample_tree: Path):
        assert monitor.state(sample_tree) is MonitorState.UNINITIALIZED
        monitor.enable(sample_tree)
        assert monitor.state(sample_tree) is MonitorState.BASELINE_ACTIVE
        monitor.verify(sample_tree)
        assert monitor.state(sample_tree) is MonitorState.BASELINE_ACTIVE

    def test_progress_reaches_total(self, monitor: IntegrityMonitor, sample_tree: Path):
        updates = []
        monitor.enable(sample_tree, progress=lambda done, total, item: updates.append((done, total, item)))

        assert [u[0] for u in updates] == [1, 2, 3]
        assert all(u[1] == 3 for u in updates)
        assert {u[2] for u in updates} == {sample_tree / "a.txt", sample_tree / "b.txt", sample_tree / "sub" / "c.txt"}

    def test_store_inside_root_is_skipped(self, sample_tree: Path):
        monitor = IntegrityMonitor(BaselineStore(sample_tree / ".filetrust"))
        monitor.enable(sample_tree)
        # Second run must not pick up the first run's record file
        summary = monitor.enable(sample_tree)
        assert summary.file_count == 3

    @pytest.mark.skipif(sys.platform == "win32" or os.geteuid() == 0, reason="needs POSIX permissions as non-root")
    def test_unreadable_file_makes_partial_baseline(self, monitor: IntegrityMonitor, sample_tree: Path):
        locked = sample_tree / "b.txt"
        locked.chmod(0)
        try:
            summary = monitor.enable(sample_tree)
        finally:
            locked.chmod(0o600)

        assert summary.is_partial
        assert summary.file_count == 2
        assert summary.candidate_count == 3
        assert [w.path for w in summary.warnings] == [locked]


# ===========================================================================
# Verification
# ===========================================================================

@pytest.mark.unit
class TestVerify:
    """Tests for IntegrityMonitor.verify."""

    def test_unchanged_tree_is_clean(self, monitor: IntegrityMonitor, sample_tree: Path):
        monitor.enable(sample_tree)
        report = monitor.verify(sample_tree)

        assert report.is_clean
        assert report.total_files == 3
        assert report.verified_files == 3
        assert report.modifications == ()

    def test_modified_and_deleted(self, monitor: IntegrityMonitor, sample_tree: Path):
        monitor.enable(sample_tree)
        original = monitor.baseline(sample_tree).records[sample_tree / "a.txt"].hash

        (sample_tree / "a.txt").write_bytes(b"tampered\n")
        (sample_tree / "sub" / "c.txt").unlink()

        report = monitor.verify(sample_tree)
        assert not report.is_clean
        assert report.total_files == 3
        assert report.verified_files == 1
        assert [m.path for m in report.modifications] == [sample_tree / "a.txt", sample_tree / "sub" / "c.txt"]

        modified, deleted = report.modifications
        assert modified.status is ModificationStatus.MODIFIED
        assert modified.baseline_hash == original
        assert modified.current_hash == HashEngine().digest(b"tampered\n", DigestAlgorithm.SHA256)
        assert deleted.status is ModificationStatus.DELETED
        assert deleted.current_hash is None

    def test_new_files_are_not_reported(self, monitor: IntegrityMonitor, sample_tree: Path):
        monitor.enable(sample_tree)
        (sample_tree / "new.txt").write_bytes(b"new\n")
        report = monitor.verify(sample_tree)
        assert report.is_clean
        assert report.total_files == 3

    def test_touch_without_content_change_is_clean(self, monitor: IntegrityMonitor, sample_tree: Path):
        monitor.enable(sample_tree)
        os.utime(sample_tree / "a.txt", (0, 0))
        assert monitor.verify(sample_tree).is_clean

    def test_verify_never_rewrites_baseline(self, monitor: IntegrityMonitor, store: BaselineStore, sample_tree: Path):
        monitor.enable(sample_tree)
        before = store.record_path(sample_tree).read_bytes()
        (sample_tree / "a.txt").write_bytes(b"changed\n")
        monitor.verify(sample_tree)
        monitor.verify(sample_tree)
        assert store.record_path(sample_tree).read_bytes() == before

    def test_without_baseline(self, monitor: IntegrityMonitor, sample_tree: Path):
        with pytest.raises(NoBaselineError):
            monitor.verify(sample_tree)

    def test_loads_from_store_in_new_monitor(self, store: BaselineStore, sample_tree: Path):
        IntegrityMonitor(store).enable(sample_tree)
        (sample_tree / "b.txt").write_bytes(b"changed\n")

        fresh = IntegrityMonitor(store)
        report = fresh.verify(sample_tree)
        assert [m.path for m in report.modified] == [sample_tree / "b.txt"]
        assert fresh.state(sample_tree) is MonitorState.BASELINE_ACTIVE

    def test_forget_keeps_stored_record(self, monitor: IntegrityMonitor, store: BaselineStore, sample_tree: Path):
        monitor.enable(sample_tree)
        monitor.forget(sample_tree)
        assert monitor.state(sample_tree) is MonitorState.UNINITIALIZED
        assert store.exists(sample_tree)
        assert monitor.verify(sample_tree).is_clean

    def test_rebaseline_accepts_changes(self, monitor: IntegrityMonitor, sample_tree: Path):
        monitor.enable(sample_tree)
        (sample_tree / "a.txt").write_bytes(b"accepted\n")
        monitor.enable(sample_tree)
        assert monitor.verify(sample_tree).is_clean

    def test_report_to_dict(self, monitor: IntegrityMonitor, sample_tree: Path):
        monitor.enable(sample_tree)
        (sample_tree / "b.txt").unlink()
        data = monitor.verify(sample_tree).to_dict()
        assert data["totalFiles"] == 3
        assert data["verifiedFiles"] == 2
        assert data["modifications"][0]["status"] == "Deleted"
        assert "currentHash" not in data["modifications"][0]


@pytest.mark.integration
class TestMonitorAudit:
    """Audit trail entries written by the monitor."""

    def test_events_recorded(self, store: BaselineStore, audit_log: TamperAwareAuditLog, sample_tree: Path):
        monitor = IntegrityMonitor(store, audit_log=audit_log)
        monitor.enable(sample_tree)
        monitor.verify(sample_tree)
        (sample_tree / "a.txt").write_bytes(b"x")
        monitor.verify(sample_tree)

        types = [e["event_type"] for e in audit_log.get_events()]
        assert types == [
            AuditEventType.BASELINE_CREATED.value,
            AuditEventType.INTEGRITY_VERIFIED.value,
            AuditEventType.INTEGRITY_VIOLATION.value,
        ]
        assert audit_log.verify_integrity() == (True, 3)
