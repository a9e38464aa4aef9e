"""
FileTrust Integrity Module
==========================

Baselines of file digests and verification against them.

Components:
- hashing.py: Streaming digests (MD5, SHA1, SHA256, SHA512)
- baseline.py: Baseline records and their per-root persistence
- monitor.py: Parallel baselining and verification
"""

from filetrust.core.integrity.hashing import DigestAlgorithm, HashEngine
from filetrust.core.integrity.baseline import Baseline, BaselineStore, FileDigestRecord
from filetrust.core.integrity.monitor import (
    BaselineSummary,
    IntegrityMonitor,
    IntegrityReport,
    ModificationRecord,
    ModificationStatus,
    MonitorState,
)

__all__ = [
    "DigestAlgorithm",
    "HashEngine",
    "Baseline",
    "BaselineStore",
    "FileDigestRecord",
    "BaselineSummary",
    "IntegrityMonitor",
    "IntegrityReport",
    "ModificationRecord",
    "ModificationStatus",
    "MonitorState",
]
