"""
Baselines and Baseline Persistence
==================================

A baseline is a point-in-time map of file path -> content digest for one
root (a directory or a single file). Baselines are persisted as one JSON
document per root so they survive process restarts.

Record format:
    {
      "<root-token>": {
        "/abs/path/file1": {
          "Path": "/abs/path/file1",
          "Hash": "<hex>",
          "Algorithm": "SHA256",
          "BaselineDate": "<ISO8601>",
          "Size": 1234,
          "LastModified": "<ISO8601>"
        }
      }
    }
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from filetrust.core.errors import CorruptRecordError, FileIOError, NotFoundError
from filetrust.core.integrity.hashing import DigestAlgorithm
from filetrust.utils.paths import atomic_write, is_path_within_directory, normalize_path, root_token
from filetrust.utils.validators import ValidationError


RECORD_SUFFIX = ".json"

_HEX_RE = re.compile(r"[0-9a-fA-F]+")


@dataclass(frozen=True, slots=True)
class FileDigestRecord:
    """
    Digest of one monitored file. Immutable once written.

    Attributes:
        path: Absolute path of the file
        hash: Lowercase hex digest of the content
        algorithm: Digest algorithm used
        size: File size in bytes when baselined
        last_modified: File modification time when baselined
        baseline_date: When the record was created
    """
    path: Path
    hash: str
    algorithm: DigestAlgorithm
    size: int
    last_modified: datetime
    baseline_date: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "Path": str(self.path),
            "Hash": self.hash,
            "Algorithm": self.algorithm.value,
            "BaselineDate": self.baseline_date.isoformat(),
            "Size": self.size,
            "LastModified": self.last_modified.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FileDigestRecord":
        """
        Build a record from its persisted form.

        Raises:
            KeyError, TypeError, ValueError: If the data is malformed
        """
        size = data["Size"]
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValueError(f"Invalid size: {size!r}")

        algorithm = DigestAlgorithm.parse(data["Algorithm"])
        digest = data["Hash"]
        if not isinstance(digest, str) or not _HEX_RE.fullmatch(digest):
            raise ValueError(f"Invalid digest: {digest!r}")
        if len(digest) != algorithm.hex_length:
            raise ValueError(f"{algorithm.value} digest must be {algorithm.hex_length} hex characters")

        return cls(
            path=normalize_path(data["Path"]),
            hash=digest.lower(),
            algorithm=algorithm,
            size=size,
            last_modified=datetime.fromisoformat(data["LastModified"]),
            baseline_date=datetime.fromisoformat(data["BaselineDate"]),
        )


class Baseline:
    """
    Immutable set of FileDigestRecords for one root.

    Invariant: every record's path is the root itself or a descendant.
    A baseline is replaced wholesale, never updated in place.
    """

    __slots__ = ("_root", "_algorithm", "_created_at", "_records")

    def __init__(
        self,
        root: Path | str,
        algorithm: DigestAlgorithm,
        created_at: datetime,
        records: Mapping[Path, FileDigestRecord] | list[FileDigestRecord] = (),
    ) -> None:
        self._root = normalize_path(root)
        self._algorithm = algorithm
        self._created_at = created_at

        items = records.values() if isinstance(records, Mapping) else records
        by_path: dict[Path, FileDigestRecord] = {}
        for record in items:
            if not is_path_within_directory(record.path, self._root):
                raise ValueError(f"{record.path} is outside baseline root {self._root}")
            by_path[record.path] = record

        self._records = MappingProxyType(dict(sorted(by_path.items())))

    @property
    def root(self) -> Path:
        return self._root

    @property
    def algorithm(self) -> DigestAlgorithm:
        return self._algorithm

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def records(self) -> Mapping[Path, FileDigestRecord]:
        return self._records

    def contains(self, path: Path | str) -> bool:
        return normalize_path(path) in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[FileDigestRecord]:
        return iter(self._records.values())

    def __repr__(self) -> str:
        return f"Baseline(root={str(self._root)!r}, files={len(self._records)}, algorithm={self._algorithm.value})"


class BaselineStore:
    """
    Durable storage of baselines, one JSON file per root.

    Record files are named from a sanitized, hashed token of the root
    path, never the raw path.

    Usage:
        store = BaselineStore(config.paths.baseline_dir)
        store.save(root, baseline)
        baseline = store.load(root)
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)
        self._log = logging.getLogger("filetrust.integrity.store")

    @property
    def directory(self) -> Path:
        return self._directory

    def record_path(self, root: Path | str) -> Path:
        """Return the record file used for a root."""
        return self._directory / f"{root_token(root)}{RECORD_SUFFIX}"

    def exists(self, root: Path | str) -> bool:
        return self.record_path(root).is_file()

    def save(self, root: Path | str, baseline: Baseline) -> Path:
        """
        Persist a baseline, replacing any prior record for the root.

        Returns:
            Path of the written record

        Raises:
            FileIOError: If the record cannot be written
        """
        root = normalize_path(root)
        if root != baseline.root:
            raise ValidationError(f"Baseline root {baseline.root} does not match {root}")

        token = root_token(root)
        document = {
            token: {
                str(path): record.to_dict()
                for path, record in baseline.records.items()
            }
        }
        target = self.record_path(root)

        try:
            with atomic_write(target) as handle:
                handle.write(json.dumps(document, indent=2).encode("utf-8"))
        except OSError as e:
            raise FileIOError(f"Cannot write baseline record: {e}", target) from e

        self._log.debug("Saved baseline for %s (%d files) to %s", root, len(baseline), target.name)
        return target

    def load(self, root: Path | str) -> Baseline:
        """
        Load the baseline for a root.

        Raises:
            NotFoundError: If no record exists for the root
            CorruptRecordError: If the record cannot be deserialized
            FileIOError: If the record cannot be read
        """
        root = normalize_path(root)
        target = self.record_path(root)

        try:
            raw = target.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError("No baseline record", target) from e
        except OSError as e:
            raise FileIOError(f"Cannot read baseline record: {e}", target) from e

        try:
            document = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptRecordError(f"Baseline record is not valid JSON: {e}", target) from e

        return self._parse_document(root, document, target)

    def delete(self, root: Path | str) -> bool:
        """Remove the record for a root. Returns False if there was none."""
        target = self.record_path(root)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FileIOError(f"Cannot delete baseline record: {e}", target) from e
        return True

    def list_roots(self) -> list[Path]:
        """
        Return the roots of all readable records in the store.

        Records that cannot be parsed are logged and skipped. Empty
        baselines carry no path to recover their root from and are
        not listed.
        """
        if not self._directory.is_dir():
            return []

        roots: list[Path] = []
        for candidate in sorted(self._directory.glob(f"*{RECORD_SUFFIX}")):
            try:
                document = json.loads(candidate.read_text(encoding="utf-8"))
                entries = next(iter(document.values()))
                first = next(iter(entries.values()), None)
                if first is None:
                    continue
                path = normalize_path(first["Path"])
            except (OSError, ValueError, AttributeError, KeyError, TypeError, StopIteration) as e:
                self._log.warning("Skipping unreadable baseline record %s: %s", candidate.name, e)
                continue
            # The root is not stored explicitly; recover it from the token
            token = candidate.name[: -len(RECORD_SUFFIX)]
            for parent in (path, *path.parents):
                if root_token(parent) == token:
                    roots.append(parent)
                    break
        return roots

    @staticmethod
    def _parse_document(root: Path, document: Any, target: Path) -> Baseline:
        token = root_token(root)

        if not isinstance(document, dict) or token not in document:
            raise CorruptRecordError("Baseline record has no entry for its root", target)

        entries = document[token]
        if not isinstance(entries, dict):
            raise CorruptRecordError("Baseline entries must be an object", target)

        records: list[FileDigestRecord] = []
        for key, value in entries.items():
            try:
                record = FileDigestRecord.from_dict(value)
            except (KeyError, TypeError, ValueError) as e:
                raise CorruptRecordError(f"Malformed entry for {key}: {e}", target) from e
            if normalize_path(key) != record.path:
                raise CorruptRecordError(f"Entry key {key} does not match its path", target)
            records.append(record)

        algorithms = {record.algorithm for record in records}
        if len(algorithms) > 1:
            raise CorruptRecordError("Baseline mixes digest algorithms", target)

        algorithm = algorithms.pop() if algorithms else DigestAlgorithm.SHA256
        created_at = min(
            (record.baseline_date for record in records),
            default=datetime.fromtimestamp(target.stat().st_mtime).astimezone(),
        )

        try:
            return Baseline(root, algorithm, created_at, records)
        except ValueError as e:
            raise CorruptRecordError(str(e), target) from e
