"""Fingerprint records: which builds produced and consumed a file digest."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from buildcopy.core.builds import Build


@dataclass
class FingerprintRecord:
    """
    Tracks one file digest.

    Attributes:
        digest: Hex MD5 digest of the file content.
        filename: Name of the file when it was first recorded.
        original: (job, number) of the build the file originated from.
        usages: (job, number) of every build associated with the digest.
    """

    digest: str
    filename: str
    original: tuple[str, int] | None = None
    usages: set[tuple[str, int]] = field(default_factory=set)

    def associate(self, build: Build) -> None:
        """Record that `build` uses this file."""
        self.usages.add(build.key)

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "original": list(self.original) if self.original else None,
            "usages": sorted([job, number] for job, number in self.usages),
        }

    @classmethod
    def from_dict(cls, digest: str, data: dict) -> FingerprintRecord:
        original = data.get("original")
        return cls(
            digest=digest,
            filename=data.get("filename", ""),
            original=(original[0], int(original[1])) if original else None,
            usages={(job, int(number)) for job, number in data.get("usages", [])},
        )


class FingerprintStore(Protocol):
    """Interface for fingerprint bookkeeping used by copy operations."""

    def get_or_create(self, src: Build | None, filename: str, digest: str) -> FingerprintRecord:
        """Return the record for `digest`, creating it with `src` as origin."""
        ...


class FingerprintMap:
    """In-memory fingerprint store, optionally persisted as JSON."""

    def __init__(self, records: dict[str, FingerprintRecord] | None = None):
        self.records: dict[str, FingerprintRecord] = records or {}

    def get_or_create(self, src: Build | None, filename: str, digest: str) -> FingerprintRecord:
        record = self.records.get(digest)
        if record is None:
            record = FingerprintRecord(digest=digest, filename=filename, original=src.key if src else None)
            self.records[digest] = record
        return record

    def get(self, digest: str) -> FingerprintRecord | None:
        return self.records.get(digest)

    def __len__(self) -> int:
        return len(self.records)

    @classmethod
    def load(cls, path: Path) -> FingerprintMap:
        """Load records from `path`; a missing file yields an empty map."""
        if not path.is_file():
            return cls()
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls({digest: FingerprintRecord.from_dict(digest, entry) for digest, entry in data.items()})

    def save(self, path: Path) -> None:
        """Write records to `path` as JSON."""
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {digest: record.to_dict() for digest, record in sorted(self.records.items())}
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
