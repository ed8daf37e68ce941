"""Measurement result types shared by the coordinator, aggregator and report."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from versioning.models import ResolvedDependency


class DiffKind(Enum):
    """Whether a dependency is being added to or removed from the package."""
    ADDED = "added"
    REMOVED = "removed"


@dataclass
class MeasurementResult:
    """Installed size and dependency counts of one sandboxed install.

    ``subdependency_count`` is None when the lockfile could not be parsed;
    ``downloads_last_week`` is None when the downloads API has no figure.
    """
    installed_size_bytes: int = 0
    subdependency_count: Optional[int] = None
    downloads_last_week: Optional[int] = None
    total_downloads: int = 0
    release_time: Optional[datetime] = None
    latest_version: Optional[str] = None
    latest_release_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "installed_size_bytes": self.installed_size_bytes,
            "subdependency_count": self.subdependency_count,
            "downloads_last_week": self.downloads_last_week,
            "total_downloads": self.total_downloads,
            "release_time": self.release_time.isoformat() if self.release_time else None,
            "latest_version": self.latest_version,
        }


@dataclass
class DiffEntry:
    """An added or removed dependency with its measurement."""
    dependency: ResolvedDependency
    kind: DiffKind
    measurement: MeasurementResult

    def to_dict(self) -> Dict[str, Any]:
        data = {"dependency": str(self.dependency), "kind": self.kind.value}
        data.update(self.measurement.to_dict())
        return data


@dataclass
class ChangeMeasurement:
    """Everything measured for an add/remove change estimation run."""
    package: ResolvedDependency
    baseline: MeasurementResult
    results: Dict[str, MeasurementResult] = field(default_factory=dict)
    entries: List[DiffEntry] = field(default_factory=list)
    modified: Optional[MeasurementResult] = None

    def removed(self) -> List[DiffEntry]:
        return [e for e in self.entries if e.kind == DiffKind.REMOVED]

    def added(self) -> List[DiffEntry]:
        return [e for e in self.entries if e.kind == DiffKind.ADDED]
