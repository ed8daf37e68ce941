"""Aggregate measurements into size, traffic and dependency-count deltas.

All functions are pure. Any figure whose inputs are unknown (a missing
download count, an unparsed lockfile) or whose denominator is zero comes back
as None instead of being computed from a substituted zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .models import DiffEntry, DiffKind, MeasurementResult


def part_percent(part: Optional[float], whole: Optional[float]) -> Optional[float]:
    """``100 * part / whole``, or None when either is unknown or ``whole`` is 0."""
    if part is None or whole is None or whole == 0:
        return None
    return 100.0 * part / whole


def traffic(measurement: MeasurementResult) -> Optional[int]:
    """Estimated weekly bytes served: downloads last week times installed size."""
    if measurement.downloads_last_week is None:
        return None
    return measurement.downloads_last_week * measurement.installed_size_bytes


def percent_downloads_of_version(measurement: MeasurementResult) -> Optional[float]:
    """Share of this version in the package's weekly downloads across versions."""
    return part_percent(measurement.downloads_last_week, measurement.total_downloads)


@dataclass(frozen=True)
class ChangeSummary:
    """Before/after figures for a set of dependency edits."""
    old_size: int
    new_size: int
    size_without_removed: int
    old_subdependency_count: Optional[int]
    new_subdependency_count: Optional[int]
    old_traffic: Optional[int]
    new_traffic: Optional[int]

    @property
    def size_change(self) -> int:
        return self.new_size - self.old_size

    @property
    def new_size_percent(self) -> Optional[float]:
        """New size as a percentage of the old size."""
        return part_percent(self.new_size, self.old_size)

    @property
    def traffic_saved(self) -> Optional[int]:
        """Weekly bytes saved (negative when traffic grows)."""
        if self.old_traffic is None or self.new_traffic is None:
            return None
        return self.old_traffic - self.new_traffic


@dataclass(frozen=True)
class EntryShares:
    """Percentages of one diff entry relative to the baseline package."""
    size_percent: Optional[float]
    traffic: Optional[int]
    downloads_percent: Optional[float]
    traffic_from_package: Optional[int]
    traffic_percent: Optional[float]


def _count_delta(entries: Iterable[DiffEntry], kind: DiffKind) -> Optional[int]:
    total = 0
    for entry in entries:
        if entry.kind != kind:
            continue
        count = entry.measurement.subdependency_count
        if count is None:
            return None
        # the direct dependency itself plus everything it pulls in
        total += 1 + count
    return total


def summarize_change(baseline: MeasurementResult, entries: Iterable[DiffEntry]) -> ChangeSummary:
    """Combine a baseline with added/removed measurements.

    Entries for the same ``name@version`` share one measurement, so adding and
    removing the same dependency cancels out exactly.
    """
    entries = list(entries)
    removed_size = sum(e.measurement.installed_size_bytes for e in entries if e.kind == DiffKind.REMOVED)
    added_size = sum(e.measurement.installed_size_bytes for e in entries if e.kind == DiffKind.ADDED)
    size_without_removed = baseline.installed_size_bytes - removed_size
    new_size = size_without_removed + added_size

    old_count = baseline.subdependency_count
    removed_count = _count_delta(entries, DiffKind.REMOVED)
    added_count = _count_delta(entries, DiffKind.ADDED)
    if old_count is None or removed_count is None or added_count is None:
        new_count = None
    else:
        new_count = old_count - removed_count + added_count

    downloads = baseline.downloads_last_week
    return ChangeSummary(
        old_size=baseline.installed_size_bytes,
        new_size=new_size,
        size_without_removed=size_without_removed,
        old_subdependency_count=old_count,
        new_subdependency_count=new_count,
        old_traffic=downloads * baseline.installed_size_bytes if downloads is not None else None,
        new_traffic=downloads * new_size if downloads is not None else None,
    )


def entry_shares(baseline: MeasurementResult, entry: DiffEntry, size_without_removed: int) -> EntryShares:
    """Compute per-entry percentages for the report.

    Removed entries are compared against the package's current size, added
    entries against the size left once removed dependencies are gone.
    """
    m = entry.measurement
    outer = baseline.installed_size_bytes if entry.kind == DiffKind.REMOVED else size_without_removed
    dep_traffic = traffic(m)
    from_package = None
    if baseline.downloads_last_week is not None:
        from_package = baseline.downloads_last_week * m.installed_size_bytes
    return EntryShares(
        size_percent=part_percent(m.installed_size_bytes, outer),
        traffic=dep_traffic,
        downloads_percent=part_percent(baseline.downloads_last_week, m.downloads_last_week),
        traffic_from_package=from_package,
        traffic_percent=part_percent(from_package, dep_traffic),
    )


@dataclass(frozen=True)
class VersionChangeSummary:
    """Size and traffic change between two versions of one package."""
    old_size: int
    new_size: int
    old_subdependency_count: Optional[int]
    new_subdependency_count: Optional[int]
    old_traffic: Optional[int]
    new_traffic: Optional[int]

    @property
    def new_size_percent(self) -> Optional[float]:
        return part_percent(self.new_size, self.old_size)

    @property
    def traffic_saved(self) -> Optional[int]:
        if self.old_traffic is None or self.new_traffic is None:
            return None
        return self.old_traffic - self.new_traffic


def version_change(old: MeasurementResult, new: MeasurementResult) -> VersionChangeSummary:
    """Estimate what serving ``new`` instead of ``old`` would cost.

    Uses the old version's weekly downloads for both sides, i.e. "what if the
    new version had received the old version's traffic".
    """
    downloads = old.downloads_last_week
    return VersionChangeSummary(
        old_size=old.installed_size_bytes,
        new_size=new.installed_size_bytes,
        old_subdependency_count=old.subdependency_count,
        new_subdependency_count=new.subdependency_count,
        old_traffic=downloads * old.installed_size_bytes if downloads is not None else None,
        new_traffic=downloads * new.installed_size_bytes if downloads is not None else None,
    )
