"""Plain-text report rendering and JSON export."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from versioning.models import ResolvedDependency
from .models import ChangeMeasurement, DiffKind, MeasurementResult
from .stats import (
    ChangeSummary,
    VersionChangeSummary,
    entry_shares,
    percent_downloads_of_version,
    summarize_change,
    traffic,
)

logger = logging.getLogger(__name__)

NA = "N/A"
_UNITS = ["B", "kB", "MB", "GB", "TB", "PB", "EB"]


def format_bytes(size: Optional[int]) -> str:
    """Human-readable SI byte count ("1.2 MB")."""
    if size is None:
        return NA
    if size < 10:
        return f"{size} B"
    value = float(size)
    exp = 0
    while value >= 1000 and exp < len(_UNITS) - 1:
        value /= 1000
        exp += 1
    fmt = "{:.0f} {}" if value >= 10 else "{:.1f} {}"
    return fmt.format(value, _UNITS[exp])


def fmt_percent(value: Optional[float]) -> str:
    if value is None:
        return NA
    return f"{value:,.2f}%"


def fmt_int(value: Optional[int]) -> str:
    if value is None:
        return NA
    return f"{value:,}"


def format_duration(delta: timedelta) -> str:
    """Compact age like "3w2d" or "5h12m"; coarser units suppress finer ones."""
    seconds = int(delta.total_seconds())
    weeks, seconds = divmod(seconds, 7 * 86400)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    out = ""
    if weeks:
        out += f"{weeks}w"
    if days:
        out += f"{days}d"
    if weeks or days:
        return out
    if hours:
        out += f"{hours}h"
    if minutes:
        out += f"{minutes}m"
    if seconds and not hours:
        out += f"{seconds}s"
    return out or "0s"


def _released(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    if when is None:
        return NA
    now = now or datetime.now(timezone.utc)
    return f"{when.isoformat()} ({format_duration(now - when)} ago)"


def package_info_lines(dependency: ResolvedDependency, m: MeasurementResult, indent: int = 0) -> List[str]:
    pad = " " * indent
    lines = [
        f'{pad}Package info for "{dependency}": {format_bytes(m.installed_size_bytes)}',
        f"{pad}  Released: {_released(m.release_time)}",
    ]
    if m.latest_version and m.latest_version != dependency.version:
        lines.append(f"{pad}  Latest version: {m.latest_version}, released {_released(m.latest_release_time)}")
    lines += [
        f"{pad}  Subdependencies: {fmt_int(m.subdependency_count)}",
        f"{pad}  Downloads last week: {fmt_int(m.downloads_last_week)}"
        f" ({fmt_percent(percent_downloads_of_version(m))} of all versions)",
        f"{pad}  Estimated traffic last week: {format_bytes(traffic(m))}",
    ]
    return lines


def _traffic_change(saved: Optional[int]) -> str:
    if saved is None:
        return NA
    if saved == 0:
        return "No change"
    if saved > 0:
        return f"{format_bytes(saved)} saved"
    return f"{format_bytes(-saved)} wasted"


def summary_lines(summary) -> List[str]:
    """Closing estimate lines for a ChangeSummary or VersionChangeSummary."""
    lines = [
        f"Estimated package size: {format_bytes(summary.old_size)} -> {format_bytes(summary.new_size)}"
        f" ({fmt_percent(summary.new_size_percent)})",
        f"Estimated subdependencies: {fmt_int(summary.old_subdependency_count)}"
        f" -> {fmt_int(summary.new_subdependency_count)}",
        f"Estimated traffic over a week: {format_bytes(summary.old_traffic)}"
        f" -> {format_bytes(summary.new_traffic)} ({_traffic_change(summary.traffic_saved)})",
    ]
    return lines


def render_change_report(change: ChangeMeasurement) -> str:
    """Render the add/remove change estimation report."""
    summary: ChangeSummary = summarize_change(change.baseline, change.entries)
    lines = ["", "Package size report", "===================", ""]
    lines += package_info_lines(change.package, change.baseline)

    removed = change.removed()
    if removed:
        lines += ["", "Removed dependencies:"]
        for entry in removed:
            shares = entry_shares(change.baseline, entry, summary.size_without_removed)
            m = entry.measurement
            lines += [
                f"  - {entry.dependency}: {format_bytes(m.installed_size_bytes)} ({fmt_percent(shares.size_percent)})",
                f"    Subdependencies: {fmt_int(m.subdependency_count)}",
                f"    Downloads last week: {fmt_int(m.downloads_last_week)}",
                f'    Downloads last week from "{change.package}": {fmt_int(change.baseline.downloads_last_week)}'
                f" ({fmt_percent(shares.downloads_percent)})",
                f"    Estimated traffic last week: {format_bytes(shares.traffic)}",
                f'    Estimated traffic from "{change.package}": {format_bytes(shares.traffic_from_package)}'
                f" ({fmt_percent(shares.traffic_percent)})",
            ]

    added = change.added()
    if added:
        lines += ["", "Added dependencies:"]
        for entry in added:
            shares = entry_shares(change.baseline, entry, summary.size_without_removed)
            m = entry.measurement
            lines += [
                f"  + {entry.dependency}: {format_bytes(m.installed_size_bytes)} ({fmt_percent(shares.size_percent)})",
                f"    Subdependencies: {fmt_int(m.subdependency_count)}",
                f"    Downloads last week: {fmt_int(m.downloads_last_week)}",
                f"    Estimated traffic last week: {format_bytes(shares.traffic)}",
            ]

    lines.append("")
    lines += summary_lines(summary)
    if change.modified is not None:
        lines.append(
            f"Measured size of modified package: {format_bytes(change.modified.installed_size_bytes)}"
            f" ({fmt_int(change.modified.subdependency_count)} subdependencies)"
        )
    return "\n".join(lines)


def render_version_report(
    old: ResolvedDependency,
    old_m: MeasurementResult,
    new: ResolvedDependency,
    new_m: MeasurementResult,
    summary: VersionChangeSummary,
) -> str:
    lines = [""] + package_info_lines(old, old_m) + [""] + package_info_lines(new, new_m) + [""]
    lines += summary_lines(summary)
    return "\n".join(lines)


def render_batch_report(results: Dict[str, MeasurementResult]) -> str:
    lines = ["", "Package sizes", "============="]
    for key in sorted(results):
        m = results[key]
        lines.append(
            f"  {key}: {format_bytes(m.installed_size_bytes)}, "
            f"{fmt_int(m.subdependency_count)} subdependencies, "
            f"{fmt_int(m.downloads_last_week)} downloads last week"
        )
    return "\n".join(lines)


def change_to_dict(change: ChangeMeasurement) -> Dict[str, Any]:
    """JSON-ready representation of a change estimation run."""
    summary = summarize_change(change.baseline, change.entries)
    return {
        "package": str(change.package),
        "baseline": change.baseline.to_dict(),
        "removed": [e.to_dict() for e in change.entries if e.kind == DiffKind.REMOVED],
        "added": [e.to_dict() for e in change.entries if e.kind == DiffKind.ADDED],
        "modified": change.modified.to_dict() if change.modified is not None else None,
        "summary": {
            "oldSize": summary.old_size,
            "newSize": summary.new_size,
            "oldSubdependencies": summary.old_subdependency_count,
            "newSubdependencies": summary.new_subdependency_count,
            "oldTraffic": summary.old_traffic,
            "newTraffic": summary.new_traffic,
            "newSizePercent": summary.new_size_percent,
        },
    }


def export_json(data: Any, path: str) -> None:
    """Write ``data`` as JSON to ``path``.

    Raises:
        OSError: The file could not be written.
    """
    try:
        with open(path, "w", encoding="utf-8") as file:
            json.dump(data, file, ensure_ascii=False, indent=4)
        logger.info("JSON file has been successfully exported at: %s", path)
    except OSError as e:
        logger.error("JSON file couldn't be written to disk: %s", e)
        raise
