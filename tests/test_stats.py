"""Tests for the diff/stats aggregation."""

import pytest

from analysis.models import DiffEntry, DiffKind, MeasurementResult
from analysis.stats import (
    entry_shares,
    part_percent,
    percent_downloads_of_version,
    summarize_change,
    traffic,
    version_change,
)
from versioning.models import ResolvedDependency


def _m(size, count=0, downloads=None, total=0):
    return MeasurementResult(
        installed_size_bytes=size,
        subdependency_count=count,
        downloads_last_week=downloads,
        total_downloads=total,
    )


def _entry(name, kind, measurement):
    return DiffEntry(dependency=ResolvedDependency(name, "1.0.0"), kind=kind, measurement=measurement)


@pytest.mark.parametrize(
    "part,whole,expected",
    [(50, 200, 25.0), (0, 10, 0.0), (5, 0, None), (None, 10, None), (10, None, None)],
)
def test_part_percent(part, whole, expected):
    assert part_percent(part, whole) == expected


def test_traffic_and_version_share():
    m = _m(1000, downloads=20, total=80)
    assert traffic(m) == 20000
    assert percent_downloads_of_version(m) == 25.0
    assert traffic(_m(1000)) is None
    assert percent_downloads_of_version(_m(1000, downloads=3, total=0)) is None


def test_summarize_change():
    baseline = _m(1000, count=10, downloads=100)
    removed = _entry("a", DiffKind.REMOVED, _m(300, count=4))
    added = _entry("b", DiffKind.ADDED, _m(50, count=0))
    summary = summarize_change(baseline, [removed, added])

    assert summary.size_without_removed == 700
    assert summary.new_size == 750
    assert summary.size_change == -250
    assert summary.new_size_percent == 75.0
    assert summary.old_subdependency_count == 10
    assert summary.new_subdependency_count == 10 - 5 + 1
    assert summary.old_traffic == 100000
    assert summary.new_traffic == 75000
    assert summary.traffic_saved == 25000


def test_add_and_remove_same_dependency_is_identity():
    baseline = _m(1000, count=10, downloads=7)
    shared = _m(123, count=3)
    summary = summarize_change(
        baseline, [_entry("a", DiffKind.REMOVED, shared), _entry("a", DiffKind.ADDED, shared)]
    )
    assert summary.new_size == summary.old_size
    assert summary.new_subdependency_count == summary.old_subdependency_count
    assert summary.traffic_saved == 0


def test_no_entries():
    summary = summarize_change(_m(10, count=1), [])
    assert summary.new_size == 10
    assert summary.new_subdependency_count == 1


def test_unknown_count_propagates():
    baseline = _m(1000, count=10)
    summary = summarize_change(baseline, [_entry("a", DiffKind.ADDED, _m(5, count=None))])
    assert summary.new_size == 1005
    assert summary.new_subdependency_count is None


def test_unknown_downloads_propagate():
    summary = summarize_change(_m(1000, count=1), [_entry("a", DiffKind.REMOVED, _m(10))])
    assert summary.old_traffic is None
    assert summary.traffic_saved is None


def test_zero_baseline_size_percent_is_none():
    summary = summarize_change(_m(0, count=0), [_entry("a", DiffKind.ADDED, _m(10))])
    assert summary.new_size_percent is None


def test_entry_shares_removed_against_old_size():
    baseline = _m(1000, downloads=10)
    entry = _entry("a", DiffKind.REMOVED, _m(250, downloads=40))
    shares = entry_shares(baseline, entry, size_without_removed=750)

    assert shares.size_percent == 25.0
    assert shares.traffic == 10000
    assert shares.downloads_percent == 25.0
    assert shares.traffic_from_package == 2500
    assert shares.traffic_percent == 25.0


def test_entry_shares_added_against_remaining_size():
    baseline = _m(1000, downloads=10)
    entry = _entry("b", DiffKind.ADDED, _m(150, downloads=None))
    shares = entry_shares(baseline, entry, size_without_removed=750)

    assert shares.size_percent == 20.0
    assert shares.traffic is None
    assert shares.downloads_percent is None
    assert shares.traffic_percent is None


def test_version_change_uses_old_downloads():
    old = _m(1000, count=5, downloads=10)
    new = _m(2000, count=8, downloads=1)
    summary = version_change(old, new)
    assert summary.old_traffic == 10000
    assert summary.new_traffic == 20000
    assert summary.traffic_saved == -10000
    assert summary.new_size_percent == 200.0
