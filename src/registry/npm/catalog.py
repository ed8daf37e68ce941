"""Registry catalog models: versions of one package, download counts, cache."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import semantic_version

from .manifest import Manifest

logger = logging.getLogger(__name__)

_TIME_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")


def parse_release_time(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 packument timestamp ("2024-05-01T12:00:00.000Z")."""
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+0000" if value.endswith("Z") else value
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    logger.warning("Couldn't parse timestamp: %s", value)
    return None


@dataclass(frozen=True)
class PackageVersion:
    """One published version: parsed semver, its manifest and release time."""
    version: semantic_version.Version
    manifest: Manifest = field(compare=False)
    release_time: Optional[datetime] = field(default=None, compare=False)

    def __str__(self) -> str:
        return str(self.version)


@dataclass(frozen=True)
class VersionCatalog:
    """Immutable snapshot of a package's versions as seen by the registry."""
    name: str
    versions: Dict[str, PackageVersion]
    dist_tags: Dict[str, str] = field(default_factory=dict)
    latest: Optional[PackageVersion] = None

    def sorted_versions(self) -> List[PackageVersion]:
        """Versions in descending semantic-version order."""
        return sorted(self.versions.values(), key=lambda v: v.version, reverse=True)

    def get(self, version: str) -> Optional[PackageVersion]:
        return self.versions.get(version)

    def __len__(self) -> int:
        return len(self.versions)

    def __iter__(self) -> Iterator[PackageVersion]:
        return iter(self.sorted_versions())

    @classmethod
    def from_packument(cls, packument: Dict[str, Any], name: Optional[str] = None) -> "VersionCatalog":
        """Build a catalog from a decoded registry packument."""
        pkg_name = name or str(packument.get("name", ""))
        times = packument.get("time") or {}
        versions: Dict[str, PackageVersion] = {}
        for raw_version, info in (packument.get("versions") or {}).items():
            try:
                parsed = semantic_version.Version(raw_version)
            except ValueError:
                logger.debug("Skipping non-semver version %s of %s", raw_version, pkg_name)
                continue
            manifest = Manifest.from_dict(info if isinstance(info, dict) else {}, name=pkg_name)
            if not manifest.version:
                manifest.version = str(parsed)
            versions[str(parsed)] = PackageVersion(
                version=parsed,
                manifest=manifest,
                release_time=parse_release_time(times.get(raw_version)),
            )
        dist_tags = dict(packument.get("dist-tags") or {})
        latest = versions.get(dist_tags.get("latest", ""))
        return cls(name=pkg_name, versions=versions, dist_tags=dist_tags, latest=latest)


class Downloads(dict):
    """Weekly download counts keyed by version string."""

    def for_version(self, version: str) -> Optional[int]:
        """Downloads of ``version`` last week, or None if the API has no entry."""
        count = self.get(version)
        return int(count) if count is not None else None

    def total(self) -> int:
        return sum(int(v) for v in self.values())


class CatalogCache:
    """Thread-safe catalog store keyed by package name.

    Callers never need their own locking. Entries are never replaced once
    stored; ``set_if_absent`` returns whichever snapshot won.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, VersionCatalog] = {}

    def get(self, name: str) -> Optional[VersionCatalog]:
        with self._lock:
            return self._entries.get(name)

    def set_if_absent(self, name: str, catalog: VersionCatalog) -> VersionCatalog:
        with self._lock:
            return self._entries.setdefault(name, catalog)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
