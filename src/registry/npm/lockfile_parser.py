"""Parser for npm's package-lock.json (lockfileVersion 3 only).

Package paths are normalized by stripping the ``node_modules/`` prefix so map
keys are bare package names; the root package stays in the map under ``""``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from constants import Constants
from common.errors import LockfileError
from versioning.models import ResolvedDependency

logger = logging.getLogger(__name__)

NESTED_MODULES_PREFIX = "node_modules/"


@dataclass(frozen=True)
class LockedPackage:
    """A lockfile entry: normalized name and installed version."""
    name: str
    version: str

    def as_dependency(self) -> ResolvedDependency:
        return ResolvedDependency(name=self.name, version=self.version)


@dataclass
class Lockfile:
    """Decoded package-lock.json."""
    lockfile_version: int
    packages: Dict[str, LockedPackage] = field(default_factory=dict)

    def get(self, name: str) -> Optional[LockedPackage]:
        return self.packages.get(name)


def normalize_package_path(path: str) -> str:
    """Strip the leading nested-modules marker from a lockfile package path."""
    if path.startswith(NESTED_MODULES_PREFIX):
        return path[len(NESTED_MODULES_PREFIX):]
    return path


def parse_lockfile_data(data: Any, source: str = "<memory>") -> Lockfile:
    """Validate and convert decoded lockfile JSON.

    Raises:
        LockfileError: Not an object, unsupported version or bad ``packages``.
    """
    if not isinstance(data, dict):
        raise LockfileError("Lockfile is not a JSON object", path=source)
    version = data.get("lockfileVersion")
    if version != Constants.SUPPORTED_LOCKFILE_VERSION:
        raise LockfileError(f"Unsupported lockfile version: {version}", path=source)
    raw_packages = data.get("packages")
    if not isinstance(raw_packages, dict):
        raise LockfileError("Lockfile has no 'packages' map", path=source)

    packages: Dict[str, LockedPackage] = {}
    for path, info in raw_packages.items():
        name = normalize_package_path(path)
        entry = info if isinstance(info, dict) else {}
        packages[name] = LockedPackage(name=name, version=str(entry.get("version", "")))
    return Lockfile(lockfile_version=version, packages=packages)


def parse_package_lock(lockfile_path: str) -> Lockfile:
    """Read and parse a package-lock.json file.

    Raises:
        LockfileError: The file is unreadable, not JSON, or not version 3.
    """
    try:
        with open(lockfile_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError) as e:
        raise LockfileError(f"Failed to read lockfile ({e})", path=lockfile_path) from e
    except json.JSONDecodeError as e:
        raise LockfileError(f"Failed to decode lockfile ({e})", path=lockfile_path) from e
    return parse_lockfile_data(data, source=lockfile_path)


def count_subdependencies(lockfile: Lockfile) -> int:
    """Number of packages in the lockfile besides the installed root itself."""
    return max(len(lockfile.packages) - 1, 0)
