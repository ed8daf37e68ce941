"""Measure sandbox artifacts: installed bytes and lockfile package count."""

from __future__ import annotations

import logging
import os
from typing import Optional, Tuple

from common.errors import LockfileError, MeasurementError
from registry.npm.lockfile_parser import count_subdependencies, parse_package_lock
from sandbox.docker import Sandbox

logger = logging.getLogger(__name__)


def _raise(err: OSError) -> None:
    raise err


def dir_size(path: str) -> int:
    """Sum the sizes of every non-directory entry below ``path``.

    Symlinks count with their own (lstat) size and are not followed.

    Raises:
        MeasurementError: ``path`` is missing or any entry cannot be read.
    """
    if not os.path.isdir(path):
        raise MeasurementError("Directory to measure does not exist", path=path)
    size = 0
    try:
        for root, dirs, files in os.walk(path, onerror=_raise):
            for name in files:
                size += os.lstat(os.path.join(root, name)).st_size
            for name in dirs:
                full = os.path.join(root, name)
                # os.walk lists directory symlinks under dirs without descending
                if os.path.islink(full):
                    size += os.lstat(full).st_size
    except OSError as e:
        raise MeasurementError(f"Failed to measure directory ({e})", path=path) from e
    return size


def measure_installed_size(sandbox: Sandbox) -> int:
    """Installed bytes of a sandbox, excluding package.json and the lockfile."""
    return dir_size(sandbox.node_modules_path)


def measure_sandbox(sandbox: Sandbox, strict_lockfile: bool = True) -> Tuple[int, Optional[int]]:
    """Return (installed bytes, subdependency count) for a finished sandbox.

    With ``strict_lockfile`` False a lockfile error is logged and the count
    comes back as None; with it True the LockfileError propagates.
    """
    size = measure_installed_size(sandbox)
    logger.info("Measured %s: %d bytes", sandbox.dependency, size)
    try:
        lockfile = parse_package_lock(sandbox.lockfile_path)
    except LockfileError as e:
        if strict_lockfile:
            raise
        logger.error("Failed to parse package-lock.json for %s: %s", sandbox.dependency, e)
        return size, None
    return size, count_subdependencies(lockfile)
