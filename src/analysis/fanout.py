"""Concurrent fan-out of (install -> measure) tasks, one per unique dependency."""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from common.errors import RegistryError
from registry.npm.client import NpmClient
from registry.npm.manifest import Manifest
from sandbox.docker import SandboxExecutor
from versioning.models import ResolvedDependency
from .measure import measure_sandbox
from .models import ChangeMeasurement, DiffEntry, DiffKind, MeasurementResult

logger = logging.getLogger(__name__)


def unique_dependencies(dependencies: Iterable[ResolvedDependency]) -> Dict[str, ResolvedDependency]:
    """Deduplicate by ``name@version``, keeping the first occurrence."""
    unique: Dict[str, ResolvedDependency] = {}
    for dep in dependencies:
        unique.setdefault(dep.key, dep)
    return unique


def _collect(futures: Dict[str, Future]) -> Dict[str, MeasurementResult]:
    """Wait for every future; re-raise the first failure after cancelling queued work."""
    done, not_done = wait(futures.values(), return_when=FIRST_EXCEPTION)
    for future in done:
        exc = future.exception()
        if exc is not None:
            for pending in not_done:
                pending.cancel()
            raise exc
    return {key: future.result() for key, future in futures.items()}


class MeasurementCoordinator:
    """Runs sandboxed measurements concurrently and gathers results by key."""

    def __init__(
        self,
        client: NpmClient,
        executor: SandboxExecutor,
        no_cleanup: bool = False,
        max_workers: Optional[int] = None,
    ):
        self.client = client
        self.executor = executor
        self.no_cleanup = no_cleanup
        self.max_workers = max_workers if max_workers else None

    def _pool(self, task_count: int) -> ThreadPoolExecutor:
        workers = self.max_workers or max(task_count, 1)
        return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="measure")

    def _fetch_downloads(self, dependency: ResolvedDependency) -> Tuple[Optional[int], int]:
        """Weekly downloads of the version and of all versions; degrades on failure."""
        try:
            downloads = self.client.get_weekly_downloads(dependency.name)
        except RegistryError as e:
            logger.error("Failed to fetch package downloads for %s: %s", dependency, e)
            return None, 0
        last_week = downloads.for_version(dependency.version)
        logger.info("Downloads last week for %s: %s", dependency, last_week if last_week is not None else "N/A")
        return last_week, downloads.total()

    def _release_info(self, dependency: ResolvedDependency) -> Dict[str, Any]:
        """Release time of the version plus the catalog's latest version and its release time."""
        try:
            catalog = self.client.get_catalog(dependency.name)
        except RegistryError as e:
            logger.warning("No release time for %s: %s", dependency, e)
            return {}
        entry = catalog.get(dependency.version)
        info: Dict[str, Any] = {"release_time": entry.release_time if entry is not None else None}
        if catalog.latest is not None:
            info["latest_version"] = str(catalog.latest)
            info["latest_release_time"] = catalog.latest.release_time
        return info

    def measure_package(self, dependency: ResolvedDependency, strict: bool = True) -> MeasurementResult:
        """Install one dependency in a sandbox and measure it.

        Sandbox and filesystem errors always propagate. A lockfile error
        propagates only when ``strict``; otherwise the count is left unknown.
        """
        downloads_last_week, total_downloads = self._fetch_downloads(dependency)
        sandbox = self.executor.install(dependency)
        try:
            size, count = measure_sandbox(sandbox, strict_lockfile=strict)
        finally:
            sandbox.cleanup(self.no_cleanup)
        return MeasurementResult(
            installed_size_bytes=size,
            subdependency_count=count,
            downloads_last_week=downloads_last_week,
            total_downloads=total_downloads,
            **self._release_info(dependency),
        )

    def measure_manifest(self, manifest: Manifest) -> MeasurementResult:
        """Bare-install an edited manifest and measure the result (strict)."""
        sandbox = self.executor.install_manifest(manifest)
        try:
            size, count = measure_sandbox(sandbox, strict_lockfile=True)
        finally:
            sandbox.cleanup(self.no_cleanup)
        return MeasurementResult(installed_size_bytes=size, subdependency_count=count)

    def measure_all(self, dependencies: Iterable[ResolvedDependency]) -> Dict[str, MeasurementResult]:
        """Measure every distinct dependency exactly once, concurrently.

        Returns:
            Results keyed by ``name@version``.
        """
        unique = unique_dependencies(dependencies)
        if not unique:
            return {}
        logger.info("Measuring %d dependencies", len(unique))
        with self._pool(len(unique)) as pool:
            futures = {
                key: pool.submit(self.measure_package, dep, False) for key, dep in unique.items()
            }
            return _collect(futures)

    def measure_change(
        self,
        package: ResolvedDependency,
        removed: Sequence[ResolvedDependency],
        added: Sequence[ResolvedDependency],
        modified_manifest: Optional[Manifest] = None,
    ) -> ChangeMeasurement:
        """Measure a package and the dependencies being removed from/added to it.

        The baseline install overlaps with the per-dependency installs. A
        baseline lockfile failure is fatal; per-dependency lockfile failures
        only blank that dependency's count.
        """
        unique = unique_dependencies(list(removed) + list(added))
        extra = 2 if modified_manifest is not None else 1
        with self._pool(len(unique) + extra) as pool:
            baseline_future = pool.submit(self.measure_package, package, True)
            modified_future = None
            if modified_manifest is not None:
                modified_future = pool.submit(self.measure_manifest, modified_manifest)
            futures = {key: pool.submit(self.measure_package, dep, False) for key, dep in unique.items()}

            tracked = dict(futures)
            tracked["<baseline>"] = baseline_future
            if modified_future is not None:
                tracked["<modified>"] = modified_future
            collected = _collect(tracked)

        baseline = collected.pop("<baseline>")
        modified = collected.pop("<modified>", None)
        entries: List[DiffEntry] = [
            DiffEntry(dependency=dep, kind=DiffKind.REMOVED, measurement=collected[dep.key]) for dep in removed
        ]
        entries += [
            DiffEntry(dependency=dep, kind=DiffKind.ADDED, measurement=collected[dep.key]) for dep in added
        ]
        return ChangeMeasurement(
            package=package,
            baseline=baseline,
            results=collected,
            entries=entries,
            modified=modified,
        )

    def measure_versions(
        self, old: ResolvedDependency, new: ResolvedDependency
    ) -> Tuple[MeasurementResult, MeasurementResult]:
        """Measure two versions of a package side by side (strict lockfiles)."""
        if old.key == new.key:
            result = self.measure_package(old, True)
            return result, result
        with self._pool(2) as pool:
            old_future = pool.submit(self.measure_package, old, True)
            new_future = pool.submit(self.measure_package, new, True)
            results = _collect({"old": old_future, "new": new_future})
        return results["old"], results["new"]
