"""Bounded worker pool resolving many manifest dependencies against the registry.

A fixed number of threads drain a work queue of unresolved dependencies and
push results to a queue sized to the dependency count, which keeps the number
of simultaneous registry requests bounded regardless of manifest size.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Dict, Iterable, List, Optional

from constants import Constants
from common.errors import NoMatchingVersionError, RegistryError
from registry.npm.client import NpmClient
from registry.npm.manifest import Dependency, Manifest
from .resolvers.npm import match_highest

logger = logging.getLogger(__name__)

_STOP = object()


class DependencyResolutionService:
    """Resolve manifest dependencies to concrete manifests with a fixed pool."""

    def __init__(self, client: NpmClient, workers: Optional[int] = None):
        self.client = client
        self.workers = max(1, workers if workers is not None else Constants.RESOLVER_WORKERS)

    def _resolve_one(self, dep: Dependency) -> Manifest:
        catalog = self.client.get_catalog(dep.name)
        found = match_highest(catalog, dep.spec)
        if found is None:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Available versions of %s: %s",
                    dep.name,
                    ", ".join(str(v) for v in catalog.sorted_versions()),
                )
            raise NoMatchingVersionError(
                "no matching version found", package=dep.name, constraint=dep.raw_constraint
            )
        logger.debug("Resolved dependency %s -> %s", dep, found.version)
        return found.manifest

    def _worker(self, index: int, work: "queue.Queue", results: "queue.Queue") -> None:
        resolved = 0
        while True:
            dep = work.get()
            if dep is _STOP:
                break
            try:
                results.put((dep, self._resolve_one(dep)))
                resolved += 1
            except (RegistryError, NoMatchingVersionError) as exc:
                logger.warning("Failed to resolve dependency %s: %s", dep, exc)
                results.put((dep, None))
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # Keep the result count intact so the collector never blocks.
                logger.error("Resolver %d crashed on %s: %s", index, dep, exc)
                results.put((dep, None))
        logger.debug("Resolver %d finished, resolved %d", index, resolved)

    def resolve_dependencies(self, deps: Iterable[Dependency]) -> Dict[str, Manifest]:
        """Resolve each dependency to its highest matching version.

        Returns:
            Mapping of package name to the resolved version's manifest.
            Dependencies that could not be resolved are logged and omitted.
        """
        to_resolve: List[Dependency] = list(deps)
        count = len(to_resolve)
        if count == 0:
            return {}

        work: "queue.Queue" = queue.Queue()
        results: "queue.Queue" = queue.Queue(maxsize=count)
        pool_size = min(self.workers, count)
        threads = [
            threading.Thread(
                target=self._worker,
                args=(i, work, results),
                name=f"resolver-{i}",
                daemon=True,
            )
            for i in range(pool_size)
        ]
        for t in threads:
            t.start()

        for dep in to_resolve:
            work.put(dep)
        for _ in threads:
            work.put(_STOP)
        logger.info("Queued %d dependencies for %d resolvers", count, pool_size)

        resolved: Dict[str, Manifest] = {}
        for remaining in range(count, 0, -1):
            dep, manifest = results.get()
            if manifest is not None:
                resolved[dep.name] = manifest
            logger.debug("Collected %s, %d remaining", dep.name, remaining - 1)

        for t in threads:
            t.join()
        logger.info("Resolved %d of %d dependencies", len(resolved), count)
        return resolved

    def resolve_manifest(self, manifest: Manifest, include_dev: bool = False) -> Dict[str, Manifest]:
        """Resolve a manifest's runtime (and optionally dev) dependencies."""
        deps = list(manifest.dependencies)
        if include_dev:
            deps.extend(manifest.dev_dependencies)
        return self.resolve_dependencies(deps)

    def resolve_names(self, manifest: Manifest, names: Iterable[str]) -> Dict[str, Manifest]:
        """Resolve only the named runtime dependencies of ``manifest``."""
        selected = []
        for name in names:
            dep = manifest.get(name)
            if dep is None:
                logger.warning("Dependency %s not found in %s", name, manifest)
                continue
            selected.append(dep)
        return self.resolve_dependencies(selected)
