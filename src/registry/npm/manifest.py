"""package.json model: name, version and ordered dependency lists."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import semantic_version

from versioning.models import ResolvedDependency

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dependency:
    """A manifest dependency entry with a parsed npm range."""
    name: str
    raw_constraint: str
    spec: semantic_version.NpmSpec = field(compare=False, repr=False)

    def __str__(self) -> str:
        return f"{self.name} {self.raw_constraint}"


def is_resolvable_constraint(raw_constraint: Optional[str]) -> bool:
    """Return True if the constraint looks like a semver range.

    Tags ("latest"), URLs, git refs, ``workspace:``/``file:``/``npm:`` refs all
    start with a letter and are rejected without attempting to parse.
    """
    if not raw_constraint:
        return False
    return not raw_constraint[0].isalpha()


def new_dependency(name: str, raw_constraint: Optional[str]) -> Optional[Dependency]:
    """Build a Dependency, or return None for unparseable constraints."""
    if not is_resolvable_constraint(raw_constraint):
        logger.warning(
            "Skipping dependency %s with improper version constraint format: %r",
            name,
            raw_constraint,
        )
        return None
    try:
        spec = semantic_version.NpmSpec(raw_constraint.strip())
    except ValueError as exc:
        logger.warning("Failed to create constraints for %s %r: %s", name, raw_constraint, exc)
        return None
    return Dependency(name=name, raw_constraint=raw_constraint, spec=spec)


def parse_dependencies(raw: Any) -> List[Dependency]:
    """Parse a ``{name: constraint}`` mapping, keeping order, dropping bad entries."""
    if not isinstance(raw, dict):
        return []
    deps: List[Dependency] = []
    for name, constraint in raw.items():
        dep = new_dependency(name, constraint if isinstance(constraint, str) else None)
        if dep is not None:
            deps.append(dep)
    return deps


@dataclass
class Manifest:
    """Subset of package.json used for resolution and sandbox installs."""
    name: str
    version: str
    dependencies: List[Dependency] = field(default_factory=list)
    dev_dependencies: List[Dependency] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: Optional[str] = None) -> "Manifest":
        """Build a manifest from decoded package.json (or packument version) data."""
        return cls(
            name=name if name is not None else str(data.get("name", "")),
            version=str(data.get("version", "")),
            dependencies=parse_dependencies(data.get("dependencies")),
            dev_dependencies=parse_dependencies(data.get("devDependencies")),
        )

    def as_dependency(self) -> ResolvedDependency:
        return ResolvedDependency(name=self.name, version=self.version)

    def get(self, name: str) -> Optional[Dependency]:
        """Return the runtime dependency entry named ``name``."""
        for dep in self.dependencies:
            if dep.name == name:
                return dep
        return None

    def remove(self, name: str) -> bool:
        """Drop a runtime dependency; returns False if it was not present."""
        kept = [d for d in self.dependencies if d.name != name]
        removed = len(kept) != len(self.dependencies)
        self.dependencies = kept
        return removed

    def add(self, dependency: ResolvedDependency) -> None:
        """Add (or replace) a runtime dependency pinned to an exact version."""
        dep = new_dependency(dependency.name, dependency.version)
        if dep is None:
            raise ValueError(f"Cannot pin {dependency.name} to {dependency.version!r}")
        self.remove(dependency.name)
        self.dependencies.append(dep)

    def with_changes(
        self,
        added: Iterable[ResolvedDependency],
        removed: Iterable[str],
    ) -> "Manifest":
        """Return a copy with ``removed`` names dropped and ``added`` pinned."""
        copy = Manifest(
            name=self.name,
            version=self.version,
            dependencies=list(self.dependencies),
            dev_dependencies=list(self.dev_dependencies),
        )
        for name in removed:
            if not copy.remove(name):
                logger.warning("Dependency %s not present in %s", name, self.name)
        for dep in added:
            copy.add(dep)
        return copy

    def to_dict(self, include_dev: bool = False) -> Dict[str, Any]:
        """Serialize to a package.json payload.

        devDependencies are left out unless ``include_dev`` is set, so a bare
        ``npm install`` of the payload pulls the same runtime tree as
        ``npm install name@version``.
        """
        data: Dict[str, Any] = {"name": self.name, "version": self.version}
        data["dependencies"] = {d.name: d.raw_constraint for d in self.dependencies}
        if include_dev and self.dev_dependencies:
            data["devDependencies"] = {d.name: d.raw_constraint for d in self.dev_dependencies}
        return data

    def __str__(self) -> str:
        return str(self.as_dependency())
