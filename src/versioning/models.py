"""Data models for specifier parsing and version resolution."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ResolutionMode(Enum):
    """How a specifier was resolved."""
    LATEST = "latest"
    RANGE = "range"


@dataclass(frozen=True)
class DependencySpecifier:
    """A package name plus an optional raw version constraint."""
    name: str
    raw_constraint: Optional[str]

    @property
    def mode(self) -> ResolutionMode:
        """LATEST when no constraint was given, RANGE otherwise."""
        return ResolutionMode.LATEST if self.raw_constraint is None else ResolutionMode.RANGE

    def __str__(self) -> str:
        if self.raw_constraint is None:
            return self.name
        return f"{self.name} {self.raw_constraint}"


@dataclass(frozen=True)
class ResolvedDependency:
    """A concrete ``name@version`` pair; its string form keys result maps."""
    name: str
    version: str

    @property
    def key(self) -> str:
        """Stable map key."""
        return f"{self.name}@{self.version}"

    def __str__(self) -> str:
        return self.key
