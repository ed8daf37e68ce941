"""NPM version resolver using semantic versioning."""

import logging
from typing import Optional

import semantic_version

from common.errors import InvalidConstraintError, NoMatchingVersionError
from registry.npm.catalog import PackageVersion, VersionCatalog
from registry.npm.client import NpmClient
from ..models import DependencySpecifier, ResolvedDependency
from ..parser import split_specifier

logger = logging.getLogger(__name__)


def parse_constraint(name: str, raw_constraint: str) -> semantic_version.NpmSpec:
    """Parse an npm range expression.

    Raises:
        InvalidConstraintError: The expression is not valid npm range syntax.
    """
    try:
        return semantic_version.NpmSpec(raw_constraint.strip())
    except ValueError as e:
        raise InvalidConstraintError(
            f"Invalid semver spec: {e}", package=name, constraint=raw_constraint
        ) from e


def match_highest(catalog: VersionCatalog, spec: semantic_version.NpmSpec) -> Optional[PackageVersion]:
    """Return the highest catalog version satisfying ``spec``, if any."""
    for candidate in catalog.sorted_versions():
        if spec.match(candidate.version):
            return candidate
    return None


def pick(specifier: DependencySpecifier, catalog: VersionCatalog) -> PackageVersion:
    """Select the catalog entry a specifier refers to.

    No constraint selects the catalog's ``latest`` dist-tag. Otherwise the
    highest matching version wins; there is no preference for versions closer
    to what may already be installed.

    Raises:
        InvalidConstraintError: Bad range syntax.
        NoMatchingVersionError: Nothing satisfies the range, or no ``latest``.
    """
    if specifier.raw_constraint is None:
        if catalog.latest is None:
            raise NoMatchingVersionError("catalog has no 'latest' version", package=specifier.name)
        logger.debug("No constraint specified for %s, using latest %s", specifier.name, catalog.latest)
        return catalog.latest

    spec = parse_constraint(specifier.name, specifier.raw_constraint)
    found = match_highest(catalog, spec)
    if found is None:
        raise NoMatchingVersionError(
            "no matching version could be found",
            package=specifier.name,
            constraint=specifier.raw_constraint,
        )
    return found


def resolve(specifier: DependencySpecifier, catalog: VersionCatalog) -> ResolvedDependency:
    """Resolve a specifier against a catalog to a concrete ``name@version``."""
    found = pick(specifier, catalog)
    return ResolvedDependency(name=specifier.name, version=str(found.version))


class NpmVersionResolver:
    """Resolves free-form specifier text using a registry client."""

    def __init__(self, client: NpmClient):
        self.client = client

    def resolve_version(self, text: str) -> PackageVersion:
        """Return the catalog entry for ``text`` (manifest and release time included)."""
        specifier = split_specifier(text)
        logger.info('Resolving package "%s"...', text)
        catalog = self.client.get_catalog(specifier.name)
        found = pick(specifier, catalog)
        logger.info("Found version %s@%s", specifier.name, found.version)
        return found

    def resolve_text(self, text: str) -> ResolvedDependency:
        """Split, fetch the catalog and resolve in one step."""
        found = self.resolve_version(text)
        return ResolvedDependency(name=found.manifest.name, version=str(found.version))
