"""Exception hierarchy for pkgsize.

Library code raises these and never exits the process; the CLI entrypoint
maps them to exit codes.
"""

from typing import Optional


class PkgSizeError(Exception):
    """Base exception class for all pkgsize errors."""


class InputError(PkgSizeError):
    """Raised for user input that should be corrected and retried."""


class InvalidSpecifierError(InputError):
    """Raised when a specifier string cannot be split into name and constraint."""

    def __init__(self, message: str, specifier: Optional[str] = None):
        self.specifier = specifier
        if specifier is not None:
            message = f"Invalid specifier '{specifier}': {message}"
        super().__init__(message)


class ResolutionError(InputError):
    """Raised when a specifier cannot be resolved to a concrete version."""

    def __init__(self, message: str, package: Optional[str] = None, constraint: Optional[str] = None):
        self.package = package
        self.constraint = constraint
        if package and constraint:
            message = f"Cannot resolve '{package} {constraint}': {message}"
        elif package:
            message = f"Cannot resolve '{package}': {message}"
        super().__init__(message)


class InvalidConstraintError(ResolutionError):
    """Raised when a version constraint has invalid syntax."""


class NoMatchingVersionError(ResolutionError):
    """Raised when no catalog version satisfies a constraint."""


class RegistryError(PkgSizeError):
    """Raised when the registry cannot be reached or returns unusable data."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class PackageNotFoundError(RegistryError):
    """Raised when the registry reports a package as missing."""


class SandboxError(PkgSizeError):
    """Base class for sandbox failures."""


class SandboxCreationError(SandboxError):
    """Raised when the sandbox directory or container cannot be created."""


class SandboxProcessError(SandboxError):
    """Raised when starting, following or waiting on a container fails."""

    def __init__(self, message: str, container_id: Optional[str] = None):
        self.container_id = container_id
        if container_id:
            message = f"{message} (container {container_id[:12]})"
        super().__init__(message)


class MeasurementError(PkgSizeError):
    """Raised when sandbox artifacts cannot be measured."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        if path:
            message = f"{message}: {path}"
        super().__init__(message)


class LockfileError(MeasurementError):
    """Raised when a lockfile is unreadable, malformed or of an unsupported version."""
