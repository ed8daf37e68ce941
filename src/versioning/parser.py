"""Specifier parsing: split free-form input into name and constraint."""

from typing import Optional, Tuple

from common.errors import InvalidSpecifierError
from .models import DependencySpecifier


def _split_at(s: str) -> Tuple[str, Optional[str]]:
    """Split on the version ``@``, skipping a leading scope marker."""
    start = 1 if s.startswith("@") else 0
    idx = s.find("@", start)
    if idx <= 0:
        return s, None
    return s[:idx], s[idx + 1:]


def tokenize_specifier(s: str) -> Tuple[str, Optional[str]]:
    """Return (name, constraint or None).

    A single space separates name from constraint ("pkg ^1.2"). Without a
    space, ``@`` is the delimiter ("pkg@^1.2"); a leading ``@`` belongs to a
    scoped name and is never treated as the delimiter.
    """
    s = s.strip()
    if " " in s:
        name, constraint = s.split(" ", 1)
    elif "@" in s:
        name, constraint = _split_at(s)
    else:
        name, constraint = s, None
    constraint = constraint.strip() if constraint is not None else None
    return name.strip(), constraint or None


def split_specifier(s: str) -> DependencySpecifier:
    """Parse a specifier into a DependencySpecifier.

    The literal constraint ``latest`` is treated as no constraint.

    Raises:
        InvalidSpecifierError: The name part is empty.
    """
    name, constraint = tokenize_specifier(s)
    if not name or name == "@":
        raise InvalidSpecifierError("missing package name", specifier=s)
    if constraint is not None and constraint.lower() == "latest":
        constraint = None
    return DependencySpecifier(name=name, raw_constraint=constraint)
