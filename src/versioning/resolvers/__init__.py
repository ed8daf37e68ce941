"""Version resolvers."""

from .npm import NpmVersionResolver, match_highest, pick, resolve

__all__ = [
    "NpmVersionResolver",
    "match_highest",
    "pick",
    "resolve",
]
