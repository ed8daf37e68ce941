"""Ephemeral host directories backing sandbox installs."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from typing import Any, Optional

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = '/\\:*?"<>|'
_TRANSLATION = str.maketrans({c: "_" for c in _UNSAFE_CHARS})


def sanitize_file_name(name: str) -> str:
    """Replace filesystem-unsafe characters with underscores."""
    return name.translate(_TRANSLATION)


class TmpDir:
    """A host directory path with small helpers."""

    def __init__(self, path: str):
        self.path = path

    @classmethod
    def create(cls, prefix: str, parent: Optional[str] = None) -> "TmpDir":
        """Make a new uniquely-named directory (mkdtemp semantics)."""
        return cls(tempfile.mkdtemp(prefix=prefix, dir=parent))

    def join(self, *parts: str) -> str:
        return os.path.join(self.path, *parts)

    def exists(self) -> bool:
        return os.path.isdir(self.path)

    def remove(self) -> None:
        """Delete the directory tree; failures are logged, not raised."""
        try:
            shutil.rmtree(self.path)
            logger.debug("Removed temp dir %s", self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove temp dir %s: %s", self.path, e)

    def write_json(self, name: str, content: Any) -> str:
        """Write ``content`` as indented JSON to ``name`` inside the directory."""
        path = self.join(name)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(content, f, indent=2)
            f.write("\n")
        return path

    def __fspath__(self) -> str:
        return self.path

    def __str__(self) -> str:
        return self.path

    def __repr__(self) -> str:
        return f"TmpDir({self.path!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TmpDir):
            return self.path == other.path
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.path)
