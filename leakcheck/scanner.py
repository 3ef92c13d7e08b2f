"""
leakcheck.scanner
=================

Finds the C++ source files to analyze under a set of input paths.

* A file given explicitly is kept when its extension is a source
  extension.
* Directories are walked recursively in sorted order.  A directory or file
  whose name equals an exclude entry, or whose path contains it as a
  component, is skipped.
* Results are absolute, de-duplicated, and keep first-seen order.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Sequence, Set, Union

from leakcheck.config import DEFAULT_EXTENSIONS
from leakcheck.errors import ScanError

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class SourceScanner:
    """Collect source files under one or more paths.

    Parameters
    ----------
    extensions : sequence of str
        Accepted suffixes (case-insensitive), e.g. ``(".cpp", ".h")``.
    excludes : sequence of str
        Directory or file names to skip.  An entry containing a path
        separator matches as a path fragment.
    """

    def __init__(self, extensions: Sequence[str] = DEFAULT_EXTENSIONS,
                 excludes: Sequence[str] = ()) -> None:
        self.extensions = tuple(e.lower() for e in extensions)
        self.excludes = tuple(e.strip().strip("/\\") for e in excludes if e.strip())

    def is_source(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def is_excluded(self, path: Path) -> bool:
        """Match *path* (relative to the scan root) against the excludes."""
        parts = path.parts
        posix = path.as_posix()
        for exclude in self.excludes:
            if "/" in exclude or "\\" in exclude:
                fragment = exclude.replace("\\", "/")
                if f"/{fragment}/" in f"/{posix}/":
                    return True
            elif exclude in parts:
                return True
        return False

    def scan_path(self, path: PathLike) -> List[Path]:
        """Source files at or under *path*.

        Raises
        ------
        ScanError
            When *path* does not exist.
        """
        p = Path(path)
        if not p.exists():
            raise ScanError(str(p), "no such file or directory")
        if p.is_file():
            return [p] if self.is_source(p) else []

        found: List[Path] = []
        for root, dirs, files in os.walk(p, onerror=self._walk_error):
            root_path = Path(root)
            dirs[:] = sorted(
                d for d in dirs if not self.is_excluded((root_path / d).relative_to(p))
            )
            for name in sorted(files):
                candidate = root_path / name
                if self.is_source(candidate) and \
                        not self.is_excluded(candidate.relative_to(p)):
                    found.append(candidate)
        return found

    def scan(self, paths: Iterable[PathLike]) -> List[Path]:
        """Absolute, de-duplicated source files under every path in *paths*."""
        seen: Set[Path] = set()
        result: List[Path] = []
        for path in paths:
            for f in self.scan_path(path):
                resolved = f.resolve()
                if resolved not in seen:
                    seen.add(resolved)
                    result.append(resolved)
        logger.info("found %d source file(s)", len(result))
        return result

    @staticmethod
    def _walk_error(exc: OSError) -> None:
        logger.warning("skipping unreadable directory: %s", exc)


def scan_paths(paths: Iterable[PathLike], extensions: Sequence[str] = DEFAULT_EXTENSIONS,
               excludes: Sequence[str] = ()) -> List[Path]:
    return SourceScanner(extensions, excludes).scan(paths)


__all__ = [
    "SourceScanner",
    "scan_paths",
]
