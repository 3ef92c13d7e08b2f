"""
leakcheck.registry
==================

Collects :class:`~leakcheck.model.RawClass` records from many files and
merges the pieces of one class that live in different files (declaration
in a header, method definitions in an implementation file).

Merge rules
-----------
* Members come from the piece that declares them; the header piece wins
  on conflicts.
* For each method, a definition with a body beats a declaration; between
  two bodies, the one with more allocation/release statements wins.
* The class is located at its definition (the piece with members), and
  every contributing file is remembered in ``files``.
* Inline suppressions of all pieces are kept, keyed by file.

Only complementary pieces merge: one of them comes from a header, or one
of them declares no members (out-of-class definitions).  Two complete
definitions of a same-named class in two implementation files are two
different classes and stay apart.

With ``merge_headers=False`` nothing is merged: every ``(name, file)``
pair stays a separate class.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from leakcheck.model import Allocation, RawClass, RawMethod, Release

logger = logging.getLogger(__name__)

HEADER_SUFFIXES = (".h", ".hh", ".hpp", ".hxx")


def _is_header(path: str) -> bool:
    return Path(path).suffix.lower() in HEADER_SUFFIXES


def _lifecycle_weight(method: RawMethod) -> int:
    return method.count(Allocation) + method.count(Release)


def _same_slot(a: RawMethod, b: RawMethod) -> bool:
    return (
        a.name == b.name
        and a.is_constructor == b.is_constructor
        and a.is_destructor == b.is_destructor
    )


def complementary(first: RawClass, second: RawClass) -> bool:
    """Are *first* and *second* pieces of one class rather than two classes?"""
    if first.file == second.file:
        return True
    return (
        _is_header(first.file)
        or _is_header(second.file)
        or not first.members
        or not second.members
    )


def merge_raw_classes(first: RawClass, second: RawClass) -> RawClass:
    """Merge two pieces of the same class into a new :class:`RawClass`."""
    if _is_header(second.file) and not _is_header(first.file) and second.members:
        primary, secondary = second, first
    elif not first.members and second.members:
        primary, secondary = second, first
    else:
        primary, secondary = first, second

    members = list(primary.members)
    known = {m.name for m in members}
    for member in secondary.members:
        if member.name not in known:
            members.append(member)
            known.add(member.name)

    methods: List[RawMethod] = list(primary.methods)
    for method in secondary.methods:
        for i, existing in enumerate(methods):
            if not _same_slot(existing, method):
                continue
            if not existing.has_body and method.has_body:
                methods[i] = method
            elif existing.has_body and method.has_body and \
                    _lifecycle_weight(method) > _lifecycle_weight(existing):
                methods[i] = method
            break
        else:
            methods.append(method)

    merged = RawClass(
        name=primary.name,
        file=primary.file or secondary.file,
        line=primary.line or secondary.line,
        members=members,
        methods=methods,
        bases=tuple(dict.fromkeys(primary.bases + secondary.bases)),
        suppressions={**secondary.suppressions, **primary.suppressions},
    )
    return merged


class ClassRegistry:
    """Ordered collection of classes found across a scan.

    Attributes
    ----------
    merge_headers : bool
        Merge same-named classes across files.
    files : dict[str, list[str]]
        For each registry key, the files that contributed to it.
    """

    def __init__(self, merge_headers: bool = True) -> None:
        self.merge_headers = merge_headers
        self._classes: "OrderedDict[Tuple[str, str], RawClass]" = OrderedDict()
        self.files: Dict[Tuple[str, str], List[str]] = {}

    def _key(self, raw: RawClass) -> Tuple[str, str]:
        return (raw.name, "") if self.merge_headers else (raw.name, raw.file)

    def add(self, raw: RawClass) -> None:
        key = self._key(raw)
        existing = self._classes.get(key)
        if existing is not None and not complementary(existing, raw):
            logger.debug("%s in %s is a separate class from the one in %s",
                         raw.name, raw.file, existing.file)
            key = (raw.name, raw.file)
            existing = self._classes.get(key)
        if existing is None:
            self._classes[key] = raw
            self.files[key] = [raw.file]
            return
        logger.debug("merging %s from %s into %s", raw.name, raw.file, existing.file)
        self._classes[key] = merge_raw_classes(existing, raw)
        if raw.file not in self.files[key]:
            self.files[key].append(raw.file)

    def add_all(self, classes: Iterable[RawClass]) -> None:
        for raw in classes:
            self.add(raw)

    def get(self, name: str) -> Optional[RawClass]:
        for (cls_name, _), raw in self._classes.items():
            if cls_name == name:
                return raw
        return None

    def files_of(self, name: str) -> List[str]:
        for key, files in self.files.items():
            if key[0] == name:
                return list(files)
        return []

    def names(self) -> List[str]:
        return [key[0] for key in self._classes]

    def classes(self) -> List[RawClass]:
        return list(self._classes.values())

    def __iter__(self) -> Iterator[RawClass]:
        return iter(self.classes())

    def __len__(self) -> int:
        return len(self._classes)

    def __contains__(self, name: object) -> bool:
        return any(key[0] == name for key in self._classes)

    def __repr__(self) -> str:
        return f"ClassRegistry(classes={len(self)}, merge_headers={self.merge_headers})"


__all__ = [
    "HEADER_SUFFIXES",
    "ClassRegistry",
    "complementary",
    "merge_raw_classes",
]
