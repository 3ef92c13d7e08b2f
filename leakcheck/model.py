"""
leakcheck.model
===============

Data model shared by the front-end, the class model builder and the
pointer-lifecycle engine.

Two layers live here:

``RawClass`` / ``RawMethod``
    What a front-end hands over: member declarations and method bodies as
    ordered statement lists.  Nothing is normalized yet.

``ClassModel`` / ``MethodBody`` / ``FieldDecl``
    The immutable per-class model produced by
    :func:`leakcheck.builder.build_class_model`.  Field references are
    normalized (``this->x`` and ``x`` are the same field), every statement
    carries a unique *site* id, and pointer-ness of fields is final.

Statements
----------
``Allocation``   ``target = new T`` / ``new T[n]``
``Release``      ``delete target`` / ``delete[] target``
``Assignment``   ``target = source``
``MethodCall``   ``callee(args)`` / ``this->callee(args)``
``Branch``       ``if (...) {...} else {...}``
``Other``        anything the front-end could not classify
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Union


# ---------------------------------------------------------------------------
# Allocation form
# ---------------------------------------------------------------------------

class Form(enum.Enum):
    """Scalar (``new``/``delete``) or array (``new[]``/``delete[]``)."""

    SCALAR = "scalar"
    ARRAY  = "array"

    @property
    def new_spelling(self) -> str:
        return "new[]" if self is Form.ARRAY else "new"

    @property
    def delete_spelling(self) -> str:
        return "delete[]" if self is Form.ARRAY else "delete"


NULL_LITERALS: FrozenSet[str] = frozenset({"nullptr", "NULL", "0"})


def strip_self(ref: str) -> str:
    """Drop a ``this->`` / ``this.`` / ``(*this).`` qualifier from *ref*."""
    ref = ref.strip()
    for prefix in ("this->", "this.", "(*this)."):
        if ref.startswith(prefix):
            return ref[len(prefix):].strip()
    return ref


def is_simple_ref(ref: str) -> bool:
    """Is *ref* a plain identifier (after stripping a self qualifier)?"""
    name = strip_self(ref)
    return bool(name) and (name[0].isalpha() or name[0] == "_") and all(
        ch.isalnum() or ch == "_" for ch in name
    )


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Allocation:
    """``target = new T`` (scalar) or ``target = new T[n]`` (array).

    ``declares_local`` is set when the statement also declares *target*
    (``T *tmp = new T;``), which makes it a local, never a field.
    """
    target: str
    form: Form = Form.SCALAR
    line: int = 0
    declares_local: bool = False
    site: int = -1


@dataclass(frozen=True)
class Release:
    """``delete target`` or ``delete[] target``."""
    target: str
    form: Form = Form.SCALAR
    line: int = 0
    site: int = -1


@dataclass(frozen=True)
class Assignment:
    """``target = source`` where *source* is a single reference or literal."""
    target: str
    source: str
    line: int = 0
    declares_local: bool = False
    site: int = -1

    @property
    def assigns_null(self) -> bool:
        return strip_self(self.source) in NULL_LITERALS


@dataclass(frozen=True)
class MethodCall:
    """A call whose receiver is the current object (or unqualified).

    ``args`` holds the argument expressions that are plain references;
    they matter when the callee cannot be resolved inside the class.
    """
    callee: str
    args: Tuple[str, ...] = ()
    line: int = 0
    site: int = -1


@dataclass(frozen=True)
class Branch:
    """Conditional with one or more arms.

    ``arms[0]`` runs when the condition holds, ``arms[1]`` (possibly empty)
    otherwise.  When the condition is a null check on a single reference,
    ``guard`` names it and ``guard_nonnull`` tells whether ``arms[0]`` runs
    for the non-null case (``if (p)``) or the null case (``if (!p)``).
    """
    arms: Tuple[Tuple["Statement", ...], ...] = ((), ())
    guard: Optional[str] = None
    guard_nonnull: bool = True
    line: int = 0
    site: int = -1


@dataclass(frozen=True)
class Other:
    """An unclassified statement; never contributes events."""
    text: str = ""
    line: int = 0
    site: int = -1


Statement = Union[Allocation, Release, Assignment, MethodCall, Branch, Other]


# ---------------------------------------------------------------------------
# Front-end records
# ---------------------------------------------------------------------------

@dataclass
class RawMember:
    """A member declaration as seen in the class body.

    ``init_form`` is set for a default member initializer of the form
    ``T *p = new T...;``, which allocates on every construction.
    """
    name: str
    type_name: str = ""
    is_pointer: bool = False
    line: int = 0
    init_form: Optional[Form] = None


@dataclass
class RawMethod:
    """A method as seen by the front-end.

    ``statements`` is ``None`` when the method is only declared (no body
    seen).  ``opaque`` marks a body the front-end could not decompose.
    """
    name: str
    statements: Optional[list] = None
    params: Tuple[str, ...] = ()
    line: int = 0
    is_constructor: bool = False
    is_destructor: bool = False
    opaque: bool = False
    file: str = ""

    @property
    def has_body(self) -> bool:
        return self.statements is not None

    def count(self, kind: type) -> int:
        """Number of top-level statements of *kind* (used when merging)."""
        return sum(1 for s in (self.statements or ()) if isinstance(s, kind))


Suppressions = Dict[Tuple[str, int], FrozenSet[str]]


@dataclass
class RawClass:
    """One class (or one piece of it) as extracted from one source file.

    ``suppressions`` maps ``(file, line)`` to the diagnostic kinds silenced
    by an inline comment on that line.
    """
    name: str
    file: str = ""
    line: int = 0
    members: list = field(default_factory=list)
    methods: list = field(default_factory=list)
    bases: Tuple[str, ...] = ()
    suppressions: Suppressions = field(default_factory=dict)

    @property
    def constructors(self) -> list:
        return [m for m in self.methods if m.is_constructor]

    @property
    def constructor(self) -> Optional[RawMethod]:
        ctors = self.constructors
        with_body = [m for m in ctors if m.has_body]
        if with_body:
            return with_body[0]
        return ctors[0] if ctors else None

    @property
    def destructor(self) -> Optional[RawMethod]:
        dtors = [m for m in self.methods if m.is_destructor]
        with_body = [m for m in dtors if m.has_body]
        if with_body:
            return with_body[0]
        return dtors[0] if dtors else None


# ---------------------------------------------------------------------------
# Built model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldDecl:
    """A field of the analyzed class.

    ``is_pointer`` is true when the declaration has a ``*`` or the field is
    ever the target of an allocation or release statement.
    """
    name: str
    is_pointer: bool = True
    type_name: str = ""
    line: int = 0


@dataclass(frozen=True)
class MethodBody:
    """A normalized method body.

    ``statements`` is ``None`` for methods that are declared but whose
    body was never seen; ``opaque`` bodies could not be decomposed.  Both
    are unresolvable call targets.
    """
    name: str
    statements: Optional[Tuple[Statement, ...]] = ()
    params: Tuple[str, ...] = ()
    line: int = 0
    opaque: bool = False
    file: str = ""

    @property
    def resolvable(self) -> bool:
        return self.statements is not None and not self.opaque

    def iter_statements(self):
        """Yield every statement, descending into branch arms."""
        stack = list(reversed(self.statements or ()))
        while stack:
            stmt = stack.pop()
            yield stmt
            if isinstance(stmt, Branch):
                for arm in reversed(stmt.arms):
                    stack.extend(reversed(arm))


@dataclass(frozen=True)
class ClassModel:
    """Immutable per-class model consumed by the analysis.

    Attributes
    ----------
    name : str
        Class name.
    fields : tuple[FieldDecl, ...]
        Fields in declaration order (inferred fields last).
    constructors : tuple[MethodBody, ...]
        Every constructor with a body; each one starts a separate replay.
    destructor : MethodBody or None
        ``None`` when the class declares no destructor at all.
    methods : Mapping[str, MethodBody]
        Ordinary methods by name (first definition with a body wins).
    bases : frozenset[str]
        Base class names.  Informational only.
    """
    name: str
    fields: Tuple[FieldDecl, ...] = ()
    constructors: Tuple[MethodBody, ...] = ()
    destructor: Optional[MethodBody] = None
    methods: Mapping[str, MethodBody] = field(default_factory=dict)
    bases: FrozenSet[str] = frozenset()
    file: str = ""
    line: int = 0
    suppressions: Mapping[Tuple[str, int], FrozenSet[str]] = field(default_factory=dict)

    @property
    def constructor(self) -> Optional[MethodBody]:
        return self.constructors[0] if self.constructors else None

    @property
    def pointer_fields(self) -> Tuple[FieldDecl, ...]:
        return tuple(f for f in self.fields if f.is_pointer)

    def field_named(self, name: str) -> Optional[FieldDecl]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def all_bodies(self) -> Tuple[MethodBody, ...]:
        """Constructors, destructor and ordinary methods, in that order."""
        bodies = list(self.constructors)
        if self.destructor is not None:
            bodies.append(self.destructor)
        bodies.extend(self.methods.values())
        return tuple(bodies)


__all__ = [
    "Form",
    "NULL_LITERALS",
    "strip_self",
    "is_simple_ref",
    "Allocation",
    "Release",
    "Assignment",
    "MethodCall",
    "Branch",
    "Other",
    "Statement",
    "RawMember",
    "RawMethod",
    "RawClass",
    "Suppressions",
    "FieldDecl",
    "MethodBody",
    "ClassModel",
]
