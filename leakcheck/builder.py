"""
leakcheck.builder
=================

Class Model Builder: turns a :class:`~leakcheck.model.RawClass` into the
immutable :class:`~leakcheck.model.ClassModel` the engine consumes.

What happens here
-----------------
* ``this->x`` and ``x`` are made the same reference.
* A method's parameters and declared locals that shadow a field are
  renamed (``$x``) so they can never be mistaken for the field.
* Fields: every declared member, plus any name that is allocated into or
  released while not being a local of that method (a member declared in
  a header that was not scanned, or in a base class).  A field is a
  pointer when declared with ``*`` or used as an allocation/release
  target.
* Default member initializers and constructor initializer lists that
  allocate become leading ``Allocation`` statements of every constructor.
* Every statement receives a class-unique ``site`` id.

The builder never raises on odd input.  Bodies the front-end marked
opaque stay opaque.
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
from collections import OrderedDict
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from leakcheck.model import (
    Allocation,
    Assignment,
    Branch,
    ClassModel,
    FieldDecl,
    MethodBody,
    MethodCall,
    RawClass,
    RawMethod,
    Release,
    Statement,
    is_simple_ref,
    strip_self,
)

logger = logging.getLogger(__name__)

LOCAL_MARK = "$"


def _walk(statements: Iterable[Statement]) -> Iterator[Statement]:
    for stmt in statements:
        yield stmt
        if isinstance(stmt, Branch):
            for arm in stmt.arms:
                yield from _walk(arm)


def _declared_locals(method: RawMethod) -> Set[str]:
    names = set(method.params)
    for stmt in _walk(method.statements or ()):
        if isinstance(stmt, (Allocation, Assignment)) and stmt.declares_local:
            names.add(strip_self(stmt.target))
    return names


def _is_qualified(ref: str) -> bool:
    return strip_self(ref) != ref.strip()


class _ModelBuilder:

    def __init__(self, raw: RawClass) -> None:
        self.raw = raw
        self.members = OrderedDict((m.name, m) for m in raw.members)
        self._sites = itertools.count()
        self._inferred: "OrderedDict[str, int]" = OrderedDict()
        self._targets: Set[str] = set()

    # ----- references -------------------------------------------------------

    def _norm(self, ref: str, local_names: Set[str]) -> str:
        if not is_simple_ref(ref):
            return ref
        name = strip_self(ref)
        if _is_qualified(ref):
            return name
        if name in local_names and name in self.members:
            return LOCAL_MARK + name
        return name

    def _note_target(self, name: str, local_names: Set[str], line: int) -> None:
        if name.startswith(LOCAL_MARK) or not is_simple_ref(name):
            return
        self._targets.add(name)
        if name not in self.members and name not in local_names:
            self._inferred.setdefault(name, line)

    # ----- statements -------------------------------------------------------

    def _normalize(self, statements: Sequence[Statement], local_names: Set[str]) -> Tuple[Statement, ...]:
        out: List[Statement] = []
        for stmt in statements:
            site = next(self._sites)
            if isinstance(stmt, Allocation):
                target = self._norm(stmt.target, local_names)
                if not stmt.declares_local:
                    self._note_target(target, local_names, stmt.line)
                out.append(dataclasses.replace(stmt, target=target, site=site))
            elif isinstance(stmt, Release):
                target = self._norm(stmt.target, local_names)
                self._note_target(target, local_names, stmt.line)
                out.append(dataclasses.replace(stmt, target=target, site=site))
            elif isinstance(stmt, Assignment):
                out.append(dataclasses.replace(
                    stmt,
                    target=self._norm(stmt.target, local_names),
                    source=self._norm(stmt.source, local_names),
                    site=site,
                ))
            elif isinstance(stmt, MethodCall):
                out.append(dataclasses.replace(
                    stmt,
                    callee=strip_self(stmt.callee),
                    args=tuple(self._norm(a, local_names) for a in stmt.args),
                    site=site,
                ))
            elif isinstance(stmt, Branch):
                guard = self._norm(stmt.guard, local_names) if stmt.guard else None
                arms = tuple(self._normalize(arm, local_names) for arm in stmt.arms)
                out.append(dataclasses.replace(stmt, arms=arms, guard=guard, site=site))
            else:
                out.append(dataclasses.replace(stmt, site=site))
        return tuple(out)

    def _body(self, method: RawMethod, prologue: Sequence[Statement] = ()) -> MethodBody:
        statements: Optional[Tuple[Statement, ...]] = None
        if method.has_body or prologue:
            local_names = _declared_locals(method)
            statements = self._normalize(list(prologue) + list(method.statements or ()), local_names)
        return MethodBody(
            name=method.name,
            statements=statements,
            params=tuple(method.params),
            line=method.line,
            opaque=method.opaque,
            file=method.file or self.raw.file,
        )

    # ----- model ------------------------------------------------------------

    def build(self) -> ClassModel:
        raw = self.raw
        prologue = [
            Allocation(m.name, m.init_form, m.line)
            for m in raw.members if m.init_form is not None
        ]

        constructors: List[MethodBody] = []
        ctor_methods = [m for m in raw.constructors if m.has_body]
        if not ctor_methods and prologue:
            ctor_methods = [RawMethod(raw.name, [], line=raw.line, is_constructor=True,
                                      file=raw.file)]
        for ctor in ctor_methods:
            constructors.append(self._body(ctor, prologue))

        destructor = None
        if raw.destructor is not None:
            destructor = self._body(raw.destructor)

        methods: "OrderedDict[str, MethodBody]" = OrderedDict()
        for method in raw.methods:
            if method.is_constructor or method.is_destructor:
                continue
            current = methods.get(method.name)
            if current is not None and (current.statements is not None or not method.has_body):
                logger.debug("%s::%s: keeping first definition", raw.name, method.name)
                continue
            methods[method.name] = self._body(method)

        fields: List[FieldDecl] = []
        for member in raw.members:
            fields.append(FieldDecl(
                name=member.name,
                is_pointer=member.is_pointer or member.name in self._targets,
                type_name=member.type_name,
                line=member.line,
            ))
        for name, line in self._inferred.items():
            logger.debug("%s: inferring pointer field %r", raw.name, name)
            fields.append(FieldDecl(name=name, is_pointer=True, line=line))

        return ClassModel(
            name=raw.name,
            fields=tuple(fields),
            constructors=tuple(constructors),
            destructor=destructor,
            methods=dict(methods),
            bases=frozenset(raw.bases),
            file=raw.file,
            line=raw.line,
            suppressions=dict(raw.suppressions),
        )


def build_class_model(raw: RawClass) -> ClassModel:
    """Build the immutable model of one class."""
    return _ModelBuilder(raw).build()


def build_class_models(classes: Iterable[RawClass]) -> List[ClassModel]:
    return [build_class_model(raw) for raw in classes]


__all__ = [
    "LOCAL_MARK",
    "build_class_model",
    "build_class_models",
]
