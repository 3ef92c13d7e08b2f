"""
leakcheck.lifecycle
===================

Pointer State Dataflow Engine.

For each pointer field of a class, the engine replays allocation, release,
assignment and alias events along the statement stream produced by
:meth:`leakcheck.callgraph.ClassCallGraph.expand` and derives a terminal
verdict.

Replay plan
-----------
1. Every constructor is replayed from the all-unallocated state; each one
   yields its own set of paths.
2. Every ordinary method that no constructor reaches is replayed from the
   post-construction paths.  These replays only contribute events
   (reassignment leaks, double releases, form mismatches); fields they
   leave allocated that construction did not (lazy initialization) enter
   step 3 as allocated.
3. The destructor, expanded through the call graph, is replayed from the
   post-construction paths.  The final state of each field on each path
   gives the verdict.  Without a destructor, the post-construction paths
   are final and anything still allocated leaks.

Per-field automaton
-------------------
::

    UNALLOCATED --new--> ALLOCATED(form) --delete--> RELEASED --delete--> DOUBLE_RELEASED
                            |     ^                     |
                            +-new-+ (reassignment leak) +--= nullptr--> UNALLOCATED

``FOREIGN`` marks a field holding a value the class did not allocate
(assigned from a parameter or an expression); it never leaks.

Branches fork the path set up to ``max_paths``; past the bound the fields
a branch touches are marked unresolved instead.  A call that cannot be
followed marks fields unresolved only during the destructor replay;
construction and ordinary methods are not release paths.  The verdict
for a field is the worst over all paths, with precedence
``DOUBLE_RELEASED > FORM_MISMATCH > LEAKED > UNRESOLVED > CLEAN``.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from leakcheck.callgraph import (
    DEFAULT_MAX_DEPTH,
    BranchStep,
    CallFrame,
    CallOut,
    CallOutcome,
    ClassCallGraph,
    ReplayItem,
    Step,
    build_callgraph,
)
from leakcheck.model import (
    Allocation,
    Assignment,
    ClassModel,
    Form,
    NULL_LITERALS,
    Release,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_PATHS = 64

# External functions known never to release their pointer arguments.
NON_RELEASING_CALLS = frozenset({
    "sizeof", "alignof", "memset", "memcpy", "memmove", "memcmp", "strcpy",
    "strncpy", "strcat", "strncat", "strlen", "strcmp", "strncmp", "printf",
    "fprintf", "sprintf", "snprintf", "puts", "assert",
})


# ---------------------------------------------------------------------------
# States, events, verdicts
# ---------------------------------------------------------------------------

class FieldState(enum.Enum):
    UNALLOCATED     = "unallocated"
    ALLOCATED       = "allocated"
    RELEASED        = "released"
    FOREIGN         = "foreign"
    DOUBLE_RELEASED = "double-released"


class Phase(enum.Enum):
    CONSTRUCT = "construct"
    METHOD    = "method"
    DESTRUCT  = "destruct"


class EventKind(enum.Enum):
    REASSIGNMENT_LEAK = "reassignment-leak"
    DOUBLE_RELEASE    = "double-release"
    FORM_MISMATCH     = "form-mismatch"


class VerdictKind(enum.Enum):
    CLEAN           = "clean"
    UNRESOLVED      = "unresolved"
    LEAKED          = "leaked"
    FORM_MISMATCH   = "form-mismatch"
    DOUBLE_RELEASED = "double-released"

    @property
    def rank(self) -> int:
        return _VERDICT_RANK[self]


_VERDICT_RANK = {
    VerdictKind.CLEAN: 0,
    VerdictKind.UNRESOLVED: 1,
    VerdictKind.LEAKED: 2,
    VerdictKind.FORM_MISMATCH: 3,
    VerdictKind.DOUBLE_RELEASED: 4,
}


@dataclass(frozen=True)
class FieldTrack:
    """State of one field on one path."""
    state: FieldState = FieldState.UNALLOCATED
    form: Optional[Form] = None
    line: int = 0
    file: str = ""
    method: str = ""
    unresolved: bool = False


@dataclass(frozen=True)
class LifecycleEvent:
    """A defect observed during replay, located at the offending statement.

    For ``FORM_MISMATCH`` events ``expected`` is the allocation form and
    ``found`` the release form.
    """
    kind: EventKind
    field: str
    line: int
    file: str = ""
    method: str = ""
    site: int = -1
    expected: Optional[Form] = None
    found: Optional[Form] = None


@dataclass(frozen=True)
class FieldVerdict:
    """Terminal classification of one pointer field.

    ``line``/``file``/``method`` locate the allocation for ``LEAKED``
    verdicts; ``no_destructor`` tells a missing destructor apart from one
    that never releases.
    """
    field: str
    kind: VerdictKind = VerdictKind.CLEAN
    line: int = 0
    file: str = ""
    method: str = ""
    form: Optional[Form] = None
    no_destructor: bool = False


@dataclass(frozen=True)
class LifecycleResult:
    """Everything the engine found for one class."""
    class_name: str
    verdicts: Tuple[FieldVerdict, ...] = ()
    events: Tuple[LifecycleEvent, ...] = ()
    has_destructor: bool = True
    paths: int = 0

    def verdict(self, name: str) -> Optional[FieldVerdict]:
        for v in self.verdicts:
            if v.field == name:
                return v
        return None

    def events_for(self, name: str) -> Tuple[LifecycleEvent, ...]:
        return tuple(e for e in self.events if e.field == name)


# ---------------------------------------------------------------------------
# Path state
# ---------------------------------------------------------------------------

@dataclass
class PathState:
    """Field states plus per-frame local bookkeeping along one path.

    ``aliases[frame][local]`` names the field a local currently aliases;
    ``locals[frame][local]`` holds a fresh allocation made into a local.
    """
    fields: Dict[str, FieldTrack] = field(default_factory=dict)
    aliases: Dict[int, Dict[str, str]] = field(default_factory=dict)
    locals: Dict[int, Dict[str, FieldTrack]] = field(default_factory=dict)

    @classmethod
    def fresh(cls, names: Iterable[str]) -> "PathState":
        return cls(fields={n: FieldTrack() for n in names})

    def clone(self) -> "PathState":
        return PathState(
            fields=dict(self.fields),
            aliases={k: dict(v) for k, v in self.aliases.items()},
            locals={k: dict(v) for k, v in self.locals.items()},
        )

    def key(self):
        return (
            tuple(sorted(self.fields.items(), key=lambda kv: kv[0])),
            tuple(sorted((k, tuple(sorted(v.items()))) for k, v in self.aliases.items() if v)),
            tuple(sorted((k, tuple(sorted(v.items(), key=lambda kv: kv[0])))
                         for k, v in self.locals.items() if v)),
        )

    def drop_frames(self) -> None:
        self.aliases.clear()
        self.locals.clear()


def _dedupe(paths: List[PathState]) -> List[PathState]:
    seen = set()
    out = []
    for p in paths:
        k = p.key()
        if k not in seen:
            seen.add(k)
            out.append(p)
    return out


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class LifecycleEngine:
    """Replays one class and produces a :class:`LifecycleResult`.

    Parameters
    ----------
    model : ClassModel
        The class to analyze.
    max_call_depth : int
        Deepest call nesting spliced into a replay.
    max_paths : int
        Most paths tracked at once.
    callgraph : ClassCallGraph, optional
        Reuse a prebuilt call graph.
    """

    def __init__(
        self,
        model: ClassModel,
        max_call_depth: int = DEFAULT_MAX_DEPTH,
        max_paths: int = DEFAULT_MAX_PATHS,
        callgraph: Optional[ClassCallGraph] = None,
    ) -> None:
        self.model = model
        self.max_call_depth = max_call_depth
        self.max_paths = max(1, max_paths)
        self.callgraph = callgraph or build_callgraph(model)
        self.field_names: Tuple[str, ...] = tuple(f.name for f in model.pointer_fields)
        self._fields: Set[str] = set(self.field_names)
        self._events: "OrderedDict[Tuple[EventKind, str, int], LifecycleEvent]" = OrderedDict()

    # ----- driver -----------------------------------------------------------

    def run(self) -> LifecycleResult:
        model = self.model
        if not self.field_names:
            return LifecycleResult(model.name, (), (), model.destructor is not None, 0)

        start = self._construct()
        lazy = self._replay_methods(start)
        if lazy:
            start = [self._with_lazy(p, lazy) for p in start]

        destructor = model.destructor
        if destructor is None:
            final = start
        elif not destructor.resolvable:
            logger.debug("%s: destructor has no analyzable body", model.name)
            final = [self._mark_all_unresolved(p.clone()) for p in start]
        else:
            items = self.callgraph.expand(destructor, self.max_call_depth)
            final = self._replay(items, [p.clone() for p in start], Phase.DESTRUCT)

        verdicts = tuple(self._verdict(name, final) for name in self.field_names)
        return LifecycleResult(
            class_name=model.name,
            verdicts=verdicts,
            events=tuple(self._events.values()),
            has_destructor=destructor is not None,
            paths=len(final),
        )

    def _construct(self) -> List[PathState]:
        paths: List[PathState] = []
        for ctor in self.model.constructors:
            items = self.callgraph.expand(ctor, self.max_call_depth)
            result = self._replay(items, [PathState.fresh(self.field_names)], Phase.CONSTRUCT)
            for p in result:
                p.drop_frames()
            paths.extend(result)
        if not paths:
            paths = [PathState.fresh(self.field_names)]
        paths = _dedupe(paths)
        if len(paths) > self.max_paths:
            logger.debug("%s: %d construction paths, keeping %d",
                         self.model.name, len(paths), self.max_paths)
            paths = paths[:self.max_paths]
        return paths

    def _constructor_reachable(self) -> Set[str]:
        reached: Set[str] = set()
        for ctor in self.model.constructors:
            reached.update(self.callgraph.transitive_callees(ctor.name))
        return reached

    def _replay_methods(self, start: List[PathState]) -> Dict[str, FieldTrack]:
        """Replay ordinary methods; return lazily allocated fields."""
        lazy: Dict[str, FieldTrack] = {}
        skip = self._constructor_reachable()
        for name, body in self.model.methods.items():
            if not body.resolvable or name in skip:
                continue
            items = self.callgraph.expand(body, self.max_call_depth)
            for before in start:
                for after in self._replay(items, [before.clone()], Phase.METHOD):
                    for fname in self.field_names:
                        track = after.fields[fname]
                        if track.state is FieldState.ALLOCATED and \
                                before.fields[fname].state is not FieldState.ALLOCATED:
                            lazy.setdefault(fname, track)
        return lazy

    @staticmethod
    def _with_lazy(path: PathState, lazy: Dict[str, FieldTrack]) -> PathState:
        out = path.clone()
        for fname, track in lazy.items():
            if out.fields[fname].state is FieldState.UNALLOCATED:
                out.fields[fname] = dataclasses.replace(track, unresolved=False)
        return out

    # ----- replay -----------------------------------------------------------

    def _replay(self, items: List[ReplayItem], paths: List[PathState],
                phase: Phase) -> List[PathState]:
        for item in items:
            if isinstance(item, BranchStep):
                paths = self._branch(item, paths, phase)
                continue
            for path in paths:
                if isinstance(item, CallOut):
                    self._call_out(item, path, phase)
                else:
                    self._step(item, path)
        return paths

    def _branch(self, item: BranchStep, paths: List[PathState], phase: Phase) -> List[PathState]:
        plans = [(path, self._viable_arms(item, path)) for path in paths]
        total = sum(len(arms) for _, arms in plans)
        if total > self.max_paths:
            logger.debug("%s: path bound %d hit at line %d",
                         self.model.name, self.max_paths, item.branch.line)
            for path in paths:
                self._mark_touched(item, path)
            return paths
        out: List[PathState] = []
        for path, arms in plans:
            for idx in arms:
                out.extend(self._replay(item.arms[idx], [path.clone()], phase))
        out = _dedupe(out)
        if len(out) > self.max_paths:
            logger.debug("%s: %d paths after branch at line %d, keeping %d",
                         self.model.name, len(out), item.branch.line, self.max_paths)
            for extra in out[self.max_paths:]:
                for name, track in extra.fields.items():
                    if track.state is FieldState.ALLOCATED:
                        for kept in out[:self.max_paths]:
                            kept.fields[name] = dataclasses.replace(kept.fields[name],
                                                                    unresolved=True)
            out = out[:self.max_paths]
        return out

    def _viable_arms(self, item: BranchStep, path: PathState) -> List[int]:
        arms = list(range(len(item.arms)))
        branch = item.branch
        if branch.guard is None or len(arms) != 2:
            return arms
        name = self._resolve(path, item.frame, branch.guard)
        if name is None:
            return arms
        state = path.fields[name].state
        if state in (FieldState.ALLOCATED, FieldState.RELEASED):
            nonnull = True
        elif state is FieldState.UNALLOCATED:
            nonnull = False
        else:
            return arms
        return [0] if nonnull == branch.guard_nonnull else [1]

    def _mark_touched(self, item: BranchStep, path: PathState) -> None:
        stack = [item]
        while stack:
            current = stack.pop()
            for arm in current.arms:
                for sub in arm:
                    if isinstance(sub, BranchStep):
                        stack.append(sub)
                    elif isinstance(sub, CallOut):
                        if sub.outcome is not CallOutcome.CYCLE:
                            self._mark_all_unresolved(path)
                    elif isinstance(sub.statement, (Allocation, Release, Assignment)):
                        name = self._resolve(path, sub.frame, sub.statement.target)
                        if name is not None:
                            path.fields[name] = dataclasses.replace(path.fields[name],
                                                                    unresolved=True)

    def _mark_all_unresolved(self, path: PathState) -> PathState:
        for name, track in path.fields.items():
            if track.state is FieldState.ALLOCATED:
                path.fields[name] = dataclasses.replace(track, unresolved=True)
        return path

    def _call_out(self, item: CallOut, path: PathState, phase: Phase) -> None:
        # Only a call on the release path can hide a release.
        if item.outcome is CallOutcome.CYCLE or phase is not Phase.DESTRUCT:
            return
        if item.outcome in (CallOutcome.UNRESOLVED, CallOutcome.DEPTH):
            self._mark_all_unresolved(path)
            return
        if item.call.callee in NON_RELEASING_CALLS:
            return
        for arg in item.call.args:
            name = self._resolve(path, item.frame, arg)
            if name is not None and path.fields[name].state is FieldState.ALLOCATED:
                logger.debug("%s: %s escapes to %s() at line %d",
                             self.model.name, name, item.call.callee, item.call.line)
                path.fields[name] = dataclasses.replace(path.fields[name], unresolved=True)

    # ----- statements -------------------------------------------------------

    def _resolve(self, path: PathState, frame: CallFrame, ref: str) -> Optional[str]:
        """Field named by *ref* in *frame* (through an alias if needed)."""
        aliased = path.aliases.get(frame.frame_id, {}).get(ref)
        if aliased is not None:
            return aliased
        if ref in self._fields:
            return ref
        return None

    def _is_local(self, path: PathState, frame: CallFrame, ref: str) -> bool:
        return ref in path.aliases.get(frame.frame_id, {}) or \
            ref in path.locals.get(frame.frame_id, {}) or ref not in self._fields

    def _unbind(self, path: PathState, frame: CallFrame, local: str) -> None:
        path.aliases.get(frame.frame_id, {}).pop(local, None)
        path.locals.get(frame.frame_id, {}).pop(local, None)

    def _event(self, kind: EventKind, name: str, frame: CallFrame, stmt, **extra) -> None:
        key = (kind, name, stmt.site)
        if key in self._events:
            return
        self._events[key] = LifecycleEvent(
            kind=kind, field=name, line=stmt.line, file=frame.file,
            method=frame.method, site=stmt.site, **extra,
        )

    def _step(self, item: Step, path: PathState) -> None:
        stmt = item.statement
        frame = item.frame
        if isinstance(stmt, Allocation):
            self._allocate(stmt, frame, path)
        elif isinstance(stmt, Release):
            self._release(stmt, frame, path)
        elif isinstance(stmt, Assignment):
            self._assign(stmt, frame, path)

    def _allocate(self, stmt: Allocation, frame: CallFrame, path: PathState,
                  form: Optional[Form] = None, line: Optional[int] = None) -> None:
        target = stmt.target
        form = form or stmt.form
        if stmt.declares_local or self._is_local(path, frame, target):
            self._unbind(path, frame, target)
            path.locals.setdefault(frame.frame_id, {})[target] = FieldTrack(
                FieldState.ALLOCATED, form, stmt.line, frame.file, frame.method)
            return
        track = path.fields[target]
        if track.state is FieldState.DOUBLE_RELEASED:
            return
        if track.state is FieldState.ALLOCATED:
            self._event(EventKind.REASSIGNMENT_LEAK, target, frame, stmt,
                        expected=track.form, found=form)
        path.fields[target] = FieldTrack(
            FieldState.ALLOCATED, form, line or stmt.line, frame.file, frame.method)

    def _release(self, stmt: Release, frame: CallFrame, path: PathState) -> None:
        name = self._resolve(path, frame, stmt.target)
        if name is None:
            path.locals.get(frame.frame_id, {}).pop(stmt.target, None)
            return
        track = path.fields[name]
        if track.state is FieldState.ALLOCATED:
            if track.form is not None and track.form is not stmt.form:
                self._event(EventKind.FORM_MISMATCH, name, frame, stmt,
                            expected=track.form, found=stmt.form)
            path.fields[name] = FieldTrack(
                FieldState.RELEASED, stmt.form, stmt.line, frame.file, frame.method)
        elif track.state is FieldState.FOREIGN:
            path.fields[name] = FieldTrack(
                FieldState.RELEASED, stmt.form, stmt.line, frame.file, frame.method)
        elif track.state is FieldState.RELEASED:
            self._event(EventKind.DOUBLE_RELEASE, name, frame, stmt,
                        expected=track.form, found=stmt.form)
            path.fields[name] = dataclasses.replace(track, state=FieldState.DOUBLE_RELEASED)

    def _assign(self, stmt: Assignment, frame: CallFrame, path: PathState) -> None:
        target, source = stmt.target, stmt.source
        frame_aliases = path.aliases.setdefault(frame.frame_id, {})
        frame_locals = path.locals.setdefault(frame.frame_id, {})

        if stmt.declares_local or self._is_local(path, frame, target):
            self._unbind(path, frame, target)
            origin = self._resolve(path, frame, source)
            if origin is not None:
                frame_aliases[target] = origin
            elif source in frame_locals:
                frame_locals[target] = frame_locals[source]
            return

        track = path.fields[target]
        if track.state is FieldState.DOUBLE_RELEASED:
            return
        if _is_null(source):
            if track.state is not FieldState.ALLOCATED:
                path.fields[target] = FieldTrack()
            return
        if source in frame_locals:
            fresh = frame_locals.pop(source)
            self._allocate(Allocation(target, fresh.form, stmt.line, site=stmt.site),
                           frame, path, fresh.form, fresh.line)
            frame_aliases[source] = target
            return
        if self._resolve(path, frame, source) == target:
            return
        path.fields[target] = FieldTrack(FieldState.FOREIGN, None, stmt.line,
                                         frame.file, frame.method)

    # ----- verdicts ---------------------------------------------------------

    def _verdict(self, name: str, final: List[PathState]) -> FieldVerdict:
        kinds = [VerdictKind.CLEAN]
        leak: Optional[FieldTrack] = None
        for path in final:
            track = path.fields[name]
            if track.state is FieldState.ALLOCATED:
                if track.unresolved:
                    kinds.append(VerdictKind.UNRESOLVED)
                else:
                    kinds.append(VerdictKind.LEAKED)
                    leak = leak or track
            elif track.state is FieldState.DOUBLE_RELEASED:
                kinds.append(VerdictKind.DOUBLE_RELEASED)
        for event in self._events.values():
            if event.field != name:
                continue
            if event.kind is EventKind.DOUBLE_RELEASE:
                kinds.append(VerdictKind.DOUBLE_RELEASED)
            elif event.kind is EventKind.FORM_MISMATCH:
                kinds.append(VerdictKind.FORM_MISMATCH)
        kind = max(kinds, key=lambda k: k.rank)
        if kind is VerdictKind.LEAKED and leak is not None:
            return FieldVerdict(
                field=name, kind=kind, line=leak.line, file=leak.file,
                method=leak.method, form=leak.form,
                no_destructor=self.model.destructor is None,
            )
        return FieldVerdict(field=name, kind=kind,
                            no_destructor=self.model.destructor is None)


def _is_null(source: str) -> bool:
    """Is *source* a null pointer literal?"""
    return source.strip() in NULL_LITERALS


def analyze_lifecycle(
    model: ClassModel,
    max_call_depth: int = DEFAULT_MAX_DEPTH,
    max_paths: int = DEFAULT_MAX_PATHS,
) -> LifecycleResult:
    """Run the lifecycle engine on one class."""
    return LifecycleEngine(model, max_call_depth, max_paths).run()


__all__ = [
    "DEFAULT_MAX_PATHS",
    "NON_RELEASING_CALLS",
    "FieldState",
    "Phase",
    "EventKind",
    "VerdictKind",
    "FieldTrack",
    "LifecycleEvent",
    "FieldVerdict",
    "LifecycleResult",
    "PathState",
    "LifecycleEngine",
    "analyze_lifecycle",
]
