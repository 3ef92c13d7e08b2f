"""
leakcheck.callgraph
===================

Intra-class call graph and the bounded expansion of a method into the
replay stream the lifecycle engine consumes.

The call graph is a directed graph where:

- **Nodes** are the class's constructors, destructor and methods, plus
  synthetic nodes for callees that are not methods of the class
  (external or inherited functions).
- **Edges** are call sites, in statement order, annotated with how the
  call resolves.

Resolution kinds
----------------
``DIRECT``
    The callee is a method of the class with an analyzable body.
``UNRESOLVED``
    The callee is a method of the class that is only declared, or whose
    body could not be decomposed.
``EXTERNAL``
    The callee is not a method of the class.

Expansion
---------
:meth:`ClassCallGraph.expand` splices callee bodies into the caller at
the call site, depth first, in program order.  A method already on the
current call path is not re-entered (the call is skipped), and calls
nested deeper than ``max_depth`` are reported as unresolved.  The
traversal uses an explicit stack, so deep or cyclic call structures
never exhaust the interpreter stack.

Typical usage::

    from leakcheck.callgraph import build_callgraph

    cg = build_callgraph(model)
    for item in cg.expand(model.destructor, max_depth=32):
        ...
    print(cg.to_dot())
"""

from __future__ import annotations

import enum
import itertools
import logging
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Any, Deque, List, Optional, Set, Tuple, Union

from leakcheck.model import Branch, ClassModel, MethodBody, MethodCall, Statement

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32
# Upper bound on replay items produced by one expansion.
MAX_EXPANSION_ITEMS = 100_000


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------

class CallResolutionKind(enum.Enum):
    """How a call edge was resolved."""

    DIRECT     = "direct"
    UNRESOLVED = "unresolved"
    EXTERNAL   = "external"


class NodeKind(enum.Enum):
    """Classification of a call-graph node."""

    CONSTRUCTOR = "constructor"
    DESTRUCTOR  = "destructor"
    METHOD      = "method"      # method with an analyzable body
    DECLARED    = "declared"    # declared only, or opaque body
    EXTERNAL    = "external"    # not a method of the class


class CallOutcome(enum.Enum):
    """Why a call was not spliced into the replay stream."""

    EXTERNAL   = "external"     # callee is not a method of the class
    UNRESOLVED = "unresolved"   # declared without body, or opaque
    DEPTH      = "depth"        # depth bound (or expansion budget) exceeded
    CYCLE      = "cycle"        # callee already on the current call path


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

class CallGraphNode:
    """A node in the class call graph.

    Attributes
    ----------
    name : str
        Method name (``~Name`` for the destructor, the class name for
        constructors).
    kind : NodeKind
        What this node represents.
    body : MethodBody or None
        The method body (``None`` for external nodes).
    out_edges : list[CallGraphEdge]
        Calls made by this method, in statement order.
    in_edges : list[CallGraphEdge]
        Calls to this method.
    """

    __slots__ = ("name", "kind", "body", "out_edges", "in_edges")

    def __init__(self, name: str, kind: NodeKind = NodeKind.METHOD,
                 body: Optional[MethodBody] = None) -> None:
        self.name = name
        self.kind = kind
        self.body = body
        self.out_edges: List[CallGraphEdge] = []
        self.in_edges: List[CallGraphEdge] = []

    def __repr__(self) -> str:
        return f"CallGraphNode({self.name!r}, {self.kind.value})"

    def __hash__(self) -> int:
        return hash(self.name)

    def __eq__(self, other) -> bool:
        return isinstance(other, CallGraphNode) and self.name == other.name


class CallGraphEdge:
    """A directed call edge (one call site)."""

    __slots__ = ("caller", "callee", "line", "resolution")

    def __init__(self, caller: CallGraphNode, callee: CallGraphNode,
                 line: int = 0,
                 resolution: CallResolutionKind = CallResolutionKind.DIRECT) -> None:
        self.caller = caller
        self.callee = callee
        self.line = line
        self.resolution = resolution

    def __repr__(self) -> str:
        return (
            f"CallGraphEdge({self.caller.name} -> {self.callee.name}, "
            f"{self.resolution.value}, line={self.line})"
        )


# ---------------------------------------------------------------------------
# Replay stream
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CallFrame:
    """One activation of a method during expansion.

    ``frame_id`` is unique within one expansion; local aliases live per
    frame.
    """
    method: str
    depth: int = 0
    frame_id: int = 0
    file: str = ""
    call_line: int = 0


@dataclass(frozen=True)
class Step:
    """A non-call statement executed in *frame*."""
    frame: CallFrame
    statement: Statement


@dataclass(frozen=True)
class CallOut:
    """A call that was not spliced in, and why."""
    frame: CallFrame
    call: MethodCall
    outcome: CallOutcome


@dataclass(frozen=True)
class BranchStep:
    """A branch; ``arms`` holds the expanded stream of each arm."""
    frame: CallFrame
    branch: Branch
    arms: Tuple[List["ReplayItem"], ...]


ReplayItem = Union[Step, CallOut, BranchStep]


class ClassCallGraph:
    """The call graph of one class.

    Attributes
    ----------
    model : ClassModel
        The class the graph was built from.
    nodes : OrderedDict[str, CallGraphNode]
        All nodes keyed by name.
    edges : list[CallGraphEdge]
        All edges in insertion order.
    """

    def __init__(self, model: ClassModel) -> None:
        self.model = model
        self.nodes: "OrderedDict[str, CallGraphNode]" = OrderedDict()
        self.edges: List[CallGraphEdge] = []

    # ----- construction -----------------------------------------------------

    def get_or_create_node(self, name: str, kind: NodeKind = NodeKind.EXTERNAL,
                           body: Optional[MethodBody] = None) -> CallGraphNode:
        node = self.nodes.get(name)
        if node is None:
            node = CallGraphNode(name, kind, body)
            self.nodes[name] = node
        return node

    def add_edge(self, caller: CallGraphNode, callee: CallGraphNode, line: int = 0,
                 resolution: CallResolutionKind = CallResolutionKind.DIRECT) -> CallGraphEdge:
        edge = CallGraphEdge(caller, callee, line, resolution)
        caller.out_edges.append(edge)
        callee.in_edges.append(edge)
        self.edges.append(edge)
        return edge

    # ----- queries ----------------------------------------------------------

    def node(self, name: str) -> Optional[CallGraphNode]:
        return self.nodes.get(name)

    def resolve(self, callee: str) -> CallResolutionKind:
        """How a call naming *callee* resolves inside this class."""
        body = self.model.methods.get(callee)
        if body is None:
            return CallResolutionKind.EXTERNAL
        if not body.resolvable:
            return CallResolutionKind.UNRESOLVED
        return CallResolutionKind.DIRECT

    def transitive_callees(self, name: str) -> Set[str]:
        """Every method reachable from *name* (excluding itself unless recursive)."""
        start = self.nodes.get(name)
        if start is None:
            return set()
        visited: Set[str] = set()
        queue: Deque[CallGraphNode] = deque([start])
        while queue:
            current = queue.popleft()
            for e in current.out_edges:
                if e.callee.name not in visited:
                    visited.add(e.callee.name)
                    queue.append(e.callee)
        return visited

    def call_order(self, name: str, max_depth: int = DEFAULT_MAX_DEPTH) -> List[str]:
        """Methods reachable from *name*, in depth-first call order.

        A method on the current path is not re-entered, but is still
        visited when reached again along another path.  Each method is
        listed once, at its first visit.
        """
        start = self.nodes.get(name)
        if start is None:
            return []
        order: List[str] = []
        seen: Set[str] = set()
        stack: List[Tuple[CallGraphNode, Tuple[str, ...]]] = [(start, (start.name,))]
        while stack:
            current, path = stack.pop()
            if current.name not in seen:
                seen.add(current.name)
                order.append(current.name)
            if len(path) > max_depth:
                continue
            for e in reversed(current.out_edges):
                if e.resolution is CallResolutionKind.DIRECT and e.callee.name not in path:
                    stack.append((e.callee, path + (e.callee.name,)))
        return order

    # ----- expansion --------------------------------------------------------

    def expand(self, body: Optional[MethodBody],
               max_depth: int = DEFAULT_MAX_DEPTH) -> List[ReplayItem]:
        """Expand *body* into a replay stream with callees spliced in."""
        if body is None or body.statements is None:
            return []
        frame_ids = itertools.count()
        root = CallFrame(body.name, 0, next(frame_ids), body.file)
        out: List[ReplayItem] = []
        produced = 0
        stack: List[Tuple[Any, CallFrame, List[ReplayItem], Tuple[str, ...]]] = [
            (iter(body.statements), root, out, (body.name,)),
        ]
        while stack:
            statements, frame, sink, path = stack[-1]
            stmt = next(statements, None)
            if stmt is None:
                stack.pop()
                continue
            produced += 1

            if isinstance(stmt, Branch):
                arms: Tuple[List[ReplayItem], ...] = tuple([] for _ in stmt.arms)
                sink.append(BranchStep(frame, stmt, arms))
                for arm, arm_sink in zip(reversed(stmt.arms), reversed(arms)):
                    stack.append((iter(arm), frame, arm_sink, path))
                continue
            if not isinstance(stmt, MethodCall):
                sink.append(Step(frame, stmt))
                continue

            resolution = self.resolve(stmt.callee)
            if resolution is CallResolutionKind.EXTERNAL:
                sink.append(CallOut(frame, stmt, CallOutcome.EXTERNAL))
                continue
            if resolution is CallResolutionKind.UNRESOLVED:
                logger.debug("%s: call to %s has no analyzable body (line %d)",
                             self.model.name, stmt.callee, stmt.line)
                sink.append(CallOut(frame, stmt, CallOutcome.UNRESOLVED))
                continue
            if stmt.callee in path:
                logger.debug("%s: skipping recursive call %s -> %s",
                             self.model.name, " -> ".join(path), stmt.callee)
                sink.append(CallOut(frame, stmt, CallOutcome.CYCLE))
                continue
            if frame.depth + 1 > max_depth or produced > MAX_EXPANSION_ITEMS:
                logger.debug("%s: call depth bound hit at %s (depth %d)",
                             self.model.name, stmt.callee, frame.depth + 1)
                sink.append(CallOut(frame, stmt, CallOutcome.DEPTH))
                continue

            target = self.model.methods[stmt.callee]
            callee_frame = CallFrame(target.name, frame.depth + 1, next(frame_ids),
                                     target.file, stmt.line)
            stack.append((iter(target.statements or ()), callee_frame, sink,
                          path + (target.name,)))
        return out

    # ----- reporting --------------------------------------------------------

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation."""
        lines = ["digraph CallGraph {"]
        lines.append("  rankdir=TB;")
        lines.append(f'  label="{title or self.model.name}";')
        lines.append('  node [shape=box, fontname="Helvetica", fontsize=10];')

        kind_attrs = {
            NodeKind.CONSTRUCTOR: 'style=filled, fillcolor="#ccffcc", shape=invhouse',
            NodeKind.DESTRUCTOR:  'style=filled, fillcolor="#ffe0cc", shape=house',
            NodeKind.METHOD:      'style=filled, fillcolor="#ddeeff"',
            NodeKind.DECLARED:    'style=filled, fillcolor="#ffcccc", shape=diamond',
            NodeKind.EXTERNAL:    'style=filled, fillcolor="#fff3cd", shape=ellipse',
        }
        for n in self.nodes.values():
            attrs = kind_attrs.get(n.kind, "")
            escaped = n.name.replace('"', '\\"')
            lines.append(f'  "{escaped}" [label="{escaped}", {attrs}];')

        res_attrs = {
            CallResolutionKind.DIRECT: "",
            CallResolutionKind.UNRESOLVED: ", style=dotted, color=red",
            CallResolutionKind.EXTERNAL: ", style=dashed, color=gray",
        }
        for e in self.edges:
            attrs = res_attrs.get(e.resolution, "")
            elabel = e.resolution.value
            if e.line:
                elabel += f":{e.line}"
            lines.append(
                f'  "{e.caller.name}" -> "{e.callee.name}" '
                f'[label="{elabel}"{attrs}];'
            )
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ClassCallGraph({self.model.name!r}, nodes={len(self.nodes)}, "
            f"edges={len(self.edges)})"
        )


def build_callgraph(model: ClassModel) -> ClassCallGraph:
    """Build the call graph of *model*."""
    cg = ClassCallGraph(model)
    bodies: List[Tuple[MethodBody, NodeKind]] = []
    for ctor in model.constructors:
        bodies.append((ctor, NodeKind.CONSTRUCTOR))
    if model.destructor is not None:
        bodies.append((model.destructor, NodeKind.DESTRUCTOR))
    for body in model.methods.values():
        bodies.append((body, NodeKind.METHOD if body.resolvable else NodeKind.DECLARED))

    for body, kind in bodies:
        cg.get_or_create_node(body.name, kind, body)

    for body, _ in bodies:
        caller = cg.nodes[body.name]
        for stmt in body.iter_statements():
            if not isinstance(stmt, MethodCall):
                continue
            resolution = cg.resolve(stmt.callee)
            if resolution is CallResolutionKind.EXTERNAL:
                callee = cg.get_or_create_node(stmt.callee, NodeKind.EXTERNAL)
            else:
                callee = cg.nodes[stmt.callee]
            cg.add_edge(caller, callee, stmt.line, resolution)
    return cg


__all__ = [
    "DEFAULT_MAX_DEPTH",
    "CallResolutionKind",
    "NodeKind",
    "CallOutcome",
    "CallGraphNode",
    "CallGraphEdge",
    "CallFrame",
    "Step",
    "CallOut",
    "BranchStep",
    "ReplayItem",
    "ClassCallGraph",
    "build_callgraph",
]
