# tests/test_callgraph.py
"""
Tests for the intra-class call graph: nodes, edges, recursion detection,
call order, bounded expansion and DOT output.
"""

import pytest

from leakcheck.callgraph import (
    BranchStep,
    CallOut,
    CallOutcome,
    CallResolutionKind,
    NodeKind,
    Step,
    build_callgraph,
)
from leakcheck.model import Branch, Form, MethodCall, Release
from tests.conftest import DATA_DIR, build_models, make_model


@pytest.fixture(scope="module")
def models():
    return build_models((DATA_DIR / "multi_level.cpp").read_text(encoding="utf-8"),
                        "multi_level.cpp")


@pytest.fixture(scope="module")
def pipeline(models):
    return build_callgraph(models["Pipeline"])


class TestStructure:

    def test_node_kinds(self, pipeline):
        kinds = {name: node.kind for name, node in pipeline.nodes.items()}
        assert kinds == {
            "Pipeline": NodeKind.CONSTRUCTOR,
            "~Pipeline": NodeKind.DESTRUCTOR,
            "releaseStages": NodeKind.METHOD,
            "releaseWeights": NodeKind.METHOD,
            "releaseAll": NodeKind.METHOD,
            "shutdown": NodeKind.METHOD,
        }

    def test_edges(self, pipeline):
        pairs = [(e.caller.name, e.callee.name, e.line) for e in pipeline.edges]
        assert pairs == [
            ("~Pipeline", "shutdown", 22),
            ("releaseAll", "releaseStages", 17),
            ("releaseAll", "releaseWeights", 18),
            ("shutdown", "releaseAll", 20),
        ]
        assert all(e.resolution is CallResolutionKind.DIRECT for e in pipeline.edges)

    def test_node_edges(self, pipeline):
        release_all = pipeline.node("releaseAll")
        assert [e.callee.name for e in release_all.out_edges] == [
            "releaseStages", "releaseWeights",
        ]
        assert [e.caller.name for e in release_all.in_edges] == ["shutdown"]
        assert pipeline.node("releaseStages").out_edges == []

    def test_transitive_callees(self, pipeline):
        assert pipeline.transitive_callees("~Pipeline") == {
            "shutdown", "releaseAll", "releaseStages", "releaseWeights",
        }
        assert pipeline.transitive_callees("missing") == set()

    def test_call_order(self, pipeline):
        assert pipeline.call_order("~Pipeline") == [
            "~Pipeline", "shutdown", "releaseAll", "releaseStages", "releaseWeights",
        ]
        assert pipeline.call_order("nowhere") == []

    def test_size(self, pipeline):
        assert len(pipeline.nodes) == 6
        assert len(pipeline.edges) == 4

    def test_external_node(self):
        cg = build_callgraph(make_model(dtor=[MethodCall("free", ("p",), 21)]))
        assert cg.node("free").kind is NodeKind.EXTERNAL
        (edge,) = cg.edges
        assert edge.resolution is CallResolutionKind.EXTERNAL

    def test_declared_node(self, models):
        cg = build_callgraph(models["Delegated"])
        assert cg.node("finish").kind is NodeKind.DECLARED
        (edge,) = cg.edges
        assert edge.resolution is CallResolutionKind.UNRESOLVED


class TestRecursion:

    def test_mutual_recursion_reaches_itself(self, models):
        cg = build_callgraph(models["PingPong"])
        assert cg.transitive_callees("ping") == {"ping", "pong"}
        assert "~PingPong" not in cg.transitive_callees("~PingPong")

    def test_self_recursion(self):
        cg = build_callgraph(make_model(methods={"spin": [MethodCall("spin")]}))
        assert cg.transitive_callees("spin") == {"spin"}
        assert cg.call_order("spin") == ["spin"]


class TestExpansion:

    def test_helper_chain_is_spliced_in_order(self, models, pipeline):
        items = pipeline.expand(models["Pipeline"].destructor)
        assert all(isinstance(i, Step) for i in items)
        assert [i.statement.target for i in items] == ["stages", "weights"]
        assert [i.frame.method for i in items] == ["releaseStages", "releaseWeights"]
        assert [i.frame.depth for i in items] == [3, 3]

    def test_frames_are_unique_per_activation(self, models, pipeline):
        items = pipeline.expand(models["Pipeline"].destructor)
        assert items[0].frame.frame_id != items[1].frame.frame_id
        assert items[0].frame.call_line == 17
        assert items[1].frame.call_line == 18

    def test_depth_bound(self, models, pipeline):
        items = pipeline.expand(models["Pipeline"].destructor, max_depth=2)
        assert [(i.call.callee, i.outcome) for i in items] == [
            ("releaseStages", CallOutcome.DEPTH),
            ("releaseWeights", CallOutcome.DEPTH),
        ]

    def test_cycle_is_not_reentered(self, models):
        model = models["PingPong"]
        items = build_callgraph(model).expand(model.destructor)
        assert isinstance(items[0], CallOut)
        assert items[0].outcome is CallOutcome.CYCLE
        assert items[0].call.callee == "ping"
        assert isinstance(items[1], Step)
        assert items[1].statement.target == "token"
        assert len(items) == 2

    def test_unresolved_call(self, models):
        model = models["Delegated"]
        (item,) = build_callgraph(model).expand(model.destructor)
        assert item.outcome is CallOutcome.UNRESOLVED

    def test_external_call(self):
        model = make_model(dtor=[MethodCall("free", ("p",), 21)])
        (item,) = build_callgraph(model).expand(model.destructor)
        assert item.outcome is CallOutcome.EXTERNAL
        assert item.call.args == ("p",)

    def test_branch_arms_are_expanded(self):
        model = make_model(
            dtor=[Branch(((MethodCall("close", (), 22),), ()), guard="p", line=21)],
            methods={"close": [Release("p", Form.SCALAR, 31)]},
        )
        (item,) = build_callgraph(model).expand(model.destructor)
        assert isinstance(item, BranchStep)
        (step,) = item.arms[0]
        assert step.frame.method == "close"
        assert step.statement.target == "p"
        assert item.arms[1] == []

    def test_nothing_to_expand(self):
        model = make_model(dtor=None, methods={"finish": None})
        cg = build_callgraph(model)
        assert cg.expand(None) == []
        assert cg.expand(model.methods["finish"]) == []


class TestDot:

    def test_dot_output(self, pipeline):
        dot = pipeline.to_dot()
        assert dot.startswith("digraph CallGraph {")
        assert dot.endswith("}")
        assert 'label="Pipeline";' in dot
        assert '"~Pipeline" -> "shutdown" [label="direct:22"];' in dot

    def test_unresolved_edge_style(self, models):
        dot = build_callgraph(models["Delegated"]).to_dot(title="delegation")
        assert 'label="delegation";' in dot
        assert '"~Delegated" -> "finish" [label="unresolved:46", style=dotted, color=red];' in dot
