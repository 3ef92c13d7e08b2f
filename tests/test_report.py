# tests/test_report.py
"""
Tests for suppressions, report aggregation and rendering, and the
multi-class analysis driver.
"""

import json

import pytest

import leakcheck.report as report_module
from leakcheck.classifier import Diagnostic, DiagnosticKind, Severity, SourceLocation
from leakcheck.config import AnalyzerConfig
from leakcheck.model import Allocation, Form, Release
from leakcheck.report import (
    OK_LINE,
    AnalysisReport,
    SuppressionManager,
    analyze_classes,
    analyze_paths,
    build_suppressions,
    load_registry,
)
from tests.conftest import DATA_DIR, make_model, model_of


def diag(kind=DiagnosticKind.UNRELEASED_FIELD, severity=Severity.ERROR, file="a.cpp",
         line=4, cls="Buf", field="p", message="msg", recommendation=""):
    return Diagnostic(cls, field, kind, severity, message, SourceLocation(file, line),
                      recommendation)


# ═════════════════════════════════════════════════════════════════════════
#  Suppressions
# ═════════════════════════════════════════════════════════════════════════

class TestSuppressionManager:

    def test_nothing_suppressed_by_default(self):
        assert not SuppressionManager().is_suppressed(diag())

    def test_global_kind(self):
        sm = SuppressionManager()
        sm.add_global_suppression("unreleased-field")
        assert sm.is_suppressed(diag())
        assert not sm.is_suppressed(diag(kind=DiagnosticKind.DOUBLE_RELEASE))

    def test_global_wildcard(self):
        sm = SuppressionManager()
        sm.add_global_suppression("*")
        assert sm.is_suppressed(diag(kind=DiagnosticKind.REASSIGNMENT_LEAK))

    def test_inline_matches_exact_line(self):
        sm = SuppressionManager()
        sm.add_inline_suppression("unreleased-field", "a.cpp", 4)
        assert sm.is_suppressed(diag(line=4))
        assert not sm.is_suppressed(diag(line=5))
        assert not sm.is_suppressed(diag(line=3))
        assert not sm.is_suppressed(diag(line=4, file="b.cpp"))

    def test_trailing_comment_does_not_reach_the_next_line(self):
        model = model_of(
            "class A {\n"
            "  int *p;\n"
            "  int *q;\n"
            "public:\n"
            "  A() {\n"
            "    p = new int;  // leakcheck-suppress unreleased-field\n"
            "    q = new int;\n"
            "  }\n"
            "  ~A() { }\n"
            "};"
        )
        sm = SuppressionManager()
        sm.load_inline_suppressions(model)
        assert sm.is_suppressed(diag(file="test.cpp", line=6))
        assert not sm.is_suppressed(diag(file="test.cpp", line=7))

    def test_file_level_patterns(self):
        sm = SuppressionManager()
        sm.add_file_suppression("*", "vendor/blob.cpp")
        sm.add_file_suppression("double-release", "*/generated/*")
        assert sm.is_suppressed(diag(file="/src/vendor/blob.cpp"))
        assert sm.is_suppressed(diag(kind=DiagnosticKind.DOUBLE_RELEASE,
                                     file="/src/generated/x.cpp"))
        assert not sm.is_suppressed(diag(file="/src/generated/x.cpp"))

    def test_inline_suppressions_from_model(self):
        model = model_of(
            "class A {\n"
            "  int *p;\n"
            "public:\n"
            "  // leakcheck-suppress unreleased-field\n"
            "  A() { p = new int; }\n"
            "  ~A() { }\n"
            "};"
        )
        sm = SuppressionManager()
        sm.load_inline_suppressions(model)
        assert sm.is_suppressed(diag(file="test.cpp", line=5))

    def test_filter(self):
        sm = SuppressionManager()
        sm.add_global_suppression("reassignment-leak")
        kept = sm.filter_diagnostics([
            diag(), diag(kind=DiagnosticKind.REASSIGNMENT_LEAK, severity=Severity.WARNING),
        ])
        assert [d.kind for d in kept] == [DiagnosticKind.UNRELEASED_FIELD]

    def test_build_from_config(self):
        sm = build_suppressions([], AnalyzerConfig(suppress=("double-release",)))
        assert sm.is_suppressed(diag(kind=DiagnosticKind.DOUBLE_RELEASE))


# ═════════════════════════════════════════════════════════════════════════
#  Report
# ═════════════════════════════════════════════════════════════════════════

@pytest.fixture()
def mixed_report():
    return AnalysisReport(diagnostics=[
        diag(file="b.cpp", line=9, message="not deleted", recommendation="add 'delete p;'"),
        diag(kind=DiagnosticKind.REASSIGNMENT_LEAK, severity=Severity.WARNING,
             file="a.cpp", line=3, cls="Cnt", field="q", message="reassigned"),
    ])


class TestAnalysisReport:

    def test_counts(self, mixed_report):
        assert mixed_report.error_count == 1
        assert mixed_report.warning_count == 1
        assert mixed_report.total_count == 2
        assert mixed_report.has_issues
        assert mixed_report.summary_dict() == {"total_issues": 2, "errors": 1, "warnings": 1}
        assert mixed_report.summary() == "Summary: 1 error(s), 1 warning(s)"

    def test_views(self, mixed_report):
        assert len(mixed_report.by_severity(Severity.WARNING)) == 1
        assert len(mixed_report.by_file("b.cpp")) == 1
        assert [d.field for d in mixed_report.by_class("Cnt")] == ["q"]
        assert len(mixed_report.by_kind(DiagnosticKind.UNRELEASED_FIELD)) == 1
        assert [d.location.file for d in mixed_report.sorted_diagnostics()] == ["a.cpp", "b.cpp"]

    def test_text(self, mixed_report):
        assert mixed_report.to_text() == (
            "\n"
            "a.cpp:\n"
            "  [WARN]  Line 3 [Cnt::q]: reassigned\n"
            "\n"
            "b.cpp:\n"
            "  [ERROR] Line 9 [Buf::p]: not deleted\n"
            "         -> Fix: add 'delete p;'\n"
            "\n"
            "Summary: 1 error(s), 1 warning(s)\n"
        )

    def test_text_groups_by_base_name(self):
        report = AnalysisReport(diagnostics=[diag(file="/deep/path/x.cpp")])
        assert "\nx.cpp:\n" in report.to_text()

    def test_empty_text(self):
        report = AnalysisReport()
        assert report.to_text() == OK_LINE + "\n"
        assert not report.has_issues

    def test_json(self, mixed_report):
        payload = json.loads(mixed_report.to_json())
        assert payload["summary"] == {"total_issues": 2, "errors": 1, "warnings": 1}
        assert [d["kind"] for d in payload["diagnostics"]] == [
            "unreleased-field", "reassignment-leak",
        ]

    def test_empty_json(self):
        payload = json.loads(AnalysisReport().to_json())
        assert payload == {"diagnostics": [],
                           "summary": {"total_issues": 0, "errors": 0, "warnings": 0}}

    def test_gcc(self, mixed_report):
        assert mixed_report.to_gcc().splitlines() == [
            "a.cpp:3: warning: Cnt::q: reassigned [reassignment-leak]",
            "b.cpp:9: error: Buf::p: not deleted [unreleased-field]",
        ]
        assert AnalysisReport().to_gcc() == ""

    def test_render_dispatch(self, mixed_report):
        assert mixed_report.render("json") == mixed_report.to_json()
        assert mixed_report.render("gcc") == mixed_report.to_gcc()
        assert mixed_report.render() == mixed_report.to_text()


# ═════════════════════════════════════════════════════════════════════════
#  Analysis driver
# ═════════════════════════════════════════════════════════════════════════

def leaky(name):
    return make_model(name=name, ctor=[Allocation("p", Form.SCALAR, 11)], dtor=[])


class TestAnalyzeClasses:

    def test_results_follow_input_order(self):
        names = ["C%d" % i for i in range(12)]
        report = analyze_classes([leaky(n) for n in names], AnalyzerConfig(jobs=4))
        assert [d.class_name for d in report.diagnostics] == names
        assert report.classes_analyzed == names
        assert report.stats["classes"] == 12
        assert report.stats["elapsed_ms"] >= 0

    def test_single_worker(self):
        report = analyze_classes([leaky("A"), leaky("B")], AnalyzerConfig(jobs=1))
        assert report.error_count == 2

    def test_a_failing_class_does_not_stop_the_run(self, monkeypatch):
        real = report_module.analyze_class

        def flaky(model, config=None):
            if model.name == "Bad":
                raise RuntimeError("boom")
            return real(model, config)

        monkeypatch.setattr(report_module, "analyze_class", flaky)
        report = analyze_classes([leaky("A"), leaky("Bad"), leaky("C")])
        assert [d.class_name for d in report.diagnostics] == ["A", "C"]
        assert report.failures == [("Bad", "boom")]

    def test_inline_suppression_is_counted(self):
        model = model_of(
            "class A {\n"
            "  int *p;\n"
            "public:\n"
            "  // leakcheck-suppress unreleased-field\n"
            "  A() { p = new int; }\n"
            "  ~A() { }\n"
            "};"
        )
        report = analyze_classes([model])
        assert report.diagnostics == []
        assert report.suppressed == 1

    def test_explicit_suppression_manager(self):
        sm = SuppressionManager()
        sm.add_global_suppression("*")
        report = analyze_classes([leaky("A")], suppressions=sm)
        assert not report.has_issues
        assert report.suppressed == 1

    def test_clean_class(self):
        model = make_model(ctor=[Allocation("p", Form.ARRAY, 11)],
                           dtor=[Release("p", Form.ARRAY, 21)])
        assert analyze_classes([model]).diagnostics == []


class TestAnalyzePaths:

    def test_data_directory(self):
        report = analyze_paths([DATA_DIR])
        assert report.error_count == 6
        assert report.warning_count == 1
        assert len(report.files) == 6
        assert sorted(report.classes_analyzed) == sorted([
            "Handle", "Reader", "Relay", "Matrix", "Node", "Lazy", "Swapper",
            "ImageCache", "SampleBuffer", "Counter", "Orphan",
            "Pipeline", "PingPong", "Delegated", "Gauge",
        ])

    def test_excludes_apply(self):
        report = analyze_paths([DATA_DIR], AnalyzerConfig(excludes=("cross",)))
        assert "Gauge" not in report.classes_analyzed

    def test_unreadable_file_is_skipped(self, tmp_path):
        good = tmp_path / "good.cpp"
        good.write_text("class G { int *p; public: G() { p = new int; } ~G() { delete p; } };\n",
                        encoding="utf-8")
        registry = load_registry([tmp_path / "gone.cpp", good])
        assert registry.names() == ["G"]
