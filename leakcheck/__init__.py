"""
leakcheck - Heap Lifecycle Analyzer for C++ Classes
===================================================

Follows every raw-pointer member of a C++ class from its allocation
(``new`` / ``new[]``) in a constructor to its release (``delete`` /
``delete[]``) in the destructor, through intra-class helper calls, and
reports leaks, double releases, ``new``/``delete`` form mismatches and
reassignment leaks.

Core modules
------------
model
    Statement and class model types shared by every stage.
lexer, parser, registry
    Best-effort C++ front-end producing ``RawClass`` records, with
    header/implementation merge.
builder
    ``RawClass`` → ``ClassModel`` normalization.
callgraph
    Intra-class call graph, reachability, bounded replay expansion.
lifecycle
    Per-field state machine replayed over every path.
classifier
    Verdicts and events → ``Diagnostic`` records.
report
    Thread-pool fan-out, suppressions, text / JSON / gcc rendering.
scanner, config, errors, main
    File discovery, configuration, exceptions and the CLI.

Quick start
-----------
>>> from leakcheck import analyze_source
>>> diags = analyze_source('''
... class Buffer {
...     char *data;
... public:
...     Buffer() { data = new char[64]; }
...     ~Buffer() { delete data; }
... };
... ''')
>>> [d.kind.value for d in diags]
['array-form-mismatch']

Package layout
--------------
::

    leakcheck/
    ├── __init__.py            ← this file
    ├── __main__.py
    ├── main.py
    ├── model.py
    ├── lexer.py
    ├── parser.py
    ├── registry.py
    ├── builder.py
    ├── callgraph.py
    ├── lifecycle.py
    ├── classifier.py
    ├── report.py
    ├── scanner.py
    ├── config.py
    └── errors.py
"""

from __future__ import annotations

from typing import List, Optional

__version__ = "0.1.0"

from leakcheck.builder import build_class_model, build_class_models
from leakcheck.callgraph import ClassCallGraph, build_callgraph
from leakcheck.classifier import (
    Diagnostic,
    DiagnosticKind,
    Severity,
    SourceLocation,
    classify,
)
from leakcheck.config import AnalyzerConfig, load_config
from leakcheck.errors import ConfigError, LeakcheckError, ScanError, SourceReadError
from leakcheck.lifecycle import LifecycleEngine, LifecycleResult, analyze_lifecycle
from leakcheck.model import ClassModel, FieldDecl, Form, MethodBody
from leakcheck.parser import parse_file, parse_source
from leakcheck.registry import ClassRegistry
from leakcheck.report import (
    AnalysisReport,
    SuppressionManager,
    analyze_class,
    analyze_classes,
    analyze_paths,
)


def analyze_source(text: str, file: str = "<string>",
                   config: Optional[AnalyzerConfig] = None) -> List[Diagnostic]:
    """Analyze every class in one C++ source string.

    Inline suppressions and ``config.suppress`` apply as in a full run.
    """
    registry = ClassRegistry()
    registry.add_all(parse_source(text, file))
    models = build_class_models(registry)
    return analyze_classes(models, config).diagnostics


__all__ = [
    "__version__",
    # model
    "ClassModel", "FieldDecl", "Form", "MethodBody",
    # front-end
    "parse_source", "parse_file", "ClassRegistry",
    "build_class_model", "build_class_models",
    # engine
    "ClassCallGraph", "build_callgraph",
    "LifecycleEngine", "LifecycleResult", "analyze_lifecycle",
    # diagnostics
    "Diagnostic", "DiagnosticKind", "Severity", "SourceLocation", "classify",
    # driver
    "AnalyzerConfig", "load_config",
    "AnalysisReport", "SuppressionManager",
    "analyze_class", "analyze_classes", "analyze_paths", "analyze_source",
    # errors
    "LeakcheckError", "ConfigError", "ScanError", "SourceReadError",
]
