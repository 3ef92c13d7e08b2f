"""
leakcheck.report
================

Report Aggregator: runs the per-class analysis over many classes, filters
suppressed findings, and renders the result.

  ┌──────────────────────────────────────────────────────────┐
  │  scan → parse → ClassRegistry → build_class_model        │
  │                         │                                │
  │        ┌────────────────▼─────────────────┐              │
  │        │  analyze_classes (thread pool)   │              │
  │        │   LifecycleEngine → classify     │              │
  │        └────────────────┬─────────────────┘              │
  │                         │                                │
  │        ┌────────────────▼─────────────────┐              │
  │        │  SuppressionManager              │              │
  │        │  inline │ file-level │ global    │              │
  │        └────────────────┬─────────────────┘              │
  │                         │                                │
  │        ┌────────────────▼─────────────────┐              │
  │        │  AnalysisReport (text/JSON/gcc)  │              │
  │        └──────────────────────────────────┘              │
  └──────────────────────────────────────────────────────────┘

Classes are independent, so they are analyzed on a thread pool and the
results are merged back in input order.  A class whose analysis raises is
logged and contributes no diagnostics; the run continues.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from fnmatch import fnmatch
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from leakcheck.builder import build_class_model
from leakcheck.classifier import Diagnostic, DiagnosticKind, Severity, classify
from leakcheck.config import AnalyzerConfig
from leakcheck.errors import SourceReadError
from leakcheck.lifecycle import LifecycleEngine
from leakcheck.model import ClassModel
from leakcheck.parser import parse_file
from leakcheck.registry import ClassRegistry
from leakcheck.scanner import SourceScanner

logger = logging.getLogger(__name__)

OK_LINE = "[OK] No potential memory leaks detected."


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 - SUPPRESSION MANAGER
# ═════════════════════════════════════════════════════════════════════════

class SuppressionManager:
    """
    Decides which diagnostics are silenced.

    Sources:
      1. Inline comments:  ``// leakcheck-suppress kind[,kind]`` trailing
         the diagnostic line, or alone on the line above it
      2. File-level suppressions (exact path, path suffix, or fnmatch
         pattern)
      3. Global suppressions (``--suppress`` / config ``suppress``)

    ``*`` in place of a kind matches every kind.
    """

    def __init__(self) -> None:
        # (file, line) → kinds suppressed at that location
        self._inline: Dict[Tuple[str, int], Set[str]] = defaultdict(set)
        # file pattern → kinds
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        self._global: Set[str] = set()

    def load_inline_suppressions(self, model: ClassModel) -> None:
        for key, kinds in model.suppressions.items():
            self._inline[key].update(kinds)

    def add_inline_suppression(self, kind: str, file: str, line: int) -> None:
        self._inline[(file, line)].add(kind)

    def add_file_suppression(self, kind: str, file_pattern: str) -> None:
        """Suppress ``kind`` in files matching ``file_pattern``."""
        self._file_level[file_pattern].add(kind)

    def add_global_suppression(self, kind: str) -> None:
        self._global.add(kind)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        kind = diag.kind.value
        if kind in self._global or "*" in self._global:
            return True

        loc = diag.location
        ids = self._inline.get((loc.file, loc.line), set())
        if kind in ids or "*" in ids:
            return True

        for pattern, ids in self._file_level.items():
            if kind in ids or "*" in ids:
                if pattern == loc.file or loc.file.endswith(pattern) or fnmatch(loc.file, pattern):
                    return True
        return False

    def filter_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
        """Return only non-suppressed diagnostics."""
        return [d for d in diagnostics if not self.is_suppressed(d)]


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 - REPORT
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class AnalysisReport:
    """
    Aggregate result of one run.

    Attributes
    ----------
    diagnostics       : Reported diagnostics, in class input order
    classes_analyzed  : Names of the classes that were analyzed
    files             : Source files that were read
    failures          : Classes whose analysis raised, with the reason
    suppressed        : Number of diagnostics dropped by suppressions
    stats             : Timing and counting statistics
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    classes_analyzed: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    suppressed: int = 0
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.WARNING)

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    @property
    def has_issues(self) -> bool:
        return bool(self.diagnostics)

    def by_severity(self, severity: Severity) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == severity]

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.location.file == file]

    def by_class(self, class_name: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.class_name == class_name]

    def by_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]

    def sorted_diagnostics(self) -> List[Diagnostic]:
        """Diagnostics ordered by file, then line."""
        return sorted(self.diagnostics, key=lambda d: (d.location.file, d.location.line))

    def summary_dict(self) -> Dict[str, int]:
        return {
            "total_issues": self.total_count,
            "errors": self.error_count,
            "warnings": self.warning_count,
        }

    def summary(self) -> str:
        """One-line human-readable summary."""
        return f"Summary: {self.error_count} error(s), {self.warning_count} warning(s)"

    def to_text(self) -> str:
        if not self.diagnostics:
            return OK_LINE + "\n"
        lines: List[str] = []
        current = None
        for d in self.sorted_diagnostics():
            if d.location.file != current:
                current = d.location.file
                lines.append("")
                lines.append(f"{os.path.basename(current) or current}:")
            tag = "[ERROR]" if d.severity == Severity.ERROR else "[WARN] "
            lines.append(f"  {tag} Line {d.location.line} [{d.subject}]: {d.message}")
            if d.recommendation:
                lines.append(f"         -> Fix: {d.recommendation}")
        lines.append("")
        lines.append(self.summary())
        return "\n".join(lines) + "\n"

    def to_json(self, indent: Optional[int] = 2) -> str:
        payload = {
            "diagnostics": [d.to_json() for d in self.diagnostics],
            "summary": self.summary_dict(),
        }
        return json.dumps(payload, indent=indent) + "\n"

    def to_gcc(self) -> str:
        """Format all diagnostics in GCC style, one per line."""
        if not self.diagnostics:
            return ""
        return "\n".join(d.to_gcc_format() for d in self.sorted_diagnostics()) + "\n"

    def render(self, fmt: str = "text") -> str:
        if fmt == "json":
            return self.to_json()
        if fmt == "gcc":
            return self.to_gcc()
        return self.to_text()


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 - ANALYSIS
# ═════════════════════════════════════════════════════════════════════════

def analyze_class(model: ClassModel, config: Optional[AnalyzerConfig] = None) -> List[Diagnostic]:
    """Run the engine and the classifier on one class."""
    config = config or AnalyzerConfig()
    result = LifecycleEngine(
        model,
        max_call_depth=config.max_call_depth,
        max_paths=config.max_paths,
    ).run()
    diagnostics = classify(model, result)
    logger.debug("%s: %d field(s), %d path(s), %d diagnostic(s)",
                 model.name, len(result.verdicts), result.paths, len(diagnostics))
    return diagnostics


def build_suppressions(models: Sequence[ClassModel],
                       config: AnalyzerConfig) -> SuppressionManager:
    manager = SuppressionManager()
    for kind in config.suppress:
        manager.add_global_suppression(kind)
    for model in models:
        manager.load_inline_suppressions(model)
    return manager


def analyze_classes(
    models: Sequence[ClassModel],
    config: Optional[AnalyzerConfig] = None,
    suppressions: Optional[SuppressionManager] = None,
) -> AnalysisReport:
    """Analyze every class and aggregate the diagnostics.

    Classes run on a thread pool of ``config.jobs`` workers.  The merged
    diagnostic list follows the order of *models*.
    """
    config = config or AnalyzerConfig()
    models = list(models)
    suppressions = suppressions or build_suppressions(models, config)
    report = AnalysisReport(classes_analyzed=[m.name for m in models])

    t0 = time.monotonic()
    per_class: List[List[Diagnostic]] = [[] for _ in models]
    with ThreadPoolExecutor(max_workers=max(1, config.jobs)) as executor:
        futures = {
            executor.submit(analyze_class, model, config): idx
            for idx, model in enumerate(models)
        }
        for future in as_completed(futures):
            idx = futures[future]
            try:
                per_class[idx] = future.result()
            except Exception as exc:
                logger.error("analysis of class %s failed: %s", models[idx].name, exc,
                             exc_info=logger.isEnabledFor(logging.DEBUG))
                report.failures.append((models[idx].name, str(exc)))

    for diagnostics in per_class:
        kept = suppressions.filter_diagnostics(diagnostics)
        report.suppressed += len(diagnostics) - len(kept)
        report.diagnostics.extend(kept)

    report.stats["classes"] = len(models)
    report.stats["elapsed_ms"] = (time.monotonic() - t0) * 1000.0
    logger.info("analyzed %d class(es): %d error(s), %d warning(s), %d suppressed",
                len(models), report.error_count, report.warning_count, report.suppressed)
    return report


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 - FILES TO REPORT
# ═════════════════════════════════════════════════════════════════════════

def load_registry(files: Iterable, config: Optional[AnalyzerConfig] = None) -> ClassRegistry:
    """Parse *files* into a registry.  Unreadable files are skipped."""
    config = config or AnalyzerConfig()
    registry = ClassRegistry(merge_headers=config.merge_headers)
    for path in files:
        try:
            classes = parse_file(path)
        except SourceReadError as exc:
            logger.warning("%s", exc)
            continue
        logger.debug("%s: %d class(es)", path, len(classes))
        registry.add_all(classes)
    return registry


def analyze_paths(paths: Sequence, config: Optional[AnalyzerConfig] = None) -> AnalysisReport:
    """Scan *paths*, parse every source file, and analyze every class.

    Raises
    ------
    ScanError
        When an input path does not exist.
    """
    config = config or AnalyzerConfig()
    files = SourceScanner(config.extensions, config.excludes).scan(paths)
    registry = load_registry(files, config)
    models = [build_class_model(raw) for raw in registry]
    report = analyze_classes(models, config)
    report.files = [str(f) for f in files]
    return report


__all__ = [
    "OK_LINE",
    "SuppressionManager",
    "AnalysisReport",
    "analyze_class",
    "analyze_classes",
    "build_suppressions",
    "load_registry",
    "analyze_paths",
]
