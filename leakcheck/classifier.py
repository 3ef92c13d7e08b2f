"""
leakcheck.classifier
====================

Issue Classifier: maps lifecycle verdicts and replay events to
:class:`Diagnostic` records.

===========================================  ========  =======================
Verdict / event                              Severity  Kind
===========================================  ========  =======================
Leaked, class has no destructor              error     missing-destructor-leak
Leaked, destructor never releases            error     unreleased-field
Double release                               error     double-release
Array allocated, released as scalar          error     array-form-mismatch
Scalar allocated, released as array          warning   array-form-mismatch
Reassignment while allocated                 warning   reassignment-leak
Clean / Unresolved                           (none)
===========================================  ========  =======================

The mapping is pure: no I/O, no global state.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from leakcheck.lifecycle import (
    EventKind,
    FieldVerdict,
    LifecycleEvent,
    LifecycleResult,
    VerdictKind,
)
from leakcheck.model import ClassModel, Form


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 - DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class DiagnosticKind(Enum):
    MISSING_DESTRUCTOR_LEAK = "missing-destructor-leak"
    UNRELEASED_FIELD = "unreleased-field"
    DOUBLE_RELEASE = "double-release"
    ARRAY_FORM_MISMATCH = "array-form-mismatch"
    REASSIGNMENT_LEAK = "reassignment-leak"

    @property
    def cwe(self) -> int:
        return _CWE[self]


# CWE-401 missing release, CWE-415 double free, CWE-762 mismatched routines
_CWE = {
    DiagnosticKind.MISSING_DESTRUCTOR_LEAK: 401,
    DiagnosticKind.UNRELEASED_FIELD: 401,
    DiagnosticKind.REASSIGNMENT_LEAK: 401,
    DiagnosticKind.DOUBLE_RELEASE: 415,
    DiagnosticKind.ARRAY_FORM_MISMATCH: 762,
}


@dataclass(frozen=True)
class SourceLocation:
    """A specific point in source code."""
    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single finding about one field of one class.

    Attributes
    ----------
    class_name     : Class the field belongs to
    field          : Field name (``None`` only for class-level findings)
    kind           : DiagnosticKind
    severity       : Severity
    message        : Human-readable description
    location       : Where to look (allocation for leaks, release for
                     mismatches and double releases)
    recommendation : Suggested fix, may be empty
    """
    class_name: str
    field: Optional[str]
    kind: DiagnosticKind
    severity: Severity
    message: str
    location: SourceLocation = field(default_factory=SourceLocation)
    recommendation: str = ""

    @property
    def cwe(self) -> int:
        return self.kind.cwe

    @property
    def subject(self) -> str:
        if self.field:
            return f"{self.class_name}::{self.field}"
        return self.class_name

    def to_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "file": self.location.file,
            "line": self.location.line,
            "class": self.class_name,
            "field": self.field,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
            "cwe": self.cwe,
        }
        if self.recommendation:
            result["recommendation"] = self.recommendation
        return result

    def to_json_str(self) -> str:
        return json.dumps(self.to_json())

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line: severity: message [kind]."""
        return (
            f"{self.location}: {self.severity.value}: "
            f"{self.subject}: {self.message} [{self.kind.value}]"
        )


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 - CLASSIFICATION
# ═════════════════════════════════════════════════════════════════════════

def _leak(model: ClassModel, verdict: FieldVerdict) -> Diagnostic:
    form = verdict.form or Form.SCALAR
    location = SourceLocation(verdict.file or model.file, verdict.line)
    if verdict.no_destructor:
        return Diagnostic(
            class_name=model.name,
            field=verdict.field,
            kind=DiagnosticKind.MISSING_DESTRUCTOR_LEAK,
            severity=Severity.ERROR,
            message="pointer member allocated but class has no destructor",
            location=location,
            recommendation=f"add a destructor that calls '{form.delete_spelling} {verdict.field};'",
        )
    return Diagnostic(
        class_name=model.name,
        field=verdict.field,
        kind=DiagnosticKind.UNRELEASED_FIELD,
        severity=Severity.ERROR,
        message=f"allocated with '{form.new_spelling}' but not deleted in destructor",
        location=location,
        recommendation=f"add '{form.delete_spelling} {verdict.field};' to the destructor",
    )


def _from_event(model: ClassModel, event: LifecycleEvent) -> Diagnostic:
    location = SourceLocation(event.file or model.file, event.line)
    if event.kind is EventKind.FORM_MISMATCH:
        expected = event.expected or Form.SCALAR
        found = event.found or Form.SCALAR
        return Diagnostic(
            class_name=model.name,
            field=event.field,
            kind=DiagnosticKind.ARRAY_FORM_MISMATCH,
            severity=Severity.ERROR if expected is Form.ARRAY else Severity.WARNING,
            message=(
                f"allocated with '{expected.new_spelling}' but deleted with "
                f"'{found.delete_spelling}' instead of '{expected.delete_spelling}'"
            ),
            location=location,
            recommendation=f"use '{expected.delete_spelling} {event.field};'",
        )
    if event.kind is EventKind.DOUBLE_RELEASE:
        return Diagnostic(
            class_name=model.name,
            field=event.field,
            kind=DiagnosticKind.DOUBLE_RELEASE,
            severity=Severity.ERROR,
            message=f"released more than once (second release in {event.method})",
            location=location,
            recommendation=f"set '{event.field}' to nullptr after releasing it",
        )
    return Diagnostic(
        class_name=model.name,
        field=event.field,
        kind=DiagnosticKind.REASSIGNMENT_LEAK,
        severity=Severity.WARNING,
        message=(
            f"pointer reassigned with '{(event.found or Form.SCALAR).new_spelling}' "
            f"without deleting previous allocation (in {event.method})"
        ),
        location=location,
        recommendation=(
            f"release the previous value with "
            f"'{(event.expected or Form.SCALAR).delete_spelling} {event.field};' first"
        ),
    )


def classify(model: ClassModel, result: LifecycleResult) -> List[Diagnostic]:
    """Diagnostics for one analyzed class.

    Leak diagnostics come first in field order, followed by event
    diagnostics in the order the events were observed.
    """
    diagnostics: List[Diagnostic] = []
    for verdict in result.verdicts:
        if verdict.kind is VerdictKind.LEAKED:
            diagnostics.append(_leak(model, verdict))
    for event in result.events:
        diagnostics.append(_from_event(model, event))
    return diagnostics


__all__ = [
    "Severity",
    "DiagnosticKind",
    "SourceLocation",
    "Diagnostic",
    "classify",
]
