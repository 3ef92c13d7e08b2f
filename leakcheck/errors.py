# leakcheck/errors.py
"""
Error types for the leakcheck tool.

Hierarchy::

    LeakcheckError (base)
    ├── ConfigError       - invalid configuration file or option value
    ├── ScanError         - an input path does not exist / cannot be listed
    └── SourceReadError   - one source file could not be read or decoded

The analysis engine does not raise on malformed input: statements it
cannot classify are opaque and unresolvable calls become ``Unresolved``
verdicts.  These exceptions only cover the infrastructure around it.
"""

from __future__ import annotations

from typing import List, Optional


class LeakcheckError(Exception):
    """Base class for all leakcheck errors."""

    exit_code: int = 2

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


class ConfigError(LeakcheckError):
    """Invalid configuration.

    ``problems`` lists every validation failure, not just the first.
    """

    def __init__(self, message: str, problems: Optional[List[str]] = None,
                 *, hint: Optional[str] = None) -> None:
        super().__init__(message, hint=hint)
        self.problems: List[str] = list(problems or [])

    def __str__(self) -> str:
        base = super().__str__()
        if self.problems:
            return base + ": " + "; ".join(self.problems)
        return base


class ScanError(LeakcheckError):
    """An input path could not be scanned."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot scan {path}: {reason}")
        self.path = path
        self.reason = reason


class SourceReadError(LeakcheckError):
    """A single source file could not be read."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot read {path}: {reason}")
        self.path = path
        self.reason = reason


__all__ = [
    "LeakcheckError",
    "ConfigError",
    "ScanError",
    "SourceReadError",
]
