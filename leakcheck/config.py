"""
leakcheck.config
================

Analyzer configuration.

:class:`AnalyzerConfig` holds every tuning knob; :func:`load_config`
reads the same keys from a JSON file::

    {
        "max_call_depth": 32,
        "max_paths": 64,
        "jobs": 4,
        "extensions": [".cpp", ".h"],
        "excludes": ["third_party", "build"],
        "suppress": ["reassignment-leak"],
        "merge_headers": true
    }

Command-line options override values from the file
(:meth:`AnalyzerConfig.merged`).
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

from leakcheck.callgraph import DEFAULT_MAX_DEPTH
from leakcheck.errors import ConfigError
from leakcheck.lifecycle import DEFAULT_MAX_PATHS

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: Tuple[str, ...] = (".cpp", ".cc", ".cxx", ".h", ".hpp", ".hxx")

_KINDS = frozenset({
    "missing-destructor-leak", "unreleased-field", "double-release",
    "array-form-mismatch", "reassignment-leak", "*",
})


@dataclass(frozen=True)
class AnalyzerConfig:
    """Tuning knobs for one analysis run."""
    max_call_depth: int = DEFAULT_MAX_DEPTH
    max_paths: int = DEFAULT_MAX_PATHS
    jobs: int = 4
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    excludes: Tuple[str, ...] = ()
    suppress: Tuple[str, ...] = ()
    merge_headers: bool = True

    def validate(self) -> List[str]:
        """Return a list of validation problems (empty if valid)."""
        problems: List[str] = []
        if self.max_call_depth <= 0:
            problems.append("max_call_depth must be positive")
        if self.max_paths <= 0:
            problems.append("max_paths must be positive")
        if self.jobs <= 0:
            problems.append("jobs must be positive")
        if not self.extensions:
            problems.append("extensions must not be empty")
        for ext in self.extensions:
            if not ext.startswith("."):
                problems.append(f"extension {ext!r} must start with '.'")
        for kind in self.suppress:
            if kind not in _KINDS:
                problems.append(f"unknown diagnostic kind {kind!r} in suppress")
        return problems

    def merged(self, **overrides: Any) -> "AnalyzerConfig":
        """Copy with every non-``None`` override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        for key in ("extensions", "excludes", "suppress"):
            if key in changes:
                changes[key] = tuple(changes[key])
        return dataclasses.replace(self, **changes)

    def checked(self) -> "AnalyzerConfig":
        """Return ``self``, or raise :class:`ConfigError` listing every problem."""
        problems = self.validate()
        if problems:
            raise ConfigError("invalid configuration", problems)
        return self


_FIELD_TYPES = {
    "max_call_depth": int,
    "max_paths": int,
    "jobs": int,
    "extensions": list,
    "excludes": list,
    "suppress": list,
    "merge_headers": bool,
}


def config_from_mapping(data: Mapping[str, Any], source: str = "<mapping>") -> AnalyzerConfig:
    """Build a validated :class:`AnalyzerConfig` from plain data."""
    problems: List[str] = []
    values: Dict[str, Any] = {}
    for key, value in data.items():
        expected = _FIELD_TYPES.get(key)
        if expected is None:
            problems.append(f"unknown key {key!r}")
            continue
        if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
            problems.append(f"{key} must be an integer")
            continue
        if expected is bool and not isinstance(value, bool):
            problems.append(f"{key} must be true or false")
            continue
        if expected is list:
            if isinstance(value, str):
                value = [v.strip() for v in value.split(",") if v.strip()]
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                problems.append(f"{key} must be a list of strings")
                continue
            value = tuple(value)
        values[key] = value
    if problems:
        raise ConfigError(f"invalid configuration in {source}", problems)
    return AnalyzerConfig(**values).checked()


def load_config(path: Union[str, Path]) -> AnalyzerConfig:
    """Read a JSON configuration file.

    Raises
    ------
    ConfigError
        When the file is missing, is not valid JSON, is not an object, or
        holds unknown keys or invalid values.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config file {p}: {exc.strerror or exc}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(
            f"config file {p} is not valid JSON",
            [f"line {exc.lineno}, column {exc.colno}: {exc.msg}"],
        ) from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {p} must contain a JSON object")
    logger.debug("loaded config from %s: %s", p, sorted(data))
    return config_from_mapping(data, source=str(p))


__all__ = [
    "DEFAULT_EXTENSIONS",
    "AnalyzerConfig",
    "config_from_mapping",
    "load_config",
]
