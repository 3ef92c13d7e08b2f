#!/usr/bin/env python3
"""leakcheck/main.py - CLI entry-point for the leakcheck analyzer.

Usage examples
--------------
    # Analyze a source tree, text report on stdout
    leakcheck src/

    # JSON report, skipping vendored code
    leakcheck src/ include/ --format json --exclude third_party,build

    # GCC-style lines for editor integration, written to a file
    leakcheck widget.cpp --format gcc --output leaks.txt

    # Print one class's intra-class call graph in DOT
    leakcheck src/ --dot Widget | dot -Tpng -o widget.png

Exit codes
----------
    0   No diagnostics.
    1   One or more diagnostics were reported.
    2   Infrastructure failure (missing path, bad config file, etc.).

The module doubles as ``python -m leakcheck`` via the companion
``leakcheck/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Optional, Sequence, TextIO

from leakcheck import __version__
from leakcheck.builder import build_class_model
from leakcheck.callgraph import build_callgraph
from leakcheck.config import AnalyzerConfig, load_config
from leakcheck.errors import LeakcheckError
from leakcheck.report import analyze_paths, load_registry
from leakcheck.scanner import SourceScanner

_log = logging.getLogger("leakcheck")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_FINDINGS: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``leakcheck`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("leakcheck")
    root.setLevel(level)
    # repeated main() calls in one process reuse the first handler
    if not root.handlers:
        root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _write(text: str, dest: Optional[str]) -> None:
    stream = _open_output(dest)
    try:
        stream.write(text)
    finally:
        if stream is not sys.stdout:
            stream.close()


def _split_commas(values: Optional[Sequence[str]]) -> Optional[list]:
    if not values:
        return None
    out = []
    for value in values:
        out.extend(v.strip() for v in value.split(",") if v.strip())
    return out


def _config_from_args(args: argparse.Namespace) -> AnalyzerConfig:
    """File configuration (if any) overridden by command-line flags."""
    base = load_config(args.config) if args.config else AnalyzerConfig()
    suppress = _split_commas(args.suppress)
    if suppress is not None:
        suppress = list(base.suppress) + suppress
    return base.merged(
        max_call_depth=args.max_depth,
        max_paths=args.max_paths,
        jobs=args.jobs,
        excludes=_split_commas(args.exclude),
        suppress=suppress,
        merge_headers=False if args.no_merge_headers else None,
    ).checked()


# ===========================================================================
# Commands
# ===========================================================================

def cmd_dot(args: argparse.Namespace, config: AnalyzerConfig) -> int:
    """Print the call graph of the class named by ``--dot``."""
    files = SourceScanner(config.extensions, config.excludes).scan(args.paths)
    registry = load_registry(files, config)
    raw = registry.get(args.dot)
    if raw is None:
        _log.error("class %s not found in the given sources", args.dot)
        return EXIT_INFRA
    graph = build_callgraph(build_class_model(raw))
    _write(graph.to_dot() + "\n", args.output)
    return EXIT_OK


def cmd_analyze(args: argparse.Namespace, config: AnalyzerConfig) -> int:
    """Scan, analyze and report.

    Returns EXIT_FINDINGS when at least one diagnostic survives
    suppression.
    """
    report = analyze_paths(args.paths, config)
    _write(report.render(args.format), args.output)
    for name, reason in report.failures:
        _log.warning("class %s was not analyzed: %s", name, reason)
    return EXIT_FINDINGS if report.has_issues else EXIT_OK


# ===========================================================================
# Argument parser construction
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="leakcheck",
        description=(
            "leakcheck - heap lifecycle analyzer for C++ classes.\n\n"
            "Follows every raw-pointer member from allocation in the\n"
            "constructor to release in the destructor and reports leaks,\n"
            "double releases and new/delete form mismatches."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              leakcheck src/
              leakcheck src/ --format json --exclude third_party
              leakcheck widget.cpp --dot Widget
        """),
    )
    parser.add_argument(
        "paths",
        nargs="+",
        metavar="PATH",
        help="Source files or directories to analyze.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    out = parser.add_argument_group("output")
    out.add_argument(
        "-f", "--format",
        choices=["text", "json", "gcc"],
        default="text",
        help="Report format (default: text).",
    )
    out.add_argument(
        "-o", "--output",
        default=None,
        metavar="FILE",
        help='Output file ("-" or omit for stdout).',
    )
    out.add_argument(
        "--dot",
        default=None,
        metavar="CLASS",
        help="Print the call graph of CLASS in DOT format and exit.",
    )

    sel = parser.add_argument_group("selection")
    sel.add_argument(
        "--exclude",
        action="append",
        default=None,
        metavar="DIRS",
        help="Comma-separated directory names to skip (repeatable).",
    )
    sel.add_argument(
        "--suppress",
        action="append",
        default=None,
        metavar="KIND",
        help="Diagnostic kind to suppress everywhere, '*' for all (repeatable).",
    )
    sel.add_argument(
        "--no-merge-headers",
        action="store_true",
        help="Analyze same-named classes in different files separately.",
    )

    tune = parser.add_argument_group("runtime tuning")
    tune.add_argument(
        "--config",
        default=None,
        metavar="FILE",
        help="JSON configuration file; flags override its values.",
    )
    tune.add_argument(
        "--max-depth",
        type=int,
        default=None,
        metavar="N",
        help="Maximum call expansion depth (default: 32).",
    )
    tune.add_argument(
        "--max-paths",
        type=int,
        default=None,
        metavar="N",
        help="Maximum live paths per class before branches stop forking (default: 64).",
    )
    tune.add_argument(
        "-j", "--jobs",
        type=int,
        default=None,
        metavar="N",
        help="Worker threads for class analysis (default: 4).",
    )
    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the leakcheck CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    try:
        config = _config_from_args(args)
        if args.dot:
            return cmd_dot(args, config)
        return cmd_analyze(args, config)
    except LeakcheckError as exc:
        _log.error("%s", exc)
        return exc.exit_code
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130  # Standard UNIX convention for SIGINT


if __name__ == "__main__":
    raise SystemExit(main())
