#!/usr/bin/env python3
"""gotmpls/main.py: CLI entry-point for the gotmpls template checker.

Usage examples
--------------
    # Check every template under a package directory
    python -m gotmpls check ./internal/views

    # Check selected templates, GCC-style output without hints
    python -m gotmpls check ./internal/views page.tmpl --format gcc --no-hints

    # Dump the parsed action tree of one template
    python -m gotmpls parse page.tmpl --format sexp --positions

    # List the types the checker sees in a package
    python -m gotmpls types ./internal/views --json

Exit codes
----------
    0   Success (no errors).
    1   One or more diagnostics with severity ERROR were emitted.
    2   Infrastructure failure (missing package, unreadable file, etc.).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO

from gotmpls import __version__
from gotmpls.analysis import AnalysisReport, analyze
from gotmpls.ast import to_dict, to_sexp
from gotmpls.config import AnalysisConfig
from gotmpls.errors import (
    GotmplsError,
    GotmplsErrorCodes,
    PackageLoadError,
    SourceSpan,
    TemplateReadError,
    TemplateSyntaxError,
)
from gotmpls.gotypes import TypeDescriptor
from gotmpls.parser import parse_template
from gotmpls.registry import analyze_package

_log = logging.getLogger("gotmpls")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``gotmpls`` logger.

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
    root = logging.getLogger("gotmpls")
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """``None`` or ``"-"`` → ``sys.stdout``; otherwise open *dest* for writing."""
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _load_config(args: argparse.Namespace) -> Optional[AnalysisConfig]:
    """Build the config from ``--config`` and CLI overrides; None if invalid."""
    try:
        config = AnalysisConfig.load(args.config) if args.config else AnalysisConfig()
    except (OSError, ValueError) as exc:
        _log.error("Failed to load config %s: %s", args.config, exc)
        return None
    if getattr(args, "workers", None) is not None:
        config.workers = args.workers
    if getattr(args, "warn_missing_hint", False):
        config.warn_missing_type_hint = True
    if getattr(args, "no_hints", False):
        config.include_hints = False
    problems = config.validate()
    for problem in problems:
        _log.error("Invalid configuration: %s", problem)
    return None if problems else config


def discover_templates(directory: Path, extensions: Sequence[str]) -> List[Path]:
    """All files below *directory* whose suffix is a template extension."""
    wanted = {ext.lower() for ext in extensions}
    return sorted(
        p for p in directory.rglob("*") if p.is_file() and p.suffix.lower() in wanted
    )


def read_templates(paths: Sequence[Path]) -> Dict[str, bytes]:
    """Read template files as raw bytes; decoding is left to the parser."""
    sources: Dict[str, bytes] = {}
    for path in paths:
        try:
            sources[str(path)] = path.read_bytes()
        except OSError as exc:
            raise TemplateReadError(
                f"cannot read template {path}: {exc.strerror or exc}",
                SourceSpan.unknown(str(path)),
                code=GotmplsErrorCodes.TEMPLATE_UNREADABLE,
            ) from exc
    return sources


def _emit_report(
    report: AnalysisReport, fmt: str, include_hints: bool, stream: TextIO
) -> None:
    """Write *report* to *stream* in the chosen format."""
    if fmt == "json":
        stream.write(json.dumps(report.to_dict(include_hints), indent=2) + "\n")
        return

    total = 0
    for result in report.files:
        if result.cancelled:
            stream.write(f"{result.path}: cancelled\n")
            continue
        for diag in result.diagnostics.visible(include_hints):
            stream.write(diag.to_gcc_format(result.path) + "\n")
            total += 1

    if fmt == "summary":
        stream.write(
            f"\n--- {len(report.files)} template(s), {total} diagnostic(s), "
            f"{report.error_count} error(s), {report.warning_count} warning(s) ---\n"
        )


# ===========================================================================
# Sub-command implementations
# ===========================================================================

# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

def cmd_check(args: argparse.Namespace) -> int:
    """Validate templates against the types of a Go package.

    Workflow:
        1. Load the configuration (``--config`` plus CLI overrides).
        2. Discover templates by extension unless paths were given.
        3. Build the type registry, then validate every template.
        4. Emit diagnostics and return an appropriate exit code.
    """
    config = _load_config(args)
    if config is None:
        return EXIT_INFRA

    package_dir = Path(args.package).expanduser()
    if args.templates:
        paths = [Path(t).expanduser() for t in args.templates]
    else:
        paths = discover_templates(package_dir, config.template_extensions)
        _log.info("Discovered %d template(s) under %s", len(paths), package_dir)

    try:
        sources = read_templates(paths)
        report = analyze(package_dir, sources, config)
    except (PackageLoadError, TemplateReadError) as exc:
        _log.error("%s", exc.to_gcc_format())
        return EXIT_INFRA

    stream = _open_output(args.output)
    try:
        _emit_report(report, args.format, config.include_hints, stream)
    finally:
        if stream is not sys.stdout:
            stream.close()

    return EXIT_ERROR if report.has_errors else EXIT_OK


# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------

def cmd_parse(args: argparse.Namespace) -> int:
    """Parse a template and print its action tree.

    Useful for debugging the front-end without loading any Go package.
    """
    path = Path(args.template).expanduser()
    try:
        source = read_templates([path])[str(path)]
    except TemplateReadError as exc:
        _log.error("%s", exc.to_gcc_format())
        return EXIT_INFRA

    try:
        info = parse_template(source, str(path))
    except TemplateSyntaxError as exc:
        sys.stderr.write(exc.to_gcc_format() + "\n")
        return EXIT_ERROR

    stream = _open_output(args.output)
    try:
        if args.format == "json":
            stream.write(json.dumps(to_dict(info), indent=2) + "\n")
        else:
            stream.write(to_sexp(info, with_positions=args.positions) + "\n")
    finally:
        if stream is not sys.stdout:
            stream.close()
    return EXIT_OK


# ---------------------------------------------------------------------------
# types
# ---------------------------------------------------------------------------

def _describe(desc: TypeDescriptor) -> Dict[str, Any]:
    return {
        "name": desc.qualified,
        "underlying": str(desc.underlying),
        "fields": {name: str(f.type) for name, f in desc.fields.items()},
        "methods": {name: str(m.signature) for name, m in desc.methods.items()},
        "opaque_embeds": list(desc.opaque_embeds),
    }


def cmd_types(args: argparse.Namespace) -> int:
    """List the types of a Go package as the checker resolves them."""
    config = _load_config(args)
    if config is None:
        return EXIT_INFRA
    try:
        registry = analyze_package(Path(args.package).expanduser(), config)
    except PackageLoadError as exc:
        _log.error("%s", exc.to_gcc_format())
        return EXIT_INFRA

    local = [
        registry.types[name]
        for name in sorted(registry.types)
        if args.all or registry.types[name].package == registry.package
    ]

    stream = _open_output(args.output)
    try:
        if args.json:
            data = {
                "package": registry.package,
                "types": [_describe(d) for d in local],
                "unresolved": dict(registry.unresolved),
            }
            stream.write(json.dumps(data, indent=2) + "\n")
            return EXIT_OK

        for desc in local:
            stream.write(f"{desc.qualified}  {desc.underlying}\n")
            for name, f in desc.fields.items():
                origin = f"  (via {f.promoted_from})" if f.promoted_from else ""
                stream.write(f"    .{name}  {f.type}{origin}\n")
            for name, m in desc.methods.items():
                origin = f"  (via {m.promoted_from})" if m.promoted_from else ""
                stream.write(f"    .{name}  {m.signature}{origin}\n")
            for embedded in desc.opaque_embeds:
                stream.write(f"    (members of {embedded} not checked)\n")
        for name, reason in sorted(registry.unresolved.items()):
            stream.write(f"skipped {name}: {reason}\n")
    finally:
        if stream is not sys.stdout:
            stream.close()
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    # --- Top-level parser --------------------------------------------------
    parser = argparse.ArgumentParser(
        prog="gotmpls",
        description=(
            "gotmpls: static checker for Go text/template and html/template\n"
            "files against the types of a Go package."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              gotmpls check ./views
              gotmpls check ./views index.tmpl --format json
              gotmpls parse index.tmpl --format sexp
              gotmpls types ./views
        """),
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

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # Shared argument groups (reusable) ------------------------------------

    def _add_output_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )

    def _add_config_args(p: argparse.ArgumentParser) -> None:
        g = p.add_argument_group("configuration")
        g.add_argument(
            "--config",
            default=None,
            metavar="FILE",
            help="JSON configuration file (AnalysisConfig keys).",
        )
        g.add_argument(
            "--workers",
            type=int,
            default=None,
            metavar="N",
            help="Templates validated in parallel (default: 4).",
        )

    # --- check -------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Validate templates against a Go package.",
        description=(
            "Load the Go package in PACKAGE, then validate the given templates "
            "(or every template found under PACKAGE) against its types."
        ),
    )
    p_check.add_argument("package", metavar="PACKAGE", help="Go package directory.")
    p_check.add_argument(
        "templates",
        nargs="*",
        metavar="TEMPLATE",
        help="Template files (default: discover by extension).",
    )
    p_check.add_argument(
        "-f", "--format",
        choices=["summary", "gcc", "json"],
        default="summary",
        help="Output format (default: summary).",
    )
    p_check.add_argument(
        "--no-hints",
        action="store_true",
        help="Suppress type and return hints.",
    )
    p_check.add_argument(
        "--warn-missing-hint",
        action="store_true",
        help="Warn about templates without a gotype directive.",
    )
    _add_output_arg(p_check)
    _add_config_args(p_check)
    p_check.set_defaults(func=cmd_check)

    # --- parse -------------------------------------------------------------
    p_parse = subparsers.add_parser(
        "parse",
        help="Parse a template and print its action tree.",
    )
    p_parse.add_argument("template", metavar="TEMPLATE", help="Template file.")
    p_parse.add_argument(
        "-f", "--format",
        choices=["sexp", "json"],
        default="sexp",
        help="Output format (default: sexp).",
    )
    p_parse.add_argument(
        "--positions",
        action="store_true",
        help="Include source positions in S-expression output.",
    )
    _add_output_arg(p_parse)
    p_parse.set_defaults(func=cmd_parse)

    # --- types -------------------------------------------------------------
    p_types = subparsers.add_parser(
        "types",
        help="List the types of a Go package.",
    )
    p_types.add_argument("package", metavar="PACKAGE", help="Go package directory.")
    p_types.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of text.",
    )
    p_types.add_argument(
        "--all",
        action="store_true",
        help="Include the built-in standard-library types.",
    )
    _add_output_arg(p_types)
    _add_config_args(p_types)
    p_types.set_defaults(func=cmd_types)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the gotmpls CLI.

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

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130  # Standard UNIX convention for SIGINT
    except GotmplsError as exc:
        _log.error("%s", exc.to_gcc_format())
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
