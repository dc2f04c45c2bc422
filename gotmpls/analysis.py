# gotmpls/analysis.py
"""
Orchestration: registry first, then templates validated in parallel.

The registry is built once and only read afterwards, so worker threads share
it freely.  Each file gets its own parse tree and scope stack.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from gotmpls.config import AnalysisConfig
from gotmpls.diagnostic import Diagnostics, diagnostics_for_error, generate_diagnostics
from gotmpls.errors import TemplateSyntaxError
from gotmpls.gotypes import TypeRegistry
from gotmpls.parser import parse_template
from gotmpls.registry import analyze_package
from gotmpls.validator import Validator

logger = logging.getLogger(__name__)

Source = Union[str, bytes]


@dataclass(frozen=True)
class FileResult:
    path: str
    diagnostics: Diagnostics = Diagnostics()
    cancelled: bool = False

    def to_dict(self, include_hints: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {"path": self.path}
        if self.cancelled:
            data["cancelled"] = True
        data.update(self.diagnostics.to_dict(include_hints))
        return data


@dataclass(frozen=True)
class AnalysisReport:
    """Per-file results in input order."""

    package: str
    files: Tuple[FileResult, ...] = ()

    @property
    def error_count(self) -> int:
        return sum(len(f.diagnostics.errors) for f in self.files)

    @property
    def warning_count(self) -> int:
        return sum(len(f.diagnostics.warnings) for f in self.files)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def to_dict(self, include_hints: bool = True) -> Dict[str, Any]:
        return {
            "package": self.package,
            "errors": self.error_count,
            "warnings": self.warning_count,
            "files": [f.to_dict(include_hints) for f in self.files],
        }


def check_template(
    registry: TypeRegistry,
    path: str,
    source: Source,
    config: Optional[AnalysisConfig] = None,
) -> Diagnostics:
    """Parse, validate and partition the findings for one template."""
    try:
        info = parse_template(source, path)
    except TemplateSyntaxError as exc:
        logger.debug("syntax error in %s: %s", path, exc.message)
        return diagnostics_for_error(exc)
    records = Validator(registry, config).validate(info)
    return generate_diagnostics(records)


def analyze_templates(
    registry: TypeRegistry,
    sources: Mapping[str, Source],
    config: Optional[AnalysisConfig] = None,
    cancel: Optional[threading.Event] = None,
) -> List[FileResult]:
    """Validate every template in *sources*; results keep input order."""
    config = config or AnalysisConfig()

    def run(item: Tuple[str, Source]) -> FileResult:
        path, source = item
        if cancel is not None and cancel.is_set():
            return FileResult(path, cancelled=True)
        return FileResult(path, check_template(registry, path, source, config))

    items = list(sources.items())
    if config.workers <= 1 or len(items) <= 1:
        return [run(item) for item in items]
    with ThreadPoolExecutor(max_workers=config.workers) as pool:
        return list(pool.map(run, items))


def analyze(
    directory: Union[str, Path],
    sources: Mapping[str, Source],
    config: Optional[AnalysisConfig] = None,
    cancel: Optional[threading.Event] = None,
) -> AnalysisReport:
    """
    Build the registry for *directory* and check every template.

    Raises :class:`~gotmpls.errors.PackageLoadError` before any template is
    looked at when the package cannot be loaded.
    """
    config = config or AnalysisConfig()
    registry = analyze_package(directory, config)
    results = analyze_templates(registry, sources, config, cancel)
    report = AnalysisReport(registry.package, tuple(results))
    logger.info(
        "checked %d template(s): %d error(s), %d warning(s)",
        len(results),
        report.error_count,
        report.warning_count,
    )
    return report


__all__ = [
    "FileResult",
    "AnalysisReport",
    "check_template",
    "analyze_templates",
    "analyze",
]
