# gotmpls/__init__.py
"""
gotmpls: static checking of Go templates against Go package types.

Pipeline::

    Go package dir ──► analyze_package ──► TypeRegistry ─┐
    template text  ──► parse_template  ──► TemplateInfo ─┴► validate
                                                            │
                                   generate_diagnostics ◄───┘

:func:`analyze` runs the whole pipeline for a package and a set of templates.
"""

__version__ = "0.1.0"

from gotmpls.analysis import AnalysisReport, FileResult, analyze, analyze_templates
from gotmpls.config import AnalysisConfig
from gotmpls.diagnostic import (
    Diagnostic,
    Diagnostics,
    ResolutionRecord,
    diagnostics_for_error,
    generate_diagnostics,
)
from gotmpls.errors import (
    GoSourceError,
    GotmplsError,
    PackageLoadError,
    SourceSpan,
    TemplateReadError,
    TemplateSyntaxError,
)
from gotmpls.gotypes import TypeRegistry
from gotmpls.parser import parse_template
from gotmpls.registry import analyze_package
from gotmpls.validator import validate

__all__ = [
    "__version__",
    "analyze_package",
    "parse_template",
    "validate",
    "generate_diagnostics",
    "diagnostics_for_error",
    "analyze",
    "analyze_templates",
    "AnalysisReport",
    "FileResult",
    "AnalysisConfig",
    "TypeRegistry",
    "ResolutionRecord",
    "Diagnostic",
    "Diagnostics",
    "SourceSpan",
    "GotmplsError",
    "TemplateSyntaxError",
    "TemplateReadError",
    "PackageLoadError",
    "GoSourceError",
]
