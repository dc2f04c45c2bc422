# gotmpls/errors.py
"""
gotmpls Error Types

Exception hierarchy, error codes and source spans shared by the template
parser, the Go package loader and the validator.

Error Hierarchy:
────────────────
    GotmplsError (base)
    ├── TemplateSyntaxError  - malformed template actions / block structure
    ├── TemplateReadError    - a template file could not be read
    ├── PackageLoadError     - the Go package could not be loaded (fatal)
    │   └── GoSourceError    - a single Go file failed to parse
    └── InternalError        - analyzer bugs (should never happen)

Error Codes:
────────────
Each error has a unique code of the form GTMPL-XXXX:
  - 1000-1999: Template syntax errors
  - 2000-2999: Type resolution errors
  - 3000-3999: Scope / variable errors
  - 4000-4999: Go package loading errors
  - 9000-9999: Internal errors
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, Optional


# ═══════════════════════════════════════════════════════════════════════════
# SEVERITY AND PHASE
# ═══════════════════════════════════════════════════════════════════════════


class ErrorSeverity(Enum):
    """Severity levels for findings."""

    HINT = auto()
    WARNING = auto()
    ERROR = auto()
    FATAL = auto()

    def __str__(self) -> str:
        return self.name.lower()


class ErrorPhase(Enum):
    """Analysis phase where an error originated."""

    PARSE = "parse"
    PACKAGE = "package"
    VALIDATE = "validate"
    INTERNAL = "internal"


# ═══════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ErrorCode:
    """A stable identifier for a class of findings."""

    number: int
    name: str
    phase: ErrorPhase
    default_severity: ErrorSeverity = ErrorSeverity.ERROR

    @property
    def code(self) -> str:
        return f"GTMPL-{self.number:04d}"

    def __str__(self) -> str:
        return self.code


class GotmplsErrorCodes:
    """Registry of all error codes used by the analyzer."""

    # Template syntax (1000-1999)
    MALFORMED_ACTION = ErrorCode(1001, "malformed-action", ErrorPhase.PARSE)
    UNCLOSED_ACTION = ErrorCode(1002, "unclosed-action", ErrorPhase.PARSE)
    UNEXPECTED_END = ErrorCode(1003, "unexpected-end", ErrorPhase.PARSE)
    UNEXPECTED_ELSE = ErrorCode(1004, "unexpected-else", ErrorPhase.PARSE)
    UNCLOSED_BLOCK = ErrorCode(1005, "unclosed-block", ErrorPhase.PARSE)
    MISPLACED_CONTROL = ErrorCode(1006, "misplaced-control", ErrorPhase.PARSE)
    DUPLICATE_TYPE_HINT = ErrorCode(1007, "duplicate-type-hint", ErrorPhase.PARSE)
    INVALID_ENCODING = ErrorCode(1008, "invalid-encoding", ErrorPhase.PARSE)

    # Type resolution (2000-2999)
    UNKNOWN_MEMBER = ErrorCode(2001, "unknown-member", ErrorPhase.VALIDATE)
    FIELD_ON_NON_STRUCT = ErrorCode(2002, "field-on-non-struct", ErrorPhase.VALIDATE)
    INVALID_TYPE_HINT = ErrorCode(2003, "invalid-type-hint", ErrorPhase.VALIDATE)
    NOT_ITERABLE = ErrorCode(2004, "not-iterable", ErrorPhase.VALIDATE)
    UNKNOWN_FUNCTION = ErrorCode(2005, "unknown-function", ErrorPhase.VALIDATE)
    ARGUMENT_COUNT = ErrorCode(
        2006, "argument-count", ErrorPhase.VALIDATE, ErrorSeverity.WARNING
    )
    RESULT_SHAPE = ErrorCode(
        2007, "result-shape", ErrorPhase.VALIDATE, ErrorSeverity.WARNING
    )
    INCOMPATIBLE_COMPARISON = ErrorCode(
        2008, "incompatible-comparison", ErrorPhase.VALIDATE, ErrorSeverity.WARNING
    )
    TEMPLATE_DATA_MISMATCH = ErrorCode(
        2009, "template-data-mismatch", ErrorPhase.VALIDATE, ErrorSeverity.WARNING
    )
    NOT_CALLABLE = ErrorCode(2010, "not-callable", ErrorPhase.VALIDATE)
    TYPE_HINT = ErrorCode(2100, "type-hint", ErrorPhase.VALIDATE, ErrorSeverity.HINT)
    RETURN_HINT = ErrorCode(
        2101, "return-hint", ErrorPhase.VALIDATE, ErrorSeverity.HINT
    )

    # Scope (3000-3999)
    UNDEFINED_VARIABLE = ErrorCode(3001, "undefined-variable", ErrorPhase.VALIDATE)
    MISPLACED_TYPE_HINT = ErrorCode(
        3002, "misplaced-type-hint", ErrorPhase.VALIDATE, ErrorSeverity.WARNING
    )
    MISSING_TYPE_HINT = ErrorCode(
        3003, "missing-type-hint", ErrorPhase.VALIDATE, ErrorSeverity.WARNING
    )

    # Package loading (4000-4999)
    PACKAGE_NOT_FOUND = ErrorCode(
        4001, "package-not-found", ErrorPhase.PACKAGE, ErrorSeverity.FATAL
    )
    NO_GO_FILES = ErrorCode(4002, "no-go-files", ErrorPhase.PACKAGE, ErrorSeverity.FATAL)
    GO_PARSE_ERROR = ErrorCode(
        4003, "go-parse-error", ErrorPhase.PACKAGE, ErrorSeverity.FATAL
    )
    PACKAGE_MISMATCH = ErrorCode(
        4004, "package-mismatch", ErrorPhase.PACKAGE, ErrorSeverity.FATAL
    )
    TEMPLATE_UNREADABLE = ErrorCode(
        4005, "template-unreadable", ErrorPhase.PACKAGE, ErrorSeverity.FATAL
    )

    # Internal (9000-9999)
    INTERNAL = ErrorCode(9001, "internal", ErrorPhase.INTERNAL, ErrorSeverity.FATAL)


# ═══════════════════════════════════════════════════════════════════════════
# SOURCE SPANS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SourceSpan:
    """
    A region of source text.

    Lines and columns are 1-based; ``end_column`` is exclusive.  When the end
    is not given the span covers a single character.
    """

    line: int = 1
    column: int = 1
    end_line: int = 0
    end_column: int = 0
    file: Optional[str] = None

    def __post_init__(self) -> None:
        if self.end_line < self.line:
            object.__setattr__(self, "end_line", self.line)
        if self.end_line == self.line and self.end_column <= self.column:
            object.__setattr__(self, "end_column", self.column + 1)

    @classmethod
    def unknown(cls, file: Optional[str] = None) -> "SourceSpan":
        return cls(1, 1, 1, 2, file)

    def with_file(self, file: Optional[str]) -> "SourceSpan":
        return SourceSpan(self.line, self.column, self.end_line, self.end_column, file)

    def __str__(self) -> str:
        prefix = f"{self.file}:" if self.file else ""
        return f"{prefix}{self.line}:{self.column}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "column": self.column,
            "end_line": self.end_line,
            "end_column": self.end_column,
        }


# ═══════════════════════════════════════════════════════════════════════════
# EXCEPTION HIERARCHY
# ═══════════════════════════════════════════════════════════════════════════


class GotmplsError(Exception):
    """Base class for every error raised by gotmpls."""

    default_code: ErrorCode = GotmplsErrorCodes.INTERNAL

    def __init__(
        self,
        message: str,
        span: Optional[SourceSpan] = None,
        code: Optional[ErrorCode] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.span = span
        self.code = code or self.default_code

    def to_gcc_format(self) -> str:
        span = self.span or SourceSpan.unknown()
        return (
            f"{span}: {self.code.default_severity}: {self.message} [{self.code}]"
        )

    def __str__(self) -> str:
        if self.span is not None:
            return f"{self.span}: {self.message}"
        return self.message


class TemplateSyntaxError(GotmplsError):
    """Raised when template source cannot be parsed."""

    default_code = GotmplsErrorCodes.MALFORMED_ACTION

    def __init__(
        self,
        message: str,
        span: Optional[SourceSpan] = None,
        code: Optional[ErrorCode] = None,
    ) -> None:
        super().__init__(message, span or SourceSpan.unknown(), code)


class TemplateReadError(GotmplsError):
    """Raised when a template file cannot be read."""

    default_code = GotmplsErrorCodes.TEMPLATE_UNREADABLE


class PackageLoadError(GotmplsError):
    """Raised when the target Go package cannot be loaded."""

    default_code = GotmplsErrorCodes.PACKAGE_NOT_FOUND


class GoSourceError(PackageLoadError):
    """Raised when a Go source file fails to parse."""

    default_code = GotmplsErrorCodes.GO_PARSE_ERROR


class InternalError(GotmplsError):
    """An analyzer invariant was violated."""

    default_code = GotmplsErrorCodes.INTERNAL


__all__ = [
    "ErrorSeverity",
    "ErrorPhase",
    "ErrorCode",
    "GotmplsErrorCodes",
    "SourceSpan",
    "GotmplsError",
    "TemplateSyntaxError",
    "TemplateReadError",
    "PackageLoadError",
    "GoSourceError",
    "InternalError",
]
