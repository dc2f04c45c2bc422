# gotmpls/diagnostic.py
"""
Resolution records and the Diagnostic Generator.

The validator emits an ordered list of :class:`ResolutionRecord`;
:func:`generate_diagnostics` partitions them into errors, warnings and hints
without reordering or deduplicating.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from gotmpls.errors import (
    ErrorCode,
    ErrorSeverity,
    GotmplsError,
    GotmplsErrorCodes,
    SourceSpan,
)


class RecordKind(Enum):
    TYPE_HINT = "type_hint"
    RETURN_HINT = "return_hint"
    ERROR = "error"
    WARNING = "warning"

    @property
    def is_hint(self) -> bool:
        return self in (RecordKind.TYPE_HINT, RecordKind.RETURN_HINT)


@dataclass(frozen=True, slots=True)
class ResolutionRecord:
    kind: RecordKind
    message: str
    span: SourceSpan
    code: Optional[ErrorCode] = None

    @classmethod
    def type_hint(cls, type_text: str, span: SourceSpan) -> "ResolutionRecord":
        return cls(RecordKind.TYPE_HINT, f"Type: {type_text}", span, GotmplsErrorCodes.TYPE_HINT)

    @classmethod
    def return_hint(cls, type_text: str, span: SourceSpan) -> "ResolutionRecord":
        return cls(
            RecordKind.RETURN_HINT, f"Returns: {type_text}", span, GotmplsErrorCodes.RETURN_HINT
        )

    @classmethod
    def error(cls, message: str, span: SourceSpan, code: ErrorCode) -> "ResolutionRecord":
        return cls(RecordKind.ERROR, message, span, code)

    @classmethod
    def warning(cls, message: str, span: SourceSpan, code: ErrorCode) -> "ResolutionRecord":
        return cls(RecordKind.WARNING, message, span, code)


_SEVERITY = {
    RecordKind.TYPE_HINT: ErrorSeverity.HINT,
    RecordKind.RETURN_HINT: ErrorSeverity.HINT,
    RecordKind.ERROR: ErrorSeverity.ERROR,
    RecordKind.WARNING: ErrorSeverity.WARNING,
}


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A positioned finding, ready for presentation."""

    message: str
    line: int
    column: int
    end_line: int
    end_column: int
    severity: ErrorSeverity
    code: Optional[str] = None

    @classmethod
    def from_record(cls, record: ResolutionRecord) -> "Diagnostic":
        span = record.span
        return cls(
            message=record.message,
            line=span.line,
            column=span.column,
            end_line=span.end_line,
            end_column=span.end_column,
            severity=_SEVERITY[record.kind],
            code=record.code.code if record.code else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "message": self.message,
            "severity": str(self.severity),
            "line": self.line,
            "column": self.column,
            "end_line": self.end_line,
            "end_column": self.end_column,
        }
        if self.code:
            result["code"] = self.code
        return result

    def to_gcc_format(self, file: str = "<template>") -> str:
        """Format as ``file:line:col: severity: message [code]``."""
        text = f"{file}:{self.line}:{self.column}: {self.severity}: {self.message}"
        if self.code:
            text += f" [{self.code}]"
        return text


@dataclass(frozen=True)
class Diagnostics:
    errors: Tuple[Diagnostic, ...] = ()
    warnings: Tuple[Diagnostic, ...] = ()
    hints: Tuple[Diagnostic, ...] = ()

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def visible(self, include_hints: bool = True) -> List[Diagnostic]:
        """Errors, then warnings, then (optionally) hints."""
        out = list(self.errors) + list(self.warnings)
        if include_hints:
            out.extend(self.hints)
        return out

    def to_dict(self, include_hints: bool = True) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "errors": [d.to_dict() for d in self.errors],
            "warnings": [d.to_dict() for d in self.warnings],
        }
        if include_hints:
            result["hints"] = [d.to_dict() for d in self.hints]
        return result


def generate_diagnostics(records: Iterable[ResolutionRecord]) -> Diagnostics:
    """Partition resolution records, preserving their relative order."""
    errors: List[Diagnostic] = []
    warnings: List[Diagnostic] = []
    hints: List[Diagnostic] = []
    for record in records:
        diagnostic = Diagnostic.from_record(record)
        if record.kind is RecordKind.ERROR:
            errors.append(diagnostic)
        elif record.kind is RecordKind.WARNING:
            warnings.append(diagnostic)
        else:
            hints.append(diagnostic)
    return Diagnostics(tuple(errors), tuple(warnings), tuple(hints))


def diagnostics_for_error(error: GotmplsError) -> Diagnostics:
    """A single-error result for a file that failed before validation."""
    span = error.span or SourceSpan.unknown()
    record = ResolutionRecord.error(error.message, span, error.code)
    return generate_diagnostics([record])


__all__ = [
    "RecordKind",
    "ResolutionRecord",
    "Diagnostic",
    "Diagnostics",
    "generate_diagnostics",
    "diagnostics_for_error",
]
