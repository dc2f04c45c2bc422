# tests/test_diagnostic.py
"""Tests for the diagnostic generator."""

from gotmpls.diagnostic import (
    Diagnostic,
    RecordKind,
    ResolutionRecord,
    diagnostics_for_error,
    generate_diagnostics,
)
from gotmpls.errors import (
    ErrorSeverity,
    GotmplsErrorCodes,
    SourceSpan,
    TemplateSyntaxError,
)


def span(line, column):
    return SourceSpan(line, column, line, column + 3)


class TestGenerateDiagnostics:

    def test_empty(self):
        result = generate_diagnostics([])
        assert result.errors == result.warnings == result.hints == ()
        assert not result.has_errors

    def test_partition_preserves_order(self):
        records = [
            ResolutionRecord.type_hint("string", span(1, 1)),
            ResolutionRecord.error("first", span(2, 1), GotmplsErrorCodes.UNKNOWN_MEMBER),
            ResolutionRecord.warning("w", span(3, 1), GotmplsErrorCodes.ARGUMENT_COUNT),
            ResolutionRecord.return_hint("int", span(4, 1)),
            ResolutionRecord.error("second", span(1, 9), GotmplsErrorCodes.UNKNOWN_FUNCTION),
        ]
        result = generate_diagnostics(records)
        assert [d.message for d in result.errors] == ["first", "second"]
        assert [d.message for d in result.warnings] == ["w"]
        assert [d.message for d in result.hints] == ["Type: string", "Returns: int"]
        assert result.has_errors

    def test_duplicates_kept(self):
        record = ResolutionRecord.error("dup", span(1, 1), GotmplsErrorCodes.UNKNOWN_MEMBER)
        assert len(generate_diagnostics([record, record]).errors) == 2

    def test_severities(self):
        result = generate_diagnostics([
            ResolutionRecord.type_hint("int", span(1, 1)),
            ResolutionRecord.warning("w", span(1, 1), GotmplsErrorCodes.RESULT_SHAPE),
        ])
        assert result.hints[0].severity is ErrorSeverity.HINT
        assert result.warnings[0].severity is ErrorSeverity.WARNING

    def test_visible_order(self):
        result = generate_diagnostics([
            ResolutionRecord.type_hint("int", span(1, 1)),
            ResolutionRecord.warning("w", span(1, 1), GotmplsErrorCodes.RESULT_SHAPE),
            ResolutionRecord.error("e", span(1, 1), GotmplsErrorCodes.UNKNOWN_MEMBER),
        ])
        assert [d.message for d in result.visible()] == ["e", "w", "Type: int"]
        assert [d.message for d in result.visible(include_hints=False)] == ["e", "w"]
        assert "hints" not in result.to_dict(include_hints=False)


class TestDiagnostic:

    def test_from_record(self):
        record = ResolutionRecord.error(
            "undefined variable \"$x\"", SourceSpan(2, 5, 2, 7),
            GotmplsErrorCodes.UNDEFINED_VARIABLE,
        )
        diag = Diagnostic.from_record(record)
        assert (diag.line, diag.column, diag.end_line, diag.end_column) == (2, 5, 2, 7)
        assert diag.code == "GTMPL-3001"
        assert diag.to_dict()["severity"] == "error"

    def test_gcc_format(self):
        diag = Diagnostic.from_record(ResolutionRecord.type_hint("bool", span(3, 4)))
        assert diag.to_gcc_format("a.tmpl") == "a.tmpl:3:4: hint: Type: bool [GTMPL-2100]"

    def test_record_kinds(self):
        assert RecordKind.TYPE_HINT.is_hint
        assert not RecordKind.WARNING.is_hint


class TestDiagnosticsForError:

    def test_syntax_error_becomes_single_error(self):
        err = TemplateSyntaxError(
            "unexpected end", SourceSpan(4, 2, 4, 5), GotmplsErrorCodes.UNEXPECTED_END
        )
        result = diagnostics_for_error(err)
        assert len(result.errors) == 1
        assert result.errors[0].line == 4
        assert result.errors[0].code == "GTMPL-1003"
        assert result.warnings == result.hints == ()
