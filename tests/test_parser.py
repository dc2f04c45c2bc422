# tests/test_parser.py
"""Tests for the template parser: action tree, spans, nesting, errors."""

import pytest

from gotmpls.ast import (
    BlockKind,
    ControlBlock,
    DotRef,
    FieldAccess,
    Literal,
    LiteralKind,
    MethodCall,
    Pipeline,
    VariableRef,
    to_dict,
    to_sexp,
)
from gotmpls.errors import GotmplsErrorCodes, TemplateSyntaxError
from gotmpls.parser import parse_template


def single(source: str):
    """The only command of the only top-level pipeline."""
    info = parse_template(source)
    assert len(info.actions) == 1
    pipeline = info.actions[0]
    assert isinstance(pipeline, Pipeline)
    assert len(pipeline.commands) == 1
    return pipeline.commands[0]


class TestParseEmpty:

    def test_empty_template(self):
        info = parse_template("")
        assert info.actions == ()
        assert info.root_hint is None

    def test_text_only(self):
        assert parse_template("just text\n").actions == ()

    def test_comment_only(self):
        assert parse_template("{{/* nothing */}}").actions == ()


class TestParseOperands:

    def test_field_path(self):
        node = single("{{ .Address.City }}")
        assert isinstance(node, FieldAccess)
        assert [seg.name for seg in node.path] == ["Address", "City"]
        assert node.base is None

    def test_dot(self):
        assert isinstance(single("{{ . }}"), DotRef)

    def test_variable_with_fields(self):
        node = single("{{ $.Name }}")
        assert isinstance(node, FieldAccess)
        assert node.base == VariableRef("$", node.base.span)
        assert [seg.name for seg in node.path] == ["Name"]

    def test_parenthesized_base(self):
        node = single("{{ (.GetAddress).City }}")
        assert isinstance(node, FieldAccess)
        assert isinstance(node.base, Pipeline)

    def test_unicode_names(self):
        node = single("{{ .Größe }}")
        assert isinstance(node, FieldAccess)
        assert [seg.name for seg in node.path] == ["Größe"]
        node = single("{{ $maß.Wert }}")
        assert node.base.name == "$maß"
        assert [seg.name for seg in node.path] == ["Wert"]

    @pytest.mark.parametrize("text,kind", [
        ('"s"', LiteralKind.STRING),
        ("`raw`", LiteralKind.RAW_STRING),
        ("'c'", LiteralKind.CHAR),
        ("42", LiteralKind.NUMBER),
        ("true", LiteralKind.BOOL),
        ("nil", LiteralKind.NIL),
    ])
    def test_literals(self, text, kind):
        node = single("{{ %s }}" % text)
        assert isinstance(node, Literal)
        assert node.kind is kind
        assert node.text == text

    def test_bare_identifier_is_zero_arg_call(self):
        node = single("{{ now }}")
        assert isinstance(node, MethodCall)
        assert node.name.name == "now"
        assert node.args == ()
        assert node.target is None


class TestParseCommands:

    def test_function_call(self):
        node = single('{{ printf "%d" .Age }}')
        assert isinstance(node, MethodCall)
        assert node.name.name == "printf"
        assert [type(a) for a in node.args] == [Literal, FieldAccess]

    def test_method_call_with_args(self):
        node = single('{{ .Greet "hi" }}')
        assert isinstance(node, MethodCall)
        assert node.name.name == "Greet"
        assert isinstance(node.target, FieldAccess)
        assert node.args[0].text == '"hi"'

    def test_args_to_non_callable(self):
        node = single('{{ $x "arg" }}')
        assert isinstance(node, MethodCall)
        assert node.name is None
        assert isinstance(node.target, VariableRef)

    def test_pipeline_stages(self):
        info = parse_template('{{ .Name | printf "%s" | upper }}')
        pipeline = info.actions[0]
        assert len(pipeline.commands) == 3
        assert isinstance(pipeline.commands[0], FieldAccess)
        assert pipeline.commands[1].name.name == "printf"
        assert pipeline.commands[2].name.name == "upper"

    def test_declaration(self):
        info = parse_template("{{ $n := .Name }}")
        pipeline = info.actions[0]
        assert [v.name for v in pipeline.declarations] == ["$n"]
        assert not pipeline.is_assign
        assert info.variables[0].name == "$n"
        assert info.variables[0].scope_id == 0

    def test_assignment_not_recorded_as_variable(self):
        info = parse_template("{{ $n := 1 }}{{ $n = 2 }}")
        assert info.actions[1].is_assign
        assert [v.name for v in info.variables] == ["$n"]


class TestParseSpans:

    def test_field_segment_spans(self):
        node = single("{{ .Address.City }}")
        first, second = node.path
        assert (first.span.line, first.span.column) == (1, 4)
        assert (first.span.end_line, first.span.end_column) == (1, 12)
        assert (second.span.column, second.span.end_column) == (12, 17)

    def test_multiline_positions(self):
        info = parse_template("line one\n  {{ .Name }}\n")
        node = info.actions[0].commands[0]
        assert node.span.line == 2
        assert node.span.column == 6

    def test_file_name_carried(self):
        info = parse_template("{{ .X }}", "views/page.tmpl")
        assert info.file_name == "views/page.tmpl"
        assert info.actions[0].span.file == "views/page.tmpl"


class TestParseBlocks:

    def test_if_else(self):
        info = parse_template("{{ if .Active }}a{{ .Name }}{{ else }}b{{ .Age }}{{ end }}")
        block = info.actions[0]
        assert isinstance(block, ControlBlock)
        assert block.kind is BlockKind.IF
        assert len(block.body) == 1
        assert len(block.else_body) == 1
        assert block.scope_id != block.else_scope_id

    def test_else_if_chain_nests(self):
        info = parse_template(
            "{{ if .A }}1{{ else if .B }}2{{ else with .C }}3{{ else }}4{{ end }}"
        )
        outer = info.actions[0]
        assert len(info.actions) == 1
        inner_if = outer.else_body[0]
        assert inner_if.kind is BlockKind.IF
        inner_with = inner_if.else_body[0]
        assert inner_with.kind is BlockKind.WITH
        assert inner_with.else_body == ()

    def test_range_with_declarations(self):
        info = parse_template("{{ range $i, $e := .Tags }}{{ $e }}{{ end }}")
        block = info.actions[0]
        assert block.kind is BlockKind.RANGE
        assert [v.name for v in block.pipeline.declarations] == ["$i", "$e"]
        assert {v.scope_id for v in info.variables} == {block.scope_id}

    def test_break_and_continue_inside_range(self):
        info = parse_template(
            "{{ range .Tags }}{{ if . }}{{ break }}{{ end }}{{ continue }}{{ end }}"
        )
        body = info.actions[0].body
        assert body[0].body[0].kind is BlockKind.BREAK
        assert body[1].kind is BlockKind.CONTINUE

    def test_define_block_template(self):
        info = parse_template(
            '{{ define "row" }}{{ .Name }}{{ end }}'
            '{{ block "main" .Address }}{{ .City }}{{ end }}'
            '{{ template "row" . }}'
        )
        define, block, call = info.actions
        assert (define.kind, define.name) == (BlockKind.DEFINE, "row")
        assert (block.kind, block.name) == (BlockKind.BLOCK, "main")
        assert isinstance(block.pipeline, Pipeline)
        assert (call.kind, call.name) == (BlockKind.TEMPLATE, "row")
        assert info.templates == ("row", "main")
        assert set(info.defines()) == {"row", "main"}

    def test_trim_markers(self):
        info = parse_template("a  {{- .Name -}}  b")
        assert isinstance(info.actions[0].commands[0], FieldAccess)


class TestTypeHints:

    def test_root_hint(self):
        info = parse_template("{{/* gotype: models.Person */}}\nHello {{ .Name }}")
        assert info.root_hint.type_path == "models.Person"
        assert info.root_hint.span.line == 1

    def test_hint_after_blank_text_is_root(self):
        info = parse_template("\n\n{{- /*gotype:models.Person*/ -}}\n{{ .Name }}")
        assert info.root_hint.type_path == "models.Person"

    def test_define_hint(self):
        info = parse_template(
            '{{ define "addr" }}{{/* gotype: models.Address */}}{{ .City }}{{ end }}'
        )
        assert info.actions[0].type_hint.type_path == "models.Address"
        assert info.root_hint is None

    def test_misplaced_hint(self):
        info = parse_template("Hi {{ .Name }}{{/* gotype: models.Person */}}")
        assert info.root_hint is None
        assert [h.type_path for h in info.misplaced_hints] == ["models.Person"]

    def test_duplicate_root_hint(self):
        with pytest.raises(TemplateSyntaxError) as info:
            parse_template("{{/* gotype: a.A */}}{{/* gotype: b.B */}}")
        assert info.value.code is GotmplsErrorCodes.DUPLICATE_TYPE_HINT


class TestParseErrors:

    def _error(self, source):
        with pytest.raises(TemplateSyntaxError) as info:
            parse_template(source, "bad.tmpl")
        return info.value

    def test_unclosed_action(self):
        err = self._error("Hello {{ .Name")
        assert err.code is GotmplsErrorCodes.UNCLOSED_ACTION
        assert (err.span.line, err.span.column) == (1, 7)

    def test_malformed_action(self):
        err = self._error("ok\n{{ .Name ) }}")
        assert err.code is GotmplsErrorCodes.MALFORMED_ACTION
        assert err.span.line == 2
        assert "malformed action" in err.message

    def test_unexpected_end(self):
        assert self._error("{{ end }}").code is GotmplsErrorCodes.UNEXPECTED_END

    def test_unclosed_block(self):
        err = self._error("x\n{{ if .A }}y")
        assert err.code is GotmplsErrorCodes.UNCLOSED_BLOCK
        assert err.span.line == 2

    def test_else_outside_block(self):
        assert self._error("{{ else }}").code is GotmplsErrorCodes.UNEXPECTED_ELSE

    def test_second_else(self):
        err = self._error("{{ if .A }}{{ else }}{{ else }}{{ end }}")
        assert err.code is GotmplsErrorCodes.UNEXPECTED_ELSE

    def test_nested_define(self):
        err = self._error('{{ if .A }}{{ define "x" }}{{ end }}{{ end }}')
        assert err.code is GotmplsErrorCodes.MISPLACED_CONTROL

    def test_break_outside_range(self):
        assert self._error("{{ break }}").code is GotmplsErrorCodes.MISPLACED_CONTROL

    def test_break_in_range_else(self):
        err = self._error("{{ range .A }}{{ else }}{{ break }}{{ end }}")
        assert err.code is GotmplsErrorCodes.MISPLACED_CONTROL

    def test_invalid_utf8(self):
        err = self._error(b"{{ .Name }}\xff")
        assert err.code is GotmplsErrorCodes.INVALID_ENCODING

    def test_error_formats_gcc_style(self):
        err = self._error("{{ end }}")
        assert err.to_gcc_format() == "bad.tmpl:1:4: error: unexpected end [GTMPL-1003]"


class TestRendering:

    def test_sexp(self):
        info = parse_template('{{/* gotype: models.Person */}}{{ .Name | printf "%s" }}')
        text = to_sexp(info)
        assert text.startswith('(template "<template>" (gotype "models.Person")')
        assert "(field Name)" in text
        assert "(call printf" in text

    def test_sexp_with_positions(self):
        text = to_sexp(parse_template("{{ .Name }}"), with_positions=True)
        assert "(@ 1 4 1 9)" in text

    def test_dict(self):
        data = to_dict(parse_template("{{ if .A }}x{{ end }}"))
        assert data["node"] == "TemplateInfo"
        assert data["actions"][0]["kind"] == "if"
