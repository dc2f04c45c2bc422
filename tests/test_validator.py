# tests/test_validator.py
"""
Validator tests: field and method resolution, pipelines, scopes, control
blocks and template functions, all against the ``models`` package from
conftest.
"""

import pytest

from gotmpls.config import AnalysisConfig
from gotmpls.diagnostic import RecordKind
from gotmpls.errors import GotmplsErrorCodes
from gotmpls.parser import parse_template
from gotmpls.registry import analyze_package
from gotmpls.validator import Validator, validate

from tests.conftest import HEADER, check, errors, hints, warnings, write_package


class TestFieldResolution:

    def test_end_to_end_person(self, registry):
        records = check(HEADER + "\nHello {{ .Name }}, adult: {{ .IsAdult }}", registry)
        assert errors(records) == []
        assert warnings(records) == []
        assert hints(records) == ["Type: string", "Type: func() bool"]

    def test_hint_spans_cover_segments(self, registry):
        records = check(HEADER + "\n{{ .Address.City }}", registry)
        first, second = records
        assert first.message == "Type: *models.Address"
        assert (first.span.line, first.span.column, first.span.end_column) == (2, 4, 12)
        assert second.message == "Type: string"
        assert (second.span.column, second.span.end_column) == (12, 17)
        assert first.span.file == "test.tmpl"

    def test_unknown_field(self, registry):
        records = check(HEADER + "{{ .Nope }}", registry)
        assert errors(records) == ['unknown field or method "Nope" on type models.Person']
        assert records[0].code is GotmplsErrorCodes.UNKNOWN_MEMBER

    def test_first_bad_segment_halts_path(self, registry):
        records = check(HEADER + "{{ .Nope.City.Deeper }}", registry)
        assert len(records) == 1
        assert errors(records) == ['unknown field or method "Nope" on type models.Person']

    def test_error_after_good_segments(self, registry):
        records = check(HEADER + "{{ .Address.Zip.Code }}", registry)
        assert hints(records) == ["Type: *models.Address"]
        assert errors(records) == ['unknown field or method "Zip" on type models.Address']

    def test_unknown_member_silent_behind_external_embed(self, tmp_path):
        pkg = write_package(tmp_path, {"p.go": """\
            package models

            import "sync"

            type Guarded struct {
                sync.Mutex
                Count int
            }
            """})
        guarded = analyze_package(pkg)
        records = check(
            "{{/* gotype: models.Guarded */}}"
            "{{ .Count }}{{ .Lock }}{{ .TryLock.Deeper }}{{ .Mutex }}",
            guarded,
        )
        assert errors(records) == []
        assert warnings(records) == []
        assert hints(records) == ["Type: int", "Type: sync.Mutex"]

    def test_field_on_basic_type(self, registry):
        records = check(HEADER + "{{ .Name.Length }}", registry)
        assert errors(records) == ["can't evaluate field Length in type string"]
        assert records[-1].code is GotmplsErrorCodes.FIELD_ON_NON_STRUCT

    def test_promoted_fields(self, registry):
        records = check(HEADER + "{{ .ID }}{{ .Created.Year }}", registry)
        assert errors(records) == []
        assert hints(records) == ["Type: int", "Type: time.Time", "Type: func() int"]

    def test_string_keyed_map(self, registry):
        records = check(HEADER + "{{ .Meta.colour }}", registry)
        assert errors(records) == []
        assert hints(records) == ["Type: map[string]string", "Type: string"]

    def test_non_string_keyed_map(self, registry):
        records = check(HEADER + "{{ .Scores.first }}", registry)
        assert errors(records) == ["can't evaluate field first in type map[int]float64"]


class TestMethodResolution:

    def test_method_chain(self, registry):
        records = check(HEADER + "{{ .GetAddress.City }}", registry)
        assert errors(records) == []
        assert hints(records) == ["Type: func() *models.Address", "Type: string"]

    def test_method_on_pointer_field(self, registry):
        records = check(HEADER + "{{ .Address.Full }}", registry)
        assert hints(records) == ["Type: *models.Address", "Type: func() string"]

    def test_standard_library_methods(self, registry):
        records = check(HEADER + "{{ .Born.Year }}", registry)
        assert errors(records) == []
        assert hints(records) == ["Type: time.Time", "Type: func() int"]

    def test_method_with_argument(self, registry):
        records = check(HEADER + '{{ .Greet "hi" }}', registry)
        assert warnings(records) == []
        assert hints(records) == ["Type: func(string) string", "Returns: string"]

    def test_missing_argument(self, registry):
        records = check(HEADER + "{{ .Greet }}", registry)
        assert warnings(records) == ["wrong number of arguments for Greet: want 1, got 0"]
        assert [r.kind for r in records] == [
            RecordKind.TYPE_HINT, RecordKind.WARNING, RecordKind.RETURN_HINT,
        ]
        assert records[1].code is GotmplsErrorCodes.ARGUMENT_COUNT

    def test_extra_argument(self, registry):
        records = check(HEADER + '{{ .Greet "hi" "there" }}', registry)
        assert warnings(records) == ["wrong number of arguments for Greet: want 1, got 2"]

    def test_piped_argument_counts(self, registry):
        records = check(HEADER + '{{ "hi" | .Greet }}', registry)
        assert warnings(records) == []
        assert errors(records) == []

    def test_variadic(self, registry):
        assert warnings(check(HEADER + '{{ .Join "," "a" "b" }}', registry)) == []
        assert warnings(check(HEADER + '{{ .Join "," }}', registry)) == []
        assert warnings(check(HEADER + "{{ .Join }}", registry)) == [
            "wrong number of arguments for Join: want at least 1, got 0"
        ]

    def test_value_and_error_result(self, registry):
        records = check(HEADER + '{{ .Lookup "k" }}', registry)
        assert warnings(records) == []
        assert hints(records) == ["Type: func(string) (string, error)", "Returns: string"]

    def test_method_without_results(self, registry):
        records = check(HEADER + "{{ .Reset }}", registry)
        assert warnings(records) == ["method Reset has no results"]
        assert records[-1].code is GotmplsErrorCodes.RESULT_SHAPE

    def test_arguments_to_field(self, registry):
        records = check(HEADER + '{{ .Name "x" }}', registry)
        assert hints(records) == ["Type: string"]
        assert errors(records) == ["can't give argument to non-function Name"]


class TestPipelines:

    def test_piped_value_threads_through_stages(self, registry):
        records = check(HEADER + '{{ .GetName | printf "%s" | upper }}', registry)
        assert errors(records) == []
        assert warnings(records) == []
        assert hints(records) == ["Type: func() string", "Returns: string", "Returns: string"]

    def test_pipe_into_non_function(self, registry):
        records = check(HEADER + '{{ "x" | 3 }}', registry)
        assert errors(records) == ["can't give argument to non-function"]

    def test_parenthesized_base(self, registry):
        records = check(HEADER + "{{ (index .Employees 0).Role }}", registry)
        assert errors(records) == []
        assert hints(records) == [
            "Returns: models.Employee", "Type: []models.Employee", "Type: string",
        ]


class TestVariables:

    def test_declared_variable(self, registry):
        records = check(HEADER + "{{ $n := .Address }}{{ $n.City }}", registry)
        assert errors(records) == []
        assert hints(records) == ["Type: *models.Address", "Type: string"]

    def test_literal_types(self, registry):
        records = check(HEADER + "{{ $x := 1.5 }}{{ $x.Foo }}", registry)
        assert errors(records) == ["can't evaluate field Foo in type float64"]

    def test_undefined_variable(self, registry):
        records = check(HEADER + "{{ $x }}", registry)
        assert errors(records) == ['undefined variable "$x"']
        assert records[0].code is GotmplsErrorCodes.UNDEFINED_VARIABLE

    def test_assignment_needs_declaration(self, registry):
        records = check(HEADER + "{{ $y = 1 }}", registry)
        assert errors(records) == ['undefined variable "$y"']

    def test_assignment_updates_type(self, registry):
        records = check(HEADER + '{{ $v := 1 }}{{ $v = .Address }}{{ $v.City }}', registry)
        assert errors(records) == []

    def test_dollar_is_root(self, registry):
        records = check(
            HEADER + "{{ range .Employees }}{{ $.Name }}{{ .Role }}{{ end }}", registry
        )
        assert errors(records) == []
        assert hints(records) == ["Type: []models.Employee", "Type: string", "Type: string"]

    def test_range_variable_not_visible_after_end(self, registry):
        records = check(
            HEADER + "{{ range .Tags }}{{ $t := . }}{{ end }}{{ $t }}", registry
        )
        assert errors(records) == ['undefined variable "$t"']

    def test_with_variable_not_visible_after_end(self, registry):
        records = check(
            HEADER + "{{ with $a := .Address }}{{ $a.City }}{{ end }}{{ $a }}", registry
        )
        assert errors(records) == ['undefined variable "$a"']


class TestControlBlocks:

    def test_if_keeps_dot(self, registry):
        records = check(
            HEADER + "{{ if .Active }}{{ .Name }}{{ else }}{{ .Nope }}{{ end }}", registry
        )
        assert hints(records) == ["Type: bool", "Type: string"]
        assert errors(records) == ['unknown field or method "Nope" on type models.Person']

    def test_with_rebinds_dot(self, registry):
        records = check(HEADER + "{{ with .Address }}{{ .City }}{{ end }}", registry)
        assert errors(records) == []
        assert hints(records) == ["Type: *models.Address", "Type: string"]

    def test_with_else_uses_outer_dot(self, registry):
        records = check(
            HEADER + "{{ with .Address }}{{ .City }}{{ else }}{{ .Age }}{{ end }}", registry
        )
        assert errors(records) == []
        assert hints(records)[-1] == "Type: int"

    def test_range_over_slice(self, registry):
        records = check(HEADER + "{{ range .Employees }}{{ .Role }}{{ end }}", registry)
        assert errors(records) == []

    def test_range_key_and_element(self, registry):
        records = check(
            HEADER + "{{ range $i, $e := .Employees }}{{ $e.Role }}{{ $i.X }}{{ end }}",
            registry,
        )
        assert errors(records) == ["can't evaluate field X in type int"]

    def test_range_over_map(self, registry):
        records = check(
            HEADER + "{{ range $k, $v := .Meta }}{{ $v.Size }}{{ end }}", registry
        )
        assert errors(records) == ["can't evaluate field Size in type string"]

    def test_range_over_integer(self, registry):
        records = check(HEADER + "{{ range .Age }}{{ . }}{{ end }}", registry)
        assert errors(records) == []

    def test_range_over_non_iterable(self, registry):
        records = check(HEADER + "{{ range .Name }}{{ .X }}{{ end }}", registry)
        assert errors(records) == ["range can't iterate over string"]
        assert records[-1].code is GotmplsErrorCodes.NOT_ITERABLE

    def test_range_else_uses_outer_dot(self, registry):
        records = check(
            HEADER + "{{ range .Tags }}{{ . }}{{ else }}{{ .Email }}{{ end }}", registry
        )
        assert errors(records) == []
        assert hints(records) == ["Type: []string", "Type: string"]

    def test_break_and_continue(self, registry):
        records = check(
            HEADER + "{{ range .Tags }}{{ break }}{{ continue }}{{ end }}", registry
        )
        assert errors(records) == []


class TestTemplates:

    ADDR = '{{ define "addr" }}{{/* gotype: models.Address */}}{{ .City }}{{ end }}'

    def test_define_uses_its_own_hint(self, registry):
        records = check(
            HEADER + '{{ define "addr" }}{{/* gotype: models.Address */}}'
            "{{ .City }}{{ .Nope }}{{ end }}",
            registry,
        )
        assert hints(records) == ["Type: string"]
        assert errors(records) == ['unknown field or method "Nope" on type models.Address']

    def test_define_without_hint_is_unchecked(self, registry):
        records = check(HEADER + '{{ define "x" }}{{ .Anything.Goes }}{{ end }}', registry)
        assert records == []

    def test_define_cannot_see_outer_variables(self, registry):
        records = check(
            HEADER + '{{ $v := .Name }}{{ define "x" }}{{ $v }}{{ end }}', registry
        )
        assert errors(records) == ['undefined variable "$v"']

    def test_template_data_matches(self, registry):
        records = check(HEADER + self.ADDR + '{{ template "addr" .Address }}', registry)
        assert warnings(records) == []

    def test_template_data_mismatch(self, registry):
        records = check(HEADER + self.ADDR + '{{ template "addr" . }}', registry)
        assert warnings(records) == ['template "addr" expects models.Address, got models.Person']
        assert records[-1].code is GotmplsErrorCodes.TEMPLATE_DATA_MISMATCH

    def test_block_binds_its_data(self, registry):
        records = check(
            HEADER + '{{ block "main" .Address }}{{ .City }}{{ end }}', registry
        )
        assert errors(records) == []
        assert hints(records) == ["Type: *models.Address", "Type: string"]


class TestFunctions:

    def test_unknown_function(self, registry):
        records = check(HEADER + "{{ nosuch .Name }}", registry)
        assert errors(records) == ['function "nosuch" not defined']
        assert records[0].code is GotmplsErrorCodes.UNKNOWN_FUNCTION

    def test_len(self, registry):
        records = check(HEADER + "{{ len .Tags }}", registry)
        assert hints(records) == ["Returns: int", "Type: []string"]

    def test_index_element_type(self, registry):
        records = check(HEADER + "{{ index .Tags 0 }}", registry)
        assert hints(records)[0] == "Returns: string"

    def test_arity(self, registry):
        records = check(HEADER + "{{ not }}", registry)
        assert warnings(records) == ["wrong number of arguments for not: want 1, got 0"]
        assert hints(records) == ["Returns: bool"]

    def test_extra_functions_can_be_disabled(self, registry):
        config = AnalysisConfig(enable_extra_functions=False)
        records = check(HEADER + "{{ upper .Name }}", registry, config)
        assert errors(records) == ['function "upper" not defined']
        assert errors(check(HEADER + "{{ upper .Name }}", registry)) == []

    @pytest.mark.parametrize("action,expected", [
        ("{{ eq .Age 18 }}", []),
        ("{{ eq .Name .Email }}", []),
        ("{{ eq .Name .Age }}", ["incompatible types for comparison: string and int"]),
        ("{{ lt .Active true }}", ["invalid type for comparison: bool"]),
        ("{{ ne .Active true }}", []),
    ])
    def test_comparisons(self, registry, action, expected):
        assert warnings(check(HEADER + action, registry)) == expected


class TestTypeHints:

    def test_unbound_dot_is_silent(self, registry):
        assert check("{{ .Anything.Goes }}{{ .Name.X }}", registry) == []

    def test_missing_hint_warning(self, registry):
        config = AnalysisConfig(warn_missing_type_hint=True)
        records = check("{{ .Name }}", registry, config)
        assert warnings(records) == ["No type hint found in template"]

    def test_invalid_hint(self, registry):
        records = check("{{/* gotype: models.Nobody */}}{{ .Name }}", registry)
        assert errors(records) == ["Invalid type hint: type models.Nobody not found"]
        assert len(records) == 1
        assert records[0].code is GotmplsErrorCodes.INVALID_TYPE_HINT

    def test_misplaced_hint(self, registry):
        records = check("x{{/* gotype: models.Person */}}{{ .Name }}", registry)
        assert warnings(records) == ["gotype directive must appear before any template content"]
        assert hints(records) == []

    def test_explicit_root_type(self, registry):
        info = parse_template("{{ .City }}")
        address = registry.lookup("models.Address").ref
        records = validate(info, registry, root_type=address)
        assert hints(records) == ["Type: string"]


class TestIdempotence:

    SOURCE = HEADER + (
        "{{ range $i, $e := .Employees }}{{ $e.Name }}{{ $e.Nope }}{{ end }}"
        "{{ .Greet }}{{ $gone }}"
    )

    def test_repeated_validation_is_identical(self, registry):
        info = parse_template(self.SOURCE)
        validator = Validator(registry)
        first = validator.validate(info)
        second = validator.validate(info)
        assert first == second
        assert first == validate(info, registry)
        assert len(errors(first)) == 2
