# gotmpls/builtins.py
"""
Template function table and the standard-library types exposed to templates.

Template identifiers (``len``, ``printf``, ``upper`` ...) resolve against this
table, never against the analyzed package.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from gotmpls.gotypes import (
    ANY,
    BOOL,
    INT,
    STRING,
    BasicType,
    InterfaceType,
    MethodDescriptor,
    NamedType,
    SliceType,
    StructType,
    TypeDescriptor,
)


class ResultRule(Enum):
    """How a function's result type is derived from its arguments."""

    FIXED = "fixed"          # ``result`` as declared
    FIRST_ARG = "first_arg"  # same type as the first argument (and, or, slice)
    INDEX = "index"          # element type after indexing the first argument
    CALL = "call"            # result of the function value passed first
    LAST_ARG = "last_arg"    # same type as the last argument (default)


@dataclass(frozen=True, slots=True)
class FunctionSpec:
    name: str
    min_args: int
    max_args: Optional[int]
    result: object = STRING
    rule: ResultRule = ResultRule.FIXED
    comparison: bool = False
    extra: bool = False

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args

    def arity(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.max_args == self.min_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"


def _fn(name, lo, hi, result=STRING, rule=ResultRule.FIXED, **kw) -> FunctionSpec:
    return FunctionSpec(name, lo, hi, result, rule, **kw)


_BUILTINS = (
    _fn("and", 1, None, ANY, ResultRule.FIRST_ARG),
    _fn("or", 1, None, ANY, ResultRule.FIRST_ARG),
    _fn("not", 1, 1, BOOL),
    _fn("len", 1, 1, INT),
    _fn("index", 1, None, ANY, ResultRule.INDEX),
    _fn("slice", 1, 4, ANY, ResultRule.FIRST_ARG),
    _fn("print", 0, None),
    _fn("printf", 1, None),
    _fn("println", 0, None),
    _fn("html", 0, None),
    _fn("js", 0, None),
    _fn("urlquery", 0, None),
    _fn("call", 1, None, ANY, ResultRule.CALL),
    _fn("eq", 2, None, BOOL, comparison=True),
    _fn("ne", 2, 2, BOOL, comparison=True),
    _fn("lt", 2, 2, BOOL, comparison=True),
    _fn("le", 2, 2, BOOL, comparison=True),
    _fn("gt", 2, 2, BOOL, comparison=True),
    _fn("ge", 2, 2, BOOL, comparison=True),
)

_EXTRAS = (
    _fn("upper", 1, 1, extra=True),
    _fn("lower", 1, 1, extra=True),
    _fn("title", 1, 1, extra=True),
    _fn("trim", 1, 1, extra=True),
    _fn("trimPrefix", 2, 2, extra=True),
    _fn("trimSuffix", 2, 2, extra=True),
    _fn("replace", 3, 3, extra=True),
    _fn("contains", 2, 2, BOOL, extra=True),
    _fn("hasPrefix", 2, 2, BOOL, extra=True),
    _fn("hasSuffix", 2, 2, BOOL, extra=True),
    _fn("split", 2, 2, SliceType(STRING), extra=True),
    _fn("join", 2, 2, extra=True),
    _fn("repeat", 2, 2, extra=True),
    _fn("default", 2, 2, ANY, ResultRule.LAST_ARG, extra=True),
)


def function_table(include_extras: bool = True) -> Mapping[str, FunctionSpec]:
    table: Dict[str, FunctionSpec] = {f.name: f for f in _BUILTINS}
    if include_extras:
        table.update({f.name: f for f in _EXTRAS})
    return MappingProxyType(table)


# ═══════════════════════════════════════════════════════════════════════════
# STANDARD-LIBRARY TYPES
# ═══════════════════════════════════════════════════════════════════════════

TIME = NamedType("time", "Time", "time")
DURATION = NamedType("time", "Duration", "time")
MONTH = NamedType("time", "Month", "time")
WEEKDAY = NamedType("time", "Weekday", "time")
STRINGER = NamedType("fmt", "Stringer", "fmt")
INT64 = BasicType("int64")
FLOAT64 = BasicType("float64")


def _m(name, *results, params=(), variadic=False) -> MethodDescriptor:
    return MethodDescriptor(name, tuple(params), tuple(results), variadic)


def _desc(ref: NamedType, underlying, *methods: MethodDescriptor) -> TypeDescriptor:
    return TypeDescriptor(
        name=ref.name,
        package=ref.package,
        package_name=ref.package_name,
        underlying=underlying,
        fields=MappingProxyType({}),
        methods=MappingProxyType({m.name: m for m in methods}),
    )


def _std_types() -> Mapping[str, TypeDescriptor]:
    descs = (
        _desc(
            TIME,
            StructType(),
            _m("String", STRING),
            _m("Format", STRING, params=(STRING,)),
            _m("Year", INT),
            _m("Month", MONTH),
            _m("Day", INT),
            _m("Hour", INT),
            _m("Minute", INT),
            _m("Second", INT),
            _m("Weekday", WEEKDAY),
            _m("Unix", INT64),
            _m("IsZero", BOOL),
            _m("UTC", TIME),
            _m("Local", TIME),
            _m("Before", BOOL, params=(TIME,)),
            _m("After", BOOL, params=(TIME,)),
            _m("Add", TIME, params=(DURATION,)),
            _m("Sub", DURATION, params=(TIME,)),
        ),
        _desc(
            DURATION,
            INT64,
            _m("String", STRING),
            _m("Hours", FLOAT64),
            _m("Minutes", FLOAT64),
            _m("Seconds", FLOAT64),
            _m("Milliseconds", INT64),
        ),
        _desc(MONTH, INT, _m("String", STRING)),
        _desc(WEEKDAY, INT, _m("String", STRING)),
        _desc(STRINGER, InterfaceType(("String() string",)), _m("String", STRING)),
    )
    return MappingProxyType({d.qualified: d for d in descs})


STD_TYPES = _std_types()

# Error values expose Error() in templates.
ERROR_METHODS = MappingProxyType({"Error": _m("Error", STRING)})


__all__ = [
    "ResultRule",
    "FunctionSpec",
    "function_table",
    "STD_TYPES",
    "ERROR_METHODS",
]
