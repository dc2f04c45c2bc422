# gotmpls/gotypes.py
"""
Go type model used by the validator.

A closed set of frozen type nodes (basic, named, pointer, slice, array, map,
chan, func, interface, struct) plus the registry of named types that the
package loader builds.  Every node renders in Go syntax through ``str()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping, Optional, Tuple, Union


# ═══════════════════════════════════════════════════════════════════════════
# TYPE NODES
# ═══════════════════════════════════════════════════════════════════════════

NUMERIC_BASICS = frozenset(
    {
        "int", "int8", "int16", "int32", "int64",
        "uint", "uint8", "uint16", "uint32", "uint64", "uintptr",
        "float32", "float64", "complex64", "complex128",
        "byte", "rune",
    }
)
INTEGER_BASICS = frozenset(
    n for n in NUMERIC_BASICS if not n.startswith(("float", "complex"))
)
BASIC_NAMES = NUMERIC_BASICS | {"string", "bool", "error", "any"}


@dataclass(frozen=True, slots=True)
class BasicType:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class NamedType:
    """A reference to a declared type: ``package`` is its import path."""

    package: str
    name: str
    package_name: str = ""

    @property
    def qualified(self) -> str:
        return f"{self.package}.{self.name}" if self.package else self.name

    def __str__(self) -> str:
        return f"{self.package_name}.{self.name}" if self.package_name else self.name


@dataclass(frozen=True, slots=True)
class PointerType:
    elem: "GoType"

    def __str__(self) -> str:
        return f"*{self.elem}"


@dataclass(frozen=True, slots=True)
class SliceType:
    elem: "GoType"

    def __str__(self) -> str:
        return f"[]{self.elem}"


@dataclass(frozen=True, slots=True)
class ArrayType:
    length: str
    elem: "GoType"

    def __str__(self) -> str:
        return f"[{self.length}]{self.elem}"


@dataclass(frozen=True, slots=True)
class MapType:
    key: "GoType"
    value: "GoType"

    def __str__(self) -> str:
        return f"map[{self.key}]{self.value}"


@dataclass(frozen=True, slots=True)
class ChanType:
    elem: "GoType"
    direction: str = ""

    def __str__(self) -> str:
        if self.direction == "send":
            return f"chan<- {self.elem}"
        if self.direction == "recv":
            return f"<-chan {self.elem}"
        return f"chan {self.elem}"


@dataclass(frozen=True, slots=True)
class FuncType:
    params: Tuple["GoType", ...] = ()
    results: Tuple["GoType", ...] = ()
    variadic: bool = False

    def __str__(self) -> str:
        params = [str(p) for p in self.params]
        if self.variadic and params:
            params[-1] = "..." + str(_variadic_elem(self.params[-1]))
        head = f"func({', '.join(params)})"
        if not self.results:
            return head
        if len(self.results) == 1:
            return f"{head} {self.results[0]}"
        return f"{head} ({', '.join(str(r) for r in self.results)})"


@dataclass(frozen=True, slots=True)
class InterfaceType:
    methods: Tuple[str, ...] = ()

    def __str__(self) -> str:
        if not self.methods:
            return "any"
        return "interface{ " + "; ".join(self.methods) + " }"


@dataclass(frozen=True, slots=True)
class StructField:
    name: str
    type: "GoType"
    embedded: bool = False


@dataclass(frozen=True, slots=True)
class StructType:
    fields: Tuple[StructField, ...] = ()

    def __str__(self) -> str:
        if not self.fields:
            return "struct{}"
        parts = [
            str(f.type) if f.embedded else f"{f.name} {f.type}" for f in self.fields
        ]
        return "struct{ " + "; ".join(parts) + " }"


@dataclass(frozen=True, slots=True)
class UnknownType:
    def __str__(self) -> str:
        return "unknown"


GoType = Union[
    BasicType,
    NamedType,
    PointerType,
    SliceType,
    ArrayType,
    MapType,
    ChanType,
    FuncType,
    InterfaceType,
    StructType,
    UnknownType,
]

UNKNOWN = UnknownType()
STRING = BasicType("string")
INT = BasicType("int")
BOOL = BasicType("bool")
ERROR = BasicType("error")
ANY = InterfaceType()


def _variadic_elem(t: GoType) -> GoType:
    return t.elem if isinstance(t, SliceType) else t


def deref(t: GoType) -> GoType:
    """Strip any number of pointer indirections."""
    while isinstance(t, PointerType):
        t = t.elem
    return t


def is_error(t: GoType) -> bool:
    return isinstance(t, BasicType) and t.name == "error"


# ═══════════════════════════════════════════════════════════════════════════
# DESCRIPTORS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    name: str
    type: GoType
    promoted_from: Optional[str] = None


@dataclass(frozen=True, slots=True)
class MethodDescriptor:
    name: str
    params: Tuple[GoType, ...] = ()
    results: Tuple[GoType, ...] = ()
    variadic: bool = False
    pointer_receiver: bool = False
    promoted_from: Optional[str] = None

    @property
    def signature(self) -> FuncType:
        return FuncType(self.params, self.results, self.variadic)

    @property
    def value_results(self) -> Tuple[GoType, ...]:
        """Results with a trailing ``error`` removed (unless it is the only one)."""
        if len(self.results) > 1 and is_error(self.results[-1]):
            return self.results[:-1]
        return self.results

    @property
    def valid_result_shape(self) -> bool:
        if len(self.results) == 1:
            return True
        return len(self.results) == 2 and is_error(self.results[1])

    @property
    def value_type(self) -> GoType:
        results = self.value_results
        return results[0] if results else UNKNOWN

    def __str__(self) -> str:
        return str(self.signature)


@dataclass(frozen=True, slots=True)
class TypeDescriptor:
    name: str
    package: str
    package_name: str
    underlying: GoType
    fields: Mapping[str, FieldDescriptor] = field(
        default_factory=lambda: MappingProxyType({})
    )
    methods: Mapping[str, MethodDescriptor] = field(
        default_factory=lambda: MappingProxyType({})
    )
    # embedded external types whose promoted members are not known
    opaque_embeds: Tuple[str, ...] = ()

    @property
    def qualified(self) -> str:
        return f"{self.package}.{self.name}" if self.package else self.name

    @property
    def ref(self) -> NamedType:
        return NamedType(self.package, self.name, self.package_name)

    def member(self, name: str) -> Optional[Union[FieldDescriptor, MethodDescriptor]]:
        """Look up a field, then a method."""
        if name in self.fields:
            return self.fields[name]
        return self.methods.get(name)


# ═══════════════════════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════════════════════


class TypeRegistry:
    """
    Read-only mapping of qualified type names to descriptors.

    Built once per analysis by :func:`gotmpls.registry.analyze_package` and
    shared by every validation of that analysis.
    """

    __slots__ = ("_types", "_unresolved", "package", "package_name")

    def __init__(
        self,
        types: Mapping[str, TypeDescriptor],
        package: str = "",
        package_name: str = "",
        unresolved: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._types: Mapping[str, TypeDescriptor] = MappingProxyType(dict(types))
        self._unresolved: Mapping[str, str] = MappingProxyType(dict(unresolved or {}))
        self.package = package
        self.package_name = package_name

    @property
    def types(self) -> Mapping[str, TypeDescriptor]:
        return self._types

    @property
    def unresolved(self) -> Mapping[str, str]:
        return self._unresolved

    def __len__(self) -> int:
        return len(self._types)

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name) is not None

    def lookup(self, path: str) -> Optional[TypeDescriptor]:
        """
        Resolve a type path written in a gotype directive.

        Tries the exact qualified name, then ``<package name>.<Type>``, then
        any import path ending in the given package part.
        """
        path = path.strip().lstrip("*")
        if path in self._types:
            return self._types[path]
        pkg, _, name = path.rpartition(".")
        if not pkg:
            for desc in self._types.values():
                if desc.name == name and desc.package == self.package:
                    return desc
            return None
        for desc in self._types.values():
            if desc.name != name:
                continue
            if desc.package_name == pkg or desc.package.endswith("/" + pkg):
                return desc
        return None

    def descriptor_for(self, t: GoType) -> Optional[TypeDescriptor]:
        t = deref(t)
        if isinstance(t, NamedType):
            return self._types.get(t.qualified)
        return None

    def underlying(self, t: GoType) -> GoType:
        """Follow named types to their underlying structure."""
        seen = set()
        t = deref(t)
        while isinstance(t, NamedType):
            if t.qualified in seen:
                return UNKNOWN
            seen.add(t.qualified)
            desc = self._types.get(t.qualified)
            if desc is None:
                return t
            t = desc.underlying
        return t


__all__ = [
    "GoType",
    "BasicType",
    "NamedType",
    "PointerType",
    "SliceType",
    "ArrayType",
    "MapType",
    "ChanType",
    "FuncType",
    "InterfaceType",
    "StructField",
    "StructType",
    "UnknownType",
    "UNKNOWN",
    "STRING",
    "INT",
    "BOOL",
    "ERROR",
    "ANY",
    "NUMERIC_BASICS",
    "INTEGER_BASICS",
    "BASIC_NAMES",
    "deref",
    "is_error",
    "FieldDescriptor",
    "MethodDescriptor",
    "TypeDescriptor",
    "TypeRegistry",
]
