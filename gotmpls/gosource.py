# gotmpls/gosource.py
"""
Declaration-level reader for Go source files.

Parses a file with :data:`gotmpls.grammar.GO_GRAMMAR` and returns a
:class:`GoFile` holding the package clause, imports, type specs and
function / method signatures.  Type expressions keep unresolved
:class:`TypeName` references; :mod:`gotmpls.registry` qualifies them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from parsimonious.exceptions import IncompleteParseError, ParseError
from parsimonious.nodes import NodeVisitor

from gotmpls.errors import GoSourceError, SourceSpan
from gotmpls.gotypes import (
    ArrayType,
    ChanType,
    FuncType,
    MapType,
    PointerType,
    SliceType,
    StructField,
    StructType,
)
from gotmpls.grammar import GO_GRAMMAR

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# DECLARATION RECORDS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class TypeName:
    """An unresolved type reference as written in source (``pkg.Name``)."""

    qualifier: str
    name: str
    args: Tuple[object, ...] = ()

    def __str__(self) -> str:
        base = f"{self.qualifier}.{self.name}" if self.qualifier else self.name
        if self.args:
            base += "[" + ", ".join(str(a) for a in self.args) + "]"
        return base


@dataclass(frozen=True, slots=True)
class Param:
    name: Optional[str]
    type: object
    variadic: bool = False


@dataclass(frozen=True, slots=True)
class Signature:
    params: Tuple[object, ...] = ()
    results: Tuple[object, ...] = ()
    variadic: bool = False


@dataclass(frozen=True, slots=True)
class InterfaceMethod:
    name: str
    signature: Signature


@dataclass(frozen=True, slots=True)
class GoInterface:
    """Interface body; resolved into descriptor methods by the registry."""

    methods: Tuple[InterfaceMethod, ...] = ()
    embeds: Tuple[object, ...] = ()


@dataclass(frozen=True, slots=True)
class GoImport:
    path: str
    alias: Optional[str] = None

    @property
    def name(self) -> str:
        """Identifier the file uses to refer to the package."""
        if self.alias:
            return self.alias
        return default_package_name(self.path)


@dataclass(frozen=True, slots=True)
class GoTypeSpec:
    name: str
    type: object
    alias: bool = False
    type_params: Tuple[str, ...] = ()

    @property
    def generic(self) -> bool:
        return bool(self.type_params)


@dataclass(frozen=True, slots=True)
class GoFunc:
    name: str
    signature: Signature
    receiver: Optional[str] = None
    pointer_receiver: bool = False


@dataclass
class GoFile:
    path: str
    package: str
    imports: List[GoImport] = field(default_factory=list)
    types: List[GoTypeSpec] = field(default_factory=list)
    funcs: List[GoFunc] = field(default_factory=list)

    def import_for(self, name: str) -> Optional[GoImport]:
        for imp in self.imports:
            if imp.name == name:
                return imp
        return None


def default_package_name(path: str) -> str:
    """Last import path element, skipping a major-version suffix."""
    parts = [p for p in path.split("/") if p]
    if not parts:
        return path
    last = parts[-1]
    if len(parts) > 1 and last.startswith("v") and last[1:].isdigit():
        last = parts[-2]
    if last.startswith("go-"):
        last = last[3:]
    return last.replace("-", "_").replace(".", "_")


# ═══════════════════════════════════════════════════════════════════════════
# VISITOR
# ═══════════════════════════════════════════════════════════════════════════


def _opt(value):
    if isinstance(value, list) and value:
        return value[0]
    return None


def _many(value) -> list:
    return value if isinstance(value, list) else []


def _group_params(params: List[Param]) -> Tuple[Tuple[object, ...], bool]:
    """
    Apply Go's parameter grouping: in ``(a, b int)`` the bare ``a`` is a name
    that shares the type of the next named parameter.
    """
    if not params:
        return (), False
    variadic = params[-1].variadic
    if not any(p.name for p in params):
        return tuple(p.type for p in params), variadic
    types: List[object] = []
    pending = 0
    for p in params:
        if p.name is None:
            pending += 1
            continue
        types.extend([p.type] * (pending + 1))
        pending = 0
    types.extend(p.type for p in params[len(params) - pending:])
    return tuple(types), variadic


class GoDeclarationBuilder(NodeVisitor):
    """Transforms a GO_GRAMMAR parse tree into a :class:`GoFile`."""

    grammar = GO_GRAMMAR
    unwrapped_exceptions = (GoSourceError,)

    def __init__(self, path: str) -> None:
        self.path = path

    def generic_visit(self, node, visited_children):
        if node.children:
            return visited_children
        return node

    # ── file ────────────────────────────────────────────────────────────

    def visit_go_file(self, node, visited_children):
        _, package, _, decls = visited_children
        go_file = GoFile(path=self.path, package=package)
        for decl in _many(decls):
            for item in decl if isinstance(decl, list) else [decl]:
                if isinstance(item, GoImport):
                    go_file.imports.append(item)
                elif isinstance(item, GoTypeSpec):
                    go_file.types.append(item)
                elif isinstance(item, GoFunc):
                    go_file.funcs.append(item)
        return go_file

    def visit_package_clause(self, node, visited_children):
        return visited_children[2]

    def visit_top_decl(self, node, visited_children):
        return visited_children[0]

    def visit_top_item(self, node, visited_children):
        return visited_children[0]

    def visit_var_decl(self, node, visited_children):
        return None

    def visit_semicolon(self, node, visited_children):
        return None

    # ── imports ─────────────────────────────────────────────────────────

    def visit_import_decl(self, node, visited_children):
        return visited_children[2]

    def visit_import_body(self, node, visited_children):
        body = visited_children[0]
        return body if isinstance(body, list) else [body]

    def visit_import_group(self, node, visited_children):
        return _many(visited_children[2])

    def visit_import_entry(self, node, visited_children):
        return visited_children[0]

    def visit_import_spec(self, node, visited_children):
        alias, path = visited_children
        return GoImport(path=path[1:-1], alias=_opt(alias))

    def visit_import_alias(self, node, visited_children):
        return visited_children[0]

    def visit_alias_name(self, node, visited_children):
        return node.text

    # ── types ───────────────────────────────────────────────────────────

    def visit_type_decl(self, node, visited_children):
        return visited_children[2]

    def visit_type_body(self, node, visited_children):
        body = visited_children[0]
        return body if isinstance(body, list) else [body]

    def visit_type_group(self, node, visited_children):
        return _many(visited_children[2])

    def visit_type_entry(self, node, visited_children):
        return visited_children[0]

    def visit_type_spec(self, node, visited_children):
        name, _, tparams, _, alias, type_ = visited_children
        return GoTypeSpec(
            name=name,
            type=type_,
            alias=bool(_opt(alias)),
            type_params=tuple(_opt(tparams) or ()),
        )

    def visit_alias_mark(self, node, visited_children):
        return True

    def visit_type_params(self, node, visited_children):
        _, _, first, more, *_ = visited_children
        names = list(first)
        for extra in _many(more):
            names.extend(extra)
        return names

    def visit_type_param(self, node, visited_children):
        return visited_children[0]

    def visit_type_param_more(self, node, visited_children):
        return visited_children[3]

    def visit_constraint(self, node, visited_children):
        first, more = visited_children
        return [first] + _many(more)

    def visit_constraint_more(self, node, visited_children):
        return visited_children[3]

    def visit_constraint_term(self, node, visited_children):
        return visited_children[1]

    def visit_type(self, node, visited_children):
        return visited_children[0]

    def visit_pointer_type(self, node, visited_children):
        return PointerType(visited_children[2])

    def visit_slice_type(self, node, visited_children):
        return SliceType(visited_children[4])

    def visit_array_type(self, node, visited_children):
        _, length, _, _, elem = visited_children
        return ArrayType(length, elem)

    def visit_array_len(self, node, visited_children):
        return node.text.strip()

    def visit_map_type(self, node, visited_children):
        return MapType(visited_children[4], visited_children[8])

    def visit_chan_type(self, node, visited_children):
        return visited_children[0]

    def visit_chan_recv(self, node, visited_children):
        return ChanType(visited_children[4], "recv")

    def visit_chan_send(self, node, visited_children):
        return ChanType(visited_children[4], "send")

    def visit_chan_plain(self, node, visited_children):
        return ChanType(visited_children[2])

    def visit_func_type(self, node, visited_children):
        sig = visited_children[2]
        return FuncType(sig.params, sig.results, sig.variadic)

    def visit_struct_type(self, node, visited_children):
        fields: List[StructField] = []
        for decl in _many(visited_children[4]):
            fields.extend(decl)
        return StructType(tuple(fields))

    def visit_field_decl(self, node, visited_children):
        return visited_children[0]

    def visit_field_spec(self, node, visited_children):
        return visited_children[0]

    def visit_named_field(self, node, visited_children):
        names, _, type_ = visited_children
        return [StructField(n, type_) for n in names]

    def visit_embedded_field(self, node, visited_children):
        pointer, qident, targs = visited_children
        qualifier, _, name = qident.rpartition(".")
        type_ = TypeName(qualifier, name, tuple(_opt(targs) or ()))
        if _opt(pointer):
            type_ = PointerType(type_)
        return [StructField(name, type_, embedded=True)]

    def visit_interface_type(self, node, visited_children):
        methods = []
        embeds = []
        for elem in _many(visited_children[4]):
            if isinstance(elem, InterfaceMethod):
                methods.append(elem)
            else:
                embeds.extend(elem)
        return GoInterface(tuple(methods), tuple(embeds))

    def visit_iface_elem(self, node, visited_children):
        return visited_children[0]

    def visit_iface_spec(self, node, visited_children):
        return visited_children[0]

    def visit_iface_method(self, node, visited_children):
        name, _, sig = visited_children
        return InterfaceMethod(name, sig)

    def visit_paren_type(self, node, visited_children):
        return visited_children[2]

    def visit_named_ref(self, node, visited_children):
        qident, targs = visited_children
        qualifier, _, name = qident.rpartition(".")
        return TypeName(qualifier, name, tuple(_opt(targs) or ()))

    def visit_type_args(self, node, visited_children):
        _, _, first, more, *_ = visited_children
        return [first] + _many(more)

    def visit_type_arg_more(self, node, visited_children):
        return visited_children[3]

    def visit_qualified_ident(self, node, visited_children):
        return node.text

    def visit_identifier_list(self, node, visited_children):
        first, more = visited_children
        return [first] + _many(more)

    def visit_identifier_more(self, node, visited_children):
        return visited_children[3]

    def visit_identifier(self, node, visited_children):
        return node.text

    def visit_string_lit(self, node, visited_children):
        return node.text

    # ── functions ───────────────────────────────────────────────────────

    def visit_func_decl(self, node, visited_children):
        receiver = _opt(visited_children[2])
        name = visited_children[4]
        sig = visited_children[8]
        if receiver is None:
            return GoFunc(name=name, signature=sig)
        recv_name, pointer = receiver
        return GoFunc(
            name=name, signature=sig, receiver=recv_name, pointer_receiver=pointer
        )

    def visit_receiver(self, node, visited_children):
        return visited_children[2]

    def visit_receiver_inner(self, node, visited_children):
        return visited_children[0]

    def visit_named_receiver(self, node, visited_children):
        return visited_children[2]

    def visit_receiver_type(self, node, visited_children):
        pointer, name, _ = visited_children
        return name, bool(_opt(pointer))

    def visit_pointer_mark(self, node, visited_children):
        return True

    def visit_signature(self, node, visited_children):
        params, _, result = visited_children
        param_types, variadic = _group_params(params)
        result = _opt(result)
        if result is None:
            results: Tuple[object, ...] = ()
        elif isinstance(result, list):
            results, _ = _group_params(result)
        else:
            results = (result,)
        return Signature(param_types, results, variadic)

    def visit_result(self, node, visited_children):
        return visited_children[0]

    def visit_params(self, node, visited_children):
        return _opt(visited_children[2]) or []

    def visit_param_list(self, node, visited_children):
        first, more, *_ = visited_children
        return [first] + _many(more)

    def visit_param_more(self, node, visited_children):
        return visited_children[3]

    def visit_param(self, node, visited_children):
        return visited_children[0]

    def visit_named_param(self, node, visited_children):
        name, _, ellipsis, type_ = visited_children
        variadic = bool(_opt(ellipsis))
        return Param(name, SliceType(type_) if variadic else type_, variadic)

    def visit_unnamed_param(self, node, visited_children):
        ellipsis, type_ = visited_children
        variadic = bool(_opt(ellipsis))
        return Param(None, SliceType(type_) if variadic else type_, variadic)

    def visit_ellipsis(self, node, visited_children):
        return True


# ═══════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════


def parse_go_source(text: str, path: str = "<go>") -> GoFile:
    """
    Parse one Go source file.

    Raises :class:`GoSourceError` with the failure position when the file
    does not match the declaration grammar.
    """
    try:
        tree = GO_GRAMMAR.parse(text)
    except IncompleteParseError as exc:
        span = SourceSpan(exc.line(), exc.column(), file=path)
        raise GoSourceError(f"cannot parse Go declarations in {path}", span) from exc
    except ParseError as exc:
        span = SourceSpan(exc.line(), exc.column(), file=path)
        raise GoSourceError(f"invalid Go source {path}", span) from exc
    go_file = GoDeclarationBuilder(path).visit(tree)
    logger.debug(
        "parsed %s: package %s, %d types, %d funcs",
        path, go_file.package, len(go_file.types), len(go_file.funcs),
    )
    return go_file


__all__ = [
    "TypeName",
    "Param",
    "Signature",
    "InterfaceMethod",
    "GoInterface",
    "GoImport",
    "GoTypeSpec",
    "GoFunc",
    "GoFile",
    "default_package_name",
    "parse_go_source",
]
