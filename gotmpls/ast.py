# gotmpls/ast.py
"""
Template action tree.

A closed set of immutable node types produced by :mod:`gotmpls.parser`:

    Action   = FieldAccess | MethodCall | Pipeline | ControlBlock | Literal
             | DotRef | VariableRef
    Operand  = FieldAccess | MethodCall | Pipeline | Literal | DotRef
             | VariableRef

Consumers dispatch with :func:`dispatch_action`, which fails loudly on an
unknown node type.  :func:`to_sexp` renders a tree as S-expressions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar, Union

import sexpdata
from sexpdata import Symbol

from gotmpls.errors import SourceSpan

T = TypeVar("T")


class LiteralKind(Enum):
    STRING = "string"
    RAW_STRING = "raw_string"
    CHAR = "char"
    NUMBER = "number"
    BOOL = "bool"
    NIL = "nil"


class BlockKind(Enum):
    IF = "if"
    RANGE = "range"
    WITH = "with"
    TEMPLATE = "template"
    DEFINE = "define"
    BLOCK = "block"
    BREAK = "break"
    CONTINUE = "continue"


# ═══════════════════════════════════════════════════════════════════════════
# NODES
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Ident:
    """A name with its exact span; field segments include the leading dot."""

    name: str
    span: SourceSpan


@dataclass(frozen=True, slots=True)
class TypeHint:
    type_path: str
    span: SourceSpan


@dataclass(frozen=True, slots=True)
class DotRef:
    span: SourceSpan


@dataclass(frozen=True, slots=True)
class VariableRef:
    name: str
    span: SourceSpan


@dataclass(frozen=True, slots=True)
class Literal:
    kind: LiteralKind
    text: str
    span: SourceSpan


@dataclass(frozen=True, slots=True)
class FieldAccess:
    """``.A.B``, ``$x.A`` or ``(pipeline).A``; *base* is None for dot."""

    path: Tuple[Ident, ...]
    span: SourceSpan
    base: Optional[Union[VariableRef, "Pipeline"]] = None


@dataclass(frozen=True, slots=True)
class MethodCall:
    """
    A call command.

    ``name`` with no ``target`` is a template function (``printf``); with a
    ``target`` it is the last segment of that field path (``.Fmt "x"``).
    ``name`` is None when arguments are given to a non-callable operand.
    """

    name: Optional[Ident]
    args: Tuple["Operand", ...]
    span: SourceSpan
    target: Optional[Union[FieldAccess, DotRef, VariableRef, Literal, "Pipeline"]] = None


@dataclass(frozen=True, slots=True)
class Pipeline:
    commands: Tuple["Operand", ...]
    span: SourceSpan
    declarations: Tuple[VariableRef, ...] = ()
    is_assign: bool = False


@dataclass(frozen=True, slots=True)
class ControlBlock:
    kind: BlockKind
    span: SourceSpan
    pipeline: Optional[Pipeline] = None
    body: Tuple["Action", ...] = ()
    else_body: Tuple["Action", ...] = ()
    name: Optional[str] = None
    type_hint: Optional[TypeHint] = None
    scope_id: int = 0
    else_scope_id: int = 0


Operand = Union[FieldAccess, MethodCall, Pipeline, Literal, DotRef, VariableRef]
Action = Union[FieldAccess, MethodCall, Pipeline, ControlBlock, Literal, DotRef, VariableRef]


@dataclass(frozen=True, slots=True)
class VariableLocation:
    name: str
    span: SourceSpan
    scope_id: int


@dataclass(frozen=True)
class TemplateInfo:
    """Parsed template: immutable once returned by the parser."""

    file_name: str
    root_hint: Optional[TypeHint] = None
    actions: Tuple[Action, ...] = ()
    variables: Tuple[VariableLocation, ...] = ()
    templates: Tuple[str, ...] = ()
    misplaced_hints: Tuple[TypeHint, ...] = ()

    def defines(self) -> Dict[str, ControlBlock]:
        """``define`` and ``block`` bodies by name."""
        found: Dict[str, ControlBlock] = {}
        for action in self.actions:
            if isinstance(action, ControlBlock) and action.kind in (
                BlockKind.DEFINE,
                BlockKind.BLOCK,
            ):
                found[action.name] = action
            if isinstance(action, ControlBlock):
                for nested in _nested_blocks(action):
                    found.setdefault(nested.name, nested)
        return found


def _nested_blocks(block: ControlBlock) -> List[ControlBlock]:
    out = []
    for child in block.body + block.else_body:
        if isinstance(child, ControlBlock):
            if child.kind is BlockKind.BLOCK:
                out.append(child)
            out.extend(_nested_blocks(child))
    return out


# ═══════════════════════════════════════════════════════════════════════════
# DISPATCH
# ═══════════════════════════════════════════════════════════════════════════


class ActionVisitor(Generic[T]):
    """Interface for consumers of the action tree."""

    def visit_field_access(self, node: FieldAccess) -> T:
        raise NotImplementedError

    def visit_method_call(self, node: MethodCall) -> T:
        raise NotImplementedError

    def visit_pipeline(self, node: Pipeline) -> T:
        raise NotImplementedError

    def visit_control_block(self, node: ControlBlock) -> T:
        raise NotImplementedError

    def visit_literal(self, node: Literal) -> T:
        raise NotImplementedError

    def visit_dot(self, node: DotRef) -> T:
        raise NotImplementedError

    def visit_variable(self, node: VariableRef) -> T:
        raise NotImplementedError


_ACTION_DISPATCH: Dict[type, str] = {
    FieldAccess: "visit_field_access",
    MethodCall: "visit_method_call",
    Pipeline: "visit_pipeline",
    ControlBlock: "visit_control_block",
    Literal: "visit_literal",
    DotRef: "visit_dot",
    VariableRef: "visit_variable",
}


def dispatch_action(node: Action, visitor: ActionVisitor[T]) -> T:
    """Dispatch an action node to the appropriate visitor method."""
    method_name = _ACTION_DISPATCH.get(type(node))
    if method_name is None:
        raise TypeError(f"Unknown action node type: {type(node).__name__}")
    return getattr(visitor, method_name)(node)


# ═══════════════════════════════════════════════════════════════════════════
# S-EXPRESSION RENDERING
# ═══════════════════════════════════════════════════════════════════════════


def _pos(span: SourceSpan) -> List[Any]:
    return [Symbol("@"), span.line, span.column, span.end_line, span.end_column]


class SexpBuilder(ActionVisitor[List[Any]]):
    """Renders nodes as nested lists of :class:`sexpdata.Symbol`."""

    def __init__(self, with_positions: bool = False) -> None:
        self.with_positions = with_positions

    def _node(self, tag: str, span: SourceSpan, *items: Any) -> List[Any]:
        out: List[Any] = [Symbol(tag), *items]
        if self.with_positions:
            out.append(_pos(span))
        return out

    def visit_field_access(self, node: FieldAccess) -> List[Any]:
        items: List[Any] = [Symbol(seg.name) for seg in node.path]
        if node.base is not None:
            items.insert(0, dispatch_action(node.base, self))
        return self._node("field", node.span, *items)

    def visit_method_call(self, node: MethodCall) -> List[Any]:
        head: Any = Symbol(node.name.name) if node.name else Symbol("nil")
        items: List[Any] = [head]
        if node.target is not None:
            items.append([Symbol("on"), dispatch_action(node.target, self)])
        items.extend(dispatch_action(a, self) for a in node.args)
        return self._node("call", node.span, *items)

    def visit_pipeline(self, node: Pipeline) -> List[Any]:
        items: List[Any] = []
        if node.declarations:
            op = "assign" if node.is_assign else "declare"
            items.append([Symbol(op), *(Symbol(v.name) for v in node.declarations)])
        items.extend(dispatch_action(c, self) for c in node.commands)
        return self._node("pipe", node.span, *items)

    def visit_control_block(self, node: ControlBlock) -> List[Any]:
        items: List[Any] = []
        if node.name is not None:
            items.append(node.name)
        if node.type_hint is not None:
            items.append([Symbol("gotype"), node.type_hint.type_path])
        if node.pipeline is not None:
            items.append(dispatch_action(node.pipeline, self))
        if node.body:
            items.append([Symbol("body"), *(dispatch_action(a, self) for a in node.body)])
        if node.else_body:
            items.append(
                [Symbol("else"), *(dispatch_action(a, self) for a in node.else_body)]
            )
        return self._node(node.kind.value, node.span, *items)

    def visit_literal(self, node: Literal) -> List[Any]:
        return self._node(node.kind.value, node.span, node.text)

    def visit_dot(self, node: DotRef) -> List[Any]:
        return self._node("dot", node.span)

    def visit_variable(self, node: VariableRef) -> List[Any]:
        return self._node("var", node.span, Symbol(node.name))


def to_sexp(info: TemplateInfo, with_positions: bool = False) -> str:
    """Render a parsed template as a single S-expression string."""
    builder = SexpBuilder(with_positions)
    tree: List[Any] = [Symbol("template"), info.file_name]
    if info.root_hint is not None:
        tree.append([Symbol("gotype"), info.root_hint.type_path])
    tree.extend(dispatch_action(a, builder) for a in info.actions)
    return sexpdata.dumps(tree)


# ═══════════════════════════════════════════════════════════════════════════
# DICT RENDERING
# ═══════════════════════════════════════════════════════════════════════════


def to_dict(node: Any) -> Any:
    """Plain-data rendering of any node, for JSON output."""
    if isinstance(node, Enum):
        return node.value
    if isinstance(node, SourceSpan):
        return node.to_dict()
    if isinstance(node, (list, tuple)):
        return [to_dict(n) for n in node]
    if hasattr(node, "__dataclass_fields__"):
        out: Dict[str, Any] = {"node": type(node).__name__}
        for name in node.__dataclass_fields__:
            value = getattr(node, name)
            if value is None or value == ():
                continue
            out[name] = to_dict(value)
        return out
    return node


__all__ = [
    "LiteralKind",
    "BlockKind",
    "Ident",
    "TypeHint",
    "DotRef",
    "VariableRef",
    "Literal",
    "FieldAccess",
    "MethodCall",
    "Pipeline",
    "ControlBlock",
    "Operand",
    "Action",
    "VariableLocation",
    "TemplateInfo",
    "ActionVisitor",
    "dispatch_action",
    "SexpBuilder",
    "to_sexp",
    "to_dict",
]
