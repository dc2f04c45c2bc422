# gotmpls/parser.py
"""
Template Parser.

Turns template source into a :class:`~gotmpls.ast.TemplateInfo`:

1. :data:`~gotmpls.grammar.TEMPLATE_GRAMMAR` splits the source into text,
   comment and action items;
2. :class:`TemplateItemBuilder` converts each action into tree nodes with
   exact 1-based spans;
3. :class:`BlockNester` resolves ``if``/``range``/``with``/``define``/
   ``block`` ... ``end`` nesting, ``else`` chains, variable scopes and
   ``/*gotype: ... */`` directives.

Any structural problem raises :class:`~gotmpls.errors.TemplateSyntaxError`.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple, Union

from parsimonious.exceptions import IncompleteParseError, ParseError
from parsimonious.nodes import NodeVisitor

from gotmpls.ast import (
    Action,
    BlockKind,
    ControlBlock,
    DotRef,
    FieldAccess,
    Ident,
    Literal,
    LiteralKind,
    MethodCall,
    Pipeline,
    TemplateInfo,
    TypeHint,
    VariableLocation,
    VariableRef,
)
from gotmpls.errors import GotmplsErrorCodes, SourceSpan, TemplateSyntaxError
from gotmpls.grammar import TEMPLATE_GRAMMAR

logger = logging.getLogger(__name__)

GOTYPE_RE = re.compile(r"/\*\s*gotype:\s*(\S+?)\s*\*/", re.DOTALL)


# ═══════════════════════════════════════════════════════════════════════════
# POSITIONS
# ═══════════════════════════════════════════════════════════════════════════


class LineIndex:
    """Maps string offsets to 1-based line / column pairs."""

    def __init__(self, text: str, file_name: Optional[str] = None) -> None:
        self.file_name = file_name
        self._starts = [0]
        for match in re.finditer("\n", text):
            self._starts.append(match.end())

    def position(self, offset: int) -> Tuple[int, int]:
        line = bisect.bisect_right(self._starts, offset) - 1
        return line + 1, offset - self._starts[line] + 1

    def span(self, start: int, end: int) -> SourceSpan:
        line, column = self.position(start)
        end_line, end_column = self.position(end)
        return SourceSpan(line, column, end_line, end_column, self.file_name)


# ═══════════════════════════════════════════════════════════════════════════
# FLAT ITEMS
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class _Text:
    blank: bool


@dataclass(frozen=True)
class _Comment:
    text: str
    span: SourceSpan


@dataclass(frozen=True)
class _Open:
    kind: BlockKind
    span: SourceSpan
    pipeline: Optional[Pipeline] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class _Else:
    span: SourceSpan
    chain: Optional[BlockKind] = None
    pipeline: Optional[Pipeline] = None


@dataclass(frozen=True)
class _End:
    span: SourceSpan


@dataclass(frozen=True)
class _Leaf:
    action: Action


@dataclass(frozen=True)
class _IdentOperand:
    ident: Ident


_Item = Union[_Text, _Comment, _Open, _Else, _End, _Leaf]


def _opt(value):
    if isinstance(value, list) and value:
        return value[0]
    return None


def _many(value) -> list:
    return value if isinstance(value, list) else []


def _as_operand(value):
    if isinstance(value, _IdentOperand):
        return MethodCall(value.ident, (), value.ident.span)
    return value


def _unquote(text: str) -> str:
    if text[:1] in ('"', "`"):
        return text[1:-1]
    return text


# ═══════════════════════════════════════════════════════════════════════════
# ITEM BUILDER
# ═══════════════════════════════════════════════════════════════════════════


class TemplateItemBuilder(NodeVisitor):
    """Converts a TEMPLATE_GRAMMAR parse tree into flat items."""

    grammar = TEMPLATE_GRAMMAR
    unwrapped_exceptions = (TemplateSyntaxError,)

    def __init__(self, index: LineIndex) -> None:
        self.index = index

    def _span(self, node) -> SourceSpan:
        return self.index.span(node.start, node.end)

    def generic_visit(self, node, visited_children):
        if node.children:
            return visited_children
        return node

    def visit_template(self, node, visited_children):
        return [item for item in _many(visited_children) if item is not None]

    def visit_item(self, node, visited_children):
        return visited_children[0]

    def visit_text(self, node, visited_children):
        return _Text(blank=not node.text.strip())

    def visit_comment(self, node, visited_children):
        return visited_children[2]

    def visit_comment_text(self, node, visited_children):
        return _Comment(node.text, self._span(node))

    def visit_action(self, node, visited_children):
        return visited_children[2]

    def visit_action_body(self, node, visited_children):
        body = visited_children[0]
        if isinstance(body, (_Open, _Else, _End, _Leaf)):
            return body
        return _Leaf(body)

    # ── control keywords ────────────────────────────────────────────────

    def visit_kw_if(self, node, visited_children):
        return BlockKind.IF

    def visit_kw_with(self, node, visited_children):
        return BlockKind.WITH

    def visit_if_open(self, node, visited_children):
        return _Open(BlockKind.IF, self._span(node), visited_children[2])

    def visit_range_open(self, node, visited_children):
        return _Open(BlockKind.RANGE, self._span(node), visited_children[2])

    def visit_with_open(self, node, visited_children):
        return _Open(BlockKind.WITH, self._span(node), visited_children[2])

    def visit_else_action(self, node, visited_children):
        chain = _opt(visited_children[1])
        if chain is None:
            return _Else(self._span(node))
        kind, pipeline = chain
        return _Else(self._span(node), kind, pipeline)

    def visit_else_chain(self, node, visited_children):
        _, kind, _, pipeline = visited_children
        return kind, pipeline

    def visit_else_kind(self, node, visited_children):
        return visited_children[0]

    def visit_end_action(self, node, visited_children):
        return _End(self._span(node))

    def visit_define_open(self, node, visited_children):
        name = visited_children[2]
        return _Open(BlockKind.DEFINE, self._span(node), name=_unquote(name.text))

    def visit_block_open(self, node, visited_children):
        _, _, name, _, pipeline = visited_children
        return _Open(
            BlockKind.BLOCK, self._span(node), pipeline, name=_unquote(name.text)
        )

    def visit_template_call(self, node, visited_children):
        _, _, name, data = visited_children
        return _Leaf(
            ControlBlock(
                BlockKind.TEMPLATE,
                self._span(node),
                pipeline=_opt(data),
                name=_unquote(name.text),
            )
        )

    def visit_template_data(self, node, visited_children):
        return visited_children[1]

    def visit_break_action(self, node, visited_children):
        return _Leaf(ControlBlock(BlockKind.BREAK, self._span(node)))

    def visit_continue_action(self, node, visited_children):
        return _Leaf(ControlBlock(BlockKind.CONTINUE, self._span(node)))

    # ── pipelines ───────────────────────────────────────────────────────

    def visit_pipeline_decl(self, node, visited_children):
        declaration, pipeline = visited_children
        declaration = _opt(declaration)
        if declaration is None:
            return pipeline
        variables, is_assign = declaration
        return replace(
            pipeline,
            span=self._span(node),
            declarations=tuple(variables),
            is_assign=is_assign,
        )

    def visit_declaration(self, node, visited_children):
        first, extra, _, op, _ = visited_children
        variables = [first]
        second = _opt(extra)
        if second is not None:
            variables.append(second)
        return variables, op == "="

    def visit_extra_var(self, node, visited_children):
        return visited_children[3]

    def visit_decl_op(self, node, visited_children):
        return node.text

    def visit_pipeline(self, node, visited_children):
        first, stages = visited_children
        commands = [first] + _many(stages)
        return Pipeline(tuple(commands), self._span(node))

    def visit_pipe_stage(self, node, visited_children):
        return visited_children[3]

    def visit_command(self, node, visited_children):
        first, rest = visited_children
        operands = [first] + _many(rest)
        span = self._span(node)
        head = operands[0]
        if len(operands) == 1:
            return _as_operand(head)
        args = tuple(_as_operand(o) for o in operands[1:])
        if isinstance(head, _IdentOperand):
            return MethodCall(head.ident, args, span)
        if isinstance(head, FieldAccess):
            return MethodCall(head.path[-1], args, span, target=head)
        return MethodCall(None, args, span, target=head)

    def visit_operand_rest(self, node, visited_children):
        return visited_children[1]

    def visit_operand(self, node, visited_children):
        return visited_children[0]

    # ── operands ────────────────────────────────────────────────────────

    def visit_paren_term(self, node, visited_children):
        _, _, pipeline, _, _, chain = visited_children
        chain = _opt(chain)
        if chain is None:
            return pipeline
        return FieldAccess(tuple(chain), self._span(node), base=pipeline)

    def visit_var_term(self, node, visited_children):
        variable, chain = visited_children
        chain = _opt(chain)
        if chain is None:
            return variable
        return FieldAccess(tuple(chain), self._span(node), base=variable)

    def visit_field(self, node, visited_children):
        return FieldAccess(tuple(visited_children), self._span(node))

    def visit_field_chain(self, node, visited_children):
        return list(visited_children)

    def visit_field_segment(self, node, visited_children):
        return Ident(node.text[1:], self._span(node))

    def visit_dot(self, node, visited_children):
        return DotRef(self._span(node))

    def visit_variable(self, node, visited_children):
        return VariableRef(node.text, self._span(node))

    def visit_identifier(self, node, visited_children):
        return _IdentOperand(Ident(node.text, self._span(node)))

    def _literal(self, kind: LiteralKind, node) -> Literal:
        return Literal(kind, node.text, self._span(node))

    def visit_number(self, node, visited_children):
        return self._literal(LiteralKind.NUMBER, node)

    def visit_string_lit(self, node, visited_children):
        return self._literal(LiteralKind.STRING, node)

    def visit_raw_string(self, node, visited_children):
        return self._literal(LiteralKind.RAW_STRING, node)

    def visit_char_lit(self, node, visited_children):
        return self._literal(LiteralKind.CHAR, node)

    def visit_bool_lit(self, node, visited_children):
        return self._literal(LiteralKind.BOOL, node)

    def visit_nil_lit(self, node, visited_children):
        return self._literal(LiteralKind.NIL, node)


# ═══════════════════════════════════════════════════════════════════════════
# BLOCK NESTING
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class _Frame:
    kind: Optional[BlockKind]
    span: SourceSpan
    scope_id: int
    pipeline: Optional[Pipeline] = None
    name: Optional[str] = None
    body: List[Action] = field(default_factory=list)
    else_body: List[Action] = field(default_factory=list)
    in_else: bool = False
    else_scope_id: int = 0
    type_hint: Optional[TypeHint] = None
    has_content: bool = False
    implicit: bool = False

    @property
    def current_scope(self) -> int:
        return self.else_scope_id if self.in_else else self.scope_id

    def append(self, action: Action) -> None:
        (self.else_body if self.in_else else self.body).append(action)

    def close(self) -> ControlBlock:
        return ControlBlock(
            kind=self.kind,
            span=self.span,
            pipeline=self.pipeline,
            body=tuple(self.body),
            else_body=tuple(self.else_body),
            name=self.name,
            type_hint=self.type_hint,
            scope_id=self.scope_id,
            else_scope_id=self.else_scope_id,
        )


_ELSE_OWNERS = (BlockKind.IF, BlockKind.RANGE, BlockKind.WITH)
_HINTED = (BlockKind.DEFINE, BlockKind.BLOCK)


class BlockNester:
    """Builds the nested action tree from flat items."""

    def __init__(self, file_name: str) -> None:
        self.file_name = file_name
        self.stack: List[_Frame] = [_Frame(None, SourceSpan.unknown(file_name), 0)]
        self.next_scope = 1
        self.root_hint: Optional[TypeHint] = None
        self.misplaced: List[TypeHint] = []
        self.variables: List[VariableLocation] = []
        self.templates: List[str] = []

    @property
    def top(self) -> _Frame:
        return self.stack[-1]

    def _new_scope(self) -> int:
        scope = self.next_scope
        self.next_scope += 1
        return scope

    def _record_variables(self, pipeline: Optional[Pipeline], scope_id: int) -> None:
        if pipeline is None or pipeline.is_assign:
            return
        for var in pipeline.declarations:
            self.variables.append(VariableLocation(var.name, var.span, scope_id))

    def _error(self, message: str, span: SourceSpan, code) -> TemplateSyntaxError:
        return TemplateSyntaxError(message, span, code)

    def feed(self, item: _Item) -> None:
        if isinstance(item, _Text):
            if not item.blank:
                self.top.has_content = True
        elif isinstance(item, _Comment):
            self._comment(item)
        elif isinstance(item, _Open):
            self._open(item)
        elif isinstance(item, _Else):
            self._else(item)
        elif isinstance(item, _End):
            self._end(item)
        elif isinstance(item, _Leaf):
            self._leaf(item)

    def _comment(self, item: _Comment) -> None:
        match = GOTYPE_RE.fullmatch(item.text)
        if match is None:
            return
        hint = TypeHint(match.group(1), item.span)
        frame = self.top
        if frame.kind is None and not frame.has_content:
            if self.root_hint is not None:
                raise self._error(
                    "multiple gotype directives",
                    item.span,
                    GotmplsErrorCodes.DUPLICATE_TYPE_HINT,
                )
            self.root_hint = hint
        elif frame.kind in _HINTED and not frame.has_content and frame.type_hint is None:
            frame.type_hint = hint
        else:
            self.misplaced.append(hint)

    def _open(self, item: _Open) -> None:
        if item.kind is BlockKind.DEFINE and len(self.stack) > 1:
            raise self._error(
                "unexpected define: define is only allowed at top level",
                item.span,
                GotmplsErrorCodes.MISPLACED_CONTROL,
            )
        self.top.has_content = True
        frame = _Frame(
            item.kind, item.span, self._new_scope(), item.pipeline, item.name
        )
        self._record_variables(item.pipeline, frame.scope_id)
        if item.name is not None:
            self.templates.append(item.name)
        self.stack.append(frame)

    def _else(self, item: _Else) -> None:
        frame = self.top
        if frame.kind not in _ELSE_OWNERS:
            raise self._error(
                "unexpected else", item.span, GotmplsErrorCodes.UNEXPECTED_ELSE
            )
        if frame.in_else:
            raise self._error(
                "unexpected else: else already seen",
                item.span,
                GotmplsErrorCodes.UNEXPECTED_ELSE,
            )
        frame.in_else = True
        frame.else_scope_id = self._new_scope()
        if item.chain is None:
            return
        nested = _Frame(
            item.chain, item.span, self._new_scope(), item.pipeline, implicit=True
        )
        self._record_variables(item.pipeline, nested.scope_id)
        self.stack.append(nested)

    def _end(self, item: _End) -> None:
        if len(self.stack) == 1:
            raise self._error("unexpected end", item.span, GotmplsErrorCodes.UNEXPECTED_END)
        while True:
            frame = self.stack.pop()
            self.top.append(frame.close())
            if not frame.implicit:
                break

    def _leaf(self, item: _Leaf) -> None:
        action = item.action
        if isinstance(action, ControlBlock) and action.kind in (
            BlockKind.BREAK,
            BlockKind.CONTINUE,
        ):
            if not self._inside_range():
                raise self._error(
                    f"{{{{{action.kind.value}}}}} outside {{{{range}}}}",
                    action.span,
                    GotmplsErrorCodes.MISPLACED_CONTROL,
                )
        if isinstance(action, Pipeline):
            self._record_variables(action, self.top.current_scope)
        self.top.has_content = True
        self.top.append(action)

    def _inside_range(self) -> bool:
        for frame in reversed(self.stack):
            if frame.kind is BlockKind.RANGE and not frame.in_else:
                return True
            if frame.kind in _HINTED:
                return False
        return False

    def finish(self) -> TemplateInfo:
        if len(self.stack) > 1:
            frame = self.top
            label = frame.kind.value if frame.kind else "block"
            raise self._error(
                f"unexpected EOF: unclosed {label}",
                frame.span,
                GotmplsErrorCodes.UNCLOSED_BLOCK,
            )
        return TemplateInfo(
            file_name=self.file_name,
            root_hint=self.root_hint,
            actions=tuple(self.stack[0].body),
            variables=tuple(self.variables),
            templates=tuple(self.templates),
            misplaced_hints=tuple(self.misplaced),
        )


# ═══════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════


def _decode(source: Union[bytes, str], file_name: str) -> str:
    if isinstance(source, str):
        return source
    try:
        return source.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise TemplateSyntaxError(
            f"template is not valid UTF-8: {exc.reason}",
            SourceSpan.unknown(file_name),
            GotmplsErrorCodes.INVALID_ENCODING,
        ) from exc


def _syntax_error(text: str, pos: int, index: LineIndex) -> TemplateSyntaxError:
    close = text.find("}}", pos)
    if close == -1:
        return TemplateSyntaxError(
            "unclosed action", index.span(pos, pos + 2), GotmplsErrorCodes.UNCLOSED_ACTION
        )
    snippet = text[pos:close + 2]
    if "{{" in snippet[2:]:
        return TemplateSyntaxError(
            "unclosed action", index.span(pos, pos + 2), GotmplsErrorCodes.UNCLOSED_ACTION
        )
    return TemplateSyntaxError(
        f"malformed action: {snippet}",
        index.span(pos, close + 2),
        GotmplsErrorCodes.MALFORMED_ACTION,
    )


def parse_template(source: Union[bytes, str], file_name: str = "<template>") -> TemplateInfo:
    """
    Parse template source into a :class:`TemplateInfo`.

    Raises :class:`TemplateSyntaxError` carrying the best-known span.
    """
    text = _decode(source, file_name)
    index = LineIndex(text, file_name)
    try:
        tree = TEMPLATE_GRAMMAR.parse(text)
    except IncompleteParseError as exc:
        raise _syntax_error(text, exc.pos, index) from exc
    except ParseError as exc:
        raise _syntax_error(text, exc.pos, index) from exc

    nester = BlockNester(file_name)
    for item in TemplateItemBuilder(index).visit(tree):
        nester.feed(item)
    info = nester.finish()
    logger.debug(
        "parsed %s: %d actions, %d variables", file_name, len(info.actions), len(info.variables)
    )
    return info


__all__ = [
    "GOTYPE_RE",
    "LineIndex",
    "TemplateItemBuilder",
    "BlockNester",
    "parse_template",
]
