# gotmpls/validator.py
"""
Validator / Binder.

Walks a :class:`~gotmpls.ast.TemplateInfo` against a
:class:`~gotmpls.gotypes.TypeRegistry`, tracking the dot type of every scope
on an explicit :class:`~gotmpls.scope.ScopeStack`, and returns an ordered list
of :class:`~gotmpls.diagnostic.ResolutionRecord`.

Every resolution method returns ``(type, records)``; callers merge records
in depth-first, left-to-right order.  Nothing aborts validation: findings
accumulate and the walk continues with an unknown type.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

from gotmpls.ast import (
    Action,
    ActionVisitor,
    BlockKind,
    ControlBlock,
    DotRef,
    FieldAccess,
    Ident,
    Literal,
    LiteralKind,
    MethodCall,
    Operand,
    Pipeline,
    TemplateInfo,
    TypeHint,
    VariableRef,
    dispatch_action,
)
from gotmpls.builtins import ERROR_METHODS, FunctionSpec, ResultRule, function_table
from gotmpls.config import AnalysisConfig
from gotmpls.diagnostic import ResolutionRecord
from gotmpls.errors import GotmplsErrorCodes, SourceSpan
from gotmpls.gotypes import (
    BOOL,
    INT,
    INTEGER_BASICS,
    NUMERIC_BASICS,
    STRING,
    UNKNOWN,
    ArrayType,
    BasicType,
    ChanType,
    FieldDescriptor,
    FuncType,
    GoType,
    InterfaceType,
    MapType,
    MethodDescriptor,
    NamedType,
    SliceType,
    StructType,
    TypeRegistry,
    UnknownType,
    deref,
)
from gotmpls.scope import DotState, ScopeStack

logger = logging.getLogger(__name__)

Records = List[ResolutionRecord]
Resolution = Tuple[GoType, Records]
Member = Union[FieldDescriptor, MethodDescriptor]

RUNE = BasicType("rune")
BYTE = BasicType("uint8")
FLOAT64 = BasicType("float64")
COMPLEX128 = BasicType("complex128")

_ORDERED_COMPARISONS = frozenset({"lt", "le", "gt", "ge"})


class Validator(ActionVisitor[Resolution]):
    """Resolves every action of a template against a type registry."""

    def __init__(
        self, registry: TypeRegistry, config: Optional[AnalysisConfig] = None
    ) -> None:
        self.registry = registry
        self.config = config or AnalysisConfig()
        self.functions = function_table(self.config.enable_extra_functions)
        self.scopes = ScopeStack()
        self._defines: Dict[str, ControlBlock] = {}

    # ═══════════════════════════════════════════════════════════════════
    # ENTRY
    # ═══════════════════════════════════════════════════════════════════

    def validate(
        self, info: TemplateInfo, root_type: Optional[GoType] = None
    ) -> List[ResolutionRecord]:
        records: Records = []
        self._defines = info.defines()

        if root_type is not None:
            root, state = root_type, self._state_of(root_type)
        elif info.root_hint is not None:
            root, state, recs = self._bind_hint(info.root_hint)
            records.extend(recs)
        else:
            root, state = UNKNOWN, DotState.UNBOUND
            if self.config.warn_missing_type_hint:
                records.append(
                    ResolutionRecord.warning(
                        "No type hint found in template",
                        SourceSpan(1, 1, file=info.file_name),
                        GotmplsErrorCodes.MISSING_TYPE_HINT,
                    )
                )

        for hint in info.misplaced_hints:
            records.append(
                ResolutionRecord.warning(
                    "gotype directive must appear before any template content",
                    hint.span,
                    GotmplsErrorCodes.MISPLACED_TYPE_HINT,
                )
            )

        self.scopes = ScopeStack(root, state)
        records.extend(self._run(info.actions))
        logger.debug("validated %s: %d records", info.file_name, len(records))
        return records

    def _run(self, actions: Sequence[Action]) -> Records:
        records: Records = []
        for action in actions:
            _, recs = dispatch_action(action, self)
            records.extend(recs)
        return records

    def _bind_hint(self, hint: TypeHint) -> Tuple[GoType, DotState, Records]:
        desc = self.registry.lookup(hint.type_path)
        if desc is None:
            record = ResolutionRecord.error(
                f"Invalid type hint: type {hint.type_path} not found",
                hint.span,
                GotmplsErrorCodes.INVALID_TYPE_HINT,
            )
            return UNKNOWN, DotState.UNBOUND, [record]
        return desc.ref, DotState.BOUND, []

    # ═══════════════════════════════════════════════════════════════════
    # TYPE CLASSIFICATION
    # ═══════════════════════════════════════════════════════════════════

    def _state_of(self, t: GoType) -> DotState:
        t = deref(t)
        if isinstance(t, (UnknownType, InterfaceType)):
            return DotState.UNBOUND
        if isinstance(t, NamedType):
            if self.registry.descriptor_for(t) is None:
                return DotState.UNBOUND
            return DotState.BOUND
        if isinstance(t, (MapType, StructType)):
            return DotState.BOUND
        return DotState.BOUND_UNKNOWN

    def _kind(self, t: GoType) -> Optional[str]:
        u = self.registry.underlying(t)
        if isinstance(u, BasicType):
            if u.name in NUMERIC_BASICS:
                return "numeric"
            if u.name in ("string", "bool"):
                return u.name
        return None

    @staticmethod
    def _accepts(method: MethodDescriptor, count: int) -> bool:
        if method.variadic:
            return count >= len(method.params) - 1
        return count == len(method.params)

    # ═══════════════════════════════════════════════════════════════════
    # OPERANDS
    # ═══════════════════════════════════════════════════════════════════

    def visit_dot(self, node: DotRef) -> Resolution:
        frame = self.scopes.current
        if frame.state is DotState.UNBOUND:
            return UNKNOWN, []
        return frame.dot, []

    def visit_variable(self, node: VariableRef) -> Resolution:
        if not self.scopes.is_visible(node.name):
            return UNKNOWN, [self._undefined(node)]
        return self.scopes.lookup(node.name), []

    def _undefined(self, node: VariableRef) -> ResolutionRecord:
        return ResolutionRecord.error(
            f'undefined variable "{node.name}"',
            node.span,
            GotmplsErrorCodes.UNDEFINED_VARIABLE,
        )

    def visit_literal(self, node: Literal) -> Resolution:
        if node.kind in (LiteralKind.STRING, LiteralKind.RAW_STRING):
            return STRING, []
        if node.kind is LiteralKind.CHAR:
            return RUNE, []
        if node.kind is LiteralKind.BOOL:
            return BOOL, []
        if node.kind is LiteralKind.NIL:
            return UNKNOWN, []
        text = node.text.lstrip("+-").lower()
        if text.endswith("i"):
            return COMPLEX128, []
        if text.startswith("0x"):
            return (FLOAT64 if "." in text or "p" in text else INT), []
        if any(c in text for c in ".e"):
            return FLOAT64, []
        return INT, []

    def visit_field_access(self, node: FieldAccess) -> Resolution:
        base, records = self._base(node)
        t, recs = self._walk(base, node.path)
        return t, records + recs

    def _base(self, node: FieldAccess) -> Resolution:
        if node.base is None:
            return self.visit_dot(DotRef(node.span))
        return dispatch_action(node.base, self)

    # ── member lookup ───────────────────────────────────────────────────

    def _member(self, owner: GoType, seg: Ident) -> Tuple[Optional[Member], Optional[ResolutionRecord]]:
        desc = self.registry.descriptor_for(owner)
        if desc is not None:
            member = desc.member(seg.name)
            if member is not None:
                return member, None
        under = self.registry.underlying(owner)
        if isinstance(under, MapType) and self._kind(under.key) == "string":
            return FieldDescriptor(seg.name, under.value), None
        if isinstance(under, StructType):
            for f in under.fields:
                if f.name == seg.name:
                    return FieldDescriptor(f.name, f.type), None
        if isinstance(under, BasicType) and under.name == "error":
            method = ERROR_METHODS.get(seg.name)
            if method is not None:
                return method, None
        if desc is not None and desc.opaque_embeds:
            # may be promoted from an embedded type we cannot see into
            logger.debug("%s not found on %s, embeds %s", seg.name, desc.qualified,
                         ", ".join(desc.opaque_embeds))
            return None, None
        shown = deref(owner)
        if desc is not None or isinstance(under, StructType):
            return None, ResolutionRecord.error(
                f'unknown field or method "{seg.name}" on type {shown}',
                seg.span,
                GotmplsErrorCodes.UNKNOWN_MEMBER,
            )
        return None, ResolutionRecord.error(
            f"can't evaluate field {seg.name} in type {shown}",
            seg.span,
            GotmplsErrorCodes.FIELD_ON_NON_STRUCT,
        )

    def _walk(self, owner: GoType, path: Sequence[Ident]) -> Resolution:
        """Resolve a field path; the first failing segment halts the rest."""
        records: Records = []
        cur = owner
        for seg in path:
            if self._state_of(cur) is DotState.UNBOUND:
                return UNKNOWN, records
            member, error = self._member(cur, seg)
            if error is not None:
                records.append(error)
                return UNKNOWN, records
            if member is None:
                return UNKNOWN, records
            if isinstance(member, FieldDescriptor):
                records.append(ResolutionRecord.type_hint(str(member.type), seg.span))
                cur = member.type
            else:
                cur, recs = self._method_value(member, seg, 0, seg.span)
                records.extend(recs)
        return cur, records

    def _method_value(
        self, method: MethodDescriptor, seg: Ident, count: int, call_span: SourceSpan
    ) -> Resolution:
        """Hint, arity / result-shape checks and result type of a method use."""
        records: Records = [ResolutionRecord.type_hint(str(method.signature), seg.span)]
        is_call = count > 0 or bool(method.params)
        if not self._accepts(method, count):
            want = len(method.params)
            want_text = f"at least {want - 1}" if method.variadic else str(want)
            records.append(
                ResolutionRecord.warning(
                    f"wrong number of arguments for {method.name}: want {want_text}, got {count}",
                    call_span,
                    GotmplsErrorCodes.ARGUMENT_COUNT,
                )
            )
        if not method.results:
            records.append(
                ResolutionRecord.warning(
                    f"method {method.name} has no results",
                    seg.span,
                    GotmplsErrorCodes.RESULT_SHAPE,
                )
            )
            return UNKNOWN, records
        if not method.valid_result_shape:
            records.append(
                ResolutionRecord.warning(
                    f"method {method.name} must return one value or a value and an error, "
                    f"has {len(method.results)} results",
                    seg.span,
                    GotmplsErrorCodes.RESULT_SHAPE,
                )
            )
        if is_call:
            records.append(ResolutionRecord.return_hint(str(method.value_type), call_span))
        return method.value_type, records

    # ═══════════════════════════════════════════════════════════════════
    # CALLS AND PIPELINES
    # ═══════════════════════════════════════════════════════════════════

    def visit_method_call(self, node: MethodCall) -> Resolution:
        return self._call(node, None)

    def _operands(self, args: Sequence[Operand]) -> Tuple[List[GoType], Records]:
        types: List[GoType] = []
        records: Records = []
        for arg in args:
            t, recs = dispatch_action(arg, self)
            types.append(t)
            records.extend(recs)
        return types, records

    def _command(self, command: Operand, piped: Optional[GoType]) -> Resolution:
        if isinstance(command, MethodCall):
            return self._call(command, piped)
        if piped is None:
            return dispatch_action(command, self)
        if isinstance(command, FieldAccess):
            return self._call_field(command, (), piped, command.span)
        t, records = dispatch_action(command, self)
        records.append(self._not_callable(command.span))
        return UNKNOWN, records

    def _not_callable(self, span: SourceSpan, what: str = "") -> ResolutionRecord:
        suffix = f" {what}" if what else ""
        return ResolutionRecord.error(
            f"can't give argument to non-function{suffix}",
            span,
            GotmplsErrorCodes.NOT_CALLABLE,
        )

    def _call(self, node: MethodCall, piped: Optional[GoType]) -> Resolution:
        if node.target is None and node.name is not None:
            return self._call_function(node.name, node.args, piped, node.span)
        if isinstance(node.target, FieldAccess):
            return self._call_field(node.target, node.args, piped, node.span)
        records: Records = []
        if node.target is not None:
            _, records = dispatch_action(node.target, self)
        records.append(self._not_callable(node.span))
        _, arg_records = self._operands(node.args)
        return UNKNOWN, records + arg_records

    def _call_field(
        self,
        target: FieldAccess,
        args: Sequence[Operand],
        piped: Optional[GoType],
        span: SourceSpan,
    ) -> Resolution:
        base, records = self._base(target)
        owner, recs = self._walk(base, target.path[:-1])
        records.extend(recs)
        _, arg_records = self._operands(args)
        seg = target.path[-1]
        # a failed or unbound prefix leaves owner unknown
        if self._state_of(owner) is DotState.UNBOUND:
            return UNKNOWN, records + arg_records
        member, error = self._member(owner, seg)
        if error is not None:
            return UNKNOWN, records + [error] + arg_records
        if member is None:
            return UNKNOWN, records + arg_records
        if isinstance(member, FieldDescriptor):
            records.append(ResolutionRecord.type_hint(str(member.type), seg.span))
            records.append(self._not_callable(span, seg.name))
            return UNKNOWN, records + arg_records
        count = len(args) + (1 if piped is not None else 0)
        result, recs = self._method_value(member, seg, count, span)
        return result, records + recs + arg_records

    def _call_function(
        self,
        name: Ident,
        args: Sequence[Operand],
        piped: Optional[GoType],
        span: SourceSpan,
    ) -> Resolution:
        arg_types, arg_records = self._operands(args)
        spec = self.functions.get(name.name)
        if spec is None:
            record = ResolutionRecord.error(
                f'function "{name.name}" not defined',
                name.span,
                GotmplsErrorCodes.UNKNOWN_FUNCTION,
            )
            return UNKNOWN, [record] + arg_records
        operands = arg_types + ([piped] if piped is not None else [])
        records: Records = []
        if not spec.accepts(len(operands)):
            records.append(
                ResolutionRecord.warning(
                    f"wrong number of arguments for {spec.name}: "
                    f"want {spec.arity()}, got {len(operands)}",
                    span,
                    GotmplsErrorCodes.ARGUMENT_COUNT,
                )
            )
        if spec.comparison:
            records.extend(self._check_comparison(spec, operands, span))
        result = self._function_result(spec, operands)
        records.append(ResolutionRecord.return_hint(str(result), span))
        return result, records + arg_records

    def _function_result(self, spec: FunctionSpec, operands: List[GoType]) -> GoType:
        if spec.rule is ResultRule.FIXED:
            return spec.result
        if not operands:
            return UNKNOWN
        if spec.rule is ResultRule.FIRST_ARG:
            return operands[0]
        if spec.rule is ResultRule.LAST_ARG:
            return operands[-1]
        if spec.rule is ResultRule.INDEX:
            cur = operands[0]
            for _ in operands[1:]:
                cur = self._element(cur)
            return cur
        if spec.rule is ResultRule.CALL:
            fn = self.registry.underlying(operands[0])
            if isinstance(fn, FuncType) and fn.results:
                return fn.results[0]
        return UNKNOWN

    def _element(self, t: GoType) -> GoType:
        u = self.registry.underlying(t)
        if isinstance(u, (SliceType, ArrayType)):
            return u.elem
        if isinstance(u, MapType):
            return u.value
        if isinstance(u, BasicType) and u.name == "string":
            return BYTE
        return UNKNOWN

    def _check_comparison(
        self, spec: FunctionSpec, operands: List[GoType], span: SourceSpan
    ) -> Records:
        kinds = [(t, self._kind(t)) for t in operands]
        known = [(t, k) for t, k in kinds if k is not None]
        if not known:
            return []
        first_type, first_kind = known[0]
        for t, k in known[1:]:
            if k != first_kind:
                return [
                    ResolutionRecord.warning(
                        f"incompatible types for comparison: {first_type} and {t}",
                        span,
                        GotmplsErrorCodes.INCOMPATIBLE_COMPARISON,
                    )
                ]
        if spec.name in _ORDERED_COMPARISONS and first_kind == "bool":
            return [
                ResolutionRecord.warning(
                    f"invalid type for comparison: {first_type}",
                    span,
                    GotmplsErrorCodes.INCOMPATIBLE_COMPARISON,
                )
            ]
        return []

    def _pipeline_value(self, node: Pipeline) -> Resolution:
        records: Records = []
        piped: Optional[GoType] = None
        for command in node.commands:
            piped, recs = self._command(command, piped)
            records.extend(recs)
        return (piped if piped is not None else UNKNOWN), records

    def _bind(self, node: Pipeline, values: Sequence[GoType]) -> Records:
        """Declare or assign the pipeline's variables to *values*."""
        records: Records = []
        for var, value in zip(node.declarations, values):
            if node.is_assign:
                if not self.scopes.assign(var.name, value):
                    records.append(self._undefined(var))
            else:
                self.scopes.declare(var.name, value)
        return records

    def visit_pipeline(self, node: Pipeline) -> Resolution:
        t, records = self._pipeline_value(node)
        values = [t] + [UNKNOWN] * (len(node.declarations) - 1)
        records.extend(self._bind(node, values))
        return t, records

    # ═══════════════════════════════════════════════════════════════════
    # CONTROL BLOCKS
    # ═══════════════════════════════════════════════════════════════════

    def visit_control_block(self, node: ControlBlock) -> Resolution:
        method_name = _BLOCK_DISPATCH.get(node.kind)
        if method_name is None:
            raise TypeError(f"Unknown block kind: {node.kind}")
        return UNKNOWN, getattr(self, method_name)(node)

    def _branch(self, actions: Sequence[Action], dot: GoType, state: DotState, label: str) -> Records:
        self.scopes.enter_scope(dot, state, label)
        try:
            return self._run(actions)
        finally:
            self.scopes.exit_scope()

    def _block_if(self, node: ControlBlock) -> Records:
        outer = self.scopes.enter_same_dot("if")
        try:
            _, records = self.visit_pipeline(node.pipeline)
            records += self._branch(node.body, outer.dot, outer.state, "if-body")
            if node.else_body:
                records += self._branch(node.else_body, outer.dot, outer.state, "if-else")
            return records
        finally:
            self.scopes.exit_scope()

    def _block_with(self, node: ControlBlock) -> Records:
        outer = self.scopes.enter_same_dot("with")
        try:
            t, records = self.visit_pipeline(node.pipeline)
            records += self._branch(node.body, t, self._state_of(t), "with-body")
            if node.else_body:
                records += self._branch(node.else_body, outer.dot, outer.state, "with-else")
            return records
        finally:
            self.scopes.exit_scope()

    def _iteration(self, t: GoType, span: SourceSpan) -> Tuple[GoType, GoType, DotState, Records]:
        """Key type, element type and element state for ``range`` over *t*."""
        if self._state_of(t) is DotState.UNBOUND:
            return UNKNOWN, UNKNOWN, DotState.UNBOUND, []
        u = self.registry.underlying(t)
        if isinstance(u, (SliceType, ArrayType)):
            return INT, u.elem, self._state_of(u.elem), []
        if isinstance(u, MapType):
            return u.key, u.value, self._state_of(u.value), []
        if isinstance(u, ChanType):
            return u.elem, u.elem, self._state_of(u.elem), []
        if isinstance(u, BasicType) and u.name in INTEGER_BASICS:
            return t, t, DotState.BOUND_UNKNOWN, []
        record = ResolutionRecord.error(
            f"range can't iterate over {t}", span, GotmplsErrorCodes.NOT_ITERABLE
        )
        return UNKNOWN, UNKNOWN, DotState.BOUND_UNKNOWN, [record]

    def _block_range(self, node: ControlBlock) -> Records:
        outer = self.scopes.enter_same_dot("range")
        try:
            pipeline = node.pipeline
            t, records = self._pipeline_value(pipeline)
            key, elem, state, recs = self._iteration(t, pipeline.span)
            records.extend(recs)
            if len(pipeline.declarations) >= 2:
                records.extend(self._bind(pipeline, [key, elem]))
            else:
                records.extend(self._bind(pipeline, [elem]))
            records += self._branch(node.body, elem, state, "range-body")
            if node.else_body:
                records += self._branch(node.else_body, outer.dot, outer.state, "range-else")
            return records
        finally:
            self.scopes.exit_scope()

    def _isolated(self, actions: Sequence[Action], dot: GoType, state: DotState, label: str) -> Records:
        self.scopes.enter_scope(dot, state, label, isolated=True)
        try:
            return self._run(actions)
        finally:
            self.scopes.exit_scope()

    def _block_define(self, node: ControlBlock) -> Records:
        records: Records = []
        dot, state = UNKNOWN, DotState.UNBOUND
        if node.type_hint is not None:
            dot, state, records = self._bind_hint(node.type_hint)
        return records + self._isolated(node.body, dot, state, f"define {node.name}")

    def _block_block(self, node: ControlBlock) -> Records:
        t, records = self._pipeline_value(node.pipeline)
        state = self._state_of(t)
        if state is DotState.UNBOUND and node.type_hint is not None:
            t, state, recs = self._bind_hint(node.type_hint)
            records.extend(recs)
        return records + self._isolated(node.body, t, state, f"block {node.name}")

    def _block_template(self, node: ControlBlock) -> Records:
        if node.pipeline is None:
            return []
        t, records = self._pipeline_value(node.pipeline)
        target = self._defines.get(node.name)
        if target is None or target.type_hint is None or self._state_of(t) is DotState.UNBOUND:
            return records
        expected = self.registry.lookup(target.type_hint.type_path)
        if expected is None:
            return records
        actual = deref(t)
        if not isinstance(actual, NamedType) or actual.qualified != expected.qualified:
            records.append(
                ResolutionRecord.warning(
                    f'template "{node.name}" expects {expected.ref}, got {t}',
                    node.pipeline.span,
                    GotmplsErrorCodes.TEMPLATE_DATA_MISMATCH,
                )
            )
        return records

    def _block_loop_control(self, node: ControlBlock) -> Records:
        return []


_BLOCK_DISPATCH: Dict[BlockKind, str] = {
    BlockKind.IF: "_block_if",
    BlockKind.WITH: "_block_with",
    BlockKind.RANGE: "_block_range",
    BlockKind.DEFINE: "_block_define",
    BlockKind.BLOCK: "_block_block",
    BlockKind.TEMPLATE: "_block_template",
    BlockKind.BREAK: "_block_loop_control",
    BlockKind.CONTINUE: "_block_loop_control",
}


def validate(
    info: TemplateInfo,
    registry: TypeRegistry,
    config: Optional[AnalysisConfig] = None,
    root_type: Optional[GoType] = None,
) -> List[ResolutionRecord]:
    """Validate one parsed template; never raises for template findings."""
    return Validator(registry, config).validate(info, root_type)


__all__ = ["Validator", "validate"]
