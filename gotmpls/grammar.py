# gotmpls/grammar.py
"""
PEG grammars for Go template sources and Go package sources.

Both grammars are compiled once with parsimonious.  The template grammar
produces a flat sequence of text, comment and action items; block nesting is
resolved afterwards by :mod:`gotmpls.parser`.  The Go grammar covers only the
declaration level of a file: bodies and initializers are skipped as balanced
bracket runs.
"""

from __future__ import annotations

from parsimonious.grammar import Grammar


TEMPLATE_KEYWORDS = (
    "if", "else", "end", "range", "with", "define", "block", "template",
    "break", "continue", "true", "false", "nil",
)

GO_KEYWORDS = (
    "break", "case", "chan", "const", "continue", "default", "defer", "else",
    "fallthrough", "for", "func", "go", "goto", "if", "import", "interface",
    "map", "package", "range", "return", "select", "struct", "switch", "type",
    "var",
)


def _keyword_guard(words) -> str:
    return "(?!(?:" + "|".join(words) + r")(?!\w))"


# ═══════════════════════════════════════════════════════════════════════════
# TEMPLATE GRAMMAR
# ═══════════════════════════════════════════════════════════════════════════

TEMPLATE_GRAMMAR_SOURCE = r'''
    template        = item*
    item            = comment / action / text

    text            = ~r"(?:[^{]|\{(?!\{))+"
    comment         = left_delim ws_opt comment_text ws_opt right_delim
    comment_text    = ~r"/\*[\s\S]*?\*/"
    action          = left_delim ws_opt action_body ws_opt right_delim

    left_delim      = ~r"\{\{(?:-(?=[ \t\r\n]))?"
    right_delim     = ~r"(?:(?<=[ \t\r\n])-)?\}\}"

    action_body     = if_open / range_open / with_open / else_action
                    / end_action / define_open / block_open / template_call
                    / break_action / continue_action / pipeline_decl

    if_open         = kw_if ws pipeline_decl
    range_open      = kw_range ws pipeline_decl
    with_open       = kw_with ws pipeline_decl
    else_action     = kw_else else_chain?
    else_chain      = ws else_kind ws pipeline_decl
    else_kind       = kw_if / kw_with
    end_action      = ~r"end(?!\w)"
    define_open     = kw_define ws string_lit
    block_open      = kw_block ws string_lit ws pipeline
    template_call   = kw_template ws string_lit template_data?
    template_data   = ws pipeline
    break_action    = ~r"break(?!\w)"
    continue_action = ~r"continue(?!\w)"

    pipeline_decl   = declaration? pipeline
    declaration     = variable extra_var? ws_opt decl_op ws_opt
    extra_var       = ws_opt "," ws_opt variable
    decl_op         = ":=" / "="

    pipeline        = command pipe_stage*
    pipe_stage      = ws_opt "|" ws_opt command
    command         = operand operand_rest*
    operand_rest    = ws operand
    operand         = paren_term / field / dot / var_term / number
                    / string_lit / raw_string / char_lit / bool_lit / nil_lit
                    / identifier

    paren_term      = "(" ws_opt pipeline ws_opt ")" field_chain?
    var_term        = variable field_chain?
    field           = field_segment+
    field_chain     = field_segment+
    field_segment   = ~r"\.[^\W\d]\w*"
    dot             = ~r"\.(?!\w)"
    variable        = ~r"\$\w*"

    number          = ~r"[+-]?(?:0[xX][0-9a-fA-F_]+(?:\.[0-9a-fA-F_]*)?(?:[pP][+-]?\d+)?|0[bB][01_]+|0[oO][0-7_]+|\d[\d_]*(?:\.\d*)?(?:[eE][+-]?\d+)?i?|\.\d+(?:[eE][+-]?\d+)?i?)"
    string_lit      = ~r'"(?:[^"\\\n]|\\.)*"'
    raw_string      = ~r"`[^`]*`"
    char_lit        = ~r"'(?:[^'\\\n]|\\.)+'"
    bool_lit        = ~r"(?:true|false)(?!\w)"
    nil_lit         = ~r"nil(?!\w)"
    identifier      = ~r"%(template_guard)s[^\W\d]\w*"

    kw_if           = ~r"if(?!\w)"
    kw_else         = ~r"else(?!\w)"
    kw_range        = ~r"range(?!\w)"
    kw_with         = ~r"with(?!\w)"
    kw_define       = ~r"define(?!\w)"
    kw_block        = ~r"block(?!\w)"
    kw_template     = ~r"template(?!\w)"

    ws              = ~r"[ \t\r\n]+"
    ws_opt          = ~r"[ \t\r\n]*"
''' % {"template_guard": _keyword_guard(TEMPLATE_KEYWORDS)}

TEMPLATE_GRAMMAR = Grammar(TEMPLATE_GRAMMAR_SOURCE)


# ═══════════════════════════════════════════════════════════════════════════
# GO SOURCE GRAMMAR
# ═══════════════════════════════════════════════════════════════════════════

GO_GRAMMAR_SOURCE = r'''
    go_file         = sp package_clause sp top_decl*
    package_clause  = "package" hs1 identifier
    top_decl        = top_item sp
    top_item        = import_decl / type_decl / func_decl / var_decl / semicolon

    # ── imports ────────────────────────────────────────────────────────────
    import_decl     = "import" sp import_body
    import_body     = import_group / import_spec
    import_group    = "(" sp import_entry* ")"
    import_entry    = import_spec sp semicolon? sp
    import_spec     = import_alias? string_lit
    import_alias    = alias_name hs1
    alias_name      = ~r"[^\W\d]\w*|\."

    # ── type declarations ──────────────────────────────────────────────────
    type_decl       = "type" sp type_body
    type_body       = type_group / type_spec
    type_group      = "(" sp type_entry* ")"
    type_entry      = type_spec sp semicolon? sp
    type_spec       = identifier hs type_params? hs alias_mark? type
    alias_mark      = "=" hs

    type_params     = "[" sp type_param type_param_more* sp ","? sp "]"
    type_param_more = sp "," sp type_param
    type_param      = identifier_list hs1 constraint
    constraint      = constraint_term constraint_more*
    constraint_more = hs "|" sp constraint_term
    constraint_term = tilde? type
    tilde           = "~"

    # ── functions and methods ──────────────────────────────────────────────
    func_decl       = "func" sp receiver? sp identifier hs type_params? hs signature hs brace_block?
    receiver        = "(" sp receiver_inner sp ")"
    receiver_inner  = named_receiver / receiver_type
    named_receiver  = identifier hs1 receiver_type
    receiver_type   = pointer_mark? identifier type_args?
    pointer_mark    = "*" hs

    signature       = params hs result?
    result          = params / type
    params          = "(" sp param_list? sp ")"
    param_list      = param param_more* sp ","?
    param_more      = sp "," sp param
    param           = named_param / unnamed_param
    named_param     = identifier hs1 ellipsis? type
    unnamed_param   = ellipsis? type
    ellipsis        = "..." hs

    # ── var / const (skipped) ──────────────────────────────────────────────
    var_decl        = var_keyword sp var_body
    var_keyword     = ~r"(?:var|const)(?!\w)"
    var_body        = paren_block / line_tail
    line_tail       = line_piece*
    line_piece      = brace_block / paren_block / bracket_block / string_lit
                    / raw_string / rune_lit / comment / line_chunk / slash_cont
                    / slash
    line_chunk      = ~r"(?:[^\n{}()\[\]\"'`/;]*[-+*%%&|^<>=!.,:][ \t\r]*(?://[^\n]*)?\n)+[^\n{}()\[\]\"'`/;]*|[^\n{}()\[\]\"'`/;]+"
    slash_cont      = ~r"/[ \t\r]*\n"

    # ── types ──────────────────────────────────────────────────────────────
    type            = pointer_type / slice_type / array_type / map_type
                    / chan_type / func_type / struct_type / interface_type
                    / paren_type / named_ref
    pointer_type    = "*" hs type
    slice_type      = "[" hs "]" hs type
    array_type      = "[" array_len "]" hs type
    array_len       = ~r"[^\]]+"
    map_type        = "map" hs "[" sp type sp "]" hs type
    chan_type       = chan_recv / chan_send / chan_plain
    chan_recv       = "<-" hs "chan" hs1 type
    chan_send       = "chan" hs "<-" hs type
    chan_plain      = "chan" hs1 type
    func_type       = "func" hs signature
    struct_type     = "struct" hs "{" sp field_decl* "}"
    field_decl      = field_spec hs tag? sp semicolon? sp
    field_spec      = named_field / embedded_field
    named_field     = identifier_list hs1 type
    embedded_field  = pointer_mark? qualified_ident type_args?
    tag             = string_lit / raw_string
    interface_type  = "interface" hs "{" sp iface_elem* "}"
    iface_elem      = iface_spec hs sp semicolon? sp
    iface_spec      = iface_method / constraint
    iface_method    = identifier hs signature
    paren_type      = "(" sp type sp ")"
    named_ref       = qualified_ident type_args?
    type_args       = "[" sp type type_arg_more* sp ","? sp "]"
    type_arg_more   = sp "," sp type

    qualified_ident = ~r"%(go_guard)s[^\W\d]\w*(?:\.[^\W\d]\w*)?"
    identifier_list = identifier identifier_more*
    identifier_more = hs "," sp identifier
    identifier      = ~r"%(go_guard)s[^\W\d]\w*"

    # ── balanced runs ──────────────────────────────────────────────────────
    brace_block     = "{" block_piece* "}"
    paren_block     = "(" block_piece* ")"
    bracket_block   = "[" block_piece* "]"
    block_piece     = brace_block / paren_block / bracket_block / string_lit
                    / raw_string / rune_lit / comment / block_chunk / slash
    block_chunk     = ~r"[^{}()\[\]\"'`/]+"
    slash           = "/"

    # ── lexical ────────────────────────────────────────────────────────────
    string_lit      = ~r'"(?:[^"\\\n]|\\.)*"'
    raw_string      = ~r"`[^`]*`"
    rune_lit        = ~r"'(?:[^'\\\n]|\\.)*'"
    comment         = ~r"//[^\n]*|/\*[\s\S]*?\*/"
    semicolon       = ";"
    sp              = ~r"(?:\s+|//[^\n]*|/\*[\s\S]*?\*/)*"
    hs              = ~r"[ \t]*"
    hs1             = ~r"[ \t]+"
''' % {"go_guard": _keyword_guard(GO_KEYWORDS)}

GO_GRAMMAR = Grammar(GO_GRAMMAR_SOURCE)


__all__ = [
    "TEMPLATE_KEYWORDS",
    "GO_KEYWORDS",
    "TEMPLATE_GRAMMAR",
    "TEMPLATE_GRAMMAR_SOURCE",
    "GO_GRAMMAR",
    "GO_GRAMMAR_SOURCE",
]
