"""
Expression engine for the MPP parser.

Turns a span of lexemes (one complete expression, already cut out by the
statement parser) into a single AST node using precedence climbing.

Features:
    - Primary expressions in a fixed priority order: literals, quote-word lists,
      regex literals, `[...]`, `+{...}`, `(...)`, anonymous `sub`, `do {...}`,
      prefix operators, calls and barewords, sigil variables, slices and
      circumfix dereference (`@{$ref}`)
    - A postfix chain after every primary: `[ ]`, `{ }`, `->[ ]`, `->{ }`,
      `->method(...)`, `->(...)`, `->@*`, `->@[...]`, `->@{...}`, `++`, `--`
    - Binary operators climbed over the `PRECEDENCE` table, with right
      associativity for `**`, `?:` and assignment
    - Comma and fat comma build List nodes; a bareword left of `=>` is quoted

Malformed input never raises. A missing operand, delimiter or branch becomes an
Error node in place of the missing piece, or in place of the whole construct
when a delimiter is left open.

Example:
    >>> engine = ExpressionParser(parser)
    >>> engine.parse_expression(lexemes_of("1 + 2 * 3"))
    BinaryOp(operator='+', left=Number(value='1'), right=BinaryOp(...))
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from mpp.mpp_ast import (
    ArrayAccess,
    ArrayLiteral,
    ArraySlice,
    Assignment,
    ASTNode,
    BinaryOp,
    Block,
    Boolean,
    Call,
    Declaration,
    Die,
    DoBlock,
    Error,
    HashAccess,
    HashLiteral,
    HashPair,
    HashSlice,
    Identifier,
    Last,
    List,
    MethodCall,
    Next,
    Number,
    PatternMatch,
    PostfixDeref,
    PostfixDerefSlice,
    Redo,
    RegexLiteral,
    Return,
    String,
    Ternary,
    UnaryOp,
    Variable,
    Warn,
)
from mpp.mpp_constants import (
    DUAL_SYNTAX_KEYWORDS,
    LOWEST_PRECEDENCE,
    PRECEDENCE,
    PREFIX_OPERATORS,
    RIGHT,
    VARIABLE_DECLARATORS,
)
from mpp.mpp_depth import (
    CLOSERS,
    find_at_top_level,
    find_matching_close,
    find_ternary_colon,
    has_top_level,
    split_at_top_level,
)
from mpp.mpp_errors import (
    ErrorKind,
    describe,
    empty_expression,
    error_node,
    expected,
    invalid,
    missing_closing,
    scan_error,
    unexpected,
)
from mpp.mpp_lexemes import WORD_CATEGORIES, Lexeme, is_value_category

if TYPE_CHECKING:
    from mpp.mpp_parser import Parser

logger = logging.getLogger(__name__)

Span = Sequence[Lexeme]

VARIABLE_CATEGORIES = frozenset({"SCALAR_VAR", "ARRAY_VAR", "HASH_VAR", "CODE_VAR"})

# Builtins that take a leading block: `map { ... } @list`.
BLOCK_FUNCTIONS = frozenset({"map", "grep", "sort", "first", "any", "all"})

# Builtins that take exactly one term when called without parentheses.
NAMED_UNARY = frozenset(
    {
        "defined",
        "ref",
        "scalar",
        "lc",
        "uc",
        "length",
        "chomp",
        "chop",
        "abs",
        "int",
        "sqrt",
        "undef",
        "exists",
        "delete",
        "shift",
        "pop",
        "keys",
        "values",
        "each",
        "exit",
        "alive",
    }
)

_TERM_START = frozenset(
    {
        "LITERAL",
        "REGEX",
        "BOOLEAN",
        "SCALAR_VAR",
        "ARRAY_VAR",
        "HASH_VAR",
        "CODE_VAR",
        "IDENTIFIER",
        "BUILTIN",
        "LBRACKET",
        "POSTFIX_DEREF_SIGIL",
        "TOKEN_ERROR",
    }
)

_BRACKETS = {"LBRACKET": "RBRACKET", "LBRACE": "RBRACE", "LPAREN": "RPAREN"}

_SUBSCRIPT_BASES = (
    Variable,
    ArrayAccess,
    HashAccess,
    PostfixDeref,
    MethodCall,
    Call,
    List,
)


def _loc(source: Lexeme | ASTNode) -> dict[str, int]:
    return {"line": source.line, "col": source.col}


def is_value_producing(lexeme: Lexeme | None) -> bool:
    """True if the lexeme can end an operand (so `/` after it divides)."""
    return lexeme is not None and is_value_category(lexeme.category)


def starts_term(lexeme: Lexeme) -> bool:
    """True if a list operator followed by ``lexeme`` takes arguments."""
    if lexeme.category in _TERM_START:
        return True
    if lexeme.category == "DECLARATION":
        return lexeme.value in VARIABLE_DECLARATORS or lexeme.value == "sub"
    return lexeme.is_op("\\", "!", "not")


def looks_like_hash_literal(span: Span, pos: int) -> bool:
    """True for the `+{` prefix that introduces an anonymous hash."""
    return (
        pos + 1 < len(span)
        and span[pos].is_op("+")
        and span[pos + 1].category == "LBRACE"
    )


def is_list_span(span: Span) -> bool:
    """True if the span holds a depth-zero comma or fat comma."""
    return has_top_level(span, "COMMA") or _find_fat_comma(span) != -1


def is_dual_syntax_call(span: Span) -> bool:
    """True for `print(...)`, `say(...)`, `do(...)` and `require(...)` heads."""
    return (
        len(span) > 1
        and span[0].value in DUAL_SYNTAX_KEYWORDS
        and span[0].category != "IDENTIFIER"
        and span[1].category == "LPAREN"
    )


def _find_fat_comma(span: Span, start: int = 0) -> int:
    return find_at_top_level(span, lambda lex: lex.is_op("=>"), start)


def _binary_operator(lexeme: Lexeme) -> str | None:
    """Returns the operator text if ``lexeme`` continues a binary expression."""
    if lexeme.category == "COMMA":
        return ","
    if lexeme.category in ("BINOP", "ASSIGNOP"):
        if lexeme.value in ("->", ":"):
            return None
        if lexeme.value in PRECEDENCE:
            return lexeme.value
    return None


class ExpressionParser:
    """
    Precedence-climbing parser over lexeme spans.

    The engine holds a back-reference to the statement parser, which it needs
    for constructs that contain statements: anonymous subs, `do` blocks,
    `map`/`grep` blocks and `match` expressions.

    Attributes:
        statements (Parser): The owning statement parser.
    """

    def __init__(self, statements: Parser) -> None:
        self.statements = statements

    def parse_expression(
        self, span: Span, context: str = "expression", anchor: Lexeme | None = None
    ) -> ASTNode:
        """
        Parses a complete span as one expression.

        Args:
            span (Sequence[Lexeme]): The lexemes of the expression.
            context (str): Where the expression appears, used in messages.
            anchor (Lexeme | None): Position for the error raised by an empty span,
                usually the delimiter or keyword that introduced it.

        Returns:
            ASTNode: The expression node, or an Error node.
        """
        if not span:
            return error_node(empty_expression(context), anchor)
        node, pos = self.climb(span, 0, LOWEST_PRECEDENCE, context)
        if pos < len(span) and not isinstance(node, Error):
            extra = span[pos]
            logger.debug("unparsed lexeme %r in %s", extra, context)
            if extra.category == "TOKEN_ERROR":
                return scan_error(extra)
            return error_node(unexpected(extra, context), extra, ErrorKind.PLACEMENT)
        return node

    def climb(
        self, span: Span, pos: int, min_prec: int, context: str
    ) -> tuple[ASTNode, int]:
        """Parses an operand followed by operators binding at ``min_prec`` or tighter."""
        left, pos = self.parse_unary(span, pos, context)
        return self.climb_from(span, pos, left, min_prec, context)

    def climb_from(
        self, span: Span, pos: int, left: ASTNode, min_prec: int, context: str
    ) -> tuple[ASTNode, int]:
        list_node: List | None = None
        while pos < len(span) and not isinstance(left, Error):
            lexeme = span[pos]
            op = _binary_operator(lexeme)
            if op is None:
                break
            info = PRECEDENCE[op]
            if info.precedence > min_prec:
                break

            if op == "?":
                left, pos = self.parse_ternary(span, pos, left, context)
                continue

            if info.associativity == RIGHT:
                next_min = info.precedence
            else:
                next_min = info.precedence - 1
            pos += 1

            if op in (",", "=>"):
                if list_node is None or left is not list_node:
                    list_node = List([left], **_loc(left))
                    left = list_node
                if op == "=>":
                    key = list_node.elements[-1]
                    if isinstance(key, Identifier):
                        list_node.elements[-1] = String(key.name, **_loc(key))
                if pos >= len(span) or _binary_operator(span[pos]) in (",", "=>"):
                    continue
                item, pos = self.climb(span, pos, next_min, context)
                list_node.elements.append(item)
                continue

            if pos >= len(span) or span[pos].category in CLOSERS:
                right: ASTNode = error_node(
                    f"Missing right operand for '{op}' in {context}", lexeme
                )
            else:
                right, pos = self.climb(span, pos, next_min, context)
            left = self.combine(op, left, right)
        return left, pos

    def combine(self, op: str, left: ASTNode, right: ASTNode) -> ASTNode:
        if op == "=" and isinstance(left, Declaration) and left.initializer is None:
            left.initializer = right
            return left
        if op in ("=~", "!~"):
            return PatternMatch(op, left, right, **_loc(left))
        if PRECEDENCE[op].precedence == PRECEDENCE["="].precedence:
            return Assignment(left, op, right, **_loc(left))
        return BinaryOp(op, left, right, **_loc(left))

    def parse_ternary(
        self, span: Span, qpos: int, condition: ASTNode, context: str
    ) -> tuple[ASTNode, int]:
        """Parses `? TRUE : FALSE` with ``qpos`` at the `?`."""
        question = span[qpos]
        colon = find_ternary_colon(span, qpos)
        if colon == -1:
            true_expr = self.parse_expression(
                span[qpos + 1 :], "ternary true branch", question
            )
            false_expr = error_node(expected("':'", None, "ternary operator"), question)
            return Ternary(condition, true_expr, false_expr, **_loc(condition)), len(
                span
            )

        true_expr = self.parse_expression(
            span[qpos + 1 : colon], "ternary true branch", question
        )
        if colon + 1 >= len(span):
            false_expr: ASTNode = error_node(
                empty_expression("ternary false branch"), span[colon]
            )
            pos = len(span)
        else:
            false_expr, pos = self.climb(
                span, colon + 1, PRECEDENCE["?"].precedence, context
            )
        return Ternary(condition, true_expr, false_expr, **_loc(condition)), pos

    def parse_unary(self, span: Span, pos: int, context: str) -> tuple[ASTNode, int]:
        """Parses a primary expression and its postfix chain."""
        node, pos = self.parse_primary(span, pos, context)
        if isinstance(node, Error):
            return node, pos
        return self.parse_postfix(span, pos, node)

    def parse_primary(self, span: Span, pos: int, context: str) -> tuple[ASTNode, int]:
        if pos >= len(span):
            return error_node(empty_expression(context), span[-1] if span else None), pos

        lexeme = span[pos]
        category = lexeme.category

        if category == "TOKEN_ERROR":
            return scan_error(lexeme), pos + 1
        if category == "LITERAL":
            return self.parse_literal(lexeme), pos + 1
        if category == "REGEX":
            return (
                RegexLiteral(lexeme.value, lexeme.token.flags or "", **_loc(lexeme)),
                pos + 1,
            )
        if category == "BOOLEAN":
            return Boolean(lexeme.value == "true", **_loc(lexeme)), pos + 1
        if looks_like_hash_literal(span, pos):
            return self.parse_hash_literal(span, pos + 1)
        if category in ("BINOP", "UNOP") and lexeme.value in PREFIX_OPERATORS:
            return self.parse_prefix(span, pos, context)
        if category == "LBRACKET":
            return self.parse_array_literal(span, pos)
        if category == "LPAREN":
            return self.parse_parenthesized(span, pos, context)
        if category == "LBRACE":
            close = find_matching_close(span, "LBRACE", "RBRACE", pos)
            if close == -1:
                return error_node(missing_closing("{"), lexeme), len(span)
            message = unexpected(lexeme, context, "use +{ } for a hash literal")
            return error_node(message, lexeme, ErrorKind.PLACEMENT), close + 1
        if category in VARIABLE_CATEGORIES:
            return self.parse_variable(span, pos)
        if category == "POSTFIX_DEREF_SIGIL":
            return self.parse_circumfix_deref(span, pos)
        if category == "DECLARATION":
            if lexeme.value in ("sub", "async"):
                return self.statements.parse_sub(span, pos)
            if lexeme.value in VARIABLE_DECLARATORS:
                return self.parse_inline_declaration(span, pos)
        if category == "CONTROL":
            return self.parse_control_expression(span, pos, context)
        if category in ("IDENTIFIER", "BUILTIN", "KEYWORD"):
            return self.parse_word(span, pos, context)

        return error_node(unexpected(lexeme, context), lexeme, ErrorKind.PLACEMENT), pos + 1

    def parse_literal(self, lexeme: Lexeme) -> ASTNode:
        token = lexeme.token
        if token.type == "NUMBER":
            return Number(token.value, **_loc(lexeme))
        if token.type == "QWLIST":
            words = [String(w, "'", **_loc(lexeme)) for w in token.words or ()]
            return List(words, **_loc(lexeme))
        return String(token.value, token.quote, **_loc(lexeme))

    def parse_prefix(self, span: Span, pos: int, context: str) -> tuple[ASTNode, int]:
        lexeme = span[pos]
        op = lexeme.value
        if pos + 1 >= len(span):
            operand: ASTNode = error_node(f"Missing operand for '{op}'", lexeme)
            return UnaryOp(op, operand, **_loc(lexeme)), pos + 1
        if op == "not":
            operand, end = self.climb(
                span, pos + 1, PRECEDENCE["and"].precedence - 1, context
            )
            return UnaryOp(op, operand, **_loc(lexeme)), end
        operand, end = self.parse_unary(span, pos + 1, context)
        if op not in ("++", "--"):
            # `-2 ** 2` is -(2 ** 2)
            operand, end = self.climb_from(
                span, end, operand, PRECEDENCE["**"].precedence, context
            )
        return UnaryOp(op, operand, **_loc(lexeme)), end

    def parse_list_items(self, span: Span, context: str) -> list[ASTNode]:
        """
        Parses comma-separated items, flattening `key => value` pairs.

        Empty segments from doubled or trailing commas are skipped. A single
        word directly left of `=>` is taken as a string.
        """
        items: list[ASTNode] = []
        for segment in split_at_top_level(span, "COMMA"):
            if not segment:
                continue
            pieces = self._split_fat_commas(segment)
            for piece in pieces[:-1]:
                items.append(self.parse_key(piece, context, segment[-1]))
            items.append(self.parse_expression(pieces[-1], context, segment[-1]))
        return items

    def _split_fat_commas(self, segment: Span) -> list[Span]:
        pieces: list[Span] = []
        start = 0
        while True:
            fat = _find_fat_comma(segment, start)
            if fat == -1:
                pieces.append(segment[start:])
                return pieces
            pieces.append(segment[start:fat])
            start = fat + 1

    def parse_key(
        self, span: Span, context: str, anchor: Lexeme | None = None
    ) -> ASTNode:
        """Parses a hash key: a bareword or `-bareword` is a string."""
        if len(span) == 1 and span[0].category in WORD_CATEGORIES:
            return String(span[0].value, **_loc(span[0]))
        if (
            len(span) == 2
            and span[0].is_op("-")
            and span[1].category in WORD_CATEGORIES
        ):
            return String("-" + span[1].value, **_loc(span[0]))
        return self.parse_expression(span, context, anchor)

    def parse_subscript_list(self, span: Span, barewords: bool, context: str) -> ASTNode:
        """Parses slice indices or keys: a List iff a top-level comma is present."""
        parse_one = self.parse_key if barewords else self.parse_expression
        if not span:
            return List([])
        if is_list_span(span):
            elements = [
                parse_one(segment, context)
                for segment in split_at_top_level(span, "COMMA")
                if segment
            ]
            return List(elements, **_loc(span[0]))
        return parse_one(span, context)

    def _enclosed(
        self, span: Span, pos: int
    ) -> tuple[Span | None, int]:
        """Returns the lexemes inside the bracket at ``pos`` and the index after it."""
        open_category = span[pos].category
        close = find_matching_close(span, open_category, _BRACKETS[open_category], pos)
        if close == -1:
            return None, len(span)
        return span[pos + 1 : close], close + 1

    def _unclosed(self, lexeme: Lexeme, span: Span) -> tuple[Error, int]:
        logger.debug("unclosed %r", lexeme)
        return error_node(missing_closing(lexeme.value), lexeme), len(span)

    def parse_array_literal(self, span: Span, pos: int) -> tuple[ASTNode, int]:
        inner, end = self._enclosed(span, pos)
        if inner is None:
            return self._unclosed(span[pos], span)
        items = self.parse_list_items(inner, "array literal")
        return ArrayLiteral(items, **_loc(span[pos])), end

    def parse_hash_literal(self, span: Span, pos: int) -> tuple[ASTNode, int]:
        """Parses `{ k => v, ... }` with ``pos`` at the brace after `+`."""
        inner, end = self._enclosed(span, pos)
        if inner is None:
            return self._unclosed(span[pos], span)
        pairs: list[HashPair] = []
        for segment in split_at_top_level(inner, "COMMA"):
            if not segment:
                continue
            fat = _find_fat_comma(segment)
            if fat == -1:
                spread = self.parse_expression(segment, "hash literal")
                pairs.append(HashPair(spread, **_loc(spread)))
                continue
            key = self.parse_key(segment[:fat], "hash key", segment[fat])
            value = self.parse_expression(
                segment[fat + 1 :], "hash pair value", segment[fat]
            )
            pairs.append(HashPair(key, value, **_loc(key)))
        return HashLiteral(pairs, **_loc(span[pos - 1])), end

    def parse_parenthesized(
        self, span: Span, pos: int, context: str
    ) -> tuple[ASTNode, int]:
        inner, end = self._enclosed(span, pos)
        if inner is None:
            return self._unclosed(span[pos], span)
        if not inner:
            return List([], **_loc(span[pos])), end
        if is_list_span(inner):
            return List(self.parse_list_items(inner, context), **_loc(span[pos])), end
        return self.parse_expression(inner, context), end

    def parse_call_arguments(
        self, span: Span, pos: int, context: str
    ) -> tuple[list[ASTNode] | Error, int]:
        """Parses `( ... )` at ``pos`` into an argument list."""
        inner, end = self._enclosed(span, pos)
        if inner is None:
            return self._unclosed(span[pos], span)
        return self.parse_list_items(inner, context), end

    def parse_variable(self, span: Span, pos: int) -> tuple[ASTNode, int]:
        lexeme = span[pos]
        variable = Variable(lexeme.value, **_loc(lexeme))
        nxt = span[pos + 1] if pos + 1 < len(span) else None
        if nxt is None:
            return variable, pos + 1

        if lexeme.category == "ARRAY_VAR" and nxt.category in ("LBRACKET", "LBRACE"):
            inner, end = self._enclosed(span, pos + 1)
            if inner is None:
                return self._unclosed(nxt, span)
            if nxt.category == "LBRACKET":
                indices = self.parse_subscript_list(inner, False, "array slice")
                return ArraySlice(variable, indices, **_loc(lexeme)), end
            keys = self.parse_subscript_list(inner, True, "hash slice")
            return HashSlice(variable, keys, **_loc(lexeme)), end

        if lexeme.category == "CODE_VAR" and nxt.category == "LPAREN":
            args, end = self.parse_call_arguments(span, pos + 1, "code call")
            if isinstance(args, Error):
                return args, end
            return Call(None, args, variable, **_loc(lexeme)), end

        return variable, pos + 1

    def parse_circumfix_deref(self, span: Span, pos: int) -> tuple[ASTNode, int]:
        """Parses `@{EXPR}`, `%{EXPR}`, `${EXPR}`, `$#{EXPR}` and `&{EXPR}(...)`."""
        sigil = span[pos]
        if pos + 1 >= len(span) or span[pos + 1].category != "LBRACE":
            found = span[pos + 1] if pos + 1 < len(span) else None
            return (
                error_node(expected("'{'", found, "dereference"), sigil),
                pos + 1,
            )
        inner, end = self._enclosed(span, pos + 1)
        if inner is None:
            return self._unclosed(span[pos + 1], span)
        base = self.parse_expression(inner, "dereference", span[pos + 1])
        node: ASTNode = PostfixDeref(base, sigil.value, **_loc(sigil))
        if sigil.value == "&" and end < len(span) and span[end].category == "LPAREN":
            args, end = self.parse_call_arguments(span, end, "code call")
            if isinstance(args, Error):
                return args, end
            node = Call(None, args, node, **_loc(sigil))
        return node, end

    def parse_inline_declaration(self, span: Span, pos: int) -> tuple[ASTNode, int]:
        """Parses `my $x`, `our @list` or `my ($a, $b)` inside a larger expression."""
        declarator = span[pos]
        context = f"'{declarator.value}' declaration"
        nxt = span[pos + 1] if pos + 1 < len(span) else None

        if nxt is not None and nxt.category == "LPAREN":
            inner, end = self._enclosed(span, pos + 1)
            if inner is None:
                return self._unclosed(nxt, span)
            variables = List(self.parse_list_items(inner, context), **_loc(nxt))
            return Declaration(declarator.value, variables, **_loc(declarator)), end

        if nxt is not None and nxt.category in VARIABLE_CATEGORIES:
            variable, end = self.parse_unary(span, pos + 1, context)
            return Declaration(declarator.value, variable, **_loc(declarator)), end

        missing = error_node(expected("variable", nxt, context), nxt or declarator)
        return Declaration(declarator.value, missing, **_loc(declarator)), pos + 1

    def parse_control_expression(
        self, span: Span, pos: int, context: str
    ) -> tuple[ASTNode, int]:
        """Parses the control keywords that may appear inside an expression."""
        lexeme = span[pos]
        word = lexeme.value
        rest = span[pos + 1 :]
        nxt = rest[0] if rest else None

        if word == "do":
            if nxt is not None and nxt.category == "LBRACE":
                block, end = self.statements.parse_block(span, pos + 1, "do block")
                if isinstance(block, Error):
                    return block, end
                return DoBlock(block, **_loc(lexeme)), end
            if nxt is not None and nxt.category == "LPAREN":
                return self.parse_word(span, pos, context)
            detail = f"expected '{{' or '(' after 'do' but found {describe(nxt)}"
            return error_node(invalid("do", detail), lexeme), len(span)

        if word == "match" and nxt is not None and nxt.category == "LPAREN":
            return self.statements.parse_match(span, pos)

        if word in ("die", "warn"):
            message = self.parse_expression(rest, f"{word} message") if rest else None
            node_type = Die if word == "die" else Warn
            return node_type(message, **_loc(lexeme)), len(span)

        if word == "return":
            value = self.parse_expression(rest, "return value") if rest else None
            return Return(value, **_loc(lexeme)), len(span)

        if word in ("last", "next", "redo"):
            loop_type = {"last": Last, "next": Next, "redo": Redo}[word]
            if nxt is not None and nxt.category == "IDENTIFIER":
                return loop_type(nxt.value, **_loc(lexeme)), pos + 2
            return loop_type(**_loc(lexeme)), pos + 1

        if word == "eval" and nxt is not None and nxt.category == "LBRACE":
            block, end = self.statements.parse_block(span, pos + 1, "eval block")
            if isinstance(block, Error):
                return block, end
            return Call("eval", [Block(block, **_loc(nxt))], **_loc(lexeme)), end

        if word in ("eval", "throw", "break", "continue", "defer"):
            return self.parse_word(span, pos, context)

        return error_node(unexpected(lexeme, context), lexeme, ErrorKind.PLACEMENT), pos + 1

    def parse_word(self, span: Span, pos: int, context: str) -> tuple[ASTNode, int]:
        """
        Parses a bareword, a builtin or a named call.

        Supported shapes:
            - `name(...)`: Call with comma-split arguments
            - `Name->...`: Identifier base for the postfix chain
            - `map { ... } LIST`: Call whose first argument is a Block
            - `length $s`: named unary builtins take one term
            - `push @a, 1` / `croak "msg"`: list operators take the rest of the span
            - anything else: Identifier
        """
        lexeme = span[pos]
        name = lexeme.value
        nxt = span[pos + 1] if pos + 1 < len(span) else None

        if nxt is not None and nxt.category == "LPAREN":
            args, end = self.parse_call_arguments(span, pos + 1, f"call to '{name}'")
            if isinstance(args, Error):
                return args, end
            return Call(name, args, **_loc(lexeme)), end

        if nxt is not None and nxt.is_op("->"):
            if lexeme.category == "BUILTIN":
                return Call(name, **_loc(lexeme)), pos + 1
            return Identifier(name, **_loc(lexeme)), pos + 1

        if name in BLOCK_FUNCTIONS and nxt is not None and nxt.category == "LBRACE":
            block, end = self.statements.parse_block(span, pos + 1, f"{name} block")
            if isinstance(block, Error):
                return block, end
            rest = span[end:]
            if rest and rest[0].category == "COMMA":
                rest = rest[1:]
            args: list[ASTNode] = [Block(block, **_loc(nxt))]
            args.extend(self.parse_list_items(rest, f"call to '{name}'"))
            return Call(name, args, **_loc(lexeme)), len(span)

        if nxt is None or not starts_term(nxt):
            if lexeme.category in ("BUILTIN", "CONTROL"):
                return Call(name, **_loc(lexeme)), pos + 1
            return Identifier(name, **_loc(lexeme)), pos + 1

        if name in NAMED_UNARY:
            arg, end = self.parse_unary(span, pos + 1, f"call to '{name}'")
            return Call(name, [arg], **_loc(lexeme)), end

        args = self.parse_list_items(span[pos + 1 :], f"call to '{name}'")
        return Call(name, args, **_loc(lexeme)), len(span)

    def parse_postfix(self, span: Span, pos: int, node: ASTNode) -> tuple[ASTNode, int]:
        """Applies subscripts, arrows and postfix increments to ``node``."""
        while pos < len(span):
            lexeme = span[pos]
            if lexeme.is_op("->"):
                node, pos = self.parse_arrow(span, pos, node)
                if isinstance(node, Error):
                    return node, pos
            elif lexeme.category in ("LBRACKET", "LBRACE") and _subscriptable(
                node, lexeme.category
            ):
                node, pos = self.parse_subscript(span, pos, node)
                if isinstance(node, Error):
                    return node, pos
            elif lexeme.is_op("++", "--"):
                node = UnaryOp(lexeme.value, node, True, **_loc(node))
                pos += 1
            else:
                break
        return node, pos

    def parse_subscript(
        self, span: Span, pos: int, base: ASTNode
    ) -> tuple[ASTNode, int]:
        """Parses `[INDEX]` or `{KEY}` at ``pos`` applied to ``base``."""
        bracket = span[pos]
        inner, end = self._enclosed(span, pos)
        if inner is None:
            return self._unclosed(bracket, span)
        if bracket.category == "LBRACKET":
            index = self.parse_expression(inner, "array index", bracket)
            return ArrayAccess(base, index, **_loc(base)), end
        if not inner:
            key: ASTNode = error_node(empty_expression("hash key"), bracket)
        else:
            key = self.parse_subscript_list(inner, True, "hash key")
        return HashAccess(base, key, **_loc(base)), end

    def parse_arrow(self, span: Span, pos: int, base: ASTNode) -> tuple[ASTNode, int]:
        """Parses whatever follows `->`: subscript, call, method or dereference."""
        arrow = span[pos]
        pos += 1
        if pos >= len(span):
            return (
                error_node(expected("method name or subscript", None, "'->'"), arrow),
                pos,
            )
        nxt = span[pos]

        if nxt.category in ("LBRACKET", "LBRACE"):
            return self.parse_subscript(span, pos, base)

        if nxt.category == "LPAREN":
            args, end = self.parse_call_arguments(span, pos, "code call")
            if isinstance(args, Error):
                return args, end
            return Call(None, args, base, **_loc(base)), end

        if nxt.category == "POSTFIX_DEREF_SIGIL":
            return self.parse_postfix_deref(span, pos, base)

        if nxt.category in WORD_CATEGORIES or nxt.category == "SCALAR_VAR":
            after = span[pos + 1] if pos + 1 < len(span) else None
            if after is not None and after.category == "LPAREN":
                args, end = self.parse_call_arguments(
                    span, pos + 1, f"method '{nxt.value}'"
                )
                if isinstance(args, Error):
                    return args, end
                return MethodCall(base, nxt.value, args, **_loc(base)), end
            return MethodCall(base, nxt.value, **_loc(base)), pos + 1

        return error_node(expected("method name or subscript", nxt, "'->'"), nxt), pos + 1

    def parse_postfix_deref(
        self, span: Span, pos: int, base: ASTNode
    ) -> tuple[ASTNode, int]:
        """Parses `->@*`, `->%*`, `->@[...]` and `->@{...}` with ``pos`` at the sigil."""
        sigil = span[pos]
        after = span[pos + 1] if pos + 1 < len(span) else None
        if after is not None and after.is_op("*"):
            return PostfixDeref(base, sigil.value, **_loc(base)), pos + 2
        if after is not None and after.category in ("LBRACKET", "LBRACE"):
            inner, end = self._enclosed(span, pos + 1)
            if inner is None:
                return self._unclosed(after, span)
            barewords = after.category == "LBRACE"
            indices = self.parse_subscript_list(inner, barewords, "postfix slice")
            return (
                PostfixDerefSlice(base, sigil.value, indices, after.value, **_loc(base)),
                end,
            )
        return (
            error_node(expected("'*', '[' or '{'", after, "postfix dereference"), sigil),
            pos + 1,
        )


def _subscriptable(node: ASTNode, bracket: str) -> bool:
    if not isinstance(node, _SUBSCRIPT_BASES):
        return False
    if isinstance(node, Variable):
        return node.name.startswith("$")
    if bracket == "LBRACE":
        return not isinstance(node, (List, Call, MethodCall))
    return True


__all__ = [
    "BLOCK_FUNCTIONS",
    "ExpressionParser",
    "NAMED_UNARY",
    "VARIABLE_CATEGORIES",
    "is_dual_syntax_call",
    "is_list_span",
    "is_value_producing",
    "looks_like_hash_literal",
    "starts_term",
]
