"""
MPP Statement Parser

Pulls classified lexemes one at a time, groups them into complete statements
and turns each statement into an AST node as soon as it is complete. Only the
current statement is buffered, so arbitrarily long inputs parse in constant
memory and callers can consume statements while the source is still arriving.

Statement boundaries
--------------------
- A `;` outside every delimiter ends a statement; the `;` itself is dropped.
- A `}` that closes the last open delimiter ends a block statement (`if`,
  `while`, `sub`, `class`, a bare block, ...). After the block of an `if`,
  `unless`, `elsif`, `try`, `catch` or loop, completion waits for one more
  lexeme so that `elsif`/`else`, `catch`/`finally` or `continue` can join.
- A `;` while a `(` or `[` is still open cannot be valid; the statement is cut
  there and parsed into an Error node so later statements are unaffected.
- End of input flushes whatever is buffered as a final statement.

Supported Constructs
--------------------
- Declarations: `my $x = 1`, `our ($a, $b) = @_`, `state`, `const`, `local`
- Control flow: `if`/`elsif`/`else`, `unless`, `while`/`until` with `continue`,
  `foreach` with optional declarator, C-style `for`, `given`/`when`/`default`,
  `try`/`catch`/`finally`, `match`/`case`/`else`
- Statement modifiers: `STMT if COND;` (also `unless`, `while`, `until`, `for`)
- Labels on loops and blocks: `OUTER: while (...) { ... }`
- Subroutines, classes, fields (`field`, `has`), methods, packages
- Modules: `use`, `no`, `require`
- I/O: `print`/`say` with an optional filehandle

Entry Points
------------
- `Parser.next_statement()`: pull the next top-level statement.
- `parse()`: parse a whole source into a list of nodes.
- `iter_statements()`: lazily iterate over statements of a source.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable, Iterator, Sequence

from mpp.mpp_ast import (
    ASTNode,
    Block,
    Case,
    Catch,
    Class,
    ElseIf,
    Error,
    Field,
    For,
    Foreach,
    Given,
    Identifier,
    If,
    Match,
    Method,
    Package,
    Parameter,
    Print,
    Require,
    Say,
    Sub,
    Try,
    Unless,
    Until,
    Use,
    Variable,
    When,
    While,
)
from mpp.mpp_constants import LOOP_KEYWORDS, POSTFIX_CONDITIONALS
from mpp.mpp_depth import (
    depth_change,
    find_at_top_level,
    find_matching_close,
    has_top_level,
    split_at_top_level,
)
from mpp.mpp_errors import (
    ErrorKind,
    error_node,
    expected,
    incomplete,
    missing_closing,
    next_statement_start,
    should_resync,
    unexpected,
)
from mpp.mpp_expressions import (
    VARIABLE_CATEGORIES,
    ExpressionParser,
    is_dual_syntax_call,
)
from mpp.mpp_lexemes import WORD_CATEGORIES, Lexeme, LexemeStream
from mpp.mpp_lexer import CharacterStream, Lexer

logger = logging.getLogger(__name__)

Span = Sequence[Lexeme]

# Leading keywords whose statement ends with the `}` of its last block.
BLOCK_HEADS = frozenset(
    {
        "{",
        "if",
        "unless",
        "elsif",
        "else",
        "while",
        "until",
        "for",
        "foreach",
        "given",
        "when",
        "default",
        "try",
        "catch",
        "finally",
        "match",
        "defer",
        "sub",
        "async",
        "class",
        "method",
        "package",
    }
)

# Clauses that may follow the block closed by the key.
CONTINUATIONS = {
    "if": frozenset({"elsif", "else"}),
    "unless": frozenset({"elsif", "else"}),
    "elsif": frozenset({"elsif", "else"}),
    "try": frozenset({"catch", "finally"}),
    "catch": frozenset({"catch", "finally"}),
    "while": frozenset({"continue"}),
    "until": frozenset({"continue"}),
    "for": frozenset({"continue"}),
    "foreach": frozenset({"continue"}),
}

MODIFIERS = POSTFIX_CONDITIONALS | LOOP_KEYWORDS


def _loc(lexeme: Lexeme) -> dict[str, int]:
    return {"line": lexeme.line, "col": lexeme.col}


def split_label(span: Span) -> tuple[str | None, Span]:
    """Splits `LABEL:` off a loop or block statement."""
    if (
        len(span) > 2
        and span[0].category == "IDENTIFIER"
        and span[1].is_op(":")
        and (span[2].category == "LBRACE" or span[2].value in LOOP_KEYWORDS)
    ):
        return span[0].value, span[2:]
    return None, span


def statement_keyword(span: Span) -> str | None:
    """Returns the keyword a statement starts with (`{` for a bare block)."""
    _, body = split_label(span)
    if not body:
        return None
    head = body[0]
    if head.category == "LBRACE":
        return "{"
    if head.category in ("CONTROL", "DECLARATION", "KEYWORD"):
        return head.value
    return None


def is_block_statement(span: Span) -> bool:
    """True if the statement ends with the `}` of its last block."""
    return statement_keyword(span) in BLOCK_HEADS


class StatementAssembler:
    """
    Groups a lexeme stream into complete statement spans.

    The assembler tracks one combined depth over `(`, `[` and `{` as a stack of
    open delimiter categories, and the clause whose block was closed last.

    Attributes:
        buffer (list[Lexeme]): Lexemes of the statement being assembled.
        open (list[str]): Categories of the delimiters still open.
        clause (str | None): Keyword of the most recently closed block clause.
        awaiting (bool): True while one lexeme of look-ahead is pending.
    """

    def __init__(self) -> None:
        self.buffer: list[Lexeme] = []
        self.open: list[str] = []
        self.clause: str | None = None
        self.awaiting = False

    def take(self) -> list[Lexeme]:
        span = self.buffer
        self.buffer = []
        self.open = []
        self.clause = None
        self.awaiting = False
        return span

    def feed(self, lexeme: Lexeme) -> list[list[Lexeme]]:
        """
        Adds one lexeme.

        Returns:
            list[list[Lexeme]]: Statements completed by this lexeme (zero, one
            or two when a pending block statement is followed by a `;`).
        """
        done: list[list[Lexeme]] = []
        if self.awaiting:
            self.awaiting = False
            follows = CONTINUATIONS.get(self.clause or "", frozenset())
            if lexeme.category == "CONTROL" and lexeme.value in follows:
                self.buffer.append(lexeme)
                self.clause = lexeme.value
                return done
            done.append(self.take())

        if lexeme.category == "TERMINATOR":
            if not self.open:
                if self.buffer:
                    done.append(self.take())
                return done
            if should_resync(self.open, statement_keyword(self.buffer)):
                logger.debug(
                    "unclosed %s at ';' (%d:%d), cutting statement",
                    self.open[-1],
                    lexeme.line,
                    lexeme.col,
                )
                done.append(self.take())
                return done

        self.buffer.append(lexeme)
        change = depth_change(lexeme)
        if change > 0:
            self.open.append(lexeme.category)
        elif change < 0 and self.open:
            self.open.pop()
            if (
                not self.open
                and lexeme.category == "RBRACE"
                and is_block_statement(self.buffer)
            ):
                self.clause = self.clause or statement_keyword(self.buffer)
                if self.clause in CONTINUATIONS:
                    self.awaiting = True
                else:
                    done.append(self.take())
        return done

    def finish(self) -> list[Lexeme] | None:
        """Flushes the buffered remainder at end of input."""
        if self.buffer:
            return self.take()
        return None


class Parser:
    """
    MPP Parser Class

    Pull-based statement parser. Each `next_statement()` call reads lexemes
    until one top-level statement is complete and returns its AST node.
    The parser also implements the iterator protocol over `next_statement()`.

    Attributes
    ----------
    assembler : StatementAssembler
        Splits the incoming lexemes into statement spans.
    expressions : ExpressionParser
        Expression engine shared by every statement production.
    ready : deque[ASTNode]
        Statements completed but not yet handed out (at most two).
    exhausted : bool
        True once the lexeme source has reported end of input.

    Methods
    -------
    next_statement() -> ASTNode | None
        Return the next top-level statement, or None at end of input.
    parse() -> list[ASTNode]
        Parse every remaining statement.
    parse_statement(span) -> ASTNode
        Parse one complete statement span.
    parse_block(span, pos, context) -> tuple[list[ASTNode] | Error, int]
        Parse a `{ ... }` block starting at `pos`.
    """

    def __init__(self, lexemes: LexemeStream | Iterable[Lexeme]) -> None:
        if isinstance(lexemes, LexemeStream):
            self._pull: Callable[[], Lexeme | None] = lexemes.next_lexeme
        else:
            iterator = iter(lexemes)
            self._pull = lambda: next(iterator, None)
        self.assembler = StatementAssembler()
        self.expressions = ExpressionParser(self)
        self.ready: deque[ASTNode] = deque()
        self.exhausted = False

        self.statement_parsers: dict[str, Callable[[Span], ASTNode]] = {
            "if": self.parse_if,
            "unless": self.parse_if,
            "while": self.parse_while,
            "until": self.parse_while,
            "for": self.parse_foreach,
            "foreach": self.parse_foreach,
            "given": self.parse_given,
            "when": self.parse_when,
            "default": self.parse_when,
            "try": self.parse_try,
            "match": self.parse_match_statement,
            "sub": self.parse_sub_statement,
            "async": self.parse_sub_statement,
            "class": self.parse_class,
            "field": self.parse_field,
            "has": self.parse_field,
            "method": self.parse_method,
            "package": self.parse_package,
            "use": self.parse_use,
            "no": self.parse_use,
            "require": self.parse_require,
            "print": self.parse_print,
            "say": self.parse_print,
        }

    @classmethod
    def from_source(cls, source: str | Iterable[str]) -> Parser:
        """Builds the full scanner → classifier → parser pipeline over ``source``."""
        return cls(LexemeStream(Lexer(CharacterStream(source))))

    def next_statement(self) -> ASTNode | None:
        """
        Returns the next top-level statement.

        Returns:
            ASTNode | None: The statement node, or None once input is exhausted.
        """
        while not self.ready:
            if self.exhausted:
                return None
            lexeme = self._pull()
            if lexeme is None:
                self.exhausted = True
                remainder = self.assembler.finish()
                if remainder:
                    self.ready.append(self.parse_statement(remainder))
                continue
            for span in self.assembler.feed(lexeme):
                self.ready.append(self.parse_statement(span))
        return self.ready.popleft()

    def __iter__(self) -> Iterator[ASTNode]:
        return self

    def __next__(self) -> ASTNode:
        node = self.next_statement()
        if node is None:
            raise StopIteration
        return node

    def parse(self) -> list[ASTNode]:
        """Parses every remaining statement into a list."""
        return list(self)

    # Statements

    def parse_statements(self, span: Span) -> list[ASTNode]:
        """Parses the statements of a block body."""
        assembler = StatementAssembler()
        statements: list[ASTNode] = []
        for lexeme in span:
            for piece in assembler.feed(lexeme):
                statements.append(self.parse_statement(piece))
        remainder = assembler.finish()
        if remainder:
            statements.append(self.parse_statement(remainder))
        return statements

    def parse_statement(self, span: Span) -> ASTNode:
        """Parse a single statement span (without its terminating `;`)."""
        label, body = split_label(span)
        if label is not None:
            node = self.parse_statement(body)
            if "label" in node.fields:
                node.label = label  # type: ignore[attr-defined]
            return node

        modifier = self.find_modifier(span)
        if modifier > 0:
            return self.parse_modified(span, modifier)

        head = span[0]
        if head.category == "LBRACE":
            block, end = self.parse_block(span, 0, "block")
            if isinstance(block, Error):
                return block
            return self.check_trailing(Block(block, **_loc(head)), span, end)

        if is_dual_syntax_call(span):
            return self.expressions.parse_expression(span, "statement")

        if head.category in ("CONTROL", "DECLARATION", "KEYWORD", "BUILTIN"):
            handler = self.statement_parsers.get(head.value)
            if handler is not None:
                return handler(span)

        return self.expressions.parse_expression(span, "statement")

    def check_trailing(self, node: ASTNode, span: Span, end: int) -> ASTNode:
        """Returns ``node``, or a placement error if lexemes follow its last block."""
        if end < len(span):
            extra = span[end]
            logger.debug("unexpected %r after %s", extra, node.kind)
            return error_node(
                unexpected(extra, f"{node.kind} statement"), extra, ErrorKind.PLACEMENT
            )
        return node

    def find_modifier(self, span: Span) -> int:
        """Returns the index of a depth-zero statement modifier, or -1."""
        if not span or is_block_statement(span):
            return -1
        head = span[0]
        return find_at_top_level(
            span,
            lambda lex: lex is not head
            and lex.category == "CONTROL"
            and lex.value in MODIFIERS,
        )

    def parse_modified(self, span: Span, index: int) -> ASTNode:
        """Rewrites `STMT if COND` into the block form `if (COND) { STMT }`."""
        keyword = span[index].value
        statement = self.parse_statement(span[:index])
        condition = self.expressions.parse_expression(
            span[index + 1 :], f"'{keyword}' modifier", span[index]
        )
        loc = _loc(span[0])
        if keyword == "if":
            return If(condition, [statement], **loc)
        if keyword == "unless":
            return Unless(condition, [statement], **loc)
        if keyword == "while":
            return While(condition, [statement], **loc)
        if keyword == "until":
            return Until(condition, [statement], **loc)
        topic = Variable("$_", **loc)
        return Foreach(topic, condition, [statement], **loc)

    # Blocks and conditions

    def parse_block(
        self, span: Span, pos: int, context: str
    ) -> tuple[list[ASTNode] | Error, int]:
        """
        Parses a `{ ... }` block starting at ``pos``.

        Returns:
            tuple: The block's statements and the index after the closing brace.
            A missing `{` yields a one-element block holding an Error and leaves
            ``pos`` unchanged; an unclosed `{` yields a bare Error node in place
            of the statement list, which callers propagate as the whole result.
        """
        if pos >= len(span) or span[pos].category != "LBRACE":
            found = span[pos] if pos < len(span) else None
            at = found or (span[-1] if span else None)
            return [error_node(expected("'{'", found, context), at)], pos
        close = find_matching_close(span, "LBRACE", "RBRACE", pos)
        if close == -1:
            return error_node(missing_closing("{"), span[pos]), len(span)
        return self.parse_statements(span[pos + 1 : close]), close + 1

    def parse_condition(self, span: Span, pos: int, context: str) -> tuple[ASTNode, int]:
        """Parses a parenthesized condition starting at ``pos``."""
        if pos >= len(span) or span[pos].category != "LPAREN":
            found = span[pos] if pos < len(span) else None
            return error_node(expected("'('", found, context), found or span[pos - 1]), pos
        close = find_matching_close(span, "LPAREN", "RPAREN", pos)
        if close == -1:
            return error_node(missing_closing("("), span[pos]), len(span)
        inner = span[pos + 1 : close]
        return self.expressions.parse_expression(inner, context, span[close]), close + 1

    def is_clause(self, span: Span, pos: int, keyword: str) -> bool:
        return (
            pos < len(span)
            and span[pos].category == "CONTROL"
            and span[pos].value == keyword
        )

    # Control flow

    def parse_if(self, span: Span) -> ASTNode:
        """Parses an `if`/`unless` statement with `elsif` and `else` clauses."""
        head = span[0]
        keyword = head.value
        condition, pos = self.parse_condition(span, 1, f"{keyword} condition")
        then_block, pos = self.parse_block(span, pos, f"{keyword} block")
        if isinstance(then_block, Error):
            return then_block

        clauses: list[ElseIf] = []
        while self.is_clause(span, pos, "elsif"):
            clause_head = span[pos]
            clause_condition, pos = self.parse_condition(span, pos + 1, "elsif condition")
            block, pos = self.parse_block(span, pos, "elsif block")
            if isinstance(block, Error):
                return block
            clauses.append(ElseIf(clause_condition, block, **_loc(clause_head)))

        else_block = None
        if self.is_clause(span, pos, "else"):
            block, pos = self.parse_block(span, pos + 1, "else block")
            if isinstance(block, Error):
                return block
            else_block = block

        node_type = If if keyword == "if" else Unless
        node = node_type(condition, then_block, clauses, else_block, **_loc(head))
        return self.check_trailing(node, span, pos)

    def parse_while(self, span: Span) -> ASTNode:
        """Parses `while`/`until` loops with an optional `continue` block."""
        head = span[0]
        condition, pos = self.parse_condition(span, 1, f"{head.value} condition")
        block, pos = self.parse_block(span, pos, f"{head.value} block")
        if isinstance(block, Error):
            return block

        continue_block = None
        if self.is_clause(span, pos, "continue"):
            extra, pos = self.parse_block(span, pos + 1, "continue block")
            if isinstance(extra, Error):
                return extra
            continue_block = extra

        node_type = While if head.value == "while" else Until
        node = node_type(condition, block, None, continue_block, **_loc(head))
        return self.check_trailing(node, span, pos)

    def parse_foreach(self, span: Span) -> ASTNode:
        """
        Parses `foreach` loops and C-style `for` loops.

        Accepted shapes:
            - `foreach my $x (LIST) { ... }` (any variable declarator)
            - `foreach $x (LIST) { ... }`
            - `foreach (LIST) { ... }`, iterating with `$_`
            - `for (INIT; COND; STEP) { ... }`
        """
        head = span[0]
        pos = 1
        declarator = None
        if pos < len(span) and span[pos].category == "DECLARATION":
            declarator = span[pos].value
            pos += 1

        variable: ASTNode
        if pos < len(span) and span[pos].category in VARIABLE_CATEGORIES:
            variable = Variable(span[pos].value, **_loc(span[pos]))
            pos += 1
        elif pos < len(span) and span[pos].category == "LPAREN" and declarator is None:
            close = find_matching_close(span, "LPAREN", "RPAREN", pos)
            if close != -1 and has_top_level(span[pos + 1 : close], "TERMINATOR"):
                return self.parse_c_style_for(span, pos, close)
            variable = Variable("$_", **_loc(head))
        else:
            found = span[pos] if pos < len(span) else None
            variable = error_node(
                expected("loop variable", found, f"{head.value} loop"), found or head
            )

        list_expr, pos = self.parse_condition(span, pos, f"{head.value} list")
        block, pos = self.parse_block(span, pos, f"{head.value} block")
        if isinstance(block, Error):
            return block
        continue_block = None
        if self.is_clause(span, pos, "continue"):
            extra, pos = self.parse_block(span, pos + 1, "continue block")
            if isinstance(extra, Error):
                return extra
            continue_block = extra
        node = Foreach(
            variable, list_expr, block, declarator, None, continue_block, **_loc(head)
        )
        return self.check_trailing(node, span, pos)

    def parse_c_style_for(self, span: Span, open_pos: int, close: int) -> ASTNode:
        head = span[0]
        clauses = split_at_top_level(span[open_pos + 1 : close], "TERMINATOR")
        names = ("for initializer", "for condition", "for step")
        parts: list[ASTNode | None] = []
        for index, clause in enumerate(clauses[:3]):
            parts.append(
                self.expressions.parse_expression(clause, names[index]) if clause else None
            )
        while len(parts) < 3:
            parts.append(error_node(expected("';'", None, "for header"), span[close]))
        if len(clauses) > 3:
            extra = clauses[3][0] if clauses[3] else span[close]
            parts[2] = error_node(unexpected(extra, "for header"), extra, ErrorKind.PLACEMENT)

        block, pos = self.parse_block(span, close + 1, "for block")
        if isinstance(block, Error):
            return block
        node = For(parts[0], parts[1], parts[2], block, **_loc(head))
        return self.check_trailing(node, span, pos)

    def parse_given(self, span: Span) -> ASTNode:
        head = span[0]
        subject, pos = self.parse_condition(span, 1, "given subject")
        block, pos = self.parse_block(span, pos, "given block")
        if isinstance(block, Error):
            return block
        return self.check_trailing(Given(subject, block, **_loc(head)), span, pos)

    def parse_when(self, span: Span) -> ASTNode:
        """Parses `when (EXPR) { ... }`; `default { ... }` is a When without condition."""
        head = span[0]
        condition: ASTNode | None = None
        pos = 1
        if head.value == "when":
            condition, pos = self.parse_condition(span, 1, "when condition")
        block, pos = self.parse_block(span, pos, f"{head.value} block")
        if isinstance(block, Error):
            return block
        return self.check_trailing(When(condition, block, **_loc(head)), span, pos)

    def parse_try(self, span: Span) -> ASTNode:
        """Parse a `try` block with `catch` handlers and optional `finally`."""
        head = span[0]
        body, pos = self.parse_block(span, 1, "try block")
        if isinstance(body, Error):
            return body

        catches: list[Catch] = []
        while self.is_clause(span, pos, "catch"):
            catch_head = span[pos]
            pos += 1
            variable = None
            if pos < len(span) and span[pos].category == "LPAREN":
                variable, pos = self.parse_condition(span, pos, "catch variable")
            block, pos = self.parse_block(span, pos, "catch block")
            if isinstance(block, Error):
                return block
            catches.append(Catch(variable, block, **_loc(catch_head)))

        finally_block = None
        if self.is_clause(span, pos, "finally"):
            block, pos = self.parse_block(span, pos + 1, "finally block")
            if isinstance(block, Error):
                return block
            finally_block = block

        return self.check_trailing(Try(body, catches, finally_block, **_loc(head)), span, pos)

    def parse_match(self, span: Span, pos: int) -> tuple[ASTNode, int]:
        """
        Parses `match (EXPR) { case (PATTERN) { ... } ... else { ... } }`.

        Used both as a statement and inside expressions, so it returns the index
        after the closing brace.
        """
        head = span[pos]
        subject, pos = self.parse_condition(span, pos + 1, "match subject")
        if pos >= len(span) or span[pos].category != "LBRACE":
            found = span[pos] if pos < len(span) else None
            missing = error_node(expected("'{'", found, "match"), found or head)
            return Match(subject, [missing], **_loc(head)), pos
        close = find_matching_close(span, "LBRACE", "RBRACE", pos)
        if close == -1:
            return error_node(missing_closing("{"), span[pos]), len(span)

        body = span[pos + 1 : close]
        cases: list[ASTNode] = []
        else_block = None
        i = 0
        while i < len(body):
            lexeme = body[i]
            if self.is_clause(body, i, "case"):
                pattern, i = self.parse_condition(body, i + 1, "case pattern")
                block, i = self.parse_block(body, i, "case block")
                if isinstance(block, Error):
                    cases.append(block)
                    break
                cases.append(Case(pattern, block, **_loc(lexeme)))
            elif self.is_clause(body, i, "else"):
                block, i = self.parse_block(body, i + 1, "match else block")
                if isinstance(block, Error):
                    cases.append(block)
                    break
                else_block = block
            elif lexeme.category in ("TERMINATOR", "COMMA"):
                i += 1
            else:
                cases.append(
                    error_node(unexpected(lexeme, "match body"), lexeme, ErrorKind.PLACEMENT)
                )
                i = next_statement_start(body, i)
        return Match(subject, cases, else_block, **_loc(head)), close + 1

    def parse_match_statement(self, span: Span) -> ASTNode:
        node, end = self.parse_match(span, 0)
        if isinstance(node, Error):
            return node
        return self.check_trailing(node, span, end)

    # Subroutines, classes and modules

    def parse_sub(self, span: Span, pos: int) -> tuple[ASTNode, int]:
        """
        Parses a named or anonymous `sub`, optionally prefixed by `async`.

        Returns the node and the index after the body. A named sub without a
        body is an incomplete declaration and becomes an Error node.
        """
        head = span[pos]
        is_async = head.value == "async"
        if is_async:
            pos += 1
            if pos >= len(span) or span[pos].value != "sub":
                found = span[pos] if pos < len(span) else None
                return error_node(expected("'sub'", found, "async declaration"), head), pos
        pos += 1

        name = None
        if pos < len(span) and span[pos].category in WORD_CATEGORIES:
            name = span[pos].value
            pos += 1

        parameters: list[ASTNode] = []
        if pos < len(span) and span[pos].category == "LPAREN":
            close = find_matching_close(span, "LPAREN", "RPAREN", pos)
            if close == -1:
                return error_node(missing_closing("("), span[pos]), len(span)
            parameters = self.parse_parameters(span[pos + 1 : close])
            pos = close + 1

        if pos >= len(span) or span[pos].category != "LBRACE":
            if name is not None:
                return error_node(incomplete("sub", "missing body"), head), len(span)
            found = span[pos] if pos < len(span) else None
            return error_node(expected("'{'", found, "anonymous sub"), found or head), pos

        body, end = self.parse_block(span, pos, "sub body")
        if isinstance(body, Error):
            return body, end
        return Sub(name, parameters, body, is_async, **_loc(head)), end

    def parse_sub_statement(self, span: Span) -> ASTNode:
        node, end = self.parse_sub(span, 0)
        if isinstance(node, Error):
            return node
        if end < len(span) and isinstance(node, Sub) and node.name is None:
            # `sub { ... }->()` and similar expression statements
            return self.expressions.parse_expression(span, "statement")
        return self.check_trailing(node, span, end)

    def parse_parameters(self, span: Span) -> list[ASTNode]:
        """Parses a signature: `$x, $y = 10, @rest`."""
        parameters: list[ASTNode] = []
        for segment in split_at_top_level(span, "COMMA"):
            if not segment:
                continue
            first = segment[0]
            if first.category not in VARIABLE_CATEGORIES:
                parameters.append(
                    error_node(expected("parameter variable", first, "parameter list"), first)
                )
                continue
            variable = Variable(first.value, **_loc(first))
            default = None
            if len(segment) > 1:
                if segment[1].is_op("=", "//=", "||="):
                    default = self.expressions.parse_expression(
                        segment[2:], "parameter default", segment[1]
                    )
                else:
                    default = error_node(
                        unexpected(segment[1], "parameter list"),
                        segment[1],
                        ErrorKind.PLACEMENT,
                    )
            parameters.append(Parameter(variable, default, **_loc(first)))
        return parameters

    def parse_class(self, span: Span) -> ASTNode:
        """Parses `class Name { ... }` and `class Name :isa(Parent) { ... }`."""
        head = span[0]
        pos = 1
        if pos >= len(span) or span[pos].category not in WORD_CATEGORIES:
            return error_node(incomplete("class", "missing class name"), head)
        name = span[pos].value
        pos += 1

        parent = None
        if (
            pos + 2 < len(span)
            and span[pos].is_op(":")
            and span[pos + 1].value == "isa"
            and span[pos + 2].category == "LPAREN"
        ):
            close = find_matching_close(span, "LPAREN", "RPAREN", pos + 2)
            if close == -1:
                return error_node(missing_closing("("), span[pos + 2])
            parent = " ".join(lex.value for lex in span[pos + 3 : close])
            pos = close + 1

        if pos >= len(span) or span[pos].category != "LBRACE":
            return error_node(incomplete("class", "missing body"), head)
        body, end = self.parse_block(span, pos, "class body")
        if isinstance(body, Error):
            return body
        return self.check_trailing(Class(name, body, parent, **_loc(head)), span, end)

    def parse_field(self, span: Span) -> ASTNode:
        """Parses `field $x :param :reader = DEFAULT` and `has $x = DEFAULT`."""
        head = span[0]
        pos = 1
        if pos >= len(span) or span[pos].category not in VARIABLE_CATEGORIES:
            found = span[pos] if pos < len(span) else None
            return error_node(
                expected("variable", found, f"'{head.value}' declaration"), found or head
            )
        variable = Variable(span[pos].value, **_loc(span[pos]))
        pos += 1

        attributes: list[str] = []
        while (
            pos + 1 < len(span)
            and span[pos].is_op(":")
            and span[pos + 1].category in WORD_CATEGORIES
        ):
            attribute = span[pos + 1].value
            pos += 2
            if pos < len(span) and span[pos].category == "LPAREN":
                close = find_matching_close(span, "LPAREN", "RPAREN", pos)
                if close == -1:
                    return error_node(missing_closing("("), span[pos])
                argument = " ".join(lex.value for lex in span[pos + 1 : close])
                attribute = f"{attribute}({argument})"
                pos = close + 1
            attributes.append(attribute)

        initializer = None
        if pos < len(span):
            if span[pos].category == "ASSIGNOP":
                initializer = self.expressions.parse_expression(
                    span[pos + 1 :], "field initializer", span[pos]
                )
            else:
                initializer = error_node(
                    unexpected(span[pos], "field declaration"),
                    span[pos],
                    ErrorKind.PLACEMENT,
                )
        return Field(variable, attributes, initializer, **_loc(head))

    def parse_method(self, span: Span) -> ASTNode:
        head = span[0]
        pos = 1
        if pos >= len(span) or span[pos].category not in WORD_CATEGORIES:
            return error_node(incomplete("method", "missing method name"), head)
        name = span[pos].value
        pos += 1

        parameters: list[ASTNode] = []
        if pos < len(span) and span[pos].category == "LPAREN":
            close = find_matching_close(span, "LPAREN", "RPAREN", pos)
            if close == -1:
                return error_node(missing_closing("("), span[pos])
            parameters = self.parse_parameters(span[pos + 1 : close])
            pos = close + 1

        if pos >= len(span) or span[pos].category != "LBRACE":
            return error_node(incomplete("method", "missing body"), head)
        body, end = self.parse_block(span, pos, "method body")
        if isinstance(body, Error):
            return body
        return self.check_trailing(Method(name, parameters, body, **_loc(head)), span, end)

    def parse_package(self, span: Span) -> ASTNode:
        """Parses `package Name;`, `package Name VERSION;` and `package Name { ... }`."""
        head = span[0]
        pos = 1
        if pos >= len(span) or span[pos].category not in WORD_CATEGORIES:
            found = span[pos] if pos < len(span) else None
            return error_node(
                expected("package name", found, "package declaration"), found or head
            )
        name = span[pos].value
        pos += 1
        if pos < len(span) and span[pos].token.type == "NUMBER":
            pos += 1

        if pos < len(span) and span[pos].category == "LBRACE":
            block, end = self.parse_block(span, pos, "package block")
            if isinstance(block, Error):
                return block
            return self.check_trailing(Package(name, block, **_loc(head)), span, end)
        return self.check_trailing(Package(name, **_loc(head)), span, pos)

    def parse_use(self, span: Span) -> ASTNode:
        """
        Parses `use`/`no` statements.

        Accepted shapes:
            - `use strict;`, `no warnings;`
            - `use List::Util qw(max min);` (imports are any expression)
            - `use Module VERSION LIST;`
            - `use 5.036;` (a module of `perl` with a version)
        """
        head = span[0]
        unimport = head.value == "no"
        pos = 1
        if pos >= len(span):
            return error_node(expected("module name", None, f"'{head.value}' statement"), head)

        first = span[pos]
        if first.token.type == "NUMBER":
            node = Use("perl", None, unimport, first.value, **_loc(head))
            return self.check_trailing(node, span, pos + 1)
        if first.category == "IDENTIFIER" and first.value[0] == "v" and first.value[1:].isdigit():
            version = "".join(lex.value for lex in span[pos:])
            return Use("perl", None, unimport, version, **_loc(head))
        if first.category not in WORD_CATEGORIES:
            return error_node(
                expected("module name", first, f"'{head.value}' statement"), first
            )
        pos += 1

        version = None
        if pos < len(span) and span[pos].token.type == "NUMBER" and (
            pos + 1 == len(span) or span[pos + 1].category != "COMMA"
        ):
            version = span[pos].value
            pos += 1

        imports = None
        if pos < len(span):
            imports = self.expressions.parse_expression(span[pos:], "import list")
        return Use(first.value, imports, unimport, version, **_loc(head))

    def parse_require(self, span: Span) -> ASTNode:
        head = span[0]
        if len(span) < 2:
            return error_node(expected("module name", None, "require statement"), head)
        if len(span) == 2 and span[1].category in WORD_CATEGORIES:
            module: ASTNode = Identifier(span[1].value, **_loc(span[1]))
        else:
            module = self.expressions.parse_expression(span[1:], "require statement")
        return Require(module, **_loc(head))

    def parse_print(self, span: Span) -> ASTNode:
        """
        Parses `print`/`say` with an optional filehandle.

        A filehandle is `{EXPR}`, an upper-case bareword, or a scalar followed
        directly by an argument without a comma (`print $fh "text"`).
        """
        head = span[0]
        rest = span[1:]
        filehandle: ASTNode | None = None
        if rest:
            first = rest[0]
            following = rest[1] if len(rest) > 1 else None
            if first.category == "LBRACE":
                close = find_matching_close(rest, "LBRACE", "RBRACE", 0)
                if close == -1:
                    return error_node(missing_closing("{"), first)
                filehandle = self.expressions.parse_expression(
                    rest[1:close], "filehandle", first
                )
                rest = rest[close + 1 :]
            elif (
                first.category == "IDENTIFIER"
                and first.value.isupper()
                and following is not None
                and following.category not in ("COMMA", "LPAREN")
                and following.category not in ("BINOP", "ASSIGNOP")
            ):
                filehandle = Identifier(first.value, **_loc(first))
                rest = rest[1:]
            elif (
                first.category == "SCALAR_VAR"
                and following is not None
                and following.category
                in ("LITERAL", "SCALAR_VAR", "ARRAY_VAR", "HASH_VAR")
            ):
                filehandle = Variable(first.value, **_loc(first))
                rest = rest[1:]

        arguments = self.expressions.parse_list_items(rest, f"{head.value} arguments")
        node_type = Print if head.value == "print" else Say
        return node_type(arguments, filehandle, **_loc(head))


def parse(source: str | Iterable[str]) -> list[ASTNode]:
    """
    Parses a complete source into top-level statement nodes.

    Args:
        source (str | Iterable[str]): Source text, or an iterable of text chunks.

    Returns:
        list[ASTNode]: One node per top-level statement.
    """
    return Parser.from_source(source).parse()


def iter_statements(source: str | Iterable[str]) -> Iterator[ASTNode]:
    """Lazily yields top-level statement nodes of ``source``."""
    yield from Parser.from_source(source)


__all__ = [
    "BLOCK_HEADS",
    "CONTINUATIONS",
    "Parser",
    "StatementAssembler",
    "is_block_statement",
    "iter_statements",
    "parse",
    "split_label",
    "statement_keyword",
]
