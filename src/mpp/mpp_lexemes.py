"""
Lexeme classification for the MPP parser.

A lexeme is a token annotated with a semantic category. Categories are plain
uppercase strings drawn from the closed set ``CATEGORIES``; the statement and
expression parsers dispatch on them.

Classification is a pure function of the token and, for a few context
sensitive words, of the previous lexeme:

    * `x` after an operand is the repetition operator, otherwise a bareword.
    * A reserved word right after `->` is a method name, not a keyword.

Exports:
    - Lexeme
    - LexemeStream
    - classify
    - is_value_category
    - CATEGORIES
"""

from collections.abc import Iterator
from typing import Any

from mpp.mpp_constants import (
    ASSIGNMENT_OPERATORS,
    BOOLEAN_LITERALS,
    BUILTIN_FUNCTIONS,
    CONTROL_KEYWORDS,
    DECLARATION_KEYWORDS,
    UNARY_OPERATORS,
    WORD_OPERATORS,
)
from mpp.mpp_lexer import Lexer, Token

CATEGORIES = frozenset(
    {
        "TOKEN_ERROR",
        "LITERAL",
        "REGEX",
        "BOOLEAN",
        "SCALAR_VAR",
        "ARRAY_VAR",
        "HASH_VAR",
        "CODE_VAR",
        "DECLARATION",
        "CONTROL",
        "KEYWORD",
        "BUILTIN",
        "ASSIGNOP",
        "BINOP",
        "UNOP",
        "POSTFIX_DEREF_SIGIL",
        "LPAREN",
        "RPAREN",
        "LBRACE",
        "RBRACE",
        "LBRACKET",
        "RBRACKET",
        "COMMA",
        "TERMINATOR",
        "IDENTIFIER",
    }
)

_SIGIL_CATEGORIES = {
    "$": "SCALAR_VAR",
    "@": "ARRAY_VAR",
    "%": "HASH_VAR",
    "&": "CODE_VAR",
}

_DELIMITER_TYPES = frozenset(
    {
        "LPAREN",
        "RPAREN",
        "LBRACE",
        "RBRACE",
        "LBRACKET",
        "RBRACKET",
        "COMMA",
        "TERMINATOR",
    }
)

_VALUE_CATEGORIES = frozenset(
    {
        "LITERAL",
        "REGEX",
        "BOOLEAN",
        "SCALAR_VAR",
        "ARRAY_VAR",
        "HASH_VAR",
        "CODE_VAR",
        "IDENTIFIER",
        "RPAREN",
        "RBRACKET",
        "RBRACE",
    }
)

# Categories that can name a subroutine or a bareword.
WORD_CATEGORIES = frozenset(
    {"IDENTIFIER", "BUILTIN", "KEYWORD", "CONTROL", "DECLARATION", "BOOLEAN"}
)


class Lexeme:
    """A token plus its semantic category.

    Attributes:
        token (Token): The underlying token.
        category (str): One of ``CATEGORIES``.
    """

    __slots__ = ("token", "category")

    def __init__(self, token: Token, category: str) -> None:
        self.token = token
        self.category = category

    @property
    def value(self) -> str:
        return self.token.value

    @property
    def line(self) -> int:
        return self.token.line

    @property
    def col(self) -> int:
        return self.token.col

    def is_op(self, *values: str) -> bool:
        """True for an operator lexeme whose text is one of ``values``."""
        return (
            self.category in ("BINOP", "UNOP", "ASSIGNOP")
            and self.token.value in values
        )

    def __repr__(self) -> str:
        return f"Lexeme({self.category}, {self.token.value})"

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, Lexeme)
            and self.category == other.category
            and self.token == other.token
        )

    def __hash__(self) -> int:
        return hash((self.category, self.token))


def is_value_category(category: str | None) -> bool:
    """True if a lexeme of this category can end an operand."""
    return category in _VALUE_CATEGORIES


def classify(token: Token, previous: Lexeme | None = None) -> Lexeme:
    """
    Maps a token to a lexeme.

    Args:
        token (Token): The token to classify.
        previous (Lexeme | None): The lexeme emitted just before, if any.

    Returns:
        Lexeme: The classified lexeme.
    """
    kind = token.type
    value = token.value

    if kind == "ERROR":
        return Lexeme(token, "TOKEN_ERROR")
    if kind in ("NUMBER", "STRING", "QWLIST"):
        return Lexeme(token, "LITERAL")
    if kind == "REGEX":
        return Lexeme(token, "REGEX")
    if kind == "VARIABLE":
        return Lexeme(token, _SIGIL_CATEGORIES[value[0]])
    if kind == "POSTFIX_DEREF_SIGIL":
        return Lexeme(token, "POSTFIX_DEREF_SIGIL")
    if kind in _DELIMITER_TYPES:
        return Lexeme(token, kind)

    if kind == "OPERATOR":
        if value in ASSIGNMENT_OPERATORS:
            return Lexeme(token, "ASSIGNOP")
        if value in UNARY_OPERATORS:
            return Lexeme(token, "UNOP")
        return Lexeme(token, "BINOP")

    after_arrow = previous is not None and previous.token.value == "->"

    if kind == "KEYWORD" and not after_arrow:
        if value in BOOLEAN_LITERALS:
            return Lexeme(token, "BOOLEAN")
        if value == "not":
            return Lexeme(token, "UNOP")
        if value in WORD_OPERATORS:
            return Lexeme(token, "BINOP")
        if value in DECLARATION_KEYWORDS:
            return Lexeme(token, "DECLARATION")
        if value in CONTROL_KEYWORDS:
            return Lexeme(token, "CONTROL")
        if value in BUILTIN_FUNCTIONS:
            return Lexeme(token, "BUILTIN")
        return Lexeme(token, "KEYWORD")

    if (
        value == "x"
        and not after_arrow
        and previous is not None
        and is_value_category(previous.category)
    ):
        return Lexeme(token, "BINOP")

    return Lexeme(token, "IDENTIFIER")


class LexemeStream:
    """Pull-based classifier stage sitting on top of a Lexer.

    Attributes:
        lexer (Lexer): The upstream token producer.
        previous (Lexeme | None): The last lexeme handed out.
    """

    def __init__(self, lexer: Lexer) -> None:
        self.lexer = lexer
        self.previous: Lexeme | None = None

    def next_lexeme(self) -> Lexeme | None:
        """Returns the next lexeme, or None once the token stream is exhausted."""
        tok = self.lexer.next_token()
        if tok.type == "EOF":
            return None
        lexeme = classify(tok, self.previous)
        self.previous = lexeme
        return lexeme

    def __iter__(self) -> Iterator[Lexeme]:
        while True:
            lexeme = self.next_lexeme()
            if lexeme is None:
                return
            yield lexeme


__all__ = [
    "CATEGORIES",
    "Lexeme",
    "LexemeStream",
    "WORD_CATEGORIES",
    "classify",
    "is_value_category",
]
