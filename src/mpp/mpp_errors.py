"""
Diagnostics model for the MPP parser.

Parsing never raises on bad input. Every problem becomes an ``Error`` AST node
that takes the place of the construct that could not be built, and the
enclosing production keeps its own shape around it. This module owns the three
error kinds, the wording of every message and the helpers used to recover.

Error kinds:
    SCAN        an ERROR token from the scanner (unterminated literal, bad character)
    STRUCTURAL  a missing delimiter, clause or operand
    PLACEMENT   a token that cannot appear where it was found

Exports:
    - ErrorKind
    - expected, unexpected, empty_expression, missing_closing,
      incomplete, invalid, scan_error_message
    - error_node, scan_error
    - next_statement_start, should_resync
"""

from collections.abc import Sequence
from enum import Enum

from mpp.mpp_ast import Error
from mpp.mpp_depth import find_statement_end
from mpp.mpp_lexemes import Lexeme
from mpp.mpp_lexer import Token


class ErrorKind(Enum):
    SCAN = "scan"
    STRUCTURAL = "structural"
    PLACEMENT = "placement"


_DELIMITER_NAMES = {
    "(": ("parenthesis", ")"),
    "[": ("bracket", "]"),
    "{": ("brace", "}"),
}


def describe(found: Lexeme | None) -> str:
    if found is None:
        return "end of input"
    return f"'{found.value}' ({found.category})"


def expected(what: str, found: Lexeme | None, context: str) -> str:
    """Expected X but found 'v' (CATEGORY) in context."""
    return f"Expected {what} but found {describe(found)} in {context}"


def unexpected(found: Lexeme, context: str, hint: str = "") -> str:
    """Unexpected token 'v' (CATEGORY) in context."""
    message = f"Unexpected token {describe(found)} in {context}"
    return f"{message}; {hint}" if hint else message


def empty_expression(context: str) -> str:
    return f"Empty or invalid expression in {context}"


def missing_closing(opener: str) -> str:
    """
    Builds the message for an unclosed delimiter.

    Example:
        >>> missing_closing("[")
        "Missing closing bracket ']' for '['"
    """
    name, close = _DELIMITER_NAMES[opener]
    return f"Missing closing {name} '{close}' for '{opener}'"


def incomplete(what: str, missing: str) -> str:
    return f"Incomplete {what} declaration: {missing}"


def invalid(what: str, detail: str) -> str:
    return f"Invalid {what} statement: {detail}"


def scan_error_message(token: Token) -> str:
    return token.message or f"Unexpected character '{token.value}'"


def error_node(
    message: str,
    at: Lexeme | Token | None = None,
    kind: ErrorKind = ErrorKind.STRUCTURAL,
    value: str | None = None,
) -> Error:
    """
    Creates an Error node positioned at a lexeme or token.

    Args:
        message (str): Human-readable description.
        at (Lexeme | Token | None): Where the problem was found, if known.
        kind (ErrorKind): The error taxonomy bucket.
        value (str | None): Offending text. Defaults to the text of ``at``.

    Returns:
        Error: The new node.
    """
    line = at.line if at is not None else 0
    col = at.col if at is not None else 0
    if value is None:
        value = at.value if at is not None else ""
    return Error(message, value, kind.value, line=line, col=col)


def scan_error(lexeme: Lexeme) -> Error:
    """Converts a TOKEN_ERROR lexeme into a SCAN error node."""
    return error_node(scan_error_message(lexeme.token), lexeme, ErrorKind.SCAN)


def next_statement_start(span: Sequence[Lexeme], start: int = 0) -> int:
    """Returns the index just past the next depth-zero terminator at or after ``start``."""
    return min(find_statement_end(span, start) + 1, len(span))


def should_resync(open_stack: Sequence[str], head: str | None) -> bool:
    """
    Decides whether a terminator inside open delimiters ends the statement.

    A `;` with an unclosed `(` or `[` innermost can never be valid, so the
    statement is cut there and parsed into an error. The exception is the
    header of a C-style `for`, where `;` separates the three clauses.

    Args:
        open_stack (Sequence[str]): Categories of the currently open delimiters.
        head (str | None): The statement's leading keyword, if any.
    """
    if not open_stack or open_stack[-1] == "LBRACE":
        return False
    if head in ("for", "foreach") and list(open_stack) == ["LPAREN"]:
        return False
    return True


__all__ = [
    "ErrorKind",
    "describe",
    "empty_expression",
    "error_node",
    "expected",
    "incomplete",
    "invalid",
    "missing_closing",
    "next_statement_start",
    "scan_error",
    "scan_error_message",
    "should_resync",
    "unexpected",
]
