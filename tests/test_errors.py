import pytest

from mpp.mpp_ast import Error
from mpp.mpp_errors import (
    ErrorKind,
    describe,
    empty_expression,
    error_node,
    expected,
    incomplete,
    invalid,
    missing_closing,
    next_statement_start,
    scan_error,
    should_resync,
    unexpected,
)
from mpp.mpp_lexemes import Lexeme, LexemeStream
from mpp.mpp_lexer import CharacterStream, Lexer, Token


def lexemes_of(source: str) -> list[Lexeme]:
    return list(LexemeStream(Lexer(CharacterStream(source))))


def test_describe() -> None:
    assert describe(lexemes_of("}")[0]) == "'}' (RBRACE)"
    assert describe(None) == "end of input"


def test_message_wording() -> None:
    brace = lexemes_of("{")[0]
    assert expected("'('", brace, "if condition") == (
        "Expected '(' but found '{' (LBRACE) in if condition"
    )
    assert unexpected(brace, "statement") == "Unexpected token '{' (LBRACE) in statement"
    assert unexpected(brace, "statement", "use +{ } for a hash literal") == (
        "Unexpected token '{' (LBRACE) in statement; use +{ } for a hash literal"
    )
    assert empty_expression("array index") == "Empty or invalid expression in array index"
    assert incomplete("sub", "missing body") == "Incomplete sub declaration: missing body"
    assert invalid("do", "oops") == "Invalid do statement: oops"


@pytest.mark.parametrize(  # type: ignore[misc]
    "opener, message",
    [
        ("(", "Missing closing parenthesis ')' for '('"),
        ("[", "Missing closing bracket ']' for '['"),
        ("{", "Missing closing brace '}' for '{'"),
    ],
)
def test_missing_closing(opener: str, message: str) -> None:
    assert missing_closing(opener) == message


def test_error_node_takes_position_from_lexeme() -> None:
    at = lexemes_of("\n   ]")[0]
    node = error_node("bad", at, ErrorKind.PLACEMENT)
    assert isinstance(node, Error)
    assert (node.line, node.col) == (2, 4)
    assert node.value == "]"
    assert node.error_kind == "placement"


def test_error_node_without_position() -> None:
    node = error_node("empty")
    assert (node.message, node.value, node.error_kind) == ("empty", "", "structural")
    assert (node.line, node.col) == (0, 0)


def test_scan_error_uses_token_message() -> None:
    lexeme = lexemes_of("'never closed")[0]
    node = scan_error(lexeme)
    assert node.error_kind == "scan"
    assert node.message == "Unterminated string literal (missing closing ')"


def test_scan_error_default_message() -> None:
    lexeme = Lexeme(Token("ERROR", "`", 1, 1), "TOKEN_ERROR")
    assert scan_error(lexeme).message == "Unexpected character '`'"


def test_next_statement_start() -> None:
    span = lexemes_of("a b; c; d")
    assert next_statement_start(span, 0) == 3
    assert next_statement_start(span, 3) == 5
    assert next_statement_start(span, 5) == len(span)


@pytest.mark.parametrize(  # type: ignore[misc]
    "stack, head, resync",
    [
        ([], None, False),
        (["LBRACE"], "if", False),
        (["LPAREN", "LBRACE"], None, False),
        (["LPAREN"], None, True),
        (["LBRACKET"], "my", True),
        (["LBRACE", "LPAREN"], "sub", True),
        (["LPAREN"], "for", False),
        (["LPAREN"], "foreach", False),
        (["LPAREN", "LPAREN"], "for", True),
    ],
)
def test_should_resync(stack: list[str], head: str | None, resync: bool) -> None:
    assert should_resync(stack, head) is resync
