import pytest

from mpp.mpp_ast import (
    ASTNode,
    BinaryOp,
    Boolean,
    Call,
    Declaration,
    Error,
    If,
    Number,
    RegexLiteral,
    Return,
    String,
    UnaryOp,
    Variable,
)
from mpp.mpp_parser import parse
from mpp.mpp_printer import format_node, format_program


@pytest.mark.parametrize(  # type: ignore[misc]
    "node, text",
    [
        (Number("42"), "(Number 42)"),
        (String('a"b\nc'), '(String "a\\"b\\nc")'),
        (Boolean(False), "(Boolean false)"),
        (Variable("@list"), "(Variable @list)"),
        (RegexLiteral("fo+", "i"), "(Regex /fo+/i)"),
        (Error("bad"), '(Error "bad")'),
        (Return(), "(Return)"),
        (UnaryOp("++", Variable("$i"), True), "(UnaryOp ++ (Variable $i) :postfix)"),
        (
            Declaration("my", Variable("$x"), Number("1")),
            "(Declaration my (Variable $x) (Number 1))",
        ),
        (If(Variable("$x"), [Number("1")]), "(If (Variable $x) [(Number 1)] [])"),
    ],
)
def test_format_node(node: ASTNode, text: str) -> None:
    assert format_node(node) == text


def test_format_parsed_expression() -> None:
    assert format_node(parse("1 + 2 * 3;")[0]) == (
        "(BinaryOp + (Number 1) (BinaryOp * (Number 2) (Number 3)))"
    )


def test_long_node_breaks_across_lines() -> None:
    node = Call("foo", [String("x" * 30), String("y" * 30)])
    lines = format_node(node).split("\n")
    assert lines[:3] == ["(Call", "  foo", "  ["]
    assert lines[3].startswith('    (String "x')
    assert lines[4].startswith('    (String "y')
    assert lines[4].endswith(")])")


def test_short_node_stays_flat() -> None:
    text = format_node(BinaryOp("+", Variable("$a"), Variable("$b")))
    assert "\n" not in text


def test_format_program() -> None:
    assert format_program(parse("1; $x;")) == "(Number 1)\n(Variable $x)"
    assert format_program([]) == ""
