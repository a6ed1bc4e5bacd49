"""
MPP AST Pretty Printer

Renders AST nodes as parenthesized S-expressions for the REPL, the CLI and
debugging. A node prints as its kind followed by its fields in declaration
order:

    - string fields (operators, names, declarators) print bare
    - boolean fields print as `:name` when set and are omitted otherwise
    - None fields are omitted
    - statement lists print as `[...]`
    - String and Error nodes quote their text

Short nodes stay on one line; anything longer than `WIDTH` characters breaks
one child per line with a two-space indent.

Example:
    >>> format_node(parse("1 + 2 * 3;")[0])
    '(BinaryOp + (Number 1) (BinaryOp * (Number 2) (Number 3)))'
"""

from collections.abc import Iterable
from typing import Any

from mpp.mpp_ast import (
    ASTNode,
    Boolean,
    Error,
    Identifier,
    Number,
    RegexLiteral,
    String,
    Variable,
)

INDENT = "  "
WIDTH = 72


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _leaf(node: ASTNode) -> str | None:
    if isinstance(node, Number):
        return f"(Number {node.value})"
    if isinstance(node, String):
        return f"(String {_quote(node.value)})"
    if isinstance(node, Boolean):
        return f"(Boolean {'true' if node.value else 'false'})"
    if isinstance(node, (Variable, Identifier)):
        return f"({node.kind} {node.name})"
    if isinstance(node, RegexLiteral):
        return f"(Regex /{node.pattern}/{node.flags})"
    if isinstance(node, Error):
        return f"(Error {_quote(node.message)})"
    return None


def _parts(node: ASTNode, depth: int) -> list[str]:
    parts: list[str] = []
    for name in node.fields:
        value: Any = getattr(node, name)
        if value is None or value is False:
            continue
        if value is True:
            parts.append(f":{name}")
        elif isinstance(value, ASTNode):
            parts.append(format_node(value, depth + 1))
        elif isinstance(value, list):
            parts.append(_format_list(value, depth + 1))
        else:
            parts.append(str(value))
    return parts


def _format_list(items: list[Any], depth: int) -> str:
    rendered = [
        format_node(item, depth + 1) if isinstance(item, ASTNode) else str(item)
        for item in items
    ]
    return _join("[", rendered, "]", depth)


def _join(opener: str, parts: list[str], closer: str, depth: int) -> str:
    flat = opener + " ".join(parts) + closer
    if len(flat) + len(INDENT) * depth <= WIDTH and "\n" not in flat:
        return flat
    head, *rest = parts if opener == "(" else ["", *parts]
    pad = "\n" + INDENT * (depth + 1)
    body = "".join(pad + part for part in rest)
    return f"{opener}{head}{body}{closer}"


def format_node(node: ASTNode, depth: int = 0) -> str:
    """
    Formats one node as an S-expression.

    Args:
        node (ASTNode): The node to format.
        depth (int): Nesting depth, which sets the indent of broken lines.

    Returns:
        str: The rendered node.
    """
    leaf = _leaf(node)
    if leaf is not None:
        return leaf
    return _join("(", [node.kind, *_parts(node, depth)], ")", depth)


def format_program(nodes: Iterable[ASTNode]) -> str:
    """Formats a sequence of statements, one S-expression per line group."""
    return "\n".join(format_node(node) for node in nodes)


__all__ = ["format_node", "format_program"]
