"""
Nesting-aware scanning over lexeme spans.

Every helper here treats parentheses, brackets and braces as a single combined
depth counter, so a separator or terminator only counts when it sits outside
all three kinds of delimiter. The statement parser and the expression engine
never walk nested delimiters by hand; they go through these functions.

Exports:
    - depth_change
    - find_matching_close
    - split_at_top_level
    - find_at_top_level
    - has_top_level
    - find_ternary_colon
    - find_statement_end
    - delimiters_balanced
"""

from collections.abc import Callable, Sequence

from mpp.mpp_lexemes import Lexeme

CLOSERS = frozenset({"RPAREN", "RBRACKET", "RBRACE"})

_PAIRS = {"LPAREN": "RPAREN", "LBRACKET": "RBRACKET", "LBRACE": "RBRACE"}


def depth_change(lexeme: Lexeme) -> int:
    """Returns +1 for an opening delimiter, -1 for a closing one, else 0."""
    if lexeme.category in _PAIRS:
        return 1
    if lexeme.category in CLOSERS:
        return -1
    return 0


def find_matching_close(
    span: Sequence[Lexeme], open_category: str, close_category: str, start: int
) -> int:
    """
    Finds the delimiter closing the one at ``start``.

    Only the ``open_category``/``close_category`` pair is counted, so a stray
    bracket inside parentheses does not confuse the search.

    Args:
        span (Sequence[Lexeme]): The lexemes to scan.
        open_category (str): Category of the opening delimiter, e.g. ``LPAREN``.
        close_category (str): Category of the closing delimiter, e.g. ``RPAREN``.
        start (int): Index of the opening delimiter.

    Returns:
        int: Index of the matching close, or -1 if the span ends first.
    """
    depth = 0
    for i in range(start, len(span)):
        category = span[i].category
        if category == open_category:
            depth += 1
        elif category == close_category:
            depth -= 1
            if depth == 0:
                return i
    return -1


def find_at_top_level(
    span: Sequence[Lexeme], predicate: Callable[[Lexeme], bool], start: int = 0
) -> int:
    """Returns the index of the first depth-zero lexeme matching ``predicate``, or -1."""
    depth = 0
    for i in range(start, len(span)):
        lexeme = span[i]
        if depth == 0 and predicate(lexeme):
            return i
        depth = max(depth + depth_change(lexeme), 0)
    return -1


def has_top_level(span: Sequence[Lexeme], category: str) -> bool:
    """True if a lexeme of ``category`` appears at depth zero."""
    return find_at_top_level(span, lambda lex: lex.category == category) != -1


def split_at_top_level(
    span: Sequence[Lexeme], separator_category: str = "COMMA"
) -> list[list[Lexeme]]:
    """
    Splits a span at depth-zero separators.

    Separators are dropped. Empty segments are kept (a trailing comma yields a
    final empty segment) so callers can decide whether to ignore them; an empty
    span yields no segments at all.

    Example:
        ``f(a, [b, c]), d`` split on COMMA gives ``f(a, [b, c])`` and ``d``.
    """
    if not span:
        return []
    segments: list[list[Lexeme]] = [[]]
    depth = 0
    for lexeme in span:
        if depth == 0 and lexeme.category == separator_category:
            segments.append([])
            continue
        depth = max(depth + depth_change(lexeme), 0)
        segments[-1].append(lexeme)
    return segments


def find_ternary_colon(span: Sequence[Lexeme], start: int) -> int:
    """
    Finds the `:` pairing with the `?` at ``start``.

    Nested ternaries in the true branch are skipped by counting every further
    depth-zero `?` as one more pending `:`.

    Returns:
        int: Index of the matching colon, or -1 if there is none.
    """
    depth = 0
    pending = 0
    for i in range(start + 1, len(span)):
        lexeme = span[i]
        if depth == 0:
            if lexeme.is_op("?"):
                pending += 1
            elif lexeme.is_op(":"):
                if pending == 0:
                    return i
                pending -= 1
        depth = max(depth + depth_change(lexeme), 0)
    return -1


def find_statement_end(span: Sequence[Lexeme], start: int = 0) -> int:
    """Returns the index of the next depth-zero terminator, or len(span) if none."""
    end = find_at_top_level(span, lambda lex: lex.category == "TERMINATOR", start)
    return len(span) if end == -1 else end


def delimiters_balanced(span: Sequence[Lexeme]) -> bool:
    """True if every opening delimiter in ``span`` is closed by its own kind."""
    stack: list[str] = []
    for lexeme in span:
        category = lexeme.category
        if category in _PAIRS:
            stack.append(_PAIRS[category])
        elif category in CLOSERS:
            if not stack or stack.pop() != category:
                return False
    return not stack


__all__ = [
    "CLOSERS",
    "delimiters_balanced",
    "depth_change",
    "find_at_top_level",
    "find_matching_close",
    "find_statement_end",
    "find_ternary_colon",
    "has_top_level",
    "split_at_top_level",
]
