"""
Language tables for the MPP (Modern Perl-like) parser.

Every table in this module is built once at import time and never mutated:
keyword groups are ``frozenset`` objects and lookup maps are wrapped in
``MappingProxyType``. The scanner, the lexeme classifier and both parsing
layers read from here, so adding a keyword or an operator is a one-line change.

Exports:
    - Keyword groups (DECLARATION_KEYWORDS, CONTROL_KEYWORDS, ...)
    - token_hashmap: longest-match table for operators and delimiters
    - PRECEDENCE: binary operator precedence/associativity table
    - OperatorInfo
"""

from types import MappingProxyType
from typing import NamedTuple

DECLARATION_KEYWORDS = frozenset(
    {
        "my",
        "our",
        "state",
        "const",
        "local",
        "sub",
        "async",
        "class",
        "field",
        "method",
    }
)

# Subset of declarators that introduce a variable.
VARIABLE_DECLARATORS = frozenset({"my", "our", "state", "const", "local"})

CONTROL_KEYWORDS = frozenset(
    {
        "if",
        "elsif",
        "else",
        "unless",
        "while",
        "until",
        "for",
        "foreach",
        "given",
        "when",
        "default",
        "break",
        "next",
        "last",
        "redo",
        "continue",
        "return",
        "do",
        "eval",
        "try",
        "catch",
        "finally",
        "throw",
        "die",
        "warn",
        "defer",
        "match",
        "case",
    }
)

MODULE_KEYWORDS = frozenset({"use", "no", "require", "package", "import"})

BUILTIN_FUNCTIONS = frozenset(
    {
        "print",
        "say",
        "printf",
        "spawn",
        "send",
        "recv",
        "self",
        "kill",
        "alive",
        "defined",
        "undef",
        "exists",
        "delete",
        "ref",
        "scalar",
        "wantarray",
        "length",
        "push",
        "pop",
        "shift",
        "unshift",
        "splice",
        "keys",
        "values",
        "each",
        "join",
        "split",
        "map",
        "grep",
        "sort",
        "reverse",
        "sprintf",
        "lc",
        "uc",
        "abs",
        "int",
        "sqrt",
        "chomp",
        "chop",
        "substr",
        "index",
        "open",
        "close",
        "bless",
        "time",
        "exit",
    }
)

BOOLEAN_LITERALS = frozenset({"true", "false"})

WORD_OPERATORS = frozenset(
    {"and", "or", "not", "xor", "cmp", "eq", "ne", "lt", "gt", "le", "ge"}
)

SPECIAL_KEYWORDS = frozenset({"has"})

RESERVED_WORDS = (
    DECLARATION_KEYWORDS
    | CONTROL_KEYWORDS
    | MODULE_KEYWORDS
    | BUILTIN_FUNCTIONS
    | BOOLEAN_LITERALS
    | WORD_OPERATORS
    | SPECIAL_KEYWORDS
)

# Reserved words that still behave like a value for regex/division purposes.
VALUE_KEYWORDS = frozenset({"true", "false", "self", "wantarray", "time"})

POSTFIX_CONDITIONALS = frozenset({"if", "unless", "while", "until"})

# Keywords parsed as a Call when immediately followed by "(".
DUAL_SYNTAX_KEYWORDS = frozenset({"print", "say", "do", "require"})

LOOP_KEYWORDS = frozenset({"while", "until", "for", "foreach"})

# Characters that close a quote-word or regex body opened by the key.
PAIRED_DELIMITERS = MappingProxyType({"(": ")", "[": "]", "{": "}", "<": ">"})

# Delimiters accepted right after the "m" and "qr" quote operators.
REGEX_QUOTE_DELIMITERS = "/{([<|!#~"

ASSIGNMENT_OPERATORS = frozenset(
    {
        "=",
        "+=",
        "-=",
        "*=",
        "/=",
        ".=",
        "%=",
        "**=",
        "x=",
        "||=",
        "//=",
        "&&=",
        "&=",
        "|=",
        "^=",
        "<<=",
        ">>=",
    }
)

UNARY_OPERATORS = frozenset({"!", "~", "\\", "++", "--"})

# Operators that may start a primary expression.
PREFIX_OPERATORS = frozenset({"-", "+", "!", "~", "\\", "++", "--", "not"})

_OPERATORS = (
    # three characters
    "<=>",
    "**=",
    "||=",
    "//=",
    "&&=",
    "<<=",
    ">>=",
    # two characters
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "//",
    "**",
    "++",
    "--",
    "<<",
    ">>",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
    ".=",
    "&=",
    "|=",
    "^=",
    "->",
    "=>",
    "..",
    "=~",
    "!~",
    # one character
    "+",
    "-",
    "*",
    "/",
    "%",
    "=",
    "<",
    ">",
    "!",
    "&",
    "|",
    "^",
    "~",
    ".",
    "?",
    ":",
    "\\",
)

_DELIMITERS = {
    "(": "LPAREN",
    ")": "RPAREN",
    "{": "LBRACE",
    "}": "RBRACE",
    "[": "LBRACKET",
    "]": "RBRACKET",
    ",": "COMMA",
    ";": "TERMINATOR",
}

token_hashmap = MappingProxyType(
    {**{op: "OPERATOR" for op in _OPERATORS}, **_DELIMITERS}
)

MAX_OPERATOR_LENGTH = max(len(op) for op in token_hashmap)

# Token types after which "/" divides instead of starting a regex.
VALUE_TOKEN_TYPES = frozenset(
    {
        "NUMBER",
        "STRING",
        "QWLIST",
        "REGEX",
        "IDENTIFIER",
        "VARIABLE",
        "RPAREN",
        "RBRACKET",
        "RBRACE",
    }
)


class OperatorInfo(NamedTuple):
    """Precedence level (lower binds tighter) and associativity of an operator."""

    precedence: int
    associativity: str


LEFT = "LEFT"
RIGHT = "RIGHT"
NONASSOC = "NONE"

_PRECEDENCE_LEVELS: tuple[tuple[int, str, tuple[str, ...]], ...] = (
    (2, LEFT, ("->", "++", "--")),
    (3, RIGHT, ("**",)),
    (4, LEFT, ("=~", "!~")),
    (6, LEFT, ("*", "/", "%", "x")),
    (7, LEFT, ("+", "-", ".")),
    (8, LEFT, ("<<", ">>")),
    (9, LEFT, ("<", ">", "<=", ">=", "lt", "gt", "le", "ge")),
    (10, LEFT, ("==", "!=", "<=>", "eq", "ne", "cmp")),
    (11, LEFT, ("&",)),
    (12, LEFT, ("|", "^")),
    (13, LEFT, ("&&",)),
    (14, LEFT, ("||", "//")),
    (15, NONASSOC, ("..",)),
    (16, RIGHT, ("?",)),
    (17, RIGHT, tuple(sorted(ASSIGNMENT_OPERATORS))),
    (18, LEFT, (",", "=>")),
    (19, LEFT, (":",)),
    (20, LEFT, ("and",)),
    (21, LEFT, ("or", "xor")),
)

PRECEDENCE = MappingProxyType(
    {
        op: OperatorInfo(level, assoc)
        for level, assoc, ops in _PRECEDENCE_LEVELS
        for op in ops
    }
)

LOWEST_PRECEDENCE = 21

__all__ = [
    "ASSIGNMENT_OPERATORS",
    "BOOLEAN_LITERALS",
    "BUILTIN_FUNCTIONS",
    "CONTROL_KEYWORDS",
    "DECLARATION_KEYWORDS",
    "DUAL_SYNTAX_KEYWORDS",
    "LOOP_KEYWORDS",
    "LOWEST_PRECEDENCE",
    "MAX_OPERATOR_LENGTH",
    "MODULE_KEYWORDS",
    "OperatorInfo",
    "PAIRED_DELIMITERS",
    "POSTFIX_CONDITIONALS",
    "PRECEDENCE",
    "PREFIX_OPERATORS",
    "RESERVED_WORDS",
    "SPECIAL_KEYWORDS",
    "UNARY_OPERATORS",
    "VALUE_TOKEN_TYPES",
    "VARIABLE_DECLARATORS",
    "WORD_OPERATORS",
    "token_hashmap",
]
