from collections.abc import Iterator

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from mpp.mpp_ast import (
    Assignment,
    ASTNode,
    BinaryOp,
    Block,
    Call,
    Case,
    Catch,
    Class,
    Declaration,
    DoBlock,
    ElseIf,
    Error,
    Field,
    For,
    Foreach,
    Given,
    HashAccess,
    Identifier,
    If,
    Last,
    List,
    Match,
    Method,
    Next,
    Number,
    Package,
    Parameter,
    Print,
    Redo,
    Require,
    Return,
    Say,
    String,
    Sub,
    Try,
    UnaryOp,
    Unless,
    Until,
    Use,
    Variable,
    Warn,
    When,
    While,
)
from mpp.mpp_lexemes import Lexeme, LexemeStream
from mpp.mpp_lexer import CharacterStream, Lexer
from mpp.mpp_parser import (
    Parser,
    StatementAssembler,
    is_block_statement,
    iter_statements,
    parse,
    split_label,
    statement_keyword,
)


def lexemes_of(source: str) -> list[Lexeme]:
    return list(LexemeStream(Lexer(CharacterStream(source))))


def parse_one(source: str) -> ASTNode:
    nodes = parse(source)
    assert len(nodes) == 1
    return nodes[0]


def spans(source: str) -> list[list[str]]:
    assembler = StatementAssembler()
    result = []
    for lexeme in lexemes_of(source):
        result.extend(assembler.feed(lexeme))
    remainder = assembler.finish()
    if remainder:
        result.append(remainder)
    return [[lex.value for lex in span] for span in result]


def n(value: str) -> Number:
    return Number(value)


def v(name: str) -> Variable:
    return Variable(name)


def dq(text: str) -> String:
    return String(text, '"')


# Statement assembly


def test_assembler_splits_on_terminators() -> None:
    assert spans("a; b;") == [["a"], ["b"]]


def test_assembler_drops_empty_statements() -> None:
    assert spans(";;a;") == [["a"]]


def test_assembler_ends_block_statement_at_brace() -> None:
    assert spans("if ($x) { 1; } 2;") == [
        ["if", "(", "$x", ")", "{", "1", ";", "}"],
        ["2"],
    ]


def test_assembler_joins_else_clause() -> None:
    result = spans("if ($x) { 1; } else { 2; }")
    assert len(result) == 1
    assert result[0][-4:] == ["{", "2", ";", "}"]


def test_assembler_keeps_semicolons_of_for_header() -> None:
    assert len(spans("for (my $i = 0; $i < 3; $i++) { }")) == 1


def test_assembler_cuts_at_semicolon_inside_parens() -> None:
    assert spans("foo(1; 2;") == [["foo", "(", "1"], ["2"]]


def test_assembler_hash_initializer_waits_for_terminator() -> None:
    assert len(spans("my $h = { a => 1 }; 2;")) == 2


def test_assembler_sub_completes_without_lookahead() -> None:
    assembler = StatementAssembler()
    done = []
    for lexeme in lexemes_of("sub f { 1; }"):
        done.extend(assembler.feed(lexeme))
    assert len(done) == 1
    assert assembler.finish() is None


def test_assembler_flushes_unterminated_statement() -> None:
    assembler = StatementAssembler()
    for lexeme in lexemes_of("1 + 2"):
        assert assembler.feed(lexeme) == []
    remainder = assembler.finish()
    assert remainder is not None
    assert [lex.value for lex in remainder] == ["1", "+", "2"]


@pytest.mark.parametrize(  # type: ignore[misc]
    "source, keyword, is_block",
    [
        ("if ($x) { }", "if", True),
        ("{ 1; }", "{", True),
        ("OUTER: while (1) { }", "while", True),
        ("my $x = 1", "my", False),
        ("print 1", None, False),
        ("foo()", None, False),
    ],
)
def test_statement_keyword(source: str, keyword: str | None, is_block: bool) -> None:
    span = lexemes_of(source)
    assert statement_keyword(span) == keyword
    assert is_block_statement(span) is is_block


def test_split_label() -> None:
    label, body = split_label(lexemes_of("OUTER: for (@a) { }"))
    assert label == "OUTER"
    assert body[0].value == "for"
    label, body = split_label(lexemes_of("$x ? a : b"))
    assert label is None
    assert len(body) == 5


# Conditionals


def test_if_elsif_else() -> None:
    node = parse_one(
        'if ($x > 1) { print "big"; } elsif ($x == 1) { print "one"; } '
        'else { print "small"; }'
    )
    assert node == If(
        BinaryOp(">", v("$x"), n("1")),
        [Print([dq("big")])],
        [ElseIf(BinaryOp("==", v("$x"), n("1")), [Print([dq("one")])])],
        [Print([dq("small")])],
    )


def test_unless() -> None:
    assert parse_one("unless ($x) { 1; }") == Unless(v("$x"), [n("1")])


def test_condition_with_hash_access() -> None:
    assert parse_one("if ($h{a}) { 1; }") == If(
        HashAccess(v("$h"), String("a")), [n("1")]
    )


def test_if_without_parentheses() -> None:
    node = parse_one('if { print "hello"; }')
    assert isinstance(node, If)
    assert isinstance(node.condition, Error)
    assert node.condition.message.startswith("Expected '(' but found '{'")
    assert node.then_block == [Print([dq("hello")])]


def test_unclosed_if_block() -> None:
    node = parse_one("if ($x) { print 1;")
    assert isinstance(node, Error)
    assert node.message == "Missing closing brace '}' for '{'"


def test_orphan_else_is_placement_error() -> None:
    node = parse_one("else { 1; }")
    assert isinstance(node, Error)
    assert node.error_kind == "placement"


# Statement modifiers


@pytest.mark.parametrize(  # type: ignore[misc]
    "source, expected",
    [
        (
            "return 0 if $n == 0;",
            If(BinaryOp("==", v("$n"), n("0")), [Return(n("0"))]),
        ),
        ('print "x" unless $quiet;', Unless(v("$quiet"), [Print([dq("x")])])),
        (
            "$i++ while $i < 10;",
            While(BinaryOp("<", v("$i"), n("10")), [UnaryOp("++", v("$i"), True)]),
        ),
        ("retry() until $ok;", Until(v("$ok"), [Call("retry")])),
        ("print for @list;", Foreach(v("$_"), v("@list"), [Print([])])),
        ("next if $x;", If(v("$x"), [Next()])),
    ],
)
def test_statement_modifiers(source: str, expected: ASTNode) -> None:
    assert parse_one(source) == expected


@pytest.mark.parametrize(  # type: ignore[misc]
    "source, index",
    [
        ("print if $x", 1),
        ("foo(1 if 2) if $x", 6),
        ("(bar) unless $y", 3),
        ("map { $_ if 1 } @a", -1),
        ("if ($x) { 1; }", -1),
    ],
)
def test_find_modifier_skips_nested_keywords(source: str, index: int) -> None:
    assert Parser([]).find_modifier(lexemes_of(source)) == index


def test_do_block_with_while_modifier() -> None:
    assert parse_one("do { 1; } while ($x);") == While(v("$x"), [DoBlock([n("1")])])


def test_do_without_block_or_parens() -> None:
    node = parse_one('do print "hello";')
    assert isinstance(node, Error)
    assert "Invalid do statement" in node.message


# Loops


def test_while_with_continue_block() -> None:
    assert parse_one("while ($x) { 1; } continue { 2; }") == While(
        v("$x"), [n("1")], None, [n("2")]
    )


def test_until() -> None:
    assert parse_one("until ($done) { step(); }") == Until(v("$done"), [Call("step")])


def test_foreach_with_declarator() -> None:
    assert parse_one("foreach my $item (@items) { print $item; }") == Foreach(
        v("$item"), v("@items"), [Print([v("$item")])], "my"
    )


def test_foreach_with_topic_variable() -> None:
    assert parse_one("foreach (@list) { 1; }") == Foreach(v("$_"), v("@list"), [n("1")])


def test_for_over_range() -> None:
    assert parse_one("for my $i (1..3) { }") == Foreach(
        v("$i"), BinaryOp("..", n("1"), n("3")), [], "my"
    )


def test_foreach_with_continue_block() -> None:
    node = parse_one("for $x (@a) { 1; } continue { 2; }")
    assert isinstance(node, Foreach)
    assert node.continue_block == [n("2")]


def test_c_style_for() -> None:
    assert parse_one("for (my $i = 0; $i < 3; $i++) { print $i; }") == For(
        Declaration("my", v("$i"), n("0")),
        BinaryOp("<", v("$i"), n("3")),
        UnaryOp("++", v("$i"), True),
        [Print([v("$i")])],
    )


def test_c_style_for_with_empty_clauses() -> None:
    assert parse_one("for (;;) { last; }") == For(None, None, None, [Last()])


def test_foreach_list_with_map_block() -> None:
    assert parse_one("foreach (map { $_ * 2; } @list) { print; }") == Foreach(
        v("$_"),
        Call("map", [Block([BinaryOp("*", v("$_"), n("2"))]), v("@list")]),
        [Print([])],
    )


def test_for_list_with_grep_block() -> None:
    node = parse_one("for (grep { my $y = $_; $y > 1 } @xs) { say; }")
    assert isinstance(node, Foreach)
    assert node.list_expr == Call(
        "grep",
        [
            Block(
                [
                    Declaration("my", v("$y"), v("$_")),
                    BinaryOp(">", v("$y"), n("1")),
                ]
            ),
            v("@xs"),
        ],
    )
    assert node.block == [Say([])]


def test_labelled_loop() -> None:
    assert parse_one("OUTER: for my $i (@a) { next OUTER; }") == Foreach(
        v("$i"), v("@a"), [Next("OUTER")], "my", "OUTER"
    )


def test_labelled_bare_block() -> None:
    assert parse_one("BLOCK: { 1; }") == Block([n("1")], "BLOCK")


def test_bare_block() -> None:
    assert parse_one("{ my $x = 1; }") == Block([Declaration("my", v("$x"), n("1"))])


def test_loop_control() -> None:
    assert parse("last; next; redo LINE;") == [Last(), Next(), Redo("LINE")]


# Switch-like constructs


def test_given_when_default() -> None:
    node = parse_one(
        'given ($x) { when (1) { say "one"; } default { say "other"; } }'
    )
    assert node == Given(
        v("$x"),
        [
            When(n("1"), [Say([dq("one")])]),
            When(None, [Say([dq("other")])]),
        ],
    )


def test_match_case_else() -> None:
    node = parse_one('match ($x) { case (1) { say "one"; } else { say "other"; } }')
    assert node == Match(v("$x"), [Case(n("1"), [Say([dq("one")])])], [Say([dq("other")])])


def test_try_catch_finally() -> None:
    node = parse_one("try { risky(); } catch ($e) { warn $e; } finally { cleanup(); }")
    assert node == Try(
        [Call("risky")],
        [Catch(v("$e"), [Warn(v("$e"))])],
        [Call("cleanup")],
    )


# Subroutines and classes


def test_named_sub_with_signature() -> None:
    node = parse_one("sub add($a, $b = 2) { return $a + $b; }")
    assert node == Sub(
        "add",
        [Parameter(v("$a")), Parameter(v("$b"), n("2"))],
        [Return(BinaryOp("+", v("$a"), v("$b")))],
    )


def test_async_sub() -> None:
    assert parse_one("async sub fetch { 1; }") == Sub("fetch", [], [n("1")], True)


def test_sub_without_body() -> None:
    node = parse_one("sub foo($x);")
    assert isinstance(node, Error)
    assert node.message == "Incomplete sub declaration: missing body"


@pytest.mark.parametrize(  # type: ignore[misc]
    "source, message",
    [
        ("sub foo;", "Incomplete sub declaration: missing body"),
        ("class Foo;", "Incomplete class declaration: missing body"),
    ],
)
def test_forward_declarations_are_rejected(source: str, message: str) -> None:
    node = parse_one(source)
    assert isinstance(node, Error)
    assert node.message == message
    assert (node.line, node.col) == (1, 1)


def test_anonymous_sub_initializer() -> None:
    assert parse_one("my $f = sub { return 42; };") == Declaration(
        "my", v("$f"), Sub(None, [], [Return(n("42"))])
    )


def test_bad_parameter() -> None:
    node = parse_one("sub f(1) { }")
    assert isinstance(node, Sub)
    assert isinstance(node.parameters[0], Error)
    assert "parameter variable" in node.parameters[0].message


def test_class_with_field_and_method() -> None:
    node = parse_one(
        "class Point :isa(Base) { field $x :param = 0; method norm { return $x; } }"
    )
    assert node == Class(
        "Point",
        [
            Field(v("$x"), ["param"], n("0")),
            Method("norm", [], [Return(v("$x"))]),
        ],
        "Base",
    )


def test_class_without_name() -> None:
    node = parse_one("class { }")
    assert isinstance(node, Error)
    assert node.message == "Incomplete class declaration: missing class name"


def test_packages() -> None:
    assert parse_one("package Foo::Bar;") == Package("Foo::Bar")
    assert parse_one("package Foo { 1; }") == Package("Foo", [n("1")])


# Modules and I/O


@pytest.mark.parametrize(  # type: ignore[misc]
    "source, expected",
    [
        ("use strict;", Use("strict")),
        (
            "use List::Util qw(max min);",
            Use("List::Util", List([String("max", "'"), String("min", "'")])),
        ),
        ("no warnings;", Use("warnings", None, True)),
        ("use 5.036;", Use("perl", None, False, "5.036")),
        ("require Foo::Bar;", Require(Identifier("Foo::Bar"))),
    ],
)
def test_module_statements(source: str, expected: ASTNode) -> None:
    assert parse_one(source) == expected


@pytest.mark.parametrize(  # type: ignore[misc]
    "source, expected",
    [
        ('print "a", "b";', Print([dq("a"), dq("b")])),
        ('print STDERR "oops";', Print([dq("oops")], Identifier("STDERR"))),
        ('print $fh "x";', Print([dq("x")], v("$fh"))),
        ('print {$out} "x";', Print([dq("x")], v("$out"))),
        ('print("a", "b");', Call("print", [dq("a"), dq("b")])),
        ('say "hi";', Say([dq("hi")])),
    ],
)
def test_print_and_say(source: str, expected: ASTNode) -> None:
    assert parse_one(source) == expected


# Recovery and streaming


def test_unclosed_paren_resyncs_at_semicolon() -> None:
    nodes = parse("foo(1, 2; my $x = 1;")
    assert len(nodes) == 2
    assert isinstance(nodes[0], Error)
    assert nodes[0].message == "Missing closing parenthesis ')' for '('"
    assert nodes[1] == Declaration("my", v("$x"), n("1"))


def test_unclosed_bracket_resyncs_at_semicolon() -> None:
    nodes = parse("my @a = [1, 2; print 3;")
    assert len(nodes) == 2
    assert isinstance(nodes[0], Declaration)
    assert isinstance(nodes[0].initializer, Error)
    assert nodes[0].initializer.message == "Missing closing bracket ']' for '['"
    assert nodes[1] == Print([n("3")])


def test_error_positions() -> None:
    nodes = parse("1;\nfoo(1;")
    assert isinstance(nodes[1], Error)
    assert (nodes[1].line, nodes[1].col) == (2, 4)


@pytest.mark.parametrize(  # type: ignore[misc]
    "source, position",
    [
        ("\n\n  while () { 1; }", (3, 10)),
        ("\n\n  if () { 1; }", (3, 7)),
        ("\n\n  print 1 if ;", (3, 11)),
    ],
)
def test_empty_condition_error_position(source: str, position: tuple[int, int]) -> None:
    node = parse_one(source)
    assert isinstance(node, (While, If))
    assert isinstance(node.condition, Error)
    assert node.condition.message.startswith("Empty or invalid expression")
    assert (node.condition.line, node.condition.col) == position


def test_empty_source() -> None:
    assert parse("") == []
    assert parse("# only a comment\n") == []


def test_pull_interface() -> None:
    parser = Parser.from_source("1; 2;")
    assert parser.next_statement() == n("1")
    assert parser.next_statement() == n("2")
    assert parser.next_statement() is None
    assert parser.next_statement() is None


def test_parser_accepts_lexeme_list() -> None:
    assert Parser(lexemes_of("$a = 1;")).parse() == [Assignment(v("$a"), "=", n("1"))]


def test_statements_are_produced_before_input_ends() -> None:
    consumed: list[int] = []

    def chunks() -> Iterator[str]:
        for index, text in enumerate(["my $x = 1;\n", "my $y = 2;\n", "my $z = 3;\n"]):
            consumed.append(index)
            yield text

    statements = iter_statements(chunks())
    first = next(statements)
    assert first == Declaration("my", v("$x"), n("1"))
    assert len(consumed) < 3
    assert len(list(statements)) == 2


def test_chunked_source_matches_whole_source() -> None:
    source = "my $x = 1;\nif ($x) { print $x; }\n"
    pieces = [source[i : i + 3] for i in range(0, len(source), 3)]
    assert parse(pieces) == parse(source)


# Properties


@given(st.text())  # type: ignore[misc]
@settings(deadline=None)  # type: ignore[misc]
def test_parse_never_raises(source: str) -> None:
    assert isinstance(parse(source), list)


names = st.from_regex(r"[a-z][a-z0-9_]{0,7}", fullmatch=True)


@given(names, st.sampled_from(["if", "unless", "while", "until"]))  # type: ignore[misc]
@settings(deadline=None)  # type: ignore[misc]
def test_modifier_matches_block_form(name: str, keyword: str) -> None:
    modified = parse_one(f"foo() {keyword} ${name};")
    block = parse_one(f"{keyword} (${name}) {{ foo(); }}")
    assert modified == block


@given(st.integers(min_value=0, max_value=6))  # type: ignore[misc]
@settings(deadline=None)  # type: ignore[misc]
def test_elsif_chain_length(count: int) -> None:
    clauses = "".join(f" elsif ($x == {i}) {{ {i}; }}" for i in range(count))
    node = parse_one(f"if ($x) {{ 0; }}{clauses} else {{ 1; }}")
    assert isinstance(node, If)
    assert len(node.elsif_clauses) == count
    assert node.else_block == [n("1")]
