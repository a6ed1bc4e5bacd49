"""
Defines the abstract syntax tree (AST) node classes for the MPP language.

Every syntactic construct is its own subclass of ``ASTNode``. A subclass lists
its fields as class annotations in constructor order; fields with a class-level
default are optional, all others are required. Construction fails loudly with
``TypeError`` when a required field is missing, which is a programming error in
the parser, never a reaction to user input. Parse problems are represented by
``Error`` nodes placed where the broken construct would have gone.

Each node tracks:
    kind (str): The class name (e.g. "BinaryOp", "If", "Error").
    fields: The construct-specific children and attributes.
    line (int): Source line number of the first lexeme, advisory only.
    col (int): Source column number of the first lexeme, advisory only.

Positions do not take part in equality, so tests can compare whole trees
built by hand with trees produced by the parser.

Example:
    >>> BinaryOp("+", Number("1"), Number("2"))
    BinaryOp(operator='+', left=Number(value='1'), right=Number(value='2'))
    >>> BinaryOp("+", Number("1"), Number("2")).to_dict()["kind"]
    'BinaryOp'
"""

import inspect
from collections.abc import Iterator
from typing import Any, ClassVar, TypedDict


class ASTDict(TypedDict, total=False):
    """
    Serialized form of an ASTNode used for JSON snapshots.

    Fields:
        kind (str): The node class name.
        line (int): Line number in the source code.
        col (int): Column number in the source code.

    Construct-specific fields are added under their own names; child nodes are
    nested ASTDicts and lists of children become lists.
    """

    kind: str
    line: int
    col: int


_REQUIRED = object()


class ASTNode:
    """
    Base class of every MPP syntax tree node.

    Subclasses declare fields with annotations; ``__init_subclass__`` collects
    them into ``fields`` and records defaults. A default of ``list`` means a new
    empty list per instance.

    Attributes:
        kind (str): Node kind, equal to the class name.
        fields (tuple[str, ...]): Field names in constructor order.
        line (int): Source line number (default is 0).
        col (int): Source column number (default is 0).
    """

    kind: ClassVar[str] = "ASTNode"
    fields: ClassVar[tuple[str, ...]] = ()
    defaults: ClassVar[dict[str, Any]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.kind = cls.__name__
        names: list[str] = []
        defaults: dict[str, Any] = {}
        for name in inspect.get_annotations(cls):
            if name.startswith("_") or name in ("kind", "fields", "defaults"):
                continue
            names.append(name)
            if name in cls.__dict__:
                defaults[name] = cls.__dict__[name]
        cls.fields = tuple(names)
        cls.defaults = defaults

    def __init__(self, *args: Any, line: int = 0, col: int = 0, **kwargs: Any):
        if len(args) > len(self.fields):
            raise TypeError(
                f"{self.kind} takes {len(self.fields)} fields, got {len(args)}"
            )
        values = dict(zip(self.fields, args))
        for name, value in kwargs.items():
            if name not in self.fields:
                raise TypeError(f"{self.kind} has no field '{name}'")
            if name in values:
                raise TypeError(f"{self.kind} got field '{name}' twice")
            values[name] = value
        for name in self.fields:
            if name not in values:
                default = self.defaults.get(name, _REQUIRED)
                if default is _REQUIRED:
                    raise TypeError(f"{self.kind} is missing required field '{name}'")
                values[name] = [] if default is list else default
            setattr(self, name, values[name])
        self.line = line
        self.col = col

    def __repr__(self) -> str:
        parts = [f"{name}={getattr(self, name)!r}" for name in self.fields]
        return f"{self.kind}({', '.join(parts)})"

    def __eq__(self, other: Any) -> bool:
        if type(self) is not type(other):
            return False
        return all(getattr(self, f) == getattr(other, f) for f in self.fields)

    __hash__ = None  # type: ignore[assignment]

    def children(self) -> Iterator["ASTNode"]:
        """Yields direct child nodes in field order."""
        for name in self.fields:
            value = getattr(self, name)
            if isinstance(value, ASTNode):
                yield value
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, ASTNode):
                        yield item

    def walk(self) -> Iterator["ASTNode"]:
        """Yields this node and every descendant, depth first."""
        yield self
        for child in self.children():
            yield from child.walk()

    def to_dict(self) -> ASTDict:
        result: dict[str, Any] = {"kind": self.kind}
        for name in self.fields:
            result[name] = _serialize(getattr(self, name))
        result["line"] = self.line
        result["col"] = self.col
        return result  # type: ignore[return-value]


def _serialize(value: Any) -> Any:
    if isinstance(value, ASTNode):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return value


# Literals and names


class Number(ASTNode):
    value: str


class String(ASTNode):
    value: str
    quote: str | None = None


class Boolean(ASTNode):
    value: bool


class Variable(ASTNode):
    name: str


class Identifier(ASTNode):
    name: str


class RegexLiteral(ASTNode):
    pattern: str
    flags: str = ""


# Operators


class BinaryOp(ASTNode):
    operator: str
    left: ASTNode
    right: ASTNode


class UnaryOp(ASTNode):
    operator: str
    operand: ASTNode
    postfix: bool = False


class Ternary(ASTNode):
    condition: ASTNode
    true_expr: ASTNode
    false_expr: ASTNode


class Assignment(ASTNode):
    left: ASTNode
    operator: str
    right: ASTNode


class PatternMatch(ASTNode):
    operator: str
    target: ASTNode
    pattern: ASTNode


# Collections and access


class List(ASTNode):
    elements: list[ASTNode] = list  # type: ignore[assignment]


class ArrayLiteral(ASTNode):
    elements: list[ASTNode] = list  # type: ignore[assignment]


class HashPair(ASTNode):
    key: ASTNode
    value: ASTNode | None = None


class HashLiteral(ASTNode):
    pairs: list[HashPair] = list  # type: ignore[assignment]


class ArrayAccess(ASTNode):
    base: ASTNode
    index: ASTNode


class ArraySlice(ASTNode):
    base: ASTNode
    indices: ASTNode


class HashAccess(ASTNode):
    base: ASTNode
    key: ASTNode


class HashSlice(ASTNode):
    base: ASTNode
    keys: ASTNode


class PostfixDeref(ASTNode):
    base: ASTNode
    deref_type: str


class PostfixDerefSlice(ASTNode):
    base: ASTNode
    slice_type: str
    indices: ASTNode
    index_type: str


# Calls


class Call(ASTNode):
    name: str | None
    arguments: list[ASTNode] = list  # type: ignore[assignment]
    target: ASTNode | None = None


class MethodCall(ASTNode):
    object: ASTNode
    method: str
    arguments: list[ASTNode] = list  # type: ignore[assignment]


# Declarations


class Declaration(ASTNode):
    declarator: str
    variable: ASTNode
    initializer: ASTNode | None = None


class Parameter(ASTNode):
    variable: ASTNode
    default_value: ASTNode | None = None


class Sub(ASTNode):
    name: str | None
    parameters: list[ASTNode]
    body: list[ASTNode]
    is_async: bool = False


class Class(ASTNode):
    name: str
    body: list[ASTNode]
    parent: str | None = None


class Field(ASTNode):
    variable: ASTNode
    attributes: list[str] = list  # type: ignore[assignment]
    initializer: ASTNode | None = None


class Method(ASTNode):
    name: str
    parameters: list[ASTNode]
    body: list[ASTNode]


class Package(ASTNode):
    name: str
    block: list[ASTNode] | None = None


class Use(ASTNode):
    module: str
    imports: ASTNode | None = None
    unimport: bool = False
    version: str | None = None


class Require(ASTNode):
    module: ASTNode


# Control flow


class Block(ASTNode):
    statements: list[ASTNode]
    label: str | None = None


class DoBlock(ASTNode):
    statements: list[ASTNode]


class ElseIf(ASTNode):
    condition: ASTNode
    block: list[ASTNode]


class If(ASTNode):
    condition: ASTNode
    then_block: list[ASTNode]
    elsif_clauses: list[ElseIf] = list  # type: ignore[assignment]
    else_block: list[ASTNode] | None = None


class Unless(ASTNode):
    condition: ASTNode
    then_block: list[ASTNode]
    elsif_clauses: list[ElseIf] = list  # type: ignore[assignment]
    else_block: list[ASTNode] | None = None


class While(ASTNode):
    condition: ASTNode
    block: list[ASTNode]
    label: str | None = None
    continue_block: list[ASTNode] | None = None


class Until(ASTNode):
    condition: ASTNode
    block: list[ASTNode]
    label: str | None = None
    continue_block: list[ASTNode] | None = None


class Foreach(ASTNode):
    variable: ASTNode
    list_expr: ASTNode
    block: list[ASTNode]
    declarator: str | None = None
    label: str | None = None
    continue_block: list[ASTNode] | None = None


class For(ASTNode):
    init: ASTNode | None
    condition: ASTNode | None
    step: ASTNode | None
    block: list[ASTNode]
    label: str | None = None


class Return(ASTNode):
    value: ASTNode | None = None


class Last(ASTNode):
    label: str | None = None


class Next(ASTNode):
    label: str | None = None


class Redo(ASTNode):
    label: str | None = None


class Print(ASTNode):
    arguments: list[ASTNode]
    filehandle: ASTNode | None = None


class Say(ASTNode):
    arguments: list[ASTNode]
    filehandle: ASTNode | None = None


class Die(ASTNode):
    message: ASTNode | None = None


class Warn(ASTNode):
    message: ASTNode | None = None


class Catch(ASTNode):
    variable: ASTNode | None
    block: list[ASTNode]


class Try(ASTNode):
    body: list[ASTNode]
    catches: list[Catch] = list  # type: ignore[assignment]
    finally_block: list[ASTNode] | None = None


class When(ASTNode):
    condition: ASTNode | None
    block: list[ASTNode]


class Given(ASTNode):
    subject: ASTNode
    block: list[ASTNode]


class Case(ASTNode):
    pattern: ASTNode
    block: list[ASTNode]


class Match(ASTNode):
    subject: ASTNode
    cases: list[ASTNode]
    else_block: list[ASTNode] | None = None


class Error(ASTNode):
    message: str
    value: str = ""
    error_kind: str = "structural"


NODE_TYPES: dict[str, type[ASTNode]] = {
    cls.__name__: cls
    for cls in (
        Number,
        String,
        Boolean,
        Variable,
        Identifier,
        RegexLiteral,
        BinaryOp,
        UnaryOp,
        Ternary,
        Assignment,
        PatternMatch,
        List,
        ArrayLiteral,
        HashPair,
        HashLiteral,
        ArrayAccess,
        ArraySlice,
        HashAccess,
        HashSlice,
        PostfixDeref,
        PostfixDerefSlice,
        Call,
        MethodCall,
        Declaration,
        Parameter,
        Sub,
        Class,
        Field,
        Method,
        Package,
        Use,
        Require,
        Block,
        DoBlock,
        ElseIf,
        If,
        Unless,
        While,
        Until,
        Foreach,
        For,
        Return,
        Last,
        Next,
        Redo,
        Print,
        Say,
        Die,
        Warn,
        Catch,
        Try,
        When,
        Given,
        Case,
        Match,
        Error,
    )
}


def has_errors(node: ASTNode) -> bool:
    """True if ``node`` or any descendant is an Error node."""
    return any(isinstance(n, Error) for n in node.walk())


__all__ = ["ASTDict", "ASTNode", "NODE_TYPES", "has_errors", *NODE_TYPES]
