"""
Statement nodes of the hostaudit IR.

Statements own their expressions; the traversal driver walks them in
program order and tells the engine which statement encloses each call.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional
from enum import Enum, auto

from .types import Location, Symbol
from .expressions import Expr, ExprKind


class StmtKind(Enum):
    """Tag of a statement node"""
    EXPRESSION = auto()
    RETURN = auto()
    IF = auto()
    SWITCH = auto()
    CASE = auto()
    ITERATOR = auto()
    DECLARATION = auto()
    BLOCK = auto()
    LABEL = auto()
    GOTO = auto()
    BREAK = auto()
    CONTINUE = auto()
    ASM = auto()
    EMPTY = auto()


@dataclass(eq=False)
class Stmt:
    """Base class for statements (identity equality)"""

    kind = StmtKind.EMPTY

    def __str__(self) -> str:
        return "<stmt>"

    def children(self) -> List['Stmt']:
        """Directly nested statements"""
        return []

    def expressions(self) -> List[Expr]:
        """Expressions owned by this statement (not by nested statements)"""
        return []


@dataclass(eq=False)
class ExprStmt(Stmt):
    """Expression evaluated for its side effects: expr;"""
    expr: Expr
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.EXPRESSION

    def __str__(self) -> str:
        return f"{self.expr};"

    def expressions(self) -> List[Expr]:
        return [self.expr]


@dataclass(eq=False)
class Return(Stmt):
    """Return from the function, with an optional value"""
    value: Optional[Expr] = None
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.RETURN

    def __str__(self) -> str:
        if self.value is not None:
            return f"return {self.value};"
        return "return;"

    def expressions(self) -> List[Expr]:
        return [self.value] if self.value is not None else []


@dataclass(eq=False)
class If(Stmt):
    condition: Expr
    then: Stmt
    otherwise: Optional[Stmt] = None
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.IF

    def __str__(self) -> str:
        return f"if ({self.condition}) ..."

    def children(self) -> List[Stmt]:
        return [s for s in (self.then, self.otherwise) if s is not None]

    def expressions(self) -> List[Expr]:
        return [self.condition]


@dataclass(eq=False)
class Switch(Stmt):
    condition: Expr
    body: Stmt
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.SWITCH

    def __str__(self) -> str:
        return f"switch ({self.condition}) ..."

    def children(self) -> List[Stmt]:
        return [self.body]

    def expressions(self) -> List[Expr]:
        return [self.condition]


@dataclass(eq=False)
class Case(Stmt):
    """case/default label together with the statements it heads"""
    value: Optional[Expr]                # None for default:
    stmts: List[Stmt] = field(default_factory=list)
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.CASE

    def __str__(self) -> str:
        if self.value is None:
            return "default:"
        return f"case {self.value}:"

    def children(self) -> List[Stmt]:
        return list(self.stmts)


@dataclass(eq=False)
class Loop(Stmt):
    """
    Iterator statement.

    for (pre; pre_cond; post) body
    while (pre_cond) body
    do body while (post_cond);

    `pre` and `post` are ordinary statements; only the two conditions are
    part of the loop header itself.
    """
    loop_kind: str                       # "for", "while" or "do"
    body: Stmt
    pre: Optional[Stmt] = None
    pre_cond: Optional[Expr] = None
    post: Optional[Stmt] = None
    post_cond: Optional[Expr] = None
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.ITERATOR

    def __str__(self) -> str:
        if self.loop_kind == "do":
            return f"do ... while ({self.post_cond})"
        return f"{self.loop_kind} ({self.pre_cond if self.pre_cond is not None else ''}) ..."

    def header(self) -> List[Expr]:
        """Loop condition expressions"""
        return [e for e in (self.pre_cond, self.post_cond) if e is not None]

    def children(self) -> List[Stmt]:
        return [s for s in (self.pre, self.body, self.post) if s is not None]

    def expressions(self) -> List[Expr]:
        return self.header()


@dataclass(eq=False)
class Declaration(Stmt):
    """Declaration of one symbol, optionally initialized"""
    symbol: Symbol
    init: Optional[Expr] = None
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.DECLARATION

    def __str__(self) -> str:
        if self.init is not None:
            return f"{self.symbol.typ} {self.symbol.name} = {self.init};"
        return f"{self.symbol.typ} {self.symbol.name};"

    def expressions(self) -> List[Expr]:
        return [self.init] if self.init is not None else []


@dataclass(eq=False)
class Block(Stmt):
    """Compound statement { ... }"""
    stmts: List[Stmt] = field(default_factory=list)
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.BLOCK

    def __str__(self) -> str:
        return "{ ... }"

    def children(self) -> List[Stmt]:
        return list(self.stmts)


@dataclass(eq=False)
class Label(Stmt):
    name: str
    stmt: Optional[Stmt] = None
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.LABEL

    def __str__(self) -> str:
        return f"{self.name}:"

    def children(self) -> List[Stmt]:
        return [self.stmt] if self.stmt is not None else []


@dataclass(eq=False)
class Goto(Stmt):
    label: str
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.GOTO

    def __str__(self) -> str:
        return f"goto {self.label};"


@dataclass(eq=False)
class Break(Stmt):
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.BREAK

    def __str__(self) -> str:
        return "break;"


@dataclass(eq=False)
class Continue(Stmt):
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.CONTINUE

    def __str__(self) -> str:
        return "continue;"


@dataclass(eq=False)
class Asm(Stmt):
    """Inline assembly; operand expressions are still evaluated"""
    text: str
    operands: List[Expr] = field(default_factory=list)
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.ASM

    def __str__(self) -> str:
        return "asm(...);"

    def expressions(self) -> List[Expr]:
        return list(self.operands)


@dataclass(eq=False)
class Empty(Stmt):
    loc: Location = field(default_factory=Location.unknown)

    kind = StmtKind.EMPTY

    def __str__(self) -> str:
        return ";"


def walk_statements(stmt: Stmt) -> Iterator[Stmt]:
    """
    Pre-order iteration over a statement tree.

    Descends into GNU statement expressions found in owned expressions.
    """
    yield stmt
    for exp in stmt.expressions():
        for sub in exp.walk():
            if sub.kind == ExprKind.STMT_EXPR:
                yield from walk_statements(sub.body)
    for child in stmt.children():
        yield from walk_statements(child)


def walk_expressions(stmt: Stmt) -> Iterator[Expr]:
    """Every expression node reachable from a statement tree"""
    for s in walk_statements(stmt):
        for exp in s.expressions():
            yield from exp.walk()
