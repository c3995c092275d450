"""
Expression nodes of the hostaudit IR.

Expressions form a tagged tree. Every node knows its `kind`, its evaluated
sub-expressions (`children()`) and renders to a canonical, whitespace
normalized C-like text via `str()`. The canonical text is what findings
quote and what fingerprints hash, so it must not depend on the original
source formatting.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union, TYPE_CHECKING
from enum import Enum, auto

from .types import CType, Location, Symbol

if TYPE_CHECKING:
    from .statements import Block


class ExprKind(Enum):
    """Tag of an expression node"""
    SYMBOL = auto()
    LITERAL = auto()
    PREOP = auto()        # *p, &v, -x, !x, ~x, ++x, --x
    POSTOP = auto()       # x++, x--
    CAST = auto()
    BINARY = auto()       # arithmetic and bitwise
    COMPARE = auto()
    LOGICAL = auto()
    COMMA = auto()
    INDEX = auto()        # a[i], a left-associated binary
    ASSIGNMENT = auto()
    CONDITIONAL = auto()
    CALL = auto()
    MEMBER = auto()       # s.f and p->f
    STMT_EXPR = auto()    # GNU ({ ... })
    OPAQUE = auto()       # sizeof, initializer lists, asm, parse errors


COMPARE_OPS = frozenset({"==", "!=", "<", ">", "<=", ">="})
LOGICAL_OPS = frozenset({"&&", "||"})


@dataclass(eq=False)
class Expr:
    """Base class for expressions (identity equality)"""

    kind = ExprKind.OPAQUE

    def __str__(self) -> str:
        return "<exp>"

    def children(self) -> List['Expr']:
        """Sub-expressions evaluated when this expression is evaluated"""
        return []

    def walk(self) -> Iterator['Expr']:
        """Pre-order iteration over this expression and its sub-expressions"""
        yield self
        for child in self.children():
            yield from child.walk()

    def contains(self, node: 'Expr') -> bool:
        """True if `node` (by identity) occurs in this subtree"""
        return any(e is node for e in self.walk())


def _wrap(exp: Expr) -> str:
    """Parenthesize compound operands so rendering stays unambiguous"""
    if exp.kind in (ExprKind.BINARY, ExprKind.COMPARE, ExprKind.LOGICAL,
                    ExprKind.COMMA, ExprKind.ASSIGNMENT, ExprKind.CONDITIONAL,
                    ExprKind.CAST):
        return f"({exp})"
    return str(exp)


@dataclass(eq=False)
class SymbolRef(Expr):
    """
    Reference to a named storage location.

    `symbol` is None when the name has no resolvable declaration.
    """
    name: str
    symbol: Optional[Symbol] = None
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.SYMBOL

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"SymbolRef({self.name!r})"


@dataclass(eq=False)
class Literal(Expr):
    """Integer, floating, character or string constant"""
    value: Union[int, float, str, None]
    text: str = ""
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.LITERAL

    def __str__(self) -> str:
        if self.text:
            return self.text
        if isinstance(self.value, str):
            return f'"{self.value}"'
        return str(self.value)

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"

    @classmethod
    def integer(cls, n: int, loc: Optional[Location] = None) -> 'Literal':
        return cls(n, str(n), loc or Location.unknown())


@dataclass(eq=False)
class PreOp(Expr):
    """Prefix operation: dereference, address-of, negation, increment..."""
    op: str
    operand: Expr
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.PREOP

    def __str__(self) -> str:
        return f"{self.op}{_wrap(self.operand)}"

    def children(self) -> List[Expr]:
        return [self.operand]


@dataclass(eq=False)
class PostOp(Expr):
    """Postfix increment or decrement"""
    op: str
    operand: Expr
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.POSTOP

    def __str__(self) -> str:
        return f"{_wrap(self.operand)}{self.op}"

    def children(self) -> List[Expr]:
        return [self.operand]


@dataclass(eq=False)
class Cast(Expr):
    """Type cast: (typ)operand"""
    typ: CType
    operand: Expr
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.CAST

    def __str__(self) -> str:
        return f"({self.typ}){_wrap(self.operand)}"

    def children(self) -> List[Expr]:
        return [self.operand]

    def is_void(self) -> bool:
        return str(self.typ) == "void"


@dataclass(eq=False)
class Binary(Expr):
    """
    Binary operation.

    Covers arithmetic, bitwise, comparison, logical and comma operators;
    `kind` tells them apart.
    """
    op: str
    left: Expr
    right: Expr
    loc: Location = field(default_factory=Location.unknown)

    @property
    def kind(self) -> ExprKind:
        if self.op in COMPARE_OPS:
            return ExprKind.COMPARE
        if self.op in LOGICAL_OPS:
            return ExprKind.LOGICAL
        if self.op == ",":
            return ExprKind.COMMA
        return ExprKind.BINARY

    def __str__(self) -> str:
        if self.op == ",":
            return f"{self.left}, {self.right}"
        return f"{_wrap(self.left)} {self.op} {_wrap(self.right)}"

    def children(self) -> List[Expr]:
        return [self.left, self.right]


@dataclass(eq=False)
class Index(Binary):
    """Array subscript base[index], kept as a left-associated binary"""
    op: str = "[]"
    left: Expr = None
    right: Expr = None

    @property
    def kind(self) -> ExprKind:
        return ExprKind.INDEX

    def __str__(self) -> str:
        return f"{_wrap(self.left)}[{self.right}]"

    @classmethod
    def of(cls, base: Expr, index: Expr, loc: Optional[Location] = None) -> 'Index':
        return cls(op="[]", left=base, right=index, loc=loc or Location.unknown())


@dataclass(eq=False)
class Assignment(Expr):
    """Simple or compound assignment: left op right"""
    op: str
    left: Expr
    right: Expr
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.ASSIGNMENT

    def __str__(self) -> str:
        return f"{self.left} {self.op} {self.right}"

    def children(self) -> List[Expr]:
        return [self.left, self.right]


@dataclass(eq=False)
class Conditional(Expr):
    """
    Ternary select: condition ? true_exp : false_exp

    `true_exp` is None for the GNU `condition ?: false_exp` form, which
    yields the condition itself when it is non-zero.
    """
    condition: Expr
    true_exp: Optional[Expr]
    false_exp: Expr
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.CONDITIONAL

    def __str__(self) -> str:
        if self.true_exp is None:
            return f"{_wrap(self.condition)} ?: {_wrap(self.false_exp)}"
        return f"{_wrap(self.condition)} ? {_wrap(self.true_exp)} : {_wrap(self.false_exp)}"

    def children(self) -> List[Expr]:
        if self.true_exp is None:
            return [self.condition, self.false_exp]
        return [self.condition, self.true_exp, self.false_exp]


@dataclass(eq=False)
class Call(Expr):
    """
    Function call.

    `name` is the callee name for direct calls and None for calls through
    function pointers (`func` then holds the callee expression).
    """
    name: Optional[str]
    args: List[Expr] = field(default_factory=list)
    func: Optional[Expr] = None
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.CALL

    def __str__(self) -> str:
        args_str = ", ".join(str(a) for a in self.args)
        if self.name:
            return f"{self.name}({args_str})"
        return f"{_wrap(self.func) if self.func else '<fn>'}({args_str})"

    def __repr__(self) -> str:
        return f"Call({self.name!r}, {len(self.args)} args)"

    def children(self) -> List[Expr]:
        if self.func is not None and not self.name:
            return [self.func] + list(self.args)
        return list(self.args)


@dataclass(eq=False)
class Member(Expr):
    """Structure member access: base.member or base->member"""
    base: Expr
    member: str
    arrow: bool = False
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.MEMBER

    def __str__(self) -> str:
        op = "->" if self.arrow else "."
        return f"{_wrap(self.base)}{op}{self.member}"

    def children(self) -> List[Expr]:
        return [self.base]


@dataclass(eq=False)
class StmtExpr(Expr):
    """GNU statement expression ({ ... }); its statements are walked by the driver"""
    body: 'Block'
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.STMT_EXPR

    def __str__(self) -> str:
        return "({ ... })"


@dataclass(eq=False)
class Opaque(Expr):
    """
    Expression the IR does not model structurally.

    `children` lists sub-expressions that are still evaluated at run time
    (initializer list elements, asm operands); sizeof operands are not.
    """
    text: str
    node_type: str = "opaque"
    parts: List[Expr] = field(default_factory=list)
    loc: Location = field(default_factory=Location.unknown)

    kind = ExprKind.OPAQUE

    def __str__(self) -> str:
        return " ".join(self.text.split())

    def children(self) -> List[Expr]:
        return list(self.parts)
