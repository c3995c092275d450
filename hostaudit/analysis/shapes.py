"""
Expression shape helpers shared by the evaluator, classifier and hooks.
"""

from typing import Optional

from hostaudit.ir.expressions import (
    Expr, ExprKind, SymbolRef, Literal, PreOp, PostOp, Cast, Binary, Member,
)
from hostaudit.ir.types import Symbol, SymbolScope


_WRAPPERS = (ExprKind.PREOP, ExprKind.POSTOP, ExprKind.CAST)


def strip_wrappers(exp: Expr) -> Expr:
    """Remove pre/post operations and casts: `(u32)*&x++` -> `x`"""
    while exp.kind in _WRAPPERS:
        exp = exp.operand
    return exp


def leftmost_operand(exp: Expr) -> Expr:
    """
    Descend a left-associated arithmetic or index chain to its base.

    `buf[i + 1]` -> `buf`, `p + off` -> `p`, `(u8 *)base + 4` -> `base`
    """
    exp = strip_wrappers(exp)
    while exp.kind in (ExprKind.BINARY, ExprKind.INDEX):
        exp = strip_wrappers(exp.left)
    return exp


def is_void_cast(exp: Expr) -> bool:
    return isinstance(exp, Cast) and exp.is_void()


def takes_address(exp: Expr) -> bool:
    """True for `&x`, `(void *)&x` and other wrapped address-of forms"""
    while exp.kind in _WRAPPERS:
        if isinstance(exp, PreOp) and exp.op == "&":
            return True
        exp = exp.operand
    return False


def referenced_symbol(exp: Expr) -> Optional[Symbol]:
    """
    Symbol behind a symbol reference or a dereference of one.

    Member accesses are followed to their base; anything else has no
    single symbol.
    """
    exp = strip_wrappers(exp)
    while isinstance(exp, Member):
        exp = strip_wrappers(exp.base)
    if isinstance(exp, SymbolRef):
        return exp.symbol
    return None


def constant_value(exp: Optional[Expr]) -> Optional[int]:
    """
    Integer value of a constant expression, or None.

    Handles literals, enumerators and #define'd constants, unary minus and
    complement, casts and the usual arithmetic and bitwise operators.
    """
    if exp is None:
        return None
    if isinstance(exp, Literal):
        return exp.value if isinstance(exp.value, int) else None
    if isinstance(exp, SymbolRef):
        sym = exp.symbol
        if sym is not None and sym.scope == SymbolScope.CONSTANT:
            return sym.value
        return None
    if isinstance(exp, Cast):
        return constant_value(exp.operand)
    if isinstance(exp, PreOp):
        val = constant_value(exp.operand)
        if val is None:
            return None
        if exp.op == "-":
            return -val
        if exp.op == "+":
            return val
        if exp.op == "~":
            return ~val
        if exp.op == "!":
            return int(not val)
        return None
    if isinstance(exp, PostOp):
        return None
    if isinstance(exp, Binary) and exp.kind in (ExprKind.BINARY, ExprKind.COMPARE,
                                                 ExprKind.LOGICAL):
        left = constant_value(exp.left)
        right = constant_value(exp.right)
        if left is None or right is None:
            return None
        return _fold(exp.op, left, right)
    return None


def _fold(op: str, left: int, right: int) -> Optional[int]:
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if op == "/":
        return int(left / right) if right else None
    if op == "%":
        return left - right * int(left / right) if right else None
    if op == "<<":
        return left << right if 0 <= right < 128 else None
    if op == ">>":
        return left >> right if 0 <= right < 128 else None
    if op == "&":
        return left & right
    if op == "|":
        return left | right
    if op == "^":
        return left ^ right
    if op == "==":
        return int(left == right)
    if op == "!=":
        return int(left != right)
    if op == "<":
        return int(left < right)
    if op == ">":
        return int(left > right)
    if op == "<=":
        return int(left <= right)
    if op == ">=":
        return int(left >= right)
    if op == "&&":
        return int(bool(left) and bool(right))
    if op == "||":
        return int(bool(left) or bool(right))
    return None
