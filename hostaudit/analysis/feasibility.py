"""
Path-feasibility oracles.

The traversal driver reports branch entries and exits, assignments and
labels; the engine asks `is_feasible()` before it classifies a source
call. Z3PathFeasibility keeps the branch conditions guarding the current
program point as z3 constraints and answers "infeasible" only when their
conjunction is unsat. Integers keep their declared width and signedness;
values of unknown type are unconstrained. Timeouts and unknown
results count as feasible, so pruning never hides a reachable call.
"""

import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

import z3

from hostaudit.ir.expressions import Expr, ExprKind, SymbolRef
from hostaudit.ir.statements import Stmt, walk_expressions
from hostaudit.ir.procedure import FunctionDef
from hostaudit.ir.types import Symbol, SymbolScope, TypeKind
from hostaudit.analysis.shapes import constant_value


BV_WIDTH = 64
DEFAULT_TIMEOUT_MS = 1000

_MODELED_SCOPES = (SymbolScope.LOCAL, SymbolScope.PARAMETER)
_MODELED_TYPES = (TypeKind.INT, TypeKind.ENUM, TypeKind.POINTER)


class PathFeasibility(ABC):
    """Feasibility oracle for one function, fed by the traversal driver"""

    @abstractmethod
    def begin_function(self, fn: FunctionDef) -> None:
        """Forget everything and prepare for `fn`"""

    @abstractmethod
    def push(self, condition: Expr, taken: bool) -> None:
        """Enter a branch guarded by `condition` (negated if not taken)"""

    @abstractmethod
    def pop(self) -> None:
        """Leave the innermost branch"""

    @abstractmethod
    def assign(self, target: Expr, op: str, value: Optional[Expr]) -> None:
        """Record `target op value` (value None for uninitialized declarations)"""

    @abstractmethod
    def havoc(self, target: Expr) -> None:
        """`target` changed to an unknown value (++, --)"""

    @abstractmethod
    def havoc_symbols(self, symbols: Iterable[Symbol]) -> None:
        """Several symbols changed to unknown values (loop entry and exit)"""

    @abstractmethod
    def havoc_all(self) -> None:
        """Control can arrive from elsewhere (labels, case labels)"""

    @abstractmethod
    def memory_changed(self) -> None:
        """A call or a store through memory may have changed non-local state"""

    @abstractmethod
    def is_feasible(self) -> bool:
        """False only if the current program point is provably unreachable"""


class AlwaysFeasible(PathFeasibility):
    """Oracle that never prunes"""

    def begin_function(self, fn: FunctionDef) -> None:
        pass

    def push(self, condition: Expr, taken: bool) -> None:
        pass

    def pop(self) -> None:
        pass

    def assign(self, target: Expr, op: str, value: Optional[Expr]) -> None:
        pass

    def havoc(self, target: Expr) -> None:
        pass

    def havoc_symbols(self, symbols: Iterable[Symbol]) -> None:
        pass

    def havoc_all(self) -> None:
        pass

    def memory_changed(self) -> None:
        pass

    def is_feasible(self) -> bool:
        return True


def assigned_symbols(stmts: Iterable[Stmt], exprs: Iterable[Expr] = ()) -> Set[Symbol]:
    """Symbols directly written anywhere inside the given statements and expressions"""
    nodes: List[Expr] = []
    for stmt in stmts:
        if stmt is not None:
            nodes.extend(walk_expressions(stmt))
    for exp in exprs:
        nodes.extend(exp.walk())

    written: Set[Symbol] = set()
    for exp in nodes:
        target = None
        if exp.kind == ExprKind.ASSIGNMENT:
            target = exp.left
        elif exp.kind in (ExprKind.PREOP, ExprKind.POSTOP) and exp.op in ("++", "--"):
            target = exp.operand
        if isinstance(target, SymbolRef) and target.symbol is not None:
            written.add(target.symbol)
    return written


# =============================================================================
# Integer layout helpers
# =============================================================================

class _Value(NamedTuple):
    bv: z3.BitVecRef
    width: int
    signed: bool


_ZERO = z3.BitVecVal(0, BV_WIDTH)
_INT_LAYOUT = (32, True)
_OPAQUE_LAYOUT = (BV_WIDTH, True)


def _extend(bv: z3.BitVecRef, width: int, signed: bool) -> z3.BitVecRef:
    """Convert a BV_WIDTH-bit value to a `width`-bit integer and widen it back"""
    if width == 1:
        return z3.If(bv != _ZERO, z3.BitVecVal(1, BV_WIDTH), _ZERO)
    if width >= BV_WIDTH:
        return bv
    return _widen(z3.Extract(width - 1, 0, bv), signed)


def _widen(bv: z3.BitVecRef, signed: bool) -> z3.BitVecRef:
    extra = BV_WIDTH - bv.size()
    if extra == 0:
        return bv
    if signed and bv.size() > 1:
        return z3.SignExt(extra, bv)
    return z3.ZeroExt(extra, bv)


def _promote(value: _Value) -> _Value:
    """Integer promotion: anything narrower than int becomes int"""
    if value.width < 32:
        return _Value(value.bv, *_INT_LAYOUT)
    return value


def _common(left: _Value, right: _Value) -> Tuple[int, bool]:
    """Usual arithmetic conversions for two promoted operands"""
    left, right = _promote(left), _promote(right)
    if left.width == right.width:
        return left.width, left.signed and right.signed
    wider = left if left.width > right.width else right
    return wider.width, wider.signed


_SUFFIX = re.compile(r"[uUlL]+$")


def _constant(value: int, allow_unsigned: bool, long_only: bool = False,
              unsigned_only: bool = False) -> Optional[_Value]:
    """Smallest of int, unsigned int, long, unsigned long holding `value`"""
    for width, signed in ((32, True), (32, False), (64, True), (64, False)):
        if long_only and width < 64:
            continue
        if signed and unsigned_only:
            continue
        if not signed and not allow_unsigned and width < 64:
            continue
        low, high = (-(1 << (width - 1)), (1 << (width - 1)) - 1) if signed else (0, (1 << width) - 1)
        if low <= value <= high:
            return _Value(z3.BitVecVal(value, BV_WIDTH), width, signed)
    return None


def _literal(exp: Expr) -> Optional[_Value]:
    value = exp.value
    if not isinstance(value, int) or isinstance(value, bool):
        return None
    text = exp.text or str(value)
    if text.startswith("'"):
        return _Value(z3.BitVecVal(value, BV_WIDTH), *_INT_LAYOUT)
    m = _SUFFIX.search(text)
    suffix = m.group(0).lower() if m else ""
    digits = text[:len(text) - len(suffix)]
    # Hex and octal constants may take an unsigned type without a suffix
    based = len(digits) > 1 and digits.startswith("0")
    return _constant(value, allow_unsigned=based or "u" in suffix,
                     long_only="l" in suffix, unsigned_only="u" in suffix)


class Z3PathFeasibility(PathFeasibility):
    """
    z3-backed oracle.

    Modeled variables are scalar and pointer locals and parameters whose
    address is never taken; each assignment gives them a new SSA version.
    Everything else is encoded as an opaque bit-vector keyed by its text
    and by a memory epoch that advances on every call and store.

    Example:
        oracle = Z3PathFeasibility(timeout_ms=500)
        oracle.begin_function(fn)
        oracle.push(Literal.integer(0), taken=True)
        oracle.is_feasible()   # False
    """

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.timeout_ms = timeout_ms
        self.queries = 0
        self._reset()

    def _reset(self) -> None:
        self._frames: List[List[z3.BoolRef]] = [[]]
        self._versions: Dict[Symbol, int] = {}
        self._ids: Dict[Symbol, int] = {}
        self._address_taken: Set[Symbol] = set()
        self._opaque: Dict[str, z3.BitVecRef] = {}
        self._epoch = 0

    # =========================================================================
    # Driver events
    # =========================================================================

    def begin_function(self, fn: FunctionDef) -> None:
        self._reset()
        for exp in walk_expressions(fn.body):
            if exp.kind == ExprKind.PREOP and exp.op == "&" and isinstance(exp.operand, SymbolRef):
                if exp.operand.symbol is not None:
                    self._address_taken.add(exp.operand.symbol)

    def push(self, condition: Expr, taken: bool) -> None:
        constraint = self._bool(condition)
        if not taken:
            constraint = z3.Not(constraint)
        self._frames.append([constraint])

    def pop(self) -> None:
        if len(self._frames) > 1:
            self._frames.pop()

    def assign(self, target: Expr, op: str, value: Optional[Expr]) -> None:
        if not self._is_modeled_ref(target):
            self.memory_changed()
            return
        symbol = target.symbol
        constant = op == "=" and constant_value(value) is not None
        layout = symbol.typ.int_layout()
        if constant and layout is not None:
            stored = _extend(self._value(value).bv, *layout)
            self._bump(symbol)
            self._frames[-1].append(self._var(symbol).bv == stored)
        else:
            self._bump(symbol)

    def havoc(self, target: Expr) -> None:
        if self._is_modeled_ref(target):
            self._bump(target.symbol)
        else:
            self.memory_changed()

    def havoc_symbols(self, symbols: Iterable[Symbol]) -> None:
        for symbol in symbols:
            if self._is_modeled(symbol):
                self._bump(symbol)

    def havoc_all(self) -> None:
        for symbol in list(self._versions):
            self._bump(symbol)
        self.memory_changed()

    def memory_changed(self) -> None:
        self._epoch += 1

    # =========================================================================
    # Query
    # =========================================================================

    def constraints(self) -> List[z3.BoolRef]:
        return [c for frame in self._frames for c in frame]

    def is_feasible(self) -> bool:
        constraints = self.constraints()
        if not constraints:
            return True
        self.queries += 1
        solver = z3.Solver()
        solver.set("timeout", self.timeout_ms)
        for c in constraints:
            solver.add(c)
        return solver.check() != z3.unsat

    # =========================================================================
    # Encoding
    # =========================================================================
    #
    # Every value is a 64-bit bit-vector holding the C value of its type,
    # sign- or zero-extended, next to that type's (width, signed) layout.
    # Arithmetic follows the integer promotions and usual arithmetic
    # conversions, wrapping at the result width.

    def _is_modeled(self, symbol: Optional[Symbol]) -> bool:
        return (symbol is not None
                and symbol.scope in _MODELED_SCOPES
                and symbol.typ.kind in _MODELED_TYPES
                and symbol not in self._address_taken)

    def _is_modeled_ref(self, exp: Expr) -> bool:
        return isinstance(exp, SymbolRef) and self._is_modeled(exp.symbol)

    def _bump(self, symbol: Symbol) -> None:
        self._versions[symbol] = self._versions.get(symbol, 0) + 1

    def _var(self, symbol: Symbol) -> _Value:
        ident = self._ids.setdefault(symbol, len(self._ids))
        version = self._versions.setdefault(symbol, 0)
        width, signed = symbol.typ.int_layout() or _OPAQUE_LAYOUT
        raw = z3.BitVec(f"{symbol.name}!{ident}_{version}", width)
        return _Value(_widen(raw, signed), width, signed)

    def _opaque_var(self, exp: Expr) -> _Value:
        key = f"{exp}@{self._epoch}"
        if key not in self._opaque:
            self._opaque[key] = z3.BitVec(f"opaque!{len(self._opaque)}", BV_WIDTH)
        return _Value(self._opaque[key], *_OPAQUE_LAYOUT)

    def _bool(self, exp: Expr) -> z3.BoolRef:
        kind = exp.kind
        if kind == ExprKind.COMPARE:
            return self._compare(exp)
        if kind == ExprKind.LOGICAL:
            if exp.op == "&&":
                return z3.And(self._bool(exp.left), self._bool(exp.right))
            return z3.Or(self._bool(exp.left), self._bool(exp.right))
        if kind == ExprKind.PREOP and exp.op == "!":
            return z3.Not(self._bool(exp.operand))
        return self._value(exp).bv != _ZERO

    def _compare(self, exp: Expr) -> z3.BoolRef:
        left, right = self._value(exp.left), self._value(exp.right)
        width, signed = _common(left, right)
        a = _extend(left.bv, width, signed)
        b = _extend(right.bv, width, signed)
        op = exp.op
        if op == "==":
            return a == b
        if op == "!=":
            return a != b
        if signed:
            if op == "<":
                return a < b
            if op == ">":
                return a > b
            if op == "<=":
                return a <= b
            return a >= b
        if op == "<":
            return z3.ULT(a, b)
        if op == ">":
            return z3.UGT(a, b)
        if op == "<=":
            return z3.ULE(a, b)
        return z3.UGE(a, b)

    def _value(self, exp: Expr) -> _Value:
        kind = exp.kind
        if kind == ExprKind.LITERAL:
            return _literal(exp) or self._opaque_var(exp)
        if kind == ExprKind.SYMBOL:
            symbol = exp.symbol
            if symbol is not None and symbol.scope == SymbolScope.CONSTANT and symbol.value is not None:
                return _constant(symbol.value, allow_unsigned=True) or self._opaque_var(exp)
            if self._is_modeled(symbol):
                return self._var(symbol)
            return self._opaque_var(exp)
        if kind == ExprKind.CAST:
            layout = exp.typ.int_layout()
            if layout is None:
                return self._opaque_var(exp)
            width, signed = layout
            return _Value(_extend(self._value(exp.operand).bv, width, signed), width, signed)
        if kind == ExprKind.PREOP:
            if exp.op in ("-", "+", "~"):
                operand = _promote(self._value(exp.operand))
                if exp.op == "-":
                    bv = -operand.bv
                elif exp.op == "~":
                    bv = ~operand.bv
                else:
                    bv = operand.bv
                return _Value(_extend(bv, operand.width, operand.signed), operand.width, operand.signed)
            if exp.op == "!":
                return self._from_bool(exp)
            return self._opaque_var(exp)
        if kind == ExprKind.BINARY:
            return self._binary(exp)
        if kind in (ExprKind.COMPARE, ExprKind.LOGICAL):
            return self._from_bool(exp)
        if kind == ExprKind.COMMA:
            return self._value(exp.right)
        if kind == ExprKind.CONDITIONAL:
            cond = self._value(exp.condition)
            then = cond if exp.true_exp is None else self._value(exp.true_exp)
            other = self._value(exp.false_exp)
            width, signed = _common(then, other)
            return _Value(z3.If(cond.bv != _ZERO,
                                _extend(then.bv, width, signed),
                                _extend(other.bv, width, signed)), width, signed)
        return self._opaque_var(exp)

    def _from_bool(self, exp: Expr) -> _Value:
        return _Value(z3.If(self._bool(exp), z3.BitVecVal(1, BV_WIDTH), _ZERO), *_INT_LAYOUT)

    def _binary(self, exp: Expr) -> _Value:
        left, right = self._value(exp.left), self._value(exp.right)
        op = exp.op
        if op in ("<<", ">>"):
            # Result has the promoted type of the left operand
            left = _promote(left)
            width, signed = left.width, left.signed
            a, b = left.bv, _promote(right).bv
            if op == "<<":
                bv = a << b
            else:
                bv = a >> b if signed else z3.LShR(a, b)
            return _Value(_extend(bv, width, signed), width, signed)

        width, signed = _common(left, right)
        a = _extend(left.bv, width, signed)
        b = _extend(right.bv, width, signed)
        if op == "+":
            bv = a + b
        elif op == "-":
            bv = a - b
        elif op == "*":
            bv = a * b
        elif op == "/":
            bv = a / b if signed else z3.UDiv(a, b)
        elif op == "%":
            bv = z3.SRem(a, b) if signed else z3.URem(a, b)
        elif op == "&":
            bv = a & b
        elif op == "|":
            bv = a | b
        elif op == "^":
            bv = a ^ b
        else:
            return self._opaque_var(exp)
        return _Value(_extend(bv, width, signed), width, signed)
