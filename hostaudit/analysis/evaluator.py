"""
Expression taint evaluator.

Answers "does this expression carry a host-derived value?" against the
current tracker state. Structural answers come from the expression tree;
for shapes the tree does not model (opaque text, statement expressions,
unresolved names) the evaluator falls back to a textual containment test
of the rendered expression against every tainted symbol's name. That
fallback over-approximates on substring collisions (`len` inside
`buflen`) and its verdicts are flagged `heuristic` so callers can say so.
"""

from dataclasses import dataclass
from typing import Optional

from hostaudit.ir.expressions import Expr, ExprKind
from hostaudit.ir.types import Symbol
from hostaudit.analysis.state import TaintStateTracker
from hostaudit.analysis.shapes import strip_wrappers, referenced_symbol
from hostaudit.analysis.findings import EngineError


@dataclass(frozen=True)
class TaintVerdict:
    """Result of one evaluation"""
    tainted: bool
    symbol: Optional[Symbol] = None     # the tainted symbol that was found
    heuristic: bool = False             # decided by textual containment

    def __bool__(self) -> bool:
        return self.tainted


CLEAN = TaintVerdict(False)


class ExpressionTaintEvaluator:
    """Recursive taint query over IR expressions"""

    def __init__(self, tracker: TaintStateTracker):
        self.tracker = tracker

    def is_tainted(self, exp: Optional[Expr]) -> bool:
        return self.evaluate(exp).tainted

    def evaluate(self, exp: Optional[Expr]) -> TaintVerdict:
        if exp is None:
            return CLEAN
        exp = strip_wrappers(exp)
        kind = exp.kind

        # Source calls are reported by the call-site classifier only
        if kind == ExprKind.CALL:
            return CLEAN

        if kind in (ExprKind.BINARY, ExprKind.COMPARE, ExprKind.LOGICAL,
                    ExprKind.COMMA, ExprKind.INDEX, ExprKind.ASSIGNMENT):
            return self._first(exp.left, exp.right)

        if kind == ExprKind.CONDITIONAL:
            return self._first(exp.condition, exp.true_exp, exp.false_exp)

        if kind == ExprKind.SYMBOL:
            if exp.symbol is None:
                return self._textual(exp)
            return self._symbol(exp.symbol)

        if kind == ExprKind.MEMBER:
            symbol = referenced_symbol(exp)
            if symbol is not None:
                return self._symbol(symbol)
            return self._textual(exp)

        if kind == ExprKind.LITERAL:
            return CLEAN

        if kind in (ExprKind.OPAQUE, ExprKind.STMT_EXPR):
            return self._textual(exp)

        raise EngineError(f"unhandled expression kind {kind.name} in '{exp}'")

    def _first(self, *exps: Expr) -> TaintVerdict:
        for e in exps:
            verdict = self.evaluate(e)
            if verdict.tainted:
                return verdict
        return CLEAN

    def _symbol(self, symbol: Symbol) -> TaintVerdict:
        if self.tracker.is_tainted(symbol):
            return TaintVerdict(True, symbol)
        return CLEAN

    def _textual(self, exp: Expr) -> TaintVerdict:
        text = str(exp)
        for symbol in self.tracker.tainted_symbols():
            if symbol.name and symbol.name in text:
                return TaintVerdict(True, symbol, heuristic=True)
        return CLEAN
