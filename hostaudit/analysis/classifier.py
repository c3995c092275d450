"""
Call-site classifier and diagnostic emitter.

Runs once per call to a cataloged source function and emits exactly one
finding for it:

    Step 1  argument-carrying sources take the designated argument as the
            destination (several designated arguments: one combined error)
    Step 2  otherwise the enclosing statement decides, see _classify_context
    Step 3  the destination is reduced to a symbol and classified; local
            destinations become LocalFromHost for the rest of the function

Infeasible call sites and CPUID calls on trusted leaves emit nothing.
"""

from typing import Optional

from hostaudit.ir.expressions import Binary, Call, Expr, ExprKind, SymbolRef
from hostaudit.ir.statements import StmtKind
from hostaudit.specs.catalogue import Catalogue
from hostaudit.analysis.state import TaintStateTracker
from hostaudit.analysis.shapes import (
    strip_wrappers, leftmost_operand, is_void_cast, constant_value,
)
from hostaudit.analysis.findings import (
    EngineError, FindingEmitter, Severity, Template,
)


ERROR = Severity.ERROR
WARNING = Severity.WARNING


class CallSiteClassifier:
    """Decides destination and severity of each source call"""

    def __init__(self, catalogue: Catalogue, tracker: TaintStateTracker,
                 emitter: FindingEmitter):
        self.catalogue = catalogue
        self.tracker = tracker
        self.emitter = emitter

    def classify(self, call: Call, ctx) -> None:
        name = call.name
        if not name:
            raise EngineError(f"source call without a callee name: '{call}'")
        if ctx.statement is None:
            raise EngineError(f"'{call}' has no enclosing statement")

        if not ctx.is_feasible():
            return
        if self.catalogue.is_cpuid(name) and not self._cpuid_untrusted(call):
            return

        # Step 1: argument-carrying sources
        positions = self.catalogue.arg_positions(name)
        if len(positions) > 1:
            args = ", ".join(f"'{call.args[p]}'" if p < len(call.args) else f"#{p}"
                             for p in positions)
            self._emit(ctx, call, ERROR, Template.COMBINED, args=args)
            return
        if positions:
            pos = positions[0]
            if pos >= len(call.args):
                raise EngineError(
                    f"{name}: argument {pos} carries host data but the call has "
                    f"{len(call.args)} arguments")
            self._classify_destination(call, call.args[pos], ctx)
            return

        # Step 2: context of the enclosing statement
        self._classify_context(call, ctx)

    def _cpuid_untrusted(self, call: Call) -> bool:
        pos = self.catalogue.cpuid_leaf_position(call.name)
        leaf = None
        if pos is not None:
            if pos >= len(call.args):
                raise EngineError(f"{call.name}: missing CPUID leaf argument")
            leaf = constant_value(call.args[pos])
        return self.catalogue.cpuid_leaf_untrusted(leaf)

    # =========================================================================
    # Step 2
    # =========================================================================

    def _classify_context(self, call: Call, ctx) -> None:
        stmt = ctx.statement
        kind = stmt.kind

        if kind == StmtKind.EXPRESSION:
            outer = stmt.expr
            inner = strip_wrappers(outer)
            if not outer.contains(call):
                self._emit(ctx, call, WARNING, Template.POTENTIAL)
            elif inner is call:
                if is_void_cast(outer):
                    self._emit(ctx, call, WARNING, Template.EMPTY)
                else:
                    self._emit(ctx, call, WARNING, Template.NO_ASSIGN)
            elif inner.kind == ExprKind.ASSIGNMENT or isinstance(inner, Binary):
                self._classify_destination(call, inner.left, ctx)
            elif inner.kind == ExprKind.CALL:
                callee = inner.name or str(inner.func)
                severity = WARNING if self.catalogue.is_sink_or_safe(callee) else ERROR
                self._emit(ctx, call, severity, Template.ARG_TO_CALL, callee=callee)
            else:
                self._emit(ctx, call, WARNING, Template.NO_ASSIGN)

        elif kind == StmtKind.RETURN:
            if stmt.value is not None and strip_wrappers(stmt.value) is call:
                self._emit(ctx, call, ERROR, Template.RETURN_DIRECT)
            else:
                self._emit(ctx, call, ERROR, Template.RETURN_EXPR)

        elif kind == StmtKind.IF:
            self._emit(ctx, call, WARNING, Template.CONDITION, stmt="an if")

        elif kind == StmtKind.SWITCH:
            self._emit(ctx, call, WARNING, Template.CONDITION, stmt="a switch")

        elif kind == StmtKind.ITERATOR:
            dest = self._isolated_comparison(call, stmt)
            if dest is not None:
                self._classify_destination(call, dest, ctx)
            else:
                self._emit(ctx, call, ERROR, Template.LOOP)

        elif kind == StmtKind.DECLARATION:
            symbol = stmt.symbol
            self._classify_destination(call, SymbolRef(symbol.name, symbol, stmt.loc), ctx)

        elif kind == StmtKind.BLOCK:
            self._emit(ctx, call, ERROR, Template.BLOCK)

        else:
            self._emit(ctx, call, ERROR, Template.NOT_COVERED, stmt=kind.name.lower())

    @staticmethod
    def _isolated_comparison(call: Call, loop) -> Optional[Expr]:
        """
        For `while (readl(p) != v)` return `v`.

        The loop condition must be a comparison with the call alone on one
        side and a symbol alone on the other.
        """
        for cond in loop.header():
            cond = strip_wrappers(cond)
            if cond.kind != ExprKind.COMPARE:
                continue
            left, right = strip_wrappers(cond.left), strip_wrappers(cond.right)
            if left is call and isinstance(right, SymbolRef):
                return right
            if right is call and isinstance(left, SymbolRef):
                return left
        return None

    # =========================================================================
    # Step 3
    # =========================================================================

    def _classify_destination(self, call: Call, dest: Expr, ctx) -> None:
        if is_void_cast(dest):
            self._emit(ctx, call, WARNING, Template.EMPTY)
            return

        base = leftmost_operand(dest)
        if base.kind == ExprKind.MEMBER:
            self._emit(ctx, call, ERROR, Template.MEMBER, expr=str(dest))
            return
        if base.kind == ExprKind.LITERAL:
            # NULL or 0 passed for an unwanted output
            self._emit(ctx, call, WARNING, Template.EMPTY)
            return
        if base.kind != ExprKind.SYMBOL:
            self._emit(ctx, call, ERROR, Template.NOT_SYMBOL,
                       expr=str(dest), node=base.kind.name.lower())
            return

        symbol = base.symbol
        if symbol is None:
            self._emit(ctx, call, WARNING, Template.EMPTY)
            return
        if not self.tracker.is_local_scope(symbol):
            self._emit(ctx, call, ERROR, Template.NON_LOCAL, var=symbol.name)
            return

        self.tracker.mark_from_host(symbol)
        if symbol.typ.is_plain_integer():
            self._emit(ctx, call, WARNING, Template.LOCAL_INT,
                       var=symbol.name, type=symbol.typ)
        else:
            self._emit(ctx, call, ERROR, Template.LOCAL_NON_INT,
                       var=symbol.name, type=symbol.typ)

    def _emit(self, ctx, call: Call, severity: Severity, template: Template, **params) -> None:
        self.emitter.emit(ctx, severity, template, str(call), call.loc,
                          func=call.name, **params)

