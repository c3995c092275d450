"""
Propagation hooks.

These keep the tracker current after the classifier has seeded it and
report host data reaching other places:
- assignment: taint flows to the assigned destination
- call: tainted arguments passed to any function
- return: tainted values leaving the function
- loop/macro: tainted loop conditions and source-only macro invocations
"""

from hostaudit.ir.expressions import Assignment, Call, ExprKind, SymbolRef
from hostaudit.ir.statements import Return, Stmt, StmtKind
from hostaudit.specs.catalogue import Catalogue
from hostaudit.analysis.state import TaintStateTracker
from hostaudit.analysis.evaluator import ExpressionTaintEvaluator
from hostaudit.analysis.shapes import strip_wrappers, leftmost_operand, takes_address
from hostaudit.analysis.findings import (
    EngineError, FindingEmitter, Severity, Template,
)


# Argument shapes the call hook inspects
_ARGUMENT_KINDS = (
    ExprKind.SYMBOL, ExprKind.BINARY, ExprKind.COMPARE, ExprKind.LOGICAL,
    ExprKind.INDEX,
)


class PropagationHooks:
    """Assignment, call, return and loop/macro handlers"""

    def __init__(self, catalogue: Catalogue, tracker: TaintStateTracker,
                 evaluator: ExpressionTaintEvaluator, emitter: FindingEmitter):
        self.catalogue = catalogue
        self.tracker = tracker
        self.evaluator = evaluator
        self.emitter = emitter

    def on_assignment(self, assign: Assignment, ctx) -> None:
        rhs = strip_wrappers(assign.right)
        if rhs.kind == ExprKind.CALL:
            return      # the call-site classifier owns direct reads

        verdict = self.evaluator.evaluate(rhs)
        if not verdict.tainted:
            return

        # Member stores reduce to no symbol and always escape
        dest = leftmost_operand(assign.left)
        symbol = dest.symbol if isinstance(dest, SymbolRef) else None
        if symbol is not None:
            if symbol.synthetic:
                return
            self.tracker.mark_tainted(symbol)

        local = symbol is not None and self.tracker.is_local_scope(symbol)
        source = verdict.symbol.name if verdict.symbol is not None else str(rhs)
        if local:
            self.emitter.emit(ctx, Severity.WARNING, Template.PROP_LOCAL,
                              str(assign.left), assign.loc, verdict.heuristic,
                              src=source, dest=str(assign.left))
        else:
            self.emitter.emit(ctx, Severity.ERROR, Template.PROP_ESCAPE,
                              str(assign.left), assign.loc, verdict.heuristic,
                              src=source, dest=str(assign.left))

    def on_call(self, call: Call, ctx) -> None:
        callee = call.name or str(call.func)
        if call.name and self.catalogue.is_macro(call.name):
            return
        severity = Severity.WARNING if self.catalogue.is_sink_or_safe(callee) else Severity.ERROR
        for pos, arg in enumerate(call.args):
            # `&v` hands out storage, not the value
            if takes_address(arg) or strip_wrappers(arg).kind not in _ARGUMENT_KINDS:
                continue
            verdict = self.evaluator.evaluate(arg)
            if verdict.tainted:
                self.emitter.emit(ctx, severity, Template.CALL_ARG, str(arg),
                                  call.loc, verdict.heuristic,
                                  arg=str(arg), pos=pos, callee=callee)

    def on_return(self, ret: Return, ctx) -> None:
        if ret.value is None:
            return
        verdict = self.evaluator.evaluate(ret.value)
        if verdict.tainted:
            self.emitter.emit(ctx, Severity.ERROR, Template.RETURN_TAINTED,
                              str(ret.value), ret.loc, verdict.heuristic,
                              expr=str(ret.value))

    def on_statement(self, stmt: Stmt, ctx) -> None:
        if stmt.kind == StmtKind.ITERATOR:
            for cond in stmt.header():
                verdict = self.evaluator.evaluate(cond)
                if verdict.tainted:
                    self.emitter.emit(ctx, Severity.ERROR, Template.LOOP_TAINTED,
                                      str(cond), stmt.loc, verdict.heuristic,
                                      expr=str(cond))
        elif stmt.kind == StmtKind.EXPRESSION:
            exp = strip_wrappers(stmt.expr)
            if isinstance(exp, Call) and exp.name and self.catalogue.is_macro(exp.name):
                self._macro(exp, ctx)

    def _macro(self, call: Call, ctx) -> None:
        """`rdmsrl(MSR_X, val);` assigns `val` from the host behind our back"""
        if not ctx.is_feasible():
            return
        for pos in self.catalogue.arg_positions(call.name):
            if pos >= len(call.args):
                raise EngineError(
                    f"macro {call.name}: argument {pos} missing in '{call}'")
            target = leftmost_operand(call.args[pos])
            symbol = target.symbol if isinstance(target, SymbolRef) else None
            if symbol is not None and not symbol.synthetic:
                self.tracker.mark_tainted(symbol)
            self.emitter.emit(ctx, Severity.WARNING, Template.MACRO,
                              str(call.args[pos]), call.loc, True,
                              func=call.name, var=str(call.args[pos]))
