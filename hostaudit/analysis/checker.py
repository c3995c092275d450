"""
Host input checker.

The analysis engine as a traversal listener. It owns one tracker, one
evaluator, the classifier and the propagation hooks, and turns driver
callbacks into findings.
"""

import sys
from typing import Callable, Iterable, List, Optional

from hostaudit.ir.expressions import Assignment, Call
from hostaudit.ir.statements import Declaration, Return, Stmt
from hostaudit.ir.procedure import FunctionDef, TranslationUnit
from hostaudit.ir.types import SymbolScope, TypeKind
from hostaudit.specs.catalogue import Catalogue
from hostaudit.analysis.state import TaintStateTracker
from hostaudit.analysis.evaluator import ExpressionTaintEvaluator
from hostaudit.analysis.classifier import CallSiteClassifier
from hostaudit.analysis.hooks import PropagationHooks
from hostaudit.analysis.findings import EngineError, Finding, FindingEmitter
from hostaudit.analysis.driver import HostListener, TraversalContext, TraversalDriver
from hostaudit.analysis.feasibility import PathFeasibility


# Parameters of these kinds are copies owned by the callee
_BY_VALUE_KINDS = (TypeKind.INT, TypeKind.ENUM, TypeKind.FLOAT)


class HostInputChecker(HostListener):
    """
    Finds host-controlled values reaching guest code unvalidated.

    Usage:
        checker = HostInputChecker()
        checker.analyze(unit)
        for finding in checker.findings:
            print(finding.to_line())
    """

    def __init__(self, catalogue: Optional[Catalogue] = None, verbose: bool = False):
        self.catalogue = catalogue or Catalogue.default()
        self.verbose = verbose
        self.tracker = TaintStateTracker()
        self.evaluator = ExpressionTaintEvaluator(self.tracker)
        self.emitter = FindingEmitter(self.tracker, verbose)
        self.classifier = CallSiteClassifier(self.catalogue, self.tracker, self.emitter)
        self.hooks = PropagationHooks(self.catalogue, self.tracker, self.evaluator, self.emitter)
        self.internal_errors: List[str] = []
        self.functions_analyzed = 0

    @property
    def findings(self) -> List[Finding]:
        return self.emitter.findings

    def analyze(self, unit: TranslationUnit,
                feasibility_factory: Optional[Callable[[], PathFeasibility]] = None) -> List[Finding]:
        """Run the checker over every function of `unit`; returns the new findings"""
        before = len(self.findings)
        TraversalDriver(self, feasibility_factory).run(unit)
        return self.findings[before:]

    # =========================================================================
    # Listener callbacks
    # =========================================================================

    def watched_calls(self) -> Iterable[str]:
        return self.catalogue.source_names()

    def on_function_entry(self, fn: FunctionDef, ctx: TraversalContext) -> None:
        self.tracker.reset()
        self.tracker.record_function_entry(fn.symbol, fn.loc.line)
        self.functions_analyzed += 1
        if self.verbose:
            print(f"[Checker] Analyzing {ctx.filename}:{fn.loc.line} {fn.name}()", file=sys.stderr)

    def on_declaration(self, decl: Declaration, ctx: TraversalContext) -> None:
        symbol = decl.symbol
        if symbol.scope == SymbolScope.LOCAL:
            self.tracker.declare(symbol)
        elif symbol.scope == SymbolScope.PARAMETER and symbol.typ.kind in _BY_VALUE_KINDS:
            self.tracker.declare(symbol)

    def on_statement(self, stmt: Stmt, ctx: TraversalContext) -> None:
        self.hooks.on_statement(stmt, ctx)

    def on_call(self, call: Call, ctx: TraversalContext) -> None:
        self.hooks.on_call(call, ctx)

    def on_source_call(self, call: Call, ctx: TraversalContext) -> None:
        self.classifier.classify(call, ctx)

    def on_assignment(self, assign: Assignment, ctx: TraversalContext) -> None:
        self.hooks.on_assignment(assign, ctx)

    def on_return(self, ret: Return, ctx: TraversalContext) -> None:
        self.hooks.on_return(ret, ctx)

    def on_function_exit(self, fn: FunctionDef, ctx: TraversalContext) -> None:
        self.tracker.reset()

    def on_internal_error(self, error: EngineError, ctx: TraversalContext) -> None:
        message = f"{ctx.filename}:{ctx.line} {ctx.function_name}(): internal error: {error}"
        self.internal_errors.append(message)
        if self.verbose:
            print(f"[Checker] {message}", file=sys.stderr)
