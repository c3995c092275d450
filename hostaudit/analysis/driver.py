"""
Traversal driver and listener interface.

The engine never walks code itself. A driver walks each function of a
translation unit in program order and calls the listener:

    function entry
      -> parameter declarations
      -> statements in order; for each statement the generic statement
         hook first, then its expressions post-order (operands, then the
         call hook, then the cataloged-source hook, then the assignment
         hook), then nested statements
      -> return hooks at each return
    function exit

An EngineError raised by a hook abandons only that hook invocation.
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional, Set

from hostaudit.ir.expressions import Assignment, Call, Expr, ExprKind, SymbolRef
from hostaudit.ir.statements import Stmt, StmtKind, Declaration, Return, If, Loop
from hostaudit.ir.procedure import FunctionDef, TranslationUnit
from hostaudit.analysis.findings import EngineError
from hostaudit.analysis.feasibility import (
    AlwaysFeasible, PathFeasibility, assigned_symbols,
)


class TraversalContext:
    """
    What the listener may ask about the current program point.

    - the translation unit and function being analyzed
    - the innermost enclosing statement
    - whether the current point is feasible
    """

    def __init__(self, unit: TranslationUnit, function: FunctionDef,
                 feasibility: PathFeasibility):
        self.unit = unit
        self.function = function
        self.feasibility = feasibility
        self.stmt_stack: List[Stmt] = []

    @property
    def filename(self) -> str:
        return self.unit.filename

    @property
    def function_name(self) -> str:
        return self.function.name

    @property
    def statement(self) -> Optional[Stmt]:
        return self.stmt_stack[-1] if self.stmt_stack else None

    @property
    def line(self) -> int:
        """Line of the innermost statement, or of the function"""
        for stmt in reversed(self.stmt_stack):
            loc = getattr(stmt, "loc", None)
            if loc is not None and loc.line:
                return loc.line
        return self.function.loc.line

    def is_feasible(self) -> bool:
        return self.feasibility.is_feasible()


class HostListener(ABC):
    """Callbacks the analysis engine registers with a traversal driver"""

    @abstractmethod
    def watched_calls(self) -> Iterable[str]:
        """Callee names for which `on_source_call` fires"""

    def on_function_entry(self, fn: FunctionDef, ctx: TraversalContext) -> None:
        pass

    def on_declaration(self, decl: Declaration, ctx: TraversalContext) -> None:
        pass

    def on_statement(self, stmt: Stmt, ctx: TraversalContext) -> None:
        pass

    def on_call(self, call: Call, ctx: TraversalContext) -> None:
        pass

    def on_source_call(self, call: Call, ctx: TraversalContext) -> None:
        pass

    def on_assignment(self, assign: Assignment, ctx: TraversalContext) -> None:
        pass

    def on_return(self, ret: Return, ctx: TraversalContext) -> None:
        pass

    def on_function_exit(self, fn: FunctionDef, ctx: TraversalContext) -> None:
        pass

    def on_internal_error(self, error: EngineError, ctx: TraversalContext) -> None:
        pass


class TraversalDriver:
    """
    Walks translation units and invokes a HostListener.

    Usage:
        driver = TraversalDriver(checker, lambda: Z3PathFeasibility())
        driver.run(unit)
    """

    def __init__(self, listener: HostListener,
                 feasibility_factory: Optional[Callable[[], PathFeasibility]] = None):
        self.listener = listener
        self.feasibility_factory = feasibility_factory or AlwaysFeasible
        self.errors: List[str] = []
        self._watched: Set[str] = set(listener.watched_calls())

    def run(self, unit: TranslationUnit) -> None:
        for fn in unit.functions:
            self.run_function(unit, fn)

    def run_function(self, unit: TranslationUnit, fn: FunctionDef) -> None:
        feasibility = self.feasibility_factory()
        feasibility.begin_function(fn)
        ctx = TraversalContext(unit, fn, feasibility)

        self._dispatch(ctx, self.listener.on_function_entry, fn, ctx)
        for param in fn.params:
            decl = Declaration(param, None, fn.loc)
            self._dispatch(ctx, self.listener.on_declaration, decl, ctx)
        self._stmt(fn.body, ctx)
        self._dispatch(ctx, self.listener.on_function_exit, fn, ctx)

    def _dispatch(self, ctx: TraversalContext, hook: Callable, *args) -> None:
        try:
            hook(*args)
        except EngineError as e:
            self.errors.append(f"{ctx.filename}:{ctx.line} {ctx.function_name}(): {e}")
            self.listener.on_internal_error(e, ctx)

    # =========================================================================
    # Statements
    # =========================================================================

    def _stmt(self, stmt: Optional[Stmt], ctx: TraversalContext) -> None:
        if stmt is None:
            return
        ctx.stmt_stack.append(stmt)
        try:
            self._dispatch(ctx, self.listener.on_statement, stmt, ctx)
            self._stmt_body(stmt, ctx)
        finally:
            ctx.stmt_stack.pop()

    def _stmt_body(self, stmt: Stmt, ctx: TraversalContext) -> None:
        kind = stmt.kind
        feas = ctx.feasibility

        if kind == StmtKind.EXPRESSION:
            self._expr(stmt.expr, ctx)

        elif kind == StmtKind.DECLARATION:
            self._dispatch(ctx, self.listener.on_declaration, stmt, ctx)
            target = SymbolRef(stmt.symbol.name, stmt.symbol, stmt.loc)
            if stmt.init is not None:
                self._expr(stmt.init, ctx)
                # Initialization is an assignment for propagation purposes
                init = Assignment("=", target, stmt.init, stmt.loc)
                self._dispatch(ctx, self.listener.on_assignment, init, ctx)
            feas.assign(target, "=", stmt.init)

        elif kind == StmtKind.RETURN:
            if stmt.value is not None:
                self._expr(stmt.value, ctx)
            self._dispatch(ctx, self.listener.on_return, stmt, ctx)

        elif kind == StmtKind.IF:
            self._if(stmt, ctx)

        elif kind == StmtKind.SWITCH:
            self._expr(stmt.condition, ctx)
            self._stmt(stmt.body, ctx)
            feas.havoc_symbols(assigned_symbols([stmt.body]))

        elif kind == StmtKind.CASE:
            feas.havoc_all()
            for child in stmt.stmts:
                self._stmt(child, ctx)

        elif kind == StmtKind.ITERATOR:
            self._loop(stmt, ctx)

        elif kind == StmtKind.BLOCK:
            for child in stmt.stmts:
                self._stmt(child, ctx)

        elif kind == StmtKind.LABEL:
            feas.havoc_all()
            self._stmt(stmt.stmt, ctx)

        elif kind == StmtKind.ASM:
            for operand in stmt.operands:
                self._expr(operand, ctx)
            feas.memory_changed()

        # GOTO, BREAK, CONTINUE and EMPTY own no expressions

    def _if(self, stmt: If, ctx: TraversalContext) -> None:
        feas = ctx.feasibility
        self._expr(stmt.condition, ctx)
        feas.push(stmt.condition, True)
        self._stmt(stmt.then, ctx)
        feas.pop()
        if stmt.otherwise is not None:
            feas.push(stmt.condition, False)
            self._stmt(stmt.otherwise, ctx)
            feas.pop()

    def _loop(self, stmt: Loop, ctx: TraversalContext) -> None:
        feas = ctx.feasibility
        self._stmt(stmt.pre, ctx)

        written = assigned_symbols([stmt.body, stmt.post], stmt.header())
        feas.havoc_symbols(written)

        if stmt.pre_cond is not None:
            self._expr(stmt.pre_cond, ctx)
            feas.push(stmt.pre_cond, True)
        self._stmt(stmt.body, ctx)
        self._stmt(stmt.post, ctx)
        if stmt.post_cond is not None:
            self._expr(stmt.post_cond, ctx)
        if stmt.pre_cond is not None:
            feas.pop()
        feas.havoc_symbols(written)

    # =========================================================================
    # Expressions
    # =========================================================================

    def _expr(self, exp: Expr, ctx: TraversalContext) -> None:
        kind = exp.kind
        if kind == ExprKind.STMT_EXPR:
            self._stmt(exp.body, ctx)
            return

        for child in exp.children():
            self._expr(child, ctx)

        if kind == ExprKind.CALL:
            self._dispatch(ctx, self.listener.on_call, exp, ctx)
            if exp.name in self._watched:
                self._dispatch(ctx, self.listener.on_source_call, exp, ctx)
            ctx.feasibility.memory_changed()

        elif kind == ExprKind.ASSIGNMENT:
            self._dispatch(ctx, self.listener.on_assignment, exp, ctx)
            ctx.feasibility.assign(exp.left, exp.op, exp.right)

        elif kind in (ExprKind.PREOP, ExprKind.POSTOP) and exp.op in ("++", "--"):
            ctx.feasibility.havoc(exp.operand)
