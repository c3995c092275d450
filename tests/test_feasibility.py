"""
Tests for the traversal driver and the path-feasibility oracles.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from hostaudit.ir import (
    CType, TypeKind, Literal, Binary, PreOp, PostOp, Cast, Conditional, Block, If,
    Loop, Label, ExprStmt, Return, Declaration, TranslationUnit,
)
from hostaudit.analysis import (
    AlwaysFeasible, EngineError, HostListener, TraversalDriver, Z3PathFeasibility,
)
from hostaudit.analysis.feasibility import assigned_symbols
from tests.ir_helpers import local, param, ref, call, assign, function, INT, U32


X = local("x", INT)
Y = local("y", INT)


def oracle_for(*body):
    oracle = Z3PathFeasibility(timeout_ms=500)
    oracle.begin_function(function(list(body)))
    return oracle


class TestZ3PathFeasibility:
    """Branch conditions as bit-vector constraints"""

    def test_no_constraints_feasible(self):
        assert oracle_for().is_feasible()

    def test_literal_zero_infeasible(self):
        oracle = oracle_for()
        oracle.push(Literal.integer(0), True)
        assert not oracle.is_feasible()

    def test_else_of_literal_one_infeasible(self):
        oracle = oracle_for()
        oracle.push(Literal.integer(1), False)
        assert not oracle.is_feasible()

    def test_pop_restores(self):
        oracle = oracle_for()
        oracle.push(Literal.integer(0), True)
        oracle.pop()
        assert oracle.is_feasible()

    def test_constant_assignment_contradiction(self):
        """x = 5; if (x == 3)"""
        oracle = oracle_for()
        oracle.assign(ref(X), "=", Literal.integer(5))
        oracle.push(Binary("==", ref(X), Literal.integer(3)), True)
        assert not oracle.is_feasible()

    def test_reassignment_is_new_version(self):
        """x = 5; x = y; if (x == 3) is satisfiable"""
        oracle = oracle_for()
        oracle.assign(ref(X), "=", Literal.integer(5))
        oracle.assign(ref(X), "=", ref(Y))
        oracle.push(Binary("==", ref(X), Literal.integer(3)), True)
        assert oracle.is_feasible()

    def test_havoc_restores_feasibility(self):
        oracle = oracle_for()
        oracle.assign(ref(X), "=", Literal.integer(5))
        oracle.havoc(ref(X))
        oracle.push(Binary("==", ref(X), Literal.integer(3)), True)
        assert oracle.is_feasible()

    def test_nested_conditions(self):
        """if (x > 4) { if (x < 2) ... }"""
        oracle = oracle_for()
        oracle.push(Binary(">", ref(X), Literal.integer(4)), True)
        oracle.push(Binary("<", ref(X), Literal.integer(2)), True)
        assert not oracle.is_feasible()
        oracle.pop()
        assert oracle.is_feasible()

    def test_logical_and_negation(self):
        """!(x == 1) && x == 1"""
        oracle = oracle_for()
        eq = Binary("==", ref(X), Literal.integer(1))
        oracle.push(Binary("&&", PreOp("!", eq), eq), True)
        assert not oracle.is_feasible()

    def test_address_taken_not_modeled(self):
        """Once &x escapes, x = 5 says nothing about later reads"""
        oracle = oracle_for(ExprStmt(call("fill", PreOp("&", ref(X)))))
        oracle.assign(ref(X), "=", Literal.integer(5))
        oracle.push(Binary("==", ref(X), Literal.integer(3)), True)
        assert oracle.is_feasible()

    def test_call_result_is_unconstrained(self):
        oracle = oracle_for()
        oracle.push(Binary("==", call("get"), Literal.integer(3)), True)
        assert oracle.is_feasible()

    def test_begin_function_resets(self):
        oracle = oracle_for()
        oracle.push(Literal.integer(0), True)
        oracle.begin_function(function([]))
        assert oracle.is_feasible()


class TestIntegerSemantics:
    """Declared widths, signedness and casts"""

    def test_all_ones_u32(self):
        """u32 v = ~0; if (v == 0xffffffff)"""
        v = local("v", U32)
        oracle = oracle_for()
        oracle.assign(ref(v), "=", PreOp("~", Literal.integer(0)))
        oracle.push(Binary("==", ref(v), Literal(0xffffffff, "0xffffffff")), True)
        assert oracle.is_feasible()

    def test_all_ones_u32_is_not_minus_one(self):
        """u32 v = ~0; if (v < 0) never holds"""
        v = local("v", U32)
        oracle = oracle_for()
        oracle.assign(ref(v), "=", PreOp("~", Literal.integer(0)))
        oracle.push(Binary("<", ref(v), Literal.integer(0)), True)
        assert not oracle.is_feasible()

    def test_unsigned_cast_of_negative(self):
        """int x = -1; if ((unsigned int)x > 5)"""
        oracle = oracle_for()
        oracle.assign(ref(X), "=", PreOp("-", Literal.integer(1)))
        cast = Cast(CType.int_type("unsigned int"), ref(X))
        oracle.push(Binary(">", cast, Literal.integer(5)), True)
        assert oracle.is_feasible()

    def test_narrow_store_truncates(self):
        """u8 b = 0x100; if (b == 0)"""
        b = local("b", CType.int_type("u8"))
        oracle = oracle_for()
        oracle.assign(ref(b), "=", Literal(0x100, "0x100"))
        oracle.push(Binary("==", ref(b), Literal.integer(0)), True)
        assert oracle.is_feasible()

    def test_u32_arithmetic_wraps(self):
        """u32 v = 0xffffffff; if (v + 1 == 0)"""
        v = local("v", U32)
        oracle = oracle_for()
        oracle.assign(ref(v), "=", Literal(0xffffffff, "0xffffffff"))
        oracle.push(Binary("==", Binary("+", ref(v), Literal.integer(1)), Literal.integer(0)), True)
        assert oracle.is_feasible()

    def test_unknown_typedef_not_pinned(self):
        """my_t m = 5; if (m == 3): the width of my_t is unknown"""
        m = local("m", CType.int_type("my_t"))
        oracle = oracle_for()
        oracle.assign(ref(m), "=", Literal.integer(5))
        oracle.push(Binary("==", ref(m), Literal.integer(3)), True)
        assert oracle.is_feasible()

    def test_gnu_conditional(self):
        """if ((x ?: 2) == 0) can never hold"""
        oracle = oracle_for()
        oracle.push(Binary("==", Conditional(ref(X), None, Literal.integer(2)),
                           Literal.integer(0)), True)
        assert not oracle.is_feasible()


class TestIntegerLayouts:

    def test_kernel_typedefs(self):
        assert CType.int_type("u32").int_layout() == (32, False)
        assert CType.int_type("__s16").int_layout() == (16, True)
        assert CType.int_type("__le64").int_layout() == (64, False)
        assert CType.int_type("uint8_t").int_layout() == (8, False)
        assert CType.int_type("int32_t").int_layout() == (32, True)
        assert CType.int_type("size_t").int_layout() == (64, False)
        assert CType.int_type("bool").int_layout() == (1, False)

    def test_builtin_spellings(self):
        assert CType.int_type("int").int_layout() == (32, True)
        assert CType.int_type("unsigned").int_layout() == (32, False)
        assert CType.int_type("unsigned char").int_layout() == (8, False)
        assert CType.int_type("long long").int_layout() == (64, True)
        assert CType.int_type("const unsigned short").int_layout() == (16, False)

    def test_pointer_and_unknown(self):
        assert CType.pointer_to(CType.void_type()).int_layout() == (64, False)
        assert CType.int_type("my_t").int_layout() is None
        assert CType(TypeKind.STRUCT, "struct dev").int_layout() is None


class TestAlwaysFeasible:

    def test_never_prunes(self):
        oracle = AlwaysFeasible()
        oracle.begin_function(function([]))
        oracle.push(Literal.integer(0), True)
        assert oracle.is_feasible()


class TestAssignedSymbols:

    def test_collects_assignment_and_increment_targets(self):
        body = Block([
            assign(ref(X), Literal.integer(1)),
            ExprStmt(PostOp("++", ref(Y))),
        ])
        assert assigned_symbols([body]) == {X, Y}

    def test_reads_not_collected(self):
        body = Block([ExprStmt(call("use", ref(X)))])
        assert assigned_symbols([body]) == set()


class RecordingListener(HostListener):
    """Records every callback in order"""

    def __init__(self, watched=("readl",), fail_on=None):
        self.events = []
        self.watched = watched
        self.fail_on = fail_on
        self.internal = []

    def watched_calls(self):
        return self.watched

    def on_function_entry(self, fn, ctx):
        self.events.append(("entry", fn.name))

    def on_declaration(self, decl, ctx):
        self.events.append(("decl", decl.symbol.name))

    def on_statement(self, stmt, ctx):
        self.events.append(("stmt", type(stmt).__name__))

    def on_call(self, call, ctx):
        if call.name == self.fail_on:
            raise EngineError(f"refusing {call.name}")
        self.events.append(("call", call.name))

    def on_source_call(self, call, ctx):
        self.events.append(("source", call.name, type(ctx.statement).__name__))

    def on_assignment(self, assign, ctx):
        self.events.append(("assign", str(assign.left)))

    def on_return(self, ret, ctx):
        self.events.append(("return",))

    def on_function_exit(self, fn, ctx):
        self.events.append(("exit", fn.name))

    def on_internal_error(self, error, ctx):
        self.internal.append(str(error))


def drive(fn, listener, factory=None):
    unit = TranslationUnit("test.c")
    unit.add_function(fn)
    driver = TraversalDriver(listener, factory)
    driver.run(unit)
    return driver


class TestTraversalDriver:
    """Program-order traversal with post-order expressions"""

    def test_event_order(self):
        base, v = param("base"), local("v")
        fn = function([
            Declaration(v),
            assign(ref(v), call("readl", call("addr", ref(base)))),
            Return(ref(v)),
        ], [base])
        listener = RecordingListener()
        drive(fn, listener)
        assert listener.events == [
            ("entry", "f"),
            ("decl", "base"),
            ("stmt", "Block"),
            ("stmt", "Declaration"),
            ("decl", "v"),
            ("stmt", "ExprStmt"),
            ("call", "addr"),
            ("call", "readl"),
            ("source", "readl", "ExprStmt"),
            ("assign", "v"),
            ("stmt", "Return"),
            ("return",),
            ("exit", "f"),
        ]

    def test_initializer_raises_assignment(self):
        v = local("v")
        listener = RecordingListener()
        drive(function([Declaration(v, Literal.integer(1))]), listener)
        assert ("assign", "v") in listener.events

    def test_loop_header_under_loop_statement(self):
        base = param("base")
        loop = Loop("while", Block([]), pre_cond=call("readl", ref(base)))
        listener = RecordingListener()
        drive(function([loop], [base]), listener)
        assert ("source", "readl", "Loop") in listener.events

    def test_label_body_visited(self):
        base = param("base")
        listener = RecordingListener()
        drive(function([Label("out", ExprStmt(call("readl", ref(base))))], [base]), listener)
        assert ("source", "readl", "ExprStmt") in listener.events

    def test_engine_error_abandons_one_hook(self):
        base = param("base")
        fn = function([
            ExprStmt(call("bad")),
            ExprStmt(call("readl", ref(base))),
        ], [base])
        listener = RecordingListener(fail_on="bad")
        driver = drive(fn, listener)
        assert listener.internal == ["refusing bad"]
        assert len(driver.errors) == 1
        assert ("source", "readl", "ExprStmt") in listener.events
        assert listener.events[-1] == ("exit", "f")

    def test_feasibility_follows_branches(self):
        """The oracle sees the then-branch guard while inside it only"""
        seen = []

        class FeasibilityListener(RecordingListener):
            def on_source_call(self, call, ctx):
                seen.append(ctx.is_feasible())

        base = param("base")
        fn = function([
            If(Literal.integer(0), ExprStmt(call("readl", ref(base))),
               ExprStmt(call("readl", ref(base)))),
            ExprStmt(call("readl", ref(base))),
        ], [base])
        drive(fn, FeasibilityListener(), Z3PathFeasibility)
        assert seen == [False, True, True]
