"""
hostaudit IR - the tagged trees handed to the analysis engine.
"""

from .types import (
    Location, TypeKind, CType, SymbolScope, Symbol,
)
from .expressions import (
    ExprKind, Expr, SymbolRef, Literal, PreOp, PostOp, Cast, Binary, Index,
    Assignment, Conditional, Call, Member, StmtExpr, Opaque,
)
from .statements import (
    StmtKind, Stmt, ExprStmt, Return, If, Switch, Case, Loop, Declaration,
    Block, Label, Goto, Break, Continue, Asm, Empty,
    walk_statements, walk_expressions,
)
from .procedure import FunctionDef, TranslationUnit

__all__ = [
    # Types
    "Location", "TypeKind", "CType", "SymbolScope", "Symbol",
    # Expressions
    "ExprKind", "Expr", "SymbolRef", "Literal", "PreOp", "PostOp", "Cast",
    "Binary", "Index", "Assignment", "Conditional", "Call", "Member",
    "StmtExpr", "Opaque",
    # Statements
    "StmtKind", "Stmt", "ExprStmt", "Return", "If", "Switch", "Case", "Loop",
    "Declaration", "Block", "Label", "Goto", "Break", "Continue", "Asm",
    "Empty", "walk_statements", "walk_expressions",
    # Containers
    "FunctionDef", "TranslationUnit",
]
