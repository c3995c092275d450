"""
Language frontends for hostaudit.

Frontends use tree-sitter for parsing and produce a TranslationUnit of
the hostaudit IR.

Available frontends:
- CFrontend: C source code (kernel dialect: GNU extensions, inline asm)
"""

from hostaudit.frontends.c_frontend import (
    CFrontend,
    TREE_SITTER_C_AVAILABLE,
    parse_int_literal,
)

__all__ = [
    "CFrontend",
    "TREE_SITTER_C_AVAILABLE",
    "parse_int_literal",
]
