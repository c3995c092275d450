"""
Core type definitions for the hostaudit IR.

This module defines the fundamental types handed to the analysis engine:
- Source locations for error reporting
- C type representations (just enough to tell integers from the rest)
- Symbols: named storage locations with scope and declaring function
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple
from enum import Enum, auto


# =============================================================================
# Locations
# =============================================================================

@dataclass(frozen=True)
class Location:
    """
    Source location for error reporting.

    Tracks where in the original source code a node originated.
    """
    file: str
    line: int
    column: int = 0
    end_line: Optional[int] = None
    end_column: Optional[int] = None

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"

    def __repr__(self) -> str:
        return f"Location({self.file!r}, {self.line}, {self.column})"

    @classmethod
    def unknown(cls) -> 'Location':
        """Create an unknown location"""
        return cls("<unknown>", 0)


# =============================================================================
# Types
# =============================================================================

class TypeKind(Enum):
    """Basic C type kinds"""
    INT = auto()        # char, short, int, long, _Bool and integer typedefs
    ENUM = auto()
    FLOAT = auto()
    POINTER = auto()
    ARRAY = auto()
    STRUCT = auto()
    UNION = auto()
    FUNCTION = auto()
    VOID = auto()
    UNKNOWN = auto()


@dataclass(frozen=True)
class CType:
    """
    C type representation.

    `spelling` is the type as written (after typedef resolution it keeps
    the name the programmer used, e.g. "u32" or "struct foo *").
    """
    kind: TypeKind
    spelling: str = ""
    pointee: Optional['CType'] = None    # For pointers and arrays

    def __str__(self) -> str:
        if self.spelling:
            return self.spelling
        return self.kind.name.lower()

    def is_plain_integer(self) -> bool:
        """Integer and enum types; pointers and aggregates are not"""
        return self.kind in (TypeKind.INT, TypeKind.ENUM)

    def is_scalar(self) -> bool:
        return self.kind in (TypeKind.INT, TypeKind.ENUM, TypeKind.FLOAT)

    def int_layout(self) -> Optional[Tuple[int, bool]]:
        """
        (width in bits, signed) for integer, enum and pointer types, or None
        when the spelling does not pin the width down (LP64; `_Bool` is width 1).
        """
        if self.kind == TypeKind.POINTER:
            return 64, False
        if self.kind == TypeKind.ENUM:
            return 32, True
        if self.kind != TypeKind.INT:
            return None
        return _int_layout(self.spelling or "int")

    @classmethod
    def int_type(cls, spelling: str = "int") -> 'CType':
        return cls(TypeKind.INT, spelling)

    @classmethod
    def void_type(cls) -> 'CType':
        return cls(TypeKind.VOID, "void")

    @classmethod
    def unknown_type(cls, spelling: str = "") -> 'CType':
        return cls(TypeKind.UNKNOWN, spelling)

    @classmethod
    def pointer_to(cls, pointee: 'CType') -> 'CType':
        return cls(TypeKind.POINTER, f"{pointee} *", pointee=pointee)

    @classmethod
    def array_of(cls, element: 'CType', size: str = "") -> 'CType':
        return cls(TypeKind.ARRAY, f"{element}[{size}]", pointee=element)


_SIZED_TYPEDEF = re.compile(
    r"^(?:(?:__)?(?P<us>[us])|__(?P<endian>le|be)|__virtio|(?P<uint>u_?)?int)"
    r"(?P<width>8|16|32|64)(?:_t)?$"
)

_NAMED_LAYOUTS = {
    "bool": (1, False), "_Bool": (1, False),
    "u_char": (8, False), "u_short": (16, False), "u_int": (32, False), "u_long": (64, False),
    "size_t": (64, False), "uintptr_t": (64, False), "phys_addr_t": (64, False),
    "dma_addr_t": (64, False), "resource_size_t": (64, False), "pgoff_t": (64, False),
    "irq_hw_number_t": (64, False), "pteval_t": (64, False), "pmdval_t": (64, False),
    "pudval_t": (64, False), "p4dval_t": (64, False), "pgdval_t": (64, False),
    "ssize_t": (64, True), "ptrdiff_t": (64, True), "intptr_t": (64, True),
    "loff_t": (64, True), "off_t": (64, True),
    "gfp_t": (32, False), "fmode_t": (32, False), "uid_t": (32, False), "gid_t": (32, False),
    "pid_t": (32, True), "__sum16": (16, False), "__wsum": (32, False),
}

_QUALIFIERS = {"const", "volatile", "register", "static", "extern", "inline"}


def _int_layout(spelling: str) -> Optional[Tuple[int, bool]]:
    words = [w for w in spelling.split() if w not in _QUALIFIERS]
    if len(words) == 1:
        name = words[0]
        if name in _NAMED_LAYOUTS:
            return _NAMED_LAYOUTS[name]
        m = _SIZED_TYPEDEF.match(name)
        if m:
            width = int(m.group("width"))
            if m.group("us"):
                return width, m.group("us") == "s"
            if m.group("uint") is None and not m.group("endian") and not name.startswith("__virtio"):
                return width, True
            return width, False

    builtin = {"char", "short", "int", "long", "signed", "unsigned"}
    if not words or any(w not in builtin for w in words):
        return None
    signed = "unsigned" not in words
    if "char" in words:
        return 8, signed
    if "short" in words:
        return 16, signed
    if "long" in words:
        return 64, signed
    return 32, signed


# =============================================================================
# Symbols
# =============================================================================

class SymbolScope(Enum):
    """Where a symbol's storage lives"""
    LOCAL = "local"                # automatic variable
    STATIC_LOCAL = "static_local"  # function-scope static, survives the call
    PARAMETER = "parameter"
    GLOBAL = "global"
    STATIC = "static"              # file-scope static
    EXTERN = "extern"              # referenced but not declared in this file
    CONSTANT = "constant"          # enumerator or #define'd integer
    FUNCTION = "function"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Symbol:
    """
    A named storage location.

    Identity is the full record, so two variables with the same name in
    different blocks (or functions) are distinct symbols.

    Example: Symbol("val", CType.int_type("u32"), SymbolScope.LOCAL, "probe", 12)
    """
    name: str
    typ: CType
    scope: SymbolScope
    function: Optional[str] = None     # enclosing function, None at file scope
    decl_line: int = 0
    value: Optional[int] = None        # CONSTANT symbols only
    synthetic: bool = False            # compiler-synthesized temporary

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Symbol({self.name!r}, {self.scope.value}, line={self.decl_line})"
