"""
Function and translation-unit containers for the hostaudit IR.

This module defines:
- FunctionDef: one analyzed function with its parameters and body
- TranslationUnit: everything the frontend recovered from one C file
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .types import CType, Location, Symbol
from .statements import Block


@dataclass(eq=False)
class FunctionDef:
    """
    A function definition.

    `loc.line` is the line of the function name; `end_line` the line of
    its closing brace.
    """
    name: str
    symbol: Symbol
    params: List[Symbol] = field(default_factory=list)
    ret_type: CType = field(default_factory=CType.void_type)
    body: Block = field(default_factory=Block)
    loc: Location = field(default_factory=Location.unknown)
    end_line: int = 0

    def __str__(self) -> str:
        params = ", ".join(f"{p.typ} {p.name}" for p in self.params)
        return f"{self.ret_type} {self.name}({params})"

    @property
    def start_line(self) -> int:
        return self.loc.line


@dataclass
class TranslationUnit:
    """
    A translated C file.

    Contains all function definitions in source order, file-scope
    symbols and the integer constants (enumerators, #defines) the
    frontend could evaluate.
    """
    filename: str
    functions: List[FunctionDef] = field(default_factory=list)
    globals: Dict[str, Symbol] = field(default_factory=dict)
    constants: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        lines = [f"// {self.filename}"]
        for fn in self.functions:
            lines.append(str(fn))
        return "\n".join(lines)

    def add_function(self, fn: FunctionDef) -> None:
        self.functions.append(fn)

    def get_function(self, name: str) -> Optional[FunctionDef]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None

    def __iter__(self) -> Iterator[FunctionDef]:
        return iter(self.functions)
