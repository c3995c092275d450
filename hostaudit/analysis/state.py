"""
Symbol taint state tracker.

Per-symbol abstract state for one function: a set of tags that only ever
grows while the function is analyzed. Tags reached on different paths are
simply unioned, so a symbol can be both Local and LocalFromHost.
"""

from dataclasses import dataclass
from enum import Flag
from typing import Dict, Iterator, List, Optional

from hostaudit.ir.types import Symbol


class TaintTag(Flag):
    """Abstract state tags attached to a symbol"""
    NONE = 0
    LOCAL = 1                   # declared in the analyzed function
    LOCAL_FROM_HOST = 2         # local that received a host read directly
    TAINTED_FROM_HOST = 4       # received host-derived data by propagation
    DEFINED_FUNCTION = 8        # function entry record

    def __str__(self) -> str:
        names = [t.name for t in (TaintTag.LOCAL, TaintTag.LOCAL_FROM_HOST,
                                  TaintTag.TAINTED_FROM_HOST, TaintTag.DEFINED_FUNCTION)
                 if t in self]
        return "|".join(names) if names else "NONE"


_TAINT = TaintTag.LOCAL_FROM_HOST | TaintTag.TAINTED_FROM_HOST
_LOCAL = TaintTag.LOCAL | TaintTag.LOCAL_FROM_HOST


@dataclass(frozen=True)
class FunctionEntry:
    """Entry record of a function definition"""
    name: str
    line: int


class TaintStateTracker:
    """
    Flow-sensitive symbol -> tags map.

    Usage:
        tracker = TaintStateTracker()
        tracker.record_function_entry(fn.symbol, fn.loc.line)
        tracker.declare(local)
        tracker.mark_from_host(local)
        tracker.is_tainted(local)   # True
        tracker.reset()             # before the next function
    """

    def __init__(self):
        self._states: Dict[Symbol, TaintTag] = {}
        self._entries: List[FunctionEntry] = []

    def reset(self) -> None:
        """Forget all symbol states (called between functions)"""
        self._states.clear()
        self._entries.clear()

    def _add(self, symbol: Symbol, tag: TaintTag) -> None:
        self._states[symbol] = self._states.get(symbol, TaintTag.NONE) | tag

    # Updates

    def declare(self, symbol: Symbol) -> None:
        self._add(symbol, TaintTag.LOCAL)

    def mark_from_host(self, symbol: Symbol) -> None:
        self._add(symbol, TaintTag.LOCAL_FROM_HOST)

    def mark_tainted(self, symbol: Symbol) -> None:
        self._add(symbol, TaintTag.TAINTED_FROM_HOST)

    def record_function_entry(self, symbol: Symbol, line: int) -> None:
        self._add(symbol, TaintTag.DEFINED_FUNCTION)
        self._entries.append(FunctionEntry(symbol.name, line))

    # Queries

    def state(self, symbol: Symbol) -> TaintTag:
        return self._states.get(symbol, TaintTag.NONE)

    def is_tainted(self, symbol: Optional[Symbol]) -> bool:
        if symbol is None:
            return False
        return bool(self.state(symbol) & _TAINT)

    def is_local_scope(self, symbol: Optional[Symbol]) -> bool:
        if symbol is None:
            return False
        return bool(self.state(symbol) & _LOCAL)

    def function_start_line(self, name: str) -> int:
        """Entry line of the most recent function named `name`; 0 if unknown"""
        for entry in reversed(self._entries):
            if entry.name == name:
                return entry.line
        return 0

    def tainted_symbols(self) -> Iterator[Symbol]:
        """Currently tainted symbols, in the order they were first tracked"""
        for symbol, tags in self._states.items():
            if tags & _TAINT:
                yield symbol

    def __len__(self) -> int:
        return len(self._states)

    def __repr__(self) -> str:
        items = ", ".join(f"{s.name}={t}" for s, t in self._states.items())
        return f"TaintStateTracker({items})"
