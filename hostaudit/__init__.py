"""
hostaudit - host input auditing for confidential-computing guests.

Finds the places where a guest kernel reads values the untrusted host
controls (port I/O, MMIO, MSRs, CPUID, PCI and virtio config space,
firmware tables) and follows those values through each function.

The library is organized into modules:
- ir: the typed, symbol-resolved tree the analysis runs on
- frontends: tree-sitter based C frontend producing the IR
- specs: the host-interface catalogue
- analysis: taint state, classifier, propagation hooks, traversal, z3
  path feasibility
- audit: warn-line tools (subsystem filter, annotation transfer)
"""

__version__ = "0.1.0"

from hostaudit.ir import TranslationUnit, FunctionDef
from hostaudit.specs import Catalogue
from hostaudit.analysis import (
    HostInputChecker, Finding, Severity, Template, EngineError, FrontendError,
)
from hostaudit.frontends import CFrontend, TREE_SITTER_C_AVAILABLE
from hostaudit.scanner import HostInputScanner, ScanResult

__all__ = [
    "__version__",
    "TranslationUnit", "FunctionDef",
    "Catalogue",
    "HostInputChecker", "Finding", "Severity", "Template",
    "EngineError", "FrontendError",
    "CFrontend", "TREE_SITTER_C_AVAILABLE",
    "HostInputScanner", "ScanResult",
]
