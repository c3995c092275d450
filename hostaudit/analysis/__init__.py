"""
Host input taint analysis engine.

Components, leaves first:
- state: per-symbol taint tags for one function
- evaluator: does an expression carry host data?
- classifier: destination and severity of every source call
- hooks: assignment, call, return and loop/macro propagation
- fingerprint: stable identity of a finding
- checker: all of the above as a traversal listener
- driver, feasibility: the traversal and the path-feasibility oracle
"""

from hostaudit.analysis.state import TaintTag, TaintStateTracker
from hostaudit.analysis.evaluator import ExpressionTaintEvaluator, TaintVerdict
from hostaudit.analysis.findings import (
    EngineError, FrontendError, Finding, FindingEmitter, Severity, Template,
)
from hostaudit.analysis.fingerprint import fingerprint
from hostaudit.analysis.classifier import CallSiteClassifier
from hostaudit.analysis.hooks import PropagationHooks
from hostaudit.analysis.driver import HostListener, TraversalContext, TraversalDriver
from hostaudit.analysis.feasibility import (
    PathFeasibility, AlwaysFeasible, Z3PathFeasibility,
)
from hostaudit.analysis.checker import HostInputChecker

__all__ = [
    "TaintTag",
    "TaintStateTracker",
    "ExpressionTaintEvaluator",
    "TaintVerdict",
    "EngineError",
    "FrontendError",
    "Finding",
    "FindingEmitter",
    "Severity",
    "Template",
    "fingerprint",
    "CallSiteClassifier",
    "PropagationHooks",
    "HostListener",
    "TraversalContext",
    "TraversalDriver",
    "PathFeasibility",
    "AlwaysFeasible",
    "Z3PathFeasibility",
    "HostInputChecker",
]
