"""
Findings, severities, message templates and engine exceptions.
"""

import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum

from hostaudit.ir.types import Location
from hostaudit.analysis.fingerprint import fingerprint


class EngineError(Exception):
    """
    Precondition violated inside one hook invocation.

    The traversal driver abandons that invocation, records the error and
    continues with the rest of the function.
    """


class FrontendError(Exception):
    """The C frontend cannot be built or cannot decode its input"""


class Severity(Enum):
    """Finding severity"""
    ERROR = "error"
    WARNING = "warning"

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        return 2 if self == Severity.ERROR else 1

    @property
    def label(self) -> str:
        """Short label used in warn lines"""
        return "error" if self == Severity.ERROR else "warn"

    @classmethod
    def parse(cls, text: str) -> 'Severity':
        text = text.strip().lower()
        if text in ("error", "err"):
            return cls.ERROR
        if text in ("warning", "warn"):
            return cls.WARNING
        raise ValueError(f"unknown severity: {text!r}")


class Template(Enum):
    """Message templates; the enum name is the stable template id"""

    # Call-site classification
    LOCAL_INT = "read from the host using function '{func}' to an int type local variable '{var}', type is {type}"
    LOCAL_NON_INT = "read from the host using function '{func}' to a non int type local variable '{var}', type is {type}"
    NON_LOCAL = "read from the host using function '{func}' to a non-local variable '{var}'"
    MEMBER = "read from the host using function '{func}' to a member of the structure '{expr}'"
    NOT_SYMBOL = "read from the host using function '{func}' to an expression '{expr}' that is not a variable ({node})"
    EMPTY = "empty read from the host using function '{func}'"
    POTENTIAL = "potential read from the host using function '{func}'"
    ARG_TO_CALL = "read from the host using function '{func}' passed directly as an argument to function '{callee}'"
    NO_ASSIGN = "read from the host using function '{func}' with no assignment"
    RETURN_DIRECT = "read from the host using function '{func}' returned directly"
    RETURN_EXPR = "read from the host using function '{func}' returned within a larger expression"
    CONDITION = "read from the host using function '{func}' used in {stmt} condition"
    LOOP = "read from the host using function '{func}' used in a loop condition"
    BLOCK = "read from the host using function '{func}' in a compound statement"
    NOT_COVERED = "read from the host using function '{func}' in a {stmt} statement is not covered"
    COMBINED = "read from the host using function '{func}' to multiple arguments {args}"

    # Propagation
    PROP_LOCAL = "propagating host data from '{src}' to local variable '{dest}'"
    PROP_ESCAPE = "propagating host data from '{src}' to non-local '{dest}'"
    CALL_ARG = "host data '{arg}' passed as argument {pos} to function '{callee}'"
    RETURN_TAINTED = "host data returned from the function in '{expr}'"
    LOOP_TAINTED = "host data '{expr}' used in a loop condition"
    MACRO = "read from the host using macro '{func}' to variable '{var}' (macro pattern match)"

    def render(self, heuristic: bool = False, **params: Any) -> str:
        """Fill in the template; textual-match results say so"""
        message = self.value.format(**params)
        if heuristic and self != Template.MACRO:
            message += " (textual match)"
        return message


@dataclass(frozen=True)
class Finding:
    """
    One diagnostic emitted by the engine.

    `expression` is the canonical text the fingerprint was computed from
    (before unstable-token substitution). `heuristic` marks findings that
    rest on textual containment or macro shape matching.
    """
    severity: Severity
    template: Template
    message: str
    fingerprint: int
    location: Location
    function: str
    expression: str = ""
    heuristic: bool = False

    def __str__(self) -> str:
        return self.to_line()

    @property
    def file(self) -> str:
        return self.location.file

    @property
    def line(self) -> int:
        return self.location.line

    def to_line(self) -> str:
        """Warn-line rendering consumed by the filter and transfer tools"""
        return (f"{self.location.file}:{self.location.line} {self.function}() "
                f"{self.severity.label}: {{{self.fingerprint}}}{self.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "template": self.template.name,
            "message": self.message,
            "fingerprint": self.fingerprint,
            "file": self.location.file,
            "line": self.location.line,
            "column": self.location.column,
            "function": self.function,
            "expression": self.expression,
            "heuristic": self.heuristic,
        }


class FindingEmitter:
    """
    Single emission point for findings.

    Computes the fingerprint from the primary text and the line offset of
    the finding from the start of its function (as recorded by the
    tracker), then stores the finding.
    """

    def __init__(self, tracker, verbose: bool = False):
        self.tracker = tracker
        self.verbose = verbose
        self.findings: List[Finding] = []

    def emit(self, ctx, severity: Severity, template: Template,
             primary_text: str, loc: Optional[Location] = None,
             heuristic: bool = False, **params: Any) -> Finding:
        line = loc.line if loc is not None and loc.line else ctx.line
        column = loc.column if loc is not None and loc.line else 0
        start = self.tracker.function_start_line(ctx.function_name)
        finding = Finding(
            severity=severity,
            template=template,
            message=template.render(heuristic, **params),
            fingerprint=fingerprint(primary_text, line - start),
            location=Location(ctx.filename, line, column),
            function=ctx.function_name,
            expression=primary_text,
            heuristic=heuristic,
        )
        self.findings.append(finding)
        if self.verbose:
            print(f"[Checker] {finding.to_line()}", file=sys.stderr)
        return finding
