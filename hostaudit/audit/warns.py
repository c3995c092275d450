"""
Warn-line format.

One finding per line:

    <file>:<line> <function>() <error|warn>: {<fingerprint>}<message>

A reviewed line carries its annotation after a tab. The filter and
transfer tools read and write this format; `Finding.to_line()` produces
it.
"""

import re
from dataclasses import dataclass, replace
from typing import IO, Iterable, List, Optional, Tuple

from hostaudit.analysis.findings import Finding, Severity


WARN_LINE = re.compile(
    r"^(?P<file>[^:\s]+):(?P<line>\d+)\s+"
    r"(?P<function>\S+?)\(\)\s+"
    r"(?P<severity>error|warn|warning):\s*"
    r"(?:\{(?P<fingerprint>\d+)\})?"
    r"(?P<message>[^\t]*)"
    r"(?:\t(?P<annotation>.*))?$"
)


@dataclass(frozen=True)
class WarnLine:
    """A parsed warn line"""
    file: str
    line: int
    function: str
    severity: Severity
    fingerprint: Optional[int]
    message: str
    annotation: str = ""

    def to_line(self, annotated: bool = True) -> str:
        fp = f"{{{self.fingerprint}}}" if self.fingerprint is not None else ""
        text = (f"{self.file}:{self.line} {self.function}() "
                f"{self.severity.label}: {fp}{self.message}")
        if annotated and self.annotation:
            text += f"\t{self.annotation}"
        return text

    def annotated(self, annotation: str) -> 'WarnLine':
        return replace(self, annotation=annotation)

    @classmethod
    def parse(cls, text: str) -> Optional['WarnLine']:
        """Parse one line; None if it is not a warn line"""
        m = WARN_LINE.match(text.rstrip("\r\n"))
        if not m:
            return None
        fp = m.group("fingerprint")
        return cls(
            file=m.group("file"),
            line=int(m.group("line")),
            function=m.group("function"),
            severity=Severity.parse(m.group("severity")),
            fingerprint=int(fp) if fp is not None else None,
            message=m.group("message").rstrip(),
            annotation=(m.group("annotation") or "").strip(),
        )

    @classmethod
    def from_finding(cls, finding: Finding) -> 'WarnLine':
        return cls(finding.file, finding.line, finding.function, finding.severity,
                   finding.fingerprint, finding.message)


def parse_warns(lines: Iterable[str]) -> Tuple[List[WarnLine], List[str]]:
    """Split input lines into parsed warn lines and the lines that are not"""
    parsed: List[WarnLine] = []
    rejected: List[str] = []
    for text in lines:
        if not text.strip():
            continue
        warn = WarnLine.parse(text)
        if warn is None:
            rejected.append(text.rstrip("\n"))
        else:
            parsed.append(warn)
    return parsed, rejected


def read_warns(path: str) -> Tuple[List[WarnLine], List[str]]:
    with open(path, encoding="utf-8", errors="replace") as f:
        return parse_warns(f)


def write_warns(warns: Iterable[WarnLine], out: IO[str], annotated: bool = True) -> int:
    count = 0
    for warn in warns:
        out.write(warn.to_line(annotated) + "\n")
        count += 1
    return count
