"""
hostaudit scanner.

High-level interface for auditing C files for host-controlled input.
Integrates the full pipeline:
    C Source → CFrontend → IR → TraversalDriver + HostInputChecker → Findings

Usage:
    from hostaudit.scanner import HostInputScanner

    scanner = HostInputScanner()
    result = scanner.scan_file("drivers/virtio/virtio_pci_modern.c")

    for finding in result.findings:
        print(finding.to_line())
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union
from pathlib import Path
import json
import sys
import time

from hostaudit import __version__
from hostaudit.specs.catalogue import Catalogue
from hostaudit.frontends.c_frontend import CFrontend
from hostaudit.analysis.checker import HostInputChecker
from hostaudit.analysis.findings import Finding, Severity
from hostaudit.analysis.feasibility import (
    DEFAULT_TIMEOUT_MS, PathFeasibility, Z3PathFeasibility,
)


SARIF_SCHEMA = "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json"
TOOL_NAME = "hostaudit"


@dataclass
class ScanResult:
    """Result of scanning one C file"""
    filename: str
    findings: List[Finding] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    parse_errors: List[str] = field(default_factory=list)
    scan_time_ms: float = 0.0
    lines_scanned: int = 0
    functions_analyzed: int = 0

    @property
    def has_findings(self) -> bool:
        return len(self.findings) > 0

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.WARNING)

    def filtered(self, min_severity: Severity) -> List[Finding]:
        """Findings at or above `min_severity`"""
        return [f for f in self.findings if f.severity.rank >= min_severity.rank]

    def warn_lines(self, min_severity: Severity = Severity.WARNING) -> List[str]:
        return [f.to_line() for f in self.filtered(min_severity)]

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "findings": [f.to_dict() for f in self.findings],
            "errors": self.errors,
            "parse_errors": self.parse_errors,
            "scan_time_ms": self.scan_time_ms,
            "lines_scanned": self.lines_scanned,
            "functions_analyzed": self.functions_analyzed,
            "summary": {
                "total": len(self.findings),
                "errors": self.error_count,
                "warnings": self.warning_count,
            }
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def to_sarif(self) -> dict:
        """Convert to SARIF 2.1.0 for code-scanning dashboards"""
        rules = {}
        results = []

        for finding in self.findings:
            rule_id = f"{TOOL_NAME}/{finding.template.name.lower()}"
            level = sarif_level(finding.severity)

            if rule_id not in rules:
                rules[rule_id] = {
                    "id": rule_id,
                    "name": finding.template.name.replace("_", " ").title().replace(" ", ""),
                    "shortDescription": {"text": finding.template.value},
                    "defaultConfiguration": {"level": level},
                }

            results.append({
                "ruleId": rule_id,
                "level": level,
                "message": {"text": finding.message},
                "locations": [{
                    "physicalLocation": {
                        "artifactLocation": {"uri": finding.file},
                        "region": {
                            "startLine": finding.line,
                            "startColumn": finding.location.column + 1,
                        }
                    },
                    "logicalLocations": [{
                        "name": finding.function,
                        "kind": "function",
                    }],
                }],
                "partialFingerprints": {
                    f"{TOOL_NAME}/v1": str(finding.fingerprint),
                },
                "properties": {
                    "expression": finding.expression,
                    "heuristic": finding.heuristic,
                },
            })

        return sarif_log(list(rules.values()), results)


def sarif_level(severity: Severity) -> str:
    return "error" if severity == Severity.ERROR else "warning"


def sarif_log(rules: List[dict], results: List[dict]) -> dict:
    return {
        "$schema": SARIF_SCHEMA,
        "version": "2.1.0",
        "runs": [{
            "tool": {
                "driver": {
                    "name": TOOL_NAME,
                    "version": __version__,
                    "rules": rules,
                }
            },
            "results": results,
        }]
    }


class HostInputScanner:
    """
    Main audit scanner.

    Scans C sources of a confidential guest for values read from the
    untrusted host (port I/O, MMIO, MSRs, CPUID, PCI config space,
    virtio config space, firmware tables) and reports where they go.
    """

    def __init__(
        self,
        catalogue: Optional[Catalogue] = None,
        feasibility: bool = True,
        timeout: int = DEFAULT_TIMEOUT_MS,
        verbose: bool = False
    ):
        """
        Initialize the scanner.

        Args:
            catalogue: Host-interface catalogue (default: the built-in one)
            feasibility: Suppress findings on call sites whose path
                condition is unsatisfiable (z3)
            timeout: Per-query solver timeout in milliseconds
            verbose: Enable verbose output on stderr
        """
        self.catalogue = catalogue or Catalogue.default()
        self.feasibility = feasibility
        self.timeout = timeout
        self.verbose = verbose

        # Raises FrontendError without tree-sitter-c
        self.frontend = CFrontend()

    def _feasibility_factory(self) -> Optional[Callable[[], PathFeasibility]]:
        if not self.feasibility:
            return None
        timeout = self.timeout
        return lambda: Z3PathFeasibility(timeout_ms=timeout)

    def scan(self, source_code: Union[str, bytes], filename: str = "<unknown>") -> ScanResult:
        """
        Scan C source code.

        Args:
            source_code: Source code (str or raw bytes)
            filename: Filename for reporting

        Returns:
            ScanResult with the findings of every function in the file
        """
        start_time = time.time()
        result = ScanResult(filename=filename)
        newline = b"\n" if isinstance(source_code, bytes) else "\n"
        result.lines_scanned = source_code.count(newline) + 1

        try:
            if self.verbose:
                print(f"[Scanner] Parsing {filename}...", file=sys.stderr)

            unit = self.frontend.translate(source_code, filename)
            result.parse_errors = list(unit.errors)

            if self.verbose:
                print(f"[Scanner] Found {len(unit.functions)} functions", file=sys.stderr)

            checker = HostInputChecker(self.catalogue, verbose=self.verbose)
            result.findings = checker.analyze(unit, self._feasibility_factory())
            result.functions_analyzed = checker.functions_analyzed
            result.errors.extend(checker.internal_errors)

        except Exception as e:
            result.errors.append(f"Scan error: {str(e)}")
            if self.verbose:
                import traceback
                traceback.print_exc()

        result.scan_time_ms = (time.time() - start_time) * 1000

        if self.verbose:
            print(f"[Scanner] Scan complete: {result.error_count} errors, "
                  f"{result.warning_count} warnings", file=sys.stderr)
            print(f"[Scanner] Time: {result.scan_time_ms:.2f}ms", file=sys.stderr)

        return result

    def scan_file(self, filepath: str) -> ScanResult:
        """Scan one C file; a missing file yields a result carrying the error"""
        path = Path(filepath)

        if not path.exists():
            result = ScanResult(filename=str(path))
            result.errors.append(f"File not found: {filepath}")
            return result

        return self.scan(path.read_bytes(), str(path))

    def scan_directory(self, dirpath: str, pattern: str = "**/*.c") -> List[ScanResult]:
        """
        Scan all matching files in a directory.

        Args:
            dirpath: Directory path
            pattern: Glob pattern for files

        Returns:
            List of ScanResult for each file, in path order
        """
        results = []
        dir_path = Path(dirpath)

        for filepath in sorted(dir_path.glob(pattern)):
            if filepath.is_file():
                results.append(self.scan_file(str(filepath)))

        return results
