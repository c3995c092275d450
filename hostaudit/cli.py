#!/usr/bin/env python3
"""
hostaudit CLI - host input auditing for confidential guests.

A unified command-line interface:
- scan: Scan C sources for reads from the untrusted host
- filter: Keep warn lines of the subsystems under audit
- transfer: Carry review annotations from a baseline to a new run

Usage:
    hostaudit scan drivers/virtio/                      # Scan a tree
    hostaudit scan virtio_pci.c --format sarif -o out.sarif
    hostaudit scan arch/x86 --format warns -o warns.txt
    hostaudit filter -o filtered.txt warns.txt
    hostaudit transfer -o annotated.txt reviewed.txt filtered.txt
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from hostaudit import __version__
from hostaudit.analysis.findings import FrontendError, Severity
from hostaudit.analysis.feasibility import DEFAULT_TIMEOUT_MS
from hostaudit.specs.catalogue import Catalogue
from hostaudit.scanner import HostInputScanner, ScanResult, sarif_log
from hostaudit.audit.warns import read_warns, write_warns
from hostaudit.audit.filter import DEFAULT_SUBSYSTEMS, filter_warns
from hostaudit.audit.transfer import transfer


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser"""
    parser = argparse.ArgumentParser(
        prog="hostaudit",
        description="hostaudit - find host-controlled input in confidential guest code",
        epilog="Use 'hostaudit <command> --help' for more information on a specific command.",
    )

    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # === SCAN command ===
    scan_parser = subparsers.add_parser(
        "scan",
        help="Scan C sources for host input",
        description="Scan C files for values read from the host and report where they flow."
    )
    scan_parser.add_argument(
        "target",
        help="File or directory to scan"
    )
    scan_parser.add_argument(
        "-p", "--pattern",
        default="**/*.c",
        help="Glob pattern for directory scan (default: **/*.c)"
    )
    scan_parser.add_argument(
        "-f", "--format",
        default="text",
        choices=["text", "json", "sarif", "warns"],
        help="Output format (default: text)"
    )
    scan_parser.add_argument(
        "-o", "--output",
        help="Output file (default: stdout)"
    )
    scan_parser.add_argument(
        "--no-feasibility",
        action="store_true",
        help="Report call sites on infeasible paths too (no z3 queries)"
    )
    scan_parser.add_argument(
        "--min-severity",
        default="warning",
        choices=["error", "warning"],
        help="Minimum severity to report (default: warning)"
    )
    scan_parser.add_argument(
        "--catalogue",
        help="JSON file extending the built-in host-interface catalogue"
    )
    scan_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output on stderr"
    )
    scan_parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT_MS,
        help=f"Solver timeout per query in ms (default: {DEFAULT_TIMEOUT_MS})"
    )
    scan_parser.add_argument(
        "--fail-on",
        choices=["error", "warning", "none"],
        default="error",
        help="Exit with status 1 if findings of this severity exist (default: error)"
    )

    # === FILTER command ===
    filter_parser = subparsers.add_parser(
        "filter",
        help="Keep warn lines of the audited subsystems",
        description="Filter warn lines by kernel subsystem path prefix."
    )
    filter_parser.add_argument(
        "input",
        help="Warn-line file"
    )
    filter_parser.add_argument(
        "-o", "--output",
        help="Output file (default: stdout)"
    )
    filter_parser.add_argument(
        "-f", "--force",
        action="store_true",
        help="Overwrite the output file if it exists"
    )
    filter_parser.add_argument(
        "-s", "--subsystem",
        action="append",
        dest="subsystems",
        metavar="PREFIX",
        help="Path prefix to keep (repeatable, replaces the default list)"
    )
    filter_parser.add_argument(
        "--errors-only",
        action="store_true",
        help="Keep only error lines"
    )

    # === TRANSFER command ===
    transfer_parser = subparsers.add_parser(
        "transfer",
        help="Carry review annotations to a new run",
        description="Annotate warn lines from a reviewed baseline, matching by fingerprint."
    )
    transfer_parser.add_argument(
        "baseline",
        help="Reviewed warn-line file (annotation after a tab)"
    )
    transfer_parser.add_argument(
        "current",
        help="New warn-line file"
    )
    transfer_parser.add_argument(
        "-o", "--output",
        help="Output file (default: stdout)"
    )
    transfer_parser.add_argument(
        "-f", "--force",
        action="store_true",
        help="Overwrite the output file if it exists"
    )

    return parser


# ============================================================================
# Output formatting
# ============================================================================

def format_text_result(result: ScanResult, min_severity: Severity) -> str:
    """Format scan result as human-readable text"""
    lines = []

    lines.append(f"\n{'='*60}")
    lines.append(f"hostaudit: {result.filename}")
    lines.append(f"{'='*60}")

    lines.append(f"\nLines scanned: {result.lines_scanned}")
    lines.append(f"Functions analyzed: {result.functions_analyzed}")
    lines.append(f"Scan time: {result.scan_time_ms:.2f}ms")

    if result.errors:
        lines.append(f"\nErrors:")
        for error in result.errors:
            lines.append(f"  ! {error}")

    if result.parse_errors:
        lines.append(f"\nUnparsed regions: {len(result.parse_errors)}")

    findings = result.filtered(min_severity)

    if findings:
        lines.append(f"\nFindings: {len(findings)}")
        lines.append("-" * 40)

        for i, finding in enumerate(findings, 1):
            lines.append(f"\n{i}. [{finding.severity.value.upper()}] {finding.template.name.lower()}")
            lines.append(f"   Location: {finding.file}:{finding.line}:{finding.location.column}")
            lines.append(f"   Function: {finding.function}")
            lines.append(f"   Message: {finding.message}")
            lines.append(f"   Fingerprint: {finding.fingerprint}")
    else:
        lines.append(f"\nNo host input findings.")

    lines.append(f"\n{'='*60}\n")

    return "\n".join(lines)


def format_json_result(results: List[ScanResult]) -> str:
    """Format results as JSON"""
    if len(results) == 1:
        return results[0].to_json()
    combined = {
        "files": [r.to_dict() for r in results],
        "summary": {
            "files_scanned": len(results),
            "total_findings": sum(len(r.findings) for r in results),
            "errors": sum(r.error_count for r in results),
            "warnings": sum(r.warning_count for r in results),
        }
    }
    return json.dumps(combined, indent=2)


def format_sarif_result(results: List[ScanResult]) -> str:
    """Format results as one SARIF run"""
    if len(results) == 1:
        return json.dumps(results[0].to_sarif(), indent=2)

    all_results = []
    rules = {}
    for result in results:
        run = result.to_sarif()["runs"][0]
        all_results.extend(run["results"])
        for rule in run["tool"]["driver"]["rules"]:
            rules[rule["id"]] = rule
    return json.dumps(sarif_log(list(rules.values()), all_results), indent=2)


def format_warns_result(results: List[ScanResult], min_severity: Severity) -> str:
    lines = []
    for result in results:
        lines.extend(result.warn_lines(min_severity))
    return "\n".join(lines) + ("\n" if lines else "")


def should_fail(results: List[ScanResult], fail_on: str) -> bool:
    """Determine if scan should fail based on findings"""
    if fail_on == "none":
        return False
    threshold = Severity.parse(fail_on)
    return any(f.severity.rank >= threshold.rank for r in results for f in r.findings)


def _open_output(path: Optional[str], force: bool):
    if not path:
        return sys.stdout
    if Path(path).exists() and not force:
        raise FileExistsError(f"Output file exists: {path} (use -f to overwrite)")
    return open(path, "w", encoding="utf-8")


# ============================================================================
# Commands
# ============================================================================

def cmd_scan(args) -> int:
    """Execute scan command"""
    target = Path(args.target)

    if not target.exists():
        print(f"Error: Target not found: {args.target}", file=sys.stderr)
        return 1

    catalogue = Catalogue.default()
    if args.catalogue:
        try:
            catalogue = Catalogue.from_json(args.catalogue)
        except (OSError, ValueError) as e:
            print(f"Error: cannot load catalogue {args.catalogue}: {e}", file=sys.stderr)
            return 1

    try:
        scanner = HostInputScanner(
            catalogue=catalogue,
            feasibility=not args.no_feasibility,
            timeout=args.timeout,
            verbose=args.verbose
        )
    except FrontendError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if target.is_file():
        results = [scanner.scan_file(str(target))]
    else:
        results = scanner.scan_directory(str(target), args.pattern)

    if not results:
        print("No files found to scan.", file=sys.stderr)
        return 1

    min_severity = Severity.parse(args.min_severity)

    if args.format == "text":
        output = "".join(format_text_result(r, min_severity) for r in results)
    elif args.format == "json":
        output = format_json_result(results) + "\n"
    elif args.format == "sarif":
        output = format_sarif_result(results) + "\n"
    else:
        output = format_warns_result(results, min_severity)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output)
    else:
        sys.stdout.write(output)

    if should_fail(results, args.fail_on):
        return 1

    return 0


def cmd_filter(args) -> int:
    """Execute filter command"""
    try:
        warns, rejected = read_warns(args.input)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    kept = filter_warns(warns, args.subsystems or DEFAULT_SUBSYSTEMS, args.errors_only)

    try:
        out = _open_output(args.output, args.force)
    except FileExistsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    try:
        write_warns(kept, out)
    finally:
        if out is not sys.stdout:
            out.close()

    print(f"[Filter] kept {len(kept)} of {len(warns)} warn lines"
          f" ({len(rejected)} unparsed lines skipped)", file=sys.stderr)
    return 0


def cmd_transfer(args) -> int:
    """Execute transfer command"""
    try:
        baseline, _ = read_warns(args.baseline)
        current, _ = read_warns(args.current)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    annotated, stats = transfer(baseline, current)

    try:
        out = _open_output(args.output, args.force)
    except FileExistsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    try:
        write_warns(annotated, out)
    finally:
        if out is not sys.stdout:
            out.close()

    print(f"[Transfer] {stats}", file=sys.stderr)
    return 0


# ============================================================================
# Main Entry Point
# ============================================================================

def main(argv: List[str] = None) -> int:
    """Main CLI entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "scan": cmd_scan,
        "filter": cmd_filter,
        "transfer": cmd_transfer,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
