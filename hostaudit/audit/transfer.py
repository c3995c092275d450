"""
Annotation transfer.

A reviewed baseline has an annotation after each warn line. Code moves
between kernel versions, so lines are matched by fingerprint (stable
under edits outside the enclosing function) rather than by location.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from hostaudit.audit.filter import normalize_path
from hostaudit.audit.warns import WarnLine


@dataclass
class TransferStats:
    """Outcome of one transfer"""
    matched: int = 0
    new: int = 0
    dropped: int = 0
    cross_file: int = 0     # matched only by a line in another file

    def __str__(self) -> str:
        text = f"{self.matched} matched, {self.new} new, {self.dropped} dropped"
        if self.cross_file:
            text += f" ({self.cross_file} from other files)"
        return text


def index_annotations(baseline: Iterable[WarnLine]) -> Dict[int, List[WarnLine]]:
    """fingerprint -> annotated baseline lines"""
    index: Dict[int, List[WarnLine]] = {}
    for warn in baseline:
        if warn.fingerprint is None or not warn.annotation:
            continue
        index.setdefault(warn.fingerprint, []).append(warn)
    return index


def best_match(warn: WarnLine, candidates: List[WarnLine]) -> Optional[WarnLine]:
    """
    Baseline line whose annotation `warn` inherits.

    Same file and function first, then the same file. Fingerprints hash
    the call text and its offset in the function, so a hit in another
    file is only a guess and comes last.
    """
    path = normalize_path(warn.file)
    same_file = [c for c in candidates if normalize_path(c.file) == path]
    for c in same_file:
        if c.function == warn.function:
            return c
    if same_file:
        return same_file[0]
    return candidates[0] if candidates else None


def transfer(baseline: Iterable[WarnLine],
             current: Iterable[WarnLine]) -> Tuple[List[WarnLine], TransferStats]:
    """
    Annotate `current` from `baseline`.

    Annotations taken from another file are prefixed with their origin so
    the auditor can recheck them. Baseline fingerprints never matched
    count as dropped.
    """
    index = index_annotations(baseline)
    used = set()
    stats = TransferStats()
    out: List[WarnLine] = []

    for warn in current:
        candidates = index.get(warn.fingerprint, []) if warn.fingerprint is not None else []
        match = best_match(warn, candidates)
        if match is None:
            stats.new += 1
            out.append(warn.annotated(""))
            continue
        annotation = match.annotation
        if normalize_path(match.file) != normalize_path(warn.file):
            annotation = f"[from {match.file}:{match.function}()] {annotation}"
            stats.cross_file += 1
        used.add(warn.fingerprint)
        stats.matched += 1
        out.append(warn.annotated(annotation))

    stats.dropped = sum(1 for fp in index if fp not in used)
    return out, stats
