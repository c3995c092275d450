"""
Finding identity hasher.

fingerprint = djb2(primary_text) folded with the line offset of the
finding from the start of its function. Compiler-generated names change
from build to build, so text containing them is replaced by a fixed
literal and the hash then depends only on position.
"""

import re

MASK64 = (1 << 64) - 1
HASH_SEED = 5381
HASH_MULTIPLIER = 33

UNSTABLE_TEXT = "unstable_expr"

# __UNIQUE_ID_ prefixes from kernel macros, $-prefixed internal temporaries
UNSTABLE_PATTERNS = [
    re.compile(r"__UNIQUE_ID_\w*"),
    re.compile(r"\$\w+"),
    re.compile(r"__compiletime_assert_\d+"),
]


def is_unstable(text: str) -> bool:
    return any(p.search(text) for p in UNSTABLE_PATTERNS)


def stable_text(text: str) -> str:
    """Primary text used for hashing"""
    return UNSTABLE_TEXT if is_unstable(text) else text


def djb2(text: str) -> int:
    h = HASH_SEED
    for byte in text.encode('utf-8'):
        h = (h * HASH_MULTIPLIER + byte) & MASK64
    return h


def fingerprint(primary_text: str, line_offset: int) -> int:
    """
    Stable 64-bit identity of a finding.

    Identical canonical text at the same offset from the function start
    always hashes the same, whatever else changed in the file.
    """
    h = djb2(stable_text(primary_text))
    return (h * HASH_MULTIPLIER + line_offset) & MASK64
