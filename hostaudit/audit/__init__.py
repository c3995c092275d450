"""
Audit tools over warn lines: subsystem filtering and transfer of review
annotations between runs.
"""

from hostaudit.audit.warns import WarnLine, parse_warns, read_warns, write_warns
from hostaudit.audit.filter import DEFAULT_SUBSYSTEMS, filter_warns, in_subsystems
from hostaudit.audit.transfer import TransferStats, index_annotations, transfer

__all__ = [
    "WarnLine", "parse_warns", "read_warns", "write_warns",
    "DEFAULT_SUBSYSTEMS", "filter_warns", "in_subsystems",
    "TransferStats", "index_annotations", "transfer",
]
