"""
Catalogue of host-interface functions: sources, sinks, safe consumers,
source-only macros and the CPUID leaf policy.
"""

from hostaudit.specs.host_specs import (
    HostRole, HostSpec, HOST_SPECS, SOURCE_SPECS, SINK_SPECS, SAFE_SPECS,
    MACRO_SPECS, mask_of, positions_of,
)
from hostaudit.specs.catalogue import Catalogue

__all__ = [
    "HostRole",
    "HostSpec",
    "HOST_SPECS",
    "SOURCE_SPECS",
    "SINK_SPECS",
    "SAFE_SPECS",
    "MACRO_SPECS",
    "mask_of",
    "positions_of",
    "Catalogue",
]
