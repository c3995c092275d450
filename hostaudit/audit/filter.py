"""
Subsystem filter over warn lines.

Keeps the findings in the parts of the kernel a confidential guest
actually runs with host-facing code: x86 arch code, virtio and PCI
drivers, ACPI, core kernel and memory management, 9p...
"""

from typing import Iterable, List, Sequence

from hostaudit.analysis.findings import Severity
from hostaudit.audit.warns import WarnLine


DEFAULT_SUBSYSTEMS = (
    "arch/x86/",
    "drivers/acpi/",
    "drivers/base/",
    "drivers/block/virtio_blk",
    "drivers/char/",
    "drivers/clocksource/",
    "drivers/firmware/",
    "drivers/iommu/",
    "drivers/net/virtio_net",
    "drivers/pci/",
    "drivers/rtc/",
    "drivers/tty/",
    "drivers/virtio/",
    "fs/9p/",
    "init/",
    "kernel/",
    "lib/",
    "mm/",
    "net/9p/",
    "net/vmw_vsock/",
    "security/",
)


# Top-level directories of a kernel tree; an absolute path is read from
# the first one of these it contains
KERNEL_TOP_DIRS = frozenset((
    "arch", "block", "certs", "crypto", "drivers", "fs", "include", "init",
    "io_uring", "ipc", "kernel", "lib", "mm", "net", "rust", "samples",
    "scripts", "security", "sound", "tools", "virt",
))


def normalize_path(path: str) -> str:
    """Path relative to the kernel tree root"""
    if path.startswith("/"):
        parts = path.split("/")
        for i, part in enumerate(parts):
            if part in KERNEL_TOP_DIRS:
                return "/".join(parts[i:])
        return path
    while path.startswith("./"):
        path = path[2:]
    return path


def in_subsystems(path: str, subsystems: Sequence[str] = DEFAULT_SUBSYSTEMS) -> bool:
    """True if `path` lies under one of the subsystem prefixes"""
    path = normalize_path(path)
    return any(path.startswith(normalize_path(prefix)) for prefix in subsystems)


def filter_warns(warns: Iterable[WarnLine],
                 subsystems: Sequence[str] = DEFAULT_SUBSYSTEMS,
                 errors_only: bool = False) -> List[WarnLine]:
    """
    Keep warn lines under `subsystems`, in input order.

    Repeated lines (same location, fingerprint and message) are kept once.
    """
    kept: List[WarnLine] = []
    seen = set()
    for warn in warns:
        if errors_only and warn.severity != Severity.ERROR:
            continue
        if not in_subsystems(warn.file, subsystems):
            continue
        key = (warn.file, warn.line, warn.function, warn.fingerprint, warn.message)
        if key in seen:
            continue
        seen.add(key)
        kept.append(warn)
    return kept
