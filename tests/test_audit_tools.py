"""
Tests for the warn-line tools: parsing, subsystem filtering and
annotation transfer.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import io

from hostaudit.analysis import Finding, Severity, Template
from hostaudit.ir import Location
from hostaudit.audit import (
    WarnLine, parse_warns, write_warns, filter_warns, in_subsystems, transfer,
)


LINE = ("drivers/virtio/virtio_pci_modern.c:120 vp_get_status() warn: {1234567}"
        "read from the host using function 'readl' to an int type local variable "
        "'v', type is u32")


def warn(path="drivers/virtio/a.c", line=10, function="f", severity=Severity.WARNING,
         fp=1, message="msg", annotation=""):
    return WarnLine(path, line, function, severity, fp, message, annotation)


class TestWarnLine:

    def test_parse(self):
        w = WarnLine.parse(LINE)
        assert w.file == "drivers/virtio/virtio_pci_modern.c"
        assert w.line == 120
        assert w.function == "vp_get_status"
        assert w.severity == Severity.WARNING
        assert w.fingerprint == 1234567
        assert w.message.startswith("read from the host using function 'readl'")
        assert w.annotation == ""

    def test_round_trip_text(self):
        assert WarnLine.parse(LINE).to_line() == LINE

    def test_annotation_after_tab(self):
        w = WarnLine.parse(LINE + "\tvalidated by caller\n")
        assert w.annotation == "validated by caller"
        assert w.to_line() == LINE + "\tvalidated by caller"
        assert w.to_line(annotated=False) == LINE

    def test_error_without_fingerprint(self):
        w = WarnLine.parse("arch/x86/kernel/tsc.c:88 calibrate() error: read from the host")
        assert w.severity == Severity.ERROR
        assert w.fingerprint is None
        assert w.message == "read from the host"

    def test_not_a_warn_line(self):
        assert WarnLine.parse("CC      drivers/virtio/virtio.o") is None

    def test_from_finding_matches_finding_text(self):
        finding = Finding(Severity.ERROR, Template.RETURN_DIRECT,
                          "read from the host using function 'inb' returned directly",
                          42, Location("drivers/char/x.c", 7, 4), "port_read", "inb(port)")
        assert WarnLine.from_finding(finding).to_line() == finding.to_line()

    def test_parse_warns_splits_noise(self):
        parsed, rejected = parse_warns([LINE + "\n", "\n", "make: *** [all] Error 2\n"])
        assert len(parsed) == 1
        assert rejected == ["make: *** [all] Error 2"]

    def test_write_warns(self):
        out = io.StringIO()
        count = write_warns([WarnLine.parse(LINE)] * 2, out)
        assert count == 2
        assert out.getvalue() == LINE + "\n" + LINE + "\n"


class TestSubsystemFilter:

    def test_default_prefixes(self):
        assert in_subsystems("drivers/virtio/virtio_ring.c")
        assert in_subsystems("./arch/x86/kernel/cpu/common.c")
        assert in_subsystems("drivers/net/virtio_net.c")
        assert not in_subsystems("drivers/gpu/drm/i915/i915_drv.c")
        assert not in_subsystems("sound/core/init.c")

    def test_absolute_paths(self):
        assert in_subsystems("/build/linux/drivers/pci/probe.c")
        assert in_subsystems("/usr/src/linux/arch/x86/kernel/tsc.c")

    def test_prefix_anchored_at_tree_root(self):
        assert not in_subsystems("arch/arm64/kernel/cpufeature.c")
        assert not in_subsystems("arch/arm/mm/init.c")
        assert not in_subsystems("tools/lib/bpf/btf.c")
        assert not in_subsystems("drivers/gpu/drm/i915/gt/uc/lib/x.c")
        assert not in_subsystems("/build/linux/tools/lib/bpf/btf.c")

    def test_custom_prefixes(self):
        assert in_subsystems("sound/core/init.c", ["sound/"])
        assert not in_subsystems("drivers/virtio/virtio.c", ["sound/"])

    def test_filter_keeps_order_and_drops_duplicates(self):
        a = warn("drivers/virtio/a.c", fp=1)
        b = warn("drivers/gpu/b.c", fp=2)
        c = warn("mm/c.c", fp=3)
        assert filter_warns([c, a, b, a]) == [c, a]

    def test_errors_only(self):
        a = warn(severity=Severity.ERROR, fp=1)
        b = warn(severity=Severity.WARNING, fp=2)
        assert filter_warns([a, b], errors_only=True) == [a]


class TestTransfer:
    """Annotations follow fingerprints across runs"""

    def test_matched_new_dropped(self):
        baseline = [
            warn(line=10, fp=1, annotation="ok: masked"),
            warn(line=20, fp=2, annotation="bug"),
            warn(line=30, fp=3),
        ]
        current = [
            warn(line=14, fp=1),
            warn(line=40, fp=9),
        ]
        out, stats = transfer(baseline, current)
        assert [w.annotation for w in out] == ["ok: masked", ""]
        assert out[0].line == 14
        assert (stats.matched, stats.new, stats.dropped) == (1, 1, 1)
        assert str(stats) == "1 matched, 1 new, 1 dropped"

    def test_same_function_preferred(self):
        baseline = [
            warn(function="a", fp=5, annotation="from a"),
            warn(function="b", fp=5, annotation="from b"),
        ]
        out, _ = transfer(baseline, [warn(function="b", fp=5)])
        assert out[0].annotation == "from b"

    def test_other_function_fallback(self):
        baseline = [warn(function="a", fp=5, annotation="from a")]
        out, _ = transfer(baseline, [warn(function="renamed", fp=5)])
        assert out[0].annotation == "from a"

    def test_stale_annotation_replaced(self):
        """Current lines never keep their own annotations"""
        out, stats = transfer([], [warn(fp=7, annotation="old")])
        assert out[0].annotation == ""
        assert stats.new == 1

    def test_lines_without_fingerprint_are_new(self):
        out, stats = transfer([warn(fp=None, annotation="x")], [warn(fp=None)])
        assert stats.new == 1 and stats.matched == 0

    def test_same_file_preferred_over_same_function_elsewhere(self):
        baseline = [
            warn("drivers/pci/probe.c", function="f", fp=5, annotation="pci note"),
            warn("drivers/virtio/a.c", function="g", fp=5, annotation="virtio note"),
        ]
        out, stats = transfer(baseline, [warn("drivers/virtio/a.c", function="f", fp=5)])
        assert out[0].annotation == "virtio note"
        assert stats.cross_file == 0

    def test_cross_file_match_marked(self):
        baseline = [warn("drivers/pci/probe.c", function="g", fp=5, annotation="reviewed: safe")]
        out, stats = transfer(baseline, [warn("drivers/virtio/a.c", function="f", fp=5)])
        assert out[0].annotation == "[from drivers/pci/probe.c:g()] reviewed: safe"
        assert stats.cross_file == 1
        assert str(stats) == "1 matched, 0 new, 0 dropped (1 from other files)"

    def test_path_spelling_does_not_matter(self):
        baseline = [warn("./drivers/virtio/a.c", fp=5, annotation="ok")]
        out, stats = transfer(baseline, [warn("/build/linux/drivers/virtio/a.c", fp=5)])
        assert out[0].annotation == "ok"
        assert stats.cross_file == 0
