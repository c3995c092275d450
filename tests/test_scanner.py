"""
Tests for the hostaudit scanner.

Tests the complete pipeline:
    C Source → CFrontend → IR → HostInputChecker → Findings
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import json

import pytest

from hostaudit.frontends import TREE_SITTER_C_AVAILABLE
from hostaudit.analysis import Severity, Template


# Skip all tests if tree-sitter-c not available
pytestmark = pytest.mark.skipif(
    not TREE_SITTER_C_AVAILABLE,
    reason="tree-sitter-c not installed"
)


def scan(code, feasibility=True, filename="drivers/virtio/test.c"):
    from hostaudit.scanner import HostInputScanner
    return HostInputScanner(feasibility=feasibility).scan(code, filename)


def templates(result):
    return [f.template for f in result.findings]


class TestDirectReads:
    """Destination of a value read from the host"""

    def test_local_int(self):
        code = """
static void poll(void *base)
{
    u32 v;
    v = readl(base);
}
"""
        result = scan(code)
        assert not result.errors
        assert templates(result) == [Template.LOCAL_INT]
        f = result.findings[0]
        assert f.severity == Severity.WARNING
        assert f.line == 5
        assert f.function == "poll"
        assert f.expression == "readl(base)"

    def test_returned_directly(self):
        code = """
static u32 get_status(void *base)
{
    return readl(base);
}
"""
        result = scan(code)
        assert templates(result) == [Template.RETURN_DIRECT]
        assert result.findings[0].severity == Severity.ERROR

    def test_member_store(self):
        code = """
static void refresh(struct dev *p, void *base)
{
    p->features = readq(base);
}
"""
        result = scan(code)
        assert templates(result) == [Template.MEMBER]
        assert "'p->features'" in result.findings[0].message

    def test_memcpy_fromio_into_buffer(self):
        code = """
static void copy_config(void *base)
{
    u8 buf[16];
    memcpy_fromio(buf, base, 16);
}
"""
        result = scan(code)
        assert templates(result) == [Template.LOCAL_NON_INT]
        assert result.findings[0].severity == Severity.ERROR

    def test_gnu_conditional_reported_once(self):
        code = """
static void poll(void *p)
{
    int x;
    x = readl(p) ?: 3;
}
"""
        result = scan(code)
        assert len([f for f in result.findings if f.expression == "readl(p)"]) == 1

    def test_declaration_initializer(self):
        code = """
static int check(void *base)
{
    u32 magic = readl(base);
    return 0;
}
"""
        assert templates(scan(code)) == [Template.LOCAL_INT]

    def test_pointer_parameter_output(self):
        code = """
static void read_reg(void *base, u32 *out)
{
    *out = readl(base);
}
"""
        assert templates(scan(code)) == [Template.NON_LOCAL]

    def test_function_static_is_non_local(self):
        code = """
static u32 cached_id(void *base)
{
    static u32 id;
    id = readl(base);
    return 0;
}
"""
        assert templates(scan(code)) == [Template.NON_LOCAL]

    def test_void_cast_and_bare_call(self):
        code = """
static void flush(void *b)
{
    (void)readl(b);
    readl(b);
}
"""
        assert templates(scan(code)) == [Template.EMPTY, Template.NO_ASSIGN]

    def test_conditions(self):
        code = """
static int ready(void *b)
{
    if (readl(b) & 1)
        return 1;
    switch (readl(b)) {
    case 2:
        return 2;
    }
    return 0;
}
"""
        result = scan(code)
        assert templates(result) == [Template.CONDITION, Template.CONDITION]
        assert "an if condition" in result.findings[0].message
        assert "a switch condition" in result.findings[1].message

    def test_argument_to_call(self):
        code = """
static void mirror(void *a, void *b)
{
    writel(readl(a), b);
    consume(readl(a));
}
"""
        result = scan(code)
        assert templates(result) == [Template.ARG_TO_CALL, Template.ARG_TO_CALL]
        assert [f.severity for f in result.findings] == [Severity.WARNING, Severity.ERROR]

    def test_loops(self):
        code = """
static void wait(void *base)
{
    u32 status = 0;
    while (readl(base) != status)
        ;
    while (readl(base) & 1)
        ;
}
"""
        result = scan(code)
        assert templates(result) == [Template.LOCAL_INT, Template.LOOP]
        assert "'status'" in result.findings[0].message

    def test_asm_operand(self):
        code = """
static void poke(void *base)
{
    unsigned long x;
    asm volatile("mov %1, %0" : "=r"(x) : "r"(readl(base)));
}
"""
        result = scan(code)
        assert templates(result) == [Template.NOT_COVERED]


class TestMultipleDestinations:

    def test_rdmsr_safe_combined(self):
        code = """
static int probe_msr(void)
{
    u32 lo, hi;
    return rdmsr_safe(0x10, &lo, &hi);
}
"""
        result = scan(code)
        assert templates(result) == [Template.COMBINED]
        assert "'&lo', '&hi'" in result.findings[0].message

    def test_pci_config_to_local(self):
        code = """
static int probe(struct pci_dev *dev)
{
    u32 bar;
    pci_read_config_dword(dev, 0x10, &bar);
    return 0;
}
"""
        assert templates(scan(code)) == [Template.LOCAL_INT]

    def test_repeat_read_into_same_local(self):
        """Passing &bar again is another read, not a use of the value"""
        code = """
static int probe(struct pci_dev *dev)
{
    u32 bar;
    pci_read_config_dword(dev, 0x10, &bar);
    pci_read_config_dword(dev, 0x14, &bar);
    return 0;
}
"""
        assert templates(scan(code)) == [Template.LOCAL_INT, Template.LOCAL_INT]


class TestCpuidLeaves:
    """Only leaves the host controls are reported"""

    def cpuid_eax(self, leaf, prefix=""):
        return scan(prefix + """
static u32 leaf_eax(void)
{
    u32 eax;
    eax = cpuid_eax(%s);
    return 0;
}
""" % leaf)

    def test_leaf_zero(self):
        assert self.cpuid_eax("0").findings == []

    def test_cache_leaf(self):
        assert templates(self.cpuid_eax("0x4")) == [Template.LOCAL_INT]

    def test_hypervisor_signature(self):
        assert self.cpuid_eax("0x40000000").findings == []

    def test_hypervisor_range(self):
        assert len(self.cpuid_eax("0x40000100").findings) == 1

    def test_defined_leaf(self):
        assert len(self.cpuid_eax("CACHE_LEAF", "#define CACHE_LEAF 0x4\n").findings) == 1

    def test_defined_trusted_leaf(self):
        assert self.cpuid_eax("VENDOR_LEAF", "#define VENDOR_LEAF 0\n").findings == []

    def test_cpuid_four_outputs(self):
        code = """
static void leaves(void)
{
    unsigned int a, b, c, d;
    cpuid(0x4, &a, &b, &c, &d);
    cpuid(0, &a, &b, &c, &d);
}
"""
        assert templates(scan(code)) == [Template.COMBINED]

    def test_trusted_leaf_after_tainted_local(self):
        code = """
static void vendor(void *base)
{
    unsigned int a, b, c, d;
    a = readl(base);
    cpuid(0, &a, &b, &c, &d);
}
"""
        assert templates(scan(code)) == [Template.LOCAL_INT]


class TestPropagation:

    def test_transitive_flow(self):
        code = """
static u32 scaled(void *base)
{
    u32 v, w;
    v = readl(base);
    w = v + 1;
    return w;
}
"""
        result = scan(code)
        assert templates(result) == [
            Template.LOCAL_INT, Template.PROP_LOCAL, Template.RETURN_TAINTED,
        ]

    def test_escape_to_static_global(self):
        code = """
static u32 cached;

static void save(void *base)
{
    u32 v;
    v = readl(base);
    cached = v;
}
"""
        result = scan(code)
        assert templates(result) == [Template.LOCAL_INT, Template.PROP_ESCAPE]
        assert result.findings[1].severity == Severity.ERROR

    def test_tainted_arguments(self):
        code = """
static void report(void *base)
{
    u32 v;
    v = readl(base);
    do_something(v);
    pr_info("status %u\\n", v);
}
"""
        result = scan(code)
        assert templates(result) == [Template.LOCAL_INT, Template.CALL_ARG, Template.CALL_ARG]
        assert [f.severity for f in result.findings[1:]] == [Severity.ERROR, Severity.WARNING]

    def test_tainted_loop_bound(self):
        code = """
static void walk(void *base)
{
    u32 n;
    int i;
    n = readl(base);
    for (i = 0; i < n; i++)
        touch(i);
}
"""
        result = scan(code)
        assert Template.LOOP_TAINTED in templates(result)

    def test_msr_macro(self):
        code = """
static u64 read_tsc_aux(void)
{
    u64 val;
    rdmsrl(MSR_TSC_AUX, val);
    return val;
}
"""
        result = scan(code)
        assert templates(result) == [Template.MACRO, Template.RETURN_TAINTED]
        assert result.findings[0].heuristic


class TestFeasibility:

    GUARDED = """
static void maybe(void *base)
{
    u32 v;
    int mode = 0;
    if (mode == 1)
        v = readl(base);
}
"""

    def test_infeasible_branch_pruned(self):
        assert scan(self.GUARDED).findings == []

    def test_without_solver_reported(self):
        assert len(scan(self.GUARDED, feasibility=False).findings) == 1

    def test_dead_code(self):
        code = """
static void never(void *base)
{
    u32 v;
    if (0) {
        v = readl(base);
    }
}
"""
        assert scan(code).findings == []

    def test_reassigned_guard_feasible(self):
        code = """
static void maybe(void *base, int arg)
{
    u32 v;
    int mode = 0;
    mode = arg;
    if (mode == 1)
        v = readl(base);
}
"""
        assert len(scan(code).findings) == 1

    def test_all_ones_check_on_u32(self):
        code = """
static u32 check(void *base)
{
    u32 v = ~0;
    if (v == 0xffffffff)
        return readl(base);
    return 0;
}
"""
        assert templates(scan(code)) == [Template.RETURN_DIRECT]

    def test_unsigned_cast_of_negative(self):
        code = """
static u32 check(void *base)
{
    int x = -1;
    if ((unsigned int)x > 5)
        return readl(base);
    return 0;
}
"""
        assert templates(scan(code)) == [Template.RETURN_DIRECT]

    def test_unsigned_compare_pruned(self):
        code = """
static u32 check(void *base)
{
    u32 v = ~0;
    if (v < 0)
        return readl(base);
    return 0;
}
"""
        assert scan(code).findings == []


class TestResult:
    """ScanResult reporting"""

    CODE = """
static u32 get_status(void *base)
{
    u32 v;
    v = readl(base);
    return readl(base);
}
"""

    def test_counts_and_summary(self):
        result = scan(self.CODE)
        assert result.functions_analyzed == 1
        assert result.error_count == 1
        assert result.warning_count == 1
        assert result.has_findings
        data = result.to_dict()
        assert data["summary"] == {"total": 2, "errors": 1, "warnings": 1}

    def test_min_severity_filter(self):
        result = scan(self.CODE)
        assert [f.template for f in result.filtered(Severity.ERROR)] == [Template.RETURN_DIRECT]

    def test_warn_lines(self):
        result = scan(self.CODE)
        line = result.warn_lines()[0]
        fp = result.findings[0].fingerprint
        assert line.startswith(f"drivers/virtio/test.c:5 get_status() warn: {{{fp}}}")

    def test_json(self):
        data = json.loads(scan(self.CODE).to_json())
        assert data["filename"] == "drivers/virtio/test.c"
        assert data["findings"][1]["template"] == "RETURN_DIRECT"
        assert data["findings"][1]["severity"] == "error"

    def test_sarif(self):
        sarif = scan(self.CODE).to_sarif()
        assert sarif["version"] == "2.1.0"
        run = sarif["runs"][0]
        assert run["tool"]["driver"]["name"] == "hostaudit"
        rule_ids = {r["id"] for r in run["tool"]["driver"]["rules"]}
        assert rule_ids == {"hostaudit/local_int", "hostaudit/return_direct"}
        first = run["results"][0]
        assert first["level"] == "warning"
        region = first["locations"][0]["physicalLocation"]["region"]
        assert region["startLine"] == 5
        assert region["startColumn"] == 9
        assert first["partialFingerprints"]["hostaudit/v1"].isdigit()

    def test_fingerprints_survive_unrelated_edits(self):
        """Lines added above a function do not change its fingerprints"""
        before = scan(self.CODE)
        after = scan("\n\n/* new header comment */\n" + self.CODE)
        assert [f.line for f in after.findings] == [f.line + 3 for f in before.findings]
        assert ([f.fingerprint for f in after.findings]
                == [f.fingerprint for f in before.findings])

    def test_fingerprint_depends_on_offset(self):
        result = scan(self.CODE)
        a, b = result.findings
        assert a.fingerprint != b.fingerprint

    def test_parse_errors_reported_separately(self):
        result = scan("@@@ @@@;\n" + self.CODE)
        assert result.parse_errors
        assert not result.errors
        assert len(result.findings) == 2


class TestFiles:

    def test_missing_file(self, tmp_path):
        from hostaudit.scanner import HostInputScanner
        result = HostInputScanner().scan_file(str(tmp_path / "missing.c"))
        assert result.errors == [f"File not found: {tmp_path / 'missing.c'}"]
        assert result.findings == []

    def test_scan_directory(self, tmp_path):
        from hostaudit.scanner import HostInputScanner
        (tmp_path / "b.c").write_text("int b(void *p) { return readl(p); }\n")
        (tmp_path / "a.c").write_text("int a(void) { return 0; }\n")
        (tmp_path / "notes.txt").write_text("readl(p)\n")
        results = HostInputScanner().scan_directory(str(tmp_path))
        assert [os.path.basename(r.filename) for r in results] == ["a.c", "b.c"]
        assert [len(r.findings) for r in results] == [0, 1]

    def test_non_utf8_source(self, tmp_path):
        from hostaudit.scanner import HostInputScanner
        path = tmp_path / "latin.c"
        path.write_bytes(b"/* caf\xe9 */\nint f(void *p) { return readl(p); }\n")
        result = HostInputScanner().scan_file(str(path))
        assert not result.errors
        assert len(result.findings) == 1
