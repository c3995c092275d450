"""
Tests for finding fingerprints.
"""

from hostaudit.analysis.fingerprint import (
    MASK64, HASH_SEED, UNSTABLE_TEXT, djb2, fingerprint, stable_text, is_unstable,
)


class TestDjb2:
    """djb2 over the UTF-8 bytes, 64-bit wrap-around"""

    def test_empty_string_is_seed(self):
        assert djb2("") == HASH_SEED

    def test_single_character(self):
        assert djb2("a") == 5381 * 33 + ord("a")

    def test_wraps_to_64_bits(self):
        h = djb2("x" * 1000)
        assert 0 <= h <= MASK64


class TestFingerprint:
    """Text hash folded with the line offset"""

    def test_deterministic(self):
        assert fingerprint("readl(base)", 3) == fingerprint("readl(base)", 3)

    def test_known_value(self):
        assert fingerprint("a", 2) == 177670 * 33 + 2

    def test_offset_changes_fingerprint(self):
        assert fingerprint("readl(base)", 3) != fingerprint("readl(base)", 4)

    def test_text_changes_fingerprint(self):
        assert fingerprint("readl(base)", 3) != fingerprint("readl(base + 4)", 3)


class TestUnstableText:
    """Compiler-synthesized names do not reach the hash"""

    def test_unique_id_detected(self):
        assert is_unstable("__UNIQUE_ID_ddebug123")
        assert is_unstable("$tmp1 + 2")
        assert not is_unstable("readl(base)")

    def test_unstable_text_replaced(self):
        assert stable_text("__UNIQUE_ID_x7") == UNSTABLE_TEXT
        assert stable_text("readl(base)") == "readl(base)"

    def test_unstable_fingerprint_depends_on_offset_only(self):
        assert fingerprint("__UNIQUE_ID_ddebug12", 5) == fingerprint("__UNIQUE_ID_ddebug99", 5)
        assert fingerprint("__UNIQUE_ID_ddebug12", 5) != fingerprint("__UNIQUE_ID_ddebug12", 6)
