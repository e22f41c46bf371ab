"""Unit tests for lead_etl.normalize."""

import pytest

from lead_etl.normalize import (
    COUNT_MAX,
    fold_key,
    normalize_key,
    normalize_space,
    normalize_url,
    parse_count,
    trim,
)


# ---------------------------------------------------------------------------
# trim
# ---------------------------------------------------------------------------

class TestTrim:
    def test_strips_whitespace(self):
        assert trim("  hello  ") == "hello"

    def test_empty_string_returns_none(self):
        assert trim("") is None

    def test_whitespace_only_returns_none(self):
        assert trim("   ") is None

    def test_none_returns_none(self):
        assert trim(None) is None


# ---------------------------------------------------------------------------
# normalize_space
# ---------------------------------------------------------------------------

class TestNormalizeSpace:
    def test_collapses_internal_spaces(self):
        assert normalize_space("Alice   van  Dyke") == "Alice van Dyke"

    def test_collapses_tabs_and_newlines(self):
        assert normalize_space("Alice\t\nSmith") == "Alice Smith"

    def test_none(self):
        assert normalize_space(None) is None


# ---------------------------------------------------------------------------
# normalize_key
# ---------------------------------------------------------------------------

class TestNormalizeKey:
    def test_lowercases(self):
        assert normalize_key("Bob") == "bob"

    def test_trims(self):
        assert normalize_key("  alice ") == "alice"

    def test_strips_handle_marker(self):
        assert normalize_key("@Alice") == "alice"

    def test_only_marker_is_none(self):
        assert normalize_key(" @ ") is None

    def test_blank_is_none(self):
        assert normalize_key("   ") is None

    def test_none(self):
        assert normalize_key(None) is None

    def test_keeps_inner_punctuation(self):
        assert normalize_key("Jane.Doe_99") == "jane.doe_99"

    @pytest.mark.parametrize("raw,expected", [
        ("İlker", "İlker"),
        ("ÄRZTE", "Ärzte"),
        ("Straße", "straße"),
    ])
    def test_folds_ascii_letters_only(self, raw, expected):
        assert normalize_key(raw) == expected
        assert fold_key(raw) == expected


# ---------------------------------------------------------------------------
# parse_count
# ---------------------------------------------------------------------------

class TestParseCount:
    @pytest.mark.parametrize("raw,expected", [
        ("120", 120),
        (" 7 ", 7),
        ("1,234", 1234),
        ("1 234", 1234),
        ("12.0", 12),
        ("0", 0),
    ])
    def test_valid(self, raw, expected):
        assert parse_count(raw) == expected

    @pytest.mark.parametrize("raw", ["1.2k", "-5", "12.5", "abc", "nan", "inf", "", None])
    def test_invalid_returns_none(self, raw):
        assert parse_count(raw) is None

    @pytest.mark.parametrize("raw", ["1e20", "1e3", "3,000,000,000", "2147483648"])
    def test_exponents_and_out_of_range_return_none(self, raw):
        assert parse_count(raw) is None

    def test_upper_bound_is_inclusive(self):
        assert parse_count("2,147,483,647") == COUNT_MAX

    def test_parses_digits_exactly(self):
        assert parse_count("2147483601") == 2147483601
        assert parse_count("00042") == 42


# ---------------------------------------------------------------------------
# normalize_url
# ---------------------------------------------------------------------------

class TestNormalizeUrl:
    def test_keeps_https(self):
        assert normalize_url("https://instagram.com/alice") == "https://instagram.com/alice"

    def test_adds_scheme_to_bare_host(self):
        assert normalize_url("instagram.com/alice") == "https://instagram.com/alice"

    def test_lowercases_scheme_and_host_only(self):
        assert normalize_url("HTTPS://Instagram.COM/Alice") == "https://instagram.com/Alice"

    def test_rejects_other_schemes(self):
        assert normalize_url("ftp://example.com/file") is None

    def test_none(self):
        assert normalize_url(None) is None

    def test_blank(self):
        assert normalize_url("  ") is None
