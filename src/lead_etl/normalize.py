"""Normalization functions for lead import.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re
import string
import urllib.parse

_COUNT_SEPARATORS = re.compile(r"[,_\s]")
_COUNT_DIGITS = re.compile(r"(\d+)(?:\.0*)?")

# Upper bound of the PostgreSQL integer columns the counts are stored in.
COUNT_MAX = 2_147_483_647


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: normalize_key  (natural-key comparison form)
# ---------------------------------------------------------------------------

# Usernames fold ASCII letters only.  PostgreSQL's lower() under the "C"
# collation folds the same set regardless of database locale, so the key
# computed here is exactly lower(username COLLATE "C") in SQL.
_ASCII_FOLD = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def fold_key(value: str) -> str:
    """Lower-case ASCII letters; leave every other character as is."""
    return value.translate(_ASCII_FOLD)


def normalize_key(value: str | None) -> str | None:
    """Trim, drop a leading '@' handle marker, and fold case with fold_key.

    This is the only form in which usernames are compared, probed, or
    written.  '  @Alice ' and 'alice' are the same key; 'Ärzte' and
    'ärzte' are not.
    """
    v = trim(value)
    if v is None:
        return None
    v = v.lstrip("@").strip()
    return fold_key(v) if v else None


# ---------------------------------------------------------------------------
# Rule 4: parse_count
# ---------------------------------------------------------------------------

def parse_count(value: str | None) -> int | None:
    """Parse a non-negative integer counter.

    Thousands separators (',', '_', spaces) are tolerated; '12.0' is accepted
    as 12.  Anything else (abbreviations like '1.2k', exponents, negatives,
    text) returns None rather than raising, as does a value above
    COUNT_MAX, the ceiling of the integer count columns.
    """
    v = trim(value)
    if v is None:
        return None
    m = _COUNT_DIGITS.fullmatch(_COUNT_SEPARATORS.sub("", v))
    if m is None:
        return None
    number = int(m.group(1))
    return number if number <= COUNT_MAX else None


# ---------------------------------------------------------------------------
# Rule 5: normalize_url
# ---------------------------------------------------------------------------

def normalize_url(value: str | None) -> str | None:
    """Return an absolute http(s) URL or None.

    Bare hosts ('instagram.com/alice') get an https:// scheme.  Values
    that do not parse to a host are dropped.
    """
    v = trim(value)
    if v is None:
        return None
    if "://" not in v:
        v = f"https://{v}"
    try:
        parts = urllib.parse.urlsplit(v)
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None
    return urllib.parse.urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, parts.fragment)
    )
