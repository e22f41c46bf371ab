"""lead_etl.columns

YAML-based source column mapping for lead CSV imports.

A column map names, for each lead field, the source headers that may carry
it.  Header matching is case-insensitive and whitespace-insensitive, so
"Followers Count", "followers_count" and "followers count" can all be
listed once as "followers_count".

Usage:
    from pathlib import Path
    from lead_etl.columns import load_column_map

    column_map = load_column_map(Path("config/column_maps/instagram_export.yml"))
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

LEAD_FIELDS = (
    "username",
    "full_name",
    "bio",
    "profile_url",
    "followers_count",
    "following_count",
    "posts_count",
    "status",
)

DEFAULT_COLUMN_MAP: dict[str, list[str]] = {
    "username": ["username", "usernames", "handle", "user"],
    "full_name": ["full_name", "full_names", "name"],
    "bio": ["bio", "bios", "biography"],
    "profile_url": ["profile_url", "profile_urls", "url"],
    "followers_count": ["followers_count", "followers"],
    "following_count": ["following_count", "following"],
    "posts_count": ["posts_count", "posts"],
    "status": ["status"],
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ColumnMapValidationError(ValueError):
    """Raised when a YAML column map fails schema validation."""


# ---------------------------------------------------------------------------
# Header matching
# ---------------------------------------------------------------------------

def header_token(header: str) -> str:
    """Reduce a header to a comparison token: 'Followers  Count' -> 'followers_count'."""
    return re.sub(r"[\s\-]+", "_", header.strip().lower())


def build_header_index(column_map: dict[str, list[str]]) -> dict[str, str]:
    """Invert a column map into {header_token: lead_field}."""
    index: dict[str, str] = {}
    for lead_field, headers in column_map.items():
        for header in headers:
            index[header_token(header)] = lead_field
    return index


def resolve_headers(
    fieldnames: list[str],
    column_map: dict[str, list[str]],
) -> dict[str, str]:
    """Return {source_header: lead_field} for the headers a file actually has.

    Headers with no mapping are absent from the result; their values end
    up in CandidateRecord.extra.  When two headers map to the same field
    the first one in file order wins.
    """
    index = build_header_index(column_map)
    resolved: dict[str, str] = {}
    taken: set[str] = set()
    for header in fieldnames:
        lead_field = index.get(header_token(header))
        if lead_field is None or lead_field in taken:
            continue
        resolved[header] = lead_field
        taken.add(lead_field)
    return resolved


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_column_map(yaml_path: Path) -> dict[str, list[str]]:
    """Load, validate, and return a column map from a YAML file.

    Raises:
        ColumnMapValidationError: If the mapping is malformed.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ColumnMapValidationError(f"{yaml_path.name} is not valid YAML: {exc}") from exc
    validate_column_map(data)
    return {
        lead_field: [str(h) for h in ([headers] if isinstance(headers, str) else headers)]
        for lead_field, headers in data.items()
    }


def validate_column_map(data: Any) -> None:
    """Raise ColumnMapValidationError if data is not a usable column map.

    Validates:
      - top level is a mapping of known lead fields
      - 'username' is mapped
      - each value is a header string or a non-empty list of header strings
      - no source header is claimed by two fields
    """
    if not isinstance(data, dict):
        raise ColumnMapValidationError("column map must be a mapping of field -> headers")

    unknown = sorted(set(data) - set(LEAD_FIELDS))
    if unknown:
        raise ColumnMapValidationError(f"unknown lead field(s): {unknown}")
    if "username" not in data:
        raise ColumnMapValidationError("column map must map 'username'")

    seen: dict[str, str] = {}
    for lead_field, headers in data.items():
        if isinstance(headers, str):
            headers = [headers]
        if not isinstance(headers, list) or not headers:
            raise ColumnMapValidationError(
                f"{lead_field}: expected a header or a non-empty list of headers"
            )
        for header in headers:
            if not isinstance(header, str) or not header.strip():
                raise ColumnMapValidationError(f"{lead_field}: blank header")
            token = header_token(header)
            if token in seen and seen[token] != lead_field:
                raise ColumnMapValidationError(
                    f"header {header!r} mapped to both {seen[token]!r} and {lead_field!r}"
                )
            seen[token] = lead_field
