"""lead_etl.records

Candidate lead records and the first pipeline stage (validation).

A CandidateRecord is the in-memory shape of one incoming lead: a mandatory
natural key (the username), a fixed set of known payload fields, and an
open `extra` bag for any other column the source file carried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from lead_etl.columns import DEFAULT_COLUMN_MAP, resolve_headers
from lead_etl.normalize import (
    normalize_key,
    normalize_space,
    normalize_url,
    parse_count,
    trim,
)
from lead_etl.shared import NoValidRecordsError, RejectWriter

log = logging.getLogger(__name__)

DEFAULT_STATUS = "new"

COUNT_FIELDS = ("followers_count", "following_count", "posts_count")
PAYLOAD_FIELDS = ("full_name", "bio", "profile_url") + COUNT_FIELDS


class ImportMode(str, Enum):
    """Conflict policy for keys that already exist in the store."""

    SKIP = "skip"
    UPDATE = "update"
    MERGE = "merge"
    FAIL = "fail"


@dataclass
class CandidateRecord:
    username: str | None
    full_name: str | None = None
    bio: str | None = None
    profile_url: str | None = None
    followers_count: int | None = None
    following_count: int | None = None
    posts_count: int | None = None
    status: str | None = None
    extra: dict[str, str] = field(default_factory=dict)
    source_row: int | None = None

    @property
    def natural_key(self) -> str | None:
        return normalize_key(self.username)

    def to_row(self) -> dict[str, object]:
        """Flat dict form, used for reject files and debugging."""
        row: dict[str, object] = {
            "username": self.username,
            **{name: getattr(self, name) for name in PAYLOAD_FIELDS},
            "status": self.status,
        }
        row.update(self.extra)
        return row


# ---------------------------------------------------------------------------
# Row -> record
# ---------------------------------------------------------------------------

def record_from_row(
    row: dict[str, str],
    position: int | None = None,
    column_map: dict[str, list[str]] | None = None,
) -> CandidateRecord:
    """Build a CandidateRecord from one parsed source row.

    Known columns are mapped through `column_map` (DEFAULT_COLUMN_MAP when
    omitted); unmapped non-blank columns are kept in `extra` under their
    stripped header name.
    """
    headers = resolve_headers(list(row.keys()), column_map or DEFAULT_COLUMN_MAP)
    values: dict[str, str | None] = {}
    extra: dict[str, str] = {}
    for header, raw in row.items():
        lead_field = headers.get(header)
        if lead_field is None:
            v = trim(raw)
            if v is not None:
                extra[header.strip()] = v
            continue
        values[lead_field] = raw

    return CandidateRecord(
        username=trim(values.get("username")),
        full_name=normalize_space(values.get("full_name")),
        bio=trim(values.get("bio")),
        profile_url=normalize_url(values.get("profile_url")),
        followers_count=parse_count(values.get("followers_count")),
        following_count=parse_count(values.get("following_count")),
        posts_count=parse_count(values.get("posts_count")),
        status=(trim(values.get("status")) or "").lower() or None,
        extra=extra,
        source_row=position,
    )


# ---------------------------------------------------------------------------
# Record Validator
# ---------------------------------------------------------------------------

def validate_records(
    records: Iterable[CandidateRecord],
    rejects: RejectWriter | None = None,
) -> tuple[list[CandidateRecord], int]:
    """Return (records with a usable natural key, number dropped).

    Order is preserved.  Dropped records are written to `rejects` with
    reason 'missing_username'.

    Raises:
        NoValidRecordsError: if no record survives.
    """
    valid: list[CandidateRecord] = []
    dropped = 0
    for record in records:
        if record.natural_key:
            valid.append(record)
            continue
        dropped += 1
        if rejects is not None:
            rejects.write(record.to_row(), "missing_username")

    if not valid:
        raise NoValidRecordsError(
            f"no records with a username ({dropped} row(s) rejected)"
        )
    if dropped:
        log.info("validator dropped %d record(s) without a username", dropped)
    return valid, dropped
