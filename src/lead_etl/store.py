"""lead_etl.store

Record store seam for the import engine.

The engine only needs two operations from a store: a bulk existence probe
and a chunk upsert.  PostgresLeadStore implements both against the `lead`
table (migrations/0001_lead.sql) over a psycopg async connection; tests
use an in-memory stand-in with the same semantics.

Keys are matched on lower(username COLLATE "C"), backed by the unique index
lead_username_lower_key.  Only ASCII letters fold, the same rule as
normalize.fold_key, so a legacy 'Bob' row collides with 'bob' and a stored
'İlker' is found by its own key whatever the database locale.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, Sequence

import psycopg

from lead_etl.records import ImportMode

log = logging.getLogger(__name__)

PROBE_CHUNK_SIZE = 1000


class LeadStore(Protocol):
    async def existing_keys(self, keys: Sequence[str]) -> set[str]:
        """Return the subset of `keys` (already folded) present in the store."""
        ...

    async def upsert(self, rows: Sequence[dict[str, Any]], mode: ImportMode) -> list[str]:
        """Write one chunk; return the folded keys the store acknowledged."""
        ...


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_PROBE_SQL = """
    SELECT DISTINCT lower(username COLLATE "C")
    FROM lead
    WHERE lower(username COLLATE "C") = ANY(%s)
"""

_INSERT_FROM_JSON = """
    INSERT INTO lead
      (username, full_name, bio, profile_url,
       followers_count, following_count, posts_count,
       status, extra, created_at, updated_at)
    SELECT r.username, r.full_name, r.bio, r.profile_url,
           r.followers_count, r.following_count, r.posts_count,
           r.status, COALESCE(r.extra, '{}'::jsonb), r.created_at, r.updated_at
    FROM jsonb_to_recordset(%s::jsonb) AS r(
      username text, full_name text, bio text, profile_url text,
      followers_count integer, following_count integer, posts_count integer,
      status text, extra jsonb, created_at timestamptz, updated_at timestamptz
    )
    ON CONFLICT ((lower(username COLLATE "C"))) DO UPDATE SET
"""

_OVERWRITE_SET = """
      username = EXCLUDED.username,
      full_name = EXCLUDED.full_name,
      bio = EXCLUDED.bio,
      profile_url = EXCLUDED.profile_url,
      followers_count = EXCLUDED.followers_count,
      following_count = EXCLUDED.following_count,
      posts_count = EXCLUDED.posts_count,
      status = EXCLUDED.status,
      extra = EXCLUDED.extra,
      updated_at = EXCLUDED.updated_at
    RETURNING lower(username COLLATE "C")
"""

# Merge: non-null incoming value wins, else keep stored; status is kept.
_MERGE_SET = """
      username = EXCLUDED.username,
      full_name = COALESCE(EXCLUDED.full_name, lead.full_name),
      bio = COALESCE(EXCLUDED.bio, lead.bio),
      profile_url = COALESCE(EXCLUDED.profile_url, lead.profile_url),
      followers_count = COALESCE(EXCLUDED.followers_count, lead.followers_count),
      following_count = COALESCE(EXCLUDED.following_count, lead.following_count),
      posts_count = COALESCE(EXCLUDED.posts_count, lead.posts_count),
      status = lead.status,
      extra = lead.extra || EXCLUDED.extra,
      updated_at = EXCLUDED.updated_at
    RETURNING lower(username COLLATE "C")
"""


def upsert_sql(mode: ImportMode) -> str:
    if mode is ImportMode.MERGE:
        return _INSERT_FROM_JSON + _MERGE_SET
    return _INSERT_FROM_JSON + _OVERWRITE_SET


# ---------------------------------------------------------------------------
# PostgreSQL implementation
# ---------------------------------------------------------------------------

class PostgresLeadStore:
    """LeadStore over a psycopg AsyncConnection.

    Each upsert runs in its own transaction block, so a failed chunk rolls
    back alone and earlier chunks stay committed.  Use an autocommit
    connection so nothing else holds a transaction open between chunks.
    """

    def __init__(
        self,
        conn: psycopg.AsyncConnection,
        probe_chunk_size: int = PROBE_CHUNK_SIZE,
    ) -> None:
        self._conn = conn
        self._probe_chunk_size = probe_chunk_size

    async def existing_keys(self, keys: Sequence[str]) -> set[str]:
        found: set[str] = set()
        key_list = list(keys)
        for start in range(0, len(key_list), self._probe_chunk_size):
            part = key_list[start:start + self._probe_chunk_size]
            cur = await self._conn.execute(_PROBE_SQL, (part,))
            found.update(row[0] for row in await cur.fetchall())
        log.debug("probe: %d of %d key(s) exist", len(found), len(key_list))
        return found

    async def upsert(self, rows: Sequence[dict[str, Any]], mode: ImportMode) -> list[str]:
        payload = json.dumps(list(rows), default=str)
        async with self._conn.transaction():
            cur = await self._conn.execute(upsert_sql(mode), (payload,))
            written = [row[0] for row in await cur.fetchall()]
        return written
