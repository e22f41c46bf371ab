"""lead_etl.writer

Batch Writer: chunk the to-write set and upsert one chunk per store round
trip, strictly in order.

A failing chunk is recorded on its ChunkOutcome and the loop moves on; the
run is never aborted by a chunk error and failed chunks are not retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

from lead_etl.records import DEFAULT_STATUS, PAYLOAD_FIELDS, CandidateRecord, ImportMode
from lead_etl.store import LeadStore

log = logging.getLogger(__name__)

BATCH_SIZE = 50

# Keys listed per chunk error message before truncating with a count.
_ERROR_KEY_LIMIT = 20


@dataclass
class ChunkOutcome:
    index: int
    start: int
    keys: list[str]
    written: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunk_records(
    records: list[CandidateRecord],
    size: int = BATCH_SIZE,
) -> Iterator[list[CandidateRecord]]:
    """Yield consecutive chunks of at most `size` records, in order."""
    if size < 1:
        raise ValueError(f"batch size must be positive, got {size}")
    for start in range(0, len(records), size):
        yield records[start:start + size]


def build_payload(
    record: CandidateRecord,
    now: datetime,
) -> dict[str, Any]:
    """Project a record onto the stored lead shape.

    Stamps the folded key, the default status when none was given,
    and created/updated timestamps.  The store never overwrites created_at
    on an existing row.
    """
    payload: dict[str, Any] = {"username": record.natural_key}
    for name in PAYLOAD_FIELDS:
        payload[name] = getattr(record, name)
    payload["status"] = record.status or DEFAULT_STATUS
    payload["extra"] = dict(record.extra)
    payload["created_at"] = now
    payload["updated_at"] = now
    return payload


def _describe_failure(index: int, start: int, keys: list[str], exc: Exception) -> str:
    shown = ", ".join(keys[:_ERROR_KEY_LIMIT])
    if len(keys) > _ERROR_KEY_LIMIT:
        shown += f", ... (+{len(keys) - _ERROR_KEY_LIMIT} more)"
    end = start + len(keys) - 1
    return (
        f"chunk {index + 1} (records {start}-{end}): "
        f"{type(exc).__name__}: {exc}; keys: {shown}"
    )


async def write_chunk(
    store: LeadStore,
    index: int,
    start: int,
    chunk: list[CandidateRecord],
    mode: ImportMode,
    now: datetime,
) -> ChunkOutcome:
    """Upsert one chunk; never raises for store errors."""
    keys = [r.natural_key for r in chunk]
    outcome = ChunkOutcome(index=index, start=start, keys=keys)
    rows = [build_payload(r, now) for r in chunk]
    try:
        outcome.written = list(await store.upsert(rows, mode))
    except Exception as exc:
        outcome.error = _describe_failure(index, start, keys, exc)
        log.error("lead import %s", outcome.error)
    return outcome


async def write_batches(
    store: LeadStore,
    records: list[CandidateRecord],
    mode: ImportMode,
    batch_size: int = BATCH_SIZE,
    now: datetime | None = None,
) -> list[ChunkOutcome]:
    """Write `records` chunk by chunk and return one outcome per chunk.

    Chunks are awaited one at a time; there is no concurrent write.  Every
    chunk in a call shares one `now` stamp.
    """
    now = now or datetime.now(timezone.utc)
    outcomes: list[ChunkOutcome] = []
    start = 1
    for index, chunk in enumerate(chunk_records(records, batch_size)):
        outcome = await write_chunk(store, index, start, chunk, mode, now)
        outcomes.append(outcome)
        if outcome.ok:
            log.info("chunk %d: %d record(s) written", index + 1, len(outcome.written))
        start += len(chunk)
    return outcomes
