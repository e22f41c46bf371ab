"""lead_etl.policy

Policy Resolver: partition validated candidates into write / skip / fail
sets according to the caller's ImportMode.

In-batch duplicates are settled first, with a fixed tie-break:

  - last occurrence wins (its field values are the ones written)
  - the surviving record keeps the input position of the first occurrence
  - in merge mode earlier occurrences are folded in field by field
    (a later non-null value wins, `extra` dicts are unioned)
  - superseded occurrences are reported, never written

Fail mode treats an in-batch duplicate as a collision, the same as a key
that already exists in the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from lead_etl.records import PAYLOAD_FIELDS, CandidateRecord, ImportMode
from lead_etl.shared import FailModeCollisionError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportPlan:
    to_write: list[CandidateRecord] = field(default_factory=list)
    to_skip: list[CandidateRecord] = field(default_factory=list)
    to_fail: list[CandidateRecord] = field(default_factory=list)
    superseded: list[CandidateRecord] = field(default_factory=list)
    existing: frozenset[str] = frozenset()

    @property
    def skipped(self) -> int:
        return len(self.to_skip) + len(self.superseded)


def _fold(older: CandidateRecord, newer: CandidateRecord) -> CandidateRecord:
    """Merge two occurrences of one key; non-null values from `newer` win."""
    merged = {
        name: getattr(newer, name) if getattr(newer, name) is not None else getattr(older, name)
        for name in PAYLOAD_FIELDS + ("status",)
    }
    return replace(
        newer,
        extra={**older.extra, **newer.extra},
        **merged,
    )


def collapse_duplicates(
    records: list[CandidateRecord],
    mode: ImportMode,
) -> tuple[list[CandidateRecord], list[CandidateRecord]]:
    """Return (one record per natural key, superseded occurrences)."""
    survivors: dict[str, CandidateRecord] = {}
    superseded: list[CandidateRecord] = []
    for record in records:
        key = record.natural_key
        prior = survivors.get(key)
        if prior is None:
            survivors[key] = record
            continue
        superseded.append(prior)
        if mode is ImportMode.MERGE:
            survivors[key] = _fold(prior, record)
        else:
            survivors[key] = record
    return list(survivors.values()), superseded


def resolve_policy(
    records: list[CandidateRecord],
    existing: frozenset[str],
    mode: ImportMode | str,
) -> ImportPlan:
    """Partition `records` against the `existing` key snapshot.

    Raises:
        FailModeCollisionError: in fail mode, when any key collides with the
            store or repeats within the batch.  Nothing has been written.
    """
    mode = ImportMode(mode)
    unique, superseded = collapse_duplicates(records, mode)

    to_write: list[CandidateRecord] = []
    to_skip: list[CandidateRecord] = []
    to_fail: list[CandidateRecord] = []
    for record in unique:
        collides = record.natural_key in existing
        if not collides:
            to_write.append(record)
        elif mode is ImportMode.SKIP:
            to_skip.append(record)
        elif mode is ImportMode.FAIL:
            to_fail.append(record)
        else:
            to_write.append(record)

    if mode is ImportMode.FAIL and (to_fail or superseded):
        keys = {r.natural_key for r in to_fail} | {r.natural_key for r in superseded}
        raise FailModeCollisionError(sorted(keys))

    log.info(
        "policy %s: %d to write, %d to skip, %d in-batch duplicate(s)",
        mode.value, len(to_write), len(to_skip), len(superseded),
    )
    return ImportPlan(
        to_write=to_write,
        to_skip=to_skip,
        to_fail=to_fail,
        superseded=superseded,
        existing=existing,
    )
