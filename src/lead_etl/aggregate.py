"""lead_etl.aggregate

Result Aggregator.

Classification is a pure function of the pre-write key snapshot: a written
key counts as `updated` if it was in the snapshot, `inserted` otherwise.
Live store state is never consulted, so a key another writer inserted
between probe and write is reported as inserted.
"""

from __future__ import annotations

from dataclasses import replace

from lead_etl.policy import ImportPlan
from lead_etl.shared import ImportResult
from lead_etl.writer import ChunkOutcome


def accumulate_chunk(
    result: ImportResult,
    outcome: ChunkOutcome,
    existing: frozenset[str],
) -> ImportResult:
    """Return `result` with one chunk's outcome folded in."""
    if not outcome.ok:
        return replace(
            result,
            errors=result.errors + (outcome.error,),
            failed_keys=result.failed_keys | set(outcome.keys),
        )

    acknowledged = set(outcome.written)
    updated = {k for k in outcome.keys if k in acknowledged and k in existing}
    inserted = {k for k in outcome.keys if k in acknowledged and k not in existing}
    missing = [k for k in outcome.keys if k not in acknowledged]

    errors = result.errors
    if missing:
        errors = errors + (
            f"chunk {outcome.index + 1}: store did not acknowledge "
            f"{len(missing)} key(s): {', '.join(missing)}",
        )
    return replace(
        result,
        inserted=result.inserted + len(inserted),
        updated=result.updated + len(updated),
        updated_keys=result.updated_keys | updated,
        failed_keys=result.failed_keys | set(missing),
        errors=errors,
    )


def superseded_warnings(plan: ImportPlan) -> tuple[str, ...]:
    return tuple(
        f"duplicate username {r.natural_key!r} at row {r.source_row} "
        "superseded by a later row"
        for r in plan.superseded
    )


def aggregate(
    outcomes: list[ChunkOutcome],
    plan: ImportPlan,
    rejected: int = 0,
) -> ImportResult:
    """Fold chunk outcomes into the final ImportResult, in chunk order."""
    result = ImportResult(
        skipped=plan.skipped,
        rejected=rejected,
        warnings=superseded_warnings(plan),
    )
    for outcome in outcomes:
        result = accumulate_chunk(result, outcome, plan.existing)
    return result


def project(plan: ImportPlan, rejected: int = 0) -> ImportResult:
    """Expected ImportResult if every chunk of `plan` were written (dry run)."""
    keys = [r.natural_key for r in plan.to_write]
    updated = {k for k in keys if k in plan.existing}
    return ImportResult(
        inserted=len(keys) - len(updated),
        updated=len(updated),
        skipped=plan.skipped,
        updated_keys=frozenset(updated),
        rejected=rejected,
        warnings=superseded_warnings(plan),
    )
