"""lead_etl.import_leads

Bulk lead import: engine entry point and CLI.

Pipeline per call:
  1. Validate:  drop records without a username (fail fast if none left)
  2. Probe:     one existence query for the batch's keys (snapshot)
  3. Resolve:   partition by ImportMode; fail mode aborts on any collision
  4. Write:     sequential chunk upserts, chunk errors recorded not raised
  5. Aggregate: classify written keys against the snapshot

Usage:
    python -m lead_etl.import_leads \\
        --db-dsn "$DB_DSN" \\
        --csv-path "exports/leads_2025-05.csv" \\
        --mode update \\
        --column-map config/column_maps/instagram_export.yml
"""

from __future__ import annotations

import asyncio
import csv
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import click
import psycopg

from lead_etl.aggregate import aggregate, project
from lead_etl.columns import DEFAULT_COLUMN_MAP, load_column_map, resolve_headers
from lead_etl.normalize import fold_key
from lead_etl.policy import ImportPlan, resolve_policy
from lead_etl.records import CandidateRecord, ImportMode, record_from_row, validate_records
from lead_etl.shared import (
    ImportResult,
    LeadImportError,
    ProbeFailedError,
    RejectWriter,
    normalize_headers,
    write_run_report,
)
from lead_etl.store import LeadStore, PostgresLeadStore
from lead_etl.writer import BATCH_SIZE, write_batches

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

async def probe_existing_keys(
    store: LeadStore,
    records: list[CandidateRecord],
) -> frozenset[str]:
    """Snapshot which of the batch's keys already exist.

    Raises:
        ProbeFailedError: wrapping whatever the store raised.
    """
    keys = sorted({r.natural_key for r in records})
    try:
        found = await store.existing_keys(keys)
    except Exception as exc:
        raise ProbeFailedError(f"existing-key probe failed: {exc}") from exc
    existing = frozenset(fold_key(k) for k in found)
    log.info("probe: %d of %d key(s) already exist", len(existing), len(keys))
    return existing


async def _prepare(
    store: LeadStore,
    records: Iterable[CandidateRecord],
    mode: ImportMode,
    rejects: RejectWriter | None,
) -> tuple[ImportPlan, int]:
    valid, rejected = validate_records(records, rejects)
    existing = await probe_existing_keys(store, valid)
    return resolve_policy(valid, existing, mode), rejected


async def plan_import(
    store: LeadStore,
    records: Iterable[CandidateRecord],
    mode: ImportMode | str,
    rejects: RejectWriter | None = None,
) -> tuple[ImportPlan, ImportResult]:
    """Validate, probe and resolve without writing.

    Returns the plan and the result the import would produce if every
    chunk succeeded.  Raises the same precondition errors as run_import.
    """
    plan, rejected = await _prepare(store, records, ImportMode(mode), rejects)
    return plan, project(plan, rejected)


async def run_import(
    store: LeadStore,
    records: Iterable[CandidateRecord],
    mode: ImportMode | str,
    *,
    batch_size: int = BATCH_SIZE,
    rejects: RejectWriter | None = None,
    now: datetime | None = None,
) -> ImportResult:
    """Import `records` into `store` under `mode`.

    Raises:
        NoValidRecordsError: no record has a username; the store is not touched.
        ProbeFailedError: the existence probe failed; nothing written.
        FailModeCollisionError: fail mode and a key collides; nothing written.

    Chunk write failures do not raise; they are listed in the result's
    `errors` and `failed_keys`.
    """
    mode = ImportMode(mode)
    plan, rejected = await _prepare(store, records, mode, rejects)
    outcomes = await write_batches(store, plan.to_write, mode, batch_size, now)
    result = aggregate(outcomes, plan, rejected)
    for warning in result.warnings:
        log.warning(warning)
    log.info("lead import (%s) finished: %s", mode.value, result.summary())
    return result


# ---------------------------------------------------------------------------
# CSV pre-scan
# ---------------------------------------------------------------------------

def read_candidates(
    csv_path: Path,
    column_map: dict[str, list[str]],
    run_id: str,
) -> list[CandidateRecord]:
    """Read a lead CSV into CandidateRecords (1-based data-row positions)."""
    with csv_path.open(encoding="utf-8-sig", newline="") as fh:
        reader = csv.DictReader(fh)
        fieldnames = [h.strip() for h in (reader.fieldnames or [])]
        resolved = resolve_headers(fieldnames, column_map)
        if "username" not in resolved.values():
            click.echo(
                f"[{run_id}] FATAL: {csv_path.name} has no username column; "
                f"headers: {fieldnames}",
                err=True,
            )
            sys.exit(1)
        return [
            record_from_row(normalize_headers(raw_row), idx, column_map)
            for idx, raw_row in enumerate(reader, start=1)
        ]


async def _run_with_connection(
    db_dsn: str,
    records: list[CandidateRecord],
    mode: ImportMode,
    batch_size: int,
    rejects: RejectWriter,
    dry_run: bool,
) -> ImportResult:
    conn = await psycopg.AsyncConnection.connect(db_dsn, autocommit=True)
    try:
        store = PostgresLeadStore(conn)
        if dry_run:
            _, result = await plan_import(store, records, mode, rejects)
            return result
        return await run_import(
            store, records, mode, batch_size=batch_size, rejects=rejects,
        )
    finally:
        await conn.close()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option("--db-dsn", required=True, help="PostgreSQL DSN")
@click.option("--csv-path", required=True, type=click.Path(exists=True, dir_okay=False), help="Input lead CSV")
@click.option(
    "--mode",
    default=ImportMode.SKIP.value,
    type=click.Choice([m.value for m in ImportMode]),
    show_default=True,
    help="What to do with usernames that already exist",
)
@click.option("--batch-size", default=BATCH_SIZE, type=click.IntRange(min=1), show_default=True, help="Records per upsert chunk")
@click.option("--column-map", default=None, type=click.Path(exists=True, dir_okay=False), help="YAML file mapping lead fields to CSV headers")
@click.option("--dry-run", is_flag=True, default=False, help="Validate, probe and plan only; write nothing")
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/lead_rejects.csv",
    show_default=True,
)
@click.option("--report-dir", default="./artifacts/reports", show_default=True, type=click.Path(file_okay=False))
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False, help="Log per-chunk progress")
def main(
    db_dsn: str,
    csv_path: str,
    mode: str,
    batch_size: int,
    column_map: str | None,
    dry_run: bool,
    rejects_path: str,
    report_dir: str,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Import leads from a CSV file into the lead table."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()
    import_mode = ImportMode(mode)

    click.echo(f"[{run_id}] Starting lead import (mode={mode}, dry_run={dry_run})")

    mapping = DEFAULT_COLUMN_MAP
    if column_map:
        try:
            mapping = load_column_map(Path(column_map))
        except ValueError as exc:
            click.echo(f"[{run_id}] FATAL: invalid column map: {exc}", err=True)
            sys.exit(1)

    records = read_candidates(Path(csv_path), mapping, run_id)
    click.echo(f"[{run_id}] Pre-scan: {len(records)} rows read")

    rejects = RejectWriter(Path(rejects_path))
    try:
        result = asyncio.run(
            _run_with_connection(db_dsn, records, import_mode, batch_size, rejects, dry_run)
        )
    except LeadImportError as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(1)
    except psycopg.OperationalError as exc:
        click.echo(f"[{run_id}] FATAL: could not connect: {exc}", err=True)
        sys.exit(1)
    finally:
        rejects.close()

    report_path = write_run_report(
        run_id, started_at, mode, dry_run,
        {"csv_path": csv_path, "rejects_path": rejects_path},
        result,
        report_dir=Path(report_dir),
    )

    prefix = "[dry-run] would be: " if dry_run else ""
    click.echo(f"[{run_id}] {prefix}Done: {result.summary()}, {result.rejected} rejected")
    for warning in result.warnings[:10]:
        click.echo(f"[{run_id}] warning: {warning}")
    click.echo(f"[{run_id}] Run report: {report_path}")

    if result.errors:
        for error in result.errors:
            click.echo(f"[{run_id}] ERROR: {error}", err=True)
        click.echo(
            f"[{run_id}] {len(result.errors)} chunk error(s); exiting non-zero",
            err=True,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
