"""lead_etl.shared

Shared pieces used by every stage of the lead import pipeline.
Includes the exception taxonomy, RejectWriter, the ImportResult
accumulator, and report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Warnings listed in to_dict(); warnings_total always carries the full count.
REPORT_WARNING_LIMIT = 50


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class LeadImportError(Exception):
    """Base class for errors that reject a whole import call."""


class NoValidRecordsError(LeadImportError):
    """Raised when no input record carries a usable natural key."""


class ProbeFailedError(LeadImportError):
    """Raised when the existing-key lookup against the store fails."""


class FailModeCollisionError(LeadImportError):
    """Raised in fail mode when any candidate key already exists."""

    def __init__(self, keys: list[str]) -> None:
        self.keys = list(keys)
        super().__init__(
            f"{len(self.keys)} duplicate username(s) found: {', '.join(self.keys)}"
        )


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected rows."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None
        self.count = 0

    def write(self, row: dict[str, Any], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()
        self.count += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# ImportResult
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportResult:
    """Outcome of one import call.

    Immutable: pipeline stages return a new value instead of mutating
    counters in place (see lead_etl.aggregate).
    """

    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: tuple[str, ...] = ()
    updated_keys: frozenset[str] = frozenset()
    failed_keys: frozenset[str] = frozenset()
    rejected: int = 0
    warnings: tuple[str, ...] = field(default=(), repr=False)

    @property
    def accounted(self) -> int:
        """Number of valid records covered by the result."""
        return self.inserted + self.updated + self.skipped + len(self.failed_keys)

    def summary(self) -> str:
        text = f"{self.inserted} added, {self.updated} updated, {self.skipped} skipped"
        if self.failed_keys:
            text += f", {len(self.failed_keys)} failed"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "rejected": self.rejected,
            "failed": len(self.failed_keys),
            "errors": list(self.errors),
            "updated_keys": sorted(self.updated_keys),
            "failed_keys": sorted(self.failed_keys),
            "warnings_total": len(self.warnings),
            "warnings": list(self.warnings[:REPORT_WARNING_LIMIT]),
        }


# ---------------------------------------------------------------------------
# Header normalization
# ---------------------------------------------------------------------------

def normalize_headers(raw: dict[str, str]) -> dict[str, str]:
    """Return a new dict with header keys whitespace-stripped."""
    return {k.strip(): v for k, v in raw.items() if k is not None}


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    result: ImportResult | None,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "result": result.to_dict() if result is not None else None,
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
