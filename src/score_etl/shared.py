"""score_etl.shared

Shared pieces used across the import pipeline: the ImportFailure error
family, RunCounters, and report-writing support.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ImportFailure(Exception):
    """Base for every error that aborts the import of a single file."""

    kind = "import_failure"


class BadName(ImportFailure):
    """File name too short or its date tag does not decode."""

    kind = "bad_name"

    def __init__(self, file_name: str, reason: str) -> None:
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"bad file name {file_name!r}: {reason}")


class SchemaError(ImportFailure):
    """CSV header row does not match the expected column sequence.

    position is 1-based.  expected is None for an extra column, found is
    None for a missing one.
    """

    kind = "schema_error"

    def __init__(
        self,
        position: int,
        expected: str | None,
        found: str | None,
        column_count: int,
    ) -> None:
        self.position = position
        self.expected = expected
        self.found = found
        self.column_count = column_count
        super().__init__(
            f"header column {position}: expected {expected!r}, found {found!r} "
            f"({column_count} columns)"
        )


class MissingValue(ImportFailure):
    """An operation needs a field that has not been set yet."""

    kind = "missing_value"

    def __init__(self, entity: str, field_name: str) -> None:
        self.entity = entity
        self.field = field_name
        super().__init__(f"{entity}.{field_name} is not set")


class IoError(ImportFailure):
    kind = "io_error"

    def __init__(self, path: str, cause: OSError) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause.strerror or cause}")


class StoreError(ImportFailure):
    kind = "store_error"

    def __init__(self, operation: str, cause: Exception) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class DecodeError(ImportFailure):
    """A data row does not match the expected shape or types."""

    kind = "decode_error"

    def __init__(
        self,
        line: int,
        column: str | None,
        value: str | None,
        reason: str,
    ) -> None:
        self.line = line
        self.column = column
        self.value = value
        self.reason = reason
        where = f"line {line}" if column is None else f"line {line}, column {column}"
        super().__init__(f"{where}: {reason}")


class ConfigError(ValueError):
    """Raised when the configuration file is missing or invalid."""


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    files_seen: int = 0
    files_imported: int = 0
    files_already_imported: int = 0
    files_failed: int = 0
    detail_rows_inserted: int = 0
    detail_rows_cleared: int = 0
    failures_by_kind: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def record_failure(self, kind: str, message: str) -> None:
        self.files_failed += 1
        self.failures_by_kind[kind] = self.failures_by_kind.get(kind, 0) + 1
        self.warnings.append(message)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "warnings"}
        d["warnings"] = self.warnings[:50]
        return d


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    dry_run: bool,
    source_paths: list[str],
    counters: RunCounters,
    outcomes: list[dict[str, Any]],
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        "source_paths": source_paths,
        "counters": counters.to_dict(),
        "files": outcomes,
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
