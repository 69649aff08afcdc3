"""score_etl.import_score_csv

CLI entrypoint for score-event CSV imports.

Each input file is recorded once in score_file (keyed by its resolved
path) and its rows are written to score_detail.  A path that is already
present is skipped.  A failure in one file is reported and the run moves
on to the next file; only configuration and connection failures end the
run with a non-zero exit.

Usage:
    python -m score_etl.import_score_csv \\
        --config-file config.yml \\
        data/round_data_210615.csv data/round_data_210616.csv

    python -m score_etl.import_score_csv \\
        --db-dsn "$DB_DSN" --single-transaction --dry-run \\
        data/round_data_210615.csv
"""

from __future__ import annotations

import csv
import logging
import sys
import uuid
from contextlib import AbstractContextManager, nullcontext
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import click
import psycopg

from score_etl.config import build_conninfo, load_config
from score_etl.records import (
    ScoreFile,
    build_score_detail,
    build_score_file,
    clear_score_details,
    find_score_file,
    insert_score_detail,
    insert_score_file,
)
from score_etl.score_csv import iter_score_rows, read_headers, verify_headers
from score_etl.shared import (
    ConfigError,
    ImportFailure,
    IoError,
    RunCounters,
    write_run_report,
)

log = logging.getLogger(__name__)

STATUS_IMPORTED = "imported"
STATUS_ALREADY_IMPORTED = "already_imported"
STATUS_FAILED = "failed"


# ---------------------------------------------------------------------------
# Per-file outcome
# ---------------------------------------------------------------------------

@dataclass
class FileOutcome:
    path: str
    status: str = STATUS_FAILED
    header_id: int | None = None
    rows_imported: int = 0
    rows_cleared: int = 0
    failure_kind: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _file_scope(
    conn: psycopg.Connection,
    atomic: bool,
) -> AbstractContextManager[Any]:
    # Nested inside a dry-run transaction this becomes a savepoint.
    return conn.transaction() if atomic else nullcontext()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def _import_rows(
    conn: psycopg.Connection,
    score_file: ScoreFile,
    reader: Any,
    run_id: str,
    outcome: FileOutcome,
) -> None:
    for count, row in enumerate(iter_score_rows(reader), start=1):
        detail_id = insert_score_detail(conn, build_score_detail(score_file, row))
        outcome.rows_imported = count
        log.debug("score_file %s: row %d → score_detail %s", score_file.id, count, detail_id)
        click.echo(f"\r[{run_id}] {score_file.base_file_name}: row {count}", nl=False)
    if outcome.rows_imported:
        click.echo("")


def import_file(
    conn: psycopg.Connection,
    path: str | Path,
    run_id: str,
    counters: RunCounters,
    single_transaction: bool = False,
) -> FileOutcome:
    """Run the import pipeline for one file and return its outcome.

    ImportFailure never escapes: it is reported, counted and recorded on the
    outcome.  With single_transaction the header insert, the stale-detail
    clear and every row insert commit or roll back together; otherwise each
    statement stands on its own and a failing row leaves earlier rows behind.
    """
    outcome = FileOutcome(path=str(path))
    counters.files_seen += 1
    try:
        draft = build_score_file(path)
        outcome.path = draft.file_path
        with _file_scope(conn, single_transaction):
            existing = find_score_file(conn, draft.file_path)
            if existing is not None:
                click.echo(
                    f"[{run_id}] {draft.file_path}: already imported "
                    f"(score_file id={existing.id} at {existing.imported_at:%Y-%m-%d %H:%M:%S}), skipping"
                )
                counters.files_already_imported += 1
                outcome.status = STATUS_ALREADY_IMPORTED
                outcome.header_id = existing.id
                return outcome

            try:
                with open(draft.file_path, newline="", encoding="utf-8-sig") as fh:
                    reader = csv.reader(fh)
                    verify_headers(read_headers(reader))

                    score_file = insert_score_file(conn, draft)
                    outcome.header_id = score_file.id
                    outcome.rows_cleared = clear_score_details(conn, score_file)
                    if outcome.rows_cleared:
                        counters.detail_rows_cleared += outcome.rows_cleared
                        counters.warnings.append(
                            f"{draft.file_path}: cleared {outcome.rows_cleared} stale detail rows"
                        )
                    _import_rows(conn, score_file, reader, run_id, outcome)
            except OSError as exc:
                raise IoError(draft.file_path, exc) from exc
    except ImportFailure as exc:
        if outcome.rows_imported:
            click.echo("")
        if single_transaction:
            outcome.header_id = None
            outcome.rows_imported = 0
            outcome.rows_cleared = 0
        counters.detail_rows_inserted += outcome.rows_imported
        outcome.failure_kind = exc.kind
        outcome.message = str(exc)
        message = f"{outcome.path}: skipped ({exc.kind}): {exc}"
        counters.record_failure(exc.kind, message)
        click.echo(f"[{run_id}] {message}", err=True)
        return outcome

    counters.files_imported += 1
    counters.detail_rows_inserted += outcome.rows_imported
    outcome.status = STATUS_IMPORTED
    click.echo(
        f"[{run_id}] {outcome.path}: imported {outcome.rows_imported} rows "
        f"(score_file id={outcome.header_id}, {outcome.rows_cleared} stale rows cleared)"
    )
    return outcome


def import_files(
    conn: psycopg.Connection,
    paths: Iterable[str | Path],
    run_id: str,
    counters: RunCounters,
    single_transaction: bool = False,
    dry_run: bool = False,
) -> list[FileOutcome]:
    """Import each path in order; one file's failure never stops the run.

    dry_run wraps the whole run in a transaction that is always rolled
    back, with every file in its own savepoint.
    """
    outer = conn.transaction(force_rollback=True) if dry_run else nullcontext()
    with outer:
        outcomes = [
            import_file(
                conn, path, run_id, counters,
                single_transaction=single_transaction or dry_run,
            )
            for path in paths
        ]
    if dry_run:
        click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
    return outcomes


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.argument("files", nargs=-1, required=True, type=click.Path())
@click.option(
    "--config-file", "-f",
    default="config.yml",
    envvar="SCORE_ETL_CONFIG",
    show_default=True,
    type=click.Path(),
    help="YAML config with a postgresql section",
)
@click.option(
    "--db-dsn",
    default=None,
    envvar="SCORE_ETL_DB_DSN",
    help="PostgreSQL DSN; overrides the config file",
)
@click.option(
    "--single-transaction",
    is_flag=True,
    default=False,
    help="Commit each file's header and rows together, rolling back on any failure",
)
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--report-dir",
    default="./artifacts/reports",
    show_default=True,
    type=click.Path(),
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging")
def main(
    files: tuple[str, ...],
    config_file: str,
    db_dsn: str | None,
    single_transaction: bool,
    dry_run: bool,
    run_id: str | None,
    report_dir: str,
    verbose: bool,
) -> None:
    """Import score-event CSV FILES into PostgreSQL."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    if not db_dsn:
        try:
            cfg = load_config(Path(config_file))
        except ConfigError as exc:
            click.echo(f"[{run_id}] FATAL: {exc}", err=True)
            sys.exit(1)
        db_dsn = build_conninfo(cfg.postgresql)
        log.debug("using postgresql host %s from %s", cfg.postgresql.host, config_file)

    click.echo(
        f"[{run_id}] Starting score import of {len(files)} file(s) "
        f"(dry_run={dry_run}, single_transaction={single_transaction})"
    )

    try:
        conn = psycopg.connect(db_dsn, autocommit=True)
    except psycopg.Error as exc:
        click.echo(f"[{run_id}] FATAL: could not connect to the database: {exc}", err=True)
        sys.exit(1)

    counters = RunCounters()
    try:
        outcomes = import_files(
            conn, files, run_id, counters,
            single_transaction=single_transaction,
            dry_run=dry_run,
        )
    finally:
        conn.close()

    click.echo(
        f"[{run_id}] Done: {counters.files_imported} imported, "
        f"{counters.files_already_imported} already imported, "
        f"{counters.files_failed} failed, "
        f"{counters.detail_rows_inserted} detail rows inserted"
    )
    try:
        report_path = write_run_report(
            run_id, started_at, dry_run, list(files), counters,
            [o.to_dict() for o in outcomes],
            report_dir=Path(report_dir),
        )
    except OSError as exc:
        click.echo(f"[{run_id}] ERROR: could not write run report to {report_dir}: {exc}", err=True)
        return
    click.echo(f"[{run_id}] Run report: {report_path}")


if __name__ == "__main__":
    main()
