"""score_etl.records

Header and detail records for imported score files, plus the DB helpers
that persist them.

A header (score_file row) represents one imported CSV file.  It is built
in memory as a ScoreFileDraft and becomes a ScoreFile once the store has
assigned its id and import_time.  Details (score_detail rows) belong to
exactly one persisted header and are only ever deleted wholesale and
re-inserted, never updated.

Callers manage transactions; every helper issues plain statements on the
given connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import psycopg

from score_etl.normalize import parse_file_timestamp
from score_etl.score_csv import ScoreRow
from score_etl.shared import IoError, MissingValue, StoreError


# ---------------------------------------------------------------------------
# Header record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreFileDraft:
    file_path: str
    base_file_name: str
    file_date: datetime
    file_created_at: datetime
    file_modified_at: datetime


@dataclass(frozen=True)
class ScoreFile:
    """A score_file row as stored."""

    id: int
    file_path: str
    base_file_name: str
    file_date: datetime
    file_created_at: datetime | None
    file_modified_at: datetime
    imported_at: datetime


def _utc_from_epoch(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def build_score_file(path: str | Path) -> ScoreFileDraft:
    """Derive header metadata for a CSV path.

    Raises IoError if the path cannot be resolved or stat'ed, BadName if
    the base name carries no valid date tag.
    """
    try:
        resolved = Path(path).resolve(strict=True)
        st = resolved.stat()
    except OSError as exc:
        raise IoError(str(path), exc) from exc

    file_date = parse_file_timestamp(resolved.name)
    # st_ctime is inode-change time where birth time is not reported
    created = getattr(st, "st_birthtime", None) or st.st_ctime
    return ScoreFileDraft(
        file_path=str(resolved),
        base_file_name=resolved.name,
        file_date=file_date,
        file_created_at=_utc_from_epoch(created),
        file_modified_at=_utc_from_epoch(st.st_mtime),
    )


def find_score_file(
    conn: psycopg.Connection,
    file_path: str,
) -> ScoreFile | None:
    """Return the stored header for file_path, or None.

    file_path is not unique in the schema; if duplicates exist the lowest
    id wins.
    """
    try:
        row = conn.execute(
            """
            SELECT id, file_path, file_name, file_date,
                   file_created_at, file_modified_at, import_time
            FROM score_file
            WHERE file_path = %s
            ORDER BY id ASC
            LIMIT 1
            """,
            (file_path,),
        ).fetchone()
    except psycopg.Error as exc:
        raise StoreError("score_file lookup", exc) from exc
    if row is None:
        return None
    return ScoreFile(
        id=row[0],
        file_path=row[1],
        base_file_name=row[2],
        file_date=row[3],
        file_created_at=row[4],
        file_modified_at=row[5],
        imported_at=row[6],
    )


def insert_score_file(
    conn: psycopg.Connection,
    draft: ScoreFileDraft,
) -> ScoreFile:
    """Insert a header; the store assigns id and import_time."""
    try:
        row = conn.execute(
            """
            INSERT INTO score_file
              (file_path, file_name, file_date, file_created_at, file_modified_at)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id, import_time
            """,
            (draft.file_path, draft.base_file_name, draft.file_date,
             draft.file_created_at, draft.file_modified_at),
        ).fetchone()
    except psycopg.Error as exc:
        raise StoreError("score_file insert", exc) from exc
    return ScoreFile(
        id=row[0],
        file_path=draft.file_path,
        base_file_name=draft.base_file_name,
        file_date=draft.file_date,
        file_created_at=draft.file_created_at,
        file_modified_at=draft.file_modified_at,
        imported_at=row[1],
    )


def _header_id(score_file: ScoreFile | ScoreFileDraft) -> int:
    header_id = getattr(score_file, "id", None)
    if header_id is None:
        raise MissingValue("score_file", "id")
    return header_id


def clear_score_details(
    conn: psycopg.Connection,
    score_file: ScoreFile,
) -> int:
    """Delete every detail row of score_file; return how many were removed."""
    header_id = _header_id(score_file)
    try:
        cur = conn.execute(
            "DELETE FROM score_detail WHERE header_id = %s",
            (header_id,),
        )
    except psycopg.Error as exc:
        raise StoreError("score_detail clear", exc) from exc
    return cur.rowcount


# ---------------------------------------------------------------------------
# Detail record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreDetail:
    header_id: int
    round_id: int
    player_id: int
    player_name: str | None
    ball_id: int
    score: int
    hole_id: int
    hole_score: int
    start_time: datetime
    end_time: datetime


def build_score_detail(score_file: ScoreFile, row: ScoreRow) -> ScoreDetail:
    return ScoreDetail(
        header_id=_header_id(score_file),
        round_id=row.round_id,
        player_id=row.player_id,
        player_name=row.player_name,
        ball_id=row.ball_id,
        score=row.score,
        hole_id=row.hole_id,
        hole_score=row.hole_score,
        start_time=row.start_time,
        end_time=row.end_time,
    )


def insert_score_detail(
    conn: psycopg.Connection,
    detail: ScoreDetail,
) -> int:
    """Insert one detail row and return its id."""
    try:
        row = conn.execute(
            """
            INSERT INTO score_detail
              (header_id, round_id, player_id, player_name, ball_id,
               score, hole_id, hole_score, start_time, end_time)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (detail.header_id, detail.round_id, detail.player_id,
             detail.player_name, detail.ball_id, detail.score,
             detail.hole_id, detail.hole_score,
             detail.start_time, detail.end_time),
        ).fetchone()
    except psycopg.Error as exc:
        raise StoreError("score_detail insert", exc) from exc
    return row[0]
