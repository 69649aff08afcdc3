"""score_etl.score_csv

Header contract and row decoding for score-event CSV files.

A score file starts with exactly these nine columns, in this order:

    RoundId,PlayerId,PlayerName,BallId,Score,HoleId,HoleScore,Start,End

Usage:
    with path.open(newline="", encoding="utf-8-sig") as fh:
        reader = csv.reader(fh)
        verify_headers(read_headers(reader))
        for row in iter_score_rows(reader):
            ...
"""

from __future__ import annotations

import csv
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from score_etl.normalize import (
    parse_event_ts,
    parse_int,
    parse_small_int,
    trim,
)
from score_etl.shared import DecodeError, SchemaError

EXPECTED_HEADERS: tuple[str, ...] = (
    "RoundId",
    "PlayerId",
    "PlayerName",
    "BallId",
    "Score",
    "HoleId",
    "HoleScore",
    "Start",
    "End",
)


@dataclass(frozen=True)
class ScoreRow:
    """One decoded data row of a score file."""

    round_id: int
    player_id: int
    player_name: str | None
    ball_id: int
    score: int
    hole_id: int
    hole_score: int
    start_time: datetime
    end_time: datetime


# (header, ScoreRow field, parser) in file column order
_COLUMN_PARSERS: tuple[tuple[str, str, Callable[[str | None], Any]], ...] = (
    ("RoundId", "round_id", parse_int),
    ("PlayerId", "player_id", parse_int),
    ("PlayerName", "player_name", trim),
    ("BallId", "ball_id", parse_int),
    ("Score", "score", parse_small_int),
    ("HoleId", "hole_id", parse_int),
    ("HoleScore", "hole_score", parse_small_int),
    ("Start", "start_time", parse_event_ts),
    ("End", "end_time", parse_event_ts),
)


# ---------------------------------------------------------------------------
# Header validation
# ---------------------------------------------------------------------------

def verify_headers(
    headers: Sequence[str],
    expected: Sequence[str] = EXPECTED_HEADERS,
) -> None:
    """Raise SchemaError unless headers equal expected exactly.

    Comparison is positional and case-sensitive.  The error names the first
    mismatching position, left to right.
    """
    for idx in range(max(len(headers), len(expected))):
        want = expected[idx] if idx < len(expected) else None
        got = headers[idx] if idx < len(headers) else None
        if want != got:
            raise SchemaError(idx + 1, want, got, len(headers))


# ---------------------------------------------------------------------------
# Row decoding
# ---------------------------------------------------------------------------

def decode_row(record: Sequence[str], line: int) -> ScoreRow:
    """Decode one raw CSV record into a ScoreRow, or raise DecodeError."""
    if len(record) != len(_COLUMN_PARSERS):
        raise DecodeError(
            line, None, None,
            f"expected {len(_COLUMN_PARSERS)} fields, found {len(record)}",
        )
    values: dict[str, Any] = {}
    for raw, (header, attr, parser) in zip(record, _COLUMN_PARSERS):
        try:
            values[attr] = parser(raw)
        except ValueError as exc:
            raise DecodeError(line, header, raw, str(exc)) from exc
    return ScoreRow(**values)


def read_headers(reader: Iterator[list[str]]) -> list[str]:
    """Consume and return the header record; [] for an empty file."""
    try:
        return next(reader, [])
    except (csv.Error, UnicodeDecodeError) as exc:
        raise DecodeError(1, None, None, f"unreadable header row: {exc}") from exc


def iter_score_rows(reader: Iterator[list[str]]) -> Iterator[ScoreRow]:
    """Lazily decode the data rows remaining in a csv.reader.

    Blank lines are skipped.  Line numbers come from reader.line_num when
    the reader exposes it.
    """
    count = 1
    while True:
        count += 1
        try:
            record = next(reader)
        except StopIteration:
            return
        except (csv.Error, UnicodeDecodeError) as exc:
            line = getattr(reader, "line_num", count)
            raise DecodeError(line, None, None, str(exc)) from exc
        if not record:
            continue
        yield decode_row(record, getattr(reader, "line_num", count))
