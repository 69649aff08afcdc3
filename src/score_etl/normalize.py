"""Normalization functions for score-event CSV ingestion.

Row-value helpers accept str | None.  trim() returns None for blank input;
the parse_* helpers raise ValueError so the row decoder can report the
offending column.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from score_etl.shared import BadName

_TS_FORMAT = "%Y-%m-%d %H:%M:%S"
_FILE_TS_FORMAT = "%y%m%d%H%M%S%z"
_FILE_TS_SUFFIX = "000000+0000"

DATE_TAG_OFFSET = 11
DATE_TAG_LENGTH = 6
MIN_FILE_NAME_LENGTH = DATE_TAG_OFFSET + DATE_TAG_LENGTH + 1

INTEGER_MIN = -2147483648
INTEGER_MAX = 2147483647
SMALLINT_MIN = -32768
SMALLINT_MAX = 32767

_INT_RE = re.compile(r"[+-]?[0-9]+")


# ---------------------------------------------------------------------------
# Filename date tag
# ---------------------------------------------------------------------------

def derive_date_tag(file_name: str) -> str:
    """Return the 6-character YYMMDD tag at offset 11 of a base file name."""
    if len(file_name) < MIN_FILE_NAME_LENGTH:
        raise BadName(
            file_name,
            f"name must be at least {MIN_FILE_NAME_LENGTH} characters "
            f"(got {len(file_name)})",
        )
    return file_name[DATE_TAG_OFFSET:DATE_TAG_OFFSET + DATE_TAG_LENGTH]


def parse_file_timestamp(file_name: str) -> datetime:
    """Parse the filename date tag as midnight UTC.

    'round_data_210615.csv' → datetime(2021, 6, 15, tzinfo=timezone.utc).
    Two-digit years follow strptime's %y pivot: 69–99 → 19xx, 00–68 → 20xx.
    """
    tag = derive_date_tag(file_name)
    if not (tag.isascii() and tag.isdigit()):
        raise BadName(file_name, f"date tag {tag!r} is not six digits")
    try:
        return datetime.strptime(tag + _FILE_TS_SUFFIX, _FILE_TS_FORMAT)
    except ValueError as exc:
        raise BadName(file_name, f"date tag {tag!r} is not a valid YYMMDD date: {exc}") from exc


# ---------------------------------------------------------------------------
# Row values
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def parse_int(value: str | None) -> int:
    """Parse ASCII digits with an optional sign into a PostgreSQL integer."""
    v = trim(value)
    if v is None:
        raise ValueError("value is empty")
    if not _INT_RE.fullmatch(v):
        raise ValueError(f"{v!r} is not an integer")
    n = int(v)
    if not INTEGER_MIN <= n <= INTEGER_MAX:
        raise ValueError(f"{n} is outside the integer range")
    return n


def parse_small_int(value: str | None) -> int:
    """Parse an integer that must fit a PostgreSQL smallint."""
    n = parse_int(value)
    if not SMALLINT_MIN <= n <= SMALLINT_MAX:
        raise ValueError(f"{n} is outside the smallint range")
    return n


def parse_event_ts(value: str | None) -> datetime:
    """Parse an ISO-8601 or '%Y-%m-%d %H:%M:%S' timestamp.

    Values without an offset are taken as UTC.
    """
    v = trim(value)
    if v is None:
        raise ValueError("timestamp is empty")
    try:
        ts = datetime.strptime(v, _TS_FORMAT)
    except ValueError:
        ts = datetime.fromisoformat(v)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
