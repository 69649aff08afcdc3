"""score_etl.config

YAML configuration for the score importer.

Example config.yml:

    postgresql:
      username: scores
      password: ""
      host: localhost
      port: 5432
      database: scores

username and host are required.  password, port and database may be empty
and are then left out of the connection target.
"""

from __future__ import annotations

import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from score_etl.shared import ConfigError

REQUIRED_POSTGRESQL_KEYS = ("username", "host")
OPTIONAL_POSTGRESQL_KEYS = ("password", "port", "database")


@dataclass(frozen=True)
class PostgresqlConfig:
    username: str
    host: str
    password: str = ""
    port: str = ""
    database: str = ""


@dataclass(frozen=True)
class AppConfig:
    postgresql: PostgresqlConfig
    source_path: Path | None = None


def load_config(path: Path) -> AppConfig:
    """Load and validate a YAML config file.

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML, or
            misses a required key.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"unable to read config file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"config file {path} is not valid YAML: {exc}") from exc
    return AppConfig(postgresql=parse_postgresql(data), source_path=path)


def _as_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_postgresql(data: Any) -> PostgresqlConfig:
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping.")
    section = data.get("postgresql")
    if not isinstance(section, dict):
        raise ConfigError("config is missing the 'postgresql' section.")

    missing = [k for k in REQUIRED_POSTGRESQL_KEYS if not _as_text(section.get(k))]
    if missing:
        raise ConfigError(f"postgresql section is missing required keys: {missing}")

    return PostgresqlConfig(
        username=_as_text(section["username"]),
        host=_as_text(section["host"]),
        **{k: _as_text(section.get(k)) for k in OPTIONAL_POSTGRESQL_KEYS},
    )


def build_conninfo(pg: PostgresqlConfig) -> str:
    """Return a postgresql:// URL; empty optional parts are omitted.

    PostgresqlConfig("ann", "db.local", port="5433", database="scores")
      → 'postgresql://ann@db.local:5433/scores'
    """
    user = urllib.parse.quote(pg.username, safe="")
    password = f":{urllib.parse.quote(pg.password, safe='')}" if pg.password else ""
    port = f":{pg.port}" if pg.port else ""
    database = f"/{urllib.parse.quote(pg.database, safe='')}" if pg.database else ""
    # IPv6 literals must be bracketed inside a URL
    host = f"[{pg.host}]" if ":" in pg.host and not pg.host.startswith("[") else pg.host
    return f"postgresql://{user}{password}@{host}{port}{database}"
