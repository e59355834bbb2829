"""oom_ledger.config

YAML configuration for the ledger CLI.

Example (config/oom_ledger.yml):

    db_dsn: "postgresql://localhost/golf"
    society_id: "soc-123"
    table: ledger_document

Precedence: explicit value (CLI option) > environment > YAML file > default.
Environment variables: OOM_LEDGER_DB_DSN, OOM_LEDGER_SOCIETY_ID.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from oom_ledger.store import DEFAULT_TABLE

ENV_DB_DSN = "OOM_LEDGER_DB_DSN"
ENV_SOCIETY_ID = "OOM_LEDGER_SOCIETY_ID"

KNOWN_KEYS = frozenset({"db_dsn", "society_id", "table"})

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class ConfigValidationError(ValueError):
    """Raised when the YAML config or resolved settings are invalid."""


@dataclass(frozen=True)
class LedgerConfig:
    db_dsn: str
    society_id: str
    table: str = DEFAULT_TABLE


def read_config_file(path: Path) -> dict[str, Any]:
    """Load and validate a YAML config file into a plain dict.

    Raises:
        ConfigValidationError: unreadable YAML, non-mapping document,
            unknown keys, or non-string values.
        FileNotFoundError: the file does not exist.
    """
    raw = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"{path}: invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{path}: top level must be a mapping")
    unknown = set(data) - KNOWN_KEYS
    if unknown:
        raise ConfigValidationError(f"{path}: unknown keys: {sorted(unknown)}")
    for key, value in data.items():
        if value is not None and not isinstance(value, str):
            raise ConfigValidationError(f"{path}: {key} must be a string")
    return data


def resolve_config(
    config_path: Path | None = None,
    db_dsn: str | None = None,
    society_id: str | None = None,
    table: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """Merge CLI values, environment and YAML into a LedgerConfig.

    Raises:
        ConfigValidationError: db_dsn or society_id missing, or a bad table name.
    """
    env = os.environ if environ is None else environ
    file_values = read_config_file(config_path) if config_path else {}

    def pick(explicit: str | None, env_key: str | None, key: str) -> str | None:
        for candidate in (
            explicit,
            env.get(env_key) if env_key else None,
            file_values.get(key),
        ):
            if candidate and candidate.strip():
                return candidate.strip()
        return None

    dsn = pick(db_dsn, ENV_DB_DSN, "db_dsn")
    society = pick(society_id, ENV_SOCIETY_ID, "society_id")
    table_name = pick(table, None, "table") or DEFAULT_TABLE

    missing = [name for name, value in (("db_dsn", dsn), ("society_id", society)) if not value]
    if missing:
        raise ConfigValidationError(f"missing required setting(s): {', '.join(missing)}")
    if not _TABLE_NAME.match(table_name):
        raise ConfigValidationError(f"invalid table name: {table_name!r}")
    return LedgerConfig(db_dsn=dsn, society_id=society, table=table_name)  # type: ignore[arg-type]
