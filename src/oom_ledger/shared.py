"""oom_ledger.shared

Domain types and helpers shared by the leaderboard, ledger and season
modules: Event / ScoreRecord / Member dataclasses, the persistence error,
coercion from the app's JSON export shape, and report writing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from oom_ledger.normalize import (
    normalize_scoring_mode,
    parse_flag,
    parse_number,
    trim,
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class PersistenceError(Exception):
    """Raised when the document store rejects a read, write or delete."""


class InputFileError(ValueError):
    """Raised when a CLI events/roster JSON file cannot be used."""


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

@dataclass
class ScoreRecord:
    gross_score: int | float | None = None
    net_score: int | float | None = None
    stableford: int | float | None = None


@dataclass
class Event:
    """A scored competition.  Owned by the event-management side of the app."""

    id: str
    scoring_mode: str = "stableford"
    status: str = "draft"
    date: str | date | datetime | None = None
    is_oom: bool = False
    results: dict[str, ScoreRecord] = field(default_factory=dict)
    name: str | None = None

    @property
    def is_published(self) -> bool:
        return isinstance(self.status, str) and self.status.strip().lower() == "published"


@dataclass
class Member:
    id: str
    name: str
    handicap: int | float | None = None


# ---------------------------------------------------------------------------
# Coercion from the export shape
# ---------------------------------------------------------------------------

def score_record_from_dict(raw: Mapping[str, Any]) -> ScoreRecord:
    """Build a ScoreRecord from a {grossScore, netScore, strokeplay, stableford} map.

    An explicit "strokeplay" total takes precedence over "netScore".
    """
    net = parse_number(raw.get("strokeplay"))
    if net is None:
        net = parse_number(raw.get("netScore", raw.get("net_score")))
    return ScoreRecord(
        gross_score=parse_number(raw.get("grossScore", raw.get("gross_score"))),
        net_score=net,
        stableford=parse_number(raw.get("stableford")),
    )


def event_from_dict(raw: Any) -> Event | None:
    """Return an Event from an exported event document, or None if it has no id."""
    if isinstance(raw, Event):
        return raw
    if not isinstance(raw, Mapping):
        return None
    event_id = trim(raw.get("id"))
    if event_id is None:
        return None
    results: dict[str, ScoreRecord] = {}
    raw_results = raw.get("results")
    if isinstance(raw_results, Mapping):
        for member_id, score in raw_results.items():
            mid = trim(member_id)
            if mid is None or not isinstance(score, Mapping):
                continue
            results[mid] = score_record_from_dict(score)
    status = trim(raw.get("resultsStatus", raw.get("status")))
    return Event(
        id=event_id,
        scoring_mode=normalize_scoring_mode(raw.get("format", raw.get("scoring_mode"))),
        status=status.lower() if status else "draft",
        date=raw.get("date"),
        is_oom=parse_flag(raw.get("isOOM", raw.get("is_oom"))),
        results=results,
        name=trim(raw.get("name")),
    )


def member_from_dict(raw: Any) -> Member | None:
    if isinstance(raw, Member):
        return raw
    if not isinstance(raw, Mapping):
        return None
    member_id = trim(raw.get("id"))
    if member_id is None:
        return None
    return Member(
        id=member_id,
        name=trim(raw.get("name")) or "Unknown",
        handicap=parse_number(raw.get("handicap")),
    )


def roster_lookup(roster: Any) -> dict[str, Member]:
    """Index a roster by member id; non-list rosters yield an empty index."""
    lookup: dict[str, Member] = {}
    if not isinstance(roster, (list, tuple)):
        return lookup
    for raw in roster:
        member = member_from_dict(raw)
        if member is not None:
            lookup[member.id] = member
    return lookup


# ---------------------------------------------------------------------------
# JSON input files
# ---------------------------------------------------------------------------

def _load_json_array(path: Path) -> list[Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise InputFileError(f"cannot read {path}: {exc}") from exc
    if not isinstance(data, list):
        raise InputFileError(f"{path}: expected a JSON array, got {type(data).__name__}")
    return data


def load_events(path: Path) -> list[Event]:
    return [e for e in (event_from_dict(raw) for raw in _load_json_array(path)) if e]


def load_roster(path: Path) -> list[Member]:
    return [m for m in (member_from_dict(raw) for raw in _load_json_array(path)) if m]


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    command: str,
    params: dict[str, Any],
    counters: dict[str, Any],
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "command": command,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        **params,
        "counters": counters,
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
