"""oom_ledger.leaderboard

Event leaderboard calculation: raw per-participant scores → ordered,
densely-positioned LeaderboardEntry list.

The ranking direction is a property of the event, not of the data:
  stableford  → highest score first
  strokeplay  → lowest score first (net total, falling back to gross)
  both        → the mode of the first record carrying a usable value

Records that carry no value for the resolved mode are left off the
leaderboard.  Equal scores keep their input order and receive distinct
consecutive positions; there is no tie averaging at this layer.

Nothing in this module raises: a missing or malformed event yields [].
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from oom_ledger.normalize import normalize_scoring_mode, parse_number
from oom_ledger.shared import (
    Event,
    Member,
    ScoreRecord,
    event_from_dict,
    roster_lookup,
    score_record_from_dict,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaderboardEntry:
    member_id: str
    position: int
    score: int | float
    score_type: str


# ---------------------------------------------------------------------------
# Mode resolution + value selection
# ---------------------------------------------------------------------------

def _score_records(event: Any, score_records: Any) -> Mapping[str, Any] | None:
    if score_records is None:
        score_records = getattr(event, "results", None)
    if not isinstance(score_records, Mapping) or not score_records:
        return None
    return score_records


def _field(record: Any, name: str) -> int | float | None:
    if isinstance(record, Mapping):
        record = score_record_from_dict(record)
    if isinstance(record, ScoreRecord):
        return parse_number(getattr(record, name))
    return None


def resolve_ranking_mode(event: Event, score_records: Mapping[str, Any]) -> str:
    """Return "stableford" or "strokeplay" for this event's leaderboard.

    A "both" event takes the mode of its first record carrying a usable
    value: stableford when that record has a stableford total, otherwise
    strokeplay.
    """
    mode = normalize_scoring_mode(event.scoring_mode)
    if mode != "both":
        return mode
    for record in score_records.values():
        if _field(record, "stableford") is not None:
            return "stableford"
        if _ranking_value(record, "strokeplay") is not None:
            return "strokeplay"
    return "strokeplay"


def _ranking_value(record: Any, mode: str) -> int | float | None:
    if mode == "stableford":
        return _field(record, "stableford")
    net = _field(record, "net_score")
    if net is not None:
        return net
    return _field(record, "gross_score")


def check_score_records(
    event: Event | None,
    score_records: Mapping[str, Any] | None = None,
) -> list[str]:
    """Return participant ids whose record gives no value for the event's mode.

    Empty when every record conforms (or there is nothing to check).
    """
    records = _score_records(event, score_records)
    if event is None or records is None:
        return []
    try:
        mode = resolve_ranking_mode(event, records)
        return [
            str(member_id)
            for member_id, record in records.items()
            if _ranking_value(record, mode) is None
        ]
    except Exception:
        log.exception("check_score_records failed for event %r", getattr(event, "id", None))
        return []


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

def compute_leaderboard(
    event: Event | None,
    score_records: Mapping[str, Any] | None = None,
) -> list[LeaderboardEntry]:
    """Rank one event's participants.

    Args:
        event: The event; its scoring_mode sets the ranking direction.
        score_records: participant id → ScoreRecord.  Defaults to event.results.

    Returns:
        Entries ordered best first with positions 1..N, or [] when the event
        has nothing rankable.
    """
    if isinstance(event, Mapping):
        event = event_from_dict(event)
    records = _score_records(event, score_records)
    if event is None or records is None:
        return []
    try:
        mode = resolve_ranking_mode(event, records)
        scored: list[tuple[str, int | float]] = []
        for member_id, record in records.items():
            if not member_id:
                continue
            value = _ranking_value(record, mode)
            if value is None:
                continue
            scored.append((str(member_id), value))

        scored.sort(key=lambda item: item[1], reverse=(mode == "stableford"))
        return [
            LeaderboardEntry(
                member_id=member_id,
                position=index,
                score=value,
                score_type=mode,
            )
            for index, (member_id, value) in enumerate(scored, start=1)
        ]
    except Exception:
        log.exception("compute_leaderboard failed for event %r", getattr(event, "id", None))
        return []


def event_winner(
    leaderboard: list[LeaderboardEntry],
    roster: list[Member] | None = None,
) -> tuple[str, str] | None:
    """Return (member_id, member_name) of the position-1 entry, if any."""
    for entry in leaderboard:
        if entry.position == 1:
            member = roster_lookup(roster).get(entry.member_id)
            return entry.member_id, member.name if member else "Unknown"
    return None
