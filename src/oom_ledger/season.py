"""oom_ledger.season

Season aggregation (Order of Merit): roll published events up into a ranked
standings table.

Two sources produce the same totals:
  ledger:    read each event's ResultRecords from a DocumentStore
  recompute: rebuild each event's leaderboard from its in-memory scores

Filtering order: published → season year → OOM-only.
Sort order: points desc, wins desc, appearances asc, name asc, member id.
Participants with zero points are left out.  Rank is the 1-based list index.

The table is always recomputed from its inputs; nothing here is cached.
aggregate_season never raises: an event that cannot be read is logged,
counted, and contributes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from oom_ledger.leaderboard import compute_leaderboard
from oom_ledger.ledger import UNKNOWN_MEMBER_NAME, ResultRecord, read_results
from oom_ledger.normalize import event_year, trim
from oom_ledger.points import points_for_position
from oom_ledger.shared import Event, Member, event_from_dict, roster_lookup
from oom_ledger.store import DocumentStore

log = logging.getLogger(__name__)


@dataclass
class SeasonEntry:
    member_id: str
    member_name: str
    total_points: int | float = 0
    wins: int = 0
    appearances: int = 0
    handicap: int | float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "memberId": self.member_id,
            "memberName": self.member_name,
            "totalPoints": self.total_points,
            "wins": self.wins,
            "played": self.appearances,
            "handicap": self.handicap,
        }


@dataclass
class AggregationCounters:
    events_received: int = 0
    events_considered: int = 0
    events_failed: int = 0
    results_aggregated: int = 0
    members_ranked: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "events_received": self.events_received,
            "events_considered": self.events_considered,
            "events_failed": self.events_failed,
            "results_aggregated": self.results_aggregated,
            "members_ranked": self.members_ranked,
            "warnings": self.warnings[:50],
        }


# ---------------------------------------------------------------------------
# Event filtering
# ---------------------------------------------------------------------------

def eligible_events(
    events: list[Any],
    season_year: int | None = None,
    oom_only: bool = False,
) -> list[Event]:
    """Published events, optionally narrowed to one calendar year and OOM events."""
    selected = []
    for raw in events:
        event = event_from_dict(raw)
        if event is None or not event.is_published:
            continue
        if season_year is not None and event_year(event.date) != season_year:
            continue
        if oom_only and not event.is_oom:
            continue
        selected.append(event)
    return selected


# ---------------------------------------------------------------------------
# Per-event contributions
# ---------------------------------------------------------------------------

def _recomputed_results(event: Event) -> list[ResultRecord]:
    return [
        ResultRecord(
            member_id=entry.member_id,
            member_name=UNKNOWN_MEMBER_NAME,
            points=points_for_position(entry.position),
            position=entry.position,
            score=entry.score,
            score_type=entry.score_type,
        )
        for entry in compute_leaderboard(event)
    ]


def _event_results(
    event: Event,
    store: DocumentStore | None,
    society_id: str | None,
) -> list[ResultRecord]:
    if store is None:
        return _recomputed_results(event)
    return read_results(store, society_id or "", event.id)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def season_sort_key(entry: SeasonEntry) -> tuple:
    return (
        -entry.total_points,
        -entry.wins,
        entry.appearances,
        entry.member_name.casefold(),
        entry.member_id,
    )


def aggregate_season(
    events: Any,
    roster: Any,
    season_year: int | None = None,
    oom_only: bool = False,
    *,
    store: DocumentStore | None = None,
    society_id: str | None = None,
    counters: AggregationCounters | None = None,
) -> list[SeasonEntry]:
    """Build the season standings table.

    Args:
        events: Event objects (or exported event dicts); non-published ones
                are ignored.
        roster: Members used for display names and handicaps.  Participants
                missing from it are still ranked.
        season_year: Keep only events dated in this calendar year.
        oom_only: Keep only events flagged as Order-of-Merit events.
        store: When given, read each event's published ledger; otherwise
               recompute from the events' scores.
        society_id: Tenant for ledger reads (required with store).
        counters: Optional counters to fill in.

    Returns:
        SeasonEntry list, best first.  [] for missing or empty input.
    """
    ctrs = counters if counters is not None else AggregationCounters()
    if not isinstance(events, (list, tuple)) or not events:
        return []
    ctrs.events_received = len(events)
    if store is not None and trim(society_id) is None:
        ctrs.warnings.append("ledger aggregation requested without society_id")
        log.warning("aggregate_season: store given without society_id")
        return []

    try:
        selected = eligible_events(events, season_year, oom_only)
        members = roster_lookup(roster)
        totals: dict[str, SeasonEntry] = {}

        for event in selected:
            ctrs.events_considered += 1
            try:
                results = _event_results(event, store, society_id)
            except Exception as exc:
                ctrs.events_failed += 1
                ctrs.warnings.append(f"event {event.id}: {exc}")
                log.warning("aggregate_season: skipping event %s: %s", event.id, exc)
                continue

            for result in results:
                entry = totals.get(result.member_id)
                if entry is None:
                    member = members.get(result.member_id)
                    entry = SeasonEntry(
                        member_id=result.member_id,
                        member_name=_display_name(member, result),
                        handicap=member.handicap if member else None,
                    )
                    totals[result.member_id] = entry
                elif entry.member_name == UNKNOWN_MEMBER_NAME:
                    entry.member_name = _display_name(None, result)
                entry.total_points += result.points or 0
                entry.appearances += 1
                if result.position == 1:
                    entry.wins += 1
                ctrs.results_aggregated += 1

        ranked = [e for e in totals.values() if e.total_points > 0]
        ranked.sort(key=season_sort_key)
    except Exception as exc:
        ctrs.warnings.append(f"aggregation failed: {exc}")
        log.exception("aggregate_season failed")
        return []

    ctrs.members_ranked = len(ranked)
    log.debug(
        "aggregate_season: %d event(s) considered, %d result(s), %d ranked",
        ctrs.events_considered, ctrs.results_aggregated, ctrs.members_ranked,
    )
    return ranked


def _display_name(member: Member | None, result: ResultRecord) -> str:
    if member is not None:
        return member.name
    return result.member_name or UNKNOWN_MEMBER_NAME


# ---------------------------------------------------------------------------
# Ranks + reporting
# ---------------------------------------------------------------------------

def competition_ranks(entries: list[SeasonEntry]) -> list[int]:
    """Display ranks where ties on (points, wins, appearances) share a rank.

    e.g. 1, 1, 3, 4, 4, 6.  Entries must already be in season order.
    """
    ranks: list[int] = []
    for index, entry in enumerate(entries):
        if index > 0 and season_sort_key(entry)[:3] == season_sort_key(entries[index - 1])[:3]:
            ranks.append(ranks[-1])
        else:
            ranks.append(index + 1)
    return ranks


def build_season_report(
    entries: list[SeasonEntry],
    ctrs: AggregationCounters,
    title: str = "Order of Merit",
) -> str:
    lines = [
        "=" * 60,
        title,
        "=" * 60,
        f"{'Pos':>4}  {'Member':<28} {'Pts':>6} {'Wins':>5} {'Played':>7}",
    ]
    for rank, entry in zip(competition_ranks(entries), entries):
        lines.append(
            f"{rank:>4}  {entry.member_name[:28]:<28} {entry.total_points:>6} "
            f"{entry.wins:>5} {entry.appearances:>7}"
        )
    lines += [
        "-" * 60,
        f"  events considered:   {ctrs.events_considered}",
        f"  events failed:       {ctrs.events_failed}",
        f"  results aggregated:  {ctrs.results_aggregated}",
    ]
    if ctrs.warnings:
        lines.append(f"\nWarnings ({len(ctrs.warnings)}):")
        for w in ctrs.warnings[:20]:
            lines.append(f"  {w}")
        if len(ctrs.warnings) > 20:
            lines.append(f"  ... and {len(ctrs.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)
