"""oom_ledger.ledger

Results ledger: the durable per-event, per-participant result records.

Layout (one document per participant, keyed by member id):
  societies/{society_id}/events/{event_id}/results/{member_id}
    memberId, memberName, points, position, score, scoreType, updatedAt

publish_results is the only writer.  A publish replaces the event's whole
collection in one store transaction, so republishing is idempotent and a
reader never sees a half-written event.  unpublish_results removes the
collection the same way.

read_results tolerates hand-edited or historical documents: every field is
coerced to a safe default and documents with no recoverable member id are
dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from oom_ledger.leaderboard import check_score_records, compute_leaderboard
from oom_ledger.normalize import (
    normalize_score_type,
    parse_number,
    parse_position,
    trim,
)
from oom_ledger.points import points_for_position
from oom_ledger.shared import (
    Event,
    Member,
    PersistenceError,
    event_from_dict,
    roster_lookup,
)
from oom_ledger.store import Document, DocumentStore, results_collection_path

log = logging.getLogger(__name__)

UNKNOWN_MEMBER_NAME = "Unknown"


@dataclass(frozen=True)
class ResultRecord:
    member_id: str
    member_name: str
    points: int | float
    position: int
    score: int | float
    score_type: str
    updated_at: datetime | None = None

    def to_fields(self) -> dict[str, Any]:
        return {
            "memberId": self.member_id,
            "memberName": self.member_name,
            "points": self.points,
            "position": self.position,
            "score": self.score,
            "scoreType": self.score_type,
        }


@dataclass
class PublishSummary:
    event_id: str | None
    written: int = 0
    skipped: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "written": self.written,
            "skipped": self.skipped[:50],
        }


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------

def build_result_records(event: Event, roster: list[Member] | None) -> list[ResultRecord]:
    """Leaderboard → ResultRecords with denormalized names and points."""
    members = roster_lookup(roster)
    records = []
    for entry in compute_leaderboard(event):
        member = members.get(entry.member_id)
        records.append(ResultRecord(
            member_id=entry.member_id,
            member_name=member.name if member else UNKNOWN_MEMBER_NAME,
            points=points_for_position(entry.position),
            position=entry.position,
            score=entry.score,
            score_type=entry.score_type,
        ))
    return records


def publish_results(
    store: DocumentStore,
    society_id: str,
    event: Event | None,
    roster: list[Member] | None,
) -> PublishSummary:
    """Write the event's ResultRecords, replacing any earlier publish.

    An event with no id or no scores is a successful publish of nothing
    (written=0) and leaves the store untouched.

    Raises:
        PersistenceError: the store rejected the replace; nothing was written.
    """
    if isinstance(event, Mapping):
        event = event_from_dict(event)
    event_id = trim(getattr(event, "id", None))
    summary = PublishSummary(event_id=event_id)
    society = trim(society_id)
    if event is None or event_id is None or society is None:
        log.info("publish skipped: missing society_id or event id")
        return summary
    if not isinstance(getattr(event, "results", None), Mapping) or not event.results:
        log.info("publish %s: no scores to write", event_id)
        return summary

    summary.skipped = check_score_records(event)
    if summary.skipped:
        log.warning(
            "publish %s: %d score record(s) have no %s value and are left off: %s",
            event_id, len(summary.skipped), event.scoring_mode,
            ", ".join(summary.skipped[:10]),
        )

    records = build_result_records(event, roster)
    if not records:
        log.info("publish %s: no valid leaderboard entries", event_id)
        return summary

    path = results_collection_path(society, event_id)
    docs = [Document(id=r.member_id, fields=r.to_fields()) for r in records]
    try:
        summary.written = store.replace_collection(path, docs)
    except PersistenceError as exc:
        log.error("publish %s failed (society=%s): %s", event_id, society, exc)
        raise
    log.info("publish %s: wrote %d result(s) to %s", event_id, summary.written, path)
    return summary


def unpublish_results(store: DocumentStore, society_id: str, event_id: str) -> int:
    """Delete every ResultRecord for the event; return how many were removed.

    The whole collection goes in one store transaction, including records
    written by a publish that raced this call.

    Raises:
        PersistenceError: the store rejected the delete.
    """
    society, eid = trim(society_id), trim(event_id)
    if society is None or eid is None:
        return 0
    path = results_collection_path(society, eid)
    try:
        deleted = store.delete_collection(path)
    except PersistenceError as exc:
        log.error("unpublish %s failed (society=%s): %s", eid, society, exc)
        raise
    log.info("unpublish %s: deleted %d result(s)", eid, deleted)
    return deleted


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------

def coerce_result_document(doc: Any) -> ResultRecord | None:
    """Return a ResultRecord from a raw store document, or None if unusable."""
    if isinstance(doc, Document):
        doc_id, fields = doc.id, doc.fields
    else:
        doc_id, fields = getattr(doc, "id", None), getattr(doc, "fields", None)
    if not isinstance(fields, dict):
        fields = {}

    member_id = trim(fields.get("memberId")) or trim(doc_id)
    if member_id is None:
        return None

    updated_at = fields.get("updatedAt")
    return ResultRecord(
        member_id=member_id,
        member_name=trim(fields.get("memberName")) or UNKNOWN_MEMBER_NAME,
        points=parse_number(fields.get("points")) or 0,
        position=parse_position(fields.get("position")) or 0,
        score=parse_number(fields.get("score")) or 0,
        score_type=normalize_score_type(fields.get("scoreType")),
        updated_at=updated_at if isinstance(updated_at, datetime) else None,
    )


def read_results(store: DocumentStore, society_id: str, event_id: str) -> list[ResultRecord]:
    """Return the event's ResultRecords ordered by position.

    Records whose position could not be recovered (0) sort last.

    Raises:
        PersistenceError: the store read failed.
    """
    society, eid = trim(society_id), trim(event_id)
    if society is None or eid is None:
        return []
    docs = store.read_collection(results_collection_path(society, eid))
    records = []
    dropped = 0
    for doc in docs:
        record = coerce_result_document(doc)
        if record is None:
            dropped += 1
            continue
        records.append(record)
    if dropped:
        log.warning("read %s: dropped %d result(s) with no member id", eid, dropped)
    records.sort(key=lambda r: (r.position < 1, r.position, r.member_id))
    return records
