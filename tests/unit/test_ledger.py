"""Unit tests for oom_ledger.ledger against MemoryDocumentStore."""

from __future__ import annotations

from datetime import datetime, timezone
from types import MappingProxyType

import pytest

from oom_ledger.ledger import (
    PublishSummary,
    ResultRecord,
    coerce_result_document,
    publish_results,
    read_results,
    unpublish_results,
)
from oom_ledger.shared import Event, Member, PersistenceError, ScoreRecord
from oom_ledger.store import Document, MemoryDocumentStore, results_collection_path

SOCIETY = "soc-1"
FIXED_NOW = datetime(2024, 6, 2, 18, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore(clock=lambda: FIXED_NOW)


@pytest.fixture
def roster() -> list[Member]:
    return [
        Member(id="A", name="Alice Archer", handicap=12.4),
        Member(id="B", name="Bob Birdie", handicap=8),
        Member(id="C", name="Cara Chip"),
    ]


@pytest.fixture
def e1() -> Event:
    return Event(
        id="E1",
        scoring_mode="stableford",
        status="published",
        date="2024-06-01",
        is_oom=True,
        results={
            "A": ScoreRecord(stableford=38),
            "B": ScoreRecord(stableford=42),
            "C": ScoreRecord(stableford=30),
        },
    )


def _path(event_id: str = "E1") -> str:
    return results_collection_path(SOCIETY, event_id)


class _RacingPublishStore(MemoryDocumentStore):
    """Lands an extra document just before the next delete on a path."""

    pending: tuple[str, Document] | None = None

    def arm(self, path: str, doc: Document) -> None:
        self.pending = (path, doc)

    def _check(self, op: str, collection_path: str) -> None:
        if op == "delete" and self.pending and self.pending[0] == collection_path:
            path, doc = self.pending
            self.pending = None
            self.collections.setdefault(path, {}).update(self._stamped([doc]))
        super()._check(op, collection_path)


# ---------------------------------------------------------------------------
# publish_results
# ---------------------------------------------------------------------------

class TestPublishResults:
    def test_writes_one_record_per_ranked_participant(self, store, e1, roster):
        summary = publish_results(store, SOCIETY, e1, roster)
        assert summary.written == 3
        records = read_results(store, SOCIETY, "E1")
        assert [(r.member_id, r.position, r.points) for r in records] == [
            ("B", 1, 25),
            ("A", 2, 18),
            ("C", 3, 15),
        ]
        assert records[0].member_name == "Bob Birdie"
        assert records[0].score == 42
        assert records[0].score_type == "stableford"
        assert records[0].updated_at == FIXED_NOW

    def test_document_layout(self, store, e1, roster):
        publish_results(store, SOCIETY, e1, roster)
        stored = store.collections["societies/soc-1/events/E1/results"]
        assert set(stored) == {"A", "B", "C"}
        assert stored["B"] == {
            "memberId": "B",
            "memberName": "Bob Birdie",
            "points": 25,
            "position": 1,
            "score": 42,
            "scoreType": "stableford",
            "updatedAt": FIXED_NOW,
        }

    def test_republish_is_idempotent(self, store, e1, roster):
        publish_results(store, SOCIETY, e1, roster)
        first = read_results(store, SOCIETY, "E1")
        publish_results(store, SOCIETY, e1, roster)
        second = read_results(store, SOCIETY, "E1")
        assert first == second
        assert len(second) == 3

    def test_republish_removes_stale_participants(self, store, e1, roster):
        publish_results(store, SOCIETY, e1, roster)
        del e1.results["C"]
        e1.results["A"] = ScoreRecord(stableford=45)
        summary = publish_results(store, SOCIETY, e1, roster)
        assert summary.written == 2
        records = read_results(store, SOCIETY, "E1")
        assert [(r.member_id, r.position, r.points) for r in records] == [
            ("A", 1, 25),
            ("B", 2, 18),
        ]

    def test_unknown_member_name_fallback(self, store, e1):
        publish_results(store, SOCIETY, e1, [Member(id="A", name="Alice Archer")])
        names = {r.member_id: r.member_name for r in read_results(store, SOCIETY, "E1")}
        assert names == {"A": "Alice Archer", "B": "Unknown", "C": "Unknown"}

    def test_positions_beyond_ten_score_zero(self, store):
        results = {f"m{i:02d}": ScoreRecord(stableford=40 - i) for i in range(12)}
        event = Event(id="big", scoring_mode="stableford", status="published", results=results)
        publish_results(store, SOCIETY, event, [])
        records = read_results(store, SOCIETY, "big")
        assert [r.points for r in records[-2:]] == [0, 0]
        assert records[9].points == 1

    def test_no_scores_writes_nothing(self, store):
        event = Event(id="E2", scoring_mode="stableford", status="published")
        summary = publish_results(store, SOCIETY, event, [])
        assert summary == PublishSummary(event_id="E2", written=0)
        assert store.collections == {}

    def test_missing_event_id_writes_nothing(self, store, e1, roster):
        e1.id = "  "
        assert publish_results(store, SOCIETY, e1, roster).written == 0
        assert store.collections == {}

    def test_missing_society_writes_nothing(self, store, e1, roster):
        assert publish_results(store, "", e1, roster).written == 0
        assert store.collections == {}

    def test_none_event(self, store):
        assert publish_results(store, SOCIETY, None, []).written == 0

    def test_only_unusable_scores_writes_nothing(self, store):
        event = Event(
            id="E3", scoring_mode="stableford", status="published",
            results={"A": ScoreRecord(gross_score=80)},
        )
        summary = publish_results(store, SOCIETY, event, [])
        assert summary.written == 0
        assert summary.skipped == ["A"]
        assert store.collections == {}

    def test_nonconforming_records_reported(self, store, e1, roster):
        e1.results["D"] = ScoreRecord(gross_score=90)
        summary = publish_results(store, SOCIETY, e1, roster)
        assert summary.written == 3
        assert summary.skipped == ["D"]

    def test_failure_raises_and_keeps_prior_publish(self, store, e1, roster):
        publish_results(store, SOCIETY, e1, roster)
        before = read_results(store, SOCIETY, "E1")
        e1.results["A"] = ScoreRecord(stableford=50)
        store.fail_on.add("write")
        with pytest.raises(PersistenceError, match="write failed"):
            publish_results(store, SOCIETY, e1, roster)
        store.fail_on.clear()
        assert read_results(store, SOCIETY, "E1") == before

    def test_event_dict_accepted(self, store, roster):
        raw = {
            "id": "E5",
            "format": "Strokeplay",
            "resultsStatus": "published",
            "results": {"A": {"grossScore": 72}, "B": {"grossScore": 68}},
        }
        assert publish_results(store, SOCIETY, raw, roster).written == 2
        assert [r.member_id for r in read_results(store, SOCIETY, "E5")] == ["B", "A"]

    def test_read_only_score_map_accepted(self, store, roster):
        event = Event(
            id="E6",
            scoring_mode="stableford",
            status="published",
            results=MappingProxyType({"A": ScoreRecord(stableford=30)}),
        )
        assert publish_results(store, SOCIETY, event, roster).written == 1
        assert [(r.member_id, r.points) for r in read_results(store, SOCIETY, "E6")] == [("A", 25)]

    def test_summary_to_dict(self):
        summary = PublishSummary(event_id="E1", written=2, skipped=[f"m{i}" for i in range(80)])
        d = summary.to_dict()
        assert d["written"] == 2
        assert len(d["skipped"]) == 50


# ---------------------------------------------------------------------------
# unpublish_results
# ---------------------------------------------------------------------------

class TestUnpublishResults:
    def test_deletes_all_event_records(self, store, e1, roster):
        publish_results(store, SOCIETY, e1, roster)
        assert unpublish_results(store, SOCIETY, "E1") == 3
        assert read_results(store, SOCIETY, "E1") == []

    def test_other_events_untouched(self, store, e1, roster):
        publish_results(store, SOCIETY, e1, roster)
        e1.id = "E2"
        publish_results(store, SOCIETY, e1, roster)
        unpublish_results(store, SOCIETY, "E1")
        assert len(read_results(store, SOCIETY, "E2")) == 3

    def test_nothing_published(self, store):
        assert unpublish_results(store, SOCIETY, "E1") == 0

    def test_missing_ids(self, store):
        assert unpublish_results(store, "", "E1") == 0
        assert unpublish_results(store, SOCIETY, "") == 0

    def test_failure_raises_and_keeps_records(self, store, e1, roster):
        publish_results(store, SOCIETY, e1, roster)
        store.fail_on.add("delete")
        with pytest.raises(PersistenceError):
            unpublish_results(store, SOCIETY, "E1")
        store.fail_on.clear()
        assert len(read_results(store, SOCIETY, "E1")) == 3

    def test_single_delete_catches_racing_publish(self, e1, roster):
        store = _RacingPublishStore(clock=lambda: FIXED_NOW)
        publish_results(store, SOCIETY, e1, roster)
        store.arm(_path(), Document(id="D", fields={"memberId": "D", "position": 4}))
        assert unpublish_results(store, SOCIETY, "E1") == 4
        assert read_results(store, SOCIETY, "E1") == []


# ---------------------------------------------------------------------------
# read_results / coerce_result_document
# ---------------------------------------------------------------------------

class TestReadResults:
    def test_missing_ids_return_empty(self, store):
        assert read_results(store, "", "E1") == []
        assert read_results(store, SOCIETY, None) == []

    def test_unknown_event_returns_empty(self, store):
        assert read_results(store, SOCIETY, "nope") == []

    def test_store_failure_propagates(self, store):
        store.fail_on.add("read")
        with pytest.raises(PersistenceError):
            read_results(store, SOCIETY, "E1")

    def test_malformed_documents_are_coerced_or_dropped(self, store):
        store.collections[_path()] = {
            "x1": {"memberId": "A", "memberName": "Al", "points": "18", "position": 2,
                   "score": 38, "scoreType": "stableford"},
            "B": {"points": None, "position": "first", "score": "n/a", "scoreType": 7},
            "   ": {"memberId": "", "points": 25, "position": 1},
            "x3": {"memberId": "C", "memberName": "", "points": 25, "position": 1,
                   "score": 42, "scoreType": "strokeplay"},
        }
        records = read_results(store, SOCIETY, "E1")
        assert [r.member_id for r in records] == ["C", "A", "B"]
        c, a, b = records
        assert c.member_name == "Unknown"
        assert c.score_type == "strokeplay"
        assert a.points == 18
        assert b == ResultRecord(
            member_id="B", member_name="Unknown", points=0, position=0,
            score=0, score_type="stableford", updated_at=None,
        )


class TestCoerceResultDocument:
    def test_falls_back_to_document_id(self):
        record = coerce_result_document(Document(id="M7", fields={"position": 3, "points": 15}))
        assert record is not None
        assert record.member_id == "M7"
        assert record.points == 15

    def test_no_recoverable_id(self):
        assert coerce_result_document(Document(id="", fields={})) is None

    def test_non_dict_fields(self):
        record = coerce_result_document(Document(id="M1", fields="garbage"))  # type: ignore[arg-type]
        assert record is not None
        assert record.points == 0
        assert record.position == 0

    def test_non_document_object(self):
        assert coerce_result_document(None) is None

    def test_fractional_points_preserved(self):
        record = coerce_result_document(Document(id="M1", fields={"points": 16.5, "position": 2}))
        assert record.points == 16.5

    def test_updated_at_must_be_timestamp(self):
        record = coerce_result_document(Document(id="M1", fields={"updatedAt": "yesterday"}))
        assert record.updated_at is None
