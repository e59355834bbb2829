"""End-to-end publish → read → aggregate against PostgreSQL."""

from __future__ import annotations

import pytest

from oom_ledger.ledger import publish_results, read_results, unpublish_results
from oom_ledger.season import AggregationCounters, aggregate_season
from oom_ledger.shared import Event, Member, PersistenceError, ScoreRecord
from oom_ledger.store import PostgresDocumentStore

SOCIETY = "soc-1"


@pytest.fixture
def roster() -> list[Member]:
    return [Member(id="A", name="Alice"), Member(id="B", name="Bob"), Member(id="C", name="Cara")]


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


class TestEndToEnd:
    def test_publish_and_aggregate(self, pg_store, e1, roster):
        assert publish_results(pg_store, SOCIETY, e1, roster).written == 3

        records = read_results(pg_store, SOCIETY, "E1")
        assert [(r.member_id, r.position, r.points) for r in records] == [
            ("B", 1, 25), ("A", 2, 18), ("C", 3, 15),
        ]
        assert all(r.updated_at is not None for r in records)

        entries = aggregate_season([e1], roster, 2024, store=pg_store, society_id=SOCIETY)
        assert [(e.member_id, e.total_points, e.wins, e.appearances) for e in entries] == [
            ("B", 25, 1, 1), ("A", 18, 0, 1), ("C", 15, 0, 1),
        ]

    def test_republish_is_idempotent(self, pg_store, e1, roster):
        publish_results(pg_store, SOCIETY, e1, roster)
        first = [(r.member_id, r.position, r.points, r.score) for r in read_results(pg_store, SOCIETY, "E1")]
        publish_results(pg_store, SOCIETY, e1, roster)
        second = [(r.member_id, r.position, r.points, r.score) for r in read_results(pg_store, SOCIETY, "E1")]
        assert first == second

    def test_unpublish_removes_from_season(self, pg_store, e1, roster):
        publish_results(pg_store, SOCIETY, e1, roster)
        assert unpublish_results(pg_store, SOCIETY, "E1") == 3
        assert aggregate_season([e1], roster, store=pg_store, society_id=SOCIETY) == []

    def test_societies_are_isolated(self, pg_store, e1, roster):
        publish_results(pg_store, SOCIETY, e1, roster)
        assert read_results(pg_store, "soc-2", "E1") == []

    def test_hand_edited_document_is_tolerated(self, pg_store, db_conn, e1, roster):
        conn, _ = db_conn
        publish_results(pg_store, SOCIETY, e1, roster)
        with conn.transaction():
            conn.execute(
                """
                UPDATE ledger_document
                SET fields = fields || '{"points": "oops", "position": null}'::jsonb
                WHERE doc_id = 'C'
                """
            )
        records = read_results(pg_store, SOCIETY, "E1")
        assert [r.member_id for r in records] == ["B", "A", "C"]
        assert (records[-1].points, records[-1].position) == (0, 0)

    def test_aggregate_survives_broken_store(self, db_conn, e1, roster):
        conn, _ = db_conn
        broken = PostgresDocumentStore(conn=conn, table="missing_table")
        ctrs = AggregationCounters()
        entries = aggregate_season([e1], roster, store=broken, society_id=SOCIETY, counters=ctrs)
        assert entries == []
        assert ctrs.events_failed == 1

    def test_publish_to_missing_table_raises(self, db_conn, e1, roster):
        conn, _ = db_conn
        broken = PostgresDocumentStore(conn=conn, table="missing_table")
        with pytest.raises(PersistenceError):
            publish_results(broken, SOCIETY, e1, roster)
