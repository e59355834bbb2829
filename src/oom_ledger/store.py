"""oom_ledger.store

Document-store boundary for the results ledger.

A store holds collections of {id, fields} documents addressed by a
slash-separated collection path.  Every mutating call is atomic: callers
observe either the complete prior collection or the complete new one.

Implementations:
  PostgresDocumentStore: one jsonb row per document (table ledger_document)
  MemoryDocumentStore:   dict-backed, for tests and in-process use

Any store failure surfaces as PersistenceError with the driver's message.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from oom_ledger.shared import PersistenceError

DEFAULT_TABLE = "ledger_document"


@dataclass
class Document:
    id: str
    fields: dict[str, Any]


def results_collection_path(society_id: str, event_id: str) -> str:
    """societies/{society_id}/events/{event_id}/results"""
    return f"societies/{society_id}/events/{event_id}/results"


class DocumentStore(Protocol):
    def read_collection(self, collection_path: str) -> list[Document]:
        """Return every document in the collection (updatedAt included)."""
        ...

    def bulk_write(self, collection_path: str, docs: list[Document]) -> int:
        """Upsert all docs in one transaction; return the number written."""
        ...

    def bulk_delete(self, collection_path: str, doc_ids: list[str]) -> int:
        """Delete the listed ids in one transaction; return the number removed."""
        ...

    def replace_collection(self, collection_path: str, docs: list[Document]) -> int:
        """Make the collection hold exactly docs, in one transaction."""
        ...

    def delete_collection(self, collection_path: str) -> int:
        """Delete every document in one transaction; return the number removed."""
        ...


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
  collection_path text        NOT NULL,
  doc_id          text        NOT NULL,
  fields          jsonb       NOT NULL,
  updated_at      timestamptz NOT NULL DEFAULT now(),
  PRIMARY KEY (collection_path, doc_id)
)
"""

_UPSERT = """
INSERT INTO {table} (collection_path, doc_id, fields, updated_at)
VALUES (%s, %s, %s, now())
ON CONFLICT (collection_path, doc_id) DO UPDATE SET
  fields     = EXCLUDED.fields,
  updated_at = now()
"""


@dataclass
class PostgresDocumentStore:
    """Ledger documents in a single PostgreSQL table.

    The connection is owned by the caller.  Each method runs inside
    conn.transaction(), so it commits on success and rolls back on error
    (or nests as a savepoint when the caller already holds a transaction).
    """

    conn: psycopg.Connection
    table: str = DEFAULT_TABLE

    @classmethod
    def connect(cls, dsn: str, table: str = DEFAULT_TABLE) -> PostgresDocumentStore:
        try:
            conn = psycopg.connect(dsn)
        except psycopg.Error as exc:
            raise PersistenceError(f"connect failed: {exc}") from exc
        return cls(conn=conn, table=table)

    def _sql(self, template: str) -> sql.Composed:
        return sql.SQL(template).format(table=sql.Identifier(self.table))

    def create_schema(self) -> None:
        try:
            with self.conn.transaction():
                self.conn.execute(self._sql(_CREATE_TABLE))
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def read_collection(self, collection_path: str) -> list[Document]:
        try:
            with self.conn.transaction():
                rows = self.conn.execute(
                    self._sql(
                        "SELECT doc_id, fields, updated_at FROM {table} "
                        "WHERE collection_path = %s ORDER BY doc_id"
                    ),
                    (collection_path,),
                ).fetchall()
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc
        docs = []
        for doc_id, fields, updated_at in rows:
            data = dict(fields) if isinstance(fields, dict) else {}
            data["updatedAt"] = updated_at
            docs.append(Document(id=str(doc_id), fields=data))
        return docs

    def _upsert(self, cur: psycopg.Cursor, collection_path: str, docs: list[Document]) -> None:
        cur.executemany(
            self._sql(_UPSERT),
            [(collection_path, d.id, Jsonb(_storable(d.fields))) for d in docs],
        )

    def bulk_write(self, collection_path: str, docs: list[Document]) -> int:
        if not docs:
            return 0
        try:
            with self.conn.transaction(), self.conn.cursor() as cur:
                self._upsert(cur, collection_path, docs)
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc
        return len(docs)

    def bulk_delete(self, collection_path: str, doc_ids: list[str]) -> int:
        if not doc_ids:
            return 0
        try:
            with self.conn.transaction():
                cur = self.conn.execute(
                    self._sql(
                        "DELETE FROM {table} "
                        "WHERE collection_path = %s AND doc_id = ANY(%s::text[])"
                    ),
                    (collection_path, list(doc_ids)),
                )
                return cur.rowcount
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def replace_collection(self, collection_path: str, docs: list[Document]) -> int:
        try:
            with self.conn.transaction(), self.conn.cursor() as cur:
                cur.execute(
                    self._sql(
                        "DELETE FROM {table} "
                        "WHERE collection_path = %s AND doc_id <> ALL(%s::text[])"
                    ),
                    (collection_path, [d.id for d in docs]),
                )
                if docs:
                    self._upsert(cur, collection_path, docs)
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc
        return len(docs)

    def delete_collection(self, collection_path: str) -> int:
        try:
            with self.conn.transaction():
                cur = self.conn.execute(
                    self._sql("DELETE FROM {table} WHERE collection_path = %s"),
                    (collection_path,),
                )
                return cur.rowcount
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def close(self) -> None:
        self.conn.close()


def _storable(fields: dict[str, Any]) -> dict[str, Any]:
    # updatedAt lives in its own column, assigned by the server
    return {k: v for k, v in fields.items() if k != "updatedAt"}


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MemoryDocumentStore:
    """Dict-backed store.  fail_on names operations that raise PersistenceError."""

    collections: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    fail_on: set[str] = field(default_factory=set)
    clock: Callable[[], datetime] = _utcnow

    def _check(self, op: str, collection_path: str) -> None:
        if op in self.fail_on or collection_path in self.fail_on:
            raise PersistenceError(f"{op} failed for {collection_path}")

    def _stamped(self, docs: list[Document]) -> dict[str, dict[str, Any]]:
        now = self.clock()
        out = {}
        for d in docs:
            data = copy.deepcopy(_storable(d.fields))
            data["updatedAt"] = now
            out[d.id] = data
        return out

    def read_collection(self, collection_path: str) -> list[Document]:
        self._check("read", collection_path)
        current = self.collections.get(collection_path, {})
        return [
            Document(id=doc_id, fields=copy.deepcopy(current[doc_id]))
            for doc_id in sorted(current)
        ]

    def bulk_write(self, collection_path: str, docs: list[Document]) -> int:
        self._check("write", collection_path)
        merged = dict(self.collections.get(collection_path, {}))
        merged.update(self._stamped(docs))
        self.collections[collection_path] = merged
        return len(docs)

    def bulk_delete(self, collection_path: str, doc_ids: list[str]) -> int:
        self._check("delete", collection_path)
        current = self.collections.get(collection_path, {})
        doomed = set(doc_ids)
        kept = {k: v for k, v in current.items() if k not in doomed}
        removed = len(current) - len(kept)
        if kept:
            self.collections[collection_path] = kept
        else:
            self.collections.pop(collection_path, None)
        return removed

    def replace_collection(self, collection_path: str, docs: list[Document]) -> int:
        self._check("write", collection_path)
        stamped = self._stamped(docs)
        if stamped:
            self.collections[collection_path] = stamped
        else:
            self.collections.pop(collection_path, None)
        return len(docs)

    def delete_collection(self, collection_path: str) -> int:
        self._check("delete", collection_path)
        return len(self.collections.pop(collection_path, {}))

    def close(self) -> None:
        pass
