# services/api/adapters/sqlite/__init__.py
from __future__ import annotations

import json
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    create_engine,
    select,
    insert,
    update,
    and_,
    event,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from adapters.base import StorageError, UpdateResult
from adapters.query import apply_update, matches, validate_update

# ---- Engine (SQLite) with WAL & pragmas -------------------------------------

def _ensure_dir(path: str):
    d = os.path.dirname(path)
    if d and not os.path.isdir(d):
        os.makedirs(d, exist_ok=True)

def make_engine(db_url: str) -> Engine:
    # Create data dir if sqlite file
    if db_url.startswith("sqlite:///"):
        file_path = db_url.replace("sqlite:///", "", 1)
        _ensure_dir(file_path)

    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    engine = create_engine(db_url, future=True, pool_pre_ping=True, connect_args=connect_args)

    # Apply pragmas per-connection
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore
        if isinstance(dbapi_connection, sqlite3.Connection):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA temp_store=MEMORY;")
            cursor.close()

    return engine

# ---- Schema via SQLAlchemy Core ---------------------------------------------

metadata = MetaData()

# Every collection shares one table; the document body is stored as JSON text.
documents = Table(
    "documents",
    metadata,
    Column("collection", String, nullable=False),
    Column("id", String, nullable=False),
    Column("body", Text, nullable=False),
    Column("written_at", DateTime, nullable=False),
    PrimaryKeyConstraint("collection", "id", name="pk_documents"),
)

Index("idx_documents_collection", documents.c.collection)

# ---- Adapter implementation --------------------------------------------------

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _id_clause(filter: Optional[Dict[str, Any]]):
    """Push an id lookup down to SQL when the filter allows it."""
    if not filter or "id" not in filter:
        return None
    cond = filter["id"]
    if isinstance(cond, str):
        return documents.c.id == cond
    if isinstance(cond, dict) and set(cond) == {"$in"}:
        return documents.c.id.in_([str(v) for v in cond["$in"]])
    return None


@dataclass(frozen=True)
class SqliteStore:
    engine: Engine

    @classmethod
    def from_url(cls, db_url: str = "sqlite:///data/grading.db") -> "SqliteStore":
        eng = make_engine(db_url)
        metadata.create_all(eng)
        return cls(engine=eng)

    def _candidates(self, conn: Connection, collection: str, filter: Optional[Dict[str, Any]]) -> List[str]:
        """Raw JSON bodies that may match `filter`, oldest write first."""
        q = select(documents.c.body).where(documents.c.collection == collection)
        clause = _id_clause(filter)
        if clause is not None:
            q = q.where(clause)
        q = q.order_by(documents.c.written_at.asc(), documents.c.id.asc())
        return [r.body for r in conn.execute(q).all()]

    def _current_body(self, conn: Connection, collection: str, doc_id: str) -> Optional[str]:
        q = select(documents.c.body).where(and_(documents.c.collection == collection, documents.c.id == doc_id))
        return conn.execute(q).scalar_one_or_none()

    # Reads
    def find(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                docs = [json.loads(b) for b in self._candidates(conn, collection, filter)]
        except SQLAlchemyError as e:
            raise StorageError("find", collection, str(e)) from e
        return [d for d in docs if matches(d, filter)]

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        found = self.find(collection, filter)
        return found[0] if found else None

    # Writes
    def insert_one(self, collection: str, doc: Dict[str, Any]) -> str:
        record = dict(doc)
        record.setdefault("id", str(uuid4()))
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(documents).values(
                        collection=collection,
                        id=record["id"],
                        body=json.dumps(record, default=str),
                        written_at=_now(),
                    )
                )
        except IntegrityError as e:
            raise StorageError("insert", collection, f"duplicate id {record['id']}") from e
        except SQLAlchemyError as e:
            raise StorageError("insert", collection, str(e)) from e
        return record["id"]

    def _swap(self, conn: Connection, collection: str, body: str, filter: Dict[str, Any], update_doc: Dict[str, Any]):
        """
        Rewrite one row only if it still holds `body` (compare-and-swap).

        Returns (matched, modified). When another writer got there first the
        row is re-read and the filter checked again against what it wrote.
        """
        while body is not None:
            doc = json.loads(body)
            if not matches(doc, filter):
                return False, False
            doc_id = doc["id"]
            if not apply_update(doc, update_doc):
                current = self._current_body(conn, collection, doc_id)
                if current == body:
                    return True, False
                body = current
                continue
            res = conn.execute(
                update(documents)
                .where(and_(
                    documents.c.collection == collection,
                    documents.c.id == doc_id,
                    documents.c.body == body,
                ))
                .values(body=json.dumps(doc, default=str))
            )
            if res.rowcount == 1:
                return True, True
            body = self._current_body(conn, collection, doc_id)
        return False, False

    def _update(self, collection: str, filter: Dict[str, Any], update_doc: Dict[str, Any], many: bool) -> UpdateResult:
        validate_update(update_doc)
        matched = modified = 0
        try:
            with self.engine.begin() as conn:
                for body in self._candidates(conn, collection, filter):
                    hit, changed = self._swap(conn, collection, body, filter, update_doc)
                    matched += hit
                    modified += changed
                    if hit and not many:
                        break
        except SQLAlchemyError as e:
            raise StorageError("update", collection, str(e)) from e
        return UpdateResult(matched_count=matched, modified_count=modified)

    def update_one(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> UpdateResult:
        return self._update(collection, filter, update, many=False)

    def update_many(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> UpdateResult:
        return self._update(collection, filter, update, many=True)
