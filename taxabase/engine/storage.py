"""SQLite document store for taxonomy models, entities and hierarchy edges.

Each collection is a table whose rows are flat documents keyed by a 24-hex
character ``id``. Every entity and edge row carries a ``model_id`` column, so
multiple taxonomy models live side by side in one SQLite file and every read
is scoped by model.

The store provides the contract the hierarchy engine relies on:

- ``bulk_insert`` with ordered/unordered semantics that reports unique-index
  violations as a ``DuplicateKeyConflict`` carrying the records that did land;
- a unique index over ``(model_id, parent_type, parent_id, child_id,
  child_type)`` on each hierarchy table, created with the schema;
- ``find`` returning a closeable ``Cursor`` that streams rows in batches.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterator, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from taxabase.engine.errors import DuplicateKeyConflict

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"

_ENTITY_COLUMNS = (
    "id",
    "model_id",
    "object_type",
    "code",
    "preferred_label",
    "created_at",
    "updated_at",
)

_HIERARCHY_COLUMNS = (
    "id",
    "model_id",
    "parent_type",
    "parent_doc_kind",
    "parent_id",
    "child_type",
    "child_doc_kind",
    "child_id",
    "created_at",
    "updated_at",
)

_MODEL_COLUMNS = (
    "id",
    "name",
    "locale",
    "description",
    "released",
    "version",
    "created_at",
    "updated_at",
)

# Table name -> column names. Only these names ever reach SQL text.
COLLECTIONS: dict[str, tuple[str, ...]] = {
    "models": _MODEL_COLUMNS,
    "occupation_groups": _ENTITY_COLUMNS,
    "occupations": _ENTITY_COLUMNS,
    "skill_groups": _ENTITY_COLUMNS,
    "skills": _ENTITY_COLUMNS,
    "occupation_hierarchy": _HIERARCHY_COLUMNS,
    "skill_hierarchy": _HIERARCHY_COLUMNS,
}

_ENTITY_TABLE = """
CREATE TABLE IF NOT EXISTS {name} (
    id TEXT PRIMARY KEY,
    model_id TEXT NOT NULL,
    object_type TEXT NOT NULL,
    code TEXT NOT NULL DEFAULT '',
    preferred_label TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_{name}_model ON {name}(model_id);
"""

_HIERARCHY_TABLE = """
CREATE TABLE IF NOT EXISTS {name} (
    id TEXT PRIMARY KEY,
    model_id TEXT NOT NULL,
    parent_type TEXT NOT NULL,
    parent_doc_kind TEXT NOT NULL,
    parent_id TEXT NOT NULL,
    child_type TEXT NOT NULL,
    child_doc_kind TEXT NOT NULL,
    child_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_{name}_pair
    ON {name}(model_id, parent_type, parent_id, child_id, child_type);
CREATE INDEX IF NOT EXISTS idx_{name}_parent ON {name}(model_id, parent_id);
CREATE INDEX IF NOT EXISTS idx_{name}_child ON {name}(model_id, child_id);
"""

_SCHEMA_V1 = (
    """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS models (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    locale TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    released INTEGER NOT NULL DEFAULT 0,
    version TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""
    + "".join(
        _ENTITY_TABLE.format(name=n)
        for n in ("occupation_groups", "occupations", "skill_groups", "skills")
    )
    + "".join(
        _HIERARCHY_TABLE.format(name=n) for n in ("occupation_hierarchy", "skill_hierarchy")
    )
)


def new_object_id() -> str:
    """Generate a fresh 24-hex character store identifier."""
    return uuid.uuid4().hex[:24]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    # NOT NULL / CHECK failures are IntegrityErrors too, but they are faults.
    return "UNIQUE constraint failed" in str(exc)


class Cursor:
    """Closeable, batched iterator over the rows of one query.

    Iteration stops early once ``close()`` has been called. Errors raised
    while closing are logged and swallowed: by then the consumer is gone.
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        cursor: sqlite3.Cursor,
        columns: tuple[str, ...],
        batch_size: int,
    ) -> None:
        self._storage = storage
        self._cursor = cursor
        self._columns = columns
        self._batch_size = batch_size
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[dict[str, Any]]:
        while not self._closed:
            rows = self._storage._fetch_batch(self._cursor, self._batch_size)
            if not rows:
                break
            for row in rows:
                yield dict(zip(self._columns, row))
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
        except sqlite3.Error:
            logger.debug("Ignoring error while closing cursor", exc_info=True)

    def __enter__(self) -> Cursor:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class SQLiteStorage:
    """SQLite persistence adapter shared by the client and the hierarchy engine.

    A single connection is opened with ``check_same_thread=False``; every
    statement runs under an internal lock so one instance can be shared by
    several threads.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self._path = str(path)
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.RLock()
        self._init_schema()

    @property
    def path(self) -> str:
        return self._path

    def _init_schema(self) -> None:
        conn = self._conn
        has_meta = conn.execute(
            "SELECT count(*) FROM sqlite_master WHERE type='table' AND name='meta'"
        ).fetchone()[0]

        if has_meta:
            row = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
            if row is None:
                raise ValueError(
                    f"Database has meta table but no schema_version key. "
                    f"The database at '{self._path}' may be corrupted."
                )
            if row[0] != SCHEMA_VERSION:
                raise ValueError(
                    f"Unsupported schema version '{row[0]}' in database "
                    f"'{self._path}'. Expected version {SCHEMA_VERSION}. "
                    f"This database may have been created by a newer version of taxabase."
                )
            return

        conn.executescript(_SCHEMA_V1)
        conn.execute(
            "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', ?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
        logger.debug("Initialized schema v%s at %s", SCHEMA_VERSION, self._path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _columns(collection: str) -> tuple[str, ...]:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection!r}") from None

    @staticmethod
    def _stamp(record: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of ``record`` with id and timestamps assigned if missing."""
        doc = dict(record)
        now = _now()
        if not doc.get("id"):
            doc["id"] = new_object_id()
        doc.setdefault("created_at", now)
        doc.setdefault("updated_at", now)
        return doc

    # --- Writes ---

    def insert_one(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a single document and return it with id and timestamps."""
        inserted = self.bulk_insert(collection, [record], ordered=True)
        return inserted[0]

    def bulk_insert(
        self,
        collection: str,
        records: Sequence[dict[str, Any]],
        *,
        ordered: bool = False,
    ) -> list[dict[str, Any]]:
        """Insert many documents in one write.

        Unordered inserts attempt every record even after a unique-index
        violation; ordered inserts stop at the first one. Either way the
        records that did land are committed.

        Returns:
            The inserted documents, with store-assigned ids and timestamps.

        Raises:
            DuplicateKeyConflict: If any record violated a unique index. The
                exception carries the inserted subset.
            sqlite3.Error: For any other store failure; nothing is committed.
        """
        columns = self._columns(collection)
        sql = (
            f"INSERT INTO {collection} ({', '.join(columns)})"
            f" VALUES ({', '.join('?' for _ in columns)})"
        )
        inserted: list[dict[str, Any]] = []
        conflicts: list[dict[str, Any]] = []

        with self._lock:
            try:
                for record in records:
                    doc = self._stamp(record)
                    try:
                        self._conn.execute(sql, tuple(doc.get(c) for c in columns))
                    except sqlite3.IntegrityError as exc:
                        if not _is_unique_violation(exc):
                            raise
                        conflicts.append(doc)
                        if ordered:
                            break
                        continue
                    inserted.append(doc)
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

        if conflicts:
            raise DuplicateKeyConflict(collection, inserted, conflicts)
        return inserted

    def delete_model_data(self, model_id: str) -> int:
        """Delete every entity and edge of a model, and the model itself.

        Returns:
            Number of rows deleted.
        """
        deleted = 0
        with self._lock:
            for collection in COLLECTIONS:
                column = "id" if collection == "models" else "model_id"
                cur = self._conn.execute(
                    f"DELETE FROM {collection} WHERE {column} = ?", (model_id,)
                )
                deleted += cur.rowcount
            self._conn.commit()
        return deleted

    # --- Reads ---

    def find(self, collection: str, model_id: str, *, batch_size: int = 100) -> Cursor:
        """Open a streaming cursor over all documents of a model."""
        columns = self._columns(collection)
        with self._lock:
            cur = self._conn.execute(
                f"SELECT {', '.join(columns)} FROM {collection}"
                " WHERE model_id = ? ORDER BY created_at, id",
                (model_id,),
            )
        return Cursor(self, cur, columns, batch_size)

    def find_where(
        self, collection: str, model_id: str, **equals: str
    ) -> list[dict[str, Any]]:
        """Return all documents of a model whose columns equal the given values."""
        columns = self._columns(collection)
        unknown = set(equals) - set(columns)
        if unknown:
            raise ValueError(f"Unknown column(s) for {collection!r}: {sorted(unknown)}")
        clauses = ["model_id = ?", *(f"{k} = ?" for k in equals)]
        params = (model_id, *equals.values())
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {', '.join(columns)} FROM {collection}"
                f" WHERE {' AND '.join(clauses)} ORDER BY created_at, id",
                params,
            ).fetchall()
        return [dict(zip(columns, row)) for row in rows]

    def find_by_id(self, collection: str, id: str) -> dict[str, Any] | None:
        """Resolve one document by id, regardless of model."""
        columns = self._columns(collection)
        with self._lock:
            row = self._conn.execute(
                f"SELECT {', '.join(columns)} FROM {collection} WHERE id = ?", (id,)
            ).fetchone()
        return dict(zip(columns, row)) if row else None

    def find_ids(self, collection: str, model_id: str) -> list[tuple[str, str]]:
        """Return ``(id, object_type)`` for every entity of a model."""
        self._columns(collection)
        with self._lock:
            return [
                (row[0], row[1])
                for row in self._conn.execute(
                    f"SELECT id, object_type FROM {collection} WHERE model_id = ?",
                    (model_id,),
                ).fetchall()
            ]

    def count(self, collection: str, model_id: str) -> int:
        self._columns(collection)
        with self._lock:
            return self._conn.execute(
                f"SELECT count(*) FROM {collection} WHERE model_id = ?", (model_id,)
            ).fetchone()[0]

    def list_models(self) -> list[dict[str, Any]]:
        """Return every model in the directory, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {', '.join(_MODEL_COLUMNS)} FROM models ORDER BY created_at, id"
            ).fetchall()
        return [dict(zip(_MODEL_COLUMNS, row)) for row in rows]

    def _fetch_batch(self, cursor: sqlite3.Cursor, size: int) -> list[tuple]:
        with self._lock:
            return cursor.fetchmany(size)
