"""
SQLite Entity Store — the local file-backed database of the desktop tool.

One row per record, with the full record serialized as JSON. Single process,
single writer; the connection is shared with the host's worker threads, which
serialize their writes.
"""

import sqlite3
from typing import Any, List, Optional

from pydantic import BaseModel

from pbs_core.models.entities import ENTITY_MODELS, ID_FIELDS, EntityType
from pbs_core.store.base import BaseEntityStore, EntityTypeLike, _coerce_type


class SqliteEntityStore(BaseEntityStore):
    """Persistent store. Defaults to an in-memory database for tests."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the record and sequence tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS records (
                entity_type TEXT NOT NULL,
                entity_id INTEGER NOT NULL,
                record_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at TEXT NOT NULL DEFAULT (datetime('now')),
                PRIMARY KEY (entity_type, entity_id)
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS sequences (
                entity_type TEXT PRIMARY KEY,
                last_id INTEGER NOT NULL
            )
        """)
        self._conn.commit()

    def _deserialize(self, entity_type: EntityType, row: sqlite3.Row) -> BaseModel:
        return ENTITY_MODELS[entity_type].model_validate_json(row["record_json"])

    def _load(self, entity_type: EntityType, entity_id: int) -> Optional[BaseModel]:
        row = self._conn.execute(
            "SELECT record_json FROM records WHERE entity_type = ? AND entity_id = ?",
            (entity_type.value, entity_id),
        ).fetchone()
        return self._deserialize(entity_type, row) if row else None

    def _next_id(self, entity_type: EntityType) -> int:
        row = self._conn.execute(
            "SELECT last_id FROM sequences WHERE entity_type = ?", (entity_type.value,)
        ).fetchone()
        return (row["last_id"] if row else 0) + 1

    def _save(self, entity_type: EntityType, entity: BaseModel, is_new: bool) -> None:
        entity_id = getattr(entity, ID_FIELDS[entity_type])
        record_json = entity.model_dump_json()
        if is_new:
            self._conn.execute(
                "INSERT INTO records (entity_type, entity_id, record_json) VALUES (?, ?, ?)",
                (entity_type.value, entity_id, record_json),
            )
            self._conn.execute(
                """
                INSERT INTO sequences (entity_type, last_id) VALUES (?, ?)
                ON CONFLICT(entity_type) DO UPDATE SET last_id = excluded.last_id
                """,
                (entity_type.value, entity_id),
            )
        else:
            self._conn.execute(
                "UPDATE records SET record_json = ?, updated_at = datetime('now') "
                "WHERE entity_type = ? AND entity_id = ?",
                (record_json, entity_type.value, entity_id),
            )
        self._conn.commit()

    def list(self, entity_type: EntityTypeLike, **filters: Any) -> List[BaseModel]:
        etype = _coerce_type(entity_type)
        rows = self._conn.execute(
            "SELECT record_json FROM records WHERE entity_type = ? ORDER BY entity_id",
            (etype.value,),
        ).fetchall()
        entities = [self._deserialize(etype, r) for r in rows]
        return [
            e for e in entities
            if all(getattr(e, k) == v for k, v in filters.items())
        ]

    def delete(self, entity_type: EntityTypeLike, entity_id: int) -> bool:
        cursor = self._conn.execute(
            "DELETE FROM records WHERE entity_type = ? AND entity_id = ?",
            (_coerce_type(entity_type).value, entity_id),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def count(self, entity_type: EntityTypeLike) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) AS cnt FROM records WHERE entity_type = ?",
            (_coerce_type(entity_type).value,),
        ).fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
