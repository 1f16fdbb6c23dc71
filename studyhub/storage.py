"""Concrete entity stores backed by process memory and SQLite."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .domain import EntityType
from .models import Entity, model_for
from .repositories import EntityStore, PatchBuilder, Payload, utcnow


logger = logging.getLogger(__name__)

TABLE_NAMES = {
    EntityType.USER: "users",
    EntityType.DOCUMENT: "documents",
    EntityType.NOTE: "notes",
    EntityType.FLASHCARD_SET: "flashcard_sets",
    EntityType.FLASHCARD: "flashcards",
    EntityType.QUIZ: "quizzes",
    EntityType.QUIZ_ATTEMPT: "quiz_attempts",
    EntityType.CHAT_MESSAGE: "chat_messages",
}


class InMemoryEntityStore(EntityStore):
    """Volatile store; everything is lost when the process exits."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        super().__init__(clock)
        self._lock = threading.Lock()
        self._tables: Dict[EntityType, Dict[str, Entity]] = {
            entity_type: {} for entity_type in EntityType
        }

    def create(self, entity_type: EntityType, payload: Payload) -> Entity:
        entity_type = EntityType(entity_type)
        record = self._new_record(entity_type, payload)
        with self._lock:
            self._tables[entity_type][record.id] = record
        logger.debug("Created %s %s", entity_type.value, record.id)
        return record.model_copy(deep=True)

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[Entity]:
        with self._lock:
            record = self._tables[EntityType(entity_type)].get(entity_id)
        return record.model_copy(deep=True) if record is not None else None

    def update_with(
        self, entity_type: EntityType, entity_id: str, build_patch: PatchBuilder
    ) -> Optional[Entity]:
        table = self._tables[EntityType(entity_type)]
        with self._lock:
            current = table.get(entity_id)
            if current is None:
                return None
            merged = self._merge(current, build_patch(current.model_copy(deep=True)))
            table[entity_id] = merged
        return merged.model_copy(deep=True)

    def delete(self, entity_type: EntityType, entity_id: str) -> bool:
        with self._lock:
            removed = self._tables[EntityType(entity_type)].pop(entity_id, None)
        return removed is not None

    def list_by(self, entity_type: EntityType, field: str, value: Any) -> List[Entity]:
        entity_type = EntityType(entity_type)
        self._check_field(entity_type, field)
        with self._lock:
            records = list(self._tables[entity_type].values())
        return [
            record.model_copy(deep=True)
            for record in records
            if getattr(record, field) == value
        ]

    def count(self, entity_type: EntityType) -> int:
        with self._lock:
            return len(self._tables[EntityType(entity_type)])


class SqliteEntityStore(EntityStore):
    """Stores every entity type in its own SQLite table.

    Each table keeps the record as JSON next to one indexed column per
    filterable field, so ``list_by`` never scans payloads.
    """

    def __init__(self, db_path: Path, clock: Callable[[], datetime] = utcnow) -> None:
        super().__init__(clock)
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialise_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _table(entity_type: EntityType) -> str:
        return TABLE_NAMES[EntityType(entity_type)]

    def _initialise_schema(self) -> None:
        statements = []
        for entity_type in EntityType:
            table = self._table(entity_type)
            index_fields = model_for(entity_type).index_fields
            columns = "".join(f"    {name} TEXT,\n" for name in index_fields)
            statements.append(
                f"CREATE TABLE IF NOT EXISTS {table} (\n"
                f"    id TEXT PRIMARY KEY,\n{columns}"
                f"    payload_json TEXT NOT NULL\n);"
            )
            for name in index_fields:
                statements.append(
                    f"CREATE INDEX IF NOT EXISTS idx_{table}_{name} ON {table} ({name});"
                )
        with self._lock:
            cursor = self._conn.cursor()
            cursor.executescript("\n".join(statements))
            self._conn.commit()
        logger.info("SQLite store ready at %s", self._db_path)

    def _row_values(self, record: Entity) -> List[Any]:
        values: List[Any] = [record.id]
        values.extend(getattr(record, name) for name in type(record).index_fields)
        values.append(record.model_dump_json())
        return values

    @staticmethod
    def _load(entity_type: EntityType, row: sqlite3.Row) -> Entity:
        return model_for(entity_type).model_validate(json.loads(row["payload_json"]))

    def _write(self, entity_type: EntityType, record: Entity) -> None:
        table = self._table(entity_type)
        columns = ("id",) + type(record).index_fields + ("payload_json",)
        placeholders = ", ".join("?" for _ in columns)
        self._conn.execute(
            f"INSERT OR REPLACE INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            self._row_values(record),
        )

    def create(self, entity_type: EntityType, payload: Payload) -> Entity:
        entity_type = EntityType(entity_type)
        record = self._new_record(entity_type, payload)
        with self._lock:
            self._write(entity_type, record)
            self._conn.commit()
        logger.debug("Created %s %s", entity_type.value, record.id)
        return record

    def _fetch(self, entity_type: EntityType, entity_id: str) -> Optional[Entity]:
        row = self._conn.execute(
            f"SELECT payload_json FROM {self._table(entity_type)} WHERE id = ?",
            (entity_id,),
        ).fetchone()
        if not row:
            return None
        return self._load(entity_type, row)

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[Entity]:
        with self._lock:
            return self._fetch(EntityType(entity_type), entity_id)

    def update_with(
        self, entity_type: EntityType, entity_id: str, build_patch: PatchBuilder
    ) -> Optional[Entity]:
        entity_type = EntityType(entity_type)
        with self._lock:
            current = self._fetch(entity_type, entity_id)
            if current is None:
                return None
            merged = self._merge(current, build_patch(current))
            self._write(entity_type, merged)
            self._conn.commit()
        return merged

    def delete(self, entity_type: EntityType, entity_id: str) -> bool:
        with self._lock:
            cursor = self._conn.execute(
                f"DELETE FROM {self._table(entity_type)} WHERE id = ?", (entity_id,)
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def list_by(self, entity_type: EntityType, field: str, value: Any) -> List[Entity]:
        entity_type = EntityType(entity_type)
        self._check_field(entity_type, field)
        table = self._table(entity_type)
        with self._lock:
            if value is None:
                rows = self._conn.execute(
                    f"SELECT payload_json FROM {table} WHERE {field} IS NULL ORDER BY rowid"
                ).fetchall()
            else:
                rows = self._conn.execute(
                    f"SELECT payload_json FROM {table} WHERE {field} = ? ORDER BY rowid",
                    (value,),
                ).fetchall()
        return [self._load(entity_type, row) for row in rows]

    def count(self, entity_type: EntityType) -> int:
        with self._lock:
            row = self._conn.execute(
                f"SELECT COUNT(*) FROM {self._table(EntityType(entity_type))}"
            ).fetchone()
        return row[0]


__all__ = ["InMemoryEntityStore", "SqliteEntityStore"]
