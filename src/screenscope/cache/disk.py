"""Persistent cache store backed by SQLite."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from screenscope.errors.exceptions import StorageError
from screenscope.types import CacheEntry, ChecksumRecord

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path.home() / ".screenscope" / "cache.db"


class SqliteCacheStore:
    """SQLite-backed store keyed by ``(entity_id, combined_checksum)``.

    Every write is a single transaction, so readers see either the previous
    entry or the complete new one.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or _DEFAULT_DB_PATH
        self._lock = threading.Lock()
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._create_table()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open cache database {self._db_path}: {e}") from e

    @property
    def db_path(self) -> Path:
        return self._db_path

    def get(self, entity_id: str) -> CacheEntry | None:
        row = self._fetchone(
            """SELECT * FROM cache_entries WHERE entity_id = ?
               ORDER BY created_at DESC, rowid DESC LIMIT 1""",
            (entity_id,),
        )
        if row is None:
            return None
        return self._row_to_entry(row)

    def put(self, entry: CacheEntry) -> CacheEntry:
        self._execute(
            """INSERT OR REPLACE INTO cache_entries
               (id, entity_id, combined_checksum, item_checksums, result,
                created_at, last_accessed_at, access_count)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                entry.id,
                entry.entity_id,
                entry.combined_checksum,
                json.dumps([r.model_dump(mode="json") for r in entry.item_checksums]),
                json.dumps(entry.result, default=str),
                entry.created_at.isoformat(),
                entry.last_accessed_at.isoformat(),
                entry.access_count,
            ),
        )
        return entry

    def touch(self, entry: CacheEntry, now: datetime | None = None) -> CacheEntry:
        updated = entry.touched(now)
        self._execute(
            """UPDATE cache_entries SET last_accessed_at = ?, access_count = access_count + 1
               WHERE entity_id = ? AND combined_checksum = ?""",
            (updated.last_accessed_at.isoformat(), entry.entity_id, entry.combined_checksum),
        )
        return updated

    def invalidate(self, entity_id: str) -> int:
        return self._execute("DELETE FROM cache_entries WHERE entity_id = ?", (entity_id,))

    def clear(self) -> None:
        self._execute("DELETE FROM cache_entries", ())

    @property
    def entry_count(self) -> int:
        row = self._fetchone("SELECT COUNT(*) FROM cache_entries", ())
        return row[0] if row else 0

    @property
    def size_mb(self) -> float:
        row = self._fetchone(
            "SELECT COALESCE(SUM(LENGTH(result) + LENGTH(item_checksums)), 0) FROM cache_entries",
            (),
        )
        return (row[0] if row else 0) / (1024 * 1024)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _create_table(self) -> None:
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    id TEXT NOT NULL,
                    entity_id TEXT NOT NULL,
                    combined_checksum TEXT NOT NULL,
                    item_checksums TEXT NOT NULL,
                    result TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    last_accessed_at TEXT NOT NULL,
                    access_count INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (entity_id, combined_checksum)
                )
            """)
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_cache_entity ON cache_entries (entity_id, created_at)"
            )

    def _execute(self, sql: str, params: tuple) -> int:
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(sql, params)
                return cursor.rowcount
        except sqlite3.Error as e:
            raise StorageError(f"Cache write failed: {e}") from e

    def _fetchone(self, sql: str, params: tuple) -> sqlite3.Row | None:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Cache read failed: {e}") from e

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> CacheEntry:
        try:
            checksums = [ChecksumRecord(**r) for r in json.loads(row["item_checksums"])]
            result = json.loads(row["result"])
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            raise StorageError(f"Corrupt cache entry {row['id']}: {e}") from e

        return CacheEntry(
            id=row["id"],
            entity_id=row["entity_id"],
            combined_checksum=row["combined_checksum"],
            item_checksums=checksums,
            result=result,
            created_at=datetime.fromisoformat(row["created_at"]),
            last_accessed_at=datetime.fromisoformat(row["last_accessed_at"]),
            access_count=row["access_count"],
        )
