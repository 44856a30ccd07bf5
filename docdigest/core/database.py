"""SQLite summary store: one row per document path, upserted after processing."""

import atexit
import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from docdigest.core.errors import PersistenceError

logger = logging.getLogger(__name__)

# ── Schema DDL ───────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    path            TEXT PRIMARY KEY,
    size_bytes      INTEGER,
    summary         TEXT,
    keywords        TEXT NOT NULL DEFAULT '[]',  -- JSON array
    processed       INTEGER NOT NULL DEFAULT 0 CHECK (processed IN (0, 1)),
    processed_at    TEXT,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_documents_processed ON documents(processed);
"""


# ── Record Model ─────────────────────────────────────────────────────


class DocumentRecord(BaseModel):
    """A stored document row."""

    path: str
    size_bytes: int | None = None
    summary: str | None = None
    keywords: list[str] = Field(default_factory=list)
    processed: bool = False
    processed_at: datetime | None = None
    created_at: datetime


# ── SummaryDatabase ──────────────────────────────────────────────────


class SummaryDatabase:
    """Thread-safe SQLite store for document summaries and keywords."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open database {self.db_path}: {exc}") from exc
        logger.info("Connected to summary database %s", self.db_path)

    # ── Writes ───────────────────────────────────────────────

    def store_initial_metadata(self, path: str, size_bytes: int) -> None:
        """Register a document before processing. Existing rows keep their results."""
        self._write(
            """INSERT INTO documents (path, size_bytes, processed, created_at)
               VALUES (?, ?, 0, ?)
               ON CONFLICT(path) DO UPDATE SET size_bytes = excluded.size_bytes""",
            (path, size_bytes, _now()),
        )

    def upsert_summary(self, path: str, summary: str, keywords: list[str]) -> None:
        """Insert or update the summary and keywords for *path*."""
        now = _now()
        self._write(
            """INSERT INTO documents
               (path, summary, keywords, processed, processed_at, created_at)
               VALUES (?, ?, ?, 1, ?, ?)
               ON CONFLICT(path) DO UPDATE SET
                   summary = excluded.summary,
                   keywords = excluded.keywords,
                   processed = 1,
                   processed_at = excluded.processed_at""",
            (path, summary, json.dumps(keywords), now, now),
        )

    # ── Reads ────────────────────────────────────────────────

    def get_document(self, path: str) -> DocumentRecord | None:
        """Return the stored row for *path*, or None."""
        rows = self._read("SELECT * FROM documents WHERE path = ?", (path,))
        return _to_record(rows[0]) if rows else None

    def get_documents(self, processed: bool | None = None) -> list[DocumentRecord]:
        """All rows, optionally filtered by processed flag."""
        if processed is None:
            rows = self._read("SELECT * FROM documents ORDER BY path", ())
        else:
            rows = self._read(
                "SELECT * FROM documents WHERE processed = ? ORDER BY path",
                (int(processed),),
            )
        return [_to_record(r) for r in rows]

    def get_stats(self) -> dict:
        """Counts of total, processed and pending documents."""
        rows = self._read(
            "SELECT processed, COUNT(*) AS cnt FROM documents GROUP BY processed", ()
        )
        counts = {bool(r["processed"]): r["cnt"] for r in rows}
        processed = counts.get(True, 0)
        pending = counts.get(False, 0)
        return {"total": processed + pending, "processed": processed, "pending": pending}

    # ── Cleanup ──────────────────────────────────────────────

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ── Internals ────────────────────────────────────────────

    def _write(self, sql: str, params: tuple) -> None:
        with self._lock:
            try:
                with self._conn:  # commit, or roll back on error
                    self._conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise PersistenceError(f"Write failed: {exc}") from exc

    def _read(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Read failed: {exc}") from exc


# ── Connection Registry ──────────────────────────────────────────────


class ConnectionRegistry:
    """Lazily opens one SummaryDatabase and hands the same handle to every caller."""

    def __init__(self) -> None:
        self._db: SummaryDatabase | None = None
        self._lock = threading.Lock()

    def acquire(self, db_path: str | Path) -> SummaryDatabase:
        """Return the open handle, connecting on first use."""
        with self._lock:
            if self._db is None:
                self._db = SummaryDatabase(db_path)
            elif self._db.db_path != Path(db_path):
                logger.warning(
                    "Database already open at %s; ignoring request for %s",
                    self._db.db_path,
                    db_path,
                )
            return self._db

    def release(self) -> None:
        """Close the handle if one is open. Safe to call repeatedly."""
        with self._lock:
            if self._db is not None:
                self._db.close()
                logger.info("Closed summary database %s", self._db.db_path)
                self._db = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    @contextmanager
    def session(self, db_path: str | Path) -> Iterator[SummaryDatabase]:
        """Scoped access to the shared handle. The handle stays open afterwards."""
        yield self.acquire(db_path)


registry = ConnectionRegistry()
atexit.register(registry.release)


# ── Helpers ──────────────────────────────────────────────────────────


def _to_record(row: sqlite3.Row) -> DocumentRecord:
    data = dict(row)
    data["keywords"] = json.loads(data["keywords"] or "[]")
    data["processed"] = bool(data["processed"])
    return DocumentRecord.model_validate(data)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
