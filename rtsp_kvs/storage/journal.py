"""SQLite journal of the frames and errors a bridge session produced."""

from __future__ import annotations

import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterable, Optional

from pydantic import BaseModel


class FrameRecord(BaseModel):
    """Metadata of one frame accepted by the producer."""

    stream_name: str
    frame_index: int
    key_frame: bool
    decode_ts: int
    presentation_ts: int
    duration: int
    size: int
    payload: Optional[bytes] = None


class PipelineErrorRecord(BaseModel):
    """An asynchronous error reported by the pipeline bus."""

    stream_name: str
    source: str
    code: int
    message: str
    debug: Optional[str] = None


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS streams (
        stream_name TEXT PRIMARY KEY,
        stream_info TEXT NOT NULL,
        codec_private_data BLOB,
        registered_at REAL NOT NULL,
        codec_private_data_at REAL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS frames (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        stream_name TEXT NOT NULL,
        frame_index INTEGER NOT NULL,
        key_frame INTEGER NOT NULL,
        decode_ts INTEGER NOT NULL,
        presentation_ts INTEGER NOT NULL,
        duration INTEGER NOT NULL,
        size INTEGER NOT NULL,
        payload BLOB,
        recorded_at REAL NOT NULL
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS frames_by_stream ON frames (stream_name, id);
    """,
    """
    CREATE TABLE IF NOT EXISTS pipeline_errors (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        stream_name TEXT NOT NULL,
        source TEXT NOT NULL,
        code INTEGER NOT NULL,
        message TEXT NOT NULL,
        debug TEXT,
        recorded_at REAL NOT NULL
    );
    """,
)


class FrameJournal:
    """Thin wrapper around SQLite for thread-safe access and schema management."""

    def __init__(self, db_path: str, ensure_fsync: bool = True) -> None:
        self._path = Path(db_path)
        self._ensure_fsync = ensure_fsync
        self._lock = threading.RLock()
        self._conn = self._create_connection()
        self._init_schema()

    @property
    def path(self) -> Path:
        return self._path

    def _create_connection(self) -> sqlite3.Connection:
        if str(self._path) != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA synchronous = %s;" % ("FULL" if self._ensure_fsync else "NORMAL"))
        conn.execute("PRAGMA journal_mode = WAL;")
        return conn

    def _init_schema(self) -> None:
        with self._transaction() as cur:
            for stmt in SCHEMA_STATEMENTS:
                cur.execute(stmt)

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    def record_stream(self, stream_name: str, stream_info_json: str) -> None:
        """Register a stream; re-registering keeps its codec private data."""

        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO streams (stream_name, stream_info, registered_at)
                VALUES (?, ?, ?)
                ON CONFLICT(stream_name) DO UPDATE SET
                    stream_info = excluded.stream_info,
                    registered_at = excluded.registered_at
                """,
                (stream_name, stream_info_json, time.time()),
            )

    def record_codec_private_data(self, stream_name: str, data: bytes) -> None:
        with self._transaction() as cur:
            cur.execute(
                """
                UPDATE streams SET codec_private_data = ?, codec_private_data_at = ?
                WHERE stream_name = ?
                """,
                (data, time.time(), stream_name),
            )
            if cur.rowcount == 0:
                raise KeyError(f"Stream {stream_name!r} is not registered")

    def record_frame(self, record: FrameRecord) -> None:
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO frames (stream_name, frame_index, key_frame, decode_ts,
                                    presentation_ts, duration, size, payload, recorded_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.stream_name,
                    record.frame_index,
                    int(record.key_frame),
                    record.decode_ts,
                    record.presentation_ts,
                    record.duration,
                    record.size,
                    record.payload,
                    time.time(),
                ),
            )

    def record_pipeline_error(self, record: PipelineErrorRecord) -> None:
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO pipeline_errors (stream_name, source, code, message, debug, recorded_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.stream_name,
                    record.source,
                    record.code,
                    record.message,
                    record.debug,
                    time.time(),
                ),
            )

    def codec_private_data(self, stream_name: str) -> Optional[bytes]:
        with self._lock:
            row = self._conn.execute(
                "SELECT codec_private_data FROM streams WHERE stream_name = ?",
                (stream_name,),
            ).fetchone()
        if row is None or row["codec_private_data"] is None:
            return None
        return bytes(row["codec_private_data"])

    def fetch_frames(self, stream_name: str, limit: int = 100) -> Iterable[sqlite3.Row]:
        """Most recent frames first; payloads are not returned."""

        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                SELECT frame_index, key_frame, decode_ts, presentation_ts, duration, size, recorded_at
                FROM frames
                WHERE stream_name = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (stream_name, limit),
            )
            rows = cur.fetchall()
            cur.close()
        return rows

    def fetch_payload(self, stream_name: str, frame_index: int) -> Optional[bytes]:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT payload FROM frames
                WHERE stream_name = ? AND frame_index = ?
                ORDER BY id DESC
                LIMIT 1
                """,
                (stream_name, frame_index),
            ).fetchone()
        if row is None or row["payload"] is None:
            return None
        return bytes(row["payload"])

    def fetch_errors(self, stream_name: str, limit: int = 50) -> Iterable[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                SELECT source, code, message, debug, recorded_at
                FROM pipeline_errors
                WHERE stream_name = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (stream_name, limit),
            )
            rows = cur.fetchall()
            cur.close()
        return rows

    def stream_summary(self, stream_name: str) -> dict:
        with self._lock:
            stream = self._conn.execute(
                """
                SELECT registered_at, codec_private_data_at, length(codec_private_data) AS cpd_size
                FROM streams WHERE stream_name = ?
                """,
                (stream_name,),
            ).fetchone()
            counts = self._conn.execute(
                """
                SELECT COUNT(*) AS frames,
                       COALESCE(SUM(key_frame), 0) AS key_frames,
                       COALESCE(SUM(size), 0) AS bytes,
                       MAX(frame_index) AS last_index
                FROM frames WHERE stream_name = ?
                """,
                (stream_name,),
            ).fetchone()
            errors = self._conn.execute(
                "SELECT COUNT(*) AS errors FROM pipeline_errors WHERE stream_name = ?",
                (stream_name,),
            ).fetchone()
        return {
            "stream_name": stream_name,
            "registered": stream is not None,
            "registered_at": stream["registered_at"] if stream else None,
            "codec_private_data_size": stream["cpd_size"] if stream else None,
            "codec_private_data_at": stream["codec_private_data_at"] if stream else None,
            "frames": counts["frames"],
            "key_frames": counts["key_frames"],
            "bytes": counts["bytes"],
            "last_index": counts["last_index"],
            "pipeline_errors": errors["errors"],
        }

    def close(self) -> None:
        with self._lock:
            self._conn.close()


__all__ = ["FrameJournal", "FrameRecord", "PipelineErrorRecord"]
