"""
DuckDB database operations for translate-canvas-ai.

Handles the translation request queue, the processing log, and the account
tables that translated canvases are imported into.
"""

from __future__ import annotations

import json
import time
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import duckdb

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Stage(str, Enum):
    """Processing stages, used to tag log entries."""

    QUEUE = "queue"
    EXTRACT = "extract"
    GLOSSARY = "glossary"
    TRANSLATE = "translate"
    MERGE = "merge"
    VALIDATE = "validate"
    DELIVERY = "delivery"


class Status(str, Enum):
    """Translation request status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TranslationRequest:
    """Queue row."""

    request_id: str
    email: str
    source_lang: str
    target_lang: str
    canvas_payload: str
    status: Status = Status.PENDING
    account_id: str | None = None
    result_ref: str | None = None
    error: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None


def new_request_id() -> str:
    """Request id of the form TR-<epoch millis>-<6 hex chars>."""
    return f"TR-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def new_object_id() -> str:
    """24-char hex id used for accounts, canvases and node rows."""
    return uuid.uuid4().hex[:24]


class Database:
    """DuckDB database wrapper for translate-canvas-ai."""

    _SCHEMA = """
    -- Translation request queue
    CREATE TABLE IF NOT EXISTS translation_requests (
        request_id VARCHAR PRIMARY KEY,
        account_id VARCHAR,
        email VARCHAR NOT NULL,
        source_lang VARCHAR NOT NULL,
        target_lang VARCHAR NOT NULL,
        status VARCHAR NOT NULL DEFAULT 'pending',
        canvas_payload TEXT NOT NULL,
        result_ref VARCHAR,
        error TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        processed_at TIMESTAMP
    );

    -- Processing log for audit trail
    CREATE TABLE IF NOT EXISTS processing_log (
        id INTEGER PRIMARY KEY,
        run_id VARCHAR NOT NULL,
        request_id VARCHAR,
        stage VARCHAR NOT NULL,
        level VARCHAR NOT NULL,
        message TEXT NOT NULL,
        context JSON,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE SEQUENCE IF NOT EXISTS processing_log_id_seq START 1;

    -- Accounts that can receive imported canvases
    CREATE TABLE IF NOT EXISTS accounts (
        account_id VARCHAR PRIMARY KEY,
        email VARCHAR,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    -- Imported canvases, compiled later by the story platform
    CREATE TABLE IF NOT EXISTS canvases (
        canvas_id VARCHAR PRIMARY KEY,
        creator_id VARCHAR NOT NULL,
        title VARCHAR,
        canvas_language VARCHAR,
        compiler_version INTEGER,
        nodes JSON,
        connections JSON,
        settings JSON,
        needs_compilation BOOLEAN DEFAULT TRUE,
        is_compiling BOOLEAN DEFAULT FALSE,
        version INTEGER DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    -- Node metadata rows of imported canvases
    CREATE TABLE IF NOT EXISTS canvas_nodes (
        node_id VARCHAR PRIMARY KEY,
        canvas_id VARCHAR,
        node_uid VARCHAR NOT NULL,
        type VARCHAR,
        metadata JSON,
        version INTEGER DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_log_lookup ON processing_log(run_id, stage, level);
    CREATE INDEX IF NOT EXISTS idx_nodes_canvas ON canvas_nodes(canvas_id);
    """

    _REQUEST_COLUMNS = (
        "request_id, account_id, email, source_lang, target_lang, status, "
        "canvas_payload, result_ref, error, created_at, processed_at"
    )

    def __init__(self, db_path: Path | str, log_level: str = "DEBUG"):
        """
        Initialize database connection.

        Args:
            db_path: DuckDB file path, or ":memory:".
            log_level: Entries below this level are not written to the log.
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._run_id = str(uuid.uuid4())
        self.log_level = log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {log_level}. Valid options: {list(LOG_LEVELS)}")

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = duckdb.connect(self.db_path)
            self._conn.execute(self._SCHEMA)
        return self._conn

    @property
    def run_id(self) -> str:
        return self._run_id

    def new_run(self) -> str:
        """Start a new run and return its ID."""
        self._run_id = str(uuid.uuid4())
        return self._run_id

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Context manager for transactions."""
        try:
            self.conn.begin()
            yield self.conn
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    # ==================== Requests ====================

    def add_request(
        self,
        *,
        email: str,
        source_lang: str,
        target_lang: str,
        canvas_payload: str,
        account_id: str | None = None,
        request_id: str | None = None,
    ) -> str:
        """Queue a translation request and return its id."""
        request_id = request_id or new_request_id()
        self.conn.execute(
            """
            INSERT INTO translation_requests
            (request_id, account_id, email, source_lang, target_lang, status, canvas_payload)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                request_id,
                account_id,
                email,
                source_lang,
                target_lang,
                Status.PENDING.value,
                canvas_payload,
            ],
        )
        return request_id

    def fetch_pending(self, limit: int = 10) -> list[TranslationRequest]:
        """Oldest pending requests first."""
        rows = self.conn.execute(
            f"""
            SELECT {self._REQUEST_COLUMNS} FROM translation_requests
            WHERE status = ?
            ORDER BY created_at, request_id
            LIMIT ?
            """,
            [Status.PENDING.value, limit],
        ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def claim_request(self, request_id: str) -> bool:
        """
        Move a request from pending to processing.

        Returns:
            False if another worker already claimed it.
        """
        row = self.conn.execute(
            """
            UPDATE translation_requests
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE request_id = ? AND status = ?
            RETURNING request_id
            """,
            [Status.PROCESSING.value, request_id, Status.PENDING.value],
        ).fetchone()
        return row is not None

    def mark_status(
        self,
        request_id: str,
        status: Status,
        result_ref: str | None = None,
        error: str | None = None,
    ) -> None:
        """Update a request's status; terminal states also stamp processed_at."""
        terminal = status in (Status.COMPLETED, Status.FAILED)
        self.conn.execute(
            f"""
            UPDATE translation_requests
            SET status = ?,
                result_ref = COALESCE(?, result_ref),
                error = ?,
                updated_at = CURRENT_TIMESTAMP
                {", processed_at = CURRENT_TIMESTAMP" if terminal else ""}
            WHERE request_id = ?
            """,
            [status.value, result_ref, error, request_id],
        )

    def get_request(self, request_id: str) -> TranslationRequest | None:
        row = self.conn.execute(
            f"SELECT {self._REQUEST_COLUMNS} FROM translation_requests WHERE request_id = ?",
            [request_id],
        ).fetchone()
        return self._row_to_request(row) if row else None

    def get_requests(self, status: Status | None = None, limit: int = 100) -> list[TranslationRequest]:
        """Requests, newest first, optionally filtered by status."""
        if status:
            rows = self.conn.execute(
                f"""
                SELECT {self._REQUEST_COLUMNS} FROM translation_requests
                WHERE status = ? ORDER BY created_at DESC LIMIT ?
                """,
                [status.value, limit],
            ).fetchall()
        else:
            rows = self.conn.execute(
                f"""
                SELECT {self._REQUEST_COLUMNS} FROM translation_requests
                ORDER BY created_at DESC LIMIT ?
                """,
                [limit],
            ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def _row_to_request(self, row: tuple) -> TranslationRequest:
        return TranslationRequest(
            request_id=row[0],
            account_id=row[1],
            email=row[2],
            source_lang=row[3],
            target_lang=row[4],
            status=Status(row[5]),
            canvas_payload=row[6],
            result_ref=row[7],
            error=row[8],
            created_at=row[9],
            processed_at=row[10],
        )

    # ==================== Accounts ====================

    def add_account(self, email: str | None = None, account_id: str | None = None) -> str:
        account_id = account_id or new_object_id()
        self.conn.execute(
            "INSERT INTO accounts (account_id, email) VALUES (?, ?)",
            [account_id, email],
        )
        return account_id

    def account_exists(self, account_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM accounts WHERE account_id = ?", [account_id]
        ).fetchone()
        return row is not None

    def insert_canvas_node(
        self,
        node_uid: str,
        node_type: str | None,
        metadata: dict[str, Any],
        canvas_id: str,
    ) -> str:
        """Store one node metadata row and return its id."""
        node_id = new_object_id()
        self.conn.execute(
            """
            INSERT INTO canvas_nodes (node_id, canvas_id, node_uid, type, metadata)
            VALUES (?, ?, ?, ?, ?)
            """,
            [node_id, canvas_id, node_uid, node_type, json.dumps(metadata, ensure_ascii=False)],
        )
        return node_id

    def insert_canvas(
        self,
        *,
        canvas_id: str,
        creator_id: str,
        title: str,
        canvas_language: str,
        compiler_version: int,
        nodes: list[dict[str, Any]],
        connections: list[Any],
        settings: dict[str, Any],
    ) -> str:
        """Store a canvas row flagged for compilation."""
        self.conn.execute(
            """
            INSERT INTO canvases
            (canvas_id, creator_id, title, canvas_language, compiler_version,
             nodes, connections, settings, needs_compilation, is_compiling)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, TRUE, FALSE)
            """,
            [
                canvas_id,
                creator_id,
                title,
                canvas_language,
                compiler_version,
                json.dumps(nodes, ensure_ascii=False),
                json.dumps(connections, ensure_ascii=False),
                json.dumps(settings, ensure_ascii=False),
            ],
        )
        return canvas_id

    def get_canvas(self, canvas_id: str) -> dict[str, Any] | None:
        row = self.conn.execute(
            """
            SELECT canvas_id, creator_id, title, canvas_language, compiler_version,
                   nodes, connections, settings, needs_compilation
            FROM canvases WHERE canvas_id = ?
            """,
            [canvas_id],
        ).fetchone()
        if not row:
            return None
        return {
            "canvas_id": row[0],
            "creator_id": row[1],
            "title": row[2],
            "canvas_language": row[3],
            "compiler_version": row[4],
            "nodes": _load_json(row[5]) or [],
            "connections": _load_json(row[6]) or [],
            "settings": _load_json(row[7]) or {},
            "needs_compilation": row[8],
        }

    def get_canvas_nodes(self, canvas_id: str) -> list[dict[str, Any]]:
        rows = self.conn.execute(
            """
            SELECT node_id, node_uid, type, metadata FROM canvas_nodes
            WHERE canvas_id = ? ORDER BY node_uid
            """,
            [canvas_id],
        ).fetchall()
        return [
            {"node_id": row[0], "node_uid": row[1], "type": row[2], "metadata": _load_json(row[3])}
            for row in rows
        ]

    # ==================== Logging ====================

    def log(
        self,
        level: str,
        stage: str,
        message: str,
        request_id: str | None = None,
        context: dict | None = None,
    ) -> None:
        """Insert a log entry unless its level is below the configured minimum."""
        level = level.upper()
        if level in LOG_LEVELS and LOG_LEVELS.index(level) < LOG_LEVELS.index(self.log_level):
            return

        context_json = json.dumps(context, ensure_ascii=False, default=str) if context else None
        self.conn.execute(
            """
            INSERT INTO processing_log
            (id, run_id, request_id, stage, level, message, context)
            VALUES (nextval('processing_log_id_seq'), ?, ?, ?, ?, ?, ?)
            """,
            [self._run_id, request_id, stage, level, message, context_json],
        )

    def get_logs(
        self,
        run_id: str | None = None,
        request_id: str | None = None,
        level: str | None = None,
        stage: str | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Log entries, newest first."""
        conditions = []
        params: list[Any] = []

        if run_id:
            conditions.append("run_id = ?")
            params.append(run_id)
        if request_id:
            conditions.append("request_id = ?")
            params.append(request_id)
        if level:
            conditions.append("level = ?")
            params.append(level.upper())
        if stage:
            conditions.append("stage = ?")
            params.append(stage)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self.conn.execute(
            f"""
            SELECT run_id, request_id, stage, level, message, context, created_at
            FROM processing_log
            {where_clause}
            ORDER BY id DESC
            LIMIT ?
            """,
            [*params, limit],
        ).fetchall()

        return [
            {
                "run_id": row[0],
                "request_id": row[1],
                "stage": row[2],
                "level": row[3],
                "message": row[4],
                "context": _load_json(row[5]),
                "created_at": row[6],
            }
            for row in rows
        ]

    # ==================== Statistics ====================

    def get_statistics(self) -> dict[str, int]:
        """Queue counts for the CLI."""
        counts = self.conn.execute(
            "SELECT status, COUNT(*) FROM translation_requests GROUP BY status"
        ).fetchall()
        status_map = {row[0]: row[1] for row in counts}

        errors = self.conn.execute(
            "SELECT COUNT(*) FROM processing_log WHERE level = 'ERROR'"
        ).fetchone()
        imported = self.conn.execute("SELECT COUNT(*) FROM canvases").fetchone()

        return {
            "total_requests": sum(status_map.values()),
            **{f"{status.value}_requests": status_map.get(status.value, 0) for status in Status},
            "imported_canvases": imported[0] if imported else 0,
            "errors": errors[0] if errors else 0,
        }


def _load_json(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value)
    return value
