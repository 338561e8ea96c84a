# ============================================================================
# src/bloodwork_ingestion/core/result_store.py
# ============================================================================
"""
Result Store

Persists normalized lab results and processed-file markers to SQLite.
Raw sqlite3, one connection per operation. Every public method is async
and runs its sqlite work in the default executor.

Tables:
- lab_results: one row per NormalizedLabResult, partitioned by owner_id
- processed_files: one marker per (source_file_hash, owner_id)
"""

import asyncio
import functools
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .context.enums import ResultStatus
from .context.lab_result import NormalizedLabResult, ProcessedFileMarker
from ..utils.exceptions import PersistenceError

logger = logging.getLogger(__name__)

_RESULT_COLUMNS = (
    "id", "owner_id", "source_file_hash", "source_file_name", "source_file_type",
    "test_name", "original_test_name", "category", "result_value",
    "reference_min", "reference_max", "unit", "status", "test_date",
    "standardized", "confidence_score", "description", "processed_by_ai",
    "created_at",
)


def _run_in_executor(func):
    """Run a blocking store method in the default executor."""
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, self, *args, **kwargs))
    return wrapper


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ResultStore:
    """
    SQLite-backed store for lab results and processed-file markers.

    Args:
        db_path: Database file (created with its parent directory if missing)
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------
    def _init_database(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("""
                CREATE TABLE IF NOT EXISTS lab_results (
                    id                  TEXT PRIMARY KEY,
                    owner_id            TEXT NOT NULL,
                    source_file_hash    TEXT NOT NULL,
                    source_file_name    TEXT,
                    source_file_type    TEXT NOT NULL DEFAULT 'pdf',
                    test_name           TEXT NOT NULL,
                    original_test_name  TEXT,
                    category            TEXT NOT NULL,
                    result_value        REAL NOT NULL,
                    reference_min       REAL,
                    reference_max       REAL,
                    unit                TEXT,
                    status              TEXT NOT NULL,
                    test_date           TEXT,
                    standardized        INTEGER NOT NULL DEFAULT 0,
                    confidence_score    INTEGER NOT NULL DEFAULT 0,
                    description         TEXT,
                    processed_by_ai     INTEGER NOT NULL DEFAULT 1,
                    created_at          TEXT NOT NULL
                )
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_lab_results_owner_hash
                ON lab_results (owner_id, source_file_hash)
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_lab_results_owner_date
                ON lab_results (owner_id, test_date)
            """)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS processed_files (
                    source_file_hash    TEXT NOT NULL,
                    owner_id            TEXT NOT NULL,
                    file_name           TEXT NOT NULL,
                    processed_at        TEXT NOT NULL,
                    PRIMARY KEY (source_file_hash, owner_id)
                )
            """)
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError("Could not initialize result store", details=str(e)) from e
        finally:
            conn.close()
        logger.info(f"Result store initialized: {self.db_path}")

    # ------------------------------------------------------------------
    # Lab results
    # ------------------------------------------------------------------
    @_run_in_executor
    def insert_results(self, results: Sequence[NormalizedLabResult]) -> int:
        """
        Insert a batch in one transaction; either every row lands or none do.

        Raises:
            PersistenceError
        """
        if not results:
            return 0

        rows = [self._to_row(r) for r in results]
        placeholders = ", ".join("?" for _ in _RESULT_COLUMNS)
        conn = self._connect()
        try:
            with conn:
                conn.executemany(
                    f"INSERT INTO lab_results ({', '.join(_RESULT_COLUMNS)}) VALUES ({placeholders})",
                    rows,
                )
        except sqlite3.Error as e:
            raise PersistenceError("Failed to save test results", details=str(e)) from e
        finally:
            conn.close()

        logger.info(f"Saved {len(rows)} lab result(s) for owner {results[0].owner_id}")
        return len(rows)

    @_run_in_executor
    def count_results(self, source_file_hash: str, owner_id: str) -> int:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT COUNT(*) FROM lab_results WHERE source_file_hash = ? AND owner_id = ?",
                (source_file_hash, owner_id),
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError("Failed to query test results", details=str(e)) from e
        finally:
            conn.close()
        return row[0]

    @_run_in_executor
    def list_results(self, owner_id: str, test_date: Optional[str] = None) -> List[NormalizedLabResult]:
        """An owner's results, newest test date first, optionally for one date."""
        query = "SELECT * FROM lab_results WHERE owner_id = ?"
        params: list = [owner_id]
        if test_date:
            query += " AND test_date = ?"
            params.append(test_date)
        query += " ORDER BY test_date DESC, created_at ASC"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError("Failed to query test results", details=str(e)) from e
        finally:
            conn.close()
        return [self._from_row(row) for row in rows]

    @_run_in_executor
    def delete_result(self, result_id: str, owner_id: str) -> bool:
        """Delete one result owned by ``owner_id``. Returns True if a row was removed."""
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute(
                    "DELETE FROM lab_results WHERE id = ? AND owner_id = ?",
                    (result_id, owner_id),
                )
        except sqlite3.Error as e:
            raise PersistenceError("Failed to delete test result", details=str(e)) from e
        finally:
            conn.close()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Processed-file markers
    # ------------------------------------------------------------------
    @_run_in_executor
    def get_marker(self, source_file_hash: str, owner_id: str) -> Optional[ProcessedFileMarker]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM processed_files WHERE source_file_hash = ? AND owner_id = ?",
                (source_file_hash, owner_id),
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError("Failed to query processed files", details=str(e)) from e
        finally:
            conn.close()

        if row is None:
            return None
        return ProcessedFileMarker(
            source_file_hash=row["source_file_hash"],
            owner_id=row["owner_id"],
            file_name=row["file_name"],
            processed_at=_parse_timestamp(row["processed_at"]),
        )

    @_run_in_executor
    def put_marker(self, marker: ProcessedFileMarker) -> None:
        """Insert or replace the marker for (hash, owner)."""
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO processed_files
                        (source_file_hash, owner_id, file_name, processed_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        marker.source_file_hash,
                        marker.owner_id,
                        marker.file_name,
                        marker.processed_at.isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            raise PersistenceError("Failed to record processed file", details=str(e)) from e
        finally:
            conn.close()

    @_run_in_executor
    def delete_marker(self, source_file_hash: str, owner_id: str) -> bool:
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute(
                    "DELETE FROM processed_files WHERE source_file_hash = ? AND owner_id = ?",
                    (source_file_hash, owner_id),
                )
        except sqlite3.Error as e:
            raise PersistenceError("Failed to delete processed file record", details=str(e)) from e
        finally:
            conn.close()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------
    @staticmethod
    def _to_row(result: NormalizedLabResult) -> tuple:
        return (
            result.id,
            result.owner_id,
            result.source_file_hash,
            result.source_file_name,
            result.source_file_type,
            result.test_name,
            result.original_test_name,
            result.category,
            result.result_value,
            result.reference_min,
            result.reference_max,
            result.unit,
            result.status.value,
            result.test_date,
            1 if result.standardized else 0,
            result.confidence_score,
            result.description,
            1 if result.processed_by_ai else 0,
            result.created_at.isoformat(),
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> NormalizedLabResult:
        data: Dict[str, Any] = dict(row)
        return NormalizedLabResult(
            id=data["id"],
            owner_id=data["owner_id"],
            source_file_hash=data["source_file_hash"],
            source_file_name=data["source_file_name"],
            source_file_type=data["source_file_type"],
            test_name=data["test_name"],
            original_test_name=data["original_test_name"],
            category=data["category"],
            result_value=data["result_value"],
            reference_min=data["reference_min"],
            reference_max=data["reference_max"],
            unit=data["unit"],
            status=ResultStatus(data["status"]),
            test_date=data["test_date"],
            standardized=bool(data["standardized"]),
            confidence_score=data["confidence_score"],
            description=data["description"],
            processed_by_ai=bool(data["processed_by_ai"]),
            created_at=_parse_timestamp(data["created_at"]),
        )
