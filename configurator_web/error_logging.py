"""Error logging with database persistence.

Stores rejected and failed API operations in an SQLite table so they can
be inspected after the fact.

Error types captured:
- validation_error: Rejected import/quote payloads, bad ids
- database_error: Storage failures that rolled back a transaction
- unexpected_error: Uncaught exceptions with full stack trace

Each error is logged with timestamp, request id, message, stack trace,
operation name and JSON context.
"""

import json
import logging
import sqlite3
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

__all__ = [
    "ErrorLogger",
    "log_validation_error",
    "log_database_error",
    "log_unexpected_error",
    "init_error_logging_db",
    "get_error_logger",
]

logger = logging.getLogger(__name__)


class ErrorLogger:
    """Log errors to an SQLite database."""

    def __init__(self, db_path: Optional[Union[Path, str]] = None):
        if db_path is None:
            db_path = Path(__file__).parent.parent / "data" / "errors.db"

        self.db_path = db_path
        self._ensure_table_exists()

    def _get_connection(self) -> sqlite3.Connection:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_table_exists(self) -> None:
        try:
            conn = self._get_connection()
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS error_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    request_id TEXT,
                    error_type TEXT NOT NULL,
                    error_code TEXT,
                    error_message TEXT NOT NULL,
                    stack_trace TEXT,
                    context JSON,
                    operation TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_error_timestamp ON error_log(timestamp)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_error_type ON error_log(error_type)")
            conn.commit()
            conn.close()
        except sqlite3.Error as e:
            logger.error(f"Failed to create error_log table: {e}")

    def log_error(
        self,
        error_type: str,
        error_message: str,
        request_id: Optional[str] = None,
        error_code: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        stack_trace: Optional[str] = None,
    ) -> None:
        """Log error to database."""
        try:
            if stack_trace is None:
                stack_trace = traceback.format_exc() if sys.exc_info()[0] else None

            conn = self._get_connection()
            conn.execute(
                """
                INSERT INTO error_log (
                    timestamp, request_id, error_type, error_code, error_message,
                    stack_trace, context, operation
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    datetime.now().isoformat(),
                    request_id,
                    error_type,
                    error_code,
                    error_message,
                    stack_trace,
                    json.dumps(context, default=str) if context else None,
                    operation,
                ),
            )
            conn.commit()
            conn.close()

            logger.info(f"Logged {error_type} for request {request_id}")
        except sqlite3.Error as e:
            # Never let error bookkeeping mask the original failure
            logger.error(f"Failed to log error to database: {e}")

    def get_errors(
        self,
        request_id: Optional[str] = None,
        error_type: Optional[str] = None,
        limit: int = 100,
    ) -> list:
        """Query errors, newest first."""
        query = "SELECT * FROM error_log WHERE 1=1"
        params: list = []
        if request_id:
            query += " AND request_id = ?"
            params.append(request_id)
        if error_type:
            query += " AND error_type = ?"
            params.append(error_type)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        try:
            conn = self._get_connection()
            rows = conn.execute(query, params).fetchall()
            conn.close()
        except sqlite3.Error as e:
            logger.error(f"Failed to query errors: {e}")
            return []

        errors = []
        for row in rows:
            error = dict(row)
            if error.get("context"):
                error["context"] = json.loads(error["context"])
            errors.append(error)
        return errors


# Global error logger instance
_error_logger: Optional[ErrorLogger] = None


def get_error_logger() -> ErrorLogger:
    """Get or create the error logger."""
    global _error_logger
    if _error_logger is None:
        _error_logger = ErrorLogger()
    return _error_logger


def init_error_logging_db(db_path: Optional[Union[Path, str]] = None) -> ErrorLogger:
    """Point error logging at a database (called at app creation)."""
    global _error_logger
    _error_logger = ErrorLogger(db_path)
    return _error_logger


def log_validation_error(
    error_message: str,
    request_id: Optional[str] = None,
    error_code: Optional[str] = None,
    operation: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Log a rejected request (bad payload, unknown id, ownership)."""
    get_error_logger().log_error(
        error_type="validation_error",
        error_message=error_message,
        request_id=request_id,
        error_code=error_code,
        operation=operation,
        context=context,
        stack_trace="",
    )


def log_database_error(
    error_message: str,
    request_id: Optional[str] = None,
    error_code: Optional[str] = None,
    operation: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Log a storage failure."""
    get_error_logger().log_error(
        error_type="database_error",
        error_message=error_message,
        request_id=request_id,
        error_code=error_code,
        operation=operation,
        context=context,
    )


def log_unexpected_error(
    error_message: str,
    request_id: Optional[str] = None,
    operation: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    stack_trace: Optional[str] = None,
) -> None:
    """Log an unexpected error with full stack trace."""
    get_error_logger().log_error(
        error_type="unexpected_error",
        error_message=error_message,
        request_id=request_id,
        error_code="INTERNAL_ERROR",
        operation=operation,
        context=context,
        stack_trace=stack_trace,
    )
