"""
Database Module - SQLite-based storage for chatbot rules
========================================================

This module provides the row-level operations behind the rule store:
- Schema creation and migration
- Thread-local connections with transactional writes
- Chatbot rule rows (keywords kept as a JSON array)
- Store statistics

Validation and conversion to :class:`rules.engine.Rule` live in
``rules.store``; this layer only speaks rows and dictionaries.
"""

import sqlite3
import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any
from contextlib import contextmanager

from .exceptions import ChatbotError, DatabaseError
from .logging import get_logger

logger = get_logger("core.database")

SCHEMA_VERSION = 2


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """
    SQLite database manager for the chatbot rule store.

    Each thread gets its own connection; writes go through
    :meth:`transaction` so they commit or roll back as a unit.

    Attributes:
        db_path (str): Path to SQLite database file
        timeout (float): Seconds to wait on a locked database
    """

    def __init__(self, db_path: str, timeout: float = 30.0):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
            timeout: Lock wait timeout in seconds

        Raises:
            DatabaseError: If database cannot be initialized
        """
        self.db_path = db_path
        self.timeout = timeout
        self._local = threading.local()

        try:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DatabaseError(f"Cannot create database directory: {e}", {"path": db_path})

        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get thread-local database connection.

        Returns:
            sqlite3.Connection: Database connection for current thread
        """
        if getattr(self._local, "connection", None) is None:
            connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=self.timeout
            )
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA journal_mode = WAL")
            self._local.connection = connection
        return self._local.connection

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions.

        Provides automatic commit on success and rollback on error.
        Application errors raised inside the block are re-raised as-is;
        anything else is wrapped in :class:`DatabaseError`.

        Yields:
            sqlite3.Connection: Database connection

        Example:
            with db.transaction() as conn:
                conn.execute("DELETE FROM chatbot_rules WHERE id = ?", (7,))
        """
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to open database: {e}", {"path": self.db_path})

        try:
            yield conn
            conn.commit()
        except ChatbotError:
            conn.rollback()
            raise
        except Exception as e:
            conn.rollback()
            raise DatabaseError(f"Transaction failed: {e}")

    def _init_schema(self) -> None:
        """
        Initialize database schema.

        Raises:
            DatabaseError: If schema creation fails
        """
        schema_sql = """
        -- Chatbot rules: keyword set -> canned response, lower priority first
        CREATE TABLE IF NOT EXISTS chatbot_rules (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            keywords TEXT NOT NULL,
            response TEXT NOT NULL,
            priority INTEGER NOT NULL DEFAULT 10,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_chatbot_rules_priority
            ON chatbot_rules(priority, id);
        """

        try:
            with self.transaction() as conn:
                conn.executescript(schema_sql)
            self._run_migrations()
        except (sqlite3.Error, DatabaseError) as e:
            raise DatabaseError(f"Failed to initialize database schema: {e}", {"path": self.db_path})

    def _run_migrations(self) -> None:
        """Bring databases created by older releases up to date."""
        with self.transaction() as conn:
            version = conn.execute("PRAGMA user_version").fetchone()[0]

            if version < 2:
                columns = [
                    row["name"]
                    for row in conn.execute("PRAGMA table_info(chatbot_rules)").fetchall()
                ]
                if "updated_at" not in columns:
                    logger.info("Migrating: adding 'updated_at' column to chatbot_rules")
                    conn.execute("ALTER TABLE chatbot_rules ADD COLUMN updated_at TEXT")
                    conn.execute("UPDATE chatbot_rules SET updated_at = created_at")

            if version != SCHEMA_VERSION:
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    # === Chatbot Rule Operations ===

    def insert_rule(self, keywords: List[str], response: str, priority: int) -> Dict[str, Any]:
        """
        Insert a chatbot rule row.

        Args:
            keywords: Normalized keyword list
            response: Response text
            priority: Evaluation priority (lower first)

        Returns:
            The stored row as a dictionary
        """
        now = _utcnow()
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO chatbot_rules (keywords, response, priority, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (json.dumps(keywords), response, priority, now, now)
                )
                row = conn.execute(
                    "SELECT * FROM chatbot_rules WHERE id = ?", (cursor.lastrowid,)
                ).fetchone()
                return dict(row)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to add chatbot rule: {e}")

    def get_rule_row(self, rule_id: int) -> Optional[Dict[str, Any]]:
        """Get a single rule row by id, or None."""
        try:
            with self.transaction() as conn:
                row = conn.execute(
                    "SELECT * FROM chatbot_rules WHERE id = ?", (rule_id,)
                ).fetchone()
                return dict(row) if row else None
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get chatbot rule {rule_id}: {e}")

    def list_rule_rows(self, by_priority: bool = False) -> List[Dict[str, Any]]:
        """
        Retrieve all rule rows.

        Args:
            by_priority: Order by priority then creation; otherwise
                creation order only (oldest first)

        Returns:
            List of row dictionaries
        """
        order = "priority ASC, id ASC" if by_priority else "id ASC"
        try:
            with self.transaction() as conn:
                cursor = conn.execute(f"SELECT * FROM chatbot_rules ORDER BY {order}")
                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to list chatbot rules: {e}")

    def update_rule_row(self, rule_id: int, **fields: Any) -> Optional[Dict[str, Any]]:
        """
        Update columns of a rule row.

        Only ``keywords``, ``response`` and ``priority`` may be changed.

        Returns:
            The updated row, or None if the id does not exist
        """
        allowed = {"keywords", "response", "priority"}
        unknown = set(fields) - allowed
        if unknown:
            raise DatabaseError(f"Cannot update columns: {sorted(unknown)}")

        if "keywords" in fields:
            fields["keywords"] = json.dumps(fields["keywords"])

        assignments = [f"{column} = ?" for column in fields]
        assignments.append("updated_at = ?")
        params = list(fields.values()) + [_utcnow(), rule_id]

        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    f"UPDATE chatbot_rules SET {', '.join(assignments)} WHERE id = ?",
                    params
                )
                if cursor.rowcount == 0:
                    return None
                row = conn.execute(
                    "SELECT * FROM chatbot_rules WHERE id = ?", (rule_id,)
                ).fetchone()
                return dict(row)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to update chatbot rule {rule_id}: {e}")

    def delete_rule_row(self, rule_id: int) -> bool:
        """
        Delete a rule row.

        Returns:
            True if a row was deleted
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute("DELETE FROM chatbot_rules WHERE id = ?", (rule_id,))
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to delete chatbot rule {rule_id}: {e}")

    def count_rules(self) -> int:
        """Number of stored rules."""
        try:
            with self.transaction() as conn:
                return conn.execute("SELECT COUNT(*) AS count FROM chatbot_rules").fetchone()["count"]
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to count chatbot rules: {e}")

    # === Statistics ===

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get rule store statistics.

        Returns:
            Dictionary with rule count, priority range and last update time
        """
        try:
            with self.transaction() as conn:
                row = conn.execute(
                    """
                    SELECT COUNT(*) AS count,
                           MIN(priority) AS min_priority,
                           MAX(priority) AS max_priority,
                           MAX(updated_at) AS last_updated
                    FROM chatbot_rules
                    """
                ).fetchone()
                return {
                    "rules": row["count"],
                    "min_priority": row["min_priority"],
                    "max_priority": row["max_priority"],
                    "last_updated": row["last_updated"],
                }
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get statistics: {e}")

    def close(self) -> None:
        """Close database connection for current thread."""
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            self._local.connection = None


def init_database(db_path: str, timeout: float = 30.0) -> Database:
    """
    Initialize and return a database instance.

    This is the preferred way to create a database instance.

    Args:
        db_path: Path to SQLite database file
        timeout: Lock wait timeout in seconds

    Returns:
        Database instance
    """
    logger.debug(f"Opening rule database at {db_path}")
    return Database(db_path, timeout=timeout)
