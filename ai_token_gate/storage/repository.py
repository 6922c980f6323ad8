"""
Repository pattern for data access.

Handles schema creation and the append-only interaction log and
token transaction tables.
"""

import json
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import InteractionLogEntry, TokenTransaction


class InteractionRepository:
    """Read access to recorded interaction log entries.

    Writes go through ``insert_interaction_log`` only; this class never
    updates or deletes rows.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_recent_entries(
        self,
        user_id: Optional[str] = None,
        flow_name: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100
    ) -> List[InteractionLogEntry]:
        """Get recent interaction log entries with optional filtering.

        Args:
            user_id: Optional filter for a specific user
            flow_name: Optional filter for a specific flow
            status: Optional filter for "success" or "error"
            limit: Maximum number of entries to return

        Returns:
            List of entries ordered newest first
        """
        conn = get_connection(self.db_path)
        try:
            query = """
                SELECT id, user_id, flow_name, status, input, output, metadata
                FROM ai_interaction_logs
            """
            params = []
            conditions = []

            if user_id:
                conditions.append("user_id = ?")
                params.append(user_id)
            if flow_name:
                conditions.append("flow_name = ?")
                params.append(flow_name)
            if status:
                conditions.append("status = ?")
                params.append(status)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            query += " ORDER BY id DESC LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            return [_row_to_entry(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_flow_stats(self, days: int = 30) -> Dict[str, Dict[str, int]]:
        """Count successes and errors per flow over the last ``days`` days.

        Returns:
            Mapping of flow name to ``{"success": n, "error": m}``
        """
        conn = get_connection(self.db_path)
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat()
            cursor = conn.execute("""
                SELECT flow_name, status, COUNT(*)
                FROM ai_interaction_logs
                WHERE created_at >= ?
                GROUP BY flow_name, status
            """, (cutoff,))

            stats: Dict[str, Dict[str, int]] = {}
            for flow_name, status, count in cursor.fetchall():
                stats.setdefault(flow_name, {"success": 0, "error": 0})[status] = count
            return stats
        finally:
            conn.close()


def _row_to_entry(row) -> InteractionLogEntry:
    return InteractionLogEntry(
        id=row[0],
        user_id=row[1],
        flow_name=row[2],
        status=row[3],
        input=json.loads(row[4]),
        output=json.loads(row[5]),
        metadata=json.loads(row[6])
    )


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the balance, transaction and interaction log tables.

    ``token_transactions`` and ``ai_interaction_logs`` are append-only.
    No UPDATE or DELETE operations should ever be performed on them.
    The balance table is only changed through conditional updates in
    the token ledger.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS user_tokens (
                user_id TEXT PRIMARY KEY,
                token_balance INTEGER NOT NULL DEFAULT 0
                    CHECK (token_balance >= 0)
            );

            CREATE TABLE IF NOT EXISTS token_transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                user_id TEXT NOT NULL,
                amount INTEGER NOT NULL,
                kind TEXT NOT NULL,
                flow_name TEXT
            );

            CREATE TABLE IF NOT EXISTS ai_interaction_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                user_id TEXT NOT NULL,
                flow_name TEXT NOT NULL,
                status TEXT NOT NULL CHECK (status IN ('success', 'error')),
                input TEXT NOT NULL,
                output TEXT NOT NULL,
                metadata TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_ai_interaction_logs_user
                ON ai_interaction_logs (user_id, id);
        """)
        conn.commit()
    finally:
        conn.close()


def insert_interaction_log(entry: InteractionLogEntry, db_path: str = DEFAULT_DB_PATH) -> int:
    """Append a single interaction log entry.

    Args:
        entry: The entry to record
        db_path: Path to SQLite database file

    Returns:
        The row id assigned to the entry
    """
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("""
            INSERT INTO ai_interaction_logs
            (created_at, user_id, flow_name, status, input, output, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            entry.metadata.get("timestamp") or datetime.now().isoformat(),
            entry.user_id,
            entry.flow_name,
            entry.status,
            json.dumps(entry.input, ensure_ascii=False),
            json.dumps(entry.output, ensure_ascii=False),
            json.dumps(entry.metadata, ensure_ascii=False)
        ))
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def fetch_token_transactions(
    user_id: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[TokenTransaction]:
    """Fetch token transactions, newest first.

    Args:
        user_id: Optional filter for a specific user
        limit: Maximum number of transactions to return
        db_path: Path to SQLite database file

    Returns:
        List of transactions ordered newest first
    """
    conn = get_connection(db_path)
    try:
        query = "SELECT id, timestamp, user_id, amount, kind, flow_name FROM token_transactions"
        params = []

        if user_id:
            query += " WHERE user_id = ?"
            params.append(user_id)

        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        cursor = conn.execute(query, params)
        return [
            TokenTransaction(
                id=row[0],
                timestamp=datetime.fromisoformat(row[1]),
                user_id=row[2],
                amount=row[3],
                kind=row[4],
                flow_name=row[5]
            )
            for row in cursor.fetchall()
        ]
    finally:
        conn.close()
