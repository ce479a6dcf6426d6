"""
Event store for usage events.

The events table is an append-only ledger: rows are inserted and read back,
never updated or deleted.
"""

import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Protocol

from .db import DEFAULT_DB_PATH, get_connection
from .models import StoredEvent

_SELECT_COLUMNS = "id, timestamp, type, model, tokens, cost, duration_ms, record"


class EventStore(Protocol):
    """Anything that accepts a serialised event record."""

    def insert(self, record: Mapping[str, Any]) -> None:
        ...


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the events table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                type TEXT NOT NULL,
                model TEXT,
                tokens INTEGER NOT NULL DEFAULT 0,
                cost REAL NOT NULL DEFAULT 0,
                duration_ms INTEGER NOT NULL DEFAULT 0,
                record TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def insert_event(record: Mapping[str, Any], db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a single event record into the append-only ledger.

    Indexed columns are taken from ``record["payload"]["metadata"]`` when
    present; the full record is stored as JSON.

    Args:
        record: Event record as produced by UsageEvent.to_record()
        db_path: Path to SQLite database file

    Raises:
        ValueError: If the record has no type
    """
    if not record.get("type"):
        raise ValueError("event record is missing 'type'")

    metadata = (record.get("payload") or {}).get("metadata") or {}
    timestamp = metadata.get("timestamp") or datetime.now().isoformat()

    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO events
            (timestamp, type, model, tokens, cost, duration_ms, record)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            timestamp,
            record["type"],
            metadata.get("model"),
            int(metadata.get("tokens") or 0),
            float(metadata.get("cost") or 0),
            int(metadata.get("duration") or 0),
            json.dumps(dict(record), default=str),
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_recent_events(
    model: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH,
) -> List[StoredEvent]:
    """Fetch recent events, optionally filtered by model.

    Returns events in reverse chronological order (newest first).
    """
    conn = get_connection(db_path)
    try:
        query = f"SELECT {_SELECT_COLUMNS} FROM events"
        params: List[Any] = []

        if model:
            query += " WHERE model = ?"
            params.append(model)

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = conn.execute(query, params)
        return [_row_to_event(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def _row_to_event(row) -> StoredEvent:
    return StoredEvent(
        id=row[0],
        timestamp=datetime.fromisoformat(row[1]),
        type=row[2],
        model=row[3],
        tokens=row[4],
        cost=row[5],
        duration_ms=row[6],
        record=json.loads(row[7]),
    )


class SQLiteEventStore:
    """EventStore backed by a local SQLite file."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, initialize: bool = True):
        self.db_path = db_path
        if initialize:
            initialize_schema(db_path)

    def insert(self, record: Mapping[str, Any]) -> None:
        insert_event(record, self.db_path)


class UsageRepository:
    """Read-side access to recorded usage events."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def get_recent_events(self, model: Optional[str] = None, limit: int = 100) -> List[StoredEvent]:
        return fetch_recent_events(model=model, limit=limit, db_path=self.db_path)

    def get_usage_stats(self, model: Optional[str] = None, days: int = 30) -> Dict[str, float]:
        """Get usage statistics for the specified time period.

        Args:
            model: Optional filter for specific model
            days: Number of days to include in the statistics

        Returns:
            Dictionary with total_requests, total_cost, avg_cost, total_tokens
            and avg_duration_ms
        """
        conn = get_connection(self.db_path)
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat()

            query = """
                SELECT
                    COUNT(*),
                    SUM(cost),
                    AVG(cost),
                    SUM(tokens),
                    AVG(duration_ms)
                FROM events
                WHERE timestamp >= ?
            """
            params: List[Any] = [cutoff]

            if model:
                query += " AND model = ?"
                params.append(model)

            row = conn.execute(query, params).fetchone()

            return {
                "total_requests": row[0] or 0,
                "total_cost": float(row[1] or 0),
                "avg_cost": float(row[2] or 0),
                "total_tokens": row[3] or 0,
                "avg_duration_ms": float(row[4] or 0),
            }
        finally:
            conn.close()
