"""
Unit tests for storage layer.

Tests usage event serialisation, schema creation, insertion and retrieval.
"""

import os
import tempfile
from datetime import datetime, timedelta

import pytest

from helpers import make_event
from jacob_gpt.storage.db import get_connection
from jacob_gpt.storage.models import PromptRecord
from jacob_gpt.storage.repository import (
    SQLiteEventStore,
    UsageRepository,
    fetch_recent_events,
    initialize_schema,
    insert_event,
)


class TestUsageEvent:
    """Test event record serialisation."""

    def test_to_record_shape(self):
        record = make_event().to_record()

        assert record["projectId"] == 7
        assert record["userId"] == "u1"
        assert record["type"] == "prompt"

        payload = record["payload"]
        assert payload["type"] == "prompt"
        assert payload["metadata"] == {
            "timestamp": "2024-03-01T12:00:00",
            "cost": 0.0025,
            "tokens": 150,
            "duration": 850,
            "model": "gpt-4-turbo-preview",
        }
        assert [p["promptType"] for p in payload["request"]["prompts"]] == ["System", "User"]
        assert payload["response"]["prompt"] == {
            "promptType": "Assistant",
            "prompt": "Hi!",
            "timestamp": "2024-03-01T12:00:00",
        }

    def test_context_cannot_override_type(self):
        record = make_event(context={"type": "code"}).to_record()
        assert record["type"] == "prompt"

    def test_prompt_record_from_block_message(self):
        message = {
            "role": "user",
            "content": [{"type": "text", "text": "look"}],
        }
        prompt = PromptRecord.from_message(message, "t")
        assert prompt.prompt_type == "User"
        assert prompt.prompt == '[{"type": "text", "text": "look"}]'

    def test_event_is_immutable(self):
        event = make_event()
        with pytest.raises(AttributeError):
            event.cost = 1.0


class TestEventStore:
    """Test schema creation, insertion and retrieval."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_schema_creation(self):
        """Verify table is created with the expected columns."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("PRAGMA table_info(events)")
            column_names = [col[1] for col in cursor.fetchall()]
        finally:
            conn.close()
        assert column_names == [
            "id", "timestamp", "type", "model", "tokens", "cost", "duration_ms", "record",
        ]

    def test_initialize_schema_is_idempotent(self):
        initialize_schema(self.db_path)
        initialize_schema(self.db_path)

    def test_insert_and_fetch_round_trip(self):
        record = make_event().to_record()
        insert_event(record, self.db_path)

        events = fetch_recent_events(db_path=self.db_path)
        assert len(events) == 1
        stored = events[0]
        assert stored.type == "prompt"
        assert stored.model == "gpt-4-turbo-preview"
        assert stored.tokens == 150
        assert stored.cost == 0.0025
        assert stored.duration_ms == 850
        assert stored.timestamp == datetime(2024, 3, 1, 12, 0, 0)
        assert stored.record == record

    def test_insert_without_type_rejected(self):
        with pytest.raises(ValueError, match="type"):
            insert_event({"payload": {}}, self.db_path)

    def test_fetch_newest_first_with_model_filter(self):
        base = datetime(2024, 3, 1)
        for offset, model in enumerate(["gpt-4-0613", "gpt-4-turbo-preview", "gpt-4-0613"]):
            event = make_event(timestamp=base + timedelta(hours=offset), model=model)
            insert_event(event.to_record(), self.db_path)

        events = fetch_recent_events(model="gpt-4-0613", db_path=self.db_path)
        assert [e.timestamp.hour for e in events] == [2, 0]

        limited = fetch_recent_events(limit=1, db_path=self.db_path)
        assert len(limited) == 1
        assert limited[0].timestamp.hour == 2

    def test_sqlite_event_store_creates_schema(self):
        db_path = os.path.join(self.temp_dir, "nested", "store.db")
        store = SQLiteEventStore(db_path)
        store.insert(make_event().to_record())
        assert len(fetch_recent_events(db_path=db_path)) == 1

    def test_usage_stats(self):
        now = datetime.now()
        insert_event(make_event(timestamp=now, cost=0.5).to_record(), self.db_path)
        insert_event(make_event(timestamp=now, cost=1.5, model="gpt-4-0613").to_record(), self.db_path)
        insert_event(
            make_event(timestamp=now - timedelta(days=60), cost=9.0).to_record(), self.db_path
        )

        repository = UsageRepository(self.db_path)
        stats = repository.get_usage_stats(days=30)
        assert stats["total_requests"] == 2
        assert stats["total_cost"] == 2.0
        assert stats["avg_cost"] == 1.0
        assert stats["total_tokens"] == 300
        assert stats["avg_duration_ms"] == 850.0

        gpt4_stats = repository.get_usage_stats(model="gpt-4-0613", days=30)
        assert gpt4_stats["total_requests"] == 1

    def test_repository_recent_events(self):
        insert_event(make_event(model="gpt-4-0613").to_record(), self.db_path)
        insert_event(make_event().to_record(), self.db_path)

        repository = UsageRepository(self.db_path)
        assert len(repository.get_recent_events()) == 2
        assert [e.model for e in repository.get_recent_events(model="gpt-4-0613")] == ["gpt-4-0613"]

    def test_usage_stats_empty(self):
        stats = UsageRepository(self.db_path).get_usage_stats()
        assert stats == {
            "total_requests": 0,
            "total_cost": 0.0,
            "avg_cost": 0.0,
            "total_tokens": 0,
            "avg_duration_ms": 0.0,
        }
