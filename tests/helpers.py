"""
Test doubles for the dispatcher: fake completions, errors and stores.
"""

from datetime import datetime
from types import SimpleNamespace

import httpx
import openai

from jacob_gpt.storage.models import PromptRecord, UsageEvent


def word_counter(text, model=None):
    """Deterministic stand-in for the tiktoken counter."""
    return len(text.split())


def make_response(content="ok", prompt_tokens=100, completion_tokens=50):
    """Build an object shaped like an OpenAI chat completion."""
    return SimpleNamespace(
        id="chatcmpl-123",
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        ),
    )


def make_rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(429, request=request)
    return openai.RateLimitError("Rate limit reached", response=response, body=None)


class RecordingEventStore:
    """EventStore that keeps records in memory."""

    def __init__(self):
        self.records = []

    def insert(self, record):
        self.records.append(record)


def make_event(timestamp=None, model="gpt-4-turbo-preview", cost=0.0025, context=None):
    """Build a completed-request usage event with a short transcript."""
    timestamp = timestamp or datetime(2024, 3, 1, 12, 0, 0)
    stamp = timestamp.isoformat()
    return UsageEvent(
        timestamp=timestamp,
        duration_ms=850,
        model=model,
        prompt_tokens=100,
        completion_tokens=50,
        cost=cost,
        prompts=(
            PromptRecord("System", "You are a helpful assistant.", stamp),
            PromptRecord("User", "Hello", stamp),
        ),
        response=PromptRecord("Assistant", "Hi!", stamp),
        context=context if context is not None else {"projectId": 7, "userId": "u1"},
    )
