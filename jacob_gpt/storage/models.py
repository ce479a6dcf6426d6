"""
Data models for storage layer.

Defines the usage event recorded after every completed GPT request.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

EVENT_TYPE_PROMPT = "prompt"


@dataclass(frozen=True)
class PromptRecord:
    """One entry of a request/response transcript."""
    prompt_type: str  # "System" | "User" | "Assistant"
    prompt: str
    timestamp: str

    @classmethod
    def from_message(cls, message: Mapping[str, Any], timestamp: str) -> "PromptRecord":
        """Build a transcript entry from a chat message dictionary.

        Block-list content (image prompts) is serialised to a JSON string.
        """
        role = message.get("role") or "user"
        content = message.get("content")
        if not isinstance(content, str):
            content = json.dumps(content)
        return cls(prompt_type=role.capitalize(), prompt=content, timestamp=timestamp)

    def to_dict(self) -> Dict[str, str]:
        return {
            "promptType": self.prompt_type,
            "prompt": self.prompt,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one completed GPT request.

    Carries the full transcript so the event store can show what was asked
    and answered. Once written, these records must never be modified.
    """
    timestamp: datetime
    duration_ms: int
    model: str
    prompt_tokens: int
    completion_tokens: int
    cost: float
    prompts: Tuple[PromptRecord, ...]
    response: PromptRecord
    context: Mapping[str, Any] = field(default_factory=dict)

    @property
    def tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_record(self) -> Dict[str, Any]:
        """Serialise into the shape the event store accepts.

        Caller context is merged at the top level and never interpreted.
        """
        return {
            **self.context,
            "type": EVENT_TYPE_PROMPT,
            "payload": {
                "type": EVENT_TYPE_PROMPT,
                "metadata": {
                    "timestamp": self.timestamp.isoformat(),
                    "cost": self.cost,
                    "tokens": self.tokens,
                    "duration": self.duration_ms,
                    "model": self.model,
                },
                "request": {
                    "prompts": [prompt.to_dict() for prompt in self.prompts],
                },
                "response": {
                    "prompt": self.response.to_dict(),
                },
            },
        }


@dataclass(frozen=True)
class StoredEvent:
    """An event record read back from the store."""
    id: int
    timestamp: datetime
    type: str
    model: Optional[str]
    tokens: int
    cost: float
    duration_ms: int
    record: Dict[str, Any]
