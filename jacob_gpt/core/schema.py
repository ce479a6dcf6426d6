"""
Schema capability used to validate structured model replies.

Anything exposing ``safe_parse(value)`` can be used as a schema; pydantic
models and types are adapted automatically.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import TypeAdapter, ValidationError


@dataclass(frozen=True)
class SafeParseResult:
    """Outcome of validating one value against a schema."""
    success: bool
    data: Any = None
    error: Optional[str] = None


@runtime_checkable
class Schema(Protocol):
    def safe_parse(self, value: Any) -> SafeParseResult:
        ...


class PydanticSchema:
    """Adapts a pydantic model (or any type pydantic understands) to Schema."""

    def __init__(self, type_: Any):
        self.type_ = type_
        self._adapter = TypeAdapter(type_)

    def safe_parse(self, value: Any) -> SafeParseResult:
        try:
            data = self._adapter.validate_python(value)
        except ValidationError as e:
            return SafeParseResult(success=False, error=str(e))
        return SafeParseResult(success=True, data=data)

    def __repr__(self) -> str:
        return f"PydanticSchema({self.type_!r})"


def as_schema(obj: Any) -> Schema:
    """Return obj if it already implements Schema, otherwise wrap it with pydantic."""
    if isinstance(obj, Schema):
        return obj
    return PydanticSchema(obj)
