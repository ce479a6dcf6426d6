"""
Schema-validated extraction of structured data from model replies.
"""

from typing import Any, List, Optional

from ..core.parsing import parse_relaxed, remove_markdown_codeblocks
from ..core.schema import Schema


class ExtractionError(Exception):
    """A reply could not be turned into valid structured data."""


class EmptyResponseError(ExtractionError):
    """The model returned no content."""


class ResponseParseError(ExtractionError):
    """The reply was not parseable as relaxed JSON."""


class SchemaValidationError(ExtractionError):
    """The parsed reply did not satisfy the schema."""

    def __init__(self, message: str, errors: List[str]):
        super().__init__(message)
        self.errors = errors


class MaxRetriesExceededError(ExtractionError):
    """No attempt produced a valid reply."""

    def __init__(self, prompt: str, attempts: int, last_error: Optional[Exception] = None):
        super().__init__(f"Max retries exceeded for GPT request: {prompt}")
        self.prompt = prompt
        self.attempts = attempts
        self.last_error = last_error


def extract_validated(text: Optional[str], schema: Schema) -> Any:
    """Parse a model reply and validate it against schema.

    A top-level list is validated element by element and every element
    must pass; the validated elements are returned in their original order.

    Raises:
        EmptyResponseError: If text is empty or None
        ResponseParseError: If the unfenced text is not valid relaxed JSON
        SchemaValidationError: If validation fails
    """
    if not text:
        raise EmptyResponseError("Empty response from GPT")

    try:
        value = parse_relaxed(remove_markdown_codeblocks(text))
    except ValueError as e:
        raise ResponseParseError(str(e)) from e

    if isinstance(value, list):
        results = [schema.safe_parse(item) for item in value]
        failures = [
            f"[{index}] {result.error}"
            for index, result in enumerate(results)
            if not result.success
        ]
        if failures:
            raise SchemaValidationError(
                f"Invalid response from GPT - {len(failures)} of {len(results)} "
                "items failed schema validation",
                failures,
            )
        return [result.data for result in results]

    result = schema.safe_parse(value)
    if not result.success:
        raise SchemaValidationError(
            "Invalid response from GPT - object failed schema validation",
            [str(result.error)],
        )
    return result.data
