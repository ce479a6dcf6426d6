"""
Helpers for turning raw model replies into structured data.
"""

from typing import Any

import json5

FENCE = "```"


def remove_markdown_codeblocks(text: str) -> str:
    """Drop markdown fence lines (```, ```json, ...) and keep their contents."""
    lines = text.split("\n")
    return "\n".join(line for line in lines if not line.lstrip().startswith(FENCE))


def parse_relaxed(text: str) -> Any:
    """Parse JSON that may contain comments and trailing commas.

    Raises:
        ValueError: If text is not valid relaxed JSON
    """
    if not text or not text.strip():
        raise ValueError("Cannot parse empty text")
    try:
        return json5.loads(text)
    except ValueError as e:
        raise ValueError(f"Malformed structured response: {e}") from e
