"""
SDK for the JACoB GPT dispatch layer.

Provides programmatic access to GPT requests with token budgeting, rate-limit
backoff and schema-validated extraction.
"""

from .extractor import MaxRetriesExceededError
from .issues import ExtractedIssueInfo, get_extracted_issue
from .openai_client import GPTDispatcher

__all__ = [
    "ExtractedIssueInfo",
    "GPTDispatcher",
    "MaxRetriesExceededError",
    "get_extracted_issue",
]
