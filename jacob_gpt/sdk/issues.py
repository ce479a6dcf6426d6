"""
Issue extraction: turns a GitHub issue into a structured work plan.
"""

from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.prompts import parse_template

if TYPE_CHECKING:
    from .openai_client import GPTDispatcher


class ExtractedIssueInfo(BaseModel):
    """Plan extracted from an issue. The model answers with camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)

    steps_to_address_issue: Optional[str] = Field(default=None, alias="stepsToAddressIssue")
    issue_quality_score: Optional[float] = Field(default=None, alias="issueQualityScore", ge=0, le=5)
    commit_title: Optional[str] = Field(default=None, alias="commitTitle")
    files_to_create: List[str] = Field(default_factory=list, alias="filesToCreate")
    files_to_update: List[str] = Field(default_factory=list, alias="filesToUpdate")


def get_extracted_issue(
    dispatcher: "GPTDispatcher",
    source_map: str,
    issue_text: str,
    model: Optional[str] = None,
) -> ExtractedIssueInfo:
    params = {"sourceMap": source_map, "issueText": issue_text}
    system_prompt = parse_template("dev", "extracted_issue", "system", params)
    user_prompt = parse_template("dev", "extracted_issue", "user", params)
    return dispatcher.send_request_with_schema(
        user_prompt,
        system_prompt,
        ExtractedIssueInfo,
        model=model,
    )
