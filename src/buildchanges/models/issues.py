"""Issue tracker enrichment models."""

from pydantic import BaseModel, Field


class ExternalIssueDetails(BaseModel):
    """Resolver specific details of an issue reference.

    Attributes:
        id: Issue key as known by the tracker (e.g. "ABC-123").
        title: Issue summary.
        status: Workflow status name.
        url: Link to the issue in the tracker UI.
        issue_type: Tracker issue type (Bug, Story, ...).
        description: Issue body, if the tracker returned one.
        sub_issues: Details of child issues, if any.
    """

    id: str
    title: str = ""
    status: str = ""
    url: str = ""
    issue_type: str = ""
    description: str = ""
    sub_issues: list["ExternalIssueDetails"] = Field(default_factory=list)
