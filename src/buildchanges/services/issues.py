"""Issue tracker integration for buildchanges.

An IssueDetailResolver fans out over a set of ExternalIssueResolvers, each
of which knows how to spot issue keys in commit messages and how to fetch
details for those keys from its tracker.
"""

import logging
import re
import threading
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

import httpx

from ..constants import JIRA_TIMEOUT
from ..errors import IssueResolverError
from ..models import ChangeDetail, ExternalIssueDetails, Issue

logger = logging.getLogger(__name__)

JIRA_KEY_PATTERN = re.compile(r"\b([A-Z][A-Z0-9]+-\d+)\b")


class ExternalIssueResolver(Protocol):
    """A single issue tracker."""

    name: str

    def extract_issue_ids(self, text: str) -> list[str]: ...

    def can_resolve(self, issue: Issue) -> bool: ...

    def get_details(self, issue: Issue) -> ExternalIssueDetails | None: ...


class JiraIssueResolver:
    """Resolves Jira issue keys through the Jira REST API (v2).

    Args:
        base_url: Jira root URL, e.g. https://jira.example.com
        username: Account used for basic auth, if any
        token: Password or API token for ``username``
        project_keys: Restrict matching to these project keys (all if empty)
        timeout: HTTP timeout in seconds
        transport: Optional httpx transport (used by tests)
    """

    name = "jira"

    def __init__(
        self,
        base_url: str,
        username: str | None = None,
        token: str | None = None,
        project_keys: Iterable[str] = (),
        timeout: float = JIRA_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._project_keys = {k.upper() for k in project_keys}
        auth = (username, token or "") if username else None
        self._http = httpx.Client(
            auth=auth,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self._details: dict[str, ExternalIssueDetails | None] = {}
        self._lock = threading.Lock()

    def close(self) -> None:
        self._http.close()

    def _accepts_key(self, key: str) -> bool:
        if not JIRA_KEY_PATTERN.fullmatch(key):
            return False
        return not self._project_keys or key.split("-", 1)[0] in self._project_keys

    def extract_issue_ids(self, text: str) -> list[str]:
        """Jira keys mentioned in ``text``, in order of first mention."""
        keys: list[str] = []
        for key in JIRA_KEY_PATTERN.findall(text or ""):
            if self._accepts_key(key) and key not in keys:
                keys.append(key)
        return keys

    def can_resolve(self, issue: Issue) -> bool:
        if issue.url and issue.url.startswith(self._base_url):
            return True
        return self._accepts_key(issue.id)

    def get_details(self, issue: Issue) -> ExternalIssueDetails | None:
        """Fetch details for ``issue``; None if Jira does not know it."""
        with self._lock:
            if issue.id in self._details:
                return self._details[issue.id]

        url = f"{self._base_url}/rest/api/2/issue/{issue.id}"
        try:
            response = self._http.get(
                url, params={"fields": "summary,status,issuetype,description,subtasks"}
            )
        except httpx.HTTPError as e:
            raise IssueResolverError(f"Jira request for {issue.id} failed: {e}") from e

        if response.status_code == 404:
            details = None
        elif response.is_success:
            try:
                data = response.json()
            except ValueError as e:
                raise IssueResolverError(f"Jira returned invalid JSON for {issue.id}") from e
            details = self._parse_issue(data)
        else:
            raise IssueResolverError(
                f"Jira returned HTTP {response.status_code} for {issue.id}"
            )

        with self._lock:
            self._details.setdefault(issue.id, details)
        return details

    def _parse_issue(self, data: dict[str, Any]) -> ExternalIssueDetails:
        key = data.get("key", "")
        fields = data.get("fields") or {}
        return ExternalIssueDetails(
            id=key,
            title=fields.get("summary") or "",
            status=(fields.get("status") or {}).get("name", ""),
            url=f"{self._base_url}/browse/{key}",
            issue_type=(fields.get("issuetype") or {}).get("name", ""),
            description=fields.get("description") or "",
            sub_issues=[self._parse_issue(sub) for sub in fields.get("subtasks") or []],
        )


class IssueDetailResolver:
    """Derives and enriches issues using the configured issue resolvers."""

    def __init__(self, resolvers: Sequence[ExternalIssueResolver] = ()) -> None:
        self._resolvers = list(resolvers)

    @property
    def resolvers(self) -> list[ExternalIssueResolver]:
        return list(self._resolvers)

    def close(self) -> None:
        """Close resolvers that hold connections."""
        for resolver in self._resolvers:
            close = getattr(resolver, "close", None)
            if close is not None:
                close()

    def derive_issues_from_changes(self, changes: Iterable[ChangeDetail]) -> list[Issue]:
        """Issues referenced in change comments, distinct and in first-seen order."""
        issues: list[Issue] = []
        seen: set[str] = set()
        for change in changes:
            for resolver in self._resolvers:
                for issue_id in resolver.extract_issue_ids(change.comment):
                    if issue_id not in seen:
                        seen.add(issue_id)
                        issues.append(Issue(id=issue_id))
        return issues

    def enrich_issues(self, issues: Iterable[Issue]) -> list[ExternalIssueDetails]:
        """Details for each issue from the first resolver that handles it.

        Issues no resolver can handle, or whose lookup fails, are returned
        with only their id and url.
        """
        details: list[ExternalIssueDetails] = []
        for issue in issues:
            resolved = None
            resolver = next((r for r in self._resolvers if r.can_resolve(issue)), None)
            if resolver is not None:
                try:
                    resolved = resolver.get_details(issue)
                except IssueResolverError as e:
                    logger.warning(f"{resolver.name}: could not resolve {issue.id}: {e}")
            details.append(resolved or ExternalIssueDetails(id=issue.id, url=issue.url))
        return details
