"""API client for Jira worklogs and issues."""

from datetime import datetime

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import ApiError, AuthError, BadInputError, NetworkError, NotFoundError
from models import Author, Component, EntryError, Issue, SyncConfig, User, Worklog, WorklogPage
from utils import format_jira_timestamp, parse_jira_timestamp

API = "/rest/api/3"
SEARCH_FIELDS = ["key", "summary", "components"]


def _handle_api_error(response: requests.Response, service: str) -> str:
    """Convert HTTP errors to user-friendly messages."""
    status = response.status_code

    messages = {
        401: f"{service}: Authentication failed. Check your API token!",
        403: f"{service}: Access denied. Check your permissions or API token!",
        404: f"{service}: Resource not found. Check the issue key or worklog id!",
        429: f"{service}: Too many requests. Wait a moment and try again.",
        500: f"{service}: Server error. The service may be temporarily unavailable.",
        502: f"{service}: Bad gateway. The service may be temporarily unavailable.",
        503: f"{service}: Service unavailable. Try again later.",
    }

    return messages.get(status, f"{service}: HTTP {status} - {response.reason}")


def _raise_for_status(response: requests.Response, operation: str, entity_id: str | None) -> None:
    if response.ok:
        return
    message = _handle_api_error(response, "Jira")
    error_class = {401: AuthError, 403: AuthError, 404: NotFoundError}.get(
        response.status_code, ApiError
    )
    raise error_class(
        message, response.status_code, operation=operation, entity_id=entity_id
    )


def adf_to_text(node) -> str | None:
    """Flatten an Atlassian Document Format comment into plain text."""
    if node is None:
        return None
    if isinstance(node, str):
        return node
    if node.get("type") == "text":
        return node.get("text", "")
    parts = [adf_to_text(child) or "" for child in node.get("content", [])]
    separator = "\n" if node.get("type") == "doc" else ""
    return separator.join(parts)


def text_to_adf(text: str) -> dict:
    """Wrap plain text into a single-paragraph ADF document."""
    paragraph = {"type": "paragraph", "content": []}
    if text:
        paragraph["content"].append({"type": "text", "text": text})
    return {"type": "doc", "version": 1, "content": [paragraph]}


def parse_worklog(data: dict, issue_key: str | None = None) -> Worklog:
    """Convert a worklog JSON object into a Worklog.

    Raises BadInputError if the payload is missing fields or has bad values.
    """
    worklog_id = None
    if isinstance(data, dict) and data.get("id") is not None:
        worklog_id = str(data["id"])
    try:
        author = data.get("author") or {}
        return Worklog(
            id=str(data["id"]),
            issue_id=str(data.get("issueId", "")),
            author=Author(
                account_id=author.get("accountId", ""),
                display_name=author.get("displayName", ""),
                email_address=author.get("emailAddress"),
            ),
            created=parse_jira_timestamp(data["created"]),
            updated=parse_jira_timestamp(data["updated"]),
            started=parse_jira_timestamp(data["started"]),
            time_spent=data.get("timeSpent", ""),
            time_spent_seconds=int(data.get("timeSpentSeconds", 0)),
            comment=adf_to_text(data.get("comment")),
            issue_key=issue_key,
        )
    except KeyError as e:
        raise BadInputError(
            f"Worklog payload is missing {e}", operation="parse_worklog", entity_id=worklog_id
        ) from e
    except (ValueError, TypeError, AttributeError, BadInputError) as e:
        raise BadInputError(
            f"Malformed worklog payload: {e}", operation="parse_worklog", entity_id=worklog_id
        ) from e


def parse_issue(data: dict) -> Issue:
    fields = data.get("fields") or {}
    components = tuple(
        Component(id=str(c["id"]), name=c.get("name", ""))
        for c in fields.get("components") or []
    )
    return Issue(
        issue_key=data["key"],
        summary=fields.get("summary") or "",
        issue_id=str(data["id"]) if data.get("id") is not None else None,
        components=components,
    )


class JiraClient:
    """Client for Jira REST API.

    Retries live here, on the transport; callers see a single outcome per request.
    """

    def __init__(self, config: dict, sync_config: SyncConfig | None = None):
        sync_config = sync_config or SyncConfig()
        self.base_url = config["jira"]["base_url"].rstrip("/")
        self.email = config["jira"]["user_email"]
        self.token = config["jira"]["api_token"]
        self.timeout = sync_config.timeout_s

        self.session = requests.Session()
        self.session.auth = (self.email, self.token)
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        retry = Retry(
            total=sync_config.max_retries,
            backoff_factor=sync_config.retry_delay_s,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET", "DELETE"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        entity_id: str | None = None,
        **kwargs,
    ) -> requests.Response:
        try:
            r = self.session.request(
                method, f"{self.base_url}{API}{path}", timeout=self.timeout, **kwargs
            )
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(
                f"Jira: Cannot connect to {self.base_url}. Check your network!",
                operation=operation,
                entity_id=entity_id,
            ) from e
        except requests.exceptions.Timeout as e:
            raise NetworkError(
                "Jira: Connection timed out. The server may be slow.",
                operation=operation,
                entity_id=entity_id,
            ) from e
        _raise_for_status(r, operation, entity_id)
        return r

    def get_myself(self) -> User:
        """Get the current user's Jira identity."""
        data = self._request("GET", "/myself", operation="get_myself").json()
        return User(
            account_id=data["accountId"],
            display_name=data.get("displayName", ""),
            email=data.get("emailAddress"),
            timezone=data.get("timeZone"),
        )

    def get_issue(self, issue_key: str) -> Issue:
        """Fetch issue details (key, summary, components)."""
        r = self._request(
            "GET",
            f"/issue/{issue_key}",
            operation="get_issue",
            entity_id=issue_key,
            params={"fields": ",".join(SEARCH_FIELDS)},
        )
        return parse_issue(r.json())

    def search_issues(
        self,
        projects: list[str] | None = None,
        issue_keys: list[str] | None = None,
        worked_since: datetime | None = None,
    ) -> list[Issue]:
        """Resolve issues by project and/or key through JQL, following nextPageToken."""
        clauses = []
        if projects:
            clauses.append(f"project in ({','.join(projects)})")
        if issue_keys:
            clauses.append(f"issuekey in ({','.join(issue_keys)})")
        if not clauses:
            return []
        if worked_since is not None:
            clauses.append(f'worklogDate >= "{worked_since:%Y-%m-%d}"')
        payload = {"jql": " AND ".join(clauses), "maxResults": 100, "fields": SEARCH_FIELDS}

        issues = []
        while True:
            data = self._request(
                "POST", "/search/jql", operation="search_issues", json=payload
            ).json()
            issues.extend(parse_issue(item) for item in data.get("issues", []))

            # Handle pagination
            token = data.get("nextPageToken")
            if data.get("isLast", True) or not token:
                break
            payload = {**payload, "nextPageToken": token}
        return issues

    def get_worklog_page(
        self, issue_key: str, start_at: int, max_results: int, started_after: datetime
    ) -> WorklogPage:
        """Fetch one page of an issue's worklogs started at or after started_after."""
        r = self._request(
            "GET",
            f"/issue/{issue_key}/worklog",
            operation="get_worklogs",
            entity_id=issue_key,
            params={
                "startAt": start_at,
                "maxResults": max_results,
                "startedAfter": int(started_after.timestamp() * 1000),
            },
        )
        data = r.json()
        is_last = data.get("isLast", data.get("isLastPage"))

        # One bad entry must not cost the rest of the page
        worklogs, errors = [], []
        for item in data.get("worklogs", []):
            try:
                worklogs.append(parse_worklog(item, issue_key))
            except BadInputError as e:
                errors.append(EntryError(issue_key, e.entity_id, str(e)))
        return WorklogPage(
            start_at=int(data.get("startAt", start_at)),
            max_results=int(data.get("maxResults", max_results)),
            total=int(data.get("total", 0)),
            worklogs=worklogs,
            is_last=is_last,
            errors=errors,
        )

    def get_worklog(self, issue_key: str, worklog_id: str) -> Worklog:
        r = self._request(
            "GET",
            f"/issue/{issue_key}/worklog/{worklog_id}",
            operation="get_worklog",
            entity_id=worklog_id,
        )
        return parse_worklog(r.json(), issue_key)

    def insert_worklog(
        self, issue_key: str, started: datetime, time_spent_seconds: int, comment: str = ""
    ) -> Worklog:
        """POST a new worklog and return it as Jira stored it."""
        r = self._request(
            "POST",
            f"/issue/{issue_key}/worklog",
            operation="insert_worklog",
            entity_id=issue_key,
            json={
                "started": format_jira_timestamp(started),
                "timeSpentSeconds": time_spent_seconds,
                "comment": text_to_adf(comment),
            },
        )
        return parse_worklog(r.json(), issue_key)

    def delete_worklog(self, issue_key: str, worklog_id: str) -> None:
        self._request(
            "DELETE",
            f"/issue/{issue_key}/worklog/{worklog_id}",
            operation="delete_worklog",
            entity_id=worklog_id,
        )
