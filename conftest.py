"""Shared fixtures: in-memory cache and a fake Jira that never touches the network."""

from datetime import datetime, timedelta, timezone

import pytest

from cache import LocalCacheStore
from database import StoreHandle
from errors import NotFoundError
from models import Author, Issue, User, Worklog, WorklogPage

ME = User(account_id="acc-me", display_name="Me Myself", email="me@example.com", timezone="Europe/Berlin")
OTHER = User(account_id="acc-other", display_name="Someone Else", email="else@example.com")


def days_ago(days: float) -> datetime:
    return (datetime.now(timezone.utc) - timedelta(days=days)).replace(microsecond=0)


def make_worklog(
    worklog_id: str,
    issue_key: str = "TIME-1",
    seconds: int = 3600,
    started: datetime | None = None,
    author: User = ME,
    comment: str | None = None,
) -> Worklog:
    started = started or days_ago(2)
    return Worklog(
        id=worklog_id,
        issue_id="20001",
        author=Author(author.account_id, author.display_name, author.email),
        created=started,
        updated=started,
        started=started,
        time_spent=f"{seconds // 3600}h",
        time_spent_seconds=seconds,
        comment=comment,
        issue_key=issue_key,
    )


class FakeJiraClient:
    """In-memory stand-in for JiraClient with the same method signatures."""

    def __init__(self, me: User = ME):
        self.me = me
        self.issues: dict[str, Issue] = {}
        self.worklogs: dict[str, list[Worklog]] = {}
        self.page_errors: dict[str, Exception] = {}
        self.delete_error: Exception | None = None
        self.report_is_last = True
        self.page_calls: list[tuple[str, int]] = []
        self.deleted: list[str] = []
        self._next_id = 90000

    def add(self, *worklogs: Worklog) -> None:
        for wl in worklogs:
            self.issues.setdefault(wl.issue_key, Issue(wl.issue_key, f"Summary of {wl.issue_key}", wl.issue_id))
            self.worklogs.setdefault(wl.issue_key, []).append(wl)

    def get_myself(self) -> User:
        return self.me

    def get_issue(self, issue_key: str) -> Issue:
        if issue_key not in self.issues:
            raise NotFoundError("Jira: Resource not found", 404, operation="get_issue", entity_id=issue_key)
        return self.issues[issue_key]

    def search_issues(self, projects=None, issue_keys=None, worked_since=None) -> list[Issue]:
        found = []
        for key, issue in sorted(self.issues.items()):
            if projects and key.rsplit("-", 1)[0] not in projects:
                continue
            if issue_keys and key not in issue_keys:
                continue
            found.append(issue)
        return found

    def get_worklog_page(self, issue_key, start_at, max_results, started_after) -> WorklogPage:
        self.page_calls.append((issue_key, start_at))
        if issue_key in self.page_errors:
            raise self.page_errors[issue_key]
        matching = [wl for wl in self.worklogs.get(issue_key, []) if wl.started >= started_after]
        page = matching[start_at:start_at + max_results]
        return WorklogPage(
            start_at=start_at,
            max_results=max_results,
            total=len(matching),
            worklogs=page,
            is_last=(start_at + len(page) >= len(matching)) if self.report_is_last else None,
        )

    def get_worklog(self, issue_key, worklog_id) -> Worklog:
        for wl in self.worklogs.get(issue_key, []):
            if wl.id == worklog_id:
                return wl
        raise NotFoundError("Jira: Resource not found", 404, operation="get_worklog", entity_id=worklog_id)

    def delete_worklog(self, issue_key, worklog_id) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        wl = self.get_worklog(issue_key, worklog_id)
        self.worklogs[issue_key].remove(wl)
        self.deleted.append(worklog_id)

    def insert_worklog(self, issue_key, started, time_spent_seconds, comment="") -> Worklog:
        self._next_id += 1
        wl = Worklog(
            id=str(self._next_id),
            issue_id=self.issues[issue_key].issue_id or "",
            author=Author(self.me.account_id, self.me.display_name, self.me.email),
            created=started,
            updated=started,
            started=started,
            time_spent=f"{time_spent_seconds // 60}m",
            time_spent_seconds=time_spent_seconds,
            comment=comment or None,
            issue_key=issue_key,
        )
        self.worklogs.setdefault(issue_key, []).append(wl)
        return wl


@pytest.fixture
def store():
    handle = StoreHandle(":memory:")
    yield handle
    handle.close()


@pytest.fixture
def cache(store):
    return LocalCacheStore(store)


@pytest.fixture
def jira():
    return FakeJiraClient()
