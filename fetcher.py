"""Remote worklog fetcher: pages through Jira until the collection is exhausted."""

import threading
from datetime import datetime
from typing import Iterator, Protocol

from errors import BadInputError
from models import EntryError, Issue, Worklog, WorklogPage
from patterns import Patterns


class WorklogSource(Protocol):
    """The part of JiraClient the fetcher uses."""

    def get_worklog_page(
        self, issue_key: str, start_at: int, max_results: int, started_after: datetime
    ) -> WorklogPage: ...

    def search_issues(
        self,
        projects: list[str] | None = None,
        issue_keys: list[str] | None = None,
        worked_since: datetime | None = None,
    ) -> list[Issue]: ...


class RemoteWorklogs:
    """Lazy, restartable sequence of worklogs for one filter.

    Every iteration starts a fresh cursor at 0, so iterating twice pages
    through the remote collection twice. Entries Jira returned but that could
    not be parsed are collected in ``errors`` for the latest iteration.
    """

    def __init__(
        self,
        fetcher: "RemoteWorklogFetcher",
        filter_key: str,
        since: datetime,
        cancel: threading.Event | None = None,
    ):
        self.fetcher = fetcher
        self.filter_key = filter_key
        self.since = since
        self.cancel = cancel
        self.errors: list[EntryError] = []

    def __iter__(self) -> Iterator[Worklog]:
        self.errors = []
        if Patterns.ISSUE_KEY.match(self.filter_key):
            yield from self.fetcher.iter_issue(self.filter_key, self.since, self.cancel, self.errors)
        else:
            yield from self.fetcher.iter_project(self.filter_key, self.since, self.cancel, self.errors)


class RemoteWorklogFetcher:
    """Pure producer of remote worklogs. Never persists, never retries."""

    def __init__(self, source: WorklogSource, page_size: int = 5000, debug: bool = False):
        if page_size < 1:
            raise BadInputError(f"Page size must be positive, got {page_size}", operation="fetch")
        self.source = source
        self.page_size = page_size
        self.debug = debug

    def fetch(
        self, filter_key: str, since: datetime, cancel: threading.Event | None = None
    ) -> RemoteWorklogs:
        """Worklogs started at or after since, for an issue key or a project key."""
        if not (Patterns.ISSUE_KEY.match(filter_key) or Patterns.PROJECT_KEY.match(filter_key)):
            raise BadInputError(
                f"'{filter_key}' is neither an issue key nor a project key",
                operation="fetch",
                entity_id=filter_key,
            )
        return RemoteWorklogs(self, filter_key, since, cancel)

    def iter_issue(
        self,
        issue_key: str,
        since: datetime,
        cancel: threading.Event | None = None,
        errors: list[EntryError] | None = None,
    ) -> Iterator[Worklog]:
        start_at = 0
        while True:
            if cancel is not None and cancel.is_set():
                return
            page = self.source.get_worklog_page(issue_key, start_at, self.page_size, since)
            received = len(page.worklogs) + len(page.errors)
            if self.debug:
                print(
                    f"    [DEBUG] {issue_key}: startAt={start_at} got {received}"
                    f" of total={page.total} isLast={page.is_last}"
                )
            if errors is not None:
                errors.extend(page.errors)
            yield from page.worklogs

            # The server may return fewer than maxResults on a page that is not the last
            start_at += received
            if page.is_last or not received:
                return
            if start_at >= page.total:
                return

    def iter_project(
        self,
        project_key: str,
        since: datetime,
        cancel: threading.Event | None = None,
        errors: list[EntryError] | None = None,
    ) -> Iterator[Worklog]:
        issues = self.source.search_issues(projects=[project_key], worked_since=since)
        if self.debug:
            print(f"    [DEBUG] {project_key}: {len(issues)} issues with work since {since:%Y-%m-%d}")
        for issue in issues:
            if cancel is not None and cancel.is_set():
                return
            yield from self.iter_issue(issue.issue_key, since, cancel, errors)
