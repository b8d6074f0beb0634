"""Synchronizer: pull remote worklogs for a time window into the local cache.

An incremental sync is additive. Entries cached locally but missing from the
remote window are only removed by an explicit reconcile.
"""

import threading
from datetime import datetime, timezone
from typing import Protocol, Sequence

from cache import SyncStore
from errors import FATAL_ERRORS, BadInputError, WorklogError
from fetcher import RemoteWorklogFetcher
from models import EntryError, Issue, LocalWorklog, SyncSummary, User, Worklog
from ownership import recover_pending_deletions
from patterns import Patterns


class SyncClient(Protocol):
    def get_myself(self) -> User: ...

    def get_worklog(self, issue_key: str, worklog_id: str) -> Worklog: ...

    def search_issues(
        self,
        projects: list[str] | None = None,
        issue_keys: list[str] | None = None,
        worked_since: datetime | None = None,
    ) -> list[Issue]: ...


class Synchronizer:
    """Reconciles the local cache with Jira.

    Runs single-threaded. The store is only touched through the cache facade,
    one short transaction per entry, so no lock is held across a network call.
    Cancellation is checked between page fetches and between issues.
    """

    def __init__(
        self,
        client: SyncClient,
        cache: SyncStore,
        fetcher: RemoteWorklogFetcher,
        debug: bool = False,
    ):
        self.client = client
        self.cache = cache
        self.fetcher = fetcher
        self.debug = debug

    def synchronize(
        self,
        start: datetime,
        issue_keys: Sequence[str] = (),
        projects: Sequence[str] = (),
        all_users: bool = False,
        cancel: threading.Event | None = None,
    ) -> SyncSummary:
        """Pull worklogs started in [start, now) and upsert them. Never deletes."""
        return self._run(start, issue_keys, projects, all_users, cancel, prune=False)

    def reconcile(
        self,
        start: datetime,
        issue_keys: Sequence[str] = (),
        projects: Sequence[str] = (),
        all_users: bool = False,
        cancel: threading.Event | None = None,
    ) -> SyncSummary:
        """Like synchronize, then drop cached entries of the window that Jira no longer has.

        An issue is only pruned when all of its pages were fetched.
        """
        return self._run(start, issue_keys, projects, all_users, cancel, prune=True)

    def _run(
        self,
        start: datetime,
        issue_keys: Sequence[str],
        projects: Sequence[str],
        all_users: bool,
        cancel: threading.Event | None,
        prune: bool,
    ) -> SyncSummary:
        if start.tzinfo is None:
            start = start.astimezone()
        window_end = datetime.now(timezone.utc)
        if start >= window_end:
            raise BadInputError(
                f"Window start {start:%Y-%m-%d %H:%M} is not in the past", operation="synchronize"
            )

        summary = SyncSummary()
        summary.recovered = recover_pending_deletions(
            self.client, self.cache, summary.errors, debug=self.debug
        )

        me = self.client.get_myself()
        self.cache.add_user(me)
        if self.debug:
            print(f"    [DEBUG] Acting as {me.display_name} ({me.account_id})")

        scope = self.resolve_scope(start, issue_keys, projects, summary)
        if self.debug:
            print(f"    [DEBUG] {len(scope)} issues in scope: {', '.join(scope)}")

        for issue_key in scope:
            if cancel is not None and cancel.is_set():
                summary.cancelled = True
                break
            summary.issues.append(issue_key)
            remote_ids = self._sync_issue(
                issue_key, start, window_end, me, all_users, cancel, summary
            )
            if cancel is not None and cancel.is_set():
                summary.cancelled = True
                break
            if prune and remote_ids is not None:
                self._prune_issue(issue_key, start, remote_ids, summary)

        return summary

    def resolve_scope(
        self,
        start: datetime,
        issue_keys: Sequence[str],
        projects: Sequence[str],
        summary: SyncSummary,
    ) -> list[str]:
        """Issue keys to sync: explicit keys, project issues, or whatever is cached."""
        for key in issue_keys:
            if not Patterns.ISSUE_KEY.match(key):
                raise BadInputError(f"Invalid issue key '{key}'", operation="synchronize", entity_id=key)
        for key in projects:
            if not Patterns.PROJECT_KEY.match(key):
                raise BadInputError(f"Invalid project key '{key}'", operation="synchronize", entity_id=key)

        if not issue_keys and not projects:
            return self.cache.cached_issue_keys()

        keys = list(dict.fromkeys(issue_keys))
        if keys:
            try:
                for issue in self.client.search_issues(issue_keys=keys):
                    self.cache.add_issue(issue)
            except FATAL_ERRORS:
                raise
            except WorklogError as e:
                # Metadata only; the worklogs can still be pulled
                summary.errors.append(EntryError(",".join(keys), None, str(e)))

        if projects:
            for issue in self.client.search_issues(projects=list(projects), worked_since=start):
                self.cache.add_issue(issue)
                if issue.issue_key not in keys:
                    keys.append(issue.issue_key)
        return keys

    def _sync_issue(
        self,
        issue_key: str,
        start: datetime,
        window_end: datetime,
        me: User,
        all_users: bool,
        cancel: threading.Event | None,
        summary: SyncSummary,
    ) -> set[str] | None:
        """Apply one issue's remote worklogs. Returns the remote ids seen, or None
        when the issue could not be fetched completely."""
        remote_ids = set()
        try:
            worklogs = self.fetcher.fetch(issue_key, start, cancel)
        except BadInputError as e:
            summary.errors.append(EntryError(issue_key, None, str(e)))
            return None
        try:
            for worklog in worklogs:
                remote_ids.add(worklog.id)
                if start <= worklog.started < window_end:
                    self._apply(worklog, issue_key, me, all_users, summary)
        except FATAL_ERRORS:
            raise
        except WorklogError as e:
            if self.debug:
                print(f"    [DEBUG] {issue_key}: fetch failed: {e}")
            summary.errors.extend(worklogs.errors)
            summary.errors.append(EntryError(issue_key, None, str(e)))
            return None

        # Unparseable entries still exist in Jira and must not be pruned
        summary.errors.extend(worklogs.errors)
        for err in worklogs.errors:
            if err.worklog_id is None:
                return None
            remote_ids.add(err.worklog_id)
        if cancel is not None and cancel.is_set():
            return None
        return remote_ids

    def _apply(
        self,
        worklog: Worklog,
        issue_key: str,
        me: User,
        all_users: bool,
        summary: SyncSummary,
    ) -> None:
        if not all_users and worklog.author.account_id != me.account_id:
            return
        key = worklog.issue_key or issue_key
        try:
            if worklog.time_spent_seconds < 0:
                raise BadInputError(
                    f"Negative timeSpentSeconds {worklog.time_spent_seconds}",
                    operation="convert_worklog",
                    entity_id=worklog.id,
                )
            entry = LocalWorklog.from_worklog(worklog, key)
        except BadInputError as e:
            summary.errors.append(EntryError(key, worklog.id, str(e)))
            return

        # Store failures are fatal and propagate
        self.cache.ensure_issue(key, worklog.issue_id or None)
        outcome = self.cache.add_worklog(entry)
        summary.record(outcome)
        if self.debug and outcome != "unchanged":
            print(f"    [DEBUG] {key} worklog {worklog.id}: {outcome}")

    def _prune_issue(
        self, issue_key: str, start: datetime, remote_ids: set[str], summary: SyncSummary
    ) -> None:
        stale = sorted(self.cache.worklog_ids_since(issue_key, start) - remote_ids)
        if not stale:
            return
        if self.debug:
            print(f"    [DEBUG] {issue_key}: pruning {', '.join(stale)}")
        self.cache.remove_worklogs(stale)
        summary.pruned += len(stale)
