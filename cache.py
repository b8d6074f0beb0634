"""Local cache store: one facade over the repositories.

Services depend on the narrow capability protocols below, never on SQL or on
the concrete repositories, so tests can inject anything with the right shape.
"""

from datetime import datetime
from typing import Iterable, Protocol, Sequence

from database import StoreHandle
from models import Component, Issue, LocalWorklog, PendingDeletion, Timer, User
from repositories import (
    ComponentRepository,
    IssueRepository,
    PendingDeletionRepository,
    TimerRepository,
    UserRepository,
    WorklogRepository,
)

# ============================================================================
# Capabilities
# ============================================================================


class WorklogAdder(Protocol):
    def add_worklog(self, entry: LocalWorklog) -> str: ...


class WorklogRemover(Protocol):
    def remove_worklog(self, worklog_id: str) -> None: ...

    def remove_worklogs(self, worklog_ids: Sequence[str]) -> None: ...


class WorklogFinder(Protocol):
    def find_worklog(self, worklog_id: str) -> LocalWorklog | None: ...

    def find_worklogs_after(
        self, start: datetime, issue_keys: Sequence[str] = (), authors: Sequence[str] = ()
    ) -> list[LocalWorklog]: ...

    def worklog_ids_since(self, issue_key: str, start: datetime) -> set[str]: ...


class IssueAdder(Protocol):
    def add_issue(self, issue: Issue) -> None: ...

    def ensure_issue(self, issue_key: str, issue_id: str | None = None) -> bool: ...


class IssueFinder(Protocol):
    def find_issues(self, issue_keys: Sequence[str] = ()) -> list[Issue]: ...

    def cached_issue_keys(self) -> list[str]: ...


class UserAdder(Protocol):
    def add_user(self, user: User) -> None: ...


class PendingDeletionJournal(Protocol):
    def record_pending_deletion(self, pending: PendingDeletion) -> None: ...

    def complete_pending_deletion(self, worklog_id: str) -> None: ...

    def remove_pending_deletion(self, worklog_id: str) -> None: ...

    def pending_deletions(self) -> list[PendingDeletion]: ...


class SyncStore(
    WorklogAdder, WorklogRemover, WorklogFinder, IssueAdder, IssueFinder, UserAdder,
    PendingDeletionJournal, Protocol,
):
    """Everything the synchronizer needs from the cache."""


# ============================================================================
# Facade
# ============================================================================


class LocalCacheStore:
    """Domain operations on the local cache.

    The repositories all share one StoreHandle; each call acquires it for a
    single transaction or read.
    """

    def __init__(
        self,
        store: StoreHandle,
        worklogs: WorklogRepository | None = None,
        issues: IssueRepository | None = None,
        components: ComponentRepository | None = None,
        users: UserRepository | None = None,
        timers: TimerRepository | None = None,
        pending: PendingDeletionRepository | None = None,
    ):
        self.store = store
        self.worklogs = worklogs or WorklogRepository(store)
        self.issues = issues or IssueRepository(store)
        self.components = components or ComponentRepository(store)
        self.users = users or UserRepository(store)
        self.timers = timers or TimerRepository(store)
        self.pending = pending or PendingDeletionRepository(store)

    @classmethod
    def open(cls, path: str = ":memory:") -> "LocalCacheStore":
        return cls(StoreHandle(path))

    def close(self) -> None:
        self.store.close()

    # Worklogs

    def add_worklog(self, entry: LocalWorklog) -> str:
        return self.worklogs.add(entry)

    def add_worklogs(self, entries: Iterable[LocalWorklog]) -> list[str]:
        return self.worklogs.add_many(entries)

    def remove_worklog(self, worklog_id: str) -> None:
        self.worklogs.remove_by_id(worklog_id)

    def remove_worklogs(self, worklog_ids: Sequence[str]) -> None:
        self.worklogs.remove_many(worklog_ids)

    def find_worklog(self, worklog_id: str) -> LocalWorklog | None:
        return self.worklogs.find_by_id(worklog_id)

    def find_worklogs_after(
        self, start: datetime, issue_keys: Sequence[str] = (), authors: Sequence[str] = ()
    ) -> list[LocalWorklog]:
        return self.worklogs.find_after(start, issue_keys, authors)

    def worklog_ids_since(self, issue_key: str, start: datetime) -> set[str]:
        return self.worklogs.ids_for_issue_since(issue_key, start)

    def worklog_count(self) -> int:
        return self.worklogs.count()

    def purge_worklogs(self) -> None:
        self.worklogs.purge()

    # Issues and components

    def add_issue(self, issue: Issue) -> None:
        """Upsert an issue together with its components."""
        self.issues.add(issue)
        if issue.components:
            self.components.add_for_issue(issue.issue_key, issue.components)

    def ensure_issue(self, issue_key: str, issue_id: str | None = None) -> bool:
        return self.issues.ensure_exists(issue_key, issue_id)

    def remove_issue(self, issue_key: str) -> None:
        self.issues.remove_by_key(issue_key)

    def find_issues(self, issue_keys: Sequence[str] = ()) -> list[Issue]:
        """Issues with their components; all cached issues when no keys are given."""
        found = self.issues.find_by_keys(issue_keys) if issue_keys else self.issues.find_all()
        return [
            Issue(
                issue_key=issue.issue_key,
                summary=issue.summary,
                issue_id=issue.issue_id,
                components=tuple(self.components.find_for_issue(issue.issue_key)),
            )
            for issue in found
        ]

    def cached_issue_keys(self) -> list[str]:
        return self.issues.find_unique_keys()

    def find_components(self, issue_key: str) -> list[Component]:
        return self.components.find_for_issue(issue_key)

    def remove_component(self, component_id: str) -> None:
        self.components.remove_by_id(component_id)

    # Users

    def add_user(self, user: User) -> None:
        self.users.add(user)

    def current_user(self) -> User | None:
        return self.users.find_current()

    def find_user(self, account_id: str) -> User | None:
        return self.users.find_by_account_id(account_id)

    # Timers

    def start_timer(self, timer: Timer) -> int:
        return self.timers.start(timer)

    def active_timer(self) -> Timer | None:
        return self.timers.find_active()

    def stop_timer(self, stopped: datetime, comment: str | None = None) -> Timer:
        return self.timers.stop_active(stopped, comment)

    def update_timer(self, timer: Timer) -> None:
        self.timers.update(timer)

    def remove_timer(self, timer_id: int) -> None:
        self.timers.remove_by_id(timer_id)

    def find_timers_after(self, start: datetime) -> list[Timer]:
        return self.timers.find_after(start)

    def find_timers_for_issue(self, issue_key: str) -> list[Timer]:
        return self.timers.find_by_issue_key(issue_key)

    def unsynced_timers(self) -> list[Timer]:
        return self.timers.find_unsynced_completed()

    # Two-phase delete journal

    def record_pending_deletion(self, pending: PendingDeletion) -> None:
        self.pending.add(pending)

    def complete_pending_deletion(self, worklog_id: str) -> None:
        self.pending.complete(worklog_id)

    def remove_pending_deletion(self, worklog_id: str) -> None:
        self.pending.remove_by_id(worklog_id)

    def pending_deletions(self) -> list[PendingDeletion]:
        return self.pending.find_all()
