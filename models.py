"""Data models for the Jira worklog cache."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta


@dataclass(frozen=True)
class Author:
    """The Jira user who wrote a worklog."""

    account_id: str
    display_name: str
    email_address: str | None = None


@dataclass(frozen=True)
class Worklog:
    """A worklog entry as Jira reports it. Jira is the source of truth."""

    id: str
    issue_id: str
    author: Author
    created: datetime
    updated: datetime
    started: datetime
    time_spent: str  # Jira's own rendering, e.g. "1h 30m"
    time_spent_seconds: int
    comment: str | None = None
    issue_key: str | None = None  # Not in the payload; set by whoever fetched it


@dataclass(frozen=True)
class WorklogPage:
    """One page of GET /issue/{key}/worklog."""

    start_at: int
    max_results: int
    total: int
    worklogs: list[Worklog]
    is_last: bool | None = None
    errors: list["EntryError"] = field(default_factory=list)  # entries that could not be parsed


@dataclass(frozen=True)
class LocalWorklog:
    """Cached projection of a Worklog, timestamps in local time."""

    id: str
    issue_key: str
    issue_id: str | None
    author: str  # display name
    created: datetime
    updated: datetime
    started: datetime
    time_spent: str
    time_spent_seconds: int
    comment: str | None = None

    @classmethod
    def from_worklog(cls, worklog: Worklog, issue_key: str) -> "LocalWorklog":
        return cls(
            id=worklog.id,
            issue_key=issue_key,
            issue_id=worklog.issue_id,
            author=worklog.author.display_name,
            created=worklog.created.astimezone(),
            updated=worklog.updated.astimezone(),
            started=worklog.started.astimezone(),
            time_spent=worklog.time_spent,
            time_spent_seconds=worklog.time_spent_seconds,
            comment=worklog.comment,
        )


@dataclass(frozen=True)
class Component:
    id: str
    name: str


@dataclass(frozen=True)
class Issue:
    """A Jira issue. Only the key is required; the rest is filled in lazily."""

    issue_key: str
    summary: str = ""
    issue_id: str | None = None
    components: tuple[Component, ...] = ()


@dataclass(frozen=True)
class User:
    account_id: str
    display_name: str
    email: str | None = None
    timezone: str | None = None


@dataclass
class Timer:
    """An in-progress, not yet submitted worklog. Active while stopped is None."""

    issue_key: str
    started: datetime
    created: datetime
    id: int | None = None
    stopped: datetime | None = None
    synced: bool = False
    comment: str | None = None

    @property
    def is_active(self) -> bool:
        return self.stopped is None

    def duration(self) -> timedelta | None:
        if self.stopped is None:
            return None
        return self.stopped - self.started


@dataclass(frozen=True)
class PendingDeletion:
    """A worklog deleted in Jira whose cache row has not been removed yet."""

    worklog_id: str
    issue_key: str
    recorded_at: datetime


@dataclass(frozen=True)
class EntryError:
    """A single worklog or issue that could not be fetched or stored."""

    issue_key: str
    worklog_id: str | None
    message: str


@dataclass
class SyncSummary:
    """Outcome of one synchronize or reconcile run."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    pruned: int = 0
    recovered: int = 0
    issues: list[str] = field(default_factory=list)
    errors: list[EntryError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.unchanged

    def record(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


@dataclass
class SyncConfig:
    """Configuration for sync behavior."""

    db_path: str = "~/.jira_worklog/worklog.db"
    timeout_s: float = 30.0
    max_retries: int = 3
    retry_delay_s: float = 1.0
    page_size: int = 5000
    default_days: int = 30
    work_hours_per_day: float = 7.5
    work_days_per_week: float = 5.0
