"""Timers and direct worklog submission.

A timer is a worklog in progress: started with `start`, ended with `stop`,
and turned into a Jira worklog on submission. At most one timer runs at a
time; the store enforces that with a unique index.
"""

from datetime import datetime, timedelta
from typing import Protocol

from errors import ActiveTimerExistsError, BadInputError, NoActiveTimerError
from models import Issue, LocalWorklog, SyncConfig, Timer, Worklog
from patterns import Patterns
from utils import (
    calculate_started_time,
    parse_duration,
    parse_weekday_duration,
    seconds_to_hour_and_min,
)

# Jira rejects worklogs shorter than a minute
MIN_TIMER_SECONDS = 60


class TimerClient(Protocol):
    def get_issue(self, issue_key: str) -> Issue: ...

    def insert_worklog(
        self, issue_key: str, started: datetime, time_spent_seconds: int, comment: str = ""
    ) -> Worklog: ...


def _check_issue_key(issue_key: str, operation: str) -> None:
    if not Patterns.ISSUE_KEY.match(issue_key):
        raise BadInputError(f"Invalid issue key '{issue_key}'", operation=operation, entity_id=issue_key)


class TimerService:
    def __init__(self, client: TimerClient, cache, sync_config: SyncConfig | None = None, debug: bool = False):
        self.client = client
        self.cache = cache
        self.sync_config = sync_config or SyncConfig()
        self.debug = debug

    def start(
        self,
        issue_key: str,
        started: datetime | None = None,
        comment: str | None = None,
        now: datetime | None = None,
    ) -> Timer:
        """Start a timer on an issue that exists in Jira."""
        _check_issue_key(issue_key, "start_timer")
        active = self.cache.active_timer()
        if active is not None:
            raise ActiveTimerExistsError(
                f"Timer on {active.issue_key} running since {active.started:%Y-%m-%d %H:%M}",
                operation="start_timer",
                entity_id=str(active.id),
            )

        # Fails with NotFoundError for unknown issues
        issue = self.client.get_issue(issue_key)
        self.cache.add_issue(issue)

        now = now or datetime.now().astimezone()
        timer = Timer(issue_key=issue.issue_key, started=started or now, created=now, comment=comment)
        timer.id = self.cache.start_timer(timer)
        return timer

    def stop(
        self,
        stopped: datetime | None = None,
        comment: str | None = None,
        submit: bool = True,
    ) -> Timer:
        """Stop the running timer and, unless told otherwise, submit it to Jira."""
        active = self.cache.active_timer()
        if active is None:
            raise NoActiveTimerError("No timer is running", operation="stop_timer")
        stopped = stopped or datetime.now().astimezone()
        elapsed = (stopped - active.started).total_seconds()
        if elapsed < MIN_TIMER_SECONDS:
            raise BadInputError(
                f"Timer ran {int(elapsed)}s; at least {MIN_TIMER_SECONDS}s needed. "
                "Discard it instead.",
                operation="stop_timer",
                entity_id=str(active.id),
            )
        timer = self.cache.stop_timer(stopped, comment)
        if submit:
            self.submit_timer(timer)
        return timer

    def discard(self) -> Timer:
        active = self.cache.active_timer()
        if active is None:
            raise NoActiveTimerError("No timer to discard", operation="discard_timer")
        self.cache.remove_timer(active.id)
        return active

    def status(self, now: datetime | None = None) -> tuple[Timer, timedelta] | None:
        """The running timer and how long it has been running."""
        active = self.cache.active_timer()
        if active is None:
            return None
        now = now or datetime.now().astimezone()
        return active, now - active.started

    def submit_timer(self, timer: Timer) -> Worklog:
        """Post a stopped timer as a worklog, cache it and mark the timer synced."""
        duration = timer.duration()
        if duration is None:
            raise BadInputError(
                "Cannot submit a running timer", operation="submit_timer", entity_id=str(timer.id)
            )
        worklog = self.client.insert_worklog(
            timer.issue_key, timer.started, int(duration.total_seconds()), timer.comment or ""
        )
        self._cache_worklog(worklog, timer.issue_key)
        timer.synced = True
        self.cache.update_timer(timer)
        if self.debug:
            print(f"    [DEBUG] Timer {timer.id} -> worklog {worklog.id} on {timer.issue_key}")
        return worklog

    def submit_pending(self) -> list[Worklog]:
        """Submit every stopped timer that has not reached Jira yet."""
        return [self.submit_timer(timer) for timer in self.cache.unsynced_timers()]

    def total_time(self, issue_key: str) -> timedelta:
        """Time recorded by stopped timers on an issue."""
        total = timedelta()
        for timer in self.cache.find_timers_for_issue(issue_key):
            duration = timer.duration()
            if duration is not None:
                total += duration
        return total

    def log_work(
        self,
        issue_key: str,
        duration: str,
        started: datetime | None = None,
        comment: str = "",
        now: datetime | None = None,
    ) -> Worklog:
        """Add a worklog directly, e.g. log_work("TIME-1", "1h30m")."""
        return self.log_work_entries(issue_key, [duration], started, comment, now)[0]

    def log_work_entries(
        self,
        issue_key: str,
        durations: list[str],
        started: datetime | None = None,
        comment: str = "",
        now: datetime | None = None,
    ) -> list[Worklog]:
        """Add one worklog per duration.

        A duration prefixed with a weekday ("Mon:1,5h Tue:1d") starts at 08:00
        on the most recent such day, today included; a plain one ("1h30m")
        starts at started, or ends now. Every entry is checked before the
        first one is submitted.
        """
        _check_issue_key(issue_key, "log_work")
        if not durations:
            raise BadInputError("No duration given", operation="log_work", entity_id=issue_key)
        now = now or datetime.now().astimezone()
        hours = self.sync_config.work_hours_per_day
        days = self.sync_config.work_days_per_week

        planned = []
        for duration in durations:
            if Patterns.WEEKDAY_DURATION.match(duration.strip()):
                start, seconds = parse_weekday_duration(duration, now, hours, days)
            else:
                start, seconds = started, parse_duration(duration, hours, days)
            planned.append((calculate_started_time(start, seconds, now), seconds))

        worklogs = []
        for start, seconds in planned:
            if self.debug:
                print(f"    [DEBUG] {issue_key}: {seconds_to_hour_and_min(seconds)} from {start:%Y-%m-%d %H:%M}")
            worklog = self.client.insert_worklog(issue_key, start, seconds, comment)
            self._cache_worklog(worklog, issue_key)
            worklogs.append(worklog)
        return worklogs

    def _cache_worklog(self, worklog: Worklog, issue_key: str) -> None:
        self.cache.ensure_issue(issue_key, worklog.issue_id or None)
        self.cache.add_worklog(LocalWorklog.from_worklog(worklog, issue_key))
