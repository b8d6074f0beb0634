"""Shared sqlite3 handle for the local worklog cache.

One connection per process, guarded by a lock. Every repository call acquires
the handle for the duration of a single transaction or read and releases it
before returning, so nothing holds the store across a network call.
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from errors import LockPoisonedError, SqlError

SCHEMA = """
CREATE TABLE IF NOT EXISTS issue (
    issue_key TEXT PRIMARY KEY NOT NULL,
    issue_id TEXT,
    summary TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS worklog (
    id TEXT PRIMARY KEY NOT NULL,
    issue_key TEXT NOT NULL,
    issue_id TEXT,
    author TEXT NOT NULL,
    created TEXT NOT NULL,
    updated TEXT NOT NULL,
    started TEXT NOT NULL,
    time_spent TEXT,
    time_spent_seconds INTEGER NOT NULL CHECK (time_spent_seconds >= 0),
    comment TEXT,
    FOREIGN KEY (issue_key) REFERENCES issue(issue_key) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_worklog_started ON worklog (started);
CREATE INDEX IF NOT EXISTS idx_worklog_issue_key ON worklog (issue_key);

CREATE TABLE IF NOT EXISTS component (
    id TEXT PRIMARY KEY NOT NULL,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS issue_component (
    id INTEGER PRIMARY KEY NOT NULL,
    key TEXT NOT NULL,
    component_id TEXT NOT NULL,
    FOREIGN KEY (key) REFERENCES issue(issue_key) ON DELETE CASCADE,
    FOREIGN KEY (component_id) REFERENCES component(id) ON DELETE CASCADE,
    UNIQUE (key, component_id)
);

CREATE TABLE IF NOT EXISTS user (
    account_id TEXT PRIMARY KEY NOT NULL,
    email TEXT UNIQUE,
    display_name TEXT NOT NULL,
    timezone TEXT
);

CREATE TABLE IF NOT EXISTS timer (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_key TEXT NOT NULL,
    created TEXT NOT NULL,
    started TEXT NOT NULL,
    stopped TEXT,
    synced INTEGER NOT NULL DEFAULT 0,
    comment TEXT,
    FOREIGN KEY (issue_key) REFERENCES issue(issue_key) ON DELETE CASCADE
);

-- At most one running timer
CREATE UNIQUE INDEX IF NOT EXISTS idx_single_active_timer
    ON timer ((stopped IS NULL)) WHERE stopped IS NULL;

-- Worklogs deleted in Jira whose cache row is not removed yet
CREATE TABLE IF NOT EXISTS pending_deletion (
    worklog_id TEXT PRIMARY KEY NOT NULL,
    issue_key TEXT NOT NULL,
    recorded_at TEXT NOT NULL
);
"""


def to_db_timestamp(value: datetime) -> str:
    """Store timestamps in UTC with fixed precision so text order is time order."""
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: str | None) -> datetime | None:
    """Read a stored timestamp back in local time."""
    if value is None:
        return None
    return datetime.fromisoformat(value).astimezone()


class StoreHandle:
    """The single shared connection to the cache database."""

    def __init__(self, path: str = ":memory:"):
        self.path = path
        self._lock = threading.RLock()
        self._poisoned = False
        try:
            self._connection = sqlite3.connect(
                path, check_same_thread=False, isolation_level=None
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise SqlError(f"Unable to open database {path}: {e}", operation="open") from e
        self.assert_foreign_keys()
        self.create_schema()

    def assert_foreign_keys(self) -> None:
        """Refuse to run against a connection that does not enforce foreign keys."""
        with self.read("assert_foreign_keys") as conn:
            enabled = conn.execute("PRAGMA foreign_keys").fetchone()[0]
        if enabled != 1:
            raise SqlError(
                f"Foreign key enforcement is disabled for {self.path}",
                operation="assert_foreign_keys",
            )

    def create_schema(self) -> None:
        """CREATE ... IF NOT EXISTS only; safe to call on an initialized store."""
        with self._acquire("create_schema"):
            try:
                self._connection.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise SqlError(
                    f"Unable to create database schema: {e}", operation="create_schema"
                ) from e

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    @contextmanager
    def _acquire(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self._poisoned:
                raise LockPoisonedError(
                    "Store handle is unusable after an interrupted transaction",
                    operation=operation,
                )
            yield

    @contextmanager
    def transaction(
        self, operation: str, entity_id: str | None = None
    ) -> Iterator[sqlite3.Connection]:
        """Run a write transaction; commit on success, roll back on any error."""
        with self._acquire(operation):
            conn = self._connection
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise SqlError(
                    f"Unable to begin transaction: {e}",
                    operation=operation,
                    entity_id=entity_id,
                ) from e
            try:
                yield conn
            except sqlite3.Error as e:
                self._rollback(operation)
                raise SqlError(str(e), operation=operation, entity_id=entity_id) from e
            except Exception:
                self._rollback(operation)
                raise
            except BaseException:
                # Interrupted mid-transaction (KeyboardInterrupt, SystemExit)
                self._poisoned = True
                raise
            else:
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error as e:
                    self._rollback(operation)
                    raise SqlError(
                        f"Commit failed: {e}", operation=operation, entity_id=entity_id
                    ) from e

    @contextmanager
    def read(
        self, operation: str, entity_id: str | None = None
    ) -> Iterator[sqlite3.Connection]:
        """Read committed state. Never overlaps a running transaction."""
        with self._acquire(operation):
            try:
                yield self._connection
            except sqlite3.Error as e:
                raise SqlError(str(e), operation=operation, entity_id=entity_id) from e

    def _rollback(self, operation: str) -> None:
        try:
            self._connection.execute("ROLLBACK")
        except sqlite3.Error as e:
            self._poisoned = True
            raise LockPoisonedError(f"Rollback failed: {e}", operation=operation) from e

    def close(self) -> None:
        with self._lock:
            self._connection.close()
