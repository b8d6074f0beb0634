"""Per-entity repositories over the shared StoreHandle.

Every add is an idempotent upsert on the natural key, every remove is
idempotent, and every mutation runs in its own transaction.
"""

import sqlite3
from datetime import datetime
from typing import Iterable, Sequence

from database import StoreHandle, from_db_timestamp, to_db_timestamp
from errors import ActiveTimerExistsError, NoActiveTimerError
from models import Component, Issue, LocalWorklog, PendingDeletion, Timer, User

INSERTED = "inserted"
UPDATED = "updated"
UNCHANGED = "unchanged"


def _placeholders(values: Sequence) -> str:
    return ", ".join("?" for _ in values)


class IssueRepository:
    def __init__(self, store: StoreHandle):
        self.store = store

    def add(self, issue: Issue) -> None:
        """Insert or update; an empty summary never overwrites a known one."""
        with self.store.transaction("add_issue", issue.issue_key) as conn:
            conn.execute(
                """
                INSERT INTO issue (issue_key, issue_id, summary) VALUES (?, ?, ?)
                ON CONFLICT(issue_key) DO UPDATE SET
                    issue_id = COALESCE(excluded.issue_id, issue.issue_id),
                    summary = CASE WHEN excluded.summary != ''
                                   THEN excluded.summary ELSE issue.summary END
                """,
                (issue.issue_key, issue.issue_id, issue.summary),
            )

    def ensure_exists(self, issue_key: str, issue_id: str | None = None) -> bool:
        """Create a minimal issue row if missing. Returns True if it was created."""
        with self.store.transaction("ensure_issue", issue_key) as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO issue (issue_key, issue_id, summary) VALUES (?, ?, '')",
                (issue_key, issue_id),
            )
            return cursor.rowcount == 1

    def remove_by_key(self, issue_key: str) -> None:
        """Delete an issue; its worklogs, timers and component links go with it."""
        with self.store.transaction("remove_issue", issue_key) as conn:
            conn.execute("DELETE FROM issue WHERE issue_key = ?", (issue_key,))

    def find_by_keys(self, issue_keys: Sequence[str]) -> list[Issue]:
        if not issue_keys:
            return []
        with self.store.read("find_issues") as conn:
            rows = conn.execute(
                f"SELECT * FROM issue WHERE issue_key IN ({_placeholders(issue_keys)}) "
                "ORDER BY issue_key",
                list(issue_keys),
            ).fetchall()
        return [self._row_to_issue(row) for row in rows]

    def find_all(self) -> list[Issue]:
        with self.store.read("find_issues") as conn:
            rows = conn.execute("SELECT * FROM issue ORDER BY issue_key").fetchall()
        return [self._row_to_issue(row) for row in rows]

    def find_unique_keys(self) -> list[str]:
        """Keys of issues that have at least one cached worklog."""
        with self.store.read("find_unique_keys") as conn:
            rows = conn.execute(
                "SELECT DISTINCT issue_key FROM worklog ORDER BY issue_key"
            ).fetchall()
        return [row["issue_key"] for row in rows]

    def _row_to_issue(self, row: sqlite3.Row) -> Issue:
        return Issue(issue_key=row["issue_key"], summary=row["summary"], issue_id=row["issue_id"])


class WorklogRepository:
    COLUMNS = (
        "id, issue_key, issue_id, author, created, updated, started, "
        "time_spent, time_spent_seconds, comment"
    )

    def __init__(self, store: StoreHandle):
        self.store = store

    def add(self, entry: LocalWorklog) -> str:
        """Upsert on worklog id. Returns 'inserted', 'updated' or 'unchanged'."""
        with self.store.transaction("add_worklog", entry.id) as conn:
            return self._upsert(conn, entry)

    def add_many(self, entries: Iterable[LocalWorklog]) -> list[str]:
        """Upsert several entries in one transaction; all or nothing."""
        with self.store.transaction("add_worklogs") as conn:
            return [self._upsert(conn, entry) for entry in entries]

    def _upsert(self, conn: sqlite3.Connection, entry: LocalWorklog) -> str:
        row = conn.execute(
            f"SELECT {self.COLUMNS} FROM worklog WHERE id = ?", (entry.id,)
        ).fetchone()
        if row is not None and self._row_to_worklog(row) == entry:
            return UNCHANGED
        conn.execute(
            f"""
            INSERT INTO worklog ({self.COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                issue_key = excluded.issue_key,
                issue_id = excluded.issue_id,
                author = excluded.author,
                created = excluded.created,
                updated = excluded.updated,
                started = excluded.started,
                time_spent = excluded.time_spent,
                time_spent_seconds = excluded.time_spent_seconds,
                comment = excluded.comment
            """,
            (
                entry.id,
                entry.issue_key,
                entry.issue_id,
                entry.author,
                to_db_timestamp(entry.created),
                to_db_timestamp(entry.updated),
                to_db_timestamp(entry.started),
                entry.time_spent,
                entry.time_spent_seconds,
                entry.comment,
            ),
        )
        return INSERTED if row is None else UPDATED

    def remove_by_id(self, worklog_id: str) -> None:
        """Delete by id. Deleting an unknown id is not an error."""
        with self.store.transaction("remove_worklog", worklog_id) as conn:
            conn.execute("DELETE FROM worklog WHERE id = ?", (worklog_id,))

    def remove_many(self, worklog_ids: Sequence[str]) -> None:
        if not worklog_ids:
            return
        with self.store.transaction("remove_worklogs") as conn:
            conn.executemany(
                "DELETE FROM worklog WHERE id = ?",
                [(worklog_id,) for worklog_id in worklog_ids],
            )

    def find_by_id(self, worklog_id: str) -> LocalWorklog | None:
        with self.store.read("find_worklog", worklog_id) as conn:
            row = conn.execute(
                f"SELECT {self.COLUMNS} FROM worklog WHERE id = ?", (worklog_id,)
            ).fetchone()
        return self._row_to_worklog(row) if row else None

    def find_after(
        self,
        start: datetime,
        issue_keys: Sequence[str] = (),
        authors: Sequence[str] = (),
    ) -> list[LocalWorklog]:
        """Worklogs started at or after start, optionally filtered by issue and author."""
        query = f"SELECT {self.COLUMNS} FROM worklog WHERE started >= ?"
        params: list[object] = [to_db_timestamp(start)]
        if issue_keys:
            query += f" AND issue_key IN ({_placeholders(issue_keys)})"
            params.extend(issue_keys)
        if authors:
            query += f" AND author IN ({_placeholders(authors)})"
            params.extend(authors)
        query += " ORDER BY started, id"
        with self.store.read("find_worklogs_after") as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_worklog(row) for row in rows]

    def ids_for_issue_since(self, issue_key: str, start: datetime) -> set[str]:
        with self.store.read("worklog_ids_for_issue", issue_key) as conn:
            rows = conn.execute(
                "SELECT id FROM worklog WHERE issue_key = ? AND started >= ?",
                (issue_key, to_db_timestamp(start)),
            ).fetchall()
        return {row["id"] for row in rows}

    def count(self) -> int:
        with self.store.read("count_worklogs") as conn:
            return conn.execute("SELECT COUNT(*) FROM worklog").fetchone()[0]

    def purge(self) -> None:
        """Drop the entire local worklog cache. Jira can rebuild it."""
        with self.store.transaction("purge_worklogs") as conn:
            conn.execute("DELETE FROM worklog")

    def _row_to_worklog(self, row: sqlite3.Row) -> LocalWorklog:
        return LocalWorklog(
            id=row["id"],
            issue_key=row["issue_key"],
            issue_id=row["issue_id"],
            author=row["author"],
            created=from_db_timestamp(row["created"]),
            updated=from_db_timestamp(row["updated"]),
            started=from_db_timestamp(row["started"]),
            time_spent=row["time_spent"],
            time_spent_seconds=row["time_spent_seconds"],
            comment=row["comment"],
        )


class ComponentRepository:
    def __init__(self, store: StoreHandle):
        self.store = store

    def add_for_issue(self, issue_key: str, components: Sequence[Component]) -> None:
        """Upsert components by id and link them to the issue (links are never duplicated)."""
        if not components:
            return
        with self.store.transaction("add_components", issue_key) as conn:
            conn.executemany(
                """
                INSERT INTO component (id, name) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name
                """,
                [(c.id, c.name) for c in components],
            )
            conn.executemany(
                "INSERT OR IGNORE INTO issue_component (key, component_id) VALUES (?, ?)",
                [(issue_key, c.id) for c in components],
            )

    def remove_by_id(self, component_id: str) -> None:
        with self.store.transaction("remove_component", component_id) as conn:
            conn.execute("DELETE FROM component WHERE id = ?", (component_id,))

    def find_for_issue(self, issue_key: str) -> list[Component]:
        with self.store.read("find_components", issue_key) as conn:
            rows = conn.execute(
                """
                SELECT component.id, component.name FROM component
                JOIN issue_component ON issue_component.component_id = component.id
                WHERE issue_component.key = ?
                ORDER BY component.name
                """,
                (issue_key,),
            ).fetchall()
        return [Component(id=row["id"], name=row["name"]) for row in rows]

    def find_all(self) -> list[Component]:
        with self.store.read("find_components") as conn:
            rows = conn.execute("SELECT id, name FROM component ORDER BY name").fetchall()
        return [Component(id=row["id"], name=row["name"]) for row in rows]


class UserRepository:
    def __init__(self, store: StoreHandle):
        self.store = store

    def add(self, user: User) -> None:
        """Insert or refresh a user seen in Jira."""
        with self.store.transaction("add_user", user.account_id) as conn:
            conn.execute(
                """
                INSERT INTO user (account_id, email, display_name, timezone)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                    email = excluded.email,
                    display_name = excluded.display_name,
                    timezone = excluded.timezone
                """,
                (user.account_id, user.email, user.display_name, user.timezone),
            )

    def find_by_account_id(self, account_id: str) -> User | None:
        with self.store.read("find_user", account_id) as conn:
            row = conn.execute(
                "SELECT * FROM user WHERE account_id = ?", (account_id,)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def find_current(self) -> User | None:
        """The single user this cache was synced for, or None if unknown or ambiguous."""
        with self.store.read("find_current_user") as conn:
            rows = conn.execute("SELECT * FROM user LIMIT 2").fetchall()
        if len(rows) != 1:
            return None
        return self._row_to_user(rows[0])

    def find_all(self) -> list[User]:
        with self.store.read("find_users") as conn:
            rows = conn.execute("SELECT * FROM user ORDER BY display_name").fetchall()
        return [self._row_to_user(row) for row in rows]

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            account_id=row["account_id"],
            display_name=row["display_name"],
            email=row["email"],
            timezone=row["timezone"],
        )


class TimerRepository:
    COLUMNS = "id, issue_key, created, started, stopped, synced, comment"

    def __init__(self, store: StoreHandle):
        self.store = store

    def start(self, timer: Timer) -> int:
        """Persist a new active timer and return its id."""
        with self.store.transaction("start_timer", timer.issue_key) as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO timer (issue_key, created, started, stopped, synced, comment)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        timer.issue_key,
                        to_db_timestamp(timer.created),
                        to_db_timestamp(timer.started),
                        to_db_timestamp(timer.stopped) if timer.stopped else None,
                        int(timer.synced),
                        timer.comment,
                    ),
                )
            except sqlite3.IntegrityError as e:
                if "idx_single_active_timer" in str(e):
                    raise ActiveTimerExistsError(
                        "A timer is already running", operation="start_timer"
                    ) from e
                raise
            return cursor.lastrowid

    def find_active(self) -> Timer | None:
        with self.store.read("find_active_timer") as conn:
            row = conn.execute(
                f"SELECT {self.COLUMNS} FROM timer WHERE stopped IS NULL"
            ).fetchone()
        return self._row_to_timer(row) if row else None

    def stop_active(self, stopped: datetime, comment: str | None = None) -> Timer:
        """Stop the running timer; a new comment replaces the old one."""
        with self.store.transaction("stop_timer") as conn:
            row = conn.execute(
                f"SELECT {self.COLUMNS} FROM timer WHERE stopped IS NULL"
            ).fetchone()
            if row is None:
                raise NoActiveTimerError("No timer is running", operation="stop_timer")
            timer = self._row_to_timer(row)
            timer.stopped = stopped
            if comment is not None:
                timer.comment = comment
            conn.execute(
                "UPDATE timer SET stopped = ?, comment = ? WHERE id = ?",
                (to_db_timestamp(stopped), timer.comment, timer.id),
            )
        return timer

    def find_after(self, start: datetime) -> list[Timer]:
        with self.store.read("find_timers") as conn:
            rows = conn.execute(
                f"SELECT {self.COLUMNS} FROM timer WHERE started >= ? ORDER BY started DESC",
                (to_db_timestamp(start),),
            ).fetchall()
        return [self._row_to_timer(row) for row in rows]

    def find_unsynced_completed(self) -> list[Timer]:
        with self.store.read("find_unsynced_timers") as conn:
            rows = conn.execute(
                f"SELECT {self.COLUMNS} FROM timer "
                "WHERE stopped IS NOT NULL AND synced = 0 ORDER BY started"
            ).fetchall()
        return [self._row_to_timer(row) for row in rows]

    def find_by_issue_key(self, issue_key: str) -> list[Timer]:
        with self.store.read("find_timers", issue_key) as conn:
            rows = conn.execute(
                f"SELECT {self.COLUMNS} FROM timer WHERE issue_key = ? ORDER BY started DESC",
                (issue_key,),
            ).fetchall()
        return [self._row_to_timer(row) for row in rows]

    def update(self, timer: Timer) -> None:
        with self.store.transaction("update_timer", str(timer.id)) as conn:
            conn.execute(
                """
                UPDATE timer SET issue_key = ?, created = ?, started = ?, stopped = ?,
                    synced = ?, comment = ?
                WHERE id = ?
                """,
                (
                    timer.issue_key,
                    to_db_timestamp(timer.created),
                    to_db_timestamp(timer.started),
                    to_db_timestamp(timer.stopped) if timer.stopped else None,
                    int(timer.synced),
                    timer.comment,
                    timer.id,
                ),
            )

    def remove_by_id(self, timer_id: int) -> None:
        with self.store.transaction("remove_timer", str(timer_id)) as conn:
            conn.execute("DELETE FROM timer WHERE id = ?", (timer_id,))

    def _row_to_timer(self, row: sqlite3.Row) -> Timer:
        return Timer(
            id=row["id"],
            issue_key=row["issue_key"],
            created=from_db_timestamp(row["created"]),
            started=from_db_timestamp(row["started"]),
            stopped=from_db_timestamp(row["stopped"]),
            synced=bool(row["synced"]),
            comment=row["comment"],
        )


class PendingDeletionRepository:
    """Journal of two-phase deletes: remote done, local cache row still pending."""

    def __init__(self, store: StoreHandle):
        self.store = store

    def add(self, pending: PendingDeletion) -> None:
        with self.store.transaction("record_pending_deletion", pending.worklog_id) as conn:
            conn.execute(
                """
                INSERT INTO pending_deletion (worklog_id, issue_key, recorded_at)
                VALUES (?, ?, ?)
                ON CONFLICT(worklog_id) DO NOTHING
                """,
                (pending.worklog_id, pending.issue_key, to_db_timestamp(pending.recorded_at)),
            )

    def complete(self, worklog_id: str) -> None:
        """Remove the cache row and the journal entry in one transaction."""
        with self.store.transaction("complete_pending_deletion", worklog_id) as conn:
            conn.execute("DELETE FROM worklog WHERE id = ?", (worklog_id,))
            conn.execute("DELETE FROM pending_deletion WHERE worklog_id = ?", (worklog_id,))

    def remove_by_id(self, worklog_id: str) -> None:
        with self.store.transaction("remove_pending_deletion", worklog_id) as conn:
            conn.execute("DELETE FROM pending_deletion WHERE worklog_id = ?", (worklog_id,))

    def find_all(self) -> list[PendingDeletion]:
        with self.store.read("find_pending_deletions") as conn:
            rows = conn.execute(
                "SELECT * FROM pending_deletion ORDER BY recorded_at"
            ).fetchall()
        return [
            PendingDeletion(
                worklog_id=row["worklog_id"],
                issue_key=row["issue_key"],
                recorded_at=from_db_timestamp(row["recorded_at"]),
            )
            for row in rows
        ]
