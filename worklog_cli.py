"""
Track Jira worklogs with a local cache.

Usage:
    # Pull your worklogs of the last 30 days for the issues already cached
    python worklog_cli.py sync

    # Pull from a date, for specific issues or whole projects
    python worklog_cli.py sync --start 2026-01-01 --issues TIME-1 TIME-2 --projects OPS

    # Also drop cached worklogs that were deleted in Jira
    python worklog_cli.py reconcile --start 2026-01-01

    # Log work, delete a worklog
    python worklog_cli.py add TIME-1 1h30m --start 2026-01-29T09:00 -c "Review"
    python worklog_cli.py add TIME-1 Mon:1,5h Tue:1d Wed:3,5h
    python worklog_cli.py del 10001

    # List a project's issues from Jira
    python worklog_cli.py issues --projects TIME

    # Timers
    python worklog_cli.py start TIME-1
    python worklog_cli.py stop -c "Done"
"""

import argparse
import signal
import threading
from datetime import datetime

from cache import LocalCacheStore
from clients import JiraClient
from errors import BadInputError, WorklogError
from fetcher import RemoteWorklogFetcher
from ownership import WorklogDeleter
from patterns import Patterns
from synchronizer import Synchronizer
from timers import TimerService
from utils import (
    CONFIG_FILE,
    database_path,
    default_window_start,
    get_week_start,
    load_config_safe,
    parse_date_time,
    seconds_to_hour_and_min,
    sync_config_from,
)


class App:
    """Wires config, client, cache and services together for one CLI run."""

    def __init__(self, config: dict, debug: bool = False):
        self.sync_config = sync_config_from(config)
        self.client = JiraClient(config, self.sync_config)
        self.cache = LocalCacheStore.open(database_path(self.sync_config))
        self.debug = debug

    def synchronizer(self) -> Synchronizer:
        fetcher = RemoteWorklogFetcher(self.client, self.sync_config.page_size, debug=self.debug)
        return Synchronizer(self.client, self.cache, fetcher, debug=self.debug)

    def timers(self) -> TimerService:
        return TimerService(self.client, self.cache, self.sync_config, debug=self.debug)

    def deleter(self) -> WorklogDeleter:
        return WorklogDeleter(self.client, self.cache, debug=self.debug)

    def window_start(self, value: str | None) -> datetime:
        if value:
            return parse_date_time(value)
        return default_window_start(self.sync_config.default_days)

    def close(self) -> None:
        self.cache.close()


# ============================================================================
# Commands
# ============================================================================


def cmd_sync(app: App, args) -> int:
    start = app.window_start(args.start)
    mode = "RECONCILE" if args.command == "reconcile" else "SYNC"

    print()
    print("=" * 70)
    print(f"{mode} JIRA WORKLOGS | From {start:%Y-%m-%d %H:%M}")
    print("=" * 70)
    print()

    # Ctrl-C stops after the current page; everything applied so far stays committed
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        synchronizer = app.synchronizer()
        run = synchronizer.reconcile if args.command == "reconcile" else synchronizer.synchronize
        summary = run(
            start,
            issue_keys=args.issues or (),
            projects=args.projects or (),
            all_users=args.all_users,
            cancel=cancel,
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    if summary.recovered:
        print(f"[*] Finished {summary.recovered} interrupted deletes")
    if not summary.issues and not summary.cancelled:
        print("[*] No issues to sync. Pass --issues or --projects.")
    print(f"[*] Issues: {len(summary.issues)}")
    print(
        f"[+] Inserted: {summary.inserted}, Updated: {summary.updated}, "
        f"Unchanged: {summary.unchanged}"
    )
    if args.command == "reconcile":
        print(f"[+] Pruned: {summary.pruned}")
    for err in summary.errors:
        where = f"{err.issue_key} worklog {err.worklog_id}" if err.worklog_id else err.issue_key
        print(f"[!] {where}: {err.message}")
    if summary.cancelled:
        print("[!] Cancelled. The cache holds everything synced up to this point.")
        return 130
    return 1 if summary.errors else 0


def cmd_list(app: App, args) -> int:
    start = parse_date_time(args.start) if args.start else get_week_start(datetime.now().astimezone())
    worklogs = app.cache.find_worklogs_after(start, args.issues or ())
    print(f"[*] Worklogs since {start:%Y-%m-%d}:")
    total = 0
    for wl in worklogs:
        comment = wl.comment.splitlines()[0] if wl.comment else ""
        print(
            f"    {wl.started:%Y-%m-%d %H:%M} | {seconds_to_hour_and_min(wl.time_spent_seconds)} | "
            f"{wl.issue_key:<15} | {comment} [WL:{wl.id}]"
        )
        total += wl.time_spent_seconds
    print(f"    {'─' * 60}")
    print(f"    Total: {seconds_to_hour_and_min(total)} across {len(worklogs)} entries")
    return 0


def cmd_add(app: App, args) -> int:
    started = parse_date_time(args.start) if args.start else None
    worklogs = app.timers().log_work_entries(args.issue, args.durations, started, args.comment or "")
    for worklog in worklogs:
        print(
            f"[+] Logged {worklog.time_spent or seconds_to_hour_and_min(worklog.time_spent_seconds)} "
            f"on {args.issue} from {worklog.started:%a %Y-%m-%d %H:%M} [WL:{worklog.id}]"
        )
    return 0


def cmd_del(app: App, args) -> int:
    deleter = app.deleter()
    for worklog_id in args.worklog_ids:
        removed = deleter.delete(worklog_id, args.issue)
        print(f"[+] Deleted worklog {worklog_id} ({removed.time_spent}) on {removed.issue_key}")
    return 0


def cmd_start(app: App, args) -> int:
    started = parse_date_time(args.start) if args.start else None
    timer = app.timers().start(args.issue, started, args.comment)
    print(f"[+] Timer started on {timer.issue_key} at {timer.started:%H:%M}")
    return 0


def cmd_stop(app: App, args) -> int:
    stopped = parse_date_time(args.stop) if args.stop else None
    timer = app.timers().stop(stopped, args.comment, submit=not args.no_submit)
    spent = seconds_to_hour_and_min(int(timer.duration().total_seconds()))
    state = "submitted" if timer.synced else "kept locally"
    print(f"[+] Timer on {timer.issue_key} stopped after {spent} ({state})")
    return 0


def cmd_discard(app: App, args) -> int:
    timer = app.timers().discard()
    print(f"[+] Discarded timer on {timer.issue_key} started {timer.started:%Y-%m-%d %H:%M}")
    return 0


def cmd_status(app: App, args) -> int:
    timers = app.timers()
    status = timers.status()
    if status is None:
        print("[*] No timer running")
    else:
        timer, elapsed = status
        print(
            f"[*] {timer.issue_key} running since {timer.started:%Y-%m-%d %H:%M} "
            f"({seconds_to_hour_and_min(int(elapsed.total_seconds()))})"
        )
        total = timers.total_time(timer.issue_key)
        print(f"    Stopped timers on {timer.issue_key}: {seconds_to_hour_and_min(int(total.total_seconds()))}")
    pending = app.cache.unsynced_timers()
    if pending:
        print(f"[!] {len(pending)} stopped timers not submitted yet (run 'submit')")
    return 0


def cmd_submit(app: App, args) -> int:
    worklogs = app.timers().submit_pending()
    for wl in worklogs:
        print(f"[+] {wl.issue_key}: {wl.time_spent} [WL:{wl.id}]")
    print(f"[*] Submitted {len(worklogs)} timers")
    return 0


def cmd_issues(app: App, args) -> int:
    if args.projects:
        for key in args.projects:
            if not Patterns.PROJECT_KEY.match(key):
                raise BadInputError(f"Invalid project key '{key}'", operation="search_issues", entity_id=key)
        # Ask Jira and keep what it returns for the next offline listing
        issues = app.client.search_issues(projects=args.projects)
        for issue in issues:
            app.cache.add_issue(issue)
    else:
        issues = app.cache.find_issues()
    for issue in issues:
        components = ", ".join(c.name for c in issue.components)
        line = f"    {issue.issue_key:<15} {issue.summary}"
        if components:
            line += f" [{components}]"
        print(line)
    where = f"in {', '.join(args.projects)}" if args.projects else "cached"
    print(f"[*] {len(issues)} issues {where}")
    return 0


# ============================================================================
# CLI
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Track Jira worklogs with a local cache",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Sync your worklogs of the last 30 days
    python worklog_cli.py sync

    # Sync everybody's worklogs on two issues since January
    python worklog_cli.py sync --start 2026-01-01 --issues TIME-1 TIME-2 --all-users

    # Log 1.5 hours that ended just now
    python worklog_cli.py add TIME-1 1h30m

    # Log this week from 08:00 each day
    python worklog_cli.py add TIME-1 Mon:1d Tue:1d Wed:3,5h
        """,
    )
    parser.add_argument("--config", default=CONFIG_FILE, help=f"Config file (default: {CONFIG_FILE})")
    parser.add_argument("--debug", action="store_true", help="Print debug output")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in [
        ("sync", "Pull worklogs from Jira into the cache"),
        ("reconcile", "Sync and drop cached worklogs deleted in Jira"),
    ]:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--start", help="Window start (YYYY-MM-DD, HH:MM or YYYY-MM-DDTHH:MM)")
        p.add_argument("--issues", nargs="+", metavar="KEY", help="Issue keys, e.g. TIME-1")
        p.add_argument("--projects", nargs="+", metavar="KEY", help="Project keys, e.g. TIME")
        p.add_argument("--all-users", action="store_true", help="Keep worklogs of all users")
        p.set_defaults(func=cmd_sync)

    p = sub.add_parser("list", help="Show cached worklogs")
    p.add_argument("--start", help="From (default: start of this week)")
    p.add_argument("--issues", nargs="+", metavar="KEY")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("add", help="Log work on an issue")
    p.add_argument("issue", help="Issue key")
    p.add_argument(
        "durations",
        nargs="+",
        metavar="DURATION",
        help="e.g. 1h30m, 1.5h, 1d or 01:30; Mon:1,5h logs from 08:00 on the last Monday",
    )
    p.add_argument("--start", help="When plain durations started (default: duration ago)")
    p.add_argument("-c", "--comment")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("del", help="Delete your own worklogs")
    p.add_argument("worklog_ids", nargs="+", metavar="ID")
    p.add_argument("--issue", help="Issue key, needed for worklogs not in the cache")
    p.set_defaults(func=cmd_del)

    p = sub.add_parser("start", help="Start a timer")
    p.add_argument("issue", help="Issue key")
    p.add_argument("--start", help="Start time (default: now)")
    p.add_argument("-c", "--comment")
    p.set_defaults(func=cmd_start)

    p = sub.add_parser("stop", help="Stop the timer and submit it")
    p.add_argument("--stop", help="Stop time (default: now)")
    p.add_argument("-c", "--comment")
    p.add_argument("--no-submit", action="store_true", help="Keep the worklog local for now")
    p.set_defaults(func=cmd_stop)

    sub.add_parser("discard", help="Throw away the running timer").set_defaults(func=cmd_discard)
    sub.add_parser("status", help="Show the running timer").set_defaults(func=cmd_status)
    sub.add_parser("submit", help="Submit stopped timers to Jira").set_defaults(func=cmd_submit)
    p = sub.add_parser("issues", help="List cached issues, or a project's issues from Jira")
    p.add_argument("--projects", nargs="+", metavar="KEY", help="Project keys, e.g. TIME")
    p.set_defaults(func=cmd_issues)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config_safe(args.config)
    if config is None:
        return 1

    try:
        app = App(config, debug=args.debug)
    except WorklogError as e:
        print(f"[!] ERROR: {e}")
        return 1
    try:
        return args.func(app, args)
    except WorklogError as e:
        print(f"[!] ERROR: {e}")
        return 1
    finally:
        app.close()


if __name__ == "__main__":
    exit(main())
