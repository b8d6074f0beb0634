"""Tests for RemoteWorklogFetcher pagination."""

import threading

import pytest

from conftest import FakeJiraClient, days_ago, make_worklog
from errors import AuthError, BadInputError, NetworkError
from fetcher import RemoteWorklogFetcher
from models import EntryError, WorklogPage


class ScriptedSource:
    """Returns canned pages keyed by startAt and records every request."""

    def __init__(self, pages: dict[int, WorklogPage]):
        self.pages = pages
        self.calls: list[int] = []

    def get_worklog_page(self, issue_key, start_at, max_results, started_after):
        self.calls.append(start_at)
        return self.pages[start_at]

    def search_issues(self, projects=None, issue_keys=None, worked_since=None):
        return []


def page(start_at, ids, total, is_last=None, max_results=2):
    return WorklogPage(start_at, max_results, total, [make_worklog(i) for i in ids], is_last)


# ---------------------------------------------------------------------------
# Completeness
# ---------------------------------------------------------------------------

class TestPagination:

    @pytest.mark.parametrize("is_last_flag", [True, False])
    def test_three_pages_of_two(self, is_last_flag):
        pages = {
            0: page(0, ["1", "2"], 6, False if is_last_flag else None),
            2: page(2, ["3", "4"], 6, False if is_last_flag else None),
            4: page(4, ["5", "6"], 6, True if is_last_flag else None),
        }
        source = ScriptedSource(pages)
        fetched = list(RemoteWorklogFetcher(source, page_size=2).fetch("TIME-1", days_ago(30)))
        assert [wl.id for wl in fetched] == ["1", "2", "3", "4", "5", "6"]
        assert source.calls == [0, 2, 4]

    def test_short_non_final_page_keeps_paging(self):
        pages = {
            0: page(0, ["1"], 4),
            1: page(1, ["2", "3"], 4),
            3: page(3, ["4"], 4),
        }
        source = ScriptedSource(pages)
        fetched = list(RemoteWorklogFetcher(source, page_size=2).fetch("TIME-1", days_ago(30)))
        assert [wl.id for wl in fetched] == ["1", "2", "3", "4"]
        assert source.calls == [0, 1, 3]

    def test_is_last_wins_over_total(self):
        source = ScriptedSource({0: page(0, ["1", "2"], 10, True)})
        fetched = list(RemoteWorklogFetcher(source, page_size=2).fetch("TIME-1", days_ago(30)))
        assert len(fetched) == 2
        assert source.calls == [0]

    def test_total_reached_stops_even_when_not_flagged_last(self):
        pages = {
            0: page(0, ["1", "2"], 4, False),
            2: page(2, ["3", "4"], 4, False),
        }
        source = ScriptedSource(pages)
        fetched = list(RemoteWorklogFetcher(source, page_size=2).fetch("TIME-1", days_ago(30)))
        assert [wl.id for wl in fetched] == ["1", "2", "3", "4"]
        assert source.calls == [0, 2]

    def test_unparsed_entries_advance_cursor_and_are_collected(self):
        first = WorklogPage(
            0, 2, 3, [make_worklog("1")], False,
            errors=[EntryError("TIME-1", "2", "Worklog payload is missing 'started'")],
        )
        pages = {0: first, 2: page(2, ["3"], 3, True)}
        source = ScriptedSource(pages)
        worklogs = RemoteWorklogFetcher(source, page_size=2).fetch("TIME-1", days_ago(30))
        assert [wl.id for wl in worklogs] == ["1", "3"]
        assert source.calls == [0, 2]
        assert [(e.issue_key, e.worklog_id) for e in worklogs.errors] == [("TIME-1", "2")]

    def test_empty_page_stops(self):
        source = ScriptedSource({0: page(0, ["1"], 5, False), 1: page(1, [], 5, False)})
        fetched = list(RemoteWorklogFetcher(source, page_size=2).fetch("TIME-1", days_ago(30)))
        assert [wl.id for wl in fetched] == ["1"]

    def test_empty_issue(self):
        source = ScriptedSource({0: page(0, [], 0)})
        assert list(RemoteWorklogFetcher(source).fetch("TIME-1", days_ago(30))) == []


# ---------------------------------------------------------------------------
# Laziness and restart
# ---------------------------------------------------------------------------

class TestSequence:

    def test_lazy_until_iterated(self, jira):
        jira.add(make_worklog("1"))
        worklogs = RemoteWorklogFetcher(jira).fetch("TIME-1", days_ago(30))
        assert jira.page_calls == []
        assert [wl.id for wl in worklogs] == ["1"]

    def test_restart_begins_at_zero(self, jira):
        jira.add(*(make_worklog(str(i)) for i in range(5)))
        worklogs = RemoteWorklogFetcher(jira, page_size=2).fetch("TIME-1", days_ago(30))
        first = [wl.id for wl in worklogs]
        second = [wl.id for wl in worklogs]
        assert first == second == ["0", "1", "2", "3", "4"]
        assert [start for _, start in jira.page_calls] == [0, 2, 4, 0, 2, 4]

    def test_window_filter(self, jira):
        jira.add(make_worklog("old", started=days_ago(40)), make_worklog("new", started=days_ago(1)))
        fetched = list(RemoteWorklogFetcher(jira).fetch("TIME-1", days_ago(30)))
        assert [wl.id for wl in fetched] == ["new"]

    def test_cancel_between_pages(self, jira):
        jira.add(*(make_worklog(str(i)) for i in range(6)))
        cancel = threading.Event()
        fetched = []
        for wl in RemoteWorklogFetcher(jira, page_size=2).fetch("TIME-1", days_ago(30), cancel):
            fetched.append(wl.id)
            cancel.set()
        assert fetched == ["0", "1"]
        assert len(jira.page_calls) == 1

    def test_project_key_walks_issues(self, jira):
        jira.add(make_worklog("1", "TIME-1"), make_worklog("2", "TIME-2"), make_worklog("3", "OPS-1"))
        fetched = list(RemoteWorklogFetcher(jira).fetch("TIME", days_ago(30)))
        assert sorted((wl.issue_key, wl.id) for wl in fetched) == [("TIME-1", "1"), ("TIME-2", "2")]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestErrors:

    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("Jira: Connection timed out.", operation="get_worklogs"),
            AuthError("Jira: Authentication failed.", 401, operation="get_worklogs"),
        ],
    )
    def test_surfaced_without_retry(self, error):
        jira = FakeJiraClient()
        jira.add(make_worklog("1"))
        jira.page_errors["TIME-1"] = error
        with pytest.raises(type(error)):
            list(RemoteWorklogFetcher(jira).fetch("TIME-1", days_ago(30)))
        assert len(jira.page_calls) == 1

    @pytest.mark.parametrize("key", ["time-1", "TIME-1-2", ""])
    def test_bad_filter(self, jira, key):
        with pytest.raises(BadInputError):
            RemoteWorklogFetcher(jira).fetch(key, days_ago(30))

    def test_bad_page_size(self, jira):
        with pytest.raises(BadInputError):
            RemoteWorklogFetcher(jira, page_size=0)
