"""Tests for regex patterns.

These cover the user-facing input formats (issue keys, dates, durations)
without touching Jira or the cache.
"""

import pytest

from patterns import Patterns


# ---------------------------------------------------------------------------
# ISSUE_KEY / PROJECT_KEY
# ---------------------------------------------------------------------------

class TestIssueKey:

    @pytest.mark.parametrize("key", ["TIME-1", "AB-42", "ACME_OPS-1234", "X1-7"])
    def test_matches(self, key):
        assert Patterns.ISSUE_KEY.match(key)

    @pytest.mark.parametrize(
        "key",
        [
            "time-1",    # lowercase
            "A-1",       # project key too short
            "1AB-2",     # starts with digit
            "TIME",      # project key, not an issue
            "TIME-",
            "TIME-1 ",
            "",
        ],
    )
    def test_rejects(self, key):
        assert Patterns.ISSUE_KEY.match(key) is None


class TestProjectKey:

    @pytest.mark.parametrize("key", ["TIME", "AB", "ACME_OPS"])
    def test_matches(self, key):
        assert Patterns.PROJECT_KEY.match(key)

    @pytest.mark.parametrize("key", ["TIME-1", "time", "A", ""])
    def test_rejects(self, key):
        assert Patterns.PROJECT_KEY.match(key) is None


# ---------------------------------------------------------------------------
# Date and time inputs
# ---------------------------------------------------------------------------

class TestDateInputs:

    def test_date(self):
        assert Patterns.DATE_FORMAT.match("2026-01-29")
        assert Patterns.DATE_FORMAT.match("2026-1-29") is None

    @pytest.mark.parametrize("value", ["8:00", "08:00", "23:59"])
    def test_time(self, value):
        assert Patterns.TIME_FORMAT.match(value)

    def test_time_rejects_seconds(self):
        assert Patterns.TIME_FORMAT.match("08:00:00") is None

    @pytest.mark.parametrize("value", ["2026-01-29T09:00", "2026-01-29T9:30"])
    def test_date_time(self, value):
        assert Patterns.DATE_TIME_FORMAT.match(value)

    def test_date_time_needs_t_separator(self):
        assert Patterns.DATE_TIME_FORMAT.match("2026-01-29 09:00") is None


# ---------------------------------------------------------------------------
# DURATION: 1w2.5d5.5h30m
# ---------------------------------------------------------------------------

class TestDuration:

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("1w2.5d5.5h30m", ("1", "2.5", "5.5", "30")),
            ("1h", (None, None, "1", None)),
            ("30m", (None, None, None, "30")),
            ("1,5h", (None, None, "1,5", None)),
            ("2d", (None, "2", None, None)),
            ("1h30m", (None, None, "1", "30")),
        ],
    )
    def test_groups(self, text, expected):
        m = Patterns.DURATION.match(text)
        assert m is not None
        assert m.groups() == expected

    @pytest.mark.parametrize("text", ["30m1h", "1.5m", "1x", "h"])
    def test_rejects(self, text):
        assert Patterns.DURATION.match(text) is None

    def test_hh_mm(self):
        m = Patterns.HH_MM.match("01:30")
        assert m.groups() == ("01", "30")


class TestWeekdayDuration:

    @pytest.mark.parametrize(
        "text, expected",
        [("Mon:1,5h", ("Mon", "1,5h")), ("tue:1d", ("tue", "1d")), ("SUN:01:30", ("SUN", "01:30"))],
    )
    def test_groups(self, text, expected):
        assert Patterns.WEEKDAY_DURATION.match(text).groups() == expected

    @pytest.mark.parametrize("text", ["Monday:1h", "Mon:", "Mo:1h", "1h", "Mon: 1h"])
    def test_rejects(self, text):
        assert Patterns.WEEKDAY_DURATION.match(text) is None
