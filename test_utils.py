"""Tests for config loading, date parsing and duration parsing."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from errors import BadInputError, ConfigError
from models import SyncConfig
from utils import (
    calculate_started_time,
    database_path,
    format_jira_timestamp,
    get_week_start,
    last_weekday_from,
    load_config_safe,
    parse_date_time,
    parse_duration,
    parse_jira_timestamp,
    parse_weekday_duration,
    seconds_to_hour_and_min,
    sync_config_from,
    validate_config,
)

VALID = {"jira": {"base_url": "https://x.atlassian.net", "user_email": "me@example.com", "api_token": "t"}}


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

class TestConfig:

    def test_valid(self):
        assert validate_config(VALID) == []

    @pytest.mark.parametrize(
        "config, expected",
        [
            ({}, "Missing section 'jira' in config.json"),
            ({"jira": {"base_url": "x", "user_email": "y"}}, "Missing jira.api_token"),
            ({**VALID, "sync": []}, "Section 'sync' must be an object"),
        ],
    )
    def test_invalid(self, config, expected):
        assert expected in validate_config(config)

    def test_load_safe_missing_file(self, tmp_path, capsys):
        assert load_config_safe(str(tmp_path / "config.json")) is None
        assert "not found" in capsys.readouterr().out

    def test_load_safe_bad_json(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text('{"jira": {')
        assert load_config_safe(str(path)) is None
        assert "not valid JSON" in capsys.readouterr().out

    def test_load_safe_incomplete(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"jira": {}}))
        assert load_config_safe(str(path)) is None
        assert "Missing jira.base_url" in capsys.readouterr().out

    def test_load_safe_valid(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(VALID))
        assert load_config_safe(str(path)) == VALID

    def test_sync_config_defaults(self):
        assert sync_config_from(VALID) == SyncConfig()

    def test_sync_config_overrides(self):
        config = {**VALID, "database": {"path": ":memory:"}, "sync": {"page_size": 100, "default_days": 7}}
        sync_config = sync_config_from(config)
        assert sync_config.db_path == ":memory:"
        assert sync_config.page_size == 100
        assert sync_config.default_days == 7

    def test_sync_config_converts_strings(self):
        config = {**VALID, "sync": {"page_size": "50", "timeout_s": "12.5", "work_hours_per_day": 8}}
        sync_config = sync_config_from(config)
        assert sync_config.page_size == 50
        assert sync_config.timeout_s == 12.5
        assert sync_config.work_hours_per_day == 8.0
        assert isinstance(sync_config.work_hours_per_day, float)

    @pytest.mark.parametrize(
        "settings",
        [
            {"page_size": "fifty"},
            {"page_size": 2.5},
            {"page_size": True},
            {"timeout_s": None},
            {"default_days": [30]},
            {"db_path": 42},
        ],
    )
    def test_sync_config_wrong_type(self, settings):
        name = next(iter(settings))
        with pytest.raises(ConfigError) as excinfo:
            sync_config_from({**VALID, "sync": settings})
        assert excinfo.value.entity_id == name
        assert f"Setting '{name}'" in str(excinfo.value)

    def test_sync_config_unknown_key(self):
        with pytest.raises(BadInputError, match="pagesize"):
            sync_config_from({**VALID, "sync": {"pagesize": 100}})

    def test_database_path_creates_parent(self, tmp_path):
        path = database_path(SyncConfig(db_path=str(tmp_path / "nested" / "worklog.db")))
        assert (tmp_path / "nested").is_dir()
        assert path.endswith("worklog.db")

    def test_database_path_memory(self):
        assert database_path(SyncConfig(db_path=":memory:")) == ":memory:"


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

class TestParseDateTime:

    def test_date_means_eight_am(self):
        parsed = parse_date_time("2026-01-29")
        assert (parsed.year, parsed.month, parsed.day, parsed.hour, parsed.minute) == (2026, 1, 29, 8, 0)
        assert parsed.tzinfo is not None

    def test_time_means_today(self):
        reference = datetime(2026, 1, 29, 15, 0).astimezone()
        parsed = parse_date_time("9:30", now=reference)
        assert parsed.date() == reference.date()
        assert (parsed.hour, parsed.minute) == (9, 30)

    def test_date_time(self):
        parsed = parse_date_time("2026-01-29T17:45")
        assert (parsed.day, parsed.hour, parsed.minute) == (29, 17, 45)

    @pytest.mark.parametrize("value", ["yesterday", "29.01.2026", "2026-13-01", "25:00", ""])
    def test_rejects(self, value):
        with pytest.raises(BadInputError):
            parse_date_time(value)


class TestJiraTimestamps:

    @pytest.mark.parametrize(
        "value, offset_hours",
        [
            ("2026-01-29T08:00:00.000+0100", 1),
            ("2026-01-29T08:00:00.000-0500", -5),
            ("2026-01-29T08:00:00+0000", 0),
            ("2026-01-29T08:00:00Z", 0),
        ],
    )
    def test_parse(self, value, offset_hours):
        parsed = parse_jira_timestamp(value)
        assert parsed.utcoffset() == timedelta(hours=offset_hours)
        assert parsed.hour == 8

    def test_naive_rejected(self):
        with pytest.raises(BadInputError):
            parse_jira_timestamp("2026-01-29T08:00:00")

    def test_format(self):
        value = datetime(2026, 1, 29, 8, 0, 5, 250000, tzinfo=timezone(timedelta(hours=1)))
        assert format_jira_timestamp(value) == "2026-01-29T08:00:05.250+0100"

    def test_week_start(self):
        value = datetime(2026, 1, 29, 15, 0, tzinfo=timezone.utc)  # Thursday
        assert get_week_start(value) == datetime(2026, 1, 26, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

class TestParseDuration:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("30m", 30 * 60),
            ("1h", 3600),
            ("1.5h", 5400),
            ("1,5h", 5400),
            ("1h30m", 5400),
            ("01:30", 5400),
            ("1d", int(7.5 * 3600)),
            ("1w", int(5 * 7.5 * 3600)),
            ("1w2.5d5.5h30m", int((5 * 7.5 + 2.5 * 7.5 + 5.5) * 3600 + 30 * 60)),
            (" 2H ", 7200),
        ],
    )
    def test_parses(self, value, expected):
        assert parse_duration(value) == expected

    def test_custom_work_day(self):
        assert parse_duration("1d", work_hours_per_day=8) == 8 * 3600
        assert parse_duration("1w", work_hours_per_day=8, work_days_per_week=4) == 32 * 3600

    @pytest.mark.parametrize("value", ["", "0h", "00:00", "1x", "h30", "1.234h"])
    def test_rejects(self, value):
        with pytest.raises(BadInputError):
            parse_duration(value)

    def test_hour_and_min(self):
        assert seconds_to_hour_and_min(3660) == "01:01"
        assert seconds_to_hour_and_min(0) == "00:00"


class TestCalculateStartedTime:

    NOW = datetime(2026, 1, 29, 12, 0, tzinfo=timezone.utc)

    def test_defaults_to_ending_now(self):
        assert calculate_started_time(None, 3600, self.NOW) == self.NOW - timedelta(hours=1)

    def test_explicit_start(self):
        start = self.NOW - timedelta(hours=3)
        assert calculate_started_time(start, 3600, self.NOW) == start

    def test_ending_in_future_rejected(self):
        with pytest.raises(BadInputError):
            calculate_started_time(self.NOW - timedelta(minutes=30), 3600, self.NOW)


class TestWeekdayDuration:

    WEDNESDAY = datetime(2026, 1, 28, 18, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "weekday, expected_day",
        [(0, 26), (1, 27), (2, 28), (3, 22), (6, 25)],
    )
    def test_last_weekday_includes_today(self, weekday, expected_day):
        assert last_weekday_from(self.WEDNESDAY, weekday).day == expected_day
        assert last_weekday_from(self.WEDNESDAY, weekday).weekday() == weekday

    @pytest.mark.parametrize(
        "value, day, seconds",
        [
            ("Mon:1,5h", 26, 5400),
            ("tue:1d", 27, int(7.5 * 3600)),
            ("WED:3.5h", 28, 12600),
            ("Fri:01:30", 23, 5400),
        ],
    )
    def test_parses(self, value, day, seconds):
        started, parsed = parse_weekday_duration(value, self.WEDNESDAY)
        assert started == datetime(2026, 1, day, 8, 0, tzinfo=timezone.utc)
        assert parsed == seconds

    def test_custom_work_day(self):
        _, seconds = parse_weekday_duration("Mon:1d", self.WEDNESDAY, work_hours_per_day=8)
        assert seconds == 8 * 3600

    @pytest.mark.parametrize("value", ["1h", "Monday:1h", "Mon:", "Mon:abc", "Mon 1h"])
    def test_rejects(self, value):
        with pytest.raises(BadInputError):
            parse_weekday_duration(value, self.WEDNESDAY)
