"""Utility functions for the Jira worklog tool: config, dates and durations."""

import json
import os
from dataclasses import fields
from datetime import date, datetime, time, timedelta

from errors import BadInputError, ConfigError
from models import SyncConfig
from patterns import Patterns

# File paths
CONFIG_FILE = "config.json"

# Jira wants e.g. 2024-03-01T08:00:00.000+0100
JIRA_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"

# Weekday-prefixed durations (Mon:1,5h) are logged from 08:00 on that day
WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
WORKDAY_START = time(8, 0)


def load_config(path: str = CONFIG_FILE) -> dict:
    """Load config.json with Jira credentials and local settings."""
    with open(path) as f:
        return json.load(f)


def validate_config(config: dict) -> list[str]:
    """Validate config structure and return list of error messages.

    Returns:
        Empty list if valid, otherwise list of error messages.
    """
    errors = []

    if "jira" not in config:
        errors.append("Missing section 'jira' in config.json")
    else:
        for key in ["base_url", "user_email", "api_token"]:
            if not config["jira"].get(key):
                errors.append(f"Missing jira.{key}")

    for section in ["database", "sync"]:
        if section in config and not isinstance(config[section], dict):
            errors.append(f"Section '{section}' must be an object")

    return errors


def load_config_safe(path: str = CONFIG_FILE) -> dict | None:
    """Load config with user-friendly error messages.

    Returns:
        Config dict if valid, None if errors occurred.
    """
    if not os.path.exists(path):
        print(f"[!] ERROR: {path} not found!")
        print()
        print("    Create it with your Jira credentials:")
        print('    {"jira": {"base_url": "https://you.atlassian.net",')
        print('              "user_email": "you@example.com", "api_token": "..."}}')
        print()
        return None

    try:
        config = load_config(path)
    except json.JSONDecodeError as e:
        print(f"[!] ERROR: {path} is not valid JSON!")
        print(f"    Line {e.lineno}, column {e.colno}: {e.msg}")
        print()
        print("    Check for missing commas, quotes, or brackets.")
        return None

    errors = validate_config(config)
    if errors:
        print(f"[!] ERROR: {path} is incomplete:")
        for err in errors:
            print(f"    - {err}")
        return None

    return config


def sync_config_from(config: dict) -> SyncConfig:
    """Build SyncConfig from the optional 'database' and 'sync' sections."""
    settings = dict(config.get("sync", {}))
    db_path = config.get("database", {}).get("path")
    if db_path:
        settings["db_path"] = db_path
    known = {f.name: type(f.default) for f in fields(SyncConfig)}
    unknown = sorted(set(settings) - set(known))
    if unknown:
        raise ConfigError(f"Unknown sync settings: {', '.join(unknown)}", operation="config")
    return SyncConfig(
        **{name: _coerce_setting(name, value, known[name]) for name, value in settings.items()}
    )


def _coerce_setting(name: str, value, kind: type):
    """Convert a config value to its setting's type ("50" -> 50 for page_size)."""
    problem = f"Setting '{name}' must be {kind.__name__}, got {value!r}"
    # bool is an int subclass and str() accepts anything
    if isinstance(value, (bool, dict, list)) or value is None:
        raise ConfigError(problem, operation="config", entity_id=name)
    if kind is str and not isinstance(value, str):
        raise ConfigError(problem, operation="config", entity_id=name)
    try:
        converted = kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(problem, operation="config", entity_id=name) from e
    if kind is int and isinstance(value, float) and converted != value:
        raise ConfigError(problem, operation="config", entity_id=name)
    return converted


def database_path(sync_config: SyncConfig) -> str:
    """Expand ~ and make sure the parent directory exists (':memory:' passes through)."""
    if sync_config.db_path == ":memory:":
        return sync_config.db_path
    path = os.path.expanduser(sync_config.db_path)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    return path


# ============================================================================
# Dates
# ============================================================================


def parse_date_time(value: str, now: datetime | None = None) -> datetime:
    """Parse user input into an aware local datetime.

    Accepts:
        2024-05-26        08:00 on that date
        08:00             today at that time
        2024-05-26T09:00  exact
    """
    now = now or datetime.now().astimezone()
    try:
        if Patterns.DATE_FORMAT.match(value):
            day = date.fromisoformat(value)
            return datetime.combine(day, time(8, 0)).astimezone()
        if Patterns.TIME_FORMAT.match(value):
            parsed = datetime.strptime(value, "%H:%M").time()
            return datetime.combine(now.date(), parsed).astimezone()
        if Patterns.DATE_TIME_FORMAT.match(value):
            return datetime.strptime(value, "%Y-%m-%dT%H:%M").astimezone()
    except ValueError as e:
        raise BadInputError(f"Invalid date '{value}': {e}", operation="parse_date") from e
    raise BadInputError(
        f"Unable to parse '{value}', expected YYYY-MM-DD, HH:MM or YYYY-MM-DDTHH:MM",
        operation="parse_date",
    )


def parse_jira_timestamp(value: str) -> datetime:
    """Parse Jira's timestamps (2024-03-01T08:00:00.000+0100) into aware datetimes."""
    for fmt in (JIRA_TIMESTAMP_FORMAT, "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        raise BadInputError(f"Timestamp without timezone: {value}", operation="parse_timestamp")
    return parsed


def format_jira_timestamp(value: datetime) -> str:
    """Format an aware datetime the way Jira accepts it (milliseconds, +HHMM)."""
    if value.tzinfo is None:
        value = value.astimezone()
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}" + value.strftime("%z")


def default_window_start(days: int, now: datetime | None = None) -> datetime:
    """Start of the default sync window: N days back from now."""
    now = now or datetime.now().astimezone()
    return now - timedelta(days=days)


def get_week_start(value: datetime) -> datetime:
    """Monday 00:00 of the week containing value."""
    monday = value.date() - timedelta(days=value.weekday())
    return datetime.combine(monday, time(0, 0), tzinfo=value.tzinfo)


def last_weekday_from(start: datetime, weekday: int) -> datetime:
    """The latest day on or before start that falls on weekday (0 = Monday).

    Today counts: asking for Wednesday on a Wednesday returns start itself.
    """
    return start - timedelta(days=(start.weekday() - weekday) % 7)


# ============================================================================
# Durations
# ============================================================================


def parse_duration(
    value: str, work_hours_per_day: float = 7.5, work_days_per_week: float = 5.0
) -> int:
    """Parse a duration like 1w2.5d5.5h30m or 01:30 into seconds.

    Days and weeks are working days and weeks, not calendar ones.
    """
    text = value.strip().lower().replace(",", ".").replace(" ", "")
    clock = Patterns.HH_MM.match(text)
    if clock:
        seconds = int(clock.group(1)) * 3600 + int(clock.group(2)) * 60
    else:
        m = Patterns.DURATION.match(text)
        if not m or not text:
            raise BadInputError(
                f"Could not obtain duration and unit from '{value}'", operation="parse_duration"
            )
        weeks, days, hours, minutes = (float(g) if g else 0.0 for g in m.groups())
        seconds = int(
            weeks * work_days_per_week * work_hours_per_day * 3600
            + days * work_hours_per_day * 3600
            + hours * 3600
            + minutes * 60
        )
    if seconds <= 0:
        raise BadInputError(f"Duration '{value}' is zero", operation="parse_duration")
    return seconds


def parse_weekday_duration(
    value: str,
    now: datetime | None = None,
    work_hours_per_day: float = 7.5,
    work_days_per_week: float = 5.0,
) -> tuple[datetime, int]:
    """Parse 'Mon:1,5h' into (08:00 on the latest Monday, seconds)."""
    now = now or datetime.now().astimezone()
    m = Patterns.WEEKDAY_DURATION.match(value.strip())
    if not m:
        raise BadInputError(
            f"Expected DAY:DURATION like Mon:1,5h, got '{value}'", operation="parse_duration"
        )
    seconds = parse_duration(m.group(2), work_hours_per_day, work_days_per_week)
    day = last_weekday_from(now, WEEKDAYS.index(m.group(1).lower())).date()
    return datetime.combine(day, WORKDAY_START, tzinfo=now.tzinfo), seconds


def calculate_started_time(
    started: datetime | None, duration_seconds: int, now: datetime | None = None
) -> datetime:
    """Resolve the start of a submission and make sure it does not end in the future.

    Without an explicit start the work is assumed to have just finished.
    """
    now = now or datetime.now().astimezone()
    duration = timedelta(seconds=duration_seconds)
    start = started if started is not None else now - duration
    if start + duration > now:
        raise BadInputError(
            f"Start {start:%Y-%m-%d %H:%M} + {seconds_to_hour_and_min(duration_seconds)} "
            f"ends after now ({now:%H:%M})",
            operation="calculate_started_time",
        )
    return start


def seconds_to_hour_and_min(seconds: int) -> str:
    """3660 -> '01:01'."""
    return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}"
