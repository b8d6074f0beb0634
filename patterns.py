"""Centralized regex patterns for worklog input and Jira identifiers."""

import re


class Patterns:
    """Regex patterns used throughout the worklog tool."""

    # Jira issue key: ABC-123 (project keys start with a letter)
    ISSUE_KEY = re.compile(r"^[A-Z][A-Z0-9_]+-\d+$")

    # Jira project key: ABC
    PROJECT_KEY = re.compile(r"^[A-Z][A-Z0-9_]+$")

    # Numeric Jira id (worklog id, issue id)
    NUMERIC_ID = re.compile(r"^\d+$")

    # Date input: YYYY-MM-DD
    DATE_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}$")

    # Time input: 8:00 or 08:00 (today)
    TIME_FORMAT = re.compile(r"^\d{1,2}:\d{2}$")

    # Date and time input: YYYY-MM-DDTHH:MM
    DATE_TIME_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{1,2}:\d{2}$")

    # Duration: 1w2.5d5.5h30m, any part optional, comma or dot decimals
    DURATION = re.compile(
        r"^(?:(\d+(?:[.,]\d{1,2})?)w)?"
        r"(?:(\d+(?:[.,]\d{1,2})?)d)?"
        r"(?:(\d+(?:[.,]\d{1,2})?)h)?"
        r"(?:(\d+)m)?$"
    )

    # Duration as clock time: 01:30
    HH_MM = re.compile(r"^(\d{2}):(\d{2})$")

    # Duration on a weekday: Mon:1,5h (the most recent Monday, today included)
    WEEKDAY_DURATION = re.compile(r"^(mon|tue|wed|thu|fri|sat|sun):(\S+)$", re.IGNORECASE)
