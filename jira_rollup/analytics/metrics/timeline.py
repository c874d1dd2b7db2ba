"""Day-by-day progress reconstruction from an issue's status changelog.

The audit trail only records transitions, so the status on any day is held
constant from the most recent transition dated on or before that day (or the
pre-change status when no transition has happened yet).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta

import pytz

from jira_rollup.core.config import TIMEZONE, TREND_WINDOW_DAYS
from jira_rollup.core.models import DailyProgressMap, IssueModel
from jira_rollup.core.status import map_status_progress


class ChangelogUnavailableError(ValueError):
    """The issue was loaded without its changelog, so history cannot be rebuilt."""


def day_of(value: datetime | None, tz=None) -> str | None:
    """Calendar day (ISO) of ``value`` in ``tz``; naive values are taken as UTC."""
    if value is None:
        return None
    tz = tz or pytz.timezone(TIMEZONE)
    if value.tzinfo is None:
        value = pytz.UTC.localize(value)
    return value.astimezone(tz).date().isoformat()


def trailing_days(now: datetime, count: int = TREND_WINDOW_DAYS, tz=None) -> list[str]:
    """The ``count`` calendar days ending with today, oldest first."""
    today = date.fromisoformat(day_of(now, tz))
    return [(today - timedelta(days=offset)).isoformat() for offset in range(count - 1, -1, -1)]


def status_transitions(issue: IssueModel, tz=None) -> list[tuple[str, str | None, str | None]]:
    """Status changes as ``(day, from, to)`` sorted by timestamp."""
    if issue.histories is None:
        raise ChangelogUnavailableError(f"{issue.key} was fetched without its changelog")
    events: list[tuple[datetime, str | None, str | None]] = []
    for history in issue.histories:
        if history.created is None:
            continue
        for item in history.items:
            if item.field != "status":
                continue
            events.append((history.created, item.from_string, item.to_string))
    events.sort(key=lambda tup: tup[0])
    return [(day_of(ts, tz), from_status, to_status) for ts, from_status, to_status in events]


def build_daily_progress(issue: IssueModel, days: Sequence[str], tz=None) -> DailyProgressMap:
    """Rebuild the progress value of ``issue`` for each day in ``days``.

    Parameters
    ----------
    issue : IssueModel
        Issue loaded with its changelog (``histories`` must not be None).
    days : sequence of str
        Ordered ISO calendar days, oldest first.
    tz : timezone, optional
        Zone used to cut timestamps into days; defaults to ``TIMEZONE``.

    Returns
    -------
    dict[str, int]
        Progress per day, only for days on or after the creation day.

    Raises
    ------
    ChangelogUnavailableError
        When the issue's changelog was not fetched.
    """
    transitions = status_transitions(issue, tz)
    if transitions:
        running_status = transitions[0][1] or issue.status
    else:
        running_status = issue.status
    created_day = day_of(issue.created, tz)

    result: DailyProgressMap = {}
    cursor = 0
    for day in days:
        while cursor < len(transitions) and transitions[cursor][0] <= day:
            running_status = transitions[cursor][2]
            cursor += 1
        if created_day is not None and day < created_day:
            continue
        result[day] = map_status_progress(running_status)
    return result
