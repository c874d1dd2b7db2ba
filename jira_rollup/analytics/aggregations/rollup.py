"""Parent-level roll-ups of children's trend, activity, and roster values."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from jira_rollup.core.models import ActivityRecord, Contributor, ContributorRoster, DailyProgressMap


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def average_daily_progress(children: Iterable[DailyProgressMap], days: Sequence[str]) -> DailyProgressMap:
    """Per-day mean over the children that have a value that day.

    Days no child covers stay absent for the parent.
    """
    maps = [c for c in children if c]
    out: DailyProgressMap = {}
    for day in days:
        values = [m[day] for m in maps if day in m]
        if values:
            out[day] = _round_half_up(sum(values) / len(values))
    return out


def aggregate_activity(children: Iterable[ActivityRecord | None]) -> ActivityRecord | None:
    """Latest activity date wins, counters are summed; None if nothing active."""
    present = [c for c in children if c is not None and not c.is_empty()]
    if not present:
        return None
    dates = [c.last_activity for c in present if c.last_activity]
    return ActivityRecord(
        last_activity=max(dates) if dates else None,
        pr_count=sum(c.pr_count for c in present),
        pr_merged=sum(c.pr_merged for c in present),
        pr_open=sum(c.pr_open for c in present),
        repo_count=sum(c.repo_count for c in present),
        commit_count=sum(c.commit_count for c in present),
    )


def aggregate_roster(children: Iterable[ContributorRoster]) -> ContributorRoster:
    """Union of members per role, keyed by display name (last seen wins)."""
    merged: dict[str, dict[str, Contributor]] = {}
    for roster in children:
        for role, members in (roster or {}).items():
            bucket = merged.setdefault(role, {})
            for member in members:
                bucket[member.display_name] = member
    return {role: [bucket[name] for name in sorted(bucket)] for role, bucket in merged.items() if bucket}
