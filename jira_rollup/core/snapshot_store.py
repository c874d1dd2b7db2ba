"""File-backed snapshot store: 60-day trend history plus latest activity/rosters.

Every save merges, prunes, and replaces the file atomically (temp file in the
same directory + ``os.replace``), so an interrupted run leaves the previous
state intact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path

import pytz

from jira_rollup.analytics.metrics.timeline import day_of

from .config import MODE_ALL, MODE_GIT, MODE_TREND, SNAPSHOT_RETENTION_DAYS, TIMEZONE
from .models import ActivityRecord, ContributorRoster, DailyProgressMap, roster_from_dict, roster_to_dict

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SnapshotHistory:
    # ISO day -> issue key -> {"progress": int}
    snapshots: dict[str, dict[str, dict[str, int]]] = field(default_factory=dict)
    git_activity: dict[str, ActivityRecord] = field(default_factory=dict)
    developers: dict[str, ContributorRoster] = field(default_factory=dict)
    # issue key -> structural link count at the last run
    link_counts: dict[str, int] = field(default_factory=dict)
    last_run: str | None = None

    def to_dict(self) -> dict:
        return {
            "snapshots": self.snapshots,
            "gitActivity": {k: v.to_dict() for k, v in self.git_activity.items()},
            "developers": {k: roster_to_dict(v) for k, v in self.developers.items()},
            "linkCount": dict(self.link_counts),
            "lastRun": self.last_run,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> SnapshotHistory:
        snapshots = data.get("snapshots") or {}
        git = data.get("gitActivity") or {}
        devs = data.get("developers") or {}
        links = data.get("linkCount") or {}
        return cls(
            snapshots={
                str(day): {str(k): {"progress": int(v.get("progress", 0))} for k, v in per_key.items()}
                for day, per_key in snapshots.items()
                if isinstance(per_key, dict)
            },
            git_activity={str(k): ActivityRecord.from_dict(v) for k, v in git.items() if isinstance(v, dict)},
            developers={str(k): roster_from_dict(v) for k, v in devs.items() if isinstance(v, dict)},
            link_counts={str(k): int(v) for k, v in links.items()},
            last_run=data.get("lastRun"),
        )


def prune_snapshots(
    snapshots: dict,
    now: datetime,
    retention_days: int = SNAPSHOT_RETENTION_DAYS,
    tz=None,
) -> list[str]:
    """Drop day keys older than ``retention_days`` before ``now``; returns removed days.

    ``now`` is cut into a day in ``tz`` (default ``TIMEZONE``), the zone the
    trend days are keyed in.
    """
    today = date.fromisoformat(day_of(now, tz or pytz.timezone(TIMEZONE)))
    cutoff = (today - timedelta(days=retention_days)).isoformat()
    stale = [day for day in snapshots if day < cutoff]
    for day in stale:
        del snapshots[day]
    return stale


class SnapshotStore:
    def __init__(self, path: str | Path, retention_days: int = SNAPSHOT_RETENTION_DAYS, tz=None):
        self.path = Path(path)
        self.retention_days = retention_days
        self.tz = tz or pytz.timezone(TIMEZONE)
        self._lock = threading.Lock()

    def load(self) -> SnapshotHistory:
        """Current persisted state; missing or corrupt files read as empty."""
        if not self.path.exists():
            return SnapshotHistory()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("snapshot file root is not an object")
            return SnapshotHistory.from_dict(data)
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("Snapshot file %s unreadable, starting empty: %s", self.path, exc)
            return SnapshotHistory()

    def save_snapshot(
        self,
        *,
        daily_results: Mapping[str, DailyProgressMap],
        git_results: Mapping[str, ActivityRecord],
        dev_results: Mapping[str, ContributorRoster],
        days: Sequence[str],
        link_counts: Mapping[str, int] | None = None,
        mode: str = MODE_ALL,
        now: datetime | None = None,
    ) -> SnapshotHistory:
        """Merge one run's results into the store and write it back.

        Trend data is merged per day (a run overwrites only the days and keys it
        computed); activity, rosters and link counts are replaced wholesale.
        """
        now = now or datetime.now(pytz.UTC)
        do_trend = mode in (MODE_ALL, MODE_TREND)
        do_git = mode in (MODE_ALL, MODE_GIT)
        with self._lock:
            history = self.load()
            if do_trend:
                for day in days:
                    bucket = history.snapshots.setdefault(day, {})
                    for key, daily in daily_results.items():
                        if day in daily:
                            bucket[key] = {"progress": int(daily[day])}
                    if not bucket:
                        del history.snapshots[day]
                history.developers = {k: v for k, v in dev_results.items() if v}
            if do_git:
                history.git_activity = {k: v for k, v in git_results.items() if v is not None and not v.is_empty()}
            if link_counts is not None:
                history.link_counts = dict(link_counts)
            history.last_run = now.isoformat()
            removed = prune_snapshots(history.snapshots, now, self.retention_days, self.tz)
            if removed:
                logger.debug("Pruned %s snapshot day(s) older than %s days", len(removed), self.retention_days)
            self._write(history)
        return history

    def _write(self, history: SnapshotHistory) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(suffix=".json", dir=self.path.parent, text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(history.to_dict(), fh, indent=2, ensure_ascii=False, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
