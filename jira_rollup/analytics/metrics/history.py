"""Tabular views over persisted snapshot history (pandas)."""

from __future__ import annotations

from collections.abc import Iterable

import pandas as pd

from jira_rollup.core.snapshot_store import SnapshotHistory


def history_frame(history: SnapshotHistory, keys: Iterable[str] | None = None) -> pd.DataFrame:
    """Long-form ``date, key, progress`` frame sorted by key then date."""
    wanted = set(keys) if keys is not None else None
    rows = [
        {"date": day, "key": key, "progress": int(entry.get("progress", 0))}
        for day, per_key in history.snapshots.items()
        for key, entry in per_key.items()
        if wanted is None or key in wanted
    ]
    if not rows:
        return pd.DataFrame(columns=["date", "key", "progress"])
    df = pd.DataFrame(rows)
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    df = df.dropna(subset=["date"])
    return df.sort_values(by=["key", "date"]).reset_index(drop=True)


def latest_progress(frame: pd.DataFrame) -> pd.DataFrame:
    """Most recent progress value per key (``key, date, progress``)."""
    if frame.empty:
        return pd.DataFrame(columns=["key", "date", "progress"])
    idx = frame.groupby("key")["date"].idxmax()
    return frame.loc[idx, ["key", "date", "progress"]].sort_values(by="key").reset_index(drop=True)


def activity_frame(history: SnapshotHistory) -> pd.DataFrame:
    rows = [{"key": key, **record.to_dict()} for key, record in history.git_activity.items()]
    if not rows:
        return pd.DataFrame(columns=["key", "lastActivity", "prCount", "prMerged", "prOpen", "repoCount", "commitCount"])
    return pd.DataFrame(rows).sort_values(by="key").reset_index(drop=True)


def contributors_frame(history: SnapshotHistory) -> pd.DataFrame:
    """One row per (key, role, contributor)."""
    rows = [
        {"key": key, "role": role, "contributor": member.display_name}
        for key, roster in history.developers.items()
        for role, members in roster.items()
        for member in members
    ]
    if not rows:
        return pd.DataFrame(columns=["key", "role", "contributor"])
    return pd.DataFrame(rows).sort_values(by=["key", "role", "contributor"]).reset_index(drop=True)


def progress_table(history: SnapshotHistory) -> pd.DataFrame:
    """Latest progress per key with its structural link count (``key, date, progress, links``)."""
    latest = latest_progress(history_frame(history))
    if latest.empty:
        return pd.DataFrame(columns=["key", "date", "progress", "links"])
    latest["links"] = latest["key"].map(history.link_counts).fillna(0).astype(int)
    return latest
