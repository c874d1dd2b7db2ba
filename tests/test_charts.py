import pandas as pd

from jira_rollup.analytics.metrics.history import (
    activity_frame,
    contributors_frame,
    history_frame,
    latest_progress,
    progress_table,
)
from jira_rollup.core.models import ActivityRecord, Contributor
from jira_rollup.core.snapshot_store import SnapshotHistory
from jira_rollup.visual.charts import latest_progress_bars, progress_sparkline


def _sample_history():
    return SnapshotHistory(
        snapshots={
            "2024-06-28": {"E1": {"progress": 20}, "X1": {"progress": 40}},
            "2024-06-29": {"E1": {"progress": 50}, "X1": {"progress": 100}},
            "2024-06-30": {"E1": {"progress": 60}},
        },
        git_activity={"E1": ActivityRecord("2024-06-29", pr_count=2, pr_merged=1, pr_open=1)},
        developers={"E1": {"qa": [Contributor("Quinn")], "development": [Contributor("Jane Doe"), Contributor("Al")]}},
    )


def test_history_frame_shape_and_filter():
    df = history_frame(_sample_history())
    assert list(df.columns) == ["date", "key", "progress"]
    assert len(df) == 5
    assert pd.api.types.is_datetime64_any_dtype(df["date"])
    assert df.iloc[0]["key"] == "E1"
    only_x = history_frame(_sample_history(), keys=["X1"])
    assert only_x["progress"].tolist() == [40, 100]


def test_latest_progress_picks_most_recent_day():
    latest = latest_progress(history_frame(_sample_history()))
    assert latest["key"].tolist() == ["E1", "X1"]
    assert latest["progress"].tolist() == [60, 100]


def test_empty_history_frames_keep_columns():
    empty = SnapshotHistory()
    assert history_frame(empty).empty
    assert list(latest_progress(history_frame(empty)).columns) == ["key", "date", "progress"]
    assert "prCount" in activity_frame(empty).columns
    assert list(contributors_frame(empty).columns) == ["key", "role", "contributor"]


def test_activity_and_contributor_tables():
    history = _sample_history()
    activity = activity_frame(history)
    assert activity.loc[0, "prMerged"] == 1
    people = contributors_frame(history)
    assert people[["role", "contributor"]].values.tolist() == [
        ["development", "Al"],
        ["development", "Jane Doe"],
        ["qa", "Quinn"],
    ]


def test_progress_sparkline_builds_chart():
    df = history_frame(_sample_history())
    assert progress_sparkline(df) is not None
    assert progress_sparkline(df, keys=["X1"]) is not None
    assert progress_sparkline(df, keys=["NOPE"]) is None
    assert progress_sparkline(pd.DataFrame(columns=["date", "key", "progress"])) is None


def test_latest_progress_bars():
    latest = latest_progress(history_frame(_sample_history()))
    assert latest_progress_bars(latest) is not None
    assert latest_progress_bars(latest.iloc[0:0]) is None


def test_progress_table_shows_link_counts():
    history = _sample_history()
    history.link_counts = {"E1": 3}
    table = progress_table(history)
    assert table[["key", "progress", "links"]].values.tolist() == [["E1", 60, 3], ["X1", 100, 0]]
    assert list(progress_table(SnapshotHistory()).columns) == ["key", "date", "progress", "links"]
