"""Chart builders (Altair) for progress trends."""

from __future__ import annotations

from collections.abc import Sequence

import altair as alt
import pandas as pd


def progress_sparkline(frame: pd.DataFrame, keys: Sequence[str] | None = None, height: int = 60):
    """Small-multiple 0..100 progress lines, one row per issue key.

    Returns None when there is nothing to draw.
    """
    if frame is None or frame.empty:
        return None
    tmp = frame.copy()
    if keys:
        tmp = tmp[tmp["key"].isin(list(keys))]
    if tmp.empty:
        return None
    tmp["date"] = pd.to_datetime(tmp["date"], errors="coerce")
    tmp = tmp.dropna(subset=["date"])

    line = (
        alt.Chart(tmp)
        .mark_line(color="#1f77b4", interpolate="step-after")
        .encode(
            x=alt.X("date:T", title=None, axis=alt.Axis(format="%b %d")),
            y=alt.Y("progress:Q", title=None, scale=alt.Scale(domain=[0, 100])),
            tooltip=[
                alt.Tooltip("key:N", title="Issue"),
                alt.Tooltip("date:T", title="Date"),
                alt.Tooltip("progress:Q", title="Progress %"),
            ],
        )
        .properties(height=height)
    )
    return line.facet(row=alt.Row("key:N", title=None))


def latest_progress_bars(latest: pd.DataFrame):
    """Horizontal bars of the current progress per key."""
    if latest is None or latest.empty:
        return None
    return (
        alt.Chart(latest)
        .mark_bar(color="#2ca02c")
        .encode(
            x=alt.X("progress:Q", title="Progress %", scale=alt.Scale(domain=[0, 100])),
            y=alt.Y("key:N", title=None, sort="-x"),
            tooltip=[
                alt.Tooltip("key:N", title="Issue"),
                alt.Tooltip("date:T", title="As of"),
                alt.Tooltip("progress:Q", title="Progress %"),
            ],
        )
        .properties(height=max(80, 22 * len(latest)))
    )
