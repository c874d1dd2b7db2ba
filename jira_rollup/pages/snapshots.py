"""Progress snapshots page.

Triggers a snapshot run, streams its progress, and shows the persisted
60-day trend lines together with the latest git activity and contributors.
"""

from __future__ import annotations

import streamlit as st

from jira_rollup.analytics.metrics.history import (
    activity_frame,
    contributors_frame,
    history_frame,
    latest_progress,
    progress_table,
)
from jira_rollup.app import register_page
from jira_rollup.core.config import MODE_ALL, MODE_GIT, MODE_TREND
from jira_rollup.core.snapshot import SnapshotAlreadyRunningError, SnapshotOrchestrator
from jira_rollup.visual.charts import latest_progress_bars, progress_sparkline
from jira_rollup.visual.progress import ProgressReporter

MODE_LABELS = {
    "Trend + git activity": MODE_ALL,
    "Trend only": MODE_TREND,
    "Git activity only": MODE_GIT,
}


@register_page("Progress Snapshots")
def snapshots_page():
    st.title("Progress Snapshots")
    st.caption("Rebuild Theme / Milestone / Epic progress trends from the Jira changelog.")
    orchestrator: SnapshotOrchestrator | None = st.session_state.get("orchestrator")
    if orchestrator is None:
        st.warning("Initialize connection on Setup page first.")
        return
    settings = st.session_state.get("settings")

    jql = st.text_input("Theme filter (JQL)", value=getattr(settings, "hierarchy_jql", "") or "")
    mode_label = st.radio("Mode", list(MODE_LABELS), horizontal=True)
    refresh = st.button("Run Snapshot", type="primary")

    if refresh:
        subscription = orchestrator.subscribe()
        try:
            orchestrator.start(jql, MODE_LABELS[mode_label])
        except SnapshotAlreadyRunningError:
            subscription.close()
            st.warning("A snapshot is already running; try again when it finishes.")
        else:
            reporter = ProgressReporter("Running snapshot")
            for event in subscription.events(timeout=orchestrator.api.timeout * 4):
                if reporter.consume(event):
                    break

    history = orchestrator.history()
    if history.last_run:
        st.caption(f"Last run: {history.last_run}")
    frame = history_frame(history)
    if frame.empty:
        st.info("No snapshot history yet.")
        return

    latest = latest_progress(frame)
    st.markdown("---")
    st.subheader("Current progress")
    bars = latest_progress_bars(latest)
    if bars is not None:
        st.altair_chart(bars, use_container_width=True)
    st.dataframe(progress_table(history), hide_index=True)

    keys = st.multiselect("Trend lines", sorted(frame["key"].unique()), default=sorted(frame["key"].unique())[:10])
    chart = progress_sparkline(frame, keys)
    if chart is not None:
        st.altair_chart(chart, use_container_width=True)

    col_git, col_people = st.columns(2)
    with col_git:
        st.subheader("Git activity")
        st.dataframe(activity_frame(history), hide_index=True)
    with col_people:
        st.subheader("Contributors")
        st.dataframe(contributors_frame(history), hide_index=True)
