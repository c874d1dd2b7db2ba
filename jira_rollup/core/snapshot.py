"""SnapshotOrchestrator: one end-to-end trend/activity/roster recomputation.

A run walks Theme -> Milestone -> Epic -> Task top-down, computes leaf values
(changelog timeline, contributors, dev activity), rolls them up bottom-up, and
only after the whole walk succeeded merges the result into the store.

State machine: idle -> running -> done | error. One run per orchestrator at a
time, and ``service.create_orchestrator`` hands out one orchestrator per
snapshot file. A second start is rejected with ``SnapshotAlreadyRunningError``
and does not touch the in-flight state. Progress is pushed to subscribers
through a ``ProgressBroadcaster``; a subscriber that falls behind is dropped
rather than slowing the walk.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime

import pytz

from jira_rollup.analytics.aggregations.rollup import aggregate_activity, aggregate_roster, average_daily_progress
from jira_rollup.analytics.metrics.contributors import extract_contributors
from jira_rollup.analytics.metrics.timeline import build_daily_progress, trailing_days

from .config import (
    CONTRIBUTOR_WINDOW_DAYS,
    MODE_ALL,
    MODE_GIT,
    MODE_TREND,
    SNAPSHOT_MODES,
    TIMEZONE,
    TREND_WINDOW_DAYS,
)
from .dev_status import DevActivityFetcher
from .hierarchy import (
    CHILD_LEVEL,
    LEVEL_EPIC,
    LEVEL_MILESTONE,
    LEVEL_TASK,
    LEVEL_THEME,
    HierarchyWalker,
    count_structural_children,
)
from .jira_client import JiraAPI, JiraRequestError
from .models import ActivityRecord, ContributorRoster, DailyProgressMap, IssueModel
from .snapshot_store import SnapshotHistory, SnapshotStore

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_RUNNING = "running"
STATE_DONE = "done"
STATE_ERROR = "error"

PHASES: dict[str, str] = {
    LEVEL_THEME: "themes",
    LEVEL_MILESTONE: "milestones",
    LEVEL_EPIC: "epics",
    LEVEL_TASK: "tasks",
}

SUBSCRIBER_QUEUE_SIZE = 1000

# Failures confined to one node: remote errors plus malformed payloads
NODE_ERRORS = (JiraRequestError, KeyError, TypeError, ValueError, AttributeError)


class SnapshotAlreadyRunningError(RuntimeError):
    """A snapshot run is already in flight; retry once it has finished."""


# ------------------ Progress pub/sub ------------------
class Subscription:
    """One observer's queue of progress events."""

    def __init__(self, broadcaster: ProgressBroadcaster, maxsize: int = SUBSCRIBER_QUEUE_SIZE):
        self._broadcaster = broadcaster
        self._queue: queue.Queue[dict] = queue.Queue(maxsize=maxsize)

    def offer(self, event: dict) -> bool:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            return False
        return True

    def get(self, timeout: float | None = None) -> dict | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[dict]:
        out: list[dict] = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out

    def events(self, timeout: float | None = None) -> Iterator[dict]:
        """Yield events until a terminal (done/error) event or ``timeout`` idle seconds."""
        try:
            while True:
                event = self.get(timeout=timeout)
                if event is None:
                    return
                yield event
                if event.get("done") or event.get("error"):
                    return
        finally:
            self.close()

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ProgressBroadcaster:
    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self._queue_size = queue_size
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self._queue_size)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: dict) -> None:
        with self._lock:
            targets = list(self._subscribers)
        for sub in targets:
            if not sub.offer(event):
                logger.warning("Dropping progress subscriber that stopped reading")
                self.unsubscribe(sub)


# ------------------ Run state ------------------
@dataclass(slots=True)
class SnapshotStatus:
    state: str = STATE_IDLE
    phase: str | None = None
    current: int = 0
    total: int = 0
    message: str = ""
    total_issues: int = 0
    error: str | None = None
    mode: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self.state == STATE_RUNNING

    def to_event(self) -> dict:
        return {
            "phase": self.phase,
            "current": self.current,
            "total": self.total,
            "message": self.message,
            "done": self.state == STATE_DONE,
            "totalIssues": self.total_issues,
            "error": self.error,
        }


@dataclass(slots=True)
class NodeResult:
    daily: DailyProgressMap = field(default_factory=dict)
    activity: ActivityRecord | None = None
    roster: ContributorRoster = field(default_factory=dict)
    link_count: int | None = None


@dataclass(slots=True)
class _RunContext:
    now: datetime
    days: list[str]
    mode: str
    results: dict[str, NodeResult] = field(default_factory=dict)

    @property
    def do_trend(self) -> bool:
        return self.mode in (MODE_ALL, MODE_TREND)

    @property
    def do_git(self) -> bool:
        return self.mode in (MODE_ALL, MODE_GIT)


class SnapshotOrchestrator:
    def __init__(
        self,
        api: JiraAPI,
        store: SnapshotStore,
        *,
        clock: Callable[[], datetime] | None = None,
        tz=None,
        window_days: int = TREND_WINDOW_DAYS,
        contributor_window_days: int = CONTRIBUTOR_WINDOW_DAYS,
    ):
        self.api = api
        self.store = store
        self.walker = HierarchyWalker(api)
        self.dev_fetcher = DevActivityFetcher(api)
        self.broadcaster = ProgressBroadcaster()
        self._clock = clock or (lambda: datetime.now(pytz.UTC))
        self._tz = tz or pytz.timezone(TIMEZONE)
        self.window_days = window_days
        self.contributor_window_days = contributor_window_days
        self._lock = threading.Lock()
        self._status = SnapshotStatus()
        self._thread: threading.Thread | None = None

    # ------------------ Public surface ------------------
    @property
    def status(self) -> SnapshotStatus:
        with self._lock:
            return replace(self._status)

    def subscribe(self) -> Subscription:
        """Register an observer; a non-idle orchestrator replays its latest state."""
        sub = self.broadcaster.subscribe()
        status = self.status
        if status.state != STATE_IDLE:
            sub.offer(status.to_event())
        return sub

    def history(self) -> SnapshotHistory:
        return self.store.load()

    def rebind(self, api: JiraAPI) -> None:
        """Switch an idle orchestrator to another tracker client."""
        with self._lock:
            if self._status.running:
                raise SnapshotAlreadyRunningError("Cannot change the Jira connection while a snapshot is running")
            self.api = api
            self.walker = HierarchyWalker(api)
            self.dev_fetcher = DevActivityFetcher(api)

    def start(self, jql_fragment: str | None = None, mode: str = MODE_ALL) -> threading.Thread:
        """Launch a run in a background thread; raises if one is in flight."""
        self._claim(mode)
        thread = threading.Thread(
            target=self._execute,
            args=(jql_fragment, mode),
            daemon=True,
            name="jira-rollup-snapshot",
        )
        self._thread = thread
        thread.start()
        return thread

    def run(self, jql_fragment: str | None = None, mode: str = MODE_ALL) -> SnapshotStatus:
        """Execute a run in the calling thread and return its terminal status."""
        self._claim(mode)
        self._execute(jql_fragment, mode)
        return self.status

    # ------------------ State transitions ------------------
    def _claim(self, mode: str) -> None:
        if mode not in SNAPSHOT_MODES:
            raise ValueError(f"Unknown snapshot mode {mode!r}; expected one of {sorted(SNAPSHOT_MODES)}")
        with self._lock:
            if self._status.running:
                raise SnapshotAlreadyRunningError("A snapshot run is already in progress")
            self._status = SnapshotStatus(
                state=STATE_RUNNING,
                mode=mode,
                message="Starting snapshot",
                started_at=self._clock(),
            )
            event = self._status.to_event()
        self.broadcaster.publish(event)

    def _progress(self, phase: str, current: int, total: int, message: str, total_issues: int | None = None) -> None:
        with self._lock:
            self._status.phase = phase
            self._status.current = current
            self._status.total = total
            self._status.message = message
            if total_issues is not None:
                self._status.total_issues = total_issues
            event = self._status.to_event()
        self.broadcaster.publish(event)

    def _finish(self, *, total_issues: int, error: str | None = None) -> None:
        with self._lock:
            self._status.state = STATE_ERROR if error else STATE_DONE
            self._status.error = error
            self._status.total_issues = total_issues
            self._status.message = f"Snapshot failed: {error}" if error else f"Snapshot saved for {total_issues} issue(s)"
            self._status.finished_at = self._clock()
            event = self._status.to_event()
        self.broadcaster.publish(event)

    # ------------------ Run body ------------------
    def _execute(self, jql_fragment: str | None, mode: str) -> None:
        now = self._clock()
        ctx = _RunContext(now=now, days=trailing_days(now, self.window_days, self._tz), mode=mode)
        try:
            if hasattr(self.api, "clear_cache"):
                self.api.clear_cache()
            self._progress(PHASES[LEVEL_THEME], 0, 0, "Querying themes")
            themes = self.walker.list_themes(jql_fragment)
            for idx, theme in enumerate(themes, start=1):
                self._progress(PHASES[LEVEL_THEME], idx, len(themes), f"Theme {theme.key}", len(ctx.results))
                self._visit(theme, LEVEL_THEME, ctx, frozenset())
            self._progress(PHASES[LEVEL_THEME], len(themes), len(themes), "Saving snapshot", len(ctx.results))
            self.store.save_snapshot(
                daily_results={k: r.daily for k, r in ctx.results.items() if r.daily},
                git_results={k: r.activity for k, r in ctx.results.items() if r.activity is not None},
                dev_results={k: r.roster for k, r in ctx.results.items() if r.roster},
                link_counts={k: r.link_count for k, r in ctx.results.items() if r.link_count is not None},
                days=ctx.days,
                mode=mode,
                now=now,
            )
        except Exception as exc:
            logger.exception("Snapshot run failed")
            self._finish(total_issues=len(ctx.results), error=str(exc) or type(exc).__name__)
            return
        logger.info("Snapshot (%s) finished for %s issue(s)", mode, len(ctx.results))
        self._finish(total_issues=len(ctx.results))

    def _visit(self, issue: IssueModel, level: str, ctx: _RunContext, ancestors: frozenset[str]) -> NodeResult:
        key = issue.key
        if key in ctx.results:
            return ctx.results[key]
        if key in ancestors:
            logger.warning("Link cycle back to %s ignored", key)
            return NodeResult()

        try:
            node = self.walker.fetch(key, changelog=ctx.do_trend)
            children = self.walker.children(node, level)
        except NODE_ERRORS as exc:
            logger.warning("Skipping %s: %s", key, exc)
            ctx.results[key] = NodeResult()
            return ctx.results[key]

        if children:
            child_level = CHILD_LEVEL[level]
            child_results = []
            for idx, child in enumerate(children, start=1):
                self._progress(PHASES[child_level], idx, len(children), f"{key} -> {child.key}", len(ctx.results))
                child_results.append(self._visit(child, child_level, ctx, ancestors | {key}))
            result = self._aggregate(child_results, ctx)
        else:
            result = self._compute_leaf(node, ctx)
        result.link_count = count_structural_children(node)
        ctx.results[key] = result
        return result

    def _compute_leaf(self, issue: IssueModel, ctx: _RunContext) -> NodeResult:
        result = NodeResult()
        if ctx.do_trend:
            try:
                result.daily = build_daily_progress(issue, ctx.days, self._tz)
                result.roster = extract_contributors(issue, ctx.now, self.contributor_window_days)
            except NODE_ERRORS as exc:
                logger.warning("No trend for %s: %s", issue.key, exc)
                result.daily, result.roster = {}, {}
        if ctx.do_git:
            result.activity = self.dev_fetcher.fetch(issue.id)
        return result

    def _aggregate(self, children: list[NodeResult], ctx: _RunContext) -> NodeResult:
        result = NodeResult()
        if ctx.do_trend:
            result.daily = average_daily_progress([c.daily for c in children], ctx.days)
            result.roster = aggregate_roster([c.roster for c in children])
        if ctx.do_git:
            result.activity = aggregate_activity([c.activity for c in children])
        return result
