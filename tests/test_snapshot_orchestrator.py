import threading
from datetime import UTC, datetime, timedelta

import pytest

from jira_rollup.core.snapshot import (
    STATE_DONE,
    STATE_ERROR,
    STATE_IDLE,
    STATE_RUNNING,
    ProgressBroadcaster,
    SnapshotAlreadyRunningError,
    SnapshotOrchestrator,
    SnapshotStatus,
)
from jira_rollup.core.snapshot_store import SnapshotStore

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=UTC)
SUMMARY_V1 = "/rest/dev-status/1.0/issue/summary"


def _at(offset: int) -> str:
    return (NOW + timedelta(days=offset)).isoformat()


def _day(offset: int) -> str:
    return (NOW + timedelta(days=offset)).date().isoformat()


def _status_change(offset: int, old: str, new: str) -> dict:
    return {"created": _at(offset), "items": [{"field": "status", "fromString": old, "toString": new}]}


def _assign(offset: int, name: str) -> dict:
    return {"created": _at(offset), "items": [{"field": "assignee", "fromString": None, "toString": name}]}


@pytest.fixture
def tree(tracker):
    """T1 -> M1 -> E1 -> {X1, X2}."""
    tracker.add_issue("T1", labels=["theme"], created=_at(-200))
    tracker.add_issue("M1", labels=["milestone"], created=_at(-150))
    tracker.add_issue("E1", created=_at(-100))
    tracker.add_issue("X1", status="Done", created=_at(-10))
    tracker.add_issue(
        "X2",
        status="Done",
        created=_at(-10),
        histories=[_assign(-8, "Dev One"), _status_change(-5, "Open", "Done")],
    )
    tracker.link("T1", "M1")
    tracker.link("M1", "E1")
    tracker.link("E1", "X1")
    tracker.link("E1", "X2")
    return tracker


@pytest.fixture
def orchestrator(tree, tmp_path):
    store = SnapshotStore(tmp_path / "progress-history.json")
    return SnapshotOrchestrator(tree, store, clock=lambda: NOW)


def test_end_to_end_rollup(orchestrator):
    status = orchestrator.run("project = PROJ")

    assert status.state == STATE_DONE
    assert status.error is None
    assert status.total_issues == 5
    snapshots = orchestrator.history().snapshots
    today = snapshots[_day(0)]
    assert {k: v["progress"] for k, v in today.items()} == {"T1": 100, "M1": 100, "E1": 100, "X1": 100, "X2": 100}
    # before X2 reached Done the epic is the plain mean of its tasks
    week_ago = snapshots[_day(-7)]
    assert week_ago["X2"] == {"progress": 0}
    assert week_ago["E1"] == {"progress": 50}
    assert week_ago["T1"] == {"progress": 50}
    # nothing before the tasks existed
    assert _day(-11) not in snapshots


def test_end_to_end_contributors_roll_up(orchestrator):
    orchestrator.run()
    developers = orchestrator.history().developers
    assert [c.display_name for c in developers["X2"]["author/analysis"]] == ["Dev One"]
    assert [c.display_name for c in developers["T1"]["author/analysis"]] == ["Dev One"]


def test_children_are_fetched_with_one_query_per_parent(orchestrator, tree):
    orchestrator.run()
    child_queries = [q for q in tree.searches if q.startswith("key in")]
    assert len(child_queries) == 3  # T1, M1, E1; tasks never query
    assert all(changelog for _, changelog in tree.fetches)


def test_shared_child_is_computed_once(tree, tmp_path):
    tree.add_issue("E2", created=_at(-100))
    tree.link("M1", "E2")
    tree.link("E2", "X1")
    orch = SnapshotOrchestrator(tree, SnapshotStore(tmp_path / "h.json"), clock=lambda: NOW)

    orch.run()

    assert [k for k, _ in tree.fetches].count("X1") == 1
    today = orch.history().snapshots[_day(0)]
    assert today["E2"] == {"progress": 100}


def test_structural_failure_ends_in_error_and_keeps_store(orchestrator, tree):
    orchestrator.run()
    before = orchestrator.store.path.read_text(encoding="utf-8")
    tree.fail_search = True

    status = orchestrator.run()

    assert status.state == STATE_ERROR
    assert "503" in status.error
    assert not status.running
    assert orchestrator.store.path.read_text(encoding="utf-8") == before


def test_failed_node_is_skipped_and_run_completes(orchestrator, tree):
    tree.failing_keys.add("X2")

    status = orchestrator.run()

    assert status.state == STATE_DONE
    today = orchestrator.history().snapshots[_day(0)]
    assert "X2" not in today
    assert orchestrator.history().snapshots[_day(-7)]["E1"] == {"progress": 100}


def test_malformed_issue_payload_only_drops_that_node(orchestrator, tree):
    tree.add_issue("E2", created=_at(-100))
    tree.add_issue("X3", status="Done", created=_at(-10))
    tree.link("M1", "E2")
    tree.link("E2", "X3")
    tree.issues["E1"]["changelog"] = {"histories": ["not-a-history"]}

    status = orchestrator.run()

    assert status.state == STATE_DONE
    assert status.error is None
    today = orchestrator.history().snapshots[_day(0)]
    assert "E1" not in today
    assert today["E2"] == {"progress": 100}
    assert today["M1"] == {"progress": 100}


def test_malformed_search_row_fails_only_its_parent(orchestrator, tree):
    tree.issues["E1"]["fields"]["comment"] = {"comments": ["not-a-dict"]}

    status = orchestrator.run()

    assert status.state == STATE_DONE
    history = orchestrator.history()
    assert all("E1" not in per_key and "M1" not in per_key for per_key in history.snapshots.values())


def test_second_start_is_rejected_without_touching_state(orchestrator, tree):
    entered = threading.Event()
    release = threading.Event()
    search = tree.search

    def slow_search(jql, fields=None, page_size=200):
        entered.set()
        release.wait(5)
        return search(jql, fields, page_size)

    tree.search = slow_search
    thread = orchestrator.start()
    try:
        assert entered.wait(5)
        before = orchestrator.status
        assert before.state == STATE_RUNNING
        with pytest.raises(SnapshotAlreadyRunningError):
            orchestrator.start()
        with pytest.raises(SnapshotAlreadyRunningError):
            orchestrator.run(mode="git")
        assert orchestrator.status == before
    finally:
        release.set()
        thread.join(5)
    assert orchestrator.status.state == STATE_DONE


def test_running_state_is_checked_before_anything_else(orchestrator):
    orchestrator._status = SnapshotStatus(state=STATE_RUNNING, phase="epics", current=2, total=5, mode="all")
    with pytest.raises(SnapshotAlreadyRunningError):
        orchestrator.run()
    status = orchestrator.status
    assert (status.phase, status.current, status.total) == ("epics", 2, 5)


def test_unknown_mode_is_rejected(orchestrator):
    with pytest.raises(ValueError):
        orchestrator.run(mode="everything")
    assert orchestrator.status.state == STATE_IDLE


def test_subscribers_see_every_phase_and_a_final_done(orchestrator):
    sub = orchestrator.subscribe()
    orchestrator.run()

    events = list(sub.events(timeout=0))
    assert events[0]["message"] == "Starting snapshot"
    assert {e["phase"] for e in events[1:]} == {"themes", "milestones", "epics", "tasks"}
    assert events[-1]["done"] is True
    assert events[-1]["error"] is None
    assert events[-1]["totalIssues"] == 5
    assert sum(1 for e in events if e["done"]) == 1
    # events() closes the subscription once the run is over
    assert orchestrator.broadcaster.subscriber_count == 0


def test_late_subscriber_gets_the_last_state(orchestrator):
    orchestrator.run()
    with orchestrator.subscribe() as sub:
        replay = sub.drain()
    assert len(replay) == 1 and replay[0]["done"] is True


def test_git_mode_rolls_up_activity_only(orchestrator, tree):
    tree.dev_payloads[(SUMMARY_V1, None)] = {
        "summary": {
            "pullrequest": {
                "overall": {
                    "count": 1,
                    "lastUpdated": "2024-06-20T10:00:00.000+0000",
                    "details": {"openCount": 0, "mergedCount": 1},
                }
            },
            "repository": {"overall": {"count": 1}},
        }
    }

    status = orchestrator.run(mode="git")

    assert status.state == STATE_DONE
    history = orchestrator.history()
    assert history.snapshots == {}
    assert history.developers == {}
    assert history.git_activity["X1"].pr_count == 1
    assert history.git_activity["E1"].pr_count == 2
    assert history.git_activity["T1"].pr_merged == 2
    assert history.git_activity["T1"].last_activity == "2024-06-20"
    assert not any(changelog for _, changelog in tree.fetches)


def test_trend_mode_skips_dev_status(orchestrator, tree):
    orchestrator.run(mode="trend")
    assert tree.json_calls == []
    assert orchestrator.history().git_activity == {}


def test_stalled_subscriber_is_dropped_and_the_run_finishes(orchestrator):
    orchestrator.broadcaster = ProgressBroadcaster(queue_size=1)
    stalled = orchestrator.subscribe()

    status = orchestrator.run()

    assert status.state == STATE_DONE
    assert orchestrator.broadcaster.subscriber_count == 0
    assert len(stalled.drain()) == 1


def test_broadcaster_keeps_readers_and_drops_laggards():
    broadcaster = ProgressBroadcaster(queue_size=2)
    reader = broadcaster.subscribe()
    laggard = broadcaster.subscribe()
    for i in range(5):
        broadcaster.publish({"current": i})
        assert reader.get(timeout=0)["current"] == i
    assert broadcaster.subscriber_count == 1
    assert [e["current"] for e in laggard.drain()] == [0, 1]


def test_link_counts_are_recorded_for_every_visited_node(orchestrator):
    orchestrator.run(mode="git")
    assert orchestrator.history().link_counts == {"T1": 1, "M1": 2, "E1": 3, "X1": 1, "X2": 1}
