"""Tests for the thinking/progress tracker."""

from __future__ import annotations

import asyncio

import pytest

from agentify.thinking import MAX_HISTORY, ThinkingStatus, ThinkingTracker


@pytest.fixture
def tracker() -> ThinkingTracker:
    return ThinkingTracker()


def test_start_and_stop(tracker: ThinkingTracker) -> None:
    tracker.start_thinking("Planning")

    assert tracker.is_thinking
    assert tracker.current_action == "Planning"
    assert tracker.get_status().start_time is not None

    tracker.stop_thinking()
    status = tracker.get_status()

    assert not status.is_thinking
    assert status.current_action is None
    assert status.progress == 100


@pytest.mark.parametrize(("value", "expected"), [(-5, 0), (150, 100), (42.7, 42), (0, 0), (100, 100)])
def test_set_progress_clamps(tracker: ThinkingTracker, value: float, expected: int) -> None:
    tracker.set_progress(value)

    assert tracker.progress == expected


def test_set_step_derives_progress(tracker: ThinkingTracker) -> None:
    tracker.set_action("Indexing")
    tracker.set_step(1, 3)

    status = tracker.get_status()
    assert status.step == "1/3"
    assert status.progress == 33

    tracker.set_step(2, 3)
    assert tracker.progress == 67


def test_set_step_without_total(tracker: ThinkingTracker) -> None:
    tracker.set_step("collecting")

    assert tracker.get_status().step == "collecting"
    assert tracker.progress == 0


def test_history_records_action_changes_only(tracker: ThinkingTracker) -> None:
    tracker.set_action("A")
    tracker.set_action("A")
    tracker.set_progress(50)
    tracker.set_action("B", step="x")

    history = tracker.get_history()

    assert [entry["action"] for entry in history] == ["A", "B"]
    assert history[1]["details"] == {"step": "x"}


def test_history_is_capped(tracker: ThinkingTracker) -> None:
    for index in range(MAX_HISTORY + 20):
        tracker.set_action(f"step {index}")

    history = tracker.get_history()

    assert len(history) == MAX_HISTORY
    assert history[0]["action"] == "step 20"
    assert history[-1]["action"] == f"step {MAX_HISTORY + 19}"


def test_listeners_get_copies(tracker: ThinkingTracker) -> None:
    snapshots: list[ThinkingStatus] = []
    unsubscribe = tracker.on_status_change(snapshots.append)

    tracker.set_action("A")
    snapshots[-1].history.clear()
    unsubscribe()
    tracker.set_action("B")

    assert len(snapshots) == 1
    assert [entry["action"] for entry in tracker.get_history()] == ["A", "B"]
    assert tracker.listener_count == 0


def test_listener_errors_are_isolated(tracker: ThinkingTracker) -> None:
    seen = []

    def broken(status: ThinkingStatus) -> None:
        raise RuntimeError("listener bug")

    tracker.on_status_change(broken)
    tracker.on_status_change(seen.append)
    tracker.set_action("A")

    assert len(seen) == 1


def test_listener_must_be_callable(tracker: ThinkingTracker) -> None:
    with pytest.raises(TypeError):
        tracker.on_status_change(None)  # type: ignore[arg-type]


def test_remove_all_listeners(tracker: ThinkingTracker) -> None:
    tracker.on_status_change(lambda status: None)
    tracker.on_status_change(lambda status: None)

    tracker.remove_all_listeners()

    assert tracker.listener_count == 0


def test_thinking_content(tracker: ThinkingTracker) -> None:
    tracker.add_thinking_content("first ")
    tracker.add_thinking_content("second")

    assert tracker.get_status().thinking_content == "first second"

    tracker.clear_thinking_content()
    assert tracker.get_status().thinking_content == ""


def test_reset(tracker: ThinkingTracker) -> None:
    tracker.start_thinking()
    tracker.set_progress(40)

    tracker.reset()

    assert tracker.get_status() == ThinkingStatus()


@pytest.mark.parametrize(
    ("elapsed", "expected"),
    [(250, "250ms"), (5_000, "5s"), (65_000, "1m 5s"), (3_725_000, "1h 2m 5s")],
)
def test_formatted_elapsed_time(tracker: ThinkingTracker, elapsed: int, expected: str) -> None:
    tracker._status.elapsed_time = elapsed

    assert tracker.get_formatted_elapsed_time() == expected


def test_export_summary(tracker: ThinkingTracker) -> None:
    tracker.on_status_change(lambda status: None)
    tracker.set_action("A")

    summary = tracker.export_summary()

    assert summary["current_status"]["current_action"] == "A"
    assert summary["history_count"] == 1
    assert summary["listener_count"] == 1
    assert summary["formatted_elapsed_time"] == "0ms"


@pytest.mark.asyncio
async def test_ticker_refreshes_elapsed_time() -> None:
    tracker = ThinkingTracker(tick_interval=0.01)
    updates: list[int] = []
    tracker.on_status_change(lambda status: updates.append(status.elapsed_time))

    tracker.start_thinking()
    await asyncio.sleep(0.05)
    tracker.stop_thinking()
    count = len(updates)
    await asyncio.sleep(0.03)

    assert count >= 3
    assert len(updates) == count
    assert tracker.get_status().elapsed_time > 0
