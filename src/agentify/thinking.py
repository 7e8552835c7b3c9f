"""Observable thinking/progress status for long-running agent turns."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime
from typing import Any, Callable

__all__ = ["ThinkingStatus", "ThinkingTracker", "MAX_HISTORY", "DEFAULT_TICK_INTERVAL"]

LOGGER = logging.getLogger(__name__)

MAX_HISTORY = 100
DEFAULT_TICK_INTERVAL = 0.1

StatusListener = Callable[["ThinkingStatus"], Any]


@dataclass(slots=True)
class ThinkingStatus:
    """Snapshot of the tracker state.

    ``elapsed_time`` is in milliseconds. History entries are
    ``{"action", "timestamp", "details"}`` mappings, oldest first.
    """

    is_thinking: bool = False
    current_action: str | None = None
    step: str | None = None
    progress: int = 0
    thinking_content: str = ""
    history: list[dict[str, Any]] = field(default_factory=list)
    start_time: str | None = None
    elapsed_time: int = 0
    last_update: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_STATUS_FIELDS = frozenset(f.name for f in fields(ThinkingStatus))


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ThinkingTracker:
    """Single mutable :class:`ThinkingStatus` plus subscribers.

    Every mutation notifies listeners with a deep copy of the status. While
    thinking, a background task refreshes ``elapsed_time`` every
    ``tick_interval`` seconds; the task only starts inside a running event
    loop.
    """

    def __init__(self, *, tick_interval: float = DEFAULT_TICK_INTERVAL) -> None:
        self._status = ThinkingStatus()
        self._listeners: list[StatusListener] = []
        self._tick_interval = tick_interval
        self._tick_task: asyncio.Task[None] | None = None
        self._started_at: float | None = None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def update_status(self, action: str | None, **details: Any) -> None:
        """Set the current action and merge ``details`` into the status.

        A history entry is appended when ``action`` differs from the previous
        action and is not ``None``.
        """

        previous_action = self._status.current_action
        self._status.current_action = action
        for key, value in details.items():
            if key in _STATUS_FIELDS and key != "history":
                setattr(self._status, key, value)
        self._status.last_update = _now_iso()
        self._refresh_elapsed()

        if action is not None and action != previous_action:
            self._status.history.append({"action": action, "timestamp": _now_iso(), "details": dict(details)})
            if len(self._status.history) > MAX_HISTORY:
                del self._status.history[: len(self._status.history) - MAX_HISTORY]

        self._notify()

    def start_thinking(self, action: str = "Processing") -> None:
        self._started_at = time.monotonic()
        self.update_status(action, is_thinking=True, start_time=_now_iso(), progress=0)
        self._start_ticker()

    def stop_thinking(self) -> None:
        self._refresh_elapsed()
        self.update_status(None, is_thinking=False, progress=100)
        self._stop_ticker()

    def set_action(self, action: str | None, step: str | None = None) -> None:
        self.update_status(action, step=step)

    def set_progress(self, progress: float) -> None:
        clamped = int(min(100, max(0, progress)))
        self.update_status(self._status.current_action, progress=clamped)

    def set_step(self, step: int | str, total_steps: int | None = None) -> None:
        """Record step information; with ``total_steps`` also derive progress."""

        step_info = f"{step}/{total_steps}" if total_steps else str(step)
        self.update_status(self._status.current_action, step=step_info)
        if total_steps:
            self.set_progress(int(float(step) / total_steps * 100 + 0.5))

    def add_thinking_content(self, content: str) -> None:
        self._status.thinking_content += content
        self._notify()

    def clear_thinking_content(self) -> None:
        self._status.thinking_content = ""
        self._notify()

    def clear_history(self) -> None:
        self._status.history = []
        self._notify()

    def reset(self) -> None:
        self._stop_ticker()
        self._started_at = None
        self._status = ThinkingStatus()
        self._notify()

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------
    def on_status_change(self, callback: StatusListener) -> Callable[[], None]:
        """Subscribe ``callback``; returns a function that unsubscribes it."""

        if not callable(callback):
            raise TypeError("Callback must be a function")
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def remove_all_listeners(self) -> None:
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self) -> None:
        snapshot = self.get_status()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Error in thinking status listener")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_status(self) -> ThinkingStatus:
        return copy.deepcopy(self._status)

    def get_history(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._status.history)

    @property
    def is_thinking(self) -> bool:
        return self._status.is_thinking

    @property
    def current_action(self) -> str | None:
        return self._status.current_action

    @property
    def progress(self) -> int:
        return self._status.progress

    def get_formatted_elapsed_time(self) -> str:
        ms = self._status.elapsed_time
        if ms < 1000:
            return f"{ms}ms"
        seconds = ms // 1000
        minutes = seconds // 60
        hours = minutes // 60
        if hours > 0:
            return f"{hours}h {minutes % 60}m {seconds % 60}s"
        if minutes > 0:
            return f"{minutes}m {seconds % 60}s"
        return f"{seconds}s"

    def export_summary(self) -> dict[str, Any]:
        return {
            "current_status": self.get_status().to_dict(),
            "formatted_elapsed_time": self.get_formatted_elapsed_time(),
            "history_count": len(self._status.history),
            "listener_count": len(self._listeners),
        }

    # ------------------------------------------------------------------
    # Elapsed-time ticker
    # ------------------------------------------------------------------
    def _refresh_elapsed(self) -> None:
        if self._status.is_thinking and self._started_at is not None:
            self._status.elapsed_time = int((time.monotonic() - self._started_at) * 1000)

    def _start_ticker(self) -> None:
        self._stop_ticker()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running event loop; elapsed time refreshes on updates only")
            return
        self._tick_task = loop.create_task(self._tick())

    def _stop_ticker(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            if self._status.is_thinking and self._started_at is not None:
                self._refresh_elapsed()
                self._notify()
